# src/x402_paywall/schemas/access.py
"""Schemas for paywalled content responses."""

from datetime import datetime

from pydantic import BaseModel, Field


class ArticleAccessResponse(BaseModel):
    """Full article content returned once access is granted."""

    id: str
    content: str = Field(..., description="Raw markdown content")
    payment_method: str = Field(..., description="'budget' or 'onetime'")
    transfer_id: str
    amount_charged: str = Field(..., description="Charged amount in display units")
    remaining_budget: str | None = Field(
        None, description="Budget left after a metered access, in display units"
    )
    token_decimals: int
    access_timestamp: datetime


class DenialResponse(BaseModel):
    """Error body for a refused access or deposit."""

    error: str
    reason: str
    retryable: bool = False


class ArticleSummaryOut(BaseModel):
    """Free article metadata for listings and previews."""

    id: str
    title: str
    excerpt: str
    word_count: int
    read_time_minutes: int
    price: str = Field(..., description="Price in display units")
    token_mint: str


class ArticlePreviewOut(ArticleSummaryOut):
    preview: str = Field(..., description="Opening paragraphs, free to read")


class ArticleListResponse(BaseModel):
    articles: list[ArticleSummaryOut]
    count: int
