# src/x402_paywall/schemas/__init__.py
"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .access import (
    ArticleAccessResponse,
    ArticleListResponse,
    ArticlePreviewOut,
    ArticleSummaryOut,
    DenialResponse,
)
from .budget import BalanceOut, BudgetResponse, DepositConfirmRequest, DepositConfirmResponse, TransferOut
from .invoice import InvoiceResponse
from .pricing import PricingResponse

__all__ = [
    "ArticleAccessResponse", "ArticleListResponse", "ArticlePreviewOut", "ArticleSummaryOut",
    "DenialResponse",
    "BalanceOut", "BudgetResponse", "DepositConfirmRequest", "DepositConfirmResponse", "TransferOut",
    "InvoiceResponse",
    "PricingResponse",
]
