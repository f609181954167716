# src/x402_paywall/api/v1/endpoints/articles.py
"""Paywalled article endpoints."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Header, HTTPException, Query, status
from fastapi.responses import JSONResponse

from x402_paywall.core.amounts import format_amount
from x402_paywall.db.time import utcnow
from x402_paywall.schemas.access import (
    ArticleAccessResponse,
    ArticleListResponse,
    ArticlePreviewOut,
    ArticleSummaryOut,
    DenialResponse,
)
from x402_paywall.schemas.invoice import InvoiceResponse
from x402_paywall.services.catalog import ArticleSummary
from x402_paywall.services.paywall import AccessRequest, ChallengeIssued, Denied

from ..dependencies import CatalogDep, OrchestratorDep, denial_to_http

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/articles", tags=["articles"])

AUTH_SCHEME = "x402"


def parse_payment_authorization(header: str | None) -> str | None:
    """Return the signature from an ``Authorization: x402 <signature>`` header."""
    if not header:
        return None
    scheme, _, credentials = header.strip().partition(" ")
    if scheme.lower() != AUTH_SCHEME or not credentials.strip():
        return None
    return credentials.strip()


def _summary_fields(summary: ArticleSummary) -> dict[str, object]:
    return {
        "id": summary.id,
        "title": summary.title,
        "excerpt": summary.excerpt,
        "word_count": summary.word_count,
        "read_time_minutes": summary.read_time_minutes,
        "price": str(summary.price.amount),
        "token_mint": summary.price.token_mint,
    }


@router.get("", response_model=ArticleListResponse)
async def list_articles(catalog: CatalogDep) -> ArticleListResponse:
    """List purchasable articles with their free metadata."""
    summaries = catalog.list_summaries()
    return ArticleListResponse(
        articles=[ArticleSummaryOut(**_summary_fields(s)) for s in summaries],
        count=len(summaries),
    )


@router.get("/{resource_id}/preview", response_model=ArticlePreviewOut)
async def get_article_preview(resource_id: str, catalog: CatalogDep) -> ArticlePreviewOut:
    """Return the free opening of an article."""
    if not catalog.exists(resource_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Article not found")
    summary = catalog.summary(resource_id)
    return ArticlePreviewOut(**_summary_fields(summary), preview=summary.preview)


@router.get(
    "/{resource_id}",
    response_model=ArticleAccessResponse,
    responses={
        status.HTTP_402_PAYMENT_REQUIRED: {"model": InvoiceResponse},
        status.HTTP_401_UNAUTHORIZED: {"model": DenialResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": DenialResponse},
    },
)
async def get_article(
    resource_id: str,
    orchestrator: OrchestratorDep,
    catalog: CatalogDep,
    payer_pubkey: Annotated[str | None, Header(alias="X402-Payer-Pubkey")] = None,
    authorization: Annotated[str | None, Header()] = None,
    reference: Annotated[str | None, Query(max_length=64)] = None,
) -> ArticleAccessResponse | JSONResponse:
    """Serve an article paid from budget or by a verified one-time payment.

    Without a usable budget or proof the response is 402 carrying an invoice.
    """
    decision = await orchestrator.evaluate(
        AccessRequest(
            resource_id=resource_id,
            account=payer_pubkey or None,
            transaction_id=parse_payment_authorization(authorization),
            reference=reference or None,
        )
    )
    if isinstance(decision, ChallengeIssued):
        return JSONResponse(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            content=decision.invoice.to_wire(),
        )
    if isinstance(decision, Denied):
        raise denial_to_http(decision)

    try:
        content = catalog.read(resource_id)
    except KeyError as err:
        # Removed between the paywall check and the read.
        logger.error("Article %s vanished after access was granted", resource_id)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Article not found") from err

    return ArticleAccessResponse(
        id=resource_id,
        content=content,
        payment_method=str(decision.method),
        transfer_id=decision.transfer_id,
        amount_charged=format_amount(decision.amount, decision.token_decimals),
        remaining_budget=(
            None
            if decision.remaining_balance is None
            else format_amount(decision.remaining_balance, decision.token_decimals)
        ),
        token_decimals=decision.token_decimals,
        access_timestamp=utcnow(),
    )
