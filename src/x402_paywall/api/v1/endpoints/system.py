# src/x402_paywall/api/v1/endpoints/system.py
"""Pricing and operational endpoints."""

from __future__ import annotations

import time

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from x402_paywall.core.settings import settings
from x402_paywall.schemas.pricing import CurrencyInfo, DepositLimits, PricingResponse
from x402_paywall.services.budget_ledger import BudgetLedger

from ..dependencies import SessionDep

router = APIRouter(tags=["system"])


@router.get("/pricing", response_model=PricingResponse)
async def get_pricing() -> PricingResponse:
    """Return article cost, deposit limits and currency."""
    return PricingResponse(
        article_cost=str(settings.article_cost),
        currency=CurrencyInfo(symbol=settings.currency_symbol, name=settings.currency_name),
        deposit=DepositLimits(
            minimum=str(settings.budget_deposit_minimum),
            maximum=str(settings.budget_deposit_maximum),
        ),
        token_mint=settings.spl_token_mint,
        network=settings.solana_network,
    )


@router.get("/system/health")
async def get_system_health(db: SessionDep) -> dict[str, object]:
    """Health check covering database connectivity and ledger configuration.

    Args:
        db: Database session

    Returns:
        Dictionary with overall status, component health, and version info
    """
    try:
        db.execute(text("SELECT 1"))
        db_status = "healthy"
    except SQLAlchemyError as e:
        db_status = f"unhealthy: {e.__class__.__name__}"
    finally:
        db.rollback()

    return {
        "status": "healthy" if db_status == "healthy" else "unhealthy",
        "timestamp": int(time.time()),
        "components": {"database": db_status},
        "config": {
            "network": settings.solana_network,
            "token_mint": settings.spl_token_mint,
            "recipient_configured": bool(settings.recipient_wallet),
        },
        "version": settings.app_version,
    }


@router.get("/system/stats")
async def get_ledger_stats(db: SessionDep) -> dict[str, object]:
    """Aggregate ledger counters for monitoring dashboards."""
    stats = BudgetLedger(db).stats()
    db.rollback()
    return {
        "timestamp": int(time.time()),
        "accounts": stats.accounts,
        "total_balance": stats.total_balance,
        "transfers_by_kind": stats.transfers_by_kind,
        "volume_by_kind": stats.volume_by_kind,
    }
