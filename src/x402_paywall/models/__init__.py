# src/x402_paywall/models/__init__.py
"""SQLAlchemy models for the x402 paywall."""

from .budget_balance import BudgetBalance
from .reference_claim import ReferenceClaim
from .transfer import NETWORKS, Transfer, TransferKind

__all__ = [
    "BudgetBalance",
    "ReferenceClaim",
    "NETWORKS", "Transfer", "TransferKind",
]
