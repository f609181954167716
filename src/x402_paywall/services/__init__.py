# src/x402_paywall/services/__init__.py
"""Payment verification and budget accounting services."""

from .budget_ledger import BudgetLedger, TransferDraft
from .catalog import DirectoryContentCatalog
from .ledger_client import SolanaLedgerClient
from .paywall import PaywallOrchestrator
from .references import ReferenceGuard
from .verifier import TransactionVerifier

__all__ = [
    "BudgetLedger",
    "DirectoryContentCatalog",
    "PaywallOrchestrator",
    "ReferenceGuard",
    "SolanaLedgerClient",
    "TransactionVerifier",
    "TransferDraft",
]
