# src/x402_paywall/api/v1/dependencies.py
"""Shared API dependencies and the denial-to-HTTP mapping."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from x402_paywall.core.errors import DenialReason
from x402_paywall.db.session import get_db
from x402_paywall.services.catalog import DirectoryContentCatalog, get_catalog
from x402_paywall.services.ledger_client import LedgerNode, get_ledger_client
from x402_paywall.services.paywall import Denied, PaywallConfig, PaywallOrchestrator, load_paywall_config

RETRY_AFTER_SECONDS = 5

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def get_ledger_dep() -> LedgerNode:
    """Return the shared ledger client."""
    return get_ledger_client()


def get_catalog_dep() -> DirectoryContentCatalog:
    return get_catalog()


def get_paywall_config_dep() -> PaywallConfig:
    """Return paywall configuration, failing with 503 when no recipient is set."""
    try:
        return load_paywall_config()
    except RuntimeError as err:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Recipient wallet not configured",
        ) from err


LedgerDep = Annotated[LedgerNode, Depends(get_ledger_dep)]
CatalogDep = Annotated[DirectoryContentCatalog, Depends(get_catalog_dep)]
PaywallConfigDep = Annotated[PaywallConfig, Depends(get_paywall_config_dep)]


def get_orchestrator(
    db: SessionDep,
    ledger: LedgerDep,
    catalog: CatalogDep,
    config: PaywallConfigDep,
) -> PaywallOrchestrator:
    return PaywallOrchestrator(db, ledger, catalog, config)


OrchestratorDep = Annotated[PaywallOrchestrator, Depends(get_orchestrator)]


_DENIAL_STATUS: dict[DenialReason, int] = {
    DenialReason.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    DenialReason.NOT_FOUND: status.HTTP_401_UNAUTHORIZED,
    DenialReason.FAILED: status.HTTP_401_UNAUTHORIZED,
    DenialReason.REFERENCE_MISMATCH: status.HTTP_401_UNAUTHORIZED,
    DenialReason.INSUFFICIENT_AMOUNT: status.HTTP_401_UNAUTHORIZED,
    DenialReason.REPLAY_ATTACK: status.HTTP_401_UNAUTHORIZED,
    DenialReason.RESOURCE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    DenialReason.UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    DenialReason.STORAGE_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def denial_to_http(denied: Denied) -> HTTPException:
    """Translate a denial into the HTTP error the client sees.

    Retryable denials carry ``Retry-After`` so clients resubmit the same proof.
    """
    headers = {"Retry-After": str(RETRY_AFTER_SECONDS)} if denied.retryable else None
    return HTTPException(
        status_code=_DENIAL_STATUS.get(denied.reason, status.HTTP_401_UNAUTHORIZED),
        detail={
            "error": denied.detail or str(denied.reason),
            "reason": str(denied.reason),
            "retryable": denied.retryable,
        },
        headers=headers,
    )
