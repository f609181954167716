# src/x402_paywall/core/errors.py
"""Error taxonomy shared by the paywall components."""

from __future__ import annotations

from enum import StrEnum


class DenialReason(StrEnum):
    """Why a payment proof or access request was refused."""

    VALIDATION_ERROR = "validation_error"
    NOT_FOUND = "not_found"
    FAILED = "failed"
    REFERENCE_MISMATCH = "reference_mismatch"
    INSUFFICIENT_AMOUNT = "insufficient_amount"
    REPLAY_ATTACK = "replay_attack"
    UNAVAILABLE = "unavailable"
    STORAGE_ERROR = "storage_error"
    RESOURCE_NOT_FOUND = "resource_not_found"

    @property
    def retryable(self) -> bool:
        """Return True if the caller may resubmit the same proof later."""
        return self in _RETRYABLE


_RETRYABLE = frozenset({DenialReason.UNAVAILABLE, DenialReason.STORAGE_ERROR})


class PaywallError(RuntimeError):
    """Base exception for paywall failures.

    Raised inside components only; public boundaries translate it into a
    tagged result carrying a ``DenialReason``.
    """

    reason: DenialReason = DenialReason.FAILED


class ValidationError(PaywallError, ValueError):
    """Raised when input is malformed and must be rejected before any I/O."""

    reason = DenialReason.VALIDATION_ERROR

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class StorageError(PaywallError):
    """Raised when the persistent store is unavailable or rejects a write."""

    reason = DenialReason.STORAGE_ERROR


class LedgerUnavailableError(PaywallError):
    """Raised when the ledger node cannot be reached or times out."""

    reason = DenialReason.UNAVAILABLE
