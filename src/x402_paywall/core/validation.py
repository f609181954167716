# src/x402_paywall/core/validation.py
"""Format checks applied to caller-supplied identifiers before any I/O."""

from __future__ import annotations

import re

from x402_paywall.core.errors import ValidationError

_BASE58 = "1-9A-HJ-NP-Za-km-z"
_ADDRESS_RE = re.compile(rf"^[{_BASE58}]{{32,44}}$")
# Ed25519 signatures are 64 bytes, 87-88 characters in base58.
_SIGNATURE_RE = re.compile(rf"^[{_BASE58}]{{87,88}}$")
_REFERENCE_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
_RESOURCE_ID_RE = re.compile(r"^[a-zA-Z0-9_-]{1,100}$")


def is_valid_address(value: str | None) -> bool:
    return isinstance(value, str) and bool(_ADDRESS_RE.match(value))


def is_valid_signature(value: str | None) -> bool:
    return isinstance(value, str) and bool(_SIGNATURE_RE.match(value))


def is_valid_reference(value: str | None) -> bool:
    return isinstance(value, str) and bool(_REFERENCE_RE.match(value))


def is_valid_resource_id(value: str | None) -> bool:
    return isinstance(value, str) and bool(_RESOURCE_ID_RE.match(value))


def require_address(value: str | None, field: str) -> str:
    """Return ``value`` if it is a base58 account address, else raise."""
    if not is_valid_address(value):
        raise ValidationError(f"Invalid {field} address", field=field)
    return value  # type: ignore[return-value]


def require_signature(value: str | None) -> str:
    """Return ``value`` if it is a base58 transaction signature, else raise."""
    if not is_valid_signature(value):
        raise ValidationError("Invalid transaction signature format", field="signature")
    return value  # type: ignore[return-value]


def require_reference(value: str | None) -> str:
    """Return ``value`` if it is a UUID reference, else raise."""
    if not is_valid_reference(value):
        raise ValidationError("Invalid reference format (must be UUID)", field="reference")
    return value  # type: ignore[return-value]
