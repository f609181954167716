# tests/test_validation.py
import uuid

import pytest

from conftest import MINT, PAYER, signature_for
from x402_paywall.core.errors import ValidationError
from x402_paywall.core.validation import (
    is_valid_address,
    is_valid_reference,
    is_valid_resource_id,
    is_valid_signature,
    require_address,
    require_reference,
    require_signature,
)


def test_addresses() -> None:
    assert is_valid_address(MINT)
    assert is_valid_address(PAYER)
    assert not is_valid_address("0" * 44)  # '0' is not base58
    assert not is_valid_address("short")
    assert not is_valid_address(None)


def test_signatures() -> None:
    assert is_valid_signature(signature_for("a"))
    assert not is_valid_signature(MINT)
    assert not is_valid_signature("l" * 88)  # 'l' is not base58


def test_references() -> None:
    assert is_valid_reference(str(uuid.uuid4()))
    assert is_valid_reference(str(uuid.uuid4()).upper())
    assert not is_valid_reference("not-a-uuid")
    assert not is_valid_reference("")


def test_resource_ids() -> None:
    assert is_valid_resource_id("premium-article_2")
    assert not is_valid_resource_id("../etc/passwd")
    assert not is_valid_resource_id("a" * 101)


def test_require_helpers_raise_with_field() -> None:
    with pytest.raises(ValidationError) as exc:
        require_address("nope", "payer")
    assert exc.value.field == "payer"
    with pytest.raises(ValidationError):
        require_signature("nope")
    with pytest.raises(ValidationError):
        require_reference("nope")
    assert require_address(PAYER, "payer") == PAYER
