# tests/test_verifier.py
import uuid
from decimal import Decimal

import pytest

from conftest import MINT, PAYER, PAYER_ATA, RECIPIENT, RECIPIENT_ATA, make_transaction, signature_for
from x402_paywall.core.errors import DenialReason
from x402_paywall.services.ledger_client import LookupStatus, TokenTransfer, TransactionLookup
from x402_paywall.services.verifier import TransactionVerifier

PRICE = Decimal("0.10")


@pytest.fixture()
def reference() -> str:
    return str(uuid.uuid4())


async def _verify(ledger, signature, reference, amount=PRICE):
    return await TransactionVerifier(ledger).verify(signature, reference, amount, MINT, RECIPIENT)


@pytest.mark.asyncio
async def test_exact_payment_succeeds(ledger, reference) -> None:
    sig = signature_for("exact")
    ledger.add(make_transaction(sig, memo=reference, received=100_000))

    result = await _verify(ledger, sig, reference)

    assert result.success
    assert result.received_amount == 100_000
    assert result.token_decimals == 6
    assert result.payer == PAYER
    assert result.error_reason is None


@pytest.mark.asyncio
async def test_one_unit_short_is_insufficient(ledger, reference) -> None:
    sig = signature_for("short")
    ledger.add(make_transaction(sig, memo=reference, received=99_999))

    result = await _verify(ledger, sig, reference)

    assert not result.success
    assert result.error_reason is DenialReason.INSUFFICIENT_AMOUNT
    assert result.received_amount == 99_999


@pytest.mark.asyncio
async def test_overpayment_is_accepted(ledger, reference) -> None:
    sig = signature_for("over")
    ledger.add(make_transaction(sig, memo=reference, received=250_000, pre_balance=7))

    result = await _verify(ledger, sig, reference)

    assert result.success
    assert result.received_amount == 250_000


@pytest.mark.asyncio
async def test_memo_must_match_exactly(ledger, reference) -> None:
    sig = signature_for("memo")
    ledger.add(make_transaction(sig, memo=reference.upper() + " ", received=100_000))

    result = await _verify(ledger, sig, reference)

    assert result.error_reason is DenialReason.REFERENCE_MISMATCH


@pytest.mark.asyncio
async def test_missing_memo_is_mismatch(ledger, reference) -> None:
    sig = signature_for("nomemo")
    ledger.add(make_transaction(sig, memo=None, received=100_000))

    result = await _verify(ledger, sig, reference)

    assert result.error_reason is DenialReason.REFERENCE_MISMATCH


@pytest.mark.asyncio
async def test_failed_transaction(ledger, reference) -> None:
    sig = signature_for("failed")
    ledger.add(make_transaction(sig, memo=reference, received=0, error={"InstructionError": [0, "Custom"]}))

    result = await _verify(ledger, sig, reference)

    assert result.error_reason is DenialReason.FAILED


@pytest.mark.asyncio
async def test_unknown_transaction(ledger, reference) -> None:
    result = await _verify(ledger, signature_for("ghost"), reference)
    assert result.error_reason is DenialReason.NOT_FOUND


@pytest.mark.asyncio
async def test_ledger_outage_is_unavailable(ledger, reference) -> None:
    sig = signature_for("outage")
    ledger.add(make_transaction(sig, memo=reference, received=100_000))
    ledger.unavailable = True

    result = await _verify(ledger, sig, reference)

    assert result.error_reason is DenialReason.UNAVAILABLE
    assert result.error_reason.retryable


@pytest.mark.asyncio
async def test_pending_transaction_is_not_trusted(reference) -> None:
    class PendingLedger:
        async def get_finalized_transaction(self, signature):
            return TransactionLookup(LookupStatus.PENDING, detail="Transaction not finalized yet")

        async def get_token_decimals(self, token_mint):
            raise AssertionError("decimals must not be fetched")

    result = await _verify(PendingLedger(), signature_for("pending"), reference)

    assert result.error_reason is DenialReason.UNAVAILABLE


@pytest.mark.asyncio
async def test_decimals_lookup_failure_is_unavailable(ledger, reference) -> None:
    sig = signature_for("decimals")
    ledger.add(make_transaction(sig, memo=reference, received=100_000))
    ledger.decimals.clear()

    result = await _verify(ledger, sig, reference)

    assert result.error_reason is DenialReason.UNAVAILABLE


@pytest.mark.asyncio
async def test_malformed_input_never_reaches_ledger(ledger, reference) -> None:
    result = await _verify(ledger, "not-a-signature", reference)

    assert result.error_reason is DenialReason.VALIDATION_ERROR
    assert ledger.transaction_calls == 0


@pytest.mark.asyncio
async def test_self_transfer_falls_back_to_instructions(ledger, reference) -> None:
    sig = signature_for("self")
    ledger.add(
        make_transaction(
            sig,
            memo=reference,
            received=0,
            fee_payer=RECIPIENT,
            transfers=(
                TokenTransfer(source=PAYER_ATA, destination=RECIPIENT_ATA, amount=100_000, mint=MINT),
                TokenTransfer(source=PAYER_ATA, destination=RECIPIENT_ATA, amount=5, mint="Other1111111111111111111111111111111111111"),
            ),
        )
    )

    result = await _verify(ledger, sig, reference)

    assert result.success
    assert result.received_amount == 100_000
