# tests/test_budget_ledger.py
import uuid
from concurrent.futures import ThreadPoolExecutor

import pytest

from conftest import MINT, OTHER_PAYER, PAYER, RECIPIENT, signature_for
from x402_paywall.core.errors import ValidationError
from x402_paywall.models import TransferKind
from x402_paywall.services.budget_ledger import BudgetLedger, TransferDraft


def _top_up(signature: str, amount: int, account: str = PAYER) -> TransferDraft:
    return TransferDraft(
        signature_id=signature,
        kind=TransferKind.TOP_UP,
        from_account=account,
        to_account=RECIPIENT,
        network="devnet",
        amount=amount,
        token_decimals=6,
        token_symbol="USDC",
        token_mint=MINT,
    )


def _metered(amount: int, account: str = PAYER) -> TransferDraft:
    return TransferDraft(
        signature_id=f"budget-{uuid.uuid4().hex}",
        kind=TransferKind.METERED_ACCESS,
        from_account=account,
        to_account=RECIPIENT,
        network="devnet",
        amount=amount,
        token_decimals=6,
        token_symbol="USDC",
        token_mint=MINT,
        resource_id="premium-article",
    )


def _credit(ledger: BudgetLedger, amount: int, seed: str = "top-up") -> bool:
    return ledger.credit(
        PAYER, "devnet", MINT, amount, 6, "USDC", _top_up(signature_for(seed), amount)
    )


def test_missing_balance_is_zero(db_session) -> None:
    ledger = BudgetLedger(db_session)
    assert ledger.get_balance(PAYER, "devnet", MINT) == 0
    assert ledger.get_balance_record(PAYER, "devnet", MINT) is None


def test_credit_creates_then_increments(db_session) -> None:
    ledger = BudgetLedger(db_session)
    assert _credit(ledger, 1_000_000, "first")
    assert _credit(ledger, 500_000, "second")

    record = ledger.get_balance_record(PAYER, "devnet", MINT)
    assert record is not None
    assert record.amount == 1_500_000
    assert record.token_decimals == 6
    assert ledger.get_balance(PAYER, "mainnet-beta", MINT) == 0


def test_duplicate_credit_is_ignored(db_session) -> None:
    ledger = BudgetLedger(db_session)
    assert _credit(ledger, 1_000_000, "same")
    assert _credit(ledger, 1_000_000, "same") is False
    assert ledger.get_balance(PAYER, "devnet", MINT) == 1_000_000
    assert len(ledger.list_transfers(PAYER)) == 1


def test_debit_requires_covering_balance(db_session) -> None:
    ledger = BudgetLedger(db_session)
    _credit(ledger, 150_000)

    assert ledger.try_debit(PAYER, "devnet", MINT, 100_000, _metered(100_000))
    assert ledger.try_debit(PAYER, "devnet", MINT, 100_000, _metered(100_000)) is False
    assert ledger.get_balance(PAYER, "devnet", MINT) == 50_000
    metered = ledger.list_transfers(PAYER, kind=TransferKind.METERED_ACCESS)
    assert len(metered) == 1


def test_debit_without_row_has_no_side_effects(db_session) -> None:
    ledger = BudgetLedger(db_session)
    assert ledger.try_debit(OTHER_PAYER, "devnet", MINT, 1, _metered(1, OTHER_PAYER)) is False
    assert ledger.list_transfers(OTHER_PAYER) == []


def test_exact_balance_can_be_spent(db_session) -> None:
    ledger = BudgetLedger(db_session)
    _credit(ledger, 100_000)
    assert ledger.try_debit(PAYER, "devnet", MINT, 100_000)
    assert ledger.get_balance(PAYER, "devnet", MINT) == 0


@pytest.mark.parametrize("amount", [-1, 1.5, True])
def test_rejects_invalid_amounts(db_session, amount) -> None:
    ledger = BudgetLedger(db_session)
    with pytest.raises(ValidationError):
        ledger.try_debit(PAYER, "devnet", MINT, amount)


def test_rejects_unknown_network(db_session) -> None:
    ledger = BudgetLedger(db_session)
    with pytest.raises(ValidationError):
        ledger.credit(PAYER, "testnet", MINT, 1, 6, "USDC", _top_up(signature_for("x"), 1))


def test_record_transfer_is_idempotent(db_session) -> None:
    ledger = BudgetLedger(db_session)
    draft = _top_up(signature_for("log"), 42)
    assert ledger.record_transfer(draft)
    assert ledger.record_transfer(draft) is False
    assert ledger.has_transfer(draft.signature_id)
    stored = ledger.get_transfer(draft.signature_id)
    assert stored is not None and stored.amount == 42


def test_concurrent_debits_never_overdraw(session_factory) -> None:
    setup = session_factory()
    _credit(BudgetLedger(setup), 500_000)
    setup.close()

    def _spend(_: int) -> bool:
        session = session_factory()
        try:
            return BudgetLedger(session).try_debit(
                PAYER, "devnet", MINT, 100_000, _metered(100_000)
            )
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=12) as pool:
        results = list(pool.map(_spend, range(12)))

    check = session_factory()
    try:
        ledger = BudgetLedger(check)
        assert results.count(True) == 5
        assert ledger.get_balance(PAYER, "devnet", MINT) == 0
        assert len(ledger.list_transfers(PAYER, kind=TransferKind.METERED_ACCESS)) == 5
    finally:
        check.close()


def test_stats_aggregate_by_kind(db_session) -> None:
    ledger = BudgetLedger(db_session)
    _credit(ledger, 1_000_000)
    ledger.try_debit(PAYER, "devnet", MINT, 100_000, _metered(100_000))

    stats = ledger.stats()

    assert stats.accounts == 1
    assert stats.total_balance == 900_000
    assert stats.transfers_by_kind == {"top-up": 1, "metered-access": 1}
    assert stats.volume_by_kind["top-up"] == 1_000_000
