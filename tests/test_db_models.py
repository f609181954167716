# tests/test_db_models.py
import pytest
from sqlalchemy import inspect
from sqlalchemy.exc import IntegrityError

from conftest import MINT, PAYER
from x402_paywall.db.time import utcnow
from x402_paywall.models import BudgetBalance


def test_tables_exist(engine) -> None:
    tables = set(inspect(engine).get_table_names())
    assert {"transfers", "budget_balances", "claimed_references"} <= tables


def _balance(**overrides) -> BudgetBalance:
    values = {
        "account": PAYER,
        "network": "devnet",
        "token_mint": MINT,
        "amount": 0,
        "token_decimals": 6,
        "token_symbol": "USDC",
        "created_at": utcnow(),
        "updated_at": utcnow(),
    }
    values.update(overrides)
    return BudgetBalance(**values)


def test_balance_cannot_go_negative(db_session) -> None:
    db_session.add(_balance(amount=-1))
    with pytest.raises(IntegrityError):
        db_session.commit()
    db_session.rollback()


def test_network_is_constrained(db_session) -> None:
    db_session.add(_balance(network="testnet"))
    with pytest.raises(IntegrityError):
        db_session.commit()
    db_session.rollback()


def test_balance_key_is_unique(db_session) -> None:
    db_session.add(_balance())
    db_session.commit()
    db_session.add(_balance())
    with pytest.raises(IntegrityError):
        db_session.commit()
    db_session.rollback()
