# src/x402_paywall/services/budget_ledger.py
"""Budget balances and the append-only transfer log.

Balances change only through two statements:

- credit: ``amount = amount + :delta`` (row inserted on first top-up)
- debit:  ``amount = amount - :a WHERE amount >= :a``

Both run in the same transaction as the transfer record that justifies them,
so a balance never moves without its log entry and vice versa.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from x402_paywall.core.errors import ValidationError
from x402_paywall.db.session import storage_errors
from x402_paywall.db.time import utcnow
from x402_paywall.models.budget_balance import BudgetBalance
from x402_paywall.models.transfer import NETWORKS, Transfer, TransferKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransferDraft:
    """A transfer record waiting to be written."""

    signature_id: str
    kind: TransferKind
    from_account: str
    to_account: str
    network: str
    amount: int
    token_decimals: int
    token_symbol: str
    token_mint: str
    resource_id: str | None = None
    correlation_reference: str | None = None

    def to_values(self) -> dict[str, Any]:
        return {
            "signature_id": self.signature_id,
            "kind": str(self.kind),
            "resource_id": self.resource_id,
            "from_account": self.from_account,
            "to_account": self.to_account,
            "network": self.network,
            "amount": self.amount,
            "token_decimals": self.token_decimals,
            "token_symbol": self.token_symbol,
            "token_mint": self.token_mint,
            "correlation_reference": self.correlation_reference,
            "created_at": utcnow(),
        }


@dataclass
class LedgerStats:
    """Aggregate counters over the ledger tables."""

    accounts: int = 0
    total_balance: int = 0
    transfers_by_kind: dict[str, int] = field(default_factory=dict)
    volume_by_kind: dict[str, int] = field(default_factory=dict)


def _check_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError("Amount must be an integer number of smallest units", field="amount")
    if amount < 0:
        raise ValidationError("Amount must not be negative", field="amount")


def _check_network(network: str) -> None:
    if network not in NETWORKS:
        raise ValidationError(f"Unsupported network: {network}", field="network")


class BudgetLedger:
    """Custodial balances keyed by (account, network, token mint)."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def _balance_key(self, account: str, network: str, token_mint: str) -> tuple[Any, ...]:
        return (
            BudgetBalance.account == account,
            BudgetBalance.network == network,
            BudgetBalance.token_mint == token_mint,
        )

    # --- reads -----------------------------------------------------------------------

    def get_balance_record(
        self, account: str, network: str, token_mint: str
    ) -> BudgetBalance | None:
        with storage_errors(self.db):
            return self.db.scalar(
                select(BudgetBalance)
                .where(*self._balance_key(account, network, token_mint))
                .execution_options(populate_existing=True)
            )

    def get_balance(self, account: str, network: str, token_mint: str) -> int:
        """Return the balance in smallest units, 0 when no row exists."""
        with storage_errors(self.db):
            amount = self.db.scalar(
                select(BudgetBalance.amount).where(*self._balance_key(account, network, token_mint))
            )
        return int(amount or 0)

    def list_balances(self, account: str) -> Sequence[BudgetBalance]:
        with storage_errors(self.db):
            return self.db.scalars(
                select(BudgetBalance)
                .where(BudgetBalance.account == account)
                .order_by(BudgetBalance.network, BudgetBalance.token_mint)
                .execution_options(populate_existing=True)
            ).all()

    def has_transfer(self, signature_id: str) -> bool:
        with storage_errors(self.db):
            found = self.db.scalar(
                select(Transfer.signature_id).where(Transfer.signature_id == signature_id)
            )
        return found is not None

    def get_transfer(self, signature_id: str) -> Transfer | None:
        with storage_errors(self.db):
            return self.db.get(Transfer, signature_id)

    def list_transfers(
        self,
        account: str,
        kind: TransferKind | None = None,
        limit: int = 50,
    ) -> Sequence[Transfer]:
        """Return transfers sent or received by ``account``, newest first."""
        stmt = select(Transfer).where(
            (Transfer.from_account == account) | (Transfer.to_account == account)
        )
        if kind is not None:
            stmt = stmt.where(Transfer.kind == str(kind))
        stmt = stmt.order_by(Transfer.created_at.desc()).limit(max(1, min(limit, 500)))
        with storage_errors(self.db):
            return self.db.scalars(stmt).all()

    def stats(self) -> LedgerStats:
        with storage_errors(self.db):
            accounts, total = self.db.execute(
                select(func.count(BudgetBalance.id), func.coalesce(func.sum(BudgetBalance.amount), 0))
            ).one()
            rows = self.db.execute(
                select(Transfer.kind, func.count(), func.coalesce(func.sum(Transfer.amount), 0))
                .group_by(Transfer.kind)
            ).all()
        return LedgerStats(
            accounts=int(accounts),
            total_balance=int(total),
            transfers_by_kind={kind: int(count) for kind, count, _ in rows},
            volume_by_kind={kind: int(volume) for kind, _, volume in rows},
        )

    # --- writes ----------------------------------------------------------------------

    def _insert_transfer(self, transfer: TransferDraft) -> bool:
        """Insert inside a SAVEPOINT; False when the signature is already recorded."""
        _check_amount(transfer.amount)
        _check_network(transfer.network)
        try:
            with self.db.begin_nested():
                self.db.execute(insert(Transfer).values(**transfer.to_values()))
        except IntegrityError:
            logger.info("Transfer %s already recorded", transfer.signature_id)
            return False
        return True

    def record_transfer(self, transfer: TransferDraft, *, commit: bool = True) -> bool:
        """Append ``transfer`` to the log; a duplicate signature is a no-op returning False."""
        with storage_errors(self.db):
            inserted = self._insert_transfer(transfer)
            if commit:
                if inserted:
                    self.db.commit()
                else:
                    self.db.rollback()
        return inserted

    def credit(
        self,
        account: str,
        network: str,
        token_mint: str,
        amount: int,
        token_decimals: int,
        token_symbol: str,
        transfer: TransferDraft,
        *,
        commit: bool = True,
    ) -> bool:
        """Record ``transfer`` and add ``amount`` to the balance atomically.

        Returns False, crediting nothing, when the transfer was already recorded.
        """
        _check_amount(amount)
        _check_network(network)
        with storage_errors(self.db):
            if not self._insert_transfer(transfer):
                if commit:
                    self.db.rollback()
                return False
            self._add_to_balance(account, network, token_mint, amount, token_decimals, token_symbol)
            if commit:
                self.db.commit()
        logger.info("Credited %d units of %s to %s on %s", amount, token_mint, account, network)
        return True

    def _add_to_balance(
        self,
        account: str,
        network: str,
        token_mint: str,
        amount: int,
        token_decimals: int,
        token_symbol: str,
    ) -> None:
        increment = (
            update(BudgetBalance)
            .where(*self._balance_key(account, network, token_mint))
            .values(amount=BudgetBalance.amount + amount, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if self.db.execute(increment).rowcount:
            return
        now = utcnow()
        try:
            with self.db.begin_nested():
                self.db.execute(
                    insert(BudgetBalance).values(
                        account=account,
                        network=network,
                        token_mint=token_mint,
                        amount=amount,
                        token_decimals=token_decimals,
                        token_symbol=token_symbol,
                        created_at=now,
                        updated_at=now,
                    )
                )
        except IntegrityError:
            # Another writer created the row first.
            self.db.execute(increment)

    def try_debit(
        self,
        account: str,
        network: str,
        token_mint: str,
        amount: int,
        transfer: TransferDraft | None = None,
        *,
        commit: bool = True,
    ) -> bool:
        """Subtract ``amount`` if the balance covers it.

        The guard lives in the UPDATE's WHERE clause, so concurrent debits can
        never drive a balance negative. Returns False with no side effects when
        funds are insufficient or no balance row exists.
        """
        _check_amount(amount)
        with storage_errors(self.db):
            result = self.db.execute(
                update(BudgetBalance)
                .where(
                    *self._balance_key(account, network, token_mint),
                    BudgetBalance.amount >= amount,
                )
                .values(amount=BudgetBalance.amount - amount, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                if commit:
                    self.db.rollback()
                return False
            if transfer is not None and not self._insert_transfer(transfer):
                self.db.rollback()
                return False
            if commit:
                self.db.commit()
        logger.info("Debited %d units of %s from %s on %s", amount, token_mint, account, network)
        return True
