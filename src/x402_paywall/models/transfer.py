# src/x402_paywall/models/transfer.py
"""Append-only transfer log."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from sqlalchemy import BigInteger, CheckConstraint, DateTime, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from x402_paywall.db.session import Base
from x402_paywall.db.time import utcnow


class TransferKind(StrEnum):
    """Accounting category of a transfer record."""

    TOP_UP = "top-up"
    METERED_ACCESS = "metered-access"
    ONE_TIME_ACCESS = "one-time-access"


NETWORKS = ("mainnet-beta", "devnet")


class Transfer(Base):
    """A settled movement of value, keyed by the ledger signature.

    On-chain transfers use the transaction signature; budget-funded accesses
    use a generated ``budget-`` identifier. The primary key makes inserting
    the same settled transaction twice impossible. Rows are never updated.
    """

    __tablename__ = "transfers"
    __table_args__ = (
        CheckConstraint(
            "kind IN ('top-up', 'metered-access', 'one-time-access')",
            name="ck_transfers_kind",
        ),
        CheckConstraint("network IN ('mainnet-beta', 'devnet')", name="ck_transfers_network"),
        CheckConstraint("amount >= 0", name="ck_transfers_amount_non_negative"),
        Index("ix_transfers_from_account", "from_account"),
        Index("ix_transfers_to_account", "to_account"),
        Index("ix_transfers_kind", "kind"),
        Index("ix_transfers_created_at", "created_at"),
    )

    signature_id: Mapped[str] = mapped_column(Text, primary_key=True)
    kind: Mapped[str] = mapped_column(Text, nullable=False)
    resource_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    from_account: Mapped[str] = mapped_column(Text, nullable=False)
    to_account: Mapped[str] = mapped_column(Text, nullable=False)
    network: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    token_decimals: Mapped[int] = mapped_column(Integer, nullable=False)
    token_symbol: Mapped[str] = mapped_column(Text, nullable=False)
    token_mint: Mapped[str] = mapped_column(Text, nullable=False)
    correlation_reference: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
