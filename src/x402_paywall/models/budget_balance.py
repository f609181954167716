# src/x402_paywall/models/budget_balance.py
"""Pre-funded budget balances."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, DateTime, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from x402_paywall.db.session import Base
from x402_paywall.db.time import utcnow


class BudgetBalance(Base):
    """Custodial balance for one (account, network, token mint).

    Created lazily on the first top-up and never deleted. ``amount`` only
    changes through atomic credit/debit statements, never a blind overwrite.
    """

    __tablename__ = "budget_balances"
    __table_args__ = (
        UniqueConstraint("account", "network", "token_mint", name="uq_budget_balances_key"),
        CheckConstraint("amount >= 0", name="ck_budget_balances_amount_non_negative"),
        CheckConstraint(
            "network IN ('mainnet-beta', 'devnet')",
            name="ck_budget_balances_network",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account: Mapped[str] = mapped_column(Text, nullable=False)
    network: Mapped[str] = mapped_column(Text, nullable=False)
    token_mint: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    token_decimals: Mapped[int] = mapped_column(Integer, nullable=False)
    token_symbol: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
