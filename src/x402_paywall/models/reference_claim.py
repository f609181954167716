# src/x402_paywall/models/reference_claim.py
"""Models supporting replay protection of payment references."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, Text
from sqlalchemy.orm import Mapped, mapped_column

from x402_paywall.db.session import Base
from x402_paywall.db.time import utcnow


class ReferenceClaim(Base):
    """Record indicating that a payment reference has already been consumed."""

    __tablename__ = "claimed_references"
    __table_args__ = (Index("ix_claimed_references_expires_at", "expires_at"),)

    # reference -> existence means "already consumed".
    reference: Mapped[str] = mapped_column(Text, primary_key=True)
    claimed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    # Hygiene only; is_claimed never looks at it.
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
