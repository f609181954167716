"""create ledger tables

Revision ID: 3b1f6c2a9d04
Revises:
Create Date: 2026-10-19 09:12:41.518342

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3b1f6c2a9d04"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create transfers, budget_balances and claimed_references."""
    op.create_table(
        "transfers",
        sa.Column("signature_id", sa.Text(), nullable=False),
        sa.Column("kind", sa.Text(), nullable=False),
        sa.Column("resource_id", sa.Text(), nullable=True),
        sa.Column("from_account", sa.Text(), nullable=False),
        sa.Column("to_account", sa.Text(), nullable=False),
        sa.Column("network", sa.Text(), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("token_decimals", sa.Integer(), nullable=False),
        sa.Column("token_symbol", sa.Text(), nullable=False),
        sa.Column("token_mint", sa.Text(), nullable=False),
        sa.Column("correlation_reference", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("signature_id"),
        sa.CheckConstraint(
            "kind IN ('top-up', 'metered-access', 'one-time-access')",
            name="ck_transfers_kind",
        ),
        sa.CheckConstraint("network IN ('mainnet-beta', 'devnet')", name="ck_transfers_network"),
        sa.CheckConstraint("amount >= 0", name="ck_transfers_amount_non_negative"),
    )
    op.create_index("ix_transfers_from_account", "transfers", ["from_account"])
    op.create_index("ix_transfers_to_account", "transfers", ["to_account"])
    op.create_index("ix_transfers_kind", "transfers", ["kind"])
    op.create_index("ix_transfers_created_at", "transfers", ["created_at"])

    op.create_table(
        "budget_balances",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("account", sa.Text(), nullable=False),
        sa.Column("network", sa.Text(), nullable=False),
        sa.Column("token_mint", sa.Text(), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("token_decimals", sa.Integer(), nullable=False),
        sa.Column("token_symbol", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("account", "network", "token_mint", name="uq_budget_balances_key"),
        sa.CheckConstraint("amount >= 0", name="ck_budget_balances_amount_non_negative"),
        sa.CheckConstraint(
            "network IN ('mainnet-beta', 'devnet')",
            name="ck_budget_balances_network",
        ),
    )

    op.create_table(
        "claimed_references",
        sa.Column("reference", sa.Text(), nullable=False),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("reference"),
    )
    op.create_index("ix_claimed_references_expires_at", "claimed_references", ["expires_at"])


def downgrade() -> None:
    """Drop the ledger tables."""
    op.drop_index("ix_claimed_references_expires_at", table_name="claimed_references")
    op.drop_table("claimed_references")
    op.drop_table("budget_balances")
    op.drop_index("ix_transfers_created_at", table_name="transfers")
    op.drop_index("ix_transfers_kind", table_name="transfers")
    op.drop_index("ix_transfers_to_account", table_name="transfers")
    op.drop_index("ix_transfers_from_account", table_name="transfers")
    op.drop_table("transfers")
