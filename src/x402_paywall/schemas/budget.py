# src/x402_paywall/schemas/budget.py
"""Budget-related Pydantic schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from x402_paywall.core.amounts import format_amount
from x402_paywall.db.time import as_utc


class DepositConfirmRequest(BaseModel):
    """Body of ``POST /budget/deposit/confirm``."""

    model_config = ConfigDict(populate_by_name=True)

    signature: str = Field(..., min_length=1, description="Top-up transaction signature")
    reference: str = Field(..., min_length=1, description="Reference placed in the memo")
    payer_pubkey: str = Field(..., alias="payerPubkey", min_length=1)
    amount: Decimal = Field(..., gt=0, description="Display amount the payer claims to have sent")


class DepositConfirmResponse(BaseModel):
    success: bool = True
    signature: str
    deposit_amount: str
    new_budget: str
    token_decimals: int


class BalanceOut(BaseModel):
    """One budget balance row."""

    model_config = ConfigDict(from_attributes=True)

    network: str
    token_mint: str
    token_symbol: str
    token_decimals: int
    amount: int = Field(..., description="Balance in smallest units")
    updated_at: datetime

    @field_validator("updated_at")
    @classmethod
    def normalize_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def display_amount(self) -> str:
        return format_amount(self.amount, self.token_decimals)


class BudgetResponse(BaseModel):
    pubkey: str
    network: str
    token_mint: str
    current_budget: str = Field(..., description="Balance for the configured token")
    currency: str
    balances: list[BalanceOut] = Field(default_factory=list)


class TransferOut(BaseModel):
    """A transfer log entry."""

    model_config = ConfigDict(from_attributes=True)

    signature_id: str
    kind: str
    resource_id: str | None = None
    from_account: str
    to_account: str
    network: str
    amount: int
    token_decimals: int
    token_symbol: str
    token_mint: str
    correlation_reference: str | None = None
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def normalize_utc(cls, value: datetime) -> datetime:
        return as_utc(value)
