# src/x402_paywall/schemas/pricing.py
"""Public pricing information."""

from pydantic import BaseModel


class CurrencyInfo(BaseModel):
    symbol: str
    name: str


class DepositLimits(BaseModel):
    minimum: str
    maximum: str


class PricingResponse(BaseModel):
    article_cost: str
    currency: CurrencyInfo
    deposit: DepositLimits
    token_mint: str
    network: str
