# src/x402_paywall/schemas/invoice.py
"""Wire shape of the HTTP 402 payment challenge."""

from pydantic import BaseModel, ConfigDict, Field


class InvoiceResponse(BaseModel):
    """Payment challenge returned with status 402."""

    model_config = ConfigDict(populate_by_name=True)

    protocol: str = Field("x402", description="Payment protocol identifier")
    recipient: str = Field(..., description="Account that must receive the payment")
    amount: str = Field(..., description="Display amount as an exact decimal string")
    token_mint: str = Field(..., alias="tokenMint", description="SPL token mint to pay with")
    reference: str = Field(..., description="UUID to place in the transaction memo")
    description: str
    network: str
