# src/x402_paywall/api/v1/endpoints/budget.py
"""Budget balance and top-up endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, status

from x402_paywall.core.amounts import format_amount
from x402_paywall.core.validation import is_valid_address
from x402_paywall.models.transfer import TransferKind
from x402_paywall.schemas.access import DenialResponse
from x402_paywall.schemas.budget import (
    BalanceOut,
    BudgetResponse,
    DepositConfirmRequest,
    DepositConfirmResponse,
    TransferOut,
)
from x402_paywall.services.budget_ledger import BudgetLedger
from x402_paywall.services.paywall import Denied, DepositRequest

from ..dependencies import OrchestratorDep, PaywallConfigDep, SessionDep, denial_to_http

router = APIRouter(prefix="/budget", tags=["budget"])


def _require_pubkey(pubkey: str) -> str:
    if not is_valid_address(pubkey):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid account address",
        )
    return pubkey


@router.post(
    "/deposit/confirm",
    response_model=DepositConfirmResponse,
    responses={
        status.HTTP_401_UNAUTHORIZED: {"model": DenialResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": DenialResponse},
    },
)
async def confirm_deposit(
    body: DepositConfirmRequest,
    orchestrator: OrchestratorDep,
) -> DepositConfirmResponse:
    """Credit a verified on-chain top-up to the payer's budget."""
    decision = await orchestrator.confirm_deposit(
        DepositRequest(
            signature=body.signature,
            reference=body.reference,
            payer=body.payer_pubkey,
            amount=body.amount,
        )
    )
    if isinstance(decision, Denied):
        raise denial_to_http(decision)
    return DepositConfirmResponse(
        signature=decision.signature,
        deposit_amount=format_amount(decision.amount, decision.token_decimals),
        new_budget=format_amount(decision.new_balance, decision.token_decimals),
        token_decimals=decision.token_decimals,
    )


@router.get("/{pubkey}", response_model=BudgetResponse)
async def get_budget(pubkey: str, db: SessionDep, config: PaywallConfigDep) -> BudgetResponse:
    """Return the account's balances, headlined by the configured token."""
    _require_pubkey(pubkey)
    ledger = BudgetLedger(db)
    balances = ledger.list_balances(pubkey)
    current = next(
        (
            b
            for b in balances
            if b.network == config.network and b.token_mint == config.token_mint
        ),
        None,
    )
    return BudgetResponse(
        pubkey=pubkey,
        network=config.network,
        token_mint=config.token_mint,
        current_budget=format_amount(current.amount, current.token_decimals) if current else "0",
        currency=config.token_symbol,
        balances=[BalanceOut.model_validate(b) for b in balances],
    )


@router.get("/{pubkey}/transfers", response_model=list[TransferOut])
async def get_transfers(
    pubkey: str,
    db: SessionDep,
    kind: TransferKind | None = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
) -> list[TransferOut]:
    """Return transfers sent or received by the account, newest first."""
    _require_pubkey(pubkey)
    transfers = BudgetLedger(db).list_transfers(pubkey, kind=kind, limit=limit)
    return [TransferOut.model_validate(t) for t in transfers]
