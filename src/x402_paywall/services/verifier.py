# src/x402_paywall/services/verifier.py
"""Validation of a claimed on-chain payment against an expected invoice."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from x402_paywall.core.amounts import DisplayAmount, parse_amount, to_smallest_unit
from x402_paywall.core.errors import DenialReason, PaywallError
from x402_paywall.core.validation import require_address, require_reference, require_signature
from x402_paywall.services.ledger_client import LedgerNode, LookupStatus, RawTransaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of verifying one transaction."""

    success: bool
    received_amount: int | None = None
    token_decimals: int | None = None
    payer: str | None = None
    error_reason: DenialReason | None = None
    detail: str | None = None

    @classmethod
    def denied(cls, reason: DenialReason, detail: str) -> VerificationResult:
        return cls(success=False, error_reason=reason, detail=detail)


def received_by(transaction: RawTransaction, recipient: str, token_mint: str) -> int:
    """Return how many smallest units of ``token_mint`` reached ``recipient``.

    Uses the post/pre token balance delta. A payer paying themselves shows no
    delta, so in that case the SPL transfer instructions into the recipient's
    token accounts are summed instead.
    """
    delta = transaction.token_balance(recipient, token_mint, post=True) - transaction.token_balance(
        recipient, token_mint, post=False
    )
    if delta != 0:
        return max(delta, 0)

    total = 0
    for transfer in transaction.transfers:
        owner, account_mint = transaction.owner_of(transfer.destination)
        if owner != recipient:
            continue
        mint = transfer.mint or account_mint
        if mint is not None and mint != token_mint:
            continue
        total += transfer.amount
    return total


class TransactionVerifier:
    """Checks that a finalized transaction pays the expected amount for a reference."""

    def __init__(self, ledger: LedgerNode) -> None:
        self.ledger = ledger

    async def verify(
        self,
        transaction_id: str,
        expected_reference: str,
        expected_amount: DisplayAmount,
        token_mint: str,
        recipient: str,
    ) -> VerificationResult:
        """Verify ``transaction_id``; never raises, failures come back tagged."""
        try:
            return await self._verify(
                transaction_id, expected_reference, expected_amount, token_mint, recipient
            )
        except PaywallError as exc:
            logger.info("Verification of %s denied: %s", transaction_id, exc)
            return VerificationResult.denied(exc.reason, str(exc))

    async def _verify(
        self,
        transaction_id: str,
        expected_reference: str,
        expected_amount: DisplayAmount,
        token_mint: str,
        recipient: str,
    ) -> VerificationResult:
        require_signature(transaction_id)
        require_reference(expected_reference)
        require_address(token_mint, "token_mint")
        require_address(recipient, "recipient")
        amount: Decimal = parse_amount(expected_amount)

        lookup = await self.ledger.get_finalized_transaction(transaction_id)
        if lookup.status is LookupStatus.NOT_FOUND:
            return VerificationResult.denied(DenialReason.NOT_FOUND, "Transaction not found")
        if lookup.status is not LookupStatus.FOUND or lookup.transaction is None:
            # PENDING lands here too: only finalized transactions count.
            return VerificationResult.denied(
                DenialReason.UNAVAILABLE, lookup.detail or "Ledger unavailable"
            )

        transaction = lookup.transaction
        if transaction.failed:
            return VerificationResult.denied(DenialReason.FAILED, "Transaction failed on chain")

        if transaction.memo is None:
            return VerificationResult.denied(
                DenialReason.REFERENCE_MISMATCH, "Transaction carries no memo"
            )
        if transaction.memo != expected_reference:
            logger.info(
                "Memo mismatch for %s: expected %s, got %r",
                transaction_id,
                expected_reference,
                transaction.memo,
            )
            return VerificationResult.denied(
                DenialReason.REFERENCE_MISMATCH, "Transaction memo does not match reference"
            )

        received = received_by(transaction, recipient, token_mint)

        decimals_lookup = await self.ledger.get_token_decimals(token_mint)
        if decimals_lookup.status is not LookupStatus.FOUND or decimals_lookup.decimals is None:
            return VerificationResult.denied(
                DenialReason.UNAVAILABLE, decimals_lookup.detail or "Token decimals unavailable"
            )
        decimals = decimals_lookup.decimals
        required = to_smallest_unit(amount, decimals)

        if received < required:
            logger.info(
                "Insufficient payment in %s: received %d, required %d",
                transaction_id,
                received,
                required,
            )
            return VerificationResult(
                success=False,
                received_amount=received,
                token_decimals=decimals,
                payer=transaction.fee_payer,
                error_reason=DenialReason.INSUFFICIENT_AMOUNT,
                detail=f"Received {received}, required {required}",
            )

        logger.info("Verified %s: %d units of %s to %s", transaction_id, received, token_mint, recipient)
        return VerificationResult(
            success=True,
            received_amount=received,
            token_decimals=decimals,
            payer=transaction.fee_payer,
        )
