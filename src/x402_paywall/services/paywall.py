# src/x402_paywall/services/paywall.py
"""Access decisions for paywalled resources.

``PaywallOrchestrator.evaluate`` walks one request through

    Unresolved -> BudgetChecked -> Granted | ChallengeIssued
    ChallengeIssued (resubmitted with a proof) -> Granted | Denied

and ``confirm_deposit`` turns a verified on-chain top-up into budget.

No database transaction is held open across a ledger call: reads are
released before awaiting the network, and every write path runs in its own
short transaction.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum
from typing import Any, ClassVar

from sqlalchemy.orm import Session

from x402_paywall.core.amounts import DisplayAmount, parse_amount, to_smallest_unit
from x402_paywall.core.errors import DenialReason, StorageError, ValidationError
from x402_paywall.core.settings import settings
from x402_paywall.core.validation import (
    is_valid_resource_id,
    require_address,
    require_reference,
    require_signature,
)
from x402_paywall.db.session import storage_errors
from x402_paywall.models.transfer import TransferKind
from x402_paywall.services.budget_ledger import BudgetLedger, TransferDraft
from x402_paywall.services.catalog import ContentCatalog
from x402_paywall.services.ledger_client import LedgerNode
from x402_paywall.services.references import ReferenceGuard
from x402_paywall.services.verifier import TransactionVerifier, VerificationResult

logger = logging.getLogger(__name__)

BUDGET_TRANSFER_PREFIX = "budget-"


class AccessState(StrEnum):
    UNRESOLVED = "unresolved"
    BUDGET_CHECKED = "budget_checked"
    GRANTED = "granted"
    CHALLENGE_ISSUED = "challenge_issued"
    DENIED = "denied"


class AccessMethod(StrEnum):
    BUDGET = "budget"
    ONE_TIME = "onetime"


@dataclass(frozen=True)
class PaywallConfig:
    """Where payments go and how references are retained."""

    network: str
    recipient: str
    token_mint: str
    token_symbol: str
    description: str
    deposit_minimum: Decimal
    deposit_maximum: Decimal
    access_reference_ttl_seconds: int = 300
    topup_reference_ttl_seconds: int = 3600


def load_paywall_config() -> PaywallConfig:
    """Build configuration object from global settings."""
    if not settings.recipient_wallet:
        raise RuntimeError("MY_WALLET_ADDRESS is not configured")
    return PaywallConfig(
        network=settings.solana_network,
        recipient=settings.recipient_wallet,
        token_mint=settings.spl_token_mint,
        token_symbol=settings.token_symbol,
        description=settings.payment_description,
        deposit_minimum=settings.budget_deposit_minimum,
        deposit_maximum=settings.budget_deposit_maximum,
        access_reference_ttl_seconds=settings.access_reference_ttl_seconds,
        topup_reference_ttl_seconds=settings.topup_reference_ttl_seconds,
    )


@dataclass(frozen=True)
class Invoice:
    """Payment challenge returned with HTTP 402. Never persisted."""

    recipient: str
    amount: Decimal
    token_mint: str
    reference: str
    description: str
    network: str
    protocol: str = "x402"

    def to_wire(self) -> dict[str, Any]:
        # Amount travels as a decimal string so no precision is lost.
        return {
            "protocol": self.protocol,
            "recipient": self.recipient,
            "amount": str(self.amount),
            "tokenMint": self.token_mint,
            "reference": self.reference,
            "description": self.description,
            "network": self.network,
        }


@dataclass(frozen=True)
class AccessRequest:
    resource_id: str
    account: str | None = None
    transaction_id: str | None = None
    reference: str | None = None

    @property
    def has_proof(self) -> bool:
        return bool(self.transaction_id or self.reference)


@dataclass(frozen=True)
class DepositRequest:
    signature: str
    reference: str
    payer: str
    amount: DisplayAmount


@dataclass(frozen=True)
class Granted:
    state: ClassVar[AccessState] = AccessState.GRANTED

    method: AccessMethod
    resource_id: str
    transfer_id: str
    amount: int
    token_decimals: int
    remaining_balance: int | None = None


@dataclass(frozen=True)
class ChallengeIssued:
    state: ClassVar[AccessState] = AccessState.CHALLENGE_ISSUED

    invoice: Invoice


@dataclass(frozen=True)
class Denied:
    state: ClassVar[AccessState] = AccessState.DENIED

    reason: DenialReason
    detail: str = ""

    @property
    def retryable(self) -> bool:
        return self.reason.retryable


@dataclass(frozen=True)
class Credited:
    signature: str
    amount: int
    new_balance: int
    token_decimals: int


AccessDecision = Granted | ChallengeIssued | Denied
DepositDecision = Credited | Denied


class PaywallOrchestrator:
    """Decides whether a request for a priced resource is served."""

    def __init__(
        self,
        db: Session,
        ledger: LedgerNode,
        catalog: ContentCatalog,
        config: PaywallConfig | None = None,
    ) -> None:
        self.db = db
        self.catalog = catalog
        self.config = config or load_paywall_config()
        self.verifier = TransactionVerifier(ledger)
        self.references = ReferenceGuard(db)
        self.budget = BudgetLedger(db)

    def _release(self) -> None:
        """End the current read transaction before awaiting the network."""
        self.db.rollback()

    async def evaluate(self, request: AccessRequest) -> AccessDecision:
        """Return Granted, ChallengeIssued or Denied for ``request``."""
        try:
            decision = await self._evaluate(request)
        except ValidationError as exc:
            decision = Denied(DenialReason.VALIDATION_ERROR, str(exc))
        except StorageError:
            decision = Denied(DenialReason.STORAGE_ERROR, "Storage temporarily unavailable")
        logger.info(
            "Access to %s for %s -> %s%s",
            request.resource_id,
            request.account or "anonymous",
            decision.state,
            f" ({decision.reason})" if isinstance(decision, Denied) else "",
        )
        return decision

    async def _evaluate(self, request: AccessRequest) -> AccessDecision:
        logger.debug("Request for %s is %s", request.resource_id, AccessState.UNRESOLVED)
        if not is_valid_resource_id(request.resource_id):
            raise ValidationError("Invalid resource id", field="resource_id")
        if not self.catalog.exists(request.resource_id):
            return Denied(DenialReason.RESOURCE_NOT_FOUND, "Resource not found")
        if request.account is not None:
            require_address(request.account, "account")
        if request.has_proof:
            require_signature(request.transaction_id)
            require_reference(request.reference)

        price = self.catalog.price_of(request.resource_id)

        if request.account is not None:
            granted = self._try_budget(
                request.account, request.resource_id, price.amount, price.token_mint
            )
            if granted is not None:
                return granted
        logger.debug("Request for %s reached %s", request.resource_id, AccessState.BUDGET_CHECKED)

        if request.transaction_id and request.reference:
            return await self._redeem_proof(
                request.transaction_id,
                request.reference,
                request.account,
                request.resource_id,
                price.amount,
                price.token_mint,
            )

        invoice = Invoice(
            recipient=self.config.recipient,
            amount=price.amount,
            token_mint=price.token_mint,
            reference=str(uuid.uuid4()),
            description=self.config.description,
            network=self.config.network,
        )
        logger.info("Issuing challenge %s for %s", invoice.reference, request.resource_id)
        return ChallengeIssued(invoice)

    def _try_budget(
        self, account: str, resource_id: str, amount: Decimal, token_mint: str
    ) -> Granted | None:
        record = self.budget.get_balance_record(account, self.config.network, token_mint)
        if record is None:
            # Never topped up: zero balance, no need to ask the ledger for decimals.
            self._release()
            return None
        decimals = record.token_decimals
        symbol = record.token_symbol
        required = to_smallest_unit(amount, decimals)
        transfer_id = f"{BUDGET_TRANSFER_PREFIX}{uuid.uuid4().hex}"
        debited = self.budget.try_debit(
            account,
            self.config.network,
            token_mint,
            required,
            TransferDraft(
                signature_id=transfer_id,
                kind=TransferKind.METERED_ACCESS,
                from_account=account,
                to_account=self.config.recipient,
                network=self.config.network,
                amount=required,
                token_decimals=decimals,
                token_symbol=symbol,
                token_mint=token_mint,
                resource_id=resource_id,
            ),
        )
        if not debited:
            return None
        remaining = self.budget.get_balance(account, self.config.network, token_mint)
        self._release()
        return Granted(
            method=AccessMethod.BUDGET,
            resource_id=resource_id,
            transfer_id=transfer_id,
            amount=required,
            token_decimals=decimals,
            remaining_balance=remaining,
        )

    def _already_used(self, signature: str, reference: str) -> bool:
        used = self.references.is_claimed(reference) or self.budget.has_transfer(signature)
        self._release()
        return used

    async def _redeem_proof(
        self,
        signature: str,
        reference: str,
        account: str | None,
        resource_id: str,
        amount: Decimal,
        token_mint: str,
    ) -> AccessDecision:
        if self._already_used(signature, reference):
            logger.warning("Replayed proof %s / %s", signature, reference)
            return Denied(DenialReason.REPLAY_ATTACK, "Payment already claimed")

        result = await self.verifier.verify(
            signature, reference, amount, token_mint, self.config.recipient
        )
        if not result.success:
            return self._denied(result)

        payer = account or result.payer or "unknown"
        with storage_errors(self.db):
            if not self.references.claim(
                reference, self.config.access_reference_ttl_seconds, commit=False
            ):
                self.db.rollback()
                return Denied(DenialReason.REPLAY_ATTACK, "Payment already claimed")
            recorded = self.budget.record_transfer(
                TransferDraft(
                    signature_id=signature,
                    kind=TransferKind.ONE_TIME_ACCESS,
                    from_account=payer,
                    to_account=self.config.recipient,
                    network=self.config.network,
                    amount=result.received_amount or 0,
                    token_decimals=result.token_decimals or 0,
                    token_symbol=self.config.token_symbol,
                    token_mint=token_mint,
                    resource_id=resource_id,
                    correlation_reference=reference,
                ),
                commit=False,
            )
            if not recorded:
                self.db.rollback()
                return Denied(DenialReason.REPLAY_ATTACK, "Payment already claimed")
            self.db.commit()

        return Granted(
            method=AccessMethod.ONE_TIME,
            resource_id=resource_id,
            transfer_id=signature,
            amount=result.received_amount or 0,
            token_decimals=result.token_decimals or 0,
        )

    @staticmethod
    def _denied(result: VerificationResult) -> Denied:
        return Denied(result.error_reason or DenialReason.FAILED, result.detail or "")

    async def confirm_deposit(self, request: DepositRequest) -> DepositDecision:
        """Verify an on-chain top-up and credit the payer's budget."""
        try:
            decision = await self._confirm_deposit(request)
        except ValidationError as exc:
            decision = Denied(DenialReason.VALIDATION_ERROR, str(exc))
        except StorageError:
            decision = Denied(DenialReason.STORAGE_ERROR, "Storage temporarily unavailable")
        if isinstance(decision, Denied):
            logger.info("Deposit %s denied: %s", request.signature, decision.reason)
        return decision

    async def _confirm_deposit(self, request: DepositRequest) -> DepositDecision:
        require_signature(request.signature)
        require_reference(request.reference)
        require_address(request.payer, "payer")
        amount = parse_amount(request.amount)
        if amount < self.config.deposit_minimum:
            raise ValidationError(
                f"Minimum deposit amount is {self.config.deposit_minimum}", field="amount"
            )
        if amount > self.config.deposit_maximum:
            raise ValidationError(
                f"Maximum deposit amount is {self.config.deposit_maximum}", field="amount"
            )

        if self._already_used(request.signature, request.reference):
            logger.warning("Replayed deposit %s / %s", request.signature, request.reference)
            return Denied(DenialReason.REPLAY_ATTACK, "This deposit has already been claimed")

        token_mint = self.config.token_mint
        result = await self.verifier.verify(
            request.signature, request.reference, amount, token_mint, self.config.recipient
        )
        if not result.success:
            return self._denied(result)
        if result.payer is not None and result.payer != request.payer:
            return Denied(DenialReason.FAILED, "Transaction was not paid by the depositing account")

        received = result.received_amount or 0
        decimals = result.token_decimals or 0
        with storage_errors(self.db):
            if not self.references.claim(
                request.reference, self.config.topup_reference_ttl_seconds, commit=False
            ):
                self.db.rollback()
                return Denied(DenialReason.REPLAY_ATTACK, "This deposit has already been claimed")
            credited = self.budget.credit(
                request.payer,
                self.config.network,
                token_mint,
                received,
                decimals,
                self.config.token_symbol,
                TransferDraft(
                    signature_id=request.signature,
                    kind=TransferKind.TOP_UP,
                    from_account=request.payer,
                    to_account=self.config.recipient,
                    network=self.config.network,
                    amount=received,
                    token_decimals=decimals,
                    token_symbol=self.config.token_symbol,
                    token_mint=token_mint,
                    correlation_reference=request.reference,
                ),
                commit=False,
            )
            if not credited:
                self.db.rollback()
                return Denied(DenialReason.REPLAY_ATTACK, "This deposit has already been claimed")
            self.db.commit()

        new_balance = self.budget.get_balance(request.payer, self.config.network, token_mint)
        self._release()
        logger.info(
            "Deposit %s credited %d units to %s (balance %d)",
            request.signature,
            received,
            request.payer,
            new_balance,
        )
        return Credited(
            signature=request.signature,
            amount=received,
            new_balance=new_balance,
            token_decimals=decimals,
        )
