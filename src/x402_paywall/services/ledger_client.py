"""Ledger client for the Solana JSON-RPC API.

This module is the only place the paywall talks to the ledger network. It
provides:

- An async HTTP client with a bounded timeout and a circuit breaker
- Transaction lookup walking a list of commitment levels, trusting only
  ``finalized`` results
- Token decimal lookup for an SPL mint
- Parsing of ``jsonParsed`` transactions into ``RawTransaction``

Lookups return tagged results (``TransactionLookup``/``DecimalsLookup``);
transport failures never escape as exceptions.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum, StrEnum
from typing import Any, Protocol

import httpx

from x402_paywall.core.errors import LedgerUnavailableError
from x402_paywall.core.settings import settings

logger = logging.getLogger(__name__)

FINALIZED = "finalized"
TOKEN_PROGRAMS = frozenset({"spl-token", "spl-token-2022"})
TRANSFER_TYPES = frozenset({"transfer", "transferChecked"})
LEGACY_MEMO_PROGRAM_ID = "Memo1UhkJRfHyvLMcVucJwxXeuD728EqVDDwQDxFMNo"

# JSON-RPC error raised for malformed params, e.g. a string that is not a mint.
RPC_INVALID_PARAMS = -32602


class LookupStatus(StrEnum):
    """Outcome of a ledger lookup."""

    FOUND = "found"
    NOT_FOUND = "not_found"
    PENDING = "pending"  # visible at a shallower commitment, not finalized yet
    UNAVAILABLE = "unavailable"


class CircuitState(Enum):
    """Circuit breaker states for fault tolerance."""

    CLOSED = "closed"      # Normal operation - requests allowed
    OPEN = "open"          # Circuit is open - requests blocked
    HALF_OPEN = "half_open"  # Probing whether the node recovered


@dataclass
class CircuitBreaker:
    """Circuit breaker for ledger RPC calls."""

    failure_threshold: int = 5
    recovery_timeout: float = 30.0
    success_threshold: int = 1

    _state: CircuitState = CircuitState.CLOSED
    _failure_count: int = 0
    _success_count: int = 0
    _last_failure_time: float = 0.0

    def is_open(self) -> bool:
        """Check if circuit is open."""
        if self._state == CircuitState.OPEN:
            if time.monotonic() - self._last_failure_time > self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
                self._success_count = 0
            return self._state == CircuitState.OPEN
        return False

    def record_success(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            self._success_count += 1
            if self._success_count >= self.success_threshold:
                self._state = CircuitState.CLOSED
                self._failure_count = 0
        elif self._state == CircuitState.CLOSED:
            self._failure_count = 0

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = time.monotonic()
        if self._state == CircuitState.HALF_OPEN or self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN

    def get_state(self) -> CircuitState:
        return self._state


@dataclass(frozen=True)
class LedgerConfig:
    """Immutable configuration for ledger RPC access."""

    rpc_url: str
    timeout_seconds: float
    commitments: tuple[str, ...]
    memo_program_id: str
    failure_threshold: int
    recovery_seconds: float


def load_ledger_config() -> LedgerConfig:
    """Build configuration object from global settings."""
    return LedgerConfig(
        rpc_url=settings.effective_rpc_url,
        timeout_seconds=float(settings.ledger_http_timeout_seconds),
        commitments=tuple(settings.ledger_commitments) or (FINALIZED,),
        memo_program_id=settings.memo_program_id,
        failure_threshold=settings.ledger_failure_threshold,
        recovery_seconds=float(settings.ledger_recovery_seconds),
    )


@dataclass(frozen=True)
class TokenBalance:
    """Token account balance snapshot taken before or after a transaction."""

    account_index: int
    mint: str
    owner: str | None
    amount: int


@dataclass(frozen=True)
class TokenTransfer:
    """An SPL token ``transfer``/``transferChecked`` instruction."""

    source: str | None
    destination: str | None
    amount: int
    mint: str | None = None


@dataclass(frozen=True)
class RawTransaction:
    """The parts of a ledger transaction the verifier needs."""

    signature: str
    commitment: str
    error: Any
    account_keys: tuple[str, ...]
    memos: tuple[str, ...]
    pre_token_balances: tuple[TokenBalance, ...]
    post_token_balances: tuple[TokenBalance, ...]
    transfers: tuple[TokenTransfer, ...]

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def fee_payer(self) -> str | None:
        return self.account_keys[0] if self.account_keys else None

    @property
    def memo(self) -> str | None:
        """Return the first memo attached to the transaction, if any."""
        return self.memos[0] if self.memos else None

    def token_balance(self, owner: str, mint: str, *, post: bool) -> int:
        """Sum the balances of ``owner``'s token accounts for ``mint``."""
        balances = self.post_token_balances if post else self.pre_token_balances
        return sum(b.amount for b in balances if b.owner == owner and b.mint == mint)

    def owner_of(self, token_account: str | None) -> tuple[str | None, str | None]:
        """Return ``(owner, mint)`` of a token account touched by this transaction."""
        if token_account is None:
            return None, None
        for balance in itertools.chain(self.post_token_balances, self.pre_token_balances):
            if balance.account_index < len(self.account_keys) and (
                self.account_keys[balance.account_index] == token_account
            ):
                return balance.owner, balance.mint
        return None, None

    @classmethod
    def from_rpc(
        cls,
        signature: str,
        payload: Mapping[str, Any],
        *,
        commitment: str,
        memo_program_id: str,
    ) -> RawTransaction:
        """Build from a ``getTransaction`` result in ``jsonParsed`` encoding.

        Raises:
            ValueError: If the payload does not have the expected shape.
        """
        try:
            meta = payload.get("meta") or {}
            message = payload["transaction"]["message"]
            account_keys = tuple(_account_key(key) for key in message.get("accountKeys", []))
            memos: list[str] = []
            transfers: list[TokenTransfer] = []
            for instruction in message.get("instructions", []):
                if _is_memo(instruction, memo_program_id):
                    memo = _memo_text(instruction.get("parsed"))
                    if memo is not None:
                        memos.append(memo)
                    continue
                transfer = _token_transfer(instruction)
                if transfer is not None:
                    transfers.append(transfer)
            return cls(
                signature=signature,
                commitment=commitment,
                error=meta.get("err"),
                account_keys=account_keys,
                memos=tuple(memos),
                pre_token_balances=_token_balances(meta.get("preTokenBalances")),
                post_token_balances=_token_balances(meta.get("postTokenBalances")),
                transfers=tuple(transfers),
            )
        except (KeyError, TypeError, AttributeError) as exc:
            raise ValueError(f"Malformed transaction payload for {signature}") from exc


def _account_key(key: Any) -> str:
    if isinstance(key, Mapping):
        return str(key["pubkey"])
    return str(key)


def _is_memo(instruction: Mapping[str, Any], memo_program_id: str) -> bool:
    program_id = instruction.get("programId")
    return (
        instruction.get("program") == "spl-memo"
        or program_id == memo_program_id
        or program_id == LEGACY_MEMO_PROGRAM_ID
    )


def _memo_text(parsed: Any) -> str | None:
    if isinstance(parsed, str):
        return parsed
    if isinstance(parsed, Mapping):
        info = parsed.get("info")
        if isinstance(info, Mapping) and isinstance(info.get("memo"), str):
            return info["memo"]
    return None


def _token_transfer(instruction: Mapping[str, Any]) -> TokenTransfer | None:
    if instruction.get("program") not in TOKEN_PROGRAMS:
        return None
    parsed = instruction.get("parsed")
    if not isinstance(parsed, Mapping) or parsed.get("type") not in TRANSFER_TYPES:
        return None
    info = parsed.get("info") or {}
    raw_amount = info.get("amount")
    if raw_amount is None:
        raw_amount = (info.get("tokenAmount") or {}).get("amount")
    if raw_amount is None:
        return None
    return TokenTransfer(
        source=info.get("source"),
        destination=info.get("destination"),
        amount=int(raw_amount),
        mint=info.get("mint"),
    )


def _token_balances(entries: Sequence[Mapping[str, Any]] | None) -> tuple[TokenBalance, ...]:
    balances = []
    for entry in entries or ():
        ui_amount = entry.get("uiTokenAmount") or {}
        balances.append(
            TokenBalance(
                account_index=int(entry["accountIndex"]),
                mint=str(entry["mint"]),
                owner=entry.get("owner"),
                amount=int(ui_amount.get("amount") or 0),
            )
        )
    return tuple(balances)


@dataclass(frozen=True)
class TransactionLookup:
    """Tagged result of a transaction fetch."""

    status: LookupStatus
    transaction: RawTransaction | None = None
    detail: str | None = None


@dataclass(frozen=True)
class DecimalsLookup:
    """Tagged result of a token decimals fetch."""

    status: LookupStatus
    decimals: int | None = None
    detail: str | None = None


class LedgerNode(Protocol):
    """What the paywall needs from the ledger network."""

    async def get_finalized_transaction(self, signature: str) -> TransactionLookup: ...

    async def get_token_decimals(self, token_mint: str) -> DecimalsLookup: ...


class RpcError(RuntimeError):
    """JSON-RPC error object returned by the node."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(f"RPC error {code}: {message}")
        self.code = code


@dataclass
class SolanaLedgerClient:
    """HTTP client wrapper for Solana JSON-RPC."""

    config: LedgerConfig = field(default_factory=load_ledger_config)
    transport: httpx.AsyncBaseTransport | None = None

    def __post_init__(self) -> None:
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()
        self._circuit_breaker = CircuitBreaker(
            failure_threshold=self.config.failure_threshold,
            recovery_timeout=self.config.recovery_seconds,
        )
        self._ids = itertools.count(1)

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    timeout=httpx.Timeout(self.config.timeout_seconds),
                    transport=self.transport,
                )
        return self._client

    async def _rpc(self, method: str, params: list[Any]) -> Any:
        """Call ``method`` and return its ``result``.

        Raises:
            LedgerUnavailableError: On timeouts, transport errors, 5xx, open circuit.
            RpcError: When the node answers with a JSON-RPC error object.
        """
        if self._circuit_breaker.is_open():
            raise LedgerUnavailableError("Ledger circuit breaker is open - node unavailable")

        client = await self._ensure_client()
        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            response = await client.post(self.config.rpc_url, json=body)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            self._circuit_breaker.record_failure()
            raise LedgerUnavailableError(f"Ledger request {method} failed: {exc}") from exc

        if not isinstance(payload, dict):
            self._circuit_breaker.record_failure()
            raise LedgerUnavailableError(f"Ledger request {method} returned a non-object body")

        error = payload.get("error")
        if error:
            code = error.get("code", 0) if isinstance(error, Mapping) else None
            try:
                code = int(code)
            except (TypeError, ValueError):
                self._circuit_breaker.record_failure()
                raise LedgerUnavailableError(
                    f"Ledger request {method} returned a malformed error: {error!r}"
                ) from None
            self._circuit_breaker.record_success()
            raise RpcError(code, str(error.get("message", "")))
        self._circuit_breaker.record_success()
        return payload.get("result")

    async def get_finalized_transaction(self, signature: str) -> TransactionLookup:
        """Fetch ``signature``, walking the configured commitment levels.

        A transaction seen only below ``finalized`` yields ``PENDING`` so the
        caller can retry later; any transport failure without a conclusive
        answer yields ``UNAVAILABLE``.
        """
        seen_pending = False
        failures: list[str] = []
        for commitment in self.config.commitments:
            try:
                result = await self._rpc(
                    "getTransaction",
                    [
                        signature,
                        {
                            "commitment": commitment,
                            "encoding": "jsonParsed",
                            "maxSupportedTransactionVersion": 0,
                        },
                    ],
                )
            except LedgerUnavailableError as exc:
                logger.warning("Transaction fetch failed at %s for %s: %s", commitment, signature, exc)
                failures.append(str(exc))
                continue
            except RpcError as exc:
                if exc.code == RPC_INVALID_PARAMS:
                    return TransactionLookup(LookupStatus.NOT_FOUND, detail=str(exc))
                logger.warning("Node rejected transaction fetch for %s: %s", signature, exc)
                failures.append(str(exc))
                continue

            if result is None:
                logger.debug("Transaction %s not visible at %s", signature, commitment)
                continue
            if commitment != FINALIZED:
                seen_pending = True
                continue
            try:
                transaction = RawTransaction.from_rpc(
                    signature,
                    result,
                    commitment=commitment,
                    memo_program_id=self.config.memo_program_id,
                )
            except ValueError as exc:
                logger.error("Could not parse transaction %s: %s", signature, exc)
                return TransactionLookup(LookupStatus.UNAVAILABLE, detail=str(exc))
            return TransactionLookup(LookupStatus.FOUND, transaction=transaction)

        if seen_pending:
            return TransactionLookup(LookupStatus.PENDING, detail="Transaction not finalized yet")
        if failures:
            return TransactionLookup(LookupStatus.UNAVAILABLE, detail=failures[-1])
        return TransactionLookup(LookupStatus.NOT_FOUND, detail="Transaction not found")

    async def get_token_decimals(self, token_mint: str) -> DecimalsLookup:
        """Return the decimal precision of ``token_mint`` from the ledger."""
        try:
            result = await self._rpc("getTokenSupply", [token_mint, {"commitment": FINALIZED}])
        except LedgerUnavailableError as exc:
            logger.warning("Token decimals lookup failed for %s: %s", token_mint, exc)
            return DecimalsLookup(LookupStatus.UNAVAILABLE, detail=str(exc))
        except RpcError as exc:
            if exc.code == RPC_INVALID_PARAMS:
                return DecimalsLookup(LookupStatus.NOT_FOUND, detail=str(exc))
            return DecimalsLookup(LookupStatus.UNAVAILABLE, detail=str(exc))

        try:
            decimals = int(result["value"]["decimals"])
        except (KeyError, TypeError, ValueError):
            return DecimalsLookup(LookupStatus.UNAVAILABLE, detail="Malformed token supply payload")
        return DecimalsLookup(LookupStatus.FOUND, decimals=decimals)

    async def close(self) -> None:
        """Clean up underlying HTTP client resources."""
        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None


class _LedgerClientSingleton:
    """Singleton wrapper for SolanaLedgerClient."""

    _instance: SolanaLedgerClient | None = None

    @classmethod
    def get_instance(cls) -> SolanaLedgerClient:
        """Get or create the singleton client instance."""
        if cls._instance is None:
            cls._instance = SolanaLedgerClient()
        return cls._instance


def get_ledger_client() -> SolanaLedgerClient:
    """Return a singleton ledger client instance."""
    return _LedgerClientSingleton.get_instance()
