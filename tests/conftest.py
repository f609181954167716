# tests/conftest.py
from __future__ import annotations

import hashlib
import os
import tempfile
from collections.abc import Generator, Iterator
from decimal import Decimal
from pathlib import Path
from typing import Any

import pytest

_TMP_DIR = tempfile.mkdtemp(prefix="x402-paywall-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TMP_DIR}/app.sqlite")
os.environ.setdefault("ARTICLES_PATH", _TMP_DIR)

_B58 = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"


def b58_token(seed: str, length: int) -> str:
    """Deterministic base58 string of ``length`` characters."""
    digest = hashlib.sha256(seed.encode()).digest() * 3
    return "".join(_B58[b % 58] for b in digest)[:length]


RECIPIENT = b58_token("recipient", 44)
PAYER = b58_token("payer", 44)
OTHER_PAYER = b58_token("other-payer", 44)
MINT = "4zMMC9srt5Ri5X14GAgXhaHii3GnPAEERYPJgZJDncDU"
RECIPIENT_ATA = b58_token("recipient-ata", 44)
PAYER_ATA = b58_token("payer-ata", 44)
ARTICLE_ID = "premium-article"

os.environ.setdefault("MY_WALLET_ADDRESS", RECIPIENT)
os.environ.setdefault("SPL_TOKEN_MINT", MINT)

from fastapi import FastAPI  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.engine import Engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402

from x402_paywall.api.v1.dependencies import (  # noqa: E402
    get_catalog_dep,
    get_ledger_dep,
    get_paywall_config_dep,
)
from x402_paywall.db.session import (  # noqa: E402
    build_engine,
    build_sessionmaker,
    create_tables,
    get_db as app_get_session,
)
from x402_paywall.main import app as fastapi_app  # noqa: E402
from x402_paywall.services.catalog import DirectoryContentCatalog  # noqa: E402
from x402_paywall.services.ledger_client import (  # noqa: E402
    DecimalsLookup,
    LookupStatus,
    RawTransaction,
    TokenBalance,
    TokenTransfer,
    TransactionLookup,
)
from x402_paywall.services.paywall import PaywallConfig, PaywallOrchestrator  # noqa: E402


def signature_for(seed: str) -> str:
    return b58_token(f"sig-{seed}", 88)


def make_transaction(
    signature: str,
    *,
    memo: str | None,
    received: int,
    recipient: str = RECIPIENT,
    mint: str = MINT,
    fee_payer: str = PAYER,
    pre_balance: int = 0,
    error: Any = None,
    transfers: tuple[TokenTransfer, ...] = (),
) -> RawTransaction:
    """Build a finalized SPL transfer paying ``received`` units to ``recipient``."""
    return RawTransaction(
        signature=signature,
        commitment="finalized",
        error=error,
        account_keys=(fee_payer, PAYER_ATA, RECIPIENT_ATA, mint),
        memos=() if memo is None else (memo,),
        pre_token_balances=(
            TokenBalance(account_index=2, mint=mint, owner=recipient, amount=pre_balance),
        ),
        post_token_balances=(
            TokenBalance(account_index=2, mint=mint, owner=recipient, amount=pre_balance + received),
        ),
        transfers=transfers,
    )


class FakeLedger:
    """In-memory ledger node with scriptable availability."""

    def __init__(self, decimals: int = 6) -> None:
        self.transactions: dict[str, RawTransaction] = {}
        self.decimals: dict[str, int] = {MINT: decimals}
        self.unavailable = False
        self.transaction_calls = 0
        self.decimals_calls = 0

    def add(self, transaction: RawTransaction) -> RawTransaction:
        self.transactions[transaction.signature] = transaction
        return transaction

    async def get_finalized_transaction(self, signature: str) -> TransactionLookup:
        self.transaction_calls += 1
        if self.unavailable:
            return TransactionLookup(LookupStatus.UNAVAILABLE, detail="timed out")
        transaction = self.transactions.get(signature)
        if transaction is None:
            return TransactionLookup(LookupStatus.NOT_FOUND)
        return TransactionLookup(LookupStatus.FOUND, transaction=transaction)

    async def get_token_decimals(self, token_mint: str) -> DecimalsLookup:
        self.decimals_calls += 1
        if self.unavailable:
            return DecimalsLookup(LookupStatus.UNAVAILABLE, detail="timed out")
        if token_mint not in self.decimals:
            return DecimalsLookup(LookupStatus.NOT_FOUND)
        return DecimalsLookup(LookupStatus.FOUND, decimals=self.decimals[token_mint])


@pytest.fixture()
def engine(tmp_path: Path) -> Generator[Engine, None, None]:
    """File-backed SQLite so every thread gets its own connection."""
    engine = build_engine(f"sqlite:///{tmp_path / 'ledger.sqlite'}")
    create_tables(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return build_sessionmaker(engine)


@pytest.fixture()
def db_session(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture()
def catalog(tmp_path: Path) -> DirectoryContentCatalog:
    articles = tmp_path / "articles"
    articles.mkdir()
    (articles / f"{ARTICLE_ID}.md").write_text("# Premium\n\nPaid words.\n", encoding="utf-8")
    return DirectoryContentCatalog(articles, default_price=Decimal("0.10"), token_mint=MINT)


@pytest.fixture()
def paywall_config() -> PaywallConfig:
    return PaywallConfig(
        network="devnet",
        recipient=RECIPIENT,
        token_mint=MINT,
        token_symbol="USDC",
        description="CMS Article Access",
        deposit_minimum=Decimal("0.50"),
        deposit_maximum=Decimal("1000.00"),
    )


@pytest.fixture()
def orchestrator(
    db_session: Session,
    ledger: FakeLedger,
    catalog: DirectoryContentCatalog,
    paywall_config: PaywallConfig,
) -> PaywallOrchestrator:
    return PaywallOrchestrator(db_session, ledger, catalog, paywall_config)


@pytest.fixture()
def app(
    session_factory: sessionmaker[Session],
    ledger: FakeLedger,
    catalog: DirectoryContentCatalog,
    paywall_config: PaywallConfig,
) -> Iterator[FastAPI]:
    def _get_session_override() -> Generator[Session, None, None]:
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    overrides = {
        app_get_session: _get_session_override,
        get_ledger_dep: lambda: ledger,
        get_catalog_dep: lambda: catalog,
        get_paywall_config_dep: lambda: paywall_config,
    }
    fastapi_app.dependency_overrides.update(overrides)
    try:
        yield fastapi_app
    finally:
        for dependency in overrides:
            fastapi_app.dependency_overrides.pop(dependency, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client
