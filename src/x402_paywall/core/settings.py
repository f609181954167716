# src/x402_paywall/core/settings.py
"""Application settings and configuration.

This module defines all configuration options for the x402 paywall service.
Settings are loaded from environment variables with sensible defaults.
"""

from decimal import Decimal
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

SolanaNetwork = Literal["mainnet-beta", "devnet"]


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="x402 Paywall", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database configuration
    database_url: str = Field(default="sqlite:///./storage.sqlite", alias="DATABASE_URL")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")
    sqlite_busy_timeout_seconds: float = Field(default=15.0, alias="SQLITE_BUSY_TIMEOUT_SECONDS")

    # Ledger network
    solana_network: SolanaNetwork = Field(default="devnet", alias="SOLANA_NETWORK")
    solana_rpc_url: str | None = Field(default=None, alias="SOLANA_RPC_URL")
    memo_program_id: str = Field(
        default="MemoSq4gqABAXKb96qnH8TysNcWxMyWCqXgDLGmfcHr",
        alias="MEMO_PROGRAM_ID",
    )
    ledger_http_timeout_seconds: float = Field(default=10.0, alias="LEDGER_HTTP_TIMEOUT_SECONDS")
    # Commitment levels walked in order when fetching a transaction. Only a hit
    # at "finalized" is trusted; other levels only distinguish lag from absence.
    ledger_commitments: list[str] = Field(
        default=["finalized", "confirmed", "finalized"],
        alias="LEDGER_COMMITMENTS",
    )
    ledger_failure_threshold: int = Field(default=5, alias="LEDGER_FAILURE_THRESHOLD")
    ledger_recovery_seconds: float = Field(default=30.0, alias="LEDGER_RECOVERY_SECONDS")

    # Payment target
    spl_token_mint: str = Field(
        default="4zMMC9srt5Ri5X14GAgXhaHii3GnPAEERYPJgZJDncDU",
        alias="SPL_TOKEN_MINT",
    )
    token_symbol: str = Field(default="USDC", alias="TOKEN_SYMBOL")
    recipient_wallet: str | None = Field(default=None, alias="MY_WALLET_ADDRESS")
    payment_description: str = Field(default="CMS Article Access", alias="PAYMENT_DESCRIPTION")

    # Pricing
    article_cost: Decimal = Field(default=Decimal("0.10"), alias="DEFAULT_ARTICLE_COST")
    budget_deposit_minimum: Decimal = Field(default=Decimal("0.50"), alias="BUDGET_DEPOSIT_MINIMUM")
    budget_deposit_maximum: Decimal = Field(
        default=Decimal("1000.00"),
        alias="BUDGET_DEPOSIT_MAXIMUM",
    )
    currency_symbol: str = Field(default="$", alias="CURRENCY_SYMBOL")
    currency_name: str = Field(default="USDC", alias="CURRENCY_NAME")

    # Content
    articles_path: str = Field(default="./articles", alias="ARTICLES_PATH")

    # Reference claim hygiene windows
    topup_reference_ttl_seconds: int = Field(default=3600, alias="TOPUP_REFERENCE_TTL_SECONDS")
    access_reference_ttl_seconds: int = Field(default=300, alias="ACCESS_REFERENCE_TTL_SECONDS")
    reference_purge_grace_seconds: int = Field(
        default=7 * 24 * 3600,
        alias="REFERENCE_PURGE_GRACE_SECONDS",
    )
    reference_purge_interval_seconds: float = Field(
        default=3600.0,
        alias="REFERENCE_PURGE_INTERVAL_SECONDS",
    )

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["http://localhost:3000"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def effective_rpc_url(self) -> str:
        """Return the JSON-RPC endpoint for the configured network.

        Returns:
            Explicit ``SOLANA_RPC_URL`` if set, otherwise the public cluster endpoint
        """
        if self.solana_rpc_url:
            return self.solana_rpc_url
        return f"https://api.{self.solana_network}.solana.com"

    @property
    def is_sqlite(self) -> bool:
        """Return True when the configured store is SQLite."""
        return self.database_url.startswith("sqlite")


settings = Settings()
