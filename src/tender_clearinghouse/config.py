"""Application configuration via pydantic-settings.

Reads from .env file or environment variables. All settings are validated
at startup; if a setting is malformed, the app fails fast with a clear
error message.

Usage:
    from tender_clearinghouse.config import get_settings
    settings = get_settings()
    print(settings.database_url)
"""

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the Tender Clearinghouse."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True
    app_log_level: str = "DEBUG"
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    # --- Database (PostgreSQL in deployment, SQLite for local runs) ---
    database_url: str = (
        "postgresql+asyncpg://tenders:tenders_dev"
        "@localhost:5432/tender_clearinghouse"
    )
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_timeout: int = 30
    db_echo_sql: bool = False

    # --- Redis (ledger notices) ---
    redis_url: str = "redis://localhost:6379/0"

    # --- Settlement notifier ---
    notifier_backend: Literal["none", "redis"] = "none"
    notifier_stream: str = "tender-clearinghouse:notices"
    notifier_timeout_seconds: float = Field(default=2.0, gt=0)

    # --- Settlement rail ---
    settlement_mode: Literal["simulated", "live"] = "simulated"
    settlement_timeout_seconds: float = Field(default=30.0, gt=0)
    simulated_confirmation_delay_seconds: float = Field(default=0.0, ge=0)

    # --- Coinbase AgentKit (live settlement only) ---
    cdp_api_key_id: str = ""
    cdp_api_key_secret: str = ""
    cdp_wallet_secret: str = ""
    cdp_network_id: str = "base-sepolia"
    cdp_payer_address: str = ""

    # --- Bidding rules ---
    min_bid_amount: Decimal = Decimal("50")
    enforce_max_bids: bool = False
    enforce_bid_deadline: bool = False

    # --- Concurrency ---
    conflict_retry_attempts: int = Field(default=3, ge=1, le=10)

    @model_validator(mode="after")
    def _live_settlement_needs_credentials(self) -> Settings:
        if self.settlement_mode == "live" and not (
            self.cdp_api_key_id and self.cdp_api_key_secret and self.cdp_wallet_secret
        ):
            raise ValueError("SETTLEMENT_MODE=live requires the CDP_* credentials")
        return self

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings."""
    return Settings()
