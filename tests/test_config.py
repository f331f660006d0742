"""Tests for Settings defaults and validation."""

from __future__ import annotations

from decimal import Decimal

import pytest
from pydantic import ValidationError

from tender_clearinghouse.config import Settings


class TestSettings:
    def test_bidding_defaults(self) -> None:
        settings = Settings(_env_file=None, settlement_mode="simulated", notifier_backend="none")

        assert settings.min_bid_amount == Decimal("50")
        assert settings.enforce_max_bids is False
        assert settings.enforce_bid_deadline is False
        assert settings.settlement_mode == "simulated"
        assert settings.notifier_backend == "none"

    def test_sqlite_detection(self) -> None:
        assert Settings(_env_file=None, database_url="sqlite+aiosqlite:///x.db").is_sqlite
        assert not Settings(_env_file=None, database_url="postgresql+asyncpg://u:p@db/x").is_sqlite

    def test_live_settlement_requires_credentials(self) -> None:
        with pytest.raises(ValidationError, match="CDP"):
            Settings(_env_file=None, settlement_mode="live")

    def test_live_settlement_with_credentials(self) -> None:
        settings = Settings(
            _env_file=None,
            settlement_mode="live",
            cdp_api_key_id="key",
            cdp_api_key_secret="secret",
            cdp_wallet_secret="wallet",
        )
        assert settings.settlement_mode == "live"

    def test_unknown_notifier_backend_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, notifier_backend="kafka")
