"""Unit tests for cartonprice configuration management.

Tests AppConfig loading from environment variables and defaults.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from cartonprice.config import AppConfig, get_config, reset_config


class TestAppConfig:
    """Test AppConfig creation and validation."""

    def test_from_env_requires_database_url(self, monkeypatch):
        """Test DATABASE_URL is required."""
        monkeypatch.delenv("DATABASE_URL", raising=False)

        with pytest.raises(KeyError) as exc_info:
            AppConfig.from_env()

        assert "DATABASE_URL" in str(exc_info.value)

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("CURRENCY_BANK_URL", raising=False)

        config = AppConfig.from_env()

        assert config.log_level == "INFO"
        assert config.pricing.default_port_of_origin == "Shenzhen Yantian"
        assert config.pricing.default_container_size_cbm == 68
        assert config.pricing.container_sizes_cbm == (33, 57, 68)
        assert config.pricing.default_freight_cost == Decimal("4700")
        assert config.pricing.round_intermediate is True
        assert config.pricing.default_language == "he"
        assert config.currency.bank_url == "https://boi.org.il/PublicApi/GetExchangeRates"
        assert config.currency.rate_margin_percentage == Decimal("5")
        assert config.currency.fetch_enabled is True

    def test_pricing_overrides(self, monkeypatch):
        monkeypatch.setenv("PRICING_CONTAINER_SIZES", "20, 40")
        monkeypatch.setenv("PRICING_DEFAULT_CONTAINER_CBM", "40")
        monkeypatch.setenv("PRICING_ROUND_INTERMEDIATE", "false")
        monkeypatch.setenv("PRICING_DEFAULT_FREIGHT_COST", "3900.50")

        config = AppConfig.from_env()

        assert config.pricing.container_sizes_cbm == (20, 40)
        assert config.pricing.default_container_size_cbm == 40
        assert config.pricing.round_intermediate is False
        assert config.pricing.default_freight_cost == Decimal("3900.50")

    def test_currency_overrides(self, monkeypatch):
        monkeypatch.setenv("CURRENCY_RATE_MARGIN", "3.5")
        monkeypatch.setenv("CURRENCY_FETCH_TIMEOUT", "2.5")
        monkeypatch.setenv("CURRENCY_FETCH_ENABLED", "false")

        config = AppConfig.from_env()

        assert config.currency.rate_margin_percentage == Decimal("3.5")
        assert config.currency.timeout_seconds == 2.5
        assert config.currency.fetch_enabled is False

    def test_json_logs_toggle(self, monkeypatch):
        monkeypatch.setenv("JSON_LOGS", "true")

        assert AppConfig.from_env().log_format == "json"

    def test_get_config_is_cached_until_reset(self, monkeypatch):
        first = get_config()
        monkeypatch.setenv("PRICING_LANGUAGE", "en")

        assert get_config() is first

        reset_config()
        assert get_config().pricing.default_language == "en"
