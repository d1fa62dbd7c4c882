"""
Tests for configuration and structured logging
"""

import json
import logging

from gold_platform.config import GoldPlatformConfig, get_config, reload_config
from gold_platform.logging_config import JSONFormatter, setup_logging, get_logger, log_action


class TestConfig:

    def test_defaults(self):
        cfg = GoldPlatformConfig()
        assert cfg.buy_fee_percent == "2"
        assert cfg.sell_fee_percent == "1.5"
        assert cfg.delivery_base_cost == {"standard": "25", "express": "50", "insured": "75"}
        assert cfg.kyc_expiry_days == 365
        assert cfg.kyc_renewal_window_days == 30
        assert cfg.exchange_rate_url == ""

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("GOLD_BUY_FEE_PERCENT", "2.5")
        monkeypatch.setenv("GOLD_KYC_EXPIRY_DAYS", "180")
        monkeypatch.setenv("GOLD_STORAGE_BACKEND", "memory")
        cfg = GoldPlatformConfig()
        assert cfg.buy_fee_percent == "2.5"
        assert cfg.kyc_expiry_days == 180
        assert cfg.storage_backend == "memory"

    def test_reload_config(self, monkeypatch):
        monkeypatch.setenv("GOLD_API_PORT", "9000")
        cfg = reload_config()
        assert cfg.api_port == 9000
        assert get_config() is cfg
        monkeypatch.delenv("GOLD_API_PORT")
        reload_config()


class TestLogging:

    def test_json_formatter(self):
        record = logging.LogRecord("gold_platform.kyc", logging.INFO, __file__, 1, "KYC approved", None, None)
        record.user_id = "ops-1"
        record.action = "kyc.approved"
        entry = json.loads(JSONFormatter().format(record))

        assert entry["message"] == "KYC approved"
        assert entry["level"] == "INFO"
        assert entry["logger"] == "gold_platform.kyc"
        assert entry["user_id"] == "ops-1"
        assert "correlation_id" not in entry

    def test_setup_logging_replaces_handlers(self):
        logger = setup_logging("DEBUG", logger_name="gold_platform.test")
        logger = setup_logging("WARNING", logger_name="gold_platform.test", log_format="text")
        assert len(logger.handlers) == 1
        assert logger.level == logging.WARNING
        assert get_logger("gold_platform.test") is logger

    def test_log_action_attaches_fields(self, caplog):
        logger = logging.getLogger("gold_platform.test_actions")
        with caplog.at_level(logging.INFO, logger="gold_platform.test_actions"):
            log_action(logger, "info", "quote served", user_id="u1", action="quote.buy",
                       resource="gold", extra={"grams": "10"})

        record = caplog.records[-1]
        assert record.user_id == "u1"
        assert record.action == "quote.buy"
        assert record.resource == "gold"
