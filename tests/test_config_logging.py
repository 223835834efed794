import json
import logging
from decimal import Decimal

import pydantic
import pytest

from twr_engine.core.config import engine_constants, settings
from twr_engine.core.config.settings import Settings
from twr_engine.core.enums import FillPolicy, FlowAttribution, LogLevel
from twr_engine.core.logging import get_logger
from twr_engine.core.logging.formatters import (
    CompactFormatter,
    JSONFormatter,
    TextFormatter,
    create_formatter,
)


class TestSettings:
    def test_defaults(self):
        config = Settings(_env_file=None)

        assert config.ledger.PAGE_SIZE == 100
        assert config.ledger.MAX_PAGES == 1000
        assert config.aggregation.FILL_POLICY == FillPolicy.NONE
        assert config.aggregation.FLOW_ATTRIBUTION == FlowAttribution.SAME_DAY
        assert config.today.EQUITY_THRESHOLD == Decimal("0.01")
        assert config.today.TWR_THRESHOLD == 0.001
        assert config.rebase.TOLERANCE == 1e-6
        assert config.timezone.zone == "America/New_York"

    def test_nested_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("LEDGER__MAX_PAGES", "5")
        monkeypatch.setenv("AGGREGATION__FILL_POLICY", "forward_fill")
        monkeypatch.setenv("LOGGING__LOG_LEVEL", "debug")

        config = Settings(_env_file=None)

        assert config.ledger.MAX_PAGES == 5
        assert config.aggregation.FILL_POLICY == FillPolicy.FORWARD_FILL
        assert config.logging.LOG_LEVEL == LogLevel.DEBUG

    def test_invalid_values_rejected(self, monkeypatch):
        monkeypatch.setenv("APP__EXCHANGE_TIMEZONE", "Mars/Olympus")
        with pytest.raises(pydantic.ValidationError):
            Settings(_env_file=None)

    def test_page_size_capped_at_feed_maximum(self, monkeypatch):
        monkeypatch.setenv("LEDGER__PAGE_SIZE", "500")
        with pytest.raises(pydantic.ValidationError):
            Settings(_env_file=None)

    def test_proxy_survives_service_imports(self):
        import twr_engine.core.config as config
        import twr_engine.services.performance  # noqa: F401
        from twr_engine.core.config import settings as imported

        assert config.settings.aggregation.FILL_POLICY == FillPolicy.NONE
        assert imported.broker.MAX_CONCURRENT_REQUESTS == 8
        assert imported.today.TIMEOUT_SECONDS == 10.0

    def test_lazy_proxy_reads_current_settings(self):
        assert settings.ledger.PAGE_SIZE == 100
        assert engine_constants.as_dict()["TRADING_DAYS_PER_YEAR"] == 252


def _record(level=logging.INFO, msg="Fetched cash flows", **extra):
    record = logging.LogRecord("twr_engine.ledger", level, __file__, 10, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestFormatters:
    def test_json_formatter_nests_extra_fields(self):
        line = JSONFormatter().format(_record(account_id="a", amount=Decimal("1.5")))
        data = json.loads(line)

        assert data["message"] == "Fetched cash flows"
        assert data["fields"] == {"account_id": "a", "amount": "1.5"}

    def test_json_formatter_includes_error_context(self):
        error_context = {"error_type": "ServerError", "message": "down", "context": {"status": 503}}
        data = json.loads(JSONFormatter().format(_record(logging.ERROR, error_context=error_context)))

        assert data["error"]["type"] == "ServerError"
        assert "fields" not in data

    def test_text_formatter_appends_fields(self):
        line = TextFormatter(use_colors=False).format(_record(pages_fetched=2))
        assert "INFO [twr_engine.ledger] Fetched cash flows | pages_fetched=2" in line

    def test_compact_formatter_marks_error_type(self):
        record = _record(logging.ERROR, "failed", error_context={"error_type": "NetworkError"})
        assert "E " in CompactFormatter().format(record)
        assert "[NetworkError] failed" in CompactFormatter().format(record)

    def test_create_formatter(self):
        assert isinstance(create_formatter("JSON"), JSONFormatter)
        assert isinstance(create_formatter("compact"), CompactFormatter)
        with pytest.raises(ValueError):
            create_formatter("xml")


def test_get_logger_is_cached_and_accepts_fields():
    logger = get_logger("twr_engine.tests")
    assert get_logger("twr_engine.tests") is logger
    logger.info("Computed series", account_id="a", point_count=3)
