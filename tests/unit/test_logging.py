"""Unit tests for logging configuration."""

import json
import logging
from unittest.mock import MagicMock

import pytest
import structlog

from wallet.core.logging import LoggerMixin, get_logger, setup_logging


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)
    structlog.reset_defaults()


def make_settings(level="INFO", fmt="json"):
    settings = MagicMock()
    settings.app.log_level = level
    settings.observability.log_record_format = fmt
    return settings


class TestLoggingSetup:
    """Test logging setup functions."""

    def test_get_logger_returns_structlog_logger(self):
        assert get_logger("test_module") is not None

    @pytest.mark.parametrize("level", ["DEBUG", "INFO", "WARNING", "ERROR"])
    def test_root_level_applied(self, level):
        setup_logging(make_settings(level=level, fmt="console"))
        assert logging.getLogger().level == getattr(logging, level)

    def test_single_root_handler(self):
        setup_logging(make_settings())
        setup_logging(make_settings())
        assert len(logging.getLogger().handlers) == 1

    def test_stdlib_extra_rendered_as_json(self, capsys):
        setup_logging(make_settings())

        logging.getLogger("wallet.test").info(
            "Transaction committed", extra={"transaction_id": "t-1", "balance": "12.30"}
        )

        record = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert record["event"] == "Transaction committed"
        assert record["transaction_id"] == "t-1"
        assert record["balance"] == "12.30"
        assert record["level"] == "info"
        assert record["logger"] == "wallet.test"
        assert "timestamp" in record

    def test_structlog_events_rendered_as_json(self, capsys):
        setup_logging(make_settings())

        get_logger("wallet.fraud").warning("fraud_alert_raised", user_id="u-1")

        record = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert record["event"] == "fraud_alert_raised"
        assert record["user_id"] == "u-1"
        assert record["level"] == "warning"

    def test_level_filters_records(self, capsys):
        setup_logging(make_settings(level="WARNING"))
        logging.getLogger("wallet.test").info("hidden")
        assert "hidden" not in capsys.readouterr().out


class TestLoggerMixin:
    """Test LoggerMixin."""

    def test_logger_mixin_provides_logger_property(self):
        class Component(LoggerMixin):
            pass

        assert Component().logger is not None
