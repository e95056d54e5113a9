"""
Tests for structured logging and configuration
"""

import json
import logging

import pytest

from bank_onboarding.config import OnboardingConfig, get_config, reload_config
from bank_onboarding.logging_config import JSONFormatter, log_action, setup_logging


class CaptureHandler(logging.Handler):

    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


@pytest.fixture
def capture():
    logger = logging.getLogger("bank_onboarding.test")
    handler = CaptureHandler()
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    yield logger, handler
    logger.removeHandler(handler)


class TestJSONFormatter:

    def test_structured_fields(self, capture):
        logger, handler = capture

        log_action(logger, "warning", "Card issuance failed", identity_id="user-1",
                   action="card_issue_failed", phase="creating_card", attempt_id="attempt-1")

        entry = json.loads(JSONFormatter().format(handler.records[0]))
        assert entry["level"] == "WARNING"
        assert entry["message"] == "Card issuance failed"
        assert entry["identity_id"] == "user-1"
        assert entry["attempt_id"] == "attempt-1"
        assert entry["phase"] == "creating_card"
        assert entry["action"] == "card_issue_failed"
        assert entry["logger"] == "bank_onboarding.test"

    def test_omits_missing_fields(self, capture):
        logger, handler = capture

        logger.info("plain message")

        entry = json.loads(JSONFormatter().format(handler.records[0]))
        assert "identity_id" not in entry
        assert "phase" not in entry

    def test_exception_included(self, capture):
        logger, handler = capture

        try:
            raise ValueError("boom")
        except ValueError:
            logger.exception("failed")

        entry = json.loads(JSONFormatter().format(handler.records[0]))
        assert "ValueError: boom" in entry["exception"]

    def test_log_action_respects_level(self, capture):
        logger, handler = capture
        logger.setLevel(logging.WARNING)

        log_action(logger, "info", "ignored", identity_id="user-1")

        assert handler.records == []


class TestSetupLogging:

    def test_installs_single_json_handler(self):
        logger = setup_logging("DEBUG", logger_name="bank_onboarding.setup_test")
        setup_logging("DEBUG", logger_name="bank_onboarding.setup_test")

        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, JSONFormatter)
        assert logger.level == logging.DEBUG
        logger.handlers.clear()

    def test_file_handler(self, tmp_path):
        path = tmp_path / "onboarding.log"
        logger = setup_logging("INFO", logger_name="bank_onboarding.file_test", log_file=str(path))

        logger.info("written")
        for handler in logger.handlers:
            handler.close()
        logger.handlers.clear()

        assert json.loads(path.read_text().strip())["message"] == "written"


class TestOnboardingConfig:

    def test_defaults(self):
        config = OnboardingConfig(_env_file=None)

        assert config.api_base_url == "http://localhost:8050"
        assert config.request_timeout == 15.0
        assert config.default_account_type == "SAVINGS"
        assert config.storage_backend == "sqlite"
        assert config.recreate_account_on_retry is False
        assert config.api_port == 8060

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("ONBOARDING_API_BASE_URL", "https://bank.example")
        monkeypatch.setenv("ONBOARDING_REQUEST_TIMEOUT", "5")
        monkeypatch.setenv("ONBOARDING_RECREATE_ACCOUNT_ON_RETRY", "true")

        config = reload_config()

        assert config.api_base_url == "https://bank.example"
        assert config.request_timeout == 5.0
        assert config.recreate_account_on_retry is True
        assert get_config() is config

        monkeypatch.undo()
        reload_config()
