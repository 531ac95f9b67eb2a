"""Tests for rolecore.logging module."""

from __future__ import annotations

import json
import logging
import os
from unittest.mock import patch

import pytest

from rolecore import (
    AuthorizerConfig,
    DecisionFormatter,
    LogLevel,
    get_decision_logger,
    redact_secrets,
    safe_log_value,
    safe_preview,
    setup_logging,
)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


def _record(msg: str = "Test message", **attrs) -> logging.LogRecord:
    record = logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="",
        lineno=0,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in attrs.items():
        setattr(record, key, value)
    return record


class TestSafePreview:
    """Tests for safe_preview function."""

    def test_none_value(self) -> None:
        assert safe_preview(None) == ""

    def test_string_with_whitespace(self) -> None:
        """Whitespace is collapsed to a single line."""
        assert safe_preview("hello\n\tworld  test") == "hello world test"

    def test_string_truncation(self) -> None:
        result = safe_preview("a" * 300, limit=100)
        assert len(result) == 100
        assert result.endswith("…")

    def test_claims_mapping(self) -> None:
        result = safe_preview({"groups": ["admin"], "sub": "u-1"})
        assert json.loads(result) == {"groups": ["admin"], "sub": "u-1"}

    def test_set_is_sorted(self) -> None:
        assert safe_preview(frozenset({"b", "a"})) == '["a", "b"]'


class TestRedactSecrets:
    """Tests for redact_secrets function."""

    def test_password_pattern(self) -> None:
        result = redact_secrets('password: "secret123"')
        assert "[REDACTED]" in result
        assert "secret123" not in result

    def test_bearer_token(self) -> None:
        result = redact_secrets("Authorization: Bearer abc123def456")
        assert "abc123def456" not in result

    def test_no_secrets(self) -> None:
        text = "Permission check denied: missing=['posts.delete']"
        assert redact_secrets(text) == text

    def test_custom_replacement(self) -> None:
        assert "[HIDDEN]" in redact_secrets("token=abc", replacement="[HIDDEN]")

    def test_non_string_passthrough(self) -> None:
        assert redact_secrets(None) is None  # type: ignore[arg-type]


class TestSafeLogValue:
    """Tests for safe_log_value function."""

    def test_with_redaction(self) -> None:
        assert "[REDACTED]" in safe_log_value({"token": "token=abc"}, redact=True)

    def test_without_redaction(self) -> None:
        assert "token=abc" in safe_log_value("token=abc", redact=False)

    def test_truncation(self) -> None:
        assert len(safe_log_value("x" * 500, limit=100)) <= 100


class TestSetupLogging:
    """Tests for setup_logging function."""

    def test_setup_with_config(self, restore_root_logger: logging.Logger) -> None:
        setup_logging(config=AuthorizerConfig(log_level=LogLevel.DEBUG), json_format=False)
        assert restore_root_logger.level == logging.DEBUG
        assert len(restore_root_logger.handlers) == 1

    @patch.dict(os.environ, {"LOG_LEVEL": "WARNING"}, clear=True)
    def test_setup_with_env(self, restore_root_logger: logging.Logger) -> None:
        setup_logging(json_format=False)
        assert restore_root_logger.level == logging.WARNING

    def test_json_from_config(self, restore_root_logger: logging.Logger) -> None:
        setup_logging(config=AuthorizerConfig(log_json=True))
        formatter = restore_root_logger.handlers[0].formatter
        assert isinstance(formatter, DecisionFormatter)
        assert formatter.json_format is True

    def test_json_format(self, capsys: pytest.CaptureFixture, restore_root_logger: logging.Logger) -> None:
        setup_logging(config=AuthorizerConfig(), json_format=True)

        logging.getLogger("test").info("Test message")

        data = json.loads(capsys.readouterr().err.strip())
        assert data["level"] == "INFO"
        assert data["message"] == "Test message"
        assert data["logger"] == "test"

    def test_plain_format(self, capsys: pytest.CaptureFixture, restore_root_logger: logging.Logger) -> None:
        setup_logging(config=AuthorizerConfig(), json_format=False)

        logging.getLogger("test").info("Test message")

        output = capsys.readouterr().err.strip()
        assert "INFO" in output
        assert "Test message" in output
        assert not output.startswith("{")


class TestDecisionFormatter:
    """Tests for DecisionFormatter."""

    def test_json_format(self) -> None:
        formatter = DecisionFormatter(json_format=True)
        data = json.loads(formatter.format(_record(request_id="req-1", decision="deny")))
        assert data["request_id"] == "req-1"
        assert data["decision"] == "deny"
        assert data["message"] == "Test message"

    def test_extra_fields_previewed(self) -> None:
        formatter = DecisionFormatter(json_format=True)
        data = json.loads(formatter.format(_record(claims={"groups": ["admin"]})))
        assert json.loads(data["claims"]) == {"groups": ["admin"]}

    def test_request_id_can_be_omitted(self) -> None:
        formatter = DecisionFormatter(include_request_id=False, json_format=True)
        data = json.loads(formatter.format(_record(request_id="req-1")))
        assert "request_id" not in data

    def test_plain_format(self) -> None:
        formatter = DecisionFormatter(json_format=False)
        result = formatter.format(_record(request_id="req-1", decision="allow"))
        assert "request_id=req-1" in result
        assert "decision=allow" in result
        assert result.endswith(": Test message")

    def test_message_redacted(self) -> None:
        formatter = DecisionFormatter(json_format=True)
        data = json.loads(formatter.format(_record("login password=hunter2")))
        assert "hunter2" not in data["message"]


class TestDecisionLogger:
    """Tests for the request-scoped decision logger."""

    def test_request_id_attached(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = get_decision_logger("test", request_id="req-42")
        with caplog.at_level(logging.INFO):
            logger.info("posts.edit", decision="deny")

        record = caplog.records[0]
        assert record.request_id == "req-42"
        assert record.decision == "deny"

    def test_per_call_request_id(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = get_decision_logger("test")
        with caplog.at_level(logging.INFO):
            logger.info("checked", request_id="req-7")
        assert caplog.records[0].request_id == "req-7"

    def test_without_context(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = get_decision_logger("test")
        with caplog.at_level(logging.INFO):
            logger.info("Test message")
        assert not hasattr(caplog.records[0], "request_id")
