"""Tests for contextroles.logging module."""

from __future__ import annotations

import json
import logging

import pytest
from contextroles import (
    LogLevel,
    RolesConfig,
    RolesFormatter,
    get_roles_logger,
    safe_preview,
    setup_logging,
)
from contextroles.context import request_context


def _record(msg: str = "Permission denied", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="contextroles.test",
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestSafePreview:
    """Tests for safe_preview function."""

    def test_none_value(self) -> None:
        """Test that None returns empty string."""
        assert safe_preview(None) == ""

    def test_string_with_whitespace(self) -> None:
        """Test that whitespace is normalized."""
        assert safe_preview("hello\n\tworld  test") == "hello world test"

    def test_string_truncation(self) -> None:
        """Test that long strings are truncated."""
        result = safe_preview("a" * 300, limit=100)
        assert len(result) == 100
        assert result.endswith("…")

    def test_dict_value(self) -> None:
        """Test that dicts are converted to JSON."""
        result = safe_preview({"role": "admin"})
        assert result == '{"role": "admin"}'

    def test_frozenset_value(self) -> None:
        """Test that sets are rendered sorted."""
        assert safe_preview(frozenset({"b.read", "a.read"})) == '["a.read", "b.read"]'


class TestRolesFormatter:
    """Tests for RolesFormatter."""

    def test_json_includes_context(self) -> None:
        """Test JSON output carries authorization context fields."""
        formatter = RolesFormatter(json_format=True)
        record = _record(user_id="u1", actor_id="a1", request_id="req-1", scope="project:p1")
        data = json.loads(formatter.format(record))
        assert data["message"] == "Permission denied"
        assert data["level"] == "WARNING"
        assert data["user_id"] == "u1"
        assert data["actor_id"] == "a1"
        assert data["request_id"] == "req-1"
        assert data["scope"] == "project:p1"

    def test_json_includes_extra_fields(self) -> None:
        """Test other extra attributes are previewed."""
        formatter = RolesFormatter(json_format=True)
        data = json.loads(formatter.format(_record(roles=["admin", "member"])))
        assert data["roles"] == '["admin", "member"]'

    def test_plain_text(self) -> None:
        """Test plain output appends context as key=value."""
        formatter = RolesFormatter(json_format=False)
        line = formatter.format(_record(user_id="u1", scope="organization:o1"))
        assert "WARNING" in line
        assert "user_id=u1" in line
        assert "scope=organization:o1" in line
        assert line.endswith(": Permission denied")

    def test_plain_text_without_context(self) -> None:
        """Test plain output without context fields."""
        formatter = RolesFormatter(json_format=False)
        line = formatter.format(_record())
        assert "user_id=" not in line


class TestRolesLoggerAdapter:
    """Tests for get_roles_logger."""

    def test_bound_context(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test context bound at construction reaches the record."""
        logger = get_roles_logger("contextroles.test.adapter", scope="organization:o1")
        with caplog.at_level(logging.INFO, logger="contextroles.test.adapter"):
            logger.info("Role assigned", actor_id="a1")
        record = caplog.records[-1]
        assert record.scope == "organization:o1"
        assert record.actor_id == "a1"

    def test_request_context_fallback(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test ids are picked up from the request context."""
        logger = get_roles_logger("contextroles.test.adapter")
        with caplog.at_level(logging.INFO, logger="contextroles.test.adapter"):
            with request_context(user_id="u9", request_id="req-9"):
                logger.info("Checked")
        record = caplog.records[-1]
        assert record.user_id == "u9"
        assert record.actor_id == "u9"
        assert record.request_id == "req-9"

    def test_unknown_context_keys_ignored(self) -> None:
        """Test construction ignores keys that are not context fields."""
        logger = get_roles_logger("contextroles.test.adapter", color="red", user_id="u1")
        assert logger.context == {"user_id": "u1"}


class TestSetupLogging:
    """Tests for setup_logging."""

    @pytest.fixture(autouse=True)
    def _restore_root(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers = handlers
        root.setLevel(level)

    def test_configures_root_logger(self) -> None:
        """Test root logger level and formatter come from config."""
        setup_logging(RolesConfig(log_level=LogLevel.DEBUG, log_json=True))
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        formatter = root.handlers[0].formatter
        assert isinstance(formatter, RolesFormatter)
        assert formatter.json_format is True

    def test_service_logger_level(self) -> None:
        """Test service_name logger gets the configured level."""
        setup_logging(RolesConfig(log_level=LogLevel.ERROR, service_name="projects-svc"))
        assert logging.getLogger("projects-svc").level == logging.ERROR
