"""Tests for RolesConfig."""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest
from contextroles import EnforcementMode, LogLevel, RolesConfig, load_config_from_env
from pydantic import ValidationError


class TestRolesConfig:
    """Tests for RolesConfig model."""

    def test_create_default_config(self) -> None:
        """Test creating a RolesConfig with defaults."""
        config = RolesConfig()
        assert config.log_level == LogLevel.INFO
        assert config.log_json is False
        assert config.service_name is None
        assert config.enforcement == EnforcementMode.WARN
        assert config.allow_self_assignment is True
        assert config.assign_max_attempts == 3

    def test_create_custom_config(self) -> None:
        """Test creating a RolesConfig with custom values."""
        config = RolesConfig(
            log_level=LogLevel.DEBUG,
            log_json=True,
            service_name="projects",
            enforcement=EnforcementMode.ENFORCE,
            allow_self_assignment=False,
            assign_max_attempts=5,
        )
        assert config.log_level == LogLevel.DEBUG
        assert config.log_json is True
        assert config.service_name == "projects"
        assert config.enforcement == EnforcementMode.ENFORCE
        assert config.allow_self_assignment is False
        assert config.assign_max_attempts == 5

    def test_log_level_from_string(self) -> None:
        """Test creating config with log level as lowercase string."""
        config = RolesConfig(log_level="debug")
        assert config.log_level == LogLevel.DEBUG

    def test_log_level_invalid(self) -> None:
        """Test creating config with invalid log level."""
        with pytest.raises(ValueError, match="Invalid log level"):
            RolesConfig(log_level="LOUD")

    def test_enforcement_case_insensitive(self) -> None:
        """Test enforcement mode parsing."""
        assert RolesConfig(enforcement="ENFORCE").enforcement == EnforcementMode.ENFORCE
        assert RolesConfig(enforcement=" off ").enforcement == EnforcementMode.OFF

    def test_enforcement_invalid(self) -> None:
        """Test unknown enforcement mode is rejected."""
        with pytest.raises(ValueError, match="Invalid enforcement mode"):
            RolesConfig(enforcement="strict")

    def test_max_attempts_must_be_positive(self) -> None:
        """Test assign_max_attempts lower bound."""
        with pytest.raises(ValidationError):
            RolesConfig(assign_max_attempts=0)

    def test_extra_fields_forbidden(self) -> None:
        """Test unknown fields are rejected."""
        with pytest.raises(ValidationError):
            RolesConfig(unknown_field="x")  # type: ignore[call-arg]


class TestLoadConfigFromEnv:
    """Tests for load_config_from_env."""

    @patch.dict(os.environ, {}, clear=True)
    def test_defaults(self) -> None:
        """Test loading config with empty environment."""
        config = load_config_from_env()
        assert config == RolesConfig()

    @patch.dict(
        os.environ,
        {
            "LOG_LEVEL": "WARNING",
            "LOG_JSON": "true",
            "SERVICE_NAME": "projects",
            "ROLES_ENFORCEMENT": "enforce",
            "ROLES_ALLOW_SELF_ASSIGNMENT": "false",
            "ROLES_ASSIGN_MAX_ATTEMPTS": "5",
        },
        clear=True,
    )
    def test_from_environment(self) -> None:
        """Test loading config from environment variables."""
        config = load_config_from_env()
        assert config.log_level == LogLevel.WARNING
        assert config.log_json is True
        assert config.service_name == "projects"
        assert config.enforcement == EnforcementMode.ENFORCE
        assert config.allow_self_assignment is False
        assert config.assign_max_attempts == 5

    @patch.dict(os.environ, {"LOG_JSON": "yes", "ROLES_ALLOW_SELF_ASSIGNMENT": "0"}, clear=True)
    def test_truthy_values(self) -> None:
        """Test boolean env parsing."""
        config = load_config_from_env()
        assert config.log_json is True
        assert config.allow_self_assignment is False

    @patch.dict(os.environ, {"ROLES_ENFORCEMENT": "bogus"}, clear=True)
    def test_invalid_enforcement(self) -> None:
        """Test invalid enforcement mode in environment."""
        with pytest.raises(ValueError):
            load_config_from_env()
