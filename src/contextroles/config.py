"""Configuration contract for contextroles.

Pydantic-validated settings shared by the logging setup, the assignment
service and the gRPC interceptor. The role catalog itself is not configured
here; see :func:`contextroles.registry.build_registry`.

Direct os.environ/os.getenv usage is confined to
:func:`load_config_from_env`.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class LogLevel(str, Enum):
    """Standard log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class EnforcementMode(str, Enum):
    """Three-state enforcement toggle for the gRPC interceptor.

    - ``off``     - no checks, only caller-identity logging.
    - ``warn``    - check, log denials as WARNING, but allow through.
    - ``enforce`` - check, deny on failure (production).
    """

    OFF = "off"
    WARN = "warn"
    ENFORCE = "enforce"


class RolesConfig(BaseModel):
    """Settings for contextroles.

    Environment variables (see :func:`load_config_from_env`):
        LOG_LEVEL                    - DEBUG | INFO | WARNING | ERROR | CRITICAL
        LOG_JSON                     - JSON log format (default: false)
        SERVICE_NAME                 - logger name for the embedding service
        ROLES_ENFORCEMENT            - off | warn | enforce
        ROLES_ALLOW_SELF_ASSIGNMENT  - actor may grant itself roles (bootstrap)
        ROLES_ASSIGN_MAX_ATTEMPTS    - attempts for assign_with_retry
    """

    # Logging
    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level",
    )
    log_json: bool = Field(
        default=False,
        description="Use JSON log format (default: plain text)",
    )
    service_name: Optional[str] = Field(
        default=None,
        description="Service name used for the service logger",
    )

    # Enforcement
    enforcement: EnforcementMode = Field(
        default=EnforcementMode.WARN,
        description="Interceptor enforcement mode: off, warn or enforce",
    )

    # Assignment workflow
    allow_self_assignment: bool = Field(
        default=True,
        description="Skip the assignability check when actor and target are the same user",
    )
    assign_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Maximum attempts for assign_with_retry on transient store errors",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str | LogLevel) -> LogLevel:
        """Convert string to LogLevel enum."""
        if isinstance(v, LogLevel):
            return v
        if isinstance(v, str):
            try:
                return LogLevel[v.upper()]
            except KeyError:
                raise ValueError(f"Invalid log level: {v}. Must be one of {[e.value for e in LogLevel]}")
        raise ValueError(f"Log level must be string or LogLevel enum, got {type(v)}")

    @field_validator("enforcement", mode="before")
    @classmethod
    def validate_enforcement(cls, v: str | EnforcementMode) -> EnforcementMode:
        """Accept enforcement mode strings case-insensitively."""
        if isinstance(v, EnforcementMode):
            return v
        if isinstance(v, str):
            try:
                return EnforcementMode(v.strip().lower())
            except ValueError:
                raise ValueError(f"Invalid enforcement mode: {v}. Must be one of {[e.value for e in EnforcementMode]}")
        raise ValueError(f"Enforcement mode must be string or EnforcementMode enum, got {type(v)}")

    model_config = {
        "extra": "forbid",
    }


_TRUTHY = ("true", "1", "yes", "on")


def load_config_from_env() -> RolesConfig:
    """Load configuration from environment variables.

    This is the ONLY place where os.getenv is allowed.

    Returns:
        RolesConfig instance with values from environment or defaults.
    """
    import os

    return RolesConfig(
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_json=os.getenv("LOG_JSON", "false").lower() in _TRUTHY,
        service_name=os.getenv("SERVICE_NAME"),
        enforcement=os.getenv("ROLES_ENFORCEMENT", "warn"),
        allow_self_assignment=os.getenv("ROLES_ALLOW_SELF_ASSIGNMENT", "true").lower() in _TRUTHY,
        assign_max_attempts=int(os.getenv("ROLES_ASSIGN_MAX_ATTEMPTS", "3")),
    )


__all__ = [
    "EnforcementMode",
    "LogLevel",
    "RolesConfig",
    "load_config_from_env",
]
