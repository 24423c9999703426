"""Unified exception hierarchy for contextroles.

All errors inherit from ContextRolesError. This module provides:
- Base exception hierarchy with stable error codes
- ErrorRegistry for protocol mapping
- gRPC status mapping and a unary error handler decorator

Only the registry's validation entry points, pattern validation and the
assignment workflow raise these. Checker queries never do: an unknown scope
or role simply grants nothing.

Usage:
    from contextroles.exceptions import InvalidRoleError

    try:
        registry.validate_role("editor", "project")
    except InvalidRoleError as e:
        print(e.code, e.details)
"""

from __future__ import annotations

import functools
import logging
from typing import Any, Callable, TypeVar, cast

__all__ = [
    # Base hierarchy
    "ContextRolesError",
    "ConfigurationError",
    "InvalidScopeError",
    "InvalidRoleError",
    "InvalidPermissionError",
    "UnauthorizedError",
    "CannotAssignError",
    "RoleAlreadyAssignedError",
    "RoleNotAssignedError",
    "MissingUserError",
    "MissingActorError",
    "StorageError",
    "TransientStorageError",
    # Registry
    "ErrorRegistry",
    "error_registry",
    "register_error",
    # gRPC helpers
    "get_grpc_status_code",
    "grpc_error_handler",
]

logger = logging.getLogger(__name__)


# ---- Exception Hierarchy ----------------------------------------------------


class ContextRolesError(Exception):
    """Base exception for contextroles.

    Attributes:
        code: Stable error code string for protocol mapping (e.g. "INVALID_ROLE").
        message: Human-readable error description.
        details: Additional context as keyword arguments
            (``scope_type``, ``scope_id``, ``role``, ``user_id``, ``actor_id``).
    """

    code: str = "INTERNAL_ERROR"
    message: str = "An internal error occurred"

    def __init__(self, message: str | None = None, code: str | None = None, **kwargs: Any) -> None:
        self.message = message or self.message
        self.code = code or self.code
        self.details = kwargs
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"contextroles: {self.message}"


class ConfigurationError(ContextRolesError):
    """Invalid configuration, or a registry write after setup completed."""

    code: str = "CONFIGURATION_ERROR"
    message: str = "invalid configuration"


class InvalidScopeError(ContextRolesError):
    """Scope type is not declared in the registry."""

    code: str = "INVALID_SCOPE"
    message: str = "invalid scope"


class InvalidRoleError(ContextRolesError):
    """Role is not declared within an otherwise valid scope type."""

    code: str = "INVALID_ROLE"
    message: str = "invalid role"


class InvalidPermissionError(ContextRolesError):
    """Malformed permission or permission pattern."""

    code: str = "INVALID_PERMISSION"
    message: str = "invalid permission"


class UnauthorizedError(ContextRolesError):
    """The user lacks the required role or permission."""

    code: str = "UNAUTHORIZED"
    message: str = "unauthorized"


class CannotAssignError(UnauthorizedError):
    """The actor is not allowed to assign (or revoke) the target role."""

    code: str = "CANNOT_ASSIGN"
    message: str = "cannot assign role"


class RoleAlreadyAssignedError(ContextRolesError):
    """The user already holds the role at this exact scope."""

    code: str = "ROLE_ALREADY_ASSIGNED"
    message: str = "role already assigned"


class RoleNotAssignedError(ContextRolesError):
    """The user does not hold the role being revoked."""

    code: str = "ROLE_NOT_ASSIGNED"
    message: str = "role not assigned"


class MissingUserError(ContextRolesError):
    """No user id bound to the current request context."""

    code: str = "NO_USER_ID"
    message: str = "no user ID in context"


class MissingActorError(ContextRolesError):
    """No actor id bound to the current request context."""

    code: str = "NO_ACTOR_ID"
    message: str = "no actor ID in context"


class StorageError(ContextRolesError):
    """Failure reported by the role store."""

    code: str = "STORAGE_ERROR"
    message: str = "storage error"


class TransientStorageError(StorageError):
    """Store failure that is safe to retry (serialization conflict, lost connection)."""

    code: str = "TRANSIENT_STORAGE_ERROR"
    message: str = "transient storage error"


# ---- Error Registry for Protocol Mapping ------------------------------------

_E = TypeVar("_E", bound=type[ContextRolesError])


class ErrorRegistry:
    """Registry for mapping internal errors to external protocol codes."""

    def __init__(self) -> None:
        self._errors: dict[str, type[ContextRolesError]] = {}

    def register(self, code: str, error_cls: type[ContextRolesError]) -> None:
        self._errors[code] = error_cls

    def get(self, code: str) -> type[ContextRolesError] | None:
        return self._errors.get(code)

    def all(self) -> dict[str, type[ContextRolesError]]:
        return dict(self._errors)


error_registry = ErrorRegistry()


def register_error(code: str) -> Callable[[_E], _E]:
    """Decorator to register a custom error type.

    Usage:
        @register_error("QUOTA_EXCEEDED")
        class QuotaExceededError(ContextRolesError):
            code = "QUOTA_EXCEEDED"
    """

    def decorator(cls: _E) -> _E:
        error_registry.register(code, cls)
        return cls

    return cast(Callable[[_E], _E], decorator)


# Register base errors
error_registry.register("INTERNAL_ERROR", ContextRolesError)
error_registry.register("CONFIGURATION_ERROR", ConfigurationError)
error_registry.register("INVALID_SCOPE", InvalidScopeError)
error_registry.register("INVALID_ROLE", InvalidRoleError)
error_registry.register("INVALID_PERMISSION", InvalidPermissionError)
error_registry.register("UNAUTHORIZED", UnauthorizedError)
error_registry.register("CANNOT_ASSIGN", CannotAssignError)
error_registry.register("ROLE_ALREADY_ASSIGNED", RoleAlreadyAssignedError)
error_registry.register("ROLE_NOT_ASSIGNED", RoleNotAssignedError)
error_registry.register("NO_USER_ID", MissingUserError)
error_registry.register("NO_ACTOR_ID", MissingActorError)
error_registry.register("STORAGE_ERROR", StorageError)
error_registry.register("TRANSIENT_STORAGE_ERROR", TransientStorageError)


# ---- gRPC Error Handling Utilities ------------------------------------------


def get_grpc_status_code(error: ContextRolesError) -> Any:
    """Map ContextRolesError to gRPC status code.

    Returns grpc.StatusCode value for the given error type.
    Import grpc locally to avoid hard dependency at module level.
    """
    import grpc

    error_to_status = {
        "CONFIGURATION_ERROR": grpc.StatusCode.FAILED_PRECONDITION,
        "INVALID_SCOPE": grpc.StatusCode.INVALID_ARGUMENT,
        "INVALID_ROLE": grpc.StatusCode.INVALID_ARGUMENT,
        "INVALID_PERMISSION": grpc.StatusCode.INVALID_ARGUMENT,
        "UNAUTHORIZED": grpc.StatusCode.PERMISSION_DENIED,
        "CANNOT_ASSIGN": grpc.StatusCode.PERMISSION_DENIED,
        "ROLE_ALREADY_ASSIGNED": grpc.StatusCode.ALREADY_EXISTS,
        "ROLE_NOT_ASSIGNED": grpc.StatusCode.NOT_FOUND,
        "NO_USER_ID": grpc.StatusCode.UNAUTHENTICATED,
        "NO_ACTOR_ID": grpc.StatusCode.UNAUTHENTICATED,
        "STORAGE_ERROR": grpc.StatusCode.UNAVAILABLE,
        "TRANSIENT_STORAGE_ERROR": grpc.StatusCode.UNAVAILABLE,
    }
    return error_to_status.get(error.code, grpc.StatusCode.INTERNAL)


def grpc_error_handler(method):
    """Decorator for unary gRPC service methods that call the role service.

    Catches ContextRolesError and aborts with the mapped gRPC status code.

    Usage:
        @grpc_error_handler
        async def AssignRole(self, request, context):
            await self.roles.assign(...)
    """

    @functools.wraps(method)
    async def wrapper(self, request, context):
        try:
            return await method(self, request, context)
        except ContextRolesError as e:
            status_code = get_grpc_status_code(e)
            error_message = f"[{e.code}] {e.message}"

            logger.error(
                "%s failed: %s",
                method.__name__,
                error_message,
                extra={
                    "error_code": e.code,
                    "error_details": e.details,
                },
            )

            context.set_trailing_metadata([("error-code", e.code)])
            await context.abort(status_code, error_message)
            return

        except Exception as e:
            import grpc

            logger.exception("%s unexpected error: %s", method.__name__, e)
            await context.abort(
                grpc.StatusCode.INTERNAL,
                f"Unexpected {type(e)}: {e}",
            )
            return

    return wrapper
