"""Request-scoped authorization context.

Holds the current user, actor, client details and checker in
``contextvars`` so they follow a request across ``await`` points without
being threaded through every call. The gRPC interceptor binds them; the
assignment service and the logger adapter read them.
"""

from __future__ import annotations

import contextvars
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterator, Optional

if TYPE_CHECKING:
    from .checker import Checker

_user_id_ctx: contextvars.ContextVar[str] = contextvars.ContextVar("roles_user_id", default="")
_actor_id_ctx: contextvars.ContextVar[str] = contextvars.ContextVar("roles_actor_id", default="")
_ip_address_ctx: contextvars.ContextVar[str] = contextvars.ContextVar("roles_ip_address", default="")
_user_agent_ctx: contextvars.ContextVar[str] = contextvars.ContextVar("roles_user_agent", default="")
_request_id_ctx: contextvars.ContextVar[str] = contextvars.ContextVar("roles_request_id", default="")
_checker_ctx: contextvars.ContextVar[Optional[Checker]] = contextvars.ContextVar(
    "roles_checker", default=None
)


# ── Identity ────────────────────────────────────────────


def get_user_id() -> str:
    """Get the authenticated user id ("" when unset)."""
    return _user_id_ctx.get()


def set_user_id(user_id: str) -> contextvars.Token:
    return _user_id_ctx.set(user_id)


def get_actor_id() -> str:
    """Get the acting user id, falling back to the authenticated user."""
    return _actor_id_ctx.get() or _user_id_ctx.get()


def set_actor_id(actor_id: str) -> contextvars.Token:
    return _actor_id_ctx.set(actor_id)


# ── Client details ──────────────────────────────────────


def get_ip_address() -> str:
    return _ip_address_ctx.get()


def set_ip_address(ip_address: str) -> contextvars.Token:
    return _ip_address_ctx.set(ip_address)


def get_user_agent() -> str:
    return _user_agent_ctx.get()


def set_user_agent(user_agent: str) -> contextvars.Token:
    return _user_agent_ctx.set(user_agent)


def get_request_id() -> str:
    return _request_id_ctx.get()


def set_request_id(request_id: str) -> contextvars.Token:
    return _request_id_ctx.set(request_id)


# ── Checker ─────────────────────────────────────────────


def get_checker() -> Optional[Checker]:
    """Get the checker bound for the current request, if any."""
    return _checker_ctx.get()


def set_checker(checker: Optional[Checker]) -> contextvars.Token:
    return _checker_ctx.set(checker)


from_context = get_checker


# ── Audit context ───────────────────────────────────────


@dataclass(frozen=True)
class AuditContext:
    """Request details recorded with every audit entry."""

    actor_id: str = ""
    ip_address: str = ""
    user_agent: str = ""
    request_id: str = ""


def get_audit_context() -> AuditContext:
    return AuditContext(
        actor_id=get_actor_id(),
        ip_address=get_ip_address(),
        user_agent=get_user_agent(),
        request_id=get_request_id(),
    )


def bind_audit_context(ctx: AuditContext) -> None:
    """Bind every non-empty field of ``ctx`` to the current context."""
    if ctx.actor_id:
        _actor_id_ctx.set(ctx.actor_id)
    if ctx.ip_address:
        _ip_address_ctx.set(ctx.ip_address)
    if ctx.user_agent:
        _user_agent_ctx.set(ctx.user_agent)
    if ctx.request_id:
        _request_id_ctx.set(ctx.request_id)


@contextmanager
def request_context(
    user_id: Optional[str] = None,
    actor_id: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    request_id: Optional[str] = None,
    checker: Optional[Checker] = None,
) -> Iterator[None]:
    """Temporarily bind request context; previous values are restored on exit.

    Only the arguments that are not None are bound.

    Example::

        with request_context(user_id="user_1", request_id="req-42"):
            await service.assign("user_2", "member", "organization", "org_1")
    """
    bindings = (
        (_user_id_ctx, user_id),
        (_actor_id_ctx, actor_id),
        (_ip_address_ctx, ip_address),
        (_user_agent_ctx, user_agent),
        (_request_id_ctx, request_id),
        (_checker_ctx, checker),
    )
    tokens = [(var, var.set(value)) for var, value in bindings if value is not None]
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


__all__ = [
    "AuditContext",
    "bind_audit_context",
    "from_context",
    "get_actor_id",
    "get_audit_context",
    "get_checker",
    "get_ip_address",
    "get_request_id",
    "get_user_agent",
    "get_user_id",
    "request_context",
    "set_actor_id",
    "set_checker",
    "set_ip_address",
    "set_request_id",
    "set_user_agent",
    "set_user_id",
]
