"""Data model for contextroles.

Scopes and assignments are plain frozen values used as lookup keys; audit
records are Pydantic models handed to the store.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

ANY_SCOPE_ID = "*"
"""Reserved scope id meaning "every instance of this scope type"."""


@dataclass(frozen=True)
class Scope:
    """A ``(scope type, scope id)`` pair bounding a permission check.

    Example::

        Scope("organization", "org_123")
        Scope.any("project")          # every project
    """

    type: str
    id: str

    @classmethod
    def any(cls, scope_type: str) -> Scope:
        """Wildcard scope covering every id of ``scope_type``."""
        return cls(scope_type, ANY_SCOPE_ID)

    @property
    def is_wildcard(self) -> bool:
        return self.id == ANY_SCOPE_ID

    @property
    def key(self) -> str:
        return scope_key(self.type, self.id)

    def __str__(self) -> str:
        return self.key


def scope_key(scope_type: str, scope_id: str) -> str:
    """Index key for a scope: ``"type:id"``."""
    return f"{scope_type}:{scope_id}"


@dataclass(frozen=True)
class RoleAssignment:
    """A fact binding a user to a role at a scope.

    ``scope_id`` may be :data:`ANY_SCOPE_ID`. The parent fields are
    informational and filled by the store when the scope type declares a
    parent.
    """

    user_id: str
    role: str
    scope_type: str
    scope_id: str
    parent_scope_type: str = ""
    parent_scope_id: str = ""

    @property
    def scope(self) -> Scope:
        return Scope(self.scope_type, self.scope_id)

    @property
    def is_wildcard(self) -> bool:
        return self.scope_id == ANY_SCOPE_ID


@dataclass(frozen=True)
class ScopeLink:
    """Parent/child relationship between two concrete scopes."""

    scope_type: str
    scope_id: str
    parent_scope_type: str
    parent_scope_id: str

    @property
    def scope(self) -> Scope:
        return Scope(self.scope_type, self.scope_id)

    @property
    def parent(self) -> Scope:
        return Scope(self.parent_scope_type, self.parent_scope_id)


class AuditAction(str, Enum):
    """Kind of role mutation recorded in the audit log."""

    ASSIGNED = "assigned"
    REVOKED = "revoked"
    BULK_ASSIGNED = "bulk_assigned"
    BULK_REVOKED = "bulk_revoked"


class AuditEntry(BaseModel):
    """Audit record for a role assignment change.

    Captures who acted, on whom, and the target's roles at the scope before
    and after the change.
    """

    actor_id: str
    action: AuditAction
    target_user_id: str
    role: str
    scope_type: str
    scope_id: str

    actor_roles: list[str] = Field(default_factory=list)
    previous_roles: list[str] = Field(default_factory=list)
    new_roles: list[str] = Field(default_factory=list)

    ip_address: str = ""
    user_agent: str = ""
    request_id: str = ""

    metadata: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class AuditLogFilter(BaseModel):
    """Query options for :meth:`RoleStore.list_audit`.

    The ``with_*`` helpers return modified copies so filters can be chained::

        f = AuditLogFilter().with_scope("organization", "org_1").with_limit(20)
    """

    actor_id: Optional[str] = None
    target_user_id: Optional[str] = None
    scope_type: Optional[str] = None
    scope_id: Optional[str] = None
    action: Optional[AuditAction] = None
    role: Optional[str] = None
    since: Optional[datetime] = None
    until: Optional[datetime] = None
    limit: int = Field(default=100, ge=0)
    offset: int = Field(default=0, ge=0)

    def with_actor(self, actor_id: str) -> AuditLogFilter:
        return self.model_copy(update={"actor_id": actor_id})

    def with_target_user(self, user_id: str) -> AuditLogFilter:
        return self.model_copy(update={"target_user_id": user_id})

    def with_scope(self, scope_type: str, scope_id: str) -> AuditLogFilter:
        return self.model_copy(update={"scope_type": scope_type, "scope_id": scope_id})

    def with_scope_type(self, scope_type: str) -> AuditLogFilter:
        return self.model_copy(update={"scope_type": scope_type})

    def with_action(self, action: AuditAction) -> AuditLogFilter:
        return self.model_copy(update={"action": action})

    def with_role(self, role: str) -> AuditLogFilter:
        return self.model_copy(update={"role": role})

    def with_time_range(self, since: datetime, until: datetime) -> AuditLogFilter:
        return self.model_copy(update={"since": since, "until": until})

    def with_pagination(self, limit: int, offset: int) -> AuditLogFilter:
        return self.model_copy(update={"limit": limit, "offset": offset})

    def with_limit(self, limit: int) -> AuditLogFilter:
        return self.model_copy(update={"limit": limit})

    def matches(self, entry: AuditEntry) -> bool:
        """Whether ``entry`` satisfies every set criterion (ignores pagination)."""
        checks = (
            (self.actor_id, entry.actor_id),
            (self.target_user_id, entry.target_user_id),
            (self.scope_type, entry.scope_type),
            (self.scope_id, entry.scope_id),
            (self.action, entry.action),
            (self.role, entry.role),
        )
        if any(wanted is not None and wanted != actual for wanted, actual in checks):
            return False
        if self.since is not None and entry.timestamp < self.since:
            return False
        if self.until is not None and entry.timestamp > self.until:
            return False
        return True


__all__ = [
    "ANY_SCOPE_ID",
    "AuditAction",
    "AuditEntry",
    "AuditLogFilter",
    "RoleAssignment",
    "Scope",
    "ScopeLink",
    "scope_key",
]
