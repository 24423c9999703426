"""Persistence boundary for role assignments, scope links and audit entries.

contextroles does not ship a store. The embedding application provides an
object satisfying :class:`RoleStore` (SQL, document store, in-memory for
tests) and hands it to :class:`~contextroles.service.AuthorizationService`.

Implementations should raise :class:`~contextroles.exceptions.StorageError`
for failures and :class:`~contextroles.exceptions.TransientStorageError` for
failures that are safe to retry (serialization conflicts, dropped
connections).
"""

from __future__ import annotations

from typing import Optional, Protocol, Sequence, runtime_checkable

from .models import AuditEntry, AuditLogFilter, RoleAssignment, Scope, ScopeLink


@runtime_checkable
class RoleStore(Protocol):
    """Async storage interface used by the assignment service."""

    async def list_user_assignments(self, user_id: str) -> Sequence[RoleAssignment]:
        """All assignments held by ``user_id``, in a stable order."""
        ...

    async def list_scope_assignments(
        self,
        scope_type: str,
        scope_id: str,
        role: Optional[str] = None,
    ) -> Sequence[RoleAssignment]:
        """Assignments at exactly ``scope_type:scope_id``, optionally for one role."""
        ...

    async def create_assignment(self, assignment: RoleAssignment) -> None: ...

    async def count_assignments(self) -> int:
        """Total number of stored assignments."""
        ...

    async def delete_assignment(
        self,
        user_id: str,
        role: str,
        scope_type: str,
        scope_id: str,
    ) -> bool:
        """Delete one assignment. Returns False when nothing was deleted."""
        ...

    async def set_scope_parent(self, link: ScopeLink) -> None: ...

    async def get_scope_parent(self, scope_type: str, scope_id: str) -> Optional[Scope]: ...

    async def list_child_scope_ids(
        self,
        parent_type: str,
        parent_id: str,
        child_type: str,
    ) -> Sequence[str]: ...

    async def write_audit(self, entry: AuditEntry) -> None: ...

    async def list_audit(self, filter: AuditLogFilter) -> Sequence[AuditEntry]: ...


__all__ = ["RoleStore"]
