"""Shared fixtures: an example role catalog and an in-memory RoleStore."""

from __future__ import annotations

from typing import Optional

import pytest
from contextroles.models import AuditEntry, AuditLogFilter, RoleAssignment, Scope, ScopeLink
from contextroles.registry import Registry
from contextroles.service import AuthorizationService


def make_registry() -> Registry:
    """Organization/project catalog used across the test suite."""
    registry = Registry()
    (
        registry.define_scope("organization")
        .role("owner").permissions("*").can_assign("*")
        .role("admin").permissions("org.*", "members.*").can_assign("member", "viewer")
        .role("member").permissions("org.read", "members.read")
        .role("viewer").permissions("org.read")
        .define_scope("project")
        .parent_scope("organization")
        .role("manager").permissions("project.*", "post.*").can_assign("editor", "reviewer")
        .role("editor").permissions("files.*", "post.create", "post.update")
        .role("reviewer").permissions("comments.*")
    )
    return registry


class InMemoryRoleStore:
    """RoleStore backed by lists; failures can be injected per operation.

    ``create_failures`` and ``delete_failures`` are consumed one entry per
    call; ``None`` lets that call succeed.
    """

    def __init__(self) -> None:
        self.assignments: list[RoleAssignment] = []
        self.links: list[ScopeLink] = []
        self.audit: list[AuditEntry] = []
        self.create_failures: list[Optional[Exception]] = []
        self.audit_failure: Optional[Exception] = None
        self.delete_returns: Optional[bool] = None
        self.delete_failures: list[Optional[Exception]] = []
        self.create_calls = 0

    def add(self, user_id: str, role: str, scope_type: str, scope_id: str, **kwargs) -> None:
        self.assignments.append(RoleAssignment(user_id, role, scope_type, scope_id, **kwargs))

    async def list_user_assignments(self, user_id: str) -> list[RoleAssignment]:
        return [a for a in self.assignments if a.user_id == user_id]

    async def list_scope_assignments(
        self, scope_type: str, scope_id: str, role: Optional[str] = None
    ) -> list[RoleAssignment]:
        return [
            a
            for a in self.assignments
            if a.scope_type == scope_type
            and a.scope_id == scope_id
            and (role is None or a.role == role)
        ]

    async def create_assignment(self, assignment: RoleAssignment) -> None:
        self.create_calls += 1
        failure = self.create_failures.pop(0) if self.create_failures else None
        if failure is not None:
            raise failure
        self.assignments.append(assignment)

    async def count_assignments(self) -> int:
        return len(self.assignments)

    async def delete_assignment(self, user_id: str, role: str, scope_type: str, scope_id: str) -> bool:
        failure = self.delete_failures.pop(0) if self.delete_failures else None
        if failure is not None:
            raise failure
        if self.delete_returns is not None:
            return self.delete_returns
        before = len(self.assignments)
        self.assignments = [
            a
            for a in self.assignments
            if (a.user_id, a.role, a.scope_type, a.scope_id) != (user_id, role, scope_type, scope_id)
        ]
        return len(self.assignments) < before

    async def set_scope_parent(self, link: ScopeLink) -> None:
        self.links = [
            existing
            for existing in self.links
            if (existing.scope_type, existing.scope_id) != (link.scope_type, link.scope_id)
        ]
        self.links.append(link)

    async def get_scope_parent(self, scope_type: str, scope_id: str) -> Optional[Scope]:
        for link in self.links:
            if link.scope_type == scope_type and link.scope_id == scope_id:
                return link.parent
        return None

    async def list_child_scope_ids(self, parent_type: str, parent_id: str, child_type: str) -> list[str]:
        return [
            link.scope_id
            for link in self.links
            if link.parent_scope_type == parent_type
            and link.parent_scope_id == parent_id
            and link.scope_type == child_type
        ]

    async def write_audit(self, entry: AuditEntry) -> None:
        if self.audit_failure is not None:
            raise self.audit_failure
        self.audit.append(entry)

    async def list_audit(self, filter: AuditLogFilter) -> list[AuditEntry]:
        matched = [entry for entry in self.audit if filter.matches(entry)]
        return matched[filter.offset : filter.offset + filter.limit]


@pytest.fixture
def registry() -> Registry:
    return make_registry().freeze()


@pytest.fixture
def store() -> InMemoryRoleStore:
    return InMemoryRoleStore()


@pytest.fixture
def service(registry: Registry, store: InMemoryRoleStore) -> AuthorizationService:
    return AuthorizationService(registry, store)
