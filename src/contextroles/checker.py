"""Per-user authorization queries.

A :class:`Checker` combines a user's :class:`UserRoles` snapshot with the
:class:`Registry` to answer role, permission and assignability questions.
Every query is total: an undefined scope or role grants nothing and never
raises.

Example::

    checker = Checker("user_1", UserRoles("user_1", assignments), registry)
    checker.has_permission("post.create", "project", "proj_1")
    checker.can_assign_role("member", "organization", "org_1")
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable, Optional

from .permissions.matcher import WILDCARD, match_any_permission
from .registry import Registry
from .user_roles import UserRoles

if TYPE_CHECKING:
    from .service import AuthorizationService

logger = logging.getLogger(__name__)


class Checker:
    """Authorization facade for one user."""

    def __init__(
        self,
        user_id: str,
        roles: UserRoles,
        registry: Registry,
        service: Optional[AuthorizationService] = None,
    ) -> None:
        self._user_id = user_id
        self._roles = roles
        self._registry = registry
        self._service = service

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def roles(self) -> UserRoles:
        return self._roles

    @property
    def registry(self) -> Registry:
        return self._registry

    @property
    def service(self) -> Optional[AuthorizationService]:
        """Service that produced this checker, if any."""
        return self._service

    # ── Roles ───────────────────────────────────────────

    def can(self, role: str, scope_type: str, scope_id: str) -> bool:
        return self._roles.has_role(role, scope_type, scope_id)

    def has_any_role(self, roles: Iterable[str], scope_type: str, scope_id: str) -> bool:
        return any(self.can(role, scope_type, scope_id) for role in roles)

    def has_all_roles(self, roles: Iterable[str], scope_type: str, scope_id: str) -> bool:
        return all(self.can(role, scope_type, scope_id) for role in roles)

    def get_roles(self, scope_type: str, scope_id: str) -> tuple[str, ...]:
        return self._roles.get_roles(scope_type, scope_id)

    # ── Permissions ─────────────────────────────────────

    def get_permissions(self, scope_type: str, scope_id: str) -> Optional[frozenset[str]]:
        """Union of permission patterns granted at the scope.

        Returns None when the user holds no role there, and an empty set when
        the held roles grant nothing. Order is unspecified.
        """
        held = self._roles.get_roles(scope_type, scope_id)
        if not held:
            return None
        patterns: set[str] = set()
        for role in held:
            patterns.update(self._registry.get_permissions(role, scope_type))
        return frozenset(patterns)

    def has_permission(self, permission: str, scope_type: str, scope_id: str) -> bool:
        patterns = self.get_permissions(scope_type, scope_id)
        if patterns is None:
            logger.debug(
                "No roles for %s at %s:%s, denying %s",
                self._user_id,
                scope_type,
                scope_id,
                permission,
            )
            return False
        allowed = match_any_permission(patterns, permission)
        logger.debug(
            "Permission %s for %s at %s:%s: %s",
            permission,
            self._user_id,
            scope_type,
            scope_id,
            "allowed" if allowed else "denied",
        )
        return allowed

    def has_any_permission(self, permissions: Iterable[str], scope_type: str, scope_id: str) -> bool:
        patterns = self.get_permissions(scope_type, scope_id)
        if patterns is None:
            return False
        return any(match_any_permission(patterns, p) for p in permissions)

    def has_all_permissions(self, permissions: Iterable[str], scope_type: str, scope_id: str) -> bool:
        wanted = list(permissions)
        patterns = self.get_permissions(scope_type, scope_id)
        if patterns is None:
            return not wanted
        return all(match_any_permission(patterns, p) for p in wanted)

    # ── Assignability ───────────────────────────────────

    def can_assign_role(self, target_role: str, scope_type: str, scope_id: str) -> bool:
        return any(
            self._registry.can_role_assign(held, target_role, scope_type)
            for held in self._roles.get_roles(scope_type, scope_id)
        )

    def get_assignable_roles(self, scope_type: str, scope_id: str) -> Optional[frozenset[str]]:
        """Roles this user may grant at the scope, with ``*`` expanded.

        Returns None when the user holds no role there.
        """
        held = self._roles.get_roles(scope_type, scope_id)
        if not held:
            return None

        scope = self._registry.get_scope(scope_type)
        assignable: set[str] = set()
        for role in held:
            definition = self._registry.get_role(role, scope_type)
            if definition is None:
                continue
            for target in definition.can_assign:
                if target == WILDCARD:
                    if scope is not None:
                        assignable.update(scope.get_roles())
                else:
                    assignable.add(target)
        return frozenset(assignable)

    # ── Scope scans ─────────────────────────────────────

    def has_role_in_any_scope(self, role: str, scope_type: str) -> bool:
        if not role:
            return False
        return any(
            a.role == role and a.scope_type == scope_type for a in self._roles.assignments
        )

    def get_scopes_with_role(self, role: str, scope_type: str) -> list[str]:
        """Scope ids (assignment order) where the user holds ``role``.

        A wildcard assignment contributes ``"*"``.
        """
        if not role:
            return []
        return [
            a.scope_id
            for a in self._roles.assignments
            if a.role == role and a.scope_type == scope_type
        ]

    def get_scopes_with_any_role(self, scope_type: str) -> list[str]:
        """Distinct scope ids, first-seen order, where the user holds any role."""
        seen: set[str] = set()
        result: list[str] = []
        for a in self._roles.assignments:
            if a.scope_type != scope_type or a.scope_id in seen:
                continue
            seen.add(a.scope_id)
            result.append(a.scope_id)
        return result

    def is_empty(self) -> bool:
        return self._roles.is_empty()

    def __repr__(self) -> str:
        return f"Checker(user_id={self._user_id!r}, assignments={len(self._roles)})"


__all__ = ["Checker"]
