"""Indexed snapshot of one user's role assignments."""

from __future__ import annotations

from typing import Iterable

from .models import ANY_SCOPE_ID, RoleAssignment, scope_key


class UserRoles:
    """A user's assignments, indexed by ``"scope_type:scope_id"``.

    Built once from a list of assignments and never mutated afterwards.
    A wildcard assignment (``scope_id == "*"``) applies to every id of its
    scope type.
    """

    def __init__(self, user_id: str, assignments: Iterable[RoleAssignment] = ()) -> None:
        self._user_id = user_id
        self._assignments = tuple(assignments)
        index: dict[str, list[str]] = {}
        for assignment in self._assignments:
            key = scope_key(assignment.scope_type, assignment.scope_id)
            index.setdefault(key, []).append(assignment.role)
        self._index = {key: tuple(roles) for key, roles in index.items()}

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def assignments(self) -> tuple[RoleAssignment, ...]:
        return self._assignments

    def get_roles(self, scope_type: str, scope_id: str) -> tuple[str, ...]:
        """Roles at the exact scope followed by roles at its wildcard scope."""
        if not scope_type:
            return ()
        exact = self._index.get(scope_key(scope_type, scope_id), ())
        wildcard = self._index.get(scope_key(scope_type, ANY_SCOPE_ID), ())
        return exact + wildcard

    def has_role(self, role: str, scope_type: str, scope_id: str) -> bool:
        if not role:
            return False
        return role in self.get_roles(scope_type, scope_id)

    def is_empty(self) -> bool:
        return not self._assignments

    def __len__(self) -> int:
        return len(self._assignments)

    def __repr__(self) -> str:
        return f"UserRoles(user_id={self._user_id!r}, assignments={len(self._assignments)})"


__all__ = ["UserRoles"]
