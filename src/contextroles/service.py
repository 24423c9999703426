"""Assignment workflow on top of a RoleStore.

:class:`AuthorizationService` loads assignments from the store, builds
checkers, and runs the assign/revoke workflow: validate against the registry,
check the actor's assignability, mutate the store, and record an audit entry.

The actor is taken from the request context (see
:mod:`contextroles.context`)::

    service = AuthorizationService(registry, store)

    with request_context(user_id="admin_1"):
        await service.assign("user_2", "member", "organization", "org_1")

    checker = await service.get_checker("user_2")
    checker.has_permission("org.read", "organization", "org_1")  # True
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Iterable, Optional

from .checker import Checker
from .config import RolesConfig
from .context import get_actor_id, get_audit_context, get_user_id
from .exceptions import (
    CannotAssignError,
    MissingActorError,
    MissingUserError,
    RoleAlreadyAssignedError,
    RoleNotAssignedError,
    StorageError,
    TransientStorageError,
)
from .logging import get_roles_logger
from .models import (
    AuditAction,
    AuditEntry,
    AuditLogFilter,
    RoleAssignment,
    ScopeLink,
    scope_key,
)
from .registry import Registry
from .store import RoleStore
from .user_roles import UserRoles

logger = logging.getLogger(__name__)


def _assignment_key(a: RoleAssignment) -> tuple[str, str, str, str]:
    return a.user_id, a.role, a.scope_type, a.scope_id


class AuthorizationService:
    """Role assignment workflow and store-backed authorization queries."""

    def __init__(
        self,
        registry: Registry,
        store: RoleStore,
        config: Optional[RolesConfig] = None,
    ) -> None:
        self._registry = registry
        self._store = store
        self._config = config or RolesConfig()
        self._log = get_roles_logger(__name__)

    @property
    def registry(self) -> Registry:
        return self._registry

    @property
    def store(self) -> RoleStore:
        return self._store

    @property
    def config(self) -> RolesConfig:
        return self._config

    # ── Loading ─────────────────────────────────────────

    async def get_user_roles(self, user_id: str) -> UserRoles:
        assignments = await self._store.list_user_assignments(user_id)
        return UserRoles(user_id, assignments)

    async def get_checker(self, user_id: str) -> Checker:
        roles = await self.get_user_roles(user_id)
        return Checker(user_id, roles, self._registry, self)

    async def get_checker_from_context(self) -> Checker:
        """Build a checker for the user bound to the request context.

        Raises:
            MissingUserError: No user id in context.
        """
        user_id = get_user_id()
        if not user_id:
            raise MissingUserError()
        return await self.get_checker(user_id)

    # ── Queries ─────────────────────────────────────────

    async def can(self, user_id: str, role: str, scope_type: str, scope_id: str) -> bool:
        return (await self.get_user_roles(user_id)).has_role(role, scope_type, scope_id)

    async def has_permission(
        self, user_id: str, permission: str, scope_type: str, scope_id: str
    ) -> bool:
        checker = await self.get_checker(user_id)
        return checker.has_permission(permission, scope_type, scope_id)

    async def has_any_role(
        self, user_id: str, roles: Iterable[str], scope_type: str, scope_id: str
    ) -> bool:
        checker = await self.get_checker(user_id)
        return checker.has_any_role(roles, scope_type, scope_id)

    async def can_assign_role(
        self, user_id: str, target_role: str, scope_type: str, scope_id: str
    ) -> bool:
        checker = await self.get_checker(user_id)
        return checker.can_assign_role(target_role, scope_type, scope_id)

    async def get_scope_members(self, scope_type: str, scope_id: str) -> list[RoleAssignment]:
        return list(await self._store.list_scope_assignments(scope_type, scope_id))

    async def get_scope_members_with_role(
        self, role: str, scope_type: str, scope_id: str
    ) -> list[RoleAssignment]:
        return list(await self._store.list_scope_assignments(scope_type, scope_id, role=role))

    async def get_child_scopes(
        self,
        user_id: str,
        child_scope_type: str,
        parent_scope_type: str,
        parent_scope_id: str,
    ) -> list[str]:
        """Child scope ids under a parent where the user holds any role.

        Example::

            await service.get_child_scopes(user_id, "project", "organization", org_id)
        """
        return await self._child_scopes(
            user_id, None, child_scope_type, parent_scope_type, parent_scope_id
        )

    async def get_child_scopes_with_role(
        self,
        user_id: str,
        role: str,
        child_scope_type: str,
        parent_scope_type: str,
        parent_scope_id: str,
    ) -> list[str]:
        return await self._child_scopes(
            user_id, role, child_scope_type, parent_scope_type, parent_scope_id
        )

    async def _child_scopes(
        self,
        user_id: str,
        role: Optional[str],
        child_scope_type: str,
        parent_scope_type: str,
        parent_scope_id: str,
    ) -> list[str]:
        linked = set(
            await self._store.list_child_scope_ids(
                parent_scope_type, parent_scope_id, child_scope_type
            )
        )
        seen: set[str] = set()
        result: list[str] = []
        for a in await self._store.list_user_assignments(user_id):
            if a.scope_type != child_scope_type or (role is not None and a.role != role):
                continue
            under_parent = a.scope_id in linked or (
                a.parent_scope_type == parent_scope_type
                and a.parent_scope_id == parent_scope_id
            )
            if under_parent and a.scope_id not in seen:
                seen.add(a.scope_id)
                result.append(a.scope_id)
        return result

    async def get_audit_log(self, filter: Optional[AuditLogFilter] = None) -> list[AuditEntry]:
        return list(await self._store.list_audit(filter or AuditLogFilter()))

    # ── Hierarchy ───────────────────────────────────────

    async def set_scope_parent(
        self,
        scope_type: str,
        scope_id: str,
        parent_scope_type: str,
        parent_scope_id: str,
    ) -> None:
        """Record that a scope instance lives under a parent scope instance.

        Example::

            await service.set_scope_parent("project", project_id, "organization", org_id)
        """
        self._registry.validate_scope(scope_type)
        self._registry.validate_scope(parent_scope_type)
        await self._store.set_scope_parent(
            ScopeLink(scope_type, scope_id, parent_scope_type, parent_scope_id)
        )
        logger.debug(
            "Linked %s under %s",
            scope_key(scope_type, scope_id),
            scope_key(parent_scope_type, parent_scope_id),
        )

    # ── Assignment workflow ─────────────────────────────

    async def assign(self, user_id: str, role: str, scope_type: str, scope_id: str) -> None:
        """Grant ``role`` to ``user_id`` at the scope on behalf of the context actor.

        Raises:
            InvalidScopeError / InvalidRoleError: Undefined scope type or role.
            MissingActorError: No actor in the request context.
            CannotAssignError: The actor may not grant this role here.
            RoleAlreadyAssignedError: The user already holds the role here.
        """
        self._registry.validate_role(role, scope_type)
        actor_id, actor_roles = await self._authorize_actor(
            "assign", user_id, role, scope_type, scope_id
        )

        previous_roles = await self._exact_role_names(user_id, scope_type, scope_id)
        if role in previous_roles:
            raise RoleAlreadyAssignedError(
                "user already has this role",
                user_id=user_id,
                role=role,
                scope_type=scope_type,
                scope_id=scope_id,
            )

        parent_type, parent_id = await self._parent_fields(scope_type, scope_id)
        await self._store.create_assignment(
            RoleAssignment(
                user_id=user_id,
                role=role,
                scope_type=scope_type,
                scope_id=scope_id,
                parent_scope_type=parent_type,
                parent_scope_id=parent_id,
            )
        )
        self._log.info(
            "Assigned %s to %s",
            role,
            user_id,
            actor_id=actor_id,
            scope=scope_key(scope_type, scope_id),
        )

        await self._write_audit(
            AuditAction.ASSIGNED,
            actor_id=actor_id,
            user_id=user_id,
            role=role,
            scope_type=scope_type,
            scope_id=scope_id,
            actor_roles=actor_roles.get_roles(scope_type, scope_id),
            previous_roles=previous_roles,
            new_roles=[*previous_roles, role],
        )

    async def revoke(self, user_id: str, role: str, scope_type: str, scope_id: str) -> None:
        """Remove ``role`` from ``user_id`` at the scope on behalf of the context actor.

        Revoking needs the same assignability edge as granting.

        Raises:
            RoleNotAssignedError: The user does not hold the role here, or the
                store deleted nothing.
        """
        self._registry.validate_role(role, scope_type)
        actor_id, actor_roles = await self._authorize_actor(
            "revoke", user_id, role, scope_type, scope_id
        )

        previous_roles = await self._exact_role_names(user_id, scope_type, scope_id)
        not_assigned = RoleNotAssignedError(
            "user does not have this role",
            user_id=user_id,
            role=role,
            scope_type=scope_type,
            scope_id=scope_id,
        )
        if role not in previous_roles:
            raise not_assigned

        deleted = await self._store.delete_assignment(user_id, role, scope_type, scope_id)
        if not deleted:
            raise not_assigned
        self._log.info(
            "Revoked %s from %s",
            role,
            user_id,
            actor_id=actor_id,
            scope=scope_key(scope_type, scope_id),
        )

        await self._write_audit(
            AuditAction.REVOKED,
            actor_id=actor_id,
            user_id=user_id,
            role=role,
            scope_type=scope_type,
            scope_id=scope_id,
            actor_roles=actor_roles.get_roles(scope_type, scope_id),
            previous_roles=previous_roles,
            new_roles=[r for r in previous_roles if r != role],
        )

    async def revoke_all(self, user_id: str, scope_type: str, scope_id: str) -> list[str]:
        """Revoke every role ``user_id`` holds at exactly this scope.

        Each role goes through :meth:`revoke` so it gets its own audit entry.
        Failures are logged and skipped.

        Returns:
            The roles that were revoked.
        """
        revoked: list[str] = []
        for role in await self._exact_role_names(user_id, scope_type, scope_id):
            try:
                await self.revoke(user_id, role, scope_type, scope_id)
            except Exception as e:
                logger.warning(
                    "Failed to revoke %s from %s at %s: %s",
                    role,
                    user_id,
                    scope_key(scope_type, scope_id),
                    e,
                )
                continue
            revoked.append(role)
        return revoked

    async def assign_with_retry(
        self,
        user_id: str,
        role: str,
        scope_type: str,
        scope_id: str,
        *,
        base_delay: float = 1.0,
    ) -> None:
        """:meth:`assign`, retried on TransientStorageError.

        Up to ``config.assign_max_attempts`` attempts with exponential backoff
        and jitter between them. Any other error is raised immediately.
        """
        await self._retry_transient(
            lambda: self.assign(user_id, role, scope_type, scope_id),
            f"assign {role} to {user_id}",
            base_delay,
        )

    # ── Batch workflow ──────────────────────────────────

    async def assign_multiple(self, assignments: Iterable[RoleAssignment]) -> None:
        """Assign several roles as one unit.

        Every item is validated and authorized against the context actor
        before anything is written. If a store write fails midway, the
        assignments already created are deleted again and the error is
        re-raised. Parent fields on the input are ignored and looked up like
        :meth:`assign` does.

        Example::

            await service.assign_multiple([
                RoleAssignment("user_1", "admin", "organization", "org_1"),
                RoleAssignment("user_2", "member", "organization", "org_1"),
            ])

        Raises:
            RoleAlreadyAssignedError: An item is already held, or repeated
                within the batch.
        """
        batch = list(assignments)
        if not batch:
            return
        for item in batch:
            self._registry.validate_role(item.role, item.scope_type)
        actor_id, actor_roles = await self._load_actor("assign")

        held: dict[tuple[str, str, str], list[str]] = {}
        previous: list[list[str]] = []
        for item in batch:
            self._check_actor("assign", actor_id, actor_roles, item)
            key = (item.user_id, item.scope_type, item.scope_id)
            if key not in held:
                held[key] = [a.role for a in await self._exact_assignments(*key)]
            if item.role in held[key]:
                raise RoleAlreadyAssignedError(
                    "user already has this role",
                    user_id=item.user_id,
                    role=item.role,
                    scope_type=item.scope_type,
                    scope_id=item.scope_id,
                )
            previous.append(list(held[key]))
            held[key].append(item.role)

        created: list[RoleAssignment] = []
        try:
            for item in batch:
                parent_type, parent_id = await self._parent_fields(item.scope_type, item.scope_id)
                assignment = RoleAssignment(
                    user_id=item.user_id,
                    role=item.role,
                    scope_type=item.scope_type,
                    scope_id=item.scope_id,
                    parent_scope_type=parent_type,
                    parent_scope_id=parent_id,
                )
                await self._store.create_assignment(assignment)
                created.append(assignment)
        except Exception:
            logger.warning(
                "Batch assign failed after %d of %d items, rolling back",
                len(created),
                len(batch),
            )
            for assignment in reversed(created):
                await self._undo(self._store.delete_assignment(*_assignment_key(assignment)))
            raise

        self._log.info("Assigned %d roles", len(batch), actor_id=actor_id)
        for item, before in zip(batch, previous):
            await self._write_audit(
                AuditAction.BULK_ASSIGNED,
                actor_id=actor_id,
                user_id=item.user_id,
                role=item.role,
                scope_type=item.scope_type,
                scope_id=item.scope_id,
                actor_roles=actor_roles.get_roles(item.scope_type, item.scope_id),
                previous_roles=before,
                new_roles=[*before, item.role],
            )

    async def revoke_multiple(self, revocations: Iterable[RoleAssignment]) -> list[RoleAssignment]:
        """Revoke several roles as one unit.

        Items the user does not hold are skipped. Every item must be
        revocable by the context actor. If a delete fails midway, the
        assignments already deleted are created again and the error is
        re-raised.

        Returns:
            The stored assignments that were removed.
        """
        batch = list(revocations)
        if not batch:
            return []
        for item in batch:
            self._registry.validate_role(item.role, item.scope_type)
        actor_id, actor_roles = await self._load_actor("revoke")

        held: dict[tuple[str, str, str], list[RoleAssignment]] = {}
        pending: list[tuple[RoleAssignment, list[str]]] = []
        for item in batch:
            self._check_actor("revoke", actor_id, actor_roles, item)
            key = (item.user_id, item.scope_type, item.scope_id)
            if key not in held:
                held[key] = list(await self._exact_assignments(*key))
            stored = next((a for a in held[key] if a.role == item.role), None)
            if stored is None:
                logger.debug(
                    "Skipping revoke of %s from %s at %s: not assigned",
                    item.role,
                    item.user_id,
                    scope_key(item.scope_type, item.scope_id),
                )
                continue
            pending.append((stored, [a.role for a in held[key]]))
            held[key].remove(stored)

        removed: list[RoleAssignment] = []
        try:
            for stored, _ in pending:
                if not await self._store.delete_assignment(*_assignment_key(stored)):
                    raise RoleNotAssignedError(
                        "user does not have this role",
                        user_id=stored.user_id,
                        role=stored.role,
                        scope_type=stored.scope_type,
                        scope_id=stored.scope_id,
                    )
                removed.append(stored)
        except Exception:
            logger.warning(
                "Batch revoke failed after %d of %d items, rolling back",
                len(removed),
                len(pending),
            )
            for stored in reversed(removed):
                await self._undo(self._store.create_assignment(stored))
            raise

        self._log.info("Revoked %d roles", len(removed), actor_id=actor_id)
        for stored, before in pending:
            await self._write_audit(
                AuditAction.BULK_REVOKED,
                actor_id=actor_id,
                user_id=stored.user_id,
                role=stored.role,
                scope_type=stored.scope_type,
                scope_id=stored.scope_id,
                actor_roles=actor_roles.get_roles(stored.scope_type, stored.scope_id),
                previous_roles=before,
                new_roles=[r for r in before if r != stored.role],
            )
        return removed

    async def assign_multiple_with_retry(
        self,
        assignments: Iterable[RoleAssignment],
        *,
        base_delay: float = 1.0,
    ) -> None:
        """:meth:`assign_multiple`, retried on TransientStorageError."""
        batch = list(assignments)
        await self._retry_transient(
            lambda: self.assign_multiple(batch),
            f"assign {len(batch)} roles",
            base_delay,
        )

    # ── Counts ──────────────────────────────────────────

    async def check_exists(self, user_id: str, role: str, scope_type: str, scope_id: str) -> bool:
        """Whether the exact assignment is stored. Store errors read as False."""
        try:
            assignments = await self._exact_assignments(user_id, scope_type, scope_id)
        except StorageError as e:
            logger.warning(
                "Existence check for %s of %s at %s failed: %s",
                role,
                user_id,
                scope_key(scope_type, scope_id),
                e,
            )
            return False
        return any(a.role == role for a in assignments)

    async def count_roles(self, user_id: str, scope_type: str, scope_id: str) -> int:
        """Assignments at the scope plus wildcard assignments of the scope type."""
        return sum(
            1
            for a in await self._store.list_user_assignments(user_id)
            if a.scope_type == scope_type and (a.scope_id == scope_id or a.is_wildcard)
        )

    async def count_all_roles(self) -> int:
        return await self._store.count_assignments()

    # ── Helpers ─────────────────────────────────────────

    async def _authorize_actor(
        self,
        action: str,
        user_id: str,
        role: str,
        scope_type: str,
        scope_id: str,
    ) -> tuple[str, UserRoles]:
        actor_id, actor_roles = await self._load_actor(action)
        self._check_actor(
            action, actor_id, actor_roles, RoleAssignment(user_id, role, scope_type, scope_id)
        )
        return actor_id, actor_roles

    async def _load_actor(self, action: str) -> tuple[str, UserRoles]:
        actor_id = get_actor_id()
        if not actor_id:
            raise MissingActorError(f"actor ID required for role {action}")
        return actor_id, await self.get_user_roles(actor_id)

    def _check_actor(
        self,
        action: str,
        actor_id: str,
        actor_roles: UserRoles,
        target: RoleAssignment,
    ) -> None:
        if actor_id == target.user_id and self._config.allow_self_assignment:
            return

        actor = Checker(actor_id, actor_roles, self._registry, self)
        if not actor.can_assign_role(target.role, target.scope_type, target.scope_id):
            self._log.warning(
                "Actor cannot %s %s to %s",
                action,
                target.role,
                target.user_id,
                actor_id=actor_id,
                scope=scope_key(target.scope_type, target.scope_id),
            )
            raise CannotAssignError(
                f"actor cannot {action} this role",
                actor_id=actor_id,
                role=target.role,
                scope_type=target.scope_type,
                scope_id=target.scope_id,
            )

    async def _exact_assignments(
        self, user_id: str, scope_type: str, scope_id: str
    ) -> list[RoleAssignment]:
        return [
            a
            for a in await self._store.list_user_assignments(user_id)
            if a.scope_type == scope_type and a.scope_id == scope_id
        ]

    async def _exact_role_names(self, user_id: str, scope_type: str, scope_id: str) -> list[str]:
        return [a.role for a in await self._exact_assignments(user_id, scope_type, scope_id)]

    async def _parent_fields(self, scope_type: str, scope_id: str) -> tuple[str, str]:
        scope_def = self._registry.get_scope(scope_type)
        if scope_def is None or not scope_def.parent_scope:
            return "", ""
        parent = await self._store.get_scope_parent(scope_type, scope_id)
        if parent is None:
            return "", ""
        return parent.type, parent.id

    async def _retry_transient(
        self,
        operation: Callable[[], Awaitable[None]],
        what: str,
        base_delay: float,
    ) -> None:
        max_attempts = self._config.assign_max_attempts
        for attempt in range(max_attempts):
            try:
                await operation()
                return
            except TransientStorageError as e:
                if attempt == max_attempts - 1:
                    logger.error("%s failed after %d attempts: %s", what, max_attempts, e)
                    raise
                backoff = base_delay * (1 << attempt)
                jitter = backoff * 0.1 * (0.5 + random.random())
                logger.warning(
                    "Transient error on %s (attempt %d/%d), retrying in %.2fs: %s",
                    what,
                    attempt + 1,
                    max_attempts,
                    backoff + jitter,
                    e,
                )
                await asyncio.sleep(backoff + jitter)

    @staticmethod
    async def _undo(step: Awaitable[Any]) -> None:
        # Rollback is best effort; the original error is what the caller sees.
        try:
            await step
        except Exception:
            logger.exception("Rollback step failed")

    async def _write_audit(
        self,
        action: AuditAction,
        *,
        actor_id: str,
        user_id: str,
        role: str,
        scope_type: str,
        scope_id: str,
        actor_roles: Iterable[str],
        previous_roles: list[str],
        new_roles: list[str],
    ) -> None:
        audit = get_audit_context()
        entry = AuditEntry(
            actor_id=actor_id,
            action=action,
            target_user_id=user_id,
            role=role,
            scope_type=scope_type,
            scope_id=scope_id,
            actor_roles=list(actor_roles),
            previous_roles=previous_roles,
            new_roles=new_roles,
            ip_address=audit.ip_address,
            user_agent=audit.user_agent,
            request_id=audit.request_id,
        )
        try:
            await self._store.write_audit(entry)
        except Exception:
            logger.exception(
                "Failed to write audit entry for %s of %s to %s",
                action.value,
                role,
                user_id,
            )


__all__ = ["AuthorizationService"]
