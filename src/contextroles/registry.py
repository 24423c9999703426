"""Role catalog: scope types, roles, permission grants and assignability.

The registry is built once at startup, either fluently::

    registry = Registry()
    (
        registry.define_scope("organization")
        .role("owner").permissions("*").can_assign("*")
        .role("admin").permissions("org.*", "project.*").can_assign("member")
        .role("member").permissions("org.read", "project.read")
        .define_scope("project")
        .parent_scope("organization")
        .role("editor").permissions("post.*")
    )
    registry.freeze()

or declaratively from a mapping (for example parsed YAML)::

    registry = build_registry(RegistrySpec.model_validate(data))

After :meth:`Registry.freeze` every write raises ``ConfigurationError`` and
reads need no synchronization.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Mapping, Optional, Union

from pydantic import BaseModel, Field, field_validator

from .exceptions import (
    ConfigurationError,
    InvalidPermissionError,
    InvalidRoleError,
    InvalidScopeError,
)
from .permissions.matcher import WILDCARD, validate_permission

logger = logging.getLogger(__name__)


# ── Definitions ─────────────────────────────────────────


@dataclass
class RoleDefinition:
    """A role declared within one scope type.

    ``permissions`` and ``can_assign`` keep declaration order and duplicates.
    ``"*"`` in ``can_assign`` means any role of the same scope type.
    """

    name: str
    scope_name: str
    permissions: list[str] = field(default_factory=list)
    can_assign: list[str] = field(default_factory=list)

    def can_assign_role(self, target: str) -> bool:
        return WILDCARD in self.can_assign or target in self.can_assign


@dataclass
class ScopeDefinition:
    """A scope type and its roles.

    ``parent_scope`` is informational: it does not grant anything and is not
    checked against the registry.
    """

    name: str
    parent_scope: Optional[str] = None
    roles: dict[str, RoleDefinition] = field(default_factory=dict)

    def get_role(self, name: str) -> Optional[RoleDefinition]:
        return self.roles.get(name)

    def get_roles(self) -> list[str]:
        """Role names in declaration order."""
        return list(self.roles)


# ── Registry ────────────────────────────────────────────


class Registry:
    """Catalog of scope types keyed by name."""

    def __init__(self) -> None:
        self._scopes: dict[str, ScopeDefinition] = {}
        self._lock = threading.RLock()
        self._frozen = False

    # -- setup --

    def define_scope(self, name: str) -> ScopeBuilder:
        """Create (or replace) a scope type and return its builder."""
        if not name:
            raise ConfigurationError("scope name cannot be empty")
        with self._lock:
            self._check_writable()
            if name in self._scopes:
                logger.debug("Redefining scope %s", name)
            scope = ScopeDefinition(name=name)
            self._scopes[name] = scope
        logger.debug("Defined scope %s", name)
        return ScopeBuilder(self, scope)

    def freeze(self) -> Registry:
        """Mark setup as complete. Further writes raise ConfigurationError."""
        with self._lock:
            self._frozen = True
        logger.debug(
            "Registry frozen: %d scopes, %d roles",
            len(self._scopes),
            sum(len(s.roles) for s in self._scopes.values()),
        )
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _check_writable(self) -> None:
        if self._frozen:
            raise ConfigurationError("registry is frozen")

    # -- validation --

    def validate_scope(self, scope_type: str) -> None:
        """Raise InvalidScopeError if ``scope_type`` is not defined."""
        if scope_type not in self._scopes:
            raise InvalidScopeError(f"invalid scope: {scope_type}", scope_type=scope_type)

    def validate_role(self, role: str, scope_type: str) -> None:
        """Raise InvalidScopeError or InvalidRoleError for an undefined pair."""
        scope = self._scopes.get(scope_type)
        if scope is None:
            raise InvalidScopeError(f"invalid scope: {scope_type}", scope_type=scope_type)
        if role not in scope.roles:
            raise InvalidRoleError(
                f"invalid role: {role} in scope {scope_type}",
                role=role,
                scope_type=scope_type,
            )

    # -- queries --

    def get_permissions(self, role: str, scope_type: str) -> tuple[str, ...]:
        """Permission patterns granted by ``role``; empty when undefined."""
        definition = self.get_role(role, scope_type)
        if definition is None:
            return ()
        return tuple(definition.permissions)

    def can_role_assign(self, assigner_role: str, target_role: str, scope_type: str) -> bool:
        """Whether ``assigner_role`` may grant ``target_role`` within ``scope_type``.

        Only the declared edge counts: assignability is neither transitive nor
        inherited from other scope types.
        """
        definition = self.get_role(assigner_role, scope_type)
        if definition is None:
            return False
        return definition.can_assign_role(target_role)

    def get_scope(self, name: str) -> Optional[ScopeDefinition]:
        return self._scopes.get(name)

    def get_scopes(self) -> list[str]:
        """Scope type names in definition order."""
        return list(self._scopes)

    def get_role(self, role: str, scope_type: str) -> Optional[RoleDefinition]:
        scope = self._scopes.get(scope_type)
        if scope is None:
            return None
        return scope.roles.get(role)

    def has_scope(self, name: str) -> bool:
        return name in self._scopes

    def __contains__(self, name: object) -> bool:
        return name in self._scopes

    def __len__(self) -> int:
        return len(self._scopes)

    def __iter__(self) -> Iterator[ScopeDefinition]:
        return iter(list(self._scopes.values()))

    def __repr__(self) -> str:
        state = "frozen" if self._frozen else "open"
        return f"Registry(scopes={self.get_scopes()!r}, {state})"


# ── Builders ────────────────────────────────────────────


class ScopeBuilder:
    """Fluent handle on a scope being defined."""

    def __init__(self, registry: Registry, scope: ScopeDefinition) -> None:
        self._registry = registry
        self._scope = scope

    @property
    def registry(self) -> Registry:
        return self._registry

    @property
    def definition(self) -> ScopeDefinition:
        return self._scope

    def parent_scope(self, name: str) -> ScopeBuilder:
        with self._registry._lock:
            self._registry._check_writable()
            self._check_current()
            self._scope.parent_scope = name
        return self

    def role(self, name: str) -> RoleBuilder:
        """Create (or replace) a role in this scope and return its builder."""
        if not name:
            raise ConfigurationError("role name cannot be empty", scope_type=self._scope.name)
        with self._registry._lock:
            self._registry._check_writable()
            self._check_current()
            definition = RoleDefinition(name=name, scope_name=self._scope.name)
            self._scope.roles[name] = definition
        logger.debug("Defined role %s in scope %s", name, self._scope.name)
        return RoleBuilder(self, definition)

    def define_scope(self, name: str) -> ScopeBuilder:
        return self._registry.define_scope(name)

    def _check_current(self) -> None:
        # A later define_scope with the same name replaces this definition.
        if self._registry._scopes.get(self._scope.name) is not self._scope:
            raise ConfigurationError(
                "scope was redefined; builder is stale", scope_type=self._scope.name
            )


class RoleBuilder:
    """Fluent handle on a role being defined.

    ``permissions`` and ``can_assign`` append; calling them twice accumulates.
    """

    def __init__(self, scope: ScopeBuilder, role: RoleDefinition) -> None:
        self._scope = scope
        self._role = role

    @property
    def scope(self) -> ScopeBuilder:
        return self._scope

    @property
    def definition(self) -> RoleDefinition:
        return self._role

    def permissions(self, *patterns: str) -> RoleBuilder:
        """Grant permission patterns. Each is validated before any is added."""
        for pattern in patterns:
            validate_permission(pattern)
        registry = self._scope.registry
        with registry._lock:
            registry._check_writable()
            self._check_current()
            self._role.permissions.extend(patterns)
        return self

    def can_assign(self, *roles: str) -> RoleBuilder:
        registry = self._scope.registry
        with registry._lock:
            registry._check_writable()
            self._check_current()
            self._role.can_assign.extend(roles)
        return self

    def role(self, name: str) -> RoleBuilder:
        return self._scope.role(name)

    def define_scope(self, name: str) -> ScopeBuilder:
        return self._scope.define_scope(name)

    def _check_current(self) -> None:
        self._scope._check_current()
        if self._scope.definition.roles.get(self._role.name) is not self._role:
            raise ConfigurationError(
                "role was redefined; builder is stale",
                role=self._role.name,
                scope_type=self._role.scope_name,
            )


# ── Declarative form ────────────────────────────────────


class RoleSpec(BaseModel):
    """Declarative role definition."""

    name: str = Field(min_length=1, description="Role name, unique within its scope")
    permissions: list[str] = Field(default_factory=list, description="Permission patterns")
    can_assign: list[str] = Field(
        default_factory=list,
        description="Roles of the same scope this role may grant ('*' = any)",
    )

    @field_validator("permissions")
    @classmethod
    def validate_patterns(cls, v: list[str]) -> list[str]:
        for pattern in v:
            try:
                validate_permission(pattern)
            except InvalidPermissionError as e:
                raise ValueError(e.message) from e
        return v

    model_config = {"extra": "forbid"}


class ScopeSpec(BaseModel):
    """Declarative scope definition."""

    name: str = Field(min_length=1, description="Scope type name")
    parent_scope: Optional[str] = Field(default=None, description="Informational parent scope type")
    roles: list[RoleSpec] = Field(default_factory=list)

    model_config = {"extra": "forbid"}


class RegistrySpec(BaseModel):
    """A whole role catalog, loadable from a plain mapping."""

    scopes: list[ScopeSpec] = Field(default_factory=list)

    model_config = {"extra": "forbid"}


RegistrySource = Union[RegistrySpec, Mapping, Iterable[ScopeSpec]]


def build_registry(specs: RegistrySource, *, freeze: bool = True) -> Registry:
    """Build a registry from declarative specs.

    Args:
        specs: A RegistrySpec, a mapping accepted by ``RegistrySpec``, or an
            iterable of ScopeSpec.
        freeze: Freeze the registry before returning it (default True).

    Returns:
        A registry equal to the one the fluent builder would produce.
    """
    if isinstance(specs, RegistrySpec):
        scopes = specs.scopes
    elif isinstance(specs, Mapping):
        scopes = RegistrySpec.model_validate(specs).scopes
    else:
        scopes = list(specs)

    registry = Registry()
    for scope_spec in scopes:
        builder = registry.define_scope(scope_spec.name)
        if scope_spec.parent_scope:
            builder.parent_scope(scope_spec.parent_scope)
        for role_spec in scope_spec.roles:
            builder.role(role_spec.name).permissions(*role_spec.permissions).can_assign(
                *role_spec.can_assign
            )

    if freeze:
        registry.freeze()
    return registry


__all__ = [
    "Registry",
    "RegistrySpec",
    "RoleBuilder",
    "RoleDefinition",
    "RoleSpec",
    "ScopeBuilder",
    "ScopeDefinition",
    "ScopeSpec",
    "build_registry",
]
