"""gRPC interceptor for role and permission enforcement.

Provides:
- ``RoleRequirement`` - what an RPC needs: roles and/or permissions at a scope.
- ``check_requirement`` - standalone decision helper over a Checker.
- ``RolePermissionInterceptor`` - server interceptor mapping RPCs to requirements.
- ``_extract_rpc_name``, ``_should_skip`` - helper utilities.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping, Optional

import grpc

from ..checker import Checker
from ..config import EnforcementMode
from ..context import AuditContext, bind_audit_context, set_checker, set_user_id
from ..exceptions import ConfigurationError, ContextRolesError, get_grpc_status_code

if TYPE_CHECKING:
    from ..service import AuthorizationService

logger = logging.getLogger(__name__)

USER_ID_METADATA_KEY = "x-user-id"
SCOPE_ID_METADATA_KEY = "x-scope-id"
REQUEST_ID_METADATA_KEY = "x-request-id"

# Method prefixes that bypass role checks
_SKIP_PREFIXES = (
    "grpc.health.v1",
    "grpc.reflection.v1",
)


# ── Helpers ──────────────────────────────────────────────────────


def _extract_rpc_name(full_method: str) -> str:
    """Extract RPC name from fully-qualified method string.

    ``/projects.ProjectService/UpdateProject`` -> ``UpdateProject``
    """
    return full_method.rsplit("/", 1)[-1] if "/" in full_method else full_method


def _should_skip(method: str) -> bool:
    """Check if this method should skip role checks."""
    return any(prefix in method for prefix in _SKIP_PREFIXES)


# ── Requirements ─────────────────────────────────────────────────


@dataclass(frozen=True)
class RoleRequirement:
    """Authorization requirement for one RPC.

    Every condition that is set must hold: ``role`` must be held,
    ``permission`` must be granted, at least one of ``any_roles`` must be held
    and at least one of ``any_permissions`` must be granted.

    The scope id comes from ``scope_id`` when given, otherwise from the
    request metadata under ``scope_id_key``.

    Example::

        RoleRequirement(scope_type="project", permission="post.create")
        RoleRequirement(scope_type="organization", scope_id="*", role="owner")
        RoleRequirement(scope_type="project", any_roles=("editor", "admin"),
                        scope_id_key="x-project-id")
    """

    scope_type: str
    role: Optional[str] = None
    permission: Optional[str] = None
    any_roles: tuple[str, ...] = ()
    any_permissions: tuple[str, ...] = ()
    scope_id: Optional[str] = None
    scope_id_key: str = SCOPE_ID_METADATA_KEY

    def __post_init__(self) -> None:
        if not self.scope_type:
            raise ConfigurationError("requirement scope_type cannot be empty")
        if not (self.role or self.permission or self.any_roles or self.any_permissions):
            raise ConfigurationError(
                "requirement needs a role, a permission, any_roles or any_permissions",
                scope_type=self.scope_type,
            )

    def resolve_scope_id(self, metadata: Mapping[str, str]) -> str:
        """Scope id for this call ("" when missing)."""
        if self.scope_id:
            return self.scope_id
        return str(metadata.get(self.scope_id_key, "")).strip()


def check_requirement(checker: Checker, requirement: RoleRequirement, scope_id: str) -> str | None:
    """Check a requirement against a user's checker.

    Returns:
        None if allowed, or a human-readable denial reason.
    """
    scope_type = requirement.scope_type
    where = f"{scope_type}:{scope_id}"

    if requirement.role and not checker.can(requirement.role, scope_type, scope_id):
        return f"missing role {requirement.role} at {where}"

    if requirement.permission and not checker.has_permission(
        requirement.permission, scope_type, scope_id
    ):
        return f"missing permission {requirement.permission} at {where}"

    if requirement.any_roles and not checker.has_any_role(
        requirement.any_roles, scope_type, scope_id
    ):
        return f"none of roles {list(requirement.any_roles)} at {where}"

    if requirement.any_permissions and not checker.has_any_permission(
        requirement.any_permissions, scope_type, scope_id
    ):
        return f"none of permissions {list(requirement.any_permissions)} at {where}"

    return None


# ── Interceptor ──────────────────────────────────────────────────


class RolePermissionInterceptor(grpc.aio.ServerInterceptor):
    """gRPC server interceptor enforcing role/permission requirements per RPC.

    Sits before all handlers and:
    1. Logs caller identity (always, even when enforcement is off)
    2. Reads the user id from gRPC metadata (``x-user-id`` by default)
    3. Maps the RPC method to its ``RoleRequirement``
    4. Loads the user's checker from the service and checks the requirement
    5. Aborts with ``UNAUTHENTICATED`` / ``INVALID_ARGUMENT`` /
       ``PERMISSION_DENIED`` if not

    On the way through, the user id, checker and audit details are bound to
    the request context so handlers can use ``get_checker()`` and the service
    can attribute assignments to the caller.

    Unmapped RPCs are **denied** (fail-closed).

    Args:
        service: Service used to load the caller's role assignments.
        rpc_requirements: Mapping of RPC name -> RoleRequirement.
        service_name: Human-readable service name for log messages.
        enforcement: Three-state mode (off / warn / enforce).
            Defaults to the service config (``ROLES_ENFORCEMENT``).
        user_id_key: Metadata key carrying the authenticated user id.

    Usage::

        interceptor = RolePermissionInterceptor(
            service,
            {"UpdateProject": RoleRequirement("project", permission="project.update")},
            service_name="Projects",
            enforcement=EnforcementMode.WARN,   # safe rollout
        )
        server = grpc.aio.server(interceptors=[interceptor])
    """

    def __init__(
        self,
        service: AuthorizationService,
        rpc_requirements: Mapping[str, RoleRequirement],
        *,
        service_name: str = "Service",
        enforcement: EnforcementMode | None = None,
        user_id_key: str = USER_ID_METADATA_KEY,
    ) -> None:
        self._service = service
        self._requirements = dict(rpc_requirements)
        self._service_name = service_name
        self._mode = enforcement if enforcement is not None else service.config.enforcement
        self._user_id_key = user_id_key

        if self._mode != EnforcementMode.OFF:
            logger.info(
                "%s role interceptor mode: %s",
                self._service_name,
                self._mode.value,
            )

    @property
    def mode(self) -> EnforcementMode:
        return self._mode

    async def intercept_service(
        self,
        continuation: Any,
        handler_call_details: grpc.HandlerCallDetails,
    ) -> grpc.RpcMethodHandler:
        """Intercept incoming gRPC calls for role validation."""
        method = handler_call_details.method or ""

        if _should_skip(method):
            return await continuation(handler_call_details)

        rpc_name = _extract_rpc_name(method)
        metadata = dict(handler_call_details.invocation_metadata or [])
        user_id = str(metadata.get(self._user_id_key, "")).strip()

        # ── LOGGING (always active) ───────────────────────────────
        logger.info(
            "%s RPC %s | caller=%s",
            self._service_name,
            rpc_name,
            user_id or "anonymous",
        )

        if self._mode == EnforcementMode.OFF:
            self._bind(user_id, None, metadata)
            return await continuation(handler_call_details)

        # ── CHECK ─────────────────────────────────────────────────
        requirement = self._requirements.get(rpc_name)
        checker: Checker | None = None
        deny_reason: str | None = None
        deny_code: grpc.StatusCode = grpc.StatusCode.PERMISSION_DENIED

        if requirement is None:
            deny_reason = "RPC not mapped to a role requirement"
        elif not user_id:
            deny_reason = "no user id"
            deny_code = grpc.StatusCode.UNAUTHENTICATED
        else:
            scope_id = requirement.resolve_scope_id(metadata)
            if not scope_id:
                deny_reason = f"no scope id (expected metadata '{requirement.scope_id_key}')"
                deny_code = grpc.StatusCode.INVALID_ARGUMENT
            else:
                try:
                    checker = await self._service.get_checker(user_id)
                except ContextRolesError as e:
                    deny_reason = f"cannot load roles: [{e.code}] {e.message}"
                    deny_code = get_grpc_status_code(e)
                except Exception as e:
                    logger.exception(
                        "%s failed to load roles for %s",
                        self._service_name,
                        user_id,
                    )
                    deny_reason = f"cannot load roles: {e}"
                    deny_code = grpc.StatusCode.UNAVAILABLE
                else:
                    deny_reason = check_requirement(checker, requirement, scope_id)

        if deny_reason:
            # ── WARN mode: log but allow ──────────────────────────
            if self._mode == EnforcementMode.WARN:
                logger.warning(
                    "%s WARN_DENIED '%s' for %s: %s (would block in enforce mode)",
                    self._service_name,
                    rpc_name,
                    user_id or "anonymous",
                    deny_reason,
                )
                self._bind(user_id, checker, metadata)
                return await continuation(handler_call_details)

            # ── ENFORCE mode: actually block ──────────────────────
            logger.warning(
                "%s DENIED '%s' for %s: %s",
                self._service_name,
                rpc_name,
                user_id or "anonymous",
                deny_reason,
            )

            _deny_msg = f"{self._service_name}: {rpc_name} denied: {deny_reason}"
            _deny_status = deny_code

            async def _denied(request, context):
                await context.abort(_deny_status, _deny_msg)

            return grpc.unary_unary_rpc_method_handler(_denied)

        logger.debug(
            "%s ALLOWED '%s' for %s",
            self._service_name,
            rpc_name,
            user_id,
        )

        self._bind(user_id, checker, metadata)
        return await continuation(handler_call_details)

    @staticmethod
    def _bind(user_id: str, checker: Checker | None, metadata: Mapping[str, str]) -> None:
        # grpc.aio resolves interceptors and runs the handler in the same task.
        if not user_id:
            return
        set_user_id(user_id)
        set_checker(checker)
        forwarded = str(metadata.get("x-forwarded-for", ""))
        bind_audit_context(
            AuditContext(
                actor_id=user_id,
                ip_address=forwarded.split(",")[0].strip() or str(metadata.get("x-real-ip", "")),
                user_agent=str(metadata.get("user-agent", "")),
                request_id=str(metadata.get(REQUEST_ID_METADATA_KEY, "")),
            )
        )


__all__ = [
    "REQUEST_ID_METADATA_KEY",
    "RolePermissionInterceptor",
    "RoleRequirement",
    "SCOPE_ID_METADATA_KEY",
    "USER_ID_METADATA_KEY",
    "_extract_rpc_name",
    "_should_skip",
    "check_requirement",
]
