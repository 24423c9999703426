"""gRPC integration for contextroles.

Usage (in any service)::

    from contextroles.security import RoleRequirement, get_role_interceptors

    RPC_REQUIREMENTS = {
        "GetProject": RoleRequirement("project", permission="project.read"),
        "UpdateProject": RoleRequirement("project", permission="project.update"),
    }

    server = grpc.aio.server(
        interceptors=get_role_interceptors(service, RPC_REQUIREMENTS, service_name="Projects"),
    )

    # In a handler, the caller's checker is already bound:
    from contextroles.context import get_checker

    async def UpdateProject(self, request, context):
        checker = get_checker()
        ...

Configuration (env vars)::

    ROLES_ENFORCEMENT=off|warn|enforce   # default: warn
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Mapping

import grpc

from ..config import EnforcementMode
from .interceptors import (
    REQUEST_ID_METADATA_KEY,
    SCOPE_ID_METADATA_KEY,
    USER_ID_METADATA_KEY,
    RolePermissionInterceptor,
    RoleRequirement,
    _extract_rpc_name,
    _should_skip,
    check_requirement,
)

if TYPE_CHECKING:
    from ..service import AuthorizationService


def get_role_interceptors(
    service: AuthorizationService,
    rpc_requirements: Mapping[str, RoleRequirement],
    *,
    service_name: str = "Service",
    enforcement: EnforcementMode | None = None,
) -> list[grpc.aio.ServerInterceptor]:
    """Get gRPC server interceptors for role enforcement.

    Returns a list of interceptors to pass to ``grpc.aio.server()``.

    Args:
        service: Service used to load callers' roles.
        rpc_requirements: Mapping of RPC name -> RoleRequirement.
        service_name: Human-readable service name for log messages.
        enforcement: Overrides the service config's enforcement mode.
    """
    return [
        RolePermissionInterceptor(
            service,
            rpc_requirements,
            service_name=service_name,
            enforcement=enforcement,
        )
    ]


__all__ = [
    # Requirements
    "RoleRequirement",
    "check_requirement",
    # Interceptors
    "EnforcementMode",
    "RolePermissionInterceptor",
    "get_role_interceptors",
    "_extract_rpc_name",
    "_should_skip",
    # Metadata keys
    "REQUEST_ID_METADATA_KEY",
    "SCOPE_ID_METADATA_KEY",
    "USER_ID_METADATA_KEY",
]
