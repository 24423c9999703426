from .checker import Checker
from .config import EnforcementMode, LogLevel, RolesConfig, load_config_from_env
from .exceptions import (
    CannotAssignError,
    ConfigurationError,
    ContextRolesError,
    InvalidPermissionError,
    InvalidRoleError,
    InvalidScopeError,
    MissingActorError,
    MissingUserError,
    RoleAlreadyAssignedError,
    RoleNotAssignedError,
    StorageError,
    TransientStorageError,
    UnauthorizedError,
)
from .logging import (
    RolesFormatter,
    RolesLoggerAdapter,
    get_roles_logger,
    safe_preview,
    setup_logging,
)
from .models import (
    ANY_SCOPE_ID,
    AuditAction,
    AuditEntry,
    AuditLogFilter,
    RoleAssignment,
    Scope,
    ScopeLink,
)
from .permissions import (
    expand_permissions,
    is_valid_permission,
    match_any_permission,
    match_permission,
    validate_permission,
)
from .registry import (
    Registry,
    RegistrySpec,
    RoleDefinition,
    RoleSpec,
    ScopeDefinition,
    ScopeSpec,
    build_registry,
)
from .service import AuthorizationService
from .store import RoleStore
from .user_roles import UserRoles

__all__ = [
    'ANY_SCOPE_ID',
    'AuditAction',
    'AuditEntry',
    'AuditLogFilter',
    'AuthorizationService',
    'CannotAssignError',
    'Checker',
    'ConfigurationError',
    'ContextRolesError',
    'EnforcementMode',
    'InvalidPermissionError',
    'InvalidRoleError',
    'InvalidScopeError',
    'LogLevel',
    'MissingActorError',
    'MissingUserError',
    'Registry',
    'RegistrySpec',
    'RoleAlreadyAssignedError',
    'RoleAssignment',
    'RoleDefinition',
    'RoleNotAssignedError',
    'RoleSpec',
    'RoleStore',
    'RolesConfig',
    'RolesFormatter',
    'RolesLoggerAdapter',
    'Scope',
    'ScopeDefinition',
    'ScopeLink',
    'ScopeSpec',
    'StorageError',
    'TransientStorageError',
    'UnauthorizedError',
    'UserRoles',
    'build_registry',
    'expand_permissions',
    'get_roles_logger',
    'is_valid_permission',
    'load_config_from_env',
    'match_any_permission',
    'match_permission',
    'safe_preview',
    'setup_logging',
    'validate_permission',
]
