from .config import LogLevel, RbacConfig, TieBreak, load_config_from_env
from .exceptions import (
    ConfigurationError,
    InvalidOptionError,
    InvalidPermissionQueryError,
    InvalidProviderError,
    MissingPermissionsError,
    PermissionDeniedError,
    ProviderError,
    RbacError,
)
from .logging import (
    RbacFormatter,
    RbacLoggerAdapter,
    get_rbac_logger,
    redact_secrets,
    safe_log_value,
    safe_preview,
    setup_logging,
)
from .permissions import (
    Decision,
    EvaluationState,
    PermissionQuery,
    allow,
    check,
    deny,
    parse_permissions,
    resolve,
)
from .providers import Role, RoleProvider, StaticRoleProvider, validate_provider
from .security import (
    EnforcementMode,
    Outcome,
    RbacGuard,
    RbacInterceptor,
    RbacOptions,
    RequestAuthorizer,
    RequestContext,
    get_rbac_interceptors,
)

__all__ = [
    'LogLevel',
    'RbacConfig',
    'TieBreak',
    'load_config_from_env',
    'RbacError',
    'ConfigurationError',
    'InvalidOptionError',
    'InvalidPermissionQueryError',
    'InvalidProviderError',
    'MissingPermissionsError',
    'PermissionDeniedError',
    'ProviderError',
    'RbacFormatter',
    'RbacLoggerAdapter',
    'get_rbac_logger',
    'redact_secrets',
    'safe_log_value',
    'safe_preview',
    'setup_logging',
    'Decision',
    'EvaluationState',
    'PermissionQuery',
    'allow',
    'check',
    'deny',
    'parse_permissions',
    'resolve',
    'Role',
    'RoleProvider',
    'StaticRoleProvider',
    'validate_provider',
    'EnforcementMode',
    'Outcome',
    'RbacGuard',
    'RbacInterceptor',
    'RbacOptions',
    'RequestAuthorizer',
    'RequestContext',
    'get_rbac_interceptors',
]
