from .permissions import PermissionTree, InheritanceResolver, resolve_permissions
from .role import Role, RoleDeclaration, normalize_claims, normalize_permissions
from .claims import ClaimsIndex
from .registry import PolicyRegistry
from .authorizer import (
    Authorizer,
    build_authorizer,
    get_authorizer,
    publish_authorizer,
    reset_authorizer,
)
from .config import AuthorizerConfig, GuardOptions, LogLevel, load_config_from_env
from .exceptions import (
    RoleCoreError,
    ConfigurationError,
    AuthorizationError,
    AuthenticationError,
)
from .logging import (
    safe_preview,
    redact_secrets,
    safe_log_value,
    DecisionFormatter,
    DecisionLoggerAdapter,
    setup_logging,
    get_decision_logger,
)

__all__ = [
    'PermissionTree',
    'InheritanceResolver',
    'resolve_permissions',
    'Role',
    'RoleDeclaration',
    'normalize_claims',
    'normalize_permissions',
    'ClaimsIndex',
    'PolicyRegistry',
    'Authorizer',
    'build_authorizer',
    'get_authorizer',
    'publish_authorizer',
    'reset_authorizer',
    'AuthorizerConfig',
    'GuardOptions',
    'LogLevel',
    'load_config_from_env',
    'RoleCoreError',
    'ConfigurationError',
    'AuthorizationError',
    'AuthenticationError',
    'safe_preview',
    'redact_secrets',
    'safe_log_value',
    'DecisionFormatter',
    'DecisionLoggerAdapter',
    'setup_logging',
    'get_decision_logger',
]
