"""Role providers: the contract consumed by the resolver and an in-memory implementation."""

from .base import (
    REQUIRED_CAPABILITIES,
    Role,
    RoleDefinition,
    RoleProvider,
    fetch_role,
    fetch_user_roles,
    validate_provider,
)
from .memory import StaticRoleProvider

__all__ = [
    "REQUIRED_CAPABILITIES",
    "Role",
    "RoleDefinition",
    "RoleProvider",
    "StaticRoleProvider",
    "fetch_role",
    "fetch_user_roles",
    "validate_provider",
]
