"""Role provider contract.

Provides:
- ``Role``: a fetched role definition (permissions + inherited role names).
- ``RoleProvider``: the two capabilities the resolver consumes.
- ``validate_provider()``: structural check done once, at setup.
- ``fetch_role()`` / ``fetch_user_roles()``: call a capability, await it if
  needed, normalize the result and wrap failures in ``ProviderError``.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Iterable, Mapping, Optional, Protocol, Sequence, Union, runtime_checkable

from pydantic import BaseModel, Field, ValidationError, field_validator

from ..exceptions import InvalidProviderError, ProviderError, RbacError

logger = logging.getLogger(__name__)

REQUIRED_CAPABILITIES = ("get_role_permissions", "get_user_roles")

RoleDefinition = Union["Role", Mapping[str, Any], None]


class Role(BaseModel):
    """Role as supplied by a provider. Read-only for the core."""

    model_config = {"frozen": True}

    name: str
    permissions: tuple[str, ...] = Field(default_factory=tuple)
    inherited: tuple[str, ...] = Field(default_factory=tuple)

    @field_validator("permissions", "inherited", mode="before")
    @classmethod
    def _normalize_names(cls, v: Any) -> tuple[str, ...]:
        if v is None:
            return ()
        if isinstance(v, str):
            v = (v,)
        if not isinstance(v, Iterable):
            raise ValueError(f"expected a list of names, got {type(v).__name__}")
        return tuple(item.strip() for item in v if isinstance(item, str) and item.strip())


@runtime_checkable
class RoleProvider(Protocol):
    """Resolves role definitions and role assignments.

    Both methods may be plain functions or coroutines.
    """

    def get_role_permissions(self, role: str) -> RoleDefinition | Awaitable[RoleDefinition]:
        """Return ``{"permissions": [...], "inherited": [...]}`` or None if unknown."""
        ...

    def get_user_roles(self, identity: Any) -> Sequence[str] | Awaitable[Sequence[str]]:
        """Return the ordered role names assigned to ``identity``."""
        ...


def validate_provider(provider: Any) -> RoleProvider:
    """Check that ``provider`` offers both capabilities.

    Raises:
        InvalidProviderError: If the provider is missing or a capability is
            absent or not callable.
    """
    if provider is None or isinstance(provider, (str, bytes, int, float, bool, list, tuple, dict)):
        raise InvalidProviderError("Invalid provider", received=type(provider).__name__)

    for capability in REQUIRED_CAPABILITIES:
        if not callable(getattr(provider, capability, None)):
            raise InvalidProviderError(
                f"Missing function `{capability}` in provider",
                capability=capability,
            )

    return provider


async def _call(provider: RoleProvider, capability: str, argument: Any) -> Any:
    try:
        result = getattr(provider, capability)(argument)
        if inspect.isawaitable(result):
            result = await result
    except RbacError:
        raise
    except Exception as e:
        logger.error("Role provider %s(%r) failed: %s", capability, argument, e)
        raise ProviderError(
            f"{capability} failed: {e}",
            capability=capability,
            argument=argument,
        ) from e
    return result


async def fetch_role(provider: RoleProvider, name: str) -> Optional[Role]:
    """Fetch one role definition; None when the provider does not know it."""
    definition = await _call(provider, "get_role_permissions", name)

    if definition is None:
        return None
    if isinstance(definition, Role):
        return definition
    if isinstance(definition, Mapping):
        try:
            return Role(
                name=name,
                permissions=definition.get("permissions"),
                inherited=definition.get("inherited"),
            )
        except ValidationError as e:
            raise ProviderError(
                f"get_role_permissions returned an invalid definition for role '{name}'",
                capability="get_role_permissions",
                argument=name,
            ) from e

    raise ProviderError(
        f"get_role_permissions returned {type(definition).__name__} for role '{name}'",
        capability="get_role_permissions",
        argument=name,
    )


async def fetch_user_roles(provider: RoleProvider, identity: Any) -> tuple[str, ...]:
    """Fetch the ordered role names assigned to ``identity``."""
    roles = await _call(provider, "get_user_roles", identity)

    if not roles:
        return ()
    if isinstance(roles, str):
        roles = (roles,)
    if not isinstance(roles, Iterable) or isinstance(roles, Mapping):
        raise ProviderError(
            f"get_user_roles returned {type(roles).__name__} for identity {identity!r}",
            capability="get_user_roles",
            argument=identity,
        )

    return tuple(role for role in roles if isinstance(role, str) and role)


__all__ = [
    "REQUIRED_CAPABILITIES",
    "Role",
    "RoleDefinition",
    "RoleProvider",
    "fetch_role",
    "fetch_user_roles",
    "validate_provider",
]
