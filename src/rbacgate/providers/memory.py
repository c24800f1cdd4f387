"""In-memory role provider built from a rules document.

The document shape::

    {
        "roles": {
            "reader": {"permissions": ["read"], "inherited": ["guest"]},
            ...
        },
        "users": {
            "bart": ["guest", "reader"],
            ...
        },
    }
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence

from pydantic import ValidationError

from ..exceptions import InvalidProviderError
from .base import Role


class StaticRoleProvider:
    """Provider serving roles and assignments from a fixed mapping.

    Args:
        rules: Document with ``roles`` and ``users`` sections (both optional).
    """

    def __init__(self, rules: Optional[Mapping[str, Any]] = None) -> None:
        rules = rules or {}
        if not isinstance(rules, Mapping):
            raise InvalidProviderError("Rules document must be a mapping")

        roles = rules.get("roles") or {}
        users = rules.get("users") or {}
        if not isinstance(roles, Mapping) or not isinstance(users, Mapping):
            raise InvalidProviderError("`roles` and `users` must be mappings")

        self._roles: dict[str, Role] = {}
        for name, definition in roles.items():
            definition = definition or {}
            if not isinstance(definition, Mapping):
                raise InvalidProviderError(f"Role `{name}` must be a mapping", role=name)
            try:
                self._roles[name] = Role(
                    name=name,
                    permissions=definition.get("permissions"),
                    inherited=definition.get("inherited"),
                )
            except ValidationError as e:
                raise InvalidProviderError(f"Invalid definition for role `{name}`", role=name) from e
        self._users: dict[Any, tuple[str, ...]] = {}
        for identity, names in users.items():
            if isinstance(names, str):
                names = (names,)
            if not isinstance(names, (list, tuple)) and names is not None:
                raise InvalidProviderError(f"Roles of user `{identity}` must be a list", identity=identity)
            self._users[identity] = tuple(names or ())

    def get_role_permissions(self, role: str) -> Optional[Role]:
        return self._roles.get(role)

    def get_user_roles(self, identity: Any) -> Sequence[str]:
        return self._users.get(identity, ())

    @property
    def role_names(self) -> tuple[str, ...]:
        return tuple(self._roles)


__all__ = ["StaticRoleProvider"]
