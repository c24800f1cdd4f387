"""Request-scoped evaluation state.

One ``EvaluationState`` is created per request and threaded explicitly
through every combinator evaluated for that request. It holds:

- a cache of fetched role definitions (unknown roles are cached as None);
- the requester's role assignment, fetched once;
- the running minimal allowed weight, lowered by each satisfied ``allow``.

Nothing in it is shared between requests, so no locking is needed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from ..providers.base import Role, RoleProvider, fetch_role, fetch_user_roles

logger = logging.getLogger(__name__)

Weight = Union[int, float]


@dataclass
class EvaluationState:
    """Per-request cache and allowed-weight accumulator.

    Attributes:
        provider: Validated role provider.
        identity: Requester identity, None when the request is anonymous.
        allowed_weight: Minimal weight of all satisfied allow checks so far,
            None until one succeeds.
    """

    provider: RoleProvider
    identity: Any = None
    allowed_weight: Optional[Weight] = None
    _roles: dict[str, Optional[Role]] = field(default_factory=dict, init=False, repr=False)
    _user_roles: Optional[tuple[str, ...]] = field(default=None, init=False, repr=False)

    @property
    def has_identity(self) -> bool:
        return self.identity is not None

    @property
    def cached_roles(self) -> dict[str, Optional[Role]]:
        return dict(self._roles)

    async def get_role(self, name: str) -> Optional[Role]:
        """Return the role definition, fetching it on first use."""
        if name not in self._roles:
            role = await fetch_role(self.provider, name)
            if role is None:
                logger.debug("Unknown role '%s' ignored", name)
            self._roles[name] = role
        return self._roles[name]

    async def user_roles(self) -> tuple[str, ...]:
        """Roles assigned to the requester (empty when anonymous)."""
        if not self.has_identity:
            return ()
        if self._user_roles is None:
            self._user_roles = await fetch_user_roles(self.provider, self.identity)
        return self._user_roles

    def record_allowed(self, weight: Weight) -> Weight:
        """Lower the running allowed weight to ``weight`` if it is smaller."""
        if self.allowed_weight is None or weight < self.allowed_weight:
            self.allowed_weight = weight
        return self.allowed_weight


__all__ = ["EvaluationState", "Weight"]
