"""Decision combinators: allow, deny and check.

Each combinator resolves its query against the requester's roles and
returns a ``Decision``. They share one ``EvaluationState`` per request:

- ``allow`` lowers the running allowed weight when satisfied, and never
  retracts an earlier grant in the same chain;
- ``deny`` restricts when its weight is at least as specific as the
  running allowed weight (or when nothing was allowed yet);
- ``check`` weighs an allow query against a deny query on its own.

Lower weight = more specific. Allow rules must precede deny rules in a
chain for the arbitration to see the allowed weight.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional

from ..config import RbacConfig, TieBreak
from ..exceptions import MissingPermissionsError
from .query import PermissionQuery
from .resolver import resolve
from .state import EvaluationState, Weight

logger = logging.getLogger(__name__)

_DEFAULT_CONFIG = RbacConfig()


@dataclass(frozen=True)
class Decision:
    """Outcome of one combinator.

    Attributes:
        granted: True to pass the request through, False to restrict it.
        weight: Weight used for arbitration (``math.inf`` when an allow
            passes only because of an earlier grant), None if unsatisfied.
        query: Query responsible for the outcome.
    """

    granted: bool
    weight: Optional[Weight] = None
    query: Optional[PermissionQuery] = None

    @property
    def restricted(self) -> bool:
        return not self.granted


def _deny_overrides(denied: Weight, allowed: Weight, tie_break: TieBreak) -> bool:
    if denied == allowed:
        return tie_break == TieBreak.DENY_WINS
    return denied < allowed


async def allow(
    query: PermissionQuery,
    state: EvaluationState,
    config: Optional[RbacConfig] = None,
) -> Decision:
    """Pass only if the requester holds ``query``, or an earlier allow passed.

    ``config`` is unused: no policy option changes how an allow is decided.
    It is accepted so rules can call all three combinators the same way.
    """
    if not state.has_identity:
        logger.info("allow '%s' restricted: no identity", query)
        return Decision(granted=False, query=query)

    weight = await resolve(await state.user_roles(), query, state)

    if weight is None:
        if state.allowed_weight is None:
            logger.info("allow '%s' restricted for %r", query, state.identity)
            return Decision(granted=False, query=query)
        return Decision(granted=True, weight=math.inf, query=query)

    state.record_allowed(weight)
    return Decision(granted=True, weight=weight, query=query)


async def deny(
    query: PermissionQuery,
    state: EvaluationState,
    config: Optional[RbacConfig] = None,
) -> Decision:
    """Restrict if the requester holds ``query`` at least as specifically as any grant."""
    config = config or _DEFAULT_CONFIG

    if not state.has_identity:
        return Decision(granted=True, query=query)

    weight = await resolve(await state.user_roles(), query, state)

    if weight is None:
        return Decision(granted=True, query=query)

    allowed = state.allowed_weight
    if allowed is None or _deny_overrides(weight, allowed, config.deny_tie_break):
        logger.info(
            "deny '%s' restricted for %r (weight=%s, allowed_weight=%s)",
            query,
            state.identity,
            weight,
            allowed,
        )
        return Decision(granted=False, weight=weight, query=query)

    return Decision(granted=True, weight=weight, query=query)


async def check(
    allow_query: Optional[PermissionQuery],
    deny_query: Optional[PermissionQuery],
    state: EvaluationState,
    config: Optional[RbacConfig] = None,
) -> Decision:
    """Grant if ``allow_query`` is held more specifically than ``deny_query``.

    A missing allow query counts as satisfied at infinite weight, a missing
    deny query as unsatisfied. With ``config.check_uses_chain_state`` the
    running allowed weight takes part and is updated; by default the two
    queries are weighed in isolation.

    Raises:
        MissingPermissionsError: If both queries are None.
    """
    if allow_query is None and deny_query is None:
        raise MissingPermissionsError()

    config = config or _DEFAULT_CONFIG

    if not state.has_identity:
        logger.info("check restricted: no identity")
        return Decision(granted=False, query=allow_query or deny_query)

    roles = await state.user_roles()

    allowed: Optional[Weight] = math.inf
    if allow_query is not None:
        allowed = await resolve(roles, allow_query, state)

    if config.check_uses_chain_state and state.allowed_weight is not None:
        allowed = state.allowed_weight if allowed is None else min(allowed, state.allowed_weight)

    if allowed is None:
        logger.info("check restricted for %r: '%s' not held", state.identity, allow_query)
        return Decision(granted=False, query=allow_query)

    if deny_query is not None:
        denied = await resolve(roles, deny_query, state)
        if denied is not None and _deny_overrides(denied, allowed, config.check_tie_break):
            logger.info(
                "check restricted for %r: '%s' (weight=%s) overrides allowed weight %s",
                state.identity,
                deny_query,
                denied,
                allowed,
            )
            return Decision(granted=False, weight=denied, query=deny_query)

    if config.check_uses_chain_state and allow_query is not None:
        state.record_allowed(allowed)

    return Decision(granted=True, weight=allowed, query=allow_query or deny_query)


__all__ = ["Decision", "allow", "check", "deny"]
