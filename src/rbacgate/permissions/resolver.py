"""Role graph resolution.

``resolve()`` walks the role-inheritance graph depth first, starting from
the requester's roles at depth 0, and returns the shallowest depth (the
*weight*) at which the permission query is covered, or None.

The graph may contain cycles (``a`` inherits ``b`` inherits ``a``). The walk
keeps the set of roles currently being expanded on the active path and never
re-enters one of them. That set is separate from the request cache in
``EvaluationState``. Shared ancestry (diamonds) is walked once per depth:
a role reached again at the same or a deeper level is skipped, since its
tokens are already recorded at least that shallow. Fetches go through the
request cache, so each role is fetched once per request.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from .query import PermissionQuery
from .state import EvaluationState

logger = logging.getLogger(__name__)


async def resolve(
    roles: Sequence[str],
    query: PermissionQuery,
    state: EvaluationState,
) -> Optional[int]:
    """Compute the weight of ``query`` for a requester holding ``roles``.

    Tokens are recorded with the shallowest depth they were seen at. After
    each role is merged the query is re-tested; a covered group weighs as
    much as its deepest token. Inherited roles are only expanded while they
    could still produce a shallower weight.

    Args:
        roles: Role names assigned to the requester, in assignment order.
        query: Normalized permission query.
        state: Request state supplying the provider and role cache.

    Returns:
        The weight (0 = satisfied by a directly assigned role), or None if
        no group of the query is ever fully covered.

    Raises:
        ProviderError: If the provider fails while fetching a role.
    """
    wanted = query.tokens
    matched: dict[str, int] = {}
    active: set[str] = set()
    expanded: dict[str, int] = {}
    best: Optional[int] = None

    async def walk(names: Sequence[str], depth: int) -> None:
        nonlocal best

        for name in names:
            if name in active:
                continue
            # Already merged at this depth or shallower through another path.
            if name in expanded and expanded[name] <= depth:
                continue
            expanded[name] = depth

            role = await state.get_role(name)
            if role is None:
                continue

            for token in role.permissions:
                if token in wanted and (token not in matched or depth < matched[token]):
                    matched[token] = depth

            weight = query.weight(matched)
            if weight is not None and (best is None or weight < best):
                best = weight

            # Inherited roles sit at depth + 1 and cannot beat that.
            if best is not None and best <= depth + 1:
                continue

            if role.inherited:
                active.add(name)
                try:
                    await walk(role.inherited, depth + 1)
                finally:
                    active.discard(name)

    await walk(roles, 0)

    if best is None:
        logger.debug("Query '%s' unsatisfied for roles %s", query, list(roles))
    else:
        logger.debug("Query '%s' satisfied at weight %d for roles %s", query, best, list(roles))

    return best


__all__ = ["resolve"]
