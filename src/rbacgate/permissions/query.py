"""Permission expressions and their normalized query form.

Provides:
- ``PermissionQuery``: an OR-list of AND-groups of permission tokens.
- ``parse_permissions()``: normalize a string or list expression.

Grammar::

    "read && update, manage"      → [["read", "update"], ["manage"]]
    ["read", "manage"]            → [["read"], ["manage"]]
    [["create", "foo"], "update"] → [["create", "foo"], ["update"]]
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

from ..exceptions import InvalidPermissionQueryError

DEFAULT_OR_SEPARATOR = ","
DEFAULT_AND_SEPARATOR = "&&"

PermissionSpec = Union[str, Sequence[Union[str, Sequence[str]]], "PermissionQuery"]


@dataclass(frozen=True)
class PermissionQuery:
    """Normalized permission query.

    Satisfied by a token set when every token of at least one group is
    present. Groups keep their declaration order.
    """

    groups: tuple[tuple[str, ...], ...]

    def __post_init__(self) -> None:
        if not self.groups or not all(self.groups):
            raise InvalidPermissionQueryError("Invalid permissions", groups=self.groups)

    @property
    def tokens(self) -> frozenset[str]:
        """Every token mentioned by the query."""
        return frozenset(token for group in self.groups for token in group)

    def is_satisfied_by(self, tokens: Iterable[str]) -> bool:
        available = set(tokens)
        return any(available.issuperset(group) for group in self.groups)

    def weight(self, matched: Mapping[str, int]) -> Optional[int]:
        """Depth at which the query is covered by ``matched``.

        ``matched`` maps a token to the shallowest depth it was seen at. A
        group is as deep as its deepest token, not the depth of the role
        that happened to complete it: with roles ``[a -> c(x), b(y)]``,
        ``"x && y"`` weighs 1 even though ``b`` completes the group at
        depth 0. This keeps weights independent of role order. The query
        takes its shallowest covered group. Returns None when no group is
        covered.
        """
        best: Optional[int] = None
        for group in self.groups:
            if all(token in matched for token in group):
                depth = max(matched[token] for token in group)
                if best is None or depth < best:
                    best = depth
        return best

    def to_list(self) -> list[list[str]]:
        return [list(group) for group in self.groups]

    def __str__(self) -> str:
        return ", ".join(" && ".join(group) for group in self.groups)


def _clean(tokens: Iterable[Any]) -> tuple[str, ...]:
    return tuple(token.strip() for token in tokens if isinstance(token, str) and token.strip())


def parse_permissions(
    permissions: PermissionSpec,
    *,
    or_separator: str = DEFAULT_OR_SEPARATOR,
    and_separator: str = DEFAULT_AND_SEPARATOR,
) -> PermissionQuery:
    """Normalize a permission expression into a ``PermissionQuery``.

    A string is split on ``or_separator`` into groups and each group on
    ``and_separator`` into tokens. In a list, a string entry is a single
    token group and a list entry is a ready-made AND-group. Tokens are
    trimmed; empty and non-string tokens are dropped, as are groups left
    empty.

    Args:
        permissions: String, list expression, or an existing PermissionQuery.
        or_separator: Character separating OR groups in strings.
        and_separator: Token separating AND-ed permissions in strings.

    Returns:
        The normalized query.

    Raises:
        InvalidPermissionQueryError: If the expression is not a string or
            list, or has no usable group.
    """
    if isinstance(permissions, PermissionQuery):
        return permissions

    if isinstance(permissions, str):
        raw_groups: list[tuple[str, ...]] = [
            _clean(part.split(and_separator)) for part in permissions.split(or_separator)
        ]
    elif isinstance(permissions, (list, tuple)):
        raw_groups = []
        for entry in permissions:
            if isinstance(entry, str):
                raw_groups.append(_clean((entry,)))
            elif isinstance(entry, (list, tuple)):
                raw_groups.append(_clean(entry))
    else:
        raise InvalidPermissionQueryError(
            "Invalid permissions",
            received=type(permissions).__name__,
        )

    groups = tuple(group for group in raw_groups if group)
    if not groups:
        raise InvalidPermissionQueryError("Invalid permissions", received=permissions)

    return PermissionQuery(groups=groups)


__all__ = [
    "DEFAULT_AND_SEPARATOR",
    "DEFAULT_OR_SEPARATOR",
    "PermissionQuery",
    "PermissionSpec",
    "parse_permissions",
]
