"""Permission queries, role-graph resolution and decision combinators.

Defines:
- PermissionQuery / parse_permissions(): normalized OR-of-AND queries
- EvaluationState: per-request role cache and running allowed weight
- resolve(): cycle-safe, depth-weighted role graph traversal
- allow() / deny() / check(): decision combinators
"""

from .combinators import Decision, allow, check, deny
from .query import (
    DEFAULT_AND_SEPARATOR,
    DEFAULT_OR_SEPARATOR,
    PermissionQuery,
    PermissionSpec,
    parse_permissions,
)
from .resolver import resolve
from .state import EvaluationState, Weight

__all__ = [
    "DEFAULT_AND_SEPARATOR",
    "DEFAULT_OR_SEPARATOR",
    "Decision",
    "EvaluationState",
    "PermissionQuery",
    "PermissionSpec",
    "Weight",
    "allow",
    "check",
    "deny",
    "parse_permissions",
    "resolve",
]
