"""Shared fixtures: a small role graph with inheritance, a cycle and unknown roles."""

from __future__ import annotations

from collections import Counter
from typing import Any

import pytest
from rbacgate import EvaluationState, RbacGuard, RbacOptions, StaticRoleProvider

RULES: dict[str, Any] = {
    "roles": {
        "guest": {"permissions": ["foo"]},
        "reader": {"permissions": ["read"], "inherited": ["guest"]},
        "writer": {"permissions": ["create"], "inherited": ["reader"]},
        "editor": {"permissions": ["update"], "inherited": ["reader"]},
        "director": {"permissions": ["delete"], "inherited": ["editor"]},
        "admin": {"permissions": ["manage"]},
        "cyclic1": {"permissions": ["crc1"], "inherited": ["cyclic2"]},
        "cyclic2": {"permissions": ["crc2"], "inherited": ["cyclic1"]},
        "special": {},
    },
    "users": {
        "bart": ["guest", "reader"],
        "marge": ["editor"],
        "homer": ["admin", "director"],
        "burns": ["admin"],
        "phsycho bob": ["cyclic1"],
        "ralph": ["special", "learned"],
    },
}


class CountingProvider(StaticRoleProvider):
    """StaticRoleProvider that records how often each capability is called."""

    def __init__(self, rules: dict[str, Any]) -> None:
        super().__init__(rules)
        self.calls: Counter[str] = Counter()

    def get_role_permissions(self, role: str):
        self.calls[f"role:{role}"] += 1
        return super().get_role_permissions(role)

    def get_user_roles(self, identity: Any):
        self.calls[f"user:{identity}"] += 1
        return super().get_user_roles(identity)


class AsyncProvider:
    """Provider exposing coroutine capabilities over a rules document."""

    def __init__(self, rules: dict[str, Any]) -> None:
        self._rules = rules

    async def get_role_permissions(self, role: str):
        return self._rules["roles"].get(role)

    async def get_user_roles(self, identity: Any):
        return self._rules["users"].get(identity, [])


def chain_rules(length: int) -> dict[str, Any]:
    """``r0`` inherits ``r1`` ... inherits ``r{length}``; role ``rN`` holds ``pN``."""
    roles = {}
    for depth in range(length + 1):
        definition: dict[str, Any] = {"permissions": [f"p{depth}"]}
        if depth < length:
            definition["inherited"] = [f"r{depth + 1}"]
        roles[f"r{depth}"] = definition
    return {"roles": roles, "users": {"chain": ["r0"]}}


@pytest.fixture
def provider() -> StaticRoleProvider:
    return StaticRoleProvider(RULES)


@pytest.fixture
def guard(provider: StaticRoleProvider) -> RbacGuard:
    return RbacGuard(RbacOptions(rbac=provider))


@pytest.fixture
def make_state(provider: StaticRoleProvider):
    def _make(identity: Any) -> EvaluationState:
        return EvaluationState(provider=provider, identity=identity)

    return _make
