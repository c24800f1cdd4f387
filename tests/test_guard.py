"""Tests for the guard: options, rule construction and request outcomes."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from conftest import RULES, AsyncProvider
from rbacgate import (
    InvalidOptionError,
    InvalidPermissionQueryError,
    MissingPermissionsError,
    Outcome,
    ProviderError,
    RbacConfig,
    RbacGuard,
    RbacOptions,
    RequestContext,
    StaticRoleProvider,
)
from rbacgate.security import AllowRule, CheckRule, DenyRule, default_identity


async def _run(guard: RbacGuard, user, rules, accept: str = "text/html") -> tuple[Outcome, RequestContext]:
    ctx = RequestContext(user=user, accept=accept)
    if not isinstance(rules, list):
        rules = [rules]
    return await guard.run(ctx, rules), ctx


class TestRbacOptions:
    """Option validation at setup time."""

    @pytest.mark.parametrize("rbac", [None, False, True, 0, "", "hello", [], {}, object()])
    def test_invalid_provider(self, rbac) -> None:
        with pytest.raises(InvalidOptionError, match="Invalid RBAC provider"):
            RbacOptions(rbac=rbac)

    def test_provider_missing_capability(self) -> None:
        class Partial:
            def get_role_permissions(self, role):
                return None

        with pytest.raises(InvalidOptionError) as exc_info:
            RbacOptions(rbac=Partial())
        assert "get_user_roles" in exc_info.value.details["reason"]

    @pytest.mark.parametrize("identity", [None, 0, "user", [], {}])
    def test_invalid_identity(self, provider, identity) -> None:
        with pytest.raises(InvalidOptionError, match="Invalid identity function"):
            RbacOptions(rbac=provider, identity=identity)

    @pytest.mark.parametrize("handler", [0, "handler", [], {}, True])
    def test_invalid_restriction_handler(self, provider, handler) -> None:
        with pytest.raises(InvalidOptionError, match="Invalid restriction handler"):
            RbacOptions(rbac=provider, restriction_handler=handler)

    def test_invalid_config(self, provider) -> None:
        with pytest.raises(InvalidOptionError):
            RbacOptions(rbac=provider, config={"or_separator": ";"})

    def test_defaults(self, provider) -> None:
        options = RbacOptions(rbac=provider)
        assert options.identity is default_identity
        assert options.restriction_handler is None
        assert options.config == RbacConfig()

    def test_guard_requires_provider(self) -> None:
        with pytest.raises(InvalidOptionError):
            RbacGuard()

    def test_guard_accepts_keyword_options(self, provider) -> None:
        guard = RbacGuard(rbac=provider)
        assert guard.options.provider is provider


class TestRuleConstruction:
    """Rules fail fast on bad input."""

    def test_rule_types(self, guard) -> None:
        assert isinstance(guard.allow("read"), AllowRule)
        assert isinstance(guard.deny(["read"]), DenyRule)
        assert isinstance(guard.check({"allow": "read"}), CheckRule)

    @pytest.mark.parametrize("permissions", ["", [], [""], None, 42])
    def test_invalid_permissions(self, guard, permissions) -> None:
        with pytest.raises(InvalidPermissionQueryError):
            guard.allow(permissions)
        with pytest.raises(InvalidPermissionQueryError):
            guard.deny(permissions)

    def test_check_without_queries(self, guard) -> None:
        with pytest.raises(MissingPermissionsError):
            guard.check()
        with pytest.raises(MissingPermissionsError):
            guard.check({})
        with pytest.raises(MissingPermissionsError):
            guard.check(["read"])

    def test_check_with_empty_query(self, guard) -> None:
        with pytest.raises(InvalidPermissionQueryError):
            guard.check({"allow": ""})

    def test_invalid_redirect(self, guard) -> None:
        with pytest.raises(InvalidOptionError):
            guard.allow("read", redirect_url=42)

    def test_custom_grammar(self, provider) -> None:
        guard = RbacGuard(RbacOptions(rbac=provider, config=RbacConfig(or_separator="|", and_separator="+")))
        assert guard.allow("read + update | manage").query.to_list() == [["read", "update"], ["manage"]]


class TestAllowDeny:
    """Rule outcomes over the shared role graph."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("user", "permissions"),
        [
            ("bart", ["read"]),
            ("marge", ["update"]),
            ("homer", ["create", "update"]),
            ("homer", "create, update"),
            ("burns", ["manage"]),
            ("homer", ["foo"]),
            ("marge", "read && update"),
            ("homer", [["create", "foo"], "update"]),
        ],
    )
    async def test_allow_passes(self, guard, user, permissions) -> None:
        outcome, ctx = await _run(guard, user, guard.allow(permissions))
        assert outcome == Outcome.PASS
        assert ctx.status is None

    @pytest.mark.asyncio
    async def test_allow_restricts(self, guard) -> None:
        outcome, ctx = await _run(guard, "burns", guard.allow(["read"]))
        assert outcome == Outcome.RESTRICT
        assert ctx.status == 403
        assert ctx.body == "Forbidden"

    @pytest.mark.asyncio
    async def test_deny(self, guard) -> None:
        assert (await _run(guard, "bart", guard.deny(["read"])))[0] == Outcome.RESTRICT
        assert (await _run(guard, "burns", guard.deny(["read", "update"])))[0] == Outcome.PASS
        assert (await _run(guard, "burns", guard.deny(["read", "manage"])))[0] == Outcome.RESTRICT

    @pytest.mark.asyncio
    async def test_check(self, guard) -> None:
        assert (await _run(guard, "bart", guard.check({"allow": "read"})))[0] == Outcome.PASS
        assert (await _run(guard, "burns", guard.check({"deny": ["read", "update"]})))[0] == Outcome.PASS
        assert (await _run(guard, "burns", guard.check({"deny": ["read", "manage"]})))[0] == Outcome.RESTRICT
        assert (await _run(guard, "marge", guard.check({"allow": ["update"], "deny": ["read"]})))[0] == Outcome.PASS
        assert (await _run(guard, "marge", guard.check({"allow": ["manage"], "deny": ["read"]})))[0] == Outcome.RESTRICT

    @pytest.mark.asyncio
    async def test_no_user(self, guard) -> None:
        assert (await _run(guard, None, guard.allow("create, update")))[0] == Outcome.RESTRICT
        assert (await _run(guard, None, guard.deny("read")))[0] == Outcome.PASS
        assert (await _run(guard, None, guard.check({"deny": "read"})))[0] == Outcome.RESTRICT

    @pytest.mark.asyncio
    async def test_unknown_roles_user(self, guard) -> None:
        assert (await _run(guard, "ralph", guard.allow("foo")))[0] == Outcome.RESTRICT
        assert (await _run(guard, "ralph", guard.deny("foo")))[0] == Outcome.PASS


class TestRuleChains:
    """Rules sharing one request state."""

    @pytest.mark.asyncio
    async def test_allow_then_deny_same_weight(self, guard) -> None:
        outcome, _ = await _run(guard, "marge", [guard.allow("read"), guard.deny("read")])
        assert outcome == Outcome.RESTRICT

    @pytest.mark.asyncio
    async def test_specific_allow_beats_broad_deny(self, guard) -> None:
        """update (0) allowed, foo denied only through inheritance (2)."""
        outcome, _ = await _run(guard, "marge", [guard.allow("update"), guard.deny("foo")])
        assert outcome == Outcome.PASS

    @pytest.mark.asyncio
    async def test_chain_stops_at_first_restriction(self, provider) -> None:
        calls = []
        guard = RbacGuard(RbacOptions(rbac=provider, restriction_handler=lambda ctx, query, url: calls.append(query)))
        outcome, _ = await _run(guard, "burns", [guard.allow("read"), guard.deny("manage")])
        assert outcome == Outcome.RESTRICT
        assert [str(query) for query in calls] == ["read"]

    @pytest.mark.asyncio
    async def test_unrelated_allow_does_not_retract(self, guard) -> None:
        outcome, _ = await _run(guard, "marge", [guard.allow("update"), guard.allow("manage")])
        assert outcome == Outcome.PASS

    @pytest.mark.asyncio
    async def test_empty_chain_passes(self, guard) -> None:
        assert (await _run(guard, None, []))[0] == Outcome.PASS


class TestRedirect:
    """Redirect targets apply only to non machine-readable requests."""

    @pytest.mark.asyncio
    async def test_allow_redirect(self, guard) -> None:
        outcome, ctx = await _run(guard, "bart", guard.allow("manage", "/foo"))
        assert outcome == Outcome.REDIRECT
        assert ctx.status == 302
        assert ctx.location == "/foo"

    @pytest.mark.asyncio
    async def test_granted_ignores_redirect(self, guard) -> None:
        outcome, ctx = await _run(guard, "bart", guard.allow("read", "/foo"))
        assert outcome == Outcome.PASS
        assert ctx.location is None

    @pytest.mark.asyncio
    async def test_deny_redirect(self, guard) -> None:
        assert (await _run(guard, "bart", guard.deny(["read"], "/foo")))[0] == Outcome.REDIRECT
        assert (await _run(guard, "burns", guard.deny(["read", "manage"], "/foo")))[0] == Outcome.REDIRECT

    @pytest.mark.asyncio
    async def test_check_redirect(self, guard) -> None:
        rule = guard.check({"allow": ["manage"], "deny": ["read"]}, "/foo")
        assert (await _run(guard, "marge", rule))[0] == Outcome.REDIRECT

    @pytest.mark.asyncio
    @pytest.mark.parametrize("accept", ["application/json", "application/json ", "Application/JSON; charset=utf-8"])
    async def test_json_gets_forbidden(self, guard, accept) -> None:
        outcome, ctx = await _run(guard, "bart", guard.deny(["read"], "/foo"), accept=accept)
        assert outcome == Outcome.RESTRICT
        assert ctx.status == 403
        assert ctx.location is None


class TestRestrictionHandler:
    """Custom restriction handlers replace the default response."""

    @pytest.mark.asyncio
    async def test_handler_receives_query(self, provider) -> None:
        restricted = []

        def handler(ctx, query, redirect_url):
            restricted.append((query.to_list(), redirect_url))
            ctx.status = 418

        guard = RbacGuard(RbacOptions(rbac=provider, restriction_handler=handler))

        outcome, ctx = await _run(guard, "bart", guard.allow(["read"]))
        assert outcome == Outcome.PASS

        outcome, ctx = await _run(guard, "bart", guard.deny(["read"], "/foo"), accept="application/json")
        assert outcome == Outcome.RESTRICT
        assert ctx.status == 418

        outcome, ctx = await _run(guard, "burns", guard.deny(["read", "manage"], "/foo"))
        assert ctx.status == 418

        assert restricted == [([["read"]], "/foo"), ([["read"], ["manage"]], "/foo")]

    @pytest.mark.asyncio
    async def test_async_handler(self, provider) -> None:
        async def handler(ctx, query, redirect_url):
            ctx.status = 451

        guard = RbacGuard(RbacOptions(rbac=provider, restriction_handler=handler))
        outcome, ctx = await _run(guard, "burns", guard.allow("read"))
        assert outcome == Outcome.RESTRICT
        assert ctx.status == 451


class TestIdentity:
    """Identity resolution."""

    @pytest.mark.asyncio
    async def test_custom_identity(self, provider) -> None:
        guard = RbacGuard(RbacOptions(rbac=provider, identity=lambda ctx: ctx.headers.get("x-user")))
        ctx = RequestContext(headers={"x-user": "marge"})
        assert await guard.run(ctx, [guard.allow("update")]) == Outcome.PASS

    @pytest.mark.asyncio
    async def test_async_identity(self, provider) -> None:
        async def identity(ctx):
            return "burns"

        guard = RbacGuard(RbacOptions(rbac=provider, identity=identity))
        assert await guard.run(RequestContext(), [guard.allow("manage")]) == Outcome.PASS

    @pytest.mark.asyncio
    async def test_async_provider(self) -> None:
        guard = RbacGuard(RbacOptions(rbac=AsyncProvider(RULES)))
        outcome, _ = await _run(guard, "homer", guard.allow("foo"))
        assert outcome == Outcome.PASS


class TestRequestAuthorizer:
    """Programmatic checks from custom handlers."""

    @pytest.mark.asyncio
    async def test_check_inside_handler(self, guard) -> None:
        authorizer = await guard.begin(RequestContext(user="phsycho bob"))
        assert await authorizer.check("crc1") == 0
        assert await authorizer.check("crc2") == 1
        assert await authorizer.check("read") is None

    @pytest.mark.asyncio
    async def test_check_without_identity(self, guard) -> None:
        authorizer = await guard.begin(RequestContext())
        assert await authorizer.check("read") is None

    @pytest.mark.asyncio
    async def test_check_validates_permissions(self, guard) -> None:
        authorizer = await guard.begin(RequestContext(user="bart"))
        with pytest.raises(InvalidPermissionQueryError):
            await authorizer.check("")


class TestProviderFailure:
    """Provider errors never turn into a grant."""

    @pytest.mark.asyncio
    async def test_provider_error_propagates(self) -> None:
        provider = MagicMock(spec=StaticRoleProvider)
        provider.get_user_roles.side_effect = ConnectionError("refused")
        guard = RbacGuard(RbacOptions(rbac=provider))

        ctx = RequestContext(user="bart")
        with pytest.raises(ProviderError):
            await guard.run(ctx, [guard.allow("read")])
        assert ctx.status is None
