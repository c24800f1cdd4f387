"""Access guard: options, request context, rules and the decision outcome surface.

Provides:
- ``RbacOptions``: validated guard options (provider, identity, restriction handler).
- ``RequestContext``: the minimal request/response surface a rule acts on.
- ``Outcome``: pass / restrict / redirect.
- ``AllowRule`` / ``DenyRule`` / ``CheckRule``: rules built once, evaluated per request.
- ``RequestAuthorizer``: one request's evaluation state bound to its identity.
- ``RbacGuard``: builds rules and runs rule chains for requests.
"""

from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Sequence
from uuid import uuid4

from ..config import RbacConfig
from ..exceptions import InvalidOptionError, InvalidProviderError, MissingPermissionsError
from ..logging import get_rbac_logger
from ..permissions import (
    Decision,
    EvaluationState,
    PermissionQuery,
    PermissionSpec,
    allow,
    check,
    deny,
    parse_permissions,
    resolve,
)
from ..providers import RoleProvider, validate_provider

FORBIDDEN_STATUS = 403
FORBIDDEN_BODY = "Forbidden"
REDIRECT_STATUS = 302


def default_identity(ctx: Any) -> Any:
    """Return the conventional ``user`` field of the request context."""
    return getattr(ctx, "user", None)


# ── Request surface ──────────────────────────────────────────────


@dataclass
class RequestContext:
    """Request data read by the guard and response fields it may set.

    Attributes:
        user: Identity placed on the request by an upstream authenticator.
        accept: Value of the request's Accept header.
        headers: Remaining request headers / metadata.
        request_id: Correlation id used in log records.
        status: Response status, set on restriction.
        body: Response body, set on restriction.
        location: Redirect target, set on redirect.
    """

    user: Any = None
    accept: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    request_id: str = field(default_factory=lambda: uuid4().hex)
    status: Optional[int] = None
    body: Any = None
    location: Optional[str] = None

    def redirect(self, url: str) -> None:
        self.status = REDIRECT_STATUS
        self.location = url

    def forbid(self) -> None:
        self.status = FORBIDDEN_STATUS
        self.body = FORBIDDEN_BODY


class Outcome(str, Enum):
    """Result of evaluating a rule for a request."""

    PASS = "pass"
    RESTRICT = "restrict"
    REDIRECT = "redirect"


# ── Options ──────────────────────────────────────────────────────


@dataclass
class RbacOptions:
    """Guard options, validated on construction.

    Attributes:
        rbac: Role provider (``get_role_permissions`` + ``get_user_roles``).
        identity: ``(ctx) -> identity | None``; may be a coroutine function.
            Defaults to reading ``ctx.user``.
        restriction_handler: Optional ``(ctx, query, redirect_url)`` replacing
            the default 403 / redirect response.
        config: Parser grammar and arbitration policy.

    Raises:
        InvalidOptionError: On any invalid value.
    """

    rbac: Any = None
    identity: Callable[[Any], Any] = default_identity
    restriction_handler: Optional[Callable[..., Any]] = None
    config: RbacConfig = field(default_factory=RbacConfig)

    def __post_init__(self) -> None:
        try:
            validate_provider(self.rbac)
        except InvalidProviderError as e:
            raise InvalidOptionError("Invalid RBAC provider", reason=e.message) from e

        if not callable(self.identity):
            raise InvalidOptionError("Invalid identity function")

        if self.restriction_handler is not None and not callable(self.restriction_handler):
            raise InvalidOptionError("Invalid restriction handler")

        if not isinstance(self.config, RbacConfig):
            raise InvalidOptionError("Invalid config", received=type(self.config).__name__)

    @property
    def provider(self) -> RoleProvider:
        return self.rbac


# ── Rules ────────────────────────────────────────────────────────


class Rule(ABC):
    """A combinator bound to its queries and an optional redirect target."""

    def __init__(self, redirect_url: Optional[str] = None) -> None:
        if redirect_url is not None and not isinstance(redirect_url, str):
            raise InvalidOptionError("Invalid redirect URL", received=type(redirect_url).__name__)
        self.redirect_url = redirect_url or None

    @abstractmethod
    async def decide(self, state: EvaluationState, config: RbacConfig) -> Decision:
        raise NotImplementedError


class AllowRule(Rule):
    def __init__(self, query: PermissionQuery, redirect_url: Optional[str] = None) -> None:
        super().__init__(redirect_url)
        self.query = query

    async def decide(self, state: EvaluationState, config: RbacConfig) -> Decision:
        return await allow(self.query, state, config)

    def __repr__(self) -> str:
        return f"AllowRule('{self.query}')"


class DenyRule(Rule):
    def __init__(self, query: PermissionQuery, redirect_url: Optional[str] = None) -> None:
        super().__init__(redirect_url)
        self.query = query

    async def decide(self, state: EvaluationState, config: RbacConfig) -> Decision:
        return await deny(self.query, state, config)

    def __repr__(self) -> str:
        return f"DenyRule('{self.query}')"


class CheckRule(Rule):
    def __init__(
        self,
        allow_query: Optional[PermissionQuery],
        deny_query: Optional[PermissionQuery],
        redirect_url: Optional[str] = None,
    ) -> None:
        if allow_query is None and deny_query is None:
            raise MissingPermissionsError()
        super().__init__(redirect_url)
        self.allow_query = allow_query
        self.deny_query = deny_query

    async def decide(self, state: EvaluationState, config: RbacConfig) -> Decision:
        return await check(self.allow_query, self.deny_query, state, config)

    def __repr__(self) -> str:
        return f"CheckRule(allow='{self.allow_query}', deny='{self.deny_query}')"


# ── Per-request authorizer ───────────────────────────────────────


class RequestAuthorizer:
    """Evaluation state of one request, usable from custom handlers."""

    def __init__(self, guard: RbacGuard, ctx: Any, state: EvaluationState) -> None:
        self._guard = guard
        self.ctx = ctx
        self.state = state

    @property
    def identity(self) -> Any:
        return self.state.identity

    async def check(self, permissions: PermissionSpec) -> Optional[int]:
        """Weight at which the requester holds ``permissions``; None if not held."""
        query = self._guard.parse(permissions)
        if not self.state.has_identity:
            return None
        return await resolve(await self.state.user_roles(), query, self.state)


# ── Guard ────────────────────────────────────────────────────────


class RbacGuard:
    """Builds access rules and evaluates rule chains for requests.

    Usage::

        guard = RbacGuard(RbacOptions(rbac=StaticRoleProvider(RULES)))
        rules = [guard.allow("read && update, manage"), guard.deny("archive")]

        ctx = RequestContext(user="marge", accept="text/html")
        outcome = await guard.run(ctx, rules)
    """

    def __init__(self, options: RbacOptions | None = None, **kwargs: Any) -> None:
        self._options = options if options is not None else RbacOptions(**kwargs)
        if not isinstance(self._options, RbacOptions):
            raise InvalidOptionError("Invalid options", received=type(self._options).__name__)

    @property
    def options(self) -> RbacOptions:
        return self._options

    @property
    def config(self) -> RbacConfig:
        return self._options.config

    # Rule construction (fails fast, before any request)

    def parse(self, permissions: PermissionSpec) -> PermissionQuery:
        return parse_permissions(
            permissions,
            or_separator=self.config.or_separator,
            and_separator=self.config.and_separator,
        )

    def allow(self, permissions: PermissionSpec, redirect_url: Optional[str] = None) -> AllowRule:
        return AllowRule(self.parse(permissions), redirect_url)

    def deny(self, permissions: PermissionSpec, redirect_url: Optional[str] = None) -> DenyRule:
        return DenyRule(self.parse(permissions), redirect_url)

    def check(
        self,
        permissions: Optional[Mapping[str, PermissionSpec]] = None,
        redirect_url: Optional[str] = None,
    ) -> CheckRule:
        """Build a rule from ``{"allow": ..., "deny": ...}`` (either key optional)."""
        permissions = permissions or {}
        if not isinstance(permissions, Mapping):
            raise MissingPermissionsError(received=type(permissions).__name__)

        allow_query = self.parse(permissions["allow"]) if "allow" in permissions else None
        deny_query = self.parse(permissions["deny"]) if "deny" in permissions else None
        return CheckRule(allow_query, deny_query, redirect_url)

    # Request evaluation

    async def begin(self, ctx: Any) -> RequestAuthorizer:
        """Resolve the identity of ``ctx`` and open its evaluation state."""
        identity = self._options.identity(ctx)
        if inspect.isawaitable(identity):
            identity = await identity
        state = EvaluationState(provider=self._options.provider, identity=identity)
        return RequestAuthorizer(self, ctx, state)

    async def evaluate(self, rule: Rule, authorizer: RequestAuthorizer) -> Outcome:
        decision = await rule.decide(authorizer.state, self.config)
        if decision.granted:
            return Outcome.PASS
        return await self._restrict(authorizer, decision.query, rule.redirect_url)

    async def run(self, ctx: Any, rules: Sequence[Rule]) -> Outcome:
        """Evaluate ``rules`` in order for one request; stop at the first restriction.

        Raises:
            ProviderError: If the provider fails; the request is not granted.
        """
        authorizer = await self.begin(ctx)
        for rule in rules:
            outcome = await self.evaluate(rule, authorizer)
            if outcome != Outcome.PASS:
                return outcome
        return Outcome.PASS

    def accepts_machine_readable(self, ctx: Any) -> bool:
        accept = (getattr(ctx, "accept", "") or "").lower()
        return any(media_type in accept for media_type in self.config.json_media_types)

    async def _restrict(
        self,
        authorizer: RequestAuthorizer,
        query: Optional[PermissionQuery],
        redirect_url: Optional[str],
    ) -> Outcome:
        ctx = authorizer.ctx
        log = get_rbac_logger(
            __name__,
            request_id=getattr(ctx, "request_id", None),
            identity=authorizer.identity,
        )

        handler = self._options.restriction_handler
        if handler is not None:
            result = handler(ctx, query, redirect_url)
            if inspect.isawaitable(result):
                await result
            log.info("Restricted by '%s' (custom handler)", query)
            return Outcome.RESTRICT

        if redirect_url and not self.accepts_machine_readable(ctx):
            ctx.redirect(redirect_url)
            log.info("Restricted by '%s', redirecting to %s", query, redirect_url)
            return Outcome.REDIRECT

        ctx.forbid()
        log.info("Restricted by '%s'", query)
        return Outcome.RESTRICT


__all__ = [
    "FORBIDDEN_BODY",
    "FORBIDDEN_STATUS",
    "REDIRECT_STATUS",
    "AllowRule",
    "CheckRule",
    "DenyRule",
    "Outcome",
    "RbacGuard",
    "RbacOptions",
    "RequestAuthorizer",
    "RequestContext",
    "Rule",
    "default_identity",
]
