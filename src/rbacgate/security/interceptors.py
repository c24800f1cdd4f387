"""gRPC interceptor enforcing rule chains per RPC.

Provides:
- ``EnforcementMode``: off / warn / enforce toggle.
- ``RbacInterceptor``: server interceptor running a guard rule chain per RPC.
- ``_extract_rpc_name``, ``_should_skip``: helper utilities.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Mapping, Sequence

import grpc

from ..exceptions import PermissionDeniedError, ProviderError, RbacError, grpc_error_handler
from .guard import Outcome, RbacGuard, RequestContext, Rule

logger = logging.getLogger(__name__)


class EnforcementMode(str, Enum):
    """Three-state enforcement toggle.

    - ``off``:     no checks, only caller logging.
    - ``warn``:    evaluate rules, log restrictions as WARNING, let the call through.
    - ``enforce``: evaluate rules, abort restricted calls (production).

    Set via env ``RBAC_ENFORCEMENT=off|warn|enforce``.
    """

    OFF = "off"
    WARN = "warn"
    ENFORCE = "enforce"

    @classmethod
    def from_env(cls) -> EnforcementMode:
        """Read from ``RBAC_ENFORCEMENT`` env var (default: warn)."""
        import os

        raw = os.environ.get("RBAC_ENFORCEMENT", "warn").strip().lower()
        try:
            return cls(raw)
        except ValueError:
            logger.warning("Unknown RBAC_ENFORCEMENT=%r, defaulting to 'warn'", raw)
            return cls.WARN


_SKIP_PREFIXES = (
    "grpc.health.v1",
    "grpc.reflection.v1",
)

DEFAULT_ACCEPT = "application/grpc"


def _extract_rpc_name(full_method: str) -> str:
    """``/docs.DocumentService/Update`` → ``Update``"""
    return full_method.rsplit("/", 1)[-1] if "/" in full_method else full_method


def _should_skip(method: str) -> bool:
    return any(prefix in method for prefix in _SKIP_PREFIXES)


class _RejectedCall:
    """Stand-in handler failing every call with one error."""

    def __init__(self, error: RbacError) -> None:
        self.error = error

    @grpc_error_handler
    async def reject(self, request, context):
        raise self.error


def _abort_handler(error: RbacError) -> grpc.RpcMethodHandler:
    return grpc.unary_unary_rpc_method_handler(_RejectedCall(error).reject)


class RbacInterceptor(grpc.aio.ServerInterceptor):
    """Runs the rule chain mapped to each RPC before its handler.

    The identity is read from the ``identity_metadata_key`` metadata entry
    and placed on ``RequestContext.user``; the guard's identity function
    then sees it like any other request. Unmapped RPCs are denied
    (fail-closed). Provider failures abort with ``UNAVAILABLE`` in warn and
    enforce modes.

    Args:
        guard: Guard holding the provider and options.
        rpc_rules: Mapping of RPC name → rule chain (``[]`` = public).
        service_name: Name used in log messages.
        enforcement: off / warn / enforce (default from ``RBAC_ENFORCEMENT``).
        identity_metadata_key: Metadata key carrying the caller identity.

    Usage::

        guard = RbacGuard(rbac=provider)
        interceptor = RbacInterceptor(
            guard,
            {"Read": [guard.allow("read")], "Purge": [guard.allow("manage"), guard.deny("read-only")]},
            service_name="Documents",
            enforcement=EnforcementMode.ENFORCE,
        )
        server = grpc.aio.server(interceptors=[interceptor])
    """

    def __init__(
        self,
        guard: RbacGuard,
        rpc_rules: Mapping[str, Sequence[Rule]],
        *,
        service_name: str = "Service",
        enforcement: EnforcementMode | None = None,
        identity_metadata_key: str = "x-user-id",
    ) -> None:
        self._guard = guard
        self._rpc_rules = dict(rpc_rules)
        self._service_name = service_name
        self._mode = enforcement if enforcement is not None else EnforcementMode.from_env()
        self._identity_key = identity_metadata_key

        if self._mode != EnforcementMode.OFF:
            logger.info("%s RBAC interceptor mode: %s", self._service_name, self._mode.value)

    def _build_context(self, metadata: dict[str, Any]) -> RequestContext:
        ctx = RequestContext(
            user=metadata.get(self._identity_key) or None,
            accept=metadata.get("accept") or DEFAULT_ACCEPT,
            headers={key: value for key, value in metadata.items() if isinstance(value, str)},
        )
        request_id = metadata.get("x-request-id")
        if request_id:
            ctx.request_id = request_id
        return ctx

    async def intercept_service(
        self,
        continuation: Any,
        handler_call_details: grpc.HandlerCallDetails,
    ) -> grpc.RpcMethodHandler:
        """Intercept incoming gRPC calls and apply the RPC's rule chain."""
        method = handler_call_details.method or ""

        if _should_skip(method):
            return await continuation(handler_call_details)

        rpc_name = _extract_rpc_name(method)
        metadata = dict(handler_call_details.invocation_metadata or [])
        ctx = self._build_context(metadata)

        logger.info(
            "%s RPC %s | caller=%s",
            self._service_name,
            rpc_name,
            ctx.user or "anonymous",
        )

        if self._mode == EnforcementMode.OFF:
            return await continuation(handler_call_details)

        rules = self._rpc_rules.get(rpc_name)
        deny_reason: str | None = None

        if rules is None:
            deny_reason = "RPC not mapped to rules"
        else:
            try:
                outcome = await self._guard.run(ctx, rules)
            except ProviderError as e:
                logger.error(
                    "%s RPC %s aborted: %s",
                    self._service_name,
                    rpc_name,
                    e.message,
                    extra={"error_code": e.code, "error_details": e.details},
                )
                return _abort_handler(e)

            if outcome != Outcome.PASS:
                deny_reason = f"restricted ({outcome.value}, status={ctx.status})"

        if deny_reason:
            if self._mode == EnforcementMode.WARN:
                logger.warning(
                    "%s WARN_DENIED '%s' for %s: %s (would block in enforce mode)",
                    self._service_name,
                    rpc_name,
                    ctx.user or "anonymous",
                    deny_reason,
                )
                return await continuation(handler_call_details)

            logger.warning(
                "%s DENIED '%s' for %s: %s",
                self._service_name,
                rpc_name,
                ctx.user or "anonymous",
                deny_reason,
            )
            return _abort_handler(PermissionDeniedError(rpc=rpc_name, reason=deny_reason))

        logger.debug("%s ALLOWED '%s' for %s", self._service_name, rpc_name, ctx.user or "anonymous")
        return await continuation(handler_call_details)


__all__ = [
    "DEFAULT_ACCEPT",
    "EnforcementMode",
    "RbacInterceptor",
    "_extract_rpc_name",
    "_should_skip",
]
