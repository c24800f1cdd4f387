"""Request-facing integration for rbacgate.

This package turns decisions into request outcomes:
1. **Guard**: rule construction and per-request rule chains
   (pass-through, 403 ``Forbidden``, or redirect).
2. **gRPC interceptors**: rule chains bound to RPC names.

Usage::

    from rbacgate.security import RbacGuard, RbacOptions, get_rbac_interceptors

    guard = RbacGuard(RbacOptions(rbac=provider))
    server = grpc.aio.server(
        interceptors=get_rbac_interceptors(guard, {"Read": [guard.allow("read")]}),
    )

Configuration (env vars)::

    RBAC_ENFORCEMENT=enforce     # off | warn | enforce (default: warn)
"""

from __future__ import annotations

from typing import Mapping, Sequence

import grpc

from .guard import (
    FORBIDDEN_BODY,
    FORBIDDEN_STATUS,
    REDIRECT_STATUS,
    AllowRule,
    CheckRule,
    DenyRule,
    Outcome,
    RbacGuard,
    RbacOptions,
    RequestAuthorizer,
    RequestContext,
    Rule,
    default_identity,
)
from .interceptors import (
    EnforcementMode,
    RbacInterceptor,
    _extract_rpc_name,
    _should_skip,
)


def get_rbac_interceptors(
    guard: RbacGuard,
    rpc_rules: Mapping[str, Sequence[Rule]],
    *,
    service_name: str = "Service",
    enforcement: EnforcementMode | None = None,
) -> list[grpc.aio.ServerInterceptor]:
    """Get gRPC server interceptors enforcing ``rpc_rules``.

    Returns an empty list when enforcement is off.

    Usage::

        server = grpc.aio.server(interceptors=get_rbac_interceptors(guard, RPC_RULES))
    """
    mode = enforcement if enforcement is not None else EnforcementMode.from_env()
    if mode == EnforcementMode.OFF:
        return []
    return [RbacInterceptor(guard, rpc_rules, service_name=service_name, enforcement=mode)]


__all__ = [
    # Guard
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
    # Interceptors
    "EnforcementMode",
    "RbacInterceptor",
    "_extract_rpc_name",
    "_should_skip",
    "get_rbac_interceptors",
]
