"""Exception hierarchy for rbacgate.

Every error raised by the package derives from ``RbacError``. Errors fall in
two groups:

- setup-time errors (``ConfigurationError`` and its subclasses) raised when a
  guard, rule or provider is constructed, before any request is served;
- request-time errors (``ProviderError``) raised while a decision is being
  computed. They propagate to the caller and never turn into a grant.

Usage:
    from rbacgate.exceptions import (
        RbacError,
        InvalidPermissionQueryError,
        ProviderError,
        grpc_error_handler,
    )
"""

from __future__ import annotations

import functools
import logging
from typing import Any, Callable, TypeVar, cast

__all__ = [
    # Base hierarchy
    "RbacError",
    "ConfigurationError",
    "InvalidOptionError",
    "InvalidProviderError",
    "InvalidPermissionQueryError",
    "MissingPermissionsError",
    "ProviderError",
    "PermissionDeniedError",
    # Registry
    "ErrorRegistry",
    "error_registry",
    "register_error",
    # gRPC helpers
    "get_grpc_status_code",
    "grpc_error_handler",
]

logger = logging.getLogger(__name__)


# ---- Exception Hierarchy ----------------------------------------------------


class RbacError(Exception):
    """Base exception for rbacgate.

    Attributes:
        code: Stable error code string for protocol mapping (e.g. "PROVIDER_ERROR").
        message: Human-readable error description.
        details: Additional context as keyword arguments.
    """

    code: str = "INTERNAL_ERROR"
    message: str = "An internal error occurred"

    def __init__(self, message: str | None = None, code: str | None = None, **kwargs: Any) -> None:
        self.message = message or self.message
        self.code = code or self.code
        self.details = kwargs
        super().__init__(self.message)


class ConfigurationError(RbacError):
    """Invalid setup detected before serving requests."""

    code: str = "CONFIGURATION_ERROR"
    message: str = "Invalid configuration"


class InvalidOptionError(ConfigurationError):
    """Bad value in the guard options."""

    code: str = "INVALID_OPTION"
    message: str = "Invalid option"


class InvalidProviderError(ConfigurationError):
    """Provider is missing or lacks a required capability."""

    code: str = "INVALID_PROVIDER"
    message: str = "Invalid provider"


class InvalidPermissionQueryError(ConfigurationError):
    """Permission specification is malformed or empty after normalization."""

    code: str = "INVALID_PERMISSION_QUERY"
    message: str = "Invalid permissions"


class MissingPermissionsError(ConfigurationError):
    """A check rule was given neither an allow nor a deny query."""

    code: str = "MISSING_PERMISSIONS"
    message: str = "Missing allow or deny permissions"


class ProviderError(RbacError):
    """Role provider failed while fetching roles at request time."""

    code: str = "PROVIDER_ERROR"
    message: str = "Role provider failure"


class PermissionDeniedError(RbacError):
    """Request was restricted by an access rule."""

    code: str = "PERMISSION_DENIED"
    message: str = "Forbidden"


# ---- Error Registry for Protocol Mapping ------------------------------------

_E = TypeVar("_E", bound=type[RbacError])


class ErrorRegistry:
    """Registry for mapping internal errors to external protocol codes."""

    def __init__(self) -> None:
        self._errors: dict[str, type[RbacError]] = {}

    def register(self, code: str, error_cls: type[RbacError]) -> None:
        self._errors[code] = error_cls

    def get(self, code: str) -> type[RbacError] | None:
        return self._errors.get(code)

    def all(self) -> dict[str, type[RbacError]]:
        return dict(self._errors)


error_registry = ErrorRegistry()


def register_error(code: str) -> Callable[[_E], _E]:
    """Decorator to register a custom error type.

    Usage:
        @register_error("ROLE_STORE_ERROR")
        class RoleStoreError(ProviderError):
            code = "ROLE_STORE_ERROR"
    """

    def decorator(cls: _E) -> _E:
        error_registry.register(code, cls)
        return cls

    return cast(Callable[[_E], _E], decorator)


for _cls in (
    RbacError,
    ConfigurationError,
    InvalidOptionError,
    InvalidProviderError,
    InvalidPermissionQueryError,
    MissingPermissionsError,
    ProviderError,
    PermissionDeniedError,
):
    error_registry.register(_cls.code, _cls)


# ---- gRPC Error Handling Utilities ------------------------------------------


def get_grpc_status_code(error: RbacError) -> int:
    """Map RbacError to gRPC status code.

    Import grpc locally to avoid hard dependency at module level.
    """
    import grpc

    if isinstance(error, ConfigurationError):
        return grpc.StatusCode.FAILED_PRECONDITION

    error_to_status = {
        "PERMISSION_DENIED": grpc.StatusCode.PERMISSION_DENIED,
        "PROVIDER_ERROR": grpc.StatusCode.UNAVAILABLE,
    }
    return error_to_status.get(error.code, grpc.StatusCode.INTERNAL)


def grpc_error_handler(method):
    """Decorator for unary gRPC service methods with proper error handling.

    Catches RbacError and aborts with the mapped gRPC status code. A
    ``ProviderError`` surfaces as ``UNAVAILABLE``, never as a response.

    Usage:
        @grpc_error_handler
        async def GetDocument(self, request, context):
            ...
    """

    @functools.wraps(method)
    async def wrapper(self, request, context):
        try:
            return await method(self, request, context)
        except RbacError as e:
            status_code = get_grpc_status_code(e)
            error_message = f"[{e.code}] {e.message}"

            # denials are expected traffic, not server faults
            log = logger.warning if isinstance(e, PermissionDeniedError) else logger.error
            log(
                "%s failed: %s",
                method.__name__,
                error_message,
                extra={
                    "error_code": e.code,
                    "error_details": e.details,
                },
            )

            context.set_trailing_metadata([("error-code", e.code)])
            await context.abort(status_code, error_message)
            return

        except Exception as e:
            import grpc

            logger.exception("%s unexpected error: %s", method.__name__, e)
            await context.abort(
                grpc.StatusCode.INTERNAL,
                f"Unexpected {type(e)}: {e}",
            )
            return

    return wrapper
