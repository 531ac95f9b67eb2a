"""Exception hierarchy for rolecore.

All errors inherit from RoleCoreError. This module provides:
- Base exception hierarchy with stable error codes
- ErrorRegistry for protocol mapping
- gRPC error handler decorator (unary)

Usage:
    from rolecore.exceptions import (
        AuthorizationError,
        ConfigurationError,
        grpc_error_handler,
    )

Integrations may define thin subclasses for their own errors:
    @register_error("TENANT_MISMATCH")
    class TenantMismatchError(AuthorizationError):
        code = "TENANT_MISMATCH"
"""

from __future__ import annotations

import functools
import logging
from typing import Any, Callable, Iterable, TypeVar, cast

__all__ = [
    # Base hierarchy
    "RoleCoreError",
    "ConfigurationError",
    "AuthorizationError",
    "AuthenticationError",
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


class RoleCoreError(Exception):
    """Base exception for rolecore.

    Attributes:
        code: Stable error code string for protocol mapping (e.g. "PERMISSION_DENIED").
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


class ConfigurationError(RoleCoreError):
    """Invalid policy document or configuration. Raised at construction only."""

    code: str = "CONFIGURATION_ERROR"
    message: str = "Invalid configuration"


class AuthorizationError(RoleCoreError):
    """The identity does not hold the requested permissions or roles.

    ``missing`` carries the permissions (or role ids) that were requested
    and not satisfied.
    """

    code: str = "PERMISSION_DENIED"
    message: str = "Not Authorized"
    status: int = 403

    def __init__(
        self,
        message: str | None = None,
        code: str | None = None,
        *,
        missing: Iterable[str] = (),
        **kwargs: Any,
    ) -> None:
        self.missing = tuple(missing)
        super().__init__(message, code, **kwargs)


class AuthenticationError(RoleCoreError):
    """No authenticated identity is present on the request."""

    code: str = "UNAUTHENTICATED"
    message: str = "Not Authenticated"
    status: int = 401


# ---- Error Registry for Protocol Mapping ------------------------------------

_E = TypeVar("_E", bound=type[RoleCoreError])


class ErrorRegistry:
    """Registry for mapping internal errors to external protocol codes."""

    def __init__(self) -> None:
        self._errors: dict[str, type[RoleCoreError]] = {}

    def register(self, code: str, error_cls: type[RoleCoreError]) -> None:
        self._errors[code] = error_cls

    def get(self, code: str) -> type[RoleCoreError] | None:
        return self._errors.get(code)

    def all(self) -> dict[str, type[RoleCoreError]]:
        return dict(self._errors)


error_registry = ErrorRegistry()


def register_error(code: str) -> Callable[[_E], _E]:
    """Decorator to register a custom error type.

    Usage:
        @register_error("MY_CUSTOM_ERROR")
        class MyCustomError(RoleCoreError):
            code = "MY_CUSTOM_ERROR"
    """

    def decorator(cls: _E) -> _E:
        error_registry.register(code, cls)
        return cls

    return cast(Callable[[_E], _E], decorator)


error_registry.register("INTERNAL_ERROR", RoleCoreError)
error_registry.register("CONFIGURATION_ERROR", ConfigurationError)
error_registry.register("PERMISSION_DENIED", AuthorizationError)
error_registry.register("UNAUTHENTICATED", AuthenticationError)


# ---- gRPC Error Handling Utilities ------------------------------------------


def get_grpc_status_code(error: RoleCoreError) -> Any:
    """Map RoleCoreError to gRPC status code.

    Falls back to the registered parent class code for subclasses that
    define their own code, then to ``INTERNAL``.
    """
    import grpc

    error_to_status = {
        "UNAUTHENTICATED": grpc.StatusCode.UNAUTHENTICATED,
        "PERMISSION_DENIED": grpc.StatusCode.PERMISSION_DENIED,
        "CONFIGURATION_ERROR": grpc.StatusCode.FAILED_PRECONDITION,
    }
    status = error_to_status.get(error.code)
    if status is not None:
        return status
    for base in type(error).__mro__:
        base_code = getattr(base, "code", None)
        if base_code in error_to_status:
            return error_to_status[base_code]
    return grpc.StatusCode.INTERNAL


def grpc_error_handler(method):
    """Decorator for unary gRPC service methods with proper error handling.

    Catches RoleCoreError and aborts with the mapped gRPC status code.

    Usage:
        @grpc_error_handler
        async def GetPost(self, request, context):
            authorizer.authorize_by_permissions(claims, "posts.view")
            ...
    """

    @functools.wraps(method)
    async def wrapper(self, request, context):
        try:
            return await method(self, request, context)
        except RoleCoreError as e:
            status_code = get_grpc_status_code(e)
            error_message = f"[{e.code}] {e.message}"

            logger.error(
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
