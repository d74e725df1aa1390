"""Exception hierarchy for the scoped access service.

Provides:
- Base exception with stable error codes
- ErrorRegistry for protocol mapping
- gRPC error handler decorator

Data-quality problems in the sources (malformed grant locators, unknown
directories) are not exceptions: they are dropped with a diagnostic.
"""

from __future__ import annotations

import functools
import logging
from typing import Any, Callable, TypeVar, cast

__all__ = [
    "ScopedAccessError",
    "ConfigurationError",
    "InvalidRequestError",
    "UnsupportedOperationError",
    "UpstreamUnavailableError",
    "ErrorRegistry",
    "error_registry",
    "register_error",
    "get_grpc_status_code",
    "grpc_error_handler",
]

logger = logging.getLogger(__name__)


# ---- Exception Hierarchy ----------------------------------------------------


class ScopedAccessError(Exception):
    """Base exception for the scoped access service.

    Attributes:
        code: Stable error code string for protocol mapping (e.g. "INVALID_REQUEST").
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


class ConfigurationError(ScopedAccessError):
    """Invalid or missing configuration."""

    code: str = "CONFIGURATION_ERROR"


class InvalidRequestError(ScopedAccessError):
    """Caller omitted a required filter or passed the wrong argument count."""

    code: str = "INVALID_REQUEST"


class UnsupportedOperationError(ScopedAccessError):
    """Insert, delete, or an operation on an unknown table."""

    code: str = "UNSUPPORTED_OPERATION"


class UpstreamUnavailableError(ScopedAccessError):
    """Grant registry or decision store failed to respond."""

    code: str = "UPSTREAM_UNAVAILABLE"


# ---- Error Registry for Protocol Mapping ------------------------------------

_E = TypeVar("_E", bound=type[ScopedAccessError])


class ErrorRegistry:
    """Registry for mapping internal errors to external protocol codes."""

    def __init__(self) -> None:
        self._errors: dict[str, type[ScopedAccessError]] = {}

    def register(self, code: str, error_cls: type[ScopedAccessError]) -> None:
        self._errors[code] = error_cls

    def get(self, code: str) -> type[ScopedAccessError] | None:
        return self._errors.get(code)

    def all(self) -> dict[str, type[ScopedAccessError]]:
        return dict(self._errors)


error_registry = ErrorRegistry()


def register_error(code: str) -> Callable[[_E], _E]:
    """Decorator to register a custom error type.

    Usage:
        @register_error("MY_CUSTOM_ERROR")
        class MyCustomError(ScopedAccessError):
            code = "MY_CUSTOM_ERROR"
    """

    def decorator(cls: _E) -> _E:
        error_registry.register(code, cls)
        return cls

    return cast(Callable[[_E], _E], decorator)


error_registry.register("INTERNAL_ERROR", ScopedAccessError)
error_registry.register("CONFIGURATION_ERROR", ConfigurationError)
error_registry.register("INVALID_REQUEST", InvalidRequestError)
error_registry.register("UNSUPPORTED_OPERATION", UnsupportedOperationError)
error_registry.register("UPSTREAM_UNAVAILABLE", UpstreamUnavailableError)


# ---- gRPC Error Handling ----------------------------------------------------


def get_grpc_status_code(error: ScopedAccessError) -> Any:
    """Map ScopedAccessError to a grpc.StatusCode."""
    import grpc

    error_to_status = {
        "CONFIGURATION_ERROR": grpc.StatusCode.FAILED_PRECONDITION,
        "INVALID_REQUEST": grpc.StatusCode.INVALID_ARGUMENT,
        "UNSUPPORTED_OPERATION": grpc.StatusCode.UNIMPLEMENTED,
        "UPSTREAM_UNAVAILABLE": grpc.StatusCode.UNAVAILABLE,
    }
    return error_to_status.get(error.code, grpc.StatusCode.INTERNAL)


def grpc_error_handler(method):
    """Decorator for unary gRPC handlers.

    Catches ScopedAccessError, aborts the call with the mapped status code
    and sets an ``error-code`` trailing metadata entry.

    Usage:
        @grpc_error_handler
        async def Query(self, request, context):
            ...
    """

    @functools.wraps(method)
    async def wrapper(self, request, context):
        try:
            return await method(self, request, context)
        except ScopedAccessError as e:
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
