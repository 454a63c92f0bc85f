"""
Structured error types for grid-kernel.

Every error raised by the kernel derives from :class:`GridKernelError`, which
carries a category and a free-form context mapping so that hosts can log and
route failures without parsing messages.

Manifesto:
    Most failures inside the kernel are *contained*: a failing lifecycle hook
    becomes a ``HookFailure`` record, a failing health check becomes an
    ``unhealthy`` result, an out-of-phase lifecycle call becomes a no-op.
    The exceptions in this module are the few conditions that must reach the
    caller:

    - **ChainTooDeepError:** deriving a context would exceed the depth limit
    - **ContextNotInitializedError:** a context was used before it existed
    - **RegistrationClosedError:** hooks registered after ``start()``
    - **MissingSecretError:** no secrets source knows a key
    - **KernelInvariantError:** internal state is corrupt (fatal)

Architecture:
    ::

        GridKernelError (category, context)
        ├── ChainTooDeepError          CONTEXT
        ├── ContextNotInitializedError CONTEXT
        ├── RegistrationClosedError    LIFECYCLE
        ├── MissingSecretError         SECRETS
        └── KernelInvariantError       INTERNAL

Tags:
    error-handling, exception-hierarchy, grid-kernel

Doc-Types:
    api-reference
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Coarse classification used for logging and alert routing."""

    CONTEXT = "CONTEXT"
    LIFECYCLE = "LIFECYCLE"
    HEALTH = "HEALTH"
    CONFIG = "CONFIG"
    SECRETS = "SECRETS"
    INTERNAL = "INTERNAL"


class GridKernelError(Exception):
    """Base class for all kernel errors.

    Args:
        message: Human readable description
        category: Error category (defaults to the subclass default)
        context: Extra structured fields for logs
        cause: Underlying exception, if any
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context: dict[str, Any] = dict(context or {})
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        """Serialize for structured logging."""
        result: dict[str, Any] = {
            "error_type": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
        }
        if self.context:
            result["context"] = dict(self.context)
        if self.cause is not None:
            result["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return result

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, category={self.category.value})"


class ChainTooDeepError(GridKernelError):
    """Deriving a child context would exceed the configured causation depth."""

    default_category = ErrorCategory.CONTEXT

    def __init__(self, depth: int, max_depth: int, correlation_id: str | None = None):
        self.depth = depth
        self.max_depth = max_depth
        super().__init__(
            f"Causation chain depth {depth} exceeds maximum of {max_depth}",
            context={"depth": depth, "max_depth": max_depth, "correlation_id": correlation_id},
        )


class ContextNotInitializedError(GridKernelError):
    """A grid or node context was required but has not been established."""

    default_category = ErrorCategory.CONTEXT


class RegistrationClosedError(GridKernelError):
    """Hooks can no longer be registered because the lifecycle has started."""

    default_category = ErrorCategory.LIFECYCLE


class MissingSecretError(GridKernelError):
    """Raised when a secret cannot be resolved from any source."""

    default_category = ErrorCategory.SECRETS

    def __init__(self, key: str, tried_sources: list[str] | None = None):
        self.key = key
        self.tried_sources = list(tried_sources or [])

        msg = f"Secret not found: {key}"
        if self.tried_sources:
            msg += f" (tried: {', '.join(self.tried_sources)})"
        super().__init__(msg, context={"key": key, "tried_sources": self.tried_sources})


class KernelInvariantError(GridKernelError):
    """Internal state violated an invariant; the host should treat this as fatal."""

    default_category = ErrorCategory.INTERNAL


__all__ = [
    "ErrorCategory",
    "GridKernelError",
    "ChainTooDeepError",
    "ContextNotInitializedError",
    "RegistrationClosedError",
    "MissingSecretError",
    "KernelInvariantError",
]
