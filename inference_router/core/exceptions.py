"""
Custom exceptions for the Inference Router.

This module provides the exception hierarchy for the router. All exceptions
inherit from InferenceRouterError and carry an error code for consistent
error handling and API responses.

Backend errors are raised by adapters and classified by the router:
auth and generic errors fail a candidate at once, rate-limit and transient
errors may be retried. Limiter and circuit outcomes never reach callers on
their own; the router advances the chain and, when every candidate fails,
raises AllBackendsExhaustedError listing each attempt in chain order.

Reference:
- Specific exceptions, always capture with 'as e'
"""

from enum import Enum
from typing import Any, Optional, Sequence

from inference_router.models.domain import BackendAttempt, BackendId


# =============================================================================
# Error Codes Enum
# =============================================================================


class ErrorCode(str, Enum):
    """
    Error codes for Inference Router exceptions.

    These codes provide a consistent way to identify error types
    across the API and in logging.
    """

    ROUTER_ERROR = "ROUTER_ERROR"
    BACKEND_ERROR = "BACKEND_ERROR"
    BACKEND_AUTH_ERROR = "BACKEND_AUTH_ERROR"
    BACKEND_RATE_LIMITED = "BACKEND_RATE_LIMITED"
    BACKEND_TRANSIENT = "BACKEND_TRANSIENT"
    BACKEND_STREAM_INTERRUPTED = "BACKEND_STREAM_INTERRUPTED"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    RATE_LIMIT_TIMEOUT = "RATE_LIMIT_TIMEOUT"
    RATE_LIMIT_RESET = "RATE_LIMIT_RESET"
    DAILY_QUOTA_EXCEEDED = "DAILY_QUOTA_EXCEEDED"
    CIRCUIT_OPEN = "CIRCUIT_OPEN"
    UNKNOWN_BACKEND = "UNKNOWN_BACKEND"
    ALL_BACKENDS_EXHAUSTED = "ALL_BACKENDS_EXHAUSTED"
    CACHE_UNAVAILABLE = "CACHE_UNAVAILABLE"


# =============================================================================
# Base Exception
# =============================================================================


class InferenceRouterError(Exception):
    """
    Base exception for all Inference Router errors.

    Attributes:
        message: Human-readable error message.
        error_code: Machine-readable error code from ErrorCode enum.
    """

    def __init__(
        self,
        message: str,
        error_code: str = ErrorCode.ROUTER_ERROR,
        **kwargs: Any,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code

        for key, value in kwargs.items():
            setattr(self, key, value)


# =============================================================================
# Backend Errors (raised by adapters)
# =============================================================================


class BackendError(InferenceRouterError):
    """
    Exception for a failed backend call.

    Raised by adapters for errors that do not fit a narrower subclass,
    e.g. a 400 Bad Request. Not retried; the router moves to the next
    candidate.

    Attributes:
        provider: Provider name of the failing backend.
        model: Model identifier of the failing backend.
        status_code: HTTP status code from the backend (if applicable).
    """

    default_error_code: str = ErrorCode.BACKEND_ERROR

    def __init__(
        self,
        message: str,
        provider: str,
        model: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_code or self.default_error_code, **kwargs)
        self.provider = provider
        self.model = model
        self.status_code = status_code

    @property
    def backend(self) -> BackendId:
        """Identity of the backend that raised this error."""
        return BackendId(provider=self.provider, model=self.model)


class BackendAuthError(BackendError):
    """Credentials were rejected (401/403). Never retried."""

    default_error_code = ErrorCode.BACKEND_AUTH_ERROR


class BackendRateLimitError(BackendError):
    """
    The remote backend refused the call for rate reasons (429).

    Attributes:
        retry_after_seconds: Server hint from Retry-After, if present.
    """

    default_error_code = ErrorCode.BACKEND_RATE_LIMITED

    def __init__(
        self,
        message: str,
        provider: str,
        model: str,
        status_code: Optional[int] = 429,
        retry_after_seconds: Optional[float] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, provider, model, status_code, **kwargs)
        self.retry_after_seconds = retry_after_seconds


class BackendTransientError(BackendError):
    """Timeout, connection failure or 5xx. Retried a bounded number of times."""

    default_error_code = ErrorCode.BACKEND_TRANSIENT


class BackendStreamInterruptedError(BackendTransientError):
    """
    A stream failed after content was already delivered to the caller.

    The router cannot fall back at that point without duplicating output,
    so this error propagates to the caller.
    """

    default_error_code = ErrorCode.BACKEND_STREAM_INTERRUPTED


# =============================================================================
# Local Admission Errors (raised by the limiter)
# =============================================================================


class RateLimitExceededError(InferenceRouterError):
    """
    No token was available for a backend and the caller chose not to wait.

    Attributes:
        backend: Backend whose bucket was empty.
        retry_after_ms: Milliseconds until the next token, if known.
    """

    default_error_code: str = ErrorCode.RATE_LIMIT_EXCEEDED

    def __init__(
        self,
        message: str,
        backend: BackendId,
        retry_after_ms: Optional[float] = None,
        error_code: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_code or self.default_error_code, **kwargs)
        self.backend = backend
        self.retry_after_ms = retry_after_ms


class RateLimitTimeoutError(RateLimitExceededError):
    """A queued waiter reached its deadline before a token arrived."""

    default_error_code = ErrorCode.RATE_LIMIT_TIMEOUT


class RateLimitResetError(RateLimitExceededError):
    """A queued waiter was cancelled because its bucket was reset."""

    default_error_code = ErrorCode.RATE_LIMIT_RESET


class DailyQuotaExceededError(RateLimitExceededError):
    """The backend's daily request quota is used up. Not waitable, not retried."""

    default_error_code = ErrorCode.DAILY_QUOTA_EXCEEDED


# =============================================================================
# Routing Errors
# =============================================================================


class CircuitOpenError(InferenceRouterError):
    """
    The backend's circuit is open and its cooldown has not elapsed.

    Attributes:
        backend: Backend whose circuit is open.
    """

    def __init__(self, backend: BackendId, message: Optional[str] = None) -> None:
        super().__init__(
            message or f"Circuit open for {backend.key}",
            ErrorCode.CIRCUIT_OPEN,
        )
        self.backend = backend


class UnknownBackendError(InferenceRouterError):
    """No adapter is registered for a backend named in a chain."""

    def __init__(self, backend: BackendId) -> None:
        super().__init__(
            f"No adapter registered for {backend.key}",
            ErrorCode.UNKNOWN_BACKEND,
        )
        self.backend = backend


class AllBackendsExhaustedError(InferenceRouterError):
    """
    Every backend in the selected chain failed or was skipped.

    Attributes:
        attempts: One BackendAttempt per chain entry, in chain order.
        chain_name: Name of the chain that was walked.
    """

    def __init__(
        self,
        attempts: Sequence[BackendAttempt],
        chain_name: Optional[str] = None,
    ) -> None:
        self.attempts = list(attempts)
        self.chain_name = chain_name
        detail = "; ".join(
            f"{attempt.backend.key} ({attempt.reason})" for attempt in self.attempts
        )
        label = f" in chain '{chain_name}'" if chain_name else ""
        super().__init__(
            f"All backends exhausted{label}: {detail or 'chain is empty'}",
            ErrorCode.ALL_BACKENDS_EXHAUSTED,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API error bodies."""
        return {
            "code": self.error_code.value,
            "message": self.message,
            "chain": self.chain_name,
            "attempts": [
                {
                    "provider": attempt.backend.provider,
                    "model": attempt.backend.model,
                    "reason": attempt.reason,
                    "error_type": attempt.error_type,
                }
                for attempt in self.attempts
            ],
        }


# =============================================================================
# Cache Errors (internal only)
# =============================================================================


class CacheUnavailableError(InferenceRouterError):
    """
    The cache store failed. Raised inside the cache layer only; the cache
    converts it to a miss or no-op before returning.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message, ErrorCode.CACHE_UNAVAILABLE)
