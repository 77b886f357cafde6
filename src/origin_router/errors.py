"""Shared error types for origin_router.

Callers can distinguish between:
  - Invalid backend lists or settings (``ConfigError``).
  - No backend being eligible for selection (``NoAvailableBackendError``).
  - A request failing at the transport after the retry budget is spent
    (``TransportError``).
  - An interceptor misbehaving (``InterceptorError``).

``ProbeError`` never reaches application code; it is folded into backend
statistics by the health prober.
"""

from __future__ import annotations


class RouterError(Exception):
    """Base exception for the origin_router package."""


class ConfigError(RouterError, ValueError):
    """Raised when backend registration input or settings are invalid."""


class NoAvailableBackendError(RouterError):
    """Raised when no backend is eligible to receive a request."""

    def __init__(self, message: str = "No available backends") -> None:
        super().__init__(message)


class TransportError(RouterError):
    """Raised by a transport when a request could not be completed.

    Attributes:
        url: Target URL of the failed request, when known.
        status_code: HTTP status observed, when the failure was a response.
    """

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        status_code: int | None = None,
    ) -> None:
        """Initialize transport failure metadata.

        Args:
            message: Human-readable error message.
            url: Target URL of the failed request.
            status_code: Optional HTTP status observed from the backend.
        """
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class TransportTimeoutError(TransportError):
    """Raised when a request exceeds its timeout."""


class ProbeError(RouterError):
    """Raised internally when a health probe times out or fails."""

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"probe_failed: {url} {reason}")


class InterceptorError(RouterError):
    """Raised when an interceptor raises or returns an unusable value.

    Attributes:
        chain: Name of the chain the interceptor belongs to.
        interceptor: Qualified name of the failing interceptor.
    """

    def __init__(self, chain: str, interceptor: str, message: str) -> None:
        self.chain = chain
        self.interceptor = interceptor
        super().__init__(f"{chain} interceptor {interceptor} failed: {message}")
