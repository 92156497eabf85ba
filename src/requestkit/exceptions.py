"""Client-specific exceptions."""

from __future__ import annotations


class RequestKitError(Exception):
    """Base exception for all requestkit failures."""

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class ConfigurationError(RequestKitError):
    """Raised when a client option cannot be applied at construction time."""


class RequestOptionError(RequestKitError):
    """Raised when a per-request option fails; no network attempt is made."""


class TransportError(RequestKitError):
    """Raised when every attempt of a request failed at the transport level."""

    def __init__(self, message: str, *, retries: int, attempts: int, cause: BaseException | None = None) -> None:
        super().__init__(message, cause=cause)
        self.retries = retries
        self.attempts = attempts


class CancellationError(RequestKitError):
    """Raised when the request's cancellation token fired."""

    def __init__(self, message: str, *, reason: str, cause: BaseException | None = None) -> None:
        super().__init__(message, cause=cause)
        self.reason = reason
