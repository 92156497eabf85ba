"""Explicit cancellation tokens threaded through request building and retries."""

from __future__ import annotations

import threading
import time
from typing import Callable

from .exceptions import CancellationError


CANCELLED = "cancelled"
DEADLINE_EXCEEDED = "deadline exceeded"


class CancellationToken:
    """A cancel signal with an optional deadline.

    The token is safe to share between threads. `cancel()` may be called from
    any thread; the deadline is evaluated lazily against the monotonic clock.
    """

    def __init__(self, *, timeout: float | None = None) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []
        self._reason: str | None = None
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    @classmethod
    def with_timeout(cls, seconds: float) -> "CancellationToken":
        return cls(timeout=seconds)

    @property
    def deadline(self) -> float | None:
        return self._deadline

    @property
    def reason(self) -> str | None:
        if self.cancelled:
            return self._reason
        return None

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._fire(DEADLINE_EXCEEDED)
            return True
        return False

    def cancel(self) -> None:
        self._fire(CANCELLED)

    def remaining(self) -> float | None:
        """Seconds left until the deadline, or None without one."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def wait(self, seconds: float) -> bool:
        """Block for up to `seconds`; return True if the token fired meanwhile."""
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        self._event.wait(max(0.0, seconds))
        return self.cancelled

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise CancellationError(f"request {self._reason}", reason=self._reason or CANCELLED)

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Run `callback` once the token fires; return a function that unregisters it.

        A deadline only fires when observed, so waiters also bound themselves
        with `remaining()`.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return lambda: self._remove_callback(callback)
        callback()
        return lambda: None

    def _remove_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def _fire(self, reason: str) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._reason = reason
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def __repr__(self) -> str:
        state = self._reason if self._event.is_set() else "active"
        return f"CancellationToken({state}, remaining={self.remaining()})"
