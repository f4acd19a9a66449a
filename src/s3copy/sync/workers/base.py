"""Cooperative cancellation for worker threads.

This module provides:
- OperationCancelled: Raised when work stops because of cancellation
- DeadlineExceeded: Cancellation caused by an expired deadline
- CancelToken: Thread-safe cancellation signal with optional deadline
"""

from __future__ import annotations

import threading
import time


class OperationCancelled(Exception):
    """Raised when an operation is cancelled."""


class DeadlineExceeded(OperationCancelled):
    """Raised when an operation runs past its deadline."""


class CancelToken:
    """Cancellation signal shared by a producer, its workers and their children.

    A token is cancelled when cancel() is called on it or on any ancestor, or
    when its own or an ancestor's deadline passes. Work is never interrupted;
    callers poll ``cancelled`` or call raise_if_cancelled() between steps.

    Usage:
        token = CancelToken(timeout=30)
        scope = token.child()
        scope.cancel()          # stops the scope, not the parent
        scope.raise_if_cancelled()
    """

    def __init__(self, timeout: float | None = None, parent: CancelToken | None = None) -> None:
        """Initialize the token.

        Args:
            timeout: Seconds until the token expires. None or 0 means no deadline.
            parent: Token whose cancellation this token inherits.
        """
        self._event = threading.Event()
        self._parent = parent
        self._deadline = time.monotonic() + timeout if timeout else None

    def child(self, timeout: float | None = None) -> CancelToken:
        """Create a token that is cancelled whenever this one is."""
        return CancelToken(timeout=timeout, parent=self)

    def cancel(self) -> None:
        """Request cancellation."""
        self._event.set()

    @property
    def deadline_exceeded(self) -> bool:
        """True if this token or an ancestor ran past its deadline."""
        if self._deadline is not None and time.monotonic() >= self._deadline:
            return True
        return self._parent is not None and self._parent.deadline_exceeded

    @property
    def cancelled(self) -> bool:
        """True if cancel() was called here or upstream, or a deadline passed."""
        if self._event.is_set() or self.deadline_exceeded:
            return True
        return self._parent is not None and self._parent.cancelled

    def remaining(self) -> float | None:
        """Seconds left before the nearest deadline, or None without one."""
        values = []
        token: CancelToken | None = self
        while token is not None:
            if token._deadline is not None:
                values.append(token._deadline - time.monotonic())
            token = token._parent
        return max(0.0, min(values)) if values else None

    def raise_if_cancelled(self) -> None:
        """Raise DeadlineExceeded or OperationCancelled if cancelled."""
        if self.deadline_exceeded:
            raise DeadlineExceeded("deadline exceeded")
        if self.cancelled:
            raise OperationCancelled("operation cancelled")

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds, waking early on cancellation.

        Returns:
            True if the token is cancelled.
        """
        end = time.monotonic() + timeout
        while not self.cancelled:
            left = end - time.monotonic()
            if left <= 0:
                return False
            remaining = self.remaining()
            if remaining is not None:
                left = min(left, remaining)
            self._event.wait(min(left, 0.1))
        return True
