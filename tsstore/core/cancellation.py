"""
Cooperative cancellation for long-running store operations.

A single token is handed down from the caller to every suspension point
(lock polling, installer process, registry fetch). Setting it makes those
points unwind promptly with ``OperationCancelled``.
"""

import threading
from typing import Optional

from tsstore.core.exceptions import OperationCancelled


class CancellationToken:
    """
    Thread-safe abort signal.

    Example:
        >>> token = CancellationToken()
        >>> token.cancel()
        >>> token.cancelled
        True
    """

    def __init__(self):
        self._event = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Signal cancellation to every operation holding this token."""
        self._event.set()

    def wait(self, timeout: float) -> bool:
        """
        Sleep for up to ``timeout`` seconds, waking early on cancellation.

        Returns:
            True if the token was cancelled while waiting
        """
        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled("Operation was cancelled.")


def is_cancelled(token: Optional[CancellationToken]) -> bool:
    """Return True if ``token`` is set; a missing token is never cancelled."""
    return token is not None and token.cancelled


def sleep(seconds: float, token: Optional[CancellationToken] = None) -> None:
    """
    Cancellation-aware sleep.

    Raises:
        OperationCancelled: If the token fires before the delay elapses
    """
    if token is None:
        threading.Event().wait(seconds)
        return
    if token.wait(seconds):
        token.raise_if_cancelled()


__all__ = ["CancellationToken", "is_cancelled", "sleep"]
