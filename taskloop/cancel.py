"""Cooperative cancellation for request rounds.

A fresh CancelToken is issued for every request round. Abort cancels it;
the chunk processor registers an on_cancel hook to stop a stream read that
is still in flight, providers may poll is_cancelled between events, and
provider.open_stream() refuses to open a request for a cancelled round.
"""

import logging
import threading
from typing import Callable, List

logger = logging.getLogger(__name__)


class CancelledException(Exception):
    """Raised when work is attempted for a cancelled round."""

    def __init__(self, message: str = "Request round was cancelled"):
        super().__init__(message)


class CancelToken:
    """Cancellation flag for one request round.

    cancel() may be called from a host thread, so registration and firing
    are guarded by a lock. Hooks must not block; to wake a coroutine from a
    hook, hand off with ``loop.call_soon_threadsafe``.
    """

    def __init__(self):
        self._cancelled = False
        self._lock = threading.Lock()
        self._hooks: List[Callable[[], None]] = []

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Cancel the round. Later calls do nothing; hooks fire once."""
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            hooks, self._hooks = self._hooks, []

        for hook in hooks:
            self._fire(hook)

    def on_cancel(self, hook: Callable[[], None]) -> None:
        """Run ``hook`` on cancellation, or right away if already cancelled."""
        with self._lock:
            if not self._cancelled:
                self._hooks.append(hook)
                return
        self._fire(hook)

    def raise_if_cancelled(self) -> None:
        """Raises CancelledException once the round is cancelled."""
        if self._cancelled:
            raise CancelledException()

    @staticmethod
    def _fire(hook: Callable[[], None]) -> None:
        try:
            hook()
        except Exception:
            logger.exception("Cancel hook %r failed", hook)


__all__ = ["CancelToken", "CancelledException"]
