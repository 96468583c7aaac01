"""Batches streamed text before it reaches the conversation store.

Writing every token to the store (and refreshing the UI each time) is
wasteful at high token rates. The buffer writes when any of these hold:

- the flush is forced
- the buffered text reached the size threshold
- the flush interval elapsed since the last write

Otherwise one deferred flush is scheduled for the rest of the interval,
replacing any deferred flush already pending. While paused no deferred
flush is scheduled or fires; pause() force-flushes first so nothing is
stranded.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

# Parameters: (reply_ts, text)
FlushSink = Callable[[int, str], Awaitable[None]]

DEFAULT_FLUSH_INTERVAL = 0.01  # seconds
DEFAULT_SIZE_THRESHOLD = 50    # characters


class OutputBuffer:
    """Hybrid time/size flush policy over an async sink."""

    def __init__(
        self,
        sink: FlushSink,
        flush_interval: float = DEFAULT_FLUSH_INTERVAL,
        size_threshold: int = DEFAULT_SIZE_THRESHOLD,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            sink: Coroutine that persists text onto the message ``reply_ts``.
            flush_interval: Max seconds text may sit in the buffer.
            size_threshold: Buffered length that triggers an immediate write.
            clock: Monotonic clock, injectable for tests.
        """
        self._sink = sink
        self._flush_interval = flush_interval
        self._size_threshold = size_threshold
        self._clock = clock
        self._text = ""
        self._paused = False
        self._last_flush = clock()
        self._scheduled: Optional[asyncio.Task] = None

    @property
    def text(self) -> str:
        """Buffered, not yet written text."""
        return self._text

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def has_scheduled_flush(self) -> bool:
        return self._scheduled is not None and not self._scheduled.done()

    def append(self, text: str) -> None:
        self._text += text

    async def flush(self, reply_ts: Optional[int], force: bool = False) -> bool:
        """Write the buffer now, or schedule a deferred write.

        Args:
            reply_ts: Message receiving the text. Nothing is written without one.
            force: Write regardless of size and time thresholds.

        Returns:
            True if text was written by this call.
        """
        if not self._text or reply_ts is None:
            return False

        self.cancel_scheduled()
        elapsed = self._clock() - self._last_flush

        if force or len(self._text) >= self._size_threshold or elapsed >= self._flush_interval:
            await self._write(reply_ts)
            return True

        if not self._paused:
            delay = max(0.0, self._flush_interval - elapsed)
            self._scheduled = asyncio.get_running_loop().create_task(
                self._deferred_flush(reply_ts, delay)
            )
        return False

    async def pause(self, reply_ts: Optional[int]) -> None:
        """Force-flush, then stop scheduling deferred flushes."""
        if self._paused:
            return
        await self.flush(reply_ts, force=True)
        self.cancel_scheduled()
        self._paused = True

    def resume(self) -> None:
        """Allow deferred flushes again and restart the interval clock."""
        if not self._paused:
            return
        self._paused = False
        self._last_flush = self._clock()

    def cancel_scheduled(self) -> None:
        """Cancel the pending deferred flush, if any."""
        if self._scheduled is not None:
            if not self._scheduled.done():
                self._scheduled.cancel()
            self._scheduled = None

    def reset(self) -> None:
        """Drop buffered text and timer state; used at round start and on abort."""
        self.cancel_scheduled()
        self._text = ""
        self._paused = False
        self._last_flush = self._clock()

    async def _write(self, reply_ts: int) -> None:
        content, self._text = self._text, ""
        self._last_flush = self._clock()
        await self._sink(reply_ts, content)

    async def _deferred_flush(self, reply_ts: int, delay: float) -> None:
        await asyncio.sleep(delay)
        # Detach first: a later flush() must not cancel this write mid-way
        if self._scheduled is asyncio.current_task():
            self._scheduled = None
        if self._paused or not self._text:
            return
        try:
            await self._write(reply_ts)
        except Exception:
            logger.exception("Deferred flush to message %s failed", reply_ts)


__all__ = ["OutputBuffer", "FlushSink", "DEFAULT_FLUSH_INTERVAL", "DEFAULT_SIZE_THRESHOLD"]
