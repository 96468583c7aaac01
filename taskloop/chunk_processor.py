"""Routes stream events of one request round to typed handlers."""

import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable, Optional, Union

from .cancel import CancelToken
from .types import StreamDelta, StreamErrorEnd, StreamEvent, StreamSuccessEnd

logger = logging.getLogger(__name__)

EndEvent = Union[StreamSuccessEnd, StreamErrorEnd]


class ChunkProcessor:
    """Consumes a stream in order and dispatches each event.

    - StreamDelta -> on_chunk
    - StreamSuccessEnd / StreamErrorEnd -> on_immediate_end
    - stream exhausted -> on_final_end (once)

    A handler that raises terminates processing; no further events are
    read and the exception propagates to the caller. Cancelling the token
    interrupts a read that is still waiting on the provider; no final
    callback runs in that case. One instance serves one round.
    """

    def __init__(
        self,
        on_immediate_end: Callable[[EndEvent], Awaitable[None]],
        on_chunk: Callable[[StreamDelta], Awaitable[None]],
        on_final_end: Callable[[], Awaitable[None]],
        cancel_token: Optional[CancelToken] = None,
    ):
        self._on_immediate_end = on_immediate_end
        self._on_chunk = on_chunk
        self._on_final_end = on_final_end
        self._cancel_token = cancel_token

    async def process_stream(self, stream: AsyncIterator[StreamEvent]) -> None:
        cancelled = self._watch_cancel()
        iterator = stream.__aiter__()
        read: Optional[asyncio.Future] = None
        try:
            while True:
                read = asyncio.ensure_future(iterator.__anext__())
                if not await self._wait_read(read, cancelled):
                    logger.debug("Round cancelled, stop reading stream")
                    return
                try:
                    event = read.result()
                except StopAsyncIteration:
                    break
                if self._cancelled():
                    logger.debug("Round cancelled, stop reading stream")
                    return
                await self._dispatch(event)
            if self._cancelled():
                return
            await self._on_final_end()
        finally:
            if read is not None and not read.done():
                read.cancel()
                await asyncio.gather(read, return_exceptions=True)
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

    def _watch_cancel(self) -> Optional[asyncio.Event]:
        if self._cancel_token is None:
            return None
        loop = asyncio.get_running_loop()
        cancelled = asyncio.Event()
        self._cancel_token.on_cancel(lambda: loop.call_soon_threadsafe(cancelled.set))
        return cancelled

    @staticmethod
    async def _wait_read(read: asyncio.Future, cancelled: Optional[asyncio.Event]) -> bool:
        """Wait for ``read``; False if cancellation came first (read is then cancelled)."""
        if cancelled is None:
            await asyncio.wait({read})
            return True

        waiter = asyncio.ensure_future(cancelled.wait())
        try:
            await asyncio.wait({read, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
        if read.done():
            return True
        read.cancel()
        # The iterator must be idle before aclose()
        await asyncio.gather(read, return_exceptions=True)
        return False

    async def _dispatch(self, event: StreamEvent) -> None:
        if isinstance(event, StreamDelta):
            await self._on_chunk(event)
        elif isinstance(event, (StreamSuccessEnd, StreamErrorEnd)):
            await self._on_immediate_end(event)
        else:
            raise TypeError(f"Unknown stream event: {event!r}")

    def _cancelled(self) -> bool:
        return self._cancel_token is not None and self._cancel_token.is_cancelled


__all__ = ["ChunkProcessor", "EndEvent"]
