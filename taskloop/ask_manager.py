"""Correlates asks posed to the user with their eventual answers.

Each ask is a displayed ChatMessage whose timestamp doubles as the
correlation key. The manager keeps one single-fulfillment future per key:

    response = await asks.ask(AskKind.API_REQ_FAILED, AskDetails(question=msg))
    ...
    # later, from the host
    asks.handle_response(ts, AskResponseKind.YES)

What the caller does with the answer (retry, resume, complete) is not the
manager's business.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from .store import ConversationStore
from .types import (
    AskDetails,
    AskKind,
    AskResponse,
    AskResponseKind,
    ChatMessage,
    MessageType,
    next_timestamp,
)

logger = logging.getLogger(__name__)

NotifyCallback = Callable[[], Awaitable[None]]


class AskManager:
    """Registry of pending asks keyed by message timestamp."""

    def __init__(self, store: ConversationStore, notify: Optional[NotifyCallback] = None):
        """
        Args:
            store: Store that receives the ask messages.
            notify: Awaited after each ask message is written, so the UI
                can refresh.
        """
        self._store = store
        self._notify = notify
        self._pending: Dict[int, asyncio.Future] = {}
        # Waiters sharing each pending future; the last one out releases the slot
        self._waiters: Dict[int, int] = {}

    @property
    def pending_ids(self) -> List[int]:
        return list(self._pending)

    def has_pending(self, ask_ts: int) -> bool:
        return ask_ts in self._pending

    async def ask(
        self,
        kind: AskKind,
        details: Optional[AskDetails] = None,
        ask_ts: Optional[int] = None,
    ) -> AskResponse:
        """Post an ask and wait for the user's answer.

        Args:
            kind: Why the task is gating on the user.
            details: Question text and/or tool payload.
            ask_ts: Attach to an existing message instead of minting a new
                timestamp. A registration already pending for that id is
                reused, never duplicated.

        Returns:
            The AskResponse delivered through handle_response().
        """
        details = details or AskDetails()
        ts = ask_ts if ask_ts is not None else next_timestamp()

        # Register before the message becomes visible so an immediate answer lands
        future = self._pending.get(ts)
        if future is None or future.done():
            future = asyncio.get_running_loop().create_future()
            self._pending[ts] = future
            self._waiters[ts] = 0
        self._waiters[ts] += 1

        try:
            if self._store.get_turn(ts) is not None:
                await self._store.update_turn(
                    ts,
                    type=MessageType.ASK,
                    ask=kind,
                    text=details.question,
                    tool=details.tool,
                )
            else:
                await self._store.add_turn(ChatMessage(
                    ts=ts,
                    type=MessageType.ASK,
                    ask=kind,
                    text=details.question,
                    tool=details.tool,
                ))

            if self._notify:
                await self._notify()

            logger.debug("Ask %s registered (ts=%s)", kind.value, ts)
            # Shielded: one waiter giving up must not cancel the others
            return await asyncio.shield(future)
        finally:
            if self._pending.get(ts) is future:
                self._waiters[ts] -= 1
                if self._waiters[ts] == 0:
                    del self._pending[ts]
                    del self._waiters[ts]
                    if not future.done():
                        future.cancel()

    def handle_response(
        self,
        ask_ts: int,
        response: AskResponseKind,
        text: Optional[str] = None,
        images: Optional[List[str]] = None,
    ) -> bool:
        """Deliver the user's answer to the ask registered under ``ask_ts``.

        Answers for unknown or already-answered ids are dropped.

        Returns:
            True if a pending ask was resolved.
        """
        future = self._pending.pop(ask_ts, None)
        self._waiters.pop(ask_ts, None)
        if future is None or future.done():
            logger.debug("Dropping response %s for ts=%s: no pending ask", response, ask_ts)
            return False
        future.set_result(AskResponse(response=response, text=text, images=images))
        return True

    def cancel_all(self) -> None:
        """Cancel every pending ask; waiters receive CancelledError."""
        pending, self._pending = self._pending, {}
        self._waiters = {}
        for future in pending.values():
            if not future.done():
                future.cancel()


__all__ = ["AskManager", "NotifyCallback"]
