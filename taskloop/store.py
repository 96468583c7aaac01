"""Conversation store boundary.

The task executor never owns conversation state directly. It reads and
writes two ordered collections through a ConversationStore:

- turns: the displayed ChatMessages (what the UI renders)
- history: the ConversationEntries sent to the model

Both are keyed by timestamp. InMemoryConversationStore is the reference
implementation used by tests and by hosts that persist elsewhere.
"""

import dataclasses
import logging
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from .types import ChatMessage, ConversationEntry

logger = logging.getLogger(__name__)


@runtime_checkable
class ConversationStore(Protocol):
    """Storage for displayed turns and API history."""

    async def add_turn(self, message: ChatMessage) -> int:
        """Append a displayed message; returns its timestamp."""
        ...

    async def update_turn(self, ts: int, **patch: Any) -> Optional[ChatMessage]:
        """Replace fields of the message identified by ``ts``."""
        ...

    async def append_text(self, ts: int, text: str) -> None:
        """Append text to the message identified by ``ts``."""
        ...

    def get_turn(self, ts: int) -> Optional[ChatMessage]:
        ...

    def turns(self) -> List[ChatMessage]:
        """All displayed messages, oldest first."""
        ...

    async def add_history_entry(self, entry: ConversationEntry) -> None:
        ...

    async def update_history_entry(self, ts: int, entry: ConversationEntry) -> None:
        ...

    def history(self) -> List[ConversationEntry]:
        """The API history, oldest first."""
        ...


class InMemoryConversationStore:
    """ConversationStore backed by plain lists."""

    def __init__(self):
        self._turns: List[ChatMessage] = []
        self._turn_index: Dict[int, ChatMessage] = {}
        self._history: List[ConversationEntry] = []

    async def add_turn(self, message: ChatMessage) -> int:
        if message.ts in self._turn_index:
            raise ValueError(f"Duplicate message timestamp: {message.ts}")
        self._turns.append(message)
        self._turn_index[message.ts] = message
        return message.ts

    async def update_turn(self, ts: int, **patch: Any) -> Optional[ChatMessage]:
        current = self._turn_index.get(ts)
        if current is None:
            logger.debug("update_turn: no message with ts=%s", ts)
            return None
        updated = dataclasses.replace(current, **patch)
        self._turns[self._turns.index(current)] = updated
        self._turn_index[ts] = updated
        return updated

    async def append_text(self, ts: int, text: str) -> None:
        current = self._turn_index.get(ts)
        if current is None:
            logger.debug("append_text: no message with ts=%s", ts)
            return
        await self.update_turn(ts, text=(current.text or "") + text)

    def get_turn(self, ts: int) -> Optional[ChatMessage]:
        return self._turn_index.get(ts)

    def turns(self) -> List[ChatMessage]:
        return list(self._turns)

    async def add_history_entry(self, entry: ConversationEntry) -> None:
        self._history.append(entry)

    async def update_history_entry(self, ts: int, entry: ConversationEntry) -> None:
        for i, existing in enumerate(self._history):
            if existing.ts == ts:
                self._history[i] = entry
                return
        logger.debug("update_history_entry: no entry with ts=%s", ts)

    def history(self) -> List[ConversationEntry]:
        return list(self._history)


__all__ = ["ConversationStore", "InMemoryConversationStore"]
