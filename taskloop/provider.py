"""Network boundary: where request rounds get their streams from.

Providers translate the API history into whatever their wire protocol
needs and yield StreamEvents back. A provider must:

- observe the CancelToken and stop yielding once it is cancelled
- eventually yield exactly one terminal event (StreamSuccessEnd or
  StreamErrorEnd) unless cancelled first
- raise ProviderError when the request cannot be opened at all

Example:
    class MyProvider:
        async def open_stream(self, history, cancel_token):
            async for data in self._client.stream(to_wire(history)):
                if cancel_token.is_cancelled:
                    return
                yield StreamDelta(data.text)
            yield StreamSuccessEnd(ApiMetrics(...))
"""

import inspect
from typing import AsyncIterator, Awaitable, List, Protocol, Union, runtime_checkable

from .cancel import CancelToken
from .types import ConversationEntry, StreamEvent

StreamResult = Union[AsyncIterator[StreamEvent], Awaitable[AsyncIterator[StreamEvent]]]


@runtime_checkable
class StreamProvider(Protocol):
    """Opens a cancellable event stream for the given history."""

    def open_stream(
        self,
        history: List[ConversationEntry],
        cancel_token: CancelToken,
    ) -> StreamResult:
        """Open a stream; may be an async generator or a coroutine returning one."""
        ...


async def open_stream(
    provider: StreamProvider,
    history: List[ConversationEntry],
    cancel_token: CancelToken,
) -> AsyncIterator[StreamEvent]:
    """Call ``provider.open_stream`` and normalize the result to an async iterator.

    Errors raised while opening (e.g. an authentication failure reported
    before the first byte) propagate to the caller.

    Raises:
        CancelledException: If the round was cancelled before the request
            was opened.
    """
    cancel_token.raise_if_cancelled()
    result = provider.open_stream(history, cancel_token)
    if inspect.isawaitable(result):
        result = await result
    return result


__all__ = ["StreamProvider", "StreamResult", "open_stream"]
