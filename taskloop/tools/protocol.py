"""The narrow interface the task executor uses to drive tools."""

from typing import List, Protocol, runtime_checkable

from ..types import ToolResult


@runtime_checkable
class ToolCoordinator(Protocol):
    """Tool-use detection and execution, as seen from a request round.

    Lifecycle within a round:
        reset_tool_state() at round start
        process_tool_use(text) for each streamed fragment
        has_active_tools() / wait_for_tool_processing() to gate the stream
        get_tool_results() when composing the next round's input
        abort_task() when the user cancels
    """

    async def process_tool_use(self, text: str, final: bool = False) -> str:
        """Scan streamed text for tool invocations.

        Recognized invocations are stripped and start executing in the
        background. Returns the remaining text to show the user. With
        ``final`` set the stream has ended: text held back as a possible
        tool call is returned too.
        """
        ...

    def has_active_tools(self) -> bool:
        """True while any tool started this round is unresolved."""
        ...

    async def wait_for_tool_processing(self) -> None:
        """Suspend until every tool started this round has resolved."""
        ...

    async def get_tool_results(self) -> List[ToolResult]:
        ...

    async def reset_tool_state(self) -> None:
        ...

    async def abort_task(self) -> None:
        """Interrupt in-flight tool execution."""
        ...


__all__ = ["ToolCoordinator"]
