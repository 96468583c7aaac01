"""Reference ToolCoordinator: XML tag detection plus approval-gated handlers.

Tools are registered as async callables taking the parsed parameters:

    async def search_files(params):
        return run_search(params["path"], params["regex"])

    tools = ToolExecutor(asks, store)
    tools.register("search_files", search_files)

Each invocation found in the stream runs as an asyncio task. Tasks are
serialized in arrival order, and each one that requires approval posts a
TOOL ask whose payload tracks ``approval_state`` (pending, then approved or
rejected). Handler failures become error results; nothing raises into the
request round.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union

from ..ask_manager import AskManager, NotifyCallback
from ..store import ConversationStore
from ..trace import trace
from ..types import (
    ApprovalState,
    AskDetails,
    AskKind,
    AskResponseKind,
    ChatMessage,
    ContentBlock,
    MessageType,
    TextBlock,
    ToolResult,
    format_images_into_blocks,
)
from .parser import ToolInvocation, ToolUseParser

logger = logging.getLogger(__name__)

ToolOutput = Union[str, List[ContentBlock]]
ToolHandler = Callable[[Dict[str, str]], Awaitable[ToolOutput]]

DENIED_MESSAGE = "The user denied this operation."


def format_tool_feedback(feedback: Optional[str], images: Optional[List[str]] = None) -> List[ContentBlock]:
    """Wrap the user's reply to a denied tool as content for the model."""
    blocks: List[ContentBlock] = [TextBlock(
        "The user denied this operation and provided the following feedback:\n"
        f"<feedback>\n{feedback or ''}\n</feedback>"
    )]
    blocks.extend(format_images_into_blocks(images))
    return blocks


@dataclass
class _Registration:
    handler: ToolHandler
    requires_approval: bool = True


class ToolExecutor:
    """Detects, approves and runs tools for one task."""

    def __init__(
        self,
        ask_manager: AskManager,
        store: ConversationStore,
        auto_approve: Iterable[str] = (),
        notify: Optional[NotifyCallback] = None,
    ):
        """
        Args:
            ask_manager: Register used for approval asks.
            store: Store holding the tool approval messages.
            auto_approve: Tool names that run without asking.
            notify: Awaited after approval state changes.
        """
        self._asks = ask_manager
        self._store = store
        self._auto_approve = frozenset(auto_approve)
        self._notify = notify
        self._handlers: Dict[str, _Registration] = {}
        self._parser = ToolUseParser()
        self._tasks: List[asyncio.Task] = []
        self._results: List[ToolResult] = []
        # Serializes execution in the order invocations were found
        self._run_lock = asyncio.Lock()

    def register(self, name: str, handler: ToolHandler, requires_approval: bool = True) -> None:
        self._handlers[name] = _Registration(handler, requires_approval)
        self._parser.set_tool_names(self._handlers)

    @property
    def tool_names(self) -> List[str]:
        return sorted(self._handlers)

    async def process_tool_use(self, text: str, final: bool = False) -> str:
        plain, invocations = self._parser.feed(text)
        for invocation in invocations:
            self._start(invocation)
        if final:
            plain += self._parser.finish()
        return plain

    def has_active_tools(self) -> bool:
        return any(not task.done() for task in self._tasks)

    async def wait_for_tool_processing(self) -> None:
        # Loop: a finishing tool never starts another, but stay correct if one does
        while True:
            active = [task for task in self._tasks if not task.done()]
            if not active:
                return
            await asyncio.gather(*active, return_exceptions=True)

    async def get_tool_results(self) -> List[ToolResult]:
        return list(self._results)

    async def reset_tool_state(self) -> None:
        await self._cancel_tasks()
        self._parser.reset()
        self._results = []
        self._tasks = []

    async def abort_task(self) -> None:
        trace("ToolExecutor", "abort", running=sum(not t.done() for t in self._tasks))
        await self._cancel_tasks()
        self._parser.reset()

    def _start(self, invocation: ToolInvocation) -> None:
        logger.debug("Tool invocation detected: %s %s", invocation.name, invocation.params)
        task = asyncio.get_running_loop().create_task(self._run(invocation))
        self._tasks.append(task)

    async def _cancel_tasks(self) -> None:
        active = [task for task in self._tasks if not task.done()]
        for task in active:
            task.cancel()
        if active:
            await asyncio.gather(*active, return_exceptions=True)

    async def _run(self, invocation: ToolInvocation) -> None:
        async with self._run_lock:
            output = await self._execute(invocation)
            self._results.append(ToolResult(name=invocation.name, result=output))

    async def _execute(self, invocation: ToolInvocation) -> ToolOutput:
        registration = self._handlers[invocation.name]
        payload: Dict[str, Any] = {
            "tool": invocation.name,
            **invocation.params,
            "approval_state": ApprovalState.PENDING.value,
        }

        if registration.requires_approval and invocation.name not in self._auto_approve:
            answer = await self._asks.ask(AskKind.TOOL, AskDetails(tool=payload), ask_ts=invocation.ts)
            if answer.response != AskResponseKind.YES:
                rejected = {**payload, "approval_state": ApprovalState.REJECTED.value}
                if answer.text:
                    rejected["user_feedback"] = answer.text
                await self._set_tool_payload(invocation.ts, rejected)
                if answer.response == AskResponseKind.MESSAGE and (answer.text or answer.images):
                    return format_tool_feedback(answer.text, answer.images)
                return DENIED_MESSAGE
            await self._set_tool_payload(
                invocation.ts, {**payload, "approval_state": ApprovalState.APPROVED.value}
            )
        else:
            await self._store.add_turn(ChatMessage(
                ts=invocation.ts,
                type=MessageType.ASK,
                ask=AskKind.TOOL,
                tool={**payload, "approval_state": ApprovalState.APPROVED.value},
            ))
            await self._notify_changed()

        try:
            return await registration.handler(invocation.params)
        except Exception as exc:
            logger.exception("Tool %s failed", invocation.name)
            trace("ToolExecutor", f"handler failed: {exc}", include_traceback=True, tool=invocation.name)
            return f"Error executing {invocation.name}: {exc}"

    async def _set_tool_payload(self, ts: int, payload: Dict[str, Any]) -> None:
        await self._store.update_turn(ts, tool=payload)
        await self._notify_changed()

    async def _notify_changed(self) -> None:
        if self._notify:
            await self._notify()


__all__ = ["ToolExecutor", "ToolHandler", "ToolOutput", "DENIED_MESSAGE", "format_tool_feedback"]
