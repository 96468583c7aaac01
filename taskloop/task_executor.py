"""TaskExecutor - drives one task through request rounds.

A round sends the API history to the model, streams the reply into the
conversation store while scanning it for tool invocations, waits for the
tools it started, then decides what happens next:

    IDLE -> WAITING_FOR_API -> PROCESSING_RESPONSE -> WAITING_FOR_API (loop)
                                                    -> WAITING_FOR_USER
                                                    -> COMPLETED
    any running state -> ABORTED -> WAITING_FOR_USER | COMPLETED

Rounds run in a loop inside make_request(). Each round gets its own
CancelToken; every handler re-checks the token, the aborting flag and the
task epoch before touching the store, so a cancelled round can never write
after the fact.

Usage:
    store = InMemoryConversationStore()
    asks = AskManager(store)
    tools = ToolExecutor(asks, store)
    executor = TaskExecutor(store, provider, tools, ask_manager=asks)

    await executor.start_task("list the files in src/")

    # From the host, concurrently:
    executor.handle_ask_response(ts, AskResponseKind.YES)
    await executor.abort_task()
"""

import asyncio
import inspect
import json
import logging
import time
from typing import Any, Awaitable, Callable, List, Optional, Set, Union

from .ask_manager import AskManager
from .cancel import CancelToken
from .chunk_processor import ChunkProcessor, EndEvent
from .config import TaskConfig
from .errors import (
    ErrorType,
    ProviderError,
    TaskAbortingError,
    TaskBusyError,
    TaskError,
    classify_error,
)
from .output_buffer import OutputBuffer
from .provider import StreamProvider, open_stream
from .store import ConversationStore
from .tools.protocol import ToolCoordinator
from .trace import trace
from .types import (
    ApprovalState,
    AskDetails,
    AskKind,
    AskResponse,
    AskResponseKind,
    ChatMessage,
    ContentBlock,
    ConversationEntry,
    ImageBlock,
    MessageType,
    Role,
    SayKind,
    StreamDelta,
    StreamErrorEnd,
    StreamSuccessEnd,
    TaskState,
    TextBlock,
    UserContent,
    format_images_into_blocks,
    next_timestamp,
    text_of,
)

logger = logging.getLogger(__name__)

# Host callback fired after every change the UI must reflect; may be sync or async
StateChangeCallback = Callable[[], Union[None, Awaitable[None]]]

CONTINUE_PROMPT = "Let's continue with the task, from where we left off."
INTERRUPTED_PLACEHOLDER = "the response was interrupted in the middle of processing"
FAILED_RESPONSE_TEXT = "Failed to generate a response, please try again."
ERROR_RESPONSE_TEXT = "An error occurred in the generation of the response. Please try again."
TASK_COMPLETED_TEXT = "Task completed successfully."
TOOL_INTERRUPTED_TEXT = "Task was interrupted before this tool call could be completed."
REQUEST_CANCELLED_TEXT = "Request cancelled by user"
RESUME_AFTER_ABORT_QUESTION = (
    "Task was interrupted before the last response could be generated. "
    "Would you like to resume the task?"
)
RESUME_AFTER_ERRORS_QUESTION = (
    "The model has encountered an error {count} times in a row. "
    "Would you like to resume the task?"
)
MUST_USE_TOOL_TEMPLATE = (
    "You must use a tool to proceed. Either use {completion_tool} if you've completed "
    "the task, or ask_followup_question if you need more information."
)

_RUNNING_STATES = (TaskState.WAITING_FOR_API, TaskState.PROCESSING_RESPONSE, TaskState.WAITING_FOR_USER)


def normalize_user_content(content: Union[str, UserContent, None]) -> UserContent:
    """Coerce entry-point input into content blocks.

    Empty input (or a blank leading text block) becomes the canonical
    continuation prompt.
    """
    if isinstance(content, str):
        content = [TextBlock(content)]
    if not content or (isinstance(content[0], TextBlock) and not content[0].text.strip()):
        return [TextBlock(CONTINUE_PROMPT)]
    return list(content)


def readable_request(content: UserContent) -> str:
    """Render user content for the request-started message."""
    parts = []
    for block in content:
        if isinstance(block, TextBlock):
            parts.append(block.text)
        elif isinstance(block, ImageBlock):
            parts.append(f"[image: {block.media_type}]")
    return "\n\n".join(parts)


class TaskExecutor:
    """Owns a task's lifecycle state and sequences its request rounds."""

    def __init__(
        self,
        store: ConversationStore,
        provider: StreamProvider,
        tools: ToolCoordinator,
        ask_manager: Optional[AskManager] = None,
        config: Optional[TaskConfig] = None,
        on_state_changed: Optional[StateChangeCallback] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            store: Conversation store for displayed turns and API history.
            provider: Network layer that opens response streams.
            tools: Tool coordination facade.
            ask_manager: Ask register; share it with the tool subsystem so tool
                approvals and task asks live in one place. Created if omitted.
            config: Tunables; read from the environment if omitted.
            on_state_changed: Host notification sink.
            clock: Monotonic clock for the output buffer.
        """
        self._store = store
        self._provider = provider
        self._tools = tools
        self._config = config or TaskConfig()
        self._on_state_changed = on_state_changed
        self._asks = ask_manager or AskManager(store, self._notify_state_changed)
        self._buffer = OutputBuffer(
            self._append_to_reply,
            flush_interval=self._config.flush_interval,
            size_threshold=self._config.flush_size_threshold,
            clock=clock,
        )

        self._state = TaskState.IDLE
        self._current_user_content: Optional[UserContent] = None
        self._cancel_token: Optional[CancelToken] = None
        self._consecutive_error_count = 0
        self._is_aborting = False
        self._current_reply_id: Optional[int] = None

        # Bumped by every entry point and by abort; continuations holding an
        # older epoch are stale and must not act
        self._epoch = 0
        # Resolved when the running request loop exits
        self._driving: Optional[asyncio.Future] = None
        self._background: Set[asyncio.Task] = set()

    # ==================== Properties ====================

    @property
    def state(self) -> TaskState:
        return self._state

    @property
    def consecutive_error_count(self) -> int:
        return self._consecutive_error_count

    @property
    def is_aborting(self) -> bool:
        return self._is_aborting

    @property
    def is_running(self) -> bool:
        """True while the request loop is active."""
        return self._driving is not None

    @property
    def current_user_content(self) -> Optional[UserContent]:
        return self._current_user_content

    @property
    def ask_manager(self) -> AskManager:
        return self._asks

    @property
    def output_buffer(self) -> OutputBuffer:
        return self._buffer

    # ==================== Asks ====================

    async def ask(self, kind: AskKind, details: Optional[AskDetails] = None) -> AskResponse:
        """Pose a question to the user under a new message id."""
        return await self._asks.ask(kind, details)

    async def ask_with_id(
        self,
        kind: AskKind,
        details: Optional[AskDetails],
        ask_ts: int,
    ) -> AskResponse:
        """Pose a question against a message that already exists."""
        return await self._asks.ask(kind, details, ask_ts=ask_ts)

    def handle_ask_response(
        self,
        ask_ts: Optional[int],
        response: AskResponseKind,
        text: Optional[str] = None,
        images: Optional[List[str]] = None,
    ) -> bool:
        """Deliver the user's answer.

        Args:
            ask_ts: The ask being answered. None targets the most recent ask message.
            response: Yes / no / free-text message.
            text: Optional text the user typed.
            images: Optional data-URL images the user attached.

        Returns:
            True if a pending ask was resolved; answers for unknown or
            already-answered asks are dropped.
        """
        if ask_ts is None:
            last_ask = self._find_last_turn(lambda m: m.type == MessageType.ASK)
            if last_ask is None:
                logger.debug("handle_ask_response: no ask message to answer")
                return False
            ask_ts = last_ask.ts
        return self._asks.handle_response(ask_ts, response, text, images)

    # ==================== Stream pause ====================

    async def pause_stream(self) -> None:
        """Flush buffered text and hold displayed output until resume_stream()."""
        await self._buffer.pause(self._current_reply_id)

    def resume_stream(self) -> None:
        self._buffer.resume()

    # ==================== Entry points ====================

    async def start_task(self, content: Union[str, UserContent]) -> None:
        """Start a new task with the user's first message."""
        self._ensure_can_enter("start task")
        self._log_state("Starting task")
        self._enter(content)
        self._consecutive_error_count = 0
        await self.make_request()

    async def resume_task(self, content: Union[str, UserContent]) -> None:
        """Resume a task that is waiting for the user."""
        self._ensure_can_enter("resume task")
        if self._state != TaskState.WAITING_FOR_USER:
            self._log_error(RuntimeError(
                f"Cannot resume task: not in {TaskState.WAITING_FOR_USER.value} state"
            ))
            return
        self._log_state("Resuming task")
        self._enter(content)
        self._consecutive_error_count = 0
        await self.make_request()

    async def new_message(self, content: Union[str, UserContent]) -> None:
        """Continue the conversation with a new user message."""
        self._ensure_can_enter("start new message")
        self._log_state("New message")
        self._enter(content)
        feedback = text_of(self._current_user_content) or "New message"
        images = [f"data:{b.media_type};base64,{b.data}"
                  for b in self._current_user_content if isinstance(b, ImageBlock)]
        await self._say(SayKind.USER_FEEDBACK, feedback, images=images or None)
        await self.make_request()

    def _ensure_can_enter(self, action: str) -> None:
        if self._is_aborting:
            raise TaskAbortingError(f"Cannot {action} while aborting")
        if self._driving is not None:
            raise TaskBusyError(f"Cannot {action} while a request is in progress")

    def _enter(self, content: Union[str, UserContent]) -> None:
        self._epoch += 1
        # Asks left over from an earlier flow can no longer be acted on
        self._asks.cancel_all()
        self._current_user_content = normalize_user_content(content)
        self._cancel_token = None
        self._set_state(TaskState.WAITING_FOR_API)

    # ==================== Request rounds ====================

    async def make_request(self) -> None:
        """Run request rounds until the task stops needing the API.

        A no-op unless the task is WAITING_FOR_API with pending user content
        and no cancellation in effect. Only one request loop runs at a time.
        """
        if self._driving is not None:
            logger.debug("make_request: request loop already running")
            return
        done = asyncio.get_running_loop().create_future()
        self._driving = done
        try:
            while await self._run_round():
                pass
        finally:
            self._driving = None
            done.set_result(None)

    async def _run_round(self) -> bool:
        """Run one round. Returns True if another round should follow."""
        if (
            self._state != TaskState.WAITING_FOR_API
            or not self._current_user_content
            or self._request_cancelled
            or self._is_aborting
        ):
            return False

        epoch = self._epoch
        token = CancelToken()
        self._cancel_token = token

        try:
            await self._tools.reset_tool_state()
            self._buffer.reset()
            self._current_reply_id = None

            if self._consecutive_error_count >= self._config.max_consecutive_errors:
                answer = await self._ask_in_round(epoch, AskKind.RESUME_TASK, AskDetails(
                    question=RESUME_AFTER_ERRORS_QUESTION.format(count=self._consecutive_error_count),
                ))
                if answer is None or self._is_stale(epoch, token):
                    return False
                if not answer.affirmative:
                    self._set_state(TaskState.COMPLETED)
                    await self._notify_state_changed()
                    return False
                self._consecutive_error_count = 0

            self._log_state("Making API request")
            await self._store.add_history_entry(
                ConversationEntry(role=Role.USER, content=list(self._current_user_content))
            )
            started_req_id = await self._say(
                SayKind.API_REQ_STARTED,
                json.dumps({"request": readable_request(self._current_user_content)}),
                is_fetching=True,
            )

            stream = await open_stream(self._provider, self._store.history(), token)

            if self._is_stale(epoch, token):
                token.cancel()
                self._log_state("Request cancelled, ignoring response")
                return False

            self._set_state(TaskState.PROCESSING_RESPONSE)
            return await self._process_api_response(stream, started_req_id, epoch, token)

        except Exception as exc:
            if self._is_stale(epoch, token):
                logger.debug("Round cancelled, ignoring error: %s", exc)
                return False
            return await self._handle_api_error(classify_error(exc), epoch)

    async def _process_api_response(
        self,
        stream,
        started_req_id: int,
        epoch: int,
        token: CancelToken,
    ) -> bool:
        if self._state != TaskState.PROCESSING_RESPONSE or self._is_stale(epoch, token):
            return False

        self._log_state("Processing API response")
        self._current_reply_id = await self._say(SayKind.TEXT, "", is_sub_message=True)

        # Shares its identity with the request-started message
        entry = ConversationEntry(
            role=Role.ASSISTANT,
            ts=started_req_id,
            content=[TextBlock(INTERRUPTED_PLACEHOLDER)],
        )
        await self._store.add_history_entry(entry)

        received_text = False
        pending_text = ""
        continue_next = False

        async def on_immediate_end(event: EndEvent) -> None:
            if self._is_stale(epoch, token):
                return
            if isinstance(event, StreamSuccessEnd):
                await self._store.update_turn(
                    started_req_id,
                    api_metrics=event.metrics,
                    is_done=True,
                    is_fetching=False,
                )
                entry.metrics = event.metrics
                await self._store.update_history_entry(entry.ts, entry)
                self._consecutive_error_count = 0
                await self._notify_state_changed()
            elif isinstance(event, StreamErrorEnd):
                message = event.message or "Internal Server Error"
                await self._store.update_turn(
                    started_req_id,
                    is_done=True,
                    is_fetching=False,
                    error_text=message,
                    is_error=True,
                )
                await self._notify_state_changed()
                raise ProviderError(event.status, message)

        async def on_chunk(event: StreamDelta) -> None:
            nonlocal received_text, pending_text
            if self._is_stale(epoch, token):
                return

            block = entry.content[0]
            block.text = block.text + event.text if received_text else event.text
            received_text = True
            await self._store.update_history_entry(entry.ts, entry)

            # While the host holds the stream, keep text for the next fragment
            pending_text += event.text
            if self._buffer.paused:
                return

            text, pending_text = pending_text, ""
            plain = await self._tools.process_tool_use(text)
            if plain:
                self._buffer.append(plain)
                await self._buffer.flush(self._current_reply_id)

            if self._tools.has_active_tools():
                await self._buffer.flush(self._current_reply_id, force=True)
                await self.pause_stream()
                await self._tools.wait_for_tool_processing()
                self.resume_stream()
                if self._is_stale(epoch, token):
                    return
                # Text after the tool call lands in a separate segment
                self._current_reply_id = await self._say(SayKind.TEXT, "", is_sub_message=True)

        async def on_final_end() -> None:
            nonlocal pending_text, continue_next
            if self._is_stale(epoch, token):
                return

            # Also releases text held back as a possible tool call
            text, pending_text = pending_text, ""
            plain = await self._tools.process_tool_use(text, final=True)
            if plain:
                self._buffer.append(plain)
            await self._buffer.flush(self._current_reply_id, force=True)

            await self._tools.wait_for_tool_processing()
            if self._is_stale(epoch, token):
                return

            self._buffer.cancel_scheduled()
            await self._buffer.flush(self._current_reply_id, force=True)
            self._current_reply_id = None

            if not received_text:
                entry.content = []
            continue_next = await self._finish_processing_response(entry, epoch, token)

        processor = ChunkProcessor(on_immediate_end, on_chunk, on_final_end, cancel_token=token)
        await processor.process_stream(stream)
        return continue_next

    async def _finish_processing_response(
        self,
        entry: ConversationEntry,
        epoch: int,
        token: CancelToken,
    ) -> bool:
        self._log_state("Finishing response processing")
        if self._is_stale(epoch, token):
            return False

        first = entry.content[0] if entry.content else None
        if first is None or (isinstance(first, TextBlock) and not first.text.strip()):
            entry.content = [TextBlock(FAILED_RESPONSE_TEXT)]
            await self._store.update_history_entry(entry.ts, entry)

        results = await self._tools.get_tool_results()

        if results:
            completion = next((r for r in results if r.name == self._config.completion_tool), None)
            if completion is not None:
                await self._store.add_history_entry(
                    ConversationEntry(role=Role.USER, content=completion.to_content())
                )
                await self._store.add_history_entry(
                    ConversationEntry(role=Role.ASSISTANT, content=[TextBlock(TASK_COMPLETED_TEXT)])
                )
                self._set_state(TaskState.COMPLETED)
                await self._notify_state_changed()
                return False
            next_content: List[ContentBlock] = []
            for result in results:
                next_content.extend(result.to_content())
            self._current_user_content = next_content
        else:
            self._current_user_content = [TextBlock(MUST_USE_TOOL_TEMPLATE.format(
                completion_tool=self._config.completion_tool,
            ))]

        self._set_state(TaskState.WAITING_FOR_API)
        return True

    # ==================== Errors ====================

    async def _handle_api_error(self, error: TaskError, epoch: int) -> bool:
        """Record a failed round and decide whether to retry.

        Returns:
            True if the user chose to retry.
        """
        self._log_error(error)
        await self._tools.reset_tool_state()

        history = self._store.history()
        if history and history[-1].role == Role.ASSISTANT:
            last = history[-1]
            if not last.content:
                last.content = [TextBlock(ERROR_RESPONSE_TEXT)]
            elif isinstance(last.content[0], TextBlock) and not last.content[0].text.strip():
                last.content[0].text = ERROR_RESPONSE_TEXT
            await self._store.update_history_entry(last.ts, last)

        # The request may have failed before any terminal event marked it
        started = self._find_last_turn(lambda m: m.say == SayKind.API_REQ_STARTED)
        if started is not None and not started.is_done:
            await self._store.update_turn(
                started.ts,
                is_done=True,
                is_fetching=False,
                is_error=True,
                error_text=error.message,
            )

        self._consecutive_error_count += 1

        if error.type.is_fatal:
            self._set_state(TaskState.IDLE)
            say = SayKind.PAYMENT_REQUIRED if error.type == ErrorType.PAYMENT_REQUIRED else SayKind.UNAUTHORIZED
            await self._say(say, error.message)
            return False

        answer = await self._ask_in_round(epoch, AskKind.API_REQ_FAILED, AskDetails(question=error.message))
        if answer is None or self._epoch != epoch or self._is_aborting:
            return False
        if answer.affirmative:
            await self._say(SayKind.API_REQ_RETRIED)
            self._set_state(TaskState.WAITING_FOR_API)
            return True

        self._set_state(TaskState.COMPLETED)
        await self._notify_state_changed()
        return False

    # ==================== Abort ====================

    async def abort_task(self) -> None:
        """Cancel the in-flight round and its tools, then offer to resume.

        Idempotent: a call made while an abort is running returns at once.
        """
        if self._is_aborting:
            return

        self._is_aborting = True
        was_running = self._state in _RUNNING_STATES or self._driving is not None
        try:
            self._log_state("Aborting task")
            started = time.monotonic()
            self._epoch += 1

            if was_running:
                await self._cancel_current_request()
            await self._tools.abort_task()
            if was_running:
                await self._reset_state()

            self._log_state(f"Task aborted in {(time.monotonic() - started) * 1000:.0f}ms")
        finally:
            self._is_aborting = False

        if was_running:
            self._spawn(self._ask_resume_after_abort(self._epoch))

    async def _cancel_current_request(self) -> None:
        self._log_state("Cancelling current request")
        # Text already received stays on screen
        await self._buffer.flush(self._current_reply_id, force=True)
        if self._cancel_token is not None:
            self._cancel_token.cancel()
        self._set_state(TaskState.ABORTED)
        self._asks.cancel_all()

        last_tool = self._find_last_turn(
            lambda m: m.ask == AskKind.TOOL
            and (m.tool or {}).get("approval_state") != ApprovalState.ERROR.value
        )
        if last_tool is not None and last_tool.tool.get("approval_state") == ApprovalState.PENDING.value:
            await self._store.update_turn(last_tool.ts, tool={
                **last_tool.tool,
                "approval_state": ApprovalState.ERROR.value,
                "error": TOOL_INTERRUPTED_TEXT,
            })

        last_request = self._find_last_turn(lambda m: m.say == SayKind.API_REQ_STARTED)
        if last_request is not None and not last_request.is_done:
            await self._store.update_turn(
                last_request.ts,
                is_done=True,
                is_fetching=False,
                is_error=True,
                error_text=REQUEST_CANCELLED_TEXT,
            )

        await self._notify_state_changed()

    async def _reset_state(self) -> None:
        self._buffer.reset()
        if self._cancel_token is not None:
            self._cancel_token.cancel()
        self._cancel_token = None
        self._consecutive_error_count = 0
        self._current_reply_id = None
        self._set_state(TaskState.WAITING_FOR_USER)
        await self._notify_state_changed()

    async def _ask_resume_after_abort(self, epoch: int) -> None:
        try:
            answer = await self._asks.ask(
                AskKind.RESUME_TASK, AskDetails(question=RESUME_AFTER_ABORT_QUESTION)
            )
        except asyncio.CancelledError:
            logger.debug("Resume ask withdrawn")
            return

        if self._epoch != epoch or self._state != TaskState.WAITING_FOR_USER:
            logger.info("Ignoring late resume answer (state=%s)", self._state.value)
            return

        if answer.response == AskResponseKind.YES:
            next_content: UserContent = [TextBlock(CONTINUE_PROMPT)]
        elif answer.text or answer.images:
            next_content = []
            if answer.text:
                next_content.append(TextBlock(answer.text))
            next_content.extend(format_images_into_blocks(answer.images))
        else:
            self._set_state(TaskState.COMPLETED)
            await self._notify_state_changed()
            return

        # The aborted round may still be unwinding
        if self._driving is not None:
            await asyncio.shield(self._driving)
        if self._epoch != epoch or self._state != TaskState.WAITING_FOR_USER:
            return

        self._current_user_content = next_content
        self._set_state(TaskState.WAITING_FOR_API)
        await self.make_request()

    # ==================== Helpers ====================

    @property
    def _request_cancelled(self) -> bool:
        return self._cancel_token is not None and self._cancel_token.is_cancelled

    def _is_stale(self, epoch: int, token: CancelToken) -> bool:
        return token.is_cancelled or self._is_aborting or self._epoch != epoch

    async def _ask_in_round(
        self,
        epoch: int,
        kind: AskKind,
        details: AskDetails,
    ) -> Optional[AskResponse]:
        """Ask from inside a round; None if an abort withdrew the ask.

        The task reports WAITING_FOR_USER while the ask is open and returns to
        WAITING_FOR_API once it is answered.
        """
        self._set_state(TaskState.WAITING_FOR_USER)
        await self._notify_state_changed()
        try:
            answer = await self._asks.ask(kind, details)
        except asyncio.CancelledError:
            if self._epoch != epoch:
                return None
            raise
        if self._epoch == epoch and not self._is_aborting:
            self._set_state(TaskState.WAITING_FOR_API)
        return answer

    async def _say(
        self,
        kind: SayKind,
        text: Optional[str] = None,
        images: Optional[List[str]] = None,
        **fields: Any,
    ) -> int:
        message = ChatMessage(
            ts=next_timestamp(),
            type=MessageType.SAY,
            say=kind,
            text=text,
            images=images,
            **fields,
        )
        ts = await self._store.add_turn(message)
        await self._notify_state_changed()
        return ts

    async def _append_to_reply(self, reply_ts: int, text: str) -> None:
        await self._store.append_text(reply_ts, text)
        await self._notify_state_changed()

    def _find_last_turn(self, predicate: Callable[[ChatMessage], bool]) -> Optional[ChatMessage]:
        for message in reversed(self._store.turns()):
            if predicate(message):
                return message
        return None

    async def _notify_state_changed(self) -> None:
        if self._on_state_changed is None:
            return
        try:
            result = self._on_state_changed()
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("State change notification failed")

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Background task failed", exc_info=task.exception())

    def _set_state(self, state: TaskState) -> None:
        if state != self._state:
            logger.debug("State %s -> %s", self._state.value, state.value)
            self._state = state

    def _log_state(self, message: str) -> None:
        logger.info("[TaskExecutor] %s (state=%s)", message, self._state.value)
        trace("TaskExecutor", message, state=self._state.value)

    def _log_error(self, error: BaseException) -> None:
        logger.error("[TaskExecutor] Error (state=%s): %s", self._state.value, error)
        trace("TaskExecutor", f"Error: {error}", state=self._state.value)


__all__ = [
    "TaskExecutor",
    "StateChangeCallback",
    "normalize_user_content",
    "readable_request",
    "CONTINUE_PROMPT",
    "INTERRUPTED_PLACEHOLDER",
    "FAILED_RESPONSE_TEXT",
    "ERROR_RESPONSE_TEXT",
    "TASK_COMPLETED_TEXT",
    "TOOL_INTERRUPTED_TEXT",
    "REQUEST_CANCELLED_TEXT",
    "MUST_USE_TOOL_TEMPLATE",
]
