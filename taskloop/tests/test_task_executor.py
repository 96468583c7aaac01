"""Tests for TaskExecutor request rounds, errors, asks and abort."""

import asyncio
import json

import pytest

from taskloop.ask_manager import AskManager
from taskloop.config import TaskConfig
from taskloop.errors import ProviderError, TaskBusyError
from taskloop.store import InMemoryConversationStore
from taskloop.task_executor import (
    CONTINUE_PROMPT,
    FAILED_RESPONSE_TEXT,
    INTERRUPTED_PLACEHOLDER,
    REQUEST_CANCELLED_TEXT,
    TASK_COMPLETED_TEXT,
    TOOL_INTERRUPTED_TEXT,
    TaskExecutor,
    normalize_user_content,
)
from taskloop.tools.executor import ToolExecutor
from taskloop.types import (
    ApiMetrics,
    ApprovalState,
    AskKind,
    AskResponseKind,
    ImageBlock,
    MessageType,
    Role,
    SayKind,
    StreamDelta,
    StreamErrorEnd,
    StreamSuccessEnd,
    TaskState,
    TextBlock,
)

from .fakes import STALL, ScriptedProvider, wait_for_ask, wait_until

METRICS = ApiMetrics(input_tokens=100, output_tokens=20, cost=0.01)


def completion_round(result="All files listed", preface="Done.\n"):
    return [
        StreamDelta(preface),
        StreamDelta(f"<attempt_completion><result>{result}</result></attempt_completion>"),
        StreamSuccessEnd(METRICS),
    ]


def search_round():
    return [
        StreamDelta("Let me search.\n"),
        StreamDelta("<search_files><path>src</path></search_files>"),
        StreamDelta("\nWaiting on the results."),
        StreamSuccessEnd(METRICS),
    ]


class Harness:
    """A TaskExecutor wired to in-memory collaborators and a scripted provider."""

    def __init__(self, rounds, **config):
        self.store = InMemoryConversationStore()
        self.asks = AskManager(self.store)
        self.tools = ToolExecutor(self.asks, self.store)
        self.provider = ScriptedProvider(rounds)
        self.notifications = 0
        self.searches = []

        async def attempt_completion(params):
            return params.get("result", "")

        async def search_files(params):
            self.searches.append(params)
            return "src/app.py\nsrc/util.py"

        self.tools.register("attempt_completion", attempt_completion, requires_approval=False)
        self.tools.register("search_files", search_files)

        settings = dict(
            flush_interval_ms=10,
            flush_size_threshold=50,
            max_consecutive_errors=3,
            completion_tool="attempt_completion",
            auto_approve=frozenset(),
        )
        settings.update(config)
        self.executor = TaskExecutor(
            self.store,
            self.provider,
            self.tools,
            ask_manager=self.asks,
            config=TaskConfig(**settings),
            on_state_changed=self._on_state_changed,
        )

    def _on_state_changed(self):
        self.notifications += 1

    def says(self, kind):
        return [m for m in self.store.turns() if m.say == kind]

    def asks_of(self, kind):
        return [m for m in self.store.turns() if m.ask == kind]

    async def wait_for_ask(self, kind=None):
        return await wait_for_ask(self.store, self.asks, kind)


class TestNormalizeUserContent:

    def test_string_becomes_text_block(self):
        assert normalize_user_content("hi") == [TextBlock("hi")]

    def test_empty_becomes_continue_prompt(self):
        assert normalize_user_content("") == [TextBlock(CONTINUE_PROMPT)]
        assert normalize_user_content([]) == [TextBlock(CONTINUE_PROMPT)]
        assert normalize_user_content([TextBlock("  ")]) == [TextBlock(CONTINUE_PROMPT)]

    def test_images_kept(self):
        content = [ImageBlock("image/png", "AAAA")]
        assert normalize_user_content(content) == content


class TestSuccessfulRounds:

    @pytest.mark.asyncio
    async def test_completion_records_metrics_and_history(self):
        h = Harness([completion_round()])

        await h.executor.start_task("list the files")

        assert h.executor.state == TaskState.COMPLETED
        started = h.says(SayKind.API_REQ_STARTED)
        assert len(started) == 1
        assert started[0].api_metrics == METRICS
        assert started[0].is_done
        assert not started[0].is_fetching
        assert not started[0].is_error
        assert json.loads(started[0].text) == {"request": "list the files"}

        history = h.store.history()
        assert [e.role for e in history] == [Role.USER, Role.ASSISTANT, Role.USER, Role.ASSISTANT]
        assert history[0].text == "list the files"
        assert history[1].ts == started[0].ts
        assert history[1].metrics == METRICS
        assert history[1].text.startswith("Done.\n<attempt_completion>")
        assert history[2].text == "All files listed"
        assert history[3].text == TASK_COMPLETED_TEXT
        assert h.notifications > 0

    @pytest.mark.asyncio
    async def test_metrics_recorded_and_text_flushed_before_tool_pause(self):
        metrics = ApiMetrics(input_tokens=10, output_tokens=5, cost=0.01)
        h = Harness([[
            StreamDelta("I'll "),
            StreamDelta("search now"),
            StreamDelta("<attempt_completion><result>listed</result></attempt_completion>"),
            StreamSuccessEnd(metrics),
        ]])
        flushed_before_tool = []

        async def attempt_completion(params):
            flushed_before_tool.append(h.says(SayKind.TEXT)[0].text)
            return params["result"]

        h.tools.register("attempt_completion", attempt_completion, requires_approval=False)

        await h.executor.start_task("list files")

        assert h.store.history()[1].metrics == metrics
        assert h.says(SayKind.API_REQ_STARTED)[0].api_metrics == metrics
        assert flushed_before_tool == ["I'll search now"]

    @pytest.mark.asyncio
    async def test_tool_markup_is_not_displayed(self):
        h = Harness([completion_round()])

        await h.executor.start_task("list the files")

        displayed = "".join(m.text or "" for m in h.says(SayKind.TEXT))
        assert displayed == "Done.\n"
        assert all(m.is_sub_message for m in h.says(SayKind.TEXT))

    @pytest.mark.asyncio
    async def test_text_held_as_possible_tool_call_is_shown_at_stream_end(self):
        h = Harness([[
            StreamDelta("Done.\n"),
            StreamDelta("<attempt_completion><result>ok</result></attempt_completion>"),
            StreamDelta("\nNote: a <a"),
            StreamSuccessEnd(METRICS),
        ]])

        await h.executor.start_task("list the files")

        displayed = "".join(m.text or "" for m in h.says(SayKind.TEXT))
        assert displayed == "Done.\n\nNote: a <a"
        assert h.executor.state == TaskState.COMPLETED

    @pytest.mark.asyncio
    async def test_unterminated_tool_call_is_shown_at_stream_end(self):
        h = Harness([
            [StreamDelta("Searching <search_files><path>sr"), StreamSuccessEnd(METRICS)],
            completion_round(),
        ])

        await h.executor.start_task("find it")

        displayed = "".join(m.text or "" for m in h.says(SayKind.TEXT))
        assert displayed.startswith("Searching <search_files><path>sr")
        assert h.searches == []
        assert "You must use a tool to proceed" in h.provider.histories[1][-1].text

    @pytest.mark.asyncio
    async def test_no_tool_use_sends_corrective_input(self):
        h = Harness([
            [StreamDelta("I think we are done here."), StreamSuccessEnd(METRICS)],
            completion_round(),
        ])

        await h.executor.start_task("fix the bug")

        assert h.executor.state == TaskState.COMPLETED
        assert len(h.provider.histories) == 2
        corrective = h.provider.histories[1][-1]
        assert corrective.role == Role.USER
        assert "You must use a tool to proceed" in corrective.text
        assert "attempt_completion" in corrective.text

    @pytest.mark.asyncio
    async def test_empty_response_is_replaced(self):
        h = Harness([[StreamSuccessEnd(METRICS)], completion_round()])

        await h.executor.start_task("hello")

        assert h.store.history()[1].text == FAILED_RESPONSE_TEXT

    @pytest.mark.asyncio
    async def test_approved_tool_result_feeds_next_round(self):
        h = Harness([search_round(), completion_round()])
        task = asyncio.ensure_future(h.executor.start_task("find the entry point"))

        tool_ask = await h.wait_for_ask(AskKind.TOOL)
        assert tool_ask.tool["approval_state"] == ApprovalState.PENDING.value
        assert h.executor.output_buffer.paused
        h.executor.handle_ask_response(tool_ask.ts, AskResponseKind.YES)
        await task

        assert h.executor.state == TaskState.COMPLETED
        assert h.searches == [{"path": "src"}]
        assert h.store.get_turn(tool_ask.ts).tool["approval_state"] == ApprovalState.APPROVED.value
        assert "src/app.py" in h.provider.histories[1][-1].text

        segments = [m.text for m in h.says(SayKind.TEXT)]
        assert segments[0] == "Let me search.\n"
        assert "\nWaiting on the results." in segments

    @pytest.mark.asyncio
    async def test_rejected_tool_reports_denial(self):
        h = Harness([search_round(), completion_round()])
        task = asyncio.ensure_future(h.executor.start_task("find the entry point"))

        tool_ask = await h.wait_for_ask(AskKind.TOOL)
        h.executor.handle_ask_response(tool_ask.ts, AskResponseKind.NO)
        await task

        assert h.searches == []
        assert h.provider.histories[1][-1].text == "The user denied this operation."

    @pytest.mark.asyncio
    async def test_empty_start_uses_continue_prompt(self):
        h = Harness([completion_round()])

        await h.executor.start_task("")

        assert h.store.history()[0].text == CONTINUE_PROMPT

    @pytest.mark.asyncio
    async def test_new_message_records_feedback(self):
        h = Harness([completion_round(), completion_round(result="Renamed")])
        await h.executor.start_task("list the files")

        await h.executor.new_message("now rename util.py")

        feedback = h.says(SayKind.USER_FEEDBACK)
        assert [m.text for m in feedback] == ["now rename util.py"]
        assert h.executor.state == TaskState.COMPLETED
        assert h.provider.histories[1][-1].text == "now rename util.py"


class TestErrors:

    @pytest.mark.asyncio
    async def test_retry_after_provider_error(self):
        h = Harness([ProviderError(503, "overloaded"), completion_round()])
        task = asyncio.ensure_future(h.executor.start_task("go"))

        failed = await h.wait_for_ask(AskKind.API_REQ_FAILED)
        assert failed.text == "overloaded"
        assert h.executor.consecutive_error_count == 1
        h.executor.handle_ask_response(None, AskResponseKind.YES)
        await task

        assert h.executor.state == TaskState.COMPLETED
        assert len(h.says(SayKind.API_REQ_RETRIED)) == 1
        first_request = h.says(SayKind.API_REQ_STARTED)[0]
        assert first_request.is_done and first_request.is_error
        assert first_request.error_text == "overloaded"
        assert h.executor.consecutive_error_count == 0

    @pytest.mark.asyncio
    async def test_waiting_for_user_while_retry_ask_is_open(self):
        h = Harness([ProviderError(503, "overloaded"), completion_round()])
        task = asyncio.ensure_future(h.executor.start_task("go"))

        failed = await h.wait_for_ask(AskKind.API_REQ_FAILED)
        assert h.executor.state == TaskState.WAITING_FOR_USER

        h.executor.handle_ask_response(failed.ts, AskResponseKind.YES)
        await task
        assert h.executor.state == TaskState.COMPLETED

    @pytest.mark.asyncio
    async def test_waiting_for_user_while_resume_after_errors_ask_is_open(self):
        h = Harness([ProviderError(500, "boom")] * 3 + [completion_round()])
        task = asyncio.ensure_future(h.executor.start_task("go"))
        for _ in range(3):
            failed = await h.wait_for_ask(AskKind.API_REQ_FAILED)
            h.executor.handle_ask_response(failed.ts, AskResponseKind.YES)

        resume = await h.wait_for_ask(AskKind.RESUME_TASK)
        assert h.executor.state == TaskState.WAITING_FOR_USER

        h.executor.handle_ask_response(resume.ts, AskResponseKind.YES)
        await task
        assert h.executor.state == TaskState.COMPLETED

    @pytest.mark.asyncio
    async def test_error_end_event_marks_request(self):
        h = Harness([
            [StreamDelta("partial"), StreamErrorEnd(status=500, message="stream broke")],
            completion_round(),
        ])
        task = asyncio.ensure_future(h.executor.start_task("go"))

        await h.wait_for_ask(AskKind.API_REQ_FAILED)
        request = h.says(SayKind.API_REQ_STARTED)[0]
        assert request.is_done
        assert request.is_error
        assert not request.is_fetching
        assert request.error_text == "stream broke"

        h.executor.handle_ask_response(None, AskResponseKind.YES)
        await task
        assert h.executor.state == TaskState.COMPLETED

    @pytest.mark.asyncio
    async def test_declined_retry_completes_task(self):
        h = Harness([ProviderError(500, "boom")])
        task = asyncio.ensure_future(h.executor.start_task("go"))

        await h.wait_for_ask(AskKind.API_REQ_FAILED)
        h.executor.handle_ask_response(None, AskResponseKind.NO)
        await task

        assert h.executor.state == TaskState.COMPLETED
        assert len(h.provider.histories) == 1

    @pytest.mark.asyncio
    async def test_three_consecutive_errors_ask_to_resume(self):
        h = Harness([ProviderError(500, "boom")] * 3 + [completion_round()])
        task = asyncio.ensure_future(h.executor.start_task("go"))

        for attempt in range(1, 4):
            failed = await h.wait_for_ask(AskKind.API_REQ_FAILED)
            assert h.executor.consecutive_error_count == attempt
            h.executor.handle_ask_response(failed.ts, AskResponseKind.YES)

        resume = await h.wait_for_ask(AskKind.RESUME_TASK)
        assert "3 times in a row" in resume.text
        assert len(h.provider.histories) == 3

        h.executor.handle_ask_response(resume.ts, AskResponseKind.NO)
        await task

        assert h.executor.state == TaskState.COMPLETED
        assert len(h.provider.histories) == 3
        assert len(h.says(SayKind.API_REQ_RETRIED)) == 3
        assert all(m.is_error for m in h.says(SayKind.API_REQ_STARTED))

    @pytest.mark.asyncio
    async def test_resume_after_repeated_errors_resets_counter(self):
        h = Harness([ProviderError(500, "boom")] * 3 + [completion_round()])
        task = asyncio.ensure_future(h.executor.start_task("go"))

        for _ in range(3):
            failed = await h.wait_for_ask(AskKind.API_REQ_FAILED)
            h.executor.handle_ask_response(failed.ts, AskResponseKind.YES)
        resume = await h.wait_for_ask(AskKind.RESUME_TASK)
        h.executor.handle_ask_response(resume.ts, AskResponseKind.YES)
        await task

        assert h.executor.state == TaskState.COMPLETED
        assert h.executor.consecutive_error_count == 0
        assert len(h.provider.histories) == 4

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,say_kind", [
        (401, SayKind.UNAUTHORIZED),
        (402, SayKind.PAYMENT_REQUIRED),
    ])
    async def test_fatal_errors_go_idle(self, status, say_kind):
        h = Harness([ProviderError(status, "account problem")])

        await h.executor.start_task("go")

        assert h.executor.state == TaskState.IDLE
        said = h.says(say_kind)
        assert [m.text for m in said] == ["account problem"]
        assert h.asks_of(AskKind.API_REQ_FAILED) == []

    @pytest.mark.asyncio
    async def test_error_before_any_text_keeps_interrupted_placeholder(self):
        h = Harness([[StreamErrorEnd(status=500)]])
        task = asyncio.ensure_future(h.executor.start_task("go"))

        await h.wait_for_ask(AskKind.API_REQ_FAILED)
        assistant = h.store.history()[-1]
        assert assistant.role == Role.ASSISTANT
        assert assistant.text == INTERRUPTED_PLACEHOLDER

        h.executor.handle_ask_response(None, AskResponseKind.NO)
        await task


class TestAsks:

    @pytest.mark.asyncio
    async def test_unknown_ask_id_is_ignored(self):
        h = Harness([])
        assert h.executor.handle_ask_response(987654, AskResponseKind.YES) is False
        assert h.executor.state == TaskState.IDLE

    @pytest.mark.asyncio
    async def test_no_ask_message_is_ignored(self):
        h = Harness([])
        assert h.executor.handle_ask_response(None, AskResponseKind.YES) is False

    @pytest.mark.asyncio
    async def test_ask_with_id_reuses_message(self):
        h = Harness([])
        waiter = asyncio.ensure_future(h.executor.ask(AskKind.FOLLOWUP))
        first = await h.wait_for_ask(AskKind.FOLLOWUP)
        h.executor.handle_ask_response(first.ts, AskResponseKind.MESSAGE, text="a")
        assert (await waiter).text == "a"

        again = asyncio.ensure_future(h.executor.ask_with_id(AskKind.FOLLOWUP, None, first.ts))
        await wait_until(lambda: h.asks.has_pending(first.ts))
        h.executor.handle_ask_response(first.ts, AskResponseKind.YES)

        assert (await again).response == AskResponseKind.YES
        assert len(h.asks_of(AskKind.FOLLOWUP)) == 1


class TestEntryPoints:

    @pytest.mark.asyncio
    async def test_resume_outside_waiting_for_user_is_noop(self):
        h = Harness([completion_round()])

        await h.executor.resume_task("continue")

        assert h.executor.state == TaskState.IDLE
        assert h.provider.histories == []

    @pytest.mark.asyncio
    async def test_entry_while_running_raises(self):
        h = Harness([search_round()])
        task = asyncio.ensure_future(h.executor.start_task("go"))
        await h.wait_for_ask(AskKind.TOOL)

        with pytest.raises(TaskBusyError):
            await h.executor.new_message("hurry up")

        await h.executor.abort_task()
        await task

    @pytest.mark.asyncio
    async def test_make_request_requires_waiting_for_api(self):
        h = Harness([completion_round()])
        await h.executor.make_request()
        assert h.provider.histories == []


class TestAbort:

    @pytest.mark.asyncio
    async def test_abort_with_pending_tool_ask(self):
        h = Harness([search_round(), completion_round()])
        task = asyncio.ensure_future(h.executor.start_task("go"))
        tool_ask = await h.wait_for_ask(AskKind.TOOL)

        await h.executor.abort_task()
        await task

        assert h.executor.state == TaskState.WAITING_FOR_USER
        assert h.provider.tokens[0].is_cancelled
        tool = h.store.get_turn(tool_ask.ts).tool
        assert tool["approval_state"] == ApprovalState.ERROR.value
        assert tool["error"] == TOOL_INTERRUPTED_TEXT
        request = h.says(SayKind.API_REQ_STARTED)[0]
        assert request.is_done
        assert request.is_error
        assert request.error_text == REQUEST_CANCELLED_TEXT
        assert h.searches == []
        assert h.executor.consecutive_error_count == 0

        # The tool ask was withdrawn; answering it changes nothing
        assert h.executor.handle_ask_response(tool_ask.ts, AskResponseKind.YES) is False

        resume = await h.wait_for_ask(AskKind.RESUME_TASK)
        assert "interrupted" in resume.text
        h.executor.handle_ask_response(resume.ts, AskResponseKind.YES)
        await wait_until(lambda: h.executor.state == TaskState.COMPLETED)

        assert h.provider.histories[1][-1].text == CONTINUE_PROMPT

    @pytest.mark.asyncio
    async def test_concurrent_abort_is_idempotent(self):
        h = Harness([search_round()])
        task = asyncio.ensure_future(h.executor.start_task("go"))
        await h.wait_for_ask(AskKind.TOOL)

        await asyncio.gather(h.executor.abort_task(), h.executor.abort_task())
        await task
        await h.wait_for_ask(AskKind.RESUME_TASK)
        for _ in range(10):
            await asyncio.sleep(0)

        assert len(h.asks_of(AskKind.RESUME_TASK)) == 1
        assert not h.executor.is_aborting

    @pytest.mark.asyncio
    async def test_late_retry_answer_after_abort_is_noop(self):
        h = Harness([ProviderError(500, "boom")])
        task = asyncio.ensure_future(h.executor.start_task("go"))
        failed = await h.wait_for_ask(AskKind.API_REQ_FAILED)

        await h.executor.abort_task()
        await task

        assert h.executor.handle_ask_response(failed.ts, AskResponseKind.YES) is False
        assert h.executor.state == TaskState.WAITING_FOR_USER
        assert len(h.provider.histories) == 1

    @pytest.mark.asyncio
    async def test_abort_interrupts_stream_waiting_for_first_event(self):
        h = Harness([[StreamDelta("first "), StreamDelta("second"), StreamSuccessEnd(METRICS)]])
        h.provider.gate = asyncio.Event()
        task = asyncio.ensure_future(h.executor.start_task("go"))
        await wait_until(lambda: h.executor.state == TaskState.PROCESSING_RESPONSE)

        await h.executor.abort_task()
        await asyncio.wait_for(task, timeout=1.0)

        assert h.executor.state == TaskState.WAITING_FOR_USER
        assert h.store.history()[-1].text == INTERRUPTED_PLACEHOLDER
        assert all(not m.text for m in h.says(SayKind.TEXT))

    @pytest.mark.asyncio
    async def test_abort_interrupts_stream_blocked_mid_read(self):
        h = Harness([[StreamDelta("Looking..."), STALL, StreamSuccessEnd(METRICS)]])
        task = asyncio.ensure_future(h.executor.start_task("go"))
        await wait_until(lambda: bool(h.store.history()) and h.store.history()[-1].text == "Looking...")

        await h.executor.abort_task()
        await asyncio.wait_for(task, timeout=1.0)

        assert h.provider.tokens[0].is_cancelled
        assert h.executor.state == TaskState.WAITING_FOR_USER
        assert h.store.history()[-1].text == "Looking..."
        displayed = "".join(m.text or "" for m in h.says(SayKind.TEXT))
        assert displayed == "Looking..."
        request = h.says(SayKind.API_REQ_STARTED)[0]
        assert request.error_text == REQUEST_CANCELLED_TEXT

    @pytest.mark.asyncio
    async def test_declined_resume_completes(self):
        h = Harness([search_round()])
        task = asyncio.ensure_future(h.executor.start_task("go"))
        await h.wait_for_ask(AskKind.TOOL)
        await h.executor.abort_task()
        await task

        resume = await h.wait_for_ask(AskKind.RESUME_TASK)
        h.executor.handle_ask_response(resume.ts, AskResponseKind.NO)
        await wait_until(lambda: h.executor.state == TaskState.COMPLETED)

    @pytest.mark.asyncio
    async def test_resume_with_feedback_becomes_next_input(self):
        h = Harness([search_round(), completion_round()])
        task = asyncio.ensure_future(h.executor.start_task("go"))
        await h.wait_for_ask(AskKind.TOOL)
        await h.executor.abort_task()
        await task

        resume = await h.wait_for_ask(AskKind.RESUME_TASK)
        h.executor.handle_ask_response(
            resume.ts, AskResponseKind.MESSAGE,
            text="search lib/ instead", images=["data:image/png;base64,AAAA"],
        )
        await wait_until(lambda: h.executor.state == TaskState.COMPLETED)

        next_input = h.provider.histories[1][-1]
        assert next_input.content == [TextBlock("search lib/ instead"), ImageBlock("image/png", "AAAA")]

    @pytest.mark.asyncio
    async def test_abort_when_idle_only_cleans_tools(self):
        h = Harness([])
        await h.executor.abort_task()

        assert h.executor.state == TaskState.IDLE
        assert h.asks_of(AskKind.RESUME_TASK) == []

    @pytest.mark.asyncio
    async def test_new_message_withdraws_resume_ask(self):
        h = Harness([search_round(), completion_round()])
        task = asyncio.ensure_future(h.executor.start_task("go"))
        await h.wait_for_ask(AskKind.TOOL)
        await h.executor.abort_task()
        await task
        resume = await h.wait_for_ask(AskKind.RESUME_TASK)

        await h.executor.new_message("different plan")

        assert h.executor.state == TaskState.COMPLETED
        assert h.executor.handle_ask_response(resume.ts, AskResponseKind.YES) is False
        assert all(m.type in (MessageType.ASK, MessageType.SAY) for m in h.store.turns())
