"""Core types for the task loop.

This module defines the data model shared by the task executor, the
conversation store, the network boundary and the tool subsystem:

- Lifecycle and message enums (TaskState, AskKind, SayKind, ...)
- Content blocks and API history entries (ConversationEntry)
- Displayed chat messages (ChatMessage)
- Stream events, a closed union of three variants (StreamEvent)
- Ask details/responses and tool results
"""

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class TaskState(str, Enum):
    """Lifecycle state of a task."""
    IDLE = "idle"
    WAITING_FOR_API = "waiting_for_api"
    PROCESSING_RESPONSE = "processing_response"
    WAITING_FOR_USER = "waiting_for_user"
    COMPLETED = "completed"
    ABORTED = "aborted"


class Role(str, Enum):
    """Role of an API history entry."""
    USER = "user"
    ASSISTANT = "assistant"


class MessageType(str, Enum):
    """Whether a displayed message asks the user something or just says it."""
    ASK = "ask"
    SAY = "say"


class AskKind(str, Enum):
    """Reasons the task may gate on the user."""
    TOOL = "tool"                                # Tool approval
    API_REQ_FAILED = "api_req_failed"            # Retry after a provider error
    RESUME_TASK = "resume_task"                  # Resume after interrupt / repeated errors
    RESUME_COMPLETED_TASK = "resume_completed_task"
    FOLLOWUP = "followup"                        # Model asked a question
    PAYMENT_REQUIRED = "payment_required"
    UNAUTHORIZED = "unauthorized"


class SayKind(str, Enum):
    """Kinds of informational messages."""
    TEXT = "text"
    USER_FEEDBACK = "user_feedback"
    API_REQ_STARTED = "api_req_started"
    API_REQ_RETRIED = "api_req_retried"
    ERROR = "error"
    PAYMENT_REQUIRED = "payment_required"
    UNAUTHORIZED = "unauthorized"
    COMPLETION_RESULT = "completion_result"


class AskResponseKind(str, Enum):
    """How the user answered an ask."""
    YES = "yes"
    NO = "no"
    MESSAGE = "message"


class ApprovalState(str, Enum):
    """Approval state carried in a tool ask payload."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    ERROR = "error"


_ts_lock = threading.Lock()
_last_ts = 0


def next_timestamp() -> int:
    """Return a millisecond timestamp, strictly increasing per process.

    Timestamps double as identity keys for messages and ask correlation,
    so two calls in the same millisecond must still get distinct values.
    """
    global _last_ts
    with _ts_lock:
        now = int(time.time() * 1000)
        _last_ts = now if now > _last_ts else _last_ts + 1
        return _last_ts


# =============================================================================
# Content
# =============================================================================

@dataclass
class TextBlock:
    """Plain text content."""
    text: str
    type: str = field(default="text", init=False)


@dataclass
class ImageBlock:
    """Base64 image content.

    Attributes:
        media_type: MIME type (e.g. 'image/png').
        data: Base64-encoded payload without the data-URL prefix.
    """
    media_type: str
    data: str
    type: str = field(default="image", init=False)


ContentBlock = Union[TextBlock, ImageBlock]
UserContent = List[ContentBlock]


def format_images_into_blocks(images: Optional[List[str]]) -> List[ImageBlock]:
    """Convert ``data:<mime>;base64,<payload>`` URLs into image blocks."""
    blocks: List[ImageBlock] = []
    for data_url in images or []:
        header, _, data = data_url.partition(",")
        media_type = header.split(":", 1)[-1].split(";", 1)[0] or "image/png"
        blocks.append(ImageBlock(media_type=media_type, data=data))
    return blocks


def text_of(content: List[ContentBlock]) -> str:
    """Concatenate the text blocks of a content list."""
    return "".join(b.text for b in content if isinstance(b, TextBlock))


@dataclass
class ApiMetrics:
    """Token and cost accounting for one request round."""
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0
    input_cache_read: Optional[int] = None
    input_cache_write: Optional[int] = None


@dataclass
class ConversationEntry:
    """An item in the API conversation history.

    Attributes:
        role: USER or ASSISTANT.
        content: Ordered content blocks.
        ts: Creation timestamp, used as the identity key.
        metrics: Token/cost counts for assistant turns, once known.
    """
    role: Role
    content: List[ContentBlock] = field(default_factory=list)
    ts: int = field(default_factory=next_timestamp)
    metrics: Optional[ApiMetrics] = None

    @property
    def text(self) -> str:
        return text_of(self.content)


@dataclass
class ChatMessage:
    """A displayed message: what the UI renders for the task.

    Request-started entries (SAY / API_REQ_STARTED) carry the fetch and
    error flags plus the round metrics. Tool approval asks carry a ``tool``
    payload whose ``approval_state`` key holds an ApprovalState value.
    """
    ts: int
    type: MessageType
    ask: Optional[AskKind] = None
    say: Optional[SayKind] = None
    text: Optional[str] = None
    images: Optional[List[str]] = None
    tool: Optional[Dict[str, Any]] = None
    is_done: bool = False
    is_fetching: bool = False
    is_error: bool = False
    error_text: Optional[str] = None
    api_metrics: Optional[ApiMetrics] = None
    is_sub_message: bool = False


# =============================================================================
# Asks
# =============================================================================

@dataclass
class AskDetails:
    """Payload attached to an ask."""
    question: Optional[str] = None
    tool: Optional[Dict[str, Any]] = None


@dataclass
class AskResponse:
    """The user's answer to an ask."""
    response: AskResponseKind
    text: Optional[str] = None
    images: Optional[List[str]] = None

    @property
    def affirmative(self) -> bool:
        return self.response in (AskResponseKind.YES, AskResponseKind.MESSAGE)


# =============================================================================
# Stream events
# =============================================================================

@dataclass(frozen=True)
class StreamDelta:
    """An incremental text fragment."""
    text: str


@dataclass(frozen=True)
class StreamSuccessEnd:
    """Terminal event: the model finished; carries the round metrics."""
    metrics: ApiMetrics


@dataclass(frozen=True)
class StreamErrorEnd:
    """Terminal event: the provider failed mid-stream."""
    status: Optional[int] = None
    message: Optional[str] = None


StreamEvent = Union[StreamDelta, StreamSuccessEnd, StreamErrorEnd]


# =============================================================================
# Tools
# =============================================================================

@dataclass
class ToolResult:
    """Result of a tool invocation, fed into the next round.

    Attributes:
        name: Tool name.
        result: Text, or content blocks for structured/multimodal results.
    """
    name: str
    result: Union[str, List[ContentBlock]]

    def to_content(self) -> List[ContentBlock]:
        if isinstance(self.result, str):
            return [TextBlock(self.result)]
        return list(self.result)


__all__ = [
    "TaskState",
    "Role",
    "MessageType",
    "AskKind",
    "SayKind",
    "AskResponseKind",
    "ApprovalState",
    "next_timestamp",
    "TextBlock",
    "ImageBlock",
    "ContentBlock",
    "UserContent",
    "format_images_into_blocks",
    "text_of",
    "ApiMetrics",
    "ConversationEntry",
    "ChatMessage",
    "AskDetails",
    "AskResponse",
    "StreamDelta",
    "StreamSuccessEnd",
    "StreamErrorEnd",
    "StreamEvent",
    "ToolResult",
]
