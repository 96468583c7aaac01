"""Tool coordination: the facade the task executor drives, plus a reference executor."""

from .executor import DENIED_MESSAGE, ToolExecutor, ToolHandler, format_tool_feedback
from .parser import ToolInvocation, ToolUseParser, parse_params
from .protocol import ToolCoordinator

__all__ = [
    "DENIED_MESSAGE",
    "ToolCoordinator",
    "ToolExecutor",
    "ToolHandler",
    "ToolInvocation",
    "ToolUseParser",
    "format_tool_feedback",
    "parse_params",
]
