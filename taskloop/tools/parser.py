"""Incremental detection of XML-style tool invocations in streamed text.

The model invokes a tool by emitting a tag named after it, with one child
tag per parameter:

    I'll look for the handler first.
    <search_files>
    <path>src</path>
    <regex>def handle_</regex>
    </search_files>

Text arrives in arbitrary fragments, so the parser holds back anything
that may still turn into a tool tag and releases it once it cannot.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from ..types import next_timestamp

_OPEN_TAG = re.compile(r"<([A-Za-z_][\w-]*)>")
_PARAM = re.compile(r"<([A-Za-z_][\w-]*)>(.*?)</\1>", re.DOTALL)


@dataclass
class ToolInvocation:
    """A complete tool invocation found in the stream.

    Attributes:
        name: Tool name (the outer tag).
        params: Parameter name -> stripped value.
        ts: Identity of the invocation's approval message.
    """
    name: str
    params: Dict[str, str] = field(default_factory=dict)
    ts: int = field(default_factory=next_timestamp)


def parse_params(body: str) -> Dict[str, str]:
    """Extract ``<name>value</name>`` pairs from an invocation body."""
    return {m.group(1): m.group(2).strip() for m in _PARAM.finditer(body)}


class ToolUseParser:
    """Splits streamed text into plain text and tool invocations."""

    def __init__(self, tool_names: Iterable[str] = ()):
        self._names = frozenset(tool_names)
        self._buffer = ""
        self._current: Optional[str] = None

    @property
    def in_tool(self) -> bool:
        """True while inside an unterminated tool tag."""
        return self._current is not None

    def set_tool_names(self, tool_names: Iterable[str]) -> None:
        self._names = frozenset(tool_names)

    def reset(self) -> None:
        self._buffer = ""
        self._current = None

    def feed(self, text: str) -> Tuple[str, List[ToolInvocation]]:
        """Consume a fragment.

        Returns:
            (plain text safe to display, invocations completed by this fragment)
        """
        self._buffer += text
        plain: List[str] = []
        invocations: List[ToolInvocation] = []

        while self._buffer:
            if self._current is None:
                idx = self._buffer.find("<")
                if idx == -1:
                    plain.append(self._buffer)
                    self._buffer = ""
                    break
                plain.append(self._buffer[:idx])
                self._buffer = self._buffer[idx:]

                match = _OPEN_TAG.match(self._buffer)
                if match and match.group(1) in self._names:
                    self._current = match.group(1)
                    self._buffer = self._buffer[match.end():]
                    continue
                if self._may_become_tool_tag(self._buffer):
                    break
                plain.append("<")
                self._buffer = self._buffer[1:]
            else:
                close = f"</{self._current}>"
                idx = self._buffer.find(close)
                if idx == -1:
                    break
                body = self._buffer[:idx]
                self._buffer = self._buffer[idx + len(close):]
                invocations.append(ToolInvocation(name=self._current, params=parse_params(body)))
                self._current = None

        return "".join(plain), invocations

    def finish(self) -> str:
        """Release whatever is still held back once the stream has ended.

        Nothing can complete a tool invocation any more, so a partial tag or
        an unterminated tool body is returned as plain text.
        """
        held = self._buffer
        if self._current is not None:
            held = f"<{self._current}>" + held
        self.reset()
        return held

    def _may_become_tool_tag(self, pending: str) -> bool:
        # pending starts with '<' and is not a complete tool open tag
        if ">" in pending:
            return False
        prefix = pending[1:]
        return any(name.startswith(prefix) for name in self._names)


__all__ = ["ToolInvocation", "ToolUseParser", "parse_params"]
