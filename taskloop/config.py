"""Configuration for the task loop.

Every field defaults from an environment variable, so a ``.env`` file loaded
through load_config() (or a plain export) tunes a running agent without
code changes.

Environment Variables:
    TASKLOOP_FLUSH_INTERVAL_MS: Output buffer flush interval (default: 10)
    TASKLOOP_FLUSH_SIZE_THRESHOLD: Buffered characters that force a flush (default: 50)
    TASKLOOP_MAX_CONSECUTIVE_ERRORS: Failed rounds before asking to resume (default: 3)
    TASKLOOP_COMPLETION_TOOL: Tool whose result completes the task (default: attempt_completion)
    TASKLOOP_AUTO_APPROVE: Comma-separated tool names that skip approval (default: empty)
"""

import os
from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from dotenv import load_dotenv


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, str(default)))


def _env_list(name: str) -> FrozenSet[str]:
    raw = os.environ.get(name, "")
    return frozenset(item.strip() for item in raw.split(",") if item.strip())


@dataclass
class TaskConfig:
    """Tunables for the task executor and its output buffer."""
    flush_interval_ms: int = field(default_factory=lambda: _env_int("TASKLOOP_FLUSH_INTERVAL_MS", 10))
    flush_size_threshold: int = field(default_factory=lambda: _env_int("TASKLOOP_FLUSH_SIZE_THRESHOLD", 50))
    max_consecutive_errors: int = field(default_factory=lambda: _env_int("TASKLOOP_MAX_CONSECUTIVE_ERRORS", 3))
    completion_tool: str = field(default_factory=lambda: os.environ.get("TASKLOOP_COMPLETION_TOOL", "attempt_completion"))
    auto_approve: FrozenSet[str] = field(default_factory=lambda: _env_list("TASKLOOP_AUTO_APPROVE"))

    def __post_init__(self):
        if self.flush_interval_ms < 0:
            raise ValueError("flush_interval_ms must be >= 0")
        if self.flush_size_threshold < 1:
            raise ValueError("flush_size_threshold must be >= 1")
        if self.max_consecutive_errors < 1:
            raise ValueError("max_consecutive_errors must be >= 1")

    @property
    def flush_interval(self) -> float:
        """Flush interval in seconds."""
        return self.flush_interval_ms / 1000.0


def load_config(env_file: Optional[str] = None) -> TaskConfig:
    """Load a ``.env`` file (if any) into the environment, then build a config.

    Variables already present in the environment win over the file.

    Args:
        env_file: Path to the .env file. None lets python-dotenv search for one.
    """
    load_dotenv(env_file)
    return TaskConfig()


__all__ = ["TaskConfig", "load_config"]
