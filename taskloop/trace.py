"""Trace lines for a running task, written to a side file.

Complements the stdlib logger: a task can be followed with ``tail -f``
without configuring logging handlers.

Usage:
    from taskloop.trace import trace

    trace("TaskExecutor", "round started", state="waiting_for_api")
    trace("ToolExecutor", "handler failed", include_traceback=True)

Environment Variables:
    TASKLOOP_TRACE_LOG: Trace file path. Empty string disables tracing.
        Unset: taskloop_trace.log in the system temp directory.
"""

import os
import tempfile
import traceback
from datetime import datetime
from typing import Any, Optional

TRACE_ENV_VAR = "TASKLOOP_TRACE_LOG"
DEFAULT_TRACE_FILENAME = "taskloop_trace.log"


def trace_path() -> Optional[str]:
    """Where trace lines go right now, or None if tracing is disabled.

    Read on every call so tests and hosts can flip the variable at runtime.
    """
    value = os.environ.get(TRACE_ENV_VAR)
    if value is None:
        return os.path.join(tempfile.gettempdir(), DEFAULT_TRACE_FILENAME)
    return value or None


def format_trace_line(component: str, msg: str, **fields: Any) -> str:
    ts = datetime.now().strftime("%H:%M:%S.%f")[:-3]
    line = f"[{ts}] [{component}] {msg}"
    if fields:
        line += " " + " ".join(f"{key}={value}" for key, value in fields.items())
    return line


def trace(component: str, msg: str, *, include_traceback: bool = False, **fields: Any) -> None:
    """Append one trace line, with ``fields`` rendered as ``key=value`` pairs.

    Never raises: a broken trace file must not break the task.
    """
    path = trace_path()
    if not path:
        return
    line = format_trace_line(component, msg, **fields)
    try:
        parent = os.path.dirname(os.path.abspath(path))
        os.makedirs(parent, exist_ok=True)
        with open(path, "a") as f:
            f.write(line + "\n")
            if include_traceback:
                tb = traceback.format_exc()
                if tb and tb.strip() != "NoneType: None":
                    f.write(f"[{component}] Traceback:\n{tb}\n")
    except OSError:
        pass
