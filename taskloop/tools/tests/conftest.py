"""Pytest fixtures for task loop tests."""

import pytest


@pytest.fixture(autouse=True)
def disable_trace_file(monkeypatch):
    """Keep trace lines out of the temp directory during tests."""
    monkeypatch.setenv("TASKLOOP_TRACE_LOG", "")
