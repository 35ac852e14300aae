"""
Root pytest configuration and shared fixtures.
"""

import json
import logging
import os
from typing import Any, Dict, List

import pytest

from prompt_anchor.config import set_config
from prompt_anchor.core.logging_config import ROOT_LOGGER_NAME


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000.0


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(autouse=True)
def _isolate_engine_state(monkeypatch):
    """Reset the global config, PROMPT_ANCHOR_* env vars and logger handlers."""
    for name in list(os.environ):
        if name.startswith("PROMPT_ANCHOR_"):
            monkeypatch.delenv(name, raising=False)
    set_config(None)

    root = logging.getLogger(ROOT_LOGGER_NAME)
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    set_config(None)


def parse_envelope(output: str) -> Dict[str, Any]:
    """Parse the JSON envelope a CLI command printed last.

    Log lines may precede the envelope when stderr is mixed into the output.
    """
    lines: List[str] = [line for line in output.strip().splitlines() if line.strip()]
    assert lines, "command produced no output"
    return json.loads(lines[-1])


@pytest.fixture(name="parse_envelope")
def parse_envelope_fixture():
    return parse_envelope
