"""Shared fixtures."""

import pytest

from tactiview.agent.profiles import LoopSettings
from tactiview.media import MediaPayload
from tests.helpers import RecordingChannel

# PNG signature plus filler; the model never decodes it in tests
_PNG = b"\x89PNG\r\n\x1a\n" + bytes(range(32))


@pytest.fixture
def media():
    return MediaPayload.from_bytes(_PNG, "image/png")


@pytest.fixture
def settings():
    """Policy values used by the production profile: 10 rounds, 5 tool calls."""
    return LoopSettings(
        system_instruction="You are a test analyst.",
        max_iterations=10,
        min_tool_calls=5,
        temperature=0.4,
        thinking_budget=0,
    )


@pytest.fixture
def recorder():
    channel = RecordingChannel()
    yield channel
    channel.close()
