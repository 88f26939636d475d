"""Shared test helpers: mock Gemini responses and a scripted model client."""

from __future__ import annotations

from dataclasses import dataclass
from unittest.mock import MagicMock

from tactiview.agent.events import ProgressChannel
from tactiview.agent.transcript import ModelTurn, ToolCall


def _make_text_response(text: str):
    """Create a mock Gemini response with text content."""
    part = MagicMock()
    part.text = text
    part.function_call = None
    part.thought = None

    content = MagicMock()
    content.role = "model"
    content.parts = [part]

    candidate = MagicMock()
    candidate.content = content
    candidate.finish_reason = "STOP"

    response = MagicMock()
    response.candidates = [candidate]
    response.function_calls = None
    response.text = text
    return response


def _make_fn_call_response(name: str, args: dict, *extra_calls: tuple[str, dict]):
    """Create a mock Gemini response with one or more function calls."""
    calls = []
    parts = []
    for call_name, call_args in ((name, args), *extra_calls):
        fn_call = MagicMock()
        fn_call.name = call_name
        fn_call.args = call_args
        fn_call.id = None

        fn_part = MagicMock()
        fn_part.text = None
        fn_part.thought = None
        fn_part.function_call = fn_call
        calls.append(fn_call)
        parts.append(fn_part)

    content = MagicMock()
    content.role = "model"
    content.parts = parts

    candidate = MagicMock()
    candidate.content = content
    candidate.finish_reason = "STOP"

    response = MagicMock()
    response.candidates = [candidate]
    response.function_calls = calls
    response.text = None
    return response


def _make_empty_response():
    """Create a mock Gemini response whose candidate has no content parts."""
    candidate = MagicMock()
    candidate.content = None
    candidate.finish_reason = "SAFETY"

    response = MagicMock()
    response.candidates = [candidate]
    response.function_calls = None
    response.text = None
    return response


# ── Scripted model turns ──


def segment(line_id: str, x: float = 10, y: float = 20) -> dict:
    return {"id": line_id, "from": {"x": x, "y": y}, "to": {"x": x + 5, "y": y + 5}}


def overlay_args(step_id: str, overlay: dict | None = None, stage: str | None = "diagram") -> dict:
    args = {
        "id": step_id,
        "overlay": overlay if overlay is not None else {"attackLines": [segment(f"{step_id}-line")]},
        "thinking": f"drawing {step_id}",
    }
    if stage is not None:
        args["stage"] = stage
    return args


def tool_turn(args: dict, name: str = "show_overlay", call_id: str | None = None) -> ModelTurn:
    return ModelTurn(tool_call=ToolCall(name=name, args=args, id=call_id))


def text_turn(*texts: str) -> ModelTurn:
    return ModelTurn(texts=texts)


@dataclass
class RecordedCall:
    turns: tuple
    system_instruction: str
    tools: list | None
    temperature: float | None
    thinking_budget: int | None


class ScriptedClient:
    """ModelClient that replays a fixed list of turns (the last one repeats).

    An Exception in the script is raised instead of returned.
    """

    def __init__(self, script) -> None:
        self._script = list(script)
        self.calls: list[RecordedCall] = []

    def generate(self, transcript, system_instruction, tools=None, temperature=None,
                 thinking_budget=None):
        self.calls.append(RecordedCall(
            turns=transcript.turns,
            system_instruction=system_instruction,
            tools=tools,
            temperature=temperature,
            thinking_budget=thinking_budget,
        ))
        index = min(len(self.calls) - 1, len(self._script) - 1)
        item = self._script[index]
        if isinstance(item, Exception):
            raise item
        return item


class RecordingChannel(ProgressChannel):
    """ProgressChannel that keeps every delivered event; close() before asserting."""

    def __init__(self) -> None:
        self.events: list = []
        super().__init__(self.events.append)

    @property
    def kinds(self) -> list[str]:
        return [e.kind for e in self.events]
