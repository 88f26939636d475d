"""Conversation transcript: the ordered turns replayed to the model each round."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any, Union

from tactiview.media import MediaPayload


@dataclass(frozen=True)
class ToolCall:
    """A raw (unvalidated) structured tool call emitted by the model."""

    name: str
    args: dict
    id: str | None = None


@dataclass(frozen=True)
class UserTurn:
    text: str
    media: MediaPayload | None = None


@dataclass(frozen=True)
class ModelTurn:
    """One model reply: free-text segments and at most one tool call.

    ``raw`` keeps the provider's own content object so it can be replayed
    verbatim (it may carry signatures the provider insists on getting back).
    """

    texts: tuple[str, ...] = ()
    tool_call: ToolCall | None = None
    finish_reason: str | None = None
    raw: Any = field(default=None, compare=False, repr=False)

    @property
    def text(self) -> str:
        return "".join(self.texts)

    @property
    def is_empty(self) -> bool:
        """No text, no tool call, and no provider content to replay."""
        return not self.texts and self.tool_call is None and self.raw is None


@dataclass(frozen=True)
class ToolResultTurn:
    """Acknowledgement of a specific tool call."""

    tool_name: str
    response: dict
    call_id: str | None = None


Turn = Union[UserTurn, ModelTurn, ToolResultTurn]


class Transcript:
    """Append-only sequence of turns for one session."""

    def __init__(self, turns: list[Turn] | None = None) -> None:
        self._turns: list[Turn] = list(turns or [])

    def append(self, turn: Turn) -> None:
        self._turns.append(turn)

    @property
    def turns(self) -> tuple[Turn, ...]:
        return tuple(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(tuple(self._turns))

    def __len__(self) -> int:
        return len(self._turns)

    def __getitem__(self, index: int) -> Turn:
        return self._turns[index]
