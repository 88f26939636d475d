"""Progress events and the fire-and-forget channel that delivers them."""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Protocol, Union

from tactiview.overlay.schema import ToolInvocation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolCallEvent:
    invocation: ToolInvocation
    iteration: int

    kind = "tool_call"

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "iteration": self.iteration,
            "invocation": self.invocation.to_dict(),
        }


@dataclass(frozen=True)
class CompletionEvent:
    final_text: str

    kind = "completion"

    def to_dict(self) -> dict:
        return {"kind": self.kind, "final_text": self.final_text}


ProgressEvent = Union[ToolCallEvent, CompletionEvent]


class ProgressSink(Protocol):
    def push(self, event: ProgressEvent) -> None: ...


class ProgressChannel:
    """Delivers events to a callback on a single background worker.

    ``push`` returns immediately. Events reach the callback in push order.
    Exceptions raised by the callback are logged and dropped.
    """

    def __init__(self, callback: Callable[[ProgressEvent], None]) -> None:
        self._callback = callback
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="progress")
        self._closed = False

    def push(self, event: ProgressEvent) -> None:
        if self._closed:
            logger.debug("Progress channel closed, dropping %s event", event.kind)
            return
        self._executor.submit(self._deliver, event)

    def _deliver(self, event: ProgressEvent) -> None:
        try:
            self._callback(event)
        except Exception:
            logger.exception("Progress callback failed on %s event", event.kind)

    def close(self, wait: bool = True) -> None:
        """Stop accepting events. Already-queued events are still delivered."""
        self._closed = True
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> ProgressChannel:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class NullSink:
    """Sink that discards every event."""

    def push(self, event: ProgressEvent) -> None:
        pass
