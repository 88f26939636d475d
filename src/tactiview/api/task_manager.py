"""Background analysis sessions with progress streaming."""

from __future__ import annotations

import logging
import queue
import threading
import traceback
import uuid
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable

logger = logging.getLogger(__name__)


class TaskManager:
    """Runs analysis sessions in the background and fans out their events.

    Sessions share nothing, so any number may run at once. Each task gets a
    cancellation event that its function can hand to the agent loop. Only the
    ``max_finished`` most recently finished tasks are retained.
    """

    def __init__(self, max_workers: int | None = None, max_finished: int = 100) -> None:
        # Sessions are I/O-bound (one Gemini call at a time)
        self._executor = ThreadPoolExecutor(max_workers=max_workers)
        self._tasks: dict[str, dict[str, Any]] = {}
        self._subscribers: dict[str, list[queue.Queue]] = {}
        self._cancel_events: dict[str, threading.Event] = {}
        self._finished: deque[str] = deque()
        self._max_finished = max_finished
        self._lock = threading.Lock()

    def submit(self, name: str, fn: Callable[..., Any], **kwargs) -> str:
        """Submit a task for background execution.

        ``fn`` is called with ``task_id`` and ``cancel`` keyword arguments in
        addition to ``kwargs``. Its return value must be JSON-serializable.

        Returns:
            Task ID (UUID string).
        """
        task_id = str(uuid.uuid4())
        cancel = threading.Event()
        with self._lock:
            self._tasks[task_id] = {
                "id": task_id,
                "name": name,
                "status": "running",
                "progress_events": [],
                "result": None,
                "error": None,
            }
            self._subscribers[task_id] = []
            self._cancel_events[task_id] = cancel

        def _run():
            try:
                result = fn(task_id=task_id, cancel=cancel, **kwargs)
                with self._lock:
                    task = self._tasks.get(task_id)
                    if task is None:
                        return
                    task["status"] = "completed"
                    task["result"] = result
                    self._broadcast_locked(task_id, {"type": "done", "result": result})
                    self._finish_locked(task_id)
            except Exception as e:
                logger.exception("Task %s (%s) failed", task_id, name)
                with self._lock:
                    task = self._tasks.get(task_id)
                    if task is None:
                        return
                    task["status"] = "failed"
                    task["error"] = traceback.format_exc()
                    self._broadcast_locked(task_id, {"type": "error", "error": str(e)})
                    self._finish_locked(task_id)

        self._executor.submit(_run)
        return task_id

    def get_status(self, task_id: str) -> dict | None:
        """Get task status and metadata."""
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                return None
            return dict(task)

    def list_tasks(self) -> list[dict]:
        with self._lock:
            return [dict(t) for t in self._tasks.values()]

    def cancel(self, task_id: str) -> bool:
        """Ask a running task to stop before its next model round.

        Returns False if the task does not exist. Cancelling a finished task
        is a no-op.
        """
        with self._lock:
            if task_id not in self._tasks:
                return False
            event = self._cancel_events.get(task_id)
        if event is not None:
            event.set()
        return True

    def subscribe(self, task_id: str) -> tuple[queue.Queue, dict] | None:
        """Subscribe to events for a task.

        Returns a Queue that receives every event pushed from now on, together
        with a snapshot of the task taken at the same instant, or None if the
        task doesn't exist. Replaying the snapshot then draining the queue
        yields each event exactly once.
        """
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                return None
            q: queue.Queue = queue.Queue()
            self._subscribers[task_id].append(q)
            snapshot = dict(task)
            snapshot["progress_events"] = list(task["progress_events"])
            return q, snapshot

    def unsubscribe(self, task_id: str, q: queue.Queue) -> None:
        """Stop forwarding events to a queue returned by subscribe()."""
        with self._lock:
            subscribers = self._subscribers.get(task_id)
            if subscribers and q in subscribers:
                subscribers.remove(q)

    def push_progress(self, task_id: str, event: dict) -> None:
        """Record a progress event and forward it to subscribers."""
        with self._lock:
            task = self._tasks.get(task_id)
            if task:
                task["progress_events"].append(event)
            self._broadcast_locked(task_id, {"type": "progress", **event})

    def _finish_locked(self, task_id: str) -> None:
        """Release a finished task's cancel event and evict the oldest finished
        tasks beyond the retention limit. Caller holds the lock."""
        self._cancel_events.pop(task_id, None)
        self._finished.append(task_id)
        while len(self._finished) > self._max_finished:
            old = self._finished.popleft()
            self._tasks.pop(old, None)
            self._subscribers.pop(old, None)

    def _broadcast_locked(self, task_id: str, event: dict) -> None:
        """Send an event to all subscribers. Caller holds the lock."""
        for q in self._subscribers.get(task_id, []):
            try:
                q.put_nowait(event)
            except queue.Full:
                pass
