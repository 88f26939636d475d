"""Tests for the background task manager."""

from __future__ import annotations

import threading
import time

import pytest

from tactiview.api.task_manager import TaskManager


def _wait_done(tm: TaskManager, task_id: str, timeout: float = 5.0) -> dict:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        task = tm.get_status(task_id)
        if task is not None and task["status"] != "running":
            return task
        time.sleep(0.01)
    raise AssertionError(f"task {task_id} still running")


@pytest.fixture
def tm():
    return TaskManager(max_workers=2, max_finished=2)


# ── Lifecycle ──


class TestLifecycle:
    def test_result_and_progress(self, tm):
        def fn(task_id, cancel):
            tm.push_progress(task_id, {"kind": "tool_call"})
            return {"text": "ok"}

        task_id = tm.submit("analyze", fn)
        task = _wait_done(tm, task_id)
        assert task["status"] == "completed"
        assert task["result"] == {"text": "ok"}
        assert task["progress_events"] == [{"kind": "tool_call"}]

    def test_failure_recorded(self, tm):
        def fn(task_id, cancel):
            raise RuntimeError("model exploded")

        task = _wait_done(tm, tm.submit("analyze", fn))
        assert task["status"] == "failed"
        assert "model exploded" in task["error"]

    def test_cancel_sets_event(self, tm):
        started = threading.Event()

        def fn(task_id, cancel):
            started.set()
            assert cancel.wait(timeout=5)
            return {"outcome": "cancelled"}

        task_id = tm.submit("analyze", fn)
        assert started.wait(timeout=5)
        assert tm.cancel(task_id) is True
        assert _wait_done(tm, task_id)["result"] == {"outcome": "cancelled"}

    def test_cancel_unknown_and_finished(self, tm):
        assert tm.cancel("missing") is False
        task_id = tm.submit("analyze", lambda task_id, cancel: None)
        _wait_done(tm, task_id)
        assert tm.cancel(task_id) is True
        assert task_id not in tm._cancel_events


# ── Retention ──


class TestRetention:
    def test_oldest_finished_tasks_evicted(self, tm):
        ids = []
        for _ in range(3):
            ids.append(tm.submit("analyze", lambda task_id, cancel: {}))
            _wait_done(tm, ids[-1])

        assert tm.get_status(ids[0]) is None
        assert tm.get_status(ids[1]) is not None
        assert tm.get_status(ids[2]) is not None
        assert [t["id"] for t in tm.list_tasks()] == ids[1:]
        assert ids[0] not in tm._subscribers

    def test_running_tasks_never_evicted(self, tm):
        release = threading.Event()
        running = tm.submit("analyze", lambda task_id, cancel: release.wait(timeout=5))
        for _ in range(3):
            _wait_done(tm, tm.submit("analyze", lambda task_id, cancel: {}))
        assert tm.get_status(running)["status"] == "running"
        release.set()
        _wait_done(tm, running)


# ── Subscribers ──


class TestSubscribers:
    def test_subscribe_gets_snapshot_and_live_events(self, tm):
        release = threading.Event()

        def fn(task_id, cancel):
            tm.push_progress(task_id, {"n": 1})
            release.wait(timeout=5)
            tm.push_progress(task_id, {"n": 2})
            return "done"

        task_id = tm.submit("analyze", fn)
        deadline = time.monotonic() + 5
        while not tm.get_status(task_id)["progress_events"] and time.monotonic() < deadline:
            time.sleep(0.01)

        q, snapshot = tm.subscribe(task_id)
        assert snapshot["progress_events"] == [{"n": 1}]
        release.set()
        assert q.get(timeout=5) == {"type": "progress", "n": 2}
        assert q.get(timeout=5) == {"type": "done", "result": "done"}

    def test_unsubscribe_stops_delivery(self, tm):
        release = threading.Event()

        def fn(task_id, cancel):
            release.wait(timeout=5)
            tm.push_progress(task_id, {"n": 1})
            return None

        task_id = tm.submit("analyze", fn)
        q, _ = tm.subscribe(task_id)
        tm.unsubscribe(task_id, q)
        release.set()
        _wait_done(tm, task_id)
        assert q.empty()

    def test_unsubscribe_is_idempotent(self, tm):
        task_id = tm.submit("analyze", lambda task_id, cancel: None)
        q, _ = tm.subscribe(task_id)
        tm.unsubscribe(task_id, q)
        tm.unsubscribe(task_id, q)
        tm.unsubscribe("missing", q)

    def test_subscribe_unknown(self, tm):
        assert tm.subscribe("missing") is None
