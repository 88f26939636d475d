"""FastAPI server: synchronous and background analysis sessions, SSE progress."""

from __future__ import annotations

import base64
import binascii
import json
import logging
import queue
import time

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from tactiview import config
from tactiview.agent.events import ProgressChannel
from tactiview.agent.loop import AgentLoop, create_agent_loop
from tactiview.agent.provider import GeminiModelClient, ModelClient
from tactiview.agent.single_shot import ChatMessage, create_single_shot_analyzer
from tactiview.api.task_manager import TaskManager
from tactiview.media import MediaPayload

# Configure logging on import, before anything else logs
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)-5s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Tactiview", description="Agentic tactical overlay analysis")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000"],
    allow_methods=["*"],
    allow_headers=["*"],
)

_task_manager = TaskManager()

# Lazy-initialized model client, shared by all sessions (it holds no session state)
_client: ModelClient | None = None


def _get_client() -> ModelClient:
    global _client
    if _client is None:
        if not config.GEMINI_API_KEY:
            raise HTTPException(status_code=400, detail="GEMINI_API_KEY not configured")
        _client = GeminiModelClient()
        logger.info("Model client ready (%s)", config.GEMINI_MODEL)
    return _client


class AnalyzeRequest(BaseModel):
    image: str = Field(..., description="Base64-encoded image or video frame")
    mime_type: str = "image/jpeg"
    prompt: str
    profile: str = "tactical"
    max_iterations: int | None = Field(None, ge=1)
    min_tool_calls: int | None = Field(None, ge=0)


class ChatMessageModel(BaseModel):
    role: str
    content: str


class SingleShotRequest(BaseModel):
    image: str
    mime_type: str = "image/jpeg"
    prompt: str
    history: list[ChatMessageModel] = []


class SessionResponse(BaseModel):
    text: str
    overlay: dict | None
    outcome: str
    iterations: int
    tool_calls: int


class SingleShotResponse(BaseModel):
    text: str
    visualizations: list[dict] | None


def _media(image: str, mime_type: str) -> MediaPayload:
    try:
        base64.b64decode(image, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="image is not valid base64") from None
    return MediaPayload(data=image, mime_type=mime_type)


def _build_loop(req: AnalyzeRequest) -> AgentLoop:
    try:
        return create_agent_loop(
            req.profile,
            client=_get_client(),
            max_iterations=req.max_iterations,
            min_tool_calls=req.min_tool_calls,
        )
    except (KeyError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e).strip("'\"")) from None


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/analyze", response_model=SessionResponse)
def analyze(req: AnalyzeRequest):
    logger.info("POST /analyze prompt=%r profile=%s", req.prompt[:120], req.profile)
    media = _media(req.image, req.mime_type)
    loop = _build_loop(req)
    t0 = time.perf_counter()
    try:
        result = loop.run(media, req.prompt)
    except Exception as e:
        logger.exception("Agent error after %.2fs", time.perf_counter() - t0)
        raise HTTPException(status_code=500, detail=str(e))
    logger.info(
        "Analysis complete: %s, %d tool call(s), %.2fs total",
        result.outcome.value, result.tool_calls, time.perf_counter() - t0,
    )
    return result.to_dict()


@app.post("/analyze/single", response_model=SingleShotResponse)
def analyze_single(req: SingleShotRequest):
    logger.info("POST /analyze/single prompt=%r", req.prompt[:120])
    media = _media(req.image, req.mime_type)
    analyzer = create_single_shot_analyzer(client=_get_client())
    history = [ChatMessage(role=m.role, content=m.content) for m in req.history]
    try:
        result = analyzer.run(media, req.prompt, history)
    except Exception as e:
        logger.exception("Single-shot analysis error")
        raise HTTPException(status_code=500, detail=str(e))
    return result.to_dict()


# ── Background sessions ──


@app.post("/run/analyze")
def run_analyze(req: AnalyzeRequest):
    """Start an agentic session in the background; follow it via /tasks/{id}/stream."""
    media = _media(req.image, req.mime_type)
    loop = _build_loop(req)

    def _run(task_id: str, cancel):
        channel = ProgressChannel(
            lambda event: _task_manager.push_progress(task_id, event.to_dict())
        )
        try:
            result = loop.run(media, req.prompt, on_progress=channel, cancel=cancel)
        finally:
            # Deliver every progress event before the task reports done.
            channel.close(wait=True)
        return result.to_dict()

    task_id = _task_manager.submit("analyze", _run)
    return {"task_id": task_id, "name": "analyze", "status": "running"}


@app.get("/tasks")
def list_tasks():
    return [
        {k: v for k, v in t.items() if k != "progress_events"}
        for t in _task_manager.list_tasks()
    ]


@app.get("/tasks/{task_id}")
def get_task(task_id: str):
    task = _task_manager.get_status(task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@app.post("/tasks/{task_id}/cancel")
def cancel_task(task_id: str):
    if not _task_manager.cancel(task_id):
        raise HTTPException(status_code=404, detail="Task not found")
    return {"task_id": task_id, "cancel_requested": True}


@app.get("/tasks/{task_id}/stream")
def stream_task(task_id: str):
    """SSE stream of progress events for a task."""
    subscription = _task_manager.subscribe(task_id)
    if subscription is None:
        raise HTTPException(status_code=404, detail="Task not found")
    sub_queue, task = subscription

    def event_generator():
        try:
            yield from _replay_then_follow(task, sub_queue)
        finally:
            # Runs on normal end and on client disconnect
            _task_manager.unsubscribe(task_id, sub_queue)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


def _replay_then_follow(task: dict, sub_queue: queue.Queue):
    # First, replay progress that happened before we subscribed
    for evt in task["progress_events"]:
        yield f"data: {json.dumps({'type': 'progress', **evt})}\n\n"

    if task["status"] == "completed":
        yield f"data: {json.dumps({'type': 'done', 'result': task.get('result')})}\n\n"
        return
    if task["status"] == "failed":
        yield f"data: {json.dumps({'type': 'error', 'error': task.get('error', '')})}\n\n"
        return

    while True:
        try:
            event = sub_queue.get(timeout=30)
        except queue.Empty:
            yield ": keepalive\n\n"
            continue
        yield f"data: {json.dumps(event)}\n\n"
        if event.get("type") in ("done", "error"):
            break
