"""Agent loop: Gemini tool-calling that builds an overlay one show_overlay call at a time."""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from tactiview import config
from tactiview.agent.errors import ProviderError, describe_provider_error
from tactiview.agent.events import (
    CompletionEvent,
    ProgressChannel,
    ProgressEvent,
    ProgressSink,
    ToolCallEvent,
)
from tactiview.agent.profiles import DEFAULT_PROFILE, LoopSettings, get_agentic_profile
from tactiview.agent.provider import GeminiModelClient, ModelClient
from tactiview.agent.session_log import open_session_log
from tactiview.agent.transcript import ModelTurn, ToolResultTurn, Transcript, UserTurn
from tactiview.media import MediaPayload
from tactiview.overlay.document import OverlayDocument, has_visible_content, merge
from tactiview.overlay.schema import (
    TOOL_NAME,
    SchemaMismatch,
    ToolInvocation,
    ValidationError,
    build_show_overlay_declaration,
    validate_invocation,
)

logger = logging.getLogger(__name__)

COMPLETE_FALLBACK_TEXT = "Analysis complete."
MAX_ITERATIONS_TEXT = "Analysis reached maximum iterations."
EMPTY_RESPONSE_TEXT = "Analysis stopped: the model returned an empty response."
CANCELLED_TEXT = "Analysis cancelled."


class Outcome(str, Enum):
    """Terminal state of a session."""

    COMPLETED = "completed"
    MAX_ITERATIONS = "max_iterations"
    PROVIDER_ERROR = "provider_error"
    EMPTY_RESPONSE = "empty_response"
    CANCELLED = "cancelled"


@dataclass
class SessionResult:
    """Result from an agent run."""

    text: str
    overlay: OverlayDocument | None
    outcome: Outcome
    iterations: int = 0
    tool_calls: int = 0
    issues: list[ValidationError] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "overlay": self.overlay.to_dict() if self.overlay is not None else None,
            "outcome": self.outcome.value,
            "iterations": self.iterations,
            "tool_calls": self.tool_calls,
        }


def _acknowledgement(invocation_id: str | None, accepted: bool, remaining: int) -> dict:
    """Tool-result payload; nudges the model while it is short of the minimum."""
    name = f'"{invocation_id}"' if invocation_id else "step"
    if accepted:
        message = f"Overlay {name} displayed successfully."
    else:
        message = f"Overlay {name} could not be displayed."
    if remaining > 0:
        message += (
            f" You MUST make at least {remaining} more tool calls before providing "
            "final summary."
        )
    else:
        message += " Continue with next step or provide final summary."
    return {"success": accepted, "message": message}


def _continuation_message(tool_calls: int, remaining: int, stages: tuple[str, ...]) -> str:
    message = (
        f"You have only made {tool_calls} tool calls. You MUST use the {TOOL_NAME} tool "
        f"at least {remaining} more times before providing your final summary."
    )
    # Point the model at the working stages, not the closing one.
    working = stages[:-1] if len(stages) > 1 else stages
    if working:
        options = " or ".join(f'stage="{s}"' for s in working)
        message += f" Continue with {options} to add more analysis elements."
    return message


class AgentLoop:
    """Drives one model through repeated show_overlay calls.

    A session runs single-threaded: each round sends the whole transcript,
    appends the reply, then either merges a tool call's delta, pushes the
    model to keep drawing (below ``min_tool_calls``), or accepts the reply
    as the final summary.
    """

    def __init__(
        self,
        client: ModelClient,
        settings: LoopSettings,
        log_dir: Path | None = None,
    ) -> None:
        self._client = client
        self._settings = settings
        self._log_dir = log_dir
        self._tool = build_show_overlay_declaration(settings.stages)

    @property
    def settings(self) -> LoopSettings:
        return self._settings

    def _generate(self, transcript: Transcript) -> ModelTurn:
        s = self._settings
        return self._client.generate(
            transcript,
            system_instruction=s.system_instruction,
            tools=[self._tool],
            temperature=s.temperature,
            thinking_budget=s.thinking_budget,
        )

    def run(
        self,
        media: MediaPayload,
        prompt: str,
        on_progress: Callable[[ProgressEvent], None] | ProgressSink | None = None,
        cancel: threading.Event | None = None,
    ) -> SessionResult:
        """Run one session until the model finishes, fails, or runs out of rounds.

        Args:
            media: The frame to analyze.
            prompt: The user's request.
            on_progress: Callback, ProgressSink or ProgressChannel receiving
                tool_call and completion events. A callback or sink is wrapped
                in a channel owned by this session; a channel passed in is
                left open.
            cancel: Checked before every round; when set the session ends early.

        Returns:
            A SessionResult. Provider failures are reported through it rather
            than raised.
        """
        session_id = uuid.uuid4().hex[:12]
        owns_channel = on_progress is not None and not isinstance(on_progress, ProgressChannel)
        if owns_channel:
            deliver = getattr(on_progress, "push", on_progress)
            channel = ProgressChannel(deliver)
        else:
            channel = on_progress
        try:
            with open_session_log(session_id, self._log_dir, logger) as log:
                return self._run_session(media, prompt, channel, cancel, log)
        finally:
            if owns_channel:
                # Do not wait on a slow consumer; queued events still go out.
                channel.close(wait=False)

    def _run_session(self, media, prompt, channel, cancel, log) -> SessionResult:
        s = self._settings
        run_t0 = time.perf_counter()
        accumulated = OverlayDocument()
        transcript = Transcript([UserTurn(text=prompt, media=media)])
        tool_call_count = 0
        issues: list[ValidationError] = []
        iteration = 0

        log.info("Agent run started: %r", prompt[:120])
        log.debug(
            "Media %s (%d base64 chars); max_iterations=%d min_tool_calls=%d",
            media.mime_type, len(media.data), s.max_iterations, s.min_tool_calls,
        )

        def result(text: str, overlay: OverlayDocument | None, outcome: Outcome) -> SessionResult:
            log.info(
                "Session ended: %s after %d iteration(s), %d tool call(s), %d element(s) (%.2fs)",
                outcome.value, iteration, tool_call_count,
                accumulated.element_count(), time.perf_counter() - run_t0,
            )
            return SessionResult(
                text=text,
                overlay=overlay,
                outcome=outcome,
                iterations=iteration,
                tool_calls=tool_call_count,
                issues=issues,
            )

        def visible() -> OverlayDocument | None:
            return accumulated if has_visible_content(accumulated) else None

        while iteration < s.max_iterations:
            if cancel is not None and cancel.is_set():
                log.info("Cancellation requested before iteration %d", iteration + 1)
                return result(CANCELLED_TEXT, visible(), Outcome.CANCELLED)

            iteration += 1
            log.info(
                "--- Iteration %d/%d (tool calls: %d) ---",
                iteration, s.max_iterations, tool_call_count,
            )

            t0 = time.perf_counter()
            try:
                turn = self._generate(transcript)
            except ProviderError as e:
                log.error("Model call failed: %s", e)
                return result(
                    describe_provider_error(e, config.GEMINI_API_KEY),
                    visible(),
                    Outcome.PROVIDER_ERROR,
                )
            llm_elapsed = time.perf_counter() - t0
            if iteration == 1:
                log.info("First response latency: %.0fms", (time.perf_counter() - run_t0) * 1000)

            if turn.is_empty:
                log.error("No usable content in model turn (finish reason: %s)", turn.finish_reason)
                return result(EMPTY_RESPONSE_TEXT, visible(), Outcome.EMPTY_RESPONSE)

            # Conversational memory: the reply goes in before any branching.
            transcript.append(turn)

            if turn.tool_call is not None:
                tool_call_count += 1
                call = turn.tool_call
                log.info(
                    "LLM requested %s (LLM %.2fs, finish reason: %s)",
                    call.name, llm_elapsed, turn.finish_reason,
                )

                invocation = self._validate(call.name, call.args, log)
                if invocation is not None:
                    issues.extend(invocation.issues)
                    accumulated = merge(accumulated, invocation.delta)
                    log.info(
                        "Overlay %r (stage=%s): %s; accumulated %s",
                        invocation.id, invocation.stage, invocation.thinking,
                        accumulated.counts(),
                    )
                    if channel is not None:
                        channel.push(ToolCallEvent(invocation=invocation, iteration=iteration))
                else:
                    issues.append(SchemaMismatch("args", f"rejected {call.name} call"))

                remaining = s.min_tool_calls - tool_call_count
                ack = _acknowledgement(
                    invocation.id if invocation else call.args.get("id"),
                    invocation is not None,
                    remaining,
                )
                log.debug("Tool result: %s", ack["message"])
                transcript.append(ToolResultTurn(
                    tool_name=call.name, response=ack, call_id=call.id,
                ))
                continue

            if tool_call_count < s.min_tool_calls:
                remaining = s.min_tool_calls - tool_call_count
                log.info(
                    "Model tried to complete early with %d tool call(s); forcing continuation",
                    tool_call_count,
                )
                transcript.append(UserTurn(
                    text=_continuation_message(tool_call_count, remaining, s.stages),
                ))
                continue

            final_text = turn.text
            log.info(
                "LLM returned final answer: %d chars (LLM %.2fs)", len(final_text), llm_elapsed,
            )
            if channel is not None:
                channel.push(CompletionEvent(final_text=final_text))
            return result(final_text or COMPLETE_FALLBACK_TEXT, visible(), Outcome.COMPLETED)

        log.warning("Max iterations (%d) reached without final answer", s.max_iterations)
        # Surfaced even when empty so the caller can tell the session did not converge.
        return result(MAX_ITERATIONS_TEXT, accumulated, Outcome.MAX_ITERATIONS)

    def _validate(self, name: str, args: dict, log) -> ToolInvocation | None:
        """Validate a raw call; None means the whole delta is dropped."""
        if name != TOOL_NAME:
            log.warning("Unknown tool %r requested; ignoring its arguments", name)
            return None
        try:
            invocation = validate_invocation(args, self._settings.stages)
        except SchemaMismatch as e:
            log.warning("Rejected %s call: %s", name, e)
            return None
        for issue in invocation.issues:
            log.warning("Overlay %r: %s", invocation.id, issue)
        return invocation


def create_agent_loop(
    profile: str = DEFAULT_PROFILE,
    api_key: str | None = None,
    model: str | None = None,
    client: ModelClient | None = None,
    **overrides,
) -> AgentLoop:
    """Create an AgentLoop for a prompt profile with config defaults.

    Keyword overrides (``max_iterations``, ``min_tool_calls``, ``temperature``,
    ...) replace the profile/config values.

    Raises:
        KeyError: if the profile is unknown or does not use the overlay tool.
    """
    settings = LoopSettings.from_profile(get_agentic_profile(profile), **overrides)
    if client is None:
        client = GeminiModelClient(api_key=api_key, model=model)
    logger.info(
        "Agent loop: profile=%s max_iterations=%d min_tool_calls=%d",
        profile, settings.max_iterations, settings.min_tool_calls,
    )
    return AgentLoop(client, settings, log_dir=config.SESSION_LOG_DIR)
