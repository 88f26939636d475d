"""Single-shot analysis: one model reply, visualizations parsed from fenced blocks."""

from __future__ import annotations

import json
import logging
import re
import time
from collections.abc import Sequence
from dataclasses import dataclass, field

from tactiview import config
from tactiview.agent.errors import ProviderError, describe_provider_error
from tactiview.agent.profiles import LoopSettings
from tactiview.agent.provider import GeminiModelClient, ModelClient
from tactiview.agent.transcript import Transcript, UserTurn
from tactiview.media import MediaPayload
from tactiview.overlay.document import WIRE_NAMES, VisualizationSpec
from tactiview.overlay.schema import SchemaMismatch, validate_overlay

logger = logging.getLogger(__name__)

VISUALIZATION_TYPES = ("play_diagram",)
NO_TEXT_FALLBACK = "I analyzed the media but couldn't generate a text response."
HISTORY_WINDOW = 4

_VISUALIZATION_BLOCK = re.compile(r"```visualization\s*([\s\S]*?)```")
_EXTRA_NEWLINES = re.compile(r"\n{3,}")

_RESERVED_KEYS = {"type", "title", *WIRE_NAMES.values()}


@dataclass(frozen=True)
class ChatMessage:
    role: str
    content: str


@dataclass
class AnalysisResult:
    text: str
    visualizations: list[VisualizationSpec] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "visualizations": [v.to_dict() for v in self.visualizations] or None,
        }


def parse_visualizations(
    text: str, allowed_types: Sequence[str] = VISUALIZATION_TYPES,
) -> tuple[str, list[VisualizationSpec]]:
    """Extract ```visualization blocks from model text.

    Blocks that decode as JSON are removed from the returned text; those of an
    allowed ``type`` are validated and collected in source order. Blocks that
    fail to decode stay in the text so broken output remains inspectable.
    """
    visualizations: list[VisualizationSpec] = []

    def _replace(match: re.Match) -> str:
        raw = match.group(1).strip()
        try:
            spec = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Failed to parse visualization JSON: %s", e)
            return match.group(0)

        if isinstance(spec, dict) and spec.get("type") in allowed_types:
            try:
                document, issues = validate_overlay(spec, path="visualization")
            except SchemaMismatch as e:
                logger.warning("Dropping visualization: %s", e)
                return ""
            for issue in issues:
                logger.warning("Visualization element dropped: %s", issue)
            title = spec.get("title")
            visualizations.append(VisualizationSpec(
                type=spec["type"],
                document=document,
                title=title if isinstance(title, str) else None,
                extra={k: v for k, v in spec.items() if k not in _RESERVED_KEYS},
            ))
        else:
            logger.debug("Ignoring visualization block with unknown type")
        return ""

    clean = _VISUALIZATION_BLOCK.sub(_replace, text).strip()
    clean = _EXTRA_NEWLINES.sub("\n\n", clean)
    return clean, visualizations


def build_prompt(prompt: str, history: Sequence[ChatMessage] = ()) -> str:
    """Fold the most recent chat messages into the prompt text."""
    if not history:
        return prompt
    context = "\n".join(
        f"{m.role.upper()}: {m.content}" for m in list(history)[-HISTORY_WINDOW:]
    )
    return f"PREVIOUS CONTEXT:\n{context}\n\nCURRENT REQUEST: {prompt}"


class SingleShotAnalyzer:
    """Sends one media + prompt turn with no tools and parses the reply."""

    def __init__(self, client: ModelClient, settings: LoopSettings) -> None:
        self._client = client
        self._settings = settings

    def run(
        self,
        media: MediaPayload,
        prompt: str,
        history: Sequence[ChatMessage] = (),
    ) -> AnalysisResult:
        logger.info("Single-shot analysis started: %r", prompt[:120])
        t0 = time.perf_counter()
        transcript = Transcript([UserTurn(text=build_prompt(prompt, history), media=media)])
        try:
            turn = self._client.generate(
                transcript,
                system_instruction=self._settings.system_instruction,
                tools=None,
                temperature=self._settings.temperature,
                thinking_budget=self._settings.thinking_budget,
            )
        except ProviderError as e:
            logger.error("Single-shot model call failed: %s", e)
            return AnalysisResult(text=describe_provider_error(e, config.GEMINI_API_KEY))

        clean, visualizations = parse_visualizations(turn.text)
        logger.info(
            "Single-shot complete: %d chars, %d visualization(s) (%.2fs)",
            len(clean), len(visualizations), time.perf_counter() - t0,
        )
        return AnalysisResult(text=clean or NO_TEXT_FALLBACK, visualizations=visualizations)


def create_single_shot_analyzer(
    api_key: str | None = None,
    model: str | None = None,
    client: ModelClient | None = None,
    **overrides,
) -> SingleShotAnalyzer:
    settings = LoopSettings.from_profile("single_shot", **overrides)
    if client is None:
        client = GeminiModelClient(api_key=api_key, model=model)
    return SingleShotAnalyzer(client, settings)
