"""Model client interface and Gemini implementation."""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from typing import Protocol

from google import genai
from google.genai import errors, types

from tactiview import config
from tactiview.agent.errors import ProviderError, redact
from tactiview.agent.transcript import (
    ModelTurn,
    ToolCall,
    ToolResultTurn,
    Transcript,
    Turn,
    UserTurn,
)

logger = logging.getLogger(__name__)


class ModelClient(Protocol):
    """Protocol for a conversational model that may call one tool per turn."""

    def generate(
        self,
        transcript: Transcript,
        system_instruction: str,
        tools: Sequence[types.FunctionDeclaration] | None = None,
        temperature: float | None = None,
        thinking_budget: int | None = None,
    ) -> ModelTurn:
        """Return the model's next turn.

        Raises:
            ProviderError: on any transport, auth or quota failure.
        """
        ...


def _turn_to_content(turn: Turn) -> types.Content:
    if isinstance(turn, UserTurn):
        parts: list[types.Part] = []
        if turn.media is not None:
            parts.append(types.Part.from_bytes(
                data=turn.media.to_bytes(),
                mime_type=turn.media.mime_type,
            ))
        parts.append(types.Part.from_text(text=turn.text))
        return types.Content(role="user", parts=parts)

    if isinstance(turn, ModelTurn):
        if turn.raw is not None:
            return turn.raw
        parts = [types.Part.from_text(text=t) for t in turn.texts]
        if turn.tool_call is not None:
            parts.append(types.Part(function_call=types.FunctionCall(
                id=turn.tool_call.id,
                name=turn.tool_call.name,
                args=turn.tool_call.args,
            )))
        return types.Content(role="model", parts=parts)

    if isinstance(turn, ToolResultTurn):
        return types.Content(
            role="user",
            parts=[types.Part(function_response=types.FunctionResponse(
                id=turn.call_id,
                name=turn.tool_name,
                response=turn.response,
            ))],
        )

    raise TypeError(f"Unsupported turn type: {type(turn).__name__}")


def to_contents(transcript: Transcript) -> list[types.Content]:
    """Convert a transcript to Gemini contents, in order."""
    return [_turn_to_content(turn) for turn in transcript]


def _response_to_turn(response: types.GenerateContentResponse) -> ModelTurn:
    candidate = response.candidates[0] if response.candidates else None
    if candidate is None:
        return ModelTurn()

    finish_reason = str(candidate.finish_reason) if candidate.finish_reason else None
    content = candidate.content
    if content is None or not content.parts:
        return ModelTurn(finish_reason=finish_reason)

    texts: list[str] = []
    calls: list[types.FunctionCall] = []
    for part in content.parts:
        if part.thought:
            continue
        if part.function_call:
            calls.append(part.function_call)
        elif part.text:
            texts.append(part.text)

    tool_call = None
    if calls:
        if len(calls) > 1:
            logger.warning(
                "Model emitted %d tool calls in one turn; only the first is used", len(calls)
            )
        first = calls[0]
        tool_call = ToolCall(name=first.name, args=dict(first.args or {}), id=first.id)

    return ModelTurn(
        texts=tuple(texts),
        tool_call=tool_call,
        finish_reason=finish_reason,
        raw=content,
    )


class GeminiModelClient:
    """Gemini implementation of ModelClient."""

    def __init__(self, api_key: str | None = None, model: str | None = None) -> None:
        self._api_key = api_key or config.GEMINI_API_KEY
        self._client = genai.Client(api_key=self._api_key)
        self._model = model or config.GEMINI_MODEL

    @property
    def model(self) -> str:
        return self._model

    def _build_config(
        self,
        system_instruction: str,
        tools: Sequence[types.FunctionDeclaration] | None,
        temperature: float | None,
        thinking_budget: int | None,
    ) -> types.GenerateContentConfig:
        kwargs: dict = {
            "system_instruction": system_instruction,
            "temperature": temperature,
        }
        if thinking_budget is not None:
            kwargs["thinking_config"] = types.ThinkingConfig(thinking_budget=thinking_budget)
        if tools:
            kwargs["tools"] = [types.Tool(function_declarations=list(tools))]
            kwargs["automatic_function_calling"] = types.AutomaticFunctionCallingConfig(
                disable=True
            )
            kwargs["tool_config"] = types.ToolConfig(
                function_calling_config=types.FunctionCallingConfig(mode="AUTO")
            )
        return types.GenerateContentConfig(**kwargs)

    def generate(
        self,
        transcript: Transcript,
        system_instruction: str,
        tools: Sequence[types.FunctionDeclaration] | None = None,
        temperature: float | None = None,
        thinking_budget: int | None = None,
    ) -> ModelTurn:
        """Send the full transcript to Gemini and return one model turn.

        Raises:
            ProviderError: wrapping any failure of the underlying call.
        """
        gen_config = self._build_config(system_instruction, tools, temperature, thinking_budget)
        contents = to_contents(transcript)
        logger.debug("Generate via %s (%d content(s))", self._model, len(contents))
        t0 = time.perf_counter()
        try:
            response = self._client.models.generate_content(
                model=self._model,
                contents=contents,
                config=gen_config,
            )
        except errors.APIError as e:
            # Transport errors may quote the request URL, key included.
            raise ProviderError(redact(e.message or str(e), self._api_key), code=e.code) from e
        except Exception as e:
            raise ProviderError(redact(str(e), self._api_key)) from e

        turn = _response_to_turn(response)
        logger.debug(
            "Generate complete: %d text part(s), tool call=%s, %.0fms",
            len(turn.texts),
            turn.tool_call.name if turn.tool_call else None,
            (time.perf_counter() - t0) * 1000,
        )
        return turn
