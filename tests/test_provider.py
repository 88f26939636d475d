"""Tests for the Gemini model client and transcript conversion."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from google.genai import errors, types

from tactiview import config
from tactiview.agent.errors import ProviderError
from tactiview.agent.loop import AgentLoop
from tactiview.agent.provider import GeminiModelClient, _response_to_turn, to_contents
from tactiview.agent.transcript import ModelTurn, ToolCall, ToolResultTurn, Transcript, UserTurn
from tactiview.overlay.schema import build_show_overlay_declaration
from tests.helpers import (
    _make_empty_response,
    _make_fn_call_response,
    _make_text_response,
)


@pytest.fixture
def client():
    c = GeminiModelClient(api_key="fake", model="test-model")
    c._client = MagicMock()
    return c


# ── to_contents ──


class TestToContents:
    def test_user_turn_with_media(self, media):
        contents = to_contents(Transcript([UserTurn(text="Analyze", media=media)]))
        assert len(contents) == 1
        assert contents[0].role == "user"
        image, prompt = contents[0].parts
        assert image.inline_data.mime_type == "image/png"
        assert image.inline_data.data == media.to_bytes()
        assert prompt.text == "Analyze"

    def test_text_only_user_turn(self):
        contents = to_contents(Transcript([UserTurn(text="Keep going")]))
        assert [p.text for p in contents[0].parts] == ["Keep going"]

    def test_model_turn_without_raw(self):
        turn = ModelTurn(texts=("Drawing.",), tool_call=ToolCall("show_overlay", {"id": "s"}))
        content = to_contents(Transcript([turn]))[0]
        assert content.role == "model"
        assert content.parts[0].text == "Drawing."
        assert content.parts[1].function_call.name == "show_overlay"
        assert content.parts[1].function_call.args == {"id": "s"}

    def test_model_turn_replays_raw_content(self):
        raw = types.Content(role="model", parts=[types.Part.from_text(text="verbatim")])
        content = to_contents(Transcript([ModelTurn(texts=("ignored",), raw=raw)]))[0]
        assert content is raw

    def test_tool_result_turn(self):
        ack = {"success": True, "message": "ok"}
        content = to_contents(Transcript([ToolResultTurn("show_overlay", ack, call_id="c1")]))[0]
        assert content.role == "user"
        response = content.parts[0].function_response
        assert response.name == "show_overlay"
        assert response.id == "c1"
        assert response.response == ack

    def test_order_preserved(self, media):
        transcript = Transcript([
            UserTurn(text="a", media=media),
            ModelTurn(texts=("b",)),
            UserTurn(text="c"),
        ])
        assert [c.role for c in to_contents(transcript)] == ["user", "model", "user"]


# ── Response parsing ──


class TestResponseToTurn:
    def test_text(self):
        turn = _response_to_turn(_make_text_response("Summary."))
        assert turn.texts == ("Summary.",)
        assert turn.tool_call is None
        assert turn.raw is not None

    def test_function_call(self):
        turn = _response_to_turn(_make_fn_call_response("show_overlay", {"id": "s1"}))
        assert turn.tool_call == ToolCall(name="show_overlay", args={"id": "s1"})
        assert turn.texts == ()

    def test_multiple_calls_keep_first(self):
        response = _make_fn_call_response(
            "show_overlay", {"id": "first"}, ("show_overlay", {"id": "second"}),
        )
        turn = _response_to_turn(response)
        assert turn.tool_call.args == {"id": "first"}

    def test_thought_parts_skipped(self):
        response = _make_text_response("Visible.")
        thought = MagicMock()
        thought.thought = True
        thought.text = "hidden reasoning"
        thought.function_call = None
        response.candidates[0].content.parts.insert(0, thought)
        assert _response_to_turn(response).texts == ("Visible.",)

    def test_no_content_is_empty(self):
        turn = _response_to_turn(_make_empty_response())
        assert turn.is_empty
        assert turn.finish_reason == "SAFETY"

    def test_no_candidates_is_empty(self):
        response = MagicMock()
        response.candidates = []
        assert _response_to_turn(response).is_empty


# ── GeminiModelClient.generate ──


class TestGenerate:
    def test_passes_model_contents_and_config(self, client, media):
        client._client.models.generate_content.return_value = _make_text_response("Done.")
        decl = build_show_overlay_declaration()

        turn = client.generate(
            Transcript([UserTurn(text="Analyze", media=media)]),
            system_instruction="sys",
            tools=[decl],
            temperature=0.4,
            thinking_budget=0,
        )

        assert turn.text == "Done."
        kwargs = client._client.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert len(kwargs["contents"]) == 1
        cfg = kwargs["config"]
        assert cfg.system_instruction == "sys"
        assert cfg.temperature == 0.4
        assert cfg.thinking_config.thinking_budget == 0
        assert cfg.tools[0].function_declarations[0].name == "show_overlay"
        assert cfg.automatic_function_calling.disable is True
        assert cfg.tool_config.function_calling_config.mode == types.FunctionCallingConfigMode.AUTO

    def test_without_tools(self, client):
        client._client.models.generate_content.return_value = _make_text_response("x")
        client.generate(Transcript([UserTurn(text="hi")]), system_instruction="sys")
        cfg = client._client.models.generate_content.call_args.kwargs["config"]
        assert cfg.tools is None
        assert cfg.tool_config is None

    def test_api_error_wrapped(self, client):
        client._client.models.generate_content.side_effect = errors.ClientError(
            429, {"error": {"code": 429, "message": "Quota exceeded", "status": "RESOURCE_EXHAUSTED"}},
        )
        with pytest.raises(ProviderError) as exc_info:
            client.generate(Transcript([UserTurn(text="hi")]), system_instruction="sys")
        assert exc_info.value.code == 429
        assert "Quota exceeded" in str(exc_info.value)

    def test_transport_error_wrapped(self, client):
        client._client.models.generate_content.side_effect = ConnectionError("reset by peer")
        with pytest.raises(ProviderError, match="reset by peer") as exc_info:
            client.generate(Transcript([UserTurn(text="hi")]), system_instruction="sys")
        assert exc_info.value.code is None

    def test_model_defaults_from_config(self):
        c = GeminiModelClient(api_key="fake")
        assert c.model


# ── Key redaction ──


class TestKeyRedaction:
    KEY = "sekrit-key-123"

    @pytest.fixture
    def keyed_client(self, monkeypatch):
        monkeypatch.setattr(config, "GEMINI_API_KEY", "")
        c = GeminiModelClient(api_key=self.KEY, model="m")
        c._client = MagicMock()
        return c

    def test_transport_error_message_redacted(self, keyed_client):
        keyed_client._client.models.generate_content.side_effect = ConnectionError(
            f"POST https://host/v1/models/m:generate?key={self.KEY} connection reset"
        )
        with pytest.raises(ProviderError) as exc_info:
            keyed_client.generate(Transcript([UserTurn(text="hi")]), system_instruction="sys")
        assert self.KEY not in str(exc_info.value)
        assert "[redacted]" in exc_info.value.message

    def test_api_error_message_redacted(self, keyed_client):
        keyed_client._client.models.generate_content.side_effect = errors.ServerError(
            500, {"error": {"code": 500, "message": f"upstream failed for key={self.KEY}"}},
        )
        with pytest.raises(ProviderError) as exc_info:
            keyed_client.generate(Transcript([UserTurn(text="hi")]), system_instruction="sys")
        assert self.KEY not in exc_info.value.message
        assert exc_info.value.code == 500

    def test_session_result_never_echoes_client_key(self, keyed_client, media, settings):
        keyed_client._client.models.generate_content.side_effect = ConnectionError(
            f"POST https://host/v1/models/m:generate?key={self.KEY} connection reset"
        )
        result = AgentLoop(keyed_client, settings).run(media, "Analyze")
        assert result.text.startswith("Analysis failed:")
        assert self.KEY not in result.text
