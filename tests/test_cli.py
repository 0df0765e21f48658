"""Tests for the command-line interface."""

import json
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from heroku_inference import config as config_mod
from heroku_inference.cli import main
from heroku_inference.errors import AuthenticationError
from heroku_inference.llm.client import AsyncInferenceClient
from heroku_inference.types import ChatMessage, MessageChunk, ToolCall


@pytest.fixture(autouse=True)
def _env(monkeypatch, tmp_path):
    monkeypatch.setenv("INFERENCE_KEY", "test-key")
    monkeypatch.setenv("INFERENCE_MODEL_ID", "claude-test")
    monkeypatch.delenv("INFERENCE_URL", raising=False)
    monkeypatch.setattr(config_mod, "_SEARCH_PATHS", [tmp_path / "absent.yaml"])


def _fake_stream(*chunks: MessageChunk, final: ChatMessage):
    async def chat_stream(self, messages, **kwargs):
        for chunk in chunks:
            yield chunk
        self._last_message = final

    return chat_stream


class TestChatCommand:
    def test_no_stream(self):
        reply = ChatMessage(content="Hello from the model", finish_reason="stop")
        with patch.object(
            AsyncInferenceClient, "chat", new_callable=AsyncMock, return_value=reply,
        ) as mock_chat:
            result = CliRunner().invoke(main, ["chat", "--no-stream", "hi"])
        assert result.exit_code == 0, result.output
        assert "Hello from the model" in result.output
        assert "finish_reason: stop" in result.output
        messages = mock_chat.await_args.args[0]
        assert messages == [{"role": "user", "content": "hi"}]

    def test_system_prompt(self):
        reply = ChatMessage(content="ok")
        with patch.object(
            AsyncInferenceClient, "chat", new_callable=AsyncMock, return_value=reply,
        ) as mock_chat:
            CliRunner().invoke(main, ["chat", "--no-stream", "-s", "be brief", "hi"])
        messages = mock_chat.await_args.args[0]
        assert messages[0] == {"role": "system", "content": "be brief"}

    def test_stream(self):
        final = ChatMessage(
            content="Hi there",
            tool_calls=[ToolCall(id="c1", name="get_weather", args={"loc": "NYC"})],
            finish_reason="tool_calls",
        )
        fake = _fake_stream(
            MessageChunk(content="Hi "), MessageChunk(content="there"), final=final,
        )
        with patch.object(AsyncInferenceClient, "chat_stream", fake):
            result = CliRunner().invoke(main, ["chat", "hi"])
        assert result.exit_code == 0, result.output
        assert "Hi there" in result.output
        assert "get_weather" in result.output

    def test_api_error_exits_nonzero(self):
        err = AuthenticationError("bad key", status_code=401)
        with patch.object(
            AsyncInferenceClient, "chat", new_callable=AsyncMock, side_effect=err,
        ):
            result = CliRunner().invoke(main, ["chat", "--no-stream", "hi"])
        assert result.exit_code == 1

    def test_model_option(self):
        reply = ChatMessage(content="ok")
        seen = {}

        async def chat(self, messages, **kwargs):
            seen["model"] = self.config.model
            return reply

        with patch.object(AsyncInferenceClient, "chat", chat):
            result = CliRunner().invoke(main, ["-m", "other", "chat", "--no-stream", "hi"])
        assert result.exit_code == 0, result.output
        assert seen["model"] == "other"


class TestEmbedCommand:
    def test_prints_json(self):
        with patch.object(
            AsyncInferenceClient, "embed", new_callable=AsyncMock,
            return_value=[[0.1, 0.2], [0.3]],
        ) as mock_embed:
            result = CliRunner().invoke(main, ["embed", "a", "b"])
        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == [[0.1, 0.2], [0.3]]
        assert mock_embed.await_args.args[0] == ["a", "b"]
