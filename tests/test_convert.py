"""Tests for message and tool conversion to request JSON."""

import json

import pytest

from heroku_inference.llm.convert import (
    build_chat_payload,
    normalize_tool_choice,
    to_wire_message,
    to_wire_messages,
    to_wire_tool,
    wrap_array_result,
)
from heroku_inference.types import ChatMessage, ToolCall


class TestWrapArrayResult:
    """Compatibility shim for services that reject bare-array tool results."""

    def test_array_wrapped(self):
        assert json.loads(wrap_array_result("[1, 2]")) == {"result": [1, 2]}

    @pytest.mark.parametrize("content", ['{"a": 1}', '"text"', "42", "plain text", ""])
    def test_non_array_unchanged(self, content):
        assert wrap_array_result(content) == content


class TestToWireMessage:
    def test_dict_passthrough(self):
        msg = {"role": "user", "content": "hi"}
        assert to_wire_message(msg) == msg

    def test_missing_role_defaults_to_user(self):
        assert to_wire_message({"content": "hi"})["role"] == "user"

    def test_none_content_becomes_empty(self):
        wire = to_wire_message({"role": "assistant", "content": None})
        assert wire["content"] == ""

    def test_chat_message_with_tool_calls(self):
        msg = ChatMessage(
            content="",
            tool_calls=[ToolCall(id="c1", name="f", args={"x": 1})],
        )
        wire = to_wire_message(msg)
        assert wire["role"] == "assistant"
        assert wire["tool_calls"] == [{
            "id": "c1",
            "type": "function",
            "function": {"name": "f", "arguments": '{"x": 1}'},
        }]

    def test_raw_string_args_not_reencoded(self):
        msg = ChatMessage(tool_calls=[ToolCall(id="c1", name="f", args="{bad")])
        wire = to_wire_message(msg)
        assert wire["tool_calls"][0]["function"]["arguments"] == "{bad"

    def test_tool_result_array_wrapped(self):
        wire = to_wire_message({"role": "tool", "tool_call_id": "c1", "content": "[1]"})
        assert json.loads(wire["content"]) == {"result": [1]}

    def test_tool_result_wrapping_disabled(self):
        wire = to_wire_message(
            {"role": "tool", "tool_call_id": "c1", "content": "[1]"},
            wrap_array_results=False,
        )
        assert wire["content"] == "[1]"

    def test_structured_tool_content_stringified(self):
        wire = to_wire_message({"role": "tool", "tool_call_id": "c1", "content": [1, 2]})
        assert json.loads(wire["content"]) == {"result": [1, 2]}

    def test_does_not_mutate_input(self):
        msg = {"role": "tool", "tool_call_id": "c1", "content": "[1]"}
        to_wire_message(msg)
        assert msg["content"] == "[1]"

    def test_to_wire_messages(self):
        wires = to_wire_messages([
            ChatMessage(role="system", content="be brief"),
            {"role": "user", "content": "hi"},
        ])
        assert [w["role"] for w in wires] == ["system", "user"]


class TestToWireTool:
    def test_bare_definition(self):
        tool = to_wire_tool({
            "name": "get_weather",
            "description": "Weather lookup",
            "parameters": {
                "$schema": "http://json-schema.org/draft-07/schema#",
                "type": "object",
                "properties": {"loc": {"type": "string"}},
            },
        })
        assert tool == {
            "type": "function",
            "function": {
                "name": "get_weather",
                "description": "Weather lookup",
                "parameters": {
                    "type": "object",
                    "properties": {"loc": {"type": "string"}},
                },
            },
        }

    def test_wire_shape_passthrough(self):
        tool = {"type": "function", "function": {"name": "f", "parameters": {}}}
        assert to_wire_tool(tool) is tool

    def test_missing_parameters(self):
        tool = to_wire_tool({"name": "noop"})
        assert tool["function"]["parameters"] == {"type": "object", "properties": {}}

    def test_missing_name(self):
        with pytest.raises(ValueError):
            to_wire_tool({"description": "nameless"})


class TestToolChoice:
    @pytest.mark.parametrize("choice", ["auto", "none", "required", None])
    def test_keywords_passthrough(self, choice):
        assert normalize_tool_choice(choice) == choice

    def test_function_name(self):
        assert normalize_tool_choice("get_weather") == {
            "type": "function",
            "function": {"name": "get_weather"},
        }

    def test_dict_passthrough(self):
        choice = {"type": "function", "function": {"name": "f"}}
        assert normalize_tool_choice(choice) is choice


class TestBuildChatPayload:
    def test_drops_none(self):
        payload = build_chat_payload(
            "m", [{"role": "user", "content": "x"}], False,
            temperature=0.5, max_tokens=None, tools=None,
        )
        assert payload == {
            "model": "m",
            "messages": [{"role": "user", "content": "x"}],
            "stream": False,
            "temperature": 0.5,
        }
