"""Conversion between host-side messages/tools and the wire JSON schema."""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable

from heroku_inference.types import ChatMessage

_logger = logging.getLogger(__name__)

_TOOL_CHOICE_KEYWORDS = ("none", "auto", "required")


def _stringify(content: Any) -> str:
    if isinstance(content, str):
        return content
    try:
        return json.dumps(content)
    except (TypeError, ValueError):
        return str(content)


def wrap_array_result(content: str) -> str:
    """Wrap a top-level JSON array as ``{"result": [...]}``.

    Compatibility shim: the service has been seen to reject tool results whose
    content is a bare JSON array.  Anything else is returned unchanged.
    """
    try:
        parsed = json.loads(content)
    except (json.JSONDecodeError, TypeError):
        return content
    if isinstance(parsed, list):
        return json.dumps({"result": parsed})
    return content


def to_wire_message(
    message: ChatMessage | dict[str, Any],
    wrap_array_results: bool = True,
) -> dict[str, Any]:
    """Render one message as request JSON."""
    if isinstance(message, ChatMessage):
        wire = message.to_wire()
    else:
        wire = dict(message)
        if "role" not in wire:
            _logger.warning("Message without role, defaulting to 'user'")
            wire["role"] = "user"

    if wire["role"] == "tool":
        content = _stringify(wire.get("content", ""))
        if wrap_array_results:
            content = wrap_array_result(content)
        wire["content"] = content
    elif wire.get("content") is None:
        wire["content"] = ""
    return wire


def to_wire_messages(
    messages: Iterable[ChatMessage | dict[str, Any]],
    wrap_array_results: bool = True,
) -> list[dict[str, Any]]:
    return [to_wire_message(m, wrap_array_results) for m in messages]


def to_wire_tool(tool: dict[str, Any]) -> dict[str, Any]:
    """Accept a wire-shaped function tool or a bare ``{name, parameters}``."""
    if tool.get("type") == "function" and "function" in tool:
        return tool
    if "name" not in tool:
        raise ValueError(f"Tool definition has no name: {tool!r}")
    parameters = tool.get("parameters") or {"type": "object", "properties": {}}
    parameters = {k: v for k, v in parameters.items() if k != "$schema"}
    return {
        "type": "function",
        "function": {
            "name": tool["name"],
            "description": tool.get("description", ""),
            "parameters": parameters,
        },
    }


def to_wire_tools(tools: Iterable[dict[str, Any]] | None) -> list[dict[str, Any]]:
    return [to_wire_tool(t) for t in tools or []]


def normalize_tool_choice(choice: str | dict[str, Any] | None) -> str | dict[str, Any] | None:
    """Turn a bare function name into the wire's function-selector object."""
    if isinstance(choice, str) and choice not in _TOOL_CHOICE_KEYWORDS:
        return {"type": "function", "function": {"name": choice}}
    return choice


def build_chat_payload(
    model: str,
    messages: list[dict[str, Any]],
    stream: bool,
    **params: Any,
) -> dict[str, Any]:
    """Assemble a chat-completions body, dropping ``None`` fields."""
    payload: dict[str, Any] = {
        "model": model,
        "messages": messages,
        "stream": stream,
    }
    payload.update(params)
    return {k: v for k, v in payload.items() if v is not None}
