"""Shared data types for heroku-inference."""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from typing import Any


# ---------------------------------------------------------------------------
# SSE types
# ---------------------------------------------------------------------------

@dataclass
class ParsedSSEEvent:
    """One logical Server-Sent Event."""

    data: str
    event: str | None = None
    id: str | None = None
    retry: int | None = None


class StreamEventKind(enum.Enum):
    """What an SSE event means to the aggregator."""

    MESSAGE = "message"
    DONE = "done"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Tool call types
# ---------------------------------------------------------------------------

@dataclass
class ToolCallChunk:
    """One streamed slice of a tool call.

    ``id`` is usually only present on the first slice of a call; ``index``
    is the call's position among concurrently streamed calls.
    """

    index: int
    id: str | None = None
    name: str | None = None
    args: str | None = None


@dataclass
class ToolCall:
    """A fully reassembled tool call."""

    id: str
    name: str
    args: Any  # parsed JSON value, or the raw string if it did not parse

    def to_wire(self) -> dict[str, Any]:
        arguments = self.args if isinstance(self.args, str) else json.dumps(self.args)
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": arguments},
        }


# ---------------------------------------------------------------------------
# Message types
# ---------------------------------------------------------------------------

class DeltaKind(enum.Enum):
    """Payload carried by a streamed chunk."""

    CONTENT = "content"
    TOOL_CALL = "tool_call"
    METADATA = "metadata"


@dataclass
class MessageChunk:
    """Incremental piece of an assistant message, yielded while streaming."""

    content: str = ""
    tool_call_chunks: list[ToolCallChunk] = field(default_factory=list)
    finish_reason: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def kind(self) -> DeltaKind:
        if self.tool_call_chunks:
            return DeltaKind.TOOL_CALL
        if self.content:
            return DeltaKind.CONTENT
        return DeltaKind.METADATA


@dataclass
class ChatMessage:
    """A complete chat message (finalized assistant reply or request turn)."""

    content: str = ""
    tool_calls: list[ToolCall] | None = None
    finish_reason: str | None = None
    role: str = "assistant"
    tool_call_id: str | None = None
    name: str | None = None
    usage: dict[str, Any] = field(default_factory=dict)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    def to_wire(self) -> dict[str, Any]:
        msg: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            msg["tool_calls"] = [tc.to_wire() for tc in self.tool_calls]
        if self.tool_call_id is not None:
            msg["tool_call_id"] = self.tool_call_id
        if self.name is not None:
            msg["name"] = self.name
        return msg


# ---------------------------------------------------------------------------
# Retry types
# ---------------------------------------------------------------------------

class Outcome(enum.Enum):
    """Classification of a single request attempt."""

    SUCCESS = "success"
    RETRYABLE = "retryable"
    FATAL = "fatal"


class AttemptState(enum.Enum):
    IDLE = "idle"
    ATTEMPTING = "attempting"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class RetryState:
    """Progress of one logical request across its physical attempts."""

    attempts: int = 0
    last_error: Exception | None = None
    last_outcome: Outcome | None = None
    state: AttemptState = AttemptState.IDLE
