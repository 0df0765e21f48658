"""Reassembly of streamed chat-completion deltas.

Adapted from the native tool-call accumulator used for OpenAI-compatible
streaming: each SSE event carries a ``choices[0].delta`` holding a slice of
content and/or tool-call argument fragments.  ``StreamAggregator`` turns those
into live ``MessageChunk`` objects and one final ``ChatMessage``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, AsyncIterable

from heroku_inference.errors import StreamEventError, StreamProtocolError
from heroku_inference.types import (
    ChatMessage,
    MessageChunk,
    ParsedSSEEvent,
    StreamEventKind,
    ToolCall,
    ToolCallChunk,
)

_logger = logging.getLogger(__name__)

DONE_EVENT = "done"
ERROR_EVENT = "error"
# OpenAI-style terminator sent as plain data
DONE_SENTINEL = "[DONE]"


def classify_event(
    event: ParsedSSEEvent,
    done_event: str = DONE_EVENT,
    error_event: str = ERROR_EVENT,
) -> StreamEventKind:
    """Map an SSE event name (or sentinel payload) to its kind."""
    if event.event == error_event:
        return StreamEventKind.ERROR
    if event.event == done_event or event.data.strip() == DONE_SENTINEL:
        return StreamEventKind.DONE
    return StreamEventKind.MESSAGE


def _shape_error(reason: str, data: str) -> StreamProtocolError:
    return StreamProtocolError(
        f"Malformed inference stream data chunk: {reason}",
        error_body={"data": data},
    )


def parse_arguments(raw: str) -> tuple[Any, str | None]:
    """Parse a tool call's argument string.

    Returns ``(value, None)`` on success and ``(raw, error)`` otherwise.
    """
    try:
        return json.loads(raw), None
    except json.JSONDecodeError as e:
        return raw, str(e)


# ---------------------------------------------------------------------------
# ToolCallReassembler
# ---------------------------------------------------------------------------

@dataclass
class _PendingCall:
    name: str = ""
    index: int = 0
    fragments: list[str] = field(default_factory=list)


class ToolCallReassembler:
    """Merge interleaved tool-call fragments into complete calls.

    Fragments are keyed strictly by ``id``.  A fragment without an ``id``
    cannot be attributed to a call and is left out of the final result.
    """

    def __init__(self) -> None:
        self._calls: dict[str, _PendingCall] = {}
        self.unmerged = 0
        self.diagnostics: list[str] = []

    def feed(self, chunk: ToolCallChunk) -> None:
        if not chunk.id:
            self.unmerged += 1
            _logger.debug(
                "Tool-call fragment at index %d has no id; not merged",
                chunk.index,
            )
            return
        pending = self._calls.get(chunk.id)
        if pending is None:
            pending = _PendingCall(index=chunk.index)
            self._calls[chunk.id] = pending
        if chunk.name:
            pending.name = chunk.name
        if chunk.args is not None:
            pending.fragments.append(chunk.args)

    def has_calls(self) -> bool:
        return bool(self._calls)

    def finalize(self) -> list[ToolCall]:
        """Resolve every call that has a name and at least one fragment."""
        result: list[ToolCall] = []
        for call_id, pending in self._calls.items():
            if not pending.name or not pending.fragments:
                continue
            raw = "".join(pending.fragments)
            args, error = parse_arguments(raw)
            if error is not None:
                message = (
                    f"Tool call {call_id} ({pending.name}) has malformed "
                    f"arguments: {error}"
                )
                self.diagnostics.append(message)
                _logger.warning("%s; keeping raw string", message)
            result.append(ToolCall(id=call_id, name=pending.name, args=args))
        return result


# ---------------------------------------------------------------------------
# StreamAggregator
# ---------------------------------------------------------------------------

class StreamAggregator:
    """Accumulate one streamed response.

    Feed events with :meth:`process` (or let :meth:`aggregate` drive an
    event iterator), then call :meth:`finalize` for the combined message.
    """

    def __init__(
        self,
        done_event: str = DONE_EVENT,
        error_event: str = ERROR_EVENT,
    ) -> None:
        self._done_event = done_event
        self._error_event = error_event
        self._content: list[str] = []
        self._tool_calls = ToolCallReassembler()
        self.finish_reason: str | None = None
        self.usage: dict[str, Any] = {}
        self.done = False
        self.result: ChatMessage | None = None

    @property
    def content(self) -> str:
        return "".join(self._content)

    @property
    def tool_calls(self) -> ToolCallReassembler:
        return self._tool_calls

    def process(self, event: ParsedSSEEvent) -> MessageChunk | None:
        """Consume one event; return the chunk to surface, if any.

        Raises ``StreamEventError`` for a service-reported error event and
        ``StreamProtocolError`` when the data is not valid JSON.
        """
        if self.done:
            return None

        kind = classify_event(event, self._done_event, self._error_event)
        if kind is StreamEventKind.ERROR:
            raise StreamEventError(
                "Error event in inference stream", error_body=event.data,
            )
        if kind is StreamEventKind.DONE:
            self.done = True
            return None
        if not event.data:
            return None

        try:
            payload = json.loads(event.data)
        except json.JSONDecodeError as e:
            raise StreamProtocolError(
                "Failed to parse inference stream data chunk",
                error_body={"data": event.data, "error": str(e)},
            ) from e
        if not isinstance(payload, dict):
            raise StreamProtocolError(
                "Inference stream data chunk is not a JSON object",
                error_body={"data": event.data},
            )

        if payload.get("usage"):
            self.usage = payload["usage"]

        choices = payload.get("choices") or []
        if not isinstance(choices, list):
            raise _shape_error("choices is not a list", event.data)
        if not choices:
            return None
        choice = choices[0]
        if not isinstance(choice, dict):
            raise _shape_error("choice is not a JSON object", event.data)
        delta = choice.get("delta") or choice.get("message") or {}
        if not isinstance(delta, dict):
            raise _shape_error("delta is not a JSON object", event.data)
        return self._process_delta(delta, choice.get("finish_reason"), event.data)

    def _process_delta(
        self, delta: dict[str, Any], finish_reason: str | None, raw: str,
    ) -> MessageChunk | None:
        content = delta.get("content") or ""
        if not isinstance(content, str):
            raise _shape_error("delta content is not a string", raw)
        if content:
            self._content.append(content)

        tool_calls = delta.get("tool_calls") or []
        if not isinstance(tool_calls, list):
            raise _shape_error("tool_calls is not a list", raw)
        fragments: list[ToolCallChunk] = []
        for position, tc in enumerate(tool_calls):
            if not isinstance(tc, dict):
                raise _shape_error("tool call entry is not a JSON object", raw)
            func = tc.get("function") or {}
            if not isinstance(func, dict):
                raise _shape_error("tool call function is not a JSON object", raw)
            fragment = ToolCallChunk(
                index=tc.get("index", position),
                id=tc.get("id"),
                name=func.get("name"),
                args=func.get("arguments"),
            )
            self._tool_calls.feed(fragment)
            fragments.append(fragment)

        if finish_reason:
            self.finish_reason = finish_reason

        extra = {
            k: v for k, v in delta.items()
            if k not in ("content", "tool_calls") and v is not None
        }
        if not (content or fragments or finish_reason or extra):
            return None
        return MessageChunk(
            content=content,
            tool_call_chunks=fragments,
            finish_reason=finish_reason,
            extra=extra,
        )

    async def aggregate(
        self, events: AsyncIterable[ParsedSSEEvent],
    ) -> AsyncGenerator[MessageChunk, None]:
        """Yield chunks for *events* in arrival order, then finalize."""
        async for event in events:
            chunk = self.process(event)
            if chunk is not None:
                yield chunk
            if self.done:
                break
        self.finalize()

    def finalize(self) -> ChatMessage:
        """Build the combined assistant message."""
        if self.result is None:
            tool_calls = self._tool_calls.finalize()
            self.result = ChatMessage(
                content=self.content,
                tool_calls=tool_calls or None,
                finish_reason=self.finish_reason,
                usage=self.usage,
            )
            _logger.debug(
                "Stream finalized: %d chars, %d tool calls, finish_reason=%s",
                len(self.result.content), len(tool_calls), self.finish_reason,
            )
        return self.result
