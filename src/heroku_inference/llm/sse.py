"""Server-Sent Events decoding for streamed inference responses.

``SSEDecoder`` is a push parser: feed it byte chunks cut at arbitrary
boundaries and it returns the events completed so far.  ``parse_sse`` drives
a decoder from an async byte stream such as ``httpx.Response.aiter_bytes()``.
"""

from __future__ import annotations

import codecs
import logging
from typing import AsyncGenerator, AsyncIterable, Callable

import httpx

from heroku_inference.errors import StreamDecodeError
from heroku_inference.types import ParsedSSEEvent

_logger = logging.getLogger(__name__)

# Failures while pulling bytes off the wire or turning them into text
_READ_ERRORS = (httpx.HTTPError, httpx.StreamError, OSError, UnicodeDecodeError)


class SSEDecoder:
    """Stateful line parser for the SSE text protocol.

    Lines are split on ``\\n`` with a trailing ``\\r`` stripped.  A blank line
    dispatches the pending event; comment lines (``:``) and lines without a
    colon are ignored.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)()
        self._buffer = ""
        self.event_name: str | None = None
        self.data_lines: list[str] = []
        self.event_id: str | None = None
        # Reconnection hint from the last ``retry:`` field
        self.retry: int | None = None

    def feed(self, chunk: bytes | str) -> list[ParsedSSEEvent]:
        """Append *chunk* and return every event it completes."""
        if isinstance(chunk, bytes):
            text = self._decoder.decode(chunk)
        else:
            text = chunk
        if not text:
            return []
        self._buffer += text

        events: list[ParsedSSEEvent] = []
        while True:
            newline = self._buffer.find("\n")
            if newline == -1:
                break
            line = self._buffer[:newline]
            self._buffer = self._buffer[newline + 1:]
            if line.endswith("\r"):
                line = line[:-1]
            event = self._process_line(line)
            if event is not None:
                events.append(event)
        return events

    def flush(self) -> list[ParsedSSEEvent]:
        """Finish the stream, emitting any un-terminated pending event."""
        tail = self._decoder.decode(b"", final=True)
        self._buffer += tail
        events: list[ParsedSSEEvent] = []
        if self._buffer:
            line = self._buffer.rstrip("\r")
            self._buffer = ""
            event = self._process_line(line)
            if event is not None:
                events.append(event)
        if self.data_lines:
            events.append(self._dispatch())
        return events

    @property
    def pending(self) -> bool:
        """True while data lines are waiting for a blank-line terminator."""
        return bool(self.data_lines)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _process_line(self, line: str) -> ParsedSSEEvent | None:
        if not line.strip():
            if self.data_lines:
                return self._dispatch()
            return None

        if line.startswith(":"):
            return None

        colon = line.find(":")
        if colon == -1:
            _logger.debug("Ignoring malformed SSE line: %r", line[:80])
            return None

        name = line[:colon]
        value = line[colon + 1:]
        if value.startswith(" "):
            value = value[1:]

        if name == "event":
            self.event_name = value
        elif name == "data":
            self.data_lines.append(value)
        elif name == "id":
            self.event_id = value
        elif name == "retry":
            try:
                self.retry = int(value)
            except ValueError:
                _logger.debug("Ignoring non-numeric SSE retry: %r", value)
        return None

    def _dispatch(self) -> ParsedSSEEvent:
        event = ParsedSSEEvent(
            data="\n".join(self.data_lines),
            event=self.event_name,
            id=self.event_id,
        )
        self.event_name = None
        self.data_lines = []
        self.event_id = None
        return event


async def parse_sse(
    stream: AsyncIterable[bytes],
    on_done: Callable[[], None] | None = None,
    on_error: Callable[[Exception], None] | None = None,
) -> AsyncGenerator[ParsedSSEEvent, None]:
    """Decode *stream* into ``ParsedSSEEvent`` objects.

    Read or decode failures go to *on_error* when given and otherwise raise
    ``StreamDecodeError``.  The stream is closed (best effort) and *on_done*
    is called exactly once however the generator ends.
    """
    decoder = SSEDecoder()
    try:
        try:
            async for chunk in stream:
                for event in decoder.feed(chunk):
                    yield event
            for event in decoder.flush():
                yield event
        except _READ_ERRORS as e:
            _logger.debug("SSE stream failed: %s", e)
            if on_error is None:
                raise StreamDecodeError(
                    "Failed to process SSE stream", error_body=str(e),
                ) from e
            on_error(e)
    finally:
        await _release(stream)
        if on_done is not None:
            on_done()


async def _release(stream: AsyncIterable[bytes]) -> None:
    """Close *stream* if it supports it, never raising."""
    aclose = getattr(stream, "aclose", None)
    if aclose is None:
        return
    try:
        await aclose()
    except Exception as e:
        _logger.debug("Ignoring error while closing SSE stream: %s", e)
