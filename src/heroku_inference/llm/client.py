"""Async client for the inference chat-completions and embeddings APIs.

Uses ``httpx.AsyncClient`` and exposes ``async def chat()``,
``async def chat_stream()`` and ``async def embed()``.  Every request goes
through the same ``RequestExecutor`` for retries and timeouts.
"""

from __future__ import annotations

import logging
import time
from contextlib import aclosing
from typing import Any, AsyncGenerator

import httpx

from heroku_inference.config import CHAT_ENDPOINT, EMBEDDINGS_ENDPOINT, InferenceConfig
from heroku_inference.errors import InferenceAPIError
from heroku_inference.types import ChatMessage, MessageChunk, ToolCall

from .aggregator import StreamAggregator, parse_arguments
from .convert import (
    build_chat_payload,
    normalize_tool_choice,
    to_wire_messages,
    to_wire_tools,
)
from .retry import InferenceRequest, RequestExecutor
from .sse import parse_sse

_logger = logging.getLogger(__name__)


class AsyncInferenceClient:
    """Async client for an OpenAI-compatible inference service."""

    def __init__(
        self,
        config: InferenceConfig,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        config.validate()
        self.config = config
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            # Per-attempt timeouts are enforced by the executor
            timeout=httpx.Timeout(None, connect=30),
        )
        self._executor = RequestExecutor(self._client, config.retry_policy())
        self._last_message: ChatMessage | None = None

    # ------------------------------------------------------------------
    # Request construction
    # ------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

    def _request(self, path: str, body: dict[str, Any]) -> InferenceRequest:
        return InferenceRequest(
            method="POST",
            url=self.config.endpoint(path),
            headers=self._headers(),
            body=body,
            timeout_ms=self.config.timeout_ms,
        )

    def _chat_body(
        self,
        messages: list[ChatMessage | dict[str, Any]],
        stream: bool,
        tools: list[dict[str, Any]] | None,
        tool_choice: str | dict[str, Any] | None,
        params: dict[str, Any],
    ) -> dict[str, Any]:
        cfg = self.config
        model = params.pop("model", None) or cfg.model
        params.pop("stream", None)
        wire_tools = to_wire_tools(tools)
        if wire_tools and tool_choice is None:
            tool_choice = "auto"
        defaults: dict[str, Any] = {
            "temperature": cfg.temperature,
            "top_p": cfg.top_p,
            "max_tokens": cfg.max_tokens,
            "stop": cfg.stop,
            "tools": wire_tools or None,
            "tool_choice": normalize_tool_choice(tool_choice),
        }
        defaults.update(cfg.extra_params)
        defaults.update(params)
        return build_chat_payload(
            model,
            to_wire_messages(messages, cfg.wrap_array_tool_results),
            stream,
            **defaults,
        )

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    async def chat(
        self,
        messages: list[ChatMessage | dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        tool_choice: str | dict[str, Any] | None = None,
        **params: Any,
    ) -> ChatMessage:
        """Send a chat completion request and return the assistant message.

        When ``config.streaming`` is set the reply is streamed and
        aggregated instead.
        """
        if self.config.streaming:
            async for _ in self.chat_stream(
                messages, tools=tools, tool_choice=tool_choice, **params,
            ):
                pass
            if self._last_message is None:
                raise InferenceAPIError("Inference stream ended without a message")
            return self._last_message

        body = self._chat_body(messages, False, tools, tool_choice, params)
        start = time.monotonic()
        resp = await self._executor.send(self._request(CHAT_ENDPOINT, body))
        try:
            data = resp.json()
        except ValueError as e:
            raise InferenceAPIError(
                "Inference API returned invalid JSON",
                status_code=resp.status_code,
                error_body=resp.text,
            ) from e
        latency = (time.monotonic() - start) * 1000
        _logger.debug("Chat completion in %.0fms", latency)

        message = _parse_completion(data)
        self._last_message = message
        return message

    async def chat_stream(
        self,
        messages: list[ChatMessage | dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        tool_choice: str | dict[str, Any] | None = None,
        **params: Any,
    ) -> AsyncGenerator[MessageChunk, None]:
        """Streaming chat completion.  Yields ``MessageChunk`` objects.

        After exhaustion, ``last_message`` holds the aggregated reply.
        """
        self._last_message = None
        body = self._chat_body(messages, True, tools, tool_choice, params)
        resp = await self._executor.send(
            self._request(CHAT_ENDPOINT, body), stream=True,
        )
        aggregator = StreamAggregator()
        try:
            async with aclosing(parse_sse(resp.aiter_bytes())) as events, \
                    aclosing(aggregator.aggregate(events)) as chunks:
                async for chunk in chunks:
                    yield chunk
        finally:
            await resp.aclose()

        self._last_message = aggregator.result
        if aggregator.tool_calls.unmerged:
            _logger.debug(
                "%d tool-call fragments without id were not merged",
                aggregator.tool_calls.unmerged,
            )

    # ------------------------------------------------------------------
    # Embeddings
    # ------------------------------------------------------------------

    async def embed(
        self,
        texts: list[str],
        input_type: str | None = None,
        **params: Any,
    ) -> list[list[float]]:
        """Embed *texts*; returns one vector per input, in input order."""
        body: dict[str, Any] = {
            "model": params.pop("model", None) or self.config.model,
            "input": texts,
            "input_type": input_type,
        }
        body.update(params)
        body = {k: v for k, v in body.items() if v is not None}
        resp = await self._executor.send(self._request(EMBEDDINGS_ENDPOINT, body))
        try:
            data = resp.json()
        except ValueError as e:
            raise InferenceAPIError(
                "Inference API returned invalid JSON",
                status_code=resp.status_code,
                error_body=resp.text,
            ) from e
        items = data.get("data") if isinstance(data, dict) else None
        if not isinstance(items, list) or not all(
            isinstance(item, dict) and "embedding" in item for item in items
        ):
            raise _malformed("expected a data list of embedding objects", data)
        items = sorted(items, key=lambda d: d.get("index", 0))
        return [item["embedding"] for item in items]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @property
    def last_message(self) -> ChatMessage | None:
        """The final message from the last ``chat()``/``chat_stream()`` call."""
        return self._last_message

    async def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> AsyncInferenceClient:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()


def _malformed(reason: str, data: Any) -> InferenceAPIError:
    return InferenceAPIError(
        f"Malformed inference API response: {reason}", error_body=data,
    )


def _parse_completion(data: Any) -> ChatMessage:
    if not isinstance(data, dict):
        raise _malformed("body is not a JSON object", data)
    choices = data.get("choices") or []
    if not isinstance(choices, list):
        raise _malformed("choices is not a list", data)
    if not choices:
        raise InferenceAPIError(
            "Inference API response has no choices", error_body=data,
        )
    choice = choices[0]
    if not isinstance(choice, dict):
        raise _malformed("choice is not a JSON object", data)
    message = choice.get("message") or {}
    if not isinstance(message, dict):
        raise _malformed("message is not a JSON object", data)
    content = message.get("content") or ""
    if not isinstance(content, str):
        raise _malformed("message content is not a string", data)
    raw_calls = message.get("tool_calls") or []
    if not isinstance(raw_calls, list):
        raise _malformed("tool_calls is not a list", data)

    tool_calls: list[ToolCall] = []
    for tc in raw_calls:
        if not isinstance(tc, dict):
            raise _malformed("tool call entry is not a JSON object", data)
        func = tc.get("function") or {}
        if not isinstance(func, dict):
            raise _malformed("tool call function is not a JSON object", data)
        args, error = parse_arguments(func.get("arguments") or "{}")
        if error is not None:
            _logger.warning(
                "Tool call %s has malformed arguments: %s", tc.get("id"), error,
            )
        tool_calls.append(
            ToolCall(id=tc.get("id", ""), name=func.get("name", ""), args=args),
        )

    return ChatMessage(
        content=content,
        tool_calls=tool_calls or None,
        finish_reason=choice.get("finish_reason"),
        usage=data.get("usage") or {},
    )
