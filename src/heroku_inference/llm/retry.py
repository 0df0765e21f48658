"""Bounded retry with backoff for outbound inference requests.

Retry configuration mirrors the streaming client: 429 and 5xx responses,
timeouts and transport errors are retried with a growing delay; any other
4xx stops immediately.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import httpx

from heroku_inference.errors import (
    InferenceAPIError,
    RetriesExhaustedError,
    error_for_status,
)
from heroku_inference.types import AttemptState, Outcome, RetryState

_logger = logging.getLogger(__name__)

# Retry configuration defaults
_MAX_RETRIES = 2
_BACKOFF_BASE = 1.0  # seconds -- exponential: 1, 2, 4, 8
_BACKOFF_MAX = 8.0
_JITTER = 0.1


@dataclass
class InferenceRequest:
    """One logical outbound request."""

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: dict[str, Any] | None = None
    timeout_ms: int | None = None


@dataclass
class RetryPolicy:
    """How many times to try, and how long to wait in between."""

    max_retries: int = _MAX_RETRIES
    base_delay: float = _BACKOFF_BASE
    max_delay: float = _BACKOFF_MAX
    jitter: float = _JITTER

    @property
    def max_attempts(self) -> int:
        return max(0, self.max_retries) + 1

    def backoff(self, attempt: int) -> float:
        """Delay after the *attempt*-th failure, without jitter."""
        exponent = max(0, attempt - 1)
        return min(self.base_delay * (2 ** exponent), self.max_delay)

    def delay_for(self, attempt: int) -> float:
        if self.jitter <= 0:
            return self.backoff(attempt)
        return self.backoff(attempt) + random.uniform(0, self.jitter)


def classify_status(status_code: int) -> Outcome:
    if 200 <= status_code < 300:
        return Outcome.SUCCESS
    if status_code == 429 or 500 <= status_code < 600:
        return Outcome.RETRYABLE
    return Outcome.FATAL


def _error_body(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text


def _error_message(status_code: int, body: Any, reason: str) -> str:
    detail = ""
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            detail = error.get("message", "")
        elif isinstance(error, str):
            detail = error
        detail = detail or body.get("message", "") or body.get("detail", "")
    elif isinstance(body, str):
        detail = body[:200]
    return (
        f"Inference API request failed with status {status_code}: "
        f"{detail or reason}"
    )


async def _read_error(resp: httpx.Response) -> InferenceAPIError:
    """Read and close a non-2xx response, returning its typed error."""
    try:
        await resp.aread()
    finally:
        await resp.aclose()
    body = _error_body(resp)
    exc_cls = error_for_status(resp.status_code)
    return exc_cls(
        _error_message(resp.status_code, body, resp.reason_phrase),
        status_code=resp.status_code,
        error_body=body,
    )


class RequestExecutor:
    """Execute an ``InferenceRequest`` with classification and retries.

    Usage::

        executor = RequestExecutor(httpx.AsyncClient(), RetryPolicy())
        resp = await executor.send(InferenceRequest("POST", url, body={...}))
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self.last_state: RetryState | None = None

    async def send(
        self, request: InferenceRequest, *, stream: bool = False,
    ) -> httpx.Response:
        """Return the first successful response.

        With ``stream=True`` the body is left unread; the caller must close
        the response.
        """
        state = RetryState()
        self.last_state = state
        max_attempts = self.policy.max_attempts
        last_status: int | None = None
        last_body: Any = None

        while state.attempts < max_attempts:
            state.attempts += 1
            state.state = AttemptState.ATTEMPTING
            try:
                resp = await self._attempt(request, stream)
            except (asyncio.TimeoutError, httpx.TimeoutException) as e:
                state.last_error = e
                state.last_outcome = Outcome.RETRYABLE
                _logger.warning(
                    "Inference request timed out (attempt %d/%d)",
                    state.attempts, max_attempts,
                )
            except httpx.TransportError as e:
                state.last_error = e
                state.last_outcome = Outcome.RETRYABLE
                _logger.warning(
                    "Inference request failed (attempt %d/%d): %s",
                    state.attempts, max_attempts, e,
                )
            else:
                outcome = classify_status(resp.status_code)
                state.last_outcome = outcome
                if outcome is Outcome.SUCCESS:
                    state.state = AttemptState.SUCCESS
                    _logger.debug(
                        "%s %s succeeded on attempt %d",
                        request.method, request.url, state.attempts,
                    )
                    return resp

                try:
                    error = await _read_error(resp)
                except httpx.TransportError as e:
                    state.last_error = e
                    state.last_outcome = Outcome.RETRYABLE
                    _logger.warning(
                        "Failed to read %d error body (attempt %d/%d): %s",
                        resp.status_code, state.attempts, max_attempts, e,
                    )
                else:
                    last_status = error.status_code
                    last_body = error.error_body
                    state.last_error = error
                    if outcome is Outcome.FATAL:
                        state.state = AttemptState.FAILED
                        raise error
                    _logger.warning(
                        "Inference API returned %d (attempt %d/%d)",
                        resp.status_code, state.attempts, max_attempts,
                    )

            if state.attempts < max_attempts:
                delay = self.policy.delay_for(state.attempts)
                _logger.debug("Retrying in %.2fs", delay)
                await self._sleep(delay)

        state.state = AttemptState.FAILED
        last_error = state.last_error
        if not isinstance(last_error, InferenceAPIError):
            last_status = None
            last_body = str(last_error) if last_error else None
        raise RetriesExhaustedError(
            f"Inference API request failed after {state.attempts} attempts: "
            f"{_describe(last_error)}",
            attempts=state.attempts,
            status_code=last_status,
            error_body=last_body,
        ) from last_error

    async def _attempt(
        self, request: InferenceRequest, stream: bool,
    ) -> httpx.Response:
        http_request = self._client.build_request(
            request.method,
            request.url,
            headers=request.headers,
            json=request.body,
        )
        send = self._client.send(http_request, stream=stream)
        if request.timeout_ms:
            return await asyncio.wait_for(send, request.timeout_ms / 1000)
        return await send


def _describe(error: Exception | None) -> str:
    if error is None:
        return "unknown error"
    if isinstance(error, asyncio.TimeoutError):
        return "request timed out"
    return str(error) or type(error).__name__
