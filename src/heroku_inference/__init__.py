"""Async client for Heroku Managed Inference with SSE streaming."""

from heroku_inference.config import InferenceConfig, load_config
from heroku_inference.errors import (
    ConfigError,
    InferenceAPIError,
    InferenceError,
    RetriesExhaustedError,
    StreamDecodeError,
    StreamEventError,
    StreamProtocolError,
)
from heroku_inference.llm.client import AsyncInferenceClient
from heroku_inference.types import ChatMessage, MessageChunk, ToolCall, ToolCallChunk

__version__ = "0.1.0"

__all__ = [
    "AsyncInferenceClient",
    "ChatMessage",
    "ConfigError",
    "InferenceAPIError",
    "InferenceConfig",
    "InferenceError",
    "MessageChunk",
    "RetriesExhaustedError",
    "StreamDecodeError",
    "StreamEventError",
    "StreamProtocolError",
    "ToolCall",
    "ToolCallChunk",
    "load_config",
]
