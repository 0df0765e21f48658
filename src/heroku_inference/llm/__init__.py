"""Streaming and retry layers for heroku-inference.

The client lives in ``heroku_inference.llm.client``; ``heroku_inference.config``
imports this package, so it is not re-exported here.
"""

from heroku_inference.llm.aggregator import (
    StreamAggregator,
    ToolCallReassembler,
    classify_event,
    parse_arguments,
)
from heroku_inference.llm.retry import (
    InferenceRequest,
    RequestExecutor,
    RetryPolicy,
    classify_status,
)
from heroku_inference.llm.sse import SSEDecoder, parse_sse

__all__ = [
    "InferenceRequest",
    "RequestExecutor",
    "RetryPolicy",
    "SSEDecoder",
    "StreamAggregator",
    "ToolCallReassembler",
    "classify_event",
    "classify_status",
    "parse_arguments",
    "parse_sse",
]
