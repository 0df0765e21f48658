"""Configuration for heroku-inference.

Config discovery (first match wins):
  1. explicit ``path`` argument (``--config`` flag)
  2. ``./heroku_inference.yaml``
  3. ``~/.config/heroku-inference/config.yaml``
  4. Built-in defaults

Environment variables ``INFERENCE_KEY``, ``INFERENCE_URL`` and
``INFERENCE_MODEL_ID`` fill in whatever the file leaves unset.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from heroku_inference.errors import ConfigError
from heroku_inference.llm.retry import RetryPolicy

_logger = logging.getLogger(__name__)

DEFAULT_INFERENCE_URL = "https://us.inference.heroku.com"
CHAT_ENDPOINT = "/v1/chat/completions"
EMBEDDINGS_ENDPOINT = "/v1/embeddings"

ENV_API_KEY = "INFERENCE_KEY"
ENV_API_URL = "INFERENCE_URL"
ENV_MODEL_ID = "INFERENCE_MODEL_ID"


# ---------------------------------------------------------------------------
# Config data structures
# ---------------------------------------------------------------------------

@dataclass
class InferenceConfig:
    """Connection and request defaults for one inference endpoint."""

    api_key: str = ""
    # Empty means unset: filled from INFERENCE_URL, else DEFAULT_INFERENCE_URL
    url: str = ""
    model: str = ""

    # Request defaults (passed through to the service untouched)
    temperature: float = 1.0
    top_p: float = 0.999
    max_tokens: int | None = None
    stop: list[str] | None = None
    streaming: bool = False
    extra_params: dict[str, Any] = field(default_factory=dict)

    # Transport
    max_retries: int = 2
    timeout_ms: int | None = None
    backoff_base: float = 1.0
    backoff_max: float = 8.0

    # Wrap top-level JSON arrays in tool results as {"result": [...]}
    wrap_array_tool_results: bool = True

    def endpoint(self, path: str) -> str:
        base = self.url or DEFAULT_INFERENCE_URL
        return f"{base.rstrip('/')}{path}"

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay=self.backoff_base,
            max_delay=self.backoff_max,
        )

    def validate(self) -> None:
        """Raise ``ConfigError`` if the config cannot reach the service."""
        if not self.api_key:
            raise ConfigError(
                "Inference API key not found. Set the "
                f"{ENV_API_KEY} environment variable or pass api_key.",
            )
        if not self.model:
            raise ConfigError(
                "Inference model ID not found. Set the "
                f"{ENV_MODEL_ID} environment variable or pass model.",
            )


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

_SEARCH_PATHS = [
    Path("./heroku_inference.yaml"),
    Path.home() / ".config" / "heroku-inference" / "config.yaml",
]


def apply_env(config: InferenceConfig) -> InferenceConfig:
    """Fill unset credentials, URL and model from the environment."""
    if not config.api_key:
        config.api_key = os.environ.get(ENV_API_KEY, "")
    if not config.url:
        config.url = os.environ.get(ENV_API_URL) or DEFAULT_INFERENCE_URL
    if not config.model:
        config.model = os.environ.get(ENV_MODEL_ID, "")
    return config


def _parse_config(raw: dict[str, Any]) -> InferenceConfig:
    known = InferenceConfig.__dataclass_fields__
    values: dict[str, Any] = {}
    for k, v in raw.items():
        if k not in known:
            _logger.warning("Ignoring unknown config key: %s", k)
            continue
        if v is not None:
            values[k] = v
    try:
        return InferenceConfig(**values)
    except TypeError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def load_config(path: str | Path | None = None, **overrides: Any) -> InferenceConfig:
    """Load configuration from YAML, then overrides, then the environment.

    Parameters
    ----------
    path:
        Explicit config path.  If *None*, search default locations.
    overrides:
        Field values that take precedence over the file (``None`` is ignored).

    Returns
    -------
    InferenceConfig
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            _logger.warning("Config file not found: %s, using defaults", path)
            config_path = None
    else:
        for candidate in _SEARCH_PATHS:
            if candidate.exists():
                config_path = candidate
                break

    raw: dict[str, Any] = {}
    if config_path is None:
        _logger.info("No config file found, using defaults")
    else:
        _logger.info("Loading config from %s", config_path)
        with open(config_path) as f:
            try:
                raw = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e
        if not isinstance(raw, dict):
            raise ConfigError(f"Config file {config_path} must contain a mapping")

    raw.update({k: v for k, v in overrides.items() if v is not None})
    return apply_env(_parse_config(raw))
