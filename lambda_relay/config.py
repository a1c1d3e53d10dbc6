"""
lambda-relay configuration system.

Configuration is an explicit RelayConfig value built once at startup and
passed to the proxy and the runner. It is loaded in this priority order:
1. Keyword overrides (CLI flags, tests) (highest priority)
2. Environment variables (LAMBDA_RELAY_*)
3. Values from lambda_relay.config.yaml in current directory
4. Default values

Usage:
    >>> from lambda_relay.config import load_config
    >>> config = load_config(request_queue_url="memory://requests")
    >>> config.wait_seconds
    20

Example lambda_relay.config.yaml:
    queues:
      request: https://sqs.us-east-1.amazonaws.com/123456789012/proxy_lambda_req
      response: https://sqs.us-east-1.amazonaws.com/123456789012/proxy_lambda_resp
    aws:
      region: us-east-1
    runner:
      handler: app.handlers:handler
      wait_seconds: 20
      error_backoff_seconds: 5
    proxy:
      safety_margin_ms: 1000
    codec:
      compression_threshold: 262144
    logging:
      level: INFO
      format: console
"""

import dataclasses
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from lambda_relay.core.exceptions import ConfigurationError
from lambda_relay.queues.base import Queue
from lambda_relay.serialization.codec import (
    DEFAULT_COMPRESSION_THRESHOLD,
    SQS_MAX_MESSAGE_BYTES,
    EnvelopeCodec,
)

CONFIG_FILE_NAME = "lambda_relay.config.yaml"

# env var -> config field; earlier names win over later aliases
_ENV_VARS: dict[str, tuple[str, ...]] = {
    "request_queue_url": ("LAMBDA_RELAY_REQ_QUEUE_URL", "PROXY_LAMBDA_REQ_QUEUE_URL"),
    "response_queue_url": ("LAMBDA_RELAY_RESP_QUEUE_URL", "PROXY_LAMBDA_RESP_QUEUE_URL"),
    "region": ("LAMBDA_RELAY_REGION", "AWS_REGION", "AWS_DEFAULT_REGION"),
    "endpoint_url": ("LAMBDA_RELAY_ENDPOINT_URL",),
    "handler": ("LAMBDA_RELAY_HANDLER",),
    "wait_seconds": ("LAMBDA_RELAY_WAIT_SECONDS",),
    "safety_margin_ms": ("LAMBDA_RELAY_SAFETY_MARGIN_MS",),
    "compression_threshold": ("LAMBDA_RELAY_COMPRESSION_THRESHOLD",),
    "log_level": ("LAMBDA_RELAY_LOG_LEVEL",),
    "log_format": ("LAMBDA_RELAY_LOG_FORMAT",),
}

# yaml section/key -> config field
_YAML_KEYS: dict[tuple[str, str], str] = {
    ("queues", "request"): "request_queue_url",
    ("queues", "response"): "response_queue_url",
    ("aws", "region"): "region",
    ("aws", "endpoint_url"): "endpoint_url",
    ("runner", "handler"): "handler",
    ("runner", "wait_seconds"): "wait_seconds",
    ("runner", "error_backoff_seconds"): "error_backoff_seconds",
    ("runner", "visibility_timeout"): "visibility_timeout",
    ("proxy", "safety_margin_ms"): "safety_margin_ms",
    ("codec", "compression_threshold"): "compression_threshold",
    ("codec", "max_message_bytes"): "max_message_bytes",
    ("logging", "level"): "log_level",
    ("logging", "format"): "log_format",
}

_INT_FIELDS = frozenset(
    {"wait_seconds", "safety_margin_ms", "compression_threshold", "max_message_bytes"}
)
_FLOAT_FIELDS = frozenset({"error_backoff_seconds", "visibility_timeout"})


def _coerce(name: str, value: Any) -> Any:
    if value is None:
        return None
    try:
        if name in _INT_FIELDS:
            return int(value)
        if name in _FLOAT_FIELDS:
            return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid value for {name}: {value!r}") from e
    return value


@dataclass
class RelayConfig:
    """
    Configuration shared by the cloud proxy, the local runner and the CLI.

    Attributes:
        request_queue_url: Request queue URL (required)
        response_queue_url: Response queue URL; None means async mode
        region: AWS region for SQS clients
        endpoint_url: Custom SQS endpoint (e.g. LocalStack)
        handler: Local handler reference, ``"package.module:function"``
        wait_seconds: Long-poll wait of the runner, at most 20
        safety_margin_ms: Time the proxy keeps in reserve before its deadline
        compression_threshold: Envelope size above which it is compressed
        max_message_bytes: Largest message body the queue accepts
        error_backoff_seconds: Pause after a transient receive error
        visibility_timeout: Lease length of in-memory queues
        log_level: Minimum log level
        log_format: "console" or "json"
    """

    request_queue_url: str | None = None
    response_queue_url: str | None = None
    region: str | None = None
    endpoint_url: str | None = None
    handler: str | None = None
    wait_seconds: int = 20
    safety_margin_ms: int = 1000
    compression_threshold: int = DEFAULT_COMPRESSION_THRESHOLD
    max_message_bytes: int = SQS_MAX_MESSAGE_BYTES
    error_backoff_seconds: float = 5.0
    visibility_timeout: float = 30.0
    log_level: str = "INFO"
    log_format: str = "console"

    @property
    def has_response_queue(self) -> bool:
        return bool(self.response_queue_url)

    def validate(self) -> "RelayConfig":
        """
        Check the configuration is usable.

        Raises:
            ConfigurationError: If the request queue is missing or a value is out of range
        """
        if not self.request_queue_url:
            raise ConfigurationError(
                "No request queue configured. Set LAMBDA_RELAY_REQ_QUEUE_URL "
                f"or queues.request in {CONFIG_FILE_NAME}"
            )
        if not 0 <= self.wait_seconds <= 20:
            raise ConfigurationError(
                f"wait_seconds must be between 0 and 20, got {self.wait_seconds}"
            )
        if self.safety_margin_ms < 0:
            raise ConfigurationError("safety_margin_ms must not be negative")
        if self.compression_threshold <= 0:
            raise ConfigurationError("compression_threshold must be positive")
        if self.log_format not in ("console", "json"):
            raise ConfigurationError(
                f"log_format must be 'console' or 'json', got {self.log_format!r}"
            )
        return self

    def replace(self, **overrides: Any) -> "RelayConfig":
        """
        Return a copy with the given fields replaced. None values are ignored.

        Raises:
            ValueError: If an override does not name a config field
        """
        valid_keys = [f.name for f in dataclasses.fields(self)]
        changes = {}
        for key, value in overrides.items():
            if key not in valid_keys:
                raise ValueError(
                    f"Unknown config option: {key}. Valid options: {', '.join(valid_keys)}"
                )
            if value is not None:
                changes[key] = _coerce(key, value)
        return dataclasses.replace(self, **changes)

    def codec(self) -> EnvelopeCodec:
        """Create the envelope codec for these thresholds."""
        return EnvelopeCodec(
            threshold_bytes=self.compression_threshold,
            max_message_bytes=self.max_message_bytes,
        )

    def request_queue(self, client: Any = None) -> Queue:
        """Create the request queue."""
        from lambda_relay.queues.config import create_queue

        self.validate()
        return create_queue(
            self.request_queue_url,
            region=self.region,
            endpoint_url=self.endpoint_url,
            client=client,
            visibility_timeout=self.visibility_timeout,
        )

    def response_queue(self, client: Any = None) -> Queue | None:
        """Create the response queue, or None in async mode."""
        from lambda_relay.queues.config import create_queue

        if not self.response_queue_url:
            return None
        return create_queue(
            self.response_queue_url,
            region=self.region,
            endpoint_url=self.endpoint_url,
            client=client,
            visibility_timeout=self.visibility_timeout,
        )

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        base: "RelayConfig | None" = None,
    ) -> "RelayConfig":
        """
        Create a config from environment variables on top of ``base``.

        Empty variables are treated as unset.
        """
        return (base or cls()).replace(**_values_from_env(environ))

    @classmethod
    def from_yaml(cls, path: str | Path | None = None) -> "RelayConfig":
        """
        Create a config from a YAML file.

        Args:
            path: Config file; defaults to lambda_relay.config.yaml in the
                current directory. A missing default file yields defaults.

        Raises:
            ConfigurationError: If the file cannot be parsed, or an explicit path is missing
        """
        return cls().replace(**_values_from_yaml(path))


def _values_from_env(environ: Mapping[str, str] | None) -> dict[str, Any]:
    env = os.environ if environ is None else environ
    values = {}
    for name, variables in _ENV_VARS.items():
        for variable in variables:
            value = env.get(variable)
            if value:
                values[name] = value
                break
    return values


def _load_yaml_config(path: str | Path | None = None) -> dict[str, Any]:
    """
    Load configuration from a YAML file.

    Returns:
        Configuration dictionary, empty dict if the default file is not found
    """
    explicit = path is not None
    config_path = Path(path) if explicit else Path.cwd() / CONFIG_FILE_NAME
    if not config_path.exists():
        if explicit:
            raise ConfigurationError(f"Config file not found: {config_path}")
        return {}

    try:
        with open(config_path) as f:
            config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(config, dict):
        raise ConfigurationError(f"{config_path} must contain a mapping")
    return config


def _values_from_yaml(path: str | Path | None) -> dict[str, Any]:
    yaml_config = _load_yaml_config(path)
    values = {}
    for (section, key), name in _YAML_KEYS.items():
        section_config = yaml_config.get(section) or {}
        if isinstance(section_config, dict) and section_config.get(key) is not None:
            values[name] = section_config[key]
    return values


def load_config(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
    **overrides: Any,
) -> RelayConfig:
    """
    Load the configuration from every source.

    Args:
        path: YAML config file, defaults to lambda_relay.config.yaml in cwd
        environ: Environment mapping, defaults to os.environ
        **overrides: Highest-priority values; None values are ignored

    Returns:
        RelayConfig (not validated, so commands that need no request queue still work)
    """
    config = RelayConfig.from_yaml(path)
    config = RelayConfig.from_env(environ, base=config)
    return config.replace(**overrides)
