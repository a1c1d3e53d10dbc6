"""
Loguru logging configuration for lambda-relay.

Both sides of the relay log through loguru. Every record emitted while a job
is being handled carries the job's correlation id, so the cloud proxy's
CloudWatch logs and the local runner's console can be matched up.

Features:
- Environment variable configuration (the proxy runs inside Lambda)
- Standard JSON schema compatible with CloudWatch/ELK/Loki/Datadog
- Context manager for job-scoped logging
"""

import json
import os
import sys
from collections.abc import Generator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

from loguru import logger

# extra keys rendered as job context, in display order
CONTEXT_KEYS = ("correlation_id", "request_id", "message_id", "receive_count")


def configure_logging(
    level: str = "INFO",
    log_file: str | None = None,
    json_logs: bool = False,
    show_context: bool = True,
) -> None:
    """
    Configure lambda-relay logging with loguru.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for log output
        json_logs: If True, output one JSON object per line
        show_context: If True, include job context in log messages

    Examples:
        # Local runner in a terminal
        configure_logging()

        # Proxy inside Lambda, picked up by CloudWatch
        configure_logging(level="INFO", json_logs=True)

        # Debug session with a log file
        configure_logging(level="DEBUG", log_file="relay.log")
    """
    logger.remove()

    if json_logs:
        logger.add(
            sys.stderr,
            format="{extra[_json]}",
            level=level,
            colorize=False,
            filter=_create_json_filter(show_context),
        )
    else:
        console_format = (
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<level>{message}</level>"
        )

        def format_with_context(record: dict[str, Any]) -> bool:
            """Render the job context as a trailing key=value list."""
            extra_str = ""
            if show_context:
                context_parts = [
                    f"{key}={record['extra'][key]}"
                    for key in CONTEXT_KEYS
                    if record["extra"].get(key) is not None
                ]
                if context_parts:
                    extra_str = " | " + " ".join(context_parts)
            record["extra"]["_context"] = extra_str
            return True

        logger.add(
            sys.stderr,
            format=console_format + "{extra[_context]}",
            level=level,
            colorize=True,
            filter=format_with_context,  # type: ignore[arg-type]
        )

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        if json_logs:
            logger.add(
                log_file,
                format="{extra[_json]}",
                level=level,
                rotation="100 MB",
                retention="30 days",
                compression="gz",
                filter=_create_json_filter(show_context),
            )
        else:
            logger.add(
                log_file,
                format=(
                    "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                    "{level: <8} | "
                    "{name}:{function}:{line} | "
                    "{message} | "
                    "{extra}"
                ),
                level=level,
                rotation="100 MB",
                retention="30 days",
                compression="gz",
            )

    logger.debug(f"lambda-relay logging configured at level {level}")


def _create_json_filter(show_context: bool) -> Any:
    """Create a filter that renders the record as JSON into extra[_json]."""

    def json_filter(record: dict[str, Any]) -> bool:
        record["extra"]["_json"] = _format_for_json(record, show_context)
        return True

    return json_filter


def _format_for_json(record: dict[str, Any], show_context: bool = True) -> str:
    """Format a log record as a single-line JSON object.

    Args:
        record: Loguru log record.
        show_context: Whether to include job context fields.

    Returns:
        JSON string representation of the log.
    """
    context = {}
    extra = {}

    for key, value in record["extra"].items():
        if key.startswith("_"):
            continue
        if key in CONTEXT_KEYS:
            context[key] = value
        else:
            extra[key] = _safe_serialize(value)

    log_obj: dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "logger": record["name"],
        "function": record["function"],
        "line": record["line"],
    }

    if show_context and context:
        log_obj["context"] = context

    if extra:
        log_obj["extra"] = extra

    if record["exception"] is not None:
        log_obj["exception"] = {
            "type": record["exception"].type.__name__ if record["exception"].type else None,
            "value": str(record["exception"].value) if record["exception"].value else None,
        }

    return json.dumps(log_obj, default=str)


def _safe_serialize(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool, type(None))):
        return value
    if isinstance(value, (list, tuple)):
        return [_safe_serialize(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _safe_serialize(v) for k, v in value.items()}
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def configure_logging_from_env() -> None:
    """Configure logging from environment variables.

    Environment variables:
        LAMBDA_RELAY_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        LAMBDA_RELAY_LOG_FORMAT: Log format ("json" or "console")
        LAMBDA_RELAY_LOG_FILE: Optional file path for log output
        LAMBDA_RELAY_LOG_CONTEXT: Whether to show job context ("true" or "false")

    Examples:
        # Lambda function configuration
        LAMBDA_RELAY_LOG_LEVEL=INFO
        LAMBDA_RELAY_LOG_FORMAT=json
    """
    level = os.getenv("LAMBDA_RELAY_LOG_LEVEL", "INFO").upper()
    format_type = os.getenv("LAMBDA_RELAY_LOG_FORMAT", "console").lower()
    log_file = os.getenv("LAMBDA_RELAY_LOG_FILE")
    show_context_str = os.getenv("LAMBDA_RELAY_LOG_CONTEXT", "true").lower()
    show_context = show_context_str in ("true", "1", "yes")

    configure_logging(
        level=level,
        log_file=log_file,
        json_logs=(format_type == "json"),
        show_context=show_context,
    )


def get_logger(name: str | None = None) -> Any:
    """
    Get a logger instance.

    Args:
        name: Optional logger name (for filtering)

    Returns:
        Configured logger instance

    Examples:
        log = get_logger(__name__)
        log.info("Polling request queue")
    """
    if name:
        return logger.bind(module=name)
    return logger


def bind_job_context(correlation_id: str | None, request_id: str | None = None) -> Any:
    """
    Bind job context to logger.

    Returns:
        Logger with correlation_id and request_id bound
    """
    return logger.bind(correlation_id=correlation_id, request_id=request_id)


@contextmanager
def job_logging_context(
    correlation_id: str | None,
    request_id: str | None = None,
    receive_count: int | None = None,
    message_id: str | None = None,
) -> Generator[None, None, None]:
    """Context manager to bind job context to all logs within scope.

    Records emitted by the proxy or the runner while a job is handled,
    including those from library code, carry the job metadata.

    Args:
        correlation_id: Correlation id of the job
        request_id: Lambda request id of the originating invocation
        receive_count: How many times the request message was delivered
        message_id: Queue message id

    Example:
        with job_logging_context("3f2a...", request_id="c0ffee"):
            logger.info("Invoking handler")  # Includes correlation_id
    """
    with logger.contextualize(
        correlation_id=correlation_id,
        request_id=request_id,
        receive_count=receive_count,
        message_id=message_id,
    ):
        yield


# Default configuration on import, only while loguru's own stderr sink is installed
if 0 in logger._core.handlers:  # type: ignore[attr-defined]
    if os.getenv("LAMBDA_RELAY_LOG_LEVEL") or os.getenv("LAMBDA_RELAY_LOG_FORMAT"):
        configure_logging_from_env()
    else:
        configure_logging(level="INFO", show_context=True)
