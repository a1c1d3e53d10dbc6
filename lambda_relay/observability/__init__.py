"""
Observability for lambda-relay.

Logging:
    - configure_logging(): Configure loguru-based logging
    - configure_logging_from_env(): Configure from environment variables
    - get_logger(): Get a logger instance
    - bind_job_context(): Bind job context to logger
    - job_logging_context(): Context manager for job-scoped logging
"""

from lambda_relay.observability.logging import (
    bind_job_context,
    configure_logging,
    configure_logging_from_env,
    get_logger,
    job_logging_context,
)

__all__ = [
    "configure_logging",
    "configure_logging_from_env",
    "get_logger",
    "bind_job_context",
    "job_logging_context",
]
