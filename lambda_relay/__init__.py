"""
lambda-relay - Run AWS Lambda handlers on your own machine

A thin proxy deployed in place of the real function forwards each
invocation through an SQS request queue to a local runner, which calls the
real handler and sends the result back through an optional response queue.

Quick Start:
    >>> # Cloud side: set the function handler to
    >>> #   lambda_relay.proxy.lambda_function.handler
    >>>
    >>> # Local side:
    >>> from lambda_relay import LocalRunner, load_config
    >>>
    >>> def handler(event, context):
    >>>     return {"echo": event}
    >>>
    >>> runner = LocalRunner.from_config(load_config(), handler)
    >>> runner.run()
"""

__version__ = "0.1.0"

# Configuration
from lambda_relay.config import RelayConfig, load_config

# Data model
from lambda_relay.core.envelope import Envelope, InvocationContext, LocalLambdaContext

# Exceptions
from lambda_relay.core.exceptions import (
    CodecError,
    ConfigurationError,
    DeliveryError,
    HandlerError,
    HandlerLoadError,
    MessageTooLargeError,
    NotAnEnvelopeError,
    QueueAccessError,
    QueueError,
    RelayError,
    ResponseTimeoutError,
)

# Logging
from lambda_relay.observability.logging import configure_logging, get_logger

# Cloud side
from lambda_relay.proxy.proxy import CloudProxy, ProxyResult, ProxyState, ProxyStatus

# Queues
from lambda_relay.queues import InMemoryQueue, Queue, QueueMessage, SqsQueue, create_queue

# Local side
from lambda_relay.runtime import JobOutcome, LocalRunner, RunnerState, RunSummary, load_handler

# Serialization
from lambda_relay.serialization import EnvelopeCodec

__all__ = [
    "__version__",
    # Configuration
    "RelayConfig",
    "load_config",
    # Data model
    "Envelope",
    "InvocationContext",
    "LocalLambdaContext",
    # Exceptions
    "RelayError",
    "ConfigurationError",
    "HandlerLoadError",
    "CodecError",
    "NotAnEnvelopeError",
    "MessageTooLargeError",
    "QueueError",
    "QueueAccessError",
    "ResponseTimeoutError",
    "DeliveryError",
    "HandlerError",
    # Logging
    "configure_logging",
    "get_logger",
    # Cloud side
    "CloudProxy",
    "ProxyResult",
    "ProxyState",
    "ProxyStatus",
    # Queues
    "Queue",
    "QueueMessage",
    "InMemoryQueue",
    "SqsQueue",
    "create_queue",
    # Local side
    "LocalRunner",
    "RunnerState",
    "RunSummary",
    "JobOutcome",
    "load_handler",
    # Serialization
    "EnvelopeCodec",
]
