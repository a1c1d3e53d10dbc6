"""
Core data models and exceptions.
"""

from lambda_relay.core.envelope import (
    Envelope,
    InvocationContext,
    LocalLambdaContext,
    new_correlation_id,
    synthetic_context,
)
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

__all__ = [
    "Envelope",
    "InvocationContext",
    "LocalLambdaContext",
    "new_correlation_id",
    "synthetic_context",
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
]
