"""
Exception hierarchy for lambda-relay.

Errors fall into two groups:
- Job-scoped errors (CodecError, HandlerError) are contained to a single
  queued job and never stop the local runner.
- Transport errors (QueueError, QueueAccessError) describe the queues
  themselves. Access errors on the request queue are fatal; on the response
  queue they mean "no response expected".
"""


class RelayError(Exception):
    """Base exception for all lambda-relay errors."""

    pass


class ConfigurationError(RelayError):
    """Raised when the relay is missing required configuration."""

    pass


class CodecError(RelayError):
    """
    Raised when an envelope cannot be encoded or decoded.

    Malformed envelopes are not retryable without manual intervention.
    """

    pass


class NotAnEnvelopeError(CodecError):
    """
    Raised when a message body is not an envelope at all.

    An operator may push arbitrary text to the response queue to cancel a
    waiting proxy, so this is distinguished from a corrupt envelope.
    """

    pass


class MessageTooLargeError(CodecError):
    """
    Raised when an encoded envelope does not fit in a queue message
    even after compression.

    Attributes:
        size: Encoded size in bytes
        limit: Maximum message size in bytes
    """

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(
            f"Encoded envelope is {size} bytes, the queue accepts at most {limit} bytes"
        )
        self.size = size
        self.limit = limit


class QueueError(RelayError):
    """
    Raised when a queue operation fails for a transient reason
    (throttling, network, stale receipt handle).

    Attributes:
        queue_url: URL of the queue that failed, if known
    """

    def __init__(self, message: str, queue_url: str | None = None) -> None:
        super().__init__(message)
        self.queue_url = queue_url


class QueueAccessError(QueueError):
    """Raised when a queue does not exist or the caller is not allowed to use it."""

    pass


class ResponseTimeoutError(RelayError):
    """
    Raised to the cloud caller when no response arrived within the
    invocation's time budget.

    Attributes:
        correlation_id: Correlation id of the forwarded request
        waited_seconds: How long the proxy waited
    """

    def __init__(self, correlation_id: str, waited_seconds: float) -> None:
        super().__init__(
            f"No response for request {correlation_id} after {waited_seconds:.1f}s"
        )
        self.correlation_id = correlation_id
        self.waited_seconds = waited_seconds


class DeliveryError(RelayError):
    """Raised when a response arrived but could not be decoded."""

    pass


class HandlerError(RelayError):
    """
    Local handler failure.

    Never sent to the cloud side. The request message stays on the queue
    and can be retried once the handler is fixed.
    """

    def __init__(self, message: str, error_type: str | None = None) -> None:
        super().__init__(message)
        self.error_type = error_type


class HandlerLoadError(ConfigurationError):
    """Raised when a handler reference cannot be imported."""

    pass
