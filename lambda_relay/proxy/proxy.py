"""
Cloud proxy.

Runs inside the cloud invocation in place of the real handler. It forwards
the payload and invocation context to the request queue and, when a response
queue is configured, waits for the local runner's answer until the
invocation's time budget runs out.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from loguru import logger

from lambda_relay.core.envelope import LAMBDA_MAX_TIMEOUT_MS, Envelope, InvocationContext
from lambda_relay.core.exceptions import (
    CodecError,
    DeliveryError,
    NotAnEnvelopeError,
    QueueAccessError,
    QueueError,
    ResponseTimeoutError,
)
from lambda_relay.observability.logging import job_logging_context
from lambda_relay.queues.base import Queue, QueueMessage
from lambda_relay.queues.sqs import MAX_WAIT_SECONDS
from lambda_relay.serialization.codec import EnvelopeCodec


class ProxyState(Enum):
    """Where the proxy is in handling a single invocation."""

    IDLE = "idle"
    FORWARDING = "forwarding"
    WAITING_FOR_RESPONSE = "waiting_for_response"
    COMPLETED = "completed"
    ASYNC_COMPLETED = "async_completed"


class ProxyStatus(Enum):
    """How an invocation ended."""

    COMPLETED = "completed"  # response payload returned
    ASYNC = "async"  # no response queue, nothing to wait for
    TIMEOUT = "timeout"  # budget exhausted, request left on the queue
    CANCELLED = "cancelled"  # operator pushed a non-envelope message
    DELIVERY_ERROR = "delivery_error"  # response arrived but was corrupt


@dataclass
class ProxyResult:
    """Outcome of CloudProxy.invoke()."""

    status: ProxyStatus
    correlation_id: str
    payload: Any = None
    error: Exception | None = None

    @property
    def is_success(self) -> bool:
        return self.status in (ProxyStatus.COMPLETED, ProxyStatus.ASYNC, ProxyStatus.CANCELLED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "correlation_id": self.correlation_id,
            "payload": self.payload,
            "error": str(self.error) if self.error else None,
        }


class CloudProxy:
    """
    Relays one cloud invocation at a time to the local runner.

    Args:
        request_queue: Queue the runner polls for jobs
        response_queue: Queue the runner answers on; None means async mode
        codec: Envelope codec
        safety_margin_ms: Time kept in reserve before the invocation deadline
        clock: Monotonic clock, injectable for tests

    Example:
        >>> proxy = CloudProxy(request_queue, response_queue)
        >>> result = proxy.invoke({"command": "echo"}, InvocationContext.from_lambda_context(ctx))
        >>> result.status
        <ProxyStatus.COMPLETED: 'completed'>
    """

    def __init__(
        self,
        request_queue: Queue,
        response_queue: Queue | None = None,
        *,
        codec: EnvelopeCodec | None = None,
        safety_margin_ms: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.request_queue = request_queue
        self.response_queue = response_queue
        self.codec = codec or EnvelopeCodec()
        self.safety_margin_ms = safety_margin_ms
        self._clock = clock
        self.state = ProxyState.IDLE
        self.stale_discarded = 0

    @classmethod
    def from_config(
        cls,
        config: Any,
        function_arn: str | None = None,
        client: Any = None,
    ) -> "CloudProxy":
        """
        Build a proxy from a RelayConfig.

        Queue URLs missing from the config are derived from the invoked
        function's ARN (``proxy_lambda_req`` / ``proxy_lambda_resp`` in the
        function's account and region).

        Raises:
            ConfigurationError: If no request queue is configured and none can be derived
        """
        from lambda_relay.queues.config import default_queue_urls

        if function_arn and (not config.request_queue_url or not config.response_queue_url):
            default_request, default_response = default_queue_urls(function_arn)
            if not config.request_queue_url:
                logger.debug(
                    "Using the default request queue. "
                    "Set LAMBDA_RELAY_REQ_QUEUE_URL to use a different queue."
                )
            config = config.replace(
                request_queue_url=config.request_queue_url or default_request,
                response_queue_url=config.response_queue_url or default_response,
            )

        return cls(
            config.request_queue(client=client),
            config.response_queue(client=client),
            codec=config.codec(),
            safety_margin_ms=config.safety_margin_ms,
        )

    def invoke(self, payload: Any, context: InvocationContext) -> ProxyResult:
        """
        Forward one invocation and wait for its response.

        Args:
            payload: Event payload received from the cloud platform
            context: Invocation context, including the deadline

        Returns:
            ProxyResult

        Raises:
            QueueError: If the request cannot be sent or the response queue fails
            CodecError: If the request cannot be encoded
        """
        envelope = Envelope(payload=payload, invocation_context=context)
        correlation_id = envelope.correlation_id
        self.state = ProxyState.IDLE

        with job_logging_context(correlation_id, request_id=context.request_id):
            started = self._clock()
            body = self.codec.encode(envelope)

            self.state = ProxyState.FORWARDING
            response_queue = self.response_queue
            if response_queue is not None:
                # clear stale responses left over from timed out invocations
                try:
                    response_queue.purge()
                except QueueAccessError as e:
                    logger.info(
                        f"Response queue is not accessible, not waiting for a response: {e}"
                    )
                    response_queue = None

            message_id = self.request_queue.send(body)
            logger.info(
                f"Forwarded request {message_id} to {self.request_queue.url}"
                f"{' (compressed)' if envelope.is_compressed else ''}"
            )

            if response_queue is None:
                self.state = ProxyState.ASYNC_COMPLETED
                return ProxyResult(status=ProxyStatus.ASYNC, correlation_id=correlation_id)

            self.state = ProxyState.WAITING_FOR_RESPONSE
            # the budget is measured now, after the purge and send
            budget_measured_at = self._clock()
            budget_ms = context.remaining_time_ms()
            if budget_ms is None:
                budget_ms = LAMBDA_MAX_TIMEOUT_MS
            give_up_at = budget_measured_at + max(budget_ms - self.safety_margin_ms, 0) / 1000
            return self._wait_for_response(response_queue, correlation_id, started, give_up_at)

    def _wait_for_response(
        self,
        response_queue: Queue,
        correlation_id: str,
        started: float,
        give_up_at: float,
    ) -> ProxyResult:
        while True:
            remaining = give_up_at - self._clock()
            if remaining <= 0:
                waited = self._clock() - started
                logger.warning(
                    f"No response after {waited:.1f}s, the request stays on the queue"
                )
                self.state = ProxyState.COMPLETED
                return ProxyResult(
                    status=ProxyStatus.TIMEOUT,
                    correlation_id=correlation_id,
                    error=ResponseTimeoutError(correlation_id, waited),
                )

            try:
                message = response_queue.receive(wait_seconds=min(remaining, MAX_WAIT_SECONDS))
            except QueueAccessError as e:
                logger.info(f"Response queue became inaccessible, not waiting: {e}")
                self.state = ProxyState.ASYNC_COMPLETED
                return ProxyResult(status=ProxyStatus.ASYNC, correlation_id=correlation_id)

            if message is None:
                logger.debug("No response yet")
                continue

            result = self._handle_response(response_queue, message, correlation_id)
            if result is not None:
                self.state = ProxyState.COMPLETED
                return result

    def _handle_response(
        self, response_queue: Queue, message: QueueMessage, correlation_id: str
    ) -> ProxyResult | None:
        """Classify a received response; None means keep waiting."""
        try:
            envelope = self.codec.decode(message.body)
        except NotAnEnvelopeError:
            self._discard(response_queue, message)
            logger.info("Wait cancelled by a non-envelope message on the response queue")
            return ProxyResult(status=ProxyStatus.CANCELLED, correlation_id=correlation_id)
        except CodecError as e:
            self._discard(response_queue, message)
            logger.error(f"Response could not be decoded: {e}")
            return ProxyResult(
                status=ProxyStatus.DELIVERY_ERROR,
                correlation_id=correlation_id,
                error=DeliveryError(f"Response {message.message_id} is corrupt: {e}"),
            )

        self._discard(response_queue, message)
        if envelope.correlation_id is not None and envelope.correlation_id != correlation_id:
            self.stale_discarded += 1
            logger.info(
                f"Discarded stale response for request {envelope.correlation_id}"
            )
            return None

        logger.info("Response received")
        return ProxyResult(
            status=ProxyStatus.COMPLETED,
            correlation_id=correlation_id,
            payload=envelope.payload,
        )

    def _discard(self, queue: Queue, message: QueueMessage) -> None:
        try:
            queue.delete(message)
        except QueueError as e:
            logger.warning(f"Failed to delete response {message.message_id}: {e}")
