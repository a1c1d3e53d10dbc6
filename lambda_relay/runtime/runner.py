"""
Local runner.

Polls the request queue on the developer machine, runs each job through the
local handler and publishes the response for the cloud proxy. One job is
handled at a time:

    POLLING_REQUEST -> DECODING -> INVOKING -> PUBLISHING_RESPONSE
        -> ACKNOWLEDGING -> POLLING_REQUEST

The request message is deleted only after the response has been published.
A handler failure leaves it on the queue, so the same job is delivered again
once the visibility timeout expires and can be re-run against a fixed handler.
"""

import signal
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from loguru import logger

from lambda_relay.core.envelope import InvocationContext, LocalLambdaContext, synthetic_context
from lambda_relay.core.exceptions import (
    CodecError,
    ConfigurationError,
    QueueAccessError,
    QueueError,
)
from lambda_relay.observability.logging import job_logging_context
from lambda_relay.queues.base import Queue, QueueMessage
from lambda_relay.runtime.handler import HandlerResult, invoke_handler, load_handler
from lambda_relay.serialization.codec import EnvelopeCodec, encode_response


class RunnerState(Enum):
    POLLING_REQUEST = "polling_request"
    DECODING = "decoding"
    INVOKING = "invoking"
    PUBLISHING_RESPONSE = "publishing_response"
    ACKNOWLEDGING = "acknowledging"


class JobOutcome(Enum):
    """Outcome of one runner cycle."""

    SUCCEEDED = "succeeded"  # response published, request deleted
    ABORTED = "aborted"  # handler or publish failed, request left for retry
    MALFORMED = "malformed"  # request could not be decoded, left on the queue
    IDLE = "idle"  # the poll returned no message


@dataclass
class JobReport:
    """What happened in one runner cycle."""

    outcome: JobOutcome
    message_id: str | None = None
    correlation_id: str | None = None
    receive_count: int = 0
    result: HandlerResult | None = None
    error: Exception | None = None


@dataclass
class RunSummary:
    """Totals of a run() session."""

    succeeded: int = 0
    aborted: int = 0
    malformed: int = 0
    idle_polls: int = 0
    stopped_on_error: bool = False
    reports: list[JobReport] = field(default_factory=list)

    @property
    def jobs(self) -> int:
        return self.succeeded + self.aborted + self.malformed

    def record(self, report: JobReport) -> None:
        if report.outcome == JobOutcome.IDLE:
            self.idle_polls += 1
            return
        self.reports.append(report)
        if report.outcome == JobOutcome.SUCCEEDED:
            self.succeeded += 1
        elif report.outcome == JobOutcome.ABORTED:
            self.aborted += 1
        else:
            self.malformed += 1


class LocalRunner:
    """
    Runs queued jobs through a local handler.

    Args:
        handler: Callable with the Lambda signature ``handler(event, context)``
        request_queue: Queue the cloud proxy forwards requests to
        response_queue: Queue the proxy waits on; None means async mode
        codec: Envelope codec
        wait_seconds: Long-poll wait of each receive
        error_backoff_seconds: Pause after a transient receive error
        stop_on_error: Stop after the first aborted job instead of polling on
        sleep: Sleep function, injectable for tests

    Example:
        >>> runner = LocalRunner(my_handler, request_queue, response_queue)
        >>> summary = runner.run(max_jobs=1)
        >>> summary.succeeded
        1
    """

    def __init__(
        self,
        handler: Callable[..., Any],
        request_queue: Queue,
        response_queue: Queue | None = None,
        *,
        codec: EnvelopeCodec | None = None,
        wait_seconds: float = 20,
        error_backoff_seconds: float = 5.0,
        stop_on_error: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.handler = handler
        self.request_queue = request_queue
        self.response_queue = response_queue
        self.codec = codec or EnvelopeCodec()
        self.wait_seconds = wait_seconds
        self.error_backoff_seconds = error_backoff_seconds
        self.stop_on_error = stop_on_error
        self._sleep = sleep
        self._stop_requested = threading.Event()
        self.state = RunnerState.POLLING_REQUEST

    @classmethod
    def from_config(
        cls,
        config: Any,
        handler: Callable[..., Any] | None = None,
        *,
        stop_on_error: bool = False,
        client: Any = None,
    ) -> "LocalRunner":
        """
        Build a runner from a RelayConfig.

        Args:
            config: RelayConfig with at least the request queue set
            handler: Handler callable; loaded from ``config.handler`` if omitted
            stop_on_error: Stop after the first aborted job
            client: boto3 SQS client to share between both queues

        Raises:
            ConfigurationError: If the request queue or the handler is missing
        """
        if handler is None:
            if not config.handler:
                raise ConfigurationError("No handler configured")
            handler = load_handler(config.handler)

        return cls(
            handler,
            config.request_queue(client=client),
            config.response_queue(client=client),
            codec=config.codec(),
            wait_seconds=config.wait_seconds,
            error_backoff_seconds=config.error_backoff_seconds,
            stop_on_error=stop_on_error,
        )

    @property
    def stopping(self) -> bool:
        return self._stop_requested.is_set()

    def stop(self) -> None:
        """Ask the loop to exit once the current cycle is finished."""
        if not self._stop_requested.is_set():
            logger.info("Stopping after the current cycle")
        self._stop_requested.set()

    def run(self, max_jobs: int | None = None, handle_signals: bool = False) -> RunSummary:
        """
        Poll and run jobs until stopped.

        Args:
            max_jobs: Stop after this many jobs (idle polls do not count)
            handle_signals: Install SIGINT/SIGTERM handlers that call stop()

        Returns:
            RunSummary

        Raises:
            QueueAccessError: If the request queue is missing or not accessible
        """
        summary = RunSummary()
        self._stop_requested.clear()
        previous_handlers = self._install_signal_handlers() if handle_signals else {}

        logger.info(f"Polling {self.request_queue.url}")
        if self.response_queue is None:
            logger.info("No response queue configured, responses are not sent back")

        # the first poll returns straight away to report that the runner is connected
        wait_seconds: float = 0
        first_poll = True
        try:
            while not self.stopping:
                try:
                    report = self.run_once(wait_seconds=wait_seconds)
                except QueueAccessError:
                    raise
                except QueueError as e:
                    logger.warning(
                        f"Failed to receive from the request queue, retrying in "
                        f"{self.error_backoff_seconds}s: {e}"
                    )
                    self._sleep(self.error_backoff_seconds)
                    continue

                if first_poll and report.outcome == JobOutcome.IDLE:
                    logger.info("Connected. Waiting for an incoming event.")
                first_poll = False
                wait_seconds = self.wait_seconds
                summary.record(report)

                if report.outcome == JobOutcome.ABORTED and self.stop_on_error:
                    logger.warning(
                        "Stopping after a failed job. Fix the handler and restart "
                        "to run the same request again."
                    )
                    summary.stopped_on_error = True
                    break
                if max_jobs is not None and summary.jobs >= max_jobs:
                    break
        finally:
            self._restore_signal_handlers(previous_handlers)
            self.state = RunnerState.POLLING_REQUEST

        logger.info(
            f"Runner stopped: {summary.succeeded} succeeded, {summary.aborted} aborted, "
            f"{summary.malformed} malformed"
        )
        return summary

    def run_once(self, wait_seconds: float | None = None) -> JobReport:
        """
        Run a single poll/invoke/publish/acknowledge cycle.

        Raises:
            QueueError: If receiving from the request queue fails
        """
        self.state = RunnerState.POLLING_REQUEST
        wait = self.wait_seconds if wait_seconds is None else wait_seconds
        message = self.request_queue.receive(wait_seconds=wait)
        if message is None:
            return JobReport(outcome=JobOutcome.IDLE)

        with job_logging_context(
            None, message_id=message.message_id, receive_count=message.receive_count
        ):
            return self._process(message)

    def _process(self, message: QueueMessage) -> JobReport:
        self.state = RunnerState.DECODING
        try:
            envelope = self.codec.decode(message.body)
        except CodecError as e:
            logger.error(
                f"Malformed request {message.message_id} left on the queue: {e}"
            )
            return JobReport(
                outcome=JobOutcome.MALFORMED,
                message_id=message.message_id,
                receive_count=message.receive_count,
                error=e,
            )

        invocation = envelope.invocation_context or synthetic_context(
            request_id=message.message_id
        )
        with job_logging_context(
            envelope.correlation_id,
            request_id=invocation.request_id,
            receive_count=message.receive_count,
            message_id=message.message_id,
        ):
            if message.receive_count > 1:
                logger.info(f"Request delivered {message.receive_count} times, re-running")
            logger.info("Lambda request: {}", envelope.payload)

            report = JobReport(
                outcome=JobOutcome.ABORTED,
                message_id=message.message_id,
                correlation_id=envelope.correlation_id,
                receive_count=message.receive_count,
            )

            self.state = RunnerState.INVOKING
            result = invoke_handler(self.handler, envelope.payload, LocalLambdaContext(invocation))
            report.result = result
            if result.aborted:
                logger.warning(
                    "Handler failed, the request stays on the queue and will be "
                    "delivered again after its visibility timeout"
                )
                report.error = result.error
                return report

            logger.info("Lambda response: {}", result.payload)
            self.state = RunnerState.PUBLISHING_RESPONSE
            try:
                self._publish(result.payload, envelope.correlation_id)
            except (CodecError, QueueError) as e:
                logger.error(f"Response not sent, the request stays on the queue: {e}")
                report.error = e
                return report

            self.state = RunnerState.ACKNOWLEDGING
            try:
                self.request_queue.delete(message)
            except QueueError as e:
                logger.warning(f"Failed to delete request {message.message_id}: {e}")

            logger.info(f"Job completed in {result.duration_ms:.0f}ms")
            report.outcome = JobOutcome.SUCCEEDED
            return report

    def _publish(self, payload: Any, correlation_id: str | None) -> None:
        if self.response_queue is None:
            return
        body = encode_response(payload, correlation_id, codec=self.codec)
        try:
            self.response_queue.send(body)
        except QueueAccessError as e:
            logger.warning(
                f"Response queue is not accessible, switching to async mode: {e}"
            )
            self.response_queue = None

    def run_payload(
        self, payload: Any, context: InvocationContext | None = None
    ) -> HandlerResult:
        """
        Run the handler once on a local payload, without any queue.

        Args:
            payload: Event payload, typically read from a file
            context: Invocation context; a synthetic one if omitted
        """
        self.state = RunnerState.INVOKING
        try:
            return run_payload(self.handler, payload, context)
        finally:
            self.state = RunnerState.POLLING_REQUEST

    def _install_signal_handlers(self) -> dict[int, Any]:
        if threading.current_thread() is not threading.main_thread():
            return {}

        def request_stop(signum: int, frame: Any) -> None:
            if self.stopping:
                raise KeyboardInterrupt
            self.stop()

        previous = {}
        for signum in (signal.SIGINT, signal.SIGTERM):
            previous[signum] = signal.signal(signum, request_stop)
        return previous

    @staticmethod
    def _restore_signal_handlers(previous: dict[int, Any]) -> None:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


def run_payload(
    handler: Callable[..., Any],
    payload: Any,
    context: InvocationContext | None = None,
) -> HandlerResult:
    """
    Invoke a handler once on a local payload, without any queue.

    Args:
        handler: Local handler
        payload: Event payload, typically read from a file
        context: Invocation context; a synthetic one if omitted
    """
    invocation = context or synthetic_context()
    with job_logging_context(None, request_id=invocation.request_id):
        logger.info("Lambda request: {}", payload)
        result = invoke_handler(handler, payload, LocalLambdaContext(invocation))
        if not result.aborted:
            logger.info("Lambda response: {}", result.payload)
        return result
