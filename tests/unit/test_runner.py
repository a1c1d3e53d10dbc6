"""Tests for the local runner."""

import json
from unittest.mock import MagicMock

import pytest

from lambda_relay.config import RelayConfig
from lambda_relay.core.envelope import Envelope, InvocationContext
from lambda_relay.core.exceptions import ConfigurationError, QueueAccessError, QueueError
from lambda_relay.queues.base import Queue
from lambda_relay.queues.config import reset_memory_queues
from lambda_relay.queues.memory import InMemoryQueue
from lambda_relay.runtime.runner import JobOutcome, LocalRunner, RunnerState
from lambda_relay.serialization.codec import EnvelopeCodec, decode, encode


def request_body(payload, correlation_id="corr-1", request_id="c0ffee"):
    return encode(
        Envelope(
            payload=payload,
            correlation_id=correlation_id,
            invocation_context=InvocationContext(request_id=request_id, function_name="orders"),
        )
    )


def echo(event, context):
    return {"echo": event}


@pytest.fixture
def request_queue():
    return InMemoryQueue("memory://requests")


@pytest.fixture
def response_queue():
    return InMemoryQueue("memory://responses")


class TestRunOnce:
    """Tests for a single runner cycle."""

    def test_idle_poll(self, request_queue, response_queue):
        """Test an empty poll reports IDLE."""
        runner = LocalRunner(echo, request_queue, response_queue)

        report = runner.run_once(wait_seconds=0)

        assert report.outcome == JobOutcome.IDLE
        assert runner.state == RunnerState.POLLING_REQUEST

    def test_success_publishes_once_and_deletes_once(self, request_queue, response_queue):
        """Test a successful job sends one response and deletes the request."""
        request_queue.send(request_body({"command": "echo"}))
        runner = LocalRunner(echo, request_queue, response_queue)

        report = runner.run_once(wait_seconds=0)

        assert report.outcome == JobOutcome.SUCCEEDED
        assert report.correlation_id == "corr-1"
        assert response_queue.sent_count == 1
        assert request_queue.deleted_count == 1
        assert len(request_queue) == 0
        assert runner.state == RunnerState.ACKNOWLEDGING

        response = decode(response_queue.receive().body)
        assert response.payload == {"echo": {"command": "echo"}}
        assert response.correlation_id == "corr-1"
        assert response.invocation_context is None

    def test_handler_gets_lambda_context(self, request_queue):
        """Test the handler receives the forwarded context."""
        seen = {}

        def handler(event, context):
            seen["request_id"] = context.aws_request_id
            seen["function_name"] = context.function_name
            seen["remaining"] = context.get_remaining_time_in_millis()

        request_queue.send(request_body({}, request_id="abc"))

        LocalRunner(handler, request_queue).run_once(wait_seconds=0)

        assert seen["request_id"] == "abc"
        assert seen["function_name"] == "orders"
        assert seen["remaining"] > 0

    def test_no_response_queue(self, request_queue):
        """Test the request is deleted without publishing in async mode."""
        request_queue.send(request_body({"a": 1}))

        report = LocalRunner(echo, request_queue).run_once(wait_seconds=0)

        assert report.outcome == JobOutcome.SUCCEEDED
        assert request_queue.deleted_count == 1

    def test_bare_json_request(self, request_queue, response_queue):
        """Test a hand-written request runs and is answered without an id."""
        request_queue.send('{"command": "echo"}')

        report = LocalRunner(echo, request_queue, response_queue).run_once(wait_seconds=0)

        assert report.outcome == JobOutcome.SUCCEEDED
        response = decode(response_queue.receive().body)
        assert response.payload == {"echo": {"command": "echo"}}
        assert response.correlation_id is None

    def test_handler_failure_leaves_message(self, request_queue, response_queue):
        """Test a failing handler aborts without publishing or deleting."""

        def broken(event, context):
            raise KeyError("missing")

        request_queue.send(request_body({"a": 1}))
        runner = LocalRunner(broken, request_queue, response_queue)

        report = runner.run_once(wait_seconds=0)

        assert report.outcome == JobOutcome.ABORTED
        assert report.error.error_type == "KeyError"
        assert response_queue.sent_count == 0
        assert request_queue.deleted_count == 0
        assert len(request_queue) == 1

    def test_failed_job_is_redelivered_identically(self, request_queue, response_queue):
        """Test the same payload runs again after the lease expires."""
        calls = []

        def flaky(event, context):
            calls.append(event)
            if len(calls) == 1:
                raise RuntimeError("first attempt fails")
            return "ok"

        request_queue.send(request_body({"order": 42}))
        runner = LocalRunner(flaky, request_queue, response_queue)

        first = runner.run_once(wait_seconds=0)
        request_queue.expire_leases()
        second = runner.run_once(wait_seconds=0)

        assert first.outcome == JobOutcome.ABORTED
        assert second.outcome == JobOutcome.SUCCEEDED
        assert second.receive_count == 2
        assert calls == [{"order": 42}, {"order": 42}]
        assert response_queue.sent_count == 1
        assert len(request_queue) == 0

    def test_malformed_request(self, request_queue, response_queue):
        """Test an undecodable request is reported and left on the queue."""
        handler = MagicMock()
        request_queue.send(json.dumps({"correlation_id": "x", "is_compressed": True, "data": "!"}))

        report = LocalRunner(handler, request_queue, response_queue).run_once(wait_seconds=0)

        assert report.outcome == JobOutcome.MALFORMED
        handler.assert_not_called()
        assert len(request_queue) == 1
        assert response_queue.sent_count == 0

    def test_oversized_response_aborts(self, request_queue, response_queue):
        """Test a response too large for the queue leaves the request for retry."""
        codec = EnvelopeCodec(threshold_bytes=64, max_message_bytes=256)
        request_queue.send(request_body({"a": 1}))

        def huge(event, context):
            return [str(i) * 7 for i in range(2000)]

        report = LocalRunner(huge, request_queue, response_queue, codec=codec).run_once(
            wait_seconds=0
        )

        assert report.outcome == JobOutcome.ABORTED
        assert response_queue.sent_count == 0
        assert request_queue.deleted_count == 0

    def test_unserializable_response_aborts(self, request_queue, response_queue):
        """Test a response that is not JSON aborts the job."""
        request_queue.send(request_body({"a": 1}))

        report = LocalRunner(lambda e, c: object(), request_queue, response_queue).run_once(
            wait_seconds=0
        )

        assert report.outcome == JobOutcome.ABORTED
        assert len(request_queue) == 1

    def test_escaped_surrogate_payload(self, request_queue, response_queue):
        """Test a valid payload with an escaped lone surrogate completes."""
        request_queue.send(
            '{"correlation_id":"abc","is_compressed":false,'
            '"payload":{"s":"\\ud800"},"invocation_context":null}'
        )

        summary = LocalRunner(echo, request_queue, response_queue).run(max_jobs=1)

        assert summary.succeeded == 1
        response = decode(response_queue.receive().body)
        assert response.payload == {"echo": {"s": "\ud800"}}
        assert response.correlation_id == "abc"

    def test_transient_publish_error_aborts(self, request_queue):
        """Test a failed publish leaves the request for retry."""
        response_queue = MagicMock(spec=Queue)
        response_queue.send.side_effect = QueueError("Throttled")
        request_queue.send(request_body({"a": 1}))

        report = LocalRunner(echo, request_queue, response_queue).run_once(wait_seconds=0)

        assert report.outcome == JobOutcome.ABORTED
        assert request_queue.deleted_count == 0

    def test_inaccessible_response_queue_switches_to_async(self, request_queue):
        """Test a denied publish completes the job and stops publishing."""
        response_queue = MagicMock(spec=Queue)
        response_queue.send.side_effect = QueueAccessError("AccessDenied")
        request_queue.send(request_body({"a": 1}))
        runner = LocalRunner(echo, request_queue, response_queue)

        report = runner.run_once(wait_seconds=0)

        assert report.outcome == JobOutcome.SUCCEEDED
        assert request_queue.deleted_count == 1
        assert runner.response_queue is None

    def test_async_handler(self, request_queue, response_queue):
        """Test coroutine handlers are awaited."""

        async def handler(event, context):
            return {"async": event}

        request_queue.send(request_body(1))

        LocalRunner(handler, request_queue, response_queue).run_once(wait_seconds=0)

        assert decode(response_queue.receive().body).payload == {"async": 1}


class TestRun:
    """Tests for the polling loop."""

    def test_max_jobs(self, request_queue, response_queue):
        """Test the loop stops after the requested number of jobs."""
        for i in range(3):
            request_queue.send(request_body(i, correlation_id=f"corr-{i}"))
        runner = LocalRunner(echo, request_queue, response_queue, wait_seconds=0)

        summary = runner.run(max_jobs=2)

        assert summary.succeeded == 2
        assert summary.jobs == 2
        assert len(request_queue) == 1

    def test_idle_polls_do_not_count(self, request_queue, response_queue):
        """Test the first poll is immediate and idle polls are skipped."""
        waits = []
        original_receive = request_queue.receive

        def receive(wait_seconds=0):
            waits.append(wait_seconds)
            if len(waits) == 2:
                request_queue.send(request_body("late"))
            return original_receive(wait_seconds=0)

        request_queue.receive = receive
        runner = LocalRunner(echo, request_queue, response_queue, wait_seconds=20)

        summary = runner.run(max_jobs=1)

        assert waits[0] == 0
        assert waits[1] == 20
        assert summary.idle_polls == 1
        assert summary.succeeded == 1

    def test_stop_on_error(self, request_queue, response_queue):
        """Test the loop stops after a failed job when asked to."""
        request_queue.send(request_body(1))
        request_queue.send(request_body(2))

        def broken(event, context):
            raise ValueError("bug")

        runner = LocalRunner(broken, request_queue, response_queue, stop_on_error=True)

        summary = runner.run()

        assert summary.stopped_on_error
        assert summary.aborted == 1
        assert len(request_queue) == 2

    def test_failures_do_not_stop_the_loop(self, request_queue, response_queue):
        """Test per-job errors never crash the loop."""
        request_queue.send("not json")
        request_queue.send(request_body("fails", correlation_id="a"))
        request_queue.send(request_body("works", correlation_id="b"))

        def handler(event, context):
            if event == "fails":
                raise RuntimeError("bug")
            return event

        summary = LocalRunner(handler, request_queue, response_queue, wait_seconds=0).run(
            max_jobs=3
        )

        assert [r.outcome for r in summary.reports] == [
            JobOutcome.MALFORMED,
            JobOutcome.ABORTED,
            JobOutcome.SUCCEEDED,
        ]

    def test_publish_encode_failure_does_not_stop_the_loop(self, request_queue, response_queue):
        """Test a response that cannot be encoded aborts only its own job."""
        request_queue.send(request_body("bad", correlation_id="a"))
        request_queue.send(request_body("good", correlation_id="b"))

        def handler(event, context):
            return object() if event == "bad" else event

        summary = LocalRunner(handler, request_queue, response_queue, wait_seconds=0).run(
            max_jobs=2
        )

        assert [r.outcome for r in summary.reports] == [JobOutcome.ABORTED, JobOutcome.SUCCEEDED]
        assert response_queue.sent_count == 1
        assert len(request_queue) == 1

    def test_transient_receive_error_backs_off(self, response_queue):
        """Test a receive error is retried after the backoff."""
        request_queue = MagicMock(spec=Queue)
        request_queue.url = "memory://flaky"
        sleeps = []
        runner = LocalRunner(
            echo, request_queue, response_queue, error_backoff_seconds=5, sleep=sleeps.append
        )
        polls = iter([QueueError("Throttled"), None])

        def receive(wait_seconds=0):
            outcome = next(polls)
            if isinstance(outcome, Exception):
                raise outcome
            runner.stop()
            return outcome

        request_queue.receive.side_effect = receive

        summary = runner.run()

        assert sleeps == [5]
        assert summary.idle_polls == 1
        assert summary.jobs == 0

    def test_inaccessible_request_queue_is_fatal(self, response_queue):
        """Test QueueAccessError on the request queue ends the loop."""
        request_queue = MagicMock(spec=Queue)
        request_queue.url = "memory://denied"
        request_queue.receive.side_effect = QueueAccessError("AccessDenied")

        with pytest.raises(QueueAccessError):
            LocalRunner(echo, request_queue, response_queue).run()

    def test_stop_from_handler(self, request_queue, response_queue):
        """Test stop() finishes the current job and exits."""
        for i in range(3):
            request_queue.send(request_body(i))

        runner = None

        def handler(event, context):
            runner.stop()
            return event

        runner = LocalRunner(handler, request_queue, response_queue, wait_seconds=0)

        summary = runner.run()

        assert summary.succeeded == 1
        assert len(request_queue) == 2


class TestRunPayload:
    """Tests for local payload mode."""

    def test_run_payload(self, request_queue):
        """Test a payload runs without touching any queue."""
        runner = LocalRunner(echo, request_queue)

        result = runner.run_payload({"a": 1})

        assert not result.aborted
        assert result.payload == {"echo": {"a": 1}}
        assert request_queue.sent_count == 0

    def test_run_payload_uses_synthetic_context(self, request_queue):
        """Test local payloads get the synthetic context."""
        result = LocalRunner(lambda e, c: c.invoked_function_arn, request_queue).run_payload({})
        assert result.payload == "from-local-payload"

    def test_run_payload_failure(self, request_queue):
        """Test failures are captured in the result."""

        def broken(event, context):
            raise ValueError("bad input")

        result = LocalRunner(broken, request_queue).run_payload({})

        assert result.aborted
        assert "bad input" in str(result.error)


class TestFromConfig:
    """Tests for LocalRunner.from_config."""

    @pytest.fixture(autouse=True)
    def fresh_memory_queues(self):
        reset_memory_queues()
        yield
        reset_memory_queues()

    def test_from_config(self):
        """Test queues and settings come from the config."""
        config = RelayConfig(
            request_queue_url="memory://requests",
            response_queue_url="memory://responses",
            wait_seconds=3,
            error_backoff_seconds=1.5,
        )

        runner = LocalRunner.from_config(config, echo, stop_on_error=True)

        assert runner.request_queue.url == "memory://requests"
        assert runner.response_queue.url == "memory://responses"
        assert runner.wait_seconds == 3
        assert runner.error_backoff_seconds == 1.5
        assert runner.stop_on_error

    def test_handler_loaded_from_config(self):
        """Test the handler reference in the config is imported."""
        config = RelayConfig(request_queue_url="memory://requests", handler="json:dumps")

        runner = LocalRunner.from_config(config)

        assert runner.handler is json.dumps
        assert runner.response_queue is None

    def test_missing_handler(self):
        """Test a config without handler raises ConfigurationError."""
        with pytest.raises(ConfigurationError):
            LocalRunner.from_config(RelayConfig(request_queue_url="memory://requests"))

    def test_missing_request_queue(self):
        """Test a config without request queue raises ConfigurationError."""
        with pytest.raises(ConfigurationError):
            LocalRunner.from_config(RelayConfig(), echo)
