"""Tests for the Lambda entrypoint of the cloud proxy."""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from lambda_relay.core.exceptions import DeliveryError, ResponseTimeoutError
from lambda_relay.proxy import lambda_function
from lambda_relay.proxy.lambda_function import format_environment, handler, reset_proxy
from lambda_relay.proxy.proxy import ProxyResult, ProxyStatus
from lambda_relay.queues.config import reset_memory_queues


def lambda_context(remaining_ms=30_000):
    return SimpleNamespace(
        aws_request_id="c0ffee",
        invoked_function_arn="arn:aws:lambda:us-east-1:123456789012:function:orders",
        function_name="orders",
        function_version="$LATEST",
        memory_limit_in_mb="128",
        log_group_name="/aws/lambda/orders",
        log_stream_name="2025/01/15/[$LATEST]abc",
        get_remaining_time_in_millis=lambda: remaining_ms,
    )


@pytest.fixture(autouse=True)
def fresh_proxy():
    reset_proxy()
    reset_memory_queues()
    yield
    reset_proxy()
    reset_memory_queues()


@pytest.fixture
def proxy():
    mock = MagicMock()
    with patch.object(lambda_function, "get_proxy", return_value=mock):
        yield mock


class TestFormatEnvironment:
    """Tests for format_environment."""

    def test_sorted_export_line(self):
        line = format_environment({"B": "2", "A": "1"})
        assert line == "export A=1 B=2"

    def test_credentials_are_left_out(self):
        line = format_environment(
            {
                "AWS_ACCESS_KEY_ID": "AKIA",
                "AWS_SECRET_ACCESS_KEY": "secret",
                "AWS_SESSION_TOKEN": "token",
                "AWS_REGION": "us-east-1",
            }
        )

        assert line == "export AWS_REGION=us-east-1"

    def test_empty_environment(self):
        assert format_environment({}) == "export"


class TestHandler:
    """Tests for the Lambda handler status mapping."""

    def test_completed_returns_payload(self, proxy):
        proxy.invoke.return_value = ProxyResult(
            status=ProxyStatus.COMPLETED, correlation_id="c", payload={"ok": True}
        )

        assert handler({"command": "echo"}, lambda_context()) == {"ok": True}

        event, invocation = proxy.invoke.call_args.args
        assert event == {"command": "echo"}
        assert invocation.request_id == "c0ffee"
        assert invocation.function_name == "orders"
        assert invocation.memory_limit_mb == 128

    def test_trace_id_is_forwarded(self, proxy, monkeypatch):
        monkeypatch.setenv("_X_AMZN_TRACE_ID", "Root=1-abc")
        proxy.invoke.return_value = ProxyResult(status=ProxyStatus.ASYNC, correlation_id="c")

        handler({}, lambda_context())

        assert proxy.invoke.call_args.args[1].xray_trace_id == "Root=1-abc"

    @pytest.mark.parametrize("status", [ProxyStatus.ASYNC, ProxyStatus.CANCELLED])
    def test_no_response_returns_none(self, proxy, status):
        proxy.invoke.return_value = ProxyResult(status=status, correlation_id="c")

        assert handler({}, lambda_context()) is None

    def test_timeout_raises(self, proxy):
        error = ResponseTimeoutError("c", 29.0)
        proxy.invoke.return_value = ProxyResult(
            status=ProxyStatus.TIMEOUT, correlation_id="c", error=error
        )

        with pytest.raises(ResponseTimeoutError):
            handler({}, lambda_context())

    def test_delivery_error_raises(self, proxy):
        proxy.invoke.return_value = ProxyResult(
            status=ProxyStatus.DELIVERY_ERROR, correlation_id="c", error=DeliveryError("corrupt")
        )

        with pytest.raises(DeliveryError):
            handler({}, lambda_context())


class TestGetProxy:
    """Tests for the per-container proxy."""

    def test_proxy_is_cached(self, monkeypatch):
        """Test the proxy is built from the environment once per container."""
        monkeypatch.setenv("LAMBDA_RELAY_REQ_QUEUE_URL", "memory://lambda-requests")
        monkeypatch.setenv("LAMBDA_RELAY_RESP_QUEUE_URL", "memory://lambda-responses")

        first = lambda_function.get_proxy("arn:aws:lambda:us-east-1:123456789012:function:orders")
        second = lambda_function.get_proxy()

        assert first is second
        assert first.request_queue.url == "memory://lambda-requests"
        assert first.response_queue.url == "memory://lambda-responses"

    def test_async_round_trip(self, monkeypatch):
        """Test an async invocation leaves the request on the queue."""
        monkeypatch.setenv("LAMBDA_RELAY_REQ_QUEUE_URL", "memory://lambda-requests")
        monkeypatch.setenv("LAMBDA_RELAY_RESP_QUEUE_URL", "memory://lambda-responses")
        proxy = lambda_function.get_proxy()
        proxy.response_queue = None

        assert handler({"a": 1}, lambda_context()) is None
        assert len(proxy.request_queue) == 1
