"""Tests for the in-memory queue."""

import threading
import time

import pytest

from lambda_relay.core.exceptions import QueueError
from lambda_relay.queues.memory import InMemoryQueue


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def queue(clock):
    return InMemoryQueue("memory://test", visibility_timeout=30, clock=clock)


class TestSendReceive:
    """Tests for send and receive."""

    def test_receive_empty_returns_none(self, queue):
        """Test an empty queue returns None without waiting."""
        assert queue.receive() is None

    def test_receive_returns_sent_message(self, queue):
        """Test a sent message is received with its body."""
        message_id = queue.send("hello")

        message = queue.receive()

        assert message.message_id == message_id
        assert message.body == "hello"
        assert message.receive_count == 1

    def test_messages_are_received_in_order(self, queue):
        """Test messages come back oldest first."""
        queue.send("first")
        queue.send("second")

        assert queue.receive().body == "first"
        assert queue.receive().body == "second"
        assert queue.receive() is None

    def test_leased_message_is_invisible(self, queue):
        """Test a received message is hidden until its lease expires."""
        queue.send("hello")
        queue.receive()

        assert queue.receive() is None
        assert len(queue) == 1

    def test_long_poll_wakes_on_send(self):
        """Test a waiting receive returns as soon as a message is sent."""
        queue = InMemoryQueue("memory://wake")
        timer = threading.Timer(0.05, queue.send, args=("late",))
        timer.start()

        started = time.monotonic()
        message = queue.receive(wait_seconds=5)

        assert message is not None
        assert message.body == "late"
        assert time.monotonic() - started < 5
        timer.join()

    def test_long_poll_times_out(self):
        """Test a waiting receive gives up after the wait."""
        queue = InMemoryQueue("memory://timeout")

        started = time.monotonic()
        assert queue.receive(wait_seconds=0.05) is None
        assert time.monotonic() - started >= 0.04


class TestVisibilityTimeout:
    """Tests for lease expiry and redelivery."""

    def test_undeleted_message_is_redelivered(self, queue, clock):
        """Test a message reappears after the visibility timeout."""
        queue.send("job")
        first = queue.receive()

        clock.advance(31)
        second = queue.receive()

        assert second.message_id == first.message_id
        assert second.body == first.body
        assert second.receive_count == 2
        assert second.receipt_handle != first.receipt_handle

    def test_expire_leases(self, queue):
        """Test expire_leases makes leased messages visible at once."""
        queue.send("job")
        queue.receive()

        queue.expire_leases()

        assert queue.receive().receive_count == 2


class TestDelete:
    """Tests for delete."""

    def test_delete_removes_message(self, queue, clock):
        """Test a deleted message is never delivered again."""
        queue.send("job")
        message = queue.receive()

        queue.delete(message)
        clock.advance(60)

        assert queue.receive() is None
        assert len(queue) == 0
        assert queue.deleted_count == 1

    def test_delete_with_stale_receipt_handle(self, queue, clock):
        """Test deleting through an expired lease raises QueueError."""
        queue.send("job")
        stale = queue.receive()
        clock.advance(31)
        queue.receive()

        with pytest.raises(QueueError):
            queue.delete(stale)
        assert len(queue) == 1

    def test_delete_twice_is_noop(self, queue):
        """Test deleting a message that is already gone does nothing."""
        queue.send("job")
        message = queue.receive()
        queue.delete(message)

        queue.delete(message)

        assert queue.deleted_count == 1


class TestPurge:
    """Tests for purge."""

    def test_purge_removes_visible_messages(self, queue):
        """Test purge drops visible messages and reports the count."""
        queue.send("a")
        queue.send("b")

        assert queue.purge() == 2
        assert queue.receive() is None

    def test_purge_keeps_leased_messages(self, queue):
        """Test purge leaves in-flight messages alone."""
        queue.send("a")
        queue.receive()
        queue.send("b")

        assert queue.purge() == 1
        assert queue.bodies() == ["a"]
