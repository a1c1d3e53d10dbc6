"""
In-memory queue for testing and single-process dry runs.

This queue behaves like SQS as far as the relay can observe:
- receive() long-polls and leases one message at a time
- leased messages reappear after the visibility timeout
- every lease gets a fresh receipt handle and bumps the receive count

Note: All messages are lost when the process exits.
"""

import threading
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass

from lambda_relay.core.exceptions import QueueError
from lambda_relay.queues.base import Queue, QueueMessage


@dataclass
class _StoredMessage:
    message_id: str
    body: str
    visible_at: float = 0.0
    receipt_handle: str | None = None
    receive_count: int = 0


class InMemoryQueue(Queue):
    """
    Thread-safe in-memory queue with visibility-timeout leases.

    A producer thread calling send() wakes a consumer blocked in receive().

    Args:
        url: Queue address, conventionally ``memory://<name>``
        visibility_timeout: Lease length in seconds
        clock: Monotonic clock used for leases, injectable for tests

    Example:
        >>> queue = InMemoryQueue("memory://requests", visibility_timeout=30)
        >>> queue.send('{"command": "echo"}')
        >>> message = queue.receive(wait_seconds=1)
    """

    def __init__(
        self,
        url: str = "memory://default",
        visibility_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._url = url
        self.visibility_timeout = visibility_timeout
        self._clock = clock
        self._messages: dict[str, _StoredMessage] = {}
        self._lock = threading.RLock()
        self._changed = threading.Condition(self._lock)
        self.sent_count = 0
        self.deleted_count = 0

    @property
    def url(self) -> str:
        return self._url

    def send(self, body: str) -> str:
        """Append a message and wake any waiting consumer."""
        with self._changed:
            message_id = str(uuid.uuid4())
            self._messages[message_id] = _StoredMessage(message_id=message_id, body=body)
            self.sent_count += 1
            self._changed.notify_all()
            return message_id

    def receive(self, wait_seconds: float = 0) -> QueueMessage | None:
        """Lease the oldest visible message, waiting up to wait_seconds."""
        give_up_at = time.monotonic() + max(wait_seconds, 0)
        with self._changed:
            while True:
                stored = self._next_visible()
                if stored is not None:
                    return self._lease(stored)

                remaining = give_up_at - time.monotonic()
                if remaining <= 0:
                    return None

                # wake up early if a leased message is due to reappear
                next_visible = self._seconds_until_next_visible()
                if next_visible is not None:
                    remaining = min(remaining, next_visible)
                self._changed.wait(timeout=max(remaining, 0.001))

    def delete(self, message: QueueMessage) -> None:
        """
        Delete a leased message.

        Deleting a message that is already gone is a no-op, like SQS.

        Raises:
            QueueError: If the message was leased again under a newer receipt handle
        """
        with self._lock:
            stored = self._messages.get(message.message_id)
            if stored is None:
                return
            if stored.receipt_handle != message.receipt_handle:
                raise QueueError(
                    f"Receipt handle for message {message.message_id} has expired",
                    queue_url=self._url,
                )
            del self._messages[message.message_id]
            self.deleted_count += 1

    def purge(self) -> int:
        """Remove every visible message; in-flight leases are left alone."""
        with self._lock:
            now = self._clock()
            visible = [m.message_id for m in self._messages.values() if m.visible_at <= now]
            for message_id in visible:
                del self._messages[message_id]
            return len(visible)

    def expire_leases(self) -> None:
        """Make every leased message visible immediately."""
        with self._changed:
            for stored in self._messages.values():
                stored.visible_at = 0.0
            self._changed.notify_all()

    def bodies(self) -> list[str]:
        """Snapshot of all message bodies, visible or leased, oldest first."""
        with self._lock:
            return [m.body for m in self._messages.values()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)

    def _next_visible(self) -> _StoredMessage | None:
        now = self._clock()
        for stored in self._messages.values():
            if stored.visible_at <= now:
                return stored
        return None

    def _seconds_until_next_visible(self) -> float | None:
        now = self._clock()
        pending = [m.visible_at - now for m in self._messages.values() if m.visible_at > now]
        return min(pending) if pending else None

    def _lease(self, stored: _StoredMessage) -> QueueMessage:
        stored.visible_at = self._clock() + self.visibility_timeout
        stored.receipt_handle = uuid.uuid4().hex
        stored.receive_count += 1
        return QueueMessage(
            message_id=stored.message_id,
            body=stored.body,
            receipt_handle=stored.receipt_handle,
            receive_count=stored.receive_count,
        )
