"""
Abstract base class for message queues.

The relay only needs four operations from a queue transport. All
implementations must provide them with the same semantics:

- ``receive`` long-polls for at most ``wait_seconds`` and leases at most one
  message. The lease lasts for the queue's visibility timeout; a message
  that is not deleted in time becomes visible again.
- ``delete`` is scoped to the receipt handle of the lease.
- ``purge`` drains every currently visible message.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class QueueMessage:
    """A leased message."""

    message_id: str
    body: str
    receipt_handle: str
    receive_count: int = 1


class Queue(ABC):
    """
    Abstract base class for queue transports.

    Implementations raise QueueAccessError when the queue does not exist or
    access is denied, and QueueError for transient failures.
    """

    @property
    @abstractmethod
    def url(self) -> str:
        """
        Queue address.

        Returns:
            URL identifying this queue (an SQS URL or ``memory://name``)
        """
        pass

    @abstractmethod
    def send(self, body: str) -> str:
        """
        Append a message to the queue.

        Args:
            body: Message body

        Returns:
            The message id assigned by the queue
        """
        pass

    @abstractmethod
    def receive(self, wait_seconds: float = 0) -> QueueMessage | None:
        """
        Lease the next visible message.

        Args:
            wait_seconds: How long to block for a message to arrive

        Returns:
            QueueMessage if one was available, None when the wait expired
        """
        pass

    @abstractmethod
    def delete(self, message: QueueMessage) -> None:
        """
        Delete a leased message so it is never delivered again.

        Args:
            message: Message returned by ``receive``
        """
        pass

    @abstractmethod
    def purge(self) -> int:
        """
        Remove every visible message.

        Returns:
            Number of messages removed
        """
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(url={self.url!r})"
