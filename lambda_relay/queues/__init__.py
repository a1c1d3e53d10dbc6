"""
Queue transports for lambda-relay.
"""

from lambda_relay.queues.base import Queue, QueueMessage
from lambda_relay.queues.config import (
    create_queue,
    default_queue_urls,
    reset_memory_queues,
)
from lambda_relay.queues.memory import InMemoryQueue
from lambda_relay.queues.sqs import SqsQueue, discover_default_queues

__all__ = [
    "Queue",
    "QueueMessage",
    "InMemoryQueue",
    "SqsQueue",
    "create_queue",
    "default_queue_urls",
    "discover_default_queues",
    "reset_memory_queues",
]
