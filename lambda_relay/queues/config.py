"""
Queue configuration utilities.

Queues are addressed by URL. ``memory://<name>`` selects an in-process
queue, shared by name so a proxy and a runner in the same process talk to
each other; ``http(s)://`` selects Amazon SQS.
"""

import threading
from typing import Any

from lambda_relay.core.exceptions import ConfigurationError
from lambda_relay.queues.base import Queue
from lambda_relay.queues.sqs import DEFAULT_REQUEST_QUEUE_NAME, DEFAULT_RESPONSE_QUEUE_NAME

MEMORY_SCHEME = "memory://"

_memory_queues: dict[str, Queue] = {}
_memory_lock = threading.Lock()


def create_queue(
    url: str,
    *,
    region: str | None = None,
    endpoint_url: str | None = None,
    client: Any = None,
    visibility_timeout: float = 30.0,
) -> Queue:
    """
    Create a queue from its URL.

    Args:
        url: ``memory://name`` or an SQS queue URL
        region: AWS region for SQS queues
        endpoint_url: Custom SQS endpoint
        client: Existing boto3 SQS client to reuse
        visibility_timeout: Lease length for in-memory queues

    Returns:
        Queue instance

    Raises:
        ConfigurationError: If the URL scheme is not supported

    Example:
        >>> queue = create_queue("memory://requests")
        >>> queue.url
        'memory://requests'
    """
    if url.startswith(MEMORY_SCHEME):
        from lambda_relay.queues.memory import InMemoryQueue

        with _memory_lock:
            queue = _memory_queues.get(url)
            if queue is None:
                queue = InMemoryQueue(url, visibility_timeout=visibility_timeout)
                _memory_queues[url] = queue
            return queue

    if url.startswith(("https://", "http://")):
        from lambda_relay.queues.sqs import SqsQueue

        return SqsQueue(url, client=client, region=region, endpoint_url=endpoint_url)

    raise ConfigurationError(f"Unsupported queue URL: {url!r}")


def reset_memory_queues() -> None:
    """Forget all shared in-memory queues. Intended for tests."""
    with _memory_lock:
        _memory_queues.clear()


def default_queue_urls(function_arn: str) -> tuple[str, str]:
    """
    Derive the default queue URLs from a Lambda function ARN.

    ``arn:aws:lambda:us-east-1:123456789012:function:my-fn`` gives
    ``https://sqs.us-east-1.amazonaws.com/123456789012/proxy_lambda_req``
    and the matching ``proxy_lambda_resp`` URL.

    Raises:
        ConfigurationError: If the ARN has no region or account
    """
    parts = function_arn.split(":")
    if len(parts) < 5 or not parts[3] or not parts[4]:
        raise ConfigurationError(
            f"Cannot derive queue URLs from function ARN {function_arn!r}"
        )
    region, account = parts[3], parts[4]
    base = f"https://sqs.{region}.amazonaws.com/{account}"
    return f"{base}/{DEFAULT_REQUEST_QUEUE_NAME}", f"{base}/{DEFAULT_RESPONSE_QUEUE_NAME}"
