"""
Amazon SQS queue transport.

Wraps a boto3 SQS client. SQS's PurgeQueue API may only be called once a
minute, so purge() drains the queue with short-poll receives and deletes
instead.
"""

import math
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError
from loguru import logger

from lambda_relay.core.exceptions import ConfigurationError, QueueAccessError, QueueError
from lambda_relay.queues.base import Queue, QueueMessage

# SQS long-poll limit
MAX_WAIT_SECONDS = 20
MAX_BATCH_SIZE = 10

DEFAULT_REQUEST_QUEUE_NAME = "proxy_lambda_req"
DEFAULT_RESPONSE_QUEUE_NAME = "proxy_lambda_resp"

# error codes that mean the queue is unusable rather than temporarily failing
ACCESS_ERROR_CODES = frozenset(
    {
        "AccessDenied",
        "AccessDeniedException",
        "AWS.SimpleQueueService.NonExistentQueue",
        "QueueDoesNotExist",
        "InvalidClientTokenId",
        "UnrecognizedClientException",
        "KMS.AccessDeniedException",
    }
)


def create_sqs_client(region: str | None = None, endpoint_url: str | None = None) -> Any:
    """
    Create a boto3 SQS client.

    Raises:
        ConfigurationError: If boto3 cannot configure the client, e.g. no region is set
    """
    try:
        return boto3.client("sqs", region_name=region, endpoint_url=endpoint_url)
    except BotoCoreError as e:
        raise ConfigurationError(f"Cannot create SQS client: {e}") from e


def _translate(exc: Exception, action: str, queue_url: str) -> QueueError:
    """Map a botocore exception onto the relay's queue errors."""
    if isinstance(exc, ClientError):
        code = exc.response.get("Error", {}).get("Code", "")
        message = f"SQS {action} failed with {code or 'unknown error'}: {exc}"
        if code in ACCESS_ERROR_CODES:
            return QueueAccessError(message, queue_url=queue_url)
        return QueueError(message, queue_url=queue_url)
    if isinstance(exc, NoCredentialsError):
        return QueueAccessError(f"SQS {action} failed: {exc}", queue_url=queue_url)
    return QueueError(f"SQS {action} failed: {exc}", queue_url=queue_url)


class SqsQueue(Queue):
    """
    Queue backed by Amazon SQS.

    Args:
        url: SQS queue URL
        client: boto3 SQS client, created from region/endpoint_url if omitted
        region: AWS region for a new client
        endpoint_url: Custom endpoint (e.g. LocalStack) for a new client

    Example:
        >>> queue = SqsQueue("https://sqs.us-east-1.amazonaws.com/123456789012/proxy_lambda_req")
        >>> queue.send('{"command": "echo"}')
    """

    def __init__(
        self,
        url: str,
        client: Any = None,
        *,
        region: str | None = None,
        endpoint_url: str | None = None,
    ) -> None:
        self._url = url
        self._client = client or create_sqs_client(region=region, endpoint_url=endpoint_url)

    @property
    def url(self) -> str:
        return self._url

    def send(self, body: str) -> str:
        try:
            response = self._client.send_message(QueueUrl=self._url, MessageBody=body)
        except (ClientError, BotoCoreError) as e:
            raise _translate(e, "SendMessage", self._url) from e
        message_id = response.get("MessageId", "")
        logger.debug(f"Sent message {message_id} to {self._url}")
        return message_id

    def receive(self, wait_seconds: float = 0) -> QueueMessage | None:
        messages = self._receive_batch(1, wait_seconds)
        return messages[0] if messages else None

    def delete(self, message: QueueMessage) -> None:
        try:
            self._client.delete_message(
                QueueUrl=self._url, ReceiptHandle=message.receipt_handle
            )
        except (ClientError, BotoCoreError) as e:
            raise _translate(e, "DeleteMessage", self._url) from e
        logger.debug(f"Deleted message {message.message_id} from {self._url}")

    def purge(self) -> int:
        """Drain visible messages one batch at a time."""
        purged = 0
        while True:
            messages = self._receive_batch(MAX_BATCH_SIZE, 0)
            if not messages:
                break
            for message in messages:
                self.delete(message)
            purged += len(messages)
        if purged:
            logger.debug(f"Purged {purged} stale messages from {self._url}")
        return purged

    def _receive_batch(self, max_messages: int, wait_seconds: float) -> list[QueueMessage]:
        wait = max(0, min(math.ceil(wait_seconds), MAX_WAIT_SECONDS))
        try:
            response = self._client.receive_message(
                QueueUrl=self._url,
                MaxNumberOfMessages=max_messages,
                WaitTimeSeconds=wait,
                AttributeNames=["ApproximateReceiveCount"],
            )
        except (ClientError, BotoCoreError) as e:
            raise _translate(e, "ReceiveMessage", self._url) from e

        result = []
        # "Messages" is missing altogether when the wait expires
        for raw in response.get("Messages") or []:
            if "Body" not in raw or "ReceiptHandle" not in raw:
                raise QueueError(f"Invalid SQS message without body or receipt: {raw}", self._url)
            attributes = raw.get("Attributes") or {}
            result.append(
                QueueMessage(
                    message_id=raw.get("MessageId", ""),
                    body=raw["Body"],
                    receipt_handle=raw["ReceiptHandle"],
                    receive_count=int(attributes.get("ApproximateReceiveCount", 1)),
                )
            )
        return result


def discover_default_queues(client: Any) -> tuple[str | None, str | None]:
    """
    Look up the default request and response queues in the caller's account.

    Returns:
        (request_queue_url, response_queue_url), either may be None
    """
    prefix = DEFAULT_REQUEST_QUEUE_NAME[:-3]  # "proxy_lambda_" matches both
    try:
        response = client.list_queues(QueueNamePrefix=prefix, MaxResults=100)
    except (ClientError, BotoCoreError) as e:
        raise _translate(e, "ListQueues", prefix) from e

    request_url = None
    response_url = None
    for url in response.get("QueueUrls") or []:
        if url.endswith(f"/{DEFAULT_REQUEST_QUEUE_NAME}"):
            request_url = url
        elif url.endswith(f"/{DEFAULT_RESPONSE_QUEUE_NAME}"):
            response_url = url
    return request_url, response_url
