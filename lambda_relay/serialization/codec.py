"""
Envelope codec.

Envelopes travel as JSON text. When the serialized envelope is larger than
the compression threshold, the (payload, context) pair is gzipped and
base64-encoded so it fits in a queue message:

    {"correlation_id": "...", "is_compressed": false,
     "payload": {...}, "invocation_context": {...}}

    {"correlation_id": "...", "is_compressed": true, "data": "H4sIAAAA..."}

The ``is_compressed`` flag makes every envelope self-describing. A body that
is a JSON object without the flag is treated as a bare payload written by
hand, e.g. through the SQS console.
"""

import base64
import binascii
import gzip
import json
from typing import Any

from loguru import logger

from lambda_relay.core.envelope import Envelope, InvocationContext
from lambda_relay.core.exceptions import CodecError, MessageTooLargeError, NotAnEnvelopeError

# SQS rejects message bodies above 256 KiB
SQS_MAX_MESSAGE_BYTES = 262_144
DEFAULT_COMPRESSION_THRESHOLD = SQS_MAX_MESSAGE_BYTES


def _dumps(value: Any) -> str:
    # ASCII only: escaped surrogates and noncharacters stay queue-safe
    try:
        return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=True)
    except (TypeError, ValueError) as e:
        raise CodecError(f"Payload is not JSON serializable: {e}") from e


def _size(text: str) -> int:
    try:
        return len(text.encode("utf-8"))
    except UnicodeError as e:
        raise CodecError(f"Envelope is not valid UTF-8 text: {e}") from e


class EnvelopeCodec:
    """
    Encodes envelopes to queue-safe text and back.

    Args:
        threshold_bytes: Serialized size above which the content is compressed
        max_message_bytes: Largest body the queue accepts
        compression_level: gzip level, 1 (fast) to 9 (small)

    Example:
        >>> codec = EnvelopeCodec()
        >>> body = codec.encode(Envelope(payload={"command": "echo"}))
        >>> codec.decode(body).payload
        {'command': 'echo'}
    """

    def __init__(
        self,
        threshold_bytes: int = DEFAULT_COMPRESSION_THRESHOLD,
        max_message_bytes: int = SQS_MAX_MESSAGE_BYTES,
        compression_level: int = 6,
    ) -> None:
        if threshold_bytes <= 0:
            raise ValueError("threshold_bytes must be positive")
        self.threshold_bytes = threshold_bytes
        self.max_message_bytes = max_message_bytes
        self.compression_level = compression_level

    def encode(self, envelope: Envelope) -> str:
        """
        Serialize an envelope, compressing it when it is over the threshold.

        Sets ``envelope.is_compressed`` to reflect what was sent.

        Raises:
            CodecError: If the payload is not JSON serializable
            MessageTooLargeError: If the result does not fit in a queue message
        """
        content = envelope.content()
        plain = _dumps(
            {
                "correlation_id": envelope.correlation_id,
                "is_compressed": False,
                **content,
            }
        )
        size = _size(plain)
        if size <= self.threshold_bytes:
            envelope.is_compressed = False
            body = plain
        else:
            compressed = gzip.compress(
                _dumps(content).encode("utf-8"), compresslevel=self.compression_level
            )
            body = _dumps(
                {
                    "correlation_id": envelope.correlation_id,
                    "is_compressed": True,
                    "data": base64.b64encode(compressed).decode("ascii"),
                }
            )
            envelope.is_compressed = True
            logger.debug(
                f"Envelope compressed from {size}B to {_size(body)}B",
                correlation_id=envelope.correlation_id,
            )

        encoded_size = _size(body)
        if encoded_size > self.max_message_bytes:
            raise MessageTooLargeError(encoded_size, self.max_message_bytes)
        return body

    def decode(self, body: str) -> Envelope:
        """
        Parse a message body back into an envelope.

        Raises:
            NotAnEnvelopeError: If the body is not a JSON object
            CodecError: If the body looks like an envelope but is corrupt
        """
        try:
            document = json.loads(body)
        except (TypeError, ValueError) as e:
            raise NotAnEnvelopeError(f"Message body is not JSON: {e}") from e

        if not isinstance(document, dict):
            raise NotAnEnvelopeError(
                f"Message body is a JSON {type(document).__name__}, expected an object"
            )

        if "is_compressed" not in document:
            # hand-written bare payload
            return Envelope(payload=document, correlation_id=None)

        correlation_id = document.get("correlation_id")
        if correlation_id is not None and not isinstance(correlation_id, str):
            raise CodecError("Envelope correlation_id must be a string")

        is_compressed = document["is_compressed"]
        if is_compressed is True:
            content = self._decompress(document.get("data"))
        elif is_compressed is False:
            content = document
        else:
            raise CodecError("Envelope is_compressed flag must be a boolean")

        if "payload" not in content:
            raise CodecError("Envelope has no payload")

        return Envelope(
            payload=content["payload"],
            correlation_id=correlation_id,
            invocation_context=self._context(content.get("invocation_context")),
            is_compressed=is_compressed,
        )

    def _decompress(self, data: Any) -> dict[str, Any]:
        if not isinstance(data, str):
            raise CodecError("Compressed envelope has no data")
        try:
            raw = gzip.decompress(base64.b64decode(data, validate=True))
            content = json.loads(raw.decode("utf-8"))
        except (binascii.Error, OSError, EOFError, UnicodeDecodeError, ValueError) as e:
            raise CodecError(f"Compressed envelope is corrupt: {e}") from e
        if not isinstance(content, dict):
            raise CodecError("Compressed envelope content is not an object")
        return content

    @staticmethod
    def _context(data: Any) -> InvocationContext | None:
        if data is None:
            return None
        if not isinstance(data, dict):
            raise CodecError("Envelope invocation_context must be an object")
        return InvocationContext.from_dict(data)


_default_codec = EnvelopeCodec()


def encode(envelope: Envelope) -> str:
    """Encode with the default SQS-sized thresholds."""
    return _default_codec.encode(envelope)


def decode(body: str) -> Envelope:
    """Decode a message body. Thresholds do not matter when decoding."""
    return _default_codec.decode(body)


def encode_request(
    payload: Any,
    context: InvocationContext | None,
    correlation_id: str,
    codec: EnvelopeCodec | None = None,
) -> str:
    """Encode a request envelope for the request queue."""
    envelope = Envelope(
        payload=payload, correlation_id=correlation_id, invocation_context=context
    )
    return (codec or _default_codec).encode(envelope)


def encode_response(
    payload: Any,
    correlation_id: str | None,
    codec: EnvelopeCodec | None = None,
) -> str:
    """Encode a response envelope; responses never carry a context."""
    envelope = Envelope(payload=payload, correlation_id=correlation_id)
    return (codec or _default_codec).encode(envelope)
