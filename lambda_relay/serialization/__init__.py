"""
Envelope serialization for lambda-relay.
"""

from lambda_relay.serialization.codec import (
    DEFAULT_COMPRESSION_THRESHOLD,
    SQS_MAX_MESSAGE_BYTES,
    EnvelopeCodec,
    decode,
    encode,
    encode_request,
    encode_response,
)

__all__ = [
    "EnvelopeCodec",
    "encode",
    "decode",
    "encode_request",
    "encode_response",
    "DEFAULT_COMPRESSION_THRESHOLD",
    "SQS_MAX_MESSAGE_BYTES",
]
