"""
Data models exchanged over the request and response queues.

An Envelope carries a payload, its invocation context (request direction
only) and an explicit correlation id so the proxy can tell the answer to
its own request from a stale response.
"""

import time
import uuid
from dataclasses import dataclass, field
from typing import Any

# Lambda's hard upper bound on invocation duration
LAMBDA_MAX_TIMEOUT_MS = 900_000


def new_correlation_id() -> str:
    """Generate a correlation id for a new request."""
    return uuid.uuid4().hex


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass
class InvocationContext:
    """
    Metadata of the cloud invocation, passed through unmodified.

    Fields mirror the AWS Lambda Python context object. Unknown keys read
    from the wire are kept in ``extra`` so the context round-trips intact.
    """

    request_id: str | None = None
    deadline_ms: int | None = None
    invoked_function_arn: str | None = None
    function_name: str | None = None
    function_version: str | None = None
    memory_limit_mb: int | None = None
    log_group_name: str | None = None
    log_stream_name: str | None = None
    xray_trace_id: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    _FIELDS = (
        "request_id",
        "deadline_ms",
        "invoked_function_arn",
        "function_name",
        "function_version",
        "memory_limit_mb",
        "log_group_name",
        "log_stream_name",
        "xray_trace_id",
    )

    def remaining_time_ms(self, current_ms: int | None = None) -> int | None:
        """Milliseconds left until the deadline, or None if there is no deadline."""
        if self.deadline_ms is None:
            return None
        current = now_ms() if current_ms is None else current_ms
        return max(self.deadline_ms - current, 0)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: dict[str, Any] = dict(self.extra)
        for name in self._FIELDS:
            data[name] = getattr(self, name)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InvocationContext":
        """Create from dictionary."""
        known = {name: data.get(name) for name in cls._FIELDS}
        extra = {key: value for key, value in data.items() if key not in cls._FIELDS}
        return cls(**known, extra=extra)

    @classmethod
    def from_lambda_context(
        cls,
        context: Any,
        trace_id: str | None = None,
    ) -> "InvocationContext":
        """
        Build from the context object AWS Lambda passes to a Python handler.

        Args:
            context: The Lambda context object
            trace_id: X-Ray trace header (``_X_AMZN_TRACE_ID`` inside Lambda)
        """
        remaining = context.get_remaining_time_in_millis()
        memory = getattr(context, "memory_limit_in_mb", None)
        return cls(
            request_id=getattr(context, "aws_request_id", None),
            deadline_ms=now_ms() + int(remaining),
            invoked_function_arn=getattr(context, "invoked_function_arn", None),
            function_name=getattr(context, "function_name", None),
            function_version=getattr(context, "function_version", None),
            memory_limit_mb=int(memory) if memory is not None else None,
            log_group_name=getattr(context, "log_group_name", None),
            log_stream_name=getattr(context, "log_stream_name", None),
            xray_trace_id=trace_id,
        )


@dataclass
class Envelope:
    """
    The unit exchanged on both queues.

    ``correlation_id`` is None only for bare JSON bodies written by hand,
    which carry no envelope metadata.
    """

    payload: Any
    correlation_id: str | None = field(default_factory=new_correlation_id)
    invocation_context: InvocationContext | None = None
    is_compressed: bool = False

    def content(self) -> dict[str, Any]:
        """The (payload, context) pair as it is serialized and optionally compressed."""
        return {
            "payload": self.payload,
            "invocation_context": (
                self.invocation_context.to_dict() if self.invocation_context else None
            ),
        }


class LocalLambdaContext:
    """
    Stand-in for the Lambda context object on the developer machine.

    Exposes the attribute names of the AWS Python runtime so unmodified
    handlers can run locally.
    """

    def __init__(self, invocation: InvocationContext | None = None) -> None:
        invocation = invocation or synthetic_context()
        self.invocation = invocation
        self.aws_request_id = invocation.request_id
        self.function_name = invocation.function_name
        self.function_version = invocation.function_version
        self.invoked_function_arn = invocation.invoked_function_arn
        self.memory_limit_in_mb = invocation.memory_limit_mb
        self.log_group_name = invocation.log_group_name
        self.log_stream_name = invocation.log_stream_name
        self.identity = None
        self.client_context = None

    def get_remaining_time_in_millis(self) -> int:
        remaining = self.invocation.remaining_time_ms()
        return LAMBDA_MAX_TIMEOUT_MS if remaining is None else remaining

    def __repr__(self) -> str:
        return (
            f"LocalLambdaContext(aws_request_id={self.aws_request_id!r}, "
            f"function_name={self.function_name!r})"
        )


def synthetic_context(request_id: str = "local-payload") -> InvocationContext:
    """Context used when a payload did not come from a cloud invocation."""
    return InvocationContext(
        request_id=request_id,
        # far enough in the future to never expire during a debugging session
        deadline_ms=now_ms() + 365 * 24 * 3600 * 1000,
        invoked_function_arn="from-local-payload",
        function_name="local",
        function_version="$LATEST",
        memory_limit_mb=128,
    )
