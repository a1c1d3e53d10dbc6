"""
Local side of the relay.

The runner polls the request queue, invokes the handler and publishes its
response back to the cloud proxy.
"""

from lambda_relay.runtime.handler import (
    HandlerOutcome,
    HandlerResult,
    invoke_handler,
    load_handler,
)
from lambda_relay.runtime.runner import (
    JobOutcome,
    JobReport,
    LocalRunner,
    RunnerState,
    RunSummary,
    run_payload,
)

__all__ = [
    "LocalRunner",
    "RunnerState",
    "JobOutcome",
    "JobReport",
    "RunSummary",
    "run_payload",
    "HandlerOutcome",
    "HandlerResult",
    "invoke_handler",
    "load_handler",
]
