"""
Loading and invoking the local handler.

A handler is any callable with the AWS Lambda Python signature
``handler(event, context)``. Coroutine functions are run to completion.
Failures, including a handler calling sys.exit(), are captured in a
HandlerResult instead of being raised, so a broken handler never unwinds
the runner loop.
"""

import asyncio
import importlib
import inspect
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from loguru import logger

from lambda_relay.core.exceptions import HandlerError, HandlerLoadError


class HandlerOutcome(Enum):
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass
class HandlerResult:
    """Result of one handler invocation."""

    outcome: HandlerOutcome
    payload: Any = None
    error: HandlerError | None = None
    duration_ms: float = 0.0

    @property
    def aborted(self) -> bool:
        return self.outcome == HandlerOutcome.ABORTED


def invoke_handler(handler: Callable[..., Any], payload: Any, context: Any) -> HandlerResult:
    """
    Call the handler and capture its outcome.

    Args:
        handler: Local handler
        payload: Event payload
        context: LocalLambdaContext passed as the second argument

    Returns:
        HandlerResult, ABORTED if the handler raised
    """
    started = time.perf_counter()
    try:
        response = handler(payload, context)
        if inspect.isawaitable(response):
            response = asyncio.run(_await(response))
    except (Exception, SystemExit) as e:
        duration_ms = (time.perf_counter() - started) * 1000
        logger.exception(f"Handler raised {type(e).__name__}: {e}")
        return HandlerResult(
            outcome=HandlerOutcome.ABORTED,
            error=HandlerError(str(e), error_type=type(e).__name__),
            duration_ms=duration_ms,
        )

    return HandlerResult(
        outcome=HandlerOutcome.COMPLETED,
        payload=response,
        duration_ms=(time.perf_counter() - started) * 1000,
    )


async def _await(awaitable: Any) -> Any:
    return await awaitable


def load_handler(reference: str) -> Callable[..., Any]:
    """
    Import a handler from a ``"package.module:function"`` reference.

    ``"package.module.function"`` is accepted too, the last dotted part
    naming the function.

    Raises:
        HandlerLoadError: If the module cannot be imported or the attribute is not callable
    """
    if ":" in reference:
        module_path, _, attribute = reference.partition(":")
    else:
        module_path, _, attribute = reference.rpartition(".")

    if not module_path or not attribute:
        raise HandlerLoadError(
            f"Invalid handler reference {reference!r}, expected 'package.module:function'"
        )

    try:
        module = importlib.import_module(module_path)
    except ImportError as e:
        raise HandlerLoadError(f"Cannot import module '{module_path}': {e}") from e

    handler = module
    for part in attribute.split("."):
        handler = getattr(handler, part, None)
        if handler is None:
            raise HandlerLoadError(f"Module '{module_path}' has no attribute '{attribute}'")

    if not callable(handler):
        raise HandlerLoadError(f"Handler '{reference}' is not callable")

    logger.debug(f"Loaded handler {reference}")
    return handler
