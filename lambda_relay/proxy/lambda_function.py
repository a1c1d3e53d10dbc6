"""
AWS Lambda entrypoint for the cloud proxy.

Deploy lambda-relay as the function's code and set the handler to
``lambda_relay.proxy.lambda_function.handler``. The proxy and its SQS
clients are created on the first invocation and reused while the
container stays warm.
"""

import os
from collections.abc import Mapping
from typing import Any

from loguru import logger

from lambda_relay.config import RelayConfig
from lambda_relay.core.envelope import InvocationContext
from lambda_relay.observability.logging import configure_logging_from_env
from lambda_relay.proxy.proxy import CloudProxy, ProxyStatus

# never written to the logs
SECRET_ENV_VARS = frozenset({"AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_SESSION_TOKEN"})

_PROXY: CloudProxy | None = None


def format_environment(environ: Mapping[str, str] | None = None) -> str:
    """
    Render the environment as a sorted ``export K=V ...`` line.

    The developer can paste it into a local shell to run the handler with
    the same configuration. Credentials are left out.
    """
    env = os.environ if environ is None else environ
    pairs = sorted(f"{key}={value}" for key, value in env.items() if key not in SECRET_ENV_VARS)
    return " ".join(["export", *pairs])


def get_proxy(function_arn: str | None = None) -> CloudProxy:
    """Return the container's proxy, creating it on first use."""
    global _PROXY
    if _PROXY is None:
        configure_logging_from_env()
        logger.info("{}", format_environment())
        config = RelayConfig.from_env()
        _PROXY = CloudProxy.from_config(config, function_arn=function_arn)
    return _PROXY


def reset_proxy() -> None:
    """
    Forget the cached proxy.

    Primarily used for testing.
    """
    global _PROXY
    _PROXY = None


def handler(event: Any, context: Any) -> Any:
    """
    Lambda handler: relay the event to the local runner.

    Returns:
        The local handler's response, or None in async mode or when cancelled

    Raises:
        ResponseTimeoutError: If no response arrived in time
        DeliveryError: If the response could not be decoded
    """
    proxy = get_proxy(getattr(context, "invoked_function_arn", None))
    invocation = InvocationContext.from_lambda_context(
        context, trace_id=os.environ.get("_X_AMZN_TRACE_ID")
    )
    logger.debug("Event: {}", event)

    result = proxy.invoke(event, invocation)
    if result.status in (ProxyStatus.TIMEOUT, ProxyStatus.DELIVERY_ERROR):
        raise result.error
    return result.payload
