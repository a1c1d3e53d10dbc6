"""lambda-relay CLI - Run AWS Lambda handlers locally."""

import click

from lambda_relay import __version__
from lambda_relay.config import load_config
from lambda_relay.core.exceptions import ConfigurationError
from lambda_relay.observability.logging import configure_logging


@click.group()
@click.version_option(version=__version__, prog_name="lambda-relay")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    envvar="LAMBDA_RELAY_CONFIG",
    help="Config file (default: ./lambda_relay.config.yaml)",
)
@click.option(
    "--request-queue",
    help="Request queue URL (overrides LAMBDA_RELAY_REQ_QUEUE_URL)",
)
@click.option(
    "--response-queue",
    help="Response queue URL (overrides LAMBDA_RELAY_RESP_QUEUE_URL)",
)
@click.option(
    "--region",
    help="AWS region of the queues",
)
@click.option(
    "--output",
    type=click.Choice(["table", "json", "plain"], case_sensitive=False),
    default="table",
    help="Output format (default: table)",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose logging",
)
@click.pass_context
def main(
    ctx: click.Context,
    config_path: str | None,
    request_queue: str | None,
    response_queue: str | None,
    region: str | None,
    output: str,
    verbose: bool,
) -> None:
    """
    lambda-relay CLI - Run AWS Lambda handlers locally.

    Deploy the relay proxy in place of your Lambda function, then run your
    handler on this machine. Invocations reach it through an SQS request
    queue; its responses go back through the response queue.

    Examples:

        # Run a handler against the configured queues
        lambda-relay run app.handlers:handler

        # Handle a single invocation and exit
        lambda-relay run app.handlers:handler --once

        # Run the handler on a saved payload
        lambda-relay invoke app.handlers:handler payload.json

        # Release a proxy that is waiting for a response
        lambda-relay cancel

    Configuration:

        - CLI flags (highest priority)
        - Environment variables (LAMBDA_RELAY_REQ_QUEUE_URL, LAMBDA_RELAY_RESP_QUEUE_URL, ...)
        - Config file (lambda_relay.config.yaml)
    """
    try:
        config = load_config(
            config_path,
            request_queue_url=request_queue,
            response_queue_url=response_queue,
            region=region,
        )
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e

    configure_logging(
        level="DEBUG" if verbose else config.log_level.upper(),
        json_logs=config.log_format == "json",
        show_context=verbose,
    )

    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["output"] = output
    ctx.obj["verbose"] = verbose


# Import and register commands
from lambda_relay.cli.commands.queues import cancel, purge, queues  # noqa: E402
from lambda_relay.cli.commands.run import invoke, run  # noqa: E402

main.add_command(run)
main.add_command(invoke)
main.add_command(cancel)
main.add_command(purge)
main.add_command(queues)


# Export main for entry point
__all__ = ["main"]
