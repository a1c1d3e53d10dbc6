"""Queue management commands."""

import click

from lambda_relay.cli.output.formatters import (
    format_json,
    format_plain,
    format_table,
    print_error,
    print_info,
    print_success,
    print_warning,
)
from lambda_relay.config import RelayConfig
from lambda_relay.core.exceptions import ConfigurationError, QueueError
from lambda_relay.queues.sqs import create_sqs_client, discover_default_queues

DEFAULT_CANCEL_MESSAGE = "cancel"


@click.command(name="cancel")
@click.option(
    "--message",
    default=DEFAULT_CANCEL_MESSAGE,
    show_default=True,
    help="Text to send; anything that is not a JSON object cancels the wait",
)
@click.pass_context
def cancel(ctx: click.Context, message: str) -> None:
    """
    Release a proxy that is waiting for a response.

    Sends a message that is not a relay envelope to the response queue.
    The waiting proxy deletes it and returns without a response.

    Examples:

        lambda-relay cancel
    """
    config: RelayConfig = ctx.obj["config"]
    if not config.has_response_queue:
        raise click.ClickException("No response queue configured, nothing is waiting")

    try:
        message_id = config.response_queue().send(message)
    except (ConfigurationError, QueueError) as e:
        print_error(f"Failed to send cancel message: {e}")
        raise click.Abort()

    print_success(f"Cancel message {message_id} sent to {config.response_queue_url}")


@click.command(name="purge")
@click.option(
    "--response",
    "target",
    flag_value="response",
    default=True,
    help="Drain the response queue (default)",
)
@click.option(
    "--request",
    "target",
    flag_value="request",
    help="Drain the request queue, dropping pending invocations",
)
@click.pass_context
def purge(ctx: click.Context, target: str) -> None:
    """
    Delete every visible message from a queue.

    Examples:

        # Drop stale responses
        lambda-relay purge

        # Drop requests that piled up while the runner was down
        lambda-relay purge --request
    """
    config: RelayConfig = ctx.obj["config"]

    try:
        if target == "request":
            queue = config.request_queue()
        else:
            queue = config.response_queue()
            if queue is None:
                raise click.ClickException("No response queue configured")
        count = queue.purge()
    except (ConfigurationError, QueueError) as e:
        print_error(f"Failed to purge the {target} queue: {e}")
        raise click.Abort()

    print_success(f"Purged {count} message(s) from {queue.url}")


@click.command(name="queues")
@click.option(
    "--discover/--no-discover",
    default=True,
    help="Look up the default queues in the AWS account when none are configured",
)
@click.pass_context
def queues(ctx: click.Context, discover: bool) -> None:
    """
    Show the configured request and response queues.

    Examples:

        lambda-relay queues

        lambda-relay --output json queues
    """
    config: RelayConfig = ctx.obj["config"]
    output = ctx.obj["output"]

    request_url = config.request_queue_url
    response_url = config.response_queue_url
    source = "config"

    show_notes = output == "table"

    if not request_url and discover:
        if show_notes:
            print_info("No request queue configured, looking up the default queues")
        try:
            client = create_sqs_client(region=config.region, endpoint_url=config.endpoint_url)
            request_url, discovered_response = discover_default_queues(client)
        except (ConfigurationError, QueueError) as e:
            if show_notes:
                print_warning(f"Queue discovery failed: {e}")
        else:
            response_url = response_url or discovered_response
            source = "discovered"

    rows = [
        {
            "queue": "request",
            "url": request_url,
            "status": "configured" if request_url else "missing",
        },
        {
            "queue": "response",
            "url": response_url,
            "status": "configured" if response_url else "async",
        },
    ]

    if output == "json":
        format_json({"source": source, "queues": rows})
    elif output == "plain":
        format_plain([f"{row['queue']} {row['url'] or '-'}" for row in rows])
    else:
        format_table(rows, ["queue", "url", "status"], title="Queues")

    if show_notes and source == "discovered" and request_url:
        print_info(f"Set LAMBDA_RELAY_REQ_QUEUE_URL={request_url} to use it")
