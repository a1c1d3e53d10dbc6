"""Commands that run the local handler."""

import json

import click

from lambda_relay.cli.output.formatters import (
    format_json,
    format_key_value,
    format_plain,
    format_table,
    print_error,
    print_info,
    print_success,
    print_warning,
)
from lambda_relay.cli.utils.discovery import resolve_handler
from lambda_relay.core.exceptions import ConfigurationError, QueueAccessError
from lambda_relay.runtime.runner import LocalRunner, RunSummary, run_payload


@click.command(name="run")
@click.argument("handler", required=False)
@click.option(
    "--once",
    is_flag=True,
    help="Exit after handling a single request",
)
@click.option(
    "--stop-on-error",
    is_flag=True,
    help="Exit when the handler fails instead of waiting for the next request",
)
@click.option(
    "--wait-seconds",
    type=click.IntRange(0, 20),
    default=None,
    help="Long-poll wait of each receive (default: 20)",
)
@click.pass_context
def run(
    ctx: click.Context,
    handler: str | None,
    once: bool,
    stop_on_error: bool,
    wait_seconds: int | None,
) -> None:
    """
    Poll the request queue and run HANDLER for every invocation.

    HANDLER is a 'package.module:function' reference. It defaults to
    runner.handler from the config file.

    A failed invocation is not deleted from the request queue. It is
    delivered again after its visibility timeout, so you can fix the
    handler and let the same request run again.

    Examples:

        # Run until Ctrl+C
        lambda-relay run app.handlers:handler

        # Handle one request, stop if the handler fails
        lambda-relay run app.handlers:handler --once --stop-on-error
    """
    config = ctx.obj["config"].replace(handler=handler, wait_seconds=wait_seconds)
    handler_func = resolve_handler(config.handler)

    try:
        config.validate()
        runner = LocalRunner.from_config(config, handler_func, stop_on_error=stop_on_error)
    except ConfigurationError as e:
        print_error(str(e))
        raise click.Abort()

    print_info(f"Request queue: {config.request_queue_url}")
    print_info(f"Response queue: {config.response_queue_url or 'none (async mode)'}")
    print_info("Press Ctrl+C to stop")

    try:
        summary = runner.run(max_jobs=1 if once else None, handle_signals=True)
    except QueueAccessError as e:
        print_error(f"Request queue is not accessible: {e}")
        raise click.Abort()
    except KeyboardInterrupt:
        print_info("Runner stopped")
        return

    _print_summary(summary, ctx.obj["output"])
    if summary.stopped_on_error:
        ctx.exit(1)


def _print_summary(summary: RunSummary, output: str) -> None:
    if output == "json":
        format_json(
            {
                "succeeded": summary.succeeded,
                "aborted": summary.aborted,
                "malformed": summary.malformed,
                "jobs": [
                    {
                        "message_id": report.message_id,
                        "correlation_id": report.correlation_id,
                        "status": report.outcome.value,
                        "receive_count": report.receive_count,
                        "error": str(report.error) if report.error else None,
                    }
                    for report in summary.reports
                ],
            }
        )
    elif output == "plain":
        format_plain([f"{r.message_id} {r.outcome.value}" for r in summary.reports])
    else:
        if summary.reports:
            format_table(
                [
                    {
                        "Message ID": report.message_id,
                        "Correlation ID": report.correlation_id,
                        "Status": report.outcome.value,
                        "Deliveries": report.receive_count,
                    }
                    for report in summary.reports
                ],
                ["Message ID", "Correlation ID", "Status", "Deliveries"],
                title="Jobs",
            )
        if summary.aborted or summary.malformed:
            print_warning(
                f"{summary.succeeded} succeeded, {summary.aborted} aborted, "
                f"{summary.malformed} malformed"
            )
        else:
            print_success(f"{summary.succeeded} succeeded")


@click.command(name="invoke")
@click.argument("handler")
@click.argument("payload_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def invoke(ctx: click.Context, handler: str, payload_file: str) -> None:
    """
    Run HANDLER once on the JSON payload in PAYLOAD_FILE.

    No queues are involved; the handler gets a synthetic Lambda context.

    Examples:

        lambda-relay invoke app.handlers:handler events/order.json
    """
    try:
        with open(payload_file, encoding="utf-8") as f:
            payload = json.load(f)
    except ValueError as e:
        raise click.ClickException(f"{payload_file} is not valid JSON: {e}") from e

    handler_func = resolve_handler(handler)
    result = run_payload(handler_func, payload)

    if result.aborted:
        print_error(f"Handler failed: {result.error}")
        ctx.exit(1)

    output = ctx.obj["output"]
    if output == "json" or output == "plain":
        format_json(result.payload)
    else:
        format_key_value(
            {
                "status": "succeeded",
                "duration_ms": round(result.duration_ms, 1),
                "response": result.payload,
            },
            title="Invocation",
        )
