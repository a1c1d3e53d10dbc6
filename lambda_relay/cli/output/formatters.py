"""Output formatting utilities using Rich."""

import json
from typing import Any

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.syntax import Syntax
from rich.table import Table

from lambda_relay.cli.output.styles import RELAY_THEME

console = Console(theme=RELAY_THEME)
err_console = Console(theme=RELAY_THEME, stderr=True)


def format_table(
    data: list[dict[str, Any]],
    columns: list[str],
    title: str | None = None,
) -> None:
    """
    Format and print data as a Rich table.

    Args:
        data: List of dictionaries containing row data
        columns: List of column names to display
        title: Optional table title

    Examples:
        data = [
            {"queue": "request", "url": "https://sqs...", "status": "configured"},
            {"queue": "response", "url": "-", "status": "missing"},
        ]
        format_table(data, ["queue", "url", "status"], title="Queues")
    """
    if not data:
        console.print("[dim]No data to display[/dim]")
        return

    table = Table(
        title=title,
        show_header=True,
        header_style="bold magenta",
        box=box.ROUNDED,
    )

    for col in columns:
        table.add_column(col, style="cyan", overflow="fold")

    for row in data:
        cells = []
        for col in columns:
            value = row.get(col, "")
            if col.lower() == "status":
                value = format_status(str(value))
            elif value is None:
                value = "-"
            else:
                value = escape(str(value))
            cells.append(value)
        table.add_row(*cells)

    console.print(table)


def format_json(data: Any, indent: int = 2) -> None:
    """
    Format and print data as JSON.

    Printed without syntax highlighting when output is not a terminal, so
    the result can be piped into other tools.
    """
    json_str = json.dumps(data, indent=indent, default=str)
    if console.is_terminal:
        console.print(Syntax(json_str, "json", theme="monokai", line_numbers=False))
    else:
        console.print(json_str, markup=False, highlight=False, soft_wrap=True)


def format_plain(data: list[str]) -> None:
    """Print data as plain text, one item per line."""
    for item in data:
        console.print(item, markup=False, highlight=False, soft_wrap=True)


def format_status(status: str) -> str:
    """
    Colorize a job or queue status.

    Examples:
        >>> format_status("succeeded")
        '[status.succeeded]succeeded[/status.succeeded]'
    """
    style = f"status.{status.lower()}"
    if style not in RELAY_THEME.styles:
        return status
    return f"[{style}]{status}[/{style}]"


def format_key_value(data: dict[str, Any], title: str | None = None) -> None:
    """
    Format and print key-value pairs.

    Examples:
        data = {"status": "succeeded", "duration_ms": 12}
        format_key_value(data, title="Invocation")
    """
    if title:
        console.print(f"\n[bold magenta]{title}[/bold magenta]")

    for key, value in data.items():
        if isinstance(value, (dict, list)):
            value_str = escape(json.dumps(value, indent=2, default=str))
        elif value is None:
            value_str = "[dim]None[/dim]"
        else:
            value_str = escape(str(value))

        if key.lower() == "status":
            value_str = format_status(value_str)

        console.print(f"  [cyan]{key}:[/cyan] {value_str}", highlight=False)


def print_success(message: str) -> None:
    """Print success message."""
    console.print(f"[success]✓[/success] {escape(message)}")


def print_error(message: str) -> None:
    """Print error message."""
    err_console.print(f"[error]✗[/error] {escape(message)}")


def print_warning(message: str) -> None:
    """Print warning message."""
    console.print(f"[warning]⚠[/warning] {escape(message)}")


def print_info(message: str) -> None:
    """Print info message."""
    console.print(f"[info]ℹ[/info] {escape(message)}")
