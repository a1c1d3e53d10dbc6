"""Rich styles and themes for CLI output."""

from rich.theme import Theme

# Custom theme for the lambda-relay CLI
RELAY_THEME = Theme({
    "info": "cyan",
    "warning": "yellow",
    "error": "bold red",
    "success": "bold green",
    "queue": "magenta",
    "status.succeeded": "green",
    "status.completed": "green",
    "status.configured": "green",
    "status.async": "blue",
    "status.idle": "dim",
    "status.aborted": "red",
    "status.malformed": "magenta",
    "status.missing": "yellow",
})
