"""Handler discovery utilities."""

import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import click
from loguru import logger

from lambda_relay.core.exceptions import HandlerLoadError
from lambda_relay.runtime.handler import load_handler


def _find_project_root() -> Path | None:
    """
    Find the project root by looking for common project markers.

    Searches upward from the current directory for:
    - pyproject.toml
    - setup.py
    - .git directory

    Returns:
        Path to project root if found, None otherwise
    """
    current = Path.cwd()

    for path in [current] + list(current.parents):
        if (path / "pyproject.toml").exists():
            return path
        if (path / "setup.py").exists():
            return path
        if (path / ".git").exists():
            return path

    return None


def _ensure_project_in_path() -> None:
    """Add the current directory and project root to sys.path if not already present."""
    cwd = str(Path.cwd())
    if cwd not in sys.path:
        sys.path.insert(0, cwd)
        logger.debug(f"Added current directory to path: {cwd}")

    project_root = _find_project_root()
    if project_root:
        root_str = str(project_root)
        if root_str not in sys.path:
            sys.path.insert(0, root_str)
            logger.debug(f"Added project root to path: {root_str}")


def resolve_handler(reference: str | None) -> Callable[..., Any]:
    """
    Import the handler named on the command line or in the config.

    The working directory and the project root are importable, so a handler
    in the developer's project is found without installing it.

    Raises:
        click.ClickException: If no handler is given or it cannot be imported
    """
    if not reference:
        raise click.ClickException(
            "No handler given. Pass HANDLER as 'package.module:function' "
            "or set runner.handler in lambda_relay.config.yaml"
        )

    _ensure_project_in_path()
    try:
        return load_handler(reference)
    except HandlerLoadError as e:
        raise click.ClickException(str(e)) from e
