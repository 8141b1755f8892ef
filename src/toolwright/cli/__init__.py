"""Toolwright CLI.

The CLI is built using Typer and organized into command modules:

    cli/
    ├── __init__.py           # This file - app assembly
    ├── helpers.py            # Global option state, config and store loading
    ├── output.py             # Rich formatting
    └── commands/
        ├── __init__.py       # Command exports
        ├── patterns.py       # mine, patterns, generate, tools
        ├── rules.py          # rules, validate
        └── propagation.py    # propagate, propagation-stats, knowledge

Global options (--db, --config, logging) are recorded by callbacks before
any command runs and read back by the commands through ``helpers``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from toolwright import __version__

from . import helpers as helpers
from .commands import (
    generate,
    knowledge,
    mine,
    patterns,
    propagate,
    propagation_stats,
    rules,
    tools,
    validate,
)
from .helpers import (
    configure_global_logging,
    set_config_path,
    set_db_path,
    set_log_file,
    set_log_format,
    set_log_level,
)
from .output import console

# =============================================================================
# Typer app definition
# =============================================================================

app = typer.Typer(
    name="toolwright",
    help="Adaptive learning core: pattern mining, tool generation and scoped rules",
    add_completion=False,
)


# =============================================================================
# Global option callbacks
# =============================================================================


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"Toolwright v{__version__}")
        raise typer.Exit()


def db_callback(value: Path | None) -> Path | None:
    set_db_path(value)
    return value


def config_callback(value: Path | None) -> Path | None:
    set_config_path(value)
    return value


def log_level_callback(value: str | None) -> str | None:
    """Set log level from CLI option."""
    if value:
        set_log_level(value)
    return value


def log_file_callback(value: Path | None) -> Path | None:
    """Set log file path from CLI option."""
    if value:
        set_log_file(value)
    return value


def log_format_callback(value: str | None) -> str | None:
    """Set log format from CLI option."""
    if value:
        set_log_format(value)
    return value


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    db: Annotated[
        Path | None,
        typer.Option(
            "--db",
            callback=db_callback,
            help="Learning database path (overrides the config file)",
            envvar="TOOLWRIGHT_DB",
        ),
    ] = None,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            callback=config_callback,
            help="YAML configuration file",
            envvar="TOOLWRIGHT_CONFIG",
        ),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log-level",
            "-L",
            callback=log_level_callback,
            help="Logging level (DEBUG, INFO, WARNING, ERROR)",
            envvar="TOOLWRIGHT_LOG_LEVEL",
        ),
    ] = None,
    log_file: Annotated[
        Path | None,
        typer.Option(
            "--log-file",
            callback=log_file_callback,
            help="Path for log file output",
            envvar="TOOLWRIGHT_LOG_FILE",
        ),
    ] = None,
    log_format: Annotated[
        str | None,
        typer.Option(
            "--log-format",
            callback=log_format_callback,
            help="Log format: json or console",
            envvar="TOOLWRIGHT_LOG_FORMAT",
        ),
    ] = None,
) -> None:
    """Toolwright - learns tools and validation rules from usage."""
    configure_global_logging(console)


# =============================================================================
# Command registration
# =============================================================================

# Pattern mining and generated tools
app.command()(mine)
app.command()(patterns)
app.command()(generate)
app.command()(tools)

# Validation rules
app.command()(rules)
app.command()(validate)

# Propagation and audit
app.command()(propagate)
app.command(name="propagation-stats")(propagation_stats)
app.command()(knowledge)


# =============================================================================
# Public API
# =============================================================================

__all__ = [
    "app",
    "main",
    "console",
]
