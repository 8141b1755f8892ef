"""Shared utilities for Toolwright CLI commands.

Global options (database, config file, logging) are recorded here by the
app callback and read back by every command, so commands do not have to
thread them through their own signatures.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

import typer
from rich.console import Console

from toolwright.core.config import ToolwrightConfig
from toolwright.core.errors import ToolwrightError
from toolwright.core.logging import configure_logging, get_logger
from toolwright.store import LearningStore

_logger = get_logger("cli")


# =============================================================================
# Logging configuration
# =============================================================================


@dataclass
class CliLoggingConfig:
    """CLI logging state set by the global options."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"
    file: Path | None = None
    format: Literal["json", "console"] = "console"
    configured: bool = False


_log_config = CliLoggingConfig()


def get_log_level() -> str:
    return _log_config.level


def set_log_level(level: str) -> None:
    _log_config.level = level.upper()  # type: ignore[assignment]


def get_log_file() -> Path | None:
    return _log_config.file


def set_log_file(path: Path | None) -> None:
    _log_config.file = path


def get_log_format() -> str:
    return _log_config.format


def set_log_format(fmt: str) -> None:
    _log_config.format = fmt  # type: ignore[assignment]


def configure_global_logging(console: Console) -> None:
    """Configure logging from the global CLI options, once per session.

    Raises:
        typer.Exit: If logging configuration fails.
    """
    if _log_config.configured:
        return

    try:
        configure_logging(
            level=_log_config.level,
            format=_log_config.format,
            file_path=_log_config.file,
        )
        _log_config.configured = True
    except ValueError as e:
        console.print(f"[red]Logging configuration error:[/red] {e}")
        raise typer.Exit(1) from None


def reset_logging_state() -> None:
    """Allow logging to be reconfigured (used by tests)."""
    _log_config.configured = False


# =============================================================================
# Config and store
# =============================================================================


@dataclass
class CliStoreConfig:
    """Database and config file chosen by the global options."""

    db_path: Path | None = None
    config_path: Path | None = None


_store_config = CliStoreConfig()


def set_db_path(path: Path | None) -> None:
    _store_config.db_path = path


def set_config_path(path: Path | None) -> None:
    _store_config.config_path = path


def load_config() -> ToolwrightConfig:
    """Load the configuration named by ``--config``, or the defaults.

    Raises:
        ConfigError: If the file cannot be loaded or validated.
    """
    if _store_config.config_path is None:
        return ToolwrightConfig()
    return ToolwrightConfig.from_yaml(_store_config.config_path)


def open_store(config: ToolwrightConfig) -> LearningStore:
    """Open the learning store; ``--db`` overrides the configured path."""
    db_path = _store_config.db_path or config.db_path
    _logger.debug("cli_store_opened", db_path=str(db_path))
    return LearningStore(db_path)


@contextmanager
def handle_errors(json_output: bool = False) -> Iterator[None]:
    """Report Toolwright errors to the user and exit with status 1."""
    from toolwright.cli.output import output_error

    try:
        yield
    except ToolwrightError as e:
        _logger.debug("cli_command_failed", error=str(e), error_type=type(e).__name__)
        output_error(str(e), json_output=json_output)
        raise typer.Exit(1) from None


__all__ = [
    "CliLoggingConfig",
    "CliStoreConfig",
    "configure_global_logging",
    "get_log_file",
    "get_log_format",
    "get_log_level",
    "handle_errors",
    "load_config",
    "open_store",
    "reset_logging_state",
    "set_config_path",
    "set_db_path",
    "set_log_file",
    "set_log_format",
    "set_log_level",
]
