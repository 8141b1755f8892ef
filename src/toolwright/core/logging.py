"""Structured logging infrastructure for Toolwright.

Provides structured logging using structlog with Toolwright-specific context
such as the component name and the identifier of the mining pass or
propagation cycle currently running. Supports console and JSON output, with
an optional rotating log file.

Example usage:
    from toolwright.core.logging import get_logger, configure_logging

    # Configure once at startup
    configure_logging(level="DEBUG", format="console")

    # Get a component-specific logger
    logger = get_logger("miner")
    logger.info("sequence_detected", signature="a:{}->b:{}", count=3)

    # Correlate every entry emitted during one propagation cycle
    from toolwright.core.logging import CycleContext, with_context

    with with_context(CycleContext(cycle_type="propagation")):
        logger.info("rule_promoted")  # Includes cycle_id, cycle_type
"""

from __future__ import annotations

import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Literal

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

# Field names whose values are never written to logs
SENSITIVE_PATTERNS = frozenset({
    "api_key",
    "apikey",
    "token",
    "secret",
    "password",
    "credential",
    "authorization",
})

@dataclass(frozen=True)
class CycleContext:
    """Immutable correlation context for one learning pass.

    Attributes:
        cycle_type: Kind of pass (e.g. "mining", "propagation").
        cycle_id: Unique identifier for this pass.
        component: Component running the pass.
    """

    cycle_type: str
    cycle_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    component: str = "unknown"

    def to_dict(self) -> dict[str, Any]:
        """Convert context to a dictionary for logging."""
        return {
            "cycle_type": self.cycle_type,
            "cycle_id": self.cycle_id,
            "component": self.component,
        }


# ContextVar keeps the context isolated per asyncio task
_current_context: ContextVar[CycleContext | None] = ContextVar(
    "toolwright_context", default=None
)


def get_current_context() -> CycleContext | None:
    """Get the current CycleContext if set."""
    return _current_context.get()


@contextmanager
def with_context(ctx: CycleContext) -> Iterator[CycleContext]:
    """Context manager that sets CycleContext for the duration of a block.

    All log calls within the block automatically include the context fields
    when the _add_context processor is active.

    Args:
        ctx: The CycleContext to use for the block.

    Yields:
        The CycleContext that was set.
    """
    token = _current_context.set(ctx)
    try:
        yield ctx
    finally:
        _current_context.reset(token)


def _sanitize_value(key: str, value: Any) -> Any:
    key_lower = key.lower()
    for pattern in SENSITIVE_PATTERNS:
        if pattern in key_lower:
            return "[REDACTED]"
    return value


def _sanitize_event_dict(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor that redacts sensitive fields.

    Nested dicts (e.g. tool parameters) are sanitized one level deep.
    """
    sanitized: EventDict = {}
    for key, value in event_dict.items():
        if isinstance(value, dict):
            sanitized[key] = {
                k: _sanitize_value(k, v) for k, v in value.items()
            }
        else:
            sanitized[key] = _sanitize_value(key, value)
    return sanitized


def _add_timestamp(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor that adds an ISO8601 UTC timestamp."""
    event_dict["timestamp"] = datetime.now(UTC).isoformat()
    return event_dict


def _add_context(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor that adds CycleContext fields to log entries.

    Explicitly bound fields take precedence over context fields.
    """
    ctx = get_current_context()
    if ctx is not None:
        for key, value in ctx.to_dict().items():
            if key not in event_dict:
                event_dict[key] = value
    return event_dict


class ToolwrightLogger:
    """Toolwright-specific logger wrapper around structlog.

    The logger is bound to a component name and can have additional context
    bound for a specific scope (e.g., rule_id, pattern_id).

    Note: the underlying structlog logger is fetched lazily on every call so
    that loggers created at module import time still respect configuration
    applied later via configure_logging().
    """

    def __init__(
        self,
        component: str,
        **initial_context: Any,
    ) -> None:
        self._component = component
        self._context: dict[str, Any] = {"component": component, **initial_context}

    def _get_logger(self) -> structlog.stdlib.BoundLogger:
        logger: structlog.stdlib.BoundLogger = structlog.get_logger().bind(**self._context)
        return logger

    def bind(self, **context: Any) -> ToolwrightLogger:
        """Create a new logger with additional bound context."""
        new_logger = ToolwrightLogger.__new__(ToolwrightLogger)
        new_logger._component = self._component
        new_logger._context = {**self._context, **context}
        return new_logger

    def debug(self, event: str, **kw: Any) -> None:
        self._get_logger().debug(event, **kw)

    def info(self, event: str, **kw: Any) -> None:
        self._get_logger().info(event, **kw)

    def warning(self, event: str, **kw: Any) -> None:
        self._get_logger().warning(event, **kw)

    def error(self, event: str, **kw: Any) -> None:
        self._get_logger().error(event, **kw)

    def exception(self, event: str, **kw: Any) -> None:
        """Log an exception with traceback. Call from within an except block."""
        self._get_logger().exception(event, **kw)


def _get_processors(
    renderer: Processor,
    include_timestamps: bool,
    include_context: bool,
) -> list[Processor]:
    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        _sanitize_event_dict,
    ]

    if include_context:
        processors.append(_add_context)

    if include_timestamps:
        processors.append(_add_timestamp)

    processors.extend([
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        renderer,
    ])

    return processors


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO",
    format: Literal["json", "console"] = "console",  # noqa: A002
    file_path: Path | None = None,
    max_file_size_mb: int = 20,
    backup_count: int = 5,
    include_timestamps: bool = True,
    include_context: bool = True,
) -> None:
    """Configure Toolwright structured logging.

    Should be called once at application startup before any logging occurs.

    Args:
        level: Minimum log level to capture.
        format: "json" for structured output, "console" for human-readable.
        file_path: Optional file path; when set, log entries are also written
            to a rotating file.
        max_file_size_mb: Maximum log file size before rotation (MB).
        backup_count: Number of rotated log files to keep.
        include_timestamps: Whether to include ISO8601 timestamps.
        include_context: Whether to include CycleContext fields.

    Raises:
        ValueError: If level or format is not recognized.
    """
    if format not in ("json", "console"):
        raise ValueError(f"Unknown log format: {format!r}")
    log_level = logging.getLevelName(level)
    if not isinstance(log_level, int):
        raise ValueError(f"Unknown log level: {level!r}")

    handlers: list[logging.Handler] = []

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setLevel(log_level)
    handlers.append(stream_handler)

    if file_path is not None:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            file_path,
            maxBytes=max_file_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(log_level)
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in handlers:
        root_logger.addHandler(handler)

    renderer: Processor
    if format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    # cache_logger_on_first_use=False so import-time loggers see runtime config
    structlog.configure(
        processors=_get_processors(renderer, include_timestamps, include_context),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(component: str, **initial_context: Any) -> ToolwrightLogger:
    """Get a Toolwright logger for a component.

    Args:
        component: The component name (e.g., "miner", "propagation").
        **initial_context: Additional context to bind.

    Returns:
        A ToolwrightLogger instance bound to the component.
    """
    return ToolwrightLogger(component, **initial_context)


__all__ = [
    "CycleContext",
    "SENSITIVE_PATTERNS",
    "ToolwrightLogger",
    "configure_logging",
    "get_current_context",
    "get_logger",
    "with_context",
]
