"""Pytest fixtures for Toolwright tests."""

import logging
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest
import structlog

from toolwright.store import LearningStore, RuleScope, ValidationRule


@pytest.fixture(autouse=True)
def reset_logging_state() -> Generator[None, None, None]:
    """Reset CLI and logging state before and after each test.

    This ensures test isolation for logging configuration and for the
    global --db/--config options recorded by the CLI callback.
    """
    from toolwright.cli import helpers

    original_log = (
        helpers._log_config.level,
        helpers._log_config.file,
        helpers._log_config.format,
    )

    helpers._log_config.configured = False
    helpers._log_config.level = "WARNING"
    helpers._log_config.file = None
    helpers._log_config.format = "console"
    helpers._store_config.db_path = None
    helpers._store_config.config_path = None

    # Reset structlog to default state
    structlog.reset_defaults()

    # Clear all handlers from root logger
    root_logger = logging.getLogger()
    original_handlers = root_logger.handlers[:]
    for handler in original_handlers:
        root_logger.removeHandler(handler)

    yield

    helpers._log_config.level, helpers._log_config.file, helpers._log_config.format = (
        original_log
    )
    helpers._log_config.configured = False
    helpers._store_config.db_path = None
    helpers._store_config.config_path = None
    structlog.reset_defaults()

    # Restore original handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in original_handlers:
        root_logger.addHandler(handler)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "learning.db"


@pytest.fixture
def store(db_path: Path) -> LearningStore:
    """Create a LearningStore backed by a temp SQLite database."""
    return LearningStore(db_path=db_path)


@pytest.fixture
def make_rule(store: LearningStore) -> Callable[..., ValidationRule]:
    """Factory creating active rules with sensible defaults.

    Each call without an explicit pattern gets a distinct one, so rule ids
    never collide.
    """
    counter = iter(range(10_000))

    def _make(**overrides: Any) -> ValidationRule:
        n = next(counter)
        fields: dict[str, Any] = {
            "scope": RuleScope.PROJECT,
            "category": "style",
            "pattern": rf"debug_{n}\(",
            "message": f"Remove debug call {n}",
            "technology": "javascript",
            "learned_from": "acme/crm",
            "client_name": "acme",
            "project_path": "acme/crm",
        }
        fields.update(overrides)
        rule = store.create_validation_rule(**fields)
        assert rule is not None
        return rule

    return _make
