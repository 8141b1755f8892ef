"""Exception hierarchy for Toolwright.

All Toolwright-specific exceptions inherit from ToolwrightError, enabling
callers to catch broad (ToolwrightError) or narrow (e.g., RuleNotFoundError).
"""

from __future__ import annotations


class ToolwrightError(Exception):
    """Base exception for all Toolwright errors."""


class StoreError(ToolwrightError):
    """Raised when the learning store cannot be opened or migrated."""


class PatternNotFoundError(ToolwrightError):
    """Raised when a learned pattern id does not exist."""

    def __init__(self, pattern_id: str) -> None:
        super().__init__(f"Pattern {pattern_id} not found")
        self.pattern_id = pattern_id


class RuleNotFoundError(ToolwrightError):
    """Raised when a validation rule id does not exist."""

    def __init__(self, rule_id: str) -> None:
        super().__init__(f"Validation rule {rule_id} not found")
        self.rule_id = rule_id


class RuleValidationError(ToolwrightError):
    """Raised when a validation rule definition is incomplete or malformed.

    Examples: missing scope/category/pattern/message, unknown scope,
    or a pattern that does not compile as a regular expression.
    """


class ConfigError(ToolwrightError):
    """Raised when a configuration file cannot be loaded or validated."""


__all__ = [
    "ConfigError",
    "PatternNotFoundError",
    "RuleNotFoundError",
    "RuleValidationError",
    "StoreError",
    "ToolwrightError",
]
