# toolwright/cli/commands: Command modules for the Toolwright CLI.
#
# Each module in this package provides one or more CLI commands.

from .patterns import generate, mine, patterns, tools
from .propagation import knowledge, propagate, propagation_stats
from .rules import rules, validate

__all__ = [
    # patterns.py
    "mine",
    "patterns",
    "generate",
    "tools",
    # rules.py
    "rules",
    "validate",
    # propagation.py
    "propagate",
    "propagation_stats",
    "knowledge",
]
