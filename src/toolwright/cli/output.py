"""Rich output formatting for the Toolwright CLI.

Centralizes the shared console, the colour schemes for rule scopes and
priorities, and the table factories used by the listing commands.
"""

from __future__ import annotations

import json as json_lib
from datetime import datetime
from typing import Any, Literal

from rich.console import Console
from rich.table import Table

from toolwright.store import RulePriority, RuleScope

# =============================================================================
# Shared console instance
# =============================================================================

# JSON modes are handled by print_json() in each command, NOT by this
# Console instance itself.
console = Console()


# =============================================================================
# Color schemes
# =============================================================================


class StatusColors:
    """Color mappings for rule scopes and priorities."""

    SCOPE: dict[RuleScope, str] = {
        RuleScope.PROJECT: "cyan",
        RuleScope.CLIENT: "blue",
        RuleScope.ORGANIZATION: "magenta",
        RuleScope.GLOBAL: "green",
    }

    PRIORITY: dict[RulePriority, str] = {
        RulePriority.ERROR: "red",
        RulePriority.WARNING: "yellow",
        RulePriority.SUGGESTION: "dim",
    }

    @classmethod
    def scope(cls, scope: RuleScope) -> str:
        color = cls.SCOPE.get(scope, "white")
        return f"[{color}]{scope.value}[/{color}]"

    @classmethod
    def priority(cls, priority: RulePriority) -> str:
        color = cls.PRIORITY.get(priority, "white")
        return f"[{color}]{priority.value}[/{color}]"


# =============================================================================
# Formatters
# =============================================================================


def format_timestamp(dt: datetime | None) -> str:
    """Format a datetime for display, or "-" if None."""
    if dt is None:
        return "-"
    return dt.strftime("%Y-%m-%d %H:%M:%S")


def truncate(text: str | None, width: int) -> str:
    if not text:
        return ""
    return text if len(text) <= width else text[: width - 3] + "..."


def print_json(data: Any) -> None:
    """Print machine-readable JSON without Rich markup or wrapping."""
    console.print(
        json_lib.dumps(data, indent=2, default=str),
        markup=False,
        highlight=False,
        soft_wrap=True,
    )


# =============================================================================
# Table builders
# =============================================================================


def create_patterns_table(title: str = "Learned Patterns") -> Table:
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("ID", style="dim", width=10)
    table.add_column("Type", width=10)
    table.add_column("Signature", style="cyan", no_wrap=False)
    table.add_column("Seen", justify="right", width=6)
    table.add_column("Confidence", justify="right", width=10)
    table.add_column("Tool", width=8)
    return table


def create_tools_table(title: str = "Generated Tools") -> Table:
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Name", style="cyan")
    table.add_column("Category", width=10)
    table.add_column("Pattern", style="dim", width=10)
    table.add_column("Active", width=6)
    table.add_column("Created", width=19)
    return table


def create_rules_table(title: str = "Validation Rules") -> Table:
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Rule", style="cyan")
    table.add_column("Scope", width=12)
    table.add_column("Priority", width=10)
    table.add_column("Tech", width=12)
    table.add_column("Effect.", justify="right", width=7)
    table.add_column("Conf.", justify="right", width=6)
    table.add_column("Message", no_wrap=False)
    return table


def create_simple_table(show_header: bool = False) -> Table:
    """Create a table without box styling, for key-value displays."""
    return Table(show_header=show_header, box=None)


# =============================================================================
# Error output
# =============================================================================


def output_error(
    message: str,
    *,
    hints: list[str] | None = None,
    severity: Literal["error", "warning"] = "error",
    json_output: bool = False,
) -> None:
    """Output a formatted error or warning, or its JSON equivalent.

    Args:
        message: The error message to display.
        hints: Optional list of hint strings for the user.
        severity: "error" (red) or "warning" (yellow).
        json_output: If True, output as JSON instead of Rich markup.
    """
    if json_output:
        result: dict[str, Any] = {"success": False, "message": message}
        if hints:
            result["hints"] = hints
        print_json(result)
        return

    color = "red" if severity == "error" else "yellow"
    label = "Error" if severity == "error" else "Warning"
    console.print(f"[{color}]{label}:[/{color}] {message}")
    if hints:
        console.print()
        console.print("[dim]Hints:[/dim]")
        for hint in hints:
            console.print(f"  - {hint}")
