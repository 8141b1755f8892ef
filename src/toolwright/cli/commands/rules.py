"""Validation rule commands.

Commands:
- rules: List validation rules with filtering
- validate: Check a file against the rules visible to a client/project
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import typer

from ..helpers import handle_errors, load_config, open_store
from ..output import (
    StatusColors,
    console,
    create_rules_table,
    print_json,
    truncate,
)


def _rule_dict(rule: Any) -> dict[str, Any]:
    return {
        "rule_id": rule.rule_id,
        "scope": rule.scope.value,
        "category": rule.category,
        "priority": rule.priority.value,
        "technology": rule.technology,
        "pattern_text": rule.pattern_text,
        "message": rule.message,
        "client_name": rule.client_name,
        "project_path": rule.project_path,
        "confidence": rule.confidence,
        "effectiveness_score": rule.effectiveness_score,
        "occurrences": rule.occurrences,
        "is_active": rule.is_active,
    }


def rules(
    scope: str = typer.Option(
        None,
        "--scope",
        "-s",
        help="Filter by scope (project, client, organization, global)",
    ),
    technology: str = typer.Option(
        None,
        "--tech",
        "-t",
        help="Filter by technology",
    ),
    include_inactive: bool = typer.Option(
        False,
        "--all",
        "-a",
        help="Include deactivated rules",
    ),
    limit: int = typer.Option(
        100,
        "--limit",
        "-n",
        help="Maximum number of rules to display",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output as JSON for machine parsing",
    ),
) -> None:
    """List validation rules, broadest scope first.

    Examples:
        toolwright rules                   # Active rules
        toolwright rules --scope global    # Only global rules
        toolwright rules --all --json      # Everything, as JSON
    """
    from toolwright.store import RuleScope

    with handle_errors(json_output):
        try:
            scope_filter = RuleScope(scope) if scope else None
        except ValueError:
            console.print(f"[red]Unknown scope: {scope}[/red]")
            raise typer.Exit(1) from None

        store = open_store(load_config())
        found = store.list_rules(
            scope=scope_filter,
            technology=technology,
            active_only=not include_inactive,
            limit=limit,
        )

    if json_output:
        print_json([_rule_dict(r) for r in found])
        return

    if not found:
        console.print("[yellow]No validation rules found.[/yellow]")
        return

    table = create_rules_table()
    for rule in found:
        name = rule.rule_id if rule.is_active else f"[dim]{rule.rule_id}[/dim]"
        table.add_row(
            name,
            StatusColors.scope(rule.scope),
            StatusColors.priority(rule.priority),
            rule.technology,
            f"{rule.effectiveness_score:.2f}",
            f"{rule.confidence:.2f}",
            truncate(rule.message, 50),
        )
    console.print(table)
    console.print(f"\n[dim]Showing {len(found)} rule(s)[/dim]")


def validate(
    file: Path = typer.Argument(
        ...,
        help="File to validate",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    client: str = typer.Option(
        None,
        "--client",
        "-c",
        help="Client the file belongs to",
    ),
    project: str = typer.Option(
        None,
        "--project",
        "-p",
        help="Project the file belongs to",
    ),
    technology: list[str] = typer.Option(
        None,
        "--tech",
        "-t",
        help="Only apply rules for this technology (repeatable)",
    ),
    track: bool = typer.Option(
        True,
        "--track/--no-track",
        help="Record rule applications for effectiveness scoring",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output as JSON for machine parsing",
    ),
) -> None:
    """Check a file against the rules visible to a client and project.

    Exits with status 1 when any error-priority rule matches.

    Examples:
        toolwright validate script.js --client acme --project acme/crm
        toolwright validate script.js -c acme --no-track --json
    """
    from toolwright.rules import RuleApplicationTracker, RuleValidator

    with handle_errors(json_output):
        config = load_config()
        store = open_store(config)
        tracker = RuleApplicationTracker(store, config.effectiveness)
        validator = RuleValidator(store, tracker)
        report = validator.validate_code(
            file.read_text(encoding="utf-8"),
            file_path=str(file),
            client_name=client,
            project_path=project,
            technologies=technology or None,
            track=track,
        )

    if json_output:
        print_json(
            {
                "file": str(file),
                "rules_applied": report.rules_applied,
                "execution_time_ms": report.execution_time_ms,
                "issues": [
                    {
                        "rule_id": i.rule_id,
                        "severity": i.severity.value,
                        "line": i.line,
                        "column": i.column,
                        "message": i.message,
                        "matched_text": i.matched_text,
                        "suggestion": i.suggestion,
                        "auto_fix_replacement": i.auto_fix_replacement,
                    }
                    for i in report.issues
                ],
            }
        )
        if report.errors:
            raise typer.Exit(1)
        return

    if not report.issues:
        console.print(
            f"[green]✓[/green] {file} passed {report.rules_applied} rule(s)"
        )
        return

    for issue in report.issues:
        console.print(
            f"{file}:{issue.line}:{issue.column} "
            f"{StatusColors.priority(issue.severity)} {issue.message} "
            f"[dim]({issue.rule_id})[/dim]"
        )
        if issue.suggestion:
            console.print(f"  [dim]→ {issue.suggestion}[/dim]")
        if issue.auto_fix_replacement is not None:
            console.print("  [dim]fix:[/dim] ", end="")
            console.print(issue.auto_fix_replacement.strip(), markup=False, highlight=False)

    console.print(
        f"\n[bold]{len(report.errors)} error(s)[/bold], "
        f"{len(report.warnings)} warning(s), "
        f"{len(report.suggestions)} suggestion(s)"
    )
    if report.errors:
        raise typer.Exit(1)
