"""Pattern mining and generated tool commands.

Commands:
- mine: Run one mining pass over recent successful executions
- patterns: List learned patterns
- generate: Generate the tool for a learned pattern
- tools: List generated tools
"""

from __future__ import annotations

from typing import Any

import typer

from ..helpers import handle_errors, load_config, open_store
from ..output import (
    console,
    create_patterns_table,
    create_tools_table,
    format_timestamp,
    print_json,
    truncate,
)


def _pattern_dict(pattern: Any) -> dict[str, Any]:
    return {
        "id": pattern.id,
        "pattern_type": pattern.pattern_type.value,
        "pattern_signature": pattern.pattern_signature,
        "occurrences": pattern.occurrences,
        "confidence": pattern.confidence,
        "tool_id": pattern.tool_id,
        "auto_created": pattern.auto_created,
        "first_seen": pattern.first_seen.isoformat(),
        "last_seen": pattern.last_seen.isoformat(),
    }


def _tool_dict(tool: Any) -> dict[str, Any]:
    return {
        "id": tool.id,
        "tool_name": tool.tool_name,
        "tool_category": tool.tool_category,
        "source_pattern_id": tool.source_pattern_id,
        "is_active": tool.is_active,
        "created_at": tool.created_at.isoformat(),
    }


def mine(
    hours: int = typer.Option(
        None,
        "--hours",
        "-H",
        help="Lookback window in hours (default from config)",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output as JSON for machine parsing",
    ),
) -> None:
    """Run one mining pass and record the patterns found.

    Patterns seen again gain one occurrence; strong re-observed patterns
    get a generated tool automatically.

    Examples:
        toolwright mine              # Mine the configured lookback window
        toolwright mine --hours 72   # Mine the last three days
    """
    from toolwright.learning import PatternPromoter

    with handle_errors(json_output):
        config = load_config()
        store = open_store(config)
        promoter = PatternPromoter(store, config.mining)
        patterns = promoter.detect_patterns(hours_back=hours)

    if json_output:
        print_json([_pattern_dict(p) for p in patterns])
        return

    if not patterns:
        console.print("[yellow]No patterns detected.[/yellow]")
        console.print(
            "[dim]Patterns need at least two similar successful executions "
            "inside the lookback window.[/dim]"
        )
        return

    table = create_patterns_table(title="Patterns Recorded")
    for pattern in patterns:
        table.add_row(
            pattern.id[:8],
            pattern.pattern_type.value,
            truncate(pattern.pattern_signature, 60),
            str(pattern.occurrences),
            f"{pattern.confidence:.2f}",
            "[green]yes[/green]" if pattern.tool_id else "-",
        )
    console.print(table)
    generated = sum(1 for p in patterns if p.auto_created)
    if generated:
        console.print(f"\n[green]{generated} tool(s) generated automatically.[/green]")


def patterns(
    pattern_type: str = typer.Option(
        None,
        "--type",
        "-t",
        help="Filter by pattern type (sequence, parameter)",
    ),
    min_occurrences: int = typer.Option(
        1,
        "--min-occurrences",
        "-o",
        help="Minimum number of occurrences",
    ),
    min_confidence: float = typer.Option(
        0.0,
        "--min-confidence",
        "-c",
        help="Minimum confidence (0.0-1.0)",
    ),
    limit: int = typer.Option(
        50,
        "--limit",
        "-n",
        help="Maximum number of patterns to display",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output as JSON for machine parsing",
    ),
) -> None:
    """List learned patterns, strongest first.

    Examples:
        toolwright patterns                  # All patterns
        toolwright patterns --type sequence  # Only tool sequences
        toolwright patterns -c 0.6 --json    # Confident patterns as JSON
    """
    from toolwright.store import PatternType

    with handle_errors(json_output):
        try:
            type_filter = PatternType(pattern_type) if pattern_type else None
        except ValueError:
            console.print(f"[red]Unknown pattern type: {pattern_type}[/red]")
            raise typer.Exit(1) from None

        store = open_store(load_config())
        found = store.get_patterns(
            pattern_type=type_filter,
            min_occurrences=min_occurrences,
            min_confidence=min_confidence,
            limit=limit,
        )

    if json_output:
        print_json([_pattern_dict(p) for p in found])
        return

    if not found:
        console.print("[yellow]No learned patterns found.[/yellow]")
        return

    table = create_patterns_table()
    for pattern in found:
        table.add_row(
            pattern.id[:8],
            pattern.pattern_type.value,
            truncate(pattern.pattern_signature, 60),
            str(pattern.occurrences),
            f"{pattern.confidence:.2f}",
            "[green]yes[/green]" if pattern.tool_id else "-",
        )
    console.print(table)
    console.print(f"\n[dim]Showing {len(found)} pattern(s)[/dim]")


def generate(
    pattern_id: str = typer.Argument(
        ...,
        help="Pattern ID, or a unique prefix of one",
    ),
    show_code: bool = typer.Option(
        False,
        "--show-code",
        "-s",
        help="Print the generated code",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output as JSON for machine parsing",
    ),
) -> None:
    """Generate the tool for a learned pattern.

    A pattern that already has a tool returns that tool unchanged.

    Examples:
        toolwright generate 3f2a9c1e
        toolwright generate 3f2a9c1e --show-code
    """
    from toolwright.learning import PatternPromoter

    with handle_errors(json_output):
        config = load_config()
        store = open_store(config)

        candidates = [
            p
            for p in store.get_patterns(limit=10000)
            if p.id.startswith(pattern_id)
        ]
        if len(candidates) > 1:
            console.print(f"[yellow]Multiple patterns match '{pattern_id}':[/yellow]")
            for p in candidates[:5]:
                console.print(f"  [cyan]{p.id}[/cyan] - {truncate(p.pattern_signature, 50)}")
            console.print(
                "[dim]Please provide more characters to uniquely identify the pattern.[/dim]"
            )
            raise typer.Exit(1)

        full_id = candidates[0].id if candidates else pattern_id
        promoter = PatternPromoter(store, config.mining)
        tool = promoter.generate_tool_from_pattern(full_id)

    if json_output:
        data = _tool_dict(tool)
        data["code_content"] = tool.code_content
        print_json(data)
        return

    console.print(f"[green]Tool ready:[/green] [bold]{tool.tool_name}[/bold]")
    console.print(f"[dim]Pattern: {full_id}[/dim]")
    if show_code:
        console.print()
        console.print(tool.code_content, markup=False, highlight=False)


def tools(
    include_inactive: bool = typer.Option(
        False,
        "--all",
        "-a",
        help="Include deactivated tools",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output as JSON for machine parsing",
    ),
) -> None:
    """List generated tools."""
    with handle_errors(json_output):
        store = open_store(load_config())
        found = store.list_generated_tools(active_only=not include_inactive)

    if json_output:
        print_json([_tool_dict(t) for t in found])
        return

    if not found:
        console.print("[yellow]No generated tools yet.[/yellow]")
        console.print("[dim]Run 'toolwright mine' to detect patterns.[/dim]")
        return

    table = create_tools_table()
    for tool in found:
        table.add_row(
            tool.tool_name,
            tool.tool_category,
            (tool.source_pattern_id or "-")[:8],
            "[green]yes[/green]" if tool.is_active else "[dim]no[/dim]",
            format_timestamp(tool.created_at),
        )
    console.print(table)
