"""Rule propagation and audit commands.

Commands:
- propagate: Run one propagation cycle
- propagation-stats: Show rule counts per scope and recent promotions
- knowledge: Show audit entries from the knowledge log
"""

from __future__ import annotations

import typer

from ..helpers import handle_errors, load_config, open_store
from ..output import (
    StatusColors,
    console,
    create_simple_table,
    format_timestamp,
    print_json,
    truncate,
)


def propagate(
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output as JSON for machine parsing",
    ),
) -> None:
    """Run one rule propagation cycle.

    Promotes effective rules one scope wider, learns from recent feedback,
    deactivates ineffective rules and adjusts confidence.
    """
    from toolwright.rules import RulePropagationEngine

    with handle_errors(json_output):
        config = load_config()
        store = open_store(config)
        engine = RulePropagationEngine(store, config.propagation)
        result = engine.run_cycle()

    if json_output:
        print_json(
            {
                "cycle_id": result.cycle_id,
                "succeeded": result.succeeded,
                "skipped": result.skipped,
                "error": result.error,
                "duration_ms": result.duration_ms,
                "stats": result.stats(),
                "promotions": [
                    {
                        "rule_id": p.rule_id,
                        "old_scope": p.old_scope.value,
                        "new_scope": p.new_scope.value,
                        "effectiveness_score": p.effectiveness_score,
                        "applications": p.applications,
                    }
                    for p in result.promotions
                ],
            }
        )
        if result.error:
            raise typer.Exit(1)
        return

    if result.skipped:
        console.print("[yellow]Another propagation cycle is already running.[/yellow]")
        return
    if result.error:
        console.print(f"[red]Propagation cycle failed:[/red] {result.error}")
        raise typer.Exit(1)

    console.print(
        f"[green]Propagation cycle completed[/green] [dim]({result.duration_ms}ms)[/dim]"
    )
    table = create_simple_table()
    table.add_column("Step", style="dim", width=22)
    table.add_column("Count", style="bold", justify="right")
    table.add_row("Rules promoted", str(result.rules_promoted))
    table.add_row("Rules learned", str(result.new_rules_learned))
    table.add_row("Rules refined", str(result.rules_refined))
    table.add_row("Rules deactivated", str(result.rules_deactivated))
    table.add_row("Confidence adjusted", str(result.confidence_adjusted))
    console.print(table)

    for promotion in result.promotions:
        console.print(
            f"  [cyan]{promotion.rule_id}[/cyan] "
            f"{StatusColors.scope(promotion.old_scope)} → "
            f"{StatusColors.scope(promotion.new_scope)} "
            f"[dim](effectiveness {promotion.effectiveness_score:.2f})[/dim]"
        )


def propagation_stats(
    days: int = typer.Option(
        7,
        "--days",
        "-d",
        help="Window for recent promotions, in days",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output as JSON for machine parsing",
    ),
) -> None:
    """Show active rules per scope and recent promotions."""
    with handle_errors(json_output):
        store = open_store(load_config())
        stats = store.get_propagation_stats(days=days)

    if json_output:
        print_json(stats)
        return

    console.print("[bold]Rule Propagation[/bold]")
    table = create_simple_table()
    table.add_column("Field", style="dim", width=22)
    table.add_column("Value", style="bold")
    table.add_row("Active rules", str(stats["total_rules"]))
    table.add_row("  global", str(stats["global_rules"]))
    table.add_row("  organization", str(stats["organization_rules"]))
    table.add_row("  client", str(stats["client_rules"]))
    table.add_row("  project", str(stats["project_rules"]))
    table.add_row("Inactive rules", str(stats["inactive_rules"]))
    table.add_row("Avg effectiveness", f"{stats['avg_effectiveness']:.2f}")
    table.add_row("Avg confidence", f"{stats['avg_confidence']:.2f}")
    table.add_row(f"Promotions ({days}d)", str(stats["recent_promotions"]))
    console.print(table)

    for detail in stats["promotion_details"][:10]:
        console.print(
            f"  [cyan]{detail.get('rule_id')}[/cyan] "
            f"{detail.get('old_scope')} → {detail.get('new_scope')}"
        )


def knowledge(
    entry_type: str = typer.Option(
        None,
        "--type",
        "-t",
        help="Filter by entry type (rule_promotion, system_activity, error, documentation)",
    ),
    tag: str = typer.Option(
        None,
        "--tag",
        help="Only entries carrying this tag",
    ),
    days: int = typer.Option(
        None,
        "--days",
        "-d",
        help="Only entries from the last N days",
    ),
    limit: int = typer.Option(
        20,
        "--limit",
        "-n",
        help="Maximum number of entries to display",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output as JSON for machine parsing",
    ),
) -> None:
    """Show audit entries from the knowledge log, newest first."""
    from toolwright.store import KnowledgeEntryType

    with handle_errors(json_output):
        try:
            type_filter = KnowledgeEntryType(entry_type) if entry_type else None
        except ValueError:
            console.print(f"[red]Unknown entry type: {entry_type}[/red]")
            raise typer.Exit(1) from None

        store = open_store(load_config())
        entries = store.get_knowledge_entries(
            entry_type=type_filter, tag=tag, days=days, limit=limit
        )

    if json_output:
        print_json(
            [
                {
                    "id": e.id,
                    "entry_type": e.entry_type.value,
                    "title": e.title,
                    "content": e.content,
                    "tags": e.tags,
                    "created_at": e.created_at.isoformat(),
                }
                for e in entries
            ]
        )
        return

    if not entries:
        console.print("[yellow]No knowledge entries found.[/yellow]")
        return

    for entry in entries:
        console.print(
            f"[dim]{format_timestamp(entry.created_at)}[/dim] "
            f"[bold]{entry.entry_type.value}[/bold] {entry.title}"
        )
        if entry.tags:
            console.print(f"  [dim]tags: {', '.join(entry.tags)}[/dim]")
        summary = entry.content.splitlines()[0] if entry.content else ""
        console.print(f"  {truncate(summary, 100)}", markup=False, highlight=False)
