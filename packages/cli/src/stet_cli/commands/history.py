"""history: display past review records."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from stet_core.config import state_dir_for
from stet_store.history import read_records

console = Console()


@click.command("history")
@click.option("--limit", default=20, show_default=True, help="Maximum number of records to show.")
@click.pass_context
def history_cmd(ctx, limit: int):
    """Show past review records, most recent first.

    Records are written when findings are dismissed, auto-dismissed,
    replaced, or when a session with findings is finished.
    """
    records = read_records(state_dir_for(ctx.obj["config"]))
    if not records:
        console.print("[yellow]No review history yet.[/yellow]")
        return

    records = list(reversed(records))[:limit]

    table = Table(title="Review History", show_header=True, header_style="bold cyan")
    table.add_column("Ref", width=8)
    table.add_column("Kind", width=10)
    table.add_column("Findings", justify="right", width=9)
    table.add_column("Dismissed", justify="right", width=10)
    table.add_column("Reasons")
    table.add_column("Finished At", width=20)

    for r in records:
        action = r.user_action
        if action.finished_at:
            kind = "[green]finish[/green]"
        elif action.replace_findings:
            kind = "[yellow]replace[/yellow]"
        else:
            kind = "dismiss"
        reasons = sorted({d.reason for d in action.dismissals if d.reason})
        table.add_row(
            r.diff_ref[:7],
            kind,
            str(len(r.review_output)),
            str(len(action.dismissed_ids)),
            ", ".join(reasons),
            action.finished_at.replace("T", " ").rstrip("Z"),
        )

    console.print(table)
