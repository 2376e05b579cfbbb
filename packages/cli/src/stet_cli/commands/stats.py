"""stats: aggregate patterns across review history."""

from __future__ import annotations

from collections import Counter

import click
from rich.console import Console
from rich.table import Table

from stet_core.config import state_dir_for
from stet_store.history import read_records

console = Console()


@click.command("stats")
@click.option("--top", default=10, show_default=True, help="Number of top entries to show per category.")
@click.pass_context
def stats_cmd(ctx, top: int):
    """Show aggregated review statistics for this repository.

    Reports how many findings were raised and dismissed, why they were
    dismissed, the severity distribution and the most flagged files. A high
    false-positive share is a hint to raise the strictness preset.
    """
    records = read_records(state_dir_for(ctx.obj["config"]))
    if not records:
        console.print("[yellow]No review history yet.[/yellow]")
        return

    finished = [r for r in records if r.user_action.finished_at]
    reason_counter: Counter[str] = Counter()
    severity_counter: Counter[str] = Counter()
    file_counter: Counter[str] = Counter()

    for record in records:
        for dismissal in record.user_action.dismissals:
            reason_counter[dismissal.reason or "unspecified"] += 1
    for record in finished:
        for finding in record.review_output:
            severity_counter[finding.severity] += 1
            file_counter[finding.file] += 1

    total_findings = sum(severity_counter.values())
    total_dismissals = sum(reason_counter.values())

    # --- Summary ---
    console.print("\n[bold]Review stats[/bold]")
    console.print(f"  Finished sessions: {len(finished)}")
    console.print(f"  Total findings:    {total_findings}")
    console.print(f"  Total dismissals:  {total_dismissals}")
    if finished:
        console.print(f"  Avg per session:   {total_findings / len(finished):.1f}")

    # --- Dismissal reasons ---
    if reason_counter:
        reason_table = Table(title="Dismissal Reasons", show_header=True)
        reason_table.add_column("Reason", style="bold")
        reason_table.add_column("Count", justify="right")
        reason_table.add_column("% of total", justify="right")
        for reason, count in reason_counter.most_common():
            reason_table.add_row(reason, str(count), f"{count / total_dismissals * 100:.1f}%")
        console.print(reason_table)

    # --- Severity breakdown ---
    if severity_counter:
        sev_table = Table(title="Severity Breakdown", show_header=True)
        sev_table.add_column("Severity", style="bold")
        sev_table.add_column("Count", justify="right")
        sev_table.add_column("% of total", justify="right")
        _sev_style = {"error": "red", "warning": "yellow", "info": "blue", "nitpick": "dim"}
        for sev in ["error", "warning", "info", "nitpick"]:
            count = severity_counter.get(sev, 0)
            pct = f"{count / total_findings * 100:.1f}%" if total_findings else "0%"
            style = _sev_style.get(sev, "white")
            sev_table.add_row(f"[{style}]{sev}[/{style}]", str(count), pct)
        console.print(sev_table)

    # --- Most flagged files ---
    if file_counter:
        file_table = Table(title=f"Top {top} Most Flagged Files", show_header=True)
        file_table.add_column("File")
        file_table.add_column("Findings", justify="right")
        for file_path, count in file_counter.most_common(top):
            file_table.add_row(file_path, str(count))
        console.print(file_table)
