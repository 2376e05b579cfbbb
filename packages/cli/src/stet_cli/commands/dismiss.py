"""dismiss: hide findings by ID prefix."""

from __future__ import annotations

import click
from rich.console import Console

from stet_core.dismiss import dismiss_findings
from stet_core.findings.ids import short_id
from stet_store.models import DismissalReason

console = Console()


@click.command("dismiss")
@click.argument("ids", nargs=-1, required=True)
@click.option(
    "--reason",
    type=click.Choice([r.value for r in DismissalReason]),
    default=None,
    help="Why the finding is wrong. Reasons teach later reviews what not to report.",
)
@click.pass_context
def dismiss_cmd(ctx, ids: tuple[str, ...], reason: str | None):
    """Dismiss findings by ID (at least 4 characters of the ID)."""
    resolved = dismiss_findings(ctx.obj["config"], list(ids), reason=reason)
    for finding_id in resolved:
        console.print(f"Dismissed [bold]{short_id(finding_id)}[/bold]")
