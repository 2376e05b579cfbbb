"""finish: end the session and write a git note on HEAD."""

from __future__ import annotations

import json

import click
from rich.console import Console

from stet_core.finish import finish_review

console = Console()


@click.command("finish")
@click.option("--json", "as_json", is_flag=True, help="Print the note written to HEAD as JSON.")
@click.pass_context
def finish_cmd(ctx, as_json: bool):
    """Finish the review session.

    Removes the baseline worktree, appends the session's findings to the
    review history and records a summary note under refs/notes/stet.
    """
    note = finish_review(ctx.obj["config"], vcs=ctx.obj["repo"])
    if as_json:
        click.echo(json.dumps(note, indent=2))
        return
    console.print(
        f"Findings: {note['findings_count']}  Dismissed: {note['dismissals_count']}  "
        f"Hunks: {note['hunks_reviewed']}  +{note['lines_added']}/-{note['lines_removed']}"
    )
