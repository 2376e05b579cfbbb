"""list and status: inspect the active session."""

from __future__ import annotations

import json

import click
from rich.console import Console

from stet_cli.render import echo_findings_json, print_findings
from stet_core.config import state_dir_for
from stet_core.errors import NoSessionError
from stet_store.session import load_session

console = Console()


def _load_active(config: dict):
    session = load_session(state_dir_for(config))
    if not session.active:
        raise NoSessionError()
    return session


@click.command("list")
@click.option("--all", "show_all", is_flag=True, help="Include dismissed findings.")
@click.option("--json", "as_json", is_flag=True, help="Print findings as JSON.")
@click.pass_context
def list_cmd(ctx, show_all: bool, as_json: bool):
    """List the session's active findings."""
    session = _load_active(ctx.obj["config"])
    findings = session.findings if show_all else session.active_findings()
    if as_json:
        echo_findings_json(findings)
        return
    print_findings(console, findings, title="All findings" if show_all else "Active findings")


@click.command("status")
@click.option("--json", "as_json", is_flag=True, help="Print the status as JSON.")
@click.pass_context
def status_cmd(ctx, as_json: bool):
    """Show the state of the review session."""
    config = ctx.obj["config"]
    session = _load_active(config)
    status = {
        "session_id": session.session_id,
        "baseline_ref": session.baseline_ref,
        "last_reviewed_at": session.last_reviewed_at,
        "findings": len(session.findings),
        "active": len(session.active_findings()),
        "dismissed": len(session.dismissed_ids),
        "strictness": session.strictness or config["strictness"],
        "nitpicky": session.nitpicky if session.nitpicky is not None else config["nitpicky"],
    }
    if as_json:
        click.echo(json.dumps(status, indent=2))
        return
    console.print(f"[bold]Session[/bold] {status['session_id'][:12]}")
    console.print(f"  Baseline:       {status['baseline_ref'][:12]}")
    console.print(f"  Last reviewed:  {status['last_reviewed_at'][:12] or '(not yet)'}")
    console.print(f"  Findings:       {status['active']} active, {status['dismissed']} dismissed")
    console.print(f"  Strictness:     {status['strictness']}{' (nitpicky)' if status['nitpicky'] else ''}")
