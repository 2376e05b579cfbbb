"""start / run / rerun: review hunks with the configured model."""

from __future__ import annotations

import click
from rich.console import Console

from stet_cli.render import echo_findings_json, print_findings
from stet_core.reviewer import ReviewSummary, run_review, start_review

console = Console()

_STRICTNESS_HELP = "Confidence preset: strict, default, lenient; add + to keep kill-list phrases."


def _report(summary: ReviewSummary, as_json: bool, stream: bool) -> None:
    if stream:
        return
    if as_json:
        echo_findings_json(summary.findings)
        return
    print_findings(console, summary.findings, title="New findings")
    parts = [f"{summary.hunks_reviewed} hunk(s) reviewed"]
    if summary.hunks_approved:
        parts.append(f"{summary.hunks_approved} already reviewed")
    if summary.hunks_skipped:
        parts.append(f"{summary.hunks_skipped} skipped (dismissed)")
    if summary.auto_dismissed:
        parts.append(f"{len(summary.auto_dismissed)} finding(s) addressed")
    console.print(" · ".join(parts))


def _stream_out(stream: bool):
    return click.get_text_stream("stdout") if stream else None


@click.command("start")
@click.argument("ref", default="HEAD")
@click.option("--dry-run", is_flag=True, help="Skip the model; emit one placeholder finding per hunk.")
@click.option("--allow-dirty", is_flag=True, help="Proceed even with uncommitted changes.")
@click.option("--strictness", default=None, help=_STRICTNESS_HELP)
@click.option("--nitpicky/--no-nitpicky", default=None, help="Also report style and convention issues.")
@click.option("--path", "paths", multiple=True, help="Limit the review to these paths (repeatable).")
@click.option("--json", "as_json", is_flag=True, help="Print findings as JSON.")
@click.option("--stream", is_flag=True, help="Print NDJSON progress and finding events to stdout.")
@click.pass_context
def start_cmd(
    ctx,
    ref: str,
    dry_run: bool,
    allow_dirty: bool,
    strictness: str | None,
    nitpicky: bool | None,
    paths: tuple[str, ...],
    as_json: bool,
    stream: bool,
):
    """Start a review session at REF (default HEAD) and review REF..HEAD."""
    config = dict(ctx.obj["config"])
    if strictness is not None:
        config["strictness"] = strictness
    if nitpicky is not None:
        config["nitpicky"] = nitpicky

    summary = start_review(
        config,
        ref=ref,
        dry_run=dry_run,
        allow_dirty=allow_dirty,
        paths=list(paths) or None,
        vcs=ctx.obj["repo"],
        stream=_stream_out(stream),
    )
    _report(summary, as_json, stream)


@click.command("run")
@click.option("--dry-run", is_flag=True, help="Skip the model; emit one placeholder finding per hunk.")
@click.option("--force-full", is_flag=True, help="Review every hunk since the baseline, ignoring dismissals.")
@click.option("--replace", "replace_findings", is_flag=True, help="Replace stored findings with this run's.")
@click.option("--strictness", default=None, help=_STRICTNESS_HELP)
@click.option("--nitpicky/--no-nitpicky", default=None, help="Also report style and convention issues.")
@click.option("--path", "paths", multiple=True, help="Limit the review to these paths (repeatable).")
@click.option("--json", "as_json", is_flag=True, help="Print findings as JSON.")
@click.option("--stream", is_flag=True, help="Print NDJSON progress and finding events to stdout.")
@click.pass_context
def run_cmd(
    ctx,
    dry_run: bool,
    force_full: bool,
    replace_findings: bool,
    strictness: str | None,
    nitpicky: bool | None,
    paths: tuple[str, ...],
    as_json: bool,
    stream: bool,
):
    """Review the changes made since the last pass."""
    summary = run_review(
        ctx.obj["config"],
        dry_run=dry_run,
        force_full=force_full,
        replace_findings=replace_findings,
        strictness=strictness,
        nitpicky=nitpicky,
        paths=list(paths) or None,
        vcs=ctx.obj["repo"],
        stream=_stream_out(stream),
    )
    _report(summary, as_json, stream)


@click.command("rerun")
@click.option("--dry-run", is_flag=True, help="Skip the model; emit one placeholder finding per hunk.")
@click.option("--replace", "replace_findings", is_flag=True, help="Replace stored findings with this run's.")
@click.option("--strictness", default=None, help=_STRICTNESS_HELP)
@click.option("--json", "as_json", is_flag=True, help="Print findings as JSON.")
@click.option("--stream", is_flag=True, help="Print NDJSON progress and finding events to stdout.")
@click.pass_context
def rerun_cmd(ctx, dry_run: bool, replace_findings: bool, strictness: str | None, as_json: bool, stream: bool):
    """Review every hunk since the baseline again."""
    summary = run_review(
        ctx.obj["config"],
        dry_run=dry_run,
        force_full=True,
        replace_findings=replace_findings,
        strictness=strictness,
        vcs=ctx.obj["repo"],
        stream=_stream_out(stream),
    )
    _report(summary, as_json, stream)
