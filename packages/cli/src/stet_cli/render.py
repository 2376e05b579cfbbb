"""Terminal rendering of findings and review summaries."""

from __future__ import annotations

import json

import click
from rich.console import Console
from rich.table import Table

from stet_core.findings.ids import short_id
from stet_core.findings.models import Finding

SEVERITY_STYLE = {"error": "red", "warning": "yellow", "info": "blue", "nitpick": "dim"}


def location(f: Finding) -> str:
    if f.range is not None and f.range.start > 0:
        if f.range.end > f.range.start:
            return f"{f.file}:{f.range.start}-{f.range.end}"
        return f"{f.file}:{f.range.start}"
    if f.line > 0:
        return f"{f.file}:{f.line}"
    return f.file


def print_findings(console: Console, findings: list[Finding], title: str = "Findings") -> None:
    if not findings:
        console.print("[green]No findings.[/green]")
        return
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("ID", style="bold", width=8)
    table.add_column("Severity", width=9)
    table.add_column("Location")
    table.add_column("Category")
    table.add_column("Message", max_width=70)
    for f in findings:
        style = SEVERITY_STYLE.get(f.severity, "white")
        table.add_row(
            short_id(f.id),
            f"[{style}]{f.severity}[/{style}]",
            location(f),
            f.category,
            f.message,
        )
    console.print(table)


def echo_findings_json(findings: list[Finding]) -> None:
    click.echo(json.dumps({"findings": [f.to_dict() for f in findings]}, indent=2))
