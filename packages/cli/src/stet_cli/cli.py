"""CLI entry point for stet.

Commands:
  start    begin a review session at a baseline commit and review up to HEAD
  run      review changes since the last pass (rerun: review everything again)
  finish   end the session and record a git note on HEAD
  dismiss  dismiss findings by ID prefix
  list     show active findings
  status   show the session state
  history  show past review records
  stats    aggregate dismissal and severity patterns across history
"""

from __future__ import annotations

import logging

import click

from stet_cli.commands.dismiss import dismiss_cmd
from stet_cli.commands.finish import finish_cmd
from stet_cli.commands.findings import list_cmd, status_cmd
from stet_cli.commands.history import history_cmd
from stet_cli.commands.review import rerun_cmd, run_cmd, start_cmd
from stet_cli.commands.stats import stats_cmd
from stet_core.errors import StetError
from stet_core.version import tool_version


def describe_error(exc: BaseException, verbose: bool) -> str:
    """User-facing message, followed by the chain of causes in verbose mode."""
    message = str(exc)
    if verbose:
        cause = exc.__cause__
        while cause is not None:
            message += f"\n  caused by: {cause}"
            cause = cause.__cause__
    return message


class StetGroup(click.Group):
    """Click group that turns StetError into a clean one-line failure."""

    def invoke(self, ctx: click.Context):
        try:
            return super().invoke(ctx)
        except StetError as e:
            raise click.ClickException(describe_error(e, bool(ctx.params.get("verbose")))) from e


@click.group(cls=StetGroup)
@click.version_option(version=tool_version(), prog_name="stet")
@click.option(
    "--config",
    "config_path",
    default=None,
    help="Path to a config file. Defaults to .review/config.yml in the repository.",
    envvar="STET_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logs and the technical cause of errors.")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool):
    """Local-first AI code review for git repositories."""
    from stet_core.config import load_config
    from stet_core.git import GitRepo

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)

    repo = GitRepo.discover(".")
    ctx.obj["repo"] = repo
    ctx.obj["config"] = load_config(repo_root=str(repo.root), config_path=config_path)
    ctx.obj["verbose"] = verbose


main.add_command(start_cmd)
main.add_command(run_cmd)
main.add_command(rerun_cmd)
main.add_command(finish_cmd)
main.add_command(dismiss_cmd)
main.add_command(list_cmd)
main.add_command(status_cmd)
main.add_command(history_cmd)
main.add_command(stats_cmd)
