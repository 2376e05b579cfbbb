"""Close a review session: remove the worktree, log history, write a git note."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from rich.console import Console

from stet_core.config import state_dir_for
from stet_core.diff import count_hunk_scope
from stet_core.errors import NoSessionError
from stet_core.git import NOTES_REF, GitRepo
from stet_core.reviewer import capture_usage_enabled, exclude_patterns
from stet_core.version import tool_version
from stet_store.history import append_record
from stet_store.lock import acquire_lock
from stet_store.models import HistoryRecord, RunConfigSnapshot, UserAction
from stet_store.session import Session, load_session

console = Console(stderr=True)
logger = logging.getLogger(__name__)


def utc_now() -> str:
    """RFC 3339 timestamp in UTC with a ``Z`` suffix."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _run_config(config: dict, session: Session) -> RunConfigSnapshot:
    return RunConfigSnapshot(
        model=session.last_run_model or config.get("model", ""),
        strictness=session.strictness or config.get("strictness", ""),
        rag_symbol_max_definitions=(
            session.rag_symbol_max_definitions
            if session.rag_symbol_max_definitions is not None
            else config.get("rag_symbol_max_definitions", 0)
        ),
        rag_symbol_max_tokens=(
            session.rag_symbol_max_tokens
            if session.rag_symbol_max_tokens is not None
            else config.get("rag_symbol_max_tokens", 0)
        ),
        nitpicky=bool(session.nitpicky),
    )


def finish_review(config: dict, vcs: GitRepo | None = None) -> dict:
    """Finish the active session and return the note written on HEAD.

    The session file stays on disk; a later start replaces it.
    """
    vcs = vcs or GitRepo(config["repo_root"])
    state_dir = state_dir_for(config)

    with acquire_lock(state_dir):
        session = load_session(state_dir)
        if not session.active:
            raise NoSessionError()

        worktree = vcs.worktree_path(session.baseline_ref, config.get("worktree_root"))
        if worktree.exists():
            vcs.remove_worktree(worktree)
        else:
            logger.debug("Worktree %s already gone", worktree)

        head = vcs.rev_parse("HEAD")
        scope = count_hunk_scope(vcs.hunks(session.baseline_ref, head, exclude=exclude_patterns(config)))
        finished_at = utc_now()
        capture = capture_usage_enabled()

        if session.findings:
            record = HistoryRecord(
                diff_ref=session.baseline_ref,
                review_output=list(session.findings),
                user_action=UserAction(dismissed_ids=list(session.dismissed_ids), finished_at=finished_at),
                run_config=_run_config(config, session),
            )
            if capture:
                record.prompt_tokens = session.last_run_prompt_tokens
                record.completion_tokens = session.last_run_completion_tokens
                record.eval_duration_ns = session.last_run_eval_duration_ns
            append_record(state_dir, record, config.get("history_max_records", 1000))

        note = {
            "session_id": session.session_id,
            "baseline_sha": session.baseline_ref,
            "head_sha": head,
            "findings_count": len(session.findings),
            "dismissals_count": len(session.dismissed_ids),
            "tool_version": tool_version(),
            "finished_at": finished_at,
            "hunks_reviewed": scope.hunks_reviewed,
            "lines_added": scope.lines_added,
            "lines_removed": scope.lines_removed,
            "chars_added": scope.chars_added,
            "chars_deleted": scope.chars_deleted,
            "chars_reviewed": scope.chars_reviewed,
        }
        if capture:
            note["model"] = session.last_run_model or config.get("model", "")
            note["prompt_tokens"] = session.last_run_prompt_tokens or 0
            note["completion_tokens"] = session.last_run_completion_tokens or 0
            note["eval_duration_ns"] = session.last_run_eval_duration_ns or 0
        vcs.add_note(head, json.dumps(note, indent=2), notes_ref=NOTES_REF)

    console.print(f"[green]Review finished. Note written to {NOTES_REF} on {head[:7]}.[/green]")
    return note
