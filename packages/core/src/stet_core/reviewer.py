"""Core review orchestration: start a session, run incremental passes."""

from __future__ import annotations

import json
import logging
import os
import secrets
from contextlib import ExitStack
from dataclasses import dataclass, field
from typing import IO

from rich.console import Console
from rich.markup import escape

from stet_core.config import state_dir_for
from stet_core.diff import DEFAULT_EXCLUDE_PATTERNS, Hunk, hunk_line_range
from stet_core.errors import (
    BaselineNotAncestorError,
    DirtyWorktreeError,
    NoSessionError,
    ResponseParseError,
    StateError,
)
from stet_core.findings.filters import (
    StrictnessPreset,
    filter_abstention,
    filter_by_hunk_lines,
    filter_fp_kill_list,
    resolve_strictness,
    set_cursor_uris,
)
from stet_core.findings.models import Category, Finding, Severity
from stet_core.git import GitRepo
from stet_core.parse import assign_finding_ids, parse_findings_response
from stet_core.prompt import PromptBuilder
from stet_core.providers.base import BaseReviewer, Usage
from stet_core.scope import partition
from stet_store.history import append_record
from stet_store.lock import acquire_lock
from stet_store.models import Dismissal, DismissalReason, HistoryRecord, UserAction
from stet_store.session import Session, load_session, save_session, truncate_prompt_context
from stet_store.suppression import suppression_examples

console = Console(stderr=True)
logger = logging.getLogger(__name__)

DRY_RUN_MESSAGE = "Dry-run placeholder (CI)"
CAPTURE_USAGE_ENV = "STET_CAPTURE_USAGE"
_CAPTURE_OFF_VALUES = {"0", "false", "no", "off"}


@dataclass
class ReviewSummary:
    """Result of a start or run pass, for the CLI to render."""

    session_id: str
    baseline_sha: str
    head_sha: str
    findings: list[Finding] = field(default_factory=list)
    hunks_reviewed: int = 0
    hunks_approved: int = 0
    hunks_skipped: int = 0
    auto_dismissed: list[str] = field(default_factory=list)
    usage: Usage = field(default_factory=Usage)
    model: str = ""


@dataclass
class HunkLoopResult:
    findings: list[Finding] = field(default_factory=list)
    prompt_context: dict[str, str] = field(default_factory=dict)
    usage: Usage = field(default_factory=Usage)
    model: str = ""


def capture_usage_enabled(env: dict | None = None) -> bool:
    env = os.environ if env is None else env
    return env.get(CAPTURE_USAGE_ENV, "").strip().lower() not in _CAPTURE_OFF_VALUES


class EventStream:
    """Writes NDJSON progress events, one flushed line per event.

    A failing sink (closed pipe) stops further events without failing the review.
    """

    def __init__(self, out: IO[str] | None):
        self._out = out

    def _emit(self, event: dict) -> None:
        if self._out is None:
            return
        try:
            self._out.write(json.dumps(event) + "\n")
            self._out.flush()
        except (OSError, ValueError) as e:
            logger.warning("Event stream closed, no further events will be written: %s", e)
            self._out = None

    def progress(self, msg: str) -> None:
        self._emit({"type": "progress", "msg": msg})

    def finding(self, finding: Finding) -> None:
        self._emit({"type": "finding", "data": finding.to_dict()})

    def done(self) -> None:
        self._emit({"type": "done"})


def get_reviewer(config: dict, num_ctx: int | None = None) -> BaseReviewer:
    provider = config.get("provider", "ollama")
    if provider == "ollama":
        from stet_core.providers.ollama import OllamaReviewer

        return OllamaReviewer(
            model=config["model"],
            base_url=config["base_url"],
            timeout=config["timeout"],
            num_ctx=num_ctx if num_ctx is not None else config.get("num_ctx"),
            temperature=config.get("temperature"),
        )
    if provider == "openai":
        from stet_core.providers.openai import OpenAIReviewer

        return OpenAIReviewer(
            model=config["model"],
            base_url=config["base_url"],
            api_key=config.get("api_key"),
            timeout=config["timeout"],
            temperature=config.get("temperature"),
        )
    raise ValueError(f"Unknown provider: {provider!r}. Choose 'ollama' or 'openai'.")


def dry_run_findings(hunk: Hunk) -> list[Finding]:
    """One deterministic placeholder finding per hunk, placed at its first new line."""
    line_range = hunk_line_range(hunk)
    return [
        Finding(
            file=hunk.file_path,
            line=line_range[0] if line_range else 0,
            severity=Severity.INFO.value,
            category=Category.MAINTAINABILITY.value,
            confidence=1.0,
            message=DRY_RUN_MESSAGE,
        )
    ]


def _generate_findings(reviewer: BaseReviewer, prompts: PromptBuilder, hunk: Hunk, result: HunkLoopResult):
    system, user = prompts.build(hunk)

    def on_dropped(index: int, reason: str) -> None:
        logger.debug("%s: dropped finding %d: %s", hunk.file_path, index, reason)

    for attempt in (1, 2):
        response = reviewer.generate(system, user)
        result.usage.add(response.usage)
        result.model = response.model or result.model
        try:
            return parse_findings_response(response.text, on_dropped=on_dropped)
        except ResponseParseError as e:
            if attempt == 2:
                raise
            logger.warning("Could not parse the response for %s (%s). Asking again.", hunk.file_path, e)
    return []


def review_hunks(
    hunks: list[Hunk],
    reviewer: BaseReviewer | None,
    prompts: PromptBuilder,
    preset: StrictnessPreset,
    repo_root: str,
    dry_run: bool = False,
    nitpicky: bool = False,
    stream: EventStream | None = None,
) -> HunkLoopResult:
    """Review each hunk in order and return the filtered findings.

    Any error aborts the whole loop; nothing is partially committed.
    """
    stream = stream or EventStream(None)
    result = HunkLoopResult()
    total = len(hunks)
    for i, hunk in enumerate(hunks, 1):
        console.print(escape(f"[{i}/{total}] Reviewing: {hunk.file_path}"))
        stream.progress(f"Reviewing hunk {i}/{total}: {hunk.file_path}")

        if dry_run:
            raw = dry_run_findings(hunk)
        else:
            raw = _generate_findings(reviewer, prompts, hunk, result)
        findings = assign_finding_ids(raw, hunk.file_path)

        findings = filter_abstention(findings, preset.min_keep, preset.min_maintainability)
        if preset.apply_kill_list and not nitpicky:
            findings = filter_fp_kill_list(findings)
        line_range = hunk_line_range(hunk)
        if line_range is not None:
            findings = filter_by_hunk_lines(findings, hunk.file_path, *line_range)
        findings = set_cursor_uris(repo_root, findings)

        context = truncate_prompt_context(hunk.raw_content)
        for f in findings:
            result.prompt_context[f.id] = context
            result.findings.append(f)
            stream.finding(f)
        console.print(f"  {len(findings)} finding(s).")
    stream.done()
    return result


def unique_findings(findings: list[Finding]) -> list[Finding]:
    """Drop findings whose ID already appeared earlier in the list."""
    seen: set[str] = set()
    result = []
    for f in findings:
        if f.id in seen:
            continue
        seen.add(f.id)
        result.append(f)
    return result


def addressed_finding_ids(hunks: list[Hunk], existing: list[Finding], new_ids: set[str]) -> list[str]:
    """IDs of stored findings inside a re-reviewed hunk that were not reported again."""
    spans: list[tuple[str, int, int]] = []
    for hunk in hunks:
        line_range = hunk_line_range(hunk)
        if line_range is not None:
            spans.append((hunk.file_path, *line_range))

    addressed = []
    for f in existing:
        if not f.id or f.id in new_ids or f.id in addressed:
            continue
        location = f.location()
        if any(f.file == path and start <= location <= end for path, start, end in spans):
            addressed.append(f.id)
    return addressed


def filter_hunks_with_dismissed_findings(
    hunks: list[Hunk], session: Session, force_full: bool
) -> tuple[list[Hunk], list[Hunk]]:
    """Split hunks into (kept, skipped): skipped ones overlap a dismissed finding.

    With ``force_full`` nothing is skipped.
    """
    if force_full or not session.dismissed_ids:
        return list(hunks), []
    dismissed = set(session.dismissed_ids)
    rects: list[tuple[str, int, int]] = []
    for f in session.findings:
        if f.id not in dismissed:
            continue
        if f.range is not None and f.range.start > 0 and f.range.end >= f.range.start:
            rects.append((f.file, f.range.start, f.range.end))
        elif f.line > 0:
            rects.append((f.file, f.line, f.line))

    kept, skipped = [], []
    for hunk in hunks:
        line_range = hunk_line_range(hunk)
        if line_range is not None and any(
            path == hunk.file_path and start <= line_range[1] and end >= line_range[0] for path, start, end in rects
        ):
            skipped.append(hunk)
        else:
            kept.append(hunk)
    return kept, skipped


def _prompt_builder(config: dict, state_dir, session: Session, vcs: GitRepo, nitpicky: bool) -> PromptBuilder:
    branch, message = vcs.user_intent()
    examples = None
    if config.get("suppression_enabled", True):
        try:
            examples = suppression_examples(
                state_dir,
                config.get("suppression_history_count", 50),
                config.get("suppression_max_examples", 30),
            )
        except StateError as e:
            # Non-fatal: the review proceeds without few-shot examples.
            logger.warning("Could not read review history; suppression examples skipped: %s", e)
    return PromptBuilder(
        state_dir=state_dir,
        branch=branch,
        commit_message=message,
        nitpicky=nitpicky,
        shadows=[s.prompt_context for s in session.prompt_shadows],
        suppression_examples=examples,
    )


def exclude_patterns(config: dict) -> list[str]:
    return DEFAULT_EXCLUDE_PATTERNS + list(config.get("exclude") or [])


def _record_usage(session: Session, loop: HunkLoopResult, model: str) -> None:
    if not capture_usage_enabled():
        return
    session.last_run_model = loop.model or model
    session.last_run_prompt_tokens = loop.usage.prompt_tokens
    session.last_run_completion_tokens = loop.usage.completion_tokens
    session.last_run_eval_duration_ns = loop.usage.eval_duration_ns


def start_review(
    config: dict,
    ref: str = "HEAD",
    dry_run: bool = False,
    allow_dirty: bool = False,
    paths: list[str] | None = None,
    vcs: GitRepo | None = None,
    reviewer: BaseReviewer | None = None,
    stream: IO[str] | None = None,
) -> ReviewSummary:
    """Begin a review session at ``ref`` and review every hunk of ``ref..HEAD``."""
    vcs = vcs or GitRepo(config["repo_root"])
    state_dir = state_dir_for(config)

    if not vcs.is_clean():
        if not allow_dirty:
            raise DirtyWorktreeError()
        console.print("[yellow]Warning: the working tree has uncommitted changes; they are not reviewed.[/yellow]")

    with acquire_lock(state_dir), ExitStack() as cleanup:
        baseline = vcs.rev_parse(ref)
        head = vcs.rev_parse("HEAD")
        if not vcs.is_ancestor(baseline, head):
            raise BaselineNotAncestorError(f"{ref} is not an ancestor of HEAD.")

        preset = resolve_strictness(config["strictness"])
        nitpicky = bool(config.get("nitpicky"))
        session = Session(
            session_id=secrets.token_hex(16),
            baseline_ref=baseline,
            strictness=config["strictness"],
            rag_symbol_max_definitions=config.get("rag_symbol_max_definitions"),
            rag_symbol_max_tokens=config.get("rag_symbol_max_tokens"),
            nitpicky=nitpicky,
            context_limit=config.get("context_limit"),
            num_ctx=config.get("num_ctx"),
        )
        summary = ReviewSummary(session_id=session.session_id, baseline_sha=baseline, head_sha=head)

        if baseline == head:
            session.last_reviewed_at = head
            save_session(state_dir, session)
            console.print("[yellow]Baseline is HEAD: nothing to review.[/yellow]")
            EventStream(stream).done()
            return summary

        if not dry_run:
            reviewer = reviewer or get_reviewer(config)
            reviewer.check()

        worktree = vcs.create_worktree(baseline, config.get("worktree_root"))
        cleanup.callback(vcs.remove_worktree, worktree)

        save_session(state_dir, session)

        parts = partition(vcs, baseline, head, "", paths=paths, exclude=exclude_patterns(config))
        prompts = _prompt_builder(config, state_dir, session, vcs, nitpicky)
        loop = review_hunks(
            parts.to_review,
            reviewer,
            prompts,
            preset,
            str(vcs.root),
            dry_run=dry_run,
            nitpicky=nitpicky,
            stream=EventStream(stream),
        )

        session.last_reviewed_at = head
        session.findings = unique_findings(loop.findings)
        session.finding_prompt_context = loop.prompt_context
        if not dry_run:
            _record_usage(session, loop, config["model"])
        save_session(state_dir, session)
        cleanup.pop_all()

    summary.findings = loop.findings
    summary.hunks_reviewed = len(parts.to_review)
    summary.hunks_approved = len(parts.approved)
    summary.usage = loop.usage
    summary.model = loop.model
    return summary


def run_review(
    config: dict,
    dry_run: bool = False,
    force_full: bool = False,
    replace_findings: bool = False,
    strictness: str | None = None,
    nitpicky: bool | None = None,
    paths: list[str] | None = None,
    vcs: GitRepo | None = None,
    reviewer: BaseReviewer | None = None,
    stream: IO[str] | None = None,
) -> ReviewSummary:
    """Review what changed since the last pass and merge the results into the session.

    ``force_full`` reviews every hunk since the baseline, including ones that
    overlap dismissed findings. ``replace_findings`` discards stored findings
    and dismissals in favour of this run's results.
    """
    vcs = vcs or GitRepo(config["repo_root"])
    state_dir = state_dir_for(config)

    with acquire_lock(state_dir):
        session = load_session(state_dir)
        if not session.active:
            raise NoSessionError()

        head = vcs.rev_parse("HEAD")
        if not vcs.is_ancestor(session.baseline_ref, head):
            raise BaselineNotAncestorError(
                "The session baseline is no longer an ancestor of HEAD. Finish the session and start a new one."
            )

        if strictness is not None:
            session.strictness = strictness
        if nitpicky is not None:
            session.nitpicky = nitpicky
        effective_strictness = session.strictness or config["strictness"]
        effective_nitpicky = session.nitpicky if session.nitpicky is not None else bool(config.get("nitpicky"))
        preset = resolve_strictness(effective_strictness)

        last = "" if force_full else session.last_reviewed_at
        parts = partition(vcs, session.baseline_ref, head, last, paths=paths, exclude=exclude_patterns(config))
        to_review, skipped = filter_hunks_with_dismissed_findings(parts.to_review, session, force_full)
        for hunk in skipped:
            logger.debug("Skipping %s: overlaps a dismissed finding", hunk.file_path)

        summary = ReviewSummary(
            session_id=session.session_id,
            baseline_sha=session.baseline_ref,
            head_sha=head,
            hunks_approved=len(parts.approved),
            hunks_skipped=len(skipped),
        )

        if not to_review:
            session.last_reviewed_at = head
            save_session(state_dir, session)
            console.print("[yellow]No new changes to review.[/yellow]")
            EventStream(stream).done()
            return summary

        if not dry_run:
            reviewer = reviewer or get_reviewer(config, num_ctx=session.num_ctx)
            reviewer.check()

        prompts = _prompt_builder(config, state_dir, session, vcs, effective_nitpicky)
        loop = review_hunks(
            to_review,
            reviewer,
            prompts,
            preset,
            str(vcs.root),
            dry_run=dry_run,
            nitpicky=effective_nitpicky,
            stream=EventStream(stream),
        )
        new_ids = {f.id for f in loop.findings}
        max_records = config.get("history_max_records", 1000)

        if replace_findings:
            session.findings = unique_findings(loop.findings)
            session.dismissed_ids = []
            session.finding_prompt_context = {
                fid: ctx
                for fid, ctx in {**session.finding_prompt_context, **loop.prompt_context}.items()
                if fid in new_ids
            }
            append_record(
                state_dir,
                HistoryRecord(
                    diff_ref=session.baseline_ref,
                    review_output=list(session.findings),
                    user_action=UserAction(replace_findings=True),
                ),
                max_records,
            )
        else:
            addressed = addressed_finding_ids(to_review, session.active_findings(), new_ids)
            if addressed:
                session.dismiss(addressed)
                append_record(
                    state_dir,
                    HistoryRecord(
                        diff_ref=session.last_reviewed_at or session.baseline_ref,
                        review_output=[session.finding_by_id(fid) for fid in addressed],
                        user_action=UserAction(
                            dismissed_ids=list(addressed),
                            dismissals=[
                                Dismissal(
                                    finding_id=fid,
                                    reason=DismissalReason.ALREADY_CORRECT.value,
                                    prompt_context=session.finding_prompt_context.get(fid, ""),
                                )
                                for fid in addressed
                            ],
                        ),
                    ),
                    max_records,
                )
                console.print(f"[green]{len(addressed)} finding(s) addressed since the last pass.[/green]")
            stored_ids = {f.id for f in session.findings}
            for f in loop.findings:
                if f.id not in stored_ids:
                    session.findings.append(f)
                    stored_ids.add(f.id)
            session.finding_prompt_context.update(loop.prompt_context)
            summary.auto_dismissed = addressed

        session.last_reviewed_at = head
        if not dry_run:
            _record_usage(session, loop, config["model"])
        save_session(state_dir, session)

    summary.findings = loop.findings
    summary.hunks_reviewed = len(to_review)
    summary.usage = loop.usage
    summary.model = loop.model
    return summary
