"""End-to-end review workflow against a real git repository.

The review model is always stubbed or replaced by dry-run; git is real.
"""

import json
import shutil
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from stet_core.config import DEFAULT_CONFIG
from stet_core.dismiss import dismiss_findings
from stet_core.errors import BaselineNotAncestorError, DirtyWorktreeError, LockedError, NoSessionError, ReviewerError
from stet_core.finish import finish_review
from stet_core.git import GitRepo, run_git
from stet_core.providers.base import GenerateResult
from stet_core.reviewer import DRY_RUN_MESSAGE, run_review, start_review
from stet_store.history import read_records
from stet_store.lock import acquire_lock
from stet_store.session import load_session, session_path

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")

NOTE_KEYS = {
    "session_id",
    "baseline_sha",
    "head_sha",
    "findings_count",
    "dismissals_count",
    "tool_version",
    "finished_at",
    "hunks_reviewed",
    "lines_added",
    "lines_removed",
    "chars_added",
    "chars_deleted",
    "chars_reviewed",
}
USAGE_NOTE_KEYS = {"model", "prompt_tokens", "completion_tokens", "eval_duration_ns"}


class StubReviewer:
    def __init__(self, *payloads):
        self._payloads = list(payloads)
        self.calls = 0

    def check(self):
        pass

    def generate(self, system_prompt, user_prompt):
        self.calls += 1
        return GenerateResult(text=json.dumps({"findings": self._payloads.pop(0)}), model="stub")


def _commit(repo: GitRepo, name: str, content: str, message: str) -> str:
    (repo.root / name).write_text(content)
    run_git(repo.root, "add", name)
    run_git(repo.root, "commit", "-q", "-m", message)
    return repo.rev_parse("HEAD")


@pytest.fixture
def repo(tmp_path):
    root = tmp_path / "repo"
    root.mkdir()
    run_git(root, "init", "-q")
    run_git(root, "config", "user.name", "Test User")
    run_git(root, "config", "user.email", "test@example.com")
    run_git(root, "config", "commit.gpgsign", "false")
    repo = GitRepo(root)
    _commit(repo, "f1.txt", "hello\n", "add f1")
    _commit(repo, "f2.txt", "a\nb\n", "add f2")
    return repo


@pytest.fixture
def config(repo, tmp_path, monkeypatch):
    monkeypatch.delenv("STET_CAPTURE_USAGE", raising=False)
    return {
        **DEFAULT_CONFIG,
        "repo_root": str(repo.root),
        "state_dir": str(tmp_path / "state"),
        "worktree_root": str(tmp_path / "wt"),
        "timeout": 300.0,
        "suppression_enabled": True,
    }


# ---------------------------------------------------------------------------
# start
# ---------------------------------------------------------------------------


class TestStart:
    def test_dry_run_reviews_each_hunk(self, repo, config):
        summary = start_review(config, "HEAD~1", dry_run=True, vcs=repo)

        [finding] = summary.findings
        assert (finding.file, finding.line, finding.message) == ("f2.txt", 1, DRY_RUN_MESSAGE)
        session = load_session(config["state_dir"])
        assert session.baseline_ref == repo.rev_parse("HEAD~1")
        assert session.last_reviewed_at == repo.rev_parse("HEAD")
        assert len(session.session_id) == 32
        assert [f.id for f in session.findings] == [finding.id]
        assert repo.worktree_path(session.baseline_ref, config["worktree_root"]).is_dir()

    def test_baseline_equal_to_head_needs_no_model(self, repo, config):
        summary = start_review(config, "HEAD", vcs=repo)
        assert summary.findings == []
        session = load_session(config["state_dir"])
        assert session.baseline_ref == session.last_reviewed_at == repo.rev_parse("HEAD")
        assert not Path(config["worktree_root"]).exists()

    def test_dirty_tree_rejected(self, repo, config):
        (repo.root / "scratch.txt").write_text("wip\n")
        with pytest.raises(DirtyWorktreeError):
            start_review(config, "HEAD~1", dry_run=True, vcs=repo)
        assert not session_path(config["state_dir"]).exists()

    def test_dirty_tree_allowed(self, repo, config):
        (repo.root / "scratch.txt").write_text("wip\n")
        summary = start_review(config, "HEAD~1", dry_run=True, allow_dirty=True, vcs=repo)
        assert len(summary.findings) == 1

    def test_baseline_must_be_ancestor(self, repo, config):
        branch = run_git(repo.root, "rev-parse", "--abbrev-ref", "HEAD").stdout.strip()
        run_git(repo.root, "checkout", "-q", "--detach", "HEAD~1")
        side = _commit(repo, "side.txt", "side\n", "side commit")
        run_git(repo.root, "checkout", "-q", branch)

        with pytest.raises(BaselineNotAncestorError):
            start_review(config, side, dry_run=True, vcs=repo)
        assert not session_path(config["state_dir"]).exists()

    def test_held_lock_rejected(self, repo, config):
        with acquire_lock(config["state_dir"]):
            with pytest.raises(LockedError):
                start_review(config, "HEAD~1", dry_run=True, vcs=repo)

    def test_failed_review_removes_worktree(self, repo, config):
        reviewer = StubReviewer()
        reviewer.generate = MagicMock(side_effect=ReviewerError())
        with pytest.raises(ReviewerError):
            start_review(config, "HEAD~1", vcs=repo, reviewer=reviewer)
        baseline = repo.rev_parse("HEAD~1")
        assert not repo.worktree_path(baseline, config["worktree_root"]).exists()


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


class TestRun:
    def test_requires_session(self, repo, config):
        with pytest.raises(NoSessionError):
            run_review(config, vcs=repo, reviewer=StubReviewer())

    def test_new_commit_adds_findings(self, repo, config):
        start_review(config, "HEAD~1", dry_run=True, vcs=repo)
        head = _commit(repo, "f3.txt", "new\n", "add f3")

        summary = run_review(config, dry_run=True, vcs=repo)

        assert [(f.file, f.message) for f in summary.findings] == [("f3.txt", DRY_RUN_MESSAGE)]
        session = load_session(config["state_dir"])
        assert [f.file for f in session.findings] == ["f2.txt", "f3.txt"]
        assert session.last_reviewed_at == head

    def test_reviews_only_new_hunks(self, repo, config):
        start_review(config, "HEAD~1", dry_run=True, vcs=repo)
        head = _commit(repo, "f3.txt", "new\n", "add f3")

        reviewer = StubReviewer([])
        summary = run_review(config, vcs=repo, reviewer=reviewer)

        assert reviewer.calls == 1
        assert summary.hunks_reviewed == 1
        assert summary.hunks_approved == 1
        assert load_session(config["state_dir"]).last_reviewed_at == head

    def test_nothing_new_to_review(self, repo, config):
        start_review(config, "HEAD~1", dry_run=True, vcs=repo)
        reviewer = StubReviewer()
        summary = run_review(config, vcs=repo, reviewer=reviewer)
        assert reviewer.calls == 0
        assert summary.hunks_approved == 1

    def test_fixed_finding_auto_dismissed(self, repo, config):
        [finding] = start_review(config, "HEAD~1", dry_run=True, vcs=repo).findings
        _commit(repo, "f2.txt", "a\nc\n", "fix f2")

        summary = run_review(config, vcs=repo, reviewer=StubReviewer([]))

        assert summary.auto_dismissed == [finding.id]
        session = load_session(config["state_dir"])
        assert session.dismissed_ids == [finding.id]
        assert session.active_findings() == []
        [record] = read_records(config["state_dir"])
        assert record.user_action.dismissals[0].finding_id == finding.id
        assert record.user_action.dismissals[0].reason == "already_correct"

    def test_dismissed_hunk_skipped_until_force_full(self, repo, config):
        [finding] = start_review(config, "HEAD~1", dry_run=True, vcs=repo).findings
        assert dismiss_findings(config, [finding.id[:7]], reason="false_positive") == [finding.id]
        _commit(repo, "f2.txt", "a\nc\n", "touch f2")

        reviewer = StubReviewer()
        summary = run_review(config, vcs=repo, reviewer=reviewer)
        assert summary.hunks_skipped == 1
        assert reviewer.calls == 0

        new = {"line": 2, "severity": "warning", "category": "bug", "confidence": 0.95, "message": "c looks wrong"}
        summary = run_review(config, vcs=repo, reviewer=StubReviewer([new]), force_full=True)
        assert [f.message for f in summary.findings] == ["c looks wrong"]

        session = load_session(config["state_dir"])
        assert len(session.findings) == 2
        assert [f.message for f in session.active_findings()] == ["c looks wrong"]
        assert [s.finding_id for s in session.prompt_shadows] == [finding.id]


# ---------------------------------------------------------------------------
# finish
# ---------------------------------------------------------------------------


class TestFinish:
    def test_writes_note_and_removes_worktree(self, repo, config):
        start_review(config, "HEAD~1", dry_run=True, vcs=repo)
        baseline = repo.rev_parse("HEAD~1")
        head = repo.rev_parse("HEAD")

        note = finish_review(config, vcs=repo)

        stored = json.loads(repo.get_note(head))
        assert stored == note
        assert set(stored) == NOTE_KEYS | USAGE_NOTE_KEYS
        assert stored["baseline_sha"] == baseline
        assert stored["head_sha"] == head
        assert stored["findings_count"] == 1
        assert stored["dismissals_count"] == 0
        assert stored["hunks_reviewed"] == 1
        assert stored["lines_added"] == 2
        assert stored["finished_at"].endswith("Z")
        assert not repo.worktree_path(baseline, config["worktree_root"]).exists()

        [record] = read_records(config["state_dir"])
        assert record.diff_ref == baseline
        assert record.user_action.finished_at == stored["finished_at"]

    def test_finish_is_repeatable(self, repo, config):
        start_review(config, "HEAD~1", dry_run=True, vcs=repo)
        finish_review(config, vcs=repo)
        finish_review(config, vcs=repo)
        assert repo.get_note(repo.rev_parse("HEAD")) is not None

    def test_requires_session(self, repo, config):
        with pytest.raises(NoSessionError):
            finish_review(config, vcs=repo)

    def test_usage_keys_omitted_when_capture_disabled(self, repo, config, monkeypatch):
        monkeypatch.setenv("STET_CAPTURE_USAGE", "off")
        start_review(config, "HEAD~1", dry_run=True, vcs=repo)
        finish_review(config, vcs=repo)
        stored = json.loads(repo.get_note(repo.rev_parse("HEAD")))
        assert set(stored) == NOTE_KEYS
        assert stored["findings_count"] == len(load_session(config["state_dir"]).findings)
