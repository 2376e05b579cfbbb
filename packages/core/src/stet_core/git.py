"""Thin wrapper over the git CLI.

All git access goes through ``subprocess.run`` with a minimal environment so
that user hooks, pagers and credential prompts never interfere with a
review. Failures raise GitError with a short message; git's stderr is
chained as the cause.
"""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path

from stet_core.diff import Hunk, filter_hunks, parse_unified_diff
from stet_core.errors import BaselineNotAncestorError, GitError, WorktreeExistsError

logger = logging.getLogger(__name__)

NOTES_REF = "refs/notes/stet"
WORKTREE_PREFIX = "stet-"

_PASSTHROUGH_ENV = ("PATH", "HOME", "SYSTEMROOT", "USERPROFILE", "TMPDIR", "TEMP", "TMP")


def _git_env() -> dict[str, str]:
    env = {key: os.environ[key] for key in _PASSTHROUGH_ENV if key in os.environ}
    env["GIT_TERMINAL_PROMPT"] = "0"
    env["GIT_PAGER"] = "cat"
    return env


def run_git(cwd: str | Path, *args: str, check: bool = True) -> subprocess.CompletedProcess:
    """Run ``git <args>`` in ``cwd`` and return the completed process.

    With ``check=True`` a non-zero exit raises GitError.
    """
    cmd = ["git", *args]
    logger.debug("Running %s in %s", " ".join(cmd), cwd)
    try:
        result = subprocess.run(
            cmd,
            cwd=str(cwd),
            capture_output=True,
            text=True,
            env=_git_env(),
        )
    except FileNotFoundError as e:
        raise GitError("git is not installed or not on PATH.") from e
    if check and result.returncode != 0:
        cause = RuntimeError(f"{' '.join(cmd)} exited {result.returncode}: {result.stderr.strip()}")
        raise GitError(f"git {args[0]} failed.") from cause
    return result


class GitRepo:
    """A git repository rooted at ``root``."""

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()

    @classmethod
    def discover(cls, path: str | Path = ".") -> GitRepo:
        """Return the repository containing ``path``."""
        try:
            result = run_git(path, "rev-parse", "--show-toplevel")
        except GitError as e:
            raise GitError(f"{path} is not inside a git repository.") from e
        return cls(result.stdout.strip())

    def is_clean(self) -> bool:
        result = run_git(self.root, "status", "--porcelain")
        return result.stdout.strip() == ""

    def rev_parse(self, ref: str) -> str:
        try:
            result = run_git(self.root, "rev-parse", "--verify", f"{ref}^{{commit}}")
        except GitError as e:
            raise GitError(f"Could not resolve {ref!r} to a commit.") from e
        return result.stdout.strip()

    def short_sha(self, ref: str, length: int = 12) -> str:
        result = run_git(self.root, "rev-parse", f"--short={length}", ref)
        return result.stdout.strip()

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        result = run_git(self.root, "merge-base", "--is-ancestor", ancestor, descendant, check=False)
        if result.returncode == 0:
            return True
        if result.returncode == 1:
            return False
        cause = RuntimeError(result.stderr.strip())
        raise GitError("Could not check commit ancestry.") from cause

    def diff(self, base: str, head: str) -> str:
        result = run_git(self.root, "diff", "--no-color", "--no-ext-diff", f"{base}..{head}")
        return result.stdout

    def hunks(
        self, base: str, head: str, paths: list[str] | None = None, exclude: list[str] | None = None
    ) -> list[Hunk]:
        """Return the hunks of ``base..head``, filtered by paths and exclude patterns."""
        return filter_hunks(parse_unified_diff(self.diff(base, head)), paths=paths, exclude=exclude)

    # ------------------------------------------------------------------ #
    # Worktrees                                                            #
    # ------------------------------------------------------------------ #

    def worktree_path(self, ref: str, worktree_root: str | None = None) -> Path:
        base = Path(worktree_root) if worktree_root else self.root / ".review" / "worktrees"
        return base / f"{WORKTREE_PREFIX}{self.short_sha(ref)}"

    def create_worktree(self, ref: str, worktree_root: str | None = None) -> Path:
        """Check out ``ref`` into a detached worktree and return its path."""
        if not self.is_ancestor(ref, "HEAD"):
            raise BaselineNotAncestorError(f"{ref} is not an ancestor of HEAD.")
        path = self.worktree_path(ref, worktree_root)
        if path.exists():
            raise WorktreeExistsError(f"A review worktree already exists at {path}. Finish the current session first.")
        path.parent.mkdir(parents=True, exist_ok=True)
        run_git(self.root, "worktree", "add", "--detach", str(path), ref)
        logger.debug("Created worktree %s at %s", path, ref)
        return path

    def remove_worktree(self, path: str | Path) -> None:
        run_git(self.root, "worktree", "remove", "--force", str(path))
        logger.debug("Removed worktree %s", path)

    # ------------------------------------------------------------------ #
    # Notes and metadata                                                   #
    # ------------------------------------------------------------------ #

    def add_note(self, commit: str, body: str, notes_ref: str = NOTES_REF) -> None:
        """Attach ``body`` to ``commit``, replacing any existing note."""
        run_git(self.root, "notes", f"--ref={notes_ref}", "add", "-f", "-m", body, commit)

    def get_note(self, commit: str, notes_ref: str = NOTES_REF) -> str | None:
        result = run_git(self.root, "notes", f"--ref={notes_ref}", "show", commit, check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip()

    def user_intent(self) -> tuple[str, str]:
        """Return the current branch name and the last commit message."""
        branch = run_git(self.root, "rev-parse", "--abbrev-ref", "HEAD").stdout.strip()
        message = run_git(self.root, "log", "-1", "--format=%B").stdout.strip()
        return branch, message
