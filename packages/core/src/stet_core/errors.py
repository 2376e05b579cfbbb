"""Error types surfaced to the user.

Every error carries a short, user-facing message in ``str(exc)``. The
technical cause (git stderr, an OSError, a JSON decode failure) is chained
with ``raise ... from exc`` and is only shown by the CLI in verbose mode.
"""

from __future__ import annotations


class StetError(Exception):
    """Base class for all errors the CLI reports without a traceback."""

    default_message = "The review could not be completed."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)


class ConfigError(StetError):
    default_message = "The configuration is invalid."


class StateError(StetError):
    default_message = "The review state directory could not be read or written."


class GitError(StetError):
    default_message = "A git command failed."


class LockedError(StetError):
    default_message = "Another review is in progress for this repository. Wait for it to finish and try again."


class NoSessionError(StetError):
    default_message = "No active review session. Start one first."


class DirtyWorktreeError(StetError):
    default_message = "The working tree has uncommitted changes. Commit or stash them first."


class BaselineNotAncestorError(StetError):
    default_message = "The baseline commit is not an ancestor of HEAD."


class WorktreeExistsError(StetError):
    default_message = "A review worktree for this baseline already exists. Finish the current session first."


class ReviewerUnreachableError(StetError):
    default_message = "The review model server is not reachable."


class ReviewerError(StetError):
    default_message = "The review model failed to produce a response."


class ResponseParseError(StetError, ValueError):
    default_message = "The review model returned a response that could not be parsed."


class InvalidFindingError(StetError, ValueError):
    default_message = "The finding is invalid."


class InvalidStrictnessError(StetError, ValueError):
    default_message = "Invalid strictness: use strict, default, lenient, strict+, default+, or lenient+."


class InvalidDismissalReasonError(StetError, ValueError):
    default_message = (
        "Invalid dismissal reason: use false_positive, already_correct, wrong_suggestion, or out_of_scope."
    )


class FindingIDError(StetError):
    """Base class for finding-ID prefix resolution failures."""


class FindingIDTooShortError(FindingIDError):
    default_message = "Finding ID is too short. Use at least 4 characters."


class FindingIDNotFoundError(FindingIDError):
    default_message = "No finding matches that ID."


class FindingIDAmbiguousError(FindingIDError):
    default_message = "That ID matches more than one finding. Use more characters."
