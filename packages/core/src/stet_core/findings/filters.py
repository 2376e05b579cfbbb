"""Post-filters applied to the findings of each reviewed hunk.

The chain runs in a fixed order: abstention, then the false-positive kill
list (unless disabled), then the evidence check, then cursor URI assignment.
Every filter returns a new list and leaves its input untouched.
"""

from __future__ import annotations

import functools
import logging
import os
import re
from dataclasses import replace
from typing import NamedTuple

from stet_core.errors import InvalidStrictnessError
from stet_core.findings.models import Category, Finding

logger = logging.getLogger(__name__)


class StrictnessPreset(NamedTuple):
    min_keep: float
    min_maintainability: float
    apply_kill_list: bool


_PRESETS: dict[str, tuple[float, float]] = {
    "strict": (0.6, 0.7),
    "default": (0.8, 0.9),
    "lenient": (0.9, 0.95),
}

DEFAULT_STRICTNESS = "default"


def resolve_strictness(value: str) -> StrictnessPreset:
    """Map a strictness name to its confidence thresholds.

    A trailing ``+`` keeps the thresholds but turns the kill list off.
    """
    name = value.strip().lower()
    apply_kill_list = True
    if name.endswith("+"):
        name = name[:-1]
        apply_kill_list = False
    if name not in _PRESETS:
        raise InvalidStrictnessError(
            f"Invalid strictness {value!r}: use strict, default, lenient, strict+, default+, or lenient+."
        )
    min_keep, min_maint = _PRESETS[name]
    return StrictnessPreset(min_keep, min_maint, apply_kill_list)


def filter_abstention(findings: list[Finding], min_keep: float, min_maintainability: float) -> list[Finding]:
    """Drop low-confidence findings, with a higher bar for maintainability ones."""
    kept = []
    for f in findings:
        if f.confidence < min_keep:
            continue
        if f.category == Category.MAINTAINABILITY.value and f.confidence < min_maintainability:
            continue
        kept.append(f)
    return kept


_BANNED_PHRASES = (
    "Consider adding comments",
    "Consider adding a comment",
    "Ensure that...",
    "It might be beneficial",
    "You might want to",
    "it may be beneficial",
    "consider adding documentation",
)


@functools.lru_cache(maxsize=1)
def _kill_list_patterns() -> tuple[re.Pattern, ...]:
    return tuple(re.compile(re.escape(phrase), re.IGNORECASE) for phrase in _BANNED_PHRASES)


def filter_fp_kill_list(findings: list[Finding]) -> list[Finding]:
    """Drop findings whose message contains a known low-value phrase."""
    patterns = _kill_list_patterns()
    kept = []
    for f in findings:
        if any(p.search(f.message) for p in patterns):
            logger.debug("Dropping finding with kill-list phrase: %s", f.message[:80])
            continue
        kept.append(f)
    return kept


def filter_by_hunk_lines(findings: list[Finding], file_path: str, hunk_start: int, hunk_end: int) -> list[Finding]:
    """Drop findings for this hunk's file that point outside its new-file lines.

    Findings for other files and file-level findings are kept. An invalid
    hunk range disables the filter.
    """
    if hunk_start <= 0 or hunk_end < hunk_start:
        return list(findings)
    kept = []
    for f in findings:
        if f.file != file_path:
            kept.append(f)
            continue
        if f.range is not None:
            if f.range.start > f.range.end:
                continue
            if f.range.start <= hunk_end and f.range.end >= hunk_start:
                kept.append(f)
            continue
        if f.line == 0 or hunk_start <= f.line <= hunk_end:
            kept.append(f)
    return kept


def set_cursor_uris(repo_root: str, findings: list[Finding]) -> list[Finding]:
    """Return copies of the findings with a ``file://`` editor link filled in.

    Findings that already carry a URI are returned unchanged.
    """
    result = []
    for f in findings:
        if f.cursor_uri:
            result.append(f)
            continue
        path = os.path.abspath(os.path.join(repo_root, f.file)).replace(os.sep, "/")
        if not path.startswith("/"):
            path = "/" + path
        uri = "file://" + path
        line = f.line
        if f.range is not None and f.range.start > 0:
            line = f.range.start
        if line > 0:
            if f.range is not None and f.range.start > 0 and f.range.end >= f.range.start:
                uri += f"#L{f.range.start}-{f.range.end}"
            else:
                uri += f"#L{line}"
        result.append(replace(f, cursor_uri=uri))
    return result
