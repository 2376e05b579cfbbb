"""Unified diff parsing into per-hunk review units."""

from __future__ import annotations

import fnmatch
import re
from dataclasses import dataclass

_HUNK_HEADER_RE = re.compile(r"^@@ -\d+(?:,\d+)? \+(\d+)(?:,(\d+))? @@")
_DIFF_GIT_RE = re.compile(r"^diff --git a/(.+?) b/(.+)$")

# Generated and vendored files that are never worth sending to the model.
DEFAULT_EXCLUDE_PATTERNS = [
    "*.pb.go",
    "*_generated.go",
    "*.min.js",
    "package-lock.json",
    "go.sum",
    "vendor/",
]


@dataclass
class Hunk:
    """One ``@@`` block of a file diff.

    ``raw_content`` starts with the ``@@`` header line. ``context`` is the
    text placed in the prompt; it defaults to the raw content.
    """

    file_path: str
    raw_content: str
    context: str = ""

    def __post_init__(self):
        if not self.context:
            self.context = self.raw_content


@dataclass
class ScopeCounts:
    hunks_reviewed: int = 0
    lines_added: int = 0
    lines_removed: int = 0
    chars_added: int = 0
    chars_deleted: int = 0
    chars_reviewed: int = 0


def is_excluded(filename: str, patterns: list[str]) -> bool:
    """Return True if filename matches any exclude pattern.

    Supports:
    - fnmatch globs on the full path: "src/generated/*.py"
    - fnmatch globs on the basename: "*.lock", "*.min.js"
    - Directory prefixes: "vendor/" matches any file within that tree
    """
    for pattern in patterns:
        if fnmatch.fnmatch(filename, pattern):
            return True
        if fnmatch.fnmatch(filename.rsplit("/", 1)[-1], pattern):
            return True
        if pattern.endswith("/"):
            if filename.startswith(pattern) or ("/" + pattern) in filename:
                return True
    return False


def parse_unified_diff(text: str) -> list[Hunk]:
    """Split ``git diff`` output into hunks, skipping binary files."""
    hunks: list[Hunk] = []
    for section in _split_file_sections(text):
        if "Binary files " in section:
            continue
        lines = section.split("\n")
        path = _section_path(lines)
        if not path:
            continue
        current: list[str] | None = None
        for line in lines[1:]:
            if line.startswith("@@"):
                if current:
                    hunks.append(Hunk(file_path=path, raw_content=_trim_trailing_blank("\n".join(current))))
                current = [line]
                continue
            if current is None:
                continue
            if line == "" or line[0] in (" ", "-", "+", "\\"):
                current.append(line)
        if current:
            hunks.append(Hunk(file_path=path, raw_content=_trim_trailing_blank("\n".join(current))))
    return hunks


def _split_file_sections(text: str) -> list[str]:
    sections: list[str] = []
    current: list[str] = []
    for line in text.replace("\r\n", "\n").split("\n"):
        if line.startswith("diff --git ") and current:
            sections.append("\n".join(current))
            current = []
        current.append(line)
    if current and current[0].startswith("diff --git "):
        sections.append("\n".join(current))
    return sections


def _section_path(lines: list[str]) -> str:
    new_path = ""
    old_path = ""
    for line in lines:
        if line.startswith("+++ "):
            target = line[4:].strip()
            if target != "/dev/null":
                new_path = target[2:] if target.startswith("b/") else target
        elif line.startswith("--- "):
            target = line[4:].strip()
            if target != "/dev/null":
                old_path = target[2:] if target.startswith("a/") else target
        elif line.startswith("@@"):
            break
    if new_path or old_path:
        return new_path or old_path
    match = _DIFF_GIT_RE.match(lines[0])
    if match:
        return match.group(2)
    return ""


def _trim_trailing_blank(content: str) -> str:
    # Blank lines before the next header belong to the diff framing, not the hunk.
    return content.rstrip("\n")


def hunk_line_range(hunk: Hunk) -> tuple[int, int] | None:
    """Return the inclusive new-file line span of a hunk, or None if the header is unusable.

    Pure deletions (``+N,0``) cover no new-file lines and return None.
    """
    first_line = hunk.raw_content.split("\n", 1)[0]
    match = _HUNK_HEADER_RE.match(first_line)
    if not match:
        return None
    start = int(match.group(1))
    count = int(match.group(2)) if match.group(2) is not None else 1
    if start <= 0 or count <= 0:
        return None
    return start, start + count - 1


def count_hunk_scope(hunks: list[Hunk]) -> ScopeCounts:
    """Count added/removed lines and characters across hunks."""
    counts = ScopeCounts(hunks_reviewed=len(hunks))
    for hunk in hunks:
        counts.chars_reviewed += len(hunk.raw_content)
        for line in hunk.raw_content.split("\n")[1:]:
            if line.startswith("+") and not line.startswith("+++"):
                counts.lines_added += 1
                counts.chars_added += len(line) - 1
            elif line.startswith("-") and not line.startswith("---"):
                counts.lines_removed += 1
                counts.chars_deleted += len(line) - 1
    return counts


def filter_hunks(hunks: list[Hunk], paths: list[str] | None = None, exclude: list[str] | None = None) -> list[Hunk]:
    """Keep hunks under ``paths`` (when given) that match no exclude pattern."""
    result = []
    for hunk in hunks:
        if exclude and is_excluded(hunk.file_path, exclude):
            continue
        if paths and not any(_under_path(hunk.file_path, p) for p in paths):
            continue
        result.append(hunk)
    return result


def _under_path(file_path: str, path: str) -> bool:
    path = path.strip("/")
    if not path or path == ".":
        return True
    return file_path == path or file_path.startswith(path + "/")
