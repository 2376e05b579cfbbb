"""Content hashes for hunks and findings.

Hunk IDs let the scope partitioner recognise a hunk it has already reviewed
even when the surrounding diff has shifted; finding IDs let a finding keep
its identity across runs so dismissals stick.
"""

from __future__ import annotations

import hashlib
import re

_WHITESPACE_RE = re.compile(r"\s+")
_BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)
_LINE_COMMENT_RE = re.compile(r"//[^\n]*")
_HASH_COMMENT_RE = re.compile(r"#[^\n]*")

_C_STYLE_EXTENSIONS = {".go", ".js", ".mjs", ".cjs", ".ts", ".tsx", ".jsx", ".java", ".c", ".h", ".cc", ".cpp", ".rs"}
_HASH_STYLE_EXTENSIONS = {".py", ".pyw", ".sh", ".bash", ".zsh", ".rb", ".yml", ".yaml"}


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def stable_finding_id(file: str, line: int, range_start: int, range_end: int, message: str) -> str:
    """Return a deterministic ID for a finding.

    The location part is ``file:start:end`` for a valid positive range and
    ``file:line`` otherwise (file-level findings use line 1). The message is
    trimmed and whitespace runs collapsed, so reflowed text keeps its ID.
    """
    if range_start > 0 and range_end > 0 and range_start <= range_end:
        location = f"{file}:{range_start}:{range_end}"
    else:
        location = f"{file}:{max(line, 1)}"
    return _sha256(f"{location}:{collapse_whitespace(message)}")


def strict_hunk_id(file_path: str, content: str) -> str:
    """Hash of the hunk content with line endings normalised."""
    normalized = content.replace("\r\n", "\n")
    return _sha256(f"{file_path}:{normalized}")


def semantic_hunk_id(file_path: str, content: str) -> str:
    """Hash of the hunk content with comments and whitespace differences removed."""
    normalized = content.replace("\r\n", "\n")
    normalized = _strip_comments(file_path, normalized)
    return _sha256(f"{file_path}:{collapse_whitespace(normalized)}")


def _strip_comments(file_path: str, content: str) -> str:
    dot = file_path.rfind(".")
    ext = file_path[dot:].lower() if dot != -1 else ""
    if ext in _C_STYLE_EXTENSIONS:
        content = _BLOCK_COMMENT_RE.sub(" ", content)
        return _LINE_COMMENT_RE.sub(" ", content)
    if ext in _HASH_STYLE_EXTENSIONS:
        return _HASH_COMMENT_RE.sub(" ", content)
    return content
