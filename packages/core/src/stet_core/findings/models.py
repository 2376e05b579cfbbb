"""Finding data model: the structured result of reviewing one hunk.

Findings travel as JSON between the review model, the session file, the
history log and the CLI, so the wire form is defined here once via
``to_dict`` / ``from_dict``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum

from stet_core.errors import InvalidFindingError


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    NITPICK = "nitpick"


class Category(str, Enum):
    BUG = "bug"
    SECURITY = "security"
    CORRECTNESS = "correctness"
    PERFORMANCE = "performance"
    STYLE = "style"
    MAINTAINABILITY = "maintainability"
    BEST_PRACTICE = "best_practice"
    TESTING = "testing"
    DOCUMENTATION = "documentation"
    DESIGN = "design"
    ACCESSIBILITY = "accessibility"


VALID_SEVERITIES = frozenset(s.value for s in Severity)
VALID_CATEGORIES = frozenset(c.value for c in Category)


@dataclass
class LineRange:
    """Inclusive line span in the new file."""

    start: int
    end: int


@dataclass
class Finding:
    """A single review finding.

    ``id`` is empty on raw model output and assigned from the finding's
    location and message once the hunk it belongs to is known.
    """

    file: str = ""
    message: str = ""
    severity: str = ""
    category: str = ""
    confidence: float = 1.0
    id: str = ""
    line: int = 0
    range: LineRange | None = None
    suggestion: str = ""
    cursor_uri: str = ""
    evidence_lines: list[int] = field(default_factory=list)

    def location(self) -> int:
        """Line used for overlap checks: range start when a range exists, else line."""
        if self.range is not None:
            return self.range.start
        return self.line

    def normalize(self) -> None:
        """Map unknown severity to warning and unknown category to bug, in place."""
        if self.severity not in VALID_SEVERITIES:
            self.severity = Severity.WARNING.value
        if self.category not in VALID_CATEGORIES:
            self.category = Category.BUG.value

    def validate(self, require_file: bool = True) -> None:
        """Raise InvalidFindingError if the finding cannot be stored.

        ``require_file=False`` defers the file check to ID assignment, where a
        missing file is filled in from the hunk being reviewed.
        """
        if not self.severity:
            raise InvalidFindingError("Finding is missing a severity.")
        if self.severity not in VALID_SEVERITIES:
            raise InvalidFindingError(f"Finding has an invalid severity {self.severity!r}.")
        if not self.category:
            raise InvalidFindingError("Finding is missing a category.")
        if self.category not in VALID_CATEGORIES:
            raise InvalidFindingError(f"Finding has an invalid category {self.category!r}.")
        if math.isnan(self.confidence) or not 0.0 <= self.confidence <= 1.0:
            raise InvalidFindingError(f"Finding confidence must be between 0 and 1, got {self.confidence}.")
        if require_file and not self.file:
            raise InvalidFindingError("Finding is missing a file.")
        if not self.message:
            raise InvalidFindingError("Finding is missing a message.")
        if self.range is not None and self.range.start > self.range.end:
            raise InvalidFindingError(
                f"Finding range is inverted: start {self.range.start} is after end {self.range.end}."
            )

    def to_dict(self) -> dict:
        d: dict = {}
        if self.id:
            d["id"] = self.id
        d["file"] = self.file
        if self.line:
            d["line"] = self.line
        if self.range is not None:
            d["range"] = {"start": self.range.start, "end": self.range.end}
        d["severity"] = self.severity
        d["category"] = self.category
        d["confidence"] = self.confidence
        d["message"] = self.message
        if self.suggestion:
            d["suggestion"] = self.suggestion
        if self.cursor_uri:
            d["cursor_uri"] = self.cursor_uri
        if self.evidence_lines:
            d["evidence_lines"] = list(self.evidence_lines)
        return d

    @classmethod
    def from_dict(cls, data) -> Finding:
        """Decode a finding, tolerating the shapes models commonly emit.

        Absent confidence becomes 1.0; ``evidence_lines`` may be a list of
        integers or a comma-separated string.
        """
        if not isinstance(data, dict):
            raise InvalidFindingError("Finding must be a JSON object.")
        confidence = data.get("confidence")
        return cls(
            id=_as_str(data.get("id")),
            file=_as_str(data.get("file")),
            line=_as_int(data.get("line"), "line"),
            range=_decode_range(data.get("range")),
            severity=_as_str(data.get("severity")),
            category=_as_str(data.get("category")),
            confidence=1.0 if confidence is None else _as_float(confidence),
            message=_as_str(data.get("message")),
            suggestion=_as_str(data.get("suggestion")),
            cursor_uri=_as_str(data.get("cursor_uri")),
            evidence_lines=_decode_evidence_lines(data.get("evidence_lines")),
        )


def _as_str(value) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise InvalidFindingError(f"Expected a string, got {value!r}.")
    return value


def _as_int(value, name: str) -> int:
    if value is None:
        return 0
    if isinstance(value, bool):
        raise InvalidFindingError(f"Finding {name} must be an integer, got {value!r}.")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise InvalidFindingError(f"Finding {name} must be an integer, got {value!r}.")


def _as_float(value) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidFindingError(f"Finding confidence must be a number, got {value!r}.")
    return float(value)


def _decode_range(value) -> LineRange | None:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise InvalidFindingError(f"Finding range must be an object, got {value!r}.")
    return LineRange(start=_as_int(value.get("start"), "range start"), end=_as_int(value.get("end"), "range end"))


def _decode_evidence_lines(value) -> list[int]:
    if value is None:
        return []
    if isinstance(value, list):
        return [_as_int(v, "evidence line") for v in value]
    if isinstance(value, str):
        lines = []
        for part in value.split(","):
            part = part.strip()
            if not part:
                continue
            try:
                lines.append(int(part))
            except ValueError as e:
                raise InvalidFindingError(f"Invalid evidence line {part!r}.") from e
        return lines
    raise InvalidFindingError(f"Finding evidence_lines must be a list or a string, got {value!r}.")
