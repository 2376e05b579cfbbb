"""Few-shot "do not report" examples built from past dismissals."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from stet_core.findings.models import Finding
from stet_store.history import read_records

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_COUNT = 50
DEFAULT_MAX_EXAMPLES = 30

_WHITESPACE_RE = re.compile(r"\s+")


def format_example(finding: Finding) -> str:
    """Render a dismissed finding as ``file:line: message``."""
    message = finding.message.strip()
    if not finding.file:
        return message
    if finding.line <= 0:
        return f"{finding.file}: {message}"
    return f"{finding.file}:{finding.line}: {message}"


def suppression_examples(
    state_dir: str | Path,
    max_records: int = DEFAULT_HISTORY_COUNT,
    max_examples: int = DEFAULT_MAX_EXAMPLES,
) -> list[str] | None:
    """Return up to ``max_examples`` distinct dismissed findings, oldest first.

    Only the newest ``max_records`` history records are scanned. Returns None
    when there is nothing to suggest; a corrupt history propagates StateError.
    """
    if max_records <= 0 or max_examples <= 0:
        return None
    records = read_records(state_dir)
    if not records:
        return None

    examples: list[str] = []
    seen: set[str] = set()
    for record in records[-max_records:]:
        if not record.review_output or not record.user_action.dismissals:
            continue
        by_id = {f.id: f for f in record.review_output if f.id}
        for dismissal in record.user_action.dismissals:
            finding = by_id.get(dismissal.finding_id)
            if finding is None:
                continue
            example = format_example(finding)
            if not example:
                continue
            key = _WHITESPACE_RE.sub(" ", example).strip()
            if key in seen:
                continue
            seen.add(key)
            examples.append(example)

    if not examples:
        return None
    logger.debug("Built %d suppression example(s) from history", len(examples))
    return examples[-max_examples:]
