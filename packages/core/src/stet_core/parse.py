"""Parse review-model responses into findings.

Models answer in one of three shapes, tried in this order:
  1. a JSON array of findings
  2. an object wrapping the array: {"findings": [...]}
  3. a single finding object

Shapes 1 and 2 are lenient: each item is normalized and items that are
still invalid are dropped. Shape 3 is strict since a lone object that does
not validate is more likely a malformed answer than a finding.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable

from stet_core.errors import InvalidFindingError, ResponseParseError
from stet_core.findings.models import Finding
from stet_core.hunkid import stable_finding_id

logger = logging.getLogger(__name__)

OnDropped = Callable[[int, str], None]

_FINDING_KEYS = frozenset({"file", "line", "range", "severity", "category", "confidence", "message", "suggestion"})


def strip_code_fences(raw: str) -> str:
    # Strip only the outer ```json ... ``` fence, not backticks inside messages.
    cleaned = re.sub(r"^```(?:json)?\s*", "", raw.strip())
    return re.sub(r"\s*```$", "", cleaned.strip()).strip()


def parse_findings_response(raw: str, on_dropped: OnDropped | None = None) -> list[Finding]:
    """Return the findings in ``raw``; raise ResponseParseError if no shape matches.

    An empty array, an empty object and a null ``findings`` all mean the hunk
    has no findings.
    """
    text = strip_code_fences(raw or "")
    if not text:
        raise ResponseParseError("The review model returned an empty response.")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ResponseParseError("The review model response is not valid JSON.") from e

    if isinstance(data, list):
        return _decode_items(data, on_dropped)
    if isinstance(data, dict) and isinstance(data.get("findings"), list):
        return _decode_items(data["findings"], on_dropped)
    if isinstance(data, dict) and data.get("findings") is None and not _FINDING_KEYS & data.keys():
        # {} and {"findings": null} carry no findings.
        return []
    if isinstance(data, dict):
        try:
            finding = Finding.from_dict(data)
            finding.validate()
        except InvalidFindingError as e:
            raise ResponseParseError("The review model response is not a JSON array of findings.") from e
        return [finding]
    raise ResponseParseError("The review model response is not a JSON array of findings.")


def _decode_items(items: list, on_dropped: OnDropped | None) -> list[Finding]:
    findings = []
    for index, item in enumerate(items):
        try:
            finding = Finding.from_dict(item)
            finding.normalize()
            finding.validate(require_file=False)
        except InvalidFindingError as e:
            logger.debug("Dropping finding %d from response: %s", index, e)
            if on_dropped is not None:
                on_dropped(index, str(e))
            continue
        findings.append(finding)
    return findings


def assign_finding_ids(findings: list[Finding], hunk_file: str) -> list[Finding]:
    """Fill in missing files from the hunk, assign stable IDs and validate.

    Mutates and returns the given findings.
    """
    for f in findings:
        if not f.file:
            f.file = hunk_file
        range_start, range_end = (f.range.start, f.range.end) if f.range is not None else (0, 0)
        f.id = stable_finding_id(f.file, f.line, range_start, range_end, f.message)
        f.validate()
    return findings
