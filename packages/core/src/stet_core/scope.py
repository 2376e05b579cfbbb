"""Split the baseline..HEAD diff into hunks still to review and hunks already reviewed."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from stet_core.hunkid import semantic_hunk_id, strict_hunk_id

if TYPE_CHECKING:
    from stet_core.diff import Hunk
    from stet_core.git import GitRepo

logger = logging.getLogger(__name__)


@dataclass
class Partition:
    to_review: list[Hunk] = field(default_factory=list)
    approved: list[Hunk] = field(default_factory=list)


def partition(
    vcs: GitRepo,
    baseline: str,
    head: str,
    last_reviewed_at: str,
    paths: list[str] | None = None,
    exclude: list[str] | None = None,
) -> Partition:
    """Partition the hunks of ``baseline..head``.

    Without ``last_reviewed_at`` every hunk is to be reviewed. Otherwise a
    hunk is approved when the same hunk (byte for byte, or ignoring comments
    and whitespace) was already part of ``baseline..last_reviewed_at``.
    Together the two lists always hold exactly the hunks of the current diff.
    """
    current = vcs.hunks(baseline, head, paths=paths, exclude=exclude)
    if not current or not last_reviewed_at:
        return Partition(to_review=current)

    reviewed = vcs.hunks(baseline, last_reviewed_at, paths=paths, exclude=exclude)
    strict_ids = {strict_hunk_id(h.file_path, h.raw_content) for h in reviewed}
    semantic_ids = {semantic_hunk_id(h.file_path, h.raw_content) for h in reviewed}

    result = Partition()
    for hunk in current:
        if (
            strict_hunk_id(hunk.file_path, hunk.raw_content) in strict_ids
            or semantic_hunk_id(hunk.file_path, hunk.raw_content) in semantic_ids
        ):
            result.approved.append(hunk)
        else:
            result.to_review.append(hunk)
    logger.debug(
        "Partitioned %d hunks: %d to review, %d approved", len(current), len(result.to_review), len(result.approved)
    )
    return result
