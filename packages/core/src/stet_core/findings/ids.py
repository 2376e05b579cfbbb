"""Short display IDs and prefix resolution for finding IDs."""

from __future__ import annotations

from collections.abc import Iterable

from stet_core.errors import FindingIDAmbiguousError, FindingIDNotFoundError, FindingIDTooShortError

SHORT_ID_LENGTH = 7
MIN_PREFIX_LENGTH = 4


def short_id(finding_id: str) -> str:
    return finding_id[:SHORT_ID_LENGTH]


def resolve_finding_id_by_prefix(ids: Iterable[str], prefix: str) -> str:
    """Resolve a user-typed prefix to exactly one full finding ID.

    Matching is case-insensitive. Empty IDs in ``ids`` are ignored and
    duplicates count once.
    """
    prefix = prefix.strip()
    if not prefix:
        raise FindingIDTooShortError("A finding ID is required.")
    if len(prefix) < MIN_PREFIX_LENGTH:
        raise FindingIDTooShortError(
            f"Finding ID {prefix!r} is too short. Use at least {MIN_PREFIX_LENGTH} characters."
        )

    needle = prefix.lower()
    matches: list[str] = []
    for finding_id in ids:
        if finding_id and finding_id.lower().startswith(needle) and finding_id not in matches:
            matches.append(finding_id)

    if not matches:
        raise FindingIDNotFoundError(f"No finding with ID {prefix!r}.")
    if len(matches) > 1:
        raise FindingIDAmbiguousError(f"ID {prefix!r} matches {len(matches)} findings. Use more characters.")
    return matches[0]
