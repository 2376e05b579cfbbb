"""Append-only review history in ``<state>/history.jsonl``.

Each line is one HistoryRecord. When the active file grows past
``max_records`` lines, the oldest lines move to a gzip archive
``history.jsonl.<N>.gz`` (N increases with every rotation) and the active
file is rewritten with the newest lines. At most MAX_ARCHIVES archives are
kept; the lowest-numbered go first.
"""

from __future__ import annotations

import gzip
import json
import logging
import os
import re
from pathlib import Path

from stet_core.errors import StateError
from stet_store.fsutil import ensure_state_dir, write_atomic
from stet_store.models import HistoryRecord

logger = logging.getLogger(__name__)

HISTORY_FILENAME = "history.jsonl"
DEFAULT_MAX_RECORDS = 1000
MAX_ARCHIVES = 5
MAX_LINE_BYTES = 4 * 1024 * 1024

_ARCHIVE_RE = re.compile(r"^" + re.escape(HISTORY_FILENAME) + r"\.(\d+)\.gz$")


def history_path(state_dir: str | Path) -> Path:
    return Path(state_dir) / HISTORY_FILENAME


def archive_numbers(state_dir: str | Path) -> list[int]:
    """Return the archive numbers present, ascending."""
    path = Path(state_dir)
    if not path.is_dir():
        return []
    numbers = []
    for entry in path.iterdir():
        match = _ARCHIVE_RE.match(entry.name)
        if match:
            numbers.append(int(match.group(1)))
    return sorted(numbers)


def _archive_path(state_dir: str | Path, number: int) -> Path:
    return Path(state_dir) / f"{HISTORY_FILENAME}.{number}.gz"


def append_record(state_dir: str | Path, record: HistoryRecord, max_records: int = DEFAULT_MAX_RECORDS) -> None:
    """Append one record and rotate if the active file exceeds ``max_records``.

    ``max_records <= 0`` disables rotation.
    """
    ensure_state_dir(state_dir)
    line = json.dumps(record.to_dict(), separators=(",", ":")).encode("utf-8")
    if len(line) > MAX_LINE_BYTES:
        raise StateError("The history record is too large to store.")
    path = history_path(state_dir)
    try:
        with open(path, "ab") as f:
            f.write(line + b"\n")
            f.flush()
            os.fsync(f.fileno())
    except OSError as e:
        raise StateError(f"Could not write review history to {path}.") from e

    if max_records > 0:
        _rotate(state_dir, max_records)


def _rotate(state_dir: str | Path, max_records: int) -> None:
    path = history_path(state_dir)
    lines = [line for line in path.read_bytes().split(b"\n") if line.strip()]
    if len(lines) <= max_records:
        return

    dropped = lines[: len(lines) - max_records]
    kept = lines[len(lines) - max_records :]
    existing = archive_numbers(state_dir)
    number = existing[-1] + 1 if existing else 1

    try:
        with gzip.open(_archive_path(state_dir, number), "wb") as gz:
            gz.write(b"\n".join(dropped) + b"\n")
        with open(_archive_path(state_dir, number), "rb") as f:
            os.fsync(f.fileno())

        for old in (existing + [number])[:-MAX_ARCHIVES]:
            _archive_path(state_dir, old).unlink(missing_ok=True)
            logger.debug("Pruned history archive %d", old)

        write_atomic(path, b"\n".join(kept) + b"\n", prefix="history.")
    except OSError as e:
        raise StateError(f"Could not rotate review history in {state_dir}.") from e
    logger.debug("Rotated %d history record(s) into archive %d", len(dropped), number)


def _decode_lines(data: bytes, source: Path) -> list[HistoryRecord]:
    records = []
    for lineno, line in enumerate(data.split(b"\n"), 1):
        if not line.strip():
            continue
        if len(line) > MAX_LINE_BYTES:
            raise StateError(f"{source} line {lineno} exceeds the maximum record size.")
        try:
            records.append(HistoryRecord.from_dict(json.loads(line)))
        except (ValueError, TypeError, AttributeError) as e:
            raise StateError(f"{source} line {lineno} is not a valid history record.") from e
    return records


def read_records(state_dir: str | Path) -> list[HistoryRecord]:
    """Return all records, oldest first: archives in ascending order, then the active file."""
    records: list[HistoryRecord] = []
    for number in archive_numbers(state_dir):
        archive = _archive_path(state_dir, number)
        try:
            with gzip.open(archive, "rb") as gz:
                data = gz.read()
        except (OSError, EOFError) as e:
            raise StateError(f"Could not read history archive {archive}.") from e
        records.extend(_decode_lines(data, archive))

    path = history_path(state_dir)
    try:
        data = path.read_bytes()
    except FileNotFoundError:
        return records
    except OSError as e:
        raise StateError(f"Could not read {path}.") from e
    records.extend(_decode_lines(data, path))
    return records
