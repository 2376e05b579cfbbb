"""Filesystem helpers shared by the session and history writers."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

from stet_core.errors import StateError

_GITIGNORE_BODY = "# Created by stet. Review state is local to this machine.\n*\n"


def ensure_state_dir(state_dir: str | Path) -> Path:
    """Create the state directory and keep git from seeing it as untracked."""
    path = Path(state_dir)
    try:
        path.mkdir(parents=True, exist_ok=True)
        gitignore = path / ".gitignore"
        if not gitignore.exists():
            gitignore.write_text(_GITIGNORE_BODY)
    except OSError as e:
        raise StateError(f"Could not create the state directory {path}.") from e
    return path


def write_atomic(path: str | Path, data: bytes, prefix: str) -> None:
    """Write ``data`` to ``path`` via a synced temp file and a rename.

    Readers see either the old file or the new one, never a partial write.
    """
    path = Path(path)
    fd, tmp_name = tempfile.mkstemp(prefix=prefix, suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise
