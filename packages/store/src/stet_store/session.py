"""Session state: the single JSON document describing the active review.

One session lives in each state directory (``<state>/session.json``). It is
created by ``start``, updated by ``run`` and ``dismiss`` and read by
``finish``. Writes go through a temp file and a rename, so a crash never
leaves a truncated session behind.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from stet_core.errors import StateError
from stet_core.findings.models import Finding
from stet_store.fsutil import ensure_state_dir, write_atomic

logger = logging.getLogger(__name__)

SESSION_FILENAME = "session.json"
MAX_PROMPT_CONTEXT_BYTES = 4096
TRUNCATED_MARKER = "\n[truncated]"

# Run options persisted at start so later runs use the same settings.
# None means "not set"; a stored 0 or False is a real value.
_OPTION_FIELDS = (
    "strictness",
    "rag_symbol_max_definitions",
    "rag_symbol_max_tokens",
    "nitpicky",
    "context_limit",
    "num_ctx",
)
_USAGE_FIELDS = (
    "last_run_model",
    "last_run_prompt_tokens",
    "last_run_completion_tokens",
    "last_run_eval_duration_ns",
)


@dataclass
class PromptShadow:
    """A dismissed finding and the hunk it was raised on, used as a negative example."""

    finding_id: str
    prompt_context: str


@dataclass
class Session:
    session_id: str = ""
    baseline_ref: str = ""
    last_reviewed_at: str = ""
    dismissed_ids: list[str] = field(default_factory=list)
    findings: list[Finding] = field(default_factory=list)
    finding_prompt_context: dict[str, str] = field(default_factory=dict)
    prompt_shadows: list[PromptShadow] = field(default_factory=list)
    strictness: str | None = None
    rag_symbol_max_definitions: int | None = None
    rag_symbol_max_tokens: int | None = None
    nitpicky: bool | None = None
    context_limit: int | None = None
    num_ctx: int | None = None
    last_run_model: str | None = None
    last_run_prompt_tokens: int | None = None
    last_run_completion_tokens: int | None = None
    last_run_eval_duration_ns: int | None = None

    @property
    def active(self) -> bool:
        return bool(self.baseline_ref)

    def active_findings(self) -> list[Finding]:
        """Stored findings that have not been dismissed."""
        dismissed = set(self.dismissed_ids)
        return [f for f in self.findings if f.id not in dismissed]

    def dismiss(self, finding_ids: list[str]) -> list[str]:
        """Add IDs to the dismissed set; return the ones that were not already there."""
        added = []
        for finding_id in finding_ids:
            if finding_id and finding_id not in self.dismissed_ids:
                self.dismissed_ids.append(finding_id)
                added.append(finding_id)
        return added

    def finding_by_id(self, finding_id: str) -> Finding | None:
        for f in self.findings:
            if f.id == finding_id:
                return f
        return None

    def to_dict(self) -> dict:
        d: dict = {
            "session_id": self.session_id,
            "baseline_ref": self.baseline_ref,
            "last_reviewed_at": self.last_reviewed_at,
            "dismissed_ids": list(self.dismissed_ids),
            "findings": [f.to_dict() for f in self.findings],
        }
        if self.finding_prompt_context:
            d["finding_prompt_context"] = dict(self.finding_prompt_context)
        if self.prompt_shadows:
            d["prompt_shadows"] = [
                {"finding_id": s.finding_id, "prompt_context": s.prompt_context} for s in self.prompt_shadows
            ]
        for name in _OPTION_FIELDS + _USAGE_FIELDS:
            value = getattr(self, name)
            if value is not None:
                d[name] = value
        return d

    @classmethod
    def from_dict(cls, d: dict) -> Session:
        session = cls(
            session_id=d.get("session_id", ""),
            baseline_ref=d.get("baseline_ref", ""),
            last_reviewed_at=d.get("last_reviewed_at", ""),
            dismissed_ids=list(d.get("dismissed_ids") or []),
            findings=[Finding.from_dict(f) for f in d.get("findings") or []],
            finding_prompt_context=dict(d.get("finding_prompt_context") or {}),
            prompt_shadows=[
                PromptShadow(finding_id=s.get("finding_id", ""), prompt_context=s.get("prompt_context", ""))
                for s in d.get("prompt_shadows") or []
            ],
        )
        for name in _OPTION_FIELDS + _USAGE_FIELDS:
            if name in d:
                setattr(session, name, d[name])
        return session


def truncate_prompt_context(text: str, limit: int = MAX_PROMPT_CONTEXT_BYTES) -> str:
    """Cut ``text`` to ``limit`` UTF-8 bytes, appending a marker when cut."""
    encoded = text.encode("utf-8")
    if len(encoded) <= limit:
        return text
    return encoded[:limit].decode("utf-8", errors="ignore") + TRUNCATED_MARKER


def session_path(state_dir: str | Path) -> Path:
    return Path(state_dir) / SESSION_FILENAME


def load_session(state_dir: str | Path) -> Session:
    """Return the stored session, or an empty one when none exists."""
    path = session_path(state_dir)
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return Session()
    except OSError as e:
        raise StateError(f"Could not read {path}.") from e
    try:
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("session file must contain a JSON object")
        return Session.from_dict(data)
    except (ValueError, TypeError, AttributeError) as e:
        raise StateError(f"The session file {path} is corrupted. Inspect or remove it and start again.") from e


def save_session(state_dir: str | Path, session: Session) -> None:
    ensure_state_dir(state_dir)
    data = json.dumps(session.to_dict(), indent=2).encode("utf-8") + b"\n"
    try:
        write_atomic(session_path(state_dir), data, prefix="session.")
    except OSError as e:
        raise StateError(f"Could not save the session to {state_dir}.") from e
    logger.debug("Saved session %s to %s", session.session_id, state_dir)
