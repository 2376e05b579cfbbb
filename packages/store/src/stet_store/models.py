"""Review history data models.

One HistoryRecord is one line of ``history.jsonl``. Records capture what the
reviewer said and what the user did about it, so later sessions can learn
from past dismissals. Decoupled from the session model: history depends on
the finding model only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from stet_core.errors import InvalidDismissalReasonError
from stet_core.findings.models import Finding


class DismissalReason(str, Enum):
    FALSE_POSITIVE = "false_positive"
    ALREADY_CORRECT = "already_correct"
    WRONG_SUGGESTION = "wrong_suggestion"
    OUT_OF_SCOPE = "out_of_scope"


VALID_DISMISSAL_REASONS = frozenset(r.value for r in DismissalReason)


def validate_dismissal_reason(reason: str) -> str:
    """Return the canonical reason; empty means "no reason given"."""
    reason = (reason or "").strip().lower()
    if reason and reason not in VALID_DISMISSAL_REASONS:
        raise InvalidDismissalReasonError(
            f"Invalid dismissal reason {reason!r}: use {', '.join(r.value for r in DismissalReason)}."
        )
    return reason


@dataclass
class Dismissal:
    finding_id: str
    reason: str = ""
    prompt_context: str = ""

    def to_dict(self) -> dict:
        d = {"finding_id": self.finding_id}
        if self.reason:
            d["reason"] = self.reason
        if self.prompt_context:
            d["prompt_context"] = self.prompt_context
        return d

    @classmethod
    def from_dict(cls, d: dict) -> Dismissal:
        return cls(
            finding_id=d.get("finding_id", ""),
            reason=d.get("reason", ""),
            prompt_context=d.get("prompt_context", ""),
        )


@dataclass
class UserAction:
    dismissed_ids: list[str] = field(default_factory=list)
    dismissals: list[Dismissal] = field(default_factory=list)
    finished_at: str = ""  # RFC 3339 UTC
    replace_findings: bool = False

    def to_dict(self) -> dict:
        d: dict = {}
        if self.dismissed_ids:
            d["dismissed_ids"] = list(self.dismissed_ids)
        if self.dismissals:
            d["dismissals"] = [x.to_dict() for x in self.dismissals]
        if self.finished_at:
            d["finished_at"] = self.finished_at
        if self.replace_findings:
            d["replace_findings"] = True
        return d

    @classmethod
    def from_dict(cls, d: dict) -> UserAction:
        return cls(
            dismissed_ids=list(d.get("dismissed_ids") or []),
            dismissals=[Dismissal.from_dict(x) for x in d.get("dismissals") or []],
            finished_at=d.get("finished_at", ""),
            replace_findings=bool(d.get("replace_findings", False)),
        )


@dataclass
class RunConfigSnapshot:
    """The settings a run used, recorded for later analysis."""

    model: str = ""
    strictness: str = ""
    rag_symbol_max_definitions: int = 0
    rag_symbol_max_tokens: int = 0
    nitpicky: bool = False

    def to_dict(self) -> dict:
        d: dict = {}
        if self.model:
            d["model"] = self.model
        if self.strictness:
            d["strictness"] = self.strictness
        if self.rag_symbol_max_definitions:
            d["rag_symbol_max_definitions"] = self.rag_symbol_max_definitions
        if self.rag_symbol_max_tokens:
            d["rag_symbol_max_tokens"] = self.rag_symbol_max_tokens
        if self.nitpicky:
            d["nitpicky"] = True
        return d

    @classmethod
    def from_dict(cls, d: dict) -> RunConfigSnapshot:
        return cls(
            model=d.get("model", ""),
            strictness=d.get("strictness", ""),
            rag_symbol_max_definitions=d.get("rag_symbol_max_definitions", 0),
            rag_symbol_max_tokens=d.get("rag_symbol_max_tokens", 0),
            nitpicky=bool(d.get("nitpicky", False)),
        )


@dataclass
class HistoryRecord:
    diff_ref: str
    review_output: list[Finding] = field(default_factory=list)
    user_action: UserAction = field(default_factory=UserAction)
    run_config: RunConfigSnapshot | None = None
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    eval_duration_ns: int | None = None

    def to_dict(self) -> dict:
        d: dict = {
            "diff_ref": self.diff_ref,
            "review_output": [f.to_dict() for f in self.review_output],
            "user_action": self.user_action.to_dict(),
        }
        if self.run_config is not None:
            d["run_config"] = self.run_config.to_dict()
        for name in ("prompt_tokens", "completion_tokens", "eval_duration_ns"):
            value = getattr(self, name)
            if value is not None:
                d[name] = value
        return d

    @classmethod
    def from_dict(cls, d: dict) -> HistoryRecord:
        run_config = d.get("run_config")
        return cls(
            diff_ref=d.get("diff_ref", ""),
            review_output=[Finding.from_dict(f) for f in d.get("review_output") or []],
            user_action=UserAction.from_dict(d.get("user_action") or {}),
            run_config=RunConfigSnapshot.from_dict(run_config) if isinstance(run_config, dict) else None,
            prompt_tokens=d.get("prompt_tokens"),
            completion_tokens=d.get("completion_tokens"),
            eval_duration_ns=d.get("eval_duration_ns"),
        )
