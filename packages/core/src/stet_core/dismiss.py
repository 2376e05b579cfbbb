"""Dismiss findings by ID prefix and record why."""

from __future__ import annotations

import logging

from stet_core.config import state_dir_for
from stet_core.errors import NoSessionError
from stet_core.findings.ids import resolve_finding_id_by_prefix
from stet_store.history import append_record
from stet_store.lock import acquire_lock
from stet_store.models import Dismissal, HistoryRecord, UserAction, validate_dismissal_reason
from stet_store.session import PromptShadow, load_session, save_session

logger = logging.getLogger(__name__)


def dismiss_findings(config: dict, id_prefixes: list[str], reason: str | None = None) -> list[str]:
    """Dismiss the findings matching ``id_prefixes`` and return their full IDs.

    Dismissed findings stay in the session but drop out of the active list,
    and hunks overlapping them are skipped by later incremental runs. With a
    reason, the finding's hunk is also kept as a negative prompt example.
    """
    reason = validate_dismissal_reason(reason or "")
    state_dir = state_dir_for(config)

    with acquire_lock(state_dir):
        session = load_session(state_dir)
        if not session.active:
            raise NoSessionError()

        ids = [f.id for f in session.findings]
        resolved: list[str] = []
        for prefix in id_prefixes:
            finding_id = resolve_finding_id_by_prefix(ids, prefix)
            if finding_id not in resolved:
                resolved.append(finding_id)

        session.dismiss(resolved)
        dismissals = []
        for finding_id in resolved:
            context = session.finding_prompt_context.get(finding_id, "")
            dismissals.append(Dismissal(finding_id=finding_id, reason=reason, prompt_context=context))
            shadowed = {s.finding_id for s in session.prompt_shadows}
            if reason and context and finding_id not in shadowed:
                session.prompt_shadows.append(PromptShadow(finding_id=finding_id, prompt_context=context))

        append_record(
            state_dir,
            HistoryRecord(
                diff_ref=session.last_reviewed_at or session.baseline_ref,
                review_output=[session.finding_by_id(fid) for fid in resolved],
                user_action=UserAction(dismissed_ids=list(resolved), dismissals=dismissals),
            ),
            config.get("history_max_records", 1000),
        )
        save_session(state_dir, session)

    logger.debug("Dismissed %s", ", ".join(resolved))
    return resolved
