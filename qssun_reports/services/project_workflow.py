"""
Project stage gating — pure functions over the ``details.updates`` array.

No database access here; ``report_service`` loads the report, calls these
functions on copies of the stage array and persists the result.

Rules:
    - A stage may become complete only when every earlier stage is complete.
    - Unchecking is free except for one-way stages (``notifyTeam``).
    - ``next_status`` derives the coarse workflow status from the completed
      stages and the previous status; it only ever moves forward.
"""

from __future__ import annotations

import copy
from datetime import datetime, timezone

from qssun_reports.core.exceptions import ValidationError
from qssun_reports.models.report import (
    ONE_WAY_STAGES,
    PROJECT_STAGE_IDS,
    PROJECT_STAGES,
    STATUS_DERIVATION_RULES,
    STATUS_DRAFT,
)

PREVIOUS_STAGES_MESSAGE = "Previous stages must be completed first"
ONE_WAY_MESSAGE = "Stage cannot be reverted once completed"


# ── Lookups ──────────────────────────────────────────────────────────────────


def stage_index(stage_id: str) -> int:
    """Position of ``stage_id`` in the fixed stage order."""
    try:
        return PROJECT_STAGE_IDS.index(stage_id)
    except ValueError:
        raise ValidationError(f"Unknown project stage '{stage_id}'", details={"stage": stage_id}) from None


def find_stage(updates: list[dict], stage_id: str) -> dict | None:
    for update in updates:
        if update.get("id") == stage_id:
            return update
    return None


def completed_stage_ids(updates: list[dict]) -> set[str]:
    return {u.get("id") for u in updates if u.get("completed")}


def normalize_updates(updates: list[dict] | None) -> list[dict]:
    """Return the stage array in canonical order.

    Entries are matched by id; unknown ids are dropped and missing stages
    are added as incomplete. Labels always come from the stage table.
    """
    by_id = {u.get("id"): u for u in (updates or []) if isinstance(u, dict)}
    result = []
    for stage_id, label in PROJECT_STAGES:
        entry = copy.deepcopy(by_id.get(stage_id) or {})
        entry["id"] = stage_id
        entry["label"] = label
        entry["completed"] = bool(entry.get("completed"))
        if not isinstance(entry.get("files"), list):
            entry["files"] = []
        result.append(entry)
    return result


# ── Gating ───────────────────────────────────────────────────────────────────


def blocking_stages(updates: list[dict], stage_id: str) -> list[str]:
    """Ids of earlier stages that are still incomplete."""
    idx = stage_index(stage_id)
    done = completed_stage_ids(updates)
    return [sid for sid in PROJECT_STAGE_IDS[:idx] if sid not in done]


def can_proceed(updates: list[dict], stage_id: str) -> bool:
    """True iff every stage before ``stage_id`` is complete."""
    return not blocking_stages(updates, stage_id)


def ensure_can_complete(updates: list[dict], stage_id: str) -> None:
    blocking = blocking_stages(updates, stage_id)
    if blocking:
        raise ValidationError(
            PREVIOUS_STAGES_MESSAGE,
            details={"stage": stage_id, "blocking": blocking},
        )


def ensure_can_revert(stage_id: str) -> None:
    if stage_id in ONE_WAY_STAGES:
        raise ValidationError(ONE_WAY_MESSAGE, details={"stage": stage_id})


def set_stage_completed(
    updates: list[dict],
    stage_id: str,
    completed: bool,
    *,
    comment: str | None = None,
    files: list[dict] | None = None,
    timestamp: str | None = None,
) -> list[dict]:
    """Return a new stage array with ``stage_id`` toggled.

    ``files`` are appended to the stage's existing attachments.
    Raises ValidationError when the toggle breaks the gating rules.
    """
    new_updates = normalize_updates(updates)
    stage = find_stage(new_updates, stage_id)
    if stage is None:
        stage_index(stage_id)

    if completed and not stage["completed"]:
        ensure_can_complete(new_updates, stage_id)
    elif not completed and stage["completed"]:
        ensure_can_revert(stage_id)

    stage["completed"] = completed
    stage["timestamp"] = timestamp or datetime.now(timezone.utc).isoformat()
    if comment is not None:
        stage["comment"] = comment
    if files:
        stage["files"] = stage["files"] + list(files)
    return new_updates


def diff_stage_changes(old_updates: list[dict], new_updates: list[dict]) -> tuple[list[str], list[str]]:
    """Return ``(newly_completed, newly_reverted)`` stage ids in stage order."""
    before = completed_stage_ids(normalize_updates(old_updates))
    after = completed_stage_ids(normalize_updates(new_updates))
    completed = [sid for sid in PROJECT_STAGE_IDS if sid in after and sid not in before]
    reverted = [sid for sid in PROJECT_STAGE_IDS if sid in before and sid not in after]
    return completed, reverted


def validate_stage_changes(old_updates: list[dict], new_updates: list[dict]) -> tuple[list[str], list[str]]:
    """Check a whole-array save against the gating rules.

    Completions are checked against the submitted array, so several stages
    may be completed in order in one save.
    Returns ``(newly_completed, newly_reverted)``.
    """
    normalized = normalize_updates(new_updates)
    completed, reverted = diff_stage_changes(old_updates, normalized)
    for stage_id in reverted:
        ensure_can_revert(stage_id)
    for stage_id in completed:
        ensure_can_complete(normalized, stage_id)
    return completed, reverted


# ── Status derivation ────────────────────────────────────────────────────────


def next_status(prev_status: str | None, completed_stages) -> str:
    """Derive the project workflow status after a save.

    Walks STATUS_DERIVATION_RULES in order; the first rule whose stage is
    complete and whose required previous status matches wins. Otherwise the
    previous status is kept, so unchecking a stage never rolls back.
    """
    prev = prev_status or STATUS_DRAFT
    done = set(completed_stages)
    for stage_id, required_prev, target in STATUS_DERIVATION_RULES:
        if stage_id in done and (required_prev is None or required_prev == prev):
            return target
    return prev
