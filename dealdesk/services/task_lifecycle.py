"""
Task Lifecycle Manager — status transitions and edits of checklist tasks.

States: pending, in_progress, complete. Transitions are not linear; every
state is reachable from every other (the UI marks pending tasks complete
directly).

Side effects enforced here, never by callers:
    entering complete  → completed_at = now
    leaving complete   → completed_at = None
    complete → complete → completed_at unchanged

Concurrency: callers may pass ``expected_version``; a mismatch raises
ConflictError. Without it, writes are last-write-wins.

Usage:
    from dealdesk.services.task_lifecycle import transition_task

    task = transition_task(task_id, "complete", expected_version=3)
"""

import logging
from datetime import datetime, timezone

from flask import current_app, has_app_context

from dealdesk.core.exceptions import ValidationError
from dealdesk.models.checklist import (
    MANUAL_TASK_ORDER,
    TASK_STATUS_COMPLETE,
    TASK_STATUS_PENDING,
    TASK_STATUSES,
    ChecklistTask,
)
from dealdesk.services.task_store import SqlAlchemyTaskStore, TaskStore
from dealdesk.services.workstreams import filter_by_workstream, validate_workstream
from dealdesk.utils.helpers import parse_bool_input, parse_date_input, parse_int_input

logger = logging.getLogger(__name__)

# Fields editable independently of the state machine
EDITABLE_FIELDS = (
    "phase", "order", "title", "description", "notes", "url",
    "responsible", "system", "workstream",
    "start_date", "due_date", "is_critical", "estimated_days",
)

_DATE_FIELDS = ("start_date", "due_date")
_INT_FIELDS = ("order", "estimated_days")


def _utcnow():
    return datetime.now(timezone.utc)


def _manual_order() -> int:
    if has_app_context():
        return current_app.config.get("CHECKLIST_MANUAL_TASK_ORDER", MANUAL_TASK_ORDER)
    return MANUAL_TASK_ORDER


def validate_status(status: str) -> str:
    if status not in TASK_STATUSES:
        raise ValidationError(
            f"Invalid task status: {status!r}",
            details={"status": f"must be one of {', '.join(TASK_STATUSES)}"},
        )
    return status


def status_side_effects(current_status: str | None, new_status: str, now: datetime) -> dict:
    """Fields to write for a transition from ``current_status`` to ``new_status``."""
    validate_status(new_status)
    changes = {"status": new_status}
    if new_status == TASK_STATUS_COMPLETE:
        if current_status != TASK_STATUS_COMPLETE:
            changes["completed_at"] = now
    else:
        changes["completed_at"] = None
    return changes


def _clean_fields(data: dict) -> dict:
    """Whitelist and normalise editable fields; raise ValidationError on bad values."""
    errors = {}
    cleaned = {}
    for f in EDITABLE_FIELDS:
        if f not in data:
            continue
        value = data[f]
        if f == "title":
            value = (value or "").strip()
            if not value:
                errors["title"] = "required"
                continue
        elif f == "workstream":
            try:
                value = validate_workstream(value)
            except ValidationError as exc:
                errors.update(exc.details)
                continue
        elif f in _DATE_FIELDS:
            try:
                value = parse_date_input(value)
            except ValueError as exc:
                errors[f] = str(exc)
                continue
        elif f == "is_critical":
            try:
                value = parse_bool_input(value)
            except ValueError as exc:
                errors[f] = str(exc)
                continue
            if value is None:
                errors[f] = "Must be true or false."
                continue
        elif f in _INT_FIELDS:
            try:
                value = parse_int_input(value)
            except ValueError as exc:
                errors[f] = str(exc)
                continue
            if value is None and f == "order":
                continue
            if value is not None and value < 0 and f == "estimated_days":
                errors[f] = "Must not be negative."
                continue
        elif f == "phase":
            value = (value or "").strip()
        cleaned[f] = value
    if errors:
        raise ValidationError("Invalid task fields", details=errors)
    return cleaned


# ── Reads ────────────────────────────────────────────────────────────────────


def get_task(task_id: int, *, store: TaskStore | None = None) -> ChecklistTask:
    return (store or SqlAlchemyTaskStore()).get_task(task_id)


def list_tasks(
    deal_id: str, *, workstream: str | None = None, store: TaskStore | None = None,
) -> list[ChecklistTask]:
    """Tasks of a deal, optionally filtered to one workstream ("all" keeps everything)."""
    tasks = (store or SqlAlchemyTaskStore()).list_tasks_for_deal(deal_id)
    return filter_by_workstream(tasks, workstream)


# ── Writes ───────────────────────────────────────────────────────────────────


def transition_task(
    task_id: int,
    new_status: str,
    *,
    expected_version: int | None = None,
    now: datetime | None = None,
    store: TaskStore | None = None,
) -> ChecklistTask:
    """
    Move a task to ``new_status`` and apply the completion-timestamp rule.

    Raises:
        NotFoundError: unknown task id.
        ValidationError: unknown status.
        ConflictError: stale ``expected_version``.
    """
    store = store or SqlAlchemyTaskStore()
    validate_status(new_status)
    task = store.get_task(task_id)
    old = task.status
    changes = status_side_effects(old, new_status, now or _utcnow())
    task = store.update_task(task_id, changes, expected_version=expected_version)
    logger.info("ChecklistTask transitioned id=%s %s → %s", task_id, old, new_status)
    return task


def update_task_fields(
    task_id: int,
    data: dict,
    *,
    expected_version: int | None = None,
    now: datetime | None = None,
    store: TaskStore | None = None,
) -> ChecklistTask:
    """
    Edit whitelisted fields. A ``status`` key goes through the state machine
    in the same write; ``completed_at`` can never be set directly.
    """
    if "completed_at" in data:
        raise ValidationError(
            "completed_at is derived from status",
            details={"completed_at": "read-only"},
        )
    store = store or SqlAlchemyTaskStore()
    changes = _clean_fields(data)
    if "status" in data:
        task = store.get_task(task_id)
        changes.update(status_side_effects(task.status, data["status"], now or _utcnow()))
    if not changes:
        return store.get_task(task_id)
    return store.update_task(task_id, changes, expected_version=expected_version)


def create_manual_task(
    deal_id: str,
    data: dict,
    *,
    now: datetime | None = None,
    store: TaskStore | None = None,
) -> ChecklistTask:
    """Create a user-defined task; ``order`` defaults to the "last" sentinel."""
    if not deal_id:
        raise ValidationError("deal_id is required", details={"deal_id": "required"})
    if not (data.get("title") or "").strip():
        raise ValidationError("Task title is required", details={"title": "required"})

    fields = _clean_fields(data)
    fields.setdefault("order", _manual_order())
    fields.setdefault("workstream", validate_workstream(None))
    fields.setdefault("phase", "")
    fields.setdefault("is_critical", False)
    fields.update(status_side_effects(None, data.get("status") or TASK_STATUS_PENDING, now or _utcnow()))

    store = store or SqlAlchemyTaskStore()
    task = ChecklistTask(deal_id=deal_id, template_id=None, version=1, **fields)
    store.create_task(task)
    return task


def delete_task(task_id: int, *, store: TaskStore | None = None) -> None:
    """Hard delete; raises NotFoundError when the task does not exist."""
    (store or SqlAlchemyTaskStore()).delete_task(task_id)
