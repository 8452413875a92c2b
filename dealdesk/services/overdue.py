"""
Overdue Detector — pure predicates over checklist tasks.

A task is overdue iff it has a due date, the due date is before ``now``
and its status is not ``complete``. A due date stands for the start of
that day: with a datetime ``now`` a task due today is overdue as soon as
the day has begun. With a plain date ``now`` the comparison is by
calendar date.

Overdue-ness is never stored; it is recomputed on every read.
"""

from datetime import date, datetime, time

from dealdesk.models.checklist import TASK_STATUS_COMPLETE
from dealdesk.utils.helpers import as_date


def _due_start(due: date, now: datetime) -> datetime:
    return datetime.combine(due, time.min, tzinfo=now.tzinfo)


def is_overdue(task, now) -> bool:
    """Return True when ``task`` is past its due date and not complete."""
    due = as_date(getattr(task, "due_date", None))
    if due is None:
        return False
    if task.status == TASK_STATUS_COMPLETE:
        return False
    if isinstance(now, datetime):
        return _due_start(due, now) < now
    return due < as_date(now)


def days_overdue(task, now) -> int | None:
    """Whole days elapsed since the due date (floored); None when not overdue."""
    if not is_overdue(task, now):
        return None
    due = as_date(task.due_date)
    if isinstance(now, datetime):
        return (now - _due_start(due, now)).days
    return (as_date(now) - due).days


def list_overdue_tasks(tasks, now) -> list[dict]:
    """
    Summaries of the overdue tasks, most overdue first.

    Returns:
        [{"id", "title", "phase", "due_date", "is_critical", "days_overdue"}]
    """
    overdue = []
    for task in tasks:
        days = days_overdue(task, now)
        if days is None:
            continue
        due: date = as_date(task.due_date)
        overdue.append({
            "id": task.id,
            "title": task.title,
            "phase": task.phase,
            "due_date": due.isoformat(),
            "is_critical": bool(task.is_critical),
            "days_overdue": days,
        })
    overdue.sort(key=lambda item: (-item["days_overdue"], not item["is_critical"], item["id"] or 0))
    return overdue
