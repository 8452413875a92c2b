"""
Workstream Classifier — due-diligence rollups orthogonal to phases.

The seven workstreams are a closed enumeration shown in a fixed order:
legal, financial, commercial, ops, it, tax, other. Anything missing or
unknown is classified as ``other``. Read-only: no write side effects.
"""

from dataclasses import asdict, dataclass

from dealdesk.core.exceptions import ValidationError
from dealdesk.models.checklist import (
    DEFAULT_WORKSTREAM,
    TASK_STATUS_COMPLETE,
    TASK_STATUS_IN_PROGRESS,
    WORKSTREAMS,
)
from dealdesk.services.overdue import is_overdue
from dealdesk.services.progress import percentage

ALL_WORKSTREAMS = "all"


@dataclass
class WorkstreamStats:
    workstream: str
    total: int = 0
    completed: int = 0
    in_progress: int = 0
    overdue: int = 0
    percentage: int = 0

    def to_dict(self):
        return asdict(self)


def normalize_workstream(value) -> str:
    """Map a stored value to its workstream, falling back to ``other``."""
    if not value:
        return DEFAULT_WORKSTREAM
    value = str(value).strip().lower()
    return value if value in WORKSTREAMS else DEFAULT_WORKSTREAM


def validate_workstream(value) -> str:
    """Strict variant for writes: blank → ``other``, unknown → ValidationError."""
    if value is None or str(value).strip() == "":
        return DEFAULT_WORKSTREAM
    normalized = str(value).strip().lower()
    if normalized not in WORKSTREAMS:
        raise ValidationError(
            f"Invalid workstream: {value}",
            details={"workstream": f"must be one of {', '.join(WORKSTREAMS)}"},
        )
    return normalized


def group_by_workstream(tasks, now) -> dict[str, WorkstreamStats]:
    """Partition tasks by workstream; every workstream is present, in display order."""
    stats = {ws: WorkstreamStats(workstream=ws) for ws in WORKSTREAMS}
    for task in tasks:
        entry = stats[normalize_workstream(task.workstream)]
        entry.total += 1
        if task.status == TASK_STATUS_COMPLETE:
            entry.completed += 1
        elif task.status == TASK_STATUS_IN_PROGRESS:
            entry.in_progress += 1
        if is_overdue(task, now):
            entry.overdue += 1
    for entry in stats.values():
        entry.percentage = percentage(entry.completed, entry.total)
    return stats


def filter_by_workstream(tasks, workstream: str | None) -> list:
    """Tasks of one workstream; ``None`` or ``"all"`` keeps everything."""
    if not workstream or workstream == ALL_WORKSTREAMS:
        return list(tasks)
    target = validate_workstream(workstream)
    return [t for t in tasks if normalize_workstream(t.workstream) == target]


def active_workstreams(tasks) -> set[str]:
    """Distinct workstreams holding at least one task."""
    return {normalize_workstream(t.workstream) for t in tasks if t.workstream}
