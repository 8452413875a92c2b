"""
Progress Calculator — derived checklist counters.

Pure functions: the same tasks and ``now`` always give the same result,
nothing is cached or persisted.

    compute_progress(tasks, now)                 → PhaseProgress for any task subset
    compute_phase_progress(tasks, phases, now)   → one PhaseProgress per phase (+ unassigned)
    overall_progress(phase_progress)             → mean of phase percentages
    weighted_progress(tasks)                     → completed / total over all tasks
    summarize_deal(tasks, phases, now)           → dict used by the progress endpoint

Overall deal progress is the unweighted mean of the phase percentages; a
phase with 2 tasks weighs as much as a phase with 20. The task-weighted
figure is reported next to it, never instead of it.
"""

from dataclasses import asdict, dataclass

from dealdesk.models.checklist import (
    TASK_STATUS_COMPLETE,
    TASK_STATUS_IN_PROGRESS,
    TASK_STATUS_PENDING,
    UNASSIGNED_PHASE,
)
from dealdesk.services.overdue import is_overdue


@dataclass
class PhaseProgress:
    """Aggregate counters for one phase, workstream or the whole deal."""

    phase: str
    total: int = 0
    completed: int = 0
    in_progress: int = 0
    pending: int = 0
    overdue: int = 0
    critical: int = 0
    estimated_days: int = 0
    percentage: int = 0

    def to_dict(self):
        return asdict(self)


def percentage(completed: int, total: int) -> int:
    """round(completed / total * 100) rounding halves up; 0 when total is 0."""
    if total <= 0:
        return 0
    return (completed * 200 + total) // (2 * total)


def compute_progress(tasks, now, *, phase: str = "all") -> PhaseProgress:
    """Count a task subset already filtered to one phase, one workstream or all."""
    result = PhaseProgress(phase=phase)
    for task in tasks:
        result.total += 1
        if task.status == TASK_STATUS_COMPLETE:
            result.completed += 1
        elif task.status == TASK_STATUS_IN_PROGRESS:
            result.in_progress += 1
        elif task.status == TASK_STATUS_PENDING:
            result.pending += 1
        if is_overdue(task, now):
            result.overdue += 1
        if task.is_critical:
            result.critical += 1
        result.estimated_days += task.estimated_days or 0
    result.percentage = percentage(result.completed, result.total)
    return result


def _phase_name(phase) -> str:
    return phase if isinstance(phase, str) else phase.name


def compute_phase_progress(tasks, phases, now) -> list[PhaseProgress]:
    """
    One PhaseProgress per phase in catalog order.

    Tasks whose phase matches no definition are counted in a trailing
    ``unassigned`` entry, present only when such tasks exist.
    """
    names = [_phase_name(p) for p in phases]
    buckets: dict[str, list] = {name: [] for name in names}
    unassigned = []
    for task in tasks:
        bucket = buckets.get(task.phase)
        if bucket is None:
            unassigned.append(task)
        else:
            bucket.append(task)

    result = [compute_progress(buckets[name], now, phase=name) for name in names]
    if unassigned:
        result.append(compute_progress(unassigned, now, phase=UNASSIGNED_PHASE))
    return result


def overall_progress(phase_progress) -> int:
    """Mean of the phase percentages, excluding the unassigned bucket."""
    values = [p.percentage for p in phase_progress if p.phase != UNASSIGNED_PHASE]
    if not values:
        return 0
    return percentage(sum(values), len(values) * 100)


def weighted_progress(tasks) -> int:
    """Percentage of complete tasks over all tasks."""
    tasks = list(tasks)
    completed = sum(1 for t in tasks if t.status == TASK_STATUS_COMPLETE)
    return percentage(completed, len(tasks))


def summarize_deal(tasks, phases, now) -> dict:
    """Phase cards, totals and both overall metrics for one deal."""
    tasks = list(tasks)
    phase_progress = compute_phase_progress(tasks, phases, now)
    totals = compute_progress(tasks, now)
    return {
        "phases": [p.to_dict() for p in phase_progress],
        "totals": totals.to_dict(),
        "overall_progress": overall_progress(phase_progress),
        "weighted_progress": weighted_progress(tasks),
    }
