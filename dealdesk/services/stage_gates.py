"""
Deal pipeline stage gates driven by the checklist.

Pipeline: prospeccion → loi → due_diligence → negociacion → cierre

Moving backwards (or staying) is always allowed. Moving forward to the
next stage runs the gate requirements of that transition; forward jumps
without a configured gate are allowed. At most 3 failed requirements are
reported so the UI can show them inline.

Checklist-derived inputs (phase percentages, overdue critical tasks,
workstreams, overall progress) come from the engine; other deal facts
(main company, contacts, value, documents) are supplied by the caller.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable

from dealdesk.core.exceptions import ValidationError
from dealdesk.services.overdue import list_overdue_tasks
from dealdesk.services.progress import compute_phase_progress, overall_progress
from dealdesk.services.workstreams import active_workstreams

logger = logging.getLogger(__name__)

STAGE_ORDER = ("prospeccion", "loi", "due_diligence", "negociacion", "cierre")

MAX_REPORTED_FAILURES = 3


@dataclass
class GateContext:
    """Everything a gate requirement may look at."""

    phase_progress: list = field(default_factory=list)
    tasks: list = field(default_factory=list)
    overdue_tasks: list = field(default_factory=list)
    overall_progress: int = 0
    main_company_id: str | None = None
    contact_count: int = 0
    deal_value: float = 0
    document_names: list = field(default_factory=list)

    @classmethod
    def from_checklist(cls, tasks, phases, now, **deal_facts) -> "GateContext":
        tasks = list(tasks)
        phase_progress = compute_phase_progress(tasks, phases, now)
        return cls(
            phase_progress=phase_progress,
            tasks=tasks,
            overdue_tasks=list_overdue_tasks(tasks, now),
            overall_progress=overall_progress(phase_progress),
            **deal_facts,
        )


@dataclass
class GateRequirement:
    id: str
    label: str
    check: Callable[[GateContext], bool]
    resolve_link: str | None = None
    resolve_label: str | None = None

    def to_dict(self):
        return {
            "id": self.id,
            "label": self.label,
            "resolve_link": self.resolve_link,
            "resolve_label": self.resolve_label,
        }


@dataclass
class GateValidationResult:
    can_proceed: bool
    failed_requirements: list = field(default_factory=list)

    def to_dict(self):
        return {"can_proceed": self.can_proceed, "failed_requirements": self.failed_requirements}


def _phase_at_least(ctx: GateContext, keywords: tuple[str, ...], threshold: int) -> bool:
    """True when the first phase whose name contains a keyword reaches ``threshold``; absent → True."""
    for p in ctx.phase_progress:
        if any(k.lower() in p.phase.lower() for k in keywords):
            return p.percentage >= threshold
    return True


def _has_document(ctx: GateContext, *needles: str) -> bool:
    names = [n.lower() for n in ctx.document_names]
    return any(needle in name for name in names for needle in needles)


PIPELINE_GATES: dict[tuple[str, str], list[GateRequirement]] = {
    ("prospeccion", "loi"): [
        GateRequirement(
            "main_company", "Main company assigned",
            lambda c: bool(c.main_company_id), "summary", "Assign company",
        ),
        GateRequirement(
            "key_contact", "At least 1 key contact linked",
            lambda c: c.contact_count >= 1, "summary", "Add contact",
        ),
        GateRequirement(
            "deal_value", "Deal value estimated",
            lambda c: (c.deal_value or 0) > 0, "edit", "Edit deal",
        ),
    ],
    ("loi", "due_diligence"): [
        GateRequirement(
            "loi_document", "LOI document uploaded",
            lambda c: _has_document(c, "loi"), "documents", "Upload LOI",
        ),
        GateRequirement(
            "checklist_first_phase", "Initial checklist phase at 80%",
            lambda c: _phase_at_least(c, ("Definition", "Preparation"), 80),
            "checklist", "Complete checklist",
        ),
    ],
    ("due_diligence", "negociacion"): [
        GateRequirement(
            "dd_workstreams", "At least 3 due-diligence workstreams with tasks",
            lambda c: len(active_workstreams(c.tasks)) >= 3, "checklist", "Set up DD",
        ),
        GateRequirement(
            "no_critical_overdue", "No overdue critical tasks",
            lambda c: not any(t["is_critical"] for t in c.overdue_tasks),
            "checklist", "Resolve overdue tasks",
        ),
        GateRequirement(
            "dd_progress_50", "Due diligence at 50%",
            lambda c: _phase_at_least(c, ("Due Diligence",), 50), "checklist", "Advance DD",
        ),
    ],
    ("negociacion", "cierre"): [
        GateRequirement(
            "spa_document", "Draft SPA uploaded",
            lambda c: _has_document(c, "spa", "contract"), "documents", "Upload SPA",
        ),
        GateRequirement(
            "checklist_90", "Overall checklist at 90%",
            lambda c: c.overall_progress >= 90, "checklist", "Complete tasks",
        ),
    ],
}


def _stage_index(stage: str) -> int:
    try:
        return STAGE_ORDER.index(stage)
    except ValueError:
        raise ValidationError(
            f"Unknown pipeline stage: {stage!r}",
            details={"stage": f"must be one of {', '.join(STAGE_ORDER)}"},
        ) from None


def validate_stage_transition(current: str, target: str, ctx: GateContext) -> GateValidationResult:
    """Check whether a deal may move from ``current`` to ``target``."""
    if _stage_index(target) <= _stage_index(current):
        return GateValidationResult(can_proceed=True)

    gate = PIPELINE_GATES.get((current, target))
    if gate is None:
        return GateValidationResult(can_proceed=True)

    failed = [req.to_dict() for req in gate if not req.check(ctx)][:MAX_REPORTED_FAILURES]
    if failed:
        logger.info(
            "Stage gate blocked %s → %s: %s",
            current, target, ", ".join(f["id"] for f in failed),
        )
    return GateValidationResult(can_proceed=not failed, failed_requirements=failed)
