"""
DealDesk — M&A checklist domain models.

Models:
    - ChecklistPhase:         phase definition of the standard process per deal type
    - ChecklistTaskTemplate:  reference task belonging to a phase and a deal type
    - ChecklistTask:          live task of one deal (instantiated or manual)
    - DealChecklist:          per-deal guard row marking the checklist as initialized

Architecture:
    ChecklistPhase ──(name)──▶ ChecklistTaskTemplate ──(copy)──▶ ChecklistTask
    DealChecklist ──1:N──▶ ChecklistTask   (by deal_id, no FK: deals live elsewhere)

Phases are referenced by name, never by FK. A task whose phase matches no
definition is reported in the "unassigned" bucket at read time.

Lifecycle states:
    ChecklistTask:   pending ⇄ in_progress ⇄ complete   (any → any)
    DealChecklist:   staged → initialized
"""

from datetime import datetime, timezone

from dealdesk.models import db


# ── Constants ────────────────────────────────────────────────────────────────

DEAL_TYPES = ("compra", "venta")

# "ambos" phases are shared by both deal types
PHASE_DEAL_TYPES = ("compra", "venta", "ambos")

TASK_STATUS_PENDING = "pending"
TASK_STATUS_IN_PROGRESS = "in_progress"
TASK_STATUS_COMPLETE = "complete"

TASK_STATUSES = (TASK_STATUS_PENDING, TASK_STATUS_IN_PROGRESS, TASK_STATUS_COMPLETE)

# Canonical display order
WORKSTREAMS = ("legal", "financial", "commercial", "ops", "it", "tax", "other")

DEFAULT_WORKSTREAM = "other"

DEFAULT_PHASE_COLOR = "#6366f1"

# Order given to manual tasks so they sort after template tasks
MANUAL_TASK_ORDER = 999

UNASSIGNED_PHASE = "unassigned"

DEAL_CHECKLIST_STATUSES = ("staged", "initialized")


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class ChecklistPhase(db.Model):
    """Named stage of the M&A process for a deal type."""

    __tablename__ = "checklist_phases"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    deal_type = db.Column(
        db.String(10), nullable=False, index=True,
        comment="compra | venta | ambos",
    )
    order = db.Column(db.Integer, nullable=False, default=0)
    color = db.Column(db.String(20), nullable=False, default=DEFAULT_PHASE_COLOR)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        db.UniqueConstraint("deal_type", "name", name="uq_checklist_phase_type_name"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "deal_type": self.deal_type,
            "order": self.order,
            "color": self.color,
            "description": self.description,
            "is_active": self.is_active,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<ChecklistPhase {self.id}: {self.deal_type}/{self.name}>"


class ChecklistTaskTemplate(db.Model):
    """Standard task of a phase, copied into every new deal of its type."""

    __tablename__ = "checklist_task_templates"

    id = db.Column(db.Integer, primary_key=True)
    deal_type = db.Column(db.String(10), nullable=False, index=True, comment="compra | venta")
    phase = db.Column(db.String(120), nullable=False, comment="ChecklistPhase.name")
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, nullable=True)
    responsible = db.Column(db.String(100), nullable=True, comment="Default responsible role")
    system = db.Column(db.String(100), nullable=True, comment="Default system / tool")
    workstream = db.Column(db.String(20), nullable=True)
    is_critical = db.Column(db.Boolean, nullable=False, default=False)
    estimated_days = db.Column(db.Integer, nullable=True)
    order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "deal_type": self.deal_type,
            "phase": self.phase,
            "title": self.title,
            "description": self.description,
            "responsible": self.responsible,
            "system": self.system,
            "workstream": self.workstream,
            "is_critical": self.is_critical,
            "estimated_days": self.estimated_days,
            "order": self.order,
            "is_active": self.is_active,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<ChecklistTaskTemplate {self.id}: {self.phase}/{self.title}>"


class ChecklistTask(db.Model):
    """
    Live checklist task of one deal.

    ``completed_at`` is set iff ``status == "complete"``; the lifecycle
    service is the only writer of both fields. Overdue-ness is derived.
    """

    __tablename__ = "checklist_tasks"

    id = db.Column(db.Integer, primary_key=True)
    deal_id = db.Column(db.String(64), nullable=False, index=True)
    template_id = db.Column(
        db.Integer,
        db.ForeignKey("checklist_task_templates.id", ondelete="SET NULL"),
        nullable=True,
        comment="Source template; NULL for manual tasks",
    )
    phase = db.Column(db.String(120), nullable=False, default="")
    order = db.Column(db.Integer, nullable=False, default=MANUAL_TASK_ORDER)

    # Content
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    url = db.Column(db.String(500), nullable=True)

    # Classification
    responsible = db.Column(db.String(100), nullable=True)
    system = db.Column(db.String(100), nullable=True)
    workstream = db.Column(db.String(20), nullable=False, default=DEFAULT_WORKSTREAM)

    # Scheduling
    start_date = db.Column(db.Date, nullable=True)
    due_date = db.Column(db.Date, nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    estimated_days = db.Column(db.Integer, nullable=True)

    status = db.Column(
        db.String(20), nullable=False, default=TASK_STATUS_PENDING,
        comment="pending | in_progress | complete",
    )
    is_critical = db.Column(db.Boolean, nullable=False, default=False)

    version = db.Column(
        db.Integer, nullable=False, default=1,
        comment="Optimistic-concurrency counter, bumped on every write",
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('pending', 'in_progress', 'complete')",
            name="ck_checklist_task_status",
        ),
        db.CheckConstraint(
            "workstream IN ('legal', 'financial', 'commercial', 'ops', 'it', 'tax', 'other')",
            name="ck_checklist_task_workstream",
        ),
        db.Index("ix_checklist_tasks_deal_phase", "deal_id", "phase"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "deal_id": self.deal_id,
            "template_id": self.template_id,
            "phase": self.phase,
            "order": self.order,
            "title": self.title,
            "description": self.description,
            "notes": self.notes,
            "url": self.url,
            "responsible": self.responsible,
            "system": self.system,
            "workstream": self.workstream,
            "start_date": _iso(self.start_date),
            "due_date": _iso(self.due_date),
            "completed_at": _iso(self.completed_at),
            "estimated_days": self.estimated_days,
            "status": self.status,
            "is_critical": self.is_critical,
            "version": self.version,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<ChecklistTask {self.id}: deal={self.deal_id} [{self.status}] {self.title}>"


class DealChecklist(db.Model):
    """One row per deal whose checklist was instantiated from the catalog."""

    __tablename__ = "deal_checklists"

    id = db.Column(db.Integer, primary_key=True)
    deal_id = db.Column(db.String(64), nullable=False, unique=True)
    deal_type = db.Column(db.String(10), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default="staged", comment="staged | initialized")
    tasks_created = db.Column(db.Integer, nullable=False, default=0)
    initialized_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "deal_id": self.deal_id,
            "deal_type": self.deal_type,
            "status": self.status,
            "tasks_created": self.tasks_created,
            "initialized_at": _iso(self.initialized_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
