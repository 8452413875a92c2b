"""
Template Catalog — standard M&A process per deal type.

Read side (used by preview and instantiation):
    - list_phases(deal_type):          active phases of the type (+ shared "ambos") by order
    - list_task_templates(deal_type):  active templates in catalog order
    - preview(deal_type):              templates grouped under their phases

Admin side (checklist template manager):
    - create/update/delete/reorder phases
    - create/update/deactivate/reorder task templates (deactivate = soft delete)
    - seed_default_catalog():          idempotent seed of the standard buy/sell-side process

Transaction policy: admin functions commit on success, reads never write.
"""

import logging

from sqlalchemy import or_

from dealdesk.core.exceptions import ConflictError, NotFoundError, ValidationError
from dealdesk.models import db
from dealdesk.models.checklist import (
    DEAL_TYPES,
    DEFAULT_PHASE_COLOR,
    PHASE_DEAL_TYPES,
    ChecklistPhase,
    ChecklistTask,
    ChecklistTaskTemplate,
)
from dealdesk.services.workstreams import validate_workstream
from dealdesk.utils.helpers import parse_bool_input, parse_int_input

logger = logging.getLogger(__name__)

DEAL_TYPE_LABELS = {"compra": "Buy-Side", "venta": "Sell-Side"}


def validate_deal_type(deal_type: str, *, allow_shared: bool = False) -> str:
    """Return the deal type or raise ValidationError."""
    allowed = PHASE_DEAL_TYPES if allow_shared else DEAL_TYPES
    if deal_type not in allowed:
        raise ValidationError(
            f"Unsupported deal type: {deal_type!r}",
            details={"deal_type": f"must be one of {', '.join(allowed)}"},
        )
    return deal_type


def _ensure_configured(deal_type: str) -> None:
    has_phase = (
        ChecklistPhase.query
        .filter(ChecklistPhase.deal_type.in_((deal_type, "ambos")))
        .first()
    )
    has_template = ChecklistTaskTemplate.query.filter_by(deal_type=deal_type).first()
    if has_phase is None and has_template is None:
        raise NotFoundError(resource="ChecklistTemplate", resource_id=deal_type)


# ═════════════════════════════════════════════════════════════════════════════
# Read side
# ═════════════════════════════════════════════════════════════════════════════


def list_phases(deal_type: str, *, include_inactive: bool = False) -> list[ChecklistPhase]:
    """Ordered phase definitions valid for ``deal_type``.

    Raises:
        ValidationError: unsupported deal type.
        NotFoundError: no catalog configured for the deal type.
    """
    validate_deal_type(deal_type)
    _ensure_configured(deal_type)
    q = ChecklistPhase.query.filter(
        or_(ChecklistPhase.deal_type == deal_type, ChecklistPhase.deal_type == "ambos")
    )
    if not include_inactive:
        q = q.filter(ChecklistPhase.is_active.is_(True))
    return q.order_by(ChecklistPhase.order, ChecklistPhase.id).all()


def list_task_templates(deal_type: str) -> list[ChecklistTaskTemplate]:
    """Active templates of ``deal_type`` in catalog order (phase order, then template order).

    Templates pointing at a phase that is not defined sort after all known phases.
    """
    phases = list_phases(deal_type)
    phase_rank = {p.name: idx for idx, p in enumerate(phases)}
    templates = (
        ChecklistTaskTemplate.query
        .filter_by(deal_type=deal_type, is_active=True)
        .all()
    )
    return sorted(
        templates,
        key=lambda t: (phase_rank.get(t.phase, len(phase_rank)), t.order, t.id),
    )


def preview(deal_type: str) -> dict:
    """Catalog preview: phases with their templates plus headline counts."""
    phases = list_phases(deal_type)
    templates = list_task_templates(deal_type)
    grouped = {p.name: [] for p in phases}
    orphans = []
    for t in templates:
        if t.phase in grouped:
            grouped[t.phase].append(t.to_dict())
        else:
            orphans.append(t.to_dict())

    return {
        "deal_type": deal_type,
        "label": DEAL_TYPE_LABELS[deal_type],
        "phases": [
            {"phase": p.to_dict(), "tasks": grouped[p.name]}
            for p in phases
        ],
        "unassigned": orphans,
        "task_count": len(templates),
        "critical_count": sum(1 for t in templates if t.is_critical),
        "estimated_days": sum(t.estimated_days or 0 for t in templates),
    }


# ═════════════════════════════════════════════════════════════════════════════
# Phase admin
# ═════════════════════════════════════════════════════════════════════════════


# Integer columns; every other typed column is a boolean flag
_INT_COLUMNS = ("order", "estimated_days")


def _typed_fields(data: dict, fields: tuple) -> dict:
    """Parse the numeric and flag columns among ``fields`` present in ``data``."""
    errors = {}
    typed = {}
    for f in fields:
        if f not in data:
            continue
        try:
            if f in _INT_COLUMNS:
                value = parse_int_input(data[f])
                if value is None and f == "order":
                    raise ValueError("Must be an integer.")
            else:
                value = parse_bool_input(data[f])
                if value is None:
                    raise ValueError("Must be true or false.")
        except ValueError as exc:
            errors[f] = str(exc)
            continue
        typed[f] = value
    if errors:
        raise ValidationError("Invalid catalog fields", details=errors)
    return typed


def _reorder_items(items) -> list[tuple[int, int]]:
    """Validate ``[{"id": .., "order": ..}]`` into ``(id, order)`` pairs."""
    if not isinstance(items, list):
        raise ValidationError("items must be a list", details={"items": "must be a list"})
    pairs = []
    errors = {}
    for i, item in enumerate(items):
        try:
            if not isinstance(item, dict):
                raise ValueError("must be an object")
            item_id = parse_int_input(item.get("id"))
            order = parse_int_input(item.get("order"))
            if item_id is None or order is None:
                raise ValueError("id and order are required")
        except ValueError as exc:
            errors[f"items[{i}]"] = str(exc)
            continue
        pairs.append((item_id, order))
    if errors:
        raise ValidationError("Invalid reorder items", details=errors)
    return pairs


def get_phase(phase_id: int) -> ChecklistPhase:
    phase = db.session.get(ChecklistPhase, phase_id)
    if phase is None:
        raise NotFoundError(resource="ChecklistPhase", resource_id=phase_id)
    return phase


def _check_phase_name_free(deal_type: str, name: str, exclude_id: int | None = None) -> None:
    q = ChecklistPhase.query.filter_by(deal_type=deal_type, name=name)
    if exclude_id is not None:
        q = q.filter(ChecklistPhase.id != exclude_id)
    if q.first() is not None:
        raise ConflictError("ChecklistPhase", "name", name)


def create_phase(data: dict) -> ChecklistPhase:
    """Create a phase definition; ``order`` defaults to the end of the list."""
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("Phase name is required", details={"name": "required"})
    deal_type = validate_deal_type(data.get("deal_type"), allow_shared=True)
    _check_phase_name_free(deal_type, name)
    typed = _typed_fields(data, ("order", "is_active"))

    order = typed.get("order")
    if order is None:
        max_order = (
            db.session.query(db.func.max(ChecklistPhase.order))
            .filter(ChecklistPhase.deal_type == deal_type)
            .scalar()
        )
        order = (max_order or 0) + 1

    phase = ChecklistPhase(
        name=name,
        deal_type=deal_type,
        order=order,
        color=data.get("color") or DEFAULT_PHASE_COLOR,
        description=data.get("description"),
        is_active=typed.get("is_active", True),
    )
    db.session.add(phase)
    db.session.commit()
    logger.info("ChecklistPhase created id=%s deal_type=%s name=%s", phase.id, deal_type, name)
    return phase


def update_phase(phase_id: int, data: dict) -> ChecklistPhase:
    """Update a phase. Renaming cascades to templates but is refused once live tasks use the name."""
    phase = get_phase(phase_id)
    data = dict(data, **_typed_fields(data, ("order", "is_active")))

    new_name = data.get("name")
    if new_name is not None:
        new_name = new_name.strip()
        if not new_name:
            raise ValidationError("Phase name is required", details={"name": "required"})
    if new_name and new_name != phase.name:
        in_use = ChecklistTask.query.filter_by(phase=phase.name).first()
        if in_use is not None:
            raise ConflictError(
                "ChecklistPhase", "name", phase.name,
                message=f"Phase {phase.name!r} is referenced by live tasks and cannot be renamed",
            )
        _check_phase_name_free(phase.deal_type, new_name, exclude_id=phase.id)
        template_types = DEAL_TYPES if phase.deal_type == "ambos" else (phase.deal_type,)
        (
            ChecklistTaskTemplate.query
            .filter(
                ChecklistTaskTemplate.phase == phase.name,
                ChecklistTaskTemplate.deal_type.in_(template_types),
            )
            .update({"phase": new_name}, synchronize_session=False)
        )
        phase.name = new_name

    for f in ("order", "color", "description", "is_active"):
        if f in data:
            setattr(phase, f, data[f])
    db.session.commit()
    logger.info("ChecklistPhase updated id=%s", phase.id)
    return phase


def delete_phase(phase_id: int) -> None:
    """Hard delete a phase definition that no live task references."""
    phase = get_phase(phase_id)
    if ChecklistTask.query.filter_by(phase=phase.name).first() is not None:
        raise ConflictError(
            "ChecklistPhase", "name", phase.name,
            message=f"Phase {phase.name!r} is referenced by live tasks and cannot be deleted",
        )
    db.session.delete(phase)
    db.session.commit()
    logger.info("ChecklistPhase deleted id=%s", phase_id)


def reorder_phases(items: list[dict]) -> int:
    """Apply ``[{"id": .., "order": ..}]``; returns the number of phases touched."""
    touched = 0
    for phase_id, order in _reorder_items(items):
        phase = get_phase(phase_id)
        phase.order = order
        touched += 1
    db.session.commit()
    logger.info("ChecklistPhase reordered count=%d", touched)
    return touched


# ═════════════════════════════════════════════════════════════════════════════
# Template admin
# ═════════════════════════════════════════════════════════════════════════════


def get_template(template_id: int) -> ChecklistTaskTemplate:
    template = db.session.get(ChecklistTaskTemplate, template_id)
    if template is None:
        raise NotFoundError(resource="ChecklistTaskTemplate", resource_id=template_id)
    return template


def create_template(data: dict) -> ChecklistTaskTemplate:
    """Create a task template under a phase of the same deal type."""
    errors = {}
    title = (data.get("title") or "").strip()
    phase = (data.get("phase") or "").strip()
    if not title:
        errors["title"] = "required"
    if not phase:
        errors["phase"] = "required"
    if errors:
        raise ValidationError("Template title and phase are required", details=errors)
    deal_type = validate_deal_type(data.get("deal_type"))
    typed = _typed_fields(data, ("is_critical", "estimated_days", "order"))

    template = ChecklistTaskTemplate(
        deal_type=deal_type,
        phase=phase,
        title=title,
        description=data.get("description"),
        responsible=data.get("responsible"),
        system=data.get("system"),
        workstream=validate_workstream(data["workstream"]) if data.get("workstream") else None,
        is_critical=typed.get("is_critical", False),
        estimated_days=typed.get("estimated_days"),
        order=typed.get("order", 0),
        is_active=True,
    )
    db.session.add(template)
    db.session.commit()
    logger.info("ChecklistTaskTemplate created id=%s deal_type=%s phase=%s", template.id, deal_type, phase)
    return template


def update_template(template_id: int, data: dict) -> ChecklistTaskTemplate:
    template = get_template(template_id)
    if "title" in data and not (data["title"] or "").strip():
        raise ValidationError("Template title is required", details={"title": "required"})
    if "workstream" in data:
        data = dict(data, workstream=validate_workstream(data["workstream"]) if data["workstream"] else None)
    data = dict(data, **_typed_fields(data, ("is_critical", "estimated_days", "order", "is_active")))
    for f in (
        "phase", "title", "description", "responsible", "system", "workstream",
        "is_critical", "estimated_days", "order", "is_active",
    ):
        if f in data:
            setattr(template, f, data[f])
    db.session.commit()
    logger.info("ChecklistTaskTemplate updated id=%s", template.id)
    return template


def deactivate_template(template_id: int) -> ChecklistTaskTemplate:
    """Soft delete: the template stops seeding new deals; existing tasks keep it as source."""
    template = get_template(template_id)
    template.is_active = False
    db.session.commit()
    logger.info("ChecklistTaskTemplate deactivated id=%s", template.id)
    return template


def reorder_templates(items: list[dict]) -> int:
    touched = 0
    for template_id, order in _reorder_items(items):
        template = get_template(template_id)
        template.order = order
        touched += 1
    db.session.commit()
    logger.info("ChecklistTaskTemplate reordered count=%d", touched)
    return touched


# ═════════════════════════════════════════════════════════════════════════════
# Default catalog
# ═════════════════════════════════════════════════════════════════════════════


def seed_default_catalog() -> int:
    """
    Insert the standard buy-side and sell-side process.
    Safe to run multiple times: skips existing phases (deal_type, name)
    and templates (deal_type, phase, title).

    Returns the number of rows created.
    """
    catalog = _get_default_catalog()
    created = 0

    for deal_type, phases in catalog.items():
        for order, (name, color, description, templates) in enumerate(phases, start=1):
            if not ChecklistPhase.query.filter_by(deal_type=deal_type, name=name).first():
                db.session.add(ChecklistPhase(
                    deal_type=deal_type, name=name, order=order,
                    color=color, description=description,
                ))
                created += 1
            for t_order, tpl in enumerate(templates, start=1):
                exists = ChecklistTaskTemplate.query.filter_by(
                    deal_type=deal_type, phase=name, title=tpl["title"],
                ).first()
                if not exists:
                    db.session.add(ChecklistTaskTemplate(
                        deal_type=deal_type, phase=name, order=t_order, **tpl,
                    ))
                    created += 1

    if created > 0:
        db.session.commit()
        logger.info("Seeded %d checklist catalog rows", created)
    return created


def _t(title, responsible, system=None, *, workstream=None, critical=False, days=None, description=None):
    return {
        "title": title,
        "description": description,
        "responsible": responsible,
        "system": system,
        "workstream": workstream,
        "is_critical": critical,
        "estimated_days": days,
    }


def _get_default_catalog() -> dict:
    """Standard process per deal type: [(phase, color, description, [templates])]."""
    due_diligence = [
        _t("Open virtual data room", "M&A Support", "Data Room", critical=True, days=2),
        _t("Legal due diligence review", "Legal", "Data Room", workstream="legal", critical=True, days=15),
        _t("Financial due diligence (quality of earnings)", "Analyst", "Data Room",
           workstream="financial", critical=True, days=15),
        _t("Tax due diligence", "M&A Advisor", "Data Room", workstream="tax", days=10),
        _t("Commercial due diligence", "Research", workstream="commercial", days=10),
        _t("Operations and HR review", "Analyst", workstream="ops", days=7),
        _t("IT systems review", "Analyst", workstream="it", days=5),
    ]
    closing = [
        _t("Negotiate SPA", "Legal", workstream="legal", critical=True, days=15),
        _t("Obtain regulatory and third-party consents", "Legal", workstream="legal", days=20),
        _t("Signing", "M&A Director", critical=True, days=1),
        _t("Closing and funds flow", "M&A Director", workstream="financial", critical=True, days=2),
    ]
    return {
        "venta": [
            ("Preparation", "#6366f1", "Mandate set-up and selling materials", [
                _t("Sign engagement letter", "M&A Director", "CRM", critical=True, days=2),
                _t("Collect historical financials", "Analyst", workstream="financial", days=7),
                _t("Prepare teaser", "Analyst", days=5),
                _t("Prepare information memorandum", "Analyst", days=15, critical=True),
                _t("Build buyer long list", "Research", "CRM", days=5),
            ]),
            ("Marketing", "#0ea5e9", "Approach buyers and manage NDAs", [
                _t("Send teaser campaign", "Marketing", "Brevo", days=3),
                _t("Negotiate and sign NDAs", "Legal", workstream="legal", days=10),
                _t("Distribute information memorandum", "M&A Support", "Data Room", days=2),
                _t("Management meetings", "M&A Advisor", days=10),
            ]),
            ("Offers", "#f59e0b", "Indicative and binding offers", [
                _t("Collect indicative offers", "M&A Advisor", "DealSuite", critical=True, days=10),
                _t("Compare offers and shortlist", "M&A Director", workstream="financial", days=3),
                _t("Negotiate LOI", "M&A Director", workstream="legal", critical=True, days=7),
            ]),
            ("Due Diligence", "#10b981", "Buyer due diligence support", due_diligence),
            ("Closing", "#8b5cf6", "SPA negotiation, signing and closing", closing),
        ],
        "compra": [
            ("Definition", "#6366f1", "Investment criteria and mandate", [
                _t("Sign buy-side mandate", "M&A Director", "CRM", critical=True, days=2),
                _t("Define investment criteria", "M&A Advisor", days=5),
                _t("Agree target screening parameters", "Analyst", days=3),
            ]),
            ("Target Search", "#0ea5e9", "Identify and approach targets", [
                _t("Build target long list", "Research", "CRM", days=10),
                _t("Prioritise short list", "M&A Advisor", days=3),
                _t("First approach to targets", "M&A Director", "Brevo", days=10),
                _t("Sign NDAs with targets", "Legal", workstream="legal", days=10),
            ]),
            ("Offers", "#f59e0b", "Valuation and offers", [
                _t("Valuation model", "Analyst", workstream="financial", critical=True, days=7),
                _t("Submit non-binding offer", "M&A Director", critical=True, days=3),
                _t("Negotiate exclusivity / LOI", "Legal", workstream="legal", critical=True, days=7),
            ]),
            ("Due Diligence", "#10b981", "Confirmatory due diligence", due_diligence),
            ("Closing", "#8b5cf6", "SPA negotiation, signing and closing", closing),
        ],
    }
