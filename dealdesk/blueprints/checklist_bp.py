"""
Checklist Blueprint — JSON surface of the checklist engine.

Endpoints:
  Catalog:      GET  /checklist/catalog/<deal_type>/preview
                GET  /checklist/catalog/<deal_type>/phases
                GET  /checklist/catalog/<deal_type>/templates
                POST /checklist/catalog/phases, PUT/DELETE /checklist/catalog/phases/<id>
                POST /checklist/catalog/phases/reorder
                POST /checklist/catalog/templates, PUT/DELETE /checklist/catalog/templates/<id>
                POST /checklist/catalog/templates/reorder
                GET/POST /checklist/catalog/<deal_type>/sync
  Deal tasks:   POST /checklist/deals/<deal_id>/instantiate
                GET/POST /checklist/deals/<deal_id>/tasks
                GET/PUT/DELETE /checklist/tasks/<id>
                POST /checklist/tasks/<id>/transition
  Read models:  GET  /checklist/deals/<deal_id>/progress
                GET  /checklist/deals/<deal_id>/overdue
                GET  /checklist/deals/<deal_id>/workstreams
                POST /checklist/deals/<deal_id>/stage-gate

Read endpoints accept ``?as_of=YYYY-MM-DD`` to evaluate overdue-ness at a
given date instead of today.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from flask import Blueprint, jsonify, request

from dealdesk.core.exceptions import ConflictError, NotFoundError, StoreError, ValidationError
from dealdesk.services import instantiation, task_lifecycle, template_catalog
from dealdesk.services.overdue import list_overdue_tasks
from dealdesk.services.progress import summarize_deal
from dealdesk.services.stage_gates import GateContext, validate_stage_transition
from dealdesk.services.task_store import SqlAlchemyTaskStore
from dealdesk.services.workstreams import group_by_workstream
from dealdesk.utils.helpers import parse_bool_input, parse_date, parse_int_input, parse_number_input

logger = logging.getLogger(__name__)

checklist_bp = Blueprint("checklist", __name__, url_prefix="/api/v1/checklist")


# ── Error handlers ────────────────────────────────────────────────────────────


@checklist_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return jsonify({"error": str(error)}), 404


@checklist_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return jsonify({"error": str(error), "details": error.details}), 422


@checklist_bp.errorhandler(ConflictError)
def _handle_conflict(error: ConflictError):
    return jsonify({"error": str(error)}), 409


@checklist_bp.errorhandler(StoreError)
def _handle_store(error: StoreError):
    logger.error("Store error in checklist_bp endpoint=%s: %s", request.endpoint, error)
    return jsonify({"error": "Task store unavailable"}), 500


@checklist_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    logger.exception("Unexpected error in checklist_bp endpoint=%s", request.endpoint)
    return jsonify({"error": "Internal server error"}), 500


# ── Helpers ───────────────────────────────────────────────────────────────────


def _json() -> dict:
    return request.get_json(silent=True) or {}


def _now():
    """Evaluation instant: ``?as_of=`` date when given, else current UTC time."""
    as_of = request.args.get("as_of")
    if as_of:
        parsed = parse_date(as_of)
        if parsed is None:
            raise ValidationError("Invalid as_of date", details={"as_of": "use YYYY-MM-DD"})
        return parsed
    return datetime.now(timezone.utc)


def _require(data: dict, *fields: str) -> None:
    missing = [f for f in fields if not data.get(f)]
    if missing:
        raise ValidationError(
            f"{' and '.join(missing)} {'is' if len(missing) == 1 else 'are'} required",
            details={f: "required" for f in missing},
        )


def _parsed(data: dict, field: str, parser):
    """Run a strict parser over one body field; ValueError becomes ValidationError."""
    try:
        return parser(data.get(field))
    except ValueError as exc:
        raise ValidationError(f"Invalid {field}", details={field: str(exc)}) from exc


def _deal_type_for(deal_id: str, store: SqlAlchemyTaskStore) -> str | None:
    """Deal type from the query string, else from the deal's checklist guard row."""
    deal_type = request.args.get("deal_type")
    if deal_type:
        return template_catalog.validate_deal_type(deal_type)
    state = store.get_checklist_state(deal_id)
    return state.deal_type if state else None


def _phases_for(deal_type: str | None) -> list:
    if deal_type is None:
        return []
    try:
        return template_catalog.list_phases(deal_type)
    except NotFoundError:
        return []


# ═════════════════════════════════════════════════════════════════════════
# Catalog
# ═════════════════════════════════════════════════════════════════════════


@checklist_bp.route("/catalog/<deal_type>/preview", methods=["GET"])
def preview_catalog(deal_type):
    """Template preview grouped by phase."""
    return jsonify(template_catalog.preview(deal_type))


@checklist_bp.route("/catalog/<deal_type>/phases", methods=["GET"])
def list_phases(deal_type):
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    phases = template_catalog.list_phases(deal_type, include_inactive=include_inactive)
    return jsonify({"items": [p.to_dict() for p in phases], "total": len(phases)})


@checklist_bp.route("/catalog/<deal_type>/templates", methods=["GET"])
def list_templates(deal_type):
    templates = template_catalog.list_task_templates(deal_type)
    return jsonify({"items": [t.to_dict() for t in templates], "total": len(templates)})


@checklist_bp.route("/catalog/phases", methods=["POST"])
def create_phase():
    phase = template_catalog.create_phase(_json())
    return jsonify(phase.to_dict()), 201


@checklist_bp.route("/catalog/phases/<int:phase_id>", methods=["PUT"])
def update_phase(phase_id):
    phase = template_catalog.update_phase(phase_id, _json())
    return jsonify(phase.to_dict())


@checklist_bp.route("/catalog/phases/<int:phase_id>", methods=["DELETE"])
def delete_phase(phase_id):
    template_catalog.delete_phase(phase_id)
    return jsonify({"deleted": True}), 200


@checklist_bp.route("/catalog/phases/reorder", methods=["POST"])
def reorder_phases():
    items = _json().get("items") or []
    return jsonify({"updated": template_catalog.reorder_phases(items)})


@checklist_bp.route("/catalog/templates", methods=["POST"])
def create_template():
    template = template_catalog.create_template(_json())
    return jsonify(template.to_dict()), 201


@checklist_bp.route("/catalog/templates/<int:template_id>", methods=["PUT"])
def update_template(template_id):
    template = template_catalog.update_template(template_id, _json())
    return jsonify(template.to_dict())


@checklist_bp.route("/catalog/templates/<int:template_id>", methods=["DELETE"])
def deactivate_template(template_id):
    template = template_catalog.deactivate_template(template_id)
    return jsonify(template.to_dict())


@checklist_bp.route("/catalog/templates/reorder", methods=["POST"])
def reorder_templates():
    items = _json().get("items") or []
    return jsonify({"updated": template_catalog.reorder_templates(items)})


@checklist_bp.route("/catalog/<deal_type>/sync", methods=["GET"])
def sync_impact(deal_type):
    """How many initialized deals a sync of this deal type would touch."""
    return jsonify({
        "deal_type": deal_type,
        "affected_deals": instantiation.count_affected_deals(deal_type),
    })


@checklist_bp.route("/catalog/<deal_type>/sync", methods=["POST"])
def sync_catalog(deal_type):
    """Apply catalog changes to initialized deals: mode = additions | full_reset."""
    mode = _json().get("mode", "additions")
    if mode == "additions":
        result = instantiation.sync_template_additions(deal_type)
    elif mode == "full_reset":
        result = instantiation.sync_full_reset(deal_type)
    else:
        raise ValidationError("Invalid sync mode", details={"mode": "additions | full_reset"})
    return jsonify(result)


# ═════════════════════════════════════════════════════════════════════════
# Deal tasks
# ═════════════════════════════════════════════════════════════════════════


@checklist_bp.route("/deals/<deal_id>/instantiate", methods=["POST"])
def instantiate_checklist(deal_id):
    data = _json()
    result = instantiation.instantiate(
        deal_id, data.get("deal_type"), force=_parsed(data, "force", parse_bool_input) or False,
    )
    return jsonify(result.to_dict()), 201


@checklist_bp.route("/deals/<deal_id>/tasks", methods=["GET"])
def list_deal_tasks(deal_id):
    tasks = task_lifecycle.list_tasks(deal_id, workstream=request.args.get("workstream"))
    return jsonify({"items": [t.to_dict() for t in tasks], "total": len(tasks)})


@checklist_bp.route("/deals/<deal_id>/tasks", methods=["POST"])
def create_deal_task(deal_id):
    task = task_lifecycle.create_manual_task(deal_id, _json())
    return jsonify(task.to_dict()), 201


@checklist_bp.route("/tasks/<int:task_id>", methods=["GET"])
def get_task(task_id):
    return jsonify(task_lifecycle.get_task(task_id).to_dict())


@checklist_bp.route("/tasks/<int:task_id>", methods=["PUT"])
def update_task(task_id):
    data = _json()
    expected_version = _parsed(data, "expected_version", parse_int_input)
    data.pop("expected_version", None)
    task = task_lifecycle.update_task_fields(task_id, data, expected_version=expected_version)
    return jsonify(task.to_dict())


@checklist_bp.route("/tasks/<int:task_id>", methods=["DELETE"])
def delete_task(task_id):
    task_lifecycle.delete_task(task_id)
    return jsonify({"deleted": True}), 200


@checklist_bp.route("/tasks/<int:task_id>/transition", methods=["POST"])
def transition_task(task_id):
    data = _json()
    _require(data, "status")
    task = task_lifecycle.transition_task(
        task_id, data["status"], expected_version=_parsed(data, "expected_version", parse_int_input),
    )
    return jsonify(task.to_dict())


# ═════════════════════════════════════════════════════════════════════════
# Read models
# ═════════════════════════════════════════════════════════════════════════


@checklist_bp.route("/deals/<deal_id>/progress", methods=["GET"])
def deal_progress(deal_id):
    """Phase cards, totals, mean-of-phases and task-weighted progress."""
    store = SqlAlchemyTaskStore()
    phases = _phases_for(_deal_type_for(deal_id, store))
    tasks = store.list_tasks_for_deal(deal_id)
    return jsonify(summarize_deal(tasks, phases, _now()))


@checklist_bp.route("/deals/<deal_id>/overdue", methods=["GET"])
def deal_overdue(deal_id):
    tasks = SqlAlchemyTaskStore().list_tasks_for_deal(deal_id)
    items = list_overdue_tasks(tasks, _now())
    return jsonify({"items": items, "total": len(items)})


@checklist_bp.route("/deals/<deal_id>/workstreams", methods=["GET"])
def deal_workstreams(deal_id):
    tasks = SqlAlchemyTaskStore().list_tasks_for_deal(deal_id)
    stats = group_by_workstream(tasks, _now())
    return jsonify({"items": [s.to_dict() for s in stats.values()]})


@checklist_bp.route("/deals/<deal_id>/stage-gate", methods=["POST"])
def deal_stage_gate(deal_id):
    """Validate a pipeline stage move against the deal's checklist."""
    data = _json()
    _require(data, "current", "target")
    contact_count = _parsed(data, "contact_count", parse_int_input) or 0
    deal_value = _parsed(data, "deal_value", parse_number_input) or 0.0
    store = SqlAlchemyTaskStore()
    phases = _phases_for(_deal_type_for(deal_id, store))
    ctx = GateContext.from_checklist(
        store.list_tasks_for_deal(deal_id),
        phases,
        _now(),
        main_company_id=data.get("main_company_id"),
        contact_count=contact_count,
        deal_value=deal_value,
        document_names=list(data.get("document_names") or []),
    )
    result = validate_stage_transition(data["current"], data["target"], ctx)
    return jsonify(result.to_dict())
