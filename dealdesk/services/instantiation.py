"""
Template Instantiation — copy the catalog into a deal's live checklist.

    instantiate(deal_id, deal_type)         → InstantiationResult
    sync_template_additions(deal_type)      → add new templates to initialized deals
    sync_full_reset(deal_type)              → wipe and re-instantiate initialized deals
    count_affected_deals(deal_type)         → initialized deals a sync would touch

Guarantees:
    - All tasks of one call are written in a single store transaction;
      a store failure leaves no task behind and raises StoreError.
    - A DealChecklist guard row marks the deal as initialized; a second
      call raises ConflictError unless ``force=True``.
    - Templates already materialised for the deal (same template_id) are
      skipped, so a retry only fills the gaps.
    - ``force=True`` skips both checks and duplicates the task set.

Usage:
    from dealdesk.services.instantiation import instantiate

    result = instantiate("deal-42", "venta")
    print(f"{result.created} of {result.expected} tasks created")
"""

import logging
from dataclasses import asdict, dataclass

from dealdesk.core.exceptions import ConflictError, NotFoundError, ValidationError
from dealdesk.models.checklist import (
    DEFAULT_WORKSTREAM,
    TASK_STATUS_PENDING,
    ChecklistTask,
)
from dealdesk.services.task_store import SqlAlchemyTaskStore, TaskStore
from dealdesk.services.template_catalog import list_task_templates, validate_deal_type

logger = logging.getLogger(__name__)


@dataclass
class InstantiationResult:
    deal_id: str
    deal_type: str
    created: int = 0
    skipped: int = 0
    expected: int = 0

    def __int__(self):
        return self.created

    def to_dict(self):
        return asdict(self)


def build_task_from_template(deal_id: str, template) -> ChecklistTask:
    """Concrete pending task for ``deal_id`` copied from a catalog template."""
    return ChecklistTask(
        deal_id=deal_id,
        template_id=template.id,
        phase=template.phase,
        order=template.order,
        title=template.title,
        description=template.description,
        responsible=template.responsible,
        system=template.system,
        workstream=template.workstream or DEFAULT_WORKSTREAM,
        is_critical=bool(template.is_critical),
        estimated_days=template.estimated_days,
        status=TASK_STATUS_PENDING,
        start_date=None,
        due_date=None,
        completed_at=None,
        version=1,
    )


def _templates_or_empty(deal_type: str) -> list:
    try:
        return list_task_templates(deal_type)
    except NotFoundError:
        logger.warning("No checklist catalog configured for deal_type=%s", deal_type)
        return []


def instantiate(
    deal_id: str,
    deal_type: str,
    *,
    force: bool = False,
    store: TaskStore | None = None,
) -> InstantiationResult:
    """
    Materialise the ``deal_type`` catalog as live tasks of ``deal_id``.

    Args:
        deal_id: Deal that owns the checklist.
        deal_type: "compra" (buy-side) or "venta" (sell-side).
        force: Skip the initialized guard and the per-template dedup.
        store: TaskStore to write through (defaults to SqlAlchemyTaskStore).

    Returns:
        InstantiationResult with created / skipped / expected counts.

    Raises:
        ValidationError: missing deal id or unsupported deal type.
        ConflictError: checklist already initialized and ``force`` is False.
        StoreError: persistence failure (nothing written).
    """
    if not deal_id:
        raise ValidationError("deal_id is required", details={"deal_id": "required"})
    validate_deal_type(deal_type)
    store = store or SqlAlchemyTaskStore()

    state = store.get_checklist_state(deal_id)
    if state is not None and state.status == "initialized" and not force:
        raise ConflictError(
            "DealChecklist", "deal_id", deal_id,
            message=f"Checklist for deal {deal_id} is already initialized",
        )

    templates = _templates_or_empty(deal_type)
    result = InstantiationResult(deal_id=deal_id, deal_type=deal_type, expected=len(templates))
    if not templates:
        return result

    if force:
        existing_ids = set()
    else:
        existing_ids = {
            t.template_id for t in store.list_tasks_for_deal(deal_id) if t.template_id is not None
        }
    to_create = [build_task_from_template(deal_id, t) for t in templates if t.id not in existing_ids]
    result.skipped = len(templates) - len(to_create)

    with store.atomic("instantiate"):
        store.create_tasks(to_create)
        total = store.count_tasks_for_deal(deal_id)
        store.mark_initialized(deal_id, deal_type, total)

    result.created = len(to_create)
    logger.info(
        "Checklist instantiated deal_id=%s deal_type=%s created=%d skipped=%d force=%s",
        deal_id, deal_type, result.created, result.skipped, force,
    )
    return result


def count_affected_deals(deal_type: str, *, store: TaskStore | None = None) -> int:
    """Number of initialized deals a sync of ``deal_type`` would touch."""
    validate_deal_type(deal_type)
    return len((store or SqlAlchemyTaskStore()).list_initialized_deals(deal_type))


def sync_template_additions(deal_type: str, *, store: TaskStore | None = None) -> dict:
    """Add active templates missing from every initialized deal of ``deal_type``."""
    validate_deal_type(deal_type)
    store = store or SqlAlchemyTaskStore()
    templates = _templates_or_empty(deal_type)

    deals_updated = 0
    tasks_added = 0
    for state in store.list_initialized_deals(deal_type):
        present = {
            t.template_id for t in store.list_tasks_for_deal(state.deal_id) if t.template_id is not None
        }
        missing = [build_task_from_template(state.deal_id, t) for t in templates if t.id not in present]
        if not missing:
            continue
        with store.atomic("sync_template_additions"):
            store.create_tasks(missing)
            store.mark_initialized(state.deal_id, deal_type, store.count_tasks_for_deal(state.deal_id))
        deals_updated += 1
        tasks_added += len(missing)

    logger.info(
        "Template additions synced deal_type=%s deals_updated=%d tasks_added=%d",
        deal_type, deals_updated, tasks_added,
    )
    return {"deals_updated": deals_updated, "tasks_added": tasks_added}


def sync_full_reset(deal_type: str, *, store: TaskStore | None = None) -> dict:
    """Delete every task of each initialized deal and re-instantiate from the catalog.

    Progress, dates and notes of the deleted tasks are lost.
    """
    validate_deal_type(deal_type)
    store = store or SqlAlchemyTaskStore()
    templates = _templates_or_empty(deal_type)
    if not templates:
        raise ValidationError(
            f"No active templates for deal type {deal_type!r}; full reset refused",
            details={"deal_type": "catalog has no active templates"},
        )

    deals_updated = 0
    tasks_added = 0
    for state in store.list_initialized_deals(deal_type):
        deal_id = state.deal_id
        fresh = [build_task_from_template(deal_id, t) for t in templates]
        with store.atomic("sync_full_reset"):
            store.delete_tasks_for_deal(deal_id)
            store.create_tasks(fresh)
            store.mark_initialized(deal_id, deal_type, len(fresh))
        deals_updated += 1
        tasks_added += len(fresh)

    logger.warning(
        "Template full reset deal_type=%s deals_updated=%d tasks_added=%d",
        deal_type, deals_updated, tasks_added,
    )
    return {"deals_updated": deals_updated, "tasks_added": tasks_added}
