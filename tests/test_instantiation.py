"""
Template instantiation: atomic copy of the catalog into a deal, the
initialized guard, forced duplication and catalog sync.
"""

import pytest
from sqlalchemy.exc import SQLAlchemyError

from dealdesk.core.exceptions import ConflictError, NotFoundError, StoreError, ValidationError
from dealdesk.models import db
from dealdesk.models.checklist import ChecklistTask, ChecklistTaskTemplate, DealChecklist
from dealdesk.services import template_catalog
from dealdesk.services.instantiation import (
    build_task_from_template,
    count_affected_deals,
    instantiate,
    sync_full_reset,
    sync_template_additions,
)
from dealdesk.services.task_store import SqlAlchemyTaskStore, TaskStore


def _template_count(deal_type):
    return len(template_catalog.list_task_templates(deal_type))


class TestInstantiate:
    def test_creates_one_pending_task_per_template(self, seeded_catalog, store):
        expected = _template_count("venta")
        result = instantiate("deal-1", "venta")
        assert result.created == expected
        assert result.expected == expected
        assert int(result) == expected

        tasks = store.list_tasks_for_deal("deal-1")
        assert len(tasks) == expected
        assert all(t.status == "pending" and t.completed_at is None for t in tasks)
        assert all(t.template_id is not None for t in tasks)
        assert all(t.start_date is None and t.due_date is None for t in tasks)
        assert store.get_checklist_state("deal-1").tasks_created == expected

    def test_every_task_lands_in_a_catalog_phase(self, seeded_catalog, store):
        instantiate("deal-2", "compra")
        tasks = store.list_tasks_for_deal("deal-2")
        assert tasks
        assert {t.phase for t in tasks} <= {p.name for p in template_catalog.list_phases("compra")}

    def test_copies_template_fields(self, seeded_catalog):
        tpl = ChecklistTaskTemplate.query.filter_by(
            deal_type="compra", title="Legal due diligence review",
        ).first()
        task = build_task_from_template("deal-9", tpl)
        assert (task.phase, task.workstream, task.is_critical) == ("Due Diligence", "legal", True)
        assert task.estimated_days == tpl.estimated_days
        assert task.order == tpl.order

    def test_missing_workstream_becomes_other(self, seeded_catalog):
        tpl = ChecklistTaskTemplate.query.filter_by(deal_type="venta", title="Prepare teaser").first()
        assert build_task_from_template("deal-9", tpl).workstream == "other"

    def test_second_call_conflicts(self, seeded_catalog, store):
        instantiate("deal-1", "venta")
        with pytest.raises(ConflictError):
            instantiate("deal-1", "venta")
        assert store.count_tasks_for_deal("deal-1") == _template_count("venta")

    def test_force_duplicates_task_set(self, seeded_catalog, store):
        k = _template_count("venta")
        instantiate("deal-1", "venta")
        result = instantiate("deal-1", "venta", force=True)
        assert result.created == k
        assert store.count_tasks_for_deal("deal-1") == 2 * k

    def test_retry_fills_only_missing_templates(self, seeded_catalog, store):
        templates = template_catalog.list_task_templates("compra")
        store.create_task(build_task_from_template("deal-1", templates[0]))
        result = instantiate("deal-1", "compra")
        assert result.skipped == 1
        assert result.created == len(templates) - 1
        assert store.count_tasks_for_deal("deal-1") == len(templates)

    def test_unconfigured_deal_type_creates_nothing(self, store):
        result = instantiate("deal-1", "compra")
        assert result.created == 0
        assert store.get_checklist_state("deal-1") is None

    def test_invalid_input(self, seeded_catalog):
        with pytest.raises(ValidationError):
            instantiate("", "venta")
        with pytest.raises(ValidationError):
            instantiate("deal-1", "merger")

    def test_store_failure_leaves_no_tasks(self, seeded_catalog, store, monkeypatch):
        def _boom(*args, **kwargs):
            raise SQLAlchemyError("connection lost")

        monkeypatch.setattr(SqlAlchemyTaskStore, "mark_initialized", _boom)
        with pytest.raises(StoreError):
            instantiate("deal-1", "venta", store=store)
        assert ChecklistTask.query.filter_by(deal_id="deal-1").count() == 0
        assert store.get_checklist_state("deal-1") is None


class TestSync:
    def test_count_affected_deals(self, seeded_catalog):
        assert count_affected_deals("venta") == 0
        instantiate("deal-1", "venta")
        instantiate("deal-2", "venta")
        instantiate("deal-3", "compra")
        assert count_affected_deals("venta") == 2
        assert count_affected_deals("compra") == 1

    def test_full_reset_refused_without_active_templates(self, seeded_catalog, store):
        instantiate("deal-1", "venta")
        for tpl in template_catalog.list_task_templates("venta"):
            template_catalog.deactivate_template(tpl.id)
        before = store.count_tasks_for_deal("deal-1")
        with pytest.raises(ValidationError):
            sync_full_reset("venta")
        assert store.count_tasks_for_deal("deal-1") == before > 0

    def test_additions_reach_initialized_deals(self, seeded_catalog, store):
        instantiate("deal-1", "venta")
        instantiate("deal-2", "venta")
        instantiate("deal-3", "compra")
        template_catalog.create_template({
            "deal_type": "venta", "phase": "Closing", "title": "Post-closing integration plan",
            "workstream": "ops",
        })
        result = sync_template_additions("venta")
        assert result == {"deals_updated": 2, "tasks_added": 2}
        assert sync_template_additions("venta") == {"deals_updated": 0, "tasks_added": 0}

    def test_full_reset_discards_progress(self, seeded_catalog, store):
        instantiate("deal-1", "venta")
        task = store.list_tasks_for_deal("deal-1")[0]
        store.update_task(task.id, {"notes": "lost on reset"})
        db.session.add(ChecklistTask(deal_id="deal-1", title="Manual", phase="Closing"))
        db.session.commit()

        k = _template_count("venta")
        result = sync_full_reset("venta")
        assert result == {"deals_updated": 1, "tasks_added": k}
        tasks = store.list_tasks_for_deal("deal-1")
        assert len(tasks) == k
        assert all(t.notes is None for t in tasks)


class MemoryTaskStore(TaskStore):
    """Dict-backed store with no transaction support."""

    def __init__(self):
        self.tasks = {}
        self.states = {}
        self._next_id = 1

    def create_task(self, task):
        task.id = self._next_id
        self._next_id += 1
        self.tasks[task.id] = task
        return task.id

    def create_tasks(self, tasks):
        return [self.create_task(t) for t in tasks]

    def get_task(self, task_id):
        try:
            return self.tasks[task_id]
        except KeyError:
            raise NotFoundError("ChecklistTask", task_id) from None

    def update_task(self, task_id, fields, *, expected_version=None):
        task = self.get_task(task_id)
        for key, value in fields.items():
            setattr(task, key, value)
        return task

    def delete_task(self, task_id):
        self.tasks.pop(self.get_task(task_id).id)

    def list_tasks_for_deal(self, deal_id):
        return [t for t in self.tasks.values() if t.deal_id == deal_id]

    def delete_tasks_for_deal(self, deal_id):
        doomed = [t.id for t in self.list_tasks_for_deal(deal_id)]
        for task_id in doomed:
            del self.tasks[task_id]
        return len(doomed)

    def count_tasks_for_deal(self, deal_id):
        return len(self.list_tasks_for_deal(deal_id))

    def get_checklist_state(self, deal_id):
        return self.states.get(deal_id)

    def mark_initialized(self, deal_id, deal_type, tasks_created):
        state = DealChecklist(
            deal_id=deal_id, deal_type=deal_type, status="initialized", tasks_created=tasks_created,
        )
        self.states[deal_id] = state
        return state

    def list_initialized_deals(self, deal_type):
        return [s for s in self.states.values() if s.deal_type == deal_type]


class TestCustomStore:
    """Instantiation only relies on the TaskStore contract."""

    def test_instantiate_through_memory_store(self, seeded_catalog):
        mem = MemoryTaskStore()
        result = instantiate("deal-x", "venta", store=mem)
        assert result.created == _template_count("venta")
        assert mem.count_tasks_for_deal("deal-x") == result.created
        assert mem.get_checklist_state("deal-x").tasks_created == result.created
        assert ChecklistTask.query.count() == 0

        with pytest.raises(ConflictError):
            instantiate("deal-x", "venta", store=mem)

    def test_sync_through_memory_store(self, seeded_catalog):
        mem = MemoryTaskStore()
        instantiate("deal-x", "compra", store=mem)
        assert sync_template_additions("compra", store=mem) == {"deals_updated": 0, "tasks_added": 0}
        k = _template_count("compra")
        assert sync_full_reset("compra", store=mem) == {"deals_updated": 1, "tasks_added": k}
        assert mem.count_tasks_for_deal("deal-x") == k
