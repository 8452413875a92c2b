"""
SqlAlchemyTaskStore: CRUD, optimistic concurrency and atomic blocks.
"""

import pytest
from sqlalchemy.exc import SQLAlchemyError

from dealdesk.core.exceptions import ConflictError, NotFoundError, StoreError, ValidationError
from dealdesk.models.checklist import ChecklistTask


def _task(deal_id="deal-1", title="Task", phase="Offers", order=1, **kw):
    return ChecklistTask(deal_id=deal_id, title=title, phase=phase, order=order, **kw)


class TestCrud:
    def test_create_and_get(self, store):
        task_id = store.create_task(_task())
        task = store.get_task(task_id)
        assert task.status == "pending"
        assert task.workstream == "other"
        assert task.version == 1

    def test_get_missing_raises(self, store):
        with pytest.raises(NotFoundError):
            store.get_task(9999)

    def test_no_implicit_dedup(self, store):
        store.create_task(_task(title="Same"))
        store.create_task(_task(title="Same"))
        assert store.count_tasks_for_deal("deal-1") == 2

    def test_list_ordered_by_phase_then_order(self, store):
        store.create_tasks([
            _task(phase="B", order=1, title="b1"),
            _task(phase="A", order=2, title="a2"),
            _task(phase="A", order=1, title="a1"),
            _task(deal_id="deal-2", phase="A", order=0, title="other deal"),
        ])
        assert [t.title for t in store.list_tasks_for_deal("deal-1")] == ["a1", "a2", "b1"]

    def test_delete(self, store):
        task_id = store.create_task(_task())
        store.delete_task(task_id)
        with pytest.raises(NotFoundError):
            store.delete_task(task_id)

    def test_delete_tasks_for_deal(self, store):
        store.create_tasks([_task(), _task(), _task(deal_id="deal-2")])
        assert store.delete_tasks_for_deal("deal-1") == 2
        assert store.count_tasks_for_deal("deal-1") == 0
        assert store.count_tasks_for_deal("deal-2") == 1


class TestUpdate:
    def test_update_bumps_version(self, store):
        task_id = store.create_task(_task())
        task = store.update_task(task_id, {"notes": "call seller"})
        assert task.notes == "call seller"
        assert task.version == 2

    def test_stale_version_conflicts(self, store):
        task_id = store.create_task(_task())
        store.update_task(task_id, {"notes": "first"}, expected_version=1)
        with pytest.raises(ConflictError):
            store.update_task(task_id, {"notes": "second"}, expected_version=1)
        assert store.get_task(task_id).notes == "first"

    def test_immutable_fields_rejected(self, store):
        task_id = store.create_task(_task())
        with pytest.raises(ValidationError) as exc:
            store.update_task(task_id, {"deal_id": "deal-2", "colour": "red"})
        assert set(exc.value.details) == {"colour", "deal_id"}


class TestAtomic:
    def test_failure_rolls_back_whole_block(self, store, monkeypatch):
        def _boom(*args, **kwargs):
            raise SQLAlchemyError("disk full")

        monkeypatch.setattr(type(store), "mark_initialized", _boom)
        with pytest.raises(StoreError):
            with store.atomic("test"):
                store.create_tasks([_task(), _task()])
                store.mark_initialized("deal-1", "venta", 2)
        assert store.count_tasks_for_deal("deal-1") == 0

    def test_guard_row(self, store):
        assert store.get_checklist_state("deal-1") is None
        state = store.mark_initialized("deal-1", "venta", 12)
        assert state.status == "initialized"
        assert state.initialized_at is not None
        assert [s.deal_id for s in store.list_initialized_deals("venta")] == ["deal-1"]
        assert store.list_initialized_deals("compra") == []
