"""
Task Store — persistence boundary of the checklist engine.

``TaskStore`` is the contract every backend must honour; the engine
services only talk to it. ``SqlAlchemyTaskStore`` is the Flask-SQLAlchemy
implementation used by the application.

Transaction policy:
    Each public write commits on its own. Inside ``atomic()`` writes are
    only flushed and the block commits once at the end; any failure rolls
    the whole block back. SQLAlchemy failures surface as ``StoreError``.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from dealdesk.core.exceptions import ConflictError, NotFoundError, StoreError, ValidationError
from dealdesk.models import db
from dealdesk.models.checklist import ChecklistTask, DealChecklist

logger = logging.getLogger(__name__)

# Columns a caller may never write through update_task
_IMMUTABLE_FIELDS = frozenset({"id", "deal_id", "version", "created_at", "updated_at"})


class TaskStore(ABC):
    """Contract of the persistent task store."""

    @contextmanager
    def atomic(self, operation: str = "batch"):
        """Group the writes of the block into one unit.

        Backends without transactions keep this default and apply writes
        as they come.
        """
        yield

    @abstractmethod
    def create_task(self, task: ChecklistTask) -> int:
        """Insert one record and return its id. No implicit dedup."""

    @abstractmethod
    def create_tasks(self, tasks: list[ChecklistTask]) -> list[int]:
        """Insert several records; all-or-nothing for this implementation."""

    @abstractmethod
    def get_task(self, task_id: int) -> ChecklistTask:
        """Return a record or raise NotFoundError."""

    @abstractmethod
    def update_task(
        self, task_id: int, fields: dict, *, expected_version: int | None = None,
    ) -> ChecklistTask:
        """Apply partial fields; raise NotFoundError / ConflictError."""

    @abstractmethod
    def delete_task(self, task_id: int) -> None:
        """Hard delete; raise NotFoundError if absent."""

    @abstractmethod
    def list_tasks_for_deal(self, deal_id: str) -> list[ChecklistTask]:
        """Return every task of a deal ordered by phase and order."""

    @abstractmethod
    def delete_tasks_for_deal(self, deal_id: str) -> int:
        """Hard delete every task of a deal and return the count."""

    @abstractmethod
    def count_tasks_for_deal(self, deal_id: str) -> int:
        """Return the number of tasks of a deal."""

    @abstractmethod
    def get_checklist_state(self, deal_id: str) -> DealChecklist | None:
        """Return the guard row of a deal, if any."""

    @abstractmethod
    def mark_initialized(self, deal_id: str, deal_type: str, tasks_created: int) -> DealChecklist:
        """Create or update the guard row as initialized."""

    @abstractmethod
    def list_initialized_deals(self, deal_type: str) -> list[DealChecklist]:
        """Return guard rows of every initialized deal of a type."""


class SqlAlchemyTaskStore(TaskStore):
    """TaskStore backed by the Flask-SQLAlchemy session."""

    def __init__(self, session=None):
        self.session = session or db.session
        self._in_atomic = False

    # ── Transaction helpers ──────────────────────────────────────────────

    @contextmanager
    def atomic(self, operation: str = "batch"):
        """Group writes into a single commit; nested calls join the outer block."""
        if self._in_atomic:
            yield
            return
        self._in_atomic = True
        try:
            yield
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Task store %s rolled back: %s", operation, exc)
            raise StoreError(operation) from exc
        except Exception:
            self.session.rollback()
            raise
        finally:
            self._in_atomic = False

    def _commit(self, operation: str) -> None:
        if self._in_atomic:
            self.session.flush()
            return
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Task store %s failed: %s", operation, exc)
            raise StoreError(operation) from exc

    # ── Tasks ────────────────────────────────────────────────────────────

    def create_task(self, task: ChecklistTask) -> int:
        self.session.add(task)
        self._commit("create_task")
        logger.info("ChecklistTask created id=%s deal_id=%s", task.id, task.deal_id)
        return task.id

    def create_tasks(self, tasks: list[ChecklistTask]) -> list[int]:
        if not tasks:
            return []
        with self.atomic("create_tasks"):
            self.session.add_all(tasks)
            self.session.flush()
        ids = [t.id for t in tasks]
        logger.info("ChecklistTask bulk-created count=%d deal_id=%s", len(ids), tasks[0].deal_id)
        return ids

    def get_task(self, task_id: int) -> ChecklistTask:
        task = self.session.get(ChecklistTask, task_id)
        if task is None:
            raise NotFoundError(resource="ChecklistTask", resource_id=task_id)
        return task

    def update_task(
        self, task_id: int, fields: dict, *, expected_version: int | None = None,
    ) -> ChecklistTask:
        task = self.get_task(task_id)
        if expected_version is not None and task.version != expected_version:
            raise ConflictError(
                "ChecklistTask", "version", str(expected_version),
                message=(
                    f"ChecklistTask id={task_id} was modified concurrently "
                    f"(expected version {expected_version}, current {task.version})"
                ),
            )

        columns = set(ChecklistTask.__table__.columns.keys())
        unknown = sorted(k for k in fields if k not in columns or k in _IMMUTABLE_FIELDS)
        if unknown:
            raise ValidationError(
                "Unknown or read-only task fields",
                details={k: "not writable" for k in unknown},
            )

        for key, value in fields.items():
            setattr(task, key, value)
        task.version = (task.version or 0) + 1
        task.updated_at = datetime.now(timezone.utc)
        self._commit("update_task")
        logger.info("ChecklistTask updated id=%s version=%s", task.id, task.version)
        return task

    def delete_task(self, task_id: int) -> None:
        task = self.get_task(task_id)
        self.session.delete(task)
        self._commit("delete_task")
        logger.info("ChecklistTask deleted id=%s", task_id)

    def list_tasks_for_deal(self, deal_id: str) -> list[ChecklistTask]:
        return (
            ChecklistTask.query
            .filter_by(deal_id=deal_id)
            .order_by(ChecklistTask.phase, ChecklistTask.order, ChecklistTask.id)
            .all()
        )

    def delete_tasks_for_deal(self, deal_id: str) -> int:
        count = ChecklistTask.query.filter_by(deal_id=deal_id).delete(synchronize_session="fetch")
        self._commit("delete_tasks_for_deal")
        logger.info("ChecklistTask deleted count=%d deal_id=%s", count, deal_id)
        return count

    def count_tasks_for_deal(self, deal_id: str) -> int:
        return (
            self.session.query(func.count(ChecklistTask.id))
            .filter(ChecklistTask.deal_id == deal_id)
            .scalar()
        ) or 0

    # ── Guard rows ───────────────────────────────────────────────────────

    def get_checklist_state(self, deal_id: str) -> DealChecklist | None:
        return DealChecklist.query.filter_by(deal_id=deal_id).first()

    def mark_initialized(self, deal_id: str, deal_type: str, tasks_created: int) -> DealChecklist:
        state = self.get_checklist_state(deal_id)
        if state is None:
            state = DealChecklist(deal_id=deal_id, deal_type=deal_type)
            self.session.add(state)
        state.deal_type = deal_type
        state.status = "initialized"
        state.tasks_created = tasks_created
        state.initialized_at = datetime.now(timezone.utc)
        self._commit("mark_initialized")
        return state

    def list_initialized_deals(self, deal_type: str) -> list[DealChecklist]:
        return (
            DealChecklist.query
            .filter_by(deal_type=deal_type, status="initialized")
            .order_by(DealChecklist.deal_id)
            .all()
        )
