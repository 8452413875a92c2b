"""
Overdue detection: due date strictly before today and not complete.
"""

from datetime import date, datetime, timedelta, timezone

from dealdesk.models.checklist import ChecklistTask
from dealdesk.services.overdue import days_overdue, is_overdue, list_overdue_tasks

TODAY = date(2025, 3, 10)
NOW = datetime(2025, 3, 10, 9, 30, tzinfo=timezone.utc)


def _task(id=None, status="pending", due_date=None, is_critical=False, title="Task"):
    return ChecklistTask(
        id=id, deal_id="deal-1", phase="Offers", title=title,
        status=status, due_date=due_date, is_critical=is_critical,
    )


class TestIsOverdue:
    def test_pending_task_due_yesterday_is_one_day_overdue(self):
        task = _task(due_date=TODAY - timedelta(days=1))
        assert is_overdue(task, NOW) is True
        assert days_overdue(task, NOW) == 1

    def test_complete_task_is_never_overdue(self):
        task = _task(status="complete", due_date=TODAY - timedelta(days=1))
        assert is_overdue(task, NOW) is False
        assert days_overdue(task, NOW) is None

    def test_in_progress_task_can_be_overdue(self):
        task = _task(status="in_progress", due_date=TODAY - timedelta(days=5))
        assert days_overdue(task, NOW) == 5

    def test_due_today_is_overdue_once_the_day_has_started(self):
        """The due date stands for the start of that day."""
        task = _task(due_date=TODAY)
        assert is_overdue(task, NOW) is True
        assert days_overdue(task, NOW) == 0
        assert is_overdue(task, datetime(2025, 3, 10, 0, 0, tzinfo=timezone.utc)) is False

    def test_due_today_with_plain_date_now(self):
        assert is_overdue(_task(due_date=TODAY), TODAY) is False

    def test_days_overdue_is_floored(self):
        task = _task(due_date=TODAY - timedelta(days=2))
        assert days_overdue(task, datetime(2025, 3, 10, 23, 59, tzinfo=timezone.utc)) == 2

    def test_no_due_date_is_not_overdue(self):
        assert is_overdue(_task(), NOW) is False
        assert days_overdue(_task(), NOW) is None

    def test_now_may_be_a_plain_date(self):
        task = _task(due_date=TODAY - timedelta(days=3))
        assert days_overdue(task, TODAY) == 3

    def test_future_due_date(self):
        assert is_overdue(_task(due_date=TODAY + timedelta(days=1)), NOW) is False


class TestListOverdueTasks:
    def test_sorted_most_overdue_first(self):
        tasks = [
            _task(id=1, due_date=TODAY - timedelta(days=2), title="Two"),
            _task(id=2, due_date=TODAY - timedelta(days=9), title="Nine", is_critical=True),
            _task(id=3, due_date=TODAY + timedelta(days=2), title="Future"),
            _task(id=4, status="complete", due_date=TODAY - timedelta(days=20), title="Done"),
        ]
        result = list_overdue_tasks(tasks, NOW)
        assert [r["title"] for r in result] == ["Nine", "Two"]
        assert result[0] == {
            "id": 2,
            "title": "Nine",
            "phase": "Offers",
            "due_date": "2025-03-01",
            "is_critical": True,
            "days_overdue": 9,
        }

    def test_empty(self):
        assert list_overdue_tasks([], NOW) == []
