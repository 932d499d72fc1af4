"""
Tests: recurring work-item generator.

Covers:
    1. Next due date per frequency
    2. generate_next_recurring_work_item (create, dedupe, completion)
    3. generate_upcoming_work_items window + report
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from ispops.models import db
from ispops.models.organization import ActivityLog
from ispops.models.strategy import KeyResultTask, WorkItem
from ispops.services.work_item_generator import (
    calculate_next_due_date,
    generate_next_recurring_work_item,
    generate_upcoming_work_items,
)

UTC = timezone.utc


def _task(organization_id, **kw):
    defaults = dict(
        organization_id=organization_id,
        title="Check backhaul links",
        is_recurring=True,
        frequency="daily",
        next_due_date=datetime.now(UTC) + timedelta(days=1),
    )
    defaults.update(kw)
    task = KeyResultTask(**defaults)
    db.session.add(task)
    db.session.commit()
    return task


def _unsaved(frequency, due, params=None):
    return KeyResultTask(title="t", frequency=frequency, next_due_date=due,
                         frequency_params=params or {})


class TestNextDueDate:
    def test_daily(self):
        due = datetime(2024, 1, 31, 9, tzinfo=UTC)
        assert calculate_next_due_date(_unsaved("daily", due)) == datetime(2024, 2, 1, 9, tzinfo=UTC)

    def test_weekly_default(self):
        due = datetime(2024, 1, 3, tzinfo=UTC)
        assert calculate_next_due_date(_unsaved("weekly", due)) == datetime(2024, 1, 10, tzinfo=UTC)

    def test_weekly_next_listed_day(self):
        # 2024-01-03 is a Wednesday (3); next listed day is Friday (5)
        due = datetime(2024, 1, 3, tzinfo=UTC)
        task = _unsaved("weekly", due, {"dayOfWeek": [1, 5]})
        assert calculate_next_due_date(task) == datetime(2024, 1, 5, tzinfo=UTC)

    def test_weekly_wraps_to_next_week(self):
        # Friday -> following Monday
        due = datetime(2024, 1, 5, tzinfo=UTC)
        task = _unsaved("weekly", due, {"dayOfWeek": [1, 5]})
        assert calculate_next_due_date(task) == datetime(2024, 1, 8, tzinfo=UTC)

    def test_weekly_sunday(self):
        # Saturday -> Sunday (0)
        due = datetime(2024, 1, 6, tzinfo=UTC)
        task = _unsaved("weekly", due, {"dayOfWeek": [0]})
        assert calculate_next_due_date(task) == datetime(2024, 1, 7, tzinfo=UTC)

    def test_monthly_clamps_to_month_end(self):
        due = datetime(2024, 1, 31, tzinfo=UTC)
        assert calculate_next_due_date(_unsaved("monthly", due)) == datetime(2024, 2, 29, tzinfo=UTC)

    def test_monthly_day_of_month(self):
        due = datetime(2024, 1, 10, tzinfo=UTC)
        task = _unsaved("monthly", due, {"dayOfMonth": 15})
        assert calculate_next_due_date(task) == datetime(2024, 2, 15, tzinfo=UTC)

    def test_quarterly_crosses_year(self):
        due = datetime(2024, 11, 30, tzinfo=UTC)
        assert calculate_next_due_date(_unsaved("quarterly", due)) == datetime(2025, 2, 28, tzinfo=UTC)

    def test_unknown_frequency(self):
        assert calculate_next_due_date(_unsaved("hourly", datetime(2024, 1, 1, tzinfo=UTC))) is None

    def test_naive_datetime_treated_as_utc(self):
        task = _unsaved("daily", datetime(2024, 1, 1))
        assert calculate_next_due_date(task) == datetime(2024, 1, 2, tzinfo=UTC)


class TestGenerateNext:
    def test_creates_sequenced_item_and_advances(self, organization):
        task = _task(organization.id, next_due_date=datetime(2030, 5, 1, tzinfo=UTC))
        item = generate_next_recurring_work_item(task)

        assert item.title == "Check backhaul links (#1)"
        assert item.due_date.isoformat() == "2030-05-01"
        assert item.status == "Planning"
        db.session.refresh(task)
        assert task.next_due_date.date().isoformat() == "2030-05-02"
        assert task.last_generated_date is not None

        second = generate_next_recurring_work_item(task)
        assert second.title == "Check backhaul links (#2)"

    def test_logs_creation_activity(self, organization):
        task = _task(organization.id)
        item = generate_next_recurring_work_item(task)
        entry = ActivityLog.query_for_organization(organization.id).one()
        assert entry.action_type == "creation"
        assert entry.entity_id == item.id

    def test_existing_item_for_due_date_is_skipped(self, organization):
        due = datetime(2030, 5, 1, tzinfo=UTC)
        task = _task(organization.id, next_due_date=due)
        db.session.add(WorkItem(organization_id=organization.id, key_result_task_id=task.id,
                                title="manual", due_date=due.date()))
        db.session.commit()
        assert generate_next_recurring_work_item(task) is None
        assert WorkItem.query.count() == 1

    def test_occurrences_exhausted_marks_completed(self, organization):
        task = _task(organization.id, total_occurrences=2, completed_count=2)
        assert generate_next_recurring_work_item(task) is None
        db.session.refresh(task)
        assert task.generation_status == "completed"

    def test_end_date_passed_marks_completed(self, organization):
        task = _task(organization.id, end_date=datetime.now(UTC) - timedelta(days=1))
        assert generate_next_recurring_work_item(task) is None
        assert task.generation_status == "completed"

    def test_non_recurring_rejected(self, organization):
        task = _task(organization.id, is_recurring=False)
        with pytest.raises(ValueError):
            generate_next_recurring_work_item(task)


class TestGenerateUpcoming:
    def test_requires_organization(self):
        with pytest.raises(ValueError):
            generate_upcoming_work_items(7, None)

    def test_report_counts(self, organization, other_organization):
        now = datetime.now(UTC)
        _task(organization.id, title="Inside window", next_due_date=now + timedelta(days=2))
        _task(organization.id, title="Outside window", next_due_date=now + timedelta(days=30))
        _task(organization.id, title="No due date", next_due_date=None)
        _task(organization.id, title="Paused", generation_status="paused")
        _task(other_organization.id, title="Other tenant")

        report = generate_upcoming_work_items(7, organization.id)

        assert report.created == 1
        assert report.skipped == 2
        assert report.errors == []
        assert [i.title for i in report.items] == ["Inside window (#1)"]
        assert WorkItem.query_for_organization(other_organization.id).count() == 0

    def test_per_task_errors_are_collected(self, organization):
        first = _task(organization.id, title="Broken")
        _task(organization.id, title="Healthy")
        real = generate_next_recurring_work_item

        def flaky(task):
            if task.id == first.id:
                raise RuntimeError("boom")
            return real(task)

        with patch("ispops.services.work_item_generator.generate_next_recurring_work_item",
                   side_effect=flaky):
            report = generate_upcoming_work_items(7, organization.id)

        assert report.created == 1
        assert report.errors == [f"Task {first.id}: boom"]

    def test_to_dict(self, organization):
        _task(organization.id)
        payload = generate_upcoming_work_items(7, organization.id).to_dict()
        assert payload["created"] == 1
        assert payload["items"][0]["title"].endswith("(#1)")
