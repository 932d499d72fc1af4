"""
ISP Operations Platform
Recurring work-item generator.

Creates work items for recurring key-result tasks whose next due date falls
inside a lookahead window, then advances each task's next_due_date by its
frequency. The cron scheduler calls `generate_upcoming_work_items` once per
organization per fire.

Frequencies:
    daily       +1 day
    weekly      +7 days, or the next listed frequency_params.dayOfWeek (0 = Sunday)
    monthly     +1 month, pinned to frequency_params.dayOfMonth when given
    quarterly   +3 months
"""

from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from sqlalchemy import func

from ispops.models import db
from ispops.models.base import utcnow
from ispops.models.strategy import TASK_FREQUENCIES, KeyResultTask, WorkItem
from ispops.services.activity_log import log_activity, resolve_system_user_id

logger = logging.getLogger(__name__)


@dataclass
class GenerationReport:
    created: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)
    items: list[WorkItem] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "created": self.created,
            "skipped": self.skipped,
            "errors": list(self.errors),
            "items": [item.to_dict() for item in self.items],
        }


def _aware(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _add_months(value: datetime, months: int, day: int | None = None) -> datetime:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return value.replace(year=year, month=month, day=min(day or value.day, last_day))


def _next_weekday(current: datetime, days_of_week: list[int]) -> datetime:
    # frequency_params uses 0 = Sunday; datetime.weekday() uses 0 = Monday
    today = (current.weekday() + 1) % 7
    targets = sorted({int(d) % 7 for d in days_of_week})
    later = [d for d in targets if d > today]
    if later:
        return current + timedelta(days=later[0] - today)
    return current + timedelta(days=7 - today + targets[0])


def calculate_next_due_date(task: KeyResultTask) -> datetime | None:
    """Due date following task.next_due_date, or None for unknown frequencies."""
    if task.frequency not in TASK_FREQUENCIES or task.next_due_date is None:
        return None
    current = _aware(task.next_due_date)
    params = task.frequency_params or {}

    if task.frequency == "daily":
        return current + timedelta(days=1)
    if task.frequency == "weekly":
        days = params.get("dayOfWeek") or []
        if days:
            return _next_weekday(current, days)
        return current + timedelta(weeks=1)
    if task.frequency == "monthly":
        return _add_months(current, 1, day=params.get("dayOfMonth"))
    if task.frequency == "quarterly":
        return _add_months(current, 3)
    return None


def _mark_completed(task: KeyResultTask, reason: str) -> None:
    task.generation_status = "completed"
    db.session.commit()
    logger.info("Task %s completed (%s), no further work items", task.id, reason,
                extra={"organization_id": task.organization_id})


def generate_next_recurring_work_item(task: KeyResultTask) -> WorkItem | None:
    """
    Create the next work item for a recurring task.

    Returns None (and creates nothing) when the task has run out of
    occurrences, is past its end date, or already has an item for the due date.

    Raises:
        ValueError: task is not recurring.
    """
    if not task.is_recurring:
        raise ValueError(f"Task {task.id} is not recurring")

    if task.total_occurrences and (task.completed_count or 0) >= task.total_occurrences:
        _mark_completed(task, "occurrences exhausted")
        return None
    if task.end_date is not None and utcnow() > _aware(task.end_date):
        _mark_completed(task, "end date passed")
        return None

    due = _aware(task.next_due_date) or utcnow()
    existing = (
        WorkItem.query_for_organization(task.organization_id)
        .filter_by(key_result_task_id=task.id, due_date=due.date())
        .first()
    )
    if existing is not None:
        logger.info("Work item already exists for task %s on %s", task.id, due.date())
        return None

    sequence = (
        db.session.query(func.count(WorkItem.id))
        .filter(WorkItem.key_result_task_id == task.id)
        .scalar()
    ) + 1
    item = WorkItem(
        organization_id=task.organization_id,
        key_result_task_id=task.id,
        team_id=task.team_id,
        title=f"{task.title} (#{sequence})",
        description=task.description,
        status="Planning",
        due_date=due.date(),
        assigned_to=task.assigned_to,
        owner_id=task.assigned_to,
        created_by=task.created_by,
        work_item_type="recurring",
    )
    db.session.add(item)

    next_due = calculate_next_due_date(task)
    if next_due is not None:
        task.next_due_date = next_due
        task.last_generated_date = utcnow()
    db.session.commit()

    log_activity(
        task.organization_id,
        user_id=resolve_system_user_id(task.organization_id, fallback=task.created_by),
        action_type="creation",
        entity_type="work_item",
        entity_id=item.id,
        description=f"Generated recurring work item #{sequence} from task: {task.title}",
        metadata={
            "taskId": task.id,
            "workItemId": item.id,
            "sequenceNumber": sequence,
            "dueDate": due.date().isoformat(),
        },
    )
    return item


def generate_upcoming_work_items(lookahead_days: int = 7,
                                 organization_id: int | None = None) -> GenerationReport:
    """
    Generate work items for every active recurring task due within the window.

    Per-task failures are collected in report.errors; the remaining tasks
    still run.

    Raises:
        ValueError: organization_id missing.
    """
    if not organization_id:
        raise ValueError("Organization ID is required for work item generation")

    report = GenerationReport()
    tasks = (
        KeyResultTask.query_for_organization(organization_id)
        .filter_by(is_recurring=True, generation_status="active")
        .order_by(KeyResultTask.id)
        .all()
    )
    horizon = utcnow() + timedelta(days=lookahead_days)

    for task in tasks:
        if task.next_due_date is None:
            logger.debug("Task %s has no next due date, skipping", task.id)
            report.skipped += 1
            continue
        if _aware(task.next_due_date) >= horizon:
            report.skipped += 1
            continue
        task_id = task.id
        try:
            item = generate_next_recurring_work_item(task)
        except Exception as exc:
            db.session.rollback()
            logger.exception("Work item generation failed for task %s", task_id,
                             extra={"organization_id": organization_id})
            report.errors.append(f"Task {task_id}: {exc}")
            continue
        if item is None:
            report.skipped += 1
        else:
            report.created += 1
            report.items.append(item)

    logger.info(
        "Generation complete for organization %s: %d created, %d skipped, %d errors",
        organization_id, report.created, report.skipped, len(report.errors),
        extra={"organization_id": organization_id},
    )
    return report
