"""
ISP Operations Platform
Strategy (OKR) models.

Models:
    - StrategySettings: Per-organization cron + work-item generation settings
    - Objective / KeyResult: OKR hierarchy
    - KeyResultTask: Actionable task, optionally recurring
    - WorkItem: Concrete unit of work generated from a task
"""

from ispops.models import db
from ispops.models.base import OrganizationModel, iso, utcnow


# ── Constants ────────────────────────────────────────────────────────────────

TASK_FREQUENCIES = {"daily", "weekly", "monthly", "quarterly"}

DEFAULT_CRON_SCHEDULE = "0 2 * * *"
DEFAULT_LOOKAHEAD_DAYS = 7


class StrategySettings(OrganizationModel):
    """
    Per-organization strategy settings.

    The cron scheduler reads this row every time it (re)schedules an
    organization and writes back last_cron_execution after a successful run.
    """

    __tablename__ = "strategy_settings"
    __table_args__ = (
        db.UniqueConstraint("organization_id", name="uq_strategy_settings_org"),
    )

    id = db.Column(db.Integer, primary_key=True)

    # Cron configuration
    cron_enabled = db.Column(db.Boolean, default=True, nullable=False)
    cron_schedule = db.Column(db.String(255), default=DEFAULT_CRON_SCHEDULE,
                              comment="Simplified 5-field cron string")
    lookahead_days = db.Column(db.Integer, default=DEFAULT_LOOKAHEAD_DAYS, nullable=False)
    last_cron_execution = db.Column(db.DateTime(timezone=True), nullable=True)

    # Generation settings
    auto_generate_work_items = db.Column(db.Boolean, default=True, nullable=False)
    generate_on_task_creation = db.Column(db.Boolean, default=True, nullable=False)
    notify_on_generation = db.Column(db.Boolean, default=False, nullable=False)
    notify_email_recipients = db.Column(db.JSON, default=list)

    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    updated_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"),
                           nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "cron_enabled": self.cron_enabled,
            "cron_schedule": self.cron_schedule,
            "lookahead_days": self.lookahead_days,
            "last_cron_execution": iso(self.last_cron_execution),
            "auto_generate_work_items": self.auto_generate_work_items,
            "generate_on_task_creation": self.generate_on_task_creation,
            "notify_on_generation": self.notify_on_generation,
            "notify_email_recipients": self.notify_email_recipients or [],
            "updated_by": self.updated_by,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<StrategySettings org={self.organization_id} cron={self.cron_schedule!r}>"


class Objective(OrganizationModel):
    """Strategic objective."""

    __tablename__ = "objectives"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(30), default="Draft")
    progress = db.Column(db.Integer, default=0)
    owner_id = db.Column(db.Integer, nullable=True)
    target_date = db.Column(db.Date, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)


class KeyResult(OrganizationModel):
    """Measurable key result tracking objective progress."""

    __tablename__ = "key_results"

    id = db.Column(db.Integer, primary_key=True)
    objective_id = db.Column(db.Integer, db.ForeignKey("objectives.id", ondelete="CASCADE"),
                             nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(30), default="Not Started")
    current_value = db.Column(db.Numeric(12, 2), default=0)
    target_value = db.Column(db.Numeric(12, 2), nullable=True)
    unit = db.Column(db.String(30), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)


class KeyResultTask(OrganizationModel):
    """
    Task supporting a key result.

    Recurring tasks feed the work-item generator: next_due_date advances by
    `frequency` each time a work item is generated.
    """

    __tablename__ = "key_result_tasks"

    id = db.Column(db.Integer, primary_key=True)
    key_result_id = db.Column(db.Integer, db.ForeignKey("key_results.id", ondelete="CASCADE"),
                              nullable=True, index=True)
    team_id = db.Column(db.Integer, nullable=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(30), default="Not Started")
    assigned_to = db.Column(db.Integer, nullable=True)
    created_by = db.Column(db.Integer, nullable=True)

    # Recurrence
    is_recurring = db.Column(db.Boolean, default=False, nullable=False)
    frequency = db.Column(db.String(20), nullable=True,
                          comment="daily, weekly, monthly, quarterly")
    frequency_params = db.Column(db.JSON, default=dict,
                                 comment="dayOfWeek list / dayOfMonth")
    next_due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    end_date = db.Column(db.DateTime(timezone=True), nullable=True)
    total_occurrences = db.Column(db.Integer, nullable=True)
    completed_count = db.Column(db.Integer, default=0, nullable=False)
    generation_status = db.Column(db.String(20), default="active", nullable=False)
    last_generated_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def __repr__(self):
        return f"<KeyResultTask {self.id}: {self.title} [{self.frequency or 'once'}]>"


class WorkItem(OrganizationModel):
    """Unit of work, optionally generated from a recurring task."""

    __tablename__ = "work_items"

    id = db.Column(db.Integer, primary_key=True)
    key_result_task_id = db.Column(db.Integer,
                                   db.ForeignKey("key_result_tasks.id", ondelete="SET NULL"),
                                   nullable=True, index=True)
    team_id = db.Column(db.Integer, nullable=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(30), default="Planning", nullable=False)
    due_date = db.Column(db.Date, nullable=True)
    owner_id = db.Column(db.Integer, nullable=True)
    assigned_to = db.Column(db.Integer, nullable=True)
    created_by = db.Column(db.Integer, nullable=True)
    work_item_type = db.Column(db.String(50), nullable=True)
    workflow_metadata = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "key_result_task_id": self.key_result_task_id,
            "title": self.title,
            "status": self.status,
            "due_date": iso(self.due_date),
            "assigned_to": self.assigned_to,
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<WorkItem {self.id}: {self.title} [{self.status}]>"
