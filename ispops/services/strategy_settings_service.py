"""
ISP Operations Platform
Strategy settings service.

Read and update the per-organization cron / generation settings row. The
caller (strategy blueprint) reschedules the organization after an update.
"""

import logging

from ispops.core.exceptions import ValidationError
from ispops.models import db
from ispops.models.strategy import StrategySettings
from ispops.services.table_registry import to_snake_case

logger = logging.getLogger(__name__)

_BOOL_FIELDS = (
    "cron_enabled",
    "auto_generate_work_items",
    "generate_on_task_creation",
    "notify_on_generation",
)
MAX_LOOKAHEAD_DAYS = 365


def get_or_create_settings(organization_id):
    """Return the organization's settings row, creating defaults if missing."""
    settings = StrategySettings.query_for_organization(organization_id).first()
    if settings is None:
        settings = StrategySettings(organization_id=organization_id)
        db.session.add(settings)
        db.session.commit()
        logger.info("Created default strategy settings for organization %s", organization_id,
                    extra={"organization_id": organization_id})
    return settings


def _validate(changes):
    errors = {}
    for field in _BOOL_FIELDS:
        if field in changes and not isinstance(changes[field], bool):
            errors[field] = "must be a boolean"

    if "cron_schedule" in changes:
        schedule = changes["cron_schedule"]
        if not isinstance(schedule, str) or len(schedule.split()) != 5:
            errors["cron_schedule"] = "must be a 5-field cron string"

    if "lookahead_days" in changes:
        days = changes["lookahead_days"]
        if isinstance(days, bool) or not isinstance(days, int) or not 1 <= days <= MAX_LOOKAHEAD_DAYS:
            errors["lookahead_days"] = f"must be an integer between 1 and {MAX_LOOKAHEAD_DAYS}"

    if "notify_email_recipients" in changes:
        recipients = changes["notify_email_recipients"]
        if not isinstance(recipients, list) or not all(isinstance(r, str) for r in recipients):
            errors["notify_email_recipients"] = "must be a list of email addresses"

    if errors:
        raise ValidationError("Invalid strategy settings", details=errors)


def update_settings(organization_id, data, user_id=None):
    """
    Apply a partial update. Keys may be camelCase or snake_case; unknown keys
    are ignored.

    Raises:
        ValidationError: any supplied value is out of range or mistyped.
    """
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")

    allowed = set(_BOOL_FIELDS) | {"cron_schedule", "lookahead_days", "notify_email_recipients"}
    changes = {}
    for key, value in data.items():
        field = to_snake_case(key)
        if field in allowed:
            changes[field] = value
    _validate(changes)

    settings = get_or_create_settings(organization_id)
    for field, value in changes.items():
        setattr(settings, field, value)
    if user_id is not None:
        settings.updated_by = user_id
    db.session.commit()
    logger.info("Updated strategy settings for organization %s: %s",
                organization_id, sorted(changes),
                extra={"organization_id": organization_id})
    return settings
