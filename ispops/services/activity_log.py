"""
ISP Operations Platform
Activity log helpers.

Usage:
    from ispops.services.activity_log import log_activity, resolve_system_user_id

    user_id = resolve_system_user_id(organization_id)
    log_activity(organization_id, user_id=user_id, action_type="agent_action", ...)
"""

from __future__ import annotations

import logging

from flask import current_app

from ispops.models import db
from ispops.models.organization import ACTIVITY_TYPES, ActivityLog, User

logger = logging.getLogger(__name__)


def first_admin_id(organization_id: int) -> int | None:
    admin = (
        User.query_for_organization(organization_id)
        .filter_by(role="admin")
        .order_by(User.id)
        .first()
    )
    return admin.id if admin is not None else None


def resolve_system_user_id(organization_id: int, fallback: int | None = None) -> int | None:
    """Author for automated activity: the organization's first admin.

    Without an admin, `fallback` is used, then CRON_FALLBACK_USER_ID.
    None means a system entry with no user.
    """
    admin_id = first_admin_id(organization_id)
    if admin_id is not None:
        return admin_id
    if fallback is not None:
        return fallback
    configured = current_app.config.get("CRON_FALLBACK_USER_ID")
    logger.warning(
        "No admin user for organization %s; attributing activity to %s",
        organization_id, configured if configured is not None else "system",
        extra={"organization_id": organization_id},
    )
    return configured


def log_activity(
    organization_id: int,
    *,
    user_id: int | None,
    action_type: str,
    entity_type: str,
    description: str,
    entity_id: int | None = 0,
    metadata: dict | None = None,
) -> ActivityLog:
    """Insert and commit one activity-log row.

    Raises:
        ValueError: action_type is not one of ACTIVITY_TYPES.
    """
    if action_type not in ACTIVITY_TYPES:
        raise ValueError(f"Unknown activity type: {action_type!r}")
    entry = ActivityLog(
        organization_id=organization_id,
        user_id=user_id,
        action_type=action_type,
        entity_type=entity_type,
        entity_id=entity_id,
        description=description,
        details=metadata or {},
    )
    db.session.add(entry)
    db.session.commit()
    return entry
