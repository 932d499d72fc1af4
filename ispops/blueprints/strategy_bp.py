"""
Strategy blueprint: cron settings and work-item generation.

Endpoints:
    GET  /api/v1/strategy/settings        current settings (defaults created)
    PUT  /api/v1/strategy/settings        partial update, reschedules the org
    POST /api/v1/strategy/cron/trigger    run generation now {lookaheadDays?}
    GET  /api/v1/strategy/cron/status     scheduler view of the org
"""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request

from ispops.blueprints import current_organization_id, json_body
from ispops.core.exceptions import ValidationError
from ispops.services import strategy_settings_service as svc
from ispops.utils.errors import E, api_error, api_error_from

logger = logging.getLogger(__name__)

strategy_bp = Blueprint("strategy", __name__, url_prefix="/api/v1/strategy")

MAX_TRIGGER_LOOKAHEAD_DAYS = 365


@strategy_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error_from(error)


def _scheduler():
    return current_app.extensions["org_cron_scheduler"]


@strategy_bp.route("/settings", methods=["GET"])
def get_settings():
    """Current strategy settings for the organization."""
    settings = svc.get_or_create_settings(current_organization_id())
    return jsonify(settings.to_dict()), 200


@strategy_bp.route("/settings", methods=["PUT"])
def update_settings():
    """Update settings; the organization's cron job is reinstalled."""
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    organization_id = current_organization_id()
    user_id = request.headers.get("X-User-Id", type=int)
    settings = svc.update_settings(organization_id, data, user_id=user_id)
    scheduled = _scheduler().restart_org(organization_id)
    body = settings.to_dict()
    body["scheduled"] = scheduled
    return jsonify(body), 200


@strategy_bp.route("/cron/trigger", methods=["POST"])
def trigger_generation():
    """Run work-item generation for the organization immediately."""
    data = json_body() or {}
    default_days = current_app.config.get("CRON_DEFAULT_LOOKAHEAD_DAYS", 7)
    lookahead_days = data.get("lookaheadDays", default_days)
    if (isinstance(lookahead_days, bool) or not isinstance(lookahead_days, int)
            or not 1 <= lookahead_days <= MAX_TRIGGER_LOOKAHEAD_DAYS):
        return api_error(
            E.VALIDATION_INVALID,
            f"lookaheadDays must be an integer between 1 and {MAX_TRIGGER_LOOKAHEAD_DAYS}",
        )
    report = _scheduler().trigger_work_item_generation(
        lookahead_days=lookahead_days,
        organization_id=current_organization_id(),
    )
    return jsonify(report.to_dict()), 200


@strategy_bp.route("/cron/status", methods=["GET"])
def cron_status():
    """Scheduler state plus last execution for the organization."""
    organization_id = current_organization_id()
    settings = svc.get_or_create_settings(organization_id)
    body = _scheduler().status(organization_id)
    body["cronEnabled"] = settings.cron_enabled
    body["cronSchedule"] = settings.cron_schedule
    body["lastCronExecution"] = settings.to_dict()["last_cron_execution"]
    return jsonify(body), 200
