"""
ISP Operations Platform
Per-organization cron scheduler.

Each organization with cron enabled gets one repeating APScheduler interval
job that runs the work-item generation task inside a Flask app context.
The interval comes from the organization's simplified cron string
(see parse_cron_to_ms); it is an approximation, not a wall-clock cron.

Usage:
    scheduler = OrgCronScheduler(app)      # app.extensions["org_cron_scheduler"]
    scheduler.initialize()                 # schedule every organization
    scheduler.restart_org(org_id)          # after settings change
    scheduler.stop_all()
"""

from __future__ import annotations

import atexit
import logging
import re
import threading
from contextlib import contextmanager
from typing import Callable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from flask import Flask, has_app_context
from sqlalchemy.exc import SQLAlchemyError

from ispops.core.exceptions import GenerationTaskError, SchedulingError
from ispops.models import db
from ispops.models.base import iso, utcnow
from ispops.models.organization import Organization
from ispops.models.strategy import DEFAULT_LOOKAHEAD_DAYS, StrategySettings
from ispops.services.activity_log import log_activity, resolve_system_user_id
from ispops.services.work_item_generator import generate_upcoming_work_items

logger = logging.getLogger(__name__)

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS
DEFAULT_INTERVAL_MS = 24 * HOUR_MS

_STEP_MINUTE = re.compile(r"^\*/(\d+)$")


def parse_cron_to_ms(schedule: str | None) -> int:
    """
    Map a 5-field cron string to a repeat interval in milliseconds.

    Rules, first match wins:
        missing or not 5 fields          -> 24h
        minute "*/N" (N >= 1)            -> N minutes
        any other "*/" minute            -> 24h
        minute set, hour "*"             -> 1h
        anything else                    -> 24h

    Specific times are ignored: "0 9 * * *" repeats every 24h from whenever
    the job was installed, not at 09:00.
    """
    if not schedule or not isinstance(schedule, str):
        return DEFAULT_INTERVAL_MS
    parts = schedule.split()
    if len(parts) != 5:
        return DEFAULT_INTERVAL_MS

    minute, hour = parts[0], parts[1]

    if minute.startswith("*/"):
        step = _STEP_MINUTE.match(minute)
        if step and int(step.group(1)) >= 1:
            return int(step.group(1)) * MINUTE_MS
        return DEFAULT_INTERVAL_MS
    if minute != "*" and hour == "*":
        return HOUR_MS
    return DEFAULT_INTERVAL_MS


def job_id_for(organization_id: int) -> str:
    return f"org-cron-{organization_id}"


class OrgCronScheduler:
    """
    Owns the per-organization job map and the background scheduler.

    The generator is any callable ``(lookahead_days, organization_id) -> report``
    where report exposes created / skipped / errors.
    """

    def __init__(self, app: Flask | None = None, scheduler=None,
                 generator: Callable | None = None) -> None:
        self._scheduler = scheduler or BackgroundScheduler(timezone="UTC")
        self._generator = generator or generate_upcoming_work_items
        self._jobs: dict[int, object] = {}
        self._intervals: dict[int, int] = {}
        self._lock = threading.Lock()
        self._atexit_registered = False
        self._app: Flask | None = None
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        self._app = app
        app.extensions["org_cron_scheduler"] = self
        logger.info("OrgCronScheduler attached to app")

    @contextmanager
    def _context(self):
        """Reuse the caller's app context, or push one (scheduler threads)."""
        if has_app_context() or self._app is None:
            yield
            return
        with self._app.app_context():
            yield

    # ── Lifecycle ────────────────────────────────────────────────────────

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("Background scheduler started")
        if not self._atexit_registered:
            atexit.register(self.shutdown)
            self._atexit_registered = True

    def initialize(self) -> int:
        """Schedule every organization; returns how many got a job."""
        logger.info("Initializing cron jobs")
        with self._context():
            try:
                org_ids = [org.id for org in Organization.query.order_by(Organization.id).all()]
            except SQLAlchemyError:
                db.session.rollback()
                logger.exception("Failed to load organizations for cron initialization")
                return 0

            self.start()
            for org_id in org_ids:
                self.schedule_org(org_id)

            if self._app is not None and self._app.config.get("CRON_RUN_ON_STARTUP"):
                logger.info("Running initial generation for %d organization(s)", len(org_ids))
                for org_id in org_ids:
                    self.run_for_org(org_id)

        scheduled = len(self.active_jobs())
        logger.info("Cron jobs initialized: %d of %d organization(s) scheduled",
                    scheduled, len(org_ids))
        return scheduled

    def stop_all(self) -> None:
        """Cancel every job. In-flight runs are not interrupted."""
        with self._lock:
            for org_id in list(self._jobs):
                self._remove_locked(org_id)
        logger.info("All cron jobs stopped")

    def shutdown(self) -> None:
        self.stop_all()
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Background scheduler shut down")

    # ── Scheduling ───────────────────────────────────────────────────────

    def _remove_locked(self, organization_id: int) -> None:
        job = self._jobs.pop(organization_id, None)
        self._intervals.pop(organization_id, None)
        if job is None:
            return
        try:
            job.remove()
        except JobLookupError:
            logger.debug("Job %s already removed from scheduler", job.id)
        logger.info("Stopped cron job for organization %s", organization_id,
                    extra={"organization_id": organization_id, "job_id": job.id})

    def schedule_org(self, organization_id: int) -> bool:
        """
        (Re)install the organization's interval job from its settings.

        Any existing job is cancelled first. Returns True when a job is
        installed. Errors are logged, never raised.
        """
        try:
            with self._lock:
                self._remove_locked(organization_id)

            with self._context():
                settings = StrategySettings.query_for_organization(organization_id).first()
                if settings is None or not settings.cron_enabled:
                    logger.info("Cron disabled for organization %s", organization_id,
                                extra={"organization_id": organization_id})
                    return False
                interval_ms = parse_cron_to_ms(settings.cron_schedule)

            with self._lock:
                job = self._scheduler.add_job(
                    self.run_for_org,
                    trigger=IntervalTrigger(seconds=interval_ms // 1000),
                    args=[organization_id],
                    id=job_id_for(organization_id),
                    name=f"work-item generation (org {organization_id})",
                    replace_existing=True,
                    max_instances=1,
                    coalesce=True,
                )
                self._jobs[organization_id] = job
                self._intervals[organization_id] = interval_ms
        except Exception as exc:
            with self._context():
                db.session.rollback()
            error = SchedulingError(organization_id, str(exc))
            logger.exception("%s", error, extra={"organization_id": organization_id})
            return False

        logger.info("Scheduled cron job for organization %s every %dms",
                    organization_id, interval_ms,
                    extra={"organization_id": organization_id, "job_id": job_id_for(organization_id)})
        return True

    def restart_org(self, organization_id: int) -> bool:
        logger.info("Restarting cron job for organization %s", organization_id,
                    extra={"organization_id": organization_id})
        return self.schedule_org(organization_id)

    # ── Execution ────────────────────────────────────────────────────────

    def run_for_org(self, organization_id: int):
        """
        One scheduled fire: generate work items and record the outcome.

        Returns the generation report, or None when skipped or failed. Never
        raises; failures are logged and written to the activity log.
        """
        with self._context():
            try:
                return self._generate_and_record(organization_id)
            except Exception as exc:
                db.session.rollback()
                error = GenerationTaskError(organization_id, str(exc))
                logger.exception("%s", error, extra={"organization_id": organization_id})
                self._record(
                    organization_id,
                    entity_type="cron_job",
                    description="Automated work item generation failed",
                    metadata={
                        "source": "cron",
                        "error": str(exc),
                        "timestamp": utcnow().isoformat(),
                    },
                )
                return None

    def _generate_and_record(self, organization_id: int):
        settings = StrategySettings.query_for_organization(organization_id).first()
        if settings is None or not settings.auto_generate_work_items:
            logger.info("Auto-generation disabled for organization %s", organization_id,
                        extra={"organization_id": organization_id})
            return None

        lookahead_days = settings.lookahead_days or DEFAULT_LOOKAHEAD_DAYS
        logger.info("Starting work item generation for organization %s", organization_id,
                    extra={"organization_id": organization_id})
        report = self._generator(lookahead_days, organization_id)
        settings.last_cron_execution = utcnow()
        db.session.commit()

        logger.info(
            "Generation for organization %s: %d created, %d skipped, %d errors",
            organization_id, report.created, report.skipped, len(report.errors),
            extra={"organization_id": organization_id},
        )

        if report.created > 0:
            self._record(
                organization_id,
                entity_type="work_item",
                description=f"Automated generation: Created {report.created} work items",
                metadata={
                    "source": "cron",
                    "created": report.created,
                    "skipped": report.skipped,
                    "errorCount": len(report.errors),
                    "lookaheadDays": lookahead_days,
                    "timestamp": utcnow().isoformat(),
                },
            )
            if settings.notify_on_generation:
                # Delivery is not wired up; recipients are only logged
                logger.info("Would notify %s about %d generated work item(s)",
                            ", ".join(settings.notify_email_recipients or []) or "nobody",
                            report.created, extra={"organization_id": organization_id})
        return report

    def _record(self, organization_id: int, *, entity_type: str, description: str,
                metadata: dict) -> None:
        try:
            log_activity(
                organization_id,
                user_id=resolve_system_user_id(organization_id),
                action_type="agent_action",
                entity_type=entity_type,
                entity_id=0,
                description=description,
                metadata=metadata,
            )
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Failed to write activity log for organization %s",
                             organization_id, extra={"organization_id": organization_id})

    def trigger_work_item_generation(self, lookahead_days: int = DEFAULT_LOOKAHEAD_DAYS,
                                     organization_id: int | None = None):
        """Run the generator once, outside the timer. No bookkeeping."""
        logger.info("Manual trigger for organization %s: next %d day(s)",
                    organization_id, lookahead_days,
                    extra={"organization_id": organization_id})
        with self._context():
            return self._generator(lookahead_days, organization_id)

    # ── Introspection ────────────────────────────────────────────────────

    def active_jobs(self) -> dict[int, int]:
        """organization_id -> interval in ms."""
        with self._lock:
            return dict(self._intervals)

    def is_scheduled(self, organization_id: int) -> bool:
        with self._lock:
            return organization_id in self._jobs

    def status(self, organization_id: int) -> dict:
        with self._lock:
            job = self._jobs.get(organization_id)
            interval_ms = self._intervals.get(organization_id)
        return {
            "organizationId": organization_id,
            "scheduled": job is not None,
            "jobId": job.id if job is not None else None,
            "intervalMs": interval_ms,
            "nextRunTime": iso(getattr(job, "next_run_time", None)) if job is not None else None,
            "schedulerRunning": bool(self._scheduler.running),
        }
