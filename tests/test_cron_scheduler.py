"""
Tests: per-organization cron scheduler.

Covers:
    1. parse_cron_to_ms heuristic
    2. schedule_org / restart_org / stop_all job map behavior
    3. initialize() across organizations
    4. run_for_org bookkeeping (last execution, activity log, failures)
    5. Manual trigger
"""

from unittest.mock import MagicMock, patch

import pytest
from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy.exc import OperationalError

from ispops.models import db
from ispops.models.organization import ActivityLog
from ispops.models.strategy import StrategySettings
from ispops.services.cron_scheduler import (
    DEFAULT_INTERVAL_MS,
    OrgCronScheduler,
    job_id_for,
    parse_cron_to_ms,
)
from ispops.services.work_item_generator import GenerationReport


def _connection_lost():
    return OperationalError("SELECT", {}, Exception("connection lost"))


def _settings(organization_id, **kw):
    settings = StrategySettings(organization_id=organization_id, **kw)
    db.session.add(settings)
    db.session.commit()
    return settings


@pytest.fixture()
def generator():
    return MagicMock(return_value=GenerationReport(created=0, skipped=0))


@pytest.fixture()
def cron(app, generator):
    """Scheduler with a background scheduler that is never started."""
    scheduler = OrgCronScheduler(scheduler=BackgroundScheduler(timezone="UTC"),
                                 generator=generator)
    scheduler._app = app
    yield scheduler
    scheduler.stop_all()


# ═══════════════════════════════════════════════════════════════════════════
#  parse_cron_to_ms
# ═══════════════════════════════════════════════════════════════════════════


class TestParseCronToMs:
    @pytest.mark.parametrize("schedule,expected", [
        (None, 86_400_000),
        ("", 86_400_000),
        ("not a cron", 86_400_000),
        ("0 2 * *", 86_400_000),
        ("0 2 * * * *", 86_400_000),
        ("*/15 * * * *", 900_000),
        ("*/1 * * * *", 60_000),
        ("*/0 * * * *", 86_400_000),
        ("*/x * * * *", 86_400_000),
        ("30 * * * *", 3_600_000),
        ("0 9 * * *", 86_400_000),
        ("0 2 * * *", 86_400_000),
        ("0 9 * * 1", 86_400_000),
        ("0 9 1 * *", 86_400_000),
    ])
    def test_heuristic(self, schedule, expected):
        assert parse_cron_to_ms(schedule) == expected

    def test_default_is_one_day(self):
        assert DEFAULT_INTERVAL_MS == 24 * 60 * 60 * 1000


# ═══════════════════════════════════════════════════════════════════════════
#  Scheduling
# ═══════════════════════════════════════════════════════════════════════════


class TestScheduleOrg:
    def test_enabled_org_gets_one_job(self, cron, organization):
        _settings(organization.id, cron_schedule="*/15 * * * *")
        assert cron.schedule_org(organization.id) is True
        assert cron.active_jobs() == {organization.id: 900_000}
        assert cron._scheduler.get_job(job_id_for(organization.id)) is not None

    def test_double_schedule_keeps_single_job(self, cron, organization):
        _settings(organization.id)
        cron.schedule_org(organization.id)
        cron.schedule_org(organization.id)
        assert list(cron.active_jobs()) == [organization.id]
        assert len(cron._scheduler.get_jobs()) == 1

    def test_disabled_org_is_not_scheduled(self, cron, organization):
        _settings(organization.id, cron_enabled=False)
        assert cron.schedule_org(organization.id) is False
        assert cron.active_jobs() == {}

    def test_org_without_settings_is_not_scheduled(self, cron, organization):
        assert cron.schedule_org(organization.id) is False
        assert not cron.is_scheduled(organization.id)

    def test_restart_after_disable_removes_job(self, cron, organization):
        settings = _settings(organization.id)
        cron.schedule_org(organization.id)
        settings.cron_enabled = False
        db.session.commit()
        assert cron.restart_org(organization.id) is False
        assert cron.active_jobs() == {}
        assert cron._scheduler.get_jobs() == []

    def test_restart_picks_up_new_interval(self, cron, organization):
        settings = _settings(organization.id, cron_schedule="0 2 * * *")
        cron.schedule_org(organization.id)
        settings.cron_schedule = "45 * * * *"
        db.session.commit()
        cron.restart_org(organization.id)
        assert cron.active_jobs()[organization.id] == 3_600_000

    def test_scheduling_failure_is_logged_not_raised(self, cron, organization):
        _settings(organization.id)
        cron._scheduler = MagicMock()
        cron._scheduler.add_job.side_effect = RuntimeError("scheduler gone")
        assert cron.schedule_org(organization.id) is False
        assert cron.active_jobs() == {}

    def test_settings_read_failure_rolls_back_and_continues(self, cron, organization,
                                                            other_organization):
        _settings(organization.id)
        _settings(other_organization.id)
        real_query = StrategySettings.query_for_organization

        def query(organization_id):
            if organization_id == organization.id:
                raise _connection_lost()
            return real_query(organization_id)

        with patch.object(StrategySettings, "query_for_organization", side_effect=query), \
                patch.object(db.session, "rollback", wraps=db.session.rollback) as rollback:
            assert cron.schedule_org(organization.id) is False
            rollback.assert_called_once()
            assert cron.schedule_org(other_organization.id) is True
        assert list(cron.active_jobs()) == [other_organization.id]

    def test_stop_all_empties_job_map(self, cron, organization, other_organization):
        _settings(organization.id)
        _settings(other_organization.id)
        cron.schedule_org(organization.id)
        cron.schedule_org(other_organization.id)
        assert len(cron.active_jobs()) == 2
        cron.stop_all()
        assert cron.active_jobs() == {}
        assert cron._scheduler.get_jobs() == []

    def test_status(self, cron, organization):
        _settings(organization.id, cron_schedule="*/5 * * * *")
        cron.schedule_org(organization.id)
        status = cron.status(organization.id)
        assert status["scheduled"] is True
        assert status["intervalMs"] == 300_000
        assert status["jobId"] == job_id_for(organization.id)


class TestInitialize:
    def test_schedules_every_enabled_org(self, app, cron, organization, other_organization,
                                         monkeypatch):
        _settings(organization.id)
        _settings(other_organization.id, cron_enabled=False)
        monkeypatch.setattr(cron, "start", MagicMock())
        assert cron.initialize() == 1
        assert list(cron.active_jobs()) == [organization.id]

    def test_run_on_startup(self, app, cron, generator, organization, monkeypatch):
        _settings(organization.id)
        monkeypatch.setattr(cron, "start", MagicMock())
        monkeypatch.setitem(app.config, "CRON_RUN_ON_STARTUP", True)
        cron.initialize()
        generator.assert_called_once_with(7, organization.id)

    def test_storage_error_during_startup_run_is_contained(self, app, cron, generator,
                                                          organization, monkeypatch):
        _settings(organization.id)
        monkeypatch.setattr(cron, "start", MagicMock())
        monkeypatch.setitem(app.config, "CRON_RUN_ON_STARTUP", True)
        real_query = StrategySettings.query_for_organization
        calls = []

        def query(organization_id):
            calls.append(organization_id)
            if len(calls) > 1:
                raise _connection_lost()
            return real_query(organization_id)

        with patch.object(StrategySettings, "query_for_organization", side_effect=query):
            assert cron.initialize() == 1

        generator.assert_not_called()
        entry = ActivityLog.query_for_organization(organization.id).one()
        assert entry.entity_type == "cron_job"
        assert "connection lost" in entry.details["error"]

    def test_app_factory_attaches_scheduler(self, app):
        assert isinstance(app.extensions["org_cron_scheduler"], OrgCronScheduler)


# ═══════════════════════════════════════════════════════════════════════════
#  Run bookkeeping
# ═══════════════════════════════════════════════════════════════════════════


class TestRunForOrg:
    def test_successful_run_updates_last_execution(self, cron, generator, organization):
        settings = _settings(organization.id, lookahead_days=14)
        report = cron.run_for_org(organization.id)
        assert report is generator.return_value
        generator.assert_called_once_with(14, organization.id)
        db.session.refresh(settings)
        assert settings.last_cron_execution is not None

    def test_no_activity_entry_when_nothing_created(self, cron, organization):
        _settings(organization.id)
        cron.run_for_org(organization.id)
        assert ActivityLog.query_for_organization(organization.id).count() == 0

    def test_activity_entry_attributed_to_first_admin(self, cron, generator, organization,
                                                      user_factory):
        _settings(organization.id)
        user_factory(organization.id, "tech@northwind.test")
        admin = user_factory(organization.id, "admin@northwind.test", role="admin")
        user_factory(organization.id, "second-admin@northwind.test", role="admin")
        generator.return_value = GenerationReport(created=3, skipped=1)

        cron.run_for_org(organization.id)

        entry = ActivityLog.query_for_organization(organization.id).one()
        assert entry.user_id == admin.id
        assert entry.action_type == "agent_action"
        assert entry.entity_type == "work_item"
        assert entry.details["created"] == 3
        assert entry.details["source"] == "cron"

    def test_no_admin_records_system_entry(self, cron, generator, organization):
        _settings(organization.id)
        generator.return_value = GenerationReport(created=2)
        cron.run_for_org(organization.id)
        entry = ActivityLog.query_for_organization(organization.id).one()
        assert entry.user_id is None

    def test_auto_generation_disabled_skips_generator(self, cron, generator, organization):
        settings = _settings(organization.id, auto_generate_work_items=False)
        assert cron.run_for_org(organization.id) is None
        generator.assert_not_called()
        db.session.refresh(settings)
        assert settings.last_cron_execution is None

    def test_missing_settings_skips_generator(self, cron, generator, organization):
        assert cron.run_for_org(organization.id) is None
        generator.assert_not_called()

    def test_generator_failure_logs_cron_job_entry(self, cron, generator, organization):
        settings = _settings(organization.id)
        generator.side_effect = RuntimeError("database unavailable")

        assert cron.run_for_org(organization.id) is None

        entry = ActivityLog.query_for_organization(organization.id).one()
        assert entry.entity_type == "cron_job"
        assert entry.details["error"] == "database unavailable"
        db.session.refresh(settings)
        assert settings.last_cron_execution is None

    def test_settings_read_failure_is_recorded(self, cron, generator, organization):
        with patch.object(StrategySettings, "query_for_organization",
                          side_effect=_connection_lost()):
            assert cron.run_for_org(organization.id) is None
        generator.assert_not_called()
        entry = ActivityLog.query_for_organization(organization.id).one()
        assert entry.entity_type == "cron_job"
        assert entry.action_type == "agent_action"

    def test_malformed_report_is_recorded(self, cron, generator, organization):
        _settings(organization.id)
        generator.return_value = None
        assert cron.run_for_org(organization.id) is None
        entry = ActivityLog.query_for_organization(organization.id).one()
        assert entry.entity_type == "cron_job"

    def test_notification_only_logged(self, cron, generator, organization):
        _settings(organization.id, notify_on_generation=True,
                  notify_email_recipients=["ops@northwind.test"])
        generator.return_value = GenerationReport(created=1)
        report = cron.run_for_org(organization.id)
        assert report.created == 1


class TestManualTrigger:
    def test_trigger_calls_generator(self, cron, generator, organization):
        cron.trigger_work_item_generation(lookahead_days=3, organization_id=organization.id)
        generator.assert_called_once_with(3, organization.id)

    def test_trigger_does_not_touch_settings(self, cron, organization):
        settings = _settings(organization.id)
        cron.trigger_work_item_generation(organization_id=organization.id)
        db.session.refresh(settings)
        assert settings.last_cron_execution is None
