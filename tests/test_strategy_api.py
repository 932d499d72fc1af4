"""
Tests: strategy settings + cron endpoints.
"""

from datetime import datetime, timedelta, timezone

import pytest

from ispops.core.exceptions import ValidationError
from ispops.models import db
from ispops.models.strategy import KeyResultTask, StrategySettings
from ispops.services import strategy_settings_service as svc

BASE = "/api/v1/strategy"


@pytest.fixture()
def scheduler(app):
    sched = app.extensions["org_cron_scheduler"]
    yield sched
    sched.stop_all()


class TestSettingsService:
    def test_defaults_created_once(self, organization):
        first = svc.get_or_create_settings(organization.id)
        second = svc.get_or_create_settings(organization.id)
        assert first.id == second.id
        assert first.cron_enabled is True
        assert first.cron_schedule == "0 2 * * *"
        assert first.lookahead_days == 7

    def test_update_accepts_camel_case(self, organization):
        settings = svc.update_settings(organization.id, {"cronSchedule": "*/30 * * * *",
                                                         "lookaheadDays": 14})
        assert settings.cron_schedule == "*/30 * * * *"
        assert settings.lookahead_days == 14

    @pytest.mark.parametrize("payload", [
        {"cron_enabled": "yes"},
        {"cron_schedule": "every day"},
        {"lookahead_days": 0},
        {"lookahead_days": "7"},
        {"notify_email_recipients": "ops@example.test"},
    ])
    def test_invalid_values_rejected(self, organization, payload):
        with pytest.raises(ValidationError):
            svc.update_settings(organization.id, payload)

    def test_unknown_keys_ignored(self, organization):
        settings = svc.update_settings(organization.id, {"organization_id": 99, "id": 5})
        assert settings.organization_id == organization.id


class TestSettingsEndpoints:
    def test_get_settings(self, client, headers):
        res = client.get(f"{BASE}/settings", headers=headers)
        assert res.status_code == 200
        assert res.get_json()["cron_schedule"] == "0 2 * * *"

    def test_put_settings_reschedules(self, client, organization, headers, scheduler):
        res = client.put(f"{BASE}/settings", headers=headers,
                         json={"cronSchedule": "*/10 * * * *"})
        assert res.status_code == 200
        body = res.get_json()
        assert body["cron_schedule"] == "*/10 * * * *"
        assert body["scheduled"] is True
        assert scheduler.active_jobs()[organization.id] == 600_000

    def test_put_disable_unschedules(self, client, organization, headers, scheduler):
        client.put(f"{BASE}/settings", headers=headers, json={"cronEnabled": True})
        res = client.put(f"{BASE}/settings", headers=headers, json={"cronEnabled": False})
        assert res.get_json()["scheduled"] is False
        assert organization.id not in scheduler.active_jobs()

    def test_put_invalid_is_400(self, client, headers):
        res = client.put(f"{BASE}/settings", headers=headers, json={"lookaheadDays": -3})
        assert res.status_code == 400
        assert "lookahead_days" in res.get_json()["details"]

    def test_settings_are_per_organization(self, client, headers, other_headers):
        client.put(f"{BASE}/settings", headers=headers, json={"lookaheadDays": 30})
        res = client.get(f"{BASE}/settings", headers=other_headers)
        assert res.get_json()["lookahead_days"] == 7
        assert StrategySettings.query.count() == 2


class TestCronEndpoints:
    def test_trigger_generates_work_items(self, client, organization, headers):
        db.session.add(KeyResultTask(
            organization_id=organization.id, title="Rotate on-call",
            is_recurring=True, frequency="weekly",
            next_due_date=datetime.now(timezone.utc) + timedelta(days=1),
        ))
        db.session.commit()
        res = client.post(f"{BASE}/cron/trigger", headers=headers, json={"lookaheadDays": 3})
        assert res.status_code == 200
        body = res.get_json()
        assert body["created"] == 1
        assert body["items"][0]["title"] == "Rotate on-call (#1)"

    def test_trigger_without_body_uses_default(self, client, headers):
        res = client.post(f"{BASE}/cron/trigger", headers=headers)
        assert res.status_code == 200
        assert res.get_json()["created"] == 0

    def test_trigger_rejects_bad_lookahead(self, client, headers):
        res = client.post(f"{BASE}/cron/trigger", headers=headers, json={"lookaheadDays": "7"})
        assert res.status_code == 400

    def test_status(self, client, headers, scheduler):
        res = client.get(f"{BASE}/cron/status", headers=headers)
        assert res.status_code == 200
        body = res.get_json()
        assert body["scheduled"] is False
        assert body["cronEnabled"] is True
        assert body["lastCronExecution"] is None
