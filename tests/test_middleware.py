"""
Tests: logging, rate limiting, request timing and activity-log helpers.
"""

import json
import logging
from unittest.mock import MagicMock

import pytest

from ispops.middleware.logging_config import JSONFormatter, ReadableFormatter
from ispops.middleware.rate_limiter import init_rate_limits
from ispops.services.activity_log import log_activity, resolve_system_user_id


def _record(**extra):
    record = logging.LogRecord("ispops.test", logging.INFO, __file__, 10,
                               "Explorer count %s", ("work_items",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestFormatters:
    def test_json_formatter_carries_context(self):
        payload = json.loads(JSONFormatter().format(
            _record(organization_id=7, source_table="work_items", duration_ms=12),
        ))
        assert payload["message"] == "Explorer count work_items"
        assert payload["organization_id"] == 7
        assert payload["source_table"] == "work_items"
        assert payload["level"] == "INFO"

    def test_json_formatter_omits_missing_context(self):
        payload = json.loads(JSONFormatter().format(_record()))
        assert "organization_id" not in payload

    def test_readable_formatter(self):
        line = ReadableFormatter().format(_record(organization_id=3, duration_ms=41.7))
        assert "[org=3]" in line
        assert "[42ms]" in line


class TestRateLimits:
    def _app(self, testing):
        app = MagicMock()
        app.config = {"TESTING": testing}
        app.blueprints = {"data_explorer": object(), "strategy": object(), "health": object()}
        return app

    def test_disabled_in_testing(self):
        limiter = MagicMock()
        init_rate_limits(self._app(testing=True), limiter)
        limiter.limit.assert_not_called()

    def test_limits_applied_per_blueprint(self):
        limiter = MagicMock()
        init_rate_limits(self._app(testing=False), limiter)
        limits = [call.args[0] for call in limiter.limit.call_args_list]
        assert limits == ["60/minute", "30/minute"]
        limiter.exempt.assert_called_once()


class TestRequestTiming:
    def test_headers_added(self, client):
        res = client.get("/api/v1/health", headers={"X-Request-ID": "abc123"})
        assert res.headers["X-Request-ID"] == "abc123"
        assert float(res.headers["X-Request-Duration-Ms"]) >= 0


class TestActivityLog:
    def test_unknown_action_type_rejected(self, organization):
        with pytest.raises(ValueError):
            log_activity(organization.id, user_id=None, action_type="teleport",
                         entity_type="work_item", description="x")

    def test_fallback_user_prefers_argument(self, organization, user_factory):
        member = user_factory(organization.id, "member@northwind.test")
        assert resolve_system_user_id(organization.id, fallback=member.id) == member.id

    def test_configured_fallback(self, app, organization, monkeypatch):
        monkeypatch.setitem(app.config, "CRON_FALLBACK_USER_ID", 42)
        assert resolve_system_user_id(organization.id) == 42
