"""Tests for the scheduler trigger routes.

Covers:
- Bearer authentication against CRON_SECRET
- GET /cron/notifications: full cycle with the summary block
- POST /cron/notifications: "test" / "process" / invalid actions
- POST /debug/email: fixed test email through the transport
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from devstack.api.deps import get_db, get_mail_transport
from devstack.db.models import Notification
from devstack.notification.transport import MailTransportError

SECRET = "cron-s3cret"
AUTH = {"Authorization": f"Bearer {SECRET}"}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def transport() -> MagicMock:
    mock = MagicMock()
    mock.send.return_value = "email_123"
    return mock


@pytest.fixture()
def api(db_session: Session, transport: MagicMock, monkeypatch: pytest.MonkeyPatch) -> TestClient:
    """TestClient with the session and mail transport overridden."""
    monkeypatch.setenv("DATABASE_URL", "sqlite+pysqlite:///:memory:")
    monkeypatch.setenv("CRON_SECRET", SECRET)

    from devstack.core.settings import get_settings

    get_settings.cache_clear()

    from devstack.api.main import app

    def _override_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_db
    app.dependency_overrides[get_mail_transport] = lambda: transport

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    get_settings.cache_clear()


# ===========================================================================
# Authentication
# ===========================================================================

class TestCronAuth:
    def test_missing_header_is_rejected(self, api):
        response = api.get("/cron/notifications")

        assert response.status_code == 401
        assert response.json() == {"detail": "Unauthorized"}

    def test_wrong_secret_is_rejected(self, api, transport):
        response = api.post(
            "/cron/notifications",
            json={"action": "process"},
            headers={"Authorization": "Bearer nope"},
        )

        assert response.status_code == 401
        transport.send.assert_not_called()

    def test_debug_route_is_protected(self, api):
        assert api.post("/debug/email", json={"to": "dev@example.com"}).status_code == 401

    def test_open_when_no_secret_configured(self, api, monkeypatch):
        from devstack.core.settings import get_settings

        monkeypatch.delenv("CRON_SECRET")
        get_settings.cache_clear()

        assert api.get("/cron/notifications").status_code == 200


# ===========================================================================
# GET /cron/notifications
# ===========================================================================

class TestRunNotifications:
    def test_runs_cycle_and_reports_summary(self, api, db_session, make_subscription, transport):
        make_subscription(trial_end_date=datetime.now(timezone.utc) + timedelta(days=3))

        response = api.get("/cron/notifications", headers=AUTH)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert "timestamp" in body
        assert body["detection"]["created"] == 1
        assert body["sending"]["sent"] == 1
        assert body["summary"] == {"totalNotificationsCreated": 1, "totalEmailsSent": 1, "totalErrors": 0}
        transport.send.assert_called_once()

    def test_errors_are_reported_with_success(self, api, make_subscription, transport):
        make_subscription(trial_end_date=datetime.now(timezone.utc) + timedelta(days=3))
        transport.send.side_effect = MailTransportError("provider down")

        body = api.get("/cron/notifications", headers=AUTH).json()

        assert body["success"] is True
        assert body["summary"]["totalErrors"] == 1
        assert body["sending"]["errors"][0].endswith("provider down")


# ===========================================================================
# POST /cron/notifications
# ===========================================================================

class TestTriggerNotifications:
    def test_test_action_does_no_work(self, api, db_session, make_subscription, transport):
        make_subscription(trial_end_date=datetime.now(timezone.utc) + timedelta(days=3))

        response = api.post("/cron/notifications", json={"action": "test"}, headers=AUTH)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Notification system is ready"
        assert db_session.execute(select(Notification)).first() is None
        transport.send.assert_not_called()

    def test_process_action_returns_raw_result(self, api, make_subscription):
        make_subscription(trial_end_date=datetime.now(timezone.utc) + timedelta(days=1))

        body = api.post("/cron/notifications", json={"action": "process"}, headers=AUTH).json()

        assert body["success"] is True
        assert body["result"]["detection"] == {"processed": 1, "sent": 1, "failed": 0, "errors": []}
        assert body["result"]["sending"]["sent"] == 1

    def test_invalid_action(self, api):
        response = api.post("/cron/notifications", json={"action": "explode"}, headers=AUTH)

        assert response.status_code == 400
        assert response.json() == {"detail": 'Invalid action. Use "test" or "process"'}


# ===========================================================================
# POST /debug/email
# ===========================================================================

class TestDebugEmail:
    def test_sends_test_email(self, api, transport):
        response = api.post("/debug/email", json={"to": "dev@example.com"}, headers=AUTH)

        assert response.json() == {"success": True, "emailId": "email_123"}
        to, subject, _text, _html = transport.send.call_args.args
        assert to == "dev@example.com"
        assert subject.endswith("Test Email")

    def test_transport_failure_is_reported(self, api, transport):
        transport.send.side_effect = MailTransportError("Resend API key not configured")

        response = api.post("/debug/email", json={"to": "dev@example.com"}, headers=AUTH)

        assert response.status_code == 200
        assert response.json() == {"success": False, "error": "Resend API key not configured"}
