"""Tests for devstack/notification/materializer.py."""
from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from unittest.mock import patch
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from devstack.core.constants import NotificationType
from devstack.db.models import Notification
from devstack.notification.jobs import Candidate, NotificationJob
from devstack.notification.materializer import NotificationMaterializer

NOW = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)


def _candidate(tool_name: str = "Cursor", event_date: date = date(2026, 10, 22)) -> Candidate:
    return Candidate(
        subscription_id=uuid4(),
        user_id=uuid4(),
        tool_name=tool_name,
        event_date=event_date,
        cost=Decimal("20.00"),
        currency="USD",
        billing_cycle="monthly",
    )


def _job(*candidates: Candidate, days_ahead: int = 3, type_=NotificationType.TRIAL_EXPIRING) -> NotificationJob:
    return NotificationJob(type=type_, days_ahead=days_ahead, subscriptions=list(candidates))


def _count(db_session) -> int:
    return db_session.execute(select(func.count()).select_from(Notification)).scalar_one()


class TestMaterialize:
    def test_creates_undelivered_row_with_content(self, db_session):
        candidate = _candidate()

        result = NotificationMaterializer(db_session, now=NOW).materialize([_job(candidate)])

        assert (result.processed, result.created, result.failed) == (1, 1, 0)
        row = db_session.execute(select(Notification)).scalar_one()
        assert row.user_id == candidate.user_id
        assert row.related_id == candidate.subscription_id
        assert row.type == "trial_expiring"
        assert row.title == "Cursor trial expires in 3 days"
        assert "22 Oct 2026" in row.message
        assert row.event_date == date(2026, 10, 22)
        assert row.days_ahead == 3
        assert row.is_sent is False
        assert row.is_read is False
        assert row.sent_at is None

    def test_second_run_creates_nothing(self, db_session):
        jobs = [_job(_candidate("Cursor"), _candidate("Linear"))]
        materializer = NotificationMaterializer(db_session, now=NOW)

        first = materializer.materialize(jobs)
        second = materializer.materialize(jobs)

        assert first.created == 2
        assert (second.processed, second.created, second.failed) == (2, 0, 0)
        assert _count(db_session) == 2

    def test_delivered_row_still_blocks_a_duplicate(self, db_session):
        candidate = _candidate()
        materializer = NotificationMaterializer(db_session, now=NOW)
        materializer.materialize([_job(candidate)])

        row = db_session.execute(select(Notification)).scalar_one()
        row.is_sent = True
        db_session.commit()

        assert materializer.materialize([_job(candidate)]).created == 0
        assert _count(db_session) == 1

    def test_each_milestone_is_its_own_row(self, db_session):
        candidate = _candidate(event_date=date(2026, 10, 26))
        materializer = NotificationMaterializer(db_session, now=NOW)

        materializer.materialize([_job(candidate, days_ahead=7)])
        result = materializer.materialize([_job(candidate, days_ahead=3)])

        assert result.created == 1
        assert _count(db_session) == 2

    def test_renewal_content(self, db_session):
        job = _job(_candidate("GitHub"), days_ahead=0, type_=NotificationType.RENEWAL_REMINDER)

        NotificationMaterializer(db_session, now=NOW).materialize([job])

        row = db_session.execute(select(Notification)).scalar_one()
        assert row.type == "renewal_reminder"
        assert row.title == "GitHub renews today"

    def test_storage_error_is_isolated_per_candidate(self, db_session):
        good, bad = _candidate("Cursor"), _candidate("Linear")
        materializer = NotificationMaterializer(db_session, now=NOW)
        real_insert = materializer.notifications.insert_if_absent

        def flaky_insert(**values):
            if values["related_id"] == bad.subscription_id:
                raise OperationalError("INSERT", {}, Exception("disk full"))
            return real_insert(**values)

        with patch.object(materializer.notifications, "insert_if_absent", side_effect=flaky_insert):
            result = materializer.materialize([_job(bad, good)])

        assert (result.processed, result.created, result.failed) == (2, 1, 1)
        assert result.errors[0].startswith("Failed to create notification for Linear:")
        assert _count(db_session) == 1

    def test_empty_job_list(self, db_session):
        result = NotificationMaterializer(db_session, now=NOW).materialize([])
        assert result.as_dict() == {"processed": 0, "sent": 0, "failed": 0, "errors": []}
