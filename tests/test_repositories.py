"""Tests for devstack/db/repositories.py query helpers."""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from uuid import uuid4

from sqlalchemy import func, select

from devstack.db.models import Notification
from devstack.db.repositories import NotificationRepository, SubscriptionRepository

NOW = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)


def _values(**overrides) -> dict:
    values = dict(
        user_id=uuid4(),
        type="trial_expiring",
        title="Cursor trial expires in 3 days",
        message="Your Cursor trial expires on 22 Oct 2026.",
        related_id=uuid4(),
        event_date=date(2026, 10, 22),
        days_ahead=3,
        is_sent=False,
        created_at=NOW,
    )
    values.update(overrides)
    return values


class TestNotificationRepository:
    def test_insert_if_absent_reports_creation(self, db_session):
        repo = NotificationRepository(db_session)
        values = _values()

        assert repo.insert_if_absent(**values) is True
        assert repo.insert_if_absent(**values) is False
        db_session.commit()

        assert db_session.execute(select(func.count()).select_from(Notification)).scalar_one() == 1

    def test_create_and_get(self, db_session):
        repo = NotificationRepository(db_session)

        created = repo.create(**_values(type="cost_alert", related_id=None, event_date=None, days_ahead=None))
        db_session.commit()

        assert repo.get(created.id).type == "cost_alert"

    def test_pending_is_fifo_and_skips_sent_and_future(self, db_session):
        repo = NotificationRepository(db_session)
        newer = repo.create(**_values(title="newer", created_at=NOW - timedelta(minutes=1)))
        older = repo.create(**_values(title="older", created_at=NOW - timedelta(hours=3)))
        repo.create(**_values(title="sent", is_sent=True))
        repo.create(**_values(title="later", scheduled_for=NOW + timedelta(hours=1)))
        due = repo.create(**_values(title="due", scheduled_for=NOW - timedelta(hours=1), created_at=NOW))
        db_session.commit()

        pending = repo.pending(NOW)

        assert [n.id for n in pending] == [older.id, newer.id, due.id]

    def test_mark_sent_only_flips_once(self, db_session):
        repo = NotificationRepository(db_session)
        row = repo.create(**_values())
        db_session.commit()

        assert repo.mark_sent(row.id, NOW) is True
        assert repo.mark_sent(row.id, NOW) is False
        db_session.commit()

        stored = db_session.get(Notification, row.id)
        assert stored.is_sent is True
        assert stored.sent_at is not None


class TestSubscriptionRepository:
    def test_trials_ending_between_is_half_open(self, db_session, make_subscription):
        start = datetime(2026, 10, 22, tzinfo=timezone.utc)
        inside = make_subscription(trial_end_date=start)
        make_subscription(trial_end_date=start + timedelta(days=1))

        found = SubscriptionRepository(db_session).trials_ending_between(start, start + timedelta(days=1))

        assert [s.id for s in found] == [inside.id]
        assert found[0].tool_name == "Cursor"

    def test_active_recurring_excludes_one_time(self, db_session, make_subscription):
        anchor = datetime(2026, 9, 1, tzinfo=timezone.utc)
        monthly = make_subscription(status="active", renewal_date=anchor)
        make_subscription(status="active", billing_cycle="one-time", renewal_date=anchor)
        make_subscription(status="trial", renewal_date=anchor)

        found = SubscriptionRepository(db_session).active_recurring()

        assert [s.id for s in found] == [monthly.id]

    def test_get_with_tool_falls_back_to_subscription_name(self, db_session, make_subscription):
        sub = make_subscription(tool_name="Linear")
        repo = SubscriptionRepository(db_session)

        loaded = repo.get_with_tool(sub.id)
        assert loaded.tool_name == "Linear"

        loaded.tool_account = None
        assert loaded.tool_name == "Linear Pro"
        db_session.rollback()
