from __future__ import annotations

from datetime import datetime
from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from devstack.core.constants import RECURRING_CYCLES, SubscriptionStatus
from devstack.db import models

ModelT = TypeVar("ModelT")

# Columns of ``uq_notifications_milestone``.
NOTIFICATION_KEY = ("user_id", "type", "related_id", "event_date", "days_ahead")


class BaseRepository(Generic[ModelT]):
    model: type[ModelT]

    def __init__(self, db: Session):
        self.db = db

    def create(self, **kwargs) -> ModelT:
        entity = self.model(**kwargs)
        self.db.add(entity)
        self.db.flush()
        return entity

    def get(self, entity_id: UUID) -> ModelT | None:
        return self.db.get(self.model, entity_id)


class EmailRepository(BaseRepository[models.Email]):
    model = models.Email

    def primary_address(self, user_id: UUID) -> str | None:
        """Return the user's primary address, falling back to any address."""
        stmt = (
            select(models.Email.email)
            .where(models.Email.user_id == user_id)
            .order_by(models.Email.is_primary.desc(), models.Email.created_at, models.Email.id)
            .limit(1)
        )
        return self.db.execute(stmt).scalar_one_or_none()


class SubscriptionRepository(BaseRepository[models.Subscription]):
    model = models.Subscription

    def _with_tool(self):
        return select(models.Subscription).options(
            joinedload(models.Subscription.tool_account).joinedload(models.ToolAccount.tool)
        )

    def get_with_tool(self, subscription_id: UUID) -> models.Subscription | None:
        stmt = self._with_tool().where(models.Subscription.id == subscription_id)
        return self.db.execute(stmt).unique().scalar_one_or_none()

    def trials_ending_between(self, start: datetime, end: datetime) -> list[models.Subscription]:
        """Trial subscriptions whose ``trial_end_date`` is in ``[start, end)``."""
        stmt = self._with_tool().where(
            models.Subscription.status == SubscriptionStatus.TRIAL.value,
            models.Subscription.trial_end_date.is_not(None),
            models.Subscription.trial_end_date >= start,
            models.Subscription.trial_end_date < end,
        )
        return list(self.db.execute(stmt).unique().scalars().all())

    def active_recurring(self) -> list[models.Subscription]:
        """Active subscriptions with a renewal anchor and a recurring cycle."""
        stmt = self._with_tool().where(
            models.Subscription.status == SubscriptionStatus.ACTIVE.value,
            models.Subscription.renewal_date.is_not(None),
            models.Subscription.billing_cycle.in_(sorted(RECURRING_CYCLES)),
        )
        return list(self.db.execute(stmt).unique().scalars().all())


class NotificationRepository(BaseRepository[models.Notification]):
    model = models.Notification

    def insert_if_absent(self, **values) -> bool:
        """Insert a notification unless one with the same milestone key exists.

        Returns ``True`` when a row was created.  Uses ``ON CONFLICT DO
        NOTHING`` where the dialect supports it so concurrent runs cannot
        both insert; other dialects rely on the unique constraint raising.
        """
        dialect = self.db.get_bind().dialect.name
        if dialect in ("postgresql", "sqlite"):
            insert = pg_insert if dialect == "postgresql" else sqlite_insert
            stmt = (
                insert(models.Notification)
                .values(**values)
                .on_conflict_do_nothing(index_elements=list(NOTIFICATION_KEY))
            )
            return self.db.execute(stmt).rowcount == 1

        try:
            with self.db.begin_nested():
                self.db.add(models.Notification(**values))
        except IntegrityError:
            return False
        return True

    def pending(self, now: datetime) -> list[models.Notification]:
        """Undelivered notifications that are due, oldest first."""
        stmt = (
            select(models.Notification)
            .where(
                models.Notification.is_sent.is_(False),
                or_(
                    models.Notification.scheduled_for.is_(None),
                    models.Notification.scheduled_for <= now,
                ),
            )
            .order_by(models.Notification.created_at, models.Notification.id)
        )
        return list(self.db.execute(stmt).scalars().all())

    def mark_sent(self, notification_id: UUID, sent_at: datetime) -> bool:
        stmt = (
            update(models.Notification)
            .where(
                models.Notification.id == notification_id,
                models.Notification.is_sent.is_(False),
            )
            .values(is_sent=True, sent_at=sent_at)
        )
        return self.db.execute(stmt).rowcount == 1
