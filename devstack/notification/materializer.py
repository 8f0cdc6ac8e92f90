"""Turn notification jobs into ``notifications`` rows, idempotently.

Every candidate is inserted with ``is_sent = false`` unless a row with the
same milestone key ``(user_id, type, related_id, event_date, days_ahead)``
already exists.  The check is the database unique constraint itself, so
overlapping scheduler runs cannot create duplicates.

Each candidate is committed on its own: a storage failure is rolled back,
recorded, and does not affect the other candidates.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from devstack.billing.renewal_dates import format_display_date
from devstack.db.repositories import NotificationRepository
from devstack.notification.jobs import BulkResult, Candidate, NotificationJob
from devstack.notification.templates import content_for

logger = logging.getLogger(__name__)


class NotificationMaterializer:
    """Create one undelivered notification per (candidate, milestone)."""

    def __init__(self, db_session: Session, now: datetime | None = None) -> None:
        self.db = db_session
        self.notifications = NotificationRepository(db_session)
        self.now = now or datetime.now(timezone.utc)

    def materialize(self, jobs: list[NotificationJob]) -> BulkResult:
        result = BulkResult()

        for job in jobs:
            for candidate in job.subscriptions:
                result.processed += 1
                try:
                    created = self._materialize_one(job, candidate)
                except SQLAlchemyError as exc:
                    self.db.rollback()
                    logger.warning(
                        "Failed to create %s notification for subscription %s: %s",
                        job.type.value,
                        candidate.subscription_id,
                        exc,
                    )
                    result.errors.append(
                        f"Failed to create notification for {candidate.tool_name}: {exc}"
                    )
                    continue

                if created:
                    result.sent += 1
                    logger.info(
                        "Created %s notification for subscription %s (%d days)",
                        job.type.value,
                        candidate.subscription_id,
                        job.days_ahead,
                    )

        logger.info(
            "Notification detection complete: %d processed, %d created, %d errors",
            result.processed,
            result.created,
            result.failed,
        )
        return result

    def _materialize_one(self, job: NotificationJob, candidate: Candidate) -> bool:
        content = content_for(
            job.type,
            candidate.tool_name,
            format_display_date(candidate.event_date),
            job.days_ahead,
        )
        created = self.notifications.insert_if_absent(
            user_id=candidate.user_id,
            type=job.type.value,
            title=content.title,
            message=content.message,
            related_id=candidate.subscription_id,
            event_date=candidate.event_date,
            days_ahead=job.days_ahead,
            is_read=False,
            is_sent=False,
            created_at=self.now,
        )
        self.db.commit()
        return created
