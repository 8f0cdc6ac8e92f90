"""Candidate selection for trial and renewal reminders.

For each offset ``N`` of a schedule, selects the subscriptions whose event
falls on the UTC day ``today + N``, i.e. inside the half-open window
``[target 00:00 UTC, target + 1 day 00:00 UTC)``.

- trial: ``status = trial`` and ``trial_end_date`` inside the window.
- renewal: ``status = active`` recurring subscriptions whose upcoming
  occurrence, computed from the stored ``renewal_date`` anchor, falls on
  the target day.  The stored column is never trusted to have been rolled
  forward.

A storage failure for one (kind, offset) pair is logged and yields an empty
list so the remaining pairs still run.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from devstack.billing.renewal_dates import to_utc_date, upcoming_occurrence, utc_midnight, utc_today
from devstack.core.constants import NotificationType
from devstack.db.models import Subscription
from devstack.db.repositories import SubscriptionRepository
from devstack.notification.jobs import Candidate, NotificationJob

logger = logging.getLogger(__name__)

TRIAL_OFFSETS: tuple[int, ...] = (7, 3, 1, 0)
RENEWAL_OFFSETS: tuple[int, ...] = (30, 7, 1, 0)


class CandidateKind(str, Enum):
    TRIAL = "trial"
    RENEWAL = "renewal"


KIND_NOTIFICATION_TYPE: dict[CandidateKind, NotificationType] = {
    CandidateKind.TRIAL: NotificationType.TRIAL_EXPIRING,
    CandidateKind.RENEWAL: NotificationType.RENEWAL_REMINDER,
}


def _candidate(subscription: Subscription, event_date: date) -> Candidate:
    return Candidate(
        subscription_id=subscription.id,
        user_id=subscription.user_id,
        tool_name=subscription.tool_name,
        event_date=event_date,
        cost=subscription.cost,
        currency=subscription.currency,
        billing_cycle=subscription.billing_cycle,
    )


class CandidateSelector:
    """Find subscriptions crossing a notification threshold on a given day."""

    def __init__(self, db_session: Session, today: date | datetime | None = None) -> None:
        self.db = db_session
        self.subscriptions = SubscriptionRepository(db_session)
        self.today = utc_today(today)
        self._recurring: list[Subscription] | None = None

    def window(self, days_ahead: int) -> tuple[datetime, datetime]:
        """Return the UTC ``[start, end)`` window for *days_ahead*."""
        start = utc_midnight(self.today + timedelta(days=days_ahead))
        return start, start + timedelta(days=1)

    # -- selection ----------------------------------------------------------

    def find_upcoming(self, kind: CandidateKind | str, days_ahead: int) -> list[Candidate]:
        kind = CandidateKind(kind)
        try:
            match kind:
                case CandidateKind.TRIAL:
                    candidates = self._trials(days_ahead)
                case CandidateKind.RENEWAL:
                    candidates = self._renewals(days_ahead)
        except SQLAlchemyError:
            logger.exception("Error fetching %s candidates %d days ahead", kind.value, days_ahead)
            self.db.rollback()
            return []

        logger.debug("Found %d %s candidates %d days ahead", len(candidates), kind.value, days_ahead)
        return candidates

    def _trials(self, days_ahead: int) -> list[Candidate]:
        start, end = self.window(days_ahead)
        return [
            _candidate(sub, to_utc_date(sub.trial_end_date))
            for sub in self.subscriptions.trials_ending_between(start, end)
        ]

    def _renewals(self, days_ahead: int) -> list[Candidate]:
        target = self.today + timedelta(days=days_ahead)
        if self._recurring is None:
            self._recurring = self.subscriptions.active_recurring()

        candidates = []
        for sub in self._recurring:
            occurrence = upcoming_occurrence(sub.renewal_date, sub.billing_cycle, today=self.today)
            if occurrence == target:
                candidates.append(_candidate(sub, occurrence))
        return candidates

    # -- schedule -----------------------------------------------------------

    def collect_jobs(
        self,
        trial_offsets: Iterable[int] = TRIAL_OFFSETS,
        renewal_offsets: Iterable[int] = RENEWAL_OFFSETS,
    ) -> list[NotificationJob]:
        """Run every (kind, offset) pair and return the non-empty jobs."""
        schedule = [(CandidateKind.TRIAL, offset) for offset in trial_offsets]
        schedule += [(CandidateKind.RENEWAL, offset) for offset in renewal_offsets]

        jobs: list[NotificationJob] = []
        for kind, days_ahead in schedule:
            candidates = self.find_upcoming(kind, days_ahead)
            if candidates:
                jobs.append(
                    NotificationJob(
                        type=KIND_NOTIFICATION_TYPE[kind],
                        days_ahead=days_ahead,
                        subscriptions=candidates,
                    )
                )

        logger.info("Found %d notification jobs", len(jobs))
        return jobs
