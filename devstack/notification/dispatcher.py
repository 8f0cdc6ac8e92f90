"""Deliver undelivered notifications by email.

Pending rows (``is_sent = false`` and due) are processed oldest first.  For
each row the recipient is resolved, the email rendered and handed to the
mail transport; only after the transport accepts it is the row marked
``is_sent`` and committed.  Any failure leaves the row untouched so the next
run retries it.

Safety: recipient addresses are never logged, only notification and user ids.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from devstack.billing.renewal_dates import days_between, format_display_date, to_utc_date, upcoming_occurrence
from devstack.core.constants import NotificationType
from devstack.core.settings import Settings, get_settings
from devstack.db.models import Notification, Subscription
from devstack.db.repositories import EmailRepository, NotificationRepository, SubscriptionRepository
from devstack.notification.jobs import BulkResult
from devstack.notification.templates import EmailContext, RenderedEmail, render_content
from devstack.notification.transport import MailTransport, MailTransportError

logger = logging.getLogger(__name__)

_SUBSCRIPTION_TYPES = frozenset({NotificationType.TRIAL_EXPIRING, NotificationType.RENEWAL_REMINDER})


class UndeliverableError(LookupError):
    """The notification lacks data required for delivery (no address, no subscription)."""


class NotificationDispatcher:
    """Send every due, undelivered notification through *transport*."""

    def __init__(
        self,
        db_session: Session,
        transport: MailTransport,
        now: datetime | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.db = db_session
        self.transport = transport
        self.now = now or datetime.now(timezone.utc)
        self.today = to_utc_date(self.now)
        self.settings = settings or get_settings()
        self.notifications = NotificationRepository(db_session)
        self.emails = EmailRepository(db_session)
        self.subscriptions = SubscriptionRepository(db_session)

    def dispatch_pending(self) -> BulkResult:
        result = BulkResult()

        try:
            pending = self.notifications.pending(self.now)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Error fetching pending notifications")
            result.errors.append(f"Failed to fetch pending notifications: {exc}")
            return result

        for notification in pending:
            notification_id = notification.id
            result.processed += 1
            try:
                self._dispatch_one(notification)
            except UndeliverableError as exc:
                logger.warning("Skipping notification %s: %s", notification_id, exc)
                result.errors.append(str(exc))
                continue
            except (MailTransportError, SQLAlchemyError, ValueError) as exc:
                self.db.rollback()
                logger.warning("Delivery failed for notification %s: %s", notification_id, exc)
                result.errors.append(f"Failed to send email for notification {notification_id}: {exc}")
                continue
            result.sent += 1

        logger.info(
            "Email sending complete: %d processed, %d sent, %d errors",
            result.processed,
            result.sent,
            result.failed,
        )
        return result

    # -- single notification -------------------------------------------------

    def _dispatch_one(self, notification: Notification) -> None:
        address = self.emails.primary_address(notification.user_id)
        if not address:
            raise UndeliverableError(f"No email found for user {notification.user_id}")

        email = self.render(notification)
        try:
            message_id = self.transport.send(address, email.subject, email.text, email.html)
        except MailTransportError:
            raise
        except Exception as exc:
            # Third-party transports may raise anything; it is still a failed send.
            raise MailTransportError(str(exc) or type(exc).__name__) from exc

        if not self.notifications.mark_sent(notification.id, self.now):
            self.db.rollback()
            raise UndeliverableError(
                f"Email sent but failed to mark notification {notification.id} as sent"
            )
        self.db.commit()
        logger.info("Notification %s delivered as message %s", notification.id, message_id)

    def render(self, notification: Notification) -> RenderedEmail:
        """Render the email for *notification*; ``ValueError`` on unknown types."""
        notification_type = NotificationType(notification.type)
        if notification_type not in _SUBSCRIPTION_TYPES:
            return render_content(notification_type, self._context(tool_name="", notification=notification))

        subscription = None
        if notification.related_id is not None:
            subscription = self.subscriptions.get_with_tool(notification.related_id)
        if subscription is None:
            raise UndeliverableError(
                f"Failed to get subscription details for notification {notification.id}"
            )

        event_date = notification.event_date or self._event_date(notification_type, subscription)
        if event_date is not None:
            days_until_event = max(0, days_between(self.today, event_date))
        else:
            days_until_event = notification.days_ahead or 0

        context = self._context(
            tool_name=subscription.tool_name,
            notification=notification,
            days_until_event=days_until_event,
            event_date=format_display_date(event_date),
            cost=subscription.cost,
            currency=subscription.currency,
            billing_cycle=subscription.billing_cycle,
        )
        return render_content(notification_type, context)

    def _event_date(self, notification_type: NotificationType, subscription: Subscription) -> date | None:
        if notification_type == NotificationType.TRIAL_EXPIRING:
            if subscription.trial_end_date is None:
                return None
            return to_utc_date(subscription.trial_end_date)
        if subscription.renewal_date is None:
            return None
        return upcoming_occurrence(subscription.renewal_date, subscription.billing_cycle, today=self.today)

    def _context(self, *, tool_name: str, notification: Notification, **kwargs) -> EmailContext:
        return EmailContext(
            tool_name=tool_name,
            title=notification.title,
            message=notification.message,
            product_name=self.settings.product_name,
            dashboard_url=self.settings.dashboard_url,
            **kwargs,
        )
