"""One scheduler cycle: detect and materialize, then dispatch.

:func:`run_cycle` is the single entry point invoked by the external trigger
(cron hitting ``/cron/notifications``).  The two phases are independent:
a failure while detecting does not prevent dispatching the existing
backlog, and vice versa.  ``run_cycle`` never raises.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from devstack.core.settings import Settings, get_settings
from devstack.notification.dispatcher import NotificationDispatcher
from devstack.notification.jobs import BulkResult
from devstack.notification.materializer import NotificationMaterializer
from devstack.notification.selector import CandidateSelector
from devstack.notification.transport import MailTransport

logger = logging.getLogger(__name__)


@dataclass
class CycleResult:
    detection: BulkResult
    sending: BulkResult

    def as_dict(self) -> dict:
        return {"detection": self.detection.as_dict(), "sending": self.sending.as_dict()}

    def as_response(self) -> dict:
        """Shape reported by the cron endpoint."""
        return {
            "detection": {
                "processed": self.detection.processed,
                "created": self.detection.created,
                "failed": self.detection.failed,
                "errors": list(self.detection.errors),
            },
            "sending": self.sending.as_dict(),
            "summary": {
                "totalNotificationsCreated": self.detection.created,
                "totalEmailsSent": self.sending.sent,
                "totalErrors": self.detection.failed + self.sending.failed,
            },
        }


def detect_and_create(db: Session, *, now: datetime, settings: Settings) -> BulkResult:
    selector = CandidateSelector(db, today=now)
    jobs = selector.collect_jobs(settings.trial_offsets, settings.renewal_offsets)
    if not jobs:
        logger.info("No notifications needed at this time")
        return BulkResult()
    return NotificationMaterializer(db, now=now).materialize(jobs)


def send_pending(
    db: Session, transport: MailTransport, *, now: datetime, settings: Settings
) -> BulkResult:
    return NotificationDispatcher(db, transport, now=now, settings=settings).dispatch_pending()


def run_cycle(
    db: Session,
    transport: MailTransport,
    *,
    now: datetime | None = None,
    settings: Settings | None = None,
) -> CycleResult:
    now = now or datetime.now(timezone.utc)
    settings = settings or get_settings()
    logger.info("Starting notification cycle at %s", now.isoformat())

    try:
        detection = detect_and_create(db, now=now, settings=settings)
    except Exception as exc:
        db.rollback()
        logger.exception("Notification detection failed")
        detection = BulkResult.from_error(str(exc) or type(exc).__name__)

    try:
        sending = send_pending(db, transport, now=now, settings=settings)
    except Exception as exc:
        db.rollback()
        logger.exception("Notification sending failed")
        sending = BulkResult.from_error(str(exc) or type(exc).__name__)

    logger.info(
        "Notification cycle complete: %d notifications created, %d emails sent",
        detection.created,
        sending.sent,
    )
    return CycleResult(detection=detection, sending=sending)
