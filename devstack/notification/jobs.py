"""In-memory units of work passed between the scheduler stages."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID

from devstack.core.constants import NotificationType


@dataclass(frozen=True)
class Candidate:
    """A subscription whose trial end or renewal falls on a milestone day."""

    subscription_id: UUID
    user_id: UUID
    tool_name: str
    event_date: date
    cost: Decimal
    currency: str
    billing_cycle: str


@dataclass
class NotificationJob:
    type: NotificationType
    days_ahead: int
    subscriptions: list[Candidate] = field(default_factory=list)


@dataclass
class BulkResult:
    """Counters for one scheduler phase.

    ``sent`` counts created rows for detection and delivered emails for
    dispatch; ``failed`` is always the number of recorded errors.
    """

    processed: int = 0
    sent: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.errors)

    @property
    def created(self) -> int:
        return self.sent

    @classmethod
    def from_error(cls, message: str) -> BulkResult:
        return cls(errors=[message])

    def as_dict(self) -> dict:
        return {
            "processed": self.processed,
            "sent": self.sent,
            "failed": self.failed,
            "errors": list(self.errors),
        }
