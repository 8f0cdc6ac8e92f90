"""Closed vocabularies shared by the storage models and the scheduler.

Values match the ``subscription_status``, ``subscription_type`` and
``notification_type`` enums of the product database.

Billing cycles
--------------
monthly     : renews every month
quarterly   : renews every 3 months
yearly      : renews every 12 months
one-time    : never renews
usage-based : billed on consumption; no calendar renewal
"""
from __future__ import annotations

from enum import Enum


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    TRIAL = "trial"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class BillingCycle(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"
    ONE_TIME = "one-time"
    USAGE_BASED = "usage-based"


class NotificationType(str, Enum):
    RENEWAL_REMINDER = "renewal_reminder"
    TRIAL_EXPIRING = "trial_expiring"
    UNUSED_TOOL = "unused_tool"
    COST_ALERT = "cost_alert"


# Months added per occurrence; cycles absent from this map never recur.
CYCLE_MONTHS: dict[BillingCycle, int] = {
    BillingCycle.MONTHLY: 1,
    BillingCycle.QUARTERLY: 3,
    BillingCycle.YEARLY: 12,
}

RECURRING_CYCLES: frozenset[str] = frozenset(cycle.value for cycle in CYCLE_MONTHS)

DEFAULT_CURRENCY = "USD"
