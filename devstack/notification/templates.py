"""Notification content rules.

Two families of pure functions:

- :func:`content_for` produces the ``title`` / ``message`` stored on a
  ``notifications`` row when it is materialized.
- :func:`render_content` produces the ``subject`` / ``text`` / ``html`` of
  the email delivered for that row.

Both branch on the notification type and on the day framing
("today" / "tomorrow" / "in N days").  HTML bodies are ``string.Template``
files under ``templates/`` wrapped in a shared ``layout.html``.
"""
from __future__ import annotations

import html
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from string import Template

from devstack.core.constants import DEFAULT_CURRENCY, NotificationType
from devstack.billing.renewal_dates import relative_day_label

_TEMPLATE_DIR = Path(__file__).parent / "templates"


@dataclass(frozen=True)
class NotificationContent:
    title: str
    message: str


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    text: str
    html: str


@dataclass(frozen=True)
class EmailContext:
    """Everything a delivered email may mention."""

    tool_name: str
    days_until_event: int = 0
    event_date: str = ""
    cost: Decimal | float = 0
    currency: str = DEFAULT_CURRENCY
    billing_cycle: str = ""
    title: str = ""
    message: str = ""
    product_name: str = "DevStack Companion"
    dashboard_url: str = "https://vizibl.live/dashboard"


# ---------------------------------------------------------------------------
# Stored title / message
# ---------------------------------------------------------------------------

def content_for(
    notification_type: NotificationType | str,
    tool_name: str,
    date_label: str,
    days_ahead: int,
) -> NotificationContent:
    """Return the title and message stored for a new notification."""
    match NotificationType(notification_type):
        case NotificationType.TRIAL_EXPIRING:
            if days_ahead == 0:
                return NotificationContent(
                    title=f"{tool_name} trial expired",
                    message=f"Your {tool_name} trial expired on {date_label}. You may lose access to the tool.",
                )
            title = (
                f"{tool_name} trial expires tomorrow"
                if days_ahead == 1
                else f"{tool_name} trial expires in {days_ahead} days"
            )
            return NotificationContent(
                title=title,
                message=(
                    f"Your {tool_name} trial expires on {date_label}. "
                    "Consider upgrading to continue using this tool."
                ),
            )
        case NotificationType.RENEWAL_REMINDER:
            if days_ahead == 0:
                return NotificationContent(
                    title=f"{tool_name} renews today",
                    message=f"Your {tool_name} subscription renews today ({date_label}).",
                )
            if days_ahead == 1:
                return NotificationContent(
                    title=f"{tool_name} renews tomorrow",
                    message=f"Your {tool_name} subscription renews on {date_label}. Last chance to make changes.",
                )
            return NotificationContent(
                title=f"{tool_name} renews in {days_ahead} days",
                message=(
                    f"Your {tool_name} subscription renews on {date_label}. "
                    "Review your usage and make changes if needed."
                ),
            )
        case NotificationType.UNUSED_TOOL:
            return NotificationContent(
                title=f"Unused tool detected: {tool_name}",
                message=f"{tool_name} hasn't been used recently. Consider if you still need this subscription.",
            )
        case NotificationType.COST_ALERT:
            return NotificationContent(
                title=f"Cost alert for {tool_name}",
                message=f"There's been a cost change for your {tool_name} subscription.",
            )


# ---------------------------------------------------------------------------
# Delivered email
# ---------------------------------------------------------------------------

@lru_cache(maxsize=None)
def _load_template(name: str) -> Template:
    path = _TEMPLATE_DIR / f"{name}.html"
    return Template(path.read_text(encoding="utf-8"))


def _wrap(content_html: str, context: EmailContext, cta_label: str = "Manage Subscriptions") -> str:
    return _load_template("layout").substitute(
        product_name=html.escape(context.product_name),
        dashboard_url=html.escape(context.dashboard_url, quote=True),
        cta_label=cta_label,
        content=content_html,
    ).strip()


def _footer(context: EmailContext) -> str:
    return (
        f"Manage your subscriptions: {context.dashboard_url}\n\n"
        f"Best regards,\n{context.product_name} Team"
    )


def format_cost(cost: Decimal | float, currency: str) -> str:
    return f"{currency.upper()} {Decimal(str(cost)):.2f}"


def _render_trial(context: EmailContext) -> RenderedEmail:
    is_today = context.days_until_event == 0
    days_text = relative_day_label(context.days_until_event)
    tool = context.tool_name

    subject = f"\U0001F6A8 {tool} trial expired today" if is_today else f"\u23F0 {tool} trial expires {days_text}"
    note = (
        "Your trial has ended and you may lose access to the tool."
        if is_today
        else "Consider upgrading to a paid plan to continue using this tool."
    )
    text = (
        f"Your {tool} trial expires {days_text} ({context.event_date}).\n\n"
        f"{note}\n\n"
        f"{_footer(context)}"
    )
    body = _load_template("trial_expiring").substitute(
        tool_name=html.escape(tool),
        heading="Expired" if is_today else "Expiring Soon",
        panel_background="#fee2e2" if is_today else "#fef3c7",
        panel_border="#fca5a5" if is_today else "#fcd34d",
        panel_color="#dc2626" if is_today else "#d97706",
        note_color="#7c2d12" if is_today else "#92400e",
        status_phrase="has expired" if is_today else f"expires {days_text}",
        event_date=html.escape(context.event_date),
        note=note,
    )
    return RenderedEmail(subject=subject, text=text, html=_wrap(body, context))


def _render_renewal(context: EmailContext) -> RenderedEmail:
    is_today = context.days_until_event == 0
    days_text = relative_day_label(context.days_until_event)
    tool = context.tool_name
    cost_text = format_cost(context.cost, context.currency)

    subject = (
        f"\U0001F4B3 {tool} renews today ({cost_text})"
        if is_today
        else f"\U0001F4C5 {tool} renews {days_text} ({cost_text})"
    )
    note = "Your subscription is renewing today." if is_today else "You have time to make changes if needed."
    text = (
        f"Your {tool} subscription renews {days_text} ({context.event_date}).\n\n"
        "Renewal Details:\n"
        f"- Amount: {cost_text}\n"
        f"- Billing: {context.billing_cycle}\n\n"
        f"{note}\n\n"
        f"{_footer(context)}"
    )
    body = _load_template("renewal_reminder").substitute(
        tool_name=html.escape(tool),
        heading="Renewing Today" if is_today else "Renewal Reminder",
        days_text=days_text,
        event_date=html.escape(context.event_date),
        cost_text=html.escape(cost_text),
        billing_cycle=html.escape(context.billing_cycle),
        note=note,
    )
    return RenderedEmail(subject=subject, text=text, html=_wrap(body, context))


def _render_generic(context: EmailContext) -> RenderedEmail:
    text = f"{context.message}\n\n{_footer(context)}"
    body = _load_template("generic").substitute(
        title=html.escape(context.title),
        message=html.escape(context.message),
    )
    return RenderedEmail(subject=context.title, text=text, html=_wrap(body, context))


def render_content(notification_type: NotificationType | str, context: EmailContext) -> RenderedEmail:
    """Render the email for *notification_type*.

    Raises ``ValueError`` for a type outside :class:`NotificationType`.
    """
    match NotificationType(notification_type):
        case NotificationType.TRIAL_EXPIRING:
            return _render_trial(context)
        case NotificationType.RENEWAL_REMINDER:
            return _render_renewal(context)
        case NotificationType.UNUSED_TOOL | NotificationType.COST_ALERT:
            return _render_generic(context)


def render_test_email(product_name: str, dashboard_url: str) -> RenderedEmail:
    context = EmailContext(tool_name="", product_name=product_name, dashboard_url=dashboard_url)
    return RenderedEmail(
        subject=f"\U0001F9EA {product_name} - Test Email",
        text="This is a test email to verify your notification system is working correctly.",
        html=_wrap(_load_template("test_email").template, context, cta_label="Visit Dashboard"),
    )
