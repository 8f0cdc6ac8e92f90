"""Outbound mail transports.

A transport exposes a single capability::

    send(to, subject, text, html) -> message id

and raises :class:`MailTransportError` when the message was not accepted.
Callers treat any raised error as "not delivered" and leave the notification
undelivered so the next run retries it; transports never retry themselves.

- :class:`ResendTransport` posts to the Resend HTTP API with ``httpx``.
- :class:`SmtpTransport` hands the message to an SMTP relay via ``smtplib``.

Safety: recipient addresses are never logged.
"""
from __future__ import annotations

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid
from typing import Protocol

import httpx

from devstack.core.settings import Settings, get_settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Custom exceptions
# ---------------------------------------------------------------------------


class MailTransportError(RuntimeError):
    """Raised when a message could not be handed to the mail provider."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MailConfigurationError(MailTransportError):
    """Raised when the transport is missing credentials or a sender."""


class MailTransport(Protocol):
    def send(self, to: str, subject: str, text: str, html: str) -> str: ...


# ---------------------------------------------------------------------------
# ResendTransport
# ---------------------------------------------------------------------------


class ResendTransport:
    """Synchronous client for the Resend ``POST /emails`` endpoint.

    Parameters
    ----------
    api_key:
        Resend API key.  Defaults to ``settings.resend_api_key``.
    from_email:
        Sender address.  Defaults to ``settings.resend_from_email``.
    base_url:
        API base URL.  Defaults to ``settings.resend_api_url``.
    timeout_s:
        Request timeout in seconds.  Defaults to ``settings.mail_timeout_s``.
    """

    def __init__(
        self,
        *,
        api_key: str | None = None,
        from_email: str | None = None,
        base_url: str | None = None,
        timeout_s: float | None = None,
    ) -> None:
        settings = get_settings()
        self.api_key = api_key or settings.resend_api_key
        self.from_email = from_email or settings.resend_from_email
        self.base_url = (base_url or settings.resend_api_url).rstrip("/")
        self.timeout_s = timeout_s if timeout_s is not None else settings.mail_timeout_s

    def send(self, to: str, subject: str, text: str, html: str) -> str:
        """Send one message and return the Resend email id.

        Raises
        ------
        MailConfigurationError
            If the API key or sender address is not configured.
        MailTransportError
            On timeouts, connection failures and non-2xx responses.
        """
        if not self.api_key:
            raise MailConfigurationError("Resend API key not configured")
        if not self.from_email:
            raise MailConfigurationError("From email not configured")

        payload = {
            "from": self.from_email,
            "to": [to],
            "subject": subject,
            "text": text,
            "html": html,
            "tags": [
                {"name": "type", "value": "notification"},
                {"name": "source", "value": "devstack-companion"},
            ],
        }

        try:
            response = httpx.post(
                f"{self.base_url}/emails",
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout_s,
            )
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise MailTransportError(f"Resend request timed out after {self.timeout_s}s") from exc
        except httpx.HTTPStatusError as exc:
            raise MailTransportError(
                _error_detail(exc.response), status_code=exc.response.status_code
            ) from exc
        except httpx.HTTPError as exc:
            raise MailTransportError(f"Resend HTTP error: {exc}") from exc

        # The message is accepted once the status is 2xx; the id is informational.
        try:
            body = response.json()
        except ValueError:
            body = None
        email_id = str(body.get("id", "")) if isinstance(body, dict) else ""
        logger.info("Resend accepted message %s", email_id)
        return email_id


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"HTTP {response.status_code}"


# ---------------------------------------------------------------------------
# SmtpTransport
# ---------------------------------------------------------------------------


class SmtpTransport:
    """Send multipart/alternative messages through an SMTP relay."""

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int = 587,
        from_email: str = "noreply@notifications.local",
        timeout_s: float = 10.0,
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.from_email = from_email
        self.timeout_s = timeout_s

    def send(self, to: str, subject: str, text: str, html: str) -> str:
        message_id = make_msgid()
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.from_email
        msg["To"] = to
        msg["Message-ID"] = message_id
        msg.attach(MIMEText(text, "plain", "utf-8"))
        msg.attach(MIMEText(html, "html", "utf-8"))

        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout_s) as server:
                server.sendmail(self.from_email, [to], msg.as_string())
        except (smtplib.SMTPException, OSError) as exc:
            raise MailTransportError(f"SMTP error: {exc}") from exc

        logger.info("SMTP relay accepted message %s", message_id)
        return message_id


def build_transport(settings: Settings | None = None) -> MailTransport:
    """Return the transport selected by ``MAIL_BACKEND``."""
    settings = settings or get_settings()
    backend = settings.mail_backend.lower()
    if backend == "resend":
        return ResendTransport(
            api_key=settings.resend_api_key,
            from_email=settings.resend_from_email,
            base_url=settings.resend_api_url,
            timeout_s=settings.mail_timeout_s,
        )
    if backend == "smtp":
        return SmtpTransport(
            smtp_host=settings.smtp_host,
            smtp_port=settings.smtp_port,
            from_email=settings.resend_from_email or "noreply@notifications.local",
            timeout_s=settings.mail_timeout_s,
        )
    raise ValueError(f"Unknown MAIL_BACKEND {settings.mail_backend!r}; must be 'resend' or 'smtp'")
