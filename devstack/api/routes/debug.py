"""POST /debug/email: send the fixed test email through the configured transport."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from devstack.api.deps import get_mail_transport
from devstack.api.routes.cron import verify_cron_secret
from devstack.core.settings import get_settings
from devstack.notification.templates import render_test_email
from devstack.notification.transport import MailTransport, MailTransportError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/debug", tags=["debug"], dependencies=[Depends(verify_cron_secret)])


class TestEmailBody(BaseModel):
    to: str


@router.post("/email", summary="Send a test email")
def send_test_email(body: TestEmailBody, transport: MailTransport = Depends(get_mail_transport)):
    settings = get_settings()
    email = render_test_email(settings.product_name, settings.dashboard_url)
    try:
        email_id = transport.send(body.to, email.subject, email.text, email.html)
    except MailTransportError as exc:
        logger.warning("Test email failed: %s", exc)
        return {"success": False, "error": str(exc)}
    return {"success": True, "emailId": email_id}
