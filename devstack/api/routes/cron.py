"""Scheduler trigger routes.

GET /cron/notifications runs a full cycle (called by the platform cron).
POST /cron/notifications accepts ``{"action": "test" | "process"}`` for
manual triggers.

When ``CRON_SECRET`` is set every request must carry
``Authorization: Bearer <secret>``.
"""
from __future__ import annotations

import hmac
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from devstack.api.deps import get_db, get_mail_transport
from devstack.core.settings import get_settings
from devstack.notification.orchestrator import run_cycle
from devstack.notification.transport import MailTransport

logger = logging.getLogger(__name__)


def verify_cron_secret(authorization: str | None = Header(default=None)) -> None:
    secret = get_settings().cron_secret
    if not secret:
        return
    if not hmac.compare_digest(authorization or "", f"Bearer {secret}"):
        raise HTTPException(status_code=401, detail="Unauthorized")


router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[Depends(verify_cron_secret)])


class TriggerBody(BaseModel):
    action: str


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/notifications", summary="Run the notification cycle")
def run_notifications(
    db: Session = Depends(get_db),
    transport: MailTransport = Depends(get_mail_transport),
):
    logger.info("Cron notification run started")
    result = run_cycle(db, transport)
    return {"success": True, "timestamp": _timestamp(), **result.as_response()}


@router.post("/notifications", summary="Manually trigger the notification cycle")
def trigger_notifications(
    body: TriggerBody,
    db: Session = Depends(get_db),
    transport: MailTransport = Depends(get_mail_transport),
):
    logger.info("Manual notification trigger: %s", body.action)

    if body.action == "test":
        return {"success": True, "message": "Notification system is ready", "timestamp": _timestamp()}

    if body.action == "process":
        result = run_cycle(db, transport)
        return {"success": True, "timestamp": _timestamp(), "result": result.as_dict()}

    raise HTTPException(status_code=400, detail='Invalid action. Use "test" or "process"')
