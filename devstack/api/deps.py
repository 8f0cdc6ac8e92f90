"""FastAPI dependency injection (database sessions and the mail transport)."""
from __future__ import annotations

from collections.abc import Generator

from sqlalchemy.orm import Session

from devstack.core.settings import get_settings
from devstack.db.session import get_session_factory
from devstack.notification.transport import MailTransport, build_transport


def get_db() -> Generator[Session, None, None]:
    """Yield a SQLAlchemy session; commit on success, rollback on error."""
    db = get_session_factory()()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_mail_transport() -> MailTransport:
    """Return the transport selected by ``MAIL_BACKEND``."""
    return build_transport(get_settings())
