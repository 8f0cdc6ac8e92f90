import os
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from devstack.db.base import Base
from devstack.db.models import Email, Subscription, Tool, ToolAccount


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch) -> TestClient:
    monkeypatch.setenv("DATABASE_URL", "sqlite+pysqlite:///:memory:")

    from devstack.core.settings import get_settings
    from devstack.db.session import reset_engine

    get_settings.cache_clear()
    reset_engine()

    from devstack.main import app

    with TestClient(app) as test_client:
        yield test_client

    reset_engine()
    get_settings.cache_clear()
    os.environ.pop("DATABASE_URL", None)


@pytest.fixture()
def db_session():
    """In-memory SQLite session with all tables created."""
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = SessionLocal()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture()
def make_subscription(db_session):
    """Create a user's email, tool, account and subscription in one call.

    Datetimes are stored as UTC.  Pass ``email=None`` for a user without
    any address, or ``user_id`` to add a subscription to an existing user.
    """

    def _make(
        *,
        tool_name: str = "Cursor",
        status: str = "trial",
        billing_cycle: str = "monthly",
        cost: str = "20.00",
        currency: str = "USD",
        trial_end_date: datetime | None = None,
        renewal_date: datetime | None = None,
        email: str | None = "dev@example.com",
        user_id=None,
    ) -> Subscription:
        user_id = user_id or uuid4()
        address = Email(user_id=user_id, email=email or "placeholder@example.com", is_primary=True)
        db_session.add(address)
        db_session.flush()

        tool = Tool(user_id=user_id, name=tool_name)
        db_session.add(tool)
        db_session.flush()

        account = ToolAccount(user_id=user_id, tool_id=tool.id, email_id=address.id)
        db_session.add(account)
        db_session.flush()

        subscription = Subscription(
            user_id=user_id,
            tool_account_id=account.id,
            name=f"{tool_name} Pro",
            cost=Decimal(cost),
            currency=currency,
            billing_cycle=billing_cycle,
            status=status,
            start_date=datetime(2026, 1, 1, tzinfo=timezone.utc),
            trial_end_date=trial_end_date,
            renewal_date=renewal_date,
        )
        db_session.add(subscription)
        db_session.flush()

        if email is None:
            # Tool accounts require an address row; drop it so the user has none.
            db_session.delete(address)
            account.email_id = uuid4()
            db_session.flush()

        db_session.commit()
        return subscription

    return _make
