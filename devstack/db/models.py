from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    text as sql_text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from devstack.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Email(Base):
    __tablename__ = "emails"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(512), nullable=False)
    is_primary: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=sql_text("false")
    )
    is_verified: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=sql_text("false")
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class Tool(Base):
    __tablename__ = "tools"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(
        String(32), nullable=False, default="other", server_default=sql_text("'other'")
    )
    website_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    base_cost: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    accounts: Mapped[list[ToolAccount]] = relationship(back_populates="tool")


class ToolAccount(Base):
    """Links a tool to the email account it was registered with."""

    __tablename__ = "tool_accounts"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    tool_id: Mapped[UUID] = mapped_column(ForeignKey("tools.id"), nullable=False)
    email_id: Mapped[UUID] = mapped_column(ForeignKey("emails.id"), nullable=False)
    account_name: Mapped[str | None] = mapped_column(String(256), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    tool: Mapped[Tool] = relationship(back_populates="accounts")
    email: Mapped[Email] = relationship()
    subscriptions: Mapped[list[Subscription]] = relationship(back_populates="tool_account")


class Subscription(Base):
    """A billable relationship with a tool.

    Trial subscriptions are evaluated against ``trial_end_date``; active
    recurring subscriptions against the next occurrence computed from
    ``renewal_date``.
    """

    __tablename__ = "subscriptions"
    __table_args__ = (
        Index("ix_subscriptions_status_trial_end", "status", "trial_end_date"),
        Index("ix_subscriptions_status_renewal", "status", "renewal_date"),
    )

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    tool_account_id: Mapped[UUID] = mapped_column(ForeignKey("tool_accounts.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(
        String(8), nullable=False, default="USD", server_default=sql_text("'USD'")
    )
    billing_cycle: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="active", server_default=sql_text("'active'")
    )
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    renewal_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    trial_end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_auto_renew: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=sql_text("true")
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    tool_account: Mapped[ToolAccount] = relationship(back_populates="subscriptions")

    @property
    def tool_name(self) -> str:
        account = self.tool_account
        if account is not None and account.tool is not None:
            return account.tool.name
        return self.name


class Notification(Base):
    """One scheduled or delivered user-facing alert.

    Rows are created undelivered by the materializer and flipped to
    ``is_sent`` by the dispatcher once the mail transport accepts them.
    The milestone key (``event_date``, ``days_ahead``) is part of the unique
    constraint so each reminder threshold of each event exists at most once.
    """

    __tablename__ = "notifications"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "type",
            "related_id",
            "event_date",
            "days_ahead",
            name="uq_notifications_milestone",
        ),
        Index("ix_notifications_pending", "is_sent", "created_at"),
    )

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=sql_text("false")
    )
    is_sent: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=sql_text("false")
    )
    related_id: Mapped[UUID | None] = mapped_column(nullable=True)
    event_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    days_ahead: Mapped[int | None] = mapped_column(Integer, nullable=True)
    scheduled_for: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )
