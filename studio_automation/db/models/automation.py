"""SQLAlchemy ORM models for email automation settings and the dispatch ledger."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta

from sqlalchemy import Boolean, CheckConstraint, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from studio_automation.db.base import Base
from studio_automation.db.models.customers import utcnow


class AutomationSetting(Base):
    """
    Runtime configuration for one workflow type.

    Timing is stored as an unsigned magnitude; the workflow definition decides
    whether it applies before or after the reference timestamp.
    """

    __tablename__ = "automation_settings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    workflow_type: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    enabled: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default=text("true"), nullable=False
    )
    timing_hours: Mapped[int | None] = mapped_column(Integer, nullable=True)
    timing_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    business_hours_only: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default=text("true"), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def timing_magnitude(self) -> timedelta:
        return timedelta(hours=self.timing_hours or 0, minutes=self.timing_minutes or 0)


class AutomationDispatch(Base):
    """
    Append-only ledger of dispatch attempts.

    A `sent` row is the permanent proof that a subject was notified for a
    workflow; the partial unique index makes a second one impossible.
    """

    __tablename__ = "automation_dispatches"
    __table_args__ = (
        Index(
            "uq_automation_dispatch_sent",
            "workflow_type",
            "subject_kind",
            "subject_id",
            unique=True,
            postgresql_where=text("status = 'sent'"),
            sqlite_where=text("status = 'sent'"),
        ),
        Index("idx_automation_dispatch_subject", "workflow_type", "subject_kind", "subject_id"),
        Index("idx_automation_dispatch_customer", "customer_id"),
        Index("idx_automation_dispatch_attempted", "attempted_at"),
        CheckConstraint("status IN ('sent', 'failed')", name="chk_automation_dispatch_status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    workflow_type: Mapped[str] = mapped_column(String(50), nullable=False)
    subject_kind: Mapped[str] = mapped_column(String(20), nullable=False)
    subject_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    customer_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    recipient: Mapped[str] = mapped_column(String(320), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    trigger_source: Mapped[str] = mapped_column(
        String(20), default="scheduler", server_default=text("'scheduler'"), nullable=False
    )
    attempted_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
