"""SQLAlchemy ORM models for appointments."""

from __future__ import annotations

from typing import TYPE_CHECKING

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studio_automation.db.base import Base
from studio_automation.db.enums import AppointmentStatus
from studio_automation.db.models.customers import utcnow

if TYPE_CHECKING:
    from studio_automation.db.models import Artist, Customer


class Appointment(Base):
    """
    A booked studio appointment.

    Reminder workflows key off `start_time`; aftercare and review
    workflows key off `end_time` once the appointment is completed.
    """

    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointments_status_start", "status", "start_time"),
        Index("idx_appointments_status_end", "status", "end_time"),
        Index("idx_appointments_customer", "customer_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("customers.id", ondelete="SET NULL"), nullable=True
    )
    artist_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("artists.id", ondelete="SET NULL"), nullable=True
    )

    start_time: Mapped[datetime] = mapped_column(nullable=False)
    end_time: Mapped[datetime | None] = mapped_column(nullable=True)
    duration_minutes: Mapped[int] = mapped_column(Integer, default=60, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=AppointmentStatus.PENDING.value, nullable=False
    )
    appointment_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    customer: Mapped["Customer | None"] = relationship()
    artist: Mapped["Artist | None"] = relationship()
