"""SQLAlchemy ORM models for inbound service requests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studio_automation.db.base import Base
from studio_automation.db.enums import ServiceRequestStatus
from studio_automation.db.models.customers import utcnow

if TYPE_CHECKING:
    from studio_automation.db.models import Customer


class ServiceRequest(Base):
    """
    A tattoo request submitted through the public form.

    Anonymous submissions have no customer and carry their own contact email.
    """

    __tablename__ = "service_requests"
    __table_args__ = (Index("idx_service_requests_status_created", "status", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("customers.id", ondelete="SET NULL"), nullable=True
    )
    contact_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    contact_email: Mapped[str | None] = mapped_column(String(320), nullable=True)

    description: Mapped[str] = mapped_column(Text, nullable=False)
    placement: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=ServiceRequestStatus.NEW.value, nullable=False
    )
    tracking_token: Mapped[str | None] = mapped_column(String(64), nullable=True, unique=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    customer: Mapped["Customer | None"] = relationship()
