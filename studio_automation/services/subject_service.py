"""Subject service - candidate lookup for automation workflows.

Every entity kind the engine watches (appointment, customer, service request)
is projected into the same `Subject` shape, so the scheduler and dispatcher
never touch ORM rows. Lifecycle, recipient and opt-out filters are applied
in SQL, never after fetch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Mapping
from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session, contains_eager, joinedload, sessionmaker

from studio_automation.core.clock import ensure_utc
from studio_automation.db.enums import SubjectKind
from studio_automation.db.models import Appointment, Customer, ServiceRequest

if TYPE_CHECKING:
    from studio_automation.services.automation_registry import WorkflowDefinition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Subject:
    """Uniform projection of an entity a workflow can fire for."""

    kind: SubjectKind
    id: UUID
    reference_at: datetime | None
    recipient: str | None
    opted_out: bool
    customer_id: UUID | None = None
    customer_name: str | None = None
    details: Mapping[str, Any] = field(default_factory=dict)


# =============================================================================
# Projections
# =============================================================================


def _appointment_end(appointment: Appointment) -> datetime:
    """
    End of the appointment for template variables and manual triggers.

    Falls back to start + duration when `end_time` is unset. Scheduled end-time
    workflows never see such rows: their candidate query requires `end_time`.
    """
    if appointment.end_time is not None:
        return ensure_utc(appointment.end_time)
    return ensure_utc(appointment.start_time) + timedelta(minutes=appointment.duration_minutes or 0)


def project_appointment(appointment: Appointment, reference_field: str) -> Subject:
    customer = appointment.customer
    start = ensure_utc(appointment.start_time)
    end = _appointment_end(appointment)
    reference_at = end if reference_field == "end_time" else start
    return Subject(
        kind=SubjectKind.APPOINTMENT,
        id=appointment.id,
        reference_at=reference_at,
        recipient=customer.email if customer else None,
        opted_out=bool(customer and customer.email_unsubscribed),
        customer_id=appointment.customer_id,
        customer_name=customer.name if customer else None,
        details={
            "start_time": start,
            "end_time": end,
            "duration_minutes": appointment.duration_minutes,
            "appointment_type": appointment.appointment_type,
            "artist_name": appointment.artist.name if appointment.artist else None,
            "status": appointment.status,
        },
    )


def project_customer(customer: Customer, reference_field: str = "last_activity_at") -> Subject:
    return Subject(
        kind=SubjectKind.CUSTOMER,
        id=customer.id,
        reference_at=ensure_utc(customer.last_activity_at) if customer.last_activity_at else None,
        recipient=customer.email,
        opted_out=customer.email_unsubscribed,
        customer_id=customer.id,
        customer_name=customer.name,
    )


def project_request(request: ServiceRequest, reference_field: str = "created_at") -> Subject:
    customer = request.customer
    return Subject(
        kind=SubjectKind.REQUEST,
        id=request.id,
        reference_at=ensure_utc(request.created_at),
        recipient=(customer.email if customer and customer.email else None) or request.contact_email,
        opted_out=bool(customer and customer.email_unsubscribed),
        customer_id=request.customer_id,
        customer_name=(customer.name if customer else None) or request.contact_name,
        details={
            "description": request.description,
            "tracking_token": request.tracking_token,
            "status": request.status,
        },
    )


# =============================================================================
# Candidate queries (reference timestamp in (start, end])
# =============================================================================


def _has_email(column) -> Any:
    return and_(column.is_not(None), column != "")


def find_appointment_candidates(
    db: Session,
    definition: "WorkflowDefinition",
    start: datetime,
    end: datetime,
) -> list[Subject]:
    reference = getattr(Appointment, definition.reference_field)
    stmt = (
        select(Appointment)
        .join(Customer, Appointment.customer_id == Customer.id)
        .options(contains_eager(Appointment.customer), joinedload(Appointment.artist))
        .where(
            reference > start,
            reference <= end,
            _has_email(Customer.email),
            Customer.email_unsubscribed.is_(False),
        )
        .order_by(reference)
    )
    if definition.statuses:
        stmt = stmt.where(Appointment.status.in_(definition.statuses))
    if definition.appointment_types:
        stmt = stmt.where(Appointment.appointment_type.in_(definition.appointment_types))
    rows = db.execute(stmt).unique().scalars().all()
    return [project_appointment(row, definition.reference_field) for row in rows]


def find_customer_candidates(
    db: Session,
    definition: "WorkflowDefinition",
    start: datetime,
    end: datetime,
) -> list[Subject]:
    reference = getattr(Customer, definition.reference_field)
    stmt = (
        select(Customer)
        .where(
            reference > start,
            reference <= end,
            _has_email(Customer.email),
            Customer.email_unsubscribed.is_(False),
        )
        .order_by(reference)
    )
    rows = db.execute(stmt).scalars().all()
    return [project_customer(row, definition.reference_field) for row in rows]


def find_request_candidates(
    db: Session,
    definition: "WorkflowDefinition",
    start: datetime,
    end: datetime,
) -> list[Subject]:
    reference = getattr(ServiceRequest, definition.reference_field)
    recipient = func.coalesce(func.nullif(Customer.email, ""), ServiceRequest.contact_email)
    stmt = (
        select(ServiceRequest)
        .outerjoin(Customer, ServiceRequest.customer_id == Customer.id)
        .options(contains_eager(ServiceRequest.customer))
        .where(
            reference > start,
            reference <= end,
            _has_email(recipient),
            or_(Customer.id.is_(None), Customer.email_unsubscribed.is_(False)),
        )
        .order_by(reference)
    )
    if definition.statuses:
        stmt = stmt.where(ServiceRequest.status.in_(definition.statuses))
    rows = db.execute(stmt).unique().scalars().all()
    return [project_request(row, definition.reference_field) for row in rows]


_FINDERS = {
    SubjectKind.APPOINTMENT: find_appointment_candidates,
    SubjectKind.CUSTOMER: find_customer_candidates,
    SubjectKind.REQUEST: find_request_candidates,
}


def get_subject(
    db: Session,
    kind: SubjectKind,
    subject_id: UUID,
    reference_field: str,
) -> Subject | None:
    """Load a single subject by id, without lifecycle or window filters."""
    if kind == SubjectKind.APPOINTMENT:
        appointment = db.execute(
            select(Appointment)
            .options(joinedload(Appointment.customer), joinedload(Appointment.artist))
            .where(Appointment.id == subject_id)
        ).scalar_one_or_none()
        return project_appointment(appointment, reference_field) if appointment else None
    if kind == SubjectKind.CUSTOMER:
        customer = db.get(Customer, subject_id)
        return project_customer(customer, reference_field) if customer else None
    if kind == SubjectKind.REQUEST:
        request = db.execute(
            select(ServiceRequest)
            .options(joinedload(ServiceRequest.customer))
            .where(ServiceRequest.id == subject_id)
        ).scalar_one_or_none()
        return project_request(request, reference_field) if request else None
    raise ValueError(f"Unsupported subject kind: {kind}")


class SubjectStore:
    """Subject lookups bound to a session factory."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def find_candidates(
        self,
        definition: "WorkflowDefinition",
        start: datetime,
        end: datetime,
    ) -> list[Subject]:
        """Subjects whose reference timestamp lies in (start, end] and qualify for the workflow."""
        finder = _FINDERS[definition.subject_kind]
        with self._session_factory() as db:
            subjects = finder(db, definition, start, end)
        logger.debug(
            "Found %s %s candidates for %s in (%s, %s]",
            len(subjects),
            definition.subject_kind.value,
            definition.workflow_type.value,
            start.isoformat(),
            end.isoformat(),
        )
        return subjects

    def get(self, definition: "WorkflowDefinition", subject_id: UUID) -> Subject | None:
        with self._session_factory() as db:
            return get_subject(db, definition.subject_kind, subject_id, definition.reference_field)
