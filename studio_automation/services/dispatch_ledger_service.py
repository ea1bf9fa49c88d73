"""Dispatch ledger - append-only log of automation email attempts.

The ledger is both the audit trail and the dedup source of truth: a `sent`
row for (workflow type, subject) means the subject must never be notified
for that workflow again. The partial unique index on `sent` rows enforces
this in storage, so concurrent writers cannot both succeed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from studio_automation.core.clock import ensure_utc
from studio_automation.core.structured_logging import build_log_context
from studio_automation.db.enums import DispatchStatus, SubjectKind, TriggerSource, WorkflowType
from studio_automation.db.models import AutomationDispatch
from studio_automation.schemas.automation import DispatchLogFilters

logger = logging.getLogger(__name__)


def has_sent(
    db: Session,
    workflow_type: WorkflowType,
    subject_kind: SubjectKind,
    subject_id: UUID,
) -> bool:
    """Whether a successful dispatch already exists for this workflow and subject."""
    stmt = (
        select(AutomationDispatch.id)
        .where(
            AutomationDispatch.workflow_type == workflow_type.value,
            AutomationDispatch.subject_kind == subject_kind.value,
            AutomationDispatch.subject_id == subject_id,
            AutomationDispatch.status == DispatchStatus.SENT.value,
        )
        .limit(1)
    )
    return db.execute(stmt).first() is not None


def record_dispatch(
    db: Session,
    *,
    workflow_type: WorkflowType,
    subject_kind: SubjectKind,
    subject_id: UUID,
    recipient: str,
    status: DispatchStatus,
    error: str | None = None,
    customer_id: UUID | None = None,
    trigger_source: TriggerSource = TriggerSource.SCHEDULER,
    attempted_at: datetime | None = None,
) -> bool:
    """
    Append a ledger row.

    Returns False when a `sent` row for the same workflow and subject already
    exists (lost race); that attempt is discarded, not treated as an error.
    """
    db.add(
        AutomationDispatch(
            workflow_type=workflow_type.value,
            subject_kind=subject_kind.value,
            subject_id=subject_id,
            customer_id=customer_id,
            recipient=recipient,
            status=status.value,
            error=error,
            trigger_source=trigger_source.value,
            attempted_at=attempted_at or datetime.now(timezone.utc),
        )
    )
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        if status != DispatchStatus.SENT:
            raise
        logger.debug(
            "Discarding duplicate sent record %s",
            build_log_context(
                workflow_type=workflow_type.value,
                subject_kind=subject_kind.value,
                subject_id=str(subject_id),
            ),
        )
        return False
    return True


def list_dispatches(db: Session, filters: DispatchLogFilters) -> list[AutomationDispatch]:
    """Ledger rows matching the filters, newest first."""
    stmt = select(AutomationDispatch)
    if filters.workflow_type:
        stmt = stmt.where(AutomationDispatch.workflow_type == filters.workflow_type.value)
    if filters.status:
        stmt = stmt.where(AutomationDispatch.status == filters.status.value)
    if filters.subject_kind:
        stmt = stmt.where(AutomationDispatch.subject_kind == filters.subject_kind.value)
    if filters.subject_id:
        stmt = stmt.where(AutomationDispatch.subject_id == filters.subject_id)
    if filters.customer_id:
        stmt = stmt.where(AutomationDispatch.customer_id == filters.customer_id)
    if filters.start_date:
        stmt = stmt.where(AutomationDispatch.attempted_at >= ensure_utc(filters.start_date))
    if filters.end_date:
        stmt = stmt.where(AutomationDispatch.attempted_at <= ensure_utc(filters.end_date))
    stmt = stmt.order_by(AutomationDispatch.attempted_at.desc()).limit(filters.limit)
    return list(db.execute(stmt).scalars().all())


class DispatchLedger:
    """Ledger bound to a session factory. Safe to call from concurrent dispatches."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def has_sent(
        self, workflow_type: WorkflowType, subject_kind: SubjectKind, subject_id: UUID
    ) -> bool:
        with self._session_factory() as db:
            return has_sent(db, workflow_type, subject_kind, subject_id)

    def record(
        self,
        workflow_type: WorkflowType,
        subject_kind: SubjectKind,
        subject_id: UUID,
        status: DispatchStatus,
        *,
        recipient: str,
        error: str | None = None,
        customer_id: UUID | None = None,
        trigger_source: TriggerSource = TriggerSource.SCHEDULER,
        attempted_at: datetime | None = None,
    ) -> bool:
        with self._session_factory() as db:
            return record_dispatch(
                db,
                workflow_type=workflow_type,
                subject_kind=subject_kind,
                subject_id=subject_id,
                recipient=recipient,
                status=status,
                error=error,
                customer_id=customer_id,
                trigger_source=trigger_source,
                attempted_at=attempted_at,
            )

    def list_records(self, filters: DispatchLogFilters) -> list[AutomationDispatch]:
        with self._session_factory() as db:
            return list_dispatches(db, filters)
