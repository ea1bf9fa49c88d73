import uuid
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError

from studio_automation.db.enums import DispatchStatus, SubjectKind, TriggerSource, WorkflowType
from studio_automation.db.models import AutomationDispatch
from studio_automation.schemas.automation import DispatchLogFilters
from studio_automation.services import dispatch_ledger_service
from studio_automation.services.dispatch_ledger_service import DispatchLedger

REVIEW = WorkflowType.REVIEW_REQUEST
T0 = datetime(2026, 6, 16, 19, 0, tzinfo=timezone.utc)


def _record(ledger, subject_id, status, *, workflow_type=REVIEW, at=T0, **kwargs):
    return ledger.record(
        workflow_type,
        SubjectKind.APPOINTMENT,
        subject_id,
        status,
        recipient="jamie@example.com",
        attempted_at=at,
        **kwargs,
    )


def test_has_sent_only_counts_sent_rows(session_factory):
    ledger = DispatchLedger(session_factory)
    subject_id = uuid.uuid4()

    _record(ledger, subject_id, DispatchStatus.FAILED, error="timeout")
    assert not ledger.has_sent(REVIEW, SubjectKind.APPOINTMENT, subject_id)

    _record(ledger, subject_id, DispatchStatus.SENT)
    assert ledger.has_sent(REVIEW, SubjectKind.APPOINTMENT, subject_id)
    assert not ledger.has_sent(WorkflowType.AFTERCARE_INSTRUCTIONS, SubjectKind.APPOINTMENT, subject_id)


def test_second_sent_row_is_discarded(session_factory):
    ledger = DispatchLedger(session_factory)
    subject_id = uuid.uuid4()

    assert _record(ledger, subject_id, DispatchStatus.SENT) is True
    assert _record(ledger, subject_id, DispatchStatus.SENT, at=T0 + timedelta(minutes=1)) is False

    rows = ledger.list_records(DispatchLogFilters(subject_id=subject_id))
    assert [row.status for row in rows] == ["sent"]


def test_failed_rows_accumulate(session_factory):
    ledger = DispatchLedger(session_factory)
    subject_id = uuid.uuid4()
    for minutes in range(3):
        assert _record(
            ledger, subject_id, DispatchStatus.FAILED, error="boom", at=T0 + timedelta(minutes=minutes)
        )
    assert len(ledger.list_records(DispatchLogFilters(subject_id=subject_id))) == 3


def test_unique_index_violation_surfaces_in_raw_session(db):
    subject_id = uuid.uuid4()

    for _ in range(2):
        db.add(
            AutomationDispatch(
                workflow_type=REVIEW.value,
                subject_kind=SubjectKind.APPOINTMENT.value,
                subject_id=subject_id,
                recipient="jamie@example.com",
                status=DispatchStatus.SENT.value,
            )
        )
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_list_dispatches_filters_and_orders_newest_first(session_factory):
    ledger = DispatchLedger(session_factory)
    customer_id = uuid.uuid4()
    first, second, other = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()

    _record(ledger, first, DispatchStatus.SENT, customer_id=customer_id, at=T0)
    _record(ledger, second, DispatchStatus.FAILED, customer_id=customer_id, error="x", at=T0 + timedelta(hours=1))
    _record(
        ledger,
        other,
        DispatchStatus.SENT,
        workflow_type=WorkflowType.AFTERCARE_INSTRUCTIONS,
        trigger_source=TriggerSource.MANUAL,
        at=T0 + timedelta(hours=2),
    )

    everything = ledger.list_records(DispatchLogFilters())
    assert [row.subject_id for row in everything] == [other, second, first]

    by_customer = ledger.list_records(DispatchLogFilters(customer_id=customer_id))
    assert {row.subject_id for row in by_customer} == {first, second}

    sent_reviews = ledger.list_records(DispatchLogFilters(workflow_type=REVIEW, status=DispatchStatus.SENT))
    assert [row.subject_id for row in sent_reviews] == [first]

    ranged = ledger.list_records(
        DispatchLogFilters(start_date=T0 + timedelta(minutes=30), end_date=T0 + timedelta(hours=1))
    )
    assert [row.subject_id for row in ranged] == [second]

    limited = ledger.list_records(DispatchLogFilters(limit=1))
    assert [row.subject_id for row in limited] == [other]
    assert limited[0].trigger_source == "manual"


def test_log_filters_validate_range_and_limit():
    with pytest.raises(ValidationError):
        DispatchLogFilters(start_date=T0, end_date=T0 - timedelta(days=1))
    with pytest.raises(ValidationError):
        DispatchLogFilters(limit=0)
    with pytest.raises(ValidationError):
        DispatchLogFilters(limit=501)
    assert DispatchLogFilters().limit == 100


def test_record_dispatch_reraises_non_duplicate_integrity_errors(db, monkeypatch):
    def broken_commit():
        raise IntegrityError("INSERT", {}, Exception("constraint"))

    monkeypatch.setattr(db, "commit", broken_commit)
    with pytest.raises(IntegrityError):
        dispatch_ledger_service.record_dispatch(
            db,
            workflow_type=REVIEW,
            subject_kind=SubjectKind.APPOINTMENT,
            subject_id=uuid.uuid4(),
            recipient="jamie@example.com",
            status=DispatchStatus.FAILED,
            error="x",
        )
