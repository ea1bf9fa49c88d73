"""
Test configuration and fixtures.

Provides:
- Fresh in-memory SQLite database per test (schema from the ORM metadata)
- Fixed clock, recording notifier and in-memory event sink
- A fully wired AutomationService built from those collaborators
- Small factories for customers, appointments and service requests
"""
import os

# Settings are read at import time; keep the suite off real databases and providers
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["RESEND_API_KEY"] = ""
os.environ["AUTOMATION_SCHEDULER_ENABLED"] = "false"

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Generator, Mapping

import pytest
from sqlalchemy.orm import Session

from studio_automation.core.config import Settings
from studio_automation.db.base import Base
from studio_automation.db.enums import AppointmentStatus, AppointmentType, WorkflowType
from studio_automation.db.models import Appointment, Artist, Customer, ServiceRequest
from studio_automation.db.session import build_engine, build_session_factory
from studio_automation.services.automation_events import InMemoryEventSink
from studio_automation.services.automation_service import build_automation_service
from studio_automation.services.notifier import NotifyResult


# A Tuesday; 12:00 in Los Angeles (PDT, UTC-7), inside business hours
NOON_LA = datetime(2026, 6, 16, 19, 0, tzinfo=timezone.utc)


# =============================================================================
# Test doubles
# =============================================================================


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def set(self, now: datetime) -> None:
        self.current = now

    def advance(self, delta: timedelta) -> datetime:
        self.current = self.current + delta
        return self.current


@dataclass
class SentCall:
    workflow_type: WorkflowType
    recipient: str
    variables: Mapping[str, str]
    subject_id: uuid.UUID | None


@dataclass
class RecordingNotifier:
    """Records every send; returns queued results, then `default`."""

    default: NotifyResult = field(default_factory=lambda: NotifyResult(success=True))
    results: list = field(default_factory=list)
    delay: float = 0.0
    calls: list[SentCall] = field(default_factory=list)

    async def send(self, workflow_type, recipient, variables, *, subject_id=None) -> NotifyResult:
        self.calls.append(SentCall(workflow_type, recipient, dict(variables), subject_id))
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.results.pop(0) if self.results else self.default
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def fail_next(self, error: str = "Provider rejected the message") -> None:
        self.results.append(NotifyResult(success=False, error=error))


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# =============================================================================
# Engine collaborators
# =============================================================================


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOON_LA)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def events() -> InMemoryEventSink:
    return InMemoryEventSink()


@pytest.fixture
def config() -> Settings:
    return Settings(
        DATABASE_URL="sqlite://",
        AUTOMATION_TICK_INTERVAL_SECONDS=900,
        AUTOMATION_MAX_CONCURRENCY=5,
        NOTIFIER_TIMEOUT_SECONDS=1.0,
        BUSINESS_TIMEZONE="America/Los_Angeles",
        BUSINESS_HOURS_START=9,
        BUSINESS_HOURS_END=20,
        RESEND_API_KEY="",
        FRONTEND_URL="https://studio.example.com",
    )


@pytest.fixture
def service(session_factory, config, notifier, events, clock):
    service = build_automation_service(
        session_factory,
        config=config,
        notifier=notifier,
        events=events,
        clock=clock,
    )
    service.seed_default_settings()
    return service


# =============================================================================
# Entity factories
# =============================================================================


@pytest.fixture
def make_customer(db):
    def _make(
        name: str = "Jamie Rivera",
        email: str | None = "jamie@example.com",
        email_unsubscribed: bool = False,
        last_activity_at: datetime | None = None,
    ) -> Customer:
        customer = Customer(
            name=name,
            email=email,
            email_unsubscribed=email_unsubscribed,
            last_activity_at=last_activity_at,
        )
        db.add(customer)
        db.commit()
        return customer

    return _make


@pytest.fixture
def make_artist(db):
    def _make(name: str = "Sasha") -> Artist:
        artist = Artist(name=name)
        db.add(artist)
        db.commit()
        return artist

    return _make


@pytest.fixture
def make_appointment(db, make_customer):
    def _make(
        start_time: datetime,
        *,
        customer: Customer | None = None,
        artist: Artist | None = None,
        status: str = AppointmentStatus.CONFIRMED.value,
        appointment_type: str = AppointmentType.TATTOO_SESSION.value,
        duration_minutes: int = 120,
        end_time: datetime | None = None,
    ) -> Appointment:
        customer = customer or make_customer()
        appointment = Appointment(
            customer_id=customer.id,
            artist_id=artist.id if artist else None,
            start_time=start_time,
            end_time=end_time or start_time + timedelta(minutes=duration_minutes),
            duration_minutes=duration_minutes,
            status=status,
            appointment_type=appointment_type,
        )
        db.add(appointment)
        db.commit()
        return appointment

    return _make


@pytest.fixture
def make_request(db):
    def _make(
        created_at: datetime,
        *,
        customer: Customer | None = None,
        contact_name: str | None = "Alex",
        contact_email: str | None = "alex@example.com",
        description: str = "Fine-line botanical piece on the forearm",
        status: str = "new",
        tracking_token: str | None = None,
    ) -> ServiceRequest:
        request = ServiceRequest(
            customer_id=customer.id if customer else None,
            contact_name=contact_name,
            contact_email=contact_email,
            description=description,
            status=status,
            tracking_token=tracking_token or uuid.uuid4().hex,
            created_at=created_at,
        )
        db.add(request)
        db.commit()
        return request

    return _make
