import uuid
from datetime import datetime, timedelta, timezone

from studio_automation.db.enums import SubjectKind
from studio_automation.services.automation_variables import (
    RenderContext,
    build_reminder_variables,
    build_request_recovery_variables,
    build_review_variables,
    describe_time_until,
)
from studio_automation.services.subject_service import Subject

CONTEXT = RenderContext(timezone="America/Los_Angeles", frontend_url="https://studio.example.com/")


def _appointment_subject(**details) -> Subject:
    return Subject(
        kind=SubjectKind.APPOINTMENT,
        id=uuid.uuid4(),
        reference_at=None,
        recipient="jamie@example.com",
        opted_out=False,
        customer_name="Jamie",
        details=details,
    )


def test_describe_time_until():
    assert describe_time_until(-timedelta(hours=24)) == "tomorrow"
    assert describe_time_until(-timedelta(hours=2)) == "in 2 hours"
    assert describe_time_until(-timedelta(hours=1)) == "in 1 hour"
    assert describe_time_until(-timedelta(minutes=45)) == "in 45 minutes"
    assert describe_time_until(-timedelta(hours=3, minutes=30)) == "in 3h 30m"


def test_reminder_variables_render_in_studio_timezone():
    start = datetime(2026, 6, 17, 21, 30, tzinfo=timezone.utc)  # 2:30 PM PDT
    subject = _appointment_subject(
        start_time=start, duration_minutes=90, appointment_type="touch_up", artist_name="Noor"
    )
    variables = build_reminder_variables(subject, -timedelta(hours=24), CONTEXT)
    assert variables == {
        "customer_name": "Jamie",
        "time_until": "tomorrow",
        "appointment_date": "Wednesday, June 17, 2026",
        "appointment_time": "2:30 PM",
        "duration": "90 minutes",
        "artist_name": "Noor",
        "appointment_type": "Touch-up",
    }


def test_reminder_variables_fall_back_when_details_missing():
    subject = _appointment_subject(start_time=datetime(2026, 6, 17, 16, 0, tzinfo=timezone.utc))
    variables = build_reminder_variables(subject, -timedelta(hours=2), CONTEXT)
    assert variables["artist_name"] == "Our team"
    assert variables["appointment_type"] == "Tattoo Session"
    assert variables["duration"] == "60 minutes"


def test_review_variables_use_lowercase_fallbacks():
    variables = build_review_variables(_appointment_subject(), timedelta(hours=168), CONTEXT)
    assert variables["artist_name"] == "our team"
    assert variables["appointment_type"] == "tattoo session"


def test_request_recovery_truncates_description_and_builds_tracking_url():
    subject = Subject(
        kind=SubjectKind.REQUEST,
        id=uuid.uuid4(),
        reference_at=None,
        recipient="alex@example.com",
        opted_out=False,
        customer_name=None,
        details={"description": "x" * 150, "tracking_token": "abc123"},
    )
    variables = build_request_recovery_variables(subject, timedelta(hours=48), CONTEXT)
    assert variables["customer_name"] == "there"
    assert variables["description"] == "x" * 100 + "..."
    assert variables["tracking_url"] == "https://studio.example.com/track-request/abc123"
