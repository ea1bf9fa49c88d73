"""Template variable builders for automation emails.

Each workflow projects a subject into the flat string variables its email
template expects. Dates are rendered in the studio's timezone.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from studio_automation.core.constants import (
    DEFAULT_APPOINTMENT_TYPE_LABEL,
    DEFAULT_ARTIST_NAME,
    DEFAULT_CUSTOMER_GREETING,
    REQUEST_DESCRIPTION_PREVIEW_CHARS,
)
from studio_automation.services.subject_service import Subject

APPOINTMENT_TYPE_DISPLAY = {
    "consultation": "Consultation",
    "tattoo_session": "Tattoo Session",
    "touch_up": "Touch-up",
}


@dataclass(frozen=True)
class RenderContext:
    timezone: str
    frontend_url: str


def _local(value: datetime | None, tz_name: str) -> datetime | None:
    if value is None:
        return None
    try:
        tz = ZoneInfo(tz_name)
    except Exception:
        tz = ZoneInfo("America/Los_Angeles")
    return value.astimezone(tz)


def describe_time_until(offset: timedelta) -> str:
    """Human phrase for how far ahead a reminder fires: 'tomorrow', 'in 2 hours'."""
    total_minutes = int(abs(offset).total_seconds() // 60)
    if total_minutes == 24 * 60:
        return "tomorrow"
    hours, minutes = divmod(total_minutes, 60)
    if hours and not minutes:
        return f"in {hours} hour{'s' if hours != 1 else ''}"
    if not hours:
        return f"in {minutes} minute{'s' if minutes != 1 else ''}"
    return f"in {hours}h {minutes}m"


def _long_date(value: datetime) -> str:
    return f"{value:%A, %B} {value.day}, {value.year}"


def _appointment_type_label(raw: str | None, fallback: str) -> str:
    if not raw:
        return fallback
    return APPOINTMENT_TYPE_DISPLAY.get(raw, raw)


def build_reminder_variables(
    subject: Subject, offset: timedelta, context: RenderContext
) -> dict[str, str]:
    start_local = _local(subject.details.get("start_time"), context.timezone)
    return {
        "customer_name": subject.customer_name or "",
        "time_until": describe_time_until(offset),
        "appointment_date": _long_date(start_local) if start_local else "",
        "appointment_time": start_local.strftime("%I:%M %p").lstrip("0") if start_local else "",
        "duration": f"{subject.details.get('duration_minutes') or 60} minutes",
        "artist_name": subject.details.get("artist_name") or DEFAULT_ARTIST_NAME,
        "appointment_type": _appointment_type_label(
            subject.details.get("appointment_type"), DEFAULT_APPOINTMENT_TYPE_LABEL
        ),
    }


def build_aftercare_variables(
    subject: Subject, offset: timedelta, context: RenderContext
) -> dict[str, str]:
    return {"customer_name": subject.customer_name or ""}


def build_review_variables(
    subject: Subject, offset: timedelta, context: RenderContext
) -> dict[str, str]:
    return {
        "customer_name": subject.customer_name or "",
        "artist_name": subject.details.get("artist_name") or DEFAULT_ARTIST_NAME.lower(),
        "appointment_type": _appointment_type_label(
            subject.details.get("appointment_type"), DEFAULT_APPOINTMENT_TYPE_LABEL.lower()
        ),
    }


def build_re_engagement_variables(
    subject: Subject, offset: timedelta, context: RenderContext
) -> dict[str, str]:
    return {"customer_name": subject.customer_name or ""}


def build_request_recovery_variables(
    subject: Subject, offset: timedelta, context: RenderContext
) -> dict[str, str]:
    description = subject.details.get("description") or ""
    if len(description) > REQUEST_DESCRIPTION_PREVIEW_CHARS:
        description = description[:REQUEST_DESCRIPTION_PREVIEW_CHARS] + "..."
    token = subject.details.get("tracking_token")
    return {
        "customer_name": subject.customer_name or DEFAULT_CUSTOMER_GREETING,
        "description": description,
        "tracking_url": f"{context.frontend_url.rstrip('/')}/track-request/{token}" if token else "",
    }
