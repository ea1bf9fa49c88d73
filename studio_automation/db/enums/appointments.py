"""Appointment and scheduling enums."""

from enum import Enum


class AppointmentStatus(str, Enum):
    """
    Appointment lifecycle status.

    Flow: pending → scheduled → confirmed → completed
                      ↘ cancelled
                      ↘ no_show
    """

    PENDING = "pending"
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class AppointmentType(str, Enum):
    """Kinds of studio appointments."""

    CONSULTATION = "consultation"
    TATTOO_SESSION = "tattoo_session"
    TOUCH_UP = "touch_up"
