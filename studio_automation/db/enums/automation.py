"""Email automation enums."""

from enum import Enum


class WorkflowType(str, Enum):
    """Automation workflows the scheduler knows about. Closed set."""

    APPOINTMENT_REMINDER_24H = "appointment_reminder_24h"
    APPOINTMENT_REMINDER_2H = "appointment_reminder_2h"
    AFTERCARE_INSTRUCTIONS = "aftercare_instructions"
    REVIEW_REQUEST = "review_request"
    RE_ENGAGEMENT = "re_engagement"
    ABANDONED_REQUEST_RECOVERY = "abandoned_request_recovery"


class SubjectKind(str, Enum):
    """Entity kinds a workflow can watch."""

    APPOINTMENT = "appointment"
    CUSTOMER = "customer"
    REQUEST = "request"


class OffsetDirection(int, Enum):
    """Whether a workflow fires before or after its reference timestamp."""

    BEFORE = -1
    AFTER = 1


class DispatchStatus(str, Enum):
    """Outcome of a dispatch attempt, as stored in the ledger."""

    SENT = "sent"
    FAILED = "failed"


class TriggerSource(str, Enum):
    """Who initiated a dispatch attempt."""

    SCHEDULER = "scheduler"
    MANUAL = "manual"
