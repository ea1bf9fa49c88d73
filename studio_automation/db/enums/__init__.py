"""Enum definitions for application constants."""

from studio_automation.db.enums.appointments import AppointmentStatus, AppointmentType
from studio_automation.db.enums.automation import (
    DispatchStatus,
    OffsetDirection,
    SubjectKind,
    TriggerSource,
    WorkflowType,
)
from studio_automation.db.enums.requests import ServiceRequestStatus

__all__ = [
    "AppointmentStatus",
    "AppointmentType",
    "DispatchStatus",
    "OffsetDirection",
    "ServiceRequestStatus",
    "SubjectKind",
    "TriggerSource",
    "WorkflowType",
]
