"""Workflow registry - static definition of every automation workflow.

Binds each workflow type to the entity kind it watches, the timestamp it is
measured from, whether it fires before or after that timestamp, the
lifecycle states that qualify, and how its email variables are built.
None of this is user-configurable; only `AutomationSetting` is.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Iterator, Mapping

from studio_automation.core.constants import DEFAULT_TIMING_HOURS
from studio_automation.db.enums import (
    AppointmentStatus,
    AppointmentType,
    OffsetDirection,
    ServiceRequestStatus,
    SubjectKind,
    WorkflowType,
)
from studio_automation.db.models import AutomationSetting
from studio_automation.schemas.automation import AutomationSettingDefaults
from studio_automation.services import automation_variables
from studio_automation.services.automation_variables import RenderContext
from studio_automation.services.subject_service import Subject

VariableBuilder = Callable[[Subject, timedelta, RenderContext], dict[str, str]]


class UnknownWorkflowTypeError(ValueError):
    """Raised when a caller names a workflow type that is not registered."""


class SubjectNotFoundError(LookupError):
    """Raised when a manual trigger names a subject that does not exist."""


@dataclass(frozen=True)
class WorkflowDefinition:
    workflow_type: WorkflowType
    subject_kind: SubjectKind
    reference_field: str
    direction: OffsetDirection
    build_variables: VariableBuilder
    title: str
    default_timing_hours: int = 0
    statuses: tuple[str, ...] = ()
    appointment_types: tuple[str, ...] = ()

    def offset_for(self, setting: AutomationSetting) -> timedelta:
        """Signed offset from the reference timestamp (negative = before)."""
        return setting.timing_magnitude * self.direction.value

    def defaults(self) -> AutomationSettingDefaults:
        return AutomationSettingDefaults(
            enabled=True,
            timing_hours=self.default_timing_hours,
            business_hours_only=True,
        )


class WorkflowRegistry:
    """Lookup table WorkflowType -> WorkflowDefinition."""

    def __init__(self, definitions: Mapping[WorkflowType, WorkflowDefinition] | None = None):
        self._definitions: dict[WorkflowType, WorkflowDefinition] = dict(definitions or {})

    def register(self, definition: WorkflowDefinition) -> None:
        if definition.workflow_type in self._definitions:
            raise ValueError(f"Workflow already registered: {definition.workflow_type.value}")
        self._definitions[definition.workflow_type] = definition

    def resolve_type(self, raw: str | WorkflowType) -> WorkflowType:
        try:
            workflow_type = WorkflowType(raw)
        except ValueError as exc:
            raise UnknownWorkflowTypeError(f"Unknown workflow type: {raw}") from exc
        if workflow_type not in self._definitions:
            raise UnknownWorkflowTypeError(f"Workflow type not registered: {workflow_type.value}")
        return workflow_type

    def get(self, raw: str | WorkflowType) -> WorkflowDefinition:
        return self._definitions[self.resolve_type(raw)]

    def __contains__(self, raw: object) -> bool:
        try:
            return WorkflowType(raw) in self._definitions
        except ValueError:
            return False

    def __iter__(self) -> Iterator[WorkflowDefinition]:
        return iter(self._definitions.values())

    def __len__(self) -> int:
        return len(self._definitions)


_REMINDER_STATUSES = (AppointmentStatus.SCHEDULED.value, AppointmentStatus.CONFIRMED.value)


def build_default_registry() -> WorkflowRegistry:
    """The studio's six built-in workflows."""
    registry = WorkflowRegistry()
    registry.register(
        WorkflowDefinition(
            workflow_type=WorkflowType.APPOINTMENT_REMINDER_24H,
            subject_kind=SubjectKind.APPOINTMENT,
            reference_field="start_time",
            direction=OffsetDirection.BEFORE,
            build_variables=automation_variables.build_reminder_variables,
            title="Appointment Reminder Sent",
            default_timing_hours=DEFAULT_TIMING_HOURS["appointment_reminder_24h"],
            statuses=_REMINDER_STATUSES,
        )
    )
    registry.register(
        WorkflowDefinition(
            workflow_type=WorkflowType.APPOINTMENT_REMINDER_2H,
            subject_kind=SubjectKind.APPOINTMENT,
            reference_field="start_time",
            direction=OffsetDirection.BEFORE,
            build_variables=automation_variables.build_reminder_variables,
            title="Appointment Reminder Sent",
            default_timing_hours=DEFAULT_TIMING_HOURS["appointment_reminder_2h"],
            statuses=_REMINDER_STATUSES,
        )
    )
    registry.register(
        WorkflowDefinition(
            workflow_type=WorkflowType.AFTERCARE_INSTRUCTIONS,
            subject_kind=SubjectKind.APPOINTMENT,
            reference_field="end_time",
            direction=OffsetDirection.AFTER,
            build_variables=automation_variables.build_aftercare_variables,
            title="Aftercare Instructions Sent",
            default_timing_hours=DEFAULT_TIMING_HOURS["aftercare_instructions"],
            statuses=(AppointmentStatus.COMPLETED.value,),
            appointment_types=(AppointmentType.TATTOO_SESSION.value, AppointmentType.TOUCH_UP.value),
        )
    )
    registry.register(
        WorkflowDefinition(
            workflow_type=WorkflowType.REVIEW_REQUEST,
            subject_kind=SubjectKind.APPOINTMENT,
            reference_field="end_time",
            direction=OffsetDirection.AFTER,
            build_variables=automation_variables.build_review_variables,
            title="Review Request Sent",
            default_timing_hours=DEFAULT_TIMING_HOURS["review_request"],
            statuses=(AppointmentStatus.COMPLETED.value,),
        )
    )
    registry.register(
        WorkflowDefinition(
            workflow_type=WorkflowType.RE_ENGAGEMENT,
            subject_kind=SubjectKind.CUSTOMER,
            reference_field="last_activity_at",
            direction=OffsetDirection.AFTER,
            build_variables=automation_variables.build_re_engagement_variables,
            title="Re-engagement Email Sent",
            default_timing_hours=DEFAULT_TIMING_HOURS["re_engagement"],
        )
    )
    registry.register(
        WorkflowDefinition(
            workflow_type=WorkflowType.ABANDONED_REQUEST_RECOVERY,
            subject_kind=SubjectKind.REQUEST,
            reference_field="created_at",
            direction=OffsetDirection.AFTER,
            build_variables=automation_variables.build_request_recovery_variables,
            title="Abandoned Request Recovery Sent",
            default_timing_hours=DEFAULT_TIMING_HOURS["abandoned_request_recovery"],
            statuses=(ServiceRequestStatus.NEW.value,),
        )
    )
    return registry
