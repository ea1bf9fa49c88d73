"""Pydantic schemas for email automation settings, ledger and manual triggers."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from studio_automation.core.constants import DEFAULT_LOG_LIMIT, MAX_LOG_LIMIT
from studio_automation.db.enums import DispatchStatus, SubjectKind, WorkflowType


class AutomationSettingRead(BaseModel):
    """Automation setting response schema."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    workflow_type: str
    enabled: bool
    timing_hours: int | None
    timing_minutes: int | None
    business_hours_only: bool
    created_at: datetime
    updated_at: datetime


class AutomationSettingUpdate(BaseModel):
    """
    Partial update of an automation setting.

    Unknown keys are rejected so a typo cannot silently become a no-op.
    An explicit null clears a timing component to zero; the flags must stay
    true or false.
    """
    model_config = ConfigDict(extra="forbid")

    enabled: bool | None = None
    timing_hours: int | None = Field(default=None, ge=0)
    timing_minutes: int | None = Field(default=None, ge=0, le=59)
    business_hours_only: bool | None = None

    @field_validator("enabled", "business_hours_only", mode="before")
    @classmethod
    def _reject_null_flag(cls, value):
        if value is None:
            raise ValueError("must be true or false")
        return value

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


class AutomationSettingDefaults(BaseModel):
    """Values used when seeding a missing setting row."""

    enabled: bool = True
    timing_hours: int | None = Field(default=None, ge=0)
    timing_minutes: int | None = Field(default=None, ge=0, le=59)
    business_hours_only: bool = True


class DispatchLogFilters(BaseModel):
    """Filters for browsing the dispatch ledger."""

    workflow_type: WorkflowType | None = None
    status: DispatchStatus | None = None
    subject_kind: SubjectKind | None = None
    subject_id: UUID | None = None
    customer_id: UUID | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    limit: int = Field(default=DEFAULT_LOG_LIMIT, ge=1, le=MAX_LOG_LIMIT)

    @model_validator(mode="after")
    def _check_range(self) -> "DispatchLogFilters":
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


class DispatchRecordRead(BaseModel):
    """Ledger entry response schema."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    workflow_type: str
    subject_kind: str
    subject_id: UUID
    customer_id: UUID | None
    recipient: str
    status: str
    error: str | None
    trigger_source: str
    attempted_at: datetime


class TriggerAutomationRequest(BaseModel):
    """Manually fire one workflow for one subject."""

    workflow_type: str
    subject_id: str


class TriggerAutomationResponse(BaseModel):
    success: bool
    error: str | None = None


class WorkflowTickResult(BaseModel):
    workflow_type: str
    candidates: int = 0
    sent: int = 0
    failed: int = 0
    deferred: int = 0
    duplicates: int = 0
    skipped: int = 0
    error: str | None = None


class TickSummary(BaseModel):
    """Result of one scheduler tick."""

    started_at: datetime
    finished_at: datetime | None = None
    workflows: list[WorkflowTickResult] = Field(default_factory=list)

    @property
    def sent(self) -> int:
        return sum(result.sent for result in self.workflows)

    @property
    def failed(self) -> int:
        return sum(result.failed for result in self.workflows)

    def for_type(self, workflow_type: str) -> WorkflowTickResult | None:
        return next((r for r in self.workflows if r.workflow_type == workflow_type), None)
