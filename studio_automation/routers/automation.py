"""Automation router - staff endpoints for the email automation engine.

- Per-workflow settings (enable/disable, timing, business hours)
- Dispatch log
- Manual trigger for a single subject
- On-demand tick
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from pydantic import ValidationError

from studio_automation.core.constants import DEFAULT_LOG_LIMIT, MAX_LOG_LIMIT
from studio_automation.core.deps import get_automation_service
from studio_automation.db.enums import DispatchStatus, SubjectKind, WorkflowType
from studio_automation.schemas.automation import (
    AutomationSettingRead,
    DispatchLogFilters,
    DispatchRecordRead,
    TickSummary,
    TriggerAutomationRequest,
    TriggerAutomationResponse,
)
from studio_automation.services.automation_registry import (
    SubjectNotFoundError,
    UnknownWorkflowTypeError,
)
from studio_automation.services.automation_service import AutomationService

router = APIRouter()


def _validation_detail(exc: ValidationError) -> list[dict]:
    return [
        {"loc": list(error["loc"]), "msg": error["msg"], "type": error["type"]}
        for error in exc.errors()
    ]


# =============================================================================
# Settings
# =============================================================================


@router.get("/settings", response_model=list[AutomationSettingRead])
def list_settings(service: AutomationService = Depends(get_automation_service)):
    return service.get_settings()


@router.put("/settings/{workflow_type}", response_model=AutomationSettingRead)
def update_setting(
    workflow_type: str,
    payload: dict[str, Any] = Body(...),
    service: AutomationService = Depends(get_automation_service),
):
    """Partially update one workflow's settings. Applies from the next tick."""
    try:
        return service.update_settings(workflow_type, payload)
    except UnknownWorkflowTypeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=_validation_detail(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


# =============================================================================
# Dispatch log
# =============================================================================


@router.get("/logs", response_model=list[DispatchRecordRead])
def list_logs(
    workflow_type: WorkflowType | None = Query(None),
    status: DispatchStatus | None = Query(None),
    subject_kind: SubjectKind | None = Query(None),
    subject_id: UUID | None = Query(None),
    customer_id: UUID | None = Query(None),
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    limit: int = Query(DEFAULT_LOG_LIMIT, ge=1, le=MAX_LOG_LIMIT),
    service: AutomationService = Depends(get_automation_service),
):
    try:
        filters = DispatchLogFilters(
            workflow_type=workflow_type,
            status=status,
            subject_kind=subject_kind,
            subject_id=subject_id,
            customer_id=customer_id,
            start_date=start_date,
            end_date=end_date,
            limit=limit,
        )
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=_validation_detail(e))
    return service.get_logs(filters)


# =============================================================================
# Manual trigger / on-demand tick
# =============================================================================


@router.post("/trigger", response_model=TriggerAutomationResponse)
async def trigger_automation(
    data: TriggerAutomationRequest,
    service: AutomationService = Depends(get_automation_service),
):
    """Send one workflow's email to one subject now (ignores timing and business hours)."""
    try:
        return await service.trigger_automation(data.workflow_type, data.subject_id)
    except UnknownWorkflowTypeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SubjectNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/run", response_model=TickSummary | None)
async def run_tick(service: AutomationService = Depends(get_automation_service)):
    """Run one scheduler tick now. Returns null when a tick is already in progress."""
    return await service.run_tick()
