"""FastAPI dependencies."""

from fastapi import HTTPException, Request

from studio_automation.services.automation_service import AutomationService


def get_automation_service(request: Request) -> AutomationService:
    """
    The automation service owned by the running app.

    Raises:
        HTTPException 503: the host did not start the automation engine
    """
    service = getattr(request.app.state, "automation_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Automation engine not initialized")
    return service
