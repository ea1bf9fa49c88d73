"""Service entrypoint: runs the automation scheduler behind a small FastAPI app."""

from __future__ import annotations

import logging
import os

from fastapi import FastAPI

from studio_automation.core.config import settings
from studio_automation.db.session import SessionLocal
from studio_automation.routers import automation
from studio_automation.services.automation_service import build_automation_service

logger = logging.getLogger(__name__)

app = FastAPI(title="Studio Automation", version=settings.VERSION)
app.include_router(automation.router, prefix="/automation", tags=["automation"])


@app.get("/health")
def health() -> dict:
    service = getattr(app.state, "automation_service", None)
    return {
        "status": "ok",
        "scheduler": service.state.value if service else "not_initialized",
    }


@app.on_event("startup")
async def _startup() -> None:
    service = build_automation_service(SessionLocal)
    service.seed_default_settings()
    app.state.automation_service = service
    if settings.AUTOMATION_SCHEDULER_ENABLED:
        service.start()
    else:
        logger.info("Automation scheduler disabled (AUTOMATION_SCHEDULER_ENABLED=false)")


@app.on_event("shutdown")
async def _shutdown() -> None:
    service = getattr(app.state, "automation_service", None)
    if service is not None:
        await service.shutdown()


def main() -> None:
    import uvicorn

    port = int(os.getenv("PORT", "8080"))
    host = os.getenv("HOST", "0.0.0.0")
    uvicorn.run("studio_automation.worker_service:app", host=host, port=port)


if __name__ == "__main__":
    main()
