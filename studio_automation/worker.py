"""
Standalone automation worker.

Usage:
    python -m studio_automation.worker

Seeds missing automation settings, then runs the scheduler until interrupted.
Run exactly one worker per database; the dispatch ledger still refuses a
second `sent` email if two ever overlap.
"""

import asyncio
import logging

from studio_automation.core.config import settings
from studio_automation.core.structured_logging import LOG_DATE_FORMAT, LOG_FORMAT
from studio_automation.db.session import SessionLocal
from studio_automation.services.automation_service import build_automation_service

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format=LOG_FORMAT,
    datefmt=LOG_DATE_FORMAT,
)
logger = logging.getLogger(__name__)


async def worker_loop() -> None:
    service = build_automation_service(SessionLocal)
    service.seed_default_settings()
    service.start()
    logger.info("Automation worker started")
    try:
        await asyncio.Event().wait()
    finally:
        await service.shutdown()
        logger.info("Automation worker stopped")


def main() -> None:
    try:
        asyncio.run(worker_loop())
    except KeyboardInterrupt:
        logger.info("Automation worker interrupted")


if __name__ == "__main__":
    main()
