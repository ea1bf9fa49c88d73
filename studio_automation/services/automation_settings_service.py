"""Automation settings service - per-workflow runtime configuration.

One row per workflow type. Rows are seeded once at startup and only ever
changed through `update_setting`; the scheduler reads them at the start of
every tick, so edits take effect on the next tick.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from studio_automation.db.enums import WorkflowType
from studio_automation.db.models import AutomationSetting
from studio_automation.schemas.automation import (
    AutomationSettingDefaults,
    AutomationSettingUpdate,
)

logger = logging.getLogger(__name__)


def list_settings(db: Session) -> list[AutomationSetting]:
    """All settings rows, ordered by workflow type."""
    stmt = select(AutomationSetting).order_by(AutomationSetting.workflow_type)
    return list(db.execute(stmt).scalars().all())


def list_enabled_settings(db: Session) -> list[AutomationSetting]:
    stmt = (
        select(AutomationSetting)
        .where(AutomationSetting.enabled.is_(True))
        .order_by(AutomationSetting.workflow_type)
    )
    return list(db.execute(stmt).scalars().all())


def get_setting(db: Session, workflow_type: WorkflowType) -> AutomationSetting | None:
    stmt = select(AutomationSetting).where(AutomationSetting.workflow_type == workflow_type.value)
    return db.execute(stmt).scalar_one_or_none()


def upsert_default(
    db: Session,
    workflow_type: WorkflowType,
    defaults: AutomationSettingDefaults,
) -> bool:
    """
    Insert the default row for a workflow type if it does not exist yet.

    Never touches an existing row. Returns True when a row was created.
    """
    if get_setting(db, workflow_type) is not None:
        return False

    db.add(
        AutomationSetting(
            workflow_type=workflow_type.value,
            enabled=defaults.enabled,
            timing_hours=defaults.timing_hours,
            timing_minutes=defaults.timing_minutes,
            business_hours_only=defaults.business_hours_only,
        )
    )
    try:
        db.commit()
    except IntegrityError:
        # Another process seeded the same key between our read and write
        db.rollback()
        logger.debug("Automation setting %s already seeded concurrently", workflow_type.value)
        return False
    logger.info("Seeded default automation setting for %s", workflow_type.value)
    return True


def update_setting(
    db: Session,
    workflow_type: WorkflowType,
    update: AutomationSettingUpdate,
) -> AutomationSetting:
    """
    Apply a validated partial update.

    Raises:
        LookupError: if the workflow type has no settings row (not seeded)
    """
    setting = get_setting(db, workflow_type)
    if setting is None:
        raise LookupError(f"No automation setting for {workflow_type.value}; seed defaults first")

    changes = update.changes()
    for key, value in changes.items():
        setattr(setting, key, value)
    setting.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(setting)

    logger.info(
        "Updated automation setting %s fields=%s",
        workflow_type.value,
        sorted(changes),
    )
    return setting


class AutomationSettingsStore:
    """Settings store bound to a session factory; each call uses its own session."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def list_all(self) -> list[AutomationSetting]:
        with self._session_factory() as db:
            return list_settings(db)

    def list_enabled(self) -> list[AutomationSetting]:
        with self._session_factory() as db:
            return list_enabled_settings(db)

    def get(self, workflow_type: WorkflowType) -> AutomationSetting | None:
        with self._session_factory() as db:
            return get_setting(db, workflow_type)

    def upsert_default(
        self, workflow_type: WorkflowType, defaults: AutomationSettingDefaults
    ) -> bool:
        with self._session_factory() as db:
            return upsert_default(db, workflow_type, defaults)

    def update(
        self, workflow_type: WorkflowType, partial: AutomationSettingUpdate
    ) -> AutomationSetting:
        with self._session_factory() as db:
            return update_setting(db, workflow_type, partial)
