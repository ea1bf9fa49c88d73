"""Automation service - operational surface of the email automation engine.

Owned by the host process (API lifespan, worker, CLI). Wires the stores,
registry, dispatcher and scheduler together and exposes the operations
staff tooling needs: settings, manual triggers, and the dispatch log.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Mapping
from uuid import UUID

from sqlalchemy.orm import sessionmaker

from studio_automation.core.clock import Clock, SystemClock
from studio_automation.core.config import Settings, settings as app_settings
from studio_automation.db.enums import TriggerSource
from studio_automation.db.models import AutomationSetting
from studio_automation.scheduler import AutomationScheduler, SchedulerState
from studio_automation.schemas.automation import (
    AutomationSettingRead,
    AutomationSettingUpdate,
    DispatchLogFilters,
    DispatchRecordRead,
    TickSummary,
    TriggerAutomationResponse,
)
from studio_automation.services.automation_events import AutomationEventSink, LoggingEventSink
from studio_automation.services.automation_registry import (
    SubjectNotFoundError,
    WorkflowDefinition,
    WorkflowRegistry,
    build_default_registry,
)
from studio_automation.services.automation_settings_service import AutomationSettingsStore
from studio_automation.services.automation_variables import RenderContext
from studio_automation.services.dispatch_ledger_service import DispatchLedger
from studio_automation.services.dispatcher import Dispatcher
from studio_automation.services.notifier import Notifier, build_notifier
from studio_automation.services.subject_service import SubjectStore
from studio_automation.services.window_matcher import WindowMatcher
from studio_automation.utils.business_hours import BusinessHours

logger = logging.getLogger(__name__)


class AutomationService:
    def __init__(
        self,
        *,
        registry: WorkflowRegistry,
        settings_store: AutomationSettingsStore,
        subject_store: SubjectStore,
        ledger: DispatchLedger,
        dispatcher: Dispatcher,
        scheduler: AutomationScheduler,
    ):
        self.registry = registry
        self.settings_store = settings_store
        self.subject_store = subject_store
        self.ledger = ledger
        self.dispatcher = dispatcher
        self.scheduler = scheduler

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        self.scheduler.start()

    def stop(self) -> None:
        self.scheduler.stop()

    async def shutdown(self) -> None:
        await self.scheduler.shutdown()

    @property
    def state(self) -> SchedulerState:
        return self.scheduler.state

    async def run_tick(self) -> TickSummary | None:
        return await self.scheduler.run_tick()

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    def seed_default_settings(self) -> list[str]:
        """Create missing settings rows with defaults. Returns the workflow types created."""
        created = [
            definition.workflow_type.value
            for definition in self.registry
            if self.settings_store.upsert_default(definition.workflow_type, definition.defaults())
        ]
        if created:
            logger.info("Seeded automation settings: %s", ", ".join(created))
        return created

    def get_settings(self) -> list[AutomationSettingRead]:
        return [AutomationSettingRead.model_validate(row) for row in self.settings_store.list_all()]

    def update_settings(self, workflow_type: str, partial: Mapping[str, Any]) -> AutomationSettingRead:
        """
        Validate and persist a partial settings update; applies from the next tick.

        Raises:
            UnknownWorkflowTypeError: workflow type not registered
            pydantic.ValidationError: invalid or unknown fields
            LookupError: settings row not seeded yet
        """
        resolved = self.registry.resolve_type(workflow_type)
        update = AutomationSettingUpdate.model_validate(dict(partial))
        row = self.settings_store.update(resolved, update)
        return AutomationSettingRead.model_validate(row)

    def _setting_for(self, definition: WorkflowDefinition) -> AutomationSetting:
        setting = self.settings_store.get(definition.workflow_type)
        if setting is not None:
            return setting
        defaults = definition.defaults()
        return AutomationSetting(
            workflow_type=definition.workflow_type.value,
            enabled=defaults.enabled,
            timing_hours=defaults.timing_hours,
            timing_minutes=defaults.timing_minutes,
            business_hours_only=defaults.business_hours_only,
        )

    # -------------------------------------------------------------------------
    # Manual trigger
    # -------------------------------------------------------------------------

    async def trigger_automation(self, workflow_type: str, subject_id: str | UUID) -> TriggerAutomationResponse:
        """
        Fire one workflow for one subject now, ignoring its window, the
        enabled flag and business hours. Still refuses a second `sent`.

        Raises:
            UnknownWorkflowTypeError: workflow type not registered
            SubjectNotFoundError: malformed id or no such subject
        """
        definition = self.registry.get(workflow_type)
        try:
            parsed_id = subject_id if isinstance(subject_id, UUID) else UUID(str(subject_id))
        except ValueError as exc:
            raise SubjectNotFoundError(f"Invalid subject id: {subject_id}") from exc

        subject = self.subject_store.get(definition, parsed_id)
        if subject is None:
            raise SubjectNotFoundError(
                f"{definition.subject_kind.value.capitalize()} not found: {parsed_id}"
            )

        outcome = await self.dispatcher.dispatch(
            definition,
            self._setting_for(definition),
            subject,
            source=TriggerSource.MANUAL,
        )
        logger.info(
            "Manual trigger %s subject=%s outcome=%s",
            definition.workflow_type.value,
            parsed_id,
            outcome.status.value,
        )
        return TriggerAutomationResponse(success=outcome.success, error=outcome.error)

    # -------------------------------------------------------------------------
    # Dispatch log
    # -------------------------------------------------------------------------

    def get_logs(self, filters: DispatchLogFilters | Mapping[str, Any] | None = None) -> list[DispatchRecordRead]:
        if filters is None:
            filters = DispatchLogFilters()
        elif not isinstance(filters, DispatchLogFilters):
            filters = DispatchLogFilters.model_validate(dict(filters))
        return [DispatchRecordRead.model_validate(row) for row in self.ledger.list_records(filters)]


def build_automation_service(
    session_factory: sessionmaker,
    *,
    config: Settings | None = None,
    notifier: Notifier | None = None,
    events: AutomationEventSink | None = None,
    clock: Clock | None = None,
    registry: WorkflowRegistry | None = None,
) -> AutomationService:
    """Assemble the engine from configuration. Every collaborator can be overridden."""
    config = config or app_settings
    clock = clock or SystemClock()
    registry = registry or build_default_registry()

    settings_store = AutomationSettingsStore(session_factory)
    subject_store = SubjectStore(session_factory)
    ledger = DispatchLedger(session_factory)
    dispatcher = Dispatcher(
        ledger,
        notifier or build_notifier(config.RESEND_API_KEY, config.EMAIL_FROM),
        RenderContext(timezone=config.BUSINESS_TIMEZONE, frontend_url=config.FRONTEND_URL),
        events=events or LoggingEventSink(),
        clock=clock,
        timeout_seconds=config.NOTIFIER_TIMEOUT_SECONDS,
    )
    scheduler = AutomationScheduler(
        settings_store,
        registry,
        WindowMatcher(subject_store, timedelta(seconds=config.AUTOMATION_TICK_INTERVAL_SECONDS)),
        dispatcher,
        business_hours=BusinessHours(
            timezone=config.BUSINESS_TIMEZONE,
            open_hour=config.BUSINESS_HOURS_START,
            close_hour=config.BUSINESS_HOURS_END,
            skip_holidays=config.BUSINESS_HOURS_SKIP_HOLIDAYS,
        ),
        clock=clock,
        max_concurrency=config.AUTOMATION_MAX_CONCURRENCY,
    )
    return AutomationService(
        registry=registry,
        settings_store=settings_store,
        subject_store=subject_store,
        ledger=ledger,
        dispatcher=dispatcher,
        scheduler=scheduler,
    )
