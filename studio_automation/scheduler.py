"""
Automation scheduler - the periodic loop that drives every workflow.

Each tick:
    1. Reads the enabled settings (edits made since the last tick apply now)
    2. For each workflow, asks the window matcher for this tick's candidates
    3. For each candidate (bounded concurrency), applies the business hours
       gate, then hands it to the dispatcher (dedup + send + record)

A failure inside one workflow is logged and recorded on the tick summary;
it never stops the other workflows or the loop itself.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import datetime, timedelta
from enum import Enum

from opentelemetry import trace

from studio_automation.core.clock import Clock, SystemClock
from studio_automation.db.models import AutomationSetting
from studio_automation.schemas.automation import TickSummary, WorkflowTickResult
from studio_automation.services.automation_registry import WorkflowDefinition, WorkflowRegistry
from studio_automation.services.automation_settings_service import AutomationSettingsStore
from studio_automation.services.dispatcher import Dispatcher, DispatchOutcome, OutcomeStatus
from studio_automation.services.subject_service import Subject
from studio_automation.services.window_matcher import WindowMatcher
from studio_automation.utils.business_hours import BusinessHours

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFERRED = "deferred"


class SchedulerState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class AutomationScheduler:
    def __init__(
        self,
        settings_store: AutomationSettingsStore,
        registry: WorkflowRegistry,
        matcher: WindowMatcher,
        dispatcher: Dispatcher,
        *,
        business_hours: BusinessHours | None = None,
        clock: Clock | None = None,
        max_concurrency: int = 5,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.settings_store = settings_store
        self.registry = registry
        self.matcher = matcher
        self.dispatcher = dispatcher
        self.business_hours = business_hours or BusinessHours()
        self.clock = clock or SystemClock()
        self.max_concurrency = max_concurrency
        self._task: asyncio.Task | None = None
        self._tick_lock = asyncio.Lock()
        self.last_summary: TickSummary | None = None

    @property
    def interval(self) -> timedelta:
        return self.matcher.interval

    @property
    def state(self) -> SchedulerState:
        if self._task is not None and not self._task.done():
            return SchedulerState.RUNNING
        return SchedulerState.STOPPED

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """
        Start the periodic loop on the running event loop.

        Calling start() while already running does nothing.

        Raises:
            RuntimeError: if there is no running event loop
        """
        if self.state == SchedulerState.RUNNING:
            logger.info("Automation scheduler already running")
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as exc:
            raise RuntimeError("Automation scheduler requires a running event loop") from exc

        self._task = loop.create_task(self._run_forever(), name="automation-scheduler")
        logger.info(
            "Automation scheduler started (interval=%ss, concurrency=%s)",
            int(self.interval.total_seconds()),
            self.max_concurrency,
        )

    def stop(self) -> None:
        """
        Cancel the periodic loop. A tick in progress is cancelled with it.

        The scheduler reports STOPPED as soon as this returns, so an immediate
        start() launches a fresh loop.
        """
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            logger.info("Automation scheduler stopped")

    async def shutdown(self) -> None:
        """Stop and wait for the loop to finish unwinding."""
        task = self._task
        self.stop()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _run_forever(self) -> None:
        loop = asyncio.get_running_loop()
        interval = self.interval
        anchor = self.clock.now()
        next_run = loop.time()
        slot = 0
        while True:
            # Tick time comes from the schedule, not the wake-up, so windows stay adjacent
            try:
                await self.run_tick(anchor + interval * slot)
            except Exception:
                logger.exception("Automation tick crashed")
            slot += 1
            next_run += interval.total_seconds()
            await asyncio.sleep(max(0.0, next_run - loop.time()))

    # =========================================================================
    # Tick
    # =========================================================================

    async def run_tick(self, now: datetime | None = None) -> TickSummary | None:
        """
        Run one tick. Returns None when another tick is still in progress.
        """
        if self._tick_lock.locked():
            logger.warning("Previous automation tick still running, skipping this one")
            return None

        async with self._tick_lock:
            now = now or self.clock.now()
            summary = TickSummary(started_at=now)
            with tracer.start_as_current_span("automation.tick") as span:
                span.set_attribute("automation.tick.now", now.isoformat())
                for setting in self.settings_store.list_enabled():
                    summary.workflows.append(await self._run_workflow(setting, now))
                span.set_attribute("automation.tick.sent", summary.sent)
                span.set_attribute("automation.tick.failed", summary.failed)

            summary.finished_at = self.clock.now()
            self.last_summary = summary

        if summary.sent or summary.failed:
            logger.info(
                "Automation tick done: sent=%s failed=%s workflows=%s",
                summary.sent,
                summary.failed,
                len(summary.workflows),
            )
        return summary

    async def _run_workflow(self, setting: AutomationSetting, now: datetime) -> WorkflowTickResult:
        result = WorkflowTickResult(workflow_type=setting.workflow_type)
        with tracer.start_as_current_span("automation.workflow") as span:
            span.set_attribute("automation.workflow_type", setting.workflow_type)
            try:
                definition = self.registry.get(setting.workflow_type)
                candidates = self.matcher.find_candidates(definition, setting, now)
                result.candidates = len(candidates)
                if not candidates:
                    return result

                semaphore = asyncio.Semaphore(self.max_concurrency)
                outcomes = await asyncio.gather(
                    *(self._attempt(definition, setting, subject, semaphore) for subject in candidates)
                )
                for outcome in outcomes:
                    _tally(result, outcome)
            except Exception as exc:
                logger.exception("Automation workflow %s failed", setting.workflow_type)
                result.error = str(exc) or type(exc).__name__
                span.record_exception(exc)
            span.set_attribute("automation.candidates", result.candidates)
            span.set_attribute("automation.sent", result.sent)
        return result

    async def _attempt(
        self,
        definition: WorkflowDefinition,
        setting: AutomationSetting,
        subject: Subject,
        semaphore: asyncio.Semaphore,
    ) -> DispatchOutcome | str:
        async with semaphore:
            # Gate at attempt time so a subject matched while closed is retried later in its window
            if setting.business_hours_only and not self.business_hours.is_open(self.clock.now()):
                return DEFERRED
            try:
                return await self.dispatcher.dispatch(definition, setting, subject)
            except Exception as exc:
                logger.exception(
                    "Dispatch crashed for %s subject=%s",
                    definition.workflow_type.value,
                    subject.id,
                )
                return DispatchOutcome(OutcomeStatus.FAILED, str(exc) or type(exc).__name__)


def _tally(result: WorkflowTickResult, outcome: DispatchOutcome | str) -> None:
    if outcome == DEFERRED:
        result.deferred += 1
    elif outcome.status == OutcomeStatus.SENT:
        result.sent += 1
    elif outcome.status == OutcomeStatus.FAILED:
        result.failed += 1
    elif outcome.status == OutcomeStatus.DUPLICATE:
        result.duplicates += 1
    else:
        result.skipped += 1
