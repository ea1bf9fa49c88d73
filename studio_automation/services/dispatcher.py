"""Dispatcher - sends one automation email and records the outcome.

The dedup check, the notifier call and the ledger write for a given
(workflow type, subject) run under a per-key asyncio lock, so one process
never notifies the same subject twice. Across processes the ledger's unique
index on `sent` rows has the final word.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, AsyncIterator
from uuid import UUID

import anyio

from studio_automation.core.clock import Clock, SystemClock
from studio_automation.core.structured_logging import build_log_context
from studio_automation.db.enums import DispatchStatus, SubjectKind, TriggerSource, WorkflowType
from studio_automation.db.models import AutomationSetting
from studio_automation.services.automation_events import (
    AutomationEventSink,
    LoggingEventSink,
    dispatch_sent_event,
)
from studio_automation.services.automation_variables import RenderContext
from studio_automation.services.dispatch_ledger_service import DispatchLedger
from studio_automation.services.notifier import Notifier, NotifyResult
from studio_automation.services.subject_service import Subject

if TYPE_CHECKING:
    from studio_automation.services.automation_registry import WorkflowDefinition

logger = logging.getLogger(__name__)

DispatchKey = tuple[WorkflowType, SubjectKind, UUID]


class OutcomeStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"
    DUPLICATE = "duplicate"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class DispatchOutcome:
    status: OutcomeStatus
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status == OutcomeStatus.SENT


class KeyedLocks:
    """asyncio locks keyed by dispatch key, dropped once nobody holds or waits on them."""

    def __init__(self) -> None:
        self._locks: dict[DispatchKey, asyncio.Lock] = {}
        self._users: dict[DispatchKey, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: DispatchKey) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]


class Dispatcher:
    def __init__(
        self,
        ledger: DispatchLedger,
        notifier: Notifier,
        render_context: RenderContext,
        *,
        events: AutomationEventSink | None = None,
        clock: Clock | None = None,
        timeout_seconds: float = 30.0,
    ):
        self.ledger = ledger
        self.notifier = notifier
        self.render_context = render_context
        self.events = events or LoggingEventSink()
        self.clock = clock or SystemClock()
        self.timeout_seconds = timeout_seconds
        self._locks = KeyedLocks()

    async def dispatch(
        self,
        definition: "WorkflowDefinition",
        setting: AutomationSetting,
        subject: Subject,
        *,
        source: TriggerSource = TriggerSource.SCHEDULER,
    ) -> DispatchOutcome:
        """
        Notify `subject` for the workflow unless it was already notified.

        Never raises for notifier failures: they are recorded as `failed` rows.
        Storage errors other than the duplicate-sent violation propagate.
        """
        workflow_type = definition.workflow_type
        log_context = build_log_context(
            workflow_type=workflow_type.value,
            subject_kind=subject.kind.value,
            subject_id=str(subject.id),
            recipient=subject.recipient,
            source=source.value,
        )

        if not subject.recipient:
            return DispatchOutcome(OutcomeStatus.SKIPPED, "Subject has no email address")
        if subject.opted_out:
            return DispatchOutcome(OutcomeStatus.SKIPPED, "Customer unsubscribed from emails")

        async with self._locks.hold((workflow_type, subject.kind, subject.id)):
            if self.ledger.has_sent(workflow_type, subject.kind, subject.id):
                logger.debug("Already sent, skipping %s", log_context)
                return DispatchOutcome(OutcomeStatus.DUPLICATE, "Automation already sent")

            variables = definition.build_variables(
                subject, definition.offset_for(setting), self.render_context
            )
            result = await self._send(workflow_type, subject, variables, log_context)
            attempted_at = self.clock.now()

            if not result.success:
                self.ledger.record(
                    workflow_type,
                    subject.kind,
                    subject.id,
                    DispatchStatus.FAILED,
                    recipient=subject.recipient,
                    error=result.error,
                    customer_id=subject.customer_id,
                    trigger_source=source,
                    attempted_at=attempted_at,
                )
                logger.warning("Automation email failed %s: %s", log_context, result.error)
                return DispatchOutcome(OutcomeStatus.FAILED, result.error)

            recorded = self.ledger.record(
                workflow_type,
                subject.kind,
                subject.id,
                DispatchStatus.SENT,
                recipient=subject.recipient,
                customer_id=subject.customer_id,
                trigger_source=source,
                attempted_at=attempted_at,
            )
            if not recorded:
                return DispatchOutcome(OutcomeStatus.DUPLICATE, "Automation already sent")

        logger.info("Automation email sent %s", log_context)
        event = dispatch_sent_event(
            workflow_type=workflow_type.value,
            subject_kind=subject.kind.value,
            subject_id=subject.id,
            title=definition.title,
            customer_name=subject.customer_name,
            occurred_at=attempted_at,
            recipient=subject.recipient,
            customer_id=subject.customer_id,
        )
        try:
            self.events.publish(event)
        except Exception:
            logger.exception("Failed to publish dispatch event %s", log_context)
        return DispatchOutcome(OutcomeStatus.SENT)

    async def _send(
        self,
        workflow_type: WorkflowType,
        subject: Subject,
        variables: dict[str, str],
        log_context: dict,
    ) -> NotifyResult:
        try:
            with anyio.fail_after(self.timeout_seconds):
                return await self.notifier.send(
                    workflow_type, subject.recipient, variables, subject_id=subject.id
                )
        except TimeoutError:
            return NotifyResult(
                success=False, error=f"Notifier timed out after {self.timeout_seconds:g}s"
            )
        except Exception as exc:
            logger.exception("Notifier raised %s", log_context)
            return NotifyResult(success=False, error=str(exc) or type(exc).__name__)
