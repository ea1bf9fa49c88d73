"""Automation events facade.

Successful dispatches are announced to staff (dashboard feed, realtime
notifications). Callers publish through an `AutomationEventSink` so the engine
does not depend on how the host delivers them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from studio_automation.core.structured_logging import mask_email

logger = logging.getLogger(__name__)

DISPATCH_SENT_EVENT = "automation.dispatch_sent"


@dataclass(frozen=True)
class AutomationEvent:
    name: str
    workflow_type: str
    subject_kind: str
    subject_id: UUID
    title: str
    message: str
    occurred_at: datetime
    recipient: str | None = None
    customer_id: UUID | None = None
    data: dict[str, Any] = field(default_factory=dict)


class AutomationEventSink(Protocol):
    def publish(self, event: AutomationEvent) -> None:
        ...


class LoggingEventSink:
    """Default sink: one structured log line per event."""

    def publish(self, event: AutomationEvent) -> None:
        logger.info(
            "%s %s workflow=%s subject=%s/%s recipient=%s",
            event.name,
            event.title,
            event.workflow_type,
            event.subject_kind,
            event.subject_id,
            mask_email(event.recipient),
        )


class InMemoryEventSink:
    """Keeps published events in a list (dashboards, tests)."""

    def __init__(self) -> None:
        self.events: list[AutomationEvent] = []

    def publish(self, event: AutomationEvent) -> None:
        self.events.append(event)


def dispatch_sent_event(
    *,
    workflow_type: str,
    subject_kind: str,
    subject_id: UUID,
    title: str,
    customer_name: str | None,
    occurred_at: datetime,
    recipient: str | None = None,
    customer_id: UUID | None = None,
) -> AutomationEvent:
    return AutomationEvent(
        name=DISPATCH_SENT_EVENT,
        workflow_type=workflow_type,
        subject_kind=subject_kind,
        subject_id=subject_id,
        title=title,
        message=f"Automated email sent to {customer_name or 'customer'}",
        occurred_at=occurred_at,
        recipient=recipient,
        customer_id=customer_id,
    )
