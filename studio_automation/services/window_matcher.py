"""Window matching - which subjects a workflow should fire for on this tick.

A subject qualifies when its matching instant (reference timestamp plus the
workflow's signed offset) falls in the tick's matching window
``(now - interval, now]``. Consecutive ticks produce adjacent, non-overlapping
windows, so every instant is covered by exactly one tick.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from studio_automation.core.clock import ensure_utc
from studio_automation.db.models import AutomationSetting
from studio_automation.services.subject_service import Subject, SubjectStore

if TYPE_CHECKING:
    from studio_automation.services.automation_registry import WorkflowDefinition


@dataclass(frozen=True)
class MatchingWindow:
    """Half-open interval (start, end]."""

    start: datetime
    end: datetime

    def contains(self, instant: datetime) -> bool:
        return self.start < instant <= self.end

    def shift(self, delta: timedelta) -> "MatchingWindow":
        return MatchingWindow(self.start + delta, self.end + delta)


def matching_window(now: datetime, interval: timedelta) -> MatchingWindow:
    now = ensure_utc(now)
    return MatchingWindow(now - interval, now)


def reference_window(window: MatchingWindow, offset: timedelta) -> MatchingWindow:
    """Translate a matching window into the range reference timestamps must lie in."""
    return window.shift(-offset)


class WindowMatcher:
    """Computes each workflow's window and asks the subject store for candidates."""

    def __init__(self, subject_store: SubjectStore, interval: timedelta):
        if interval <= timedelta(0):
            raise ValueError("Tick interval must be positive")
        self.subject_store = subject_store
        self.interval = interval

    def window_for(
        self,
        definition: "WorkflowDefinition",
        setting: AutomationSetting,
        now: datetime,
    ) -> MatchingWindow:
        return reference_window(matching_window(now, self.interval), definition.offset_for(setting))

    def find_candidates(
        self,
        definition: "WorkflowDefinition",
        setting: AutomationSetting,
        now: datetime,
    ) -> list[Subject]:
        window = self.window_for(definition, setting, now)
        return self.subject_store.find_candidates(definition, window.start, window.end)
