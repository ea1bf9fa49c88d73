from datetime import datetime, timedelta, timezone

import pytest

from studio_automation.db.enums import WorkflowType
from studio_automation.db.models import AutomationSetting
from studio_automation.services.automation_registry import build_default_registry
from studio_automation.services.window_matcher import (
    MatchingWindow,
    WindowMatcher,
    matching_window,
    reference_window,
)

NOW = datetime(2026, 6, 16, 19, 0, tzinfo=timezone.utc)
INTERVAL = timedelta(minutes=15)


def test_matching_window_is_half_open_ending_now():
    window = matching_window(NOW, INTERVAL)
    assert window == MatchingWindow(NOW - INTERVAL, NOW)
    assert window.contains(NOW)
    assert not window.contains(NOW - INTERVAL)
    assert window.contains(NOW - INTERVAL + timedelta(microseconds=1))
    assert not window.contains(NOW + timedelta(microseconds=1))


def test_boundary_instant_belongs_to_exactly_one_tick():
    instant = NOW
    ticks = [NOW - INTERVAL, NOW, NOW + INTERVAL]
    hits = [t for t in ticks if matching_window(t, INTERVAL).contains(instant)]
    assert hits == [NOW]


def test_reference_window_subtracts_signed_offset():
    window = matching_window(NOW, INTERVAL)
    before = reference_window(window, -timedelta(hours=24))
    assert before.end == NOW + timedelta(hours=24)
    after = reference_window(window, timedelta(hours=2))
    assert after.end == NOW - timedelta(hours=2)


def _in_window(reference_at, offset, now):
    return reference_window(matching_window(now, INTERVAL), offset).contains(reference_at)


def test_reminder_candidate_only_within_one_interval_of_its_instant():
    start = NOW + timedelta(hours=24)
    offset = -timedelta(hours=24)

    assert _in_window(start, offset, NOW)
    assert _in_window(start, offset, NOW + timedelta(minutes=14))
    assert not _in_window(start, offset, NOW - timedelta(seconds=1))
    assert not _in_window(start, offset, NOW + INTERVAL)


def test_naive_tick_time_treated_as_utc():
    naive_now = datetime(2026, 6, 16, 19, 0)
    assert matching_window(naive_now, INTERVAL) == matching_window(NOW, INTERVAL)


class _RecordingSubjectStore:
    def __init__(self):
        self.calls = []

    def find_candidates(self, definition, start, end):
        self.calls.append((definition.workflow_type, start, end))
        return []


def test_window_matcher_queries_reference_range_for_direction():
    store = _RecordingSubjectStore()
    matcher = WindowMatcher(store, INTERVAL)
    registry = build_default_registry()

    reminder = registry.get(WorkflowType.APPOINTMENT_REMINDER_24H)
    matcher.find_candidates(reminder, AutomationSetting(timing_hours=24, timing_minutes=0), NOW)
    aftercare = registry.get(WorkflowType.AFTERCARE_INSTRUCTIONS)
    matcher.find_candidates(aftercare, AutomationSetting(timing_hours=2, timing_minutes=30), NOW)

    assert store.calls[0] == (
        WorkflowType.APPOINTMENT_REMINDER_24H,
        NOW + timedelta(hours=24) - INTERVAL,
        NOW + timedelta(hours=24),
    )
    assert store.calls[1] == (
        WorkflowType.AFTERCARE_INSTRUCTIONS,
        NOW - timedelta(hours=2, minutes=30) - INTERVAL,
        NOW - timedelta(hours=2, minutes=30),
    )


def test_window_matcher_rejects_non_positive_interval():
    with pytest.raises(ValueError):
        WindowMatcher(_RecordingSubjectStore(), timedelta(0))
