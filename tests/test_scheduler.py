import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from conftest import NOON_LA, RecordingNotifier
from studio_automation.db.enums import DispatchStatus, SubjectKind, WorkflowType
from studio_automation.scheduler import AutomationScheduler, SchedulerState
from studio_automation.schemas.automation import DispatchLogFilters

REMINDER_24H = WorkflowType.APPOINTMENT_REMINDER_24H.value


def _records(service, **filters):
    return service.get_logs(DispatchLogFilters(**filters))


# =============================================================================
# Scenarios
# =============================================================================


@pytest.mark.asyncio
async def test_reminder_sent_when_instant_falls_in_window(service, notifier, make_appointment):
    appt = make_appointment(NOON_LA + timedelta(hours=24))

    summary = await service.run_tick()

    reminder = summary.for_type(REMINDER_24H)
    assert reminder.candidates == 1
    assert reminder.sent == 1
    [record] = _records(service, subject_id=appt.id)
    assert record.status == DispatchStatus.SENT.value
    assert record.workflow_type == REMINDER_24H
    assert record.recipient == "jamie@example.com"
    assert [call.variables["time_until"] for call in notifier.calls] == ["tomorrow"]


@pytest.mark.asyncio
async def test_existing_sent_record_prevents_notification(service, notifier, make_appointment):
    appt = make_appointment(NOON_LA + timedelta(hours=24))
    service.ledger.record(
        WorkflowType.APPOINTMENT_REMINDER_24H,
        SubjectKind.APPOINTMENT,
        appt.id,
        DispatchStatus.SENT,
        recipient="jamie@example.com",
    )

    summary = await service.run_tick()

    assert summary.for_type(REMINDER_24H).duplicates == 1
    assert notifier.calls == []
    assert len(_records(service, subject_id=appt.id)) == 1


@pytest.mark.asyncio
async def test_opted_out_customer_gets_nothing(service, notifier, make_customer, make_appointment):
    customer = make_customer(email_unsubscribed=True)
    appt = make_appointment(NOON_LA + timedelta(hours=24), customer=customer)

    summary = await service.run_tick()

    assert summary.for_type(REMINDER_24H).candidates == 0
    assert notifier.calls == []
    assert _records(service, subject_id=appt.id) == []


@pytest.mark.asyncio
async def test_outside_business_hours_defers_until_open(service, clock, notifier, make_appointment):
    # Instant at 08:55 local; first tick at 08:56 (closed), second at 09:05 (open)
    instant = datetime(2026, 6, 16, 15, 55, tzinfo=timezone.utc)
    appt = make_appointment(instant + timedelta(hours=24))

    clock.set(instant + timedelta(minutes=1))
    closed = await service.run_tick()
    assert closed.for_type(REMINDER_24H).deferred == 1
    assert notifier.calls == []
    assert _records(service, subject_id=appt.id) == []

    clock.set(instant + timedelta(minutes=10))
    opened = await service.run_tick()
    assert opened.for_type(REMINDER_24H).sent == 1
    assert [r.status for r in _records(service, subject_id=appt.id)] == ["sent"]


@pytest.mark.asyncio
async def test_business_hours_ignored_when_setting_allows(service, clock, notifier, make_appointment):
    service.update_settings(REMINDER_24H, {"business_hours_only": False})
    night = datetime(2026, 6, 16, 10, 0, tzinfo=timezone.utc)  # 03:00 local
    make_appointment(night + timedelta(hours=24))
    clock.set(night)

    summary = await service.run_tick()

    assert summary.for_type(REMINDER_24H).sent == 1


@pytest.mark.asyncio
async def test_failed_send_is_retried_while_still_in_window(service, clock, notifier, make_appointment):
    appt = make_appointment(NOON_LA + timedelta(hours=24))
    notifier.fail_next("Rate limited")

    first = await service.run_tick()
    assert first.for_type(REMINDER_24H).failed == 1

    clock.advance(timedelta(minutes=5))
    second = await service.run_tick()
    assert second.for_type(REMINDER_24H).sent == 1

    statuses = sorted(r.status for r in _records(service, subject_id=appt.id))
    assert statuses == ["failed", "sent"]


@pytest.mark.asyncio
async def test_failed_send_is_not_retried_after_window_passes(service, clock, notifier, make_appointment):
    appt = make_appointment(NOON_LA + timedelta(hours=24))
    notifier.fail_next()

    await service.run_tick()
    clock.advance(timedelta(minutes=15))
    later = await service.run_tick()

    assert later.for_type(REMINDER_24H).candidates == 0
    assert [r.status for r in _records(service, subject_id=appt.id)] == ["failed"]


# =============================================================================
# Properties
# =============================================================================


@pytest.mark.asyncio
async def test_many_ticks_across_window_send_exactly_once(service, clock, notifier, make_appointment):
    appt = make_appointment(NOON_LA + timedelta(hours=24))

    clock.set(NOON_LA - timedelta(minutes=30))
    for _ in range(13):
        await service.run_tick()
        clock.advance(timedelta(minutes=5))

    sent = _records(service, subject_id=appt.id, status=DispatchStatus.SENT)
    assert len(sent) == 1
    assert len(notifier.calls) == 1


@pytest.mark.asyncio
async def test_candidate_only_within_one_interval_of_instant(service, clock, make_appointment):
    make_appointment(NOON_LA + timedelta(hours=24))

    clock.set(NOON_LA - timedelta(seconds=1))
    early = await service.run_tick()
    clock.set(NOON_LA + timedelta(minutes=15))
    late = await service.run_tick()

    assert early.for_type(REMINDER_24H).candidates == 0
    assert late.for_type(REMINDER_24H).candidates == 0


@pytest.mark.asyncio
async def test_disabled_workflow_is_never_queried(service, notifier, make_appointment, monkeypatch):
    service.update_settings(REMINDER_24H, {"enabled": False})
    make_appointment(NOON_LA + timedelta(hours=24))

    queried = []
    original = service.subject_store.find_candidates

    def spy(definition, start, end):
        queried.append(definition.workflow_type.value)
        return original(definition, start, end)

    monkeypatch.setattr(service.subject_store, "find_candidates", spy)

    summary = await service.run_tick()

    assert REMINDER_24H not in queried
    assert summary.for_type(REMINDER_24H) is None
    assert notifier.calls == []


@pytest.mark.asyncio
async def test_settings_edits_apply_on_next_tick(service, notifier, make_appointment):
    make_appointment(NOON_LA + timedelta(hours=36))
    assert (await service.run_tick()).for_type(REMINDER_24H).candidates == 0

    service.update_settings(REMINDER_24H, {"timing_hours": 36})
    assert (await service.run_tick()).for_type(REMINDER_24H).sent == 1


@pytest.mark.asyncio
async def test_each_workflow_runs_in_its_own_error_boundary(service, notifier, make_appointment, monkeypatch):
    appt = make_appointment(NOON_LA + timedelta(hours=24))
    original = service.subject_store.find_candidates

    def flaky(definition, start, end):
        if definition.workflow_type == WorkflowType.APPOINTMENT_REMINDER_2H:
            raise RuntimeError("replica lag")
        return original(definition, start, end)

    monkeypatch.setattr(service.subject_store, "find_candidates", flaky)

    summary = await service.run_tick()

    assert summary.for_type(WorkflowType.APPOINTMENT_REMINDER_2H.value).error == "replica lag"
    assert summary.for_type(REMINDER_24H).sent == 1
    assert len(summary.workflows) == len(WorkflowType)
    assert [r.status for r in _records(service, subject_id=appt.id)] == ["sent"]


@pytest.mark.asyncio
async def test_several_workflows_fire_in_one_tick(
    service, notifier, make_customer, make_appointment, make_request
):
    make_appointment(NOON_LA + timedelta(hours=24))
    make_appointment(NOON_LA + timedelta(hours=2))
    end = NOON_LA - timedelta(hours=2, minutes=5)
    make_appointment(end - timedelta(hours=2), end_time=end, status="completed")
    make_customer(email="lapsed@example.com", last_activity_at=NOON_LA - timedelta(hours=2160, minutes=1))
    make_request(NOON_LA - timedelta(hours=48, minutes=7))

    summary = await service.run_tick()

    sent = {r.workflow_type: r.sent for r in summary.workflows}
    assert sent == {
        "abandoned_request_recovery": 1,
        "aftercare_instructions": 1,
        "appointment_reminder_24h": 1,
        "appointment_reminder_2h": 1,
        "re_engagement": 1,
        "review_request": 0,
    }
    assert summary.sent == 5
    assert len(notifier.calls) == 5


@pytest.mark.asyncio
async def test_overlapping_tick_is_skipped(service, notifier, make_appointment):
    make_appointment(NOON_LA + timedelta(hours=24))
    notifier.delay = 0.05

    first, second = await asyncio.gather(service.run_tick(), service.run_tick())

    assert (first is None) != (second is None)
    assert len(notifier.calls) == 1


# =============================================================================
# Lifecycle
# =============================================================================


@pytest.mark.asyncio
async def test_start_is_idempotent_and_shutdown_stops(service):
    assert service.state == SchedulerState.STOPPED

    service.start()
    task = service.scheduler._task
    service.start()

    assert service.scheduler._task is task
    assert service.state == SchedulerState.RUNNING

    await service.shutdown()
    assert service.state == SchedulerState.STOPPED
    assert task.cancelled() or task.done()


@pytest.mark.asyncio
async def test_stop_cancels_running_loop(service):
    service.start()
    task = service.scheduler._task
    service.stop()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert service.state == SchedulerState.STOPPED


def test_start_without_event_loop_raises(service):
    with pytest.raises(RuntimeError):
        service.start()
    assert service.state == SchedulerState.STOPPED


@pytest.mark.asyncio
async def test_loop_ticks_on_fixed_interval(service, monkeypatch):
    scheduler: AutomationScheduler = service.scheduler
    monkeypatch.setattr(scheduler.matcher, "interval", timedelta(milliseconds=20))
    ticks = []

    async def fake_tick(now=None):
        ticks.append(now)

    monkeypatch.setattr(scheduler, "run_tick", fake_tick)

    scheduler.start()
    await asyncio.sleep(0.1)
    await scheduler.shutdown()

    assert len(ticks) >= 3


@pytest.mark.asyncio
async def test_loop_survives_a_crashing_tick(service, monkeypatch):
    scheduler = service.scheduler
    monkeypatch.setattr(scheduler.matcher, "interval", timedelta(milliseconds=10))
    calls = []

    async def crashing_tick(now=None):
        calls.append(now)
        raise RuntimeError("database went away")

    monkeypatch.setattr(scheduler, "run_tick", crashing_tick)

    scheduler.start()
    await asyncio.sleep(0.05)
    assert scheduler.state == SchedulerState.RUNNING
    await scheduler.shutdown()

    assert len(calls) >= 2

@pytest.mark.asyncio
async def test_start_right_after_stop_runs_a_fresh_loop(service):
    service.start()
    await asyncio.sleep(0)
    first = service.scheduler._task

    service.stop()
    assert service.state == SchedulerState.STOPPED
    service.start()
    await asyncio.sleep(0.01)

    assert service.state == SchedulerState.RUNNING
    assert service.scheduler._task is not first
    with pytest.raises(asyncio.CancelledError):
        await first
    await service.shutdown()
    assert service.state == SchedulerState.STOPPED


@pytest.mark.asyncio
async def test_loop_windows_stay_adjacent_when_ticks_wake_late(service, clock, monkeypatch):
    scheduler = service.scheduler
    interval = timedelta(milliseconds=20)
    monkeypatch.setattr(scheduler.matcher, "interval", interval)
    ticks = []

    async def slow_tick(now=None):
        ticks.append(now)
        # Wall clock and tick runtime drift by a different amount every tick
        clock.advance(interval + timedelta(milliseconds=7 * len(ticks)))
        await asyncio.sleep(0.003 * (len(ticks) % 3))

    monkeypatch.setattr(scheduler, "run_tick", slow_tick)

    scheduler.start()
    await asyncio.sleep(0.12)
    await scheduler.shutdown()

    assert len(ticks) >= 3
    assert ticks[0] == NOON_LA
    assert all(later - earlier == interval for earlier, later in zip(ticks, ticks[1:]))



def test_scheduler_rejects_zero_concurrency(service):
    with pytest.raises(ValueError):
        AutomationScheduler(
            service.settings_store,
            service.registry,
            service.scheduler.matcher,
            service.dispatcher,
            max_concurrency=0,
        )


def test_recording_notifier_fixture_starts_empty(notifier):
    assert isinstance(notifier, RecordingNotifier)
    assert notifier.calls == []
