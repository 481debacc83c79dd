from __future__ import annotations

import asyncio

import pytest

from dashboard.scheduler import Scheduler
from dashboard.state import DashboardState
from fakes import FakeClient, ManualTimers, settle
from gateway.errors import ApplicationFailure, TransportFailure
from models.events import NotificationLevel
from models.state import HealthIndicator, HealthStatus, StatsSnapshot


def _build(discard_stale: bool = False):
    timers = ManualTimers()
    client = FakeClient()
    state = DashboardState(timers)
    scheduler = Scheduler(state, client, timers, discard_stale=discard_stale)
    return timers, client, state, scheduler


def _stats(counter: int) -> StatsSnapshot:
    return StatsSnapshot.model_validate({"currentCounter": counter})


@pytest.mark.asyncio
async def test_start_is_idempotent_and_polls_immediately():
    timers, client, state, scheduler = _build()
    scheduler.start()
    scheduler.start()
    await scheduler.drain()

    assert client.count("stats") == 1
    assert client.count("health") == 1
    assert timers.pending == 2
    await scheduler.stop()


@pytest.mark.asyncio
async def test_independent_cadences():
    timers, client, state, scheduler = _build()
    scheduler.start()
    await scheduler.drain()

    timers.advance(15.0)
    await scheduler.drain()
    # immediate poll + ticks at 3, 6, 9, 12, 15 / 5, 10, 15
    assert client.count("stats") == 6
    assert client.count("health") == 4
    await scheduler.stop()


@pytest.mark.asyncio
async def test_failed_poll_does_not_stop_later_ticks():
    timers, client, state, scheduler = _build()
    client.queue("stats", TransportFailure("stats", "connection refused"), _stats(7))
    client.queue("health", TransportFailure("health", "connection refused"))
    scheduler.start()
    await scheduler.drain()

    assert state.stats is None
    assert state.health_indicator is HealthIndicator.UNREACHABLE
    assert state.health_error == "connection refused"
    errors = [n for n in state.notifications if n.level is NotificationLevel.ERROR]
    assert len(errors) == 2

    timers.advance(5.0)
    await scheduler.drain()
    assert state.stats.current_counter == 7
    assert state.health_indicator is HealthIndicator.HEALTHY
    await scheduler.stop()


@pytest.mark.asyncio
async def test_unhealthy_is_distinct_from_unreachable():
    timers, client, state, scheduler = _build()
    client.queue("health", HealthStatus(healthy=False, current_counter=3))
    scheduler.refresh_health()
    await scheduler.drain()
    assert state.health_indicator is HealthIndicator.UNHEALTHY

    client.queue("health", ApplicationFailure("health", "missing field"))
    scheduler.refresh_health()
    await scheduler.drain()
    assert state.health_indicator is HealthIndicator.UNREACHABLE
    assert state.health is None


@pytest.mark.asyncio
async def test_ticks_are_not_coalesced_and_last_completion_wins():
    timers, client, state, scheduler = _build()
    loop = asyncio.get_running_loop()
    slow, fast = loop.create_future(), loop.create_future()
    client.queue("stats", slow, fast)

    scheduler.refresh_stats()
    scheduler.refresh_stats()
    await settle()
    assert scheduler.in_flight == 2

    fast.set_result(_stats(2))
    await settle()
    assert state.stats.current_counter == 2
    slow.set_result(_stats(1))
    await scheduler.drain()
    assert state.stats.current_counter == 1


@pytest.mark.asyncio
async def test_discard_stale_drops_older_responses():
    timers, client, state, scheduler = _build(discard_stale=True)
    loop = asyncio.get_running_loop()
    slow, fast = loop.create_future(), loop.create_future()
    client.queue("stats", slow, fast)

    scheduler.refresh_stats()
    scheduler.refresh_stats()
    fast.set_result(_stats(2))
    await settle()
    slow.set_result(_stats(1))
    await scheduler.drain()
    assert state.stats.current_counter == 2


@pytest.mark.asyncio
async def test_hidden_dashboard_keeps_polling_without_ui_effects():
    timers, client, state, scheduler = _build()
    topics = []
    state.events.subscribe(topics.append)
    scheduler.start()
    await scheduler.drain()

    scheduler.set_visible(False)
    topics.clear()
    client.queue("stats", TransportFailure("stats", "timeout"))
    timers.advance(3.0)
    await scheduler.drain()
    assert client.count("stats") == 2
    assert topics == []
    assert len(state.notifications) == 0

    client.queue("stats", _stats(9))
    timers.advance(3.0)
    await scheduler.drain()
    assert topics == []
    assert state.stats.current_counter == 9

    stats_before, health_before = client.count("stats"), client.count("health")
    assert scheduler.set_visible(True) is True
    await scheduler.drain()
    assert client.count("stats") == stats_before + 1
    assert client.count("health") == health_before + 1
    assert "stats" in topics and "visibility" in topics
    await scheduler.stop()


@pytest.mark.asyncio
async def test_stop_cancels_timers_and_ignores_late_refreshes():
    timers, client, state, scheduler = _build()
    scheduler.start()
    await scheduler.stop()
    assert timers.pending == 0
    assert scheduler.refresh_stats() is None
