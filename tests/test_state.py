import pytest

from config import get_settings
from dashboard.events import StateEvents
from dashboard.session import DashboardSession
from dashboard.state import DashboardState
from dashboard.tui import Console, handle_command, render
from fakes import FakeClient, ManualTimers, next_response, settle
from gateway.errors import TransportFailure
from models.wire import AuditRecord, GapsResponse, IntegrityReport, ResetResponse


def test_subscriber_failure_does_not_block_others():
    events = StateEvents()
    seen = []

    def broken(topic):
        raise RuntimeError("render crashed")

    events.subscribe(broken)
    events.subscribe(seen.append)
    events.publish("stats")
    assert seen == ["stats"]


def test_paused_topics_flush_once_on_resume():
    events = StateEvents()
    seen = []
    unsubscribe = events.subscribe(seen.append)
    events.pause()
    events.publish("stats")
    events.publish("stats")
    events.publish("health")
    assert seen == []
    events.resume()
    assert seen == ["health", "stats"]

    unsubscribe()
    events.publish("stats")
    assert seen == ["health", "stats"]


def test_snapshot_starts_with_placeholders():
    snap = DashboardState(ManualTimers()).snapshot()
    assert snap["lastSequence"] == {
        "sequence": None,
        "display": "-",
        "details": "No sequences generated yet",
    }
    assert snap["history"] == []
    assert snap["stats"] is None
    assert snap["health"]["indicator"] == "unknown"
    assert snap["charts"]["timeline"] == {"labels": [], "data": []}


def test_settings_read_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("SEQUENCE_API_URL", "http://seq.internal:9000")
    monkeypatch.setenv("DASH_DISCARD_STALE", "yes")
    monkeypatch.setenv("DASH_STATS_INTERVAL", "1.5")
    settings = get_settings(str(tmp_path / "missing.env"))
    assert settings.api_url == "http://seq.internal:9000"
    assert settings.discard_stale is True
    assert settings.stats_interval == 1.5
    assert settings.health_interval == 5.0


@pytest.mark.asyncio
async def test_console_commands_drive_actions(settings):
    client = FakeClient()
    session = DashboardSession(settings, client=client, timers=ManualTimers())
    console = Console()
    session.actions.confirm = console.confirm

    client.queue("next-sequence", next_response(5))
    assert await handle_command(session, console, "/gen S1 P1 INV") is True
    await settle()
    assert session.state.history.latest.sequence_number == 5

    client.queue("reset", ResetResponse(success=True))
    await handle_command(session, console, "/reset")
    await settle()
    assert console.pending is not None
    await handle_command(session, console, "y")
    await settle()
    assert client.count("reset") == 1
    assert len(session.state.history) == 0

    await handle_command(session, console, "/hide")
    assert session.state.visible is False
    await handle_command(session, console, "/bogus")
    assert console.log[-1].startswith("[sys] usage")
    assert await handle_command(session, console, "/quit") is False

    lines = render(session.state, console, 100)
    assert any("[paused]" in line for line in lines)
    await session.shutdown()


@pytest.mark.asyncio
async def test_console_inspection_commands(settings):
    client = FakeClient()
    session = DashboardSession(settings, client=client, timers=ManualTimers())
    console = Console()

    client.queue("gaps", GapsResponse(gaps=[3, 7], count=2))
    await handle_command(session, console, "/gaps")
    await settle()
    assert console.log[-1] == "[gaps] 2 gaps: 3, 7"

    client.queue("audit", [AuditRecord(sequence_number=3, operation_type="RELEASE")])
    await handle_command(session, console, "/audit 5")
    await settle()
    assert client.calls[-1] == ("audit", (5, None))
    assert console.log[-1] == "[audit] #3 RELEASE"

    client.queue("validate", TransportFailure("validate", "HTTP 500", status=500))
    await handle_command(session, console, "/validate")
    await settle()
    assert console.log[-1] == "[validate] failed: HTTP 500"

    await handle_command(session, console, "/release 0 S1 P1")
    assert client.count("release") == 0
    assert console.log[-1].startswith("[sys] usage")
    await session.shutdown()
