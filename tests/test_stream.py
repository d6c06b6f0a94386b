"""Tests for DataStreamRouter: subscription, replay and exit notification."""

from unittest.mock import AsyncMock

import pytest

from termpanel.enums import TerminalEventType
from termpanel.panel import DataStreamRouter, HostBridge, PanelEventEmitter
from termpanel.schema import CreateTerminalSessionOptions


async def _session_with_output(directory, backends, text):
    session_id = await directory.create_session(CreateTerminalSessionOptions())
    backends[session_id].emit(text)
    return session_id


@pytest.mark.asyncio
async def test_refresh_without_subscription_is_refused(directory, backends):
    session_id = await _session_with_output(directory, backends, "hello")
    actions, events = directory.open_window()
    router = DataStreamRouter(HostBridge(actions), events, refresh_delay=0)

    assert router.schedule_refresh(session_id) is None


@pytest.mark.asyncio
async def test_replay_arrives_exactly_once_through_subscription(directory, backends):
    session_id = await _session_with_output(directory, backends, "previous output\r\n")
    actions, events = directory.open_window()
    router = DataStreamRouter(HostBridge(actions), events, refresh_delay=0)

    received = []
    router.subscribe(session_id, received.append)
    first = router.schedule_refresh(session_id)
    second = router.schedule_refresh(session_id)

    assert first is second
    assert await first is True
    assert received == ["previous output\r\n"]


@pytest.mark.asyncio
async def test_replay_hooks_run_once_before_host_replay(directory, backends):
    session_id = await _session_with_output(directory, backends, "line\r\n")
    actions, events = directory.open_window()
    router = DataStreamRouter(HostBridge(actions), events, refresh_delay=0)

    calls = []
    router.subscribe(session_id, lambda data: calls.append(("data", data)))
    task = router.schedule_refresh(session_id, before=lambda: calls.append("clear"))
    router.schedule_refresh(session_id, before=lambda: calls.append("clear-again"))
    await task
    await router.schedule_refresh(session_id)

    assert calls == ["clear", "clear-again", ("data", "line\r\n"), ("data", "line\r\n")]


@pytest.mark.asyncio
async def test_replay_goes_only_to_requesting_window(directory, backends):
    session_id = await _session_with_output(directory, backends, "buffered")
    actions_a, events_a = directory.open_window()
    actions_b, events_b = directory.open_window()
    router_a = DataStreamRouter(HostBridge(actions_a), events_a, refresh_delay=0)
    router_b = DataStreamRouter(HostBridge(actions_b), events_b, refresh_delay=0)

    seen_a, seen_b = [], []
    router_a.subscribe(session_id, seen_a.append)
    router_b.subscribe(session_id, seen_b.append)

    await router_b.schedule_refresh(session_id)

    assert seen_a == []
    assert seen_b == ["buffered"]


@pytest.mark.asyncio
async def test_data_goes_to_first_accepting_consumer(directory, backends):
    session_id = await directory.create_session(CreateTerminalSessionOptions())
    actions, events = directory.open_window()
    router = DataStreamRouter(HostBridge(actions), events)

    hidden, visible = [], []
    router.subscribe(session_id, hidden.append, accepts=lambda: False)
    router.subscribe(session_id, visible.append, accepts=lambda: True)

    backends[session_id].emit("x")

    assert hidden == []
    assert visible == ["x"]


@pytest.mark.asyncio
async def test_last_unsubscribe_drops_host_subscription(directory, backends):
    session_id = await directory.create_session(CreateTerminalSessionOptions())
    actions, events = directory.open_window()
    router = DataStreamRouter(HostBridge(actions), events)

    unsubscribe = router.subscribe(session_id, lambda data: None)
    assert directory.sessions[session_id].subscribers

    unsubscribe()
    unsubscribe()

    assert not router.has_subscription(session_id)
    assert directory.sessions[session_id].subscribers == {}


@pytest.mark.asyncio
async def test_falls_back_to_data_events_without_subscription_action():
    events = PanelEventEmitter()
    router = DataStreamRouter(HostBridge({"refresh_terminal": AsyncMock(return_value=True)}), events)

    received = []
    router.subscribe("s1", received.append)
    events.emit(TerminalEventType.DATA, {"sessionId": "s1", "data": "via event"})
    events.emit(TerminalEventType.DATA, {"sessionId": "other", "data": "ignored"})

    assert received == ["via event"]
    assert events.listener_count(TerminalEventType.DATA) == 1

    router.close()
    assert events.listener_count(TerminalEventType.DATA) == 0


@pytest.mark.asyncio
async def test_refresh_failure_is_logged_not_raised():
    events = PanelEventEmitter()
    refresh = AsyncMock(side_effect=OSError("host gone"))
    router = DataStreamRouter(HostBridge({"refresh_terminal": refresh}), events, refresh_delay=0)
    router.subscribe("s1", lambda data: None)

    assert await router.schedule_refresh("s1") is False


@pytest.mark.asyncio
async def test_exit_event_reaches_session_handlers(directory, backends):
    session_id = await directory.create_session(CreateTerminalSessionOptions())
    actions, events = directory.open_window()
    router = DataStreamRouter(HostBridge(actions), events)

    exits = []
    router.on_exit(session_id, exits.append)
    backends[session_id].exit(3)

    assert [e.exit_code for e in exits] == [3]
    assert session_id not in directory.sessions
