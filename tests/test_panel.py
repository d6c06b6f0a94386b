"""Panel scenarios over a shared LocalSessionDirectory with in-memory sessions."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from termpanel.config import PanelConfig
from termpanel.enums import TabStatus
from termpanel.panel import TabbedTerminalPanel
from termpanel.panel.tools import PANEL_ID
from termpanel.schema import CreateTerminalSessionOptions


async def _started(panel):
    await panel.start()
    await panel.settle()
    return panel


def _only(panel):
    tab = panel.active_tab_id
    return panel.controller(tab), panel.surfaces[tab]


@pytest.mark.asyncio
async def test_fresh_tab_write_echo_and_exit(make_panel, backends, tmp_path):
    repo = tmp_path / "repo"
    repo.mkdir()
    panel = await _started(make_panel(default_directory=str(repo)))
    controller, surface = _only(panel)

    assert controller.status == TabStatus.READY
    assert panel.tabs[0].label == "repo"
    session_id = controller.session_id
    assert backends[session_id].cwd == str(repo)

    assert await panel.handle_user_input(controller.tab_id, "ls\r") is True
    backends[session_id].emit("README.md\r\n")
    assert surface.text == "ls\rREADME.md\r\n"

    backends[session_id].exit(0)

    assert controller.status == TabStatus.EXITED
    assert controller.exit_code == 0
    assert surface.errors[-1] == "Terminal exited with code 0"
    assert await panel.handle_user_input(controller.tab_id, "echo again\r") is False
    assert backends[session_id].written == ["ls\r"]

    await panel.close()


@pytest.mark.asyncio
async def test_restored_tab_replays_buffer_once(make_panel, directory, backends):
    session_id = await directory.create_session(CreateTerminalSessionOptions(context="repoA"))
    backends[session_id].emit("$ make\r\nok\r\n")

    panel = await _started(make_panel(context="repoA"))
    controller, surface = _only(panel)

    assert controller.session_id == session_id
    assert controller.status == TabStatus.READY
    assert surface.output == ["$ make\r\nok\r\n"]

    await panel.close()


@pytest.mark.asyncio
async def test_second_window_sees_owned_elsewhere_and_can_take_control(make_panel, directory):
    window_a = await _started(make_panel())
    controller_a, surface_a = _only(window_a)
    session_id = controller_a.session_id

    window_b = await _started(make_panel())
    controller_b, surface_b = _only(window_b)

    assert controller_b.session_id == session_id
    assert controller_b.status == TabStatus.NOT_OWNER
    assert controller_b.owner_window_id == window_a.window_id
    assert await window_b.handle_user_input(controller_b.tab_id, "whoami\r") is False

    result = await window_b.take_control(controller_b.tab_id)
    await window_b.settle()

    assert result.success
    assert controller_b.status == TabStatus.READY
    assert controller_a.status == TabStatus.NOT_OWNER
    assert controller_a.owner_window_id == window_b.window_id
    assert directory.sessions[session_id].owner_window_id == window_b.window_id

    assert await window_a.handle_user_input(controller_a.tab_id, "x") is False
    assert await window_b.handle_user_input(controller_b.tab_id, "pwd\r") is True
    assert "pwd\r" in surface_b.text
    assert "pwd\r" not in surface_a.text

    await window_b.close()
    await window_a.close()


@pytest.mark.asyncio
async def test_orphaned_session_is_claimed_by_next_window(make_panel, directory):
    window_a = await _started(make_panel())
    session_id = window_a.controller(window_a.active_tab_id).session_id

    # Window vanishes without releasing anything
    directory.close_window(window_a.window_id)

    window_b = await _started(make_panel())
    controller_b, _ = _only(window_b)

    assert controller_b.session_id == session_id
    assert controller_b.status == TabStatus.READY
    assert directory.sessions[session_id].owner_window_id == window_b.window_id

    # Late teardown of the vanished window must not disturb the new owner
    await window_a.close()
    assert directory.sessions[session_id].owner_window_id == window_b.window_id

    await window_b.close()


@pytest.mark.asyncio
async def test_window_close_releases_without_destroying(make_panel, directory):
    window_a = await _started(make_panel())
    session_id = window_a.controller(window_a.active_tab_id).session_id

    await window_a.close()

    assert session_id in directory.sessions
    assert directory.sessions[session_id].owner_window_id is None


@pytest.mark.asyncio
async def test_closing_tab_destroys_its_session(make_panel, directory, backends):
    panel = await _started(make_panel())
    first = panel.active_tab_id

    assert panel.handle_key("ctrl+t") is True
    await panel.tab_manager.process_pending()
    await panel.settle()

    assert len(panel.tabs) == 2
    second = panel.active_tab_id
    second_session = panel.controller(second).session_id

    panel.close_tab(second)
    await panel.settle()

    assert panel.active_tab_id == first
    assert second_session not in directory.sessions
    assert backends[second_session].stopped
    assert len(directory.sessions) == 1

    await panel.close()


@pytest.mark.asyncio
async def test_switching_tabs_routes_output_to_active_tab_only(make_panel, backends):
    panel = await _started(make_panel())
    first = panel.active_tab_id
    first_session = panel.controller(first).session_id

    panel.add_tab()
    await panel.settle()
    second = panel.active_tab_id

    backends[first_session].emit("while hidden")
    assert panel.surfaces[first].output == []

    panel.switch_tab(first)
    await panel.settle()
    assert panel.surfaces[first].output == ["while hidden"]
    assert panel.surfaces[second].output == []

    await panel.close()


@pytest.mark.asyncio
async def test_tab_closed_before_session_created_drops_binding(make_panel, directory):
    panel = make_panel()
    await panel.start()
    first = panel.active_tab_id
    extra = panel.add_tab(guard=False)
    panel.close_tab(extra.id)
    await panel.settle()

    assert panel.controller(extra.id) is None
    assert len(panel.tabs) == 1
    assert panel.tab_manager.session_map().keys() == {first}
    assert len(directory.sessions) == 1

    await panel.close()


@pytest.mark.asyncio
async def test_session_creation_failure_shows_error(make_panel, tmp_path):
    panel = await _started(make_panel(default_directory=str(tmp_path / "missing")))
    controller, surface = _only(panel)

    assert controller.status == TabStatus.ERROR
    assert "does not exist" in surface.errors[-1]

    await panel.close()


@pytest.mark.asyncio
async def test_host_without_actions_reports_unavailable():
    panel = TabbedTerminalPanel({})
    await panel.start()
    await panel.settle()

    controller = panel.controller(panel.active_tab_id)
    assert controller.status == TabStatus.ERROR
    assert controller.error == "Terminal actions not available"

    await panel.close()


@pytest.mark.asyncio
async def test_on_tabs_change_receives_snapshots(make_panel):
    snapshots = []
    panel = make_panel()
    panel.on_tabs_change = snapshots.append
    await _started(panel)

    panel.add_tab()
    await panel.settle()

    assert len(snapshots[-1]) == 2
    assert all(tab.session_id for tab in snapshots[-1])

    await panel.close()


@pytest.mark.asyncio
async def test_closing_tab_that_is_not_owner_destroys_session(make_panel, directory):
    window_a = await _started(make_panel())
    session_id = window_a.controller(window_a.active_tab_id).session_id

    window_b = await _started(make_panel())
    restored = window_b.active_tab_id
    assert window_b.controller(restored).status == TabStatus.NOT_OWNER

    window_b.add_tab()
    await window_b.settle()
    window_b.close_tab(restored)
    await window_b.settle()

    assert session_id not in directory.sessions
    assert window_a.controller(window_a.active_tab_id).status == TabStatus.EXITED

    await window_b.close()
    await window_a.close()


@pytest.mark.asyncio
async def test_closing_exited_tab_still_destroys_session(make_panel, backends):
    panel = await _started(make_panel())
    first = panel.active_tab_id
    first_session = panel.controller(first).session_id
    panel.add_tab()
    await panel.settle()

    backends[first_session].exit(0)
    assert panel.controller(first).status == TabStatus.EXITED

    panel.bridge.destroy_session = AsyncMock()
    panel.close_tab(first)
    await panel.settle()

    panel.bridge.destroy_session.assert_awaited_once_with(first_session)

    await panel.close()


@pytest.mark.asyncio
async def test_switching_back_does_not_repeat_output(make_panel, backends):
    panel = await _started(make_panel())
    first = panel.active_tab_id
    backends[panel.controller(first).session_id].emit("hello\r\n")

    panel.add_tab()
    await panel.settle()
    panel.switch_tab(first)
    await panel.settle()

    surface = panel.surfaces[first]
    assert surface.cleared == 1
    assert surface.text == "hello\r\n"

    await panel.close()


@pytest.mark.asyncio
async def test_taking_control_back_does_not_repeat_output(make_panel, backends):
    window_a = await _started(make_panel())
    controller_a, surface_a = _only(window_a)
    backends[controller_a.session_id].emit("build ok\r\n")

    window_b = await _started(make_panel())
    controller_b, _ = _only(window_b)
    await window_b.take_control(controller_b.tab_id)
    await window_b.settle()

    await window_a.take_control(controller_a.tab_id)
    await window_a.settle()

    assert controller_a.status == TabStatus.READY
    assert surface_a.text == "build ok\r\n"

    await window_b.close()
    await window_a.close()


@pytest.mark.asyncio
async def test_session_created_after_teardown_is_destroyed(tmp_path):
    gate = asyncio.Event()

    async def create_terminal_session(options):
        await gate.wait()
        return "term-late"

    destroy = AsyncMock()
    host = {"create_terminal_session": create_terminal_session, "destroy_terminal_session": destroy}
    panel = TabbedTerminalPanel(host, config=PanelConfig(refresh_delay=0, default_directory=str(tmp_path)))
    await panel.start()
    await asyncio.sleep(0)
    controller = panel.controller(panel.active_tab_id)

    closing = asyncio.ensure_future(panel.close())
    while controller.alive:
        await asyncio.sleep(0)
    gate.set()
    await closing

    destroy.assert_awaited_once_with("term-late")


# ========== Tools ==========

@pytest.mark.asyncio
async def test_tool_events_drive_the_panel(make_panel, directory, backends, tmp_path):
    work = tmp_path / "work"
    work.mkdir()
    panel = await _started(make_panel())

    panel.events.emit(f"{PANEL_ID}:create-session", {"cwd": str(work), "name": "builder"})
    await panel.settle()

    tab = panel.tabs[-1]
    assert tab.label == "builder"
    assert tab.is_active
    assert backends[tab.session_id].cwd == str(work)

    panel.events.emit(f"{PANEL_ID}:write", {"sessionId": tab.session_id, "data": "make\r"})
    await panel.settle()
    assert backends[tab.session_id].written == ["make\r"]

    panel.events.emit(f"{PANEL_ID}:clear", {"sessionId": tab.session_id})
    assert panel.surfaces[tab.id].cleared == 1

    first = panel.tabs[0]
    panel.events.emit(f"{PANEL_ID}:focus", {"sessionId": first.session_id})
    assert panel.active_tab_id == first.id

    panel.events.emit(f"{PANEL_ID}:close-session", {"sessionId": tab.session_id})
    await panel.settle()
    assert len(panel.tabs) == 1
    assert tab.session_id not in directory.sessions

    await panel.close()


@pytest.mark.asyncio
async def test_create_session_tool_reports_session_id(make_panel, directory, tmp_path):
    panel = await _started(make_panel())

    session_id = await panel.tools.handle_create_session({"cwd": str(tmp_path), "name": "worker"})

    assert session_id in directory.sessions
    assert panel.tabs[-1].session_id == session_id
    assert panel.tabs[-1].label == "worker"

    await panel.close()
