"""Tests for the local session directory and the PTY backend."""

import asyncio
import os
import sys

import pytest

from termpanel.enums import TerminalEventType
from termpanel.exception import SessionCreationError, SessionNotFoundError, SessionNotRunningError, WindowNotFoundError
from termpanel.host import PTYSession
from termpanel.schema import CreateTerminalSessionOptions


@pytest.mark.asyncio
async def test_create_and_list(directory, backends, tmp_path):
    session_id = await directory.create_session(
        CreateTerminalSessionOptions(cwd=str(tmp_path), command="htop", context="repoA")
    )

    sessions = directory.list_sessions()
    assert [s.id for s in sessions] == [session_id]
    assert sessions[0].cwd == str(tmp_path)
    assert sessions[0].shell == "htop"
    assert sessions[0].context == "repoA"
    assert backends[session_id].started
    assert backends[session_id].command == "htop"


@pytest.mark.asyncio
async def test_create_in_missing_directory_fails(directory, tmp_path):
    with pytest.raises(SessionCreationError):
        await directory.create_session(CreateTerminalSessionOptions(cwd=str(tmp_path / "nope")))
    assert directory.sessions == {}


@pytest.mark.asyncio
async def test_write_to_unknown_or_stopped_session(directory, backends):
    with pytest.raises(SessionNotFoundError):
        await directory.write("term-missing", "x")

    session_id = await directory.create_session(CreateTerminalSessionOptions())
    backends[session_id].stopped = True
    with pytest.raises(SessionNotRunningError):
        await directory.write(session_id, "x")


@pytest.mark.asyncio
async def test_scrollback_keeps_the_tail(directory, backends):
    session_id = await directory.create_session(CreateTerminalSessionOptions())
    backends[session_id].emit("a" * 1000)
    backends[session_id].emit("b" * 100)

    buffer = directory.sessions[session_id].buffer
    assert len(buffer) == 1024
    assert buffer.endswith("b" * 100)


@pytest.mark.asyncio
async def test_claim_rules(directory):
    session_id = await directory.create_session(CreateTerminalSessionOptions())
    a, events_a = directory.open_window()
    b, _ = directory.open_window()

    assert (await a.claim_terminal_ownership(session_id)).success
    assert (await a.claim_terminal_ownership(session_id)).success

    rejected = await b.claim_terminal_ownership(session_id)
    assert rejected.reason == "owned-elsewhere"
    assert rejected.owned_by_window_id == a.window_id

    status = await b.check_terminal_ownership(session_id)
    assert status.exists
    assert not status.owned_by_this_window
    assert not status.can_claim
    assert status.owner_window_exists is True

    lost = []
    events_a.on(TerminalEventType.OWNERSHIP_LOST, lost.append)
    assert (await b.claim_terminal_ownership(session_id, True)).success
    assert lost == [{"sessionId": session_id, "newOwnerWindowId": b.window_id}]

    missing = await a.claim_terminal_ownership("term-missing")
    assert missing.reason == "not-found"


@pytest.mark.asyncio
async def test_release_only_by_owner(directory):
    session_id = await directory.create_session(CreateTerminalSessionOptions())
    a, _ = directory.open_window()
    b, _ = directory.open_window()
    await a.claim_terminal_ownership(session_id)

    await b.release_terminal_ownership(session_id)
    assert directory.sessions[session_id].owner_window_id == a.window_id

    await a.release_terminal_ownership(session_id)
    assert directory.sessions[session_id].owner_window_id is None


@pytest.mark.asyncio
async def test_closed_window_leaves_orphan(directory):
    session_id = await directory.create_session(CreateTerminalSessionOptions())
    a, _ = directory.open_window()
    b, _ = directory.open_window()
    await a.claim_terminal_ownership(session_id)

    directory.close_window(a.window_id)

    status = await b.check_terminal_ownership(session_id)
    assert status.owned_by_window_id == a.window_id
    assert status.owner_window_exists is False
    assert status.can_claim
    assert (await b.claim_terminal_ownership(session_id)).success

    with pytest.raises(WindowNotFoundError):
        await a.write_to_terminal(session_id, "x")


@pytest.mark.asyncio
async def test_exit_is_broadcast_and_session_removed(directory, backends):
    session_id = await directory.create_session(CreateTerminalSessionOptions())
    _, events_a = directory.open_window()
    _, events_b = directory.open_window()
    seen_a, seen_b = [], []
    events_a.on(TerminalEventType.EXIT, seen_a.append)
    events_b.on(TerminalEventType.EXIT, seen_b.append)

    backends[session_id].exit(130)

    assert seen_a == seen_b == [{"sessionId": session_id, "exitCode": 130}]
    assert directory.list_sessions() == []


@pytest.mark.asyncio
async def test_destroy_notifies_other_windows_only(directory, backends):
    session_id = await directory.create_session(CreateTerminalSessionOptions())
    a, events_a = directory.open_window()
    _, events_b = directory.open_window()
    seen_a, seen_b = [], []
    events_a.on(TerminalEventType.EXIT, seen_a.append)
    events_b.on(TerminalEventType.EXIT, seen_b.append)

    await a.destroy_terminal_session(session_id)
    await a.destroy_terminal_session(session_id)

    assert backends[session_id].stopped
    assert seen_a == []
    assert seen_b == [{"sessionId": session_id, "exitCode": None}]


@pytest.mark.asyncio
async def test_cleanup_all_stops_every_session(directory, backends):
    for _ in range(3):
        await directory.create_session(CreateTerminalSessionOptions())

    await directory.cleanup_all()

    assert directory.sessions == {}
    assert all(backend.stopped for backend in backends.values())


# ========== PTY ==========

@pytest.mark.skipif(not sys.platform.startswith(("linux", "darwin")), reason="needs a POSIX pty")
@pytest.mark.asyncio
async def test_pty_session_reports_output_and_exit_code(tmp_path):
    output = []
    exited = asyncio.Event()
    codes = []

    def on_exit(code):
        codes.append(code)
        exited.set()

    session = PTYSession(
        "term-pty",
        str(tmp_path),
        on_output=output.append,
        on_exit=on_exit,
        shell="sh",
        command="pwd; exit 3",
    )
    await session.start()
    await asyncio.wait_for(exited.wait(), timeout=10)

    assert codes == [3]
    assert os.path.basename(str(tmp_path)) in "".join(output)
    assert not session.running
    assert session.master_fd is None
