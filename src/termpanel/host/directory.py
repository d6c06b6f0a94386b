"""Local session directory: the host side of the panel's action contract.

This module provides a process-wide registry of terminal sessions shared by
every window, handling:
- Session lifecycle (creation, tracking, exit, cleanup)
- Per-session scrollback used to replay output on refresh
- Authoritative single-writer ownership across windows
- Push events (exit, ownership lost) to each window's event channel
"""

import logging
import os
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..config import HostConfig
from ..enums import ClaimFailureReason, TerminalEventType
from ..exception import SessionCreationError, SessionNotFoundError, SessionNotRunningError, WindowNotFoundError
from ..panel.events import PanelEventEmitter
from ..schema import (
    CreateTerminalSessionOptions,
    OwnershipLostEvent,
    OwnershipResult,
    OwnershipStatus,
    TerminalExitEvent,
    TerminalSession,
)
from .pty_session import PTYSession

logger = logging.getLogger(__name__)

DataCallback = Callable[[str], None]
BackendFactory = Callable[..., Any]


def new_session_id() -> str:
    return f"term-{uuid.uuid4().hex[:12]}"


class _SessionRecord:
    """Registry entry: metadata, backend, scrollback, owner and subscribers."""

    def __init__(self, session: TerminalSession, backend: Any, scrollback: int):
        self.session = session
        self.backend = backend
        self.scrollback = scrollback
        self.buffer = ""
        self.owner_window_id: Optional[int] = None
        self.subscribers: Dict[int, List[DataCallback]] = {}

    def append(self, data: str) -> None:
        self.buffer = (self.buffer + data)[-self.scrollback:]
        self.session.last_activity = datetime.now()

    def deliver(self, data: str, window_id: Optional[int] = None) -> int:
        """Hand data to the subscribers of one window, or of every window."""
        if window_id is None:
            targets = [cb for callbacks in self.subscribers.values() for cb in callbacks]
        else:
            targets = list(self.subscribers.get(window_id, ()))

        for callback in targets:
            try:
                callback(data)
            except Exception as e:
                logger.error(
                    f"[LocalSessionDirectory] Subscriber failed: session_id={self.session.id}: {e}",
                    exc_info=True
                )
        return len(targets)


class LocalSessionDirectory:
    """
    Session directory shared by every window of one server process.

    Architecture:
    - Runs in the server's event loop; no locking needed
    - Each window registers with open_window() and gets its own
      WindowActions (the action contract bound to its window id) and
      PanelEventEmitter (its push channel)
    - Session processes are produced by ``backend_factory``; the default
      factory spawns a PTYSession running the configured shell

    Ownership:
    - A session has at most one owner window; this directory is authoritative
    - Closing a window does not clear its ownerships: those sessions become
      orphaned and the next claim from any window takes them over
    - A forced or orphan takeover pushes terminal:ownershipLost to the
      previous owner's window

    Attributes:
        config: HostConfig (shell, scrollback size)
        default_cwd: Working directory when a create call names none
        sessions: Registry (session_id → record)
        windows: Open windows (window_id → PanelEventEmitter)
    """

    def __init__(
        self,
        config: Optional[HostConfig] = None,
        backend_factory: Optional[BackendFactory] = None,
        default_cwd: Optional[str] = None,
    ):
        self.config = config or HostConfig()
        self.backend_factory = backend_factory or self._pty_backend
        self.default_cwd = default_cwd

        self.sessions: Dict[str, _SessionRecord] = {}
        self.windows: Dict[int, PanelEventEmitter] = {}
        self._next_window_id = 1

        logger.info("LocalSessionDirectory initialized")

    def _pty_backend(
        self,
        session_id: str,
        cwd: str,
        command: Optional[str],
        on_output: Callable[[str], None],
        on_exit: Callable[[Optional[int]], None],
    ) -> PTYSession:
        return PTYSession(
            session_id,
            cwd,
            on_output=on_output,
            on_exit=on_exit,
            shell=self.config.shell,
            shell_args=self.config.shell_args,
            command=command,
        )

    # ========== Windows ==========

    def open_window(self) -> Tuple['WindowActions', PanelEventEmitter]:
        """
        Register a window.

        Returns:
            Tuple of (WindowActions bound to the new window id, its push channel)
        """
        window_id = self._next_window_id
        self._next_window_id += 1

        events = PanelEventEmitter()
        self.windows[window_id] = events
        logger.info(f"[LocalSessionDirectory] Window opened: window_id={window_id}")
        return WindowActions(self, window_id), events

    def close_window(self, window_id: int) -> None:
        """
        Unregister a window. Its subscriptions are dropped; sessions it owns
        stay owned by the (now dead) window until someone claims them.
        """
        self.windows.pop(window_id, None)
        for record in self.sessions.values():
            record.subscribers.pop(window_id, None)
        logger.info(f"[LocalSessionDirectory] Window closed: window_id={window_id}")

    def window_exists(self, window_id: Optional[int]) -> bool:
        return window_id is not None and window_id in self.windows

    def _emit(self, window_id: int, event_type: TerminalEventType, payload: dict) -> None:
        events = self.windows.get(window_id)
        if events is not None:
            events.emit(event_type, payload)

    def _broadcast(self, event_type: TerminalEventType, payload: dict, exclude: Optional[int] = None) -> None:
        for window_id in list(self.windows):
            if window_id != exclude:
                self._emit(window_id, event_type, payload)

    # ========== Session Lifecycle ==========

    def _record(self, session_id: str) -> _SessionRecord:
        record = self.sessions.get(session_id)
        if record is None:
            raise SessionNotFoundError(f"Terminal session not found: session_id={session_id}")
        return record

    async def create_session(self, options: CreateTerminalSessionOptions) -> str:
        """
        Start a new session.

        Args:
            options: cwd / command / context of the session

        Returns:
            New session id

        Raises:
            SessionCreationError: If the directory is missing or the process fails to start
        """
        cwd = os.path.expanduser(options.cwd or self.default_cwd or os.getcwd())
        if not os.path.isdir(cwd):
            raise SessionCreationError(f"Working directory does not exist: {cwd}")

        session_id = new_session_id()
        now = datetime.now()
        session = TerminalSession(
            id=session_id,
            cwd=cwd,
            shell=options.command or self.config.shell,
            created_at=now,
            last_activity=now,
            context=options.context,
        )

        backend = self.backend_factory(
            session_id,
            cwd,
            options.command,
            lambda data: self._handle_output(session_id, data),
            lambda code: self._handle_exit(session_id, code),
        )
        record = _SessionRecord(session, backend, self.config.scrollback_bytes)
        self.sessions[session_id] = record

        try:
            await backend.start()
        except Exception as e:
            self.sessions.pop(session_id, None)
            logger.error(f"[LocalSessionDirectory] Failed to start session in {cwd}: {e}")
            raise SessionCreationError(f"Failed to start terminal: {e}") from e

        logger.info(
            f"[LocalSessionDirectory] Session created: session_id={session_id}, "
            f"cwd={cwd}, context={options.context}"
        )
        return session_id

    async def destroy_session(self, session_id: str, requested_by: Optional[int] = None) -> None:
        """
        Stop a session and remove it. Unknown ids are a no-op.

        Windows other than the requesting one are told through terminal:exit
        (without an exit code) so their tabs stop showing the session.
        """
        record = self.sessions.pop(session_id, None)
        if record is None:
            logger.debug(f"[LocalSessionDirectory] Session not found: session_id={session_id}")
            return

        logger.info(f"[LocalSessionDirectory] Destroying session: session_id={session_id}")
        try:
            await record.backend.stop()
        finally:
            payload = TerminalExitEvent(session_id=session_id).model_dump(by_alias=True)
            self._broadcast(TerminalEventType.EXIT, payload, exclude=requested_by)

    def list_sessions(self) -> List[TerminalSession]:
        return [record.session.model_copy() for record in self.sessions.values()]

    async def cleanup_all(self) -> None:
        """
        Stop every session (server shutdown). Errors are logged and cleanup continues.
        """
        if not self.sessions:
            logger.debug("[LocalSessionDirectory] No sessions to cleanup")
            return

        logger.info(f"[LocalSessionDirectory] Cleaning up {len(self.sessions)} sessions")
        for session_id in list(self.sessions):
            try:
                await self.destroy_session(session_id)
            except Exception as e:
                logger.error(f"Error stopping session {session_id}: {e}")

        self.sessions.clear()
        logger.info("[LocalSessionDirectory] All sessions cleaned up")

    # ========== Session I/O ==========

    async def write(self, session_id: str, data: str) -> None:
        """
        Raises:
            SessionNotFoundError: If the session does not exist
            SessionNotRunningError: If its process is gone
        """
        record = self._record(session_id)
        try:
            await record.backend.write(data)
        except RuntimeError as e:
            raise SessionNotRunningError(str(e)) from e
        record.session.last_activity = datetime.now()

    async def resize(self, session_id: str, cols: int, rows: int) -> None:
        record = self._record(session_id)
        try:
            await record.backend.resize(cols, rows)
        except RuntimeError as e:
            raise SessionNotRunningError(str(e)) from e

    def subscribe(self, window_id: int, session_id: str, callback: DataCallback) -> Callable[[], None]:
        """
        Deliver a session's live output to a window callback.

        Returns:
            Unsubscribe callable (a no-op when the session is unknown)
        """
        record = self.sessions.get(session_id)
        if record is None:
            logger.warning(f"[LocalSessionDirectory] Subscribe to unknown session: session_id={session_id}")
            return lambda: None

        record.subscribers.setdefault(window_id, []).append(callback)

        def unsubscribe() -> None:
            callbacks = record.subscribers.get(window_id)
            if callbacks and callback in callbacks:
                callbacks.remove(callback)
                if not callbacks:
                    del record.subscribers[window_id]

        return unsubscribe

    def refresh(self, window_id: int, session_id: str) -> bool:
        """
        Re-emit the session's scrollback to the requesting window's subscribers.

        Returns:
            True if the replay was delivered (or there was nothing to replay)
        """
        record = self.sessions.get(session_id)
        if record is None or not record.subscribers.get(window_id):
            return False
        if record.buffer:
            record.deliver(record.buffer, window_id)
        return True

    def _handle_output(self, session_id: str, data: str) -> None:
        record = self.sessions.get(session_id)
        if record is None:
            return
        record.append(data)
        record.deliver(data)

    def _handle_exit(self, session_id: str, exit_code: Optional[int]) -> None:
        record = self.sessions.pop(session_id, None)
        if record is None:
            return
        logger.info(f"[LocalSessionDirectory] Session exited: session_id={session_id}, code={exit_code}")
        payload = TerminalExitEvent(session_id=session_id, exit_code=exit_code).model_dump(by_alias=True)
        self._broadcast(TerminalEventType.EXIT, payload)

    # ========== Ownership ==========

    def check_ownership(self, window_id: int, session_id: str) -> OwnershipStatus:
        record = self.sessions.get(session_id)
        if record is None:
            return OwnershipStatus(exists=False, can_claim=False)

        owner = record.owner_window_id
        owner_exists = self.window_exists(owner) if owner is not None else None
        return OwnershipStatus(
            exists=True,
            owned_by_window_id=owner,
            owned_by_this_window=owner == window_id,
            can_claim=owner is None or owner == window_id or not owner_exists,
            owner_window_exists=owner_exists,
        )

    def claim_ownership(self, window_id: int, session_id: str, force: bool = False) -> OwnershipResult:
        """
        Make a window the session's single writer.

        Succeeds when the session is unowned, already owned by the window, its
        owner window is gone, or ``force`` is set. A takeover pushes
        terminal:ownershipLost to the previous owner.
        """
        record = self.sessions.get(session_id)
        if record is None:
            return OwnershipResult(success=False, reason=ClaimFailureReason.NOT_FOUND.value)

        previous = record.owner_window_id
        if previous is None or previous == window_id:
            record.owner_window_id = window_id
            return OwnershipResult(success=True)

        if not force and self.window_exists(previous):
            return OwnershipResult(
                success=False,
                reason=ClaimFailureReason.OWNED_ELSEWHERE.value,
                owned_by_window_id=previous,
            )

        record.owner_window_id = window_id
        logger.info(
            f"[LocalSessionDirectory] Ownership taken over: session_id={session_id}, "
            f"from={previous}, to={window_id}, force={force}"
        )
        payload = OwnershipLostEvent(session_id=session_id, new_owner_window_id=window_id).model_dump(by_alias=True)
        self._emit(previous, TerminalEventType.OWNERSHIP_LOST, payload)
        return OwnershipResult(success=True)

    def release_ownership(self, window_id: int, session_id: str) -> OwnershipResult:
        record = self.sessions.get(session_id)
        if record is not None and record.owner_window_id == window_id:
            record.owner_window_id = None
            logger.debug(f"[LocalSessionDirectory] Released: session_id={session_id}, window_id={window_id}")
        return OwnershipResult(success=True)


class WindowActions:
    """
    The host action contract as seen by one window.

    Every method forwards to the LocalSessionDirectory with this window's id.
    Calls after the window was closed raise WindowNotFoundError.

    Attributes:
        directory: Shared LocalSessionDirectory
        window_id: Identity of this window
    """

    def __init__(self, directory: LocalSessionDirectory, window_id: int):
        self.directory = directory
        self.window_id = window_id

    def _ensure_open(self) -> None:
        if not self.directory.window_exists(self.window_id):
            raise WindowNotFoundError(f"Window is closed: window_id={self.window_id}")

    async def create_terminal_session(self, options: CreateTerminalSessionOptions) -> str:
        self._ensure_open()
        return await self.directory.create_session(options)

    async def write_to_terminal(self, session_id: str, data: str) -> None:
        self._ensure_open()
        await self.directory.write(session_id, data)

    async def resize_terminal(self, session_id: str, cols: int, rows: int) -> None:
        self._ensure_open()
        await self.directory.resize(session_id, cols, rows)

    async def destroy_terminal_session(self, session_id: str) -> None:
        self._ensure_open()
        await self.directory.destroy_session(session_id, requested_by=self.window_id)

    async def list_terminal_sessions(self) -> List[TerminalSession]:
        return self.directory.list_sessions()

    def on_terminal_data(self, session_id: str, callback: DataCallback) -> Callable[[], None]:
        self._ensure_open()
        return self.directory.subscribe(self.window_id, session_id, callback)

    async def refresh_terminal(self, session_id: str) -> bool:
        return self.directory.refresh(self.window_id, session_id)

    async def check_terminal_ownership(self, session_id: str) -> OwnershipStatus:
        return self.directory.check_ownership(self.window_id, session_id)

    async def claim_terminal_ownership(self, session_id: str, force: bool = False) -> OwnershipResult:
        self._ensure_open()
        return self.directory.claim_ownership(self.window_id, session_id, force)

    async def release_terminal_ownership(self, session_id: str) -> OwnershipResult:
        return self.directory.release_ownership(self.window_id, session_id)
