"""Capability-checked access to the host's terminal actions.

The host may implement any subset of the action contract. Which actions are
present is detected once (``HostCapabilities.detect``) and ``HostBridge``
consults that descriptor, so callers never probe the host object themselves.

Degradation when an action is missing:
- create_terminal_session: HostActionUnavailableError (the tab shows an error)
- write / resize / destroy: logged no-op
- list_terminal_sessions: empty list
- refresh_terminal: False
- on_terminal_data: callers fall back to the terminal:data push event
- ownership actions: single-window semantics, this window always owns
"""

import inspect
import logging
from dataclasses import dataclass, fields
from typing import Any, Callable, List, Optional

from pydantic import ValidationError

from ..exception import HostActionUnavailableError, SessionCreationError
from ..schema import (
    CreateTerminalSessionOptions,
    OwnershipResult,
    OwnershipStatus,
    TerminalSession,
)

logger = logging.getLogger(__name__)


async def _resolve(value: Any) -> Any:
    """Await host replies that are awaitable; plain values pass through."""
    if inspect.isawaitable(value):
        return await value
    return value


@dataclass(frozen=True)
class HostCapabilities:
    """
    Descriptor of which optional host actions are present.

    Attribute names match the host's method names.
    """
    create_terminal_session: bool = False
    write_to_terminal: bool = False
    resize_terminal: bool = False
    destroy_terminal_session: bool = False
    list_terminal_sessions: bool = False
    on_terminal_data: bool = False
    refresh_terminal: bool = False
    check_terminal_ownership: bool = False
    claim_terminal_ownership: bool = False
    release_terminal_ownership: bool = False

    @classmethod
    def detect(cls, actions: Any) -> 'HostCapabilities':
        """
        Inspect a host actions object (or a dict of callables).

        Args:
            actions: Object exposing action methods, dict of name → callable, or None

        Returns:
            Capability descriptor
        """
        if actions is None:
            return cls()

        present = {}
        for field in fields(cls):
            if isinstance(actions, dict):
                candidate = actions.get(field.name)
            else:
                candidate = getattr(actions, field.name, None)
            present[field.name] = callable(candidate)
        return cls(**present)

    @property
    def ownership(self) -> bool:
        """Whether the host arbitrates ownership (check and claim both present)."""
        return self.check_terminal_ownership and self.claim_terminal_ownership

    def missing(self) -> List[str]:
        return [f.name for f in fields(self) if not getattr(self, f.name)]


class HostBridge:
    """
    Single entry point from panel components to the host actions.

    Lifecycle:
    - Created once per panel, capabilities detected at construction
    - Shared by the arbiter, the router and every tab controller

    Attributes:
        capabilities: Detected HostCapabilities
    """

    def __init__(self, actions: Any):
        self._actions = actions
        self.capabilities = HostCapabilities.detect(actions)

        missing = self.capabilities.missing()
        if missing:
            logger.info(f"[HostBridge] Host lacks optional actions: {', '.join(missing)}")

    def _action(self, name: str) -> Callable:
        if isinstance(self._actions, dict):
            return self._actions[name]
        return getattr(self._actions, name)

    # ========== Session Lifecycle ==========

    async def create_session(self, options: CreateTerminalSessionOptions) -> str:
        """
        Ask the host for a new session.

        Args:
            options: cwd / command / context for the new session

        Returns:
            Session id assigned by the host

        Raises:
            HostActionUnavailableError: If the host cannot create sessions
            SessionCreationError: If the host replied without a usable id
        """
        if not self.capabilities.create_terminal_session:
            raise HostActionUnavailableError("Terminal actions not available")

        session_id = await _resolve(self._action("create_terminal_session")(options))
        if not session_id:
            raise SessionCreationError("Host returned no session id")
        return str(session_id)

    async def destroy_session(self, session_id: str) -> None:
        if not self.capabilities.destroy_terminal_session:
            logger.debug(f"[HostBridge] destroy unavailable, skipping: session_id={session_id}")
            return
        await _resolve(self._action("destroy_terminal_session")(session_id))

    async def list_sessions(self) -> List[TerminalSession]:
        """
        List sessions known to the host.

        Entries that fail validation are skipped with a warning rather than
        failing the whole listing.
        """
        if not self.capabilities.list_terminal_sessions:
            return []

        raw_sessions = await _resolve(self._action("list_terminal_sessions")()) or []
        sessions = []
        for raw in raw_sessions:
            if isinstance(raw, TerminalSession):
                sessions.append(raw)
                continue
            try:
                sessions.append(TerminalSession.model_validate(raw))
            except ValidationError as e:
                logger.warning(f"[HostBridge] Skipping malformed session entry {raw!r}: {e}")
        return sessions

    # ========== Session I/O ==========

    async def write(self, session_id: str, data: str) -> None:
        if not self.capabilities.write_to_terminal:
            logger.debug(f"[HostBridge] write unavailable, input dropped: session_id={session_id}")
            return
        await _resolve(self._action("write_to_terminal")(session_id, data))

    async def resize(self, session_id: str, cols: int, rows: int) -> None:
        if not self.capabilities.resize_terminal:
            return
        await _resolve(self._action("resize_terminal")(session_id, cols, rows))

    async def refresh(self, session_id: str) -> bool:
        if not self.capabilities.refresh_terminal:
            return False
        return bool(await _resolve(self._action("refresh_terminal")(session_id)))

    def subscribe_data(self, session_id: str, callback: Callable[[str], None]) -> Optional[Callable[[], None]]:
        """
        Subscribe to a session's output through the host action.

        Returns:
            Unsubscribe callable, or None when the host has no data subscription
            (callers then listen to the terminal:data push event)
        """
        if not self.capabilities.on_terminal_data:
            return None
        unsubscribe = self._action("on_terminal_data")(session_id, callback)
        if callable(unsubscribe):
            return unsubscribe
        return lambda: None

    # ========== Ownership ==========

    async def check_ownership(self, session_id: str) -> OwnershipStatus:
        if not self.capabilities.check_terminal_ownership:
            return OwnershipStatus(
                exists=True,
                owned_by_window_id=None,
                owned_by_this_window=True,
                can_claim=True,
                owner_window_exists=True,
            )
        raw = await _resolve(self._action("check_terminal_ownership")(session_id))
        return raw if isinstance(raw, OwnershipStatus) else OwnershipStatus.model_validate(raw)

    async def claim_ownership(self, session_id: str, force: bool = False) -> OwnershipResult:
        if not self.capabilities.claim_terminal_ownership:
            return OwnershipResult(success=True)
        raw = await _resolve(self._action("claim_terminal_ownership")(session_id, force))
        return raw if isinstance(raw, OwnershipResult) else OwnershipResult.model_validate(raw)

    async def release_ownership(self, session_id: str) -> OwnershipResult:
        if not self.capabilities.release_terminal_ownership:
            return OwnershipResult(success=True)
        raw = await _resolve(self._action("release_terminal_ownership")(session_id))
        if raw is None:
            return OwnershipResult(success=True)
        return raw if isinstance(raw, OwnershipResult) else OwnershipResult.model_validate(raw)

