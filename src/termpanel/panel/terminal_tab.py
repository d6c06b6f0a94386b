"""Per-tab session lifecycle: create, claim, subscribe, replay, exit.

A TerminalTabController binds one tab to its session and its render surface.
Sequence on start:

1. Create a session through the host unless the tab already has one (restore)
2. Record the binding through the TabManager (dropped if the tab was closed)
3. Claim ownership; on conflict show a "take control" affordance
4. Subscribe to the session's output, then request a replay if the tab is visible

A controller torn down while any of these steps is in flight ignores the
late results.
"""

import asyncio
import logging
from typing import Callable, List, Optional

from ..enums import ClaimFailureReason, TabStatus
from ..schema import CreateTerminalSessionOptions, OwnershipLostEvent, OwnershipResult, TerminalExitEvent
from .host import HostBridge
from .ownership import OwnershipArbiter
from .stream import DataStreamRouter
from .tabs import TabManager

logger = logging.getLogger(__name__)


class RenderSurface:
    """
    Rendering collaborator of one tab.

    The presentation layer subclasses this; the base class renders nothing.
    Input flows the other way: the presentation calls the controller's
    handle_user_input() and handle_resize().
    """

    def write(self, data: str) -> None:
        pass

    def show_status(self, status: TabStatus, detail: Optional[str] = None) -> None:
        pass

    def show_error(self, message: str) -> None:
        pass

    def clear(self) -> None:
        pass

    def focus(self) -> None:
        pass


class TerminalTabController:
    """
    Glue between one tab, its session and its render surface.

    Attributes:
        tab_id: Tab this controller serves
        surface: Render surface of the tab
        status: Current TabStatus
        error: Message shown for ERROR / EXITED
        exit_code: Exit code once the session exited
        owner_window_id: Window holding the session while status is NOT_OWNER
    """

    def __init__(
        self,
        tab_id: str,
        tabs: TabManager,
        bridge: HostBridge,
        arbiter: OwnershipArbiter,
        router: DataStreamRouter,
        surface: Optional[RenderSurface] = None,
        context: Optional[str] = None,
    ):
        self.tab_id = tab_id
        self.tabs = tabs
        self.bridge = bridge
        self.arbiter = arbiter
        self.router = router
        self.surface = surface or RenderSurface()
        self.context = context

        self.status = TabStatus.INITIALIZING
        self.error: Optional[str] = None
        self.exit_code: Optional[int] = None
        self.owner_window_id: Optional[int] = None

        self._alive = True
        self._started = False
        self._disposed = False
        self._attached_session_id: Optional[str] = None
        self._unsubscribers: List[Callable[[], None]] = []
        self._rendered = False
        self._settled = asyncio.Event()

    # ========== State ==========

    @property
    def session_id(self) -> Optional[str]:
        return self.tabs.session_id_for(self.tab_id)

    @property
    def is_active(self) -> bool:
        return self.tabs.active_tab_id == self.tab_id

    @property
    def alive(self) -> bool:
        return self._alive

    def _is_live(self) -> bool:
        """Whether output should reach this tab's surface right now."""
        return (
            self._alive
            and self.status == TabStatus.READY
            and self.is_active
            and self._attached_session_id is not None
            and self.arbiter.owns(self._attached_session_id)
        )

    def _set_status(self, status: TabStatus, detail: Optional[str] = None) -> None:
        self.status = status
        logger.debug(f"[TerminalTab] {self.tab_id}: status={status.value}")
        try:
            self.surface.show_status(status, detail)
        except Exception as e:
            logger.error(f"[TerminalTab] Surface show_status failed: {e}", exc_info=True)

    def _fail(self, status: TabStatus, message: str) -> None:
        self.error = message
        self._set_status(status, message)
        try:
            self.surface.show_error(message)
        except Exception as e:
            logger.error(f"[TerminalTab] Surface show_error failed: {e}", exc_info=True)

    # ========== Lifecycle ==========

    async def start(self) -> None:
        """
        Create (or adopt) the tab's session and attach to it.

        Session creation failures leave the tab in ERROR without retrying.
        """
        if self._started or not self._alive:
            self._settled.set()
            return
        self._started = True
        self._set_status(TabStatus.INITIALIZING)

        try:
            session_id = self.session_id
            if session_id is None:
                session_id = await self._create_session()
                if session_id is None:
                    return

            await self._claim_and_attach(session_id, force=False)
        finally:
            self._settled.set()

    async def wait_started(self) -> Optional[str]:
        """Wait for start() to finish and return the bound session id, if any."""
        await self._settled.wait()
        return self.session_id if self._alive else None

    async def _create_session(self) -> Optional[str]:
        tab = self.tabs.get(self.tab_id)
        if tab is None:
            return None

        options = CreateTerminalSessionOptions(
            cwd=tab.directory,
            command=tab.command,
            context=self.context,
        )
        try:
            session_id = await self.bridge.create_session(options)
        except Exception as e:
            if self._alive:
                logger.error(f"[TerminalTab] Session creation failed: tab_id={self.tab_id}: {e}")
                self._fail(TabStatus.ERROR, getattr(e, "message", None) or str(e))
            return None

        if not self._alive or not self.tabs.bind_session(self.tab_id, session_id):
            self._alive = False
            logger.info(
                f"[TerminalTab] Discarding session created after teardown: "
                f"tab_id={self.tab_id}, session_id={session_id}"
            )
            try:
                await self.bridge.destroy_session(session_id)
            except Exception as e:
                logger.error(f"[TerminalTab] Failed to destroy session {session_id}: {e}")
            return None

        logger.info(f"[TerminalTab] Session created: tab_id={self.tab_id}, session_id={session_id}")
        return session_id

    async def _claim_and_attach(self, session_id: str, force: bool) -> OwnershipResult:
        result = await self.arbiter.claim_ownership(session_id, force=force)
        if not self._alive:
            if result.success:
                # Torn down mid-claim: hand the session back
                await self.arbiter.release_ownership(session_id)
            return result

        if result.success:
            self.owner_window_id = None
            self.error = None
            self._attach(session_id)
            self._set_status(TabStatus.READY)
            if self.is_active:
                self._request_refresh()
        elif result.reason == ClaimFailureReason.OWNED_ELSEWHERE.value:
            self.owner_window_id = result.owned_by_window_id
            self._set_status(TabStatus.NOT_OWNER, self._owner_detail())
        elif result.reason == ClaimFailureReason.NOT_FOUND.value:
            self._fail(TabStatus.ERROR, "Terminal session no longer exists")
        else:
            self._fail(TabStatus.ERROR, f"Could not attach to terminal ({result.reason})")
        return result

    def _attach(self, session_id: str) -> None:
        if self._attached_session_id == session_id:
            return
        self._detach()

        # Subscribe strictly before any refresh so the replay has a receiver
        self._unsubscribers.append(self.router.subscribe(session_id, self._on_data, accepts=self._is_live))
        self._unsubscribers.append(self.router.on_exit(session_id, self._on_exit))
        self._unsubscribers.append(self.arbiter.on_ownership_lost(session_id, self._on_ownership_lost))
        self._attached_session_id = session_id

    def _detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            try:
                unsubscribe()
            except Exception as e:
                logger.warning(f"[TerminalTab] Unsubscribe failed: {e}")
        self._unsubscribers.clear()
        self._attached_session_id = None

    def _request_refresh(self) -> Optional[asyncio.Task]:
        if self._attached_session_id is None:
            return None
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"[TerminalTab] No running loop, refresh skipped: tab_id={self.tab_id}")
            return None
        return self.router.schedule_refresh(self._attached_session_id, before=self._clear_for_replay)

    def _clear_for_replay(self) -> None:
        """Drop what the surface already shows so the replay does not repeat it."""
        if not self._rendered or not self._is_live():
            return
        self._rendered = False
        try:
            self.surface.clear()
        except Exception as e:
            logger.error(f"[TerminalTab] Surface clear failed: {e}", exc_info=True)

    async def dispose(self, destroy_session: bool = False, session_id: Optional[str] = None) -> None:
        """
        Tear the controller down.

        Ownership is always released; the session itself is destroyed only for
        an explicit close. Host failures are logged and cleanup proceeds.

        Args:
            destroy_session: Also ask the host to destroy the session
            session_id: Session the tab was bound to, used when the controller
                        is not attached (not owner, exited, claim pending)
        """
        if self._disposed:
            return
        self._disposed = True
        self._alive = False
        self._settled.set()
        session_id = self._attached_session_id or session_id or self.session_id
        self._detach()

        if session_id is None:
            return

        await self.arbiter.release_ownership(session_id)

        if destroy_session:
            try:
                await self.bridge.destroy_session(session_id)
                logger.info(f"[TerminalTab] Session destroyed: session_id={session_id}")
            except Exception as e:
                logger.error(f"[TerminalTab] Failed to destroy session {session_id}: {e}")

        self.arbiter.forget(session_id)

    # ========== Visibility ==========

    def activate(self) -> None:
        """The tab became visible: focus the surface and replay the buffer."""
        if not self._alive:
            return
        try:
            self.surface.focus()
        except Exception as e:
            logger.error(f"[TerminalTab] Surface focus failed: {e}", exc_info=True)

        if self.status == TabStatus.READY:
            self._request_refresh()

    def deactivate(self) -> None:
        """The tab was hidden; output stops flowing through _is_live()."""

    # ========== Input ==========

    async def handle_user_input(self, data: str) -> bool:
        """
        Forward user input while this tab is the session's writer.

        Returns:
            True if the input was handed to the host
        """
        session_id = self._attached_session_id
        if self.status != TabStatus.READY or session_id is None or not self.arbiter.owns(session_id):
            logger.debug(f"[TerminalTab] Input dropped: tab_id={self.tab_id}, status={self.status.value}")
            return False

        try:
            await self.bridge.write(session_id, data)
        except Exception as e:
            logger.warning(f"[TerminalTab] Write failed: session_id={session_id}: {e}")
            return False
        return True

    async def handle_resize(self, cols: int, rows: int) -> None:
        session_id = self._attached_session_id
        if self.status != TabStatus.READY or session_id is None:
            return
        try:
            await self.bridge.resize(session_id, cols, rows)
        except Exception as e:
            logger.warning(f"[TerminalTab] Resize failed: session_id={session_id}: {e}")

    async def take_control(self) -> OwnershipResult:
        """
        Force-claim the session after another window took it (user action).

        Returns:
            OwnershipResult of the forced claim
        """
        session_id = self.session_id
        if session_id is None or not self._alive:
            return OwnershipResult(success=False, reason=ClaimFailureReason.NOT_FOUND.value)
        if self.status in (TabStatus.EXITED, TabStatus.ERROR):
            return OwnershipResult(success=False, reason=ClaimFailureReason.NOT_FOUND.value)

        logger.info(f"[TerminalTab] Taking control: tab_id={self.tab_id}, session_id={session_id}")
        return await self._claim_and_attach(session_id, force=True)

    # ========== Session Callbacks ==========

    def _on_data(self, data: str) -> None:
        self._rendered = True
        self.surface.write(data)

    def _on_exit(self, event: TerminalExitEvent) -> None:
        if not self._alive:
            return
        self.exit_code = event.exit_code
        self._detach()
        if event.exit_code is None:
            self._fail(TabStatus.EXITED, "Terminal session ended")
        else:
            self._fail(TabStatus.EXITED, f"Terminal exited with code {event.exit_code}")

    def _on_ownership_lost(self, event: OwnershipLostEvent) -> None:
        if not self._alive or self.status != TabStatus.READY:
            return
        self.owner_window_id = event.new_owner_window_id
        self._set_status(TabStatus.NOT_OWNER, self._owner_detail())

    def _owner_detail(self) -> str:
        if self.owner_window_id is None:
            return "Terminal is controlled by another window"
        return f"Terminal is controlled by window {self.owner_window_id}"
