"""Tabbed terminal panel: the per-window composition of the panel core.

Architecture:
    TabbedTerminalPanel (one per window)
        ├── HostBridge          capability-checked host actions
        ├── OwnershipArbiter    single-writer state per session
        ├── DataStreamRouter    session output → active owning tab
        ├── SessionRestorer     initial tab set
        ├── TabManager          ordered tabs, commands, keyboard
        └── TerminalTabController per tab (create → claim → subscribe → refresh)

All work runs on one asyncio event loop. Fire-and-forget work (session
creation, close/destroy) runs in tracked tasks whose failures are logged.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

from ..config import PanelConfig
from ..schema import OwnershipResult, TerminalTab
from .events import PanelEventEmitter
from .host import HostBridge
from .keyboard import KeyChord, command_for_chord
from .ownership import OwnershipArbiter
from .restore import RestorePlan, SessionRestorer
from .stream import DataStreamRouter
from .tabs import TabListener, TabManager
from .terminal_tab import RenderSurface, TerminalTabController
from .tools import PanelToolHandler

logger = logging.getLogger(__name__)

SurfaceFactory = Callable[[TerminalTab], RenderSurface]
TabsChangeCallback = Callable[[List[TerminalTab]], None]


class TabbedTerminalPanel(TabListener):
    """
    Multi-tab terminal panel for one window.

    Lifecycle:
    1. __init__() - wire components, nothing touches the host yet
    2. start() - restore tabs, start one controller per tab, start the command processor
    3. close() - window teardown: release every session without destroying it

    Attributes:
        events: Window-scoped push channel shared with the host
        config: PanelConfig for this window
        bridge: HostBridge over the host's actions
        arbiter: OwnershipArbiter of this window
        router: DataStreamRouter of this window
        tab_manager: TabManager (available after start())
    """

    def __init__(
        self,
        actions: Any,
        events: Optional[PanelEventEmitter] = None,
        config: Optional[PanelConfig] = None,
        initial_tabs: Optional[List[TerminalTab]] = None,
        on_tabs_change: Optional[TabsChangeCallback] = None,
        surface_factory: Optional[SurfaceFactory] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.events = events or PanelEventEmitter()
        self.config = config or PanelConfig()
        self.initial_tabs = initial_tabs
        self.on_tabs_change = on_tabs_change
        self.surface_factory = surface_factory or (lambda tab: RenderSurface())

        self.bridge = HostBridge(actions)
        self.arbiter = OwnershipArbiter(self.bridge, self.events)
        self.router = DataStreamRouter(self.bridge, self.events, refresh_delay=self.config.refresh_delay)
        self.restorer = SessionRestorer(
            self.bridge,
            context=self.config.context,
            show_all_terminals=self.config.show_all_terminals,
            default_directory=self.config.default_directory,
        )
        self.tools = PanelToolHandler(self)

        self.tab_manager: Optional[TabManager] = None
        self.controllers: Dict[str, TerminalTabController] = {}

        self._clock = clock
        self._tasks: Set[asyncio.Task] = set()
        self._command_task: Optional[asyncio.Task] = None
        self._started = False
        self._closed = False

    # ========== Lifecycle ==========

    async def start(self) -> RestorePlan:
        """
        Build the initial tab set and attach every tab to its session.

        Controllers start in background tasks, so a hung host call leaves only
        its own tab initializing.

        Returns:
            The RestorePlan that produced the initial tabs

        Raises:
            RuntimeError: If already started
        """
        if self._started:
            raise RuntimeError("Panel already started")
        self._started = True

        plan = await self.restorer.restore(self.initial_tabs)
        self.tab_manager = TabManager(
            tabs=plan.tabs,
            default_directory=self.config.default_directory,
            new_tab_lock_window=self.config.new_tab_lock_window,
            keep_last_tab=self.config.keep_last_tab,
            clock=self._clock,
        )
        self.tab_manager.add_listener(self)

        for tab in self.tab_manager.tabs:
            controller = self._create_controller(tab)
            self.spawn(controller.start(), f"start-{tab.id}")

        self._command_task = asyncio.create_task(self.tab_manager.run())
        self.tools.attach()
        self.tabs_changed(self.tab_manager.tabs)

        logger.info(
            f"[TabbedTerminalPanel] Started with {len(self.tab_manager)} tabs "
            f"(restored={plan.restored})"
        )
        return plan

    async def close(self) -> None:
        """
        Window teardown: release ownership of every session, destroy none.
        """
        if self._closed:
            return
        self._closed = True

        self.tools.detach()
        if self._command_task:
            self._command_task.cancel()
            try:
                await self._command_task
            except asyncio.CancelledError:
                pass

        controllers = list(self.controllers.values())
        self.controllers.clear()
        results = await asyncio.gather(
            *(controller.dispose(destroy_session=False) for controller in controllers),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                logger.error(f"[TabbedTerminalPanel] Controller teardown failed: {result}")

        await self.settle()
        self.router.close()
        self.arbiter.close()
        logger.info("[TabbedTerminalPanel] Closed")

    async def settle(self) -> None:
        """Wait until every tracked background task and pending refresh finished."""
        while True:
            pending = [t for t in self._tasks if not t.done()]
            pending += self.router.pending_refreshes()
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def spawn(self, coro: Awaitable, name: str) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)

        def task_done_callback(t: asyncio.Task) -> None:
            self._tasks.discard(t)
            if t.cancelled():
                return
            exc = t.exception()
            if exc:
                logger.error(
                    f"[TabbedTerminalPanel] Background task {name} failed: {exc}",
                    exc_info=(type(exc), exc, exc.__traceback__)
                )

        task.add_done_callback(task_done_callback)
        return task

    def _create_controller(self, tab: TerminalTab) -> TerminalTabController:
        controller = TerminalTabController(
            tab.id,
            self.tab_manager,
            self.bridge,
            self.arbiter,
            self.router,
            surface=self.surface_factory(tab),
            context=self.config.context,
        )
        self.controllers[tab.id] = controller
        return controller

    # ========== Read Access ==========

    @property
    def tabs(self) -> List[TerminalTab]:
        return self.tab_manager.tabs if self.tab_manager else []

    @property
    def active_tab_id(self) -> Optional[str]:
        return self.tab_manager.active_tab_id if self.tab_manager else None

    def controller(self, tab_id: str) -> Optional[TerminalTabController]:
        return self.controllers.get(tab_id)

    def controller_for_session(self, session_id: str) -> Optional[TerminalTabController]:
        tab = self.tab_manager.tab_for_session(session_id) if self.tab_manager else None
        return self.controllers.get(tab.id) if tab else None

    def _require_tabs(self) -> TabManager:
        if self.tab_manager is None:
            raise RuntimeError("Panel not started")
        return self.tab_manager

    # ========== Commands ==========

    def add_tab(
        self,
        label: Optional[str] = None,
        command: Optional[str] = None,
        directory: Optional[str] = None,
        guard: bool = True,
    ) -> Optional[TerminalTab]:
        return self._require_tabs().add_tab(label=label, command=command, directory=directory, guard=guard)

    def switch_tab(self, tab_id: str) -> TerminalTab:
        return self._require_tabs().switch_tab(tab_id)

    def close_tab(self, tab_id: str) -> Optional[TerminalTab]:
        return self._require_tabs().close_tab(tab_id)

    def handle_key(self, chord: Union[KeyChord, str]) -> bool:
        """
        Route a key chord to the command processor.

        Returns:
            True when the chord is a panel shortcut (the caller should stop
            propagating it), False otherwise
        """
        if isinstance(chord, str):
            chord = KeyChord.parse(chord)
        command = command_for_chord(chord)
        if command is None:
            return False
        self._require_tabs().submit(command)
        return True

    async def handle_user_input(self, tab_id: str, data: str) -> bool:
        controller = self.controllers.get(tab_id)
        if controller is None:
            return False
        return await controller.handle_user_input(data)

    async def handle_resize(self, tab_id: str, cols: int, rows: int) -> None:
        controller = self.controllers.get(tab_id)
        if controller is not None:
            await controller.handle_resize(cols, rows)

    async def take_control(self, tab_id: str) -> Optional[OwnershipResult]:
        controller = self.controllers.get(tab_id)
        if controller is None:
            return None
        return await controller.take_control()

    # ========== TabListener ==========

    def tab_added(self, tab: TerminalTab) -> None:
        controller = self._create_controller(tab)
        self.spawn(controller.start(), f"start-{tab.id}")

    def tab_closed(self, tab: TerminalTab) -> None:
        controller = self.controllers.pop(tab.id, None)
        if controller is None:
            return
        self.spawn(controller.dispose(destroy_session=True, session_id=tab.session_id), f"close-{tab.id}")

    def active_changed(self, previous_id: Optional[str], current_id: Optional[str]) -> None:
        previous = self.controllers.get(previous_id) if previous_id else None
        if previous is not None:
            previous.deactivate()
        current = self.controllers.get(current_id) if current_id else None
        if current is not None:
            current.activate()

    def tabs_changed(self, tabs: List[TerminalTab]) -> None:
        if self.on_tabs_change is None:
            return
        try:
            self.on_tabs_change(tabs)
        except Exception as e:
            logger.error(f"[TabbedTerminalPanel] on_tabs_change failed: {e}", exc_info=True)
