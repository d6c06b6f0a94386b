"""Tab management for the tabbed terminal panel.

The TabManager owns the ordered tab set, the single-active-tab invariant and
the tab-id → session-id binding. Other components read tabs (as copies) and
request changes through its methods; nothing else writes tab state.
"""

import asyncio
import logging
import os
import time
import uuid
from typing import Callable, Dict, List, Optional

from ..enums import PanelCommandType
from ..exception import TabNotFoundError
from ..schema import TerminalTab
from .command import PanelCommand

logger = logging.getLogger(__name__)

DEFAULT_TAB_LABEL = "Terminal"


def label_for_directory(directory: Optional[str]) -> str:
    """Last path segment of a directory, or the default label."""
    if not directory:
        return DEFAULT_TAB_LABEL
    name = os.path.basename(os.path.normpath(os.path.expanduser(directory)))
    return name or DEFAULT_TAB_LABEL


def new_tab_id() -> str:
    return f"tab-{uuid.uuid4().hex[:12]}"


class TabListener:
    """
    Observer of tab set changes. Override what you need.

    Notifications are delivered after the tab set already reflects the change.
    """

    def tab_added(self, tab: TerminalTab) -> None:
        pass

    def tab_closed(self, tab: TerminalTab) -> None:
        pass

    def active_changed(self, previous_id: Optional[str], current_id: Optional[str]) -> None:
        pass

    def tabs_changed(self, tabs: List[TerminalTab]) -> None:
        pass


class TabManager:
    """
    Ordered tab collection with exactly one active tab.

    Invariants:
    - Exactly one tab has is_active=True whenever the set is non-empty
    - Only this class writes the tab-id → session-id binding

    New-tab lock:
        add_tab() discards triggers fired within ``new_tab_lock_window``
        seconds of the previous accepted one, so one key chord cannot create
        two tabs through key-repeat or double dispatch. The lock is state of
        this instance, measured with an injectable monotonic clock.

    Command processing:
        Triggers enqueue PanelCommand objects with submit(); process() is the
        single entry point resolving them against the current tab set.

    Attributes:
        default_directory: Directory for tabs created without one
        new_tab_lock_window: Seconds during which repeated new-tab triggers are discarded
        keep_last_tab: Refuse to close the only remaining tab
    """

    def __init__(
        self,
        tabs: Optional[List[TerminalTab]] = None,
        default_directory: Optional[str] = None,
        new_tab_lock_window: float = 0.5,
        keep_last_tab: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_directory = default_directory
        self.new_tab_lock_window = new_tab_lock_window
        self.keep_last_tab = keep_last_tab

        self._clock = clock
        self._new_tab_locked_until: Optional[float] = None

        self._tabs: List[TerminalTab] = [tab.model_copy() for tab in (tabs or [])]
        self._active_tab_id: Optional[str] = None
        self._listeners: List[TabListener] = []
        self._commands: asyncio.Queue = asyncio.Queue()

        if self._tabs:
            active = next((t for t in self._tabs if t.is_active), self._tabs[0])
            self._set_active(active.id)

        logger.debug(f"[TabManager] Initialized with {len(self._tabs)} tabs")

    # ========== Listeners ==========

    def add_listener(self, listener: TabListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: TabListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, method: str, *args) -> None:
        for listener in list(self._listeners):
            try:
                getattr(listener, method)(*args)
            except Exception as e:
                logger.error(f"[TabManager] Listener {method} failed: {e}", exc_info=True)

    def _notify_changed(self) -> None:
        self._notify("tabs_changed", self.tabs)

    # ========== Read Access ==========

    @property
    def tabs(self) -> List[TerminalTab]:
        return [tab.model_copy() for tab in self._tabs]

    @property
    def active_tab_id(self) -> Optional[str]:
        return self._active_tab_id

    @property
    def active_tab(self) -> Optional[TerminalTab]:
        if self._active_tab_id is None:
            return None
        return self.get(self._active_tab_id)

    def __len__(self) -> int:
        return len(self._tabs)

    def get(self, tab_id: str) -> Optional[TerminalTab]:
        index = self.index_of(tab_id)
        return None if index is None else self._tabs[index].model_copy()

    def index_of(self, tab_id: str) -> Optional[int]:
        for index, tab in enumerate(self._tabs):
            if tab.id == tab_id:
                return index
        return None

    def session_id_for(self, tab_id: str) -> Optional[str]:
        index = self.index_of(tab_id)
        return None if index is None else self._tabs[index].session_id

    def tab_for_session(self, session_id: str) -> Optional[TerminalTab]:
        for tab in self._tabs:
            if tab.session_id == session_id:
                return tab.model_copy()
        return None

    def session_map(self) -> Dict[str, str]:
        return {tab.id: tab.session_id for tab in self._tabs if tab.session_id}

    # ========== Mutations ==========

    def _set_active(self, tab_id: Optional[str]) -> None:
        for tab in self._tabs:
            tab.is_active = tab.id == tab_id
        self._active_tab_id = tab_id

    def add_tab(
        self,
        label: Optional[str] = None,
        command: Optional[str] = None,
        directory: Optional[str] = None,
        guard: bool = True,
    ) -> Optional[TerminalTab]:
        """
        Append a tab and make it the active one.

        Args:
            label: Display label (defaults to the directory's last path segment)
            command: Command the tab's session should run
            directory: Working directory (defaults to default_directory)
            guard: Apply the new-tab lock window

        Returns:
            The new tab, or None when the trigger fell inside the lock window
        """
        if guard:
            now = self._clock()
            if self._new_tab_locked_until is not None and now < self._new_tab_locked_until:
                logger.debug("[TabManager] New-tab trigger discarded inside lock window")
                return None
            self._new_tab_locked_until = now + self.new_tab_lock_window

        resolved_directory = directory or self.default_directory
        tab = TerminalTab(
            id=new_tab_id(),
            label=label or label_for_directory(resolved_directory),
            directory=resolved_directory,
            command=command,
        )

        previous_id = self._active_tab_id
        self._tabs.append(tab)
        self._set_active(tab.id)

        logger.info(f"[TabManager] Tab added: tab_id={tab.id}, directory={resolved_directory}")

        self._notify("tab_added", tab.model_copy())
        self._notify("active_changed", previous_id, tab.id)
        self._notify_changed()
        return tab.model_copy()

    def switch_tab(self, tab_id: str) -> TerminalTab:
        """
        Make exactly the given tab active. Succeeds as a no-op when it already is.

        Raises:
            TabNotFoundError: If no tab has this id
        """
        index = self.index_of(tab_id)
        if index is None:
            raise TabNotFoundError(f"Tab not found: tab_id={tab_id}")

        previous_id = self._active_tab_id
        if previous_id == tab_id:
            return self._tabs[index].model_copy()

        self._set_active(tab_id)
        logger.debug(f"[TabManager] Switched tab: {previous_id} -> {tab_id}")

        self._notify("active_changed", previous_id, tab_id)
        self._notify_changed()
        return self._tabs[index].model_copy()

    def close_tab(self, tab_id: str) -> Optional[TerminalTab]:
        """
        Remove a tab.

        When the active tab is closed and tabs remain, the tab now at
        ``max(0, removed_index - 1)`` becomes active; activation never wraps
        to the end. With keep_last_tab the only remaining tab cannot be closed.

        Args:
            tab_id: Tab to close

        Returns:
            The removed tab (with its session binding), or None when refused

        Raises:
            TabNotFoundError: If no tab has this id
        """
        index = self.index_of(tab_id)
        if index is None:
            raise TabNotFoundError(f"Tab not found: tab_id={tab_id}")

        if self.keep_last_tab and len(self._tabs) <= 1:
            logger.debug(f"[TabManager] Refusing to close the last tab: tab_id={tab_id}")
            return None

        removed = self._tabs.pop(index)
        previous_id = self._active_tab_id

        if previous_id == tab_id:
            if self._tabs:
                self._set_active(self._tabs[max(0, index - 1)].id)
            else:
                self._set_active(None)

        removed.is_active = False
        logger.info(f"[TabManager] Tab closed: tab_id={tab_id}, session_id={removed.session_id}")

        self._notify("tab_closed", removed.model_copy())
        if previous_id != self._active_tab_id:
            self._notify("active_changed", previous_id, self._active_tab_id)
        self._notify_changed()
        return removed

    def bind_session(self, tab_id: str, session_id: str) -> bool:
        """
        Record the session created for a tab.

        Returns:
            False when the tab no longer exists; the binding is dropped
        """
        index = self.index_of(tab_id)
        if index is None:
            logger.info(
                f"[TabManager] Dropping session binding for closed tab: "
                f"tab_id={tab_id}, session_id={session_id}"
            )
            return False

        self._tabs[index].session_id = session_id
        self._notify_changed()
        return True

    # ========== Command Processing ==========

    def submit(self, command: PanelCommand) -> None:
        """Enqueue a command for the processor."""
        self._commands.put_nowait(command)

    def process(self, command: PanelCommand) -> bool:
        """
        Apply one command against the current tab set.

        Returns:
            True if the command changed the tab set
        """
        if command.type == PanelCommandType.NEW_TAB:
            return self.add_tab() is not None

        if command.type == PanelCommandType.CLOSE_ACTIVE:
            if self._active_tab_id is None:
                return False
            return self.close_tab(self._active_tab_id) is not None

        if command.type == PanelCommandType.SWITCH_LAST:
            if not self._tabs:
                return False
            target = self._tabs[-1].id
        elif command.type == PanelCommandType.SWITCH:
            if command.index is None or not 0 <= command.index < len(self._tabs):
                return False
            target = self._tabs[command.index].id
        else:
            logger.warning(f"[TabManager] Unknown command: {command}")
            return False

        changed = target != self._active_tab_id
        self.switch_tab(target)
        return changed

    async def process_pending(self) -> int:
        """Process every queued command. Returns how many were processed."""
        processed = 0
        while not self._commands.empty():
            command = self._commands.get_nowait()
            self._process_safely(command)
            processed += 1
        return processed

    async def run(self) -> None:
        """Consume commands forever (cancel the task to stop)."""
        logger.debug("[TabManager] Command processor started")
        try:
            while True:
                command = await self._commands.get()
                self._process_safely(command)
        except asyncio.CancelledError:
            logger.debug("[TabManager] Command processor cancelled")
            raise

    def _process_safely(self, command: PanelCommand) -> None:
        try:
            self.process(command)
        except Exception as e:
            logger.error(f"[TabManager] Command {command} failed: {e}", exc_info=True)
