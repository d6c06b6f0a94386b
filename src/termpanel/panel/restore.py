"""Cold-start reconstruction of tabs from existing sessions."""

import logging
from dataclasses import dataclass
from typing import List, Optional

from ..schema import TerminalSession, TerminalTab
from .host import HostBridge
from .tabs import label_for_directory, new_tab_id

logger = logging.getLogger(__name__)


def matches_context(session: TerminalSession, context: Optional[str]) -> bool:
    """Prefix match of a session's context against the configured context."""
    return (session.context or "").startswith(context or "")


@dataclass
class RestorePlan:
    """
    Initial tab set for a panel.

    Attributes:
        tabs: Tabs in display order, exactly one active
        restored: True when the tabs were rebuilt from existing sessions
    """
    tabs: List[TerminalTab]
    restored: bool = False


class SessionRestorer:
    """
    Builds the initial tab set without creating or destroying sessions.

    Order of precedence:
    1. Explicit initial tabs supplied by the caller
    2. One tab per existing session whose context starts with ``context``
       (every session when ``show_all_terminals`` is set)
    3. A single fresh tab in the default directory

    Attributes:
        bridge: HostBridge used for listing sessions
        context: Context prefix selecting sessions
        show_all_terminals: Disable context filtering
        default_directory: Directory for the fallback tab
    """

    def __init__(
        self,
        bridge: HostBridge,
        context: Optional[str] = None,
        show_all_terminals: bool = False,
        default_directory: Optional[str] = None,
    ):
        self.bridge = bridge
        self.context = context
        self.show_all_terminals = show_all_terminals
        self.default_directory = default_directory

    async def restore(self, initial_tabs: Optional[List[TerminalTab]] = None) -> RestorePlan:
        """
        Compute the initial tab set.

        Args:
            initial_tabs: Explicit tabs that win over restoration

        Returns:
            RestorePlan with exactly one active tab
        """
        if initial_tabs:
            logger.info(f"[SessionRestorer] Using {len(initial_tabs)} explicit initial tabs")
            return RestorePlan(tabs=self._with_single_active(initial_tabs))

        sessions = await self._list_sessions()
        if not self.show_all_terminals:
            sessions = [s for s in sessions if matches_context(s, self.context)]

        if sessions:
            tabs = [
                TerminalTab(
                    id=new_tab_id(),
                    label=label_for_directory(session.cwd),
                    directory=session.cwd,
                    is_active=index == 0,
                    session_id=session.id,
                )
                for index, session in enumerate(sessions)
            ]
            logger.info(
                f"[SessionRestorer] Restored {len(tabs)} tabs "
                f"(context={self.context!r}, show_all={self.show_all_terminals})"
            )
            return RestorePlan(tabs=tabs, restored=True)

        logger.info("[SessionRestorer] Nothing to restore, starting with a fresh tab")
        return RestorePlan(tabs=[self.fresh_tab()])

    def fresh_tab(self) -> TerminalTab:
        return TerminalTab(
            id=new_tab_id(),
            label=label_for_directory(self.default_directory),
            directory=self.default_directory,
            is_active=True,
        )

    async def _list_sessions(self) -> List[TerminalSession]:
        try:
            return await self.bridge.list_sessions()
        except Exception as e:
            logger.warning(f"[SessionRestorer] Listing sessions failed, nothing restored: {e}")
            return []

    @staticmethod
    def _with_single_active(tabs: List[TerminalTab]) -> List[TerminalTab]:
        copies = [tab.model_copy() for tab in tabs]
        active = next((t for t in copies if t.is_active), copies[0])
        for tab in copies:
            tab.is_active = tab is active
        return copies
