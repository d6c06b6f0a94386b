"""Panel tools: agent-invocable actions expressed as panel events.

Each tool describes its inputs and outputs as JSON schema and names the panel
event that carries the call. PanelToolHandler listens for those events on a
panel's push channel and applies them to the panel.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from .panel import TabbedTerminalPanel

logger = logging.getLogger(__name__)

PANEL_ID = "termpanel.tabbed-terminal"


class ToolCallTemplate(BaseModel):
    call_template_type: str = "panel_event"
    event_type: str


class PanelTool(BaseModel):
    """Description of one tool exposed by the panel."""
    name: str
    description: str
    inputs: dict
    outputs: dict = Field(default_factory=lambda: {
        "type": "object",
        "properties": {"success": {"type": "boolean"}},
    })
    tags: List[str] = Field(default_factory=list)
    tool_call_template: ToolCallTemplate


class PanelToolsMetadata(BaseModel):
    """Registration record for a tool registry."""
    id: str
    name: str
    description: str
    tools: List[PanelTool]


def _event(action: str) -> str:
    return f"{PANEL_ID}:{action}"


def _session_id_input(description: str, required: bool = True) -> dict:
    return {
        "type": "object",
        "properties": {"sessionId": {"type": "string", "description": description}},
        "required": ["sessionId"] if required else [],
    }


CREATE_TERMINAL_SESSION_TOOL = PanelTool(
    name="create_terminal_session",
    description="Creates a new terminal session in a new tab in the specified directory",
    inputs={
        "type": "object",
        "properties": {
            "cwd": {"type": "string", "description": "The working directory for the terminal session"},
            "name": {"type": "string", "description": "Optional name for the terminal tab"},
        },
        "required": ["cwd"],
    },
    outputs={
        "type": "object",
        "properties": {"success": {"type": "boolean"}, "sessionId": {"type": "string"}},
    },
    tags=["terminal", "session", "create"],
    tool_call_template=ToolCallTemplate(event_type=_event("create-session")),
)

WRITE_TO_TERMINAL_TOOL = PanelTool(
    name="write_to_terminal",
    description="Writes data to an active terminal session",
    inputs={
        "type": "object",
        "properties": {
            "sessionId": {"type": "string", "description": "The ID of the terminal session to write to"},
            "data": {"type": "string", "description": "The data to write to the terminal"},
        },
        "required": ["sessionId", "data"],
    },
    tags=["terminal", "write", "input"],
    tool_call_template=ToolCallTemplate(event_type=_event("write")),
)

CLOSE_TERMINAL_SESSION_TOOL = PanelTool(
    name="close_terminal_session",
    description="Closes a terminal session and its tab",
    inputs=_session_id_input("The ID of the terminal session to close"),
    tags=["terminal", "session", "close"],
    tool_call_template=ToolCallTemplate(event_type=_event("close-session")),
)

CLEAR_TERMINAL_TOOL = PanelTool(
    name="clear_terminal",
    description="Clears the terminal screen",
    inputs=_session_id_input("The ID of the terminal session to clear"),
    tags=["terminal", "clear"],
    tool_call_template=ToolCallTemplate(event_type=_event("clear")),
)

FOCUS_TERMINAL_TOOL = PanelTool(
    name="focus_terminal",
    description="Brings the tab of a terminal session to the foreground",
    inputs=_session_id_input("The ID of the terminal session to focus", required=False),
    tags=["terminal", "focus", "navigation"],
    tool_call_template=ToolCallTemplate(event_type=_event("focus")),
)

PANEL_TOOLS: List[PanelTool] = [
    CREATE_TERMINAL_SESSION_TOOL,
    WRITE_TO_TERMINAL_TOOL,
    CLOSE_TERMINAL_SESSION_TOOL,
    CLEAR_TERMINAL_TOOL,
    FOCUS_TERMINAL_TOOL,
]

PANEL_TOOLS_METADATA = PanelToolsMetadata(
    id=PANEL_ID,
    name="Tabbed Terminal Panel",
    description="Tools provided by the tabbed terminal panel",
    tools=PANEL_TOOLS,
)


class PanelToolHandler:
    """
    Applies tool events to a panel.

    Attach after the panel started; detach on teardown. Events naming a
    session the panel does not show are ignored with a log line.
    """

    def __init__(self, panel: 'TabbedTerminalPanel'):
        self.panel = panel
        self._unsubscribers: List[Callable[[], None]] = []

    def attach(self) -> None:
        handlers: Dict[str, Callable[[dict], None]] = {
            _event("create-session"): self.handle_create_session,
            _event("write"): self.handle_write,
            _event("close-session"): self.handle_close_session,
            _event("clear"): self.handle_clear,
            _event("focus"): self.handle_focus,
        }
        for event_type, handler in handlers.items():
            self._unsubscribers.append(self.panel.events.on(event_type, handler))

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    def _controller(self, payload: dict):
        session_id = (payload or {}).get("sessionId")
        if not session_id:
            return None
        controller = self.panel.controller_for_session(session_id)
        if controller is None:
            logger.info(f"[PanelToolHandler] No tab shows session {session_id}")
        return controller

    def handle_create_session(self, payload: dict) -> asyncio.Task:
        return self.panel.spawn(self.create_session(payload), "tool-create-session")

    async def create_session(self, payload: dict) -> Optional[str]:
        """
        Open a tab for a new session and wait for the session to exist.

        Returns:
            The new session id, or None when the tab could not get one
        """
        payload = payload or {}
        tab = self.panel.add_tab(label=payload.get("name"), directory=payload.get("cwd"), guard=False)
        controller = self.panel.controller(tab.id) if tab else None
        if controller is None:
            return None
        return await controller.wait_started()

    def handle_write(self, payload: dict) -> None:
        controller = self._controller(payload)
        if controller is not None:
            self.panel.spawn(controller.handle_user_input(payload.get("data", "")), "tool-write")

    def handle_close_session(self, payload: dict) -> None:
        controller = self._controller(payload)
        if controller is not None:
            self.panel.close_tab(controller.tab_id)

    def handle_clear(self, payload: dict) -> None:
        controller = self._controller(payload)
        if controller is not None:
            controller.surface.clear()

    def handle_focus(self, payload: dict) -> None:
        controller = self._controller(payload)
        if controller is not None:
            self.panel.switch_tab(controller.tab_id)
            return
        active_id = self.panel.active_tab_id
        active = self.panel.controller(active_id) if active_id else None
        if active is not None:
            active.activate()
