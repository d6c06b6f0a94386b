"""WebSocket API: one connection per panel window"""

import logging
from typing import Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from ..enums import TabStatus
from ..exception import TermPanelException
from ..panel import TabbedTerminalPanel, RenderSurface
from ..panel.tools import PANEL_ID
from .broker import WindowMessageBroker

logger = logging.getLogger(__name__)

router = APIRouter(tags=["WebSocket"])


class WebSocketSurface(RenderSurface):
    """Render surface that forwards everything to the window's WebSocket."""

    def __init__(self, broker: WindowMessageBroker, window_id: int, tab_id: str):
        self.broker = broker
        self.window_id = window_id
        self.tab_id = tab_id

    def _push(self, message_type: str, **payload) -> None:
        self.broker.push(self.window_id, {"type": message_type, "tab_id": self.tab_id, **payload})

    def write(self, data: str) -> None:
        self._push("terminal_output", data=data)

    def show_status(self, status: TabStatus, detail: Optional[str] = None) -> None:
        self._push("terminal_status", status=status.value, message=detail)

    def show_error(self, message: str) -> None:
        self._push("terminal_error", message=message)

    def clear(self) -> None:
        self._push("terminal_clear")

    def focus(self) -> None:
        self._push("terminal_focus")


def tabs_message(panel: TabbedTerminalPanel) -> dict:
    return {
        "type": "tabs",
        "active_tab_id": panel.active_tab_id,
        "tabs": [tab.model_dump() for tab in panel.tabs],
    }


@router.websocket("/ws/window")
async def websocket_window_endpoint(
    websocket: WebSocket,
    context: Optional[str] = Query(None, description="Context prefix for this window"),
    show_all: Optional[bool] = Query(None, description="Restore every session regardless of context"),
):
    """
    Window-level WebSocket endpoint.

    Each connection is one window: it registers with the session directory,
    runs its own TabbedTerminalPanel and receives every panel output through
    the WindowMessageBroker.

    Client → Server Message Format:
    {"type": "key", "chord": "ctrl+t"}
    {"type": "input", "tab_id": "tab-...", "data": "ls\\r"}
    {"type": "resize", "tab_id": "tab-...", "cols": 120, "rows": 40}
    {"type": "new_tab", "directory": "/repo", "command": null}
    {"type": "switch_tab", "tab_id": "tab-..."}
    {"type": "close_tab", "tab_id": "tab-..."}
    {"type": "take_control", "tab_id": "tab-..."}
    {"type": "tool", "action": "create-session", "payload": {"cwd": "/repo"}}

    ``tab_id`` defaults to the active tab.

    Server → Client Message Format:
    {"type": "window", "window_id": 1}
    {"type": "tabs", "active_tab_id": "...", "tabs": [...]}
    {"type": "terminal_output", "tab_id": "...", "data": "..."}
    {"type": "terminal_status", "tab_id": "...", "status": "ready", "message": null}
    {"type": "terminal_error", "tab_id": "...", "message": "..."}
    {"type": "error", "code": "...", "message": "..."}
    """
    directory = websocket.app.state.session_directory
    broker: WindowMessageBroker = websocket.app.state.window_broker
    config = websocket.app.state.panel_config

    overrides = {}
    if context is not None:
        overrides["context"] = context
    if show_all is not None:
        overrides["show_all_terminals"] = show_all
    if overrides:
        config = config.model_copy(update=overrides)

    await websocket.accept()

    actions, events = directory.open_window()
    window_id = actions.window_id
    await broker.connect_window(window_id, websocket)
    broker.push(window_id, {"type": "window", "window_id": window_id})

    panel = TabbedTerminalPanel(
        actions,
        events=events,
        config=config,
        surface_factory=lambda tab: WebSocketSurface(broker, window_id, tab.id),
    )
    panel.on_tabs_change = lambda tabs: broker.push(window_id, tabs_message(panel))

    try:
        await panel.start()

        while True:
            try:
                data = await websocket.receive_json()
            except WebSocketDisconnect:
                logger.info(f"Window {window_id} WebSocket disconnected normally")
                break

            try:
                await _dispatch(panel, data)
            except TermPanelException as e:
                broker.push(window_id, {"type": "error", "code": e.code, "message": e.message})
            except Exception as e:
                logger.error(f"Failed to handle message from window {window_id}: {e}", exc_info=True)
                broker.push(window_id, {"type": "error", "code": "INTERNAL_ERROR", "message": str(e)})

    except Exception as e:
        logger.error(f"Unexpected error in window {window_id} connection: {e}", exc_info=True)
    finally:
        await panel.close()
        directory.close_window(window_id)
        await broker.disconnect_window(window_id, websocket)
        logger.info(f"Window {window_id} WebSocket connection closed")


async def _dispatch(panel: TabbedTerminalPanel, data: dict) -> None:
    message_type = data.get("type")
    tab_id = data.get("tab_id") or panel.active_tab_id

    if message_type == "key":
        panel.handle_key(data.get("chord", ""))
    elif message_type == "input":
        await panel.handle_user_input(tab_id, data.get("data", ""))
    elif message_type == "resize":
        await panel.handle_resize(tab_id, int(data["cols"]), int(data["rows"]))
    elif message_type == "new_tab":
        panel.add_tab(directory=data.get("directory"), command=data.get("command"))
    elif message_type == "switch_tab":
        panel.switch_tab(tab_id)
    elif message_type == "close_tab":
        panel.close_tab(tab_id)
    elif message_type == "take_control":
        await panel.take_control(tab_id)
    elif message_type == "tool":
        panel.events.emit(f"{PANEL_ID}:{data.get('action')}", data.get("payload") or {})
    else:
        raise ValueError(f"Unknown message type: {message_type}")
