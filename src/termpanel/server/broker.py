"""Window-level WebSocket message broker.

Each browser window holds one WebSocket connection. Panel components push
messages synchronously from the event loop; a forwarding task per window
drains the queue into the socket, so a slow client never blocks the panel.

Architecture:
    TabbedTerminalPanel (window N)
        WebSocketSurface.write() / show_status() / ...
            ↓ broker.push(window_id, msg)
            ↓ queue.put_nowait
        WindowMessageBroker._forward_messages(window_id)
            ↓ queue.get()
            ↓ websocket.send_json(msg)
        Browser
"""

import asyncio
import logging
from typing import Dict, Optional

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class WindowMessageBroker:
    """
    Message broker for window WebSocket connections.

    Managed by the FastAPI application (stored in app.state.window_broker).

    Responsibilities:
    - Track one WebSocket per window id
    - Queue outgoing messages per window
    - Forward queued messages to the socket in a background task
    """

    def __init__(self):
        # Window WebSocket connections: {window_id → WebSocket}
        self._websockets: Dict[int, WebSocket] = {}

        # Outgoing message queues: {window_id → asyncio.Queue}
        self._queues: Dict[int, asyncio.Queue] = {}

        # Forwarding tasks: {window_id → asyncio.Task}
        self._tasks: Dict[int, asyncio.Task] = {}

    async def connect_window(self, window_id: int, websocket: WebSocket) -> None:
        """
        Register a window connection and start forwarding its messages.

        Args:
            window_id: Window id assigned by the session directory
            websocket: Accepted WebSocket connection
        """
        if window_id in self._websockets:
            if self._websockets[window_id] is websocket:
                logger.warning(f"Window {window_id} WebSocket already registered, skipping")
                return
            await self.disconnect_window(window_id)

        self._websockets[window_id] = websocket
        self._queues[window_id] = asyncio.Queue()

        task = asyncio.create_task(self._forward_messages(window_id))
        self._tasks[window_id] = task

        def task_done_callback(t: asyncio.Task):
            if t.cancelled():
                return
            exc = t.exception()
            if exc:
                logger.error(
                    f"Forwarding task failed for window {window_id}: {exc}",
                    exc_info=(type(exc), exc, exc.__traceback__)
                )

        task.add_done_callback(task_done_callback)

        logger.info(f"Window {window_id} WebSocket connected")

    async def disconnect_window(self, window_id: int, websocket: Optional[WebSocket] = None) -> None:
        """
        Stop forwarding and forget a window connection.

        Args:
            window_id: Window id
            websocket: When given, only disconnect if it is the registered socket
        """
        registered = self._websockets.get(window_id)
        if registered is None:
            return
        if websocket is not None and registered is not websocket:
            logger.debug(f"Window {window_id} WebSocket mismatch, skipping disconnect")
            return

        task = self._tasks.pop(window_id, None)
        if task and not task.done():
            task.cancel()
            try:
                await asyncio.wait_for(task, timeout=1.0)
            except asyncio.CancelledError:
                logger.debug(f"Forwarding task cancelled for window {window_id}")
            except asyncio.TimeoutError:
                logger.warning(f"Task cancellation timed out for window {window_id}")

        del self._websockets[window_id]
        del self._queues[window_id]

        logger.info(f"Window {window_id} WebSocket disconnected")

    async def _forward_messages(self, window_id: int) -> None:
        queue = self._queues.get(window_id)
        if queue is None:
            logger.error(f"Queue not found for window {window_id}, task exiting")
            return

        try:
            while window_id in self._websockets:
                message = await queue.get()

                ws = self._websockets.get(window_id)
                if ws is None:
                    break

                try:
                    await ws.send_json(message)
                except Exception as e:
                    logger.error(f"Error forwarding message to window {window_id}: {e}")
                    break

                logger.debug(f"Sent to window {window_id}: type={message.get('type')}")
        except asyncio.CancelledError:
            logger.debug(f"Forwarding task cancelled for window {window_id}")
            raise
        finally:
            logger.debug(f"Forwarding task ended for window {window_id}")

    def push(self, window_id: int, message: dict) -> bool:
        """
        Queue a message for a window (event loop only).

        Returns:
            False when the window has no connection and the message was dropped
        """
        queue = self._queues.get(window_id)
        if queue is None:
            logger.debug(f"No WebSocket for window {window_id}, message dropped")
            return False
        queue.put_nowait(message)
        return True

    def is_window_connected(self, window_id: int) -> bool:
        return window_id in self._websockets

    async def disconnect_all(self) -> None:
        """Disconnect every window (application shutdown)."""
        window_ids = list(self._websockets.keys())
        for window_id in window_ids:
            await self.disconnect_window(window_id)
        logger.info(f"Disconnected all windows ({len(window_ids)} connections)")
