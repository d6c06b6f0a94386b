"""Data stream routing from host sessions to tab renderers.

One host subscription per session; output is handed to at most one live
consumer (the active tab that owns the session). Replay of the session's
recent buffer is requested through ``schedule_refresh`` and arrives through
the same subscription, so a subscription must exist before any refresh.
"""

import asyncio
import logging
from typing import Callable, Dict, List, Optional

from ..enums import TerminalEventType
from ..schema import TerminalDataEvent, TerminalExitEvent
from .events import PanelEventEmitter
from .host import HostBridge

logger = logging.getLogger(__name__)

DataHandler = Callable[[str], None]
ExitHandler = Callable[[TerminalExitEvent], None]


class _Consumer:
    def __init__(self, on_data: DataHandler, accepts: Optional[Callable[[], bool]]):
        self.on_data = on_data
        self.accepts = accepts or (lambda: True)


class _SessionChannel:
    """Host subscription and consumers for one session."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        self.consumers: List[_Consumer] = []
        self.unsubscribe_host: Optional[Callable[[], None]] = None
        self.via_events = False
        self.refresh_task: Optional[asyncio.Task] = None
        self.before_replay: List[Callable[[], None]] = []


class DataStreamRouter:
    """
    Routes session output to the consumer that currently renders it.

    Architecture:
    - Host data arrives through HostBridge.subscribe_data, or through the
      terminal:data push event when the host has no subscription action
    - Each session has one channel; consumers are asked in subscription
      order and the first whose ``accepts()`` is true receives the data
    - Refresh requests are deferred by a grace delay and coalesced per session

    Attributes:
        bridge: HostBridge shared with the panel
        events: Window-scoped push channel
        refresh_delay: Default grace delay in seconds before a refresh
    """

    def __init__(self, bridge: HostBridge, events: PanelEventEmitter, refresh_delay: float = 0.3):
        self.bridge = bridge
        self.events = events
        self.refresh_delay = refresh_delay

        self._channels: Dict[str, _SessionChannel] = {}
        self._exit_handlers: Dict[str, List[ExitHandler]] = {}
        self._unsubscribe_events: Optional[Callable[[], None]] = None

        self._unsubscribe_exit = events.on(TerminalEventType.EXIT, self._handle_exit_event)

    # ========== Subscription ==========

    def subscribe(
        self,
        session_id: str,
        on_data: DataHandler,
        accepts: Optional[Callable[[], bool]] = None
    ) -> Callable[[], None]:
        """
        Attach a consumer to a session's output.

        The host subscription is created on the first consumer and torn down
        when the last one leaves.

        Args:
            session_id: Source session
            on_data: Called with each output chunk while this consumer is live
            accepts: Predicate telling whether the consumer is live right now
                     (active and owning); always live when omitted

        Returns:
            Unsubscribe callable (idempotent)
        """
        channel = self._channels.get(session_id)
        if channel is None:
            channel = self._open_channel(session_id)

        consumer = _Consumer(on_data, accepts)
        channel.consumers.append(consumer)

        def unsubscribe() -> None:
            self._remove_consumer(session_id, consumer)

        return unsubscribe

    def has_subscription(self, session_id: str) -> bool:
        channel = self._channels.get(session_id)
        return channel is not None and bool(channel.consumers)

    def _open_channel(self, session_id: str) -> _SessionChannel:
        channel = _SessionChannel(session_id)
        self._channels[session_id] = channel

        try:
            channel.unsubscribe_host = self.bridge.subscribe_data(
                session_id, lambda data: self._deliver(session_id, data)
            )
        except Exception as e:
            logger.warning(f"[DataStreamRouter] Host subscription failed: session_id={session_id}: {e}")
            channel.unsubscribe_host = None

        if channel.unsubscribe_host is None:
            channel.via_events = True
            if self._unsubscribe_events is None:
                self._unsubscribe_events = self.events.on(TerminalEventType.DATA, self._handle_data_event)

        logger.debug(
            f"[DataStreamRouter] Channel opened: session_id={session_id}, "
            f"via_events={channel.via_events}"
        )
        return channel

    def _remove_consumer(self, session_id: str, consumer: _Consumer) -> None:
        channel = self._channels.get(session_id)
        if channel is None or consumer not in channel.consumers:
            return

        channel.consumers.remove(consumer)
        if not channel.consumers:
            self._close_channel(channel)

    def _close_channel(self, channel: _SessionChannel) -> None:
        self._channels.pop(channel.session_id, None)

        if channel.refresh_task and not channel.refresh_task.done():
            channel.refresh_task.cancel()

        if channel.unsubscribe_host:
            try:
                channel.unsubscribe_host()
            except Exception as e:
                logger.warning(
                    f"[DataStreamRouter] Host unsubscribe failed: session_id={channel.session_id}: {e}"
                )

        if self._unsubscribe_events and not any(c.via_events for c in self._channels.values()):
            self._unsubscribe_events()
            self._unsubscribe_events = None

        logger.debug(f"[DataStreamRouter] Channel closed: session_id={channel.session_id}")

    # ========== Delivery ==========

    def _deliver(self, session_id: str, data: str) -> bool:
        channel = self._channels.get(session_id)
        if channel is None or not data:
            return False

        for consumer in list(channel.consumers):
            if not consumer.accepts():
                continue
            try:
                consumer.on_data(data)
            except Exception as e:
                logger.error(f"[DataStreamRouter] Consumer failed: session_id={session_id}: {e}", exc_info=True)
            return True

        return False

    def _handle_data_event(self, payload: dict) -> None:
        event = TerminalDataEvent.model_validate(payload)
        channel = self._channels.get(event.session_id)
        if channel is not None and channel.via_events:
            self._deliver(event.session_id, event.data)

    # ========== Replay ==========

    def schedule_refresh(
        self,
        session_id: str,
        delay: Optional[float] = None,
        before: Optional[Callable[[], None]] = None
    ) -> Optional[asyncio.Task]:
        """
        Ask the host to re-emit the session's recent buffer after a grace delay.

        Must be called from the event loop. A refresh already pending for the
        session is reused instead of issuing a second one.

        Args:
            session_id: Session to replay
            delay: Grace delay in seconds (defaults to refresh_delay)
            before: Called right before the host is asked to replay, so a
                    consumer can clear what it already rendered

        Returns:
            Task resolving to the host's answer, or None when there is no live
            subscription to receive the replay
        """
        channel = self._channels.get(session_id)
        if channel is None or not channel.consumers:
            logger.warning(f"[DataStreamRouter] Refresh without subscription refused: session_id={session_id}")
            return None

        if before is not None:
            channel.before_replay.append(before)

        if channel.refresh_task and not channel.refresh_task.done():
            return channel.refresh_task

        wait = self.refresh_delay if delay is None else delay
        task = asyncio.get_running_loop().create_task(self._run_refresh(channel, wait))
        channel.refresh_task = task
        return task

    def pending_refreshes(self) -> List[asyncio.Task]:
        return [
            channel.refresh_task
            for channel in self._channels.values()
            if channel.refresh_task and not channel.refresh_task.done()
        ]

    async def _run_refresh(self, channel: _SessionChannel, delay: float) -> bool:
        if delay > 0:
            await asyncio.sleep(delay)

        if self._channels.get(channel.session_id) is not channel:
            return False

        hooks, channel.before_replay = channel.before_replay, []
        for hook in hooks:
            try:
                hook()
            except Exception as e:
                logger.error(f"[DataStreamRouter] Replay hook failed: session_id={channel.session_id}: {e}", exc_info=True)

        try:
            refreshed = await self.bridge.refresh(channel.session_id)
        except Exception as e:
            logger.warning(f"[DataStreamRouter] Failed to refresh: session_id={channel.session_id}: {e}")
            return False

        logger.debug(f"[DataStreamRouter] Refreshed: session_id={channel.session_id}, result={refreshed}")
        return refreshed

    # ========== Exit Notification ==========

    def on_exit(self, session_id: str, handler: ExitHandler) -> Callable[[], None]:
        self._exit_handlers.setdefault(session_id, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._exit_handlers.get(session_id)
            if handlers and handler in handlers:
                handlers.remove(handler)
                if not handlers:
                    del self._exit_handlers[session_id]

        return unsubscribe

    def _handle_exit_event(self, payload: dict) -> None:
        event = TerminalExitEvent.model_validate(payload)
        handlers = list(self._exit_handlers.get(event.session_id, ()))
        if not handlers:
            return

        logger.info(f"[DataStreamRouter] Session exited: session_id={event.session_id}, code={event.exit_code}")
        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(f"[DataStreamRouter] Exit handler failed: {e}", exc_info=True)

    # ========== Teardown ==========

    def close(self) -> None:
        """Cancel pending refreshes and drop every subscription."""
        for channel in list(self._channels.values()):
            self._close_channel(channel)
        self._exit_handlers.clear()
        self._unsubscribe_exit()
