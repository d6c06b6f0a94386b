"""Push channel between the host and a panel.

The host emits ``terminal:data``, ``terminal:exit`` and
``terminal:ownershipLost`` events; panel components register handlers with
``on()`` and keep the returned callable to unsubscribe.
"""

import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Union

logger = logging.getLogger(__name__)

EventHandler = Callable[[dict], Any]


def _event_name(event_type: Union[str, Enum]) -> str:
    return event_type.value if isinstance(event_type, Enum) else event_type


class PanelEventEmitter:
    """
    Synchronous event emitter scoped to one window.

    Handlers receive the raw payload dict. A failing handler is logged and
    does not prevent delivery to the remaining handlers, so an error in one
    tab never leaks into another.
    """

    def __init__(self):
        self._handlers: Dict[str, List[EventHandler]] = {}

    def on(self, event_type: str, handler: EventHandler) -> Callable[[], None]:
        """
        Register a handler.

        Args:
            event_type: Event name (e.g. "terminal:data")
            handler: Callable receiving the payload dict

        Returns:
            Callable that removes this handler (safe to call twice)
        """
        self._handlers.setdefault(_event_name(event_type), []).append(handler)

        def unsubscribe() -> None:
            self.off(event_type, handler)

        return unsubscribe

    def off(self, event_type: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(_event_name(event_type))
        if not handlers:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            pass
        if not handlers:
            del self._handlers[_event_name(event_type)]

    def emit(self, event_type: str, payload: dict) -> int:
        """
        Deliver an event to every registered handler.

        Args:
            event_type: Event name
            payload: Event payload

        Returns:
            Number of handlers invoked
        """
        # Copy so handlers may unsubscribe while being dispatched
        handlers = list(self._handlers.get(_event_name(event_type), ()))
        for handler in handlers:
            try:
                handler(payload)
            except Exception as e:
                logger.error(
                    f"[PanelEventEmitter] Handler failed for {event_type}: {e}",
                    exc_info=True
                )
        return len(handlers)

    def listener_count(self, event_type: str) -> int:
        return len(self._handlers.get(_event_name(event_type), ()))
