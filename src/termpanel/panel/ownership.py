"""Single-writer arbitration of sessions across windows.

Each window runs one OwnershipArbiter. It keeps an explicit state machine per
session (unclaimed / claimed_self / claimed_other) driven by claim and release
calls and by ownership-lost pushes from the host:

    Unclaimed --claimed--> Claimed(self) --lost--> Claimed(other)
        ^                     |    ^                     |
        +------released-------+    +------claimed--------+

Claimed(other) is left only through a successful claim.
"""

import logging
from typing import Callable, Dict, List, Optional, Tuple

from ..enums import ClaimFailureReason, OwnershipState, OwnershipTransition, TerminalEventType
from ..schema import OwnershipLostEvent, OwnershipResult, OwnershipStatus
from .events import PanelEventEmitter
from .host import HostBridge

logger = logging.getLogger(__name__)

OwnershipLostHandler = Callable[[OwnershipLostEvent], None]


_TRANSITIONS: Dict[Tuple[OwnershipState, OwnershipTransition], OwnershipState] = {
    (OwnershipState.UNCLAIMED, OwnershipTransition.CLAIMED): OwnershipState.CLAIMED_SELF,
    (OwnershipState.UNCLAIMED, OwnershipTransition.CLAIM_REJECTED): OwnershipState.CLAIMED_OTHER,
    (OwnershipState.UNCLAIMED, OwnershipTransition.RELEASED): OwnershipState.UNCLAIMED,
    (OwnershipState.UNCLAIMED, OwnershipTransition.LOST): OwnershipState.UNCLAIMED,

    (OwnershipState.CLAIMED_SELF, OwnershipTransition.CLAIMED): OwnershipState.CLAIMED_SELF,
    (OwnershipState.CLAIMED_SELF, OwnershipTransition.CLAIM_REJECTED): OwnershipState.CLAIMED_OTHER,
    (OwnershipState.CLAIMED_SELF, OwnershipTransition.RELEASED): OwnershipState.UNCLAIMED,
    (OwnershipState.CLAIMED_SELF, OwnershipTransition.LOST): OwnershipState.CLAIMED_OTHER,

    (OwnershipState.CLAIMED_OTHER, OwnershipTransition.CLAIMED): OwnershipState.CLAIMED_SELF,
    (OwnershipState.CLAIMED_OTHER, OwnershipTransition.CLAIM_REJECTED): OwnershipState.CLAIMED_OTHER,
    (OwnershipState.CLAIMED_OTHER, OwnershipTransition.RELEASED): OwnershipState.CLAIMED_OTHER,
    (OwnershipState.CLAIMED_OTHER, OwnershipTransition.LOST): OwnershipState.CLAIMED_OTHER,
}


def next_state(state: OwnershipState, transition: OwnershipTransition) -> OwnershipState:
    """Look up the successor state; the table covers every (state, transition) pair."""
    return _TRANSITIONS[(state, transition)]


class SessionOwnership:
    """
    Ownership record for one session as seen from this window.

    Attributes:
        session_id: Session identifier
        state: Current OwnershipState
        owner_window_id: Last known owner when state is CLAIMED_OTHER
    """

    def __init__(self, session_id: str):
        self.session_id = session_id
        self.state = OwnershipState.UNCLAIMED
        self.owner_window_id: Optional[int] = None

    def apply(self, transition: OwnershipTransition, owner_window_id: Optional[int] = None) -> OwnershipState:
        previous = self.state
        self.state = next_state(previous, transition)

        if self.state == OwnershipState.CLAIMED_OTHER:
            if owner_window_id is not None:
                self.owner_window_id = owner_window_id
        else:
            self.owner_window_id = None

        if previous != self.state:
            logger.debug(
                f"[SessionOwnership] {self.session_id}: {previous.value} "
                f"--{transition.value}--> {self.state.value}"
            )
        return self.state

    @property
    def is_owner(self) -> bool:
        return self.state == OwnershipState.CLAIMED_SELF


class OwnershipArbiter:
    """
    Per-window ownership arbiter.

    Architecture:
    - Reads and claims go through HostBridge (host-side arbitration is authoritative)
    - The local state machine mirrors the outcome of every call and push
    - Ownership-lost pushes arrive on the window's PanelEventEmitter

    Hosts without ownership actions get single-window semantics: every claim
    succeeds and this window is always the owner.

    Attributes:
        bridge: HostBridge shared with the rest of the panel
        events: Window-scoped push channel
    """

    def __init__(self, bridge: HostBridge, events: PanelEventEmitter):
        self.bridge = bridge
        self.events = events

        self._records: Dict[str, SessionOwnership] = {}
        self._lost_handlers: Dict[str, List[OwnershipLostHandler]] = {}

        self._unsubscribe_lost = events.on(TerminalEventType.OWNERSHIP_LOST, self._handle_ownership_lost)

    # ========== State Access ==========

    def record(self, session_id: str) -> SessionOwnership:
        if session_id not in self._records:
            self._records[session_id] = SessionOwnership(session_id)
        return self._records[session_id]

    def state(self, session_id: str) -> OwnershipState:
        record = self._records.get(session_id)
        return record.state if record else OwnershipState.UNCLAIMED

    def owns(self, session_id: str) -> bool:
        return self.state(session_id) == OwnershipState.CLAIMED_SELF

    # ========== Operations ==========

    async def check_ownership(self, session_id: str) -> OwnershipStatus:
        """
        Read who may write to a session and sync the local state with it.

        Args:
            session_id: Target session identifier

        Returns:
            OwnershipStatus reported by the host
        """
        status = await self.bridge.check_ownership(session_id)
        record = self.record(session_id)

        if not status.exists:
            record.apply(OwnershipTransition.RELEASED)
        elif status.owned_by_this_window:
            record.apply(OwnershipTransition.CLAIMED)
        elif status.owned_by_window_id is not None:
            record.apply(OwnershipTransition.CLAIM_REJECTED, status.owned_by_window_id)
        elif record.is_owner:
            record.apply(OwnershipTransition.RELEASED)

        return status

    async def claim_ownership(self, session_id: str, force: bool = False) -> OwnershipResult:
        """
        Claim the single-writer role for a session.

        Succeeds when the session is unowned or already ours. When another
        window owns it the claim succeeds only with ``force=True`` or when the
        owner's window no longer exists; otherwise the result carries
        ``reason='owned-elsewhere'``.

        Args:
            session_id: Target session identifier
            force: Explicit "take control" from the user

        Returns:
            OwnershipResult (host failures are reported as reason='host-error')
        """
        record = self.record(session_id)

        if not self.bridge.capabilities.ownership:
            record.apply(OwnershipTransition.CLAIMED)
            return OwnershipResult(success=True)

        try:
            status = await self.bridge.check_ownership(session_id)
        except Exception as e:
            logger.error(f"[OwnershipArbiter] Ownership check failed: session_id={session_id}: {e}")
            return OwnershipResult(success=False, reason=ClaimFailureReason.HOST_ERROR.value)

        if not status.exists:
            logger.info(f"[OwnershipArbiter] Session vanished before claim: session_id={session_id}")
            record.apply(OwnershipTransition.RELEASED)
            return OwnershipResult(success=False, reason=ClaimFailureReason.NOT_FOUND.value)

        if status.owned_by_this_window:
            record.apply(OwnershipTransition.CLAIMED)
            return OwnershipResult(success=True)

        owned_elsewhere = status.owned_by_window_id is not None
        orphaned = owned_elsewhere and not status.owner_alive

        if owned_elsewhere and not force and not orphaned:
            record.apply(OwnershipTransition.CLAIM_REJECTED, status.owned_by_window_id)
            return OwnershipResult(
                success=False,
                reason=ClaimFailureReason.OWNED_ELSEWHERE.value,
                owned_by_window_id=status.owned_by_window_id,
            )

        if orphaned:
            logger.info(
                f"[OwnershipArbiter] Taking over orphaned session: session_id={session_id}, "
                f"dead_owner={status.owned_by_window_id}"
            )

        try:
            result = await self.bridge.claim_ownership(session_id, force=force or orphaned)
        except Exception as e:
            logger.error(f"[OwnershipArbiter] Claim failed: session_id={session_id}: {e}")
            return OwnershipResult(success=False, reason=ClaimFailureReason.HOST_ERROR.value)

        if result.success:
            record.apply(OwnershipTransition.CLAIMED)
            logger.info(f"[OwnershipArbiter] Claimed: session_id={session_id}, force={force}")
        elif result.reason == ClaimFailureReason.NOT_FOUND.value:
            record.apply(OwnershipTransition.RELEASED)
        else:
            record.apply(OwnershipTransition.CLAIM_REJECTED, result.owned_by_window_id)
            logger.info(
                f"[OwnershipArbiter] Claim rejected: session_id={session_id}, "
                f"reason={result.reason}, owner={result.owned_by_window_id}"
            )
        return result

    async def release_ownership(self, session_id: str) -> OwnershipResult:
        """
        Release a session. Idempotent; releasing a session this window does
        not own is not an error.

        Args:
            session_id: Target session identifier

        Returns:
            OwnershipResult
        """
        record = self._records.get(session_id)
        if record is None or record.state != OwnershipState.CLAIMED_SELF:
            if record is not None:
                record.apply(OwnershipTransition.RELEASED)
            return OwnershipResult(success=True)

        record.apply(OwnershipTransition.RELEASED)
        try:
            result = await self.bridge.release_ownership(session_id)
        except Exception as e:
            logger.warning(f"[OwnershipArbiter] Release failed: session_id={session_id}: {e}")
            return OwnershipResult(success=False, reason=ClaimFailureReason.HOST_ERROR.value)

        logger.debug(f"[OwnershipArbiter] Released: session_id={session_id}")
        return result

    def forget(self, session_id: str) -> None:
        """Drop all local state for a session that no longer matters to this window."""
        self._records.pop(session_id, None)
        self._lost_handlers.pop(session_id, None)

    # ========== Eviction Notification ==========

    def on_ownership_lost(self, session_id: str, handler: OwnershipLostHandler) -> Callable[[], None]:
        """
        Register a handler fired when another window takes the session over.

        Args:
            session_id: Session this window currently owns
            handler: Callable receiving OwnershipLostEvent

        Returns:
            Unsubscribe callable
        """
        self._lost_handlers.setdefault(session_id, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._lost_handlers.get(session_id)
            if handlers and handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def _handle_ownership_lost(self, payload: dict) -> None:
        event = OwnershipLostEvent.model_validate(payload)
        record = self._records.get(event.session_id)
        if record is None:
            return

        was_owner = record.is_owner
        record.apply(OwnershipTransition.LOST, event.new_owner_window_id)
        if not was_owner:
            return

        logger.info(
            f"[OwnershipArbiter] Ownership lost: session_id={event.session_id}, "
            f"new_owner={event.new_owner_window_id}"
        )
        for handler in list(self._lost_handlers.get(event.session_id, ())):
            try:
                handler(event)
            except Exception as e:
                logger.error(f"[OwnershipArbiter] Ownership-lost handler failed: {e}", exc_info=True)

    def close(self) -> None:
        self._unsubscribe_lost()
        self._lost_handlers.clear()
