"""Enumeration types for the terminal panel"""
from enum import Enum


class OwnershipState(str, Enum):
    """Ownership state of one session as seen from one window

    UNCLAIMED: No window is known to own the session
    CLAIMED_SELF: This window is the single writer for the session
    CLAIMED_OTHER: Another window owns the session; leaving this state
                   requires a successful claim
    """
    UNCLAIMED = "unclaimed"
    CLAIMED_SELF = "claimed_self"
    CLAIMED_OTHER = "claimed_other"


class OwnershipTransition(str, Enum):
    """Inputs that drive the per-session ownership state machine

    CLAIMED: A claim attempt succeeded
    CLAIM_REJECTED: A claim attempt failed because another window owns the session
    RELEASED: This window released the session
    LOST: The host pushed an ownership-lost notification
    """
    CLAIMED = "claimed"
    CLAIM_REJECTED = "claim_rejected"
    RELEASED = "released"
    LOST = "lost"


class ClaimFailureReason(str, Enum):
    """Reasons carried by a failed OwnershipResult"""
    OWNED_ELSEWHERE = "owned-elsewhere"
    NOT_FOUND = "not-found"
    HOST_ERROR = "host-error"


class TabStatus(str, Enum):
    """Display state of a terminal tab

    INITIALIZING: Waiting for session creation or ownership claim
    READY: Session attached, output forwarded while the tab is active
    NOT_OWNER: Another window owns the session; a "take control" action is offered
    ERROR: Session could not be created or attached
    EXITED: The session's process exited; no further writes are attempted
    """
    INITIALIZING = "initializing"
    READY = "ready"
    NOT_OWNER = "not_owner"
    ERROR = "error"
    EXITED = "exited"


class TerminalEventType(str, Enum):
    """Event names on the host push channel"""
    DATA = "terminal:data"
    EXIT = "terminal:exit"
    OWNERSHIP_LOST = "terminal:ownershipLost"


class PanelCommandType(str, Enum):
    """Commands consumed by the tab manager's command processor"""
    NEW_TAB = "new-tab"
    CLOSE_ACTIVE = "close-active"
    SWITCH = "switch"
    SWITCH_LAST = "switch-last"
