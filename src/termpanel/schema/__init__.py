"""
Schema package for panel, host and API models.
"""

from .session import CreateTerminalSessionOptions, TerminalSession
from .tab import TerminalTab
from .ownership import OwnershipStatus, OwnershipResult
from .event import TerminalDataEvent, TerminalExitEvent, OwnershipLostEvent
from .response import BaseResponse, SuccessResponse, ErrorResponse

__all__ = [
    # Session schemas
    "CreateTerminalSessionOptions",
    "TerminalSession",
    # Tab schemas
    "TerminalTab",
    # Ownership schemas
    "OwnershipStatus",
    "OwnershipResult",
    # Event payloads
    "TerminalDataEvent",
    "TerminalExitEvent",
    "OwnershipLostEvent",
    # Response schemas
    "BaseResponse",
    "SuccessResponse",
    "ErrorResponse",
]
