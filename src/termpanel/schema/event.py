"""Host push-channel event payloads"""

from typing import Optional
from pydantic import Field

from .base import WireModel


class TerminalDataEvent(WireModel):
    """Payload of terminal:data"""
    session_id: str = Field(...)
    data: str = Field(default="")


class TerminalExitEvent(WireModel):
    """Payload of terminal:exit"""
    session_id: str = Field(...)
    exit_code: Optional[int] = Field(default=None)


class OwnershipLostEvent(WireModel):
    """Payload of terminal:ownershipLost"""
    session_id: str = Field(...)
    new_owner_window_id: Optional[int] = Field(default=None)
