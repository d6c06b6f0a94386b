"""Terminal tab schema"""

from typing import Optional
from pydantic import Field

from .base import WireModel


class TerminalTab(WireModel):
    """A UI slot bound to at most one session

    ``session_id`` stays unset until the asynchronous create call resolves.
    Only the TabManager mutates tabs; readers receive copies.
    """
    id: str = Field(..., description="Unique tab identifier")
    label: str = Field(..., description="Display label")
    directory: Optional[str] = Field(default=None, description="Working directory for the tab's session")
    command: Optional[str] = Field(default=None, description="Command the session should run")
    is_active: bool = Field(default=False, description="Whether this tab is the visible one")
    session_id: Optional[str] = Field(default=None, description="Bound session id")
