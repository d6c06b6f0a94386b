"""Terminal session schemas"""

from datetime import datetime
from typing import Optional
from pydantic import Field

from .base import WireModel


class CreateTerminalSessionOptions(WireModel):
    """Options passed to the host's create_terminal_session action"""
    cwd: Optional[str] = Field(default=None, description="Working directory for the shell")
    command: Optional[str] = Field(default=None, description="Command to run instead of an interactive shell")
    context: Optional[str] = Field(default=None, description="Grouping key used for restore filtering")


class TerminalSession(WireModel):
    """A session known to the session directory

    Identity is ``id``, assigned by the directory. ``context`` is an opaque
    grouping key matched by prefix on restore.
    """
    id: str = Field(..., description="Session identifier assigned by the directory")
    cwd: str = Field(..., description="Working directory of the session")
    shell: str = Field(default="", description="Shell or command running in the session")
    created_at: datetime = Field(..., description="Creation timestamp")
    last_activity: datetime = Field(..., description="Last input or output timestamp")
    context: Optional[str] = Field(default=None, description="Grouping key, e.g. 'workspace:repo'")
