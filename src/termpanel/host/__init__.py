"""
Local host: PTY-backed sessions shared by every window of a server process.
"""

from .pty_session import PTYSession
from .directory import LocalSessionDirectory, WindowActions

__all__ = ['PTYSession', 'LocalSessionDirectory', 'WindowActions']
