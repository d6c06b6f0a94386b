"""
HTTP and WebSocket server exposing the panel to browser windows.
"""

from .app import create_app
from .broker import WindowMessageBroker

__all__ = ["create_app", "WindowMessageBroker"]
