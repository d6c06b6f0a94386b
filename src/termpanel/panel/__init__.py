"""Panel core: tabs, ownership arbitration and output routing for one window.

Components:
- TabbedTerminalPanel: per-window composition of everything below
- TabManager: ordered tabs, single active tab, command processing
- OwnershipArbiter: single-writer state machine per session
- DataStreamRouter: session output to the active owning tab, buffer replay
- SessionRestorer: initial tabs from existing sessions
- TerminalTabController: per-tab create / claim / subscribe / refresh
- HostBridge: capability-checked access to the host's actions
"""

from .events import PanelEventEmitter
from .host import HostBridge, HostCapabilities
from .keyboard import KeyChord, command_for_chord
from .command import PanelCommand
from .ownership import OwnershipArbiter, SessionOwnership
from .stream import DataStreamRouter
from .tabs import TabListener, TabManager
from .restore import RestorePlan, SessionRestorer
from .terminal_tab import RenderSurface, TerminalTabController
from .panel import TabbedTerminalPanel
from .tools import PANEL_TOOLS, PANEL_TOOLS_METADATA, PanelToolHandler

__all__ = [
    'PanelEventEmitter',
    'HostBridge',
    'HostCapabilities',
    'KeyChord',
    'command_for_chord',
    'PanelCommand',
    'OwnershipArbiter',
    'SessionOwnership',
    'DataStreamRouter',
    'TabListener',
    'TabManager',
    'RestorePlan',
    'SessionRestorer',
    'RenderSurface',
    'TerminalTabController',
    'TabbedTerminalPanel',
    'PANEL_TOOLS',
    'PANEL_TOOLS_METADATA',
    'PanelToolHandler',
]
