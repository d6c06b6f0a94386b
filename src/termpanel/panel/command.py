"""Commands consumed by the tab manager's command processor.

Keyboard handlers and other triggers never touch tab state directly; they
enqueue a PanelCommand and the TabManager resolves it against the tab set as
it is when the command is processed.
"""
from dataclasses import dataclass
from typing import Optional

from ..enums import PanelCommandType


@dataclass(frozen=True)
class PanelCommand:
    """
    A tab navigation command.

    Attributes:
        type: Command kind
        index: 0-based target index for SWITCH commands
    """
    type: PanelCommandType
    index: Optional[int] = None

    @classmethod
    def new_tab(cls) -> 'PanelCommand':
        return cls(PanelCommandType.NEW_TAB)

    @classmethod
    def close_active(cls) -> 'PanelCommand':
        return cls(PanelCommandType.CLOSE_ACTIVE)

    @classmethod
    def switch(cls, index: int) -> 'PanelCommand':
        return cls(PanelCommandType.SWITCH, index)

    @classmethod
    def switch_last(cls) -> 'PanelCommand':
        return cls(PanelCommandType.SWITCH_LAST)
