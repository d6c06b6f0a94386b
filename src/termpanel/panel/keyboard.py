"""Keyboard contract of the tabbed panel.

- Mod + T: new tab (subject to the new-tab lock window)
- Mod + W: close the active tab
- Mod + 1..8: switch to tab 1..8
- Mod + 9: switch to the last tab

Mod is Ctrl or Meta (Cmd). Chords without a modifier are left to the terminal.
"""

from dataclasses import dataclass
from typing import Optional

from .command import PanelCommand

_MODIFIER_ALIASES = {
    "ctrl": "ctrl",
    "control": "ctrl",
    "meta": "meta",
    "cmd": "meta",
    "command": "meta",
    "super": "meta",
    "shift": "shift",
    "alt": "alt",
    "option": "alt",
}


@dataclass(frozen=True)
class KeyChord:
    """A key press with its modifier state."""
    key: str
    ctrl: bool = False
    meta: bool = False
    shift: bool = False
    alt: bool = False

    @property
    def has_modifier(self) -> bool:
        return self.ctrl or self.meta

    @classmethod
    def parse(cls, text: str) -> 'KeyChord':
        """
        Parse a chord written as ``"ctrl+t"``, ``"cmd+9"`` or ``"Meta+W"``.

        Raises:
            ValueError: If the text has no key or an unknown modifier
        """
        parts = [part.strip() for part in text.split("+")]
        if not parts or not parts[-1]:
            raise ValueError(f"Invalid key chord: {text!r}")

        flags = {"ctrl": False, "meta": False, "shift": False, "alt": False}
        for part in parts[:-1]:
            modifier = _MODIFIER_ALIASES.get(part.lower())
            if modifier is None:
                raise ValueError(f"Unknown modifier {part!r} in key chord {text!r}")
            flags[modifier] = True

        return cls(key=parts[-1], **flags)


def command_for_chord(chord: KeyChord) -> Optional[PanelCommand]:
    """
    Map a chord to a panel command.

    Returns:
        PanelCommand, or None when the chord is not a panel shortcut
    """
    if not chord.has_modifier:
        return None

    key = chord.key.lower()
    if key == "t":
        return PanelCommand.new_tab()
    if key == "w":
        return PanelCommand.close_active()
    if key == "9":
        return PanelCommand.switch_last()
    if len(key) == 1 and "1" <= key <= "8":
        return PanelCommand.switch(int(key) - 1)
    return None
