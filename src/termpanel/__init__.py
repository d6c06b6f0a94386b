"""termpanel - Tabbed terminal panel over shared PTY sessions"""

__version__ = "0.1.0"
