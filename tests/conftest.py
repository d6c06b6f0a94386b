"""Pytest configuration and shared fixtures for termpanel tests."""

from typing import Dict, List, Optional, Tuple

import pytest

from termpanel.config import HostConfig, PanelConfig
from termpanel.enums import TabStatus
from termpanel.host import LocalSessionDirectory
from termpanel.panel import RenderSurface, TabbedTerminalPanel


class FakeBackend:
    """In-memory session process: echoes input and exits on demand."""

    def __init__(self, session_id, cwd, command, on_output, on_exit):
        self.session_id = session_id
        self.cwd = cwd
        self.command = command
        self.on_output = on_output
        self.on_exit = on_exit
        self.started = False
        self.stopped = False
        self.written: List[str] = []
        self.size: Optional[Tuple[int, int]] = None

    async def start(self) -> None:
        self.started = True

    async def write(self, data: str) -> None:
        if self.stopped:
            raise RuntimeError(f"PTY not running: session_id={self.session_id}")
        self.written.append(data)
        self.on_output(data)

    async def resize(self, cols: int, rows: int) -> None:
        self.size = (cols, rows)

    async def stop(self) -> None:
        self.stopped = True

    def emit(self, data: str) -> None:
        self.on_output(data)

    def exit(self, code: int) -> None:
        self.stopped = True
        self.on_exit(code)


class RecordingSurface(RenderSurface):
    """Render surface that remembers everything it was asked to show."""

    def __init__(self):
        self.output: List[str] = []
        self.statuses: List[TabStatus] = []
        self.errors: List[str] = []
        self.cleared = 0
        self.focused = 0

    @property
    def text(self) -> str:
        return "".join(self.output)

    def write(self, data: str) -> None:
        self.output.append(data)

    def show_status(self, status: TabStatus, detail: Optional[str] = None) -> None:
        self.statuses.append(status)

    def show_error(self, message: str) -> None:
        self.errors.append(message)

    def clear(self) -> None:
        self.cleared += 1
        self.output.clear()

    def focus(self) -> None:
        self.focused += 1


class FakeClock:
    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def backends() -> Dict[str, FakeBackend]:
    return {}


@pytest.fixture
def backend_factory(backends):
    """Session backend factory recording every FakeBackend it creates."""

    def factory(session_id, cwd, command, on_output, on_exit):
        backend = FakeBackend(session_id, cwd, command, on_output, on_exit)
        backends[session_id] = backend
        return backend

    return factory


@pytest.fixture
def directory(backend_factory, tmp_path) -> LocalSessionDirectory:
    return LocalSessionDirectory(
        config=HostConfig(scrollback_bytes=1024),
        backend_factory=backend_factory,
        default_cwd=str(tmp_path),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_panel(directory, tmp_path, clock):
    """Open a window on the shared directory and build its panel (not started)."""

    def _make(**config_overrides):
        actions, events = directory.open_window()
        surfaces: Dict[str, RecordingSurface] = {}
        settings = {"refresh_delay": 0, "default_directory": str(tmp_path)}
        settings.update(config_overrides)
        panel = TabbedTerminalPanel(
            actions,
            events=events,
            config=PanelConfig(**settings),
            surface_factory=lambda tab: surfaces.setdefault(tab.id, RecordingSurface()),
            clock=clock,
        )
        panel.window_id = actions.window_id
        panel.surfaces = surfaces
        return panel

    return _make
