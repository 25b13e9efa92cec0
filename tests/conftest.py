"""Shared test fixtures for the remotetouch test suite.

Provides in-memory stand-ins for the two external edges of the system:
a fake Transport for the session manager (no ssh process) and fake
input devices and backend for the engine (no /dev/uinput).
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import Any

import pytest

from remotetouch.domain.models import SessionConfig
from remotetouch.engine.daemon import EV_SYN, SYN_REPORT, AxisRange, TouchEngine, TouchscreenInfo
from remotetouch.session.base import Transport, TransportClosedError
from remotetouch.session.manager import SessionManager

Responder = Callable[[dict], "list[dict] | dict | None"]


# ---------------------------------------------------------------------------
# Session fixtures
# ---------------------------------------------------------------------------


def default_responder(command: dict) -> dict:
    """Answer like a healthy engine with a created 800x480 touchscreen."""
    if command["type"] == "init":
        return {
            "id": command["id"],
            "status": "ready",
            "message": "created uinput touchscreen 800x480; keyboard ready",
            "screen_width": command.get("screen_width", 800),
            "screen_height": command.get("screen_height", 480),
        }
    if command["type"] == "shutdown":
        return {"id": command["id"], "status": "ok", "message": "shutting down"}
    return {"id": command["id"], "status": "ok"}


class FakeTransport(Transport):
    """In-memory transport whose replies come from a responder function.

    The responder returns a reply dict, a list of reply dicts, or None
    for no reply. Replies are delivered after ``delay`` seconds.
    """

    def __init__(
        self,
        config: SessionConfig | None = None,
        responder: Responder | None = None,
        delay: float = 0.0,
        fail_start: bool = False,
    ) -> None:
        self.config = config
        self.responder = responder or default_responder
        self.delay = delay
        self.fail_start = fail_start
        self.written: list[dict] = []
        self.started = False
        self.closed = False
        self.in_flight = 0
        self.max_in_flight = 0
        self._alive = False
        self._on_line: Callable[[bytes], None] | None = None
        self._on_exit: Callable[[int | None, str], None] | None = None
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def is_alive(self) -> bool:
        return self._alive

    @property
    def commands(self) -> list[str]:
        return [c["type"] for c in self.written]

    async def start(self, on_line, on_exit) -> None:  # type: ignore[no-untyped-def]
        if self.fail_start:
            raise TransportClosedError("failed to start ssh: No such file or directory")
        self._on_line = on_line
        self._on_exit = on_exit
        self._alive = True
        self.started = True

    async def write_line(self, data: bytes) -> None:
        if not self._alive:
            raise TransportClosedError("transport is not running")
        assert data.endswith(b"\n") and data.count(b"\n") == 1
        command = json.loads(data)
        self.written.append(command)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        replies = self.responder(command)
        if replies is None:
            return
        if isinstance(replies, dict):
            replies = [replies]
        self._tasks.append(asyncio.create_task(self._deliver(replies)))

    async def _deliver(self, replies: list[dict]) -> None:
        await asyncio.sleep(self.delay)
        self.in_flight -= 1
        for reply in replies:
            self.emit(reply)

    def emit(self, message: dict | bytes) -> None:
        """Push one line to the manager as if the engine printed it."""
        line = message if isinstance(message, bytes) else json.dumps(message).encode()
        self._on_line(line)

    def exit(self, code: int | None = 1, stderr: str = "") -> None:
        """Simulate the remote process ending."""
        if not self._alive:
            return
        self._alive = False
        self._on_exit(code, stderr)

    async def close(self) -> None:
        self.closed = True
        for task in self._tasks:
            task.cancel()
        self.exit(0, "")


class FakeTransportFactory:
    """Transport factory that records every transport it builds."""

    def __init__(self) -> None:
        self.responder: Responder | None = None
        self.delay = 0.0
        self.fail_start = False
        self.transports: list[FakeTransport] = []

    def __call__(self, config: SessionConfig) -> FakeTransport:
        transport = FakeTransport(
            config, responder=self.responder, delay=self.delay, fail_start=self.fail_start
        )
        self.transports.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.transports[-1]


@pytest.fixture
def session_config() -> SessionConfig:
    return SessionConfig(host="raspberrypi.local", user="pi", port=22)


@pytest.fixture
def transport_factory() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture
def manager(transport_factory: FakeTransportFactory) -> SessionManager:
    """A SessionManager on fake transports with short timeouts."""
    return SessionManager(
        transport_factory,
        handshake_timeout=0.3,
        command_timeout=0.3,
        shutdown_timeout=0.2,
    )


# ---------------------------------------------------------------------------
# Engine fixtures
# ---------------------------------------------------------------------------


class FakeDevice:
    """Records emitted events on a shared timeline instead of writing them."""

    def __init__(self, name: str, path: str, timeline: list[tuple]) -> None:
        self.name = name
        self.path = path
        self.timeline = timeline
        self.events: list[tuple[int, int, int]] = []
        self.closed = False
        self.x_range: AxisRange | None = None
        self.y_range: AxisRange | None = None

    def emit(self, ev_type: int, code: int, value: int) -> None:
        self.events.append((ev_type, code, value))
        self.timeline.append(("event", self.name, ev_type, code, value))

    def syn(self) -> None:
        self.emit(EV_SYN, SYN_REPORT, 0)

    def close(self) -> None:
        self.closed = True

    def reports(self) -> list[list[tuple[int, int, int]]]:
        """Events grouped into SYN_REPORT-terminated reports."""
        groups: list[list[tuple[int, int, int]]] = []
        current: list[tuple[int, int, int]] = []
        for event in self.events:
            if event == (EV_SYN, SYN_REPORT, 0):
                groups.append(current)
                current = []
            else:
                current.append(event)
        return groups


class FakeBackend:
    """Stands in for LinuxInputBackend."""

    def __init__(self, timeline: list[tuple]) -> None:
        self.timeline = timeline
        self.screen_size: tuple[int | None, int | None] = (None, None)
        self.touchscreen: TouchscreenInfo | None = None
        self.touch_ranges: tuple[AxisRange | None, AxisRange | None] = (None, None)
        self.open_error: Exception | None = None
        self.create_error: Exception | None = None
        self.keyboard_error: Exception | None = None
        self.devices: list[FakeDevice] = []
        self.created_sizes: list[tuple[int, int]] = []

    def probe_screen_size(self) -> tuple[int | None, int | None]:
        return self.screen_size

    def discover_touchscreen(self) -> TouchscreenInfo | None:
        return self.touchscreen

    def open_touchscreen(self, info: TouchscreenInfo) -> FakeDevice:
        if self.open_error is not None:
            raise self.open_error
        device = FakeDevice(info.name, info.path, self.timeline)
        device.x_range, device.y_range = self.touch_ranges
        self.devices.append(device)
        return device

    def create_touchscreen(self, width: int, height: int) -> FakeDevice:
        if self.create_error is not None:
            raise self.create_error
        device = FakeDevice("remotetouch-touchscreen", "/dev/uinput", self.timeline)
        self.created_sizes.append((width, height))
        self.devices.append(device)
        return device

    def create_keyboard(self) -> FakeDevice:
        if self.keyboard_error is not None:
            raise self.keyboard_error
        device = FakeDevice("remotetouch-keyboard", "/dev/uinput", self.timeline)
        self.devices.append(device)
        return device


class SleepRecorder:
    """Replaces time.sleep; records each pause on the shared timeline."""

    def __init__(self, timeline: list[tuple]) -> None:
        self.timeline = timeline
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        self.timeline.append(("sleep", seconds))


@pytest.fixture
def timeline() -> list[tuple]:
    return []


@pytest.fixture
def backend(timeline: list[tuple]) -> FakeBackend:
    return FakeBackend(timeline)


@pytest.fixture
def sleeps(timeline: list[tuple]) -> SleepRecorder:
    return SleepRecorder(timeline)


@pytest.fixture
def engine(backend: FakeBackend, sleeps: SleepRecorder) -> TouchEngine:
    return TouchEngine(backend=backend, sleep=sleeps)


@pytest.fixture
def ready_engine(engine: TouchEngine, timeline: list[tuple], sleeps: SleepRecorder) -> TouchEngine:
    """An engine initialized with a created 800x480 touchscreen and a keyboard."""
    response = engine.handle(
        {"id": "init-1", "type": "init", "screen_width": 800, "screen_height": 480}
    )
    assert response["status"] == "ready"
    timeline.clear()
    sleeps.calls.clear()
    return engine


@pytest.fixture
def make_config() -> Callable[..., SessionConfig]:
    def _make(**kwargs: Any) -> SessionConfig:
        kwargs.setdefault("host", "raspberrypi.local")
        return SessionConfig(**kwargs)

    return _make
