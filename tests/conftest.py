"""Shared pytest fixtures for the pihub test suite.

Everything runs on the in-memory hardware backends: ``MockGPIO`` for pins,
``MockI2CBus`` with a simulated ADS1115 at 0x48 for the bus.
"""

from __future__ import annotations

import threading
import time
import types
from pathlib import Path
from typing import Any, Callable, Generator

import pytest
from fastapi.testclient import TestClient

from pihub.api.server import create_app
from pihub.config import Settings, override_settings
from pihub.exceptions import HardwareError
from pihub.hardware.gpio import MockGPIO
from pihub.hardware.i2c import MockADS1115, MockI2CBus
from pihub.hardware.provider import ResourceProvider
from pihub.modules.base import BaseModule
from pihub.modules.binder import BindModel, ConfigBinder
from pihub.modules.manager import ModuleManager
from pihub.modules.registry import ModuleRegistry, build_default_registry


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    settings = Settings(
        server={"act_timeout": 5.0},
        hardware={"backend": "mock"},
        logging={"level": "debug", "format": "console"},
    )
    override_settings(settings)
    return settings


# ---------------------------------------------------------------------------
# Hardware
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_gpio() -> MockGPIO:
    return MockGPIO()


@pytest.fixture
def mock_ads() -> MockADS1115:
    return MockADS1115(voltages=[2.5, 2.0, 1.25, 0.5])


@pytest.fixture
def mock_bus(mock_ads: MockADS1115) -> MockI2CBus:
    bus = MockI2CBus()
    bus.attach(0x48, mock_ads)
    return bus


@pytest.fixture
def bus_opens() -> list[MockI2CBus]:
    """Every bus the provider fixture opened, in order."""
    return []


@pytest.fixture
def provider(
    mock_gpio: MockGPIO, mock_bus: MockI2CBus, bus_opens: list[MockI2CBus]
) -> ResourceProvider:
    def open_bus() -> MockI2CBus:
        bus_opens.append(mock_bus)
        return mock_bus

    return ResourceProvider(gpio=mock_gpio, bus_factory=open_bus, backend="mock")


class FakeClock:
    """Monotonic clock that advances by ``tick`` on every read."""

    def __init__(self, tick: float = 1e-6) -> None:
        self.now = 0.0
        self.tick = tick
        self._lock = threading.Lock()

    def perf_counter(self) -> float:
        with self._lock:
            value = self.now
            self.now += self.tick
            return value


@pytest.fixture
def fake_clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    """Drive ``Pin.wait_for`` timing from a deterministic clock."""
    clock = FakeClock()
    monkeypatch.setattr(
        "pihub.hardware.gpio.time",
        types.SimpleNamespace(perf_counter=clock.perf_counter, sleep=time.sleep),
    )
    return clock


def waveform(clock: FakeClock, segments: list[tuple[int, float]]) -> Callable[[], int]:
    """Input source replaying ``(level, duration_s)`` segments against *clock*.

    Time zero is the clock's value when the source is built; after the last
    segment the line stays at the last level.
    """
    edges: list[tuple[float, int]] = []
    t = clock.now
    for level, duration in segments:
        edges.append((t, level))
        t += duration

    def source() -> int:
        now = clock.now
        level = edges[0][1]
        for start, lvl in edges:
            if start > now:
                break
            level = lvl
        return level

    return source


@pytest.fixture
def make_waveform() -> Callable[[FakeClock, list[tuple[int, float]]], Callable[[], int]]:
    return waveform


# ---------------------------------------------------------------------------
# Modules
# ---------------------------------------------------------------------------


class RecorderConfig(BindModel):
    fail_init: bool = False
    fail_stop: bool = False
    delay_s: float = 0.0


class RecorderModule(BaseModule):
    """Hardware-free driver that records its lifecycle in a shared journal."""

    KIND = "recorder"

    def __init__(self, journal: list[tuple[str, int]]) -> None:
        super().__init__()
        self.journal = journal
        self.config: RecorderConfig | None = None
        self.calls = 0
        self.active = 0
        self.max_active = 0

    def _setup(self, provider: ResourceProvider, binder: ConfigBinder) -> None:
        self.config = binder.bind(RecorderConfig)
        self.journal.append(("initialize", id(self)))
        if self.config.fail_init:
            raise HardwareError("recorder failed to initialize")

    def _teardown(self) -> None:
        self.journal.append(("stop", id(self)))
        if self.config is not None and self.config.fail_stop:
            raise RuntimeError("recorder failed to stop")

    def _action_ping(self, binder: ConfigBinder) -> dict[str, Any]:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            assert self.config is not None
            if self.config.delay_s:
                time.sleep(self.config.delay_s)
            self.calls += 1
            self.journal.append(("ping", id(self)))
            return {"pong": True, "calls": self.calls}
        finally:
            self.active -= 1


@pytest.fixture
def journal() -> list[tuple[str, int]]:
    return []


@pytest.fixture
def registry(journal: list[tuple[str, int]]) -> ModuleRegistry:
    registry = build_default_registry()
    registry.register("recorder", lambda: RecorderModule(journal))
    return registry


@pytest.fixture
def manager(registry: ModuleRegistry, provider: ResourceProvider) -> ModuleManager:
    return ModuleManager(registry, provider)


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------


@pytest.fixture
def client(
    test_settings: Settings, provider: ResourceProvider, registry: ModuleRegistry
) -> Generator[TestClient, None, None]:
    app = create_app(settings=test_settings, provider=provider, registry=registry)
    with TestClient(app) as c:
        yield c
