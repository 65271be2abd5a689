"""Unit tests — ResourceProvider."""

from __future__ import annotations

import threading
from unittest.mock import patch

import pytest

from pihub.config import HardwareConfig
from pihub.exceptions import HardwareError, PinNotFoundError, ResourceClosedError
from pihub.hardware.gpio import MockGPIO
from pihub.hardware.i2c import MockI2CBus
from pihub.hardware.provider import ResourceProvider


@pytest.mark.unit
class TestDefaultBus:
    def test_repeated_calls_return_same_bus(self, provider, bus_opens) -> None:
        buses = [provider.default_bus() for _ in range(5)]
        assert all(b is buses[0] for b in buses)
        assert len(bus_opens) == 1

    def test_concurrent_first_calls_open_once(self) -> None:
        opened: list[MockI2CBus] = []
        barrier = threading.Barrier(8)

        def open_bus() -> MockI2CBus:
            bus = MockI2CBus()
            opened.append(bus)
            return bus

        provider = ResourceProvider(MockGPIO(), open_bus)
        results: list[MockI2CBus] = []

        def worker() -> None:
            barrier.wait()
            results.append(provider.default_bus())

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(opened) == 1
        assert all(r is opened[0] for r in results)

    def test_open_failure_is_not_cached(self) -> None:
        attempts = []

        def flaky() -> MockI2CBus:
            attempts.append(1)
            if len(attempts) == 1:
                raise OSError(2, "No such file or directory: '/dev/i2c-1'")
            return MockI2CBus()

        provider = ResourceProvider(MockGPIO(), flaky)
        with pytest.raises(HardwareError):
            provider.default_bus()
        assert isinstance(provider.default_bus(), MockI2CBus)
        assert len(attempts) == 2

    def test_hardware_error_from_factory_propagates_unwrapped(self) -> None:
        def broken() -> MockI2CBus:
            raise HardwareError("smbus2 is not installed")

        provider = ResourceProvider(MockGPIO(), broken)
        with pytest.raises(HardwareError, match="smbus2"):
            provider.default_bus()


@pytest.mark.unit
class TestPinByName:
    @pytest.mark.parametrize("name", ["20", "GPIO20", "gpio20", "BCM20", " 20 "])
    def test_name_forms_resolve_to_line(self, provider, name: str) -> None:
        assert provider.pin_by_name(name).line == 20

    def test_same_line_returns_same_pin(self, provider) -> None:
        assert provider.pin_by_name("20") is provider.pin_by_name("GPIO20")

    @pytest.mark.parametrize("name", ["", "PIN20", "GPIO", "28", "99", "-1"])
    def test_unknown_names_raise(self, provider, name: str) -> None:
        with pytest.raises(PinNotFoundError):
            provider.pin_by_name(name)

    def test_pin_not_found_is_a_hardware_error(self, provider) -> None:
        with pytest.raises(HardwareError):
            provider.pin_by_name("nope")


@pytest.mark.unit
class TestClose:
    def test_close_releases_pins_and_bus(self, provider, mock_gpio, mock_bus) -> None:
        provider.pin_by_name("20").out(1)
        provider.default_bus()

        provider.close()

        assert mock_bus.closed
        assert 20 not in mock_gpio.line_modes
        assert provider.status()["closed"] is True

    def test_close_is_idempotent(self, provider, mock_bus) -> None:
        provider.default_bus()
        provider.close()
        provider.close()
        assert mock_bus.closed

    def test_calls_after_close_raise(self, provider) -> None:
        provider.close()
        with pytest.raises(ResourceClosedError):
            provider.default_bus()
        with pytest.raises(ResourceClosedError):
            provider.pin_by_name("20")

    def test_close_without_bus_does_not_open_it(self, provider, bus_opens) -> None:
        provider.close()
        assert bus_opens == []


@pytest.mark.unit
class TestFromConfig:
    def test_mock_backend(self) -> None:
        provider = ResourceProvider.from_config(HardwareConfig(backend="mock"))
        assert provider.backend == "mock"
        assert isinstance(provider.gpio, MockGPIO)
        assert isinstance(provider.default_bus(), MockI2CBus)

    def test_auto_falls_back_to_mock_off_pi(self) -> None:
        with patch("pihub.hardware.provider.is_raspberry_pi", return_value=False):
            provider = ResourceProvider.from_config(HardwareConfig(backend="auto"))
        assert provider.backend == "mock"

    def test_raspberry_pi_backend_without_library_raises(self) -> None:
        with patch.dict("sys.modules", {"RPi": None, "RPi.GPIO": None}):
            with pytest.raises(HardwareError, match="RPi.GPIO"):
                ResourceProvider.from_config(HardwareConfig(backend="raspberry_pi"))

    def test_status(self, provider) -> None:
        provider.pin_by_name("GPIO5")
        status = provider.status()
        assert status["backend"] == "mock"
        assert status["gpio"] == "mock"
        assert status["bus"] is None
        assert status["pins"] == ["GPIO5"]
