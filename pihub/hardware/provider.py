"""Hardware layer — Shared resource provider.

The physical I2C bus and the GPIO line namespace are singleton resources.
Every driver that needs them references the handle owned by the single
:class:`ResourceProvider` built at startup, rather than opening its own.

Usage::

    provider = ResourceProvider.from_config(settings.hardware)
    bus = provider.default_bus()         # opened lazily, once
    fan = provider.pin_by_name("GPIO20")  # same Pin object on every call
    ...
    provider.close()                      # once, at shutdown
"""

from __future__ import annotations

import re
import threading
from typing import TYPE_CHECKING, Any, Callable

from pihub.exceptions import HardwareError, PinNotFoundError, ResourceClosedError
from pihub.hardware.gpio import GPIOInterface, MockGPIO, Pin, PinNamespace, RaspberryPiGPIO
from pihub.hardware.i2c import I2CBus, MockI2CBus, SMBusI2CBus
from pihub.hardware.platform import is_raspberry_pi
from pihub.logging import get_logger

if TYPE_CHECKING:
    from pihub.config import HardwareConfig

log = get_logger(__name__)

_PIN_NAME = re.compile(r"^(?:GPIO|BCM)?(\d+)$", re.IGNORECASE)


class ResourceProvider:
    """Owner of the shared bus and pin handles.

    Modules receive references, never ownership: they must not close the bus
    or release pins themselves.
    """

    def __init__(
        self,
        gpio: GPIOInterface,
        bus_factory: Callable[[], I2CBus],
        namespace: PinNamespace | None = None,
        backend: str = "custom",
    ) -> None:
        self.backend = backend
        self._gpio = gpio
        self._bus_factory = bus_factory
        self._namespace = namespace or PinNamespace()
        self._bus: I2CBus | None = None
        self._pins: dict[int, Pin] = {}
        self._lock = threading.Lock()
        self._closed = False

    @classmethod
    def from_config(cls, config: "HardwareConfig") -> "ResourceProvider":
        """Build the provider for the configured backend."""
        backend = config.backend
        if backend == "auto":
            backend = "raspberry_pi" if is_raspberry_pi() else "mock"

        if backend == "raspberry_pi":
            bus_number = config.i2c_bus
            provider = cls(
                gpio=RaspberryPiGPIO(),
                bus_factory=lambda: SMBusI2CBus(bus_number),
                backend=backend,
            )
        else:
            provider = cls(gpio=MockGPIO(), bus_factory=MockI2CBus, backend=backend)

        log.info("resource_provider_ready", backend=backend, i2c_bus=config.i2c_bus)
        return provider

    @property
    def gpio(self) -> GPIOInterface:
        return self._gpio

    def default_bus(self) -> I2CBus:
        """Return the process-wide bus, opening it on first use.

        A failed open is not cached; the next call tries again.

        Raises:
            HardwareError: The bus could not be opened.
            ResourceClosedError: The provider was closed.
        """
        with self._lock:
            if self._closed:
                raise ResourceClosedError("i2c")
            if self._bus is None:
                try:
                    self._bus = self._bus_factory()
                except HardwareError:
                    raise
                except Exception as exc:
                    raise HardwareError(
                        "Failed to open the default I2C bus", cause=exc
                    ) from exc
                log.info("bus_opened", bus=self._bus.name)
            return self._bus

    def pin_by_name(self, name: str) -> Pin:
        """Resolve *name* (``"20"``, ``"GPIO20"``, ``"BCM20"``) to its shared Pin.

        Raises:
            PinNotFoundError: The name is not a line on this board.
            ResourceClosedError: The provider was closed.
        """
        match = _PIN_NAME.match(str(name).strip())
        if match is None:
            raise PinNotFoundError(str(name))
        line = int(match.group(1))
        if line not in self._namespace.lines:
            raise PinNotFoundError(str(name))

        with self._lock:
            if self._closed:
                raise ResourceClosedError(f"GPIO{line}")
            pin = self._pins.get(line)
            if pin is None:
                pin = Pin(self._gpio, line)
                self._pins[line] = pin
            return pin

    def close(self) -> None:
        """Release the bus and every pin handed out.  Called once at shutdown."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            bus, self._bus = self._bus, None
            pins = list(self._pins.values())
            self._pins.clear()

        errors: list[str] = []
        for pin in pins:
            try:
                pin.release()
            except Exception as exc:
                errors.append(f"{pin.name}: {exc}")
        if bus is not None:
            try:
                bus.close()
            except Exception as exc:
                errors.append(f"{bus.name}: {exc}")
        log.info("resource_provider_closed", pins=len(pins), bus_open=bus is not None)
        if errors:
            raise HardwareError("Failed to release hardware resources", context={"errors": errors})

    def status(self) -> dict[str, Any]:
        with self._lock:
            return {
                "backend": self.backend,
                "gpio": self._gpio.name,
                "bus": self._bus.name if self._bus is not None else None,
                "pins": sorted(p.name for p in self._pins.values()),
                "closed": self._closed,
            }
