"""AM2301 (DHT21) driver — single-wire humidity/temperature sensor.

The sensor is bit-banged on one GPIO line:

  1. Host start signal: line high, then low for ~1 ms, then released.
  2. Sensor response: low ~80 µs, high ~80 µs.
  3. 40 data bits, each a ~50 µs low followed by a high whose length
     encodes the bit (~26 µs = 0, ~70 µs = 1).

The frame is humidity (16 bits, tenths of %RH), temperature (16 bits,
tenths of °C, sign in the top bit) and an 8-bit checksum.

Config::

    {"pin": "GPIO4"}

Actions:
  - read — ``{"rh": float, "temp": float}``
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

from pihub.exceptions import HardwareError
from pihub.hardware.gpio import Level, PullResistor
from pihub.modules.base import BaseModule
from pihub.modules.binder import BindModel
from pihub.modules.drivers.fields import PinName

if TYPE_CHECKING:
    from pihub.hardware.gpio import Pin
    from pihub.hardware.provider import ResourceProvider
    from pihub.modules.binder import ConfigBinder

_START_HIGH_S = 100e-6
_START_LOW_S = 1e-3
_RESPONSE_TIMEOUT_S = 100e-6
_START_BIT_TIMEOUT_S = 200e-6
_BIT_TIMEOUT_S = 500e-6
# A high pulse at least this long is a 1 bit.
_ONE_THRESHOLD_S = 50e-6


def parse_frame(frame: bytes) -> tuple[float, float]:
    """Decode a 5-byte frame into ``(rh, temp)``.

    Raises:
        HardwareError: Bad checksum or a value outside the sensor's range.
    """
    if len(frame) != 5:
        raise HardwareError(f"AM2301 frame must be 5 bytes, got {len(frame)}")
    if (frame[0] + frame[1] + frame[2] + frame[3]) & 0xFF != frame[4]:
        raise HardwareError(
            "AM2301 frame failed its checksum",
            context={"frame": list(frame)},
        )

    rh = ((frame[0] << 8) | frame[1]) / 10.0
    magnitude = ((frame[2] & 0x7F) << 8) | frame[3]
    temp = (-magnitude if frame[2] & 0x80 else magnitude) / 10.0

    if not (0.0 <= rh <= 100.0 and -40.0 <= temp <= 80.0):
        raise HardwareError(
            f"AM2301 reading out of range (rh={rh}, temp={temp})",
            context={"rh": rh, "temp": temp},
        )
    return rh, temp


class AM2301Config(BindModel):
    pin: PinName


class AM2301Module(BaseModule):
    KIND = "am2301"

    def __init__(self) -> None:
        super().__init__()
        self._pin: "Pin | None" = None

    def _setup(self, provider: "ResourceProvider", binder: "ConfigBinder") -> None:
        config = binder.bind(AM2301Config)
        pin = provider.pin_by_name(config.pin)
        pin.out(Level.HIGH)
        self._pin = pin

    def _teardown(self) -> None:
        self._pin = None

    def _action_read(self, binder: "ConfigBinder") -> dict[str, Any]:
        assert self._pin is not None
        with self._pin.locked():
            frame = self._read_frame(self._pin)
        rh, temp = parse_frame(frame)
        return {"rh": rh, "temp": temp}

    def _read_frame(self, pin: "Pin") -> bytes:
        pin.out(Level.HIGH)
        time.sleep(_START_HIGH_S)
        pin.out(Level.LOW)
        time.sleep(_START_LOW_S)
        pin.out(Level.HIGH)
        pin.as_input(PullResistor.UP)

        try:
            pin.wait_for(Level.HIGH, _RESPONSE_TIMEOUT_S, "release")
            pin.wait_for(Level.LOW, _RESPONSE_TIMEOUT_S, "response low")
            pin.wait_for(Level.HIGH, _RESPONSE_TIMEOUT_S, "response high")
            pin.wait_for(Level.LOW, _START_BIT_TIMEOUT_S, "start bit low")
            pin.wait_for(Level.HIGH, _START_BIT_TIMEOUT_S, "start bit high")

            frame = bytearray(5)
            for i in range(5):
                for bit in range(7, -1, -1):
                    high_for = pin.wait_for(Level.LOW, _BIT_TIMEOUT_S, f"bit {i}:{bit} high")
                    if high_for >= _ONE_THRESHOLD_S:
                        frame[i] |= 1 << bit
                    pin.wait_for(Level.HIGH, _BIT_TIMEOUT_S, f"bit {i}:{bit} low")
        finally:
            pin.out(Level.HIGH)
        return bytes(frame)
