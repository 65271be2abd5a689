"""ADS1115 driver — 16-bit, 4-channel I2C ADC (TI ADS1115).

Config::

    {"address": 72, "channel": 0, "gain": 1, "data_rate": 128}

``channel`` selects a single-ended input (AIN0–AIN3).  ``channel_mask`` is
the raw 3-bit MUX code instead (0–3 differential pairs, 4–7 single-ended)
for clients that address the chip that way.

Actions:
  - read — one single-shot conversion, returned in volts
"""

from __future__ import annotations

import math
import struct
import time
from typing import TYPE_CHECKING, Literal

from pydantic import Field, field_validator

from pihub.exceptions import HardwareError
from pihub.modules.base import BaseModule
from pihub.modules.binder import BindModel
from pihub.modules.drivers.fields import I2CAddress

if TYPE_CHECKING:
    from pihub.hardware.i2c import I2CBus
    from pihub.hardware.provider import ResourceProvider
    from pihub.modules.binder import ConfigBinder

DEFAULT_ADDRESS = 0x48

# Programmable gain → (PGA bits, full-scale range in volts).
GAINS: dict[float, tuple[int, float]] = {
    2 / 3: (0, 6.144),
    1: (1, 4.096),
    2: (2, 2.048),
    4: (3, 1.024),
    8: (4, 0.512),
    16: (5, 0.256),
}

# Samples per second → DR bits.
DATA_RATES: dict[int, int] = {8: 0, 16: 1, 32: 2, 64: 3, 128: 4, 250: 5, 475: 6, 860: 7}

DataRate = Literal[8, 16, 32, 64, 128, 250, 475, 860]

_REG_CONVERSION = 0x00
_REG_CONFIG = 0x01
_OS_SINGLE = 0x8000
_MODE_SINGLE = 0x0100
_COMP_DISABLE = 0x0003
_READY_POLLS = 10


def resolve_gain(gain: float) -> float:
    """Return the canonical gain key for *gain* (accepts 0.667 for 2/3)."""
    for key in GAINS:
        if math.isclose(gain, key, abs_tol=1e-3):
            return key
    raise ValueError(f"gain must be one of 2/3, 1, 2, 4, 8, 16 (got {gain})")


class ADS1115:
    """Register-level access to one ADS1115 on a shared bus."""

    def __init__(self, bus: "I2CBus", address: int = DEFAULT_ADDRESS) -> None:
        self.bus = bus
        self.address = address

    def read_voltage(self, mux: int, gain: float = 2 / 3, data_rate: int = 128) -> float:
        """Run one single-shot conversion on *mux* and return volts.

        The config write, the conversion wait and the result read happen as
        one exclusive bus section so another module cannot reconfigure the
        chip in between.
        """
        pga, full_scale = GAINS[resolve_gain(gain)]
        config = (
            _OS_SINGLE
            | (mux & 0x07) << 12
            | pga << 9
            | _MODE_SINGLE
            | DATA_RATES[data_rate] << 5
            | _COMP_DISABLE
        )
        with self.bus.locked():
            self.bus.transact(self.address, struct.pack(">BH", _REG_CONFIG, config))
            time.sleep(1.0 / data_rate + 0.0001)
            for _ in range(_READY_POLLS):
                status = self.bus.transact(self.address, bytes([_REG_CONFIG]), 2)
                if status[0] & 0x80:
                    break
                time.sleep(0.0005)
            else:
                raise HardwareError(
                    f"ADS1115 at 0x{self.address:02x} did not finish its conversion",
                    context={"address": self.address, "mux": mux},
                )
            raw = self.bus.transact(self.address, bytes([_REG_CONVERSION]), 2)

        if len(raw) != 2:
            raise HardwareError(
                f"ADS1115 at 0x{self.address:02x} returned {len(raw)} bytes, expected 2",
                context={"address": self.address},
            )
        (value,) = struct.unpack(">h", raw)
        return value * full_scale / 32768


class ADS1115Config(BindModel):
    address: I2CAddress = DEFAULT_ADDRESS
    channel: int | None = Field(default=None, ge=0, le=3)
    channel_mask: int | None = Field(default=None, ge=0, le=7)
    gain: float = 2 / 3
    data_rate: DataRate = 128

    @field_validator("gain")
    @classmethod
    def _check_gain(cls, value: float) -> float:
        return resolve_gain(value)

    def validate_config(self) -> None:
        if self.channel is not None and self.channel_mask is not None:
            raise ValueError("set either 'channel' or 'channel_mask', not both")

    @property
    def mux(self) -> int:
        if self.channel_mask is not None:
            return self.channel_mask
        return 4 + (self.channel or 0)


class ADS1115Module(BaseModule):
    KIND = "ads"

    def __init__(self) -> None:
        super().__init__()
        self._adc: ADS1115 | None = None
        self._config: ADS1115Config | None = None

    def _setup(self, provider: "ResourceProvider", binder: "ConfigBinder") -> None:
        config = binder.bind(ADS1115Config)
        self._adc = ADS1115(provider.default_bus(), config.address)
        self._config = config

    def _teardown(self) -> None:
        self._adc = None

    def _action_read(self, binder: "ConfigBinder") -> float:
        assert self._adc is not None and self._config is not None
        return self._adc.read_voltage(self._config.mux, self._config.gain, self._config.data_rate)
