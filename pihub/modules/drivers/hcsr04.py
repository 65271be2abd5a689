"""HC-SR04 driver — ultrasonic rangefinder on a trigger/echo pin pair.

A 10 µs pulse on the trigger line starts a measurement; the sensor then
holds the echo line high for the round-trip time of the ping.

Config::

    {"trigger_pin": "GPIO23", "echo_pin": "GPIO24", "timeout_s": 0.03}

Actions:
  - measure — ``{"distance_cm": float}``
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

from pydantic import Field

from pihub.exceptions import ConfigValidationError
from pihub.hardware.gpio import Level, PullResistor, locked_pins
from pihub.modules.base import BaseModule
from pihub.modules.binder import BindModel
from pihub.modules.drivers.fields import PinName

if TYPE_CHECKING:
    from pihub.hardware.gpio import Pin
    from pihub.hardware.provider import ResourceProvider
    from pihub.modules.binder import ConfigBinder

SPEED_OF_SOUND_CM_S = 34_300.0
_TRIGGER_PULSE_S = 10e-6


class HCSR04Config(BindModel):
    trigger_pin: PinName
    echo_pin: PinName
    timeout_s: float = Field(default=0.03, gt=0.0, le=1.0)


class HCSR04Module(BaseModule):
    KIND = "hcsr04"

    def __init__(self) -> None:
        super().__init__()
        self._trigger: "Pin | None" = None
        self._echo: "Pin | None" = None
        self._timeout_s = 0.03

    def _setup(self, provider: "ResourceProvider", binder: "ConfigBinder") -> None:
        config = binder.bind(HCSR04Config)
        trigger = provider.pin_by_name(config.trigger_pin)
        echo = provider.pin_by_name(config.echo_pin)
        if trigger is echo:
            raise ConfigValidationError("trigger_pin and echo_pin must be different lines")
        trigger.out(Level.LOW)
        echo.as_input(PullResistor.DOWN)
        self._trigger, self._echo = trigger, echo
        self._timeout_s = config.timeout_s

    def _teardown(self) -> None:
        self._trigger = None
        self._echo = None

    def _action_measure(self, binder: "ConfigBinder") -> dict[str, Any]:
        assert self._trigger is not None and self._echo is not None
        trigger, echo = self._trigger, self._echo
        with locked_pins(trigger, echo):
            trigger.out(Level.HIGH)
            time.sleep(_TRIGGER_PULSE_S)
            trigger.out(Level.LOW)
            echo.wait_for(Level.HIGH, self._timeout_s, "echo start")
            round_trip_s = echo.wait_for(Level.LOW, self._timeout_s, "echo end")
        return {"distance_cm": round_trip_s * SPEED_OF_SOUND_CM_S / 2}
