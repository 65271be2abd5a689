"""Hobby servo driver — angle control through a PWM pulse train.

Config::

    {"pin": "GPIO18", "frequency_hz": 50, "min_us": 500, "max_us": 2500,
     "min_deg": 0, "max_deg": 180}

Actions:
  - set     — ``{"angle": 90}``; out-of-range angles are clamped
  - release — stop the pulse train so the servo goes limp
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import Field

from pihub.modules.base import BaseModule
from pihub.modules.binder import BindModel
from pihub.modules.drivers.fields import PinName

if TYPE_CHECKING:
    from pihub.hardware.gpio import Pin, PWMChannel
    from pihub.hardware.provider import ResourceProvider
    from pihub.modules.binder import ConfigBinder


class ServoConfig(BindModel):
    pin: PinName
    frequency_hz: float = Field(default=50.0, gt=0.0, le=400.0)
    min_us: float = Field(default=500.0, gt=0.0)
    max_us: float = Field(default=2500.0, gt=0.0)
    min_deg: float = 0.0
    max_deg: float = 180.0

    def validate_config(self) -> None:
        if self.min_us >= self.max_us:
            raise ValueError("min_us must be below max_us")
        if self.min_deg >= self.max_deg:
            raise ValueError("min_deg must be below max_deg")
        if self.max_us >= 1e6 / self.frequency_hz:
            raise ValueError("max_us must be shorter than the PWM period")


class ServoSetRequest(BindModel):
    angle: float


class ServoModule(BaseModule):
    KIND = "servo"

    def __init__(self) -> None:
        super().__init__()
        self._pin: "Pin | None" = None
        self._pwm: "PWMChannel | None" = None
        self._config: ServoConfig | None = None

    def _setup(self, provider: "ResourceProvider", binder: "ConfigBinder") -> None:
        config = binder.bind(ServoConfig)
        self._pin = provider.pin_by_name(config.pin)
        self._config = config

    def _teardown(self) -> None:
        # Only our own channel; a newer module may already drive this line.
        if self._pwm is not None:
            self._pwm.stop()
        self._pwm = None
        self._pin = None

    def _action_set(self, binder: "ConfigBinder") -> dict[str, Any]:
        request = binder.bind(ServoSetRequest)
        assert self._pin is not None and self._config is not None
        cfg = self._config

        angle = min(max(request.angle, cfg.min_deg), cfg.max_deg)
        fraction = (angle - cfg.min_deg) / (cfg.max_deg - cfg.min_deg)
        pulse_us = cfg.min_us + fraction * (cfg.max_us - cfg.min_us)
        duty_cycle = pulse_us * cfg.frequency_hz / 1e6 * 100.0

        if self._pwm is not None and self._pwm.active:
            self._pwm.set_duty_cycle(duty_cycle)
        else:
            self._pwm = self._pin.start_pwm(cfg.frequency_hz, duty_cycle)
        return {"angle": angle, "pulse_us": pulse_us, "duty_cycle": duty_cycle}

    def _action_release(self, binder: "ConfigBinder") -> dict[str, Any]:
        if self._pwm is not None:
            self._pwm.stop()
            self._pwm = None
        return {"released": True}
