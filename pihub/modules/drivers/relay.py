"""Relay driver — one GPIO output line switching a relay board channel.

Config::

    {"pin": "GPIO20", "inverted": false}

Actions:
  - set — ``{"high": true}`` or ``{"state": "HIGH" | "LOW"}``
  - get — last state written by ``set``
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import field_validator

from pihub.hardware.gpio import Level
from pihub.modules.base import BaseModule
from pihub.modules.binder import BindModel
from pihub.modules.drivers.fields import PinName

if TYPE_CHECKING:
    from pihub.hardware.gpio import Pin
    from pihub.hardware.provider import ResourceProvider
    from pihub.modules.binder import ConfigBinder


class RelayConfig(BindModel):
    pin: PinName
    inverted: bool = False


class RelaySetRequest(BindModel):
    high: bool | None = None
    state: str | None = None

    @field_validator("state")
    @classmethod
    def _normalise_state(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip().lower()
        if value not in ("high", "low"):
            raise ValueError("state must be 'high' or 'low'")
        return value

    def validate_config(self) -> None:
        if self.high is None and self.state is None:
            raise ValueError("one of 'high' or 'state' is required")
        if self.high is not None and self.state is not None and self.high != (self.state == "high"):
            raise ValueError("'high' and 'state' disagree")

    @property
    def on(self) -> bool:
        if self.high is not None:
            return self.high
        return self.state == "high"


class RelayModule(BaseModule):
    KIND = "relay"

    def __init__(self) -> None:
        super().__init__()
        self._pin: "Pin | None" = None
        self._inverted = False
        self._on = False

    def _setup(self, provider: "ResourceProvider", binder: "ConfigBinder") -> None:
        config = binder.bind(RelayConfig)
        pin = provider.pin_by_name(config.pin)
        self._inverted = config.inverted
        self._pin = pin
        self._write(False)

    def _teardown(self) -> None:
        # The line belongs to the provider; only the reference is dropped.
        self._pin = None

    def _write(self, on: bool) -> None:
        assert self._pin is not None
        self._pin.out(Level(on != self._inverted))
        self._on = on

    def _action_set(self, binder: "ConfigBinder") -> dict[str, Any]:
        request = binder.bind(RelaySetRequest)
        self._write(request.on)
        return {"high": self._on}

    def _action_get(self, binder: "ConfigBinder") -> dict[str, Any]:
        return {"high": self._on}
