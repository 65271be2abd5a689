"""Field types shared by driver configuration models."""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import BeforeValidator, Field


def _pin_to_str(value: Any) -> Any:
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


# Pin names as accepted by ResourceProvider.pin_by_name: 20, "20", "GPIO20", "BCM20".
PinName = Annotated[str, BeforeValidator(_pin_to_str), Field(min_length=1)]

I2CAddress = Annotated[int, Field(ge=0x00, le=0x7F, description="7-bit I2C device address.")]

Byte = Annotated[int, Field(ge=0, le=255)]
