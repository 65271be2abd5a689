"""Hardware layer — GPIO and I2C backends and the shared resource provider.

Provides:
  - :class:`~pihub.hardware.gpio.Pin` — shared handle to one GPIO line
  - :class:`~pihub.hardware.i2c.I2CBus` — serialised I2C bus
  - :class:`~pihub.hardware.provider.ResourceProvider` — owner of both
"""

from pihub.hardware.gpio import GPIOInterface, Level, MockGPIO, Pin, RaspberryPiGPIO
from pihub.hardware.i2c import I2CBus, MockI2CBus, SMBusI2CBus
from pihub.hardware.provider import ResourceProvider

__all__ = [
    "GPIOInterface",
    "I2CBus",
    "Level",
    "MockGPIO",
    "MockI2CBus",
    "Pin",
    "RaspberryPiGPIO",
    "ResourceProvider",
    "SMBusI2CBus",
]
