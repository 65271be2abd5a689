"""Built-in drivers, one module per kind."""

from pihub.modules.drivers.ads1115 import ADS1115Module
from pihub.modules.drivers.am2301 import AM2301Module
from pihub.modules.drivers.echo import EchoModule
from pihub.modules.drivers.hcsr04 import HCSR04Module
from pihub.modules.drivers.htg3535ch import HTG3535CHModule
from pihub.modules.drivers.i2c import I2CModule
from pihub.modules.drivers.relay import RelayModule
from pihub.modules.drivers.servo import ServoModule

BUILTIN_DRIVERS = (
    EchoModule,
    RelayModule,
    I2CModule,
    ADS1115Module,
    HTG3535CHModule,
    AM2301Module,
    ServoModule,
    HCSR04Module,
)

__all__ = [
    "ADS1115Module",
    "AM2301Module",
    "BUILTIN_DRIVERS",
    "EchoModule",
    "HCSR04Module",
    "HTG3535CHModule",
    "I2CModule",
    "RelayModule",
    "ServoModule",
]
