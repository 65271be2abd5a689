"""HTG3535CH driver — humidity/temperature probe read through an ADS1115.

The probe exposes two analog outputs: a humidity voltage and an NTC
thermistor wired as the lower leg of a divider with a fixed "batch"
resistor.  Both are sampled on channels of one ADS1115.

Config::

    {
        "temperature_adc_channel": 0,
        "humidity_adc_channel": 1,
        "rh_calibration_adjustment": 0.0
    }

Actions:
  - rh        — relative humidity in percent, plus the calibration adjustment
  - tk/tc/tf  — temperature in Kelvin / Celsius / Fahrenheit
  - calibrate — ``{"adjustment": x}`` sets the adjustment directly;
                ``{"true_value": y}`` (default 100) derives it from a reading
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any

from pydantic import Field

from pihub.exceptions import HardwareError
from pihub.modules.base import BaseModule
from pihub.modules.binder import BindModel
from pihub.modules.drivers.ads1115 import ADS1115, DEFAULT_ADDRESS, DataRate
from pihub.modules.drivers.fields import I2CAddress

if TYPE_CHECKING:
    from pihub.hardware.provider import ResourceProvider
    from pihub.modules.binder import ConfigBinder

# Both outputs swing 0–5 V; the ±6.144 V range covers them.
_GAIN = 2 / 3

# Steinhart–Hart coefficients of the probe's NTC.
_SH_A = 8.61393e-04
_SH_B = 2.56377e-04
_SH_C = 1.68055e-07


def ntc_kelvin(volts: float, vcc_volts: float, batch_resistance_ohms: float) -> float:
    """Convert the thermistor divider voltage to Kelvin."""
    if not 0.0 < volts < vcc_volts:
        raise HardwareError(
            f"Thermistor voltage {volts:.4f} V is outside (0, {vcc_volts}) V",
            context={"volts": volts, "vcc_volts": vcc_volts},
        )
    resistance = batch_resistance_ohms * volts / (vcc_volts - volts)
    log_r = math.log(resistance)
    return 1 / (_SH_A + _SH_B * log_r + _SH_C * log_r**3)


def humidity_percent(volts: float) -> float:
    return -1.564 * volts**3 + 12.05 * volts**2 + 8.22 * volts - 15.6


class HTG3535CHConfig(BindModel):
    address: I2CAddress = DEFAULT_ADDRESS
    temperature_adc_channel: int = Field(ge=0, le=3)
    humidity_adc_channel: int = Field(ge=0, le=3)
    rh_calibration_adjustment: float = 0.0
    vcc_volts: float = Field(default=5.0, gt=0.0, le=6.0)
    batch_resistance_ohms: float = Field(default=10_000.0, gt=0.0)
    data_rate: DataRate = 128

    def validate_config(self) -> None:
        if self.temperature_adc_channel == self.humidity_adc_channel:
            raise ValueError("temperature and humidity must use different ADC channels")


class HTGCalibrateRequest(BindModel):
    adjustment: float | None = None
    true_value: float = 100.0


class HTG3535CHModule(BaseModule):
    KIND = "htg3535ch"

    def __init__(self) -> None:
        super().__init__()
        self._adc: ADS1115 | None = None
        self._config: HTG3535CHConfig | None = None
        self._rh_adjustment = 0.0

    def _setup(self, provider: "ResourceProvider", binder: "ConfigBinder") -> None:
        config = binder.bind(HTG3535CHConfig)
        self._adc = ADS1115(provider.default_bus(), config.address)
        self._config = config
        self._rh_adjustment = config.rh_calibration_adjustment

    def _teardown(self) -> None:
        self._adc = None

    def _read(self, channel: int) -> float:
        assert self._adc is not None and self._config is not None
        return self._adc.read_voltage(4 + channel, _GAIN, self._config.data_rate)

    def _raw_rh(self) -> float:
        assert self._config is not None
        return humidity_percent(self._read(self._config.humidity_adc_channel))

    def _kelvin(self) -> float:
        assert self._config is not None
        volts = self._read(self._config.temperature_adc_channel)
        return ntc_kelvin(volts, self._config.vcc_volts, self._config.batch_resistance_ohms)

    def _action_rh(self, binder: "ConfigBinder") -> float:
        return self._raw_rh() + self._rh_adjustment

    def _action_tk(self, binder: "ConfigBinder") -> float:
        return self._kelvin()

    def _action_tc(self, binder: "ConfigBinder") -> float:
        return self._kelvin() - 273.15

    def _action_tf(self, binder: "ConfigBinder") -> float:
        return (self._kelvin() - 273.15) * 9 / 5 + 32

    def _action_calibrate(self, binder: "ConfigBinder") -> dict[str, Any]:
        request = binder.bind(HTGCalibrateRequest)
        if request.adjustment is not None:
            adjustment = request.adjustment
        else:
            adjustment = request.true_value - self._raw_rh()
        self._rh_adjustment = adjustment
        return {"adjustment": adjustment}
