"""Raw I2C driver — arbitrary write-then-read transactions with one device."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import Field

from pihub.modules.base import BaseModule
from pihub.modules.binder import BindModel
from pihub.modules.drivers.fields import Byte, I2CAddress

if TYPE_CHECKING:
    from pihub.hardware.i2c import I2CBus
    from pihub.hardware.provider import ResourceProvider
    from pihub.modules.binder import ConfigBinder


class I2CConfig(BindModel):
    address: I2CAddress


class I2CTransactRequest(BindModel):
    data: list[Byte] = Field(default_factory=list, alias="bytes")
    resp_len: int = Field(default=0, ge=0, le=4096)


class I2CModule(BaseModule):
    KIND = "i2c"

    def __init__(self) -> None:
        super().__init__()
        self._bus: "I2CBus | None" = None
        self._address = 0

    def _setup(self, provider: "ResourceProvider", binder: "ConfigBinder") -> None:
        config = binder.bind(I2CConfig)
        self._address = config.address
        self._bus = provider.default_bus()

    def _teardown(self) -> None:
        self._bus = None

    def _action_transact(self, binder: "ConfigBinder") -> dict[str, Any]:
        """One exclusive write-then-read transaction; returns the bytes read."""
        request = binder.bind(I2CTransactRequest)
        assert self._bus is not None
        response = self._bus.transact(self._address, bytes(request.data), request.resp_len)
        return {"response": list(response)}
