"""Hardware layer — I2C bus backends.

Architecture:
  - :class:`I2CBus` owns the bus lock.  Every :meth:`~I2CBus.transact` call is
    one exclusive write-then-read transaction; concrete backends only implement
    :meth:`~I2CBus._transfer` and never see concurrent calls.
  - :class:`SMBusI2CBus` wraps ``smbus2`` (``/dev/i2c-N``).
  - :class:`MockI2CBus` routes transactions to simulated devices by address
    and records a transaction log for test assertions.

A physical I2C bus executes transactions sequentially, so all modules share
one bus object through the provider and serialise on its lock.  A driver
whose protocol spans several transactions (write a config register, wait,
read the result) holds :meth:`~I2CBus.locked` for the whole sequence.
"""

from __future__ import annotations

import errno
import struct
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator

from pihub.exceptions import HardwareError, ResourceClosedError


class I2CBus(ABC):
    """Abstract I2C bus with built-in transaction serialisation."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._lock = threading.RLock()
        self._closed = False

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"

    @property
    def closed(self) -> bool:
        return self._closed

    @contextmanager
    def locked(self) -> Iterator["I2CBus"]:
        """Hold the bus for a multi-transaction sequence."""
        with self._lock:
            yield self

    def transact(self, address: int, write: bytes = b"", read_length: int = 0) -> bytes:
        """Write *write* to *address*, then read *read_length* bytes back.

        Raises:
            ResourceClosedError: The bus was closed.
            HardwareError:       The device did not acknowledge or the
                                 transfer failed.
        """
        if read_length < 0:
            raise ValueError("read_length must be >= 0")
        with self._lock:
            if self._closed:
                raise ResourceClosedError(self.name)
            if not write and not read_length:
                return b""
            try:
                return self._transfer(address, bytes(write), read_length)
            except OSError as exc:
                raise HardwareError(
                    f"I2C transaction with 0x{address:02x} failed on {self.name}",
                    context={"bus": self.name, "address": address},
                    cause=exc,
                ) from exc

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._close()

    @abstractmethod
    def _transfer(self, address: int, write: bytes, read_length: int) -> bytes:
        """Perform one transaction.  Called with the bus lock held."""

    def _close(self) -> None:
        """Release the underlying handle.  Called once, with the lock held."""


# ---------------------------------------------------------------------------
# smbus2 implementation
# ---------------------------------------------------------------------------


class SMBusI2CBus(I2CBus):
    """I2C bus backed by ``smbus2`` combined transactions (``I2C_RDWR``)."""

    def __init__(self, bus_number: int = 1) -> None:
        try:
            from smbus2 import SMBus, i2c_msg  # type: ignore[import]
        except ImportError as exc:
            raise HardwareError(
                "smbus2 is not installed.  Install it with: pip install 'pihub[pi]'",
                cause=exc,
            ) from exc

        super().__init__(name=f"/dev/i2c-{bus_number}")
        self._msg = i2c_msg
        try:
            self._bus = SMBus(bus_number)
        except OSError as exc:
            raise HardwareError(
                f"Failed to open I2C bus {self.name}",
                context={"bus": self.name},
                cause=exc,
            ) from exc

    def _transfer(self, address: int, write: bytes, read_length: int) -> bytes:
        messages: list[Any] = []
        if write:
            messages.append(self._msg.write(address, list(write)))
        reader = None
        if read_length:
            reader = self._msg.read(address, read_length)
            messages.append(reader)
        self._bus.i2c_rdwr(*messages)
        return bytes(list(reader)) if reader is not None else b""

    def _close(self) -> None:
        self._bus.close()


# ---------------------------------------------------------------------------
# Mock implementation (tests + non-Pi environments)
# ---------------------------------------------------------------------------


class MockI2CDevice:
    """Base class for simulated devices attached to a :class:`MockI2CBus`."""

    def transfer(self, write: bytes, read_length: int) -> bytes:
        raise NotImplementedError


@dataclass
class I2CTransaction:
    """A recorded bus transaction for test assertions."""

    address: int
    write: bytes
    read_length: int
    response: bytes


class MockI2CBus(I2CBus):
    """In-memory I2C bus.

    Transactions addressed to an address with no attached device fail with
    ``EREMOTEIO``, the errno Linux reports for an unacknowledged address.

    Usage::

        bus = MockI2CBus()
        bus.attach(0x48, MockADS1115(voltages=[1.0, 2.0, 0.0, 0.0]))
        bus.transact(0x48, b"\\x00", 2)
    """

    def __init__(self, name: str = "mock-i2c", transfer_delay_s: float = 0.0) -> None:
        super().__init__(name=name)
        self.devices: dict[int, MockI2CDevice] = {}
        self.transactions: list[I2CTransaction] = []
        self.transfer_delay_s = transfer_delay_s
        # Incremented on entry and decremented on exit of _transfer; must never exceed 1.
        self.in_flight = 0
        self.max_in_flight = 0

    def attach(self, address: int, device: MockI2CDevice) -> None:
        self.devices[address] = device

    def _transfer(self, address: int, write: bytes, read_length: int) -> bytes:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            device = self.devices.get(address)
            if device is None:
                raise OSError(errno.EREMOTEIO, f"No device at address 0x{address:02x}")
            if self.transfer_delay_s:
                time.sleep(self.transfer_delay_s)
            response = bytes(device.transfer(write, read_length))[:read_length]
            self.transactions.append(
                I2CTransaction(address=address, write=write, read_length=read_length, response=response)
            )
            return response
        finally:
            self.in_flight -= 1


class RegisterI2CDevice(MockI2CDevice):
    """Simulated register-file device.

    The first written byte selects the register pointer; further bytes are
    stored from that pointer on.  Reads return bytes from the pointer on.
    """

    def __init__(self, size: int = 256) -> None:
        self.registers = bytearray(size)
        self.pointer = 0

    def transfer(self, write: bytes, read_length: int) -> bytes:
        if write:
            self.pointer = write[0] % len(self.registers)
            for offset, value in enumerate(write[1:]):
                self.registers[(self.pointer + offset) % len(self.registers)] = value
        return bytes(
            self.registers[(self.pointer + i) % len(self.registers)] for i in range(read_length)
        )


class MockADS1115(MockI2CDevice):
    """Simulated ADS1115 returning fixed single-ended channel voltages.

    Honours the MUX and PGA fields of the config register so the conversion
    result matches what the real chip would report for ``voltages``.
    """

    _FULL_SCALE = {0: 6.144, 1: 4.096, 2: 2.048, 3: 1.024, 4: 0.512, 5: 0.256, 6: 0.256, 7: 0.256}

    def __init__(self, voltages: list[float] | None = None) -> None:
        self.voltages = list(voltages or [0.0, 0.0, 0.0, 0.0])
        self.pointer = 0
        self.config = 0x8583
        self.conversion = 0
        self.conversions = 0

    def transfer(self, write: bytes, read_length: int) -> bytes:
        if write:
            self.pointer = write[0] & 0x03
            if self.pointer == 0x01 and len(write) >= 3:
                self.config = struct.unpack(">H", write[1:3])[0]
                if self.config & 0x8000:
                    self._convert()
        if not read_length:
            return b""
        value = self.conversion if self.pointer == 0x00 else self.config
        return struct.pack(">H", value & 0xFFFF)[:read_length]

    # MUX code → (positive input, negative input or None for GND).
    _MUX = {0: (0, 1), 1: (0, 3), 2: (1, 3), 3: (2, 3), 4: (0, None), 5: (1, None), 6: (2, None), 7: (3, None)}

    def _convert(self) -> None:
        mux = (self.config >> 12) & 0x07
        pga = (self.config >> 9) & 0x07
        positive, negative = self._MUX[mux]
        volts = self.voltages[positive]
        if negative is not None:
            volts -= self.voltages[negative]
        full_scale = self._FULL_SCALE[pga]
        raw = round(volts / full_scale * 32768)
        raw = max(-32768, min(32767, raw))
        self.conversion = raw & 0xFFFF
        self.conversions += 1
