"""Unit tests — I2C bus serialisation and the simulated devices."""

from __future__ import annotations

import struct
import threading

import pytest

from pihub.exceptions import HardwareError, ResourceClosedError
from pihub.hardware.i2c import MockADS1115, MockI2CBus, RegisterI2CDevice


@pytest.mark.unit
class TestMockI2CBus:
    def test_transact_routes_to_device(self) -> None:
        bus = MockI2CBus()
        device = RegisterI2CDevice()
        device.registers[0x10:0x12] = b"\xab\xcd"
        bus.attach(0x20, device)

        assert bus.transact(0x20, b"\x10", 2) == b"\xab\xcd"

    def test_write_only_transaction(self) -> None:
        bus = MockI2CBus()
        device = RegisterI2CDevice()
        bus.attach(0x20, device)

        assert bus.transact(0x20, b"\x05\x01\x02") == b""
        assert device.registers[5:7] == b"\x01\x02"

    def test_missing_device_raises_hardware_error(self) -> None:
        bus = MockI2CBus()
        with pytest.raises(HardwareError) as exc_info:
            bus.transact(0x33, b"\x00", 1)
        assert exc_info.value.context["address"] == 0x33
        assert isinstance(exc_info.value.cause, OSError)

    def test_empty_transaction_is_a_no_op(self) -> None:
        bus = MockI2CBus()
        assert bus.transact(0x33) == b""
        assert bus.transactions == []

    def test_negative_read_length_rejected(self) -> None:
        with pytest.raises(ValueError):
            MockI2CBus().transact(0x20, b"", -1)

    def test_closed_bus_raises(self) -> None:
        bus = MockI2CBus()
        bus.close()
        assert bus.closed
        with pytest.raises(ResourceClosedError):
            bus.transact(0x20, b"\x00", 1)

    def test_transactions_recorded(self) -> None:
        bus = MockI2CBus()
        bus.attach(0x20, RegisterI2CDevice())
        bus.transact(0x20, b"\x00", 1)
        assert len(bus.transactions) == 1
        assert bus.transactions[0].address == 0x20
        assert bus.transactions[0].read_length == 1

    def test_concurrent_transactions_never_overlap(self) -> None:
        bus = MockI2CBus(transfer_delay_s=0.002)
        bus.attach(0x20, RegisterI2CDevice())
        bus.attach(0x21, RegisterI2CDevice())

        def worker(address: int) -> None:
            for _ in range(10):
                bus.transact(address, b"\x00", 1)

        threads = [threading.Thread(target=worker, args=(a,)) for a in (0x20, 0x21, 0x20, 0x21)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(bus.transactions) == 40
        assert bus.max_in_flight == 1

    def test_locked_groups_transactions(self) -> None:
        bus = MockI2CBus()
        bus.attach(0x20, RegisterI2CDevice())
        bus.attach(0x21, RegisterI2CDevice())
        started = threading.Event()
        release = threading.Event()

        def holder() -> None:
            with bus.locked():
                bus.transact(0x20, b"\x00", 1)
                started.set()
                release.wait(timeout=2.0)
                bus.transact(0x20, b"\x01", 1)

        t = threading.Thread(target=holder)
        t.start()
        started.wait(timeout=2.0)
        other = threading.Thread(target=bus.transact, args=(0x21, b"\x00", 1))
        other.start()
        other.join(timeout=0.05)
        assert other.is_alive()
        release.set()
        t.join()
        other.join()

        assert [tx.address for tx in bus.transactions] == [0x20, 0x20, 0x21]


@pytest.mark.unit
class TestMockADS1115:
    def _convert(self, ads: MockADS1115, mux: int, pga: int) -> int:
        config = 0x8000 | mux << 12 | pga << 9 | 0x0100 | 0x0083
        ads.transfer(struct.pack(">BH", 0x01, config), 0)
        ads.transfer(b"\x00", 0)
        (raw,) = struct.unpack(">h", ads.transfer(b"", 2))
        return raw

    def test_single_ended_conversion(self) -> None:
        ads = MockADS1115(voltages=[1.024, 0.0, 0.0, 0.0])
        # PGA 1 = ±4.096 V, so 1.024 V is a quarter of full scale.
        assert self._convert(ads, mux=4, pga=1) == 8192
        assert ads.conversions == 1

    def test_differential_conversion(self) -> None:
        ads = MockADS1115(voltages=[1.0, 1.5, 0.0, 0.0])
        raw = self._convert(ads, mux=0, pga=1)
        assert raw == round(-0.5 / 4.096 * 32768)

    def test_conversion_clamps_at_full_scale(self) -> None:
        ads = MockADS1115(voltages=[0.0, 0.0, 5.0, 0.0])
        assert self._convert(ads, mux=6, pga=5) == 32767

    def test_config_register_readback_reports_ready(self) -> None:
        ads = MockADS1115()
        ads.transfer(struct.pack(">BH", 0x01, 0xC383), 0)
        status = ads.transfer(b"\x01", 2)
        assert status[0] & 0x80
