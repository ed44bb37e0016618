import sys
import types

import pytest

from powersocket.core.errors import SensorInitFailure
from powersocket.core.state import SourceStatus
from powersocket.hw.rpi_hw import (
    CONFIG_32V_320MV_CONT,
    REG_CALIBRATION,
    REG_CONFIG,
    I2cSource,
    Ina219Config,
)


class FakeBus:
    """Atrapa SMBus: zapisuje wywołania, opcjonalnie udaje głuchy układ."""

    instances = []

    def __init__(self, bus, fail_writes=False):
        self.bus = bus
        self.fail_writes = fail_writes
        self.writes = []
        self.closed = False
        FakeBus.instances.append(self)

    def write_word_data(self, addr, reg, value):
        if self.fail_writes:
            raise OSError(121, "Remote I/O error")
        self.writes.append((addr, reg, value))

    def close(self):
        self.closed = True


@pytest.fixture
def fake_smbus(monkeypatch):
    FakeBus.instances = []
    mod = types.ModuleType("smbus2")
    mod.SMBus = FakeBus
    monkeypatch.setitem(sys.modules, "smbus2", mod)
    return mod


def test_open_configures_ina219(fake_smbus, clock):
    src = I2cSource(Ina219Config(bus=1, address=0x40), clock=clock)

    assert src.open() is SourceStatus.READY

    bus = FakeBus.instances[0]
    assert bus.bus == 1
    # rejestry big-endian -> bajty zamienione w słowie SMBus
    assert bus.writes[0] == (0x40, REG_CONFIG, 0x9F39)
    assert bus.writes[1][1] == REG_CALIBRATION
    assert CONFIG_32V_320MV_CONT == 0x399F

    src.close()
    assert bus.closed


def test_open_closes_bus_when_chip_does_not_answer(fake_smbus, clock):
    fake_smbus.SMBus = lambda n: FakeBus(n, fail_writes=True)
    src = I2cSource(Ina219Config(bus=1, address=0x41), clock=clock)

    with pytest.raises(SensorInitFailure, match="0x41"):
        src.open()

    assert len(FakeBus.instances) == 1
    assert FakeBus.instances[0].closed


def test_open_without_smbus2(monkeypatch, clock):
    monkeypatch.setitem(sys.modules, "smbus2", None)

    with pytest.raises(SensorInitFailure, match="smbus2"):
        I2cSource(Ina219Config(), clock=clock).open()
