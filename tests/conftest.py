# tests/conftest.py
from zoneinfo import ZoneInfo

import pytest

from powersocket.config.settings import SensorSettings
from powersocket.core.clock import SimClock
from powersocket.core.energy_service import EnergyService
from powersocket.core.sampler import Sampler
from powersocket.core.state import SensorType
from powersocket.hw.factory import create_source
from powersocket.hw.mock import SyntheticSource
from powersocket.modules.tariff import TariffEngine

# 2024-03-15 12:00:00 UTC
START_TS = 1710504000.0


@pytest.fixture
def clock():
    return SimClock(start_ts=START_TS)


@pytest.fixture
def tz():
    return ZoneInfo("UTC")


@pytest.fixture
def tariff(tmp_path):
    # values.yaml w tmp, schemat z paczki
    return TariffEngine(values_path=tmp_path / "values.yaml")


@pytest.fixture
def service(tariff, tz, clock):
    return EnergyService(tariff, tz=tz, clock=clock)


@pytest.fixture
def sensor_settings(tmp_path):
    return SensorSettings(
        type=SensorType.SIMULATION,
        cpu_temp_path=str(tmp_path / "thermal_zone0_temp"),
    )


def seeded_factory(kind, settings, clock=None):
    """create_source, ale symulator z ustalonym ziarnem."""
    if kind is SensorType.SIMULATION:
        return SyntheticSource(clock=clock, seed=1234)
    return create_source(kind, settings, clock)


@pytest.fixture
def sampler(sensor_settings, clock):
    s = Sampler(sensor_settings, clock=clock, source_factory=seeded_factory)
    yield s
    s.stop()
