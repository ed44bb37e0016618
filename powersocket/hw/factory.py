from __future__ import annotations

from typing import Optional

from powersocket.config.settings import SensorSettings
from powersocket.core.clock import Clock
from powersocket.core.state import SensorType
from powersocket.hw.interface import SampleSource
from powersocket.hw.mock import SyntheticSource
from powersocket.hw.rpi_hw import AnalogSource, I2cSource, Ina219Config, PzemSource


def create_source(kind: SensorType, settings: SensorSettings, clock: Optional[Clock] = None) -> SampleSource:
    """Backend czujnika na podstawie sensor.type."""
    if kind is SensorType.I2C:
        return I2cSource(Ina219Config(bus=settings.bus, address=settings.address), clock=clock)
    if kind is SensorType.ANALOG:
        return AnalogSource()
    if kind is SensorType.PZEM:
        return PzemSource()
    if kind is SensorType.SIMULATION:
        return SyntheticSource(clock=clock)
    raise ValueError(f"No sample source for sensor type {kind.name}")
