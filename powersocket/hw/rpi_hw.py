from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from powersocket.core.clock import Clock, RealClock
from powersocket.core.errors import SensorInitFailure, SensorReadTransientError
from powersocket.core.state import Reading, SensorType, SourceStatus, reactive_power

log = logging.getLogger(__name__)


# =========================
# Konfiguracja sprzętu
# =========================

@dataclass(frozen=True)
class Ina219Config:
    """
    INA219 na I2C.
    bus=1 -> /dev/i2c-1, adres domyślny 0x40.
    """
    bus: int = 1
    address: int = 0x40
    shunt_ohms: float = 0.1
    current_lsb_a: float = 0.0001    # 0.1 mA / bit


# rejestry INA219
REG_CONFIG = 0x00
REG_BUS_VOLTAGE = 0x02
REG_POWER = 0x03
REG_CURRENT = 0x04
REG_CALIBRATION = 0x05

# 32V, ±320mV, 12-bit, ciągły pomiar shunt + bus
CONFIG_32V_320MV_CONT = 0x399F


# =========================
# Implementacje SampleSource
# =========================

class I2cSource:
    """
    Czujnik INA219 po I2C (smbus2).

    - open(): konfiguracja + kalibracja układu; brak biblioteki / brak
      odpowiedzi na magistrali -> SensorInitFailure,
    - next_reading(): napięcie, prąd i moc z rejestrów; energia
      całkowana lokalnie (INA219 nie ma licznika kWh).
    """

    kind = SensorType.I2C

    def __init__(self, cfg: Ina219Config, *, clock: Optional[Clock] = None) -> None:
        self.cfg = cfg
        self._clock = clock or RealClock()
        self._bus = None

        self._lock = threading.Lock()
        self._energy_kwh = 0.0
        self._last_mono: Optional[float] = None

        # trunc(0.04096 / (current_lsb * R_shunt))
        self._calibration = int(0.04096 / (cfg.current_lsb_a * cfg.shunt_ohms))
        self._power_lsb_w = 20.0 * cfg.current_lsb_a

    # ---------- SampleSource ----------

    def open(self) -> SourceStatus:
        try:
            from smbus2 import SMBus  # type: ignore
        except ImportError as e:
            raise SensorInitFailure("smbus2 not available (are you on Raspberry Pi OS?)") from e

        log.info(
            "Initializing I2C power sensor on bus %d, address 0x%02x",
            self.cfg.bus, self.cfg.address,
        )
        bus = None
        try:
            bus = SMBus(self.cfg.bus)
            self._write_register(bus, REG_CONFIG, CONFIG_32V_320MV_CONT)
            self._write_register(bus, REG_CALIBRATION, self._calibration)
        except OSError as e:
            # magistrala otwarta, układ milczy -> zwalniamy uchwyt
            if bus is not None:
                try:
                    bus.close()
                except OSError as close_err:
                    log.warning("I2C bus close failed: %s", close_err)
            raise SensorInitFailure(
                f"INA219 not responding on bus {self.cfg.bus} @0x{self.cfg.address:02x}: {e}"
            ) from e

        self._bus = bus
        with self._lock:
            self._last_mono = self._clock.monotonic()
        return SourceStatus.READY

    def next_reading(self) -> Reading:
        if self._bus is None:
            raise SensorReadTransientError("I2C bus not open")

        try:
            raw_bus = self._read_register(self._bus, REG_BUS_VOLTAGE)
            raw_current = self._read_register(self._bus, REG_CURRENT)
            raw_power = self._read_register(self._bus, REG_POWER)
        except OSError as e:
            raise SensorReadTransientError(f"INA219 read failed: {e}") from e

        # bity 15..3 -> 4 mV / bit
        voltage = ((raw_bus >> 3) & 0x1FFF) * 0.004
        current = self._to_signed(raw_current) * self.cfg.current_lsb_a
        power = raw_power * self._power_lsb_w

        now = self._clock.monotonic()
        with self._lock:
            if self._last_mono is None:
                self._last_mono = now
            dt = max(0.0, now - self._last_mono)
            self._last_mono = now
            self._energy_kwh += power * (dt / 3600.0) / 1000.0
            energy = self._energy_kwh

        apparent = voltage * abs(current)
        pf = min(1.0, power / apparent) if apparent > 0 else 1.0

        return Reading(
            voltage=voltage,
            current=current,
            real_power=power,
            apparent_power=max(apparent, power),
            reactive_power=reactive_power(max(apparent, power), power),
            power_factor=pf,
            frequency=0.0,   # pomiar DC
            cumulative_energy=energy,
        )

    def close(self) -> None:
        if self._bus is not None:
            try:
                self._bus.close()
            except OSError as e:
                log.warning("I2C bus close failed: %s", e)
            self._bus = None

    def reset_energy(self) -> None:
        with self._lock:
            self._energy_kwh = 0.0

    # ---------- Rejestry ----------

    def _read_register(self, bus, reg: int) -> int:
        # INA219 jest big-endian, SMBus word jest little-endian
        raw = bus.read_word_data(self.cfg.address, reg)
        return ((raw & 0xFF) << 8) | ((raw >> 8) & 0xFF)

    def _write_register(self, bus, reg: int, value: int) -> None:
        swapped = ((value & 0xFF) << 8) | ((value >> 8) & 0xFF)
        bus.write_word_data(self.cfg.address, reg, swapped)

    @staticmethod
    def _to_signed(value: int) -> int:
        return value - 0x10000 if value & 0x8000 else value


class AnalogSource:
    """Czujnik analogowy (ADC) – jeszcze nie zaimplementowany."""

    kind = SensorType.ANALOG

    def open(self) -> SourceStatus:
        log.info("Initializing analog power sensor")
        return SourceStatus.UNSUPPORTED

    def next_reading(self) -> Reading:
        raise SensorReadTransientError("analog sensor backend is not supported")

    def close(self) -> None:
        return None


class PzemSource:
    """PZEM-004T (UART/Modbus) – jeszcze nie zaimplementowany."""

    kind = SensorType.PZEM

    def open(self) -> SourceStatus:
        log.info("Initializing PZEM-004T power sensor")
        return SourceStatus.UNSUPPORTED

    def next_reading(self) -> Reading:
        raise SensorReadTransientError("PZEM-004T backend is not supported")

    def close(self) -> None:
        return None
