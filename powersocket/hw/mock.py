from __future__ import annotations

from typing import Optional
import logging
import random
import threading

from powersocket.core.clock import Clock, RealClock
from powersocket.core.state import Reading, SensorType, SourceStatus, reactive_power


__all__ = ["SyntheticSource"]

logger = logging.getLogger(__name__)


class SyntheticSource:
    """
    Symulator czujnika mocy.

    - Obciążenie:
        stała moc czynna load_w (domyślnie 100 W), zmieniana set_load().
    - Sieć:
        napięcie 215–230 V, częstotliwość 49.8–50.2 Hz, cos φ 0.85–0.99
        (losowane przy każdym odczycie).
    - Prąd / moc pozorna:
        I = P / (U * cos φ), S = U * I, Q = sqrt(S² − P²).
    - Energia:
        licznik kWh całkowany po czasie MONOTONICZNYM zegara:
        E += P * dt_h / 1000.
    """

    kind = SensorType.SIMULATION

    VOLTAGE_RANGE = (215.0, 230.0)      # [V]
    FREQUENCY_RANGE = (49.8, 50.2)      # [Hz]
    POWER_FACTOR_RANGE = (0.85, 0.99)

    DEFAULT_LOAD_W = 100.0

    def __init__(
        self,
        *,
        clock: Optional[Clock] = None,
        load_w: float = DEFAULT_LOAD_W,
        seed: Optional[int] = None,
    ) -> None:
        self._clock = clock or RealClock()
        self._rng = random.Random(seed)
        self._lock = threading.Lock()

        self._load_w = max(0.0, float(load_w))
        self._energy_kwh = 0.0
        self._last_mono: Optional[float] = None

    @property
    def load_w(self) -> float:
        with self._lock:
            return self._load_w

    # ------------------------------------------------------------------
    #  SampleSource
    # ------------------------------------------------------------------
    def open(self) -> SourceStatus:
        with self._lock:
            self._last_mono = self._clock.monotonic()
        logger.info("Power monitor running in simulation mode (load=%.1fW)", self._load_w)
        return SourceStatus.READY

    def next_reading(self) -> Reading:
        now = self._clock.monotonic()

        with self._lock:
            if self._last_mono is None:
                self._last_mono = now
            dt = max(0.0, now - self._last_mono)
            self._last_mono = now

            load = self._load_w
            self._energy_kwh += load * (dt / 3600.0) / 1000.0
            energy = self._energy_kwh

            voltage = self._rng.uniform(*self.VOLTAGE_RANGE)
            frequency = self._rng.uniform(*self.FREQUENCY_RANGE)
            pf = self._rng.uniform(*self.POWER_FACTOR_RANGE)

        current = load / (voltage * pf)
        apparent = voltage * current

        return Reading(
            voltage=voltage,
            current=current,
            real_power=load,
            apparent_power=apparent,
            reactive_power=reactive_power(apparent, load),
            power_factor=pf,
            frequency=frequency,
            cumulative_energy=energy,
        )

    def close(self) -> None:
        return None

    # ------------------------------------------------------------------
    #  Sterowanie symulacją
    # ------------------------------------------------------------------
    def set_load(self, watts: float) -> None:
        if watts < 0:
            raise ValueError(f"Simulated load must be >= 0, got {watts}")
        with self._lock:
            self._load_w = float(watts)
        logger.info("Setting simulated load to %.1fW", watts)

    def reset_energy(self) -> None:
        with self._lock:
            self._energy_kwh = 0.0
