from __future__ import annotations

from dataclasses import replace
from typing import Callable, Dict, List, Optional
import logging
import math
import threading

from powersocket.config.settings import SensorSettings
from powersocket.core.clock import Clock, RealClock
from powersocket.core.errors import SensorInitFailure, SensorReadTransientError
from powersocket.core.rolling_window import DEFAULT_CAPACITY, RollingWindow
from powersocket.core.state import (
    Event,
    EventLevel,
    InitResult,
    Reading,
    SamplerState,
    SensorType,
    SourceStatus,
    reactive_power,
)
from powersocket.hw.factory import create_source
from powersocket.hw.interface import SampleSource
from powersocket.hw.mock import SyntheticSource


log = logging.getLogger(__name__)

SourceFactory = Callable[[SensorType, SensorSettings, Optional[Clock]], SampleSource]
ThresholdCallback = Callable[[Event], None]


class Sampler:
    """
    Pętla próbkowania telemetrii (osobny wątek).

    Jedna iteracja = jeden odczyt zegara monotonicznego, na którym
    "wiszą" trzy niezależne akcje:
      (a) co tick (100 ms): odczyt źródła + kalibracja + publikacja
          current / last_valid,
      (b) co 1 s: moc do RollingWindow (po publikacji z tego samego ticka),
      (c) co 30 s: podsumowanie diagnostyczne do logu.

    Stany: IDLE -> RUNNING -> STOPPED (initialize() ze STOPPED startuje od nowa).

    Lock `_lock` pilnuje pary odczytów i okna – to jedyne, co zapisuje wątek.
    Czytelnicy dostają niemutowalne snapshoty Reading.
    """

    TICK_INTERVAL_S = 0.1
    WINDOW_PUSH_INTERVAL_S = 1.0
    DIAG_INTERVAL_S = 30.0
    STOP_TIMEOUT_S = 2.0

    def __init__(
        self,
        settings: SensorSettings,
        *,
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None,
        window_capacity: int = DEFAULT_CAPACITY,
        source_factory: SourceFactory = create_source,
        tick_interval_s: float = TICK_INTERVAL_S,
        push_interval_s: float = WINDOW_PUSH_INTERVAL_S,
        diag_interval_s: float = DIAG_INTERVAL_S,
    ) -> None:
        self._settings = settings
        self._clock = clock or RealClock()
        self._log = logger or log
        self._diag_log = self._log.getChild("diag")
        self._source_factory = source_factory

        self._tick_s = float(tick_interval_s)
        self._push_s = float(push_interval_s)
        self._diag_s = float(diag_interval_s)

        # --- stan współdzielony z czytelnikami (pod _lock) ---
        self._lock = threading.Lock()
        self._current = Reading()
        self._last_valid = Reading()
        self._window_capacity = int(window_capacity)
        self._window = RollingWindow(self._window_capacity)

        self._warning_w = float(settings.warning_threshold)
        self._critical_w = float(settings.critical_threshold)
        self._temp_warning_c = float(settings.temperature_warning_threshold)
        self._threshold_cb: Optional[ThresholdCallback] = None
        # zwiększane przez reset_energy(); step() porównuje przed publikacją
        self._reset_gen = 0

        # --- cykl życia (initialize/stop serializowane osobnym lockiem) ---
        self._lifecycle_lock = threading.Lock()
        self._state = SamplerState.IDLE
        self._source: Optional[SampleSource] = None
        self._backend = SensorType.NONE
        self._calibration = float(settings.calibration)

        self._stop_evt = threading.Event()
        self._thread: Optional[threading.Thread] = None

        # terminy akcji (b) i (c) na osi monotonicznej
        self._next_push_mono = 0.0
        self._next_diag_mono = 0.0
        self._read_failures = 0

    # ---------- cykl życia ----------

    @property
    def state(self) -> SamplerState:
        with self._lock:
            return self._state

    @property
    def backend(self) -> SensorType:
        with self._lock:
            return self._backend

    @property
    def calibration(self) -> float:
        with self._lock:
            return self._calibration

    def initialize(
        self,
        source_kind: SensorType | str | int | None = None,
        calibration: Optional[float] = None,
        *,
        run_in_background: bool = True,
    ) -> InitResult:
        """
        Startuje próbkowanie.

        Błąd prawdziwego czujnika NIE jest fatalny: logujemy i jedziemy
        na symulacji (InitResult.fallback=True). ok=False tylko przy złej
        kalibracji albo nieznanym typie czujnika.

        run_in_background=False: stan RUNNING bez wątku – step() woła właściciel.
        """
        with self._lifecycle_lock:
            try:
                kind = self._settings.type if source_kind is None else SensorType.parse(source_kind)
            except ValueError as exc:
                self._log.error("Failed to initialize power monitor: %s", exc)
                return InitResult(ok=False, backend=SensorType.NONE, error=str(exc))

            cal = self._settings.calibration if calibration is None else float(calibration)
            if not math.isfinite(cal) or cal <= 0:
                msg = f"calibration factor must be finite and > 0, got {cal}"
                self._log.error("Failed to initialize power monitor: %s", msg)
                return InitResult(ok=False, backend=kind, error=msg)

            if kind is SensorType.NONE or not self._settings.enabled:
                self._log.info("Power monitoring disabled")
                return InitResult(ok=True, backend=SensorType.NONE)

            if self._state is SamplerState.RUNNING:
                self._stop_locked()

            self._log.info(
                "Initializing sensor: %s (type=%s, bus=%d, addr=0x%02x)",
                self._settings.name, kind.name, self._settings.bus, self._settings.address,
            )
            source, fallback, reason = self._open_source(kind)

            now_mono = self._clock.monotonic()
            with self._lock:
                self._source = source
                self._backend = source.kind
                self._calibration = cal
                self._current = Reading()
                self._last_valid = Reading()
                self._window = RollingWindow(self._window_capacity)
                self._next_push_mono = now_mono + self._push_s
                self._next_diag_mono = now_mono + self._diag_s
                self._read_failures = 0
                self._state = SamplerState.RUNNING

            self._stop_evt.clear()
            if run_in_background:
                self._thread = threading.Thread(target=self._run, daemon=True, name="power_sampler")
                self._thread.start()

            self._log.info(
                "Power monitor initialized (backend=%s, calibration=%.4f)", source.kind.name, cal
            )
            return InitResult(ok=True, backend=source.kind, fallback=fallback, error=reason)

    def stop(self) -> None:
        """Zatrzymuje wątek (czeka max ~1 tick) i zamraża ostatnie odczyty."""
        with self._lifecycle_lock:
            self._stop_locked()

    def __enter__(self) -> "Sampler":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def _stop_locked(self) -> None:
        if self._state is not SamplerState.RUNNING:
            return

        self._stop_evt.set()
        t = self._thread
        if t is not None and t is not threading.current_thread():
            t.join(timeout=self.STOP_TIMEOUT_S)
            if t.is_alive():
                self._log.warning("Sampler thread still alive after %.1fs", self.STOP_TIMEOUT_S)
        self._thread = None

        with self._lock:
            self._state = SamplerState.STOPPED
            source = self._source

        if source is not None:
            try:
                source.close()
            except Exception:  # pylint: disable=broad-except
                self._log.exception("Error closing %s sample source", source.kind.name)

        self._log.info("Power monitor stopped")

    def _open_source(self, kind: SensorType) -> tuple[SampleSource, bool, Optional[str]]:
        reason: Optional[str] = None
        try:
            source = self._source_factory(kind, self._settings, self._clock)
            status = source.open()
        except SensorInitFailure as exc:
            status = SourceStatus.FAILED
            reason = str(exc)

        if status is SourceStatus.READY:
            return source, False, None

        if reason is None:
            reason = f"{kind.name} sensor backend {status.name.lower()}"
        self._log.error("Failed to initialize power monitor: %s", reason)
        self._log.warning("Power monitor running in simulation mode (fallback)")

        fallback = SyntheticSource(clock=self._clock)
        fallback.open()
        return fallback, True, reason

    # ---------- pętla ----------

    def _run(self) -> None:
        self._log.info("Power monitoring thread started")
        while not self._stop_evt.is_set():
            start = self._clock.monotonic()
            try:
                self.step(start)
            except Exception:  # pylint: disable=broad-except
                self._log.exception("Sampler tick failed")
            elapsed = self._clock.monotonic() - start
            remaining = max(0.0, self._tick_s - elapsed)
            # wait zamiast time.sleep -> szybka reakcja na stop()
            if self._stop_evt.wait(timeout=remaining):
                break
        self._log.info("Power monitoring thread stopped")

    def step(self, now_mono: Optional[float] = None) -> None:
        """
        Jedna iteracja pętli. Po stop() nic nie robi.

        now_mono: jeden odczyt zegara monotonicznego na iterację; wątek
        podaje ten sam, którym mierzy tick. Bez argumentu bierzemy z zegara.
        """
        if now_mono is None:
            now_mono = self._clock.monotonic()

        with self._lock:
            if self._state is not SamplerState.RUNNING or self._source is None:
                return
            source = self._source
            calibration = self._calibration
            prev_energy = self._current.cumulative_energy
            reset_gen = self._reset_gen

        # (a) odczyt – poza lockiem, czujnik może chwilę trwać
        ts_ms = int(self._clock.time() * 1000)
        try:
            raw = source.next_reading()
        except SensorReadTransientError as exc:
            raw = None
            self._log.debug("Sensor read failed: %s", exc)

        if raw is None:
            reading = Reading(cumulative_energy=prev_energy, timestamp_ms=ts_ms)
        else:
            reading = self._calibrate(raw, calibration, ts_ms)

        push_due = False
        diag_due = False
        with self._lock:
            if self._state is not SamplerState.RUNNING:
                return
            if self._reset_gen != reset_gen:
                # reset_energy() wszedł w trakcie odczytu: licznik od zera
                reading = replace(reading, cumulative_energy=0.0)
            self._current = reading
            if reading.is_valid:
                self._last_valid = reading
            else:
                self._read_failures += 1

            # (b) okno dopiero po publikacji odczytu
            if now_mono >= self._next_push_mono:
                self._window.push(reading.real_power)
                self._next_push_mono = now_mono + self._push_s
                push_due = True

            # (c)
            if now_mono >= self._next_diag_mono:
                self._next_diag_mono = now_mono + self._diag_s
                failures = self._read_failures
                self._read_failures = 0
                diag_due = True

        if diag_due:
            self._diag_log.debug(
                "Power: %.1fW, Current: %.3fA, Voltage: %.1fV, invalid samples: %d",
                reading.real_power, reading.current, reading.voltage, failures,
            )
        elif push_due and not reading.is_valid:
            self._log.debug("Invalid sample pushed as 0W to rolling window")

    @staticmethod
    def _calibrate(raw: Reading, factor: float, ts_ms: int) -> Reading:
        current = raw.current * factor
        power = raw.real_power * factor
        apparent = max(raw.voltage * abs(current), power)
        return replace(
            raw,
            current=current,
            real_power=power,
            apparent_power=apparent,
            reactive_power=reactive_power(apparent, power),
            timestamp_ms=ts_ms,
        )

    # ---------- odczyty ----------

    def current_reading(self) -> Reading:
        with self._lock:
            reading = self._current
        self._check_thresholds(reading)
        return reading

    def last_valid_reading(self) -> Reading:
        with self._lock:
            return self._last_valid

    def window_stats(self, seconds: int = 60) -> Dict[str, float]:
        with self._lock:
            return self._window.stats(seconds)

    def window_snapshot(self) -> List[float]:
        with self._lock:
            return self._window.values()

    def statistics(self, period_seconds: int = 300) -> Dict[str, float]:
        with self._lock:
            cur = self._current
            win = self._window.stats(period_seconds)
            critical = self._critical_w

        return {
            "voltage": cur.voltage,
            "current": cur.current,
            "power": cur.real_power,
            "power_apparent": cur.apparent_power,
            "power_reactive": cur.reactive_power,
            "power_factor": cur.power_factor,
            "frequency": cur.frequency,
            "energy": cur.cumulative_energy,
            "temperature": self.cpu_temperature(),
            "power_avg": win["average"],
            "power_max": win["max"],
            "power_min": win["min"],
            "load_percentage": (cur.real_power / critical) * 100.0 if cur.voltage > 0 and critical > 0 else 0.0,
        }

    def cpu_temperature(self) -> float:
        """Temperatura CPU z sysfs (°C); 0.0 gdy brak pliku albo śmieci."""
        try:
            with open(self._settings.cpu_temp_path, "r", encoding="ascii") as f:
                raw = f.read().strip()
            return int(raw) / 1000.0
        except (OSError, ValueError):
            return 0.0

    def is_active(self) -> bool:
        with self._lock:
            return self._settings.enabled and self._last_valid.voltage > 0

    def sensor_status(self) -> str:
        if not self._settings.enabled:
            return "disabled"
        with self._lock:
            last = self._last_valid
        if last.voltage <= 0:
            return "no_data"
        if last.real_power <= 0:
            return "idle"
        return "active"

    # ---------- sterowanie ----------

    def set_simulated_load(self, watts: float) -> bool:
        """Tylko dla backendu symulacyjnego; dla prawdziwego czujnika -> False."""
        with self._lock:
            source = self._source
        if not isinstance(source, SyntheticSource):
            self._log.warning("Simulated load ignored: backend is not a simulator")
            return False
        try:
            source.set_load(watts)
        except ValueError as exc:
            self._log.warning("Simulated load rejected: %s", exc)
            return False
        return True

    def reset_energy(self) -> None:
        """Zeruje licznik kWh w obu odczytach (i w źródle). Okna nie rusza."""
        with self._lock:
            source = self._source
            reset = getattr(source, "reset_energy", None)
            if callable(reset):
                reset()
            self._reset_gen += 1
            self._current = replace(self._current, cumulative_energy=0.0)
            self._last_valid = replace(self._last_valid, cumulative_energy=0.0)
        self._log.info("Energy counter reset")

    def set_power_thresholds(self, warning: float, critical: float) -> None:
        with self._lock:
            self._warning_w = float(warning)
            self._critical_w = float(critical)
        self._log.info("Power thresholds set: warning=%.1fW, critical=%.1fW", warning, critical)

    def set_temperature_threshold(self, warning: float) -> None:
        with self._lock:
            self._temp_warning_c = float(warning)
        self._log.info("Temperature warning threshold set: %.1f°C", warning)

    def set_threshold_callback(self, callback: Optional[ThresholdCallback]) -> None:
        with self._lock:
            self._threshold_cb = callback

    def _check_thresholds(self, reading: Reading) -> None:
        with self._lock:
            cb = self._threshold_cb
            warning = self._warning_w
            critical = self._critical_w
            temp_warning = self._temp_warning_c

        if cb is None:
            return

        if reading.voltage > 0:
            power = reading.real_power
            if power >= critical:
                self._emit(cb, Event(
                    ts=self._clock.time(),
                    source="sampler",
                    level=EventLevel.CRITICAL,
                    type="POWER_THRESHOLD_CRITICAL",
                    message=f"Power threshold exceeded: {power:.1f}W >= {critical:.1f}W",
                    data={"power": power, "threshold": critical},
                ))
            elif power >= warning:
                self._emit(cb, Event(
                    ts=self._clock.time(),
                    source="sampler",
                    level=EventLevel.WARNING,
                    type="POWER_THRESHOLD_WARNING",
                    message=f"Power threshold exceeded: {power:.1f}W >= {warning:.1f}W",
                    data={"power": power, "threshold": warning},
                ))

        # 0.0 = brak odczytu z sysfs, nie alarmujemy
        temp = self.cpu_temperature()
        if temp > 0 and temp >= temp_warning:
            self._emit(cb, Event(
                ts=self._clock.time(),
                source="sampler",
                level=EventLevel.WARNING,
                type="TEMPERATURE_WARNING",
                message=f"CPU temperature high: {temp:.1f}°C >= {temp_warning:.1f}°C",
                data={"temperature": temp, "threshold": temp_warning},
            ))

    def _emit(self, cb: ThresholdCallback, ev: Event) -> None:
        try:
            cb(ev)
        except Exception:  # pylint: disable=broad-except
            self._log.exception("Threshold callback failed (%s)", ev.type)
