from __future__ import annotations

from collections import deque
from datetime import tzinfo
from pathlib import Path
from typing import List, Optional, Union
import contextlib
import csv
import logging
import threading

from powersocket.core.clock import Clock, RealClock, local_dt
from powersocket.core.errors import StorageIOError
from powersocket.core.state import DailyBucket, EnergyRecord, ZERO_RECORD
from powersocket.modules.stats import DailyAggregator
from powersocket.modules.tariff import TariffEngine

log = logging.getLogger(__name__)

DEFAULT_MAX_RECORDS = 43200

CSV_HEADER = [
    "Date",
    "Energy Total (kWh)",
    "Energy Peak (kWh)",
    "Energy Offpeak (kWh)",
    "Cost Total (RUB)",
    "Usage Hours",
]


class HistoryLedger:
    """
    Historia rekordów energii (timestamp, kWh, koszt) w pamięci.

    - limit liczony w REKORDACH, nie w czasie: po przekroczeniu max_records
      wylatuje najstarszy (FIFO),
    - każdy append() od razu zasila DailyAggregator,
    - eksport CSV to zrzut bucketów dziennych, nie surowych rekordów.
    """

    def __init__(
        self,
        tariff: TariffEngine,
        aggregator: DailyAggregator,
        *,
        tz: tzinfo,
        clock: Optional[Clock] = None,
        lock: Optional[threading.RLock] = None,
        max_records: int = DEFAULT_MAX_RECORDS,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if max_records < 1:
            raise ValueError("max_records must be >= 1")

        self._tariff = tariff
        self._aggregator = aggregator
        self._tz = tz
        self._clock = clock or RealClock()
        self._lock = lock or threading.RLock()
        self._log = logger or log

        self._records: deque[EnergyRecord] = deque(maxlen=int(max_records))

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    @property
    def max_records(self) -> int:
        return self._records.maxlen or 0

    def append(self, energy_kwh: float) -> EnergyRecord:
        if energy_kwh < 0:
            raise ValueError(f"energy_kwh must be >= 0, got {energy_kwh}")

        now = self._clock.time()
        hour = local_dt(now, self._tz).hour
        record = EnergyRecord(
            timestamp=int(now),
            energy=float(energy_kwh),
            cost=self._tariff.cost(float(energy_kwh), hour),
        )

        with self._lock:
            self._records.append(record)
            self._aggregator.ingest(record)
        return record

    def history(self, hours: int = 24) -> List[EnergyRecord]:
        cutoff = int(self._clock.time()) - int(hours) * 3600
        with self._lock:
            return [r for r in self._records if r.timestamp >= cutoff]

    def latest(self) -> EnergyRecord:
        with self._lock:
            if not self._records:
                return ZERO_RECORD
            return self._records[-1]

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
        self._log.info("Energy history cleared")

    # ---------- EKSPORT CSV ----------

    def write_csv(self, path: Union[str, Path]) -> int:
        """
        Zapisuje buckety dzienne do CSV (nagłówek + 1 wiersz na dzień),
        przez plik .tmp + replace. Zwraca liczbę dni, przy błędzie IO
        rzuca StorageIOError (plik .tmp jest sprzątany).
        """
        target = Path(path)
        buckets = self._aggregator.buckets()
        tmp = target.with_name(target.name + ".tmp")

        try:
            with tmp.open("w", encoding="utf-8", newline="") as f:
                w = csv.writer(f, delimiter=",")
                w.writerow(CSV_HEADER)
                for b in buckets:
                    w.writerow(self._csv_row(b))
            tmp.replace(target)
        except OSError as exc:
            with contextlib.suppress(OSError):
                tmp.unlink()
            raise StorageIOError(f"cannot write {target}: {exc}") from exc

        self._log.info("Statistics exported to CSV: %s (%d days)", target, len(buckets))
        return len(buckets)

    def export_csv(self, path: Union[str, Path]) -> bool:
        """Jak write_csv(), ale błąd kończy się False zamiast wyjątkiem."""
        try:
            self.write_csv(path)
        except StorageIOError as exc:
            self._log.error("Failed to export statistics to CSV: %s", exc)
            return False
        return True

    @staticmethod
    def _csv_row(b: DailyBucket) -> List[str]:
        return [
            b.date,
            f"{b.energy_total:.6f}",
            f"{b.energy_peak:.6f}",
            f"{b.energy_offpeak:.6f}",
            f"{b.cost_total:.6f}",
            str(b.usage_hours),
        ]
