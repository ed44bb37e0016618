from __future__ import annotations

from dataclasses import replace
from datetime import date, timedelta, tzinfo
from typing import Any, Dict, List, Optional
import math
import threading

from powersocket.core.clock import Clock, RealClock, local_dt
from powersocket.core.errors import safe_div
from powersocket.core.state import DailyBucket, EnergyRecord
from powersocket.modules.tariff import TariffEngine

WEEK_DAYS = 7


class DailyAggregator:
    """
    Agregaty dzienne (1 bucket na lokalny dzień kalendarzowy).

    - ingest() dostaje każdy rekord z HistoryLedger i dolicza go do bucketu
      swojego dnia (lokalnie), z podziałem szczyt / poza szczytem,
    - today / yesterday / week / month liczone są po dokładnym kluczu
      YYYY-MM-DD – dni bez bucketu po prostu wnoszą zero,
    - brak danych => pola zerowe, nigdy wyjątek.

    Lock jest wspólny z HistoryLedger (przekazuje go EnergyService),
    bo oba są zawsze modyfikowane razem.
    """

    def __init__(
        self,
        tariff: TariffEngine,
        *,
        tz: tzinfo,
        clock: Optional[Clock] = None,
        lock: Optional[threading.RLock] = None,
    ) -> None:
        self._tariff = tariff
        self._tz = tz
        self._clock = clock or RealClock()
        self._lock = lock or threading.RLock()

        self._daily: Dict[str, DailyBucket] = {}  # date_str -> bucket

    # ---------- ZASILANIE ----------

    def ingest(self, record: EnergyRecord) -> DailyBucket:
        rec_dt = local_dt(record.timestamp, self._tz)
        day_key = rec_dt.date().isoformat()

        with self._lock:
            bucket = self._daily.get(day_key)
            if bucket is None:
                bucket = DailyBucket(date=day_key)
                self._daily[day_key] = bucket

            bucket.energy_total += record.energy
            if self._tariff.is_peak(rec_dt.hour):
                bucket.energy_peak += record.energy
            else:
                bucket.energy_offpeak += record.energy

            bucket.cost_total += record.cost
            # przybliżenie kWh*1000/60, to NIE jest fizyczny czas pracy
            bucket.usage_hours = int(math.floor(bucket.energy_total * 1000.0 / 60.0))
            return replace(bucket)

    def clear(self) -> None:
        with self._lock:
            self._daily.clear()

    # ---------- ZAPYTANIA ----------

    def bucket(self, day_key: str) -> Optional[DailyBucket]:
        with self._lock:
            b = self._daily.get(day_key)
            return None if b is None else replace(b)

    def buckets(self) -> List[DailyBucket]:
        """Kopie wszystkich bucketów, posortowane po dacie."""
        with self._lock:
            return [replace(self._daily[k]) for k in sorted(self._daily)]

    def today(self) -> Dict[str, float]:
        return self._day_summary(self._today())

    def yesterday(self) -> Dict[str, float]:
        return self._day_summary(self._today() - timedelta(days=1))

    def week(self) -> Dict[str, float]:
        today = self._today()
        keys = [(today - timedelta(days=i)).isoformat() for i in range(WEEK_DAYS)]

        with self._lock:
            recs = [self._daily[k] for k in keys if k in self._daily]
            result = self._sum_buckets(recs)

        days = result["days_count"]
        result["energy_daily_avg"] = safe_div(result["energy_total"], days)
        result["cost_daily_avg"] = safe_div(result["cost_total"], days)
        return result

    def month(self) -> Dict[str, float]:
        today = self._today()

        with self._lock:
            recs = [
                b for k, b in self._daily.items()
                if self._same_month(k, today)
            ]
            return self._sum_buckets(recs)

    # ---------- POMOCNICZE ----------

    def _today(self) -> date:
        return local_dt(self._clock.time(), self._tz).date()

    @staticmethod
    def _same_month(day_key: str, today: date) -> bool:
        try:
            d = date.fromisoformat(day_key)
        except ValueError:
            return False
        return d.year == today.year and d.month == today.month

    def _day_summary(self, day: date) -> Dict[str, float]:
        with self._lock:
            b = self._daily.get(day.isoformat())
            if b is None:
                return {
                    "energy_total": 0.0,
                    "energy_peak": 0.0,
                    "energy_offpeak": 0.0,
                    "cost_total": 0.0,
                    "usage_hours": 0.0,
                    "avg_power": 0.0,
                }
            return {
                "energy_total": b.energy_total,
                "energy_peak": b.energy_peak,
                "energy_offpeak": b.energy_offpeak,
                "cost_total": b.cost_total,
                "usage_hours": float(b.usage_hours),
                # usage_hours bywa 0 przy energy_total > 0
                "avg_power": safe_div(b.energy_total * 1000.0, b.usage_hours),
            }

    @staticmethod
    def _sum_buckets(recs: List[DailyBucket]) -> Dict[str, Any]:
        return {
            "energy_total": sum(b.energy_total for b in recs),
            "energy_peak": sum(b.energy_peak for b in recs),
            "energy_offpeak": sum(b.energy_offpeak for b in recs),
            "cost_total": sum(b.cost_total for b in recs),
            "usage_hours": float(sum(b.usage_hours for b in recs)),
            "days_count": float(len(recs)),
        }
