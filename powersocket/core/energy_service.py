from __future__ import annotations

from datetime import tzinfo
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import logging
import threading

from powersocket.core.clock import Clock, RealClock
from powersocket.core.state import EnergyRecord
from powersocket.modules.history import DEFAULT_MAX_RECORDS, HistoryLedger
from powersocket.modules.stats import DailyAggregator
from powersocket.modules.tariff import TariffEngine

log = logging.getLogger(__name__)

CO2_KG_PER_KWH = 0.33


class EnergyService:
    """
    Fasada nad HistoryLedger + DailyAggregator (+ TariffEngine).

    Ledger i agregator dzielą JEDEN RLock – append i ingest idą razem,
    więc czytelnik nigdy nie zobaczy rekordu bez jego bucketu.
    """

    def __init__(
        self,
        tariff: TariffEngine,
        *,
        tz: tzinfo,
        clock: Optional[Clock] = None,
        max_records: int = DEFAULT_MAX_RECORDS,
        co2_kg_per_kwh: float = CO2_KG_PER_KWH,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.tariff = tariff
        self._clock = clock or RealClock()
        self._log = logger or log
        self._co2_factor = float(co2_kg_per_kwh)

        self._lock = threading.RLock()
        self.aggregator = DailyAggregator(tariff, tz=tz, clock=self._clock, lock=self._lock)
        self.ledger = HistoryLedger(
            tariff,
            self.aggregator,
            tz=tz,
            clock=self._clock,
            lock=self._lock,
            max_records=max_records,
            logger=logger,
        )

    # ---------- ZASILANIE ----------

    def add_energy_reading(self, energy_kwh: float) -> EnergyRecord:
        record = self.ledger.append(energy_kwh)
        self._log.debug("Energy record: %.6f kWh, cost %.6f", record.energy, record.cost)
        return record

    def add_power_reading(self, power_w: float, duration_s: float) -> Optional[EnergyRecord]:
        """Moc [W] przez czas [s] -> rekord kWh. Zero/ujemne wartości są pomijane."""
        if power_w <= 0 or duration_s <= 0:
            return None
        return self.add_energy_reading(power_w * duration_s / 3_600_000.0)

    # ---------- ZAPYTANIA ----------

    def today(self) -> Dict[str, float]:
        return self.aggregator.today()

    def yesterday(self) -> Dict[str, float]:
        return self.aggregator.yesterday()

    def week(self) -> Dict[str, float]:
        return self.aggregator.week()

    def month(self) -> Dict[str, float]:
        return self.aggregator.month()

    def stats(self, period: str) -> Dict[str, float]:
        periods = {
            "today": self.today,
            "yesterday": self.yesterday,
            "week": self.week,
            "month": self.month,
        }
        if period not in periods:
            raise KeyError(period)
        return periods[period]()

    def latest(self) -> EnergyRecord:
        return self.ledger.latest()

    def history(self, hours: int = 24) -> List[EnergyRecord]:
        return self.ledger.history(hours)

    def json_report(self) -> Dict[str, Any]:
        return {
            "today": self.today(),
            "week": self.week(),
            "month": self.month(),
            "timestamp": int(self._clock.time()),
        }

    # ---------- EKSPORT / CZYSZCZENIE ----------

    def write_csv(self, path: Union[str, Path]) -> int:
        return self.ledger.write_csv(path)

    def export_csv(self, path: Union[str, Path]) -> bool:
        return self.ledger.export_csv(path)

    def clear_history(self) -> None:
        self.ledger.clear()

    def clear_daily_stats(self) -> None:
        self.aggregator.clear()
        self._log.info("Daily statistics cleared")

    # ---------- POMOCNICZE ----------

    def co2_emissions(self, energy_kwh: float) -> float:
        """kg CO2 dla zadanej energii."""
        return energy_kwh * self._co2_factor

    def savings(self, energy_kwh: float) -> float:
        # uproszczenie: średnia z obu stawek
        return energy_kwh * self.tariff.average_rate()
