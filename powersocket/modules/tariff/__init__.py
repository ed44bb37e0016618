from __future__ import annotations

from dataclasses import dataclass, asdict, replace
from pathlib import Path
from typing import Any, Dict, Optional
import logging
import threading

import yaml  # pip install pyyaml

from powersocket.core.errors import ConfigurationError

log = logging.getLogger(__name__)


# ---------- KONFIGURACJA RUNTIME ----------

@dataclass(frozen=True)
class TariffConfig:
    """
    peak_rate / offpeak_rate – stawka za kWh (RUB)
    peak_start / peak_end    – godziny lokalne, przedział [start, end)
    """
    peak_rate: float = 5.0
    offpeak_rate: float = 2.0
    peak_start: int = 8
    peak_end: int = 23


def validate_tariff_config(cfg: TariffConfig) -> TariffConfig:
    if cfg.peak_rate < 0 or cfg.offpeak_rate < 0:
        raise ConfigurationError(
            f"Tariff rates must be >= 0 (peak={cfg.peak_rate}, offpeak={cfg.offpeak_rate})"
        )
    for name, hour in (("peak_start", cfg.peak_start), ("peak_end", cfg.peak_end)):
        if not 0 <= hour <= 23:
            raise ConfigurationError(f"{name} must be in 0..23, got {hour}")
    # okno przez północ (start > end) nie jest obsługiwane
    if cfg.peak_start >= cfg.peak_end:
        raise ConfigurationError(
            f"Invalid peak window: start={cfg.peak_start} must be < end={cfg.peak_end}"
        )
    return cfg


class TariffEngine:
    """
    Taryfa dwustrefowa: koszt = energia * (stawka szczytowa | pozaszczytowa).

    Konfiguracja jest mutowalna (API / values.yaml), więc każdy odczyt
    idzie pod własnym lockiem. Lock jest "liściem" – pod nim nie bierzemy
    żadnego innego.
    """

    def __init__(
        self,
        config: Optional[TariffConfig] = None,
        base_path: Optional[Path] = None,
        values_path: Optional[Path] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._log = logger or log
        self._base_path = base_path or Path(__file__).resolve().parent
        self._schema_path = self._base_path / "schema.yaml"
        # schema.yaml jedzie z paczką; values.yaml może leżeć w katalogu danych
        self._config_path = Path(values_path) if values_path is not None else self._base_path / "values.yaml"

        self._lock = threading.Lock()
        self._config = validate_tariff_config(config or TariffConfig())
        self._load_config_from_file()

    @property
    def id(self) -> str:
        return "tariff"

    @property
    def config(self) -> TariffConfig:
        with self._lock:
            return self._config

    # ---------- LICZENIE ----------

    def is_peak(self, hour: int) -> bool:
        with self._lock:
            return self._config.peak_start <= hour < self._config.peak_end

    def rate(self, hour: int) -> float:
        with self._lock:
            c = self._config
            return c.peak_rate if c.peak_start <= hour < c.peak_end else c.offpeak_rate

    def cost(self, energy_kwh: float, local_hour: int) -> float:
        return energy_kwh * self.rate(local_hour)

    def average_rate(self) -> float:
        with self._lock:
            return (self._config.peak_rate + self._config.offpeak_rate) / 2.0

    # ---------- ZMIANY KONFIGURACJI ----------

    def set_tariffs(self, peak: float, offpeak: float) -> bool:
        return self._try_update(peak_rate=float(peak), offpeak_rate=float(offpeak))

    def set_peak_hours(self, start: int, end: int) -> bool:
        return self._try_update(peak_start=int(start), peak_end=int(end))

    def _try_update(self, **changes: Any) -> bool:
        try:
            self._apply(changes)
        except ConfigurationError as exc:
            self._log.warning("Tariff change rejected, keeping previous config: %s", exc)
            return False
        c = self.config
        self._log.info(
            "Tariff set: peak=%.4f offpeak=%.4f, peak hours %02d:00-%02d:00",
            c.peak_rate, c.offpeak_rate, c.peak_start, c.peak_end,
        )
        return True

    def _apply(self, changes: Dict[str, Any]) -> TariffConfig:
        with self._lock:
            candidate = validate_tariff_config(replace(self._config, **changes))
            self._config = candidate
            return candidate

    # ---------- CONFIG (schema + values) ----------

    def get_config_schema(self) -> Dict[str, Any]:
        if not self._schema_path.exists():
            return {}
        with self._schema_path.open("r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}

    def get_config_values(self) -> Dict[str, Any]:
        return asdict(self.config)

    def set_config_values(self, values: Dict[str, Any], persist: bool = True) -> None:
        """
        Podmienia konfigurację w całości albo wcale.
        Przy błędzie rzuca ConfigurationError, poprzednia konfiguracja zostaje.
        """
        self._apply(self._coerce(values))
        if persist:
            self._save_config_to_file()

    def reload_config_from_file(self) -> None:
        self._load_config_from_file()

    @staticmethod
    def _coerce(values: Dict[str, Any]) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        try:
            if "peak_rate" in values:
                out["peak_rate"] = float(values["peak_rate"])
            if "offpeak_rate" in values:
                out["offpeak_rate"] = float(values["offpeak_rate"])
            if "peak_start" in values:
                out["peak_start"] = int(values["peak_start"])
            if "peak_end" in values:
                out["peak_end"] = int(values["peak_end"])
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid tariff value: {exc}") from exc
        return out

    def _load_config_from_file(self) -> None:
        if not self._config_path.exists():
            return
        with self._config_path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        try:
            self._apply(self._coerce(data))
        except ConfigurationError as exc:
            self._log.warning("Ignoring invalid %s: %s", self._config_path, exc)

    def _save_config_to_file(self) -> None:
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        with self._config_path.open("w", encoding="utf-8") as f:
            yaml.safe_dump(asdict(self.config), f, sort_keys=True, allow_unicode=True)
