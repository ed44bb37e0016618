from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional
import math
import os

import yaml  # pip install pyyaml

from powersocket.core.errors import ConfigurationError
from powersocket.core.state import SensorType
from powersocket.modules.tariff import TariffConfig, validate_tariff_config

DEFAULT_SETTINGS_PATH = Path(__file__).with_name("settings.yaml")


@dataclass(frozen=True)
class SensorSettings:
    type: SensorType = SensorType.SIMULATION
    bus: int = 1
    address: int = 0x40
    calibration: float = 1.0
    name: str = "default"
    enabled: bool = True

    # progi mocy [W] – sprawdzane przy każdym odczycie (best-effort)
    warning_threshold: float = 2000.0
    critical_threshold: float = 3000.0

    # próg ostrzeżenia temperatury CPU [°C]
    temperature_warning_threshold: float = 70.0

    # sysfs z temperaturą CPU (Raspberry Pi)
    cpu_temp_path: str = "/sys/class/thermal/thermal_zone0/temp"


@dataclass(frozen=True)
class StatsSettings:
    timezone: str = "Europe/Moscow"
    max_records: int = 43200
    window_capacity: int = 3600

    # co ile sekund moc chwilowa zamieniana jest na rekord energii
    energy_interval_s: float = 60.0
    co2_kg_per_kwh: float = 0.33


@dataclass(frozen=True)
class Settings:
    sensor: SensorSettings = field(default_factory=SensorSettings)
    tariff: TariffConfig = field(default_factory=TariffConfig)
    stats: StatsSettings = field(default_factory=StatsSettings)


def load_settings(path: Optional[Path] = None) -> Settings:
    """
    Czyta settings.yaml i zwraca niemutowalny snapshot.

    Kolejność: argument -> POWERSOCKET_SETTINGS -> plik obok modułu.
    Brak pliku = same wartości domyślne.
    """
    if path is None:
        env = os.getenv("POWERSOCKET_SETTINGS")
        path = Path(env) if env else DEFAULT_SETTINGS_PATH

    if not path.exists():
        return Settings()

    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ConfigurationError(f"Settings file {path} must contain a mapping")

    return parse_settings(data)


def parse_settings(data: Dict[str, Any]) -> Settings:
    sensor_raw = data.get("sensor") or {}
    tariff_raw = data.get("tariff") or {}
    stats_raw = data.get("stats") or {}

    try:
        sensor = _parse_sensor(sensor_raw)
        tariff = validate_tariff_config(
            TariffConfig(
                peak_rate=float(tariff_raw.get("peak", 5.0)),
                offpeak_rate=float(tariff_raw.get("offpeak", 2.0)),
                peak_start=int(tariff_raw.get("peak_start", 8)),
                peak_end=int(tariff_raw.get("peak_end", 23)),
            )
        )
        stats = _parse_stats(stats_raw)
    except ConfigurationError:
        raise
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid settings: {exc}") from exc

    return Settings(sensor=sensor, tariff=tariff, stats=stats)


def _parse_sensor(raw: Dict[str, Any]) -> SensorSettings:
    defaults = SensorSettings()

    calibration = float(raw.get("calibration", defaults.calibration))
    if not math.isfinite(calibration) or calibration <= 0:
        raise ConfigurationError(f"sensor.calibration must be > 0, got {calibration}")

    warning = float(raw.get("warning_threshold", defaults.warning_threshold))
    critical = float(raw.get("critical_threshold", defaults.critical_threshold))
    if warning > critical:
        raise ConfigurationError(
            f"sensor.warning_threshold ({warning}) must be <= sensor.critical_threshold ({critical})"
        )

    temp_warning = float(raw.get("temperature_warning_threshold", defaults.temperature_warning_threshold))
    if not math.isfinite(temp_warning):
        raise ConfigurationError(f"sensor.temperature_warning_threshold must be finite, got {temp_warning}")

    address = raw.get("address", defaults.address)
    if isinstance(address, str):
        # "0x40" albo "64"
        address = int(address, 0)

    return SensorSettings(
        type=SensorType.parse(raw.get("type", defaults.type)),
        bus=int(raw.get("bus", defaults.bus)),
        address=int(address),
        calibration=calibration,
        name=str(raw.get("name", defaults.name)),
        enabled=bool(raw.get("enabled", defaults.enabled)),
        warning_threshold=warning,
        critical_threshold=critical,
        temperature_warning_threshold=temp_warning,
        cpu_temp_path=str(raw.get("cpu_temp_path", defaults.cpu_temp_path)),
    )


def _parse_stats(raw: Dict[str, Any]) -> StatsSettings:
    defaults = StatsSettings()
    stats = StatsSettings(
        timezone=str(raw.get("timezone", defaults.timezone)),
        max_records=int(raw.get("max_records", defaults.max_records)),
        window_capacity=int(raw.get("window_capacity", defaults.window_capacity)),
        energy_interval_s=float(raw.get("energy_interval_s", defaults.energy_interval_s)),
        co2_kg_per_kwh=float(raw.get("co2_kg_per_kwh", defaults.co2_kg_per_kwh)),
    )
    if stats.max_records < 1:
        raise ConfigurationError("stats.max_records must be >= 1")
    if stats.window_capacity < 1:
        raise ConfigurationError("stats.window_capacity must be >= 1")
    if stats.energy_interval_s <= 0:
        raise ConfigurationError("stats.energy_interval_s must be > 0")
    return stats
