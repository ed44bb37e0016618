from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, Optional
import math
import time


class EventLevel(Enum):
    INFO = auto()
    WARNING = auto()
    CRITICAL = auto()


@dataclass
class Event:
    """
    Wewnętrzne zdarzenie generowane przez sampler (np. przekroczenie progu mocy).
    Trafia do callbacka ustawionego przez warstwę nadrzędną.
    """
    ts: float
    source: str          # np. "sampler"
    level: EventLevel
    type: str            # np. "POWER_THRESHOLD_WARNING"
    message: str         # krótki opis dla człowieka
    data: Dict[str, Any] = field(default_factory=dict)


class SensorType(Enum):
    """
    Backend czujnika mocy. Wartości liczbowe zgodne z kodami z konfiguracji
    (sensor.type: 0..4).
    """
    NONE = 0
    I2C = 1
    ANALOG = 2
    PZEM = 3
    SIMULATION = 4

    @classmethod
    def parse(cls, raw: Any) -> "SensorType":
        if isinstance(raw, SensorType):
            return raw
        if isinstance(raw, bool):
            raise ValueError(f"Invalid sensor type: {raw!r}")
        if isinstance(raw, int):
            return cls(raw)
        s = str(raw).strip()
        if s.isdigit():
            return cls(int(s))
        try:
            return cls[s.upper()]
        except KeyError:
            raise ValueError(f"Invalid sensor type: {raw!r}") from None


class SourceStatus(Enum):
    READY = auto()
    UNSUPPORTED = auto()   # backend jeszcze nie zaimplementowany
    FAILED = auto()        # backend istnieje, ale sprzęt/biblioteka nie odpowiada


class SamplerState(Enum):
    IDLE = auto()
    RUNNING = auto()
    STOPPED = auto()


@dataclass(frozen=True)
class Reading:
    """
    Pojedynczy odczyt telemetrii.

    Jednostki: V, A, W, VA, var, Hz, kWh; timestamp w ms (wall-clock).
    Obiekt jest niemutowalny – czytelnicy dostają snapshot, nigdy "pół ticka".
    """
    voltage: float = 0.0
    current: float = 0.0
    real_power: float = 0.0
    apparent_power: float = 0.0
    reactive_power: float = 0.0
    power_factor: float = 1.0
    frequency: float = 50.0
    cumulative_energy: float = 0.0
    timestamp_ms: int = 0

    @property
    def is_valid(self) -> bool:
        return self.voltage > 0 and self.current >= 0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "voltage": self.voltage,
            "current": self.current,
            "power": self.real_power,
            "power_apparent": self.apparent_power,
            "power_reactive": self.reactive_power,
            "power_factor": self.power_factor,
            "frequency": self.frequency,
            "energy": self.cumulative_energy,
            "timestamp": self.timestamp_ms,
        }


def reactive_power(apparent: float, real: float) -> float:
    # przy zaokrągleniach S^2 - P^2 potrafi wyjść lekko ujemne
    return math.sqrt(max(0.0, apparent * apparent - real * real))


@dataclass(frozen=True)
class EnergyRecord:
    timestamp: int       # unix, sekundy
    energy: float        # kWh
    cost: float

    def as_dict(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp, "energy": self.energy, "cost": self.cost}


ZERO_RECORD = EnergyRecord(timestamp=0, energy=0.0, cost=0.0)


@dataclass
class DailyBucket:
    """
    Agregat jednego dnia kalendarzowego (czas lokalny).
    Niezmiennik: energy_total == energy_peak + energy_offpeak.
    """
    date: str                      # YYYY-MM-DD
    energy_total: float = 0.0
    energy_peak: float = 0.0
    energy_offpeak: float = 0.0
    cost_total: float = 0.0
    usage_hours: int = 0


@dataclass(frozen=True)
class InitResult:
    ok: bool
    backend: SensorType
    fallback: bool = False
    error: Optional[str] = None
    ts: float = field(default_factory=time.time)
