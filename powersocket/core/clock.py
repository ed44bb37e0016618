from __future__ import annotations

import time
import threading
from datetime import datetime, tzinfo
from typing_extensions import Protocol


class Clock(Protocol):
    def time(self) -> float: ...
    def monotonic(self) -> float: ...


class RealClock:
    def time(self) -> float:
        return time.time()

    def monotonic(self) -> float:
        return time.monotonic()


class SimClock:
    """
    Zegar sterowany ręcznie (testy, symulacja).

    Czas stoi, dopóki nie zrobisz advance(dt) – wall-clock i monotonic
    przesuwają się razem.
    """

    def __init__(self, *, start_ts: float | None = None) -> None:
        self._ts = time.time() if start_ts is None else float(start_ts)
        self._mono = 0.0
        self._lock = threading.Lock()

    def advance(self, dt: float) -> None:
        if dt < 0:
            raise ValueError("dt must be >= 0")
        with self._lock:
            self._mono += dt
            self._ts += dt

    def time(self) -> float:
        with self._lock:
            return self._ts

    def monotonic(self) -> float:
        with self._lock:
            return self._mono


def local_dt(ts: float, tz: tzinfo) -> datetime:
    """Unix ts -> datetime w lokalnej strefie sterownika."""
    return datetime.fromtimestamp(ts, tz=tz)
