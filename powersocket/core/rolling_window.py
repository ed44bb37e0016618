from __future__ import annotations

from collections import deque
from itertools import islice
from typing import Dict, Iterator, List

DEFAULT_CAPACITY = 3600      # 1 slot na sekundę -> 1h historii
DEFAULT_WINDOW_S = 60


class RollingWindow:
    """
    Bufor kołowy mocy chwilowej (1 wpis na sekundę).

    Bufor jest zawsze "pełny": startuje wypełniony zerami, push() nadpisuje
    najstarszy slot. Wartość <= 0 traktujemy jak "brak odczytu" – 0 W
    jest nieodróżnialne od pustego slotu.

    Klasa NIE ma własnego locka – właścicielem jest Sampler i to on pilnuje
    dostępu współbieżnego.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = int(capacity)
        self._buf: deque[float] = deque([0.0] * self._capacity, maxlen=self._capacity)

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._buf)

    def push(self, value: float) -> None:
        self._buf.append(float(value))

    def values(self) -> List[float]:
        """Kopia zawartości, od najstarszego."""
        return list(self._buf)

    # ---------- zapytania o okno ----------

    def _clamp(self, window_seconds: int) -> int:
        if window_seconds <= 0 or window_seconds > self._capacity:
            return min(DEFAULT_WINDOW_S, self._capacity)
        return int(window_seconds)

    def _tail(self, window_seconds: int) -> Iterator[float]:
        n = self._clamp(window_seconds)
        return islice(reversed(self._buf), n)

    def average(self, window_seconds: int = DEFAULT_WINDOW_S) -> float:
        total = 0.0
        count = 0
        for v in self._tail(window_seconds):
            if v > 0:
                total += v
                count += 1
        return total / count if count > 0 else 0.0

    def max(self, window_seconds: int = DEFAULT_WINDOW_S) -> float:
        peak = 0.0
        for v in self._tail(window_seconds):
            if v > peak:
                peak = v
        return peak

    def min(self, window_seconds: int = DEFAULT_WINDOW_S) -> float:
        valid = [v for v in self._tail(window_seconds) if v > 0]
        return min(valid) if valid else 0.0

    def stats(self, window_seconds: int = DEFAULT_WINDOW_S) -> Dict[str, float]:
        return {
            "average": self.average(window_seconds),
            "max": self.max(window_seconds),
            "min": self.min(window_seconds),
        }
