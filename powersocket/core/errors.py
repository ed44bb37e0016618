from __future__ import annotations


class PowerSocketError(Exception):
    """Bazowy wyjątek rdzenia telemetrii."""


class SensorInitFailure(PowerSocketError):
    """Backend czujnika nie wstał – sampler przechodzi na symulację."""


class SensorReadTransientError(PowerSocketError):
    """Pojedynczy odczyt się nie udał – zostaje ostatni poprawny odczyt."""


class StorageIOError(PowerSocketError):
    """Zapis pliku (eksport CSV) się nie udał."""


class ConfigurationError(PowerSocketError, ValueError):
    """Niepoprawna konfiguracja – odrzucona, poprzednia zostaje aktywna."""


def safe_div(numerator: float, denominator: float) -> float:
    # średnie liczone z usage_hours: usage_hours bywa 0 przy małej energii
    if denominator == 0:
        return 0.0
    return numerator / denominator
