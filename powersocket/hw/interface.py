from __future__ import annotations

from typing import Protocol

from powersocket.core.state import Reading, SensorType, SourceStatus


class SampleSource(Protocol):
    """
    Interfejs źródła próbek telemetrii.
    Implementuje go zarówno symulator, jak i prawdziwe czujniki na RPi.
    """

    kind: SensorType

    def open(self) -> SourceStatus:
        """
        Przygotowanie backendu.

        - READY: można czytać,
        - UNSUPPORTED: backend nie jest zaimplementowany,
        - FAILED: sprzęt/biblioteka nie odpowiada.

        Może też rzucić SensorInitFailure – sampler traktuje to jak FAILED.
        """
        ...

    def next_reading(self) -> Reading:
        """
        Jeden odczyt (bez kalibracji – tę nakłada Sampler).
        Powinien być szybki; przy chwilowym błędzie rzuca
        SensorReadTransientError.
        """
        ...

    def close(self) -> None:
        ...
