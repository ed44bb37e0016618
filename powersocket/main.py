# powersocket/main.py
from __future__ import annotations

import logging
import os
import threading
import time
from pathlib import Path
from zoneinfo import ZoneInfo

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.energy_api import DEFAULT_EXPORT_NAME, create_energy_router
from .config.settings import load_settings
from .core.energy_service import EnergyService
from .core.sampler import Sampler
from .core.state import Event, EventLevel
from .modules.tariff import TariffEngine

logging.basicConfig(
    level=logging.INFO,  # bazowy poziom
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

if os.getenv("POWERSOCKET_DIAG"):
    logging.getLogger("powersocket.core.sampler.diag").setLevel(logging.DEBUG)
logger = logging.getLogger(__name__)

# katalog na dane zapisywane w trakcie pracy (CSV, values.yaml), poza paczką
DATA_ROOT = Path(os.getenv("POWERSOCKET_DATA_ROOT", str(Path.home() / ".powersocket")))
EXPORT_DIR = DATA_ROOT / "data"

# --- INICJALIZACJA ---

settings = load_settings()
tz = ZoneInfo(settings.stats.timezone)

tariff = TariffEngine(settings.tariff, values_path=DATA_ROOT / "modules" / "tariff" / "values.yaml")

service = EnergyService(
    tariff,
    tz=tz,
    max_records=settings.stats.max_records,
    co2_kg_per_kwh=settings.stats.co2_kg_per_kwh,
)

sampler = Sampler(settings.sensor, window_capacity=settings.stats.window_capacity)


def on_threshold_event(ev: Event) -> None:
    if ev.level is EventLevel.CRITICAL:
        logger.error("%s", ev.message)
    else:
        logger.warning("%s", ev.message)


sampler.set_threshold_callback(on_threshold_event)

# --- FLAGI STOPU + REFERENCJE DO WĄTKÓW ---

energy_stop_event = threading.Event()
energy_thread: threading.Thread | None = None

# --- PĘTLE ---


def energy_loop(stop_event: threading.Event) -> None:
    """Co energy_interval_s: bieżąca moc * interwał -> rekord kWh."""
    interval = settings.stats.energy_interval_s
    while not stop_event.is_set():
        start = time.time()
        try:
            if sampler.is_active():
                reading = sampler.current_reading()
                service.add_power_reading(reading.real_power, interval)
        except Exception:  # pylint: disable=broad-except
            logger.exception("Energy loop error")
        elapsed = time.time() - start
        remaining = max(0.0, interval - elapsed)
        if stop_event.wait(timeout=remaining):
            break


# --- FASTAPI / HTTP API ---

app = FastAPI(
    title="Gniazdko pomiarowe",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def on_startup() -> None:
    global energy_thread

    result = sampler.initialize()
    if not result.ok:
        logger.error("Power monitor not started: %s", result.error)
    elif result.fallback:
        logger.warning("Power monitor using simulated data: %s", result.error)

    energy_stop_event.clear()
    energy_thread = threading.Thread(
        target=energy_loop, args=(energy_stop_event,), daemon=True, name="energy_loop"
    )
    energy_thread.start()


@app.on_event("shutdown")
async def on_shutdown() -> None:
    global energy_thread

    logger.info("Shutdown requested: stopping loops...")

    energy_stop_event.set()
    if energy_thread is not None:
        energy_thread.join(timeout=5.0)
        logger.info("[ENERGY] alive=%s", energy_thread.is_alive())

    sampler.stop()

    EXPORT_DIR.mkdir(parents=True, exist_ok=True)
    service.export_csv(EXPORT_DIR / DEFAULT_EXPORT_NAME)

    logger.info("Shutdown handler finished.")


# --- ROUTERY ---

app.include_router(
    create_energy_router(
        sampler=sampler,
        service=service,
        export_dir=EXPORT_DIR,
    ),
    prefix="/api",
)
