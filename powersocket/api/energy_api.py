# powersocket/api/energy_api.py
from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

from fastapi import APIRouter, Body, HTTPException, Query
from pydantic import BaseModel, confloat

from ..core.energy_service import EnergyService
from ..core.errors import ConfigurationError, StorageIOError
from ..core.sampler import Sampler

DEFAULT_EXPORT_NAME = "energy_stats.csv"


class SimulatedLoadIn(BaseModel):
    watts: confloat(ge=0)


class ExportIn(BaseModel):
    # sama nazwa pliku; katalog ustala serwer
    name: Optional[str] = None


def _safe_export_name(name: str) -> str:
    if (
        not name
        or "/" in name
        or "\\" in name
        or ".." in name
        or Path(name).name != name
    ):
        raise ValueError(f"export name must be a bare file name, got {name!r}")
    return name


def create_energy_router(
    sampler: Sampler,
    service: EnergyService,
    export_dir: Union[str, Path] = "data",
    default_export_name: str = DEFAULT_EXPORT_NAME,
) -> APIRouter:
    """
    Router z endpointami:
      GET  /power/current
      GET  /power/last-valid
      GET  /power/window?seconds=
      GET  /power/statistics
      POST /power/reset-energy
      POST /power/simulated-load
      GET  /energy/latest
      GET  /energy/history?hours=
      GET  /energy/stats/{period}
      GET  /energy/report
      POST /energy/export        (plik tylko w export_dir)
      GET  /tariff/schema
      GET  /tariff/values
      PUT  /tariff/values
    """
    router = APIRouter()

    # ---------------- power ----------------

    @router.get("/power/current", tags=["power"])
    def get_current_reading():
        return sampler.current_reading().as_dict()

    @router.get("/power/last-valid", tags=["power"])
    def get_last_valid_reading():
        return sampler.last_valid_reading().as_dict()

    @router.get("/power/window", tags=["power"])
    def get_window_stats(seconds: int = Query(60, description="Długość okna [s]")):
        return {"seconds": seconds, **sampler.window_stats(seconds)}

    @router.get("/power/statistics", tags=["power"])
    def get_power_statistics(period_seconds: int = Query(300, ge=1)):
        return {
            "status": sampler.sensor_status(),
            "backend": sampler.backend.name,
            "state": sampler.state.name,
            **sampler.statistics(period_seconds),
        }

    @router.post("/power/reset-energy", tags=["power"])
    def reset_energy():
        sampler.reset_energy()
        return {"ok": True}

    @router.post("/power/simulated-load", tags=["power"])
    def set_simulated_load(body: SimulatedLoadIn):
        if not sampler.set_simulated_load(body.watts):
            raise HTTPException(
                status_code=409,
                detail={"msg": "Simulated load is only available with the simulation backend."},
            )
        return {"ok": True, "watts": body.watts}

    # ---------------- energy ----------------

    @router.get("/energy/latest", tags=["energy"])
    def get_latest_record():
        return service.latest().as_dict()

    @router.get("/energy/history", tags=["energy"])
    def get_energy_history(hours: int = Query(24, ge=0, le=24 * 366)):
        records = service.history(hours)
        return {"hours": hours, "count": len(records), "records": [r.as_dict() for r in records]}

    @router.get("/energy/stats/{period}", tags=["energy"])
    def get_energy_stats(period: str):
        try:
            return service.stats(period)
        except KeyError:
            raise HTTPException(status_code=404, detail=f"Unknown period '{period}'")

    @router.get("/energy/report", tags=["energy"])
    def get_energy_report():
        return service.json_report()

    @router.post("/energy/export", tags=["energy"])
    def export_energy_csv(body: Optional[ExportIn] = None):
        name = (body.name if body is not None else None) or default_export_name
        try:
            name = _safe_export_name(name)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))

        target_dir = Path(export_dir)
        path = target_dir / name
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            days = service.write_csv(path)
        except (OSError, StorageIOError) as exc:
            raise HTTPException(status_code=500, detail=str(exc))
        return {"ok": True, "path": str(path), "days": days}

    # ---------------- tariff (schema + values) ----------------

    @router.get("/tariff/schema", tags=["tariff"])
    def get_tariff_schema():
        return service.tariff.get_config_schema()

    @router.get("/tariff/values", tags=["tariff"])
    def get_tariff_values():
        return service.tariff.get_config_values()

    @router.put("/tariff/values", tags=["tariff"])
    def set_tariff_values(values: dict = Body(..., description="Mapa klucz->wartość zgodna z schema")):
        try:
            service.tariff.set_config_values(values)
        except ConfigurationError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        return service.tariff.get_config_values()

    return router
