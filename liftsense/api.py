"""Read-only HTTP view of the coordinator's device directory and statistics."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, HTTPException

from .api_models import (
    ConnectedDeviceResponse,
    DevicesResponse,
    LocationsResponse,
    StatsResponse,
    WindowStatusResponse,
)
from .domain_models import normalize_device_id
from .locations import all_locations

if TYPE_CHECKING:
    from .coordinator import MultiSourceCoordinator


def create_router(coordinator: MultiSourceCoordinator) -> APIRouter:
    router = APIRouter()

    @router.get("/api/devices", response_model=DevicesResponse)
    async def get_devices() -> DevicesResponse:
        snapshot = coordinator.snapshot_for_api()
        return {
            "device_id": snapshot["device_id"],
            "running": snapshot["running"],
            "devices": snapshot["devices"],
        }

    @router.get("/api/devices/{device_id}", response_model=ConnectedDeviceResponse)
    async def get_device(device_id: str) -> ConnectedDeviceResponse:
        try:
            normalized = normalize_device_id(device_id)
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid device_id") from None
        info = coordinator.device_info_for(normalized)
        if info is None:
            raise HTTPException(status_code=404, detail="Unknown device_id")
        return {"id": str(normalized), **info.to_dict()}

    @router.get("/api/stats", response_model=StatsResponse)
    async def get_stats() -> StatsResponse:
        totals = coordinator.combined_stats.totals()
        return {
            "stats": coordinator.snapshot_for_api()["stats"],
            "total_bytes": totals.bytes,
            "total_packets": totals.packets,
        }

    @router.get("/api/window", response_model=WindowStatusResponse)
    async def get_window() -> WindowStatusResponse:
        return coordinator.snapshot_for_api()["window"]

    @router.get("/api/locations", response_model=LocationsResponse)
    async def get_locations() -> LocationsResponse:
        return {"locations": all_locations()}

    return router
