"""Pydantic response models for the LiftSense HTTP query surface.

Separated from ``api.py`` to keep routing logic distinct from data contracts.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class DeviceInfoModel(BaseModel):
    type: str
    name: str
    description: str = ""


class DeviceInfoDetailModel(BaseModel):
    address: str
    hardware_version: str = ""
    os_version: str = ""


class ConnectedDeviceResponse(BaseModel):
    id: str
    device_info: DeviceInfoModel
    device_info_detail: DeviceInfoDetailModel | None = None


class DevicesResponse(BaseModel):
    device_id: str
    running: bool
    devices: list[ConnectedDeviceResponse]


class StatsRowResponse(BaseModel):
    sensor_kind: str
    device_id: str
    location: str
    bytes: int
    packets: int


class StatsResponse(BaseModel):
    stats: list[StatsRowResponse]
    total_bytes: int
    total_packets: int


class WindowStatusResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    size_s: float
    delay_s: float
    last_decode_time: float | None
    windows_emitted: int
    empty_windows: int


class LocationOption(BaseModel):
    code: str
    label: str


class LocationsResponse(BaseModel):
    locations: list[LocationOption]
