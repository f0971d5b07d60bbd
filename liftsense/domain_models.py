"""Domain model objects for the LiftSense pipeline.

Typed, immutable value objects shared by the store, the statistics layer and
the coordinator.  Composite keys are frozen dataclasses so equality and
hashing are derived from every field.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from enum import IntEnum
from typing import Any, ClassVar

from .locations import Location

# ---------------------------------------------------------------------------
# Identity helpers
# ---------------------------------------------------------------------------


def normalize_device_id(device_id: uuid.UUID | str | bytes) -> uuid.UUID:
    """Return *device_id* as a :class:`uuid.UUID`.

    Accepts UUID instances, canonical/hex strings and 16 raw bytes.
    Raises ``ValueError`` for anything else.
    """
    if isinstance(device_id, uuid.UUID):
        return device_id
    if isinstance(device_id, (bytes, bytearray)):
        if len(device_id) != 16:
            raise ValueError(f"device_id must be 16 bytes, got {len(device_id)}")
        return uuid.UUID(bytes=bytes(device_id))
    try:
        return uuid.UUID(str(device_id).strip())
    except ValueError:
        raise ValueError(f"Invalid device_id: {device_id!r}") from None


class SensorKind(IntEnum):
    """Sensor type; the value is the one-byte code used on the wire."""

    ACCELEROMETER = 0xAD
    ROTATION = 0xBD
    GYROSCOPE = 0xCD
    HEART_RATE = 0xED


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TimeRange:
    """Half-open ``[start, end)`` interval in absolute seconds."""

    start: float
    end: float

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError(f"TimeRange end {self.end!r} precedes start {self.start!r}")

    @property
    def duration(self) -> float:
        return self.end - self.start

    def contains(self, t: float) -> bool:
        return self.start <= t < self.end

    def intersects(self, other: TimeRange) -> bool:
        return self.start < other.end and other.start < self.end

    def to_dict(self) -> dict[str, float]:
        return {"start": self.start, "end": self.end}


# ---------------------------------------------------------------------------
# Session statistics
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class StatsEntry:
    """Counters for one stats bucket."""

    ZERO: ClassVar[StatsEntry]

    bytes: int = 0
    packets: int = 0

    def __post_init__(self) -> None:
        if self.bytes < 0 or self.packets < 0:
            raise ValueError(
                f"StatsEntry counters must be non-negative, got bytes={self.bytes} "
                f"packets={self.packets}"
            )

    def add(self, nbytes: int, packets: int = 1) -> StatsEntry:
        return replace(self, bytes=self.bytes + nbytes, packets=self.packets + packets)

    def to_dict(self) -> dict[str, int]:
        return {"bytes": self.bytes, "packets": self.packets}


StatsEntry.ZERO = StatsEntry()


@dataclass(frozen=True, slots=True)
class StatsKey:
    """One counter bucket inside a single device session."""

    sensor_kind: SensorKind
    device_id: uuid.UUID


@dataclass(frozen=True, slots=True)
class StatsKeyWithLocation:
    """One counter bucket in the combined, location-qualified view."""

    sensor_kind: SensorKind
    device_id: uuid.UUID
    location: Location

    @classmethod
    def from_key(cls, key: StatsKey, location: Location) -> StatsKeyWithLocation:
        return cls(sensor_kind=key.sensor_kind, device_id=key.device_id, location=location)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sensor_kind": self.sensor_kind.name.lower(),
            "device_id": str(self.device_id),
            "location": self.location.value,
        }


# ---------------------------------------------------------------------------
# Connected devices
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DeviceInfo:
    device_type: str
    name: str
    description: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"type": self.device_type, "name": self.name, "description": self.description}


@dataclass(frozen=True, slots=True)
class DeviceInfoDetail:
    address: str
    hardware_version: str = ""
    os_version: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "address": self.address,
            "hardware_version": self.hardware_version,
            "os_version": self.os_version,
        }


@dataclass(frozen=True, slots=True)
class ConnectedDeviceInfo:
    """Metadata known about a connected device.

    Never mutated; the ``with_*`` helpers return a new instance that keeps the
    other field.
    """

    device_info: DeviceInfo
    device_info_detail: DeviceInfoDetail | None = field(default=None)

    def with_device_info(self, device_info: DeviceInfo) -> ConnectedDeviceInfo:
        return replace(self, device_info=device_info)

    def with_device_info_detail(self, detail: DeviceInfoDetail) -> ConnectedDeviceInfo:
        return replace(self, device_info_detail=detail)

    def to_dict(self) -> dict[str, Any]:
        return {
            "device_info": self.device_info.to_dict(),
            "device_info_detail": (
                self.device_info_detail.to_dict() if self.device_info_detail is not None else None
            ),
        }
