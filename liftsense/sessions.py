"""Contracts between the coordinator and the device layer.

The wireless transport lives outside this package.  It is represented here
only by the callbacks it makes (:class:`DeviceEventObserver`,
:class:`SessionEventObserver`) and the handles it returns
(:class:`Device`, :class:`ConnectedDevice`).  :class:`DeviceSession` is the
base class device layers extend to get per-session statistics.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from typing import Protocol

from .domain_models import DeviceInfo, DeviceInfoDetail, SensorKind, StatsEntry, StatsKey
from .stats import StatsAggregator


class DeviceSession:
    """One stream of sensor data with its own byte/packet counters."""

    def __init__(self, session_id: uuid.UUID | None = None):
        self.session_id = session_id if session_id is not None else uuid.uuid4()
        self._stats: StatsAggregator[StatsKey] = StatsAggregator()

    @property
    def stats(self) -> StatsAggregator[StatsKey]:
        return self._stats

    def record_received(
        self,
        sensor_kind: SensorKind,
        device_id: uuid.UUID,
        nbytes: int,
    ) -> StatsEntry:
        """Count one received packet of *nbytes* for ``(sensor_kind, device_id)``."""
        key = StatsKey(sensor_kind=sensor_kind, device_id=device_id)
        return self._stats.update(key, lambda entry: entry.add(nbytes))

    def reset_stats(self) -> None:
        self._stats.zero()


class SessionEventObserver(Protocol):
    def sensor_data_received(
        self,
        session: DeviceSession,
        device_id: uuid.UUID,
        timestamp: float,
        data: bytes,
    ) -> None: ...

    def sensor_data_not_received(self, session: DeviceSession, device_id: uuid.UUID) -> None: ...

    def session_ended(self, session: DeviceSession, device_id: uuid.UUID) -> None: ...


class DeviceEventObserver(Protocol):
    def device_app_launched(self, device_id: uuid.UUID) -> None: ...

    def device_app_launch_failed(self, device_id: uuid.UUID, error: Exception) -> None: ...

    def device_did_not_connect(self, error: Exception) -> None: ...

    def device_disconnected(self, device_id: uuid.UUID) -> None: ...

    def device_got_info(self, device_id: uuid.UUID, info: DeviceInfo) -> None: ...

    def device_got_info_detail(self, device_id: uuid.UUID, detail: DeviceInfoDetail) -> None: ...


class ConnectedDevice(Protocol):
    def start(self) -> None: ...

    def stop(self) -> None: ...


class Device(Protocol):
    def connect(
        self,
        device_observer: DeviceEventObserver,
        session_observer: SessionEventObserver,
        on_connected: Callable[[ConnectedDevice], None],
    ) -> None:
        """Begin connecting; call *on_connected* once the device is ready to start."""
