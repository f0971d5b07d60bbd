"""Presents several device sessions as one logical session.

``MultiSourceCoordinator`` connects every device from the injected registry,
feeds all inbound data into a single :class:`~liftsense.window_buffer.WindowBuffer`
and keeps a combined, location-qualified view of every session's statistics.
Windows produced by the buffer are re-injected into the outbound session
channel under the reserved all-zero device id, so downstream consumers see
them exactly like data from a physical device.

Boundary note for maintainers:
- Keep this module focused on fan-in/fan-out, not slicing details.
- Window math belongs in ``window_buffer.py``; gap handling in ``sample_store.py``.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Callable, Iterable
from typing import Any, Protocol

from .constants import DEFAULT_GAP_VALUE, DEFAULT_MAX_GAP_S, DEFAULT_WINDOW_SIZE_S, MULTI_DEVICE_ID
from .domain_models import (
    ConnectedDeviceInfo,
    DeviceInfo,
    DeviceInfoDetail,
    StatsEntry,
    StatsKey,
    StatsKeyWithLocation,
    TimeRange,
)
from .locations import LocationResolver
from .protocol import RANGE_HEADER
from .sample_store import SampleArray, SampleStore
from .sessions import (
    ConnectedDevice,
    Device,
    DeviceEventObserver,
    DeviceSession,
    SessionEventObserver,
)
from .stats import StatsAggregator
from .window_buffer import WindowBuffer

LOGGER = logging.getLogger(__name__)


class CoordinatorObserver(Protocol):
    def encoding_samples(self, coordinator: MultiSourceCoordinator, store: SampleStore) -> None: ...

    def continuous_data_encoded(
        self,
        coordinator: MultiSourceCoordinator,
        time_range: TimeRange,
    ) -> None: ...


class MultiSourceCoordinator(DeviceSession):
    def __init__(
        self,
        devices: Iterable[Device],
        *,
        observer: CoordinatorObserver,
        device_observer: DeviceEventObserver,
        session_observer: SessionEventObserver,
        location_resolver: LocationResolver,
        window_size_s: float = DEFAULT_WINDOW_SIZE_S,
        max_gap_s: float = DEFAULT_MAX_GAP_S,
        gap_value: int = DEFAULT_GAP_VALUE,
        store: SampleStore | None = None,
        clock: Callable[[], float] = time.time,
        loop: asyncio.AbstractEventLoop | None = None,
    ):
        super().__init__(session_id=MULTI_DEVICE_ID)
        self.device_id = MULTI_DEVICE_ID
        self._observer = observer
        self._device_observer = device_observer
        self._session_observer = session_observer
        self._location_resolver = location_resolver
        self._clock = clock
        self._combined_stats: StatsAggregator[StatsKeyWithLocation] = StatsAggregator()
        self._device_infos: dict[uuid.UUID, ConnectedDeviceInfo] = {}
        self._devices: list[ConnectedDevice] = []
        self._started = False
        self._stopped = False
        self._buffer = WindowBuffer(
            self,
            window_size_s=window_size_s,
            max_gap_s=max_gap_s,
            gap_value=gap_value,
            store=store,
            clock=clock,
            loop=loop,
        )
        for device in devices:
            device.connect(self, self, self._on_device_connected)

    # -- Lifecycle ------------------------------------------------------------

    def _on_device_connected(self, device: ConnectedDevice) -> None:
        self._devices.append(device)
        if self._stopped:
            LOGGER.info("Device connected after stop; leaving it idle")
            return
        if self._started:
            device.start()

    def start(self) -> None:
        """Start every connected device; devices connecting later start on arrival."""
        if self._stopped:
            raise RuntimeError("MultiSourceCoordinator was stopped and cannot be restarted")
        if self._started:
            return
        self._started = True
        for device in self._devices:
            device.start()
        LOGGER.info("Started %d device session(s)", len(self._devices))

    def stop(self) -> None:
        """Stop every device, then the window scheduler.  Safe to call multiple times."""
        if self._stopped:
            return
        self._stopped = True
        for device in self._devices:
            try:
                device.stop()
            except Exception:
                LOGGER.warning("Error stopping device session", exc_info=True)
        self._buffer.stop()
        LOGGER.info("Stopped %d device session(s)", len(self._devices))

    @property
    def running(self) -> bool:
        return self._started and not self._stopped

    # -- Query surface --------------------------------------------------------

    @property
    def window_buffer(self) -> WindowBuffer:
        return self._buffer

    @property
    def sample_store(self) -> SampleStore:
        return self._buffer.store

    @property
    def combined_stats(self) -> StatsAggregator[StatsKeyWithLocation]:
        return self._combined_stats

    @property
    def device_count(self) -> int:
        return len(self._devices)

    @property
    def device_info_count(self) -> int:
        return len(self._device_infos)

    def device_infos(self) -> list[ConnectedDeviceInfo]:
        return list(self._device_infos.values())

    def device_info(self, index: int) -> ConnectedDeviceInfo:
        return self.device_infos()[index]

    def device_info_for(self, device_id: uuid.UUID) -> ConnectedDeviceInfo | None:
        return self._device_infos.get(device_id)

    @property
    def session_stats_count(self) -> int:
        return len(self._combined_stats)

    def session_stats(self) -> list[tuple[StatsKeyWithLocation, StatsEntry]]:
        return self._combined_stats.to_list()

    def session_stats_at(self, index: int) -> tuple[StatsKeyWithLocation, StatsEntry]:
        return self._combined_stats[index]

    def snapshot_for_api(self) -> dict[str, Any]:
        return {
            "device_id": str(self.device_id),
            "running": self.running,
            "devices": [
                {"id": str(device_id), **info.to_dict()}
                for device_id, info in self._device_infos.items()
            ],
            "stats": [
                {**key.to_dict(), **entry.to_dict()} for key, entry in self.session_stats()
            ],
            "window": {
                "size_s": self._buffer.window_size_s,
                "delay_s": self._buffer.window_delay_s,
                "last_decode_time": self._buffer.last_decode_time,
                "windows_emitted": self._buffer.windows_emitted,
                "empty_windows": self._buffer.empty_windows,
            },
        }

    # -- Device events --------------------------------------------------------

    def device_app_launched(self, device_id: uuid.UUID) -> None:
        self._device_observer.device_app_launched(device_id)

    def device_app_launch_failed(self, device_id: uuid.UUID, error: Exception) -> None:
        LOGGER.warning("App launch failed on device %s: %s", device_id, error)
        self._device_observer.device_app_launch_failed(device_id, error)

    def device_did_not_connect(self, error: Exception) -> None:
        LOGGER.warning("Device did not connect: %s", error)
        self._device_observer.device_did_not_connect(error)

    def device_disconnected(self, device_id: uuid.UUID) -> None:
        self._device_observer.device_disconnected(device_id)

    def device_got_info(self, device_id: uuid.UUID, info: DeviceInfo) -> None:
        existing = self._device_infos.get(device_id)
        if existing is None:
            self._device_infos[device_id] = ConnectedDeviceInfo(device_info=info)
        else:
            self._device_infos[device_id] = existing.with_device_info(info)
        self._device_observer.device_got_info(device_id, info)

    def device_got_info_detail(self, device_id: uuid.UUID, detail: DeviceInfoDetail) -> None:
        existing = self._device_infos.get(device_id)
        if existing is not None:
            self._device_infos[device_id] = existing.with_device_info_detail(detail)
        else:
            LOGGER.debug("Detail for %s arrived before its device info; not recorded", device_id)
        self._device_observer.device_got_info_detail(device_id, detail)

    # -- Session events -------------------------------------------------------

    def _with_location(self, key: StatsKey) -> StatsKeyWithLocation:
        return StatsKeyWithLocation.from_key(key, self._location_resolver(key.device_id))

    def sensor_data_received(
        self,
        session: DeviceSession,
        device_id: uuid.UUID,
        timestamp: float,
        data: bytes,
    ) -> None:
        self._buffer.decode_and_add(data, device_id)
        self._combined_stats.merge(session.stats, self._with_location)

    def sensor_data_not_received(self, session: DeviceSession, device_id: uuid.UUID) -> None:
        LOGGER.warning("Sensor data not received from device %s", device_id)
        self._session_observer.sensor_data_not_received(self, device_id)

    def session_ended(self, session: DeviceSession, device_id: uuid.UUID) -> None:
        self._device_infos.pop(device_id, None)
        self._session_observer.session_ended(self, device_id)

    # -- Window events --------------------------------------------------------

    def encoding_samples(self, buffer: WindowBuffer, store: SampleStore) -> None:
        self._observer.encoding_samples(self, store)

    def window_encoded(
        self,
        buffer: WindowBuffer,
        time_range: TimeRange,
        data: bytes,
        ranges: list[SampleArray],
    ) -> None:
        for encoded in ranges:
            nbytes = RANGE_HEADER.size + encoded.nbytes
            self.record_received(encoded.sensor_kind, self.device_id, nbytes)
        self._session_observer.sensor_data_received(self, self.device_id, self._clock(), data)
        self._observer.continuous_data_encoded(self, time_range)
