"""Windowed slicing of buffered sensor samples.

``WindowBuffer`` owns one :class:`~liftsense.sample_store.SampleStore`.
Inbound packets are decoded into the store as they arrive; independently, a
:class:`~liftsense.scheduler.WindowScheduler` ticks once per window and each
tick slices the window ``[last_decode - delay - size, last_decode - delay)``
out of the store, concatenates the encoded continuous ranges into one payload
and hands it to the observer.  The delay (half a window) keeps the slice on
data that has already settled.

All methods must be called from the event loop that drives the scheduler;
nothing here takes a lock.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Callable
from typing import Protocol

from .constants import DEFAULT_GAP_VALUE, DEFAULT_MAX_GAP_S, DEFAULT_WINDOW_SIZE_S
from .domain_models import TimeRange
from .sample_store import InMemorySampleStore, SampleArray, SampleStore
from .scheduler import WindowScheduler

LOGGER = logging.getLogger(__name__)


class WindowObserver(Protocol):
    def encoding_samples(self, buffer: WindowBuffer, store: SampleStore) -> None:
        """Called at the start of every tick that has a window to slice."""

    def window_encoded(
        self,
        buffer: WindowBuffer,
        time_range: TimeRange,
        data: bytes,
        ranges: list[SampleArray],
    ) -> None:
        """Called with the encoded payload of every non-empty window.

        *data* is the concatenated encoding of *ranges*, in order.
        """


class WindowBuffer:
    def __init__(
        self,
        observer: WindowObserver,
        *,
        window_size_s: float = DEFAULT_WINDOW_SIZE_S,
        max_gap_s: float = DEFAULT_MAX_GAP_S,
        gap_value: int = DEFAULT_GAP_VALUE,
        store: SampleStore | None = None,
        clock: Callable[[], float] = time.time,
        loop: asyncio.AbstractEventLoop | None = None,
    ):
        if window_size_s <= 0:
            raise ValueError(f"window_size_s must be > 0, got {window_size_s!r}")
        self.window_size_s = float(window_size_s)
        self.window_delay_s = self.window_size_s / 2.0
        self.max_gap_s = float(max_gap_s)
        self.gap_value = int(gap_value) & 0xFF
        self._observer = observer
        self._store: SampleStore = store if store is not None else InMemorySampleStore()
        self._clock = clock
        self._last_decode_time: float | None = None
        self.windows_emitted: int = 0
        self.empty_windows: int = 0
        self._scheduler = WindowScheduler(
            self.window_size_s,
            self.encode_window,
            loop=loop,
            name="window-buffer",
        )
        self._scheduler.start()

    @property
    def store(self) -> SampleStore:
        return self._store

    @property
    def last_decode_time(self) -> float | None:
        return self._last_decode_time

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def decode_and_add(
        self,
        data: bytes,
        device_id: uuid.UUID,
        max_gap_s: float | None = None,
        gap_value: int | None = None,
    ) -> None:
        now = self._clock()
        result = self._store.decode_and_append(
            data,
            device_id,
            now,
            self.max_gap_s if max_gap_s is None else max_gap_s,
            self.gap_value if gap_value is None else gap_value,
        )
        LOGGER.debug(
            "Decoded %d bytes from %s: raw_count=%d length=%d",
            len(data),
            device_id,
            result.raw_count,
            result.length,
        )
        if self._last_decode_time is None or now > self._last_decode_time:
            self._last_decode_time = now

    def current_window(self) -> TimeRange | None:
        """The window the next tick would slice, or ``None`` before the first decode."""
        if self._last_decode_time is None:
            return None
        end = self._last_decode_time - self.window_delay_s
        return TimeRange(end - self.window_size_s, end)

    def encode_window(self) -> None:
        window = self.current_window()
        if window is None:
            return
        try:
            self._observer.encoding_samples(self, self._store)
            ranges = self._store.continuous_ranges(window, self.max_gap_s, self.gap_value)
            if not ranges:
                self.empty_windows += 1
                LOGGER.warning("Empty range %.3f - %.3f", window.start, window.end)
                return
            # TODO: multi-range header so consumers can split without parsing each range.
            payload = b"".join(r.encode() for r in ranges)
            self.windows_emitted += 1
            LOGGER.info(
                "Encoded window %.3f-%.3f: %d range(s), %d bytes",
                window.start,
                window.end,
                len(ranges),
                len(payload),
            )
            self._observer.window_encoded(self, window, payload, ranges)
        finally:
            self._store.prune_ending_before(window.start)

    def stop(self) -> None:
        self._scheduler.stop()
