"""Per-(sensor kind, device) sample storage with gap-tolerant range extraction.

A :class:`SampleArray` is a run of fixed-size samples at a fixed rate that
starts at an absolute time.  The store keeps, for every
``(sensor_kind, device_id)`` pair, a start-ordered list of such arrays and can

- decode inbound packets and append them (joining with the previous array when
  the gap is small enough),
- return the *continuous ranges* that fall inside a time window, filling any
  tolerated gap with a sentinel byte,
- drop every sample that ends before a cutoff, trimming arrays that
  straddle it.

:class:`SampleStore` is the protocol the windowing code depends on;
:class:`InMemorySampleStore` is the implementation used at runtime.
"""

from __future__ import annotations

import bisect
import logging
import math
import uuid
from dataclasses import dataclass
from typing import NamedTuple, Protocol

import numpy as np

from .constants import DEFAULT_GAP_VALUE, DEFAULT_MAX_GAP_S, SAMPLE_RATE_HZ, TIME_EPSILON_SAMPLES
from .domain_models import SensorKind, StatsKey, TimeRange
from .protocol import pack_range, parse_packets

LOGGER = logging.getLogger(__name__)


class DecodeResult(NamedTuple):
    """Store size after a decode, for diagnostics."""

    raw_count: int
    length: int


@dataclass(slots=True)
class SampleArray:
    sensor_kind: SensorKind
    device_id: uuid.UUID
    start: float
    sample_rate_hz: int
    samples: np.ndarray

    @property
    def sample_size(self) -> int:
        return int(self.samples.shape[1])

    @property
    def sample_count(self) -> int:
        return int(self.samples.shape[0])

    @property
    def nbytes(self) -> int:
        return int(self.samples.nbytes)

    @property
    def duration(self) -> float:
        return self.sample_count / float(self.sample_rate_hz)

    @property
    def end(self) -> float:
        return self.start + self.duration

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(self.start, self.end)

    def encode(self) -> bytes:
        return pack_range(
            self.sensor_kind,
            self.device_id,
            self.sample_rate_hz,
            self.start,
            self.samples,
        )

    def _index_at(self, t: float) -> int:
        offset = (t - self.start) * self.sample_rate_hz
        return math.ceil(offset - TIME_EPSILON_SAMPLES)

    def slice(self, within: TimeRange) -> SampleArray | None:
        """Return the samples whose timestamps fall in ``[within.start, within.end)``."""
        first = max(0, self._index_at(within.start))
        last = min(self.sample_count, self._index_at(within.end))
        if last <= first:
            return None
        if first == 0 and last == self.sample_count:
            return self
        return SampleArray(
            sensor_kind=self.sensor_kind,
            device_id=self.device_id,
            start=self.start + first / float(self.sample_rate_hz),
            sample_rate_hz=self.sample_rate_hz,
            samples=self.samples[first:last],
        )

    def trimmed_before(self, cutoff: float) -> SampleArray | None:
        """Drop the samples that end before *cutoff*; ``None`` if nothing is left.

        The kept samples are copied so the dropped head can be freed.
        """
        first = max(0, self._index_at(cutoff) - 1)
        if first >= self.sample_count:
            return None
        if first == 0:
            return self
        return SampleArray(
            sensor_kind=self.sensor_kind,
            device_id=self.device_id,
            start=self.start + first / float(self.sample_rate_hz),
            sample_rate_hz=self.sample_rate_hz,
            samples=self.samples[first:].copy(),
        )

    def joined(self, later: SampleArray, max_gap_s: float, gap_value: int) -> SampleArray | None:
        """Join *later* onto the end of this array, or return ``None`` if the gap is too big.

        A positive gap is filled with ``gap_value`` for exactly its duration.
        An overlap is placed directly after this array's last sample.
        """
        if later.sample_size != self.sample_size or later.sample_rate_hz != self.sample_rate_hz:
            return None
        gap = later.start - self.end
        tolerance = TIME_EPSILON_SAMPLES / float(self.sample_rate_hz)
        if gap - max_gap_s > tolerance:
            return None
        parts = [self.samples]
        fill_count = int(round(gap * self.sample_rate_hz)) if gap > 0 else 0
        if fill_count > 0:
            parts.append(np.full((fill_count, self.sample_size), gap_value & 0xFF, dtype=np.uint8))
        parts.append(later.samples)
        return SampleArray(
            sensor_kind=self.sensor_kind,
            device_id=self.device_id,
            start=self.start,
            sample_rate_hz=self.sample_rate_hz,
            samples=np.concatenate(parts, axis=0),
        )


def join_continuous(
    arrays: list[SampleArray],
    max_gap_s: float,
    gap_value: int,
) -> list[SampleArray]:
    """Merge start-ordered *arrays* into maximal continuous ranges."""
    out: list[SampleArray] = []
    for array in sorted(arrays, key=lambda a: a.start):
        if out:
            merged = out[-1].joined(array, max_gap_s, gap_value)
            if merged is not None:
                out[-1] = merged
                continue
        out.append(array)
    return out


class SampleStore(Protocol):
    """Operations the windowing code needs from a sample store."""

    def decode_and_append(
        self,
        data: bytes,
        device_id: uuid.UUID,
        at_time: float,
        max_gap_s: float = DEFAULT_MAX_GAP_S,
        gap_value: int = DEFAULT_GAP_VALUE,
    ) -> DecodeResult: ...

    def continuous_ranges(
        self,
        within: TimeRange,
        max_gap_s: float = DEFAULT_MAX_GAP_S,
        gap_value: int = DEFAULT_GAP_VALUE,
    ) -> list[SampleArray]: ...

    def prune_ending_before(self, time_s: float) -> int: ...


class InMemorySampleStore:
    def __init__(self, sample_rates_hz: dict[SensorKind, int] | None = None):
        self._sample_rates_hz = dict(sample_rates_hz or {})
        self._arrays: dict[StatsKey, list[SampleArray]] = {}

    def sample_rate_for(self, sensor_kind: SensorKind) -> int:
        return self._sample_rates_hz.get(sensor_kind, SAMPLE_RATE_HZ)

    # -- Diagnostics ----------------------------------------------------------

    @property
    def raw_count(self) -> int:
        return sum(len(arrays) for arrays in self._arrays.values())

    @property
    def length(self) -> int:
        return sum(array.nbytes for arrays in self._arrays.values() for array in arrays)

    def keys(self) -> list[StatsKey]:
        return sorted(self._arrays, key=lambda k: (int(k.sensor_kind), str(k.device_id)))

    def arrays_for(self, key: StatsKey) -> list[SampleArray]:
        return list(self._arrays.get(key, ()))

    def __len__(self) -> int:
        return self.raw_count

    # -- Mutation -------------------------------------------------------------

    def _decode(self, data: bytes, device_id: uuid.UUID, at_time: float) -> list[SampleArray]:
        parsed = parse_packets(data)
        if parsed.error is not None:
            LOGGER.debug(
                "Dropping %d undecodable bytes from device %s: %s",
                len(data) - parsed.consumed,
                device_id,
                parsed.error,
            )
        packets = [p for p in parsed.packets if p.sample_count]

        # Packets of one kind are consecutive; the last one ends at ``at_time``.
        ends: dict[SensorKind, float] = {}
        arrays: list[SampleArray] = []
        for packet in reversed(packets):
            rate = self.sample_rate_for(packet.sensor_kind)
            end = ends.get(packet.sensor_kind, at_time)
            start = end - packet.sample_count / float(rate)
            ends[packet.sensor_kind] = start
            arrays.append(
                SampleArray(
                    sensor_kind=packet.sensor_kind,
                    device_id=device_id,
                    start=start,
                    sample_rate_hz=rate,
                    samples=packet.samples,
                )
            )
        arrays.reverse()
        return arrays

    def _append(self, array: SampleArray, max_gap_s: float, gap_value: int) -> None:
        key = StatsKey(sensor_kind=array.sensor_kind, device_id=array.device_id)
        arrays = self._arrays.setdefault(key, [])
        if arrays and array.start >= arrays[-1].start:
            merged = arrays[-1].joined(array, max_gap_s, gap_value)
            if merged is not None:
                arrays[-1] = merged
                return
            arrays.append(array)
            return
        starts = [a.start for a in arrays]
        arrays.insert(bisect.bisect_right(starts, array.start), array)

    def decode_and_append(
        self,
        data: bytes,
        device_id: uuid.UUID,
        at_time: float,
        max_gap_s: float = DEFAULT_MAX_GAP_S,
        gap_value: int = DEFAULT_GAP_VALUE,
    ) -> DecodeResult:
        for array in self._decode(data, device_id, at_time):
            self._append(array, max_gap_s, gap_value)
        return DecodeResult(raw_count=self.raw_count, length=self.length)

    def prune_ending_before(self, time_s: float) -> int:
        """Drop every sample ending before *time_s*; return how many were dropped.

        Arrays that straddle the cutoff lose their head, so a device that
        streams without gaps still keeps only what later windows can use.
        """
        removed = 0
        for key in list(self._arrays):
            kept: list[SampleArray] = []
            for array in self._arrays[key]:
                trimmed = array.trimmed_before(time_s)
                if trimmed is None:
                    removed += array.sample_count
                    continue
                removed += array.sample_count - trimmed.sample_count
                kept.append(trimmed)
            if kept:
                self._arrays[key] = kept
            else:
                del self._arrays[key]
        return removed

    # -- Queries --------------------------------------------------------------

    def continuous_ranges(
        self,
        within: TimeRange,
        max_gap_s: float = DEFAULT_MAX_GAP_S,
        gap_value: int = DEFAULT_GAP_VALUE,
    ) -> list[SampleArray]:
        ranges: list[SampleArray] = []
        for key in self.keys():
            for array in join_continuous(self._arrays[key], max_gap_s, gap_value):
                clipped = array.slice(within)
                if clipped is not None:
                    ranges.append(clipped)
        return ranges
