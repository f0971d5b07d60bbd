"""Byte/packet counters keyed per sensor bucket.

``StatsAggregator`` is generic over its key type so the same class serves a
single device session (keyed by :class:`~liftsense.domain_models.StatsKey`)
and the coordinator's combined view (keyed by
:class:`~liftsense.domain_models.StatsKeyWithLocation`).
"""

from __future__ import annotations

from collections.abc import Callable, Hashable, Iterator
from typing import Generic, TypeVar

from .domain_models import StatsEntry

K = TypeVar("K", bound=Hashable)
K2 = TypeVar("K2", bound=Hashable)


class StatsAggregator(Generic[K]):
    def __init__(self) -> None:
        self._stats: dict[K, StatsEntry] = {}

    def get(self, key: K) -> StatsEntry:
        return self._stats.get(key, StatsEntry.ZERO)

    def update(self, key: K, update: Callable[[StatsEntry], StatsEntry]) -> StatsEntry:
        """Apply *update* to the entry under *key* (zero if absent); store and return it."""
        current = update(self._stats.get(key, StatsEntry.ZERO))
        self._stats[key] = current
        return current

    def merge(self, other: StatsAggregator[K2], key_mapper: Callable[[K2], K]) -> None:
        """Copy every entry of *other* here under ``key_mapper(key)``.

        Existing entries are overwritten, never summed: each merged key holds
        the latest snapshot of its source.
        """
        for key, entry in other.to_list():
            self._stats[key_mapper(key)] = entry

    def zero(self) -> None:
        """Reset every counter to zero, keeping the keys."""
        for key in self._stats:
            self._stats[key] = StatsEntry.ZERO

    def to_list(self) -> list[tuple[K, StatsEntry]]:
        return list(self._stats.items())

    def __getitem__(self, index: int) -> tuple[K, StatsEntry]:
        return self.to_list()[index]

    def __len__(self) -> int:
        return len(self._stats)

    def __iter__(self) -> Iterator[tuple[K, StatsEntry]]:
        return iter(self.to_list())

    def __contains__(self, key: object) -> bool:
        return key in self._stats

    @property
    def count(self) -> int:
        return len(self._stats)

    def totals(self) -> StatsEntry:
        return StatsEntry(
            bytes=sum(e.bytes for e in self._stats.values()),
            packets=sum(e.packets for e in self._stats.values()),
        )
