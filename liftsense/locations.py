from __future__ import annotations

from collections.abc import Callable, Mapping
from enum import StrEnum
from uuid import UUID


class Location(StrEnum):
    """Where a device is worn."""

    WRIST = "wrist"
    WAIST = "waist"
    CHEST = "chest"
    FOOT = "foot"
    ANY = "any"


LOCATION_OPTIONS: tuple[tuple[str, str], ...] = (
    (Location.WRIST.value, "Wrist"),
    (Location.WAIST.value, "Waist"),
    (Location.CHEST.value, "Chest"),
    (Location.FOOT.value, "Foot"),
    (Location.ANY.value, "Anywhere"),
)

LOCATION_LABEL_BY_CODE: dict[str, str] = dict(LOCATION_OPTIONS)

LocationResolver = Callable[[UUID], Location]


def all_locations() -> list[dict[str, str]]:
    return [{"code": code, "label": label} for code, label in LOCATION_OPTIONS]


def label_for_code(code: str) -> str | None:
    return LOCATION_LABEL_BY_CODE.get(code)


def parse_location(code: str) -> Location:
    """Return the :class:`Location` for *code* (case-insensitive).

    Raises ``ValueError`` for unknown codes.
    """
    normalized = str(code).strip().lower()
    try:
        return Location(normalized)
    except ValueError:
        raise ValueError(f"Unknown location code: {code!r}") from None


def default_location_resolver(
    local_device_id: UUID | None,
    default: Location = Location.WRIST,
) -> LocationResolver:
    """The phone-side device is worn at the waist; every other device at *default*."""

    def _resolve(device_id: UUID) -> Location:
        if local_device_id is not None and device_id == local_device_id:
            return Location.WAIST
        return default

    return _resolve


def mapping_location_resolver(
    locations: Mapping[UUID, Location],
    fallback: Location | LocationResolver = Location.WRIST,
) -> LocationResolver:
    """Resolve from an explicit device→location table.

    Unlisted devices get *fallback*, which is either a fixed location or
    another resolver.
    """
    table = dict(locations)

    def _resolve(device_id: UUID) -> Location:
        found = table.get(device_id)
        if found is not None:
            return found
        if isinstance(fallback, Location):
            return fallback
        return fallback(device_id)

    return _resolve
