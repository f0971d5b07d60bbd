from __future__ import annotations

import uuid

import pytest
from builders import DEVICE_A, DEVICE_B

from liftsense.locations import (
    Location,
    all_locations,
    default_location_resolver,
    label_for_code,
    mapping_location_resolver,
    parse_location,
)


def test_all_locations_lists_every_code_once() -> None:
    codes = [entry["code"] for entry in all_locations()]
    assert codes == [loc.value for loc in Location]
    assert label_for_code("any") == "Anywhere"
    assert label_for_code("elbow") is None


@pytest.mark.parametrize("raw", ["wrist", "WRIST", " Wrist "])
def test_parse_location_is_case_insensitive(raw: str) -> None:
    assert parse_location(raw) is Location.WRIST


def test_parse_location_rejects_unknown_code() -> None:
    with pytest.raises(ValueError, match="elbow"):
        parse_location("elbow")


def test_default_resolver_puts_local_device_at_waist() -> None:
    resolve = default_location_resolver(DEVICE_A)
    assert resolve(DEVICE_A) is Location.WAIST
    assert resolve(DEVICE_B) is Location.WRIST


def test_default_resolver_without_local_device() -> None:
    resolve = default_location_resolver(None, Location.ANY)
    assert resolve(DEVICE_A) is Location.ANY


def test_mapping_resolver_falls_back_to_fixed_location() -> None:
    resolve = mapping_location_resolver({DEVICE_A: Location.FOOT}, Location.CHEST)
    assert resolve(DEVICE_A) is Location.FOOT
    assert resolve(uuid.uuid4()) is Location.CHEST


def test_mapping_resolver_falls_back_to_another_resolver() -> None:
    resolve = mapping_location_resolver({}, default_location_resolver(DEVICE_B))
    assert resolve(DEVICE_B) is Location.WAIST
    assert resolve(DEVICE_A) is Location.WRIST
