from __future__ import annotations

import logging
import uuid
from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .constants import DEFAULT_GAP_VALUE, DEFAULT_MAX_GAP_S, SAMPLE_RATE_HZ, SAMPLES_PER_PACKET
from .domain_models import normalize_device_id
from .locations import (
    Location,
    LocationResolver,
    default_location_resolver,
    mapping_location_resolver,
    parse_location,
)

PACKAGE_DIR = Path(__file__).resolve().parent
"""Root of the ``liftsense`` package."""

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG: dict[str, Any] = {
    "window": {
        "sample_rate_hz": SAMPLE_RATE_HZ,
        "samples_per_packet": SAMPLES_PER_PACKET,
        "max_gap_s": DEFAULT_MAX_GAP_S,
        "gap_value": DEFAULT_GAP_VALUE,
    },
    "locations": {
        "local_device_id": None,
        "default": Location.WRIST.value,
        "devices": {},
    },
}


def documented_default_config() -> dict[str, Any]:
    """Return runtime defaults in the shape documented by config.example.yaml."""
    return deepcopy(DEFAULT_CONFIG)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


@dataclass(slots=True)
class WindowConfig:
    sample_rate_hz: int
    samples_per_packet: int
    max_gap_s: float
    gap_value: int

    def __post_init__(self) -> None:
        _cfg_logger = logging.getLogger(__name__)
        for field_name in ("sample_rate_hz", "samples_per_packet"):
            val = getattr(self, field_name)
            if val < 1:
                _cfg_logger.warning(
                    "window.%s=%s is below minimum 1, clamped to 1",
                    field_name,
                    val,
                )
                object.__setattr__(self, field_name, 1)
        if self.max_gap_s < 0:
            _cfg_logger.warning(
                "window.max_gap_s=%s is negative, clamped to 0",
                self.max_gap_s,
            )
            object.__setattr__(self, "max_gap_s", 0.0)
        if not 0 <= self.gap_value <= 0xFF:
            raise ValueError(f"window.gap_value must be a byte (0-255), got {self.gap_value!r}")

    @property
    def window_size_s(self) -> float:
        return self.samples_per_packet / float(self.sample_rate_hz)

    @property
    def window_delay_s(self) -> float:
        return self.window_size_s / 2.0


@dataclass(slots=True)
class LocationConfig:
    local_device_id: uuid.UUID | None = None
    default: Location = Location.WRIST
    devices: dict[uuid.UUID, Location] = field(default_factory=dict)

    def resolver(self) -> LocationResolver:
        """Explicit per-device entries win; otherwise the local device is at the waist."""
        return mapping_location_resolver(
            self.devices,
            default_location_resolver(self.local_device_id, self.default),
        )


@dataclass(slots=True)
class AppConfig:
    window: WindowConfig
    locations: LocationConfig
    config_path: Path


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path} must contain a YAML object at the top level.")
        return data


def _parse_device_locations(raw: Any) -> dict[uuid.UUID, Location]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError(f"locations.devices must be a mapping, got {type(raw).__name__}")
    out: dict[uuid.UUID, Location] = {}
    for device_text, code in raw.items():
        try:
            out[normalize_device_id(str(device_text))] = parse_location(str(code))
        except ValueError as exc:
            raise ValueError(f"locations.devices[{device_text!r}]: {exc}") from None
    return out


def load_config(config_path: Path | None = None) -> AppConfig:
    path = config_path or (PACKAGE_DIR.parent / "config.yaml")
    path = path.resolve()
    override = _read_config_file(path)
    merged = _deep_merge(DEFAULT_CONFIG, override)

    window_cfg = merged["window"]
    try:
        window = WindowConfig(
            sample_rate_hz=int(window_cfg["sample_rate_hz"]),
            samples_per_packet=int(window_cfg["samples_per_packet"]),
            max_gap_s=float(window_cfg["max_gap_s"]),
            gap_value=int(window_cfg["gap_value"]),
        )  # NOTE: WindowConfig.__post_init__ validates & clamps all fields
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid window config in {path}: {exc}") from None

    locations_cfg = merged["locations"]
    local_raw = locations_cfg.get("local_device_id")
    try:
        local_device_id = normalize_device_id(str(local_raw)) if local_raw else None
    except ValueError:
        raise ValueError(f"locations.local_device_id is not a UUID: {local_raw!r}") from None
    try:
        default_location = parse_location(str(locations_cfg.get("default", "wrist")))
    except ValueError as exc:
        raise ValueError(f"locations.default: {exc}") from None

    app_config = AppConfig(
        window=window,
        locations=LocationConfig(
            local_device_id=local_device_id,
            default=default_location,
            devices=_parse_device_locations(locations_cfg.get("devices")),
        ),
        config_path=path,
    )
    LOGGER.info(
        "Loaded config=%s window_size_s=%.3f max_gap_s=%.3f devices=%d",
        app_config.config_path,
        app_config.window.window_size_s,
        app_config.window.max_gap_s,
        len(app_config.locations.devices),
    )
    return app_config
