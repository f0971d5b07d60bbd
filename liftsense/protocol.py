from __future__ import annotations

import struct
import uuid
from dataclasses import dataclass
from typing import NamedTuple

import numpy as np

from .domain_models import SensorKind

# Inbound packet: sensor kind code, sample size in bytes, sample count.
SENSOR_HEADER = struct.Struct("<BBH")
# Encoded continuous range: kind, device uuid, sample size, rate, start time, sample count.
RANGE_HEADER = struct.Struct("<B16sBHdI")

SENSOR_HEADER_BYTES = 1 + 1 + 2
RANGE_HEADER_BYTES = 1 + 16 + 1 + 2 + 8 + 4

MAX_SAMPLE_SIZE = 0xFF
MAX_PACKET_SAMPLES = 0xFFFF


class ProtocolError(ValueError):
    pass


@dataclass(slots=True)
class SensorPacket:
    sensor_kind: SensorKind
    samples: np.ndarray

    @property
    def sample_size(self) -> int:
        return int(self.samples.shape[1])

    @property
    def sample_count(self) -> int:
        return int(self.samples.shape[0])


class ParsedPackets(NamedTuple):
    packets: list[SensorPacket]
    consumed: int
    error: ProtocolError | None


@dataclass(slots=True)
class EncodedRange:
    sensor_kind: SensorKind
    device_id: uuid.UUID
    sample_rate_hz: int
    start: float
    samples: np.ndarray


def _sensor_kind(code: int) -> SensorKind:
    try:
        return SensorKind(code)
    except ValueError:
        raise ProtocolError(f"Unknown sensor kind 0x{code:02x}") from None


def _as_sample_matrix(samples: np.ndarray | bytes, sample_size: int | None = None) -> np.ndarray:
    if isinstance(samples, (bytes, bytearray, memoryview)):
        if sample_size is None or sample_size < 1:
            raise ValueError("sample_size is required when samples are raw bytes")
        raw = np.frombuffer(bytes(samples), dtype=np.uint8)
        if raw.size % sample_size != 0:
            raise ValueError(f"{raw.size} bytes is not a multiple of sample_size {sample_size}")
        return raw.reshape(-1, sample_size)
    matrix = np.asarray(samples, dtype=np.uint8)
    if matrix.ndim != 2 or matrix.shape[1] < 1:
        raise ValueError("samples must be shaped (N, sample_size)")
    return matrix


def parse_packet(data: bytes, offset: int = 0) -> tuple[SensorPacket, int]:
    """Parse one sensor packet at *offset*; return it and the next offset."""
    if len(data) - offset < SENSOR_HEADER.size:
        raise ProtocolError("Sensor packet too short")
    code, sample_size, sample_count = SENSOR_HEADER.unpack_from(data, offset)
    kind = _sensor_kind(code)
    if sample_size < 1:
        raise ProtocolError("Sensor packet declares zero sample size")
    start = offset + SENSOR_HEADER.size
    end = start + sample_size * sample_count
    if len(data) < end:
        raise ProtocolError(
            f"Sensor packet payload truncated: expected {end - start} bytes, "
            f"got {len(data) - start}"
        )
    payload = np.frombuffer(memoryview(data)[start:end], dtype=np.uint8)
    samples = payload.reshape(sample_count, sample_size).copy()
    return SensorPacket(sensor_kind=kind, samples=samples), end


def parse_packets(data: bytes) -> ParsedPackets:
    """Parse packets from *data* up to the first malformed one.

    Never raises: the packets before the bad one are returned together with
    the number of bytes they used and the error that stopped parsing.
    """
    packets: list[SensorPacket] = []
    offset = 0
    while offset < len(data):
        try:
            packet, offset = parse_packet(data, offset)
        except ProtocolError as exc:
            return ParsedPackets(packets, offset, exc)
        packets.append(packet)
    return ParsedPackets(packets, offset, None)


def pack_packet(
    sensor_kind: SensorKind,
    samples: np.ndarray | bytes,
    sample_size: int | None = None,
) -> bytes:
    matrix = _as_sample_matrix(samples, sample_size)
    count, size = matrix.shape
    if size > MAX_SAMPLE_SIZE:
        raise ValueError(f"sample_size must be <= {MAX_SAMPLE_SIZE}, got {size}")
    if count > MAX_PACKET_SAMPLES:
        raise ValueError(f"sample count must be <= {MAX_PACKET_SAMPLES}, got {count}")
    header = SENSOR_HEADER.pack(int(sensor_kind), size, count)
    return header + matrix.tobytes(order="C")


def pack_range(
    sensor_kind: SensorKind,
    device_id: uuid.UUID,
    sample_rate_hz: int,
    start: float,
    samples: np.ndarray,
) -> bytes:
    matrix = _as_sample_matrix(samples)
    count, size = matrix.shape
    header = RANGE_HEADER.pack(
        int(sensor_kind),
        device_id.bytes,
        size,
        int(sample_rate_hz),
        float(start),
        count,
    )
    return header + matrix.tobytes(order="C")


def parse_ranges(payload: bytes) -> list[EncodedRange]:
    """Split a concatenated window payload back into its ranges."""
    ranges: list[EncodedRange] = []
    offset = 0
    while offset < len(payload):
        if len(payload) - offset < RANGE_HEADER.size:
            raise ProtocolError("Encoded range header truncated")
        code, device_bytes, size, rate, start, count = RANGE_HEADER.unpack_from(payload, offset)
        if size < 1:
            raise ProtocolError("Encoded range declares zero sample size")
        begin = offset + RANGE_HEADER.size
        end = begin + size * count
        if len(payload) < end:
            raise ProtocolError("Encoded range payload truncated")
        samples = np.frombuffer(memoryview(payload)[begin:end], dtype=np.uint8).reshape(
            count, size
        )
        ranges.append(
            EncodedRange(
                sensor_kind=_sensor_kind(code),
                device_id=uuid.UUID(bytes=device_bytes),
                sample_rate_hz=rate,
                start=start,
                samples=samples.copy(),
            )
        )
        offset = end
    return ranges
