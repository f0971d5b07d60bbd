from __future__ import annotations

import logging

import pytest
from builders import (
    DEVICE_A,
    DEVICE_B,
    FakeConnectedDevice,
    FakeDevice,
    FakeSession,
    accel_packet,
    make_coordinator,
)

from liftsense.constants import MULTI_DEVICE_ID
from liftsense.domain_models import (
    DeviceInfo,
    DeviceInfoDetail,
    SensorKind,
    StatsEntry,
    StatsKey,
    StatsKeyWithLocation,
)
from liftsense.locations import Location
from liftsense.protocol import RANGE_HEADER, parse_ranges

# -- lifecycle -----------------------------------------------------------------


def test_every_device_is_connected_with_coordinator_as_observer() -> None:
    devices = [FakeDevice(), FakeDevice()]
    harness = make_coordinator(devices)
    coordinator = harness.coordinator

    assert coordinator.device_id == MULTI_DEVICE_ID
    assert coordinator.session_id == MULTI_DEVICE_ID
    assert all(d.device_observer is coordinator for d in devices)
    assert all(d.session_observer is coordinator for d in devices)
    assert coordinator.device_count == 2
    assert [d.connected.starts for d in devices] == [0, 0]


def test_start_starts_connected_devices_once() -> None:
    devices = [FakeDevice(), FakeDevice()]
    coordinator = make_coordinator(devices).coordinator

    coordinator.start()
    coordinator.start()

    assert [d.connected.starts for d in devices] == [1, 1]
    assert coordinator.running is True


def test_device_connecting_after_start_is_started_on_arrival() -> None:
    late = FakeDevice(deferred=True)
    coordinator = make_coordinator([late]).coordinator
    coordinator.start()
    assert coordinator.device_count == 0

    late.finish_connect()

    assert coordinator.device_count == 1
    assert late.connected.starts == 1


def test_device_connecting_after_stop_stays_idle() -> None:
    late = FakeDevice(deferred=True)
    coordinator = make_coordinator([late]).coordinator
    coordinator.start()
    coordinator.stop()

    late.finish_connect()

    assert late.connected.starts == 0


def test_stop_is_idempotent_and_stops_scheduler() -> None:
    devices = [FakeDevice(), FakeDevice()]
    harness = make_coordinator(devices)
    coordinator = harness.coordinator
    coordinator.start()

    coordinator.stop()
    coordinator.stop()

    assert [d.connected.stops for d in devices] == [1, 1]
    assert coordinator.window_buffer.running is False
    assert harness.loop.pending_times == []
    assert coordinator.running is False


def test_device_stop_failure_does_not_block_others(caplog) -> None:
    broken = FakeDevice(FakeConnectedDevice("broken", fail_on_stop=True))
    healthy = FakeDevice()
    coordinator = make_coordinator([broken, healthy]).coordinator
    coordinator.start()

    with caplog.at_level(logging.WARNING, logger="liftsense.coordinator"):
        coordinator.stop()

    assert healthy.connected.stops == 1
    assert coordinator.window_buffer.running is False
    assert "Error stopping device session" in caplog.text


def test_start_after_stop_raises() -> None:
    coordinator = make_coordinator([FakeDevice()]).coordinator
    coordinator.stop()
    with pytest.raises(RuntimeError, match="cannot be restarted"):
        coordinator.start()


# -- device events -------------------------------------------------------------


def test_device_lifecycle_events_are_forwarded() -> None:
    harness = make_coordinator()
    coordinator = harness.coordinator
    launch_error = RuntimeError("not installed")
    connect_error = TimeoutError("no response")

    coordinator.device_app_launched(DEVICE_A)
    coordinator.device_app_launch_failed(DEVICE_B, launch_error)
    coordinator.device_did_not_connect(connect_error)
    coordinator.device_disconnected(DEVICE_A)

    assert harness.device_observer.events == [
        ("app_launched", DEVICE_A),
        ("app_launch_failed", DEVICE_B, launch_error),
        ("did_not_connect", connect_error),
        ("disconnected", DEVICE_A),
    ]


def test_device_info_and_detail_build_directory_entry() -> None:
    harness = make_coordinator()
    coordinator = harness.coordinator
    info = DeviceInfo("watch", "Left wrist")
    detail = DeviceInfoDetail("AA:BB:CC", "rev2", "7.1")
    renamed = DeviceInfo("watch", "Right wrist")

    coordinator.device_got_info(DEVICE_A, info)
    coordinator.device_got_info_detail(DEVICE_A, detail)
    coordinator.device_got_info(DEVICE_A, renamed)

    entry = coordinator.device_info_for(DEVICE_A)
    assert entry is not None
    assert entry.device_info == renamed
    assert entry.device_info_detail == detail
    assert coordinator.device_info_count == 1
    assert coordinator.device_info(0) == entry
    assert [e[0] for e in harness.device_observer.events] == [
        "got_info",
        "got_info_detail",
        "got_info",
    ]


def test_detail_before_info_is_forwarded_but_not_recorded() -> None:
    harness = make_coordinator()
    coordinator = harness.coordinator
    detail = DeviceInfoDetail("AA:BB:CC")

    coordinator.device_got_info_detail(DEVICE_B, detail)

    assert coordinator.device_info_for(DEVICE_B) is None
    assert harness.device_observer.events == [("got_info_detail", DEVICE_B, detail)]


# -- session events ------------------------------------------------------------


def test_received_data_is_buffered_under_the_real_device_id() -> None:
    harness = make_coordinator()
    harness.clock.now = 3.0
    session = FakeSession()

    harness.coordinator.sensor_data_received(session, DEVICE_A, 3.0, accel_packet(20))

    store = harness.coordinator.sample_store
    assert store.arrays_for(StatsKey(SensorKind.ACCELEROMETER, DEVICE_A))[0].sample_count == 20
    assert harness.coordinator.window_buffer.last_decode_time == 3.0
    assert harness.session_observer.received == []


def test_session_stats_are_merged_under_location_keys() -> None:
    harness = make_coordinator(locations={DEVICE_A: Location.WAIST, DEVICE_B: Location.WRIST})
    coordinator = harness.coordinator
    session_a = FakeSession()
    session_a.record_received(SensorKind.ACCELEROMETER, DEVICE_A, 60)
    session_a.record_received(SensorKind.ACCELEROMETER, DEVICE_A, 40)
    session_b = FakeSession()
    session_b.record_received(SensorKind.ACCELEROMETER, DEVICE_B, 50)

    coordinator.sensor_data_received(session_a, DEVICE_A, 1.0, b"")
    coordinator.sensor_data_received(session_b, DEVICE_B, 1.0, b"")

    assert coordinator.session_stats_count == 2
    assert dict(coordinator.session_stats()) == {
        StatsKeyWithLocation(SensorKind.ACCELEROMETER, DEVICE_A, Location.WAIST): StatsEntry(100, 2),
        StatsKeyWithLocation(SensorKind.ACCELEROMETER, DEVICE_B, Location.WRIST): StatsEntry(50, 1),
    }


def test_combined_entry_reflects_latest_snapshot() -> None:
    harness = make_coordinator()
    coordinator = harness.coordinator
    session = FakeSession()
    session.record_received(SensorKind.ACCELEROMETER, DEVICE_A, 10)
    coordinator.sensor_data_received(session, DEVICE_A, 1.0, b"")
    session.record_received(SensorKind.ACCELEROMETER, DEVICE_A, 10)
    coordinator.sensor_data_received(session, DEVICE_A, 2.0, b"")

    key, entry = coordinator.session_stats_at(0)
    assert key.location is Location.WAIST
    assert entry == StatsEntry(bytes=20, packets=2)


def test_location_resolver_is_queried_for_each_merge() -> None:
    calls: list = []

    def resolver(device_id):
        calls.append(device_id)
        return Location.CHEST

    coordinator = make_coordinator(location_resolver=resolver).coordinator
    session = FakeSession()
    session.record_received(SensorKind.GYROSCOPE, DEVICE_B, 5)
    coordinator.sensor_data_received(session, DEVICE_B, 1.0, b"")
    coordinator.sensor_data_received(session, DEVICE_B, 2.0, b"")

    assert calls == [DEVICE_B, DEVICE_B]


def test_data_not_received_is_forwarded_as_coordinator(caplog) -> None:
    harness = make_coordinator()
    session = FakeSession()

    with caplog.at_level(logging.WARNING, logger="liftsense.coordinator"):
        harness.coordinator.sensor_data_not_received(session, DEVICE_A)

    assert harness.session_observer.not_received == [(harness.coordinator, DEVICE_A)]
    assert "Sensor data not received" in caplog.text


def test_session_end_drops_directory_entry_and_forwards_as_coordinator() -> None:
    harness = make_coordinator()
    coordinator = harness.coordinator
    coordinator.device_got_info(DEVICE_A, DeviceInfo("watch", "Left wrist"))

    coordinator.session_ended(FakeSession(), DEVICE_A)

    assert coordinator.device_info_for(DEVICE_A) is None
    assert harness.session_observer.ended == [(coordinator, DEVICE_A)]


# -- window re-injection -------------------------------------------------------


def test_encoded_window_is_reinjected_under_virtual_device_id() -> None:
    harness = make_coordinator(start_time=0.0)
    coordinator = harness.coordinator
    harness.clock.now = 10.0
    coordinator.sensor_data_received(FakeSession(), DEVICE_A, 10.0, accel_packet(300))
    harness.clock.now = 10.5

    harness.loop.advance(1.24)

    assert harness.observer.encoding_calls == 1
    (time_range,) = harness.observer.encoded_ranges
    assert time_range.start == pytest.approx(8.14)
    ((session, device_id, timestamp, payload),) = harness.session_observer.received
    assert session is coordinator
    assert device_id == MULTI_DEVICE_ID
    assert timestamp == 10.5
    (encoded,) = parse_ranges(payload)
    assert encoded.device_id == DEVICE_A
    assert encoded.samples.shape[0] == 124


def test_encoded_window_is_counted_in_own_stats() -> None:
    harness = make_coordinator()
    coordinator = harness.coordinator
    harness.clock.now = 10.0
    coordinator.sensor_data_received(FakeSession(), DEVICE_A, 10.0, accel_packet(300))
    coordinator.sensor_data_received(FakeSession(), DEVICE_B, 10.0, accel_packet(300))

    coordinator.window_buffer.encode_window()

    ((_, _, _, payload),) = harness.session_observer.received
    entry = coordinator.stats.get(StatsKey(SensorKind.ACCELEROMETER, MULTI_DEVICE_ID))
    assert entry.packets == 2
    assert entry.bytes == len(payload) == 2 * (RANGE_HEADER.size + 124 * 6)


def test_own_stats_come_from_encoded_ranges_not_payload() -> None:
    harness = make_coordinator()
    coordinator = harness.coordinator
    harness.clock.now = 10.0
    coordinator.sensor_data_received(FakeSession(), DEVICE_A, 10.0, accel_packet(300))
    window = coordinator.window_buffer.current_window()
    ranges = coordinator.window_buffer.store.continuous_ranges(window)

    coordinator.window_encoded(coordinator.window_buffer, window, b"opaque", ranges)

    entry = coordinator.stats.get(StatsKey(SensorKind.ACCELEROMETER, MULTI_DEVICE_ID))
    assert entry.packets == 1
    assert entry.bytes == RANGE_HEADER.size + 124 * 6
    ((_, _, _, payload),) = harness.session_observer.received
    assert payload == b"opaque"


def test_snapshot_for_api_reports_directory_stats_and_window() -> None:
    harness = make_coordinator()
    coordinator = harness.coordinator
    coordinator.device_got_info(DEVICE_A, DeviceInfo("watch", "Left wrist"))
    session = FakeSession()
    session.record_received(SensorKind.ACCELEROMETER, DEVICE_A, 30)
    harness.clock.now = 4.0
    coordinator.sensor_data_received(session, DEVICE_A, 4.0, accel_packet(5))

    snapshot = coordinator.snapshot_for_api()

    assert snapshot["device_id"] == str(MULTI_DEVICE_ID)
    assert snapshot["running"] is False
    assert snapshot["devices"][0]["id"] == str(DEVICE_A)
    assert snapshot["stats"] == [
        {
            "sensor_kind": "accelerometer",
            "device_id": str(DEVICE_A),
            "location": "waist",
            "bytes": 30,
            "packets": 1,
        }
    ]
    assert snapshot["window"]["last_decode_time"] == 4.0
    assert snapshot["window"]["size_s"] == pytest.approx(1.24)
