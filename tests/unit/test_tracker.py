"""Unit tests for plcwatch.core.tracker."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from plcwatch.core.tracker import ConnectionStateTracker
from plcwatch.exceptions import UnknownDeviceError
from plcwatch.models.state import ConnectionPhase

TS = datetime(2024, 11, 4, 14, 30, 25, tzinfo=timezone.utc)


@pytest.fixture
def tracker() -> ConnectionStateTracker:
    t = ConnectionStateTracker()
    t.init_for(1)
    t.init_for(2)
    return t


class TestPhase:
    def test_init_for_starts_disconnected(self, tracker):
        state = tracker.get(1)
        assert state.phase == ConnectionPhase.DISCONNECTED
        assert state.last_telemetry is None

    def test_set_phase(self, tracker):
        tracker.set_phase(1, ConnectionPhase.CONNECTING)
        assert tracker.get(1).phase == ConnectionPhase.CONNECTING
        assert tracker.get(1).last_received is None

    def test_set_phase_with_stamp(self, tracker):
        tracker.set_phase(1, ConnectionPhase.CONNECTED, stamp=TS)
        assert tracker.get(1).last_received == TS

    def test_set_phase_unknown_raises(self, tracker):
        with pytest.raises(UnknownDeviceError):
            tracker.set_phase(99, ConnectionPhase.CONNECTED)
        assert 99 not in tracker


class TestTelemetry:
    def test_record_overwrites(self, tracker):
        assert tracker.record_telemetry(1, {"temp": 80.0}, TS) is True
        later = TS + timedelta(seconds=1)
        assert tracker.record_telemetry(1, {"temp": 85.5}, later) is True

        state = tracker.get(1)
        assert state.last_telemetry.payload == {"temp": 85.5}
        assert state.last_telemetry.received_at == later
        assert state.last_received == later

    def test_telemetry_does_not_change_phase(self, tracker):
        tracker.record_telemetry(1, {"temp": 85.5}, TS)
        assert tracker.get(1).phase == ConnectionPhase.DISCONNECTED

    def test_unknown_device_is_dropped(self, tracker):
        before = tracker.snapshot()
        assert tracker.record_telemetry(99, {"temp": 1}, TS) is False
        assert 99 not in tracker
        assert tracker.snapshot() == before

    def test_clear_telemetry(self, tracker):
        tracker.record_telemetry(1, {"temp": 85.5}, TS)
        tracker.clear_telemetry(1)
        assert tracker.get(1).last_telemetry is None
        # last heard time is kept for display
        assert tracker.get(1).last_received == TS


class TestErrors:
    def test_record_error_keeps_phase(self, tracker):
        tracker.set_phase(1, ConnectionPhase.CONNECTED)
        assert tracker.record_error(1, "checksum", b"\x00\x01", TS) is True
        state = tracker.get(1)
        assert state.phase == ConnectionPhase.CONNECTED
        assert state.last_error.message == "checksum"
        assert state.last_error.raw == b"\x00\x01"

    def test_unknown_device_error_dropped(self, tracker):
        assert tracker.record_error(99, "boom", b"", TS) is False
        assert tracker.ids() == [1, 2]


class TestLifecycle:
    def test_remove(self, tracker):
        tracker.remove(1)
        assert tracker.ids() == [2]
        with pytest.raises(UnknownDeviceError):
            tracker.get(1)

    def test_remove_unknown_raises(self, tracker):
        with pytest.raises(UnknownDeviceError):
            tracker.remove(99)

    def test_snapshot_is_isolated(self, tracker):
        snap = tracker.snapshot()
        tracker.set_phase(1, ConnectionPhase.CONNECTED)
        tracker.remove(2)
        assert snap[1].phase == ConnectionPhase.DISCONNECTED
        assert 2 in snap
