"""Unit tests for event sinks and the statistics collector."""

import logging

import pytest

from sidelink.events import (
    DiscoveryObserved,
    FanOutEventSink,
    LinkStateChanged,
    LinkUnavailable,
    LoggingEventSink,
    PacketRelayed,
    ProtocolViolation,
    RecordingEventSink,
    RelaySelected,
    SignallingMessageTraced,
)
from sidelink.interfaces import LinkId
from sidelink.stats import DiscoveryKey, RelayPacketKey, StatisticsCollector

LINK = LinkId(3, 1, 100)


def transition(time, old, new, link_id=LINK):
    return LinkStateChanged(time=time, link_id=link_id, old_state=old, new_state=new)


class TestStatisticsCollector:
    """Test counters derived from events."""

    def test_discoveries_counted_per_key(self):
        """Test discoveries counted per remote, relay and code."""
        stats = StatisticsCollector()
        for _ in range(3):
            stats.emit(DiscoveryObserved(time=0.0, remote_id=3, relay_id=1, service_code=100, signal_metric=6.0))
        stats.emit(DiscoveryObserved(time=0.0, remote_id=3, relay_id=2, service_code=100, signal_metric=8.0))
        assert stats.discoveries[DiscoveryKey(3, 1, 100)] == 3
        assert stats.summary()["distinct_discoveries"] == 2

    def test_link_lifecycle(self):
        """Test counters over a link lifecycle."""
        stats = StatisticsCollector()
        stats.emit(transition(1.0, "idle", "requesting"))
        stats.emit(transition(1.5, "requesting", "connected"))
        stats.emit(transition(4.0, "connected", "releasing"))
        stats.emit(transition(4.2, "releasing", "idle"))
        assert stats.links_established == 1
        assert stats.links_released == 1
        assert stats.connected_time[LINK] == pytest.approx(2.5)
        assert stats.connected_since == {}
        assert stats.transitions[("requesting", "connected")] == 1

    def test_peer_release_is_not_counted_as_local_release(self):
        """Test peer release is not a local release."""
        stats = StatisticsCollector()
        stats.emit(transition(0.0, "requesting", "connected"))
        stats.emit(transition(1.0, "connected", "idle"))
        assert stats.links_released == 0
        assert stats.connected_time[LINK] == pytest.approx(1.0)

    def test_failures_and_violations(self):
        """Test failure and violation counters."""
        stats = StatisticsCollector()
        stats.emit(LinkUnavailable(time=4.0, link_id=LINK, reason="timeout"))
        stats.emit(ProtocolViolation(time=4.0, device_id=3, message_type="x", detail="y"))
        summary = stats.summary()
        assert summary["links_failed"] == 1
        assert summary["protocol_violations"] == 1

    def test_relayed_packets(self):
        """Test relayed packet counters."""
        stats = StatisticsCollector()
        for relay_id in (1, 1, 2):
            stats.emit(
                PacketRelayed(
                    time=0.0, relay_id=relay_id, source="3", destination="internet",
                    source_link="SL", destination_link="UL",
                )
            )
        assert stats.relayed_count() == 3
        assert stats.relayed_count(relay_id=1) == 2
        assert stats.relayed_packets[RelayPacketKey(2, "3", "internet", "SL", "UL")] == 1

    def test_selections(self):
        """Test selection counter."""
        stats = StatisticsCollector()
        stats.emit(RelaySelected(time=0.0, remote_id=3, old_relay_id=None, new_relay_id=1,
                                 service_code=100, signal_metric=6.0))
        assert stats.selections[3] == 1
        assert stats.summary()["selections"] == 1

    def test_trace_events_ignored(self):
        """Test trace events leave counters alone."""
        stats = StatisticsCollector()
        stats.emit(SignallingMessageTraced(time=0.0, source_id=1, destination_id=3, is_tx=True, message_type="x"))
        assert stats.summary() == StatisticsCollector().summary()


class TestSinks:
    """Test the generic event sinks."""

    def test_recording_sink(self):
        """Test the recording sink."""
        sink = RecordingEventSink()
        sink.emit(transition(0.0, "idle", "requesting"))
        sink.emit(LinkUnavailable(time=1.0, link_id=LINK, reason="timeout"))
        assert len(sink.of_type(LinkUnavailable)) == 1
        sink.clear()
        assert sink.events == []

    def test_fan_out(self):
        """Test fan-out to several sinks."""
        first, second = RecordingEventSink(), RecordingEventSink()
        event = transition(0.0, "idle", "requesting")
        FanOutEventSink(sinks=(first, second)).emit(event)
        assert first.events == [event]
        assert second.events == [event]

    def test_logging_sink_levels(self, caplog):
        """Test log levels per event type."""
        caplog.set_level(logging.DEBUG, logger="sidelink.events")
        sink = LoggingEventSink()
        sink.emit(transition(0.0, "idle", "requesting"))
        sink.emit(SignallingMessageTraced(time=0.0, source_id=1, destination_id=3, is_tx=True, message_type="x"))
        sink.emit(ProtocolViolation(time=0.0, device_id=3, message_type="x", detail="y"))
        assert [r.levelno for r in caplog.records] == [logging.INFO, logging.DEBUG, logging.WARNING]

    def test_logging_sink_respects_level(self, caplog):
        """Test debug events are filtered by level."""
        caplog.set_level(logging.INFO, logger="sidelink.events")
        LoggingEventSink().emit(
            SignallingMessageTraced(time=0.0, source_id=1, destination_id=3, is_tx=True, message_type="x")
        )
        assert caplog.records == []
