"""Test configuration for the sidelink package."""

from typing import List, Tuple

import pytest

from sidelink.config import (
    DirectLinkConfig,
    DiscoveryConfig,
    DiscoveryModel,
    EligibilityConfig,
    SidelinkConfig,
)
from sidelink.events import RecordingEventSink
from sidelink.messages import Message, decode_message
from sidelink.sim import MockRadioMedium, SimpyScheduler


class RecordingTransport:
    """Radio transport that keeps every outbound datagram."""

    def __init__(self, scheduler):
        self.scheduler = scheduler
        self.sent: List[Tuple[float, bytes, int]] = []

    def send(self, data: bytes, destination_id: int) -> None:
        self.sent.append((self.scheduler.now, data, destination_id))

    def messages(self) -> List[Message]:
        return [decode_message(data) for _, data, _ in self.sent]

    def clear(self) -> None:
        self.sent.clear()


@pytest.fixture
def scheduler():
    """Provide a fresh simpy-backed scheduler."""
    return SimpyScheduler()


@pytest.fixture
def recorder():
    """Provide an in-memory event sink."""
    return RecordingEventSink()


@pytest.fixture
def transport(scheduler):
    """Provide a transport that records outbound messages."""
    return RecordingTransport(scheduler)


@pytest.fixture
def medium(scheduler):
    """Provide a loss-free radio medium."""
    return MockRadioMedium(scheduler)


@pytest.fixture
def announce_config():
    """Announce-model configuration with unsmoothed metrics around a 0 threshold."""
    return SidelinkConfig(
        eligibility=EligibilityConfig(threshold=0.0, hysteresis=1.0, filter_coefficient=0.0),
        discovery=DiscoveryConfig(interval=1.0, model=DiscoveryModel.ANNOUNCE, start_window=0.5),
        direct_link=DirectLinkConfig(t_establish=1.0, establish_retries=3, t_release=1.0, release_retries=3),
    )
