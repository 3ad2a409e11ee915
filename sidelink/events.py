"""Observable events emitted by the sidelink core.

Events are plain frozen records pushed into an :class:`EventSink`. The core
never formats or persists them; sinks decide what to do with them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence, Type, TypeVar

from .interfaces import LinkId

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SidelinkEvent:
    time: float


@dataclass(frozen=True)
class DiscoveryObserved(SidelinkEvent):
    remote_id: int
    relay_id: int
    service_code: int
    signal_metric: float


@dataclass(frozen=True)
class RelaySelected(SidelinkEvent):
    remote_id: int
    old_relay_id: Optional[int]
    new_relay_id: int
    service_code: int
    signal_metric: Optional[float]


@dataclass(frozen=True)
class LinkStateChanged(SidelinkEvent):
    link_id: LinkId
    old_state: str
    new_state: str


@dataclass(frozen=True)
class LinkUnavailable(SidelinkEvent):
    link_id: LinkId
    reason: str


@dataclass(frozen=True)
class RelaySignalMeasured(SidelinkEvent):
    remote_id: int
    relay_id: int
    signal_metric: float


@dataclass(frozen=True)
class DiscoveryMessageTraced(SidelinkEvent):
    sender_id: int
    receiver_id: int
    is_tx: bool
    message_type: str
    code: int


@dataclass(frozen=True)
class SignallingMessageTraced(SidelinkEvent):
    source_id: int
    destination_id: int
    is_tx: bool
    message_type: str


@dataclass(frozen=True)
class ProtocolViolation(SidelinkEvent):
    device_id: int
    message_type: str
    detail: str


@dataclass(frozen=True)
class PacketRelayed(SidelinkEvent):
    relay_id: int
    source: str
    destination: str
    source_link: str
    destination_link: str


class EventSink(Protocol):
    def emit(self, event: SidelinkEvent) -> None: ...


@dataclass
class NullEventSink:
    def emit(self, event: SidelinkEvent) -> None:
        return None


E = TypeVar("E", bound=SidelinkEvent)


@dataclass
class RecordingEventSink:
    """Keeps every event in memory, mainly for tests."""

    events: List[SidelinkEvent] = field(default_factory=list)

    def emit(self, event: SidelinkEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: Type[E]) -> List[E]:
        return [e for e in self.events if isinstance(e, event_type)]

    def clear(self) -> None:
        self.events.clear()


@dataclass
class LoggingEventSink:
    """Renders events through :mod:`logging`."""

    level: int = logging.INFO
    verbose_level: int = logging.DEBUG

    _VERBOSE = (DiscoveryMessageTraced, SignallingMessageTraced, RelaySignalMeasured, PacketRelayed)

    def emit(self, event: SidelinkEvent) -> None:
        level = self.verbose_level if isinstance(event, self._VERBOSE) else self.level
        if isinstance(event, (ProtocolViolation, LinkUnavailable)):
            level = max(level, logging.WARNING)
        if logger.isEnabledFor(level):
            logger.log(level, "t=%.3f %s", event.time, event)


@dataclass
class FanOutEventSink:
    """Forwards each event to several sinks in order."""

    sinks: Sequence[EventSink] = ()

    def emit(self, event: SidelinkEvent) -> None:
        for sink in self.sinks:
            sink.emit(event)
