from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, NamedTuple, Optional

from .events import (
    DiscoveryObserved,
    LinkStateChanged,
    LinkUnavailable,
    PacketRelayed,
    ProtocolViolation,
    RelaySelected,
    SidelinkEvent,
)
from .interfaces import LinkId


class DiscoveryKey(NamedTuple):
    remote_id: int
    relay_id: int
    service_code: int


class RelayPacketKey(NamedTuple):
    relay_id: int
    source: str
    destination: str
    source_link: str
    destination_link: str


@dataclass
class StatisticsCollector:
    """Aggregate counters fed through the event sink interface.

    Owned by the scenario or test harness; devices never read it.
    """

    discoveries: Counter = field(default_factory=Counter)
    selections: Counter = field(default_factory=Counter)
    transitions: Counter = field(default_factory=Counter)
    relayed_packets: Counter = field(default_factory=Counter)
    links_established: int = 0
    links_released: int = 0
    links_failed: int = 0
    protocol_violations: int = 0
    connected_since: Dict[LinkId, float] = field(default_factory=dict)
    connected_time: Dict[LinkId, float] = field(default_factory=dict)

    def emit(self, event: SidelinkEvent) -> None:
        if isinstance(event, DiscoveryObserved):
            self.discoveries[DiscoveryKey(event.remote_id, event.relay_id, event.service_code)] += 1
        elif isinstance(event, RelaySelected):
            self.selections[event.remote_id] += 1
        elif isinstance(event, LinkStateChanged):
            self._on_transition(event)
        elif isinstance(event, LinkUnavailable):
            self.links_failed += 1
        elif isinstance(event, ProtocolViolation):
            self.protocol_violations += 1
        elif isinstance(event, PacketRelayed):
            key = RelayPacketKey(
                event.relay_id, event.source, event.destination, event.source_link, event.destination_link
            )
            self.relayed_packets[key] += 1

    def _on_transition(self, event: LinkStateChanged) -> None:
        self.transitions[(event.old_state, event.new_state)] += 1
        if event.new_state == "connected":
            self.links_established += 1
            self.connected_since[event.link_id] = event.time
        elif event.old_state == "connected":
            started = self.connected_since.pop(event.link_id, None)
            if started is not None:
                self.connected_time[event.link_id] = (
                    self.connected_time.get(event.link_id, 0.0) + event.time - started
                )
        if event.new_state == "idle" and event.old_state == "releasing":
            self.links_released += 1

    def relayed_count(self, relay_id: Optional[int] = None) -> int:
        return sum(n for key, n in self.relayed_packets.items() if relay_id is None or key.relay_id == relay_id)

    def summary(self) -> Dict[str, Any]:
        return {
            "discoveries": sum(self.discoveries.values()),
            "distinct_discoveries": len(self.discoveries),
            "selections": sum(self.selections.values()),
            "links_established": self.links_established,
            "links_released": self.links_released,
            "links_failed": self.links_failed,
            "protocol_violations": self.protocol_violations,
            "relayed_packets": self.relayed_count(),
        }
