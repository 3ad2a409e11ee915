"""Per-device ProSe context: discovery, relay selection and direct links."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Union

import numpy as np

from .config import (
    DiscoveryModel,
    DiscoveryRole,
    RelayServiceConfig,
    SidelinkConfig,
    validate_service_code,
)
from .discovery import (
    DiscoveryEngine,
    EligibilityFilter,
    RelayDiscovery,
    RelayRegistry,
    RelaySelector,
)
from .errors import LinkError, MessageDecodeError
from .events import (
    DiscoveryObserved,
    EventSink,
    NullEventSink,
    ProtocolViolation,
    RelaySelected,
    RelaySignalMeasured,
    SignallingMessageTraced,
)
from .interfaces import DataPath, LinkId, NullDataPath, NullTransport, RadioTransport, Scheduler, TimerHandle
from .link import DirectLink, LinkRole, LinkState
from .messages import DiscoveryMessage, MsgType, SignallingMessage, decode_message

logger = logging.getLogger(__name__)


class SidelinkDevice:
    """
    Sidelink context of one device, acting as a remote, a relay, or both.

    The device exclusively owns its relay registry, its selector, its
    discovery sessions and its direct link instances. Peers are referenced by
    L2 id only; everything exchanged with them goes through the transport.

    Relay switching never overlaps two links for one service code: when the
    selector prefers another relay, the current link is released first and
    the new relay is contacted once the release has completed.
    """

    def __init__(
        self,
        l2_id: int,
        scheduler: Scheduler,
        transport: Optional[RadioTransport] = None,
        config: Optional[SidelinkConfig] = None,
        event_sink: Optional[EventSink] = None,
        data_path: Optional[DataPath] = None,
        selector: Optional[RelaySelector] = None,
        rng: Optional[np.random.RandomState] = None,
    ) -> None:
        """
        Initialize the device.

        Args:
            l2_id: Link-layer identifier of this device.
            scheduler: Discrete-event clock shared with the host.
            transport: Radio channel bound to this device.
            config: Device configuration. Uses defaults if None.
            event_sink: Receiver of observable events.
            data_path: Forwarding plane toggled by relay link state.
            selector: Relay selection algorithm. Built from the config if None.
            rng: Random stream for discovery start offsets.
        """
        if l2_id <= 0:
            raise ValueError("L2 id must be positive")

        self.l2_id = l2_id
        self.scheduler = scheduler
        self.transport = transport or NullTransport()
        self.config = config or SidelinkConfig()
        self.event_sink = event_sink or NullEventSink()
        self.data_path = data_path or NullDataPath()

        self.registry = RelayRegistry(eligibility=EligibilityFilter(self.config.eligibility))
        self.selector = selector or RelaySelector(self.config.selection.policy, self.config.selection.seed)
        self.discovery = DiscoveryEngine(
            l2_id,
            scheduler,
            self.transport,
            config=self.config.discovery,
            event_sink=self.event_sink,
            rng=rng if rng is not None else np.random.RandomState(self.config.selection.seed),
        )

        self.links: Dict[LinkId, DirectLink] = {}
        self.relay_services: Dict[int, RelayServiceConfig] = {}
        self._pending_relay: Dict[int, int] = {}
        self._released_sequences: Dict[LinkId, int] = {}
        self._last_measurement: Dict[int, float] = {}
        self._sequence = 0
        self._reselection_timer: Optional[TimerHandle] = None

    def __repr__(self) -> str:
        return f"SidelinkDevice(l2_id={self.l2_id}, links={len(self.links)})"

    # -- configuration --------------------------------------------------

    def configure_relay_service(self, service: Union[int, RelayServiceConfig]) -> RelayServiceConfig:
        """Offer a relay service on this device."""
        if not isinstance(service, RelayServiceConfig):
            service = RelayServiceConfig(service_code=service)
        self.relay_services[service.service_code] = service
        logger.info("Device %s offers relay service %s", self.l2_id, service.service_code)
        return service

    def set_relay_selector(self, selector: RelaySelector) -> None:
        self.selector = selector

    # -- discovery ------------------------------------------------------

    def start_relay_discovery(
        self,
        relay_code: int,
        dst_l2_id: int,
        role: DiscoveryRole,
        model: Optional[DiscoveryModel] = None,
    ) -> None:
        """
        Start relay discovery for ``relay_code``.

        Args:
            relay_code: Relay service code.
            dst_l2_id: Group destination L2 id of the discovery messages.
            role: ``REMOTE`` to look for relays, ``RELAY`` to be found.
            model: Interaction model; the configured one if None.
        """
        role = DiscoveryRole(role)
        if role not in (DiscoveryRole.REMOTE, DiscoveryRole.RELAY):
            raise ValueError(f"relay discovery role must be remote or relay, got {role.value}")
        if role == DiscoveryRole.RELAY and relay_code not in self.relay_services:
            self.configure_relay_service(relay_code)

        self.discovery.start(relay_code, dst_l2_id, role, model)
        if role == DiscoveryRole.REMOTE:
            self._ensure_reselection_tick()

    def stop_relay_discovery(self, relay_code: int, role: DiscoveryRole) -> bool:
        stopped = self.discovery.stop(relay_code, role)
        if not self.discovery.active_codes(DiscoveryRole.REMOTE) and self._reselection_timer is not None:
            self._reselection_timer.cancel()
            self._reselection_timer = None
        return stopped

    def start_discovery_app(self, app_code: int, dst_l2_id: int, role: DiscoveryRole) -> None:
        """Start open (non-relay) discovery as announcer or monitor of ``app_code``."""
        role = DiscoveryRole(role)
        if role not in (DiscoveryRole.ANNOUNCING, DiscoveryRole.MONITORING):
            raise ValueError(f"application discovery role must be announcing or monitoring, got {role.value}")
        self.discovery.start(app_code, dst_l2_id, role)

    def stop_discovery_app(self, app_code: int, role: DiscoveryRole) -> bool:
        return self.discovery.stop(app_code, role)

    @property
    def discovered_apps(self) -> Dict[Any, float]:
        return dict(self.discovery.discovered_apps)

    # -- direct links ---------------------------------------------------

    def establish_direct_link(self, peer_id: int, service_code: int = 0) -> DirectLink:
        """
        Start a direct link towards ``peer_id`` as initiator.

        Args:
            peer_id: L2 id of the target device.
            service_code: Relay service code, or 0 for a plain unicast link.

        Returns:
            The local link instance (already requesting, or the existing one).

        Raises:
            LinkError: If another relay link for ``service_code`` is in use.
        """
        if service_code != 0:
            service_code = validate_service_code(service_code)
            current = self.relay_link(service_code)
            if current is not None and current.peer_id != peer_id:
                raise LinkError(
                    f"relay service {service_code} is in use with relay {current.peer_id}; release it first"
                )

        link = self.links.get(LinkId(self.l2_id, peer_id, service_code))
        if link is not None:
            if link.state == LinkState.RELEASING:
                raise LinkError(f"direct link {link.link_id} is still releasing")
            if link.role == LinkRole.INITIATOR:
                return link
            raise LinkError(f"direct link {link.link_id} was initiated by the peer")
        return self._connect(peer_id, service_code)

    def release_direct_link(self, peer_id: int, service_code: int = 0, reason: str = "local release") -> bool:
        link = self.links.get(LinkId(self.l2_id, peer_id, service_code))
        if link is None:
            raise LinkError(f"no direct link with {peer_id} for service code {service_code}")
        self._pending_relay.pop(service_code, None)
        return link.release(reason)

    def notify_link_failure(self, peer_id: int, service_code: int = 0) -> bool:
        """Report a lower-layer failure of the link with ``peer_id``."""
        link = self.links.get(LinkId(self.l2_id, peer_id, service_code))
        if link is None:
            return False
        return link.release("link failure")

    def get_link(self, peer_id: int, service_code: int = 0) -> Optional[DirectLink]:
        return self.links.get(LinkId(self.l2_id, peer_id, service_code))

    def relay_link(self, service_code: int) -> Optional[DirectLink]:
        """The requesting or connected relay link this device initiated for ``service_code``."""
        for link in self.links.values():
            if link.role == LinkRole.INITIATOR and link.service_code == service_code and link.is_active:
                return link
        return None

    def current_relay(self, service_code: int) -> Optional[int]:
        link = self.relay_link(service_code)
        return link.peer_id if link is not None else None

    def connected_links(self, service_code: Optional[int] = None) -> List[DirectLink]:
        return [
            link for link in self.links.values()
            if link.state == LinkState.CONNECTED and (service_code is None or link.service_code == service_code)
        ]

    def _connect(self, peer_id: int, service_code: int) -> DirectLink:
        link = self._create_link(peer_id, service_code, LinkRole.INITIATOR, self._next_sequence())
        link.connect()
        return link

    def _create_link(self, peer_id: int, service_code: int, role: LinkRole, sequence: int) -> DirectLink:
        link = DirectLink(
            LinkId(self.l2_id, peer_id, service_code),
            role,
            sequence,
            self.scheduler,
            self._send_signalling,
            config=self.config.direct_link,
            event_sink=self.event_sink,
            observer=self,
        )
        self.links[link.link_id] = link
        return link

    def _next_sequence(self) -> int:
        self._sequence = self._sequence % 0xFFFF + 1
        return self._sequence

    # -- link observer --------------------------------------------------

    def link_state_changed(self, link: DirectLink, old_state: LinkState, new_state: LinkState) -> None:
        if link.is_relay_link:
            if new_state == LinkState.CONNECTED:
                self.data_path.activate_data_path(link.link_id)
            elif old_state == LinkState.CONNECTED:
                self.data_path.deactivate_data_path(link.link_id)

        if new_state != LinkState.IDLE:
            return
        if self.links.get(link.link_id) is link:
            del self.links[link.link_id]
        if link.role == LinkRole.TARGET:
            self._released_sequences[link.link_id] = link.sequence

        if link.role == LinkRole.INITIATOR and link.service_code in self._pending_relay:
            announced = self._pending_relay.pop(link.service_code)
            if self.relay_link(link.service_code) is None:
                logger.info(
                    "Device %s released relay %s, reselecting for service %s",
                    self.l2_id, link.peer_id, link.service_code,
                )
                # the registry may have changed while the release was pending
                self._reselect_code(link.service_code, announced=announced)

    def link_unavailable(self, link: DirectLink, reason: str) -> None:
        logger.warning("Device %s: link %s unavailable: %s", self.l2_id, link.link_id, reason)

    # -- relay selection ------------------------------------------------

    def reselect(self, service_code: Optional[int] = None) -> None:
        """Run relay selection for one service code, or for every remote service."""
        codes = [service_code] if service_code is not None else self._remote_service_codes()
        for code in codes:
            self._reselect_code(code)

    def _remote_service_codes(self) -> List[int]:
        codes = set(self.discovery.active_codes(DiscoveryRole.REMOTE))
        codes.update(c.service_code for c in self.registry)
        return sorted(codes)

    def _reselect_code(self, service_code: int, announced: Optional[int] = None) -> None:
        chosen = self.selector.select(self.registry.candidates(service_code))
        if chosen is None:
            return

        current = self.relay_link(service_code)
        if current is not None:
            if current.peer_id == chosen.l2_id:
                return
            self._announce_selection(current.peer_id, chosen.l2_id, service_code, chosen.signal_metric)
            self._pending_relay[service_code] = chosen.l2_id
            current.release("relay reselection")
            return

        releasing = self._releasing_relay_link(service_code)
        if releasing is not None:
            if self._pending_relay.get(service_code) != chosen.l2_id:
                self._announce_selection(releasing.peer_id, chosen.l2_id, service_code, chosen.signal_metric)
                self._pending_relay[service_code] = chosen.l2_id
            return

        if chosen.l2_id != announced:
            self._announce_selection(None, chosen.l2_id, service_code, chosen.signal_metric)
        self._connect(chosen.l2_id, service_code)

    def _releasing_relay_link(self, service_code: int) -> Optional[DirectLink]:
        for link in self.links.values():
            if (
                link.role == LinkRole.INITIATOR
                and link.service_code == service_code
                and link.state == LinkState.RELEASING
            ):
                return link
        return None

    def _announce_selection(
        self, old_relay: Optional[int], new_relay: int, service_code: int, metric: Optional[float]
    ) -> None:
        logger.info(
            "Device %s selected relay %s (was %s) for service %s",
            self.l2_id, new_relay, old_relay, service_code,
        )
        self.event_sink.emit(
            RelaySelected(
                time=self.scheduler.now,
                remote_id=self.l2_id,
                old_relay_id=old_relay,
                new_relay_id=new_relay,
                service_code=service_code,
                signal_metric=metric,
            )
        )

    def _ensure_reselection_tick(self) -> None:
        interval = self.config.selection.reselection_interval
        if interval is None or self._reselection_timer is not None:
            return
        self._reselection_timer = self.scheduler.call_later(interval, self._on_reselection_tick)

    def _on_reselection_tick(self) -> None:
        self._reselection_timer = None
        max_age = self.config.selection.candidate_max_age
        if max_age is not None:
            self.registry.purge_stale(self.scheduler.now, max_age)
        self.reselect()
        self._ensure_reselection_tick()

    # -- inbound --------------------------------------------------------

    def on_receive(self, data: bytes, source_id: int, rx_signal: Optional[float] = None) -> None:
        """
        Handle bytes delivered by the radio.

        Args:
            data: Encoded message.
            source_id: L2 id of the transmitting device.
            rx_signal: Raw signal sample measured on this reception, if known.
        """
        try:
            message = decode_message(data)
        except MessageDecodeError as e:
            logger.warning("Device %s dropping undecodable message from %s: %s", self.l2_id, source_id, e)
            self.event_sink.emit(
                ProtocolViolation(
                    time=self.scheduler.now,
                    device_id=self.l2_id,
                    message_type="undecodable",
                    detail=str(e),
                )
            )
            return

        if isinstance(message, DiscoveryMessage):
            if message.sender_id == self.l2_id:
                return
            found = self.discovery.handle(message, source_id, rx_signal)
            if found is not None:
                self._on_relay_discovered(found)
        else:
            self._on_signalling(message)

    def on_signal_measurement(self, peer_id: int, sample: float) -> None:
        """Feed a raw signal sample towards ``peer_id`` from the measurement collaborator."""
        self._last_measurement[peer_id] = sample
        flipped = set()
        for observation in self.registry.measure(peer_id, sample, self.scheduler.now):
            self.event_sink.emit(
                RelaySignalMeasured(
                    time=self.scheduler.now,
                    remote_id=self.l2_id,
                    relay_id=peer_id,
                    signal_metric=observation.candidate.signal_metric,
                )
            )
            if observation.eligibility_changed:
                flipped.add(observation.candidate.service_code)
        for code in sorted(flipped):
            self._reselect_code(code)

    def _on_relay_discovered(self, found: RelayDiscovery) -> None:
        signal = found.rx_signal if found.rx_signal is not None else self._last_measurement.get(found.relay_id)
        if signal is None:
            logger.debug("Device %s has no signal sample for relay %s yet", self.l2_id, found.relay_id)
            return

        observation = self.registry.observe(found.relay_id, found.service_code, signal, self.scheduler.now)
        self.event_sink.emit(
            DiscoveryObserved(
                time=self.scheduler.now,
                remote_id=self.l2_id,
                relay_id=found.relay_id,
                service_code=found.service_code,
                signal_metric=observation.candidate.signal_metric,
            )
        )
        if observation.is_material or self._is_unserved(found.service_code):
            self._reselect_code(found.service_code)

    def _is_unserved(self, service_code: int) -> bool:
        """No relay link for ``service_code`` is active or being released."""
        return self.relay_link(service_code) is None and self._releasing_relay_link(service_code) is None

    def _on_signalling(self, message: SignallingMessage) -> None:
        if message.receiver_id != self.l2_id:
            return
        self.event_sink.emit(
            SignallingMessageTraced(
                time=self.scheduler.now,
                source_id=message.sender_id,
                destination_id=self.l2_id,
                is_tx=False,
                message_type=message.name,
            )
        )

        link_id = LinkId(self.l2_id, message.sender_id, message.service_code)
        link = self.links.get(link_id)

        if message.msg_type == MsgType.ESTABLISHMENT_REQUEST:
            self._on_establishment_request(message, link)
            return

        if message.msg_type == MsgType.RELEASE_REQUEST:
            if link is None or link.sequence != message.sequence:
                # already gone here; let the peer finish its own cleanup
                self._send_signalling(message.reply(MsgType.RELEASE_ACCEPT))
                return
            link.handle(message)
            return

        if link is None or link.sequence != message.sequence:
            detail = "no matching direct link"
            logger.debug("Device %s ignoring %s from %s: %s", self.l2_id, message.name, message.sender_id, detail)
            self.event_sink.emit(
                ProtocolViolation(
                    time=self.scheduler.now,
                    device_id=self.l2_id,
                    message_type=message.name,
                    detail=detail,
                )
            )
            return
        link.handle(message)

    def _on_establishment_request(self, message: SignallingMessage, link: Optional[DirectLink]) -> None:
        if message.service_code != 0 and message.service_code not in self.relay_services:
            logger.info(
                "Device %s rejecting relay request from %s: service %s not offered",
                self.l2_id, message.sender_id, message.service_code,
            )
            self._send_signalling(message.reply(MsgType.ESTABLISHMENT_REJECT))
            return

        if link is not None and link.role == LinkRole.INITIATOR:
            link.handle(message)
            return
        link_id = LinkId(self.l2_id, message.sender_id, message.service_code)
        if link is None and self._released_sequences.get(link_id) == message.sequence:
            # retransmission overtaken by the release of the same link
            logger.debug(
                "Device %s ignoring late establishment request %s from %s",
                self.l2_id, message.sequence, message.sender_id,
            )
            return
        if link is not None and link.sequence != message.sequence:
            link.abort("superseded by a new establishment request")
            link = None
        if link is None:
            link = self._create_link(message.sender_id, message.service_code, LinkRole.TARGET, message.sequence)
        link.handle(message)

    def _send_signalling(self, message: SignallingMessage) -> None:
        self.event_sink.emit(
            SignallingMessageTraced(
                time=self.scheduler.now,
                source_id=self.l2_id,
                destination_id=message.receiver_id,
                is_tx=True,
                message_type=message.name,
            )
        )
        self.transport.send(message.encode(), message.receiver_id)

    # -- lifecycle ------------------------------------------------------

    def shutdown(self) -> None:
        """Stop discovery and release every link."""
        self.discovery.stop_all()
        if self._reselection_timer is not None:
            self._reselection_timer.cancel()
            self._reselection_timer = None
        self._pending_relay.clear()
        for link in list(self.links.values()):
            link.release("shutdown")

    def get_stats(self) -> Dict[str, Any]:
        """Snapshot of the device state."""
        return {
            "l2_id": self.l2_id,
            "candidates": len(self.registry),
            "eligible_candidates": sum(1 for c in self.registry if c.eligible),
            "links": {str(link_id): link.state.value for link_id, link in self.links.items()},
            "relay_services": sorted(self.relay_services),
            "discovery_sessions": [
                {"code": s.code, "role": s.role.value, "model": s.model.value, "transmissions": s.transmissions}
                for s in self.discovery.sessions.values()
            ],
        }
