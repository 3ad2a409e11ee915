"""Periodic relay and application discovery signalling."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np

from sidelink.config import DiscoveryConfig, DiscoveryModel, DiscoveryRole, validate_service_code
from sidelink.events import DiscoveryMessageTraced, EventSink, NullEventSink
from sidelink.interfaces import RadioTransport, Scheduler, TimerHandle
from sidelink.messages import DiscoveryMessage, MsgType

logger = logging.getLogger(__name__)

_RELAY_ROLES = (DiscoveryRole.REMOTE, DiscoveryRole.RELAY)


@dataclass
class DiscoverySession:
    """One (code, role) discovery activity of a device."""
    code: int
    dst_l2_id: int
    model: DiscoveryModel
    role: DiscoveryRole
    timer: Optional[TimerHandle] = None
    transmissions: int = 0

    @property
    def key(self) -> Tuple[int, DiscoveryRole]:
        return (self.code, self.role)

    @property
    def transmits(self) -> bool:
        """Whether this side sends the periodic message."""
        if self.role == DiscoveryRole.ANNOUNCING:
            return True
        if self.role == DiscoveryRole.RELAY:
            return self.model == DiscoveryModel.ANNOUNCE
        if self.role == DiscoveryRole.REMOTE:
            return self.model == DiscoveryModel.REQUEST_RESPONSE
        return False


@dataclass(frozen=True)
class RelayDiscovery:
    """A relay learned from an announcement or a response."""
    relay_id: int
    service_code: int
    rx_signal: Optional[float]


class DiscoveryEngine:
    """
    Drives the discovery sessions of one device.

    Announce model: relays broadcast announcements, remotes listen.
    Request/response model: remotes broadcast solicitations, relays offering
    the solicited code answer the requester directly. Each transmitting
    session runs its own periodic timer whose first expiry is drawn uniformly
    from ``[0, start_window)``. There is no acknowledgment; repetition is the
    only reliability mechanism.
    """

    def __init__(
        self,
        l2_id: int,
        scheduler: Scheduler,
        transport: RadioTransport,
        config: Optional[DiscoveryConfig] = None,
        event_sink: Optional[EventSink] = None,
        rng: Optional[np.random.RandomState] = None,
    ) -> None:
        self.l2_id = l2_id
        self.scheduler = scheduler
        self.transport = transport
        self.config = config or DiscoveryConfig()
        self.event_sink = event_sink or NullEventSink()
        self.rng = rng if rng is not None else np.random.RandomState()
        self.sessions: Dict[Tuple[int, DiscoveryRole], DiscoverySession] = {}
        self.discovered_apps: Dict[Tuple[int, int], float] = {}

    def start(
        self,
        code: int,
        dst_l2_id: int,
        role: DiscoveryRole,
        model: Optional[DiscoveryModel] = None,
    ) -> DiscoverySession:
        """
        Start (or restart) a discovery session.

        Args:
            code: Relay service code, or application code for open discovery.
            dst_l2_id: Destination L2 id used for the periodic transmissions.
            role: Role of this device in the session.
            model: Interaction model; defaults to the configured one. Open
                   application discovery always uses the announce model.

        Returns:
            The new session.
        """
        role = DiscoveryRole(role)
        if role in _RELAY_ROLES:
            code = validate_service_code(code)
            model = DiscoveryModel(model) if model is not None else self.config.model
        else:
            model = DiscoveryModel.ANNOUNCE

        if (code, role) in self.sessions:
            logger.info("Device %s restarting %s discovery for code %s", self.l2_id, role.value, code)
            self.stop(code, role)

        session = DiscoverySession(code=code, dst_l2_id=dst_l2_id, model=model, role=role)
        self.sessions[session.key] = session

        if session.transmits:
            offset = float(self.rng.uniform(0.0, self.config.start_window)) if self.config.start_window > 0 else 0.0
            session.timer = self.scheduler.call_later(offset, self._on_tick, session.key)
            logger.debug(
                "Device %s %s discovery for code %s starts transmitting in %.3fs",
                self.l2_id, role.value, code, offset,
            )
        return session

    def stop(self, code: int, role: DiscoveryRole) -> bool:
        session = self.sessions.pop((code, DiscoveryRole(role)), None)
        if session is None:
            return False
        if session.timer is not None:
            session.timer.cancel()
            session.timer = None
        logger.debug("Device %s stopped %s discovery for code %s", self.l2_id, session.role.value, code)
        return True

    def stop_all(self) -> None:
        for code, role in list(self.sessions):
            self.stop(code, role)

    def active_codes(self, role: DiscoveryRole) -> List[int]:
        return [code for code, r in self.sessions if r == role]

    def _on_tick(self, key: Tuple[int, DiscoveryRole]) -> None:
        session = self.sessions[key]
        if session.role == DiscoveryRole.RELAY:
            msg_type = MsgType.RELAY_ANNOUNCEMENT
        elif session.role == DiscoveryRole.REMOTE:
            msg_type = MsgType.RELAY_SOLICITATION
        else:
            msg_type = MsgType.APP_ANNOUNCEMENT

        self._send(DiscoveryMessage(msg_type=msg_type, code=session.code, sender_id=self.l2_id), session.dst_l2_id)
        session.transmissions += 1
        session.timer = self.scheduler.call_later(self.config.interval, self._on_tick, key)

    def _send(self, message: DiscoveryMessage, destination_id: int) -> None:
        self.event_sink.emit(
            DiscoveryMessageTraced(
                time=self.scheduler.now,
                sender_id=self.l2_id,
                receiver_id=destination_id,
                is_tx=True,
                message_type=message.name,
                code=message.code,
            )
        )
        self.transport.send(message.encode(), destination_id)

    def handle(
        self, message: DiscoveryMessage, source_id: int, rx_signal: Optional[float] = None
    ) -> Optional[RelayDiscovery]:
        """
        Process an inbound discovery message.

        Returns:
            The discovered relay when the message reveals one to this device,
            None otherwise.
        """
        if message.target_id not in (0, self.l2_id):
            return None

        self.event_sink.emit(
            DiscoveryMessageTraced(
                time=self.scheduler.now,
                sender_id=source_id,
                receiver_id=self.l2_id,
                is_tx=False,
                message_type=message.name,
                code=message.code,
            )
        )

        if message.msg_type == MsgType.RELAY_ANNOUNCEMENT:
            session = self.sessions.get((message.code, DiscoveryRole.REMOTE))
            if session is not None and session.model == DiscoveryModel.ANNOUNCE:
                return RelayDiscovery(relay_id=message.sender_id, service_code=message.code, rx_signal=rx_signal)

        elif message.msg_type == MsgType.RELAY_SOLICITATION:
            session = self.sessions.get((message.code, DiscoveryRole.RELAY))
            if session is not None and session.model == DiscoveryModel.REQUEST_RESPONSE:
                response = DiscoveryMessage(
                    msg_type=MsgType.RELAY_RESPONSE,
                    code=message.code,
                    sender_id=self.l2_id,
                    target_id=message.sender_id,
                )
                self._send(response, message.sender_id)

        elif message.msg_type == MsgType.RELAY_RESPONSE:
            session = self.sessions.get((message.code, DiscoveryRole.REMOTE))
            if (
                session is not None
                and session.model == DiscoveryModel.REQUEST_RESPONSE
                and message.target_id == self.l2_id
            ):
                return RelayDiscovery(relay_id=message.sender_id, service_code=message.code, rx_signal=rx_signal)

        elif message.msg_type == MsgType.APP_ANNOUNCEMENT:
            if (message.code, DiscoveryRole.MONITORING) in self.sessions:
                if (message.code, message.sender_id) not in self.discovered_apps:
                    logger.info(
                        "Device %s discovered application %s at %s",
                        self.l2_id, message.code, message.sender_id,
                    )
                self.discovered_apps[(message.code, message.sender_id)] = self.scheduler.now

        return None
