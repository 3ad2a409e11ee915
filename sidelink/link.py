"""Direct link establishment and release handshake.

Each peer of a direct link runs its own :class:`DirectLink` instance. The two
instances only share what the exchanged PC5 signalling messages carry.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Optional, Protocol

from .config import DirectLinkConfig
from .errors import LinkError
from .events import EventSink, LinkStateChanged, LinkUnavailable, NullEventSink, ProtocolViolation
from .interfaces import LinkId, Scheduler, TimerHandle
from .messages import MsgType, SignallingMessage

logger = logging.getLogger(__name__)


class LinkState(Enum):
    """States of one local direct link instance."""
    IDLE = "idle"
    REQUESTING = "requesting"
    CONNECTED = "connected"
    RELEASING = "releasing"


class LinkRole(Enum):
    INITIATOR = "initiator"
    TARGET = "target"


class LinkObserver(Protocol):
    def link_state_changed(self, link: DirectLink, old_state: LinkState, new_state: LinkState) -> None: ...

    def link_unavailable(self, link: DirectLink, reason: str) -> None: ...


SendSignalling = Callable[[SignallingMessage], None]


class DirectLink:
    """
    Local view of a direct link: ``Idle -> Requesting -> Connected -> Releasing -> Idle``.

    The initiator retransmits the establishment request every ``t_establish``
    up to ``establish_retries`` times, then gives up and returns to ``Idle``.
    A release is retransmitted every ``t_release`` and local cleanup is
    forced after ``release_retries`` periods, so a release never hangs.
    Every transition cancels the timer armed by the state being left.
    """

    def __init__(
        self,
        link_id: LinkId,
        role: LinkRole,
        sequence: int,
        scheduler: Scheduler,
        send: SendSignalling,
        config: Optional[DirectLinkConfig] = None,
        event_sink: Optional[EventSink] = None,
        observer: Optional[LinkObserver] = None,
    ) -> None:
        self.link_id = link_id
        self.role = LinkRole(role)
        self.sequence = sequence
        self.scheduler = scheduler
        self.config = config or DirectLinkConfig()
        self.event_sink = event_sink or NullEventSink()
        self.observer = observer
        self._send = send

        self.state = LinkState.IDLE
        self.created_at = scheduler.now
        self.establishment_time: Optional[float] = None
        self.establish_retransmissions = 0
        self.release_transmissions = 0
        self.release_reason: Optional[str] = None
        self._timer: Optional[TimerHandle] = None

    def __repr__(self) -> str:
        return f"DirectLink({self.link_id}, {self.role.value}, {self.state.value})"

    @property
    def peer_id(self) -> int:
        return self.link_id.peer_id

    @property
    def service_code(self) -> int:
        return self.link_id.service_code

    @property
    def is_relay_link(self) -> bool:
        return self.link_id.service_code != 0

    @property
    def is_active(self) -> bool:
        """Requesting or connected: the link occupies its service slot."""
        return self.state in (LinkState.REQUESTING, LinkState.CONNECTED)

    @property
    def has_pending_timer(self) -> bool:
        return self._timer is not None

    # -- local triggers -------------------------------------------------

    def connect(self) -> None:
        """Start the establishment procedure (initiator only)."""
        if self.role != LinkRole.INITIATOR:
            raise LinkError(f"{self.link_id}: only the initiator starts establishment")
        if self.state != LinkState.IDLE:
            raise LinkError(f"{self.link_id}: cannot connect from state {self.state.value}")

        self._transition(LinkState.REQUESTING)
        self._signal(MsgType.ESTABLISHMENT_REQUEST)
        self._arm(self.config.t_establish, self._on_establish_timeout)

    def release(self, reason: str = "local release") -> bool:
        """
        Start the release procedure.

        Returns:
            True if a release was started, False if the link was already idle
            or releasing.
        """
        if self.state in (LinkState.IDLE, LinkState.RELEASING):
            return False

        logger.info("Link %s releasing (%s)", self.link_id, reason)
        self.release_reason = reason
        self._transition(LinkState.RELEASING)
        self.release_transmissions = 0
        self._send_release()
        return True

    def abort(self, reason: str) -> None:
        """Drop the link locally without any signalling."""
        if self.state == LinkState.IDLE:
            return
        logger.info("Link %s aborted (%s)", self.link_id, reason)
        self.release_reason = reason
        self._transition(LinkState.IDLE)

    # -- inbound signalling ---------------------------------------------

    def handle(self, message: SignallingMessage) -> None:
        """Process a signalling message addressed to this link instance."""
        if message.msg_type == MsgType.ESTABLISHMENT_REQUEST:
            self._on_establishment_request(message)
        elif message.msg_type == MsgType.ESTABLISHMENT_ACCEPT:
            self._on_establishment_accept(message)
        elif message.msg_type == MsgType.ESTABLISHMENT_REJECT:
            self._on_establishment_reject(message)
        elif message.msg_type == MsgType.RELEASE_REQUEST:
            self._on_release_request(message)
        elif message.msg_type == MsgType.RELEASE_ACCEPT:
            self._on_release_accept(message)
        else:
            self._violation(message, "not a direct link message")

    def _on_establishment_request(self, message: SignallingMessage) -> None:
        if self.role != LinkRole.TARGET:
            self._violation(message, "establishment request received by the initiator")
            return
        if self.state == LinkState.IDLE:
            self._transition(LinkState.REQUESTING)
            self._signal(MsgType.ESTABLISHMENT_ACCEPT)
            self._transition(LinkState.CONNECTED)
        elif self.state == LinkState.CONNECTED:
            # our accept was lost; answer the retransmission again
            self._signal(MsgType.ESTABLISHMENT_ACCEPT)
        else:
            self._violation(message, f"establishment request in state {self.state.value}")

    def _on_establishment_accept(self, message: SignallingMessage) -> None:
        if self.role == LinkRole.INITIATOR and self.state == LinkState.REQUESTING:
            self._transition(LinkState.CONNECTED)
        else:
            self._violation(message, f"establishment accept in state {self.state.value}")

    def _on_establishment_reject(self, message: SignallingMessage) -> None:
        if self.role == LinkRole.INITIATOR and self.state == LinkState.REQUESTING:
            self._fail("establishment rejected by peer")
        else:
            self._violation(message, f"establishment reject in state {self.state.value}")

    def _on_release_request(self, message: SignallingMessage) -> None:
        self._signal(MsgType.RELEASE_ACCEPT)
        if self.state != LinkState.IDLE:
            self.release_reason = "released by peer"
            self._transition(LinkState.IDLE)

    def _on_release_accept(self, message: SignallingMessage) -> None:
        if self.state == LinkState.RELEASING:
            self._transition(LinkState.IDLE)
        else:
            self._violation(message, f"release accept in state {self.state.value}")

    # -- timers ---------------------------------------------------------

    def _on_establish_timeout(self) -> None:
        self._timer = None
        if self.establish_retransmissions < self.config.establish_retries:
            self.establish_retransmissions += 1
            logger.debug(
                "Link %s retransmitting establishment request (%d/%d)",
                self.link_id, self.establish_retransmissions, self.config.establish_retries,
            )
            self._signal(MsgType.ESTABLISHMENT_REQUEST)
            self._arm(self.config.t_establish, self._on_establish_timeout)
            return

        logger.warning(
            "Link %s establishment failed after %d retransmissions",
            self.link_id, self.establish_retransmissions,
        )
        self._fail(f"no establishment accept after {self.establish_retransmissions} retransmissions")

    def _on_release_timeout(self) -> None:
        self._timer = None
        if self.release_transmissions < self.config.release_retries:
            self._send_release()
            return

        logger.warning(
            "Link %s release not acknowledged after %d attempts; cleaning up locally",
            self.link_id, self.release_transmissions,
        )
        self._transition(LinkState.IDLE)

    def _send_release(self) -> None:
        self.release_transmissions += 1
        self._signal(MsgType.RELEASE_REQUEST)
        self._arm(self.config.t_release, self._on_release_timeout)

    def _arm(self, delay: float, callback: Callable[[], None]) -> None:
        self._cancel_timer()
        self._timer = self.scheduler.call_later(delay, callback)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    # -- helpers --------------------------------------------------------

    def _signal(self, msg_type: int) -> None:
        self._send(
            SignallingMessage(
                msg_type=msg_type,
                sender_id=self.link_id.local_id,
                receiver_id=self.link_id.peer_id,
                service_code=self.link_id.service_code,
                sequence=self.sequence,
            )
        )

    def _fail(self, reason: str) -> None:
        self.release_reason = reason
        self._transition(LinkState.IDLE)
        self.event_sink.emit(LinkUnavailable(time=self.scheduler.now, link_id=self.link_id, reason=reason))
        if self.observer is not None:
            self.observer.link_unavailable(self, reason)

    def _transition(self, new_state: LinkState) -> None:
        old_state = self.state
        if old_state == new_state:
            return
        self._cancel_timer()
        self.state = new_state
        if new_state == LinkState.CONNECTED:
            self.establishment_time = self.scheduler.now

        logger.info("Link %s: %s -> %s", self.link_id, old_state.value, new_state.value)
        self.event_sink.emit(
            LinkStateChanged(
                time=self.scheduler.now,
                link_id=self.link_id,
                old_state=old_state.value,
                new_state=new_state.value,
            )
        )
        if self.observer is not None:
            self.observer.link_state_changed(self, old_state, new_state)

    def _violation(self, message: SignallingMessage, detail: str) -> None:
        logger.warning("Link %s ignoring %s: %s", self.link_id, message.name, detail)
        self.event_sink.emit(
            ProtocolViolation(
                time=self.scheduler.now,
                device_id=self.link_id.local_id,
                message_type=message.name,
                detail=detail,
            )
        )
