"""Collaborator abstractions consumed by the sidelink core.

The core never owns a clock, a radio or a forwarding plane. A host (the
simulation harness in :mod:`sidelink.sim`, or a real deployment) implements
these protocols and injects them when building a device.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, NamedTuple, Protocol


class LinkId(NamedTuple):
    """Identity of one local direct link instance.

    ``service_code`` is 0 for plain unicast links.
    """

    local_id: int
    peer_id: int
    service_code: int

    def __str__(self) -> str:
        return f"{self.local_id}<->{self.peer_id}/{self.service_code}"


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Discrete-event clock.

    Callbacks scheduled for the same instant run in the order they were
    scheduled. ``TimerHandle.cancel()`` must be idempotent.
    """

    @property
    def now(self) -> float: ...

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...


class RadioTransport(Protocol):
    """Unreliable datagram channel bound to one device.

    Inbound traffic is delivered by the host to
    ``SidelinkDevice.on_receive(data, source_id, rx_signal)``.
    """

    def send(self, data: bytes, destination_id: int) -> None: ...


class DataPath(Protocol):
    """User-plane forwarding controlled by relay link state."""

    def activate_data_path(self, link_id: LinkId) -> None: ...

    def deactivate_data_path(self, link_id: LinkId) -> None: ...


@dataclass
class NullTransport:
    def send(self, data: bytes, destination_id: int) -> None:
        return None


@dataclass
class NullDataPath:
    def activate_data_path(self, link_id: LinkId) -> None:
        return None

    def deactivate_data_path(self, link_id: LinkId) -> None:
        return None
