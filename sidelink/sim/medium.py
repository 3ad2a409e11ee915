from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Tuple

import numpy as np

from sidelink.device import SidelinkDevice
from sidelink.interfaces import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

DropFilter = Callable[[int, int, bytes], bool]


@dataclass
class MediumTransport:
    """Radio transport of one device attached to a :class:`MockRadioMedium`."""

    medium: MockRadioMedium
    l2_id: int

    def send(self, data: bytes, destination_id: int) -> None:
        self.medium.transmit(self.l2_id, data, destination_id)


@dataclass
class MockRadioMedium:
    """In-memory sidelink channel.

    Signal levels come from a symmetric per-pair table; pairs without an entry
    cannot hear each other. A destination that is not an attached device is
    treated as a group destination and reaches every other device in range.
    Losses are drawn from a seeded numpy stream; ``drop_filter`` lets tests
    drop chosen transmissions deterministically.
    """

    scheduler: Scheduler
    delay: float = 0.001
    loss_probability: float = 0.0
    sensitivity: float = float("-inf")
    measurement_noise: float = 0.0
    seed: int = 0
    drop_filter: Optional[DropFilter] = None

    devices: Dict[int, SidelinkDevice] = field(default_factory=dict)
    signals: Dict[Tuple[int, int], float] = field(default_factory=dict)
    sent: int = 0
    delivered: int = 0
    dropped: int = 0
    rng: np.random.RandomState = field(init=False)
    _measurement_timer: Optional[TimerHandle] = field(default=None, init=False)

    def __post_init__(self) -> None:
        if self.delay < 0:
            raise ValueError("delay must be non-negative")
        if not 0.0 <= self.loss_probability <= 1.0:
            raise ValueError("loss_probability must be within [0, 1]")
        self.rng = np.random.RandomState(self.seed)

    def transport_for(self, l2_id: int) -> MediumTransport:
        return MediumTransport(medium=self, l2_id=l2_id)

    def attach(self, device: SidelinkDevice) -> None:
        self.devices[device.l2_id] = device

    def detach(self, l2_id: int) -> None:
        self.devices.pop(l2_id, None)

    @staticmethod
    def _pair(a: int, b: int) -> Tuple[int, int]:
        return (a, b) if a <= b else (b, a)

    def set_signal(self, a: int, b: int, value: Optional[float]) -> None:
        """Set the signal level between ``a`` and ``b``; None puts them out of range."""
        if value is None:
            self.signals.pop(self._pair(a, b), None)
        else:
            self.signals[self._pair(a, b)] = float(value)

    def signal(self, a: int, b: int) -> Optional[float]:
        return self.signals.get(self._pair(a, b))

    def transmit(self, source_id: int, data: bytes, destination_id: int) -> None:
        self.sent += 1
        if destination_id in self.devices:
            targets = [destination_id]
        else:
            targets = [l2_id for l2_id in self.devices if l2_id != source_id]

        for target in targets:
            level = self.signal(source_id, target)
            if level is None or level < self.sensitivity:
                continue
            if self.drop_filter is not None and self.drop_filter(source_id, target, data):
                self.dropped += 1
                continue
            if self.loss_probability > 0 and self.rng.random_sample() < self.loss_probability:
                self.dropped += 1
                continue
            self.scheduler.call_later(self.delay, self._deliver, target, data, source_id, level)

    def _deliver(self, target: int, data: bytes, source_id: int, level: float) -> None:
        device = self.devices.get(target)
        if device is None:
            return
        self.delivered += 1
        device.on_receive(data, source_id, self._sample(level))

    def _sample(self, level: float) -> float:
        if self.measurement_noise > 0:
            return float(level + self.rng.normal(0.0, self.measurement_noise))
        return level

    def start_measurements(self, interval: float) -> None:
        """Deliver a signal sample for every in-range pair each ``interval``."""
        if interval <= 0:
            raise ValueError("measurement interval must be positive")
        self.stop_measurements()
        self._measurement_timer = self.scheduler.call_later(interval, self._measure, interval)

    def stop_measurements(self) -> None:
        if self._measurement_timer is not None:
            self._measurement_timer.cancel()
            self._measurement_timer = None

    def _measure(self, interval: float) -> None:
        for (a, b), level in list(self.signals.items()):
            for local, peer in ((a, b), (b, a)):
                device = self.devices.get(local)
                if device is not None and peer in self.devices:
                    device.on_signal_measurement(peer, self._sample(level))
        self._measurement_timer = self.scheduler.call_later(interval, self._measure, interval)
