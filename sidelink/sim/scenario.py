"""Remote/relay scenario builder on the simpy-backed clock."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set, Tuple

import numpy as np

from sidelink.config import DiscoveryModel, DiscoveryRole, SidelinkConfig
from sidelink.device import SidelinkDevice
from sidelink.discovery.selection import RelaySelector
from sidelink.events import FanOutEventSink, PacketRelayed, RecordingEventSink
from sidelink.interfaces import LinkId
from sidelink.sim.medium import MockRadioMedium
from sidelink.sim.scheduler import SimpyScheduler
from sidelink.stats import StatisticsCollector

logger = logging.getLogger(__name__)

SignalModel = Callable[[int, int], Optional[float]]


@dataclass
class RecordingDataPath:
    """Data path stub remembering which relay links carry traffic."""

    active: Set[LinkId] = field(default_factory=set)
    history: List[Tuple[str, LinkId]] = field(default_factory=list)

    def activate_data_path(self, link_id: LinkId) -> None:
        self.active.add(link_id)
        self.history.append(("activate", link_id))

    def deactivate_data_path(self, link_id: LinkId) -> None:
        self.active.discard(link_id)
        self.history.append(("deactivate", link_id))


@dataclass
class ScenarioConfig:
    """
    Topology and timeline of a relay scenario.

    Relays get L2 ids ``1..relay_count``, relay codes ``relay_code_base + i``
    and discovery destinations ``dst_l2_id_base + i``; remotes follow with
    L2 ids ``relay_count + 1 ..``. Every remote looks for every relay code.
    """

    relay_count: int = 2
    remote_count: int = 3
    sim_time: float = 15.0
    disc_start_min: float = 2.0
    disc_start_max: float = 4.0
    discovery_model: Optional[DiscoveryModel] = None
    seed: int = 1
    measurement_interval: Optional[float] = 0.5
    loss_probability: float = 0.0
    delay: float = 0.001
    relay_code_base: int = 100
    dst_l2_id_base: int = 500
    shared_relay_code: Optional[int] = None
    sidelink: SidelinkConfig = field(default_factory=SidelinkConfig)

    def __post_init__(self) -> None:
        if self.relay_count < 0 or self.remote_count < 0:
            raise ValueError("device counts must be non-negative")
        if self.disc_start_min < 0 or self.disc_start_max < self.disc_start_min:
            raise ValueError("discovery start bounds must satisfy 0 <= min <= max")
        if self.sim_time <= 0:
            raise ValueError("sim_time must be positive")


class RelayScenario:
    """
    Wires relays and remotes on a :class:`MockRadioMedium`.

    Example:
        >>> scenario = RelayScenario(ScenarioConfig(), signal_model=lambda a, b: -80.0)
        >>> scenario.start()
        >>> scenario.run()
        >>> scenario.stats.summary()
    """

    def __init__(
        self,
        config: Optional[ScenarioConfig] = None,
        signal_model: Optional[SignalModel] = None,
        scheduler: Optional[SimpyScheduler] = None,
    ) -> None:
        self.config = config or ScenarioConfig()
        self.scheduler = scheduler or SimpyScheduler()
        self.rng = np.random.RandomState(self.config.seed)
        self.medium = MockRadioMedium(
            self.scheduler,
            delay=self.config.delay,
            loss_probability=self.config.loss_probability,
            seed=self.config.seed,
        )
        self.stats = StatisticsCollector()
        self.recorder = RecordingEventSink()
        self.event_sink = FanOutEventSink(sinks=(self.recorder, self.stats))

        self.relays: List[SidelinkDevice] = []
        self.remotes: List[SidelinkDevice] = []
        self.data_paths: Dict[int, RecordingDataPath] = {}
        self.relay_codes: List[int] = []
        self.dst_l2_ids: List[int] = []
        self._build(signal_model or self._random_signal_model())

    @property
    def devices(self) -> List[SidelinkDevice]:
        return self.relays + self.remotes

    def device(self, l2_id: int) -> SidelinkDevice:
        return self.medium.devices[l2_id]

    def _random_signal_model(self) -> SignalModel:
        table: Dict[Tuple[int, int], float] = {}

        def model(a: int, b: int) -> float:
            key = (min(a, b), max(a, b))
            if key not in table:
                table[key] = float(self.rng.uniform(-120.0, -70.0))
            return table[key]

        return model

    def _make_device(self, l2_id: int, stream: int) -> SidelinkDevice:
        data_path = RecordingDataPath()
        self.data_paths[l2_id] = data_path
        selector = RelaySelector(self.config.sidelink.selection.policy, self.config.sidelink.selection.seed + stream)
        device = SidelinkDevice(
            l2_id,
            self.scheduler,
            self.medium.transport_for(l2_id),
            config=self.config.sidelink,
            event_sink=self.event_sink,
            data_path=data_path,
            selector=selector,
            rng=np.random.RandomState(self.config.seed + 1000 + stream),
        )
        self.medium.attach(device)
        return device

    def _build(self, signal_model: SignalModel) -> None:
        cfg = self.config
        for i in range(1, cfg.relay_count + 1):
            code = cfg.shared_relay_code if cfg.shared_relay_code is not None else cfg.relay_code_base + i
            self.relay_codes.append(code)
            self.dst_l2_ids.append(cfg.dst_l2_id_base + i)
            relay = self._make_device(i, stream=i)
            relay.configure_relay_service(code)
            self.relays.append(relay)

        for j in range(1, cfg.remote_count + 1):
            self.remotes.append(self._make_device(cfg.relay_count + j, stream=cfg.relay_count + j))

        for remote in self.remotes:
            for relay in self.relays:
                self.medium.set_signal(remote.l2_id, relay.l2_id, signal_model(remote.l2_id, relay.l2_id))

    def start(self) -> None:
        """Schedule the discovery start of every device."""
        cfg = self.config
        model = cfg.discovery_model or cfg.sidelink.discovery.model

        for relay, code, dst in zip(self.relays, self.relay_codes, self.dst_l2_ids):
            at = float(self.rng.uniform(cfg.disc_start_min, cfg.disc_start_max))
            logger.info("Relay %s: discovery start = %.3fs for code %s", relay.l2_id, at, code)
            self.scheduler.call_later(at, relay.start_relay_discovery, code, dst, DiscoveryRole.RELAY, model)

        for remote in self.remotes:
            at = float(self.rng.uniform(cfg.disc_start_min, cfg.disc_start_max))
            logger.info("Remote %s: discovery start = %.3fs", remote.l2_id, at)
            for code, dst in dict(zip(self.relay_codes, self.dst_l2_ids)).items():
                self.scheduler.call_later(at, remote.start_relay_discovery, code, dst, DiscoveryRole.REMOTE, model)

        if cfg.measurement_interval is not None:
            self.medium.start_measurements(cfg.measurement_interval)

    def run(self, until: Optional[float] = None) -> None:
        self.scheduler.run(until=until if until is not None else self.config.sim_time)

    def schedule_signal_change(self, at: float, a: int, b: int, value: Optional[float]) -> None:
        self.scheduler.call_later(at - self.scheduler.now, self.medium.set_signal, a, b, value)

    def relay_uplink(self, remote_id: int, destination: str = "internet", packets: int = 1) -> int:
        """
        Push uplink packets of ``remote_id`` through its connected relays.

        Returns:
            Number of packets forwarded.
        """
        remote = self.device(remote_id)
        forwarded = 0
        for link in remote.connected_links():
            if not link.is_relay_link or link.link_id not in self.data_paths[remote_id].active:
                continue
            for _ in range(packets):
                self.event_sink.emit(
                    PacketRelayed(
                        time=self.scheduler.now,
                        relay_id=link.peer_id,
                        source=str(remote_id),
                        destination=destination,
                        source_link="SL",
                        destination_link="UL",
                    )
                )
                forwarded += 1
        return forwarded
