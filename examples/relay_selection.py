#!/usr/bin/env python3
"""Relay selection example.

Two relays offer the same relay service to one remote device. The remote
connects to the stronger relay, then switches over when that relay's signal
collapses.
"""

import logging
import sys
from pathlib import Path

# Add the parent directory to the path so we can import sidelink
sys.path.insert(0, str(Path(__file__).parent.parent))

from sidelink.config import DiscoveryModel, EligibilityConfig, SidelinkConfig
from sidelink.events import LinkStateChanged, RelaySelected
from sidelink.sim import RelayScenario, ScenarioConfig


def relay_selection_example():
    """Run a remote/relay switch-over scenario and print what happened."""
    print("Sidelink Relay Selection Example")
    print("=" * 40)

    print("\n1. Building the scenario...")
    sidelink = SidelinkConfig(eligibility=EligibilityConfig(threshold=-110.0, hysteresis=10.0))
    config = ScenarioConfig(
        relay_count=2,
        remote_count=1,
        sim_time=20.0,
        disc_start_min=0.0,
        disc_start_max=1.0,
        discovery_model=DiscoveryModel.ANNOUNCE,
        shared_relay_code=100,
        sidelink=sidelink,
    )
    levels = {1: -85.0, 2: -75.0}
    scenario = RelayScenario(config, signal_model=lambda remote, relay: levels[relay])
    remote = scenario.remotes[0]
    print(f"   relays: {[r.l2_id for r in scenario.relays]}, remote: {remote.l2_id}")

    print("\n2. Running discovery and selection...")
    scenario.start()
    scenario.run(until=8.0)
    print(f"   remote {remote.l2_id} uses relay {remote.current_relay(100)}")
    print(f"   uplink packets forwarded: {scenario.relay_uplink(remote.l2_id, packets=5)}")

    print("\n3. Relay 2 fades out...")
    scenario.schedule_signal_change(8.5, remote.l2_id, 2, -140.0)
    scenario.run()
    print(f"   remote {remote.l2_id} uses relay {remote.current_relay(100)}")
    print(f"   uplink packets forwarded: {scenario.relay_uplink(remote.l2_id, packets=5)}")

    print("\n4. Event log of the remote...")
    for event in scenario.recorder.events:
        if isinstance(event, RelaySelected):
            print(f"   t={event.time:6.3f} selected relay {event.new_relay_id} (was {event.old_relay_id})")
        elif isinstance(event, LinkStateChanged) and event.link_id.local_id == remote.l2_id:
            print(f"   t={event.time:6.3f} link {event.link_id}: {event.old_state} -> {event.new_state}")

    print("\n5. Statistics...")
    for key, value in scenario.stats.summary().items():
        print(f"   {key}: {value}")
    print(f"   device: {remote.get_stats()}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.WARNING, format="%(name)s %(levelname)s %(message)s")
    relay_selection_example()
