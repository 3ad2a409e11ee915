"""Simulation harness: simpy clock, in-memory radio medium and scenarios."""

from __future__ import annotations

from .medium import MediumTransport, MockRadioMedium
from .scenario import RecordingDataPath, RelayScenario, ScenarioConfig
from .scheduler import AsyncioScheduler, SimpyScheduler, SimpyTimer

__all__ = [
    "AsyncioScheduler",
    "MediumTransport",
    "MockRadioMedium",
    "RecordingDataPath",
    "RelayScenario",
    "ScenarioConfig",
    "SimpyScheduler",
    "SimpyTimer",
]
