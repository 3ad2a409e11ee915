"""Relay discovery, eligibility filtering and relay selection."""

from __future__ import annotations

from .eligibility import EligibilityFilter
from .engine import DiscoveryEngine, DiscoverySession, RelayDiscovery
from .registry import Observation, RelayCandidate, RelayRegistry
from .selection import RelaySelector

__all__ = [
    "DiscoveryEngine",
    "DiscoverySession",
    "EligibilityFilter",
    "Observation",
    "RelayCandidate",
    "RelayDiscovery",
    "RelayRegistry",
    "RelaySelector",
]
