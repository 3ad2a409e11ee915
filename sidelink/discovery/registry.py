"""Per-remote table of discovered relays."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from sidelink.discovery.eligibility import EligibilityFilter

logger = logging.getLogger(__name__)


@dataclass
class RelayCandidate:
    """A discoverable relay as seen by one remote device."""
    l2_id: int
    service_code: int
    signal_metric: Optional[float] = None
    eligible: bool = False
    last_seen: float = 0.0
    first_seen: float = 0.0

    @property
    def key(self) -> Tuple[int, int]:
        return (self.l2_id, self.service_code)

    def age(self, now: float) -> float:
        """Time since the last update."""
        return now - self.last_seen


@dataclass(frozen=True)
class Observation:
    """Outcome of feeding one sample into the registry."""
    candidate: RelayCandidate
    is_new: bool
    eligibility_changed: bool

    @property
    def is_material(self) -> bool:
        """True when relay selection should run again."""
        return self.is_new or self.eligibility_changed


@dataclass
class RelayRegistry:
    """
    Relays discovered by one remote device, in discovery order.

    Holds at most one entry per ``(l2_id, service_code)``. Every sample
    reaches ``signal_metric`` through the eligibility filter. Entries are kept
    until :meth:`purge_stale` or :meth:`remove` is called.
    """

    eligibility: EligibilityFilter = field(default_factory=EligibilityFilter)
    _entries: Dict[Tuple[int, int], RelayCandidate] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[RelayCandidate]:
        return iter(list(self._entries.values()))

    def __contains__(self, key: Tuple[int, int]) -> bool:
        return key in self._entries

    def get(self, l2_id: int, service_code: int) -> Optional[RelayCandidate]:
        return self._entries.get((l2_id, service_code))

    def observe(self, l2_id: int, service_code: int, raw_signal: float, now: float) -> Observation:
        """
        Record a discovery observation.

        Args:
            l2_id: L2 identifier of the relay.
            service_code: Relay service code advertised.
            raw_signal: Unfiltered signal sample measured on the message.
            now: Current time.

        Returns:
            The observation outcome.
        """
        key = (l2_id, service_code)
        candidate = self._entries.get(key)
        is_new = candidate is None
        if candidate is None:
            candidate = RelayCandidate(l2_id=l2_id, service_code=service_code, first_seen=now)
            self._entries[key] = candidate
            logger.debug("New relay candidate %s for service %s", l2_id, service_code)

        was_eligible = candidate.eligible
        self.eligibility.update(candidate, raw_signal)
        candidate.last_seen = now
        return Observation(
            candidate=candidate,
            is_new=is_new,
            eligibility_changed=not is_new and candidate.eligible != was_eligible,
        )

    def measure(self, l2_id: int, raw_signal: float, now: float) -> List[Observation]:
        """Apply a measurement sample to every known service of relay ``l2_id``."""
        results = []
        for candidate in self._entries.values():
            if candidate.l2_id != l2_id:
                continue
            was_eligible = candidate.eligible
            self.eligibility.update(candidate, raw_signal)
            candidate.last_seen = now
            results.append(
                Observation(
                    candidate=candidate,
                    is_new=False,
                    eligibility_changed=candidate.eligible != was_eligible,
                )
            )
        return results

    def candidates(self, service_code: Optional[int] = None) -> List[RelayCandidate]:
        """Snapshot of entries in discovery order, optionally for one service code."""
        return [
            c for c in self._entries.values()
            if service_code is None or c.service_code == service_code
        ]

    def remove(self, l2_id: int, service_code: int) -> bool:
        return self._entries.pop((l2_id, service_code), None) is not None

    def purge_stale(self, now: float, max_age: float) -> List[RelayCandidate]:
        """
        Remove entries not updated within ``max_age``.

        Returns:
            The removed candidates.
        """
        stale = [c for c in self._entries.values() if c.age(now) > max_age]
        for candidate in stale:
            del self._entries[candidate.key]
            logger.debug(
                "Relay candidate %s/%s expired after %.3fs",
                candidate.l2_id, candidate.service_code, candidate.age(now),
            )
        return stale

    def clear(self) -> None:
        self._entries.clear()
