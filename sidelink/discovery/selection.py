"""Relay (re)selection algorithms."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np

from sidelink.config import SelectionPolicy
from sidelink.discovery.registry import RelayCandidate

logger = logging.getLogger(__name__)


class RelaySelector:
    """
    Picks at most one relay from a registry snapshot.

    The policy set is closed; each variant is handled by :meth:`select`:

    * ``FIRST_ELIGIBLE`` returns the earliest discovered candidate. The
      ``eligible`` flag is deliberately not consulted.
    * ``RANDOM`` returns a uniformly drawn candidate, also without looking at
      eligibility. Draws come from a private, explicitly seeded stream.
    * ``STRONGEST_SIGNAL`` returns the eligible candidate with the largest
      filtered metric; the first one wins ties.

    ``None`` means no relay qualifies this round.
    """

    def __init__(self, policy: SelectionPolicy = SelectionPolicy.STRONGEST_SIGNAL, seed: int = 1) -> None:
        """
        Initialize the selector.

        Args:
            policy: Selection algorithm.
            seed: Seed of the private random stream used by ``RANDOM``.
        """
        self.policy = SelectionPolicy(policy)
        self.seed = seed
        self.rng = np.random.RandomState(seed)

    def assign_stream(self, seed: int) -> None:
        """Restart the random stream from ``seed``."""
        self.seed = seed
        self.rng = np.random.RandomState(seed)

    def select(self, candidates: Sequence[RelayCandidate]) -> Optional[RelayCandidate]:
        if self.policy == SelectionPolicy.FIRST_ELIGIBLE:
            selected = candidates[0] if candidates else None
        elif self.policy == SelectionPolicy.RANDOM:
            selected = candidates[int(self.rng.randint(0, len(candidates)))] if candidates else None
        elif self.policy == SelectionPolicy.STRONGEST_SIGNAL:
            selected = self._strongest(candidates)
        else:
            raise ValueError(f"unsupported selection policy: {self.policy}")

        if selected is None:
            logger.debug("%s: no relay qualifies among %d candidates", self.policy.value, len(candidates))
        else:
            logger.debug(
                "%s: selected relay %s (metric %s)",
                self.policy.value, selected.l2_id, selected.signal_metric,
            )
        return selected

    @staticmethod
    def _strongest(candidates: Sequence[RelayCandidate]) -> Optional[RelayCandidate]:
        best: Optional[RelayCandidate] = None
        for candidate in candidates:
            if not candidate.eligible or candidate.signal_metric is None:
                continue
            if best is None or candidate.signal_metric > best.signal_metric:
                best = candidate
        return best
