from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional, Tuple

from sidelink.config import EligibilityConfig

if TYPE_CHECKING:
    from sidelink.discovery.registry import RelayCandidate


@dataclass
class EligibilityFilter:
    """Exponential smoothing plus threshold/hysteresis eligibility.

    The filtered metric follows ``alpha * previous + (1 - alpha) * raw``; the
    first sample initializes it. A candidate turns eligible at
    ``threshold + hysteresis`` and ineligible below ``threshold - hysteresis``;
    inside that band the previous decision is kept (a fresh candidate starts
    ineligible).
    """

    config: EligibilityConfig = field(default_factory=EligibilityConfig)

    def step(
        self, previous_metric: Optional[float], previous_eligible: bool, raw_sample: float
    ) -> Tuple[float, bool]:
        alpha = self.config.filter_coefficient
        if previous_metric is None:
            filtered = float(raw_sample)
        else:
            filtered = alpha * previous_metric + (1.0 - alpha) * float(raw_sample)

        if filtered >= self.config.threshold + self.config.hysteresis:
            eligible = True
        elif filtered < self.config.threshold - self.config.hysteresis:
            eligible = False
        else:
            eligible = previous_eligible
        return filtered, eligible

    def update(self, candidate: RelayCandidate, raw_sample: float) -> Tuple[float, bool]:
        """Run one raw sample through the filter and store the result on ``candidate``."""
        filtered, eligible = self.step(candidate.signal_metric, candidate.eligible, raw_sample)
        candidate.signal_metric = filtered
        candidate.eligible = eligible
        return filtered, eligible
