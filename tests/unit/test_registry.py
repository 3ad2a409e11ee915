"""Unit tests for the relay registry."""

import pytest

from sidelink.config import EligibilityConfig
from sidelink.discovery import EligibilityFilter, RelayRegistry


@pytest.fixture
def registry():
    config = EligibilityConfig(threshold=0.0, hysteresis=1.0, filter_coefficient=0.0)
    return RelayRegistry(eligibility=EligibilityFilter(config))


class TestObserve:
    """Test recording discovery observations."""

    def test_new_candidate(self, registry):
        """Test first observation adds a candidate."""
        observation = registry.observe(1, 100, 6.0, now=2.0)
        assert observation.is_new
        assert observation.is_material
        assert not observation.eligibility_changed
        candidate = observation.candidate
        assert candidate.signal_metric == 6.0
        assert candidate.eligible is True
        assert candidate.first_seen == 2.0
        assert candidate.last_seen == 2.0

    def test_repeat_observation_updates_in_place(self, registry):
        """Test repeated observation updates the entry."""
        registry.observe(1, 100, 6.0, now=2.0)
        observation = registry.observe(1, 100, 7.0, now=4.0)
        assert not observation.is_new
        assert not observation.is_material
        assert len(registry) == 1
        assert observation.candidate.signal_metric == 7.0
        assert observation.candidate.first_seen == 2.0
        assert observation.candidate.last_seen == 4.0

    def test_eligibility_change_is_material(self, registry):
        """Test eligibility change is material."""
        registry.observe(1, 100, 6.0, now=0.0)
        observation = registry.observe(1, 100, -5.0, now=1.0)
        assert observation.eligibility_changed
        assert observation.is_material
        assert observation.candidate.eligible is False

    def test_same_relay_different_codes(self, registry):
        """Test one relay offering two codes."""
        registry.observe(1, 100, 6.0, now=0.0)
        registry.observe(1, 200, 6.0, now=0.0)
        assert len(registry) == 2
        assert (1, 200) in registry
        assert registry.get(1, 300) is None


class TestMeasure:
    """Test applying measurement samples."""

    def test_unknown_relay_is_not_added(self, registry):
        """Test measurement for an unknown relay."""
        assert registry.measure(9, 6.0, now=1.0) == []
        assert len(registry) == 0

    def test_applies_to_every_service_of_relay(self, registry):
        """Test measurement updates every code of the relay."""
        registry.observe(1, 100, 6.0, now=0.0)
        registry.observe(1, 200, 6.0, now=0.0)
        registry.observe(2, 100, 6.0, now=0.0)
        observations = registry.measure(1, -5.0, now=3.0)
        assert [o.candidate.service_code for o in observations] == [100, 200]
        assert all(o.eligibility_changed for o in observations)
        assert registry.get(2, 100).eligible is True


class TestQueries:
    """Test snapshots, removal and aging."""

    def test_candidates_in_discovery_order(self, registry):
        """Test candidates keep discovery order."""
        registry.observe(2, 100, 8.0, now=0.0)
        registry.observe(1, 100, 6.0, now=1.0)
        registry.observe(3, 200, 6.0, now=2.0)
        registry.observe(2, 100, 9.0, now=3.0)
        assert [c.l2_id for c in registry.candidates(100)] == [2, 1]
        assert [c.l2_id for c in registry.candidates()] == [2, 1, 3]

    def test_remove(self, registry):
        """Test removing a candidate."""
        registry.observe(1, 100, 6.0, now=0.0)
        assert registry.remove(1, 100) is True
        assert registry.remove(1, 100) is False

    def test_purge_stale(self, registry):
        """Test purging old candidates."""
        registry.observe(1, 100, 6.0, now=0.0)
        registry.observe(2, 100, 6.0, now=4.0)
        purged = registry.purge_stale(now=5.0, max_age=3.0)
        assert [c.l2_id for c in purged] == [1]
        assert [c.l2_id for c in registry] == [2]

    def test_entry_at_max_age_is_kept(self, registry):
        """Test an entry exactly at the max age."""
        registry.observe(1, 100, 6.0, now=0.0)
        assert registry.purge_stale(now=3.0, max_age=3.0) == []

    def test_clear(self, registry):
        """Test clearing the registry."""
        registry.observe(1, 100, 6.0, now=0.0)
        registry.clear()
        assert len(registry) == 0
