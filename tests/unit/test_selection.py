"""Unit tests for relay selection policies."""

import pytest

from sidelink.config import SelectionPolicy
from sidelink.discovery import RelayCandidate, RelaySelector


def make_candidates(metrics, eligible=None):
    eligible = eligible or [True] * len(metrics)
    return [
        RelayCandidate(l2_id=i + 1, service_code=100, signal_metric=metric, eligible=flag)
        for i, (metric, flag) in enumerate(zip(metrics, eligible))
    ]


class TestStrongestSignal:
    """Test the strongest-signal policy."""

    def test_picks_largest_metric(self):
        """Test strongest signal wins."""
        selector = RelaySelector(SelectionPolicy.STRONGEST_SIGNAL)
        assert selector.select(make_candidates([5, 9, 3])).l2_id == 2

    def test_skips_ineligible(self):
        """Test ineligible candidates are skipped."""
        selector = RelaySelector(SelectionPolicy.STRONGEST_SIGNAL)
        candidates = make_candidates([5, 9, 3], eligible=[True, False, True])
        assert selector.select(candidates).l2_id == 1

    def test_none_when_nothing_eligible(self):
        """Test no selection without eligible candidates."""
        selector = RelaySelector(SelectionPolicy.STRONGEST_SIGNAL)
        assert selector.select(make_candidates([5, 9], eligible=[False, False])) is None

    def test_tie_goes_to_first(self):
        """Test ties go to the earliest discovered."""
        selector = RelaySelector(SelectionPolicy.STRONGEST_SIGNAL)
        assert selector.select(make_candidates([7, 7, 3])).l2_id == 1

    def test_candidate_without_metric_is_skipped(self):
        """Test candidate without a metric."""
        selector = RelaySelector(SelectionPolicy.STRONGEST_SIGNAL)
        candidates = make_candidates([None, 4])
        assert selector.select(candidates).l2_id == 2


class TestFirstEligible:
    """Test the first-eligible policy."""

    def test_picks_first(self):
        """Test first candidate is chosen."""
        selector = RelaySelector(SelectionPolicy.FIRST_ELIGIBLE)
        assert selector.select(make_candidates([5, 9, 3])).l2_id == 1

    def test_does_not_consult_eligibility(self):
        """Test eligibility is ignored."""
        selector = RelaySelector(SelectionPolicy.FIRST_ELIGIBLE)
        candidates = make_candidates([5, 9, 3], eligible=[False, True, True])
        assert selector.select(candidates).l2_id == 1

    def test_deterministic(self):
        """Test the same seed gives the same choice."""
        selector = RelaySelector(SelectionPolicy.FIRST_ELIGIBLE)
        candidates = make_candidates([5, 9, 3])
        assert {selector.select(candidates).l2_id for _ in range(10)} == {1}


class TestRandom:
    """Test the random policy."""

    def test_same_seed_same_sequence(self):
        """Test the same seed gives the same sequence."""
        candidates = make_candidates([5, 9, 3])
        first = RelaySelector(SelectionPolicy.RANDOM, seed=11)
        second = RelaySelector(SelectionPolicy.RANDOM, seed=11)
        picks = [first.select(candidates).l2_id for _ in range(20)]
        assert picks == [second.select(candidates).l2_id for _ in range(20)]
        assert set(picks) <= {1, 2, 3}

    def test_covers_all_candidates(self):
        """Test every candidate gets drawn."""
        selector = RelaySelector(SelectionPolicy.RANDOM, seed=5)
        candidates = make_candidates([5, 9, 3])
        assert {selector.select(candidates).l2_id for _ in range(200)} == {1, 2, 3}

    def test_empty_draws_nothing(self):
        """Test an empty list consumes no random draw."""
        candidates = make_candidates([5, 9, 3])
        selector = RelaySelector(SelectionPolicy.RANDOM, seed=11)
        reference = RelaySelector(SelectionPolicy.RANDOM, seed=11)
        assert selector.select([]) is None
        assert selector.select(candidates).l2_id == reference.select(candidates).l2_id

    def test_assign_stream_restarts(self):
        """Test assigning a stream restarts it."""
        candidates = make_candidates([5, 9, 3])
        selector = RelaySelector(SelectionPolicy.RANDOM, seed=2)
        picks = [selector.select(candidates).l2_id for _ in range(10)]
        selector.assign_stream(2)
        assert [selector.select(candidates).l2_id for _ in range(10)] == picks


@pytest.mark.parametrize("policy", list(SelectionPolicy))
def test_empty_registry_selects_nothing(policy):
    """Test selecting from an empty registry."""
    assert RelaySelector(policy).select([]) is None


def test_policy_from_string():
    """Test policy given as a string."""
    assert RelaySelector("first-eligible").policy == SelectionPolicy.FIRST_ELIGIBLE
