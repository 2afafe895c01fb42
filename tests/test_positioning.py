"""
Tests for fractional position allocation and rebalancing.

These are pure functions, so plain objects stand in for scope members.
"""

from types import SimpleNamespace

import pytest
from pydantic import ValidationError

from taskdeck.services.errors import InvalidAnchorError, PrecisionExhaustedError
from taskdeck.services.positioning import (
    BASELINE_POSITION,
    POSITION_GAP,
    PositionPolicy,
    allocate,
    find_index,
    is_strictly_increasing,
    rebalance,
    spaced_positions,
)


def make_siblings(*positions):
    """Build scope members named a, b, c... at the given positions."""
    return [
        SimpleNamespace(id=chr(ord("a") + index), position=position)
        for index, position in enumerate(positions)
    ]


class TestAllocate:
    """Tests for allocate()."""

    def test_empty_scope_returns_baseline(self):
        assert allocate([]) == BASELINE_POSITION

    def test_append_to_end(self):
        siblings = make_siblings(100.0, 200.0)
        assert allocate(siblings) == 200.0 + POSITION_GAP

    def test_anchor_in_middle_returns_midpoint(self):
        siblings = make_siblings(100.0, 200.0, 300.0)
        assert allocate(siblings, "a") == 150.0
        assert allocate(siblings, "b") == 250.0

    def test_anchor_last_appends_gap(self):
        siblings = make_siblings(100.0, 200.0)
        assert allocate(siblings, "b") == 200.0 + POSITION_GAP

    def test_unknown_anchor_raises(self):
        siblings = make_siblings(100.0, 200.0)
        with pytest.raises(InvalidAnchorError):
            allocate(siblings, "zzz")

    def test_anchor_in_empty_scope_raises(self):
        with pytest.raises(InvalidAnchorError):
            allocate([], "a")

    def test_anchor_matches_uuid_against_string_id(self):
        from uuid import uuid4

        anchor = uuid4()
        siblings = [SimpleNamespace(id=str(anchor), position=1.0),
                    SimpleNamespace(id="other", position=3.0)]
        assert allocate(siblings, anchor) == 2.0

    def test_precision_exhausted_below_min_delta(self):
        policy = PositionPolicy(gap=1024.0, min_delta=0.5)
        siblings = make_siblings(10.0, 10.75)
        with pytest.raises(PrecisionExhaustedError):
            allocate(siblings, "a", policy)

    def test_saturated_tail_raises_for_append(self):
        siblings = make_siblings(1.0, 1e300)
        with pytest.raises(PrecisionExhaustedError):
            allocate(siblings)

    def test_saturated_tail_raises_for_last_anchor(self):
        siblings = make_siblings(1.0, 1e300)
        with pytest.raises(PrecisionExhaustedError):
            allocate(siblings, "b")

    def test_precision_exhausted_on_tied_neighbours(self):
        siblings = make_siblings(10.0, 10.0)
        with pytest.raises(PrecisionExhaustedError):
            allocate(siblings, "a")

    def test_repeated_midpoints_eventually_exhaust(self):
        """Halving the same gap must end in PrecisionExhausted, never a collision."""
        low = SimpleNamespace(id="low", position=BASELINE_POSITION)
        high = SimpleNamespace(id="high", position=BASELINE_POSITION + POSITION_GAP)
        inserted = 0
        with pytest.raises(PrecisionExhaustedError):
            while True:
                position = allocate([low, high], "low")
                assert low.position < position < high.position
                high = SimpleNamespace(id=f"n{inserted}", position=position)
                inserted += 1
        assert inserted > 10

    def test_sequential_appends_are_strictly_increasing(self):
        siblings = []
        for index in range(500):
            position = allocate(siblings)
            siblings.append(SimpleNamespace(id=str(index), position=position))
        assert is_strictly_increasing(s.position for s in siblings)


class TestRebalance:
    """Tests for rebalance() and spaced_positions()."""

    def test_spaced_positions(self):
        assert spaced_positions(3) == [
            BASELINE_POSITION,
            BASELINE_POSITION + POSITION_GAP,
            BASELINE_POSITION + 2 * POSITION_GAP,
        ]

    def test_spaced_positions_empty(self):
        assert spaced_positions(0) == []

    def test_rebalance_preserves_order(self):
        siblings = make_siblings(1.0, 1.0000001, 1.0000002, 7.0)
        mapping = rebalance(siblings)

        assert list(mapping) == ["a", "b", "c", "d"]
        assert is_strictly_increasing(mapping.values())
        assert mapping["a"] == BASELINE_POSITION
        assert mapping["d"] == BASELINE_POSITION + 3 * POSITION_GAP

    def test_rebalance_with_custom_policy(self):
        policy = PositionPolicy(gap=10.0, baseline=0.0)
        mapping = rebalance(make_siblings(5.0, 6.0), policy)
        assert mapping == {"a": 0.0, "b": 10.0}

    def test_rebalance_restores_midpoint_room(self):
        siblings = make_siblings(10.0, 10.0)
        mapping = rebalance(siblings)
        respaced = [SimpleNamespace(id=k, position=v) for k, v in mapping.items()]
        assert allocate(respaced, "a") == BASELINE_POSITION + POSITION_GAP / 2


class TestHelpers:
    """Tests for small helpers and the policy model."""

    def test_find_index(self):
        siblings = make_siblings(1.0, 2.0)
        assert find_index(siblings, "b") == 1
        assert find_index(siblings, "x") is None

    def test_is_strictly_increasing(self):
        assert is_strictly_increasing([1.0, 2.0, 3.0])
        assert is_strictly_increasing([])
        assert not is_strictly_increasing([1.0, 1.0])
        assert not is_strictly_increasing([2.0, 1.0])

    def test_policy_rejects_non_positive_gap(self):
        with pytest.raises(ValidationError):
            PositionPolicy(gap=0)

    def test_policy_rejects_gap_smaller_than_min_delta(self):
        with pytest.raises(ValidationError):
            PositionPolicy(gap=1.0, min_delta=1.0)

    def test_policy_from_config(self, tmp_path, monkeypatch):
        from taskdeck.config import Config

        for name in ("TASKDECK_POSITION_GAP", "TASKDECK_POSITION_BASELINE", "TASKDECK_POSITION_MIN_DELTA"):
            monkeypatch.delenv(name, raising=False)
        config_path = tmp_path / "config.ini"
        config_path.write_text("[positions]\ngap = 16\nbaseline = 0\nmin_delta = 0.001\n")

        policy = PositionPolicy.from_config(Config(config_path))

        assert policy.gap == 16.0
        assert policy.baseline == 0.0
        assert policy.min_delta == 0.001
