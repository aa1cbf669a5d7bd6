"""
Tests for the occupancy histogram and the equilibrium monitor.

The 2-D program this model replaces tracked its "three quanta" counter with a
``== 2`` comparison, so level 3 mirrored level 2, and sized its final report
buffer one bucket short. The histogram here keeps one bucket per level and
reports ``max_observed_level + 1`` entries; the tests pin that behaviour.
"""

import numpy as np
import pytest

from boltzmann_sim import (
    THRESHOLDS_2D,
    THRESHOLDS_3D,
    ConfigurationError,
    EquilibriumMonitor,
    InvariantViolation,
    Lattice,
    OccupancyHistogram,
)


def _lattice_with(side, dimension, levels):
    lattice = Lattice(side, dimension)
    lattice.counts[:] = np.asarray(levels, dtype=np.int64)
    return lattice


def test_seed_counts_every_site():
    lattice = _lattice_with(3, 2, [0, 0, 1, 3, 2, 0, 1, 1, 1])
    histogram = OccupancyHistogram.from_lattice(lattice)

    assert histogram.capacity == lattice.total_quanta() + 1
    assert histogram.count_at(0) == 3
    assert histogram.count_at(1) == 4
    assert histogram.count_at(2) == 1
    assert histogram.count_at(3) == 1
    assert histogram.total() == 9
    assert histogram.max_observed_level() == 3


def test_levels_two_and_three_are_distinct():
    lattice = _lattice_with(2, 2, [2, 2, 0, 0])
    histogram = OccupancyHistogram.from_lattice(lattice)
    assert histogram.count_at(2) == 2
    assert histogram.count_at(3) == 0


def test_count_at_out_of_range_is_zero():
    histogram = OccupancyHistogram.from_lattice(_lattice_with(2, 2, [1, 1, 1, 1]))
    assert histogram.count_at(-1) == 0
    assert histogram.count_at(1000) == 0


def test_reseed_resets_buckets():
    lattice = _lattice_with(2, 2, [1, 1, 1, 1])
    histogram = OccupancyHistogram.from_lattice(lattice)
    lattice.counts[:] = [4, 0, 0, 0]
    histogram.seed(lattice)
    assert histogram.count_at(1) == 0
    assert histogram.count_at(0) == 3
    assert histogram.count_at(4) == 1


def test_seed_rejects_level_beyond_capacity():
    histogram = OccupancyHistogram(3)
    with pytest.raises(InvariantViolation):
        histogram.seed(_lattice_with(2, 2, [5, 0, 0, 0]))


def test_record_transfer_two_to_zero_repeated():
    lattice = _lattice_with(3, 2, [2, 2, 2, 0, 0, 0, 1, 1, 1])
    histogram = OccupancyHistogram.from_lattice(lattice)

    for _ in range(2):
        before = histogram.buckets.copy()
        histogram.record_transfer(2, 0)
        delta = histogram.buckets - before
        assert delta[0] == -1
        assert delta[1] == 2
        assert delta[2] == -1
        assert np.count_nonzero(delta) == 3
        assert histogram.total() == 9

    assert histogram.count_at(0) == 1
    assert histogram.count_at(1) == 7
    assert histogram.count_at(2) == 1


def test_record_transfer_tracks_lattice():
    lattice = _lattice_with(2, 2, [3, 1, 0, 0])
    histogram = OccupancyHistogram.from_lattice(lattice)

    source, dest = (0, 0), (1, 1)
    source_level, dest_level = lattice.get(source), lattice.get(dest)
    lattice.decrement(source)
    lattice.increment(dest)
    histogram.record_transfer(source_level, dest_level)

    assert histogram.matches(lattice)
    assert histogram.as_pairs() == [(0, 1), (1, 2), (2, 1)]


def test_record_transfer_same_level_needs_two_sites():
    histogram = OccupancyHistogram.from_lattice(_lattice_with(2, 2, [1, 3, 0, 0]))
    with pytest.raises(InvariantViolation):
        histogram.record_transfer(1, 1)


@pytest.mark.parametrize("source, dest", [(0, 1), (-1, 0), (2, 0)])
def test_record_transfer_rejects_impossible_moves(source, dest):
    histogram = OccupancyHistogram.from_lattice(_lattice_with(2, 2, [1, 1, 1, 1]))
    before = histogram.buckets.copy()
    with pytest.raises(InvariantViolation):
        histogram.record_transfer(source, dest)
    assert np.array_equal(histogram.buckets, before)


def test_snapshot_covers_max_level_inclusive():
    histogram = OccupancyHistogram.from_lattice(_lattice_with(2, 2, [0, 0, 0, 4]))
    snap = histogram.snapshot()
    assert len(snap) == histogram.max_observed_level() + 1 == 5
    assert list(snap) == [3, 0, 0, 0, 1]
    snap[0] = 99
    assert histogram.count_at(0) == 3


def test_matches_detects_drift():
    lattice = _lattice_with(2, 2, [1, 1, 1, 1])
    histogram = OccupancyHistogram.from_lattice(lattice)
    assert histogram.matches(lattice)
    histogram.buckets[0] += 1
    assert not histogram.matches(lattice)


def test_presets():
    assert EquilibriumMonitor.for_dimension(2).thresholds == THRESHOLDS_2D
    assert EquilibriumMonitor.for_dimension(3).thresholds == THRESHOLDS_3D
    assert [level for level, _ in THRESHOLDS_2D] == [0, 1, 2, 3]
    assert [level for level, _ in THRESHOLDS_3D] == [0, 1, 2]
    assert EquilibriumMonitor.geometric(4).thresholds == THRESHOLDS_2D


def _histogram_with(counts, capacity=200):
    histogram = OccupancyHistogram(capacity)
    histogram.buckets[: len(counts)] = counts
    return histogram


def test_is_converged_requires_every_threshold():
    monitor = EquilibriumMonitor(THRESHOLDS_2D)
    assert monitor.is_converged(_histogram_with([50, 25, 13, 7, 5]), 100)
    assert not monitor.is_converged(_histogram_with([50, 25, 12, 7, 6]), 100)
    assert not monitor.is_converged(_histogram_with([49, 26, 13, 7, 5]), 100)
    # 3-D preset ignores level 3
    assert EquilibriumMonitor(THRESHOLDS_3D).is_converged(_histogram_with([50, 25, 13, 0, 12]), 100)


def test_thresholds_are_fractions_of_quanta_not_sites():
    monitor = EquilibriumMonitor(((0, 0.5),))
    histogram = _histogram_with([6, 4])
    assert monitor.is_converged(histogram, 12)
    assert not monitor.is_converged(histogram, 13)


def test_deficits():
    monitor = EquilibriumMonitor(THRESHOLDS_3D)
    deficits = monitor.deficits(_histogram_with([40, 30, 10]), 100)
    assert deficits == {0: 10.0, 1: 0.0, 2: 2.5}


@pytest.mark.parametrize(
    "thresholds",
    [(), ((-1, 0.5),), ((0, 1.5),), ((0, -0.1),)],
)
def test_invalid_thresholds(thresholds):
    with pytest.raises(ConfigurationError):
        EquilibriumMonitor(thresholds)
