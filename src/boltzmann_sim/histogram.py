"""
Occupancy histogram and the equilibrium test that reads it.

The histogram is a derived index over the lattice: bucket ``v`` holds the
number of sites carrying exactly ``v`` quanta. It is filled once by a full
scan and afterwards updated by four bucket adjustments per accepted transfer.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from numba import njit

from .errors import AllocationError, ConfigurationError, InvariantViolation
from .lattice import Lattice


@njit(cache=True)
def _scan_levels(counts, buckets):
    """Full-lattice histogram: one increment per site."""
    buckets[:] = 0
    n_buckets = buckets.shape[0]
    for i in range(counts.shape[0]):
        level = counts[i]
        if level < 0 or level >= n_buckets:
            return False
        buckets[level] += 1
    return True


class OccupancyHistogram:
    """Site counts per exact quanta level, backed by a dense int64 array."""

    def __init__(self, capacity: int) -> None:
        # a site can never hold more than every quantum in the system
        if capacity < 1:
            raise ConfigurationError(f"Histogram capacity must be >= 1, got {capacity}")
        try:
            self.buckets = np.zeros(capacity, dtype=np.int64)
        except (MemoryError, ValueError) as exc:
            raise AllocationError(f"Can't allocate {capacity} histogram buckets") from exc

    @classmethod
    def from_lattice(cls, lattice: Lattice) -> "OccupancyHistogram":
        histogram = cls(lattice.total_quanta() + 1)
        histogram.seed(lattice)
        return histogram

    @property
    def capacity(self) -> int:
        return self.buckets.shape[0]

    def seed(self, lattice: Lattice) -> None:
        if not _scan_levels(lattice.counts, self.buckets):
            raise InvariantViolation(
                f"Lattice holds a level outside [0, {self.capacity}); "
                "histogram capacity too small"
            )

    def record_transfer(self, old_source_level: int, old_dest_level: int) -> None:
        """Move one site down from ``old_source_level`` and one up from ``old_dest_level``."""
        if old_source_level < 1:
            raise InvariantViolation(
                f"Transfer from a site at level {old_source_level} is impossible"
            )
        if old_dest_level < 0 or old_dest_level + 1 >= self.capacity:
            raise InvariantViolation(
                f"Destination level {old_dest_level} outside histogram capacity {self.capacity}"
            )
        b = self.buckets
        # two distinct sites share a bucket when both start at the same level
        needed = 2 if old_source_level == old_dest_level else 1
        if b[old_source_level] < needed or b[old_dest_level] < 1:
            raise InvariantViolation(
                f"Histogram out of sync: transfer {old_source_level} -> {old_dest_level} "
                f"with buckets {b[old_source_level]}, {b[old_dest_level]}"
            )
        b[old_source_level] -= 1
        b[old_source_level - 1] += 1
        b[old_dest_level] -= 1
        b[old_dest_level + 1] += 1

    # ------------------------------------------------------------------ queries
    def count_at(self, level: int) -> int:
        if level < 0 or level >= self.capacity:
            return 0
        return int(self.buckets[level])

    def max_observed_level(self) -> int:
        occupied = np.flatnonzero(self.buckets)
        return int(occupied[-1]) if occupied.size else 0

    def total(self) -> int:
        return int(self.buckets.sum())

    def snapshot(self) -> np.ndarray:
        """Bucket counts for levels ``0..max_observed_level`` inclusive (a copy)."""
        return self.buckets[: self.max_observed_level() + 1].copy()

    def as_pairs(self) -> List[Tuple[int, int]]:
        return [(level, int(count)) for level, count in enumerate(self.snapshot())]

    def matches(self, lattice: Lattice) -> bool:
        """Compare the incrementally maintained buckets with a fresh full scan."""
        fresh = np.zeros_like(self.buckets)
        if not _scan_levels(lattice.counts, fresh):
            return False
        return bool(np.array_equal(fresh, self.buckets))


THRESHOLDS_2D: Tuple[Tuple[int, float], ...] = (
    (0, 0.5),
    (1, 0.25),
    (2, 0.125),
    (3, 0.0625),
)
THRESHOLDS_3D: Tuple[Tuple[int, float], ...] = THRESHOLDS_2D[:3]


@dataclass(frozen=True)
class EquilibriumMonitor:
    """
    Fractional-occupancy convergence test.

    ``thresholds`` is an ordered sequence of ``(level, minimum_fraction)``
    pairs. Fractions are taken of the total quanta count, not of the number of
    sites; the system counts as converged only when every pair holds.
    """

    thresholds: Tuple[Tuple[int, float], ...] = THRESHOLDS_2D

    def __post_init__(self) -> None:
        cleaned = tuple((int(level), float(fraction)) for level, fraction in self.thresholds)
        if not cleaned:
            raise ConfigurationError("At least one equilibrium threshold is required")
        for level, fraction in cleaned:
            if level < 0:
                raise ConfigurationError(f"Threshold level must be >= 0, got {level}")
            if not 0.0 <= fraction <= 1.0:
                raise ConfigurationError(
                    f"Threshold fraction for level {level} must lie in [0, 1], got {fraction}"
                )
        object.__setattr__(self, "thresholds", cleaned)

    @classmethod
    def geometric(cls, n_levels: int) -> "EquilibriumMonitor":
        """Levels ``0..n_levels-1`` with minimum fractions 1/2, 1/4, 1/8, ..."""
        return cls(tuple((level, 0.5 ** (level + 1)) for level in range(n_levels)))

    @classmethod
    def for_dimension(cls, dimension: int) -> "EquilibriumMonitor":
        return cls(THRESHOLDS_2D if dimension == 2 else THRESHOLDS_3D)

    def is_converged(self, histogram: OccupancyHistogram, total_quanta: int) -> bool:
        for level, fraction in self.thresholds:
            if histogram.count_at(level) < fraction * total_quanta:
                return False
        return True

    def deficits(self, histogram: OccupancyHistogram, total_quanta: int) -> Dict[int, float]:
        """Sites still missing per level (0.0 where the threshold already holds)."""
        return {
            level: max(0.0, fraction * total_quanta - histogram.count_at(level))
            for level, fraction in self.thresholds
        }

    def as_arrays(self) -> Tuple[np.ndarray, np.ndarray]:
        levels = np.array([level for level, _ in self.thresholds], dtype=np.int64)
        fractions = np.array([fraction for _, fraction in self.thresholds], dtype=np.float64)
        return levels, fractions


def resolve_monitor(
    dimension: int, thresholds: Optional[Sequence[Sequence[float]]] = None
) -> EquilibriumMonitor:
    if thresholds is None:
        return EquilibriumMonitor.for_dimension(dimension)
    return EquilibriumMonitor(tuple((int(level), float(fraction)) for level, fraction in thresholds))


__all__ = [
    "OccupancyHistogram",
    "EquilibriumMonitor",
    "THRESHOLDS_2D",
    "THRESHOLDS_3D",
    "resolve_monitor",
]
