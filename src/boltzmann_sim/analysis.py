"""
Post-hoc analysis of equilibrium histograms.

At equilibrium the occupation numbers decay geometrically, m(v) ~ r**v, so
log m(v) is linear in v. The fitted ratio r is a reporting aid only; the run
itself stops on the fractional-occupancy thresholds.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from scipy.stats import linregress

from .utils import HistogramResult


@dataclass
class DecayFit:
    slope: float
    intercept: float
    r_squared: float
    n_points: int

    @property
    def ratio(self) -> float:
        """Fitted m(v+1) / m(v)."""
        return float(np.exp(self.slope))


def reference_counts(total_quanta: int, n_levels: int) -> np.ndarray:
    """Geometric-halving reference m(v) = total * 2**-(v+1), v = 0..n_levels-1."""
    levels = np.arange(n_levels, dtype=np.float64)
    return total_quanta * 0.5 ** (levels + 1.0)


def fit_decay(result: HistogramResult, min_count: int = 1) -> DecayFit:
    """
    Least-squares fit of log m(v) against v over levels with at least ``min_count`` sites.

    Raises:
        ValueError: fewer than three usable levels.
    """
    levels = np.asarray(result.levels, dtype=np.float64)
    counts = np.asarray(result.counts, dtype=np.float64)
    mask = counts >= max(1, min_count)
    if np.count_nonzero(mask) < 3:
        raise ValueError(
            f"Need at least 3 levels with >= {min_count} sites for a decay fit, "
            f"got {np.count_nonzero(mask)}"
        )
    fit = linregress(levels[mask], np.log(counts[mask]))
    return DecayFit(
        slope=float(fit.slope),
        intercept=float(fit.intercept),
        r_squared=float(fit.rvalue**2),
        n_points=int(np.count_nonzero(mask)),
    )


def fraction_table(result: HistogramResult, total_quanta: int | None = None) -> np.ndarray:
    """Per-level site counts as fractions of the total quanta."""
    if total_quanta is None:
        total_quanta = result.total_quanta()
    if total_quanta <= 0:
        return np.zeros(len(result.counts), dtype=np.float64)
    return np.asarray(result.counts, dtype=np.float64) / float(total_quanta)


__all__ = ["DecayFit", "fit_decay", "reference_counts", "fraction_table"]
