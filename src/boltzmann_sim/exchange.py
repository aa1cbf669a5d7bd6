"""
Equilibrium-seeking quantum exchange.

Each attempt draws a source and a destination site. If the source holds at
least one quantum and the two sites differ, one quantum moves from source to
destination and the occupancy histogram is adjusted in the same breath.
After every attempt the equilibrium thresholds are re-checked; the engine
stops in the terminal ``CONVERGED`` state as soon as all of them hold.

Two execution paths share the same buffers and consume the same coordinate
stream:

1.  ``ExchangeEngine.step()`` - one attempt through the Lattice/Histogram
    objects, bounds-checked at every access.
2.  ``ExchangeEngine.run()`` - chunks of attempts through
    ``run_exchange_kernel``, compiled with ``@numba.njit``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
import time

import numpy as np
from numba import njit

from .errors import ConfigurationError, InvariantViolation
from .histogram import EquilibriumMonitor, OccupancyHistogram
from .lattice import CoordinateSampler, Lattice

###############################################################################
# Constants
###############################################################################

RUNNING = "running"
CONVERGED = "converged"

DEFAULT_CHUNK_ATTEMPTS = 65_536

###############################################################################
# Kernels
###############################################################################


@njit(cache=True)
def _thresholds_hold(buckets, levels, fractions, total_quanta):
    n_buckets = buckets.shape[0]
    for k in range(levels.shape[0]):
        level = levels[k]
        count = buckets[level] if level < n_buckets else 0
        if count < fractions[k] * total_quanta:
            return False
    return True


@njit(cache=True, boundscheck=False)
def run_exchange_kernel(counts, buckets, coords, strides, levels, fractions, total_quanta):
    """
    Apply exchange attempts until the thresholds hold or the coordinates run out.

    ``coords`` holds two rows per attempt (source, then destination). Returns
    ``(attempts_used, transfers, converged)``; only the first
    ``2 * attempts_used`` rows of ``coords`` have been consumed.
    """
    n_attempts = coords.shape[0] // 2
    n_dim = strides.shape[0]
    transfers = 0

    for attempt in range(n_attempts):
        src = 0
        dst = 0
        for axis in range(n_dim):
            src += coords[2 * attempt, axis] * strides[axis]
            dst += coords[2 * attempt + 1, axis] * strides[axis]

        if counts[src] != 0 and src != dst:
            src_level = counts[src]
            dst_level = counts[dst]
            counts[src] = src_level - 1
            counts[dst] = dst_level + 1
            buckets[src_level] -= 1
            buckets[src_level - 1] += 1
            buckets[dst_level] -= 1
            buckets[dst_level + 1] += 1
            transfers += 1

        if _thresholds_hold(buckets, levels, fractions, total_quanta):
            return attempt + 1, transfers, True

    return n_attempts, transfers, False


###############################################################################
# Engine
###############################################################################


@dataclass
class ExchangeOutcome:
    """What a call to ``ExchangeEngine.run`` achieved."""

    converged: bool
    attempts: int
    transfers: int


class ExchangeEngine:
    """
    Two-state machine (``RUNNING`` -> ``CONVERGED``) driving quantum exchange.

    The engine owns no storage of its own; it mutates the lattice counts and
    histogram buckets it was handed, and nothing else may touch them while it
    runs.
    """

    def __init__(
        self,
        lattice: Lattice,
        sampler: CoordinateSampler,
        histogram: OccupancyHistogram,
        monitor: EquilibriumMonitor,
        total_quanta: Optional[int] = None,
        *,
        chunk_attempts: int = DEFAULT_CHUNK_ATTEMPTS,
        verbose: bool = False,
        check_consistency: bool = False,
    ) -> None:
        if chunk_attempts < 1:
            raise ConfigurationError(f"chunk_attempts must be >= 1, got {chunk_attempts}")
        if sampler.side != lattice.side or sampler.dimension != lattice.dimension:
            raise ConfigurationError("Sampler geometry does not match the lattice")
        self.lattice = lattice
        self.sampler = sampler
        self.histogram = histogram
        self.monitor = monitor
        self.total_quanta = lattice.total_quanta() if total_quanta is None else int(total_quanta)
        self.chunk_attempts = int(chunk_attempts)
        self.verbose = verbose
        self.check_consistency = check_consistency

        self._levels, self._fractions = monitor.as_arrays()
        self.attempts = 0
        self.transfers = 0
        self.state = RUNNING
        self._update_state()

    @property
    def converged(self) -> bool:
        return self.state == CONVERGED

    def _update_state(self) -> None:
        if self.monitor.is_converged(self.histogram, self.total_quanta):
            self.state = CONVERGED

    def step(self) -> bool:
        """
        Perform one exchange attempt. Returns True if a quantum moved.

        Does nothing (and draws nothing) once the engine has converged.
        """
        if self.state == CONVERGED:
            return False
        source = self.sampler.next_coordinate()
        dest = self.sampler.next_coordinate()
        self.attempts += 1

        moved = False
        source_level = self.lattice.get(source)
        if source_level != 0 and source != dest:
            dest_level = self.lattice.get(dest)
            self.lattice.decrement(source)
            self.lattice.increment(dest)
            self.histogram.record_transfer(source_level, dest_level)
            self.transfers += 1
            moved = True

        self._update_state()
        return moved

    def run(self, max_iterations: Optional[int] = None) -> ExchangeOutcome:
        """
        Exchange until converged, or until ``max_iterations`` attempts were made.

        With no cap the loop is unbounded; a lattice that cannot reach the
        thresholds (a single site, say) will never return.
        """
        if max_iterations is not None and max_iterations < 0:
            raise ConfigurationError(f"max_iterations must be >= 0, got {max_iterations}")
        start_attempts = self.attempts
        start_transfers = self.transfers
        start_time = time.time()

        while self.state == RUNNING:
            budget = self.chunk_attempts
            if max_iterations is not None:
                remaining = max_iterations - (self.attempts - start_attempts)
                if remaining <= 0:
                    break
                budget = min(budget, remaining)

            coords = np.ascontiguousarray(self.sampler.peek(2 * budget))
            used, moved, converged = run_exchange_kernel(
                self.lattice.counts,
                self.histogram.buckets,
                coords,
                self.lattice.strides,
                self._levels,
                self._fractions,
                self.total_quanta,
            )
            used = int(used)
            self.sampler.advance(2 * used)
            self.attempts += used
            self.transfers += int(moved)
            if converged:
                self.state = CONVERGED

            if self.check_consistency and not self.histogram.matches(self.lattice):
                raise InvariantViolation(
                    f"Histogram diverged from lattice after {self.attempts} attempts"
                )

            if self.verbose:
                elapsed = time.time() - start_time
                print(
                    f"[exchange] attempts={self.attempts}, transfers={self.transfers}, "
                    f"state={self.state}, elapsed={elapsed:.1f}s"
                )

        return ExchangeOutcome(
            converged=self.state == CONVERGED,
            attempts=self.attempts - start_attempts,
            transfers=self.transfers - start_transfers,
        )


__all__ = [
    "RUNNING",
    "CONVERGED",
    "ExchangeOutcome",
    "ExchangeEngine",
    "run_exchange_kernel",
]
