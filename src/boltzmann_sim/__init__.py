"""
Boltzmann Lattice Simulator

Quanta of energy are exchanged at random between the sites of a D-dimensional
lattice until the occupancy histogram settles into a Boltzmann-like shape:
- Lattice / CoordinateSampler: storage and seeded coordinate draws
- OccupancyHistogram / EquilibriumMonitor: incremental level counts and the
  convergence test
- ExchangeEngine: the single-quantum transfer state machine
- BoltzmannSimulator: wires the pieces together for one run
"""

from .errors import (
    AllocationError,
    BoltzmannError,
    ConfigurationError,
    InvariantViolation,
    ReportError,
)
from .lattice import CoordinateSampler, Lattice
from .histogram import EquilibriumMonitor, OccupancyHistogram, THRESHOLDS_2D, THRESHOLDS_3D
from .exchange import CONVERGED, RUNNING, ExchangeEngine, ExchangeOutcome
from .simulator import BoltzmannSimulator, SimulationConfig, run_model
from . import utils

__all__ = [
    # Core components
    "Lattice",
    "CoordinateSampler",
    "OccupancyHistogram",
    "EquilibriumMonitor",
    "ExchangeEngine",
    "ExchangeOutcome",
    "RUNNING",
    "CONVERGED",
    "THRESHOLDS_2D",
    "THRESHOLDS_3D",
    # Simulator
    "BoltzmannSimulator",
    "SimulationConfig",
    "run_model",
    # Errors
    "BoltzmannError",
    "ConfigurationError",
    "AllocationError",
    "InvariantViolation",
    "ReportError",
    # Utilities
    "utils",
]
