from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Dict, Optional, Sequence, Tuple
import time

from . import utils
from .errors import ConfigurationError
from .exchange import DEFAULT_CHUNK_ATTEMPTS, ExchangeEngine, ExchangeOutcome
from .histogram import OccupancyHistogram, resolve_monitor
from .lattice import DEFAULT_BLOCK_SIZE, CoordinateSampler, Lattice


def _as_int(name: str, value: Any, *, minimum: Optional[int] = None) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    try:
        result = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from exc
    if isinstance(value, float) and value != result:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    if minimum is not None and result < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {result}")
    return result


@dataclass
class SimulationConfig:
    """Lattice geometry, random seed and run limits for one simulation."""

    side: int = 10
    dimension: int = 2
    seed: Optional[int] = None
    thresholds: Optional[Sequence[Tuple[int, float]]] = None
    max_iterations: Optional[int] = None
    block_size: int = DEFAULT_BLOCK_SIZE
    chunk_attempts: int = DEFAULT_CHUNK_ATTEMPTS
    verbose: bool = False
    check_consistency: bool = False

    def validate(self) -> "SimulationConfig":
        self.side = _as_int("side", self.side, minimum=1)
        self.dimension = _as_int("dimension", self.dimension, minimum=1)
        if self.seed is not None:
            self.seed = _as_int("seed", self.seed, minimum=0)
        if self.max_iterations is not None:
            self.max_iterations = _as_int("max_iterations", self.max_iterations, minimum=0)
        self.block_size = _as_int("block_size", self.block_size, minimum=1)
        self.chunk_attempts = _as_int("chunk_attempts", self.chunk_attempts, minimum=1)
        if self.thresholds is not None:
            try:
                self.thresholds = tuple(
                    (int(level), float(fraction)) for level, fraction in self.thresholds
                )
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(
                    f"thresholds must be (level, fraction) pairs, got {self.thresholds!r}"
                ) from exc
        return self

    @classmethod
    def from_dict(cls, params: Dict[str, Any]) -> "SimulationConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(params) - known)
        if unknown:
            raise ConfigurationError(f"Unknown simulation parameters: {', '.join(unknown)}")
        return cls(**params).validate()


class BoltzmannSimulator:
    """
    Owns one lattice and everything that acts on it.

    Construction allocates the lattice, deposits one quantum per site at
    random coordinates and seeds the histogram; ``run()`` then exchanges
    quanta until the equilibrium thresholds are met.
    """

    def __init__(self, config: SimulationConfig | None = None) -> None:
        self.config = (config or SimulationConfig()).validate()
        cfg = self.config

        self.monitor = resolve_monitor(cfg.dimension, cfg.thresholds)
        self.lattice = Lattice(cfg.side, cfg.dimension)
        self.sampler = CoordinateSampler(
            cfg.side, cfg.dimension, cfg.seed, block_size=cfg.block_size
        )
        self.total_quanta = self.lattice.total_sites()
        self.lattice.deposit(self.sampler, self.total_quanta)
        self.histogram = OccupancyHistogram.from_lattice(self.lattice)
        self.engine = ExchangeEngine(
            self.lattice,
            self.sampler,
            self.histogram,
            self.monitor,
            self.total_quanta,
            chunk_attempts=cfg.chunk_attempts,
            verbose=cfg.verbose,
            check_consistency=cfg.check_consistency,
        )
        self.elapsed = 0.0
        self.last_outcome: Optional[ExchangeOutcome] = None

    @property
    def converged(self) -> bool:
        return self.engine.converged

    def run(self, max_iterations: Optional[int] = None) -> utils.HistogramResult:
        """Exchange until equilibrium (or the iteration cap) and return the histogram."""
        cfg = self.config
        cap = cfg.max_iterations if max_iterations is None else max_iterations

        if cfg.verbose:
            print(
                f"Running Boltzmann exchange: side={cfg.side}, D={cfg.dimension}, "
                f"sites={self.total_quanta}, seed={cfg.seed}, cap={cap}"
            )

        start = time.time()
        self.last_outcome = self.engine.run(cap)
        self.elapsed += time.time() - start

        if cfg.verbose and not self.engine.converged:
            deficits = self.monitor.deficits(self.histogram, self.total_quanta)
            print(f"[exchange] iteration cap reached; missing sites per level: {deficits}")
        return self.result()

    def result(self) -> utils.HistogramResult:
        cfg = self.config
        meta = {
            "model": "boltzmann",
            "side": cfg.side,
            "dimension": cfg.dimension,
            "seed": cfg.seed,
            "total_quanta": self.total_quanta,
            "thresholds": [list(t) for t in self.monitor.thresholds],
            "converged": self.engine.converged,
            "attempts": self.engine.attempts,
            "transfers": self.engine.transfers,
            "time_elapsed": self.elapsed,
        }
        return utils.HistogramResult.from_counts(self.histogram.snapshot(), meta=meta)


def run_model(config: SimulationConfig | dict | None = None) -> utils.HistogramResult:
    if config is None:
        config = SimulationConfig()
    elif isinstance(config, dict):
        config = SimulationConfig.from_dict(config)
    return BoltzmannSimulator(config).run()


__all__ = ["SimulationConfig", "BoltzmannSimulator", "run_model"]
