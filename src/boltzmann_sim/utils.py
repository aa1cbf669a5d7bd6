# src/boltzmann_sim/utils.py
from __future__ import annotations

import json
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .errors import ConfigurationError, ReportError

try:  # Python 3.11+
    import tomllib
except ModuleNotFoundError:  # pragma: no cover
    tomllib = None  # type: ignore

REPORT_HEADER = "v\tm(e)"
OUTPUT_NAMES = {2: "proj2.out", 3: "proj2_ext.out"}


@dataclass
class HistogramResult:
    """Final occupancy histogram of a run: ``counts[i]`` sites hold ``levels[i]`` quanta."""

    levels: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.int64))
    counts: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.int64))
    meta: Optional[Dict[str, Any]] = None

    @classmethod
    def from_counts(
        cls, counts: Sequence[int], meta: Optional[Dict[str, Any]] = None
    ) -> "HistogramResult":
        counts = np.asarray(counts, dtype=np.int64)
        return cls(levels=np.arange(counts.size, dtype=np.int64), counts=counts, meta=meta)

    def ensure_meta(self) -> Dict[str, Any]:
        if self.meta is None:
            self.meta = {}
        return self.meta

    @property
    def converged(self) -> bool:
        return bool(self.ensure_meta().get("converged", False))

    def as_pairs(self) -> List[Tuple[int, int]]:
        return [(int(v), int(m)) for v, m in zip(self.levels, self.counts)]

    def total_sites(self) -> int:
        return int(self.counts.sum())

    def total_quanta(self) -> int:
        return int((self.levels * self.counts).sum())


def now_str() -> str:
    return time.strftime("%Y%m%d-%H%M%S")


def default_report_name(dimension: int) -> str:
    """Fixed append-only report file name for a lattice dimensionality."""
    return OUTPUT_NAMES.get(dimension, f"proj2_{dimension}d.out")


def format_report(result: HistogramResult) -> str:
    lines = [REPORT_HEADER]
    lines.extend(f"{level}\t{count}" for level, count in result.as_pairs())
    return "\n".join(lines) + "\n"


def append_report(path: str | os.PathLike[str], result: HistogramResult) -> None:
    """Append one ``v<TAB>m(e)`` table to ``path``; earlier tables are kept."""
    try:
        with open(path, "a", encoding="utf-8") as fh:
            fh.write(format_report(result))
    except OSError as exc:
        raise ReportError(f"Couldn't open output file {path}: {exc}") from exc


def read_report(path: str | os.PathLike[str]) -> List[HistogramResult]:
    """
    Parse every table in a report file written by :func:`append_report`.
    """
    results: List[HistogramResult] = []
    pairs: Optional[List[Tuple[int, int]]] = None

    def _flush() -> None:
        if pairs is not None:
            levels = np.array([v for v, _ in pairs], dtype=np.int64)
            counts = np.array([m for _, m in pairs], dtype=np.int64)
            results.append(HistogramResult(levels=levels, counts=counts, meta={}))

    with open(path, "r", encoding="utf-8") as fh:
        for lineno, raw in enumerate(fh, start=1):
            line = raw.strip()
            if not line:
                continue
            if line == REPORT_HEADER:
                _flush()
                pairs = []
                continue
            parts = line.split("\t")
            if pairs is None or len(parts) != 2:
                raise ValueError(f"{path}:{lineno}: unexpected report line {line!r}")
            pairs.append((int(parts[0]), int(parts[1])))
    _flush()
    return results


def save_histogram_result(
    path: str | os.PathLike[str], result: HistogramResult, *, overwrite: bool = True
) -> None:
    """Serialize a HistogramResult to a compressed .npz file."""
    if not overwrite and Path(path).exists():
        raise FileExistsError(f"{path} already exists")
    try:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        np.savez_compressed(
            path,
            levels=np.asarray(result.levels, dtype=np.int64),
            counts=np.asarray(result.counts, dtype=np.int64),
            meta=result.meta or {},
        )
    except OSError as exc:
        raise ReportError(f"Couldn't write result file {path}: {exc}") from exc


def load_histogram_result(path: str | os.PathLike[str]) -> HistogramResult:
    data = np.load(path, allow_pickle=True)
    meta: Dict[str, Any] = {}
    if "meta" in data:
        meta_raw = data["meta"]
        if hasattr(meta_raw, "item"):
            try:
                meta = meta_raw.item()
            except ValueError:
                meta = {}
    return HistogramResult(
        levels=data["levels"].astype(np.int64),
        counts=data["counts"].astype(np.int64),
        meta=meta,
    )


def load_histogram(path: str | os.PathLike[str], index: int = -1) -> HistogramResult:
    """Load a result from either a .npz file or a text report (last table by default)."""
    if Path(path).suffix.lower() == ".npz":
        return load_histogram_result(path)
    tables = read_report(path)
    if not tables:
        raise ValueError(f"No histogram tables found in {path}")
    return tables[index]


def load_params(path: str | os.PathLike[str]) -> Dict[str, Any]:
    """
    Load simulation parameters from JSON or TOML.
    """
    path = str(path)
    try:
        with open(path, "rb") as fh:
            data = fh.read()
    except OSError as exc:
        raise ConfigurationError(f"Can't read parameter file {path}: {exc}") from exc
    suffix = Path(path).suffix.lower()
    if suffix in {".json", ""}:
        parse = json.loads
    elif suffix in {".toml", ".tml"}:
        if tomllib is None:
            raise ConfigurationError("tomllib is unavailable; cannot parse TOML files")
        parse = tomllib.loads
    else:
        raise ConfigurationError(f"Unsupported parameter file format: {suffix}")
    try:
        params = parse(data.decode("utf-8"))
    except ValueError as exc:
        raise ConfigurationError(f"Malformed parameter file {path}: {exc}") from exc
    if not isinstance(params, dict):
        raise ConfigurationError(f"Parameter file {path} must hold a table of settings")
    return params
