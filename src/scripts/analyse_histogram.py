"""
Decay Analysis for Equilibrium Histograms.

Fits log m(e) = slope * v + c and reports the per-level ratio exp(slope),
which the geometric-halving picture puts near 0.5.
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

import numpy as np
from matplotlib import pyplot as plt

SRC = Path(__file__).resolve().parents[1]
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from boltzmann_sim import utils
from boltzmann_sim.analysis import fit_decay, fraction_table


def analyze_histogram(path, table: int = -1, min_count: int = 5, output_path=None, show_plot=False) -> None:
    path = Path(path)
    result = utils.load_histogram(path, index=table)
    fit = fit_decay(result, min_count=min_count)
    fractions = fraction_table(result)

    print("=" * 60)
    print(f"File:            {path}")
    print(f"Levels:          0..{int(result.levels[-1])}")
    print(f"Fit points:      {fit.n_points} (levels with >= {min_count} sites)")
    print(f"Slope:           {fit.slope:.5f} (R² = {fit.r_squared:.6f})")
    print(f"Decay ratio:     {fit.ratio:.5f}")
    for level, fraction in enumerate(fractions[:4]):
        print(f"  m({level}) / N = {fraction:.4f}")
    print("=" * 60)

    mask = result.counts >= max(1, min_count)
    levels = result.levels[mask]
    log_m = np.log(result.counts[mask].astype(np.float64))

    fig, ax = plt.subplots(figsize=(7, 5))
    ax.scatter(levels, log_m, color="black", s=12, label="Simulation Data")
    ax.plot(levels, fit.slope * levels + fit.intercept, color="red", linestyle="--",
            linewidth=2, label=f"Fit: ratio = {fit.ratio:.3f}")
    ax.set_xlabel("v")
    ax.set_ylabel(r"$\log m(e)$")
    ax.set_title(f"Occupation Decay (R² = {fit.r_squared:.4f})")
    ax.legend()
    ax.grid(True, linestyle="--", alpha=0.4)
    plt.tight_layout()

    if output_path is None:
        output_path = path.with_name(path.stem + "_decay.png")
    else:
        output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    plt.savefig(output_path, dpi=150, bbox_inches="tight")
    print(f"\nFigure saved to: {output_path}")

    if show_plot:
        plt.show()
    else:
        plt.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Fit the geometric decay of an equilibrium histogram.")
    parser.add_argument("file", help="Path to a .npz result or text report")
    parser.add_argument("--table", type=int, default=-1, help="Table index in a text report (default: last)")
    parser.add_argument("--min-count", type=int, default=5, help="Ignore levels with fewer sites")
    parser.add_argument("--out", type=str, help="Output path for the figure")
    parser.add_argument("--show", action="store_true", help="Display plot interactively")
    args = parser.parse_args()

    analyze_histogram(args.file, table=args.table, min_count=args.min_count,
                      output_path=args.out, show_plot=args.show)


if __name__ == "__main__":
    main()
