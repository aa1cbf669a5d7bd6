"""
Occupancy Histogram Plotter.

Draws m(e) against v for a report table or a .npz result, with the
geometric-halving reference curve for comparison.
"""
import argparse
import sys
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np

SRC = Path(__file__).resolve().parents[1]
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from boltzmann_sim import utils
from boltzmann_sim.analysis import reference_counts


def render_histogram(result, output_path, mode="log", title=None):
    levels = np.asarray(result.levels)
    counts = np.asarray(result.counts, dtype=np.float64)
    total_quanta = result.ensure_meta().get("total_quanta", result.total_quanta())
    reference = reference_counts(total_quanta, len(levels))

    print(f"Levels: 0..{int(levels[-1])} | Sites: {result.total_sites():,} | Quanta: {total_quanta:,}")

    fig, ax = plt.subplots(figsize=(8, 5))
    ax.bar(levels, counts, color="steelblue", alpha=0.8, label="Simulation m(e)")
    ax.plot(levels, reference, color="red", linestyle="--", marker="o", markersize=3,
            label=r"Reference $N\,2^{-(v+1)}$")

    if mode == "log":
        ax.set_yscale("log")
        ax.set_ylim(bottom=0.5)
    elif mode != "linear":
        raise ValueError(f"Unknown mode: {mode}")

    ax.set_xlabel("v (quanta per site)")
    ax.set_ylabel("m(e) (sites)")
    ax.set_title(title or "Occupancy Histogram at Equilibrium")
    ax.legend()
    ax.grid(True, which="both", linestyle="--", alpha=0.4)

    if output_path:
        plt.savefig(output_path, dpi=150, bbox_inches="tight")
        print(f"Saved to {output_path}")

    plt.close(fig)


def main():
    parser = argparse.ArgumentParser(description="Occupancy histogram plotter")
    parser.add_argument("file", help="Input .npz result or text report")
    parser.add_argument("--table", type=int, default=-1, help="Table index in a text report (default: last)")
    parser.add_argument("--mode", choices=["log", "linear"], default="log", help="y-axis scale")
    parser.add_argument("--out", default=None, help="Output filename")

    args = parser.parse_args()

    result = utils.load_histogram(args.file, index=args.table)

    if args.out is None:
        input_path = Path(args.file)
        out_path = input_path.parent / (input_path.stem + f"_histogram_{args.mode}.png")
    else:
        out_path = args.out

    render_histogram(result, out_path, args.mode)


if __name__ == "__main__":
    main()
