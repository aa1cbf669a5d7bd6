#!/usr/bin/env python3
"""
Boltzmann Lattice Runner

Distributes one quantum per site over a side^D lattice, exchanges quanta at
random until the occupancy histogram reaches equilibrium, and appends the
``v<TAB>m(e)`` table to the report file.

    boltzmann-sim SEED SIZE [--dim 3] [--out FILE]
"""

from __future__ import annotations

import argparse
import sys
from typing import Optional, Sequence

from . import utils
from .errors import BoltzmannError
from .simulator import BoltzmannSimulator, SimulationConfig

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_NOT_CONVERGED = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="boltzmann-sim",
        description="Simulate the Boltzmann distribution of quanta on a lattice",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("seed", type=int, help="Random seed (non-negative integer)")
    parser.add_argument("size", type=int, help="Lattice side length")
    parser.add_argument(
        "--dim",
        type=int,
        default=None,
        help="Lattice dimensionality (default: 2, or the config file value)",
    )
    parser.add_argument(
        "--out",
        type=str,
        default=None,
        help="Report file to append to (default: proj2.out for 2-D, proj2_ext.out for 3-D)",
    )
    parser.add_argument(
        "--npz",
        type=str,
        default=None,
        help="Also save the result as a compressed .npz file",
    )
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=None,
        help="Give up after this many exchange attempts (default: unbounded)",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="JSON or TOML parameter file; command-line values take precedence",
    )
    parser.add_argument("--check", action="store_true", help="Re-scan the histogram after every chunk")
    parser.add_argument("--verbose", action="store_true", help="Print progress")
    return parser


def _collect_params(args: argparse.Namespace) -> dict:
    params = utils.load_params(args.config) if args.config else {}
    params["seed"] = args.seed
    params["side"] = args.size
    if args.dim is not None:
        params["dimension"] = args.dim
    if args.max_iterations is not None:
        params["max_iterations"] = args.max_iterations
    if args.verbose:
        params["verbose"] = True
    if args.check:
        params["check_consistency"] = True
    return params


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = SimulationConfig.from_dict(_collect_params(args))
        simulator = BoltzmannSimulator(config)
        result = simulator.run()

        if not result.converged:
            print(
                f"No equilibrium after {simulator.engine.attempts} attempts; "
                "nothing written.",
                file=sys.stderr,
            )
            return EXIT_NOT_CONVERGED

        out = args.out or utils.default_report_name(config.dimension)
        utils.append_report(out, result)
        if args.npz:
            utils.save_histogram_result(args.npz, result)
    except BoltzmannError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_FAILURE

    meta = result.ensure_meta()
    print(
        f"Equilibrium reached: side={config.side}, D={config.dimension}, "
        f"attempts={meta['attempts']}, transfers={meta['transfers']}, "
        f"max level={int(result.levels[-1])}"
    )
    print(f"   Time elapsed: {meta['time_elapsed']:.2f} seconds")
    print(f"   Report appended to: {out}")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
