#!/usr/bin/env python3
"""
Batch Boltzmann Lattice Runner

Runs one simulation per seed in parallel processes. Each worker returns its
histogram; only the parent process appends to the shared report file, so the
tables land in seed order.
"""

import argparse
import json
import sys
import time
from concurrent.futures import ProcessPoolExecutor, as_completed
from pathlib import Path
from typing import Any, Dict

# Add package source to path
SRC = Path(__file__).resolve().parents[1]
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from boltzmann_sim import BoltzmannSimulator, SimulationConfig, utils


def run_single_simulation(
    side: int, dimension: int, seed: int, max_iterations: int | None, output_path: str
) -> Dict[str, Any]:
    """
    Run one simulation and save its .npz.

    Must stay at module level so ProcessPoolExecutor can pickle it.
    """
    config = SimulationConfig(
        side=side, dimension=dimension, seed=seed, max_iterations=max_iterations
    )
    result = BoltzmannSimulator(config).run()
    utils.save_histogram_result(output_path, result)
    meta = result.ensure_meta()
    return {
        "output_path": output_path,
        "seed": seed,
        "converged": bool(meta["converged"]),
        "attempts": int(meta["attempts"]),
        "max_level": int(result.levels[-1]),
    }


def main():
    parser = argparse.ArgumentParser(
        description="Run a batch of Boltzmann lattice simulations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--size", type=int, required=True, help="Lattice side length")
    parser.add_argument("--dim", type=int, default=2, help="Lattice dimensionality (default: 2)")
    parser.add_argument("--count", type=int, required=True, help="Number of simulations")
    parser.add_argument("--jobs", type=int, default=1, help="Parallel processes (default: 1)")
    parser.add_argument(
        "--base-seed",
        type=int,
        default=42,
        help="Base seed (each simulation gets base_seed + index) (default: 42)",
    )
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=None,
        help="Per-run exchange attempt cap (default: unbounded)",
    )
    parser.add_argument(
        "--report",
        type=str,
        default=None,
        help="Report file to append converged tables to (default: per-dimension name)",
    )

    args = parser.parse_args()

    first_seed = args.base_seed
    last_seed = args.base_seed + args.count - 1

    timestamp = utils.now_str()
    batch_dir = (
        Path("results")
        / "batches"
        / f"boltzmann_D{args.dim}_L{args.size}_S{first_seed}-{last_seed}_{timestamp}"
    )
    batch_dir.mkdir(parents=True, exist_ok=True)
    report_path = args.report or str(batch_dir / utils.default_report_name(args.dim))

    manifest = {
        "side": args.size,
        "dimension": args.dim,
        "count": args.count,
        "base_seed": args.base_seed,
        "jobs": args.jobs,
        "max_iterations": args.max_iterations,
        "timestamp": timestamp,
        "report": report_path,
    }
    manifest_path = batch_dir / "manifest.json"
    with open(manifest_path, "w") as f:
        json.dump(manifest, f, indent=2)

    print("Batch started:")
    print(f"  Lattice: side={args.size}, D={args.dim}")
    print(f"  Total simulations: {args.count}")
    print(f"  Parallel jobs: {args.jobs}")
    print(f"  Output directory: {batch_dir}")
    print()

    tasks = []
    for i in range(args.count):
        seed = args.base_seed + i
        output_path = str(batch_dir / f"{seed}.npz")
        tasks.append((args.size, args.dim, seed, args.max_iterations, output_path))

    start_time = time.time()
    results = []
    failed = []

    with ProcessPoolExecutor(max_workers=args.jobs) as executor:
        future_to_task = {
            executor.submit(run_single_simulation, *task): task for task in tasks
        }
        completed = 0
        for future in as_completed(future_to_task):
            completed += 1
            task = future_to_task[future]
            try:
                result = future.result()
                results.append(result)
                print(
                    f"  [{completed}/{args.count}] seed={result['seed']}, "
                    f"converged={result['converged']}, attempts={result['attempts']}"
                )
            except Exception as e:
                failed.append({"seed": task[2], "error": str(e)})
                print(f"  [{completed}/{args.count}] FAILED: seed={task[2]} - {e}")

    elapsed_time = time.time() - start_time

    for entry in sorted(results, key=lambda r: r["seed"]):
        if entry["converged"]:
            utils.append_report(report_path, utils.load_histogram_result(entry["output_path"]))

    manifest["results"] = {
        "total": args.count,
        "successful": len(results),
        "converged": sum(1 for r in results if r["converged"]),
        "failed": len(failed),
        "elapsed_seconds": elapsed_time,
    }
    manifest["simulations"] = sorted(results, key=lambda r: r["seed"])
    if failed:
        manifest["failures"] = failed
    with open(manifest_path, "w") as f:
        json.dump(manifest, f, indent=2)

    print()
    print("=" * 60)
    print("Batch completed!")
    print(f"  Successful: {len(results)}/{args.count}")
    print(f"  Failed: {len(failed)}/{args.count}")
    print(f"  Total time: {elapsed_time:.2f} seconds")
    print(f"  Report: {report_path}")
    print(f"  Manifest: {manifest_path}")
    print("=" * 60)

    return 0 if len(failed) == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
