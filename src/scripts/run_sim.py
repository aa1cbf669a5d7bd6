# src/scripts/run_sim.py
import sys
from pathlib import Path

SRC = Path(__file__).resolve().parents[1]
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from boltzmann_sim import cli

if __name__ == "__main__":
    sys.exit(cli.main())
