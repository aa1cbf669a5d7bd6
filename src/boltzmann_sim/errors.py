"""Exception types raised by the simulator."""


class BoltzmannError(Exception):
    """Base class for every simulator failure."""


class ConfigurationError(BoltzmannError, ValueError):
    """Malformed or missing run parameters."""


class AllocationError(BoltzmannError, MemoryError):
    """Lattice or histogram storage could not be obtained."""


class InvariantViolation(BoltzmannError, AssertionError):
    """A programming error: negative count, bad coordinate or stale histogram."""


class ReportError(BoltzmannError, OSError):
    """The report file could not be opened for append."""
