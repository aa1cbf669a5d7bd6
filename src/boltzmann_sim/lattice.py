from __future__ import annotations

from typing import Iterator, Optional, Sequence, Tuple

import numpy as np

from .errors import AllocationError, ConfigurationError, InvariantViolation

DEFAULT_BLOCK_SIZE = 4096

Coordinate = Tuple[int, ...]


def row_major_strides(side: int, dimension: int) -> np.ndarray:
    """Strides of a flat buffer holding a side^D grid, last axis fastest."""
    return np.array(
        [side ** (dimension - 1 - axis) for axis in range(dimension)], dtype=np.int64
    )


class Lattice:
    """
    Dense D-dimensional grid of quanta counts held in one flat int64 buffer.

    Coordinates map to offsets row-major, so for a 3-D lattice the strides are
    ``[side**2, side, 1]``.
    """

    def __init__(self, side: int, dimension: int = 2) -> None:
        if side < 1:
            raise ConfigurationError(f"Lattice side must be >= 1, got {side}")
        if dimension < 1:
            raise ConfigurationError(f"Lattice dimension must be >= 1, got {dimension}")
        self.side = int(side)
        self.dimension = int(dimension)
        n_sites = self.side ** self.dimension
        try:
            self.counts = np.zeros(n_sites, dtype=np.int64)
        except (MemoryError, OverflowError, ValueError) as exc:
            raise AllocationError(
                f"Can't allocate {n_sites} lattice sites "
                f"(side={self.side}, dimension={self.dimension})"
            ) from exc
        self.strides = row_major_strides(self.side, self.dimension)

    # ------------------------------------------------------------------ geometry
    @property
    def shape(self) -> Tuple[int, ...]:
        return (self.side,) * self.dimension

    @property
    def grid(self) -> np.ndarray:
        """D-dimensional view onto the flat buffer (no copy)."""
        return self.counts.reshape(self.shape)

    def total_sites(self) -> int:
        return self.counts.size

    def total_quanta(self) -> int:
        return int(self.counts.sum())

    def offset(self, coord: Sequence[int]) -> int:
        if len(coord) != self.dimension:
            raise InvariantViolation(
                f"Expected a {self.dimension}-D coordinate, got {tuple(coord)}"
            )
        flat = 0
        for axis, value in enumerate(coord):
            if value < 0 or value >= self.side:
                raise InvariantViolation(
                    f"Coordinate {tuple(coord)} outside [0, {self.side}) on axis {axis}"
                )
            flat += int(value) * int(self.strides[axis])
        return flat

    def coordinates(self) -> Iterator[Coordinate]:
        """Every coordinate in row-major order."""
        for index in np.ndindex(*self.shape):
            yield tuple(int(v) for v in index)

    # ------------------------------------------------------------------ access
    def get(self, coord: Sequence[int]) -> int:
        return int(self.counts[self.offset(coord)])

    def increment(self, coord: Sequence[int]) -> None:
        self.counts[self.offset(coord)] += 1

    def decrement(self, coord: Sequence[int]) -> None:
        flat = self.offset(coord)
        if self.counts[flat] <= 0:
            raise InvariantViolation(f"Cannot remove a quantum from empty site {tuple(coord)}")
        self.counts[flat] -= 1

    def deposit(self, sampler: "CoordinateSampler", quanta: Optional[int] = None) -> None:
        """
        Drop ``quanta`` single units at sampler coordinates (default: one per site).

        Equivalent to calling ``increment(sampler.next_coordinate())`` that many
        times, but vectorised one sampler block at a time.
        """
        if sampler.side != self.side or sampler.dimension != self.dimension:
            raise InvariantViolation(
                f"Sampler geometry (side={sampler.side}, D={sampler.dimension}) does not "
                f"match the lattice (side={self.side}, D={self.dimension})"
            )
        if quanta is None:
            quanta = self.total_sites()
        remaining = int(quanta)
        try:
            while remaining > 0:
                chunk = min(sampler.block_size, remaining)
                np.add.at(self.counts, sampler.peek(chunk) @ self.strides, 1)
                sampler.advance(chunk)
                remaining -= chunk
        except MemoryError as exc:
            raise AllocationError(
                f"Can't allocate seeding coordinates for {quanta} quanta "
                f"(side={self.side}, dimension={self.dimension})"
            ) from exc


class CoordinateSampler:
    """
    Uniform random lattice coordinates from one explicitly owned generator.

    Integers are drawn from the generator in fixed blocks of ``block_size``
    coordinates (one value per axis, first axis first), so the coordinate
    stream for a given seed does not depend on how callers batch their
    requests.
    """

    def __init__(
        self,
        side: int,
        dimension: int = 2,
        seed: Optional[int] = None,
        *,
        rng: Optional[np.random.Generator] = None,
        block_size: int = DEFAULT_BLOCK_SIZE,
    ) -> None:
        if block_size < 1:
            raise ConfigurationError(f"block_size must be >= 1, got {block_size}")
        self.side = int(side)
        self.dimension = int(dimension)
        self.block_size = int(block_size)
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self._buffer = np.empty((0, self.dimension), dtype=np.int64)
        self._cursor = 0
        self.drawn = 0

    def _available(self) -> int:
        return self._buffer.shape[0] - self._cursor

    def _fill(self, count: int) -> None:
        missing = count - self._available()
        if missing <= 0:
            return
        blocks = [self._buffer[self._cursor:]]
        while missing > 0:
            blocks.append(
                self.rng.integers(
                    0, self.side, size=(self.block_size, self.dimension), dtype=np.int64
                )
            )
            missing -= self.block_size
        self._buffer = np.concatenate(blocks)
        self._cursor = 0

    def peek(self, count: int) -> np.ndarray:
        """The next ``count`` coordinates as a (count, D) array, not consumed."""
        self._fill(count)
        return self._buffer[self._cursor : self._cursor + count]

    def advance(self, count: int) -> None:
        self._fill(count)
        self._cursor += count
        self.drawn += count

    def next_coordinate(self) -> Coordinate:
        coord = tuple(int(v) for v in self.peek(1)[0])
        self.advance(1)
        return coord


__all__ = ["Lattice", "CoordinateSampler", "row_major_strides", "DEFAULT_BLOCK_SIZE"]
