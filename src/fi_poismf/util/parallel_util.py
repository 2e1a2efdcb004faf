"""Utilities for row-parallel dispatch over a shared worker pool.

Classes:
    ScratchArena: One scratch allocation partitioned into per-task regions.

Functions:
    open_worker_pool: Open a reusable thread-backed joblib pool.
    split_rows: Partition row indices into contiguous chunks.
    parallel_over_rows: Run a function over row chunks, one arena region per chunk.

"""

from typing import Callable, List, Optional
import numpy as np
from joblib import Parallel, delayed  # type: ignore

from fi_poismf.types import FloatArrayType

RowChunkFunction = Callable[[range, Optional[FloatArrayType]], None]


class ScratchArena:
    """Per-task scratch memory for row solvers.

    A single (n_regions, region_size) block is allocated up front; task t owns
    region t for the duration of its chunk, so no two concurrently running tasks
    ever share scratch memory and no worker-identity lookup is needed.
    """

    def __init__(self, n_regions: int, region_size: int) -> None:
        """Allocate the arena.

        Args:
            n_regions: Number of concurrently active tasks to support
            region_size: Number of float64 entries per region

        Raises:
            MemoryError: If the allocation cannot be satisfied.
        """
        self._block: FloatArrayType = np.empty((n_regions, region_size))

    @property
    def n_regions(self) -> int:
        """Number of regions in the arena."""
        return int(self._block.shape[0])

    @property
    def region_size(self) -> int:
        """Number of float64 entries in each region."""
        return int(self._block.shape[1])

    def region(self, t: int) -> FloatArrayType:
        """Scratch region owned by task t.

        Raises:
            IndexError: If t does not name a region of this arena.
        """
        if t < 0 or t >= self.n_regions:
            raise IndexError(
                f"Scratch region {t} requested from an arena of {self.n_regions}."
            )
        return self._block[t]


def open_worker_pool(nthreads: int) -> Parallel:
    """Open a joblib pool of nthreads threads sharing the caller's memory.

    Used as a context manager, the pool's workers are reused by every call made
    inside the block.
    """
    return Parallel(n_jobs=nthreads, prefer="threads", require="sharedmem")


def split_rows(n_rows: int, n_chunks: int) -> List[range]:
    """Split the rows 0..n_rows-1 into at most n_chunks contiguous, nonempty ranges.

    Args:
        n_rows: Number of rows to partition
        n_chunks: Requested number of chunks

    Returns:
        List of ranges covering every row exactly once, in order.
    """
    n_chunks = min(n_chunks, n_rows)
    if n_chunks <= 0:
        return []
    bounds = [(n_rows * t) // n_chunks for t in range(n_chunks + 1)]
    return [range(bounds[t], bounds[t + 1]) for t in range(n_chunks)]


def parallel_over_rows(
    pool: Parallel,
    n_rows: int,
    fn: RowChunkFunction,
    arena: Optional[ScratchArena] = None,
    n_tasks: int = 1,
) -> None:
    """Apply fn to every row, in parallel over contiguous chunks.

    Returns only once every chunk has completed. Exceptions raised by fn are
    propagated to the caller.

    Args:
        pool: Open worker pool
        n_rows: Number of rows to process
        fn: Callable taking (rows, scratch_region); scratch_region is None when
            no arena is supplied
        arena: Optional scratch arena. If supplied, the number of tasks is capped
            by its number of regions and chunk t receives region t.
        n_tasks: Number of chunks to use when no arena is supplied
    """
    if arena is not None:
        n_tasks = arena.n_regions
    chunks = split_rows(n_rows, n_tasks)
    pool(
        delayed(fn)(rows, None if arena is None else arena.region(t))
        for (t, rows) in enumerate(chunks)
    )
