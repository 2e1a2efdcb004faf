"""Defines the alternating optimization driver.

Classes:
    AlternatingOptimizationDriver: Alternates row-parallel updates of the two factor matrices.

Functions:
    prepare_half_iteration: Recompute aggregate statistics from the fixed matrix.
    run_half_iteration: Dispatch the row solver over every row of the free matrix.
    run_alternating_optimization: Flat entry point running a full optimization.

"""

from typing import NamedTuple, Optional, cast
import logging
import numpy as np
from joblib import Parallel  # type: ignore

from fi_poismf.solvers import RowSolverBase
from fi_poismf.types import (
    FloatArrayType,
    HalfIterationData,
    ReturnStatus,
    RowSolverInputType,
    SolverStrategy,
    SparseRowView,
)
from fi_poismf.util.aggregate_util import (
    add_l1_penalty,
    column_sum,
    weighted_correction,
)
from fi_poismf.util.cancellation_util import CancellationToken
from fi_poismf.util.factory_util import default_solver_params, instantiate_solver
from fi_poismf.util.parallel_util import (
    ScratchArena,
    open_worker_pool,
    parallel_over_rows,
)

logger = logging.getLogger(__name__)


class DriverBuffers(NamedTuple):
    """Memory allocated for the duration of one driver run."""

    aggregate: FloatArrayType
    weighted_correction: Optional[FloatArrayType]
    arena: ScratchArena


def allocate_buffers(
    solver: RowSolverBase, dim_A: int, dim_B: int, nthreads: int
) -> DriverBuffers:
    """Allocate the aggregate vector, the weighted correction (only if the
    weight multiplier is not 1) and one scratch region per concurrent task.

    Raises:
        MemoryError: If any allocation fails.
    """
    k = solver.target_rank
    aggregate = np.empty(k)
    correction = None
    if solver.w_mult != 1.0:
        correction = np.empty((max(dim_A, dim_B), k))
    n_tasks = max(1, min(nthreads, max(dim_A, dim_B)))
    arena = ScratchArena(n_tasks, solver.scratch_size())
    return DriverBuffers(aggregate, correction, arena)


def prepare_half_iteration(
    free_matrix: FloatArrayType,
    fixed_matrix: FloatArrayType,
    view: SparseRowView,
    buffers: DriverBuffers,
    *,
    l1_reg: float,
    w_mult: float,
    pool: Parallel,
) -> HalfIterationData:
    """Recompute the aggregate statistics that a half-iteration depends on.

    Args:
        free_matrix: The matrix whose rows will be updated
        fixed_matrix: The matrix held fixed
        view: Sparse view of X with one row per row of free_matrix
        buffers: Preallocated aggregate and correction storage
        l1_reg: L1 regularization strength
        w_mult: Weight multiplier for observed entries
        pool: Open worker pool used for the weighted correction

    Returns:
        The data needed by the row solvers for this half-iteration.
    """
    aggregate = column_sum(fixed_matrix, out=buffers.aggregate)
    add_l1_penalty(aggregate, l1_reg)
    correction = None
    if w_mult != 1.0 and buffers.weighted_correction is not None:
        correction = buffers.weighted_correction[: free_matrix.shape[0]]

        def _correct_rows(rows: range, _: Optional[FloatArrayType]) -> None:
            weighted_correction(
                fixed_matrix, view, aggregate, w_mult, out=correction, row_range=rows
            )

        parallel_over_rows(
            pool, free_matrix.shape[0], _correct_rows, n_tasks=buffers.arena.n_regions
        )
    return HalfIterationData(free_matrix, fixed_matrix, view, aggregate, correction)


def run_half_iteration(
    solver: RowSolverBase, data: HalfIterationData, pool: Parallel, arena: ScratchArena
) -> None:
    """Update every row of the free matrix, in parallel over row chunks.

    Returns once all rows are done, so the next half-iteration sees the
    updated matrix.
    """

    def _solve_rows(rows: range, scratch: Optional[FloatArrayType]) -> None:
        solver.solve_rows(data, rows, cast(FloatArrayType, scratch))

    parallel_over_rows(pool, data.free_matrix.shape[0], _solve_rows, arena)


class AlternatingOptimizationDriver:
    """Block-coordinate optimization of the Poisson factorization X ~ A @ B.T.

    Each outer iteration has two half-iterations: first A is free and B fixed
    (rows of A use the row-oriented view of X), then B is free and A fixed
    (rows of B use the column-oriented view). Each half-iteration recomputes
    the aggregate statistics from the fixed matrix, checks for cancellation and
    then re-optimizes every free row with the row solver. The factor matrices
    are updated in place.

    run() may be called repeatedly; the solver, and so the projected gradient
    step schedule, carries over between calls.
    """

    def __init__(
        self,
        factor_A: FloatArrayType,
        factor_B: FloatArrayType,
        row_view: SparseRowView,
        col_view: SparseRowView,
        solver: RowSolverBase,
        *,
        l1_reg: float = 0.0,
        nthreads: int = 1,
        cancel_token: Optional[CancellationToken] = None,
    ) -> None:
        self.factor_A = factor_A
        self.factor_B = factor_B
        self.row_view = row_view
        self.col_view = col_view
        self.solver = solver
        self.l1_reg = l1_reg
        self.nthreads = nthreads
        self.cancel_token = (
            cancel_token if cancel_token is not None else CancellationToken()
        )
        self.elapsed_iterations: int = 0
        self.cancelled: bool = False

    def run(self, numiter: int) -> ReturnStatus:
        """Run numiter outer iterations, or fewer if cancelled.

        The cancellation token is reset on return, whatever the outcome.

        Args:
            numiter: Number of outer iterations

        Returns:
            SUCCESS (including on cancellation), or OUT_OF_MEMORY if buffer
            allocation failed, in which case no factor has been modified by this call.
        """
        try:
            return self._run(numiter)
        finally:
            self.cancel_token.reset()

    def _run(self, numiter: int) -> ReturnStatus:
        try:
            buffers = allocate_buffers(
                self.solver,
                self.factor_A.shape[0],
                self.factor_B.shape[0],
                self.nthreads,
            )
        except MemoryError:
            logger.error("Out of memory while allocating optimization buffers.")
            return ReturnStatus.OUT_OF_MEMORY

        half_iterations = (
            (self.factor_A, self.factor_B, self.row_view),
            (self.factor_B, self.factor_A, self.col_view),
        )
        with open_worker_pool(self.nthreads) as pool:
            for _ in range(numiter):
                for free_matrix, fixed_matrix, view in half_iterations:
                    data = prepare_half_iteration(
                        free_matrix,
                        fixed_matrix,
                        view,
                        buffers,
                        l1_reg=self.l1_reg,
                        w_mult=self.solver.w_mult,
                        pool=pool,
                    )
                    if self.cancel_token.is_cancelled:
                        logger.warning(
                            "Procedure was interrupted after "
                            + f"{self.elapsed_iterations} iterations."
                        )
                        self.cancelled = True
                        return ReturnStatus.SUCCESS
                    run_half_iteration(self.solver, data, pool, buffers.arena)
                self.solver.end_iteration()
                self.elapsed_iterations += 1
        return ReturnStatus.SUCCESS

    def running_report(self) -> str:
        """Reports the number of completed outer iterations and solver state."""
        return f"iteration: {self.elapsed_iterations} ({self.solver.running_report()})"


def run_alternating_optimization(
    factor_A: FloatArrayType,
    factor_B: FloatArrayType,
    row_view: SparseRowView,
    col_view: SparseRowView,
    *,
    l2_reg: float = 0.0,
    l1_reg: float = 0.0,
    w_mult: float = 1.0,
    step_size: float = 1e-7,
    method: SolverStrategy = SolverStrategy.TRUNCATED_NEWTON,
    limit_step: bool = True,
    numiter: int = 10,
    maxupd: int = 1,
    nthreads: int = 1,
    cancel_token: Optional[CancellationToken] = None,
) -> ReturnStatus:
    """Fit the factors of X ~ A @ B.T in place by alternating row-wise optimization.

    Inputs are not validated: both views must describe the same matrix, factors
    must be C-contiguous float64 arrays with k >= 1 columns and should be
    strictly positive.

    Args:
        factor_A: Initialized (dimA, k) factor matrix, updated in place
        factor_B: Initialized (dimB, k) factor matrix, updated in place
        row_view: X in compressed-row form (dimA rows)
        col_view: X transposed, in compressed-row form (dimB rows)
        l2_reg: L2 regularization strength
        l1_reg: L1 regularization strength
        w_mult: Weight multiplier (>= 1) for the observed entries of X
        step_size: Initial step size, used only by projected gradient
        method: Row solver to use
        limit_step: Whether conjugate gradient steps are limited to zeroing out
            at most one variable each
        numiter: Number of outer iterations
        maxupd: Per-row update budget in each half-iteration (iterations for
            projected and conjugate gradient, function evaluations for truncated
            Newton)
        nthreads: Number of worker threads
        cancel_token: Optional token through which the caller can stop the run
            at the next half-iteration boundary. Reset on return.

    Returns:
        ReturnStatus.SUCCESS, or ReturnStatus.OUT_OF_MEMORY if buffer
        allocation failed.
    """
    solver = instantiate_solver(
        method,
        RowSolverInputType(factor_A.shape[1], l2_reg, w_mult, maxupd),
        solver_params=default_solver_params(method, step_size, limit_step),
    )
    driver = AlternatingOptimizationDriver(
        factor_A,
        factor_B,
        row_view,
        col_view,
        solver,
        l1_reg=l1_reg,
        nthreads=nthreads,
        cancel_token=cancel_token,
    )
    return driver.run(numiter)
