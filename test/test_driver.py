from typing import List, Tuple
import logging
import numpy as np
from unittest.mock import Mock, patch
from pytest import LogCaptureFixture, approx, fixture, mark

from fi_poismf.driver import (
    AlternatingOptimizationDriver,
    allocate_buffers,
    prepare_half_iteration,
    run_alternating_optimization,
    run_half_iteration,
)
from fi_poismf.solvers import ProjectedGradientSolver, RowSolverBase
from fi_poismf.types import (
    FloatArrayType,
    HalfIterationData,
    ProjectedGradientParameters,
    ReturnStatus,
    RowSolverInputType,
    SolverStrategy,
    SparseRowView,
)
from fi_poismf.util.cancellation_util import CancellationToken
from fi_poismf.util.loss_util import poisson_loss
from fi_poismf.util.parallel_util import open_worker_pool
from fi_poismf.util.sparse_util import build_sparse_views

PKG = "fi_poismf.driver"
Problem = Tuple[FloatArrayType, FloatArrayType, SparseRowView, SparseRowView]


@fixture
def problem() -> Problem:
    rng = np.random.default_rng(17)
    counts = rng.poisson(1.0, size=(9, 7)).astype(float)
    counts[2, :] = 0.0
    counts[:, 4] = 0.0
    counts[0, 0] = 5.0
    (row_view, col_view) = build_sparse_views(counts)
    factor_A = rng.gamma(1.0, 1.0, size=(9, 3))
    factor_B = rng.gamma(1.0, 1.0, size=(7, 3))
    return (factor_A, factor_B, row_view, col_view)


def _pg_solver(
    step_size: float, w_mult: float = 1.0, target_rank: int = 1
) -> ProjectedGradientSolver:
    return ProjectedGradientSolver(
        RowSolverInputType(target_rank, 0.0, w_mult, 1),
        ProjectedGradientParameters(step_size),
    )


def test_one_iteration_matches_hand_computation() -> None:
    (row_view, col_view) = build_sparse_views(np.eye(2))
    factor_A = np.ones((2, 1))
    factor_B = np.ones((2, 1))
    status = run_alternating_optimization(
        factor_A,
        factor_B,
        row_view,
        col_view,
        step_size=0.1,
        method=SolverStrategy.PROJECTED_GRADIENT,
        numiter=1,
        maxupd=1,
    )
    assert status == ReturnStatus.SUCCESS
    # A: 1 + 0.1 * 1 - 0.1 * 2 (column sum of B)
    np.testing.assert_allclose(factor_A, [[0.9], [0.9]])
    # B: ascent 1 / 0.9 * 0.9 = 1, aggregate 1.8 from the updated A
    np.testing.assert_allclose(factor_B, [[0.92], [0.92]])


def test_allocate_buffers_sizes() -> None:
    solver = _pg_solver(0.1)
    buffers = allocate_buffers(solver, 5, 3, 8)
    assert buffers.aggregate.shape == (1,)
    assert buffers.weighted_correction is None
    assert buffers.arena.n_regions == 5
    assert buffers.arena.region_size == 1

    weighted = allocate_buffers(_pg_solver(0.1, w_mult=2.0), 5, 3, 2)
    assert weighted.weighted_correction is not None
    assert weighted.weighted_correction.shape == (5, 1)
    assert weighted.arena.n_regions == 2


def test_prepare_half_iteration_adds_l1_and_correction(problem: Problem) -> None:
    (factor_A, factor_B, row_view, _) = problem
    solver = ProjectedGradientSolver(
        RowSolverInputType(3, 0.0, 2.0, 1), ProjectedGradientParameters()
    )
    buffers = allocate_buffers(solver, 9, 7, 2)
    with open_worker_pool(2) as pool:
        data = prepare_half_iteration(
            factor_A, factor_B, row_view, buffers, l1_reg=0.5, w_mult=2.0, pool=pool
        )
    expected_aggregate = factor_B.sum(axis=0) + 0.5
    np.testing.assert_allclose(data.aggregate, expected_aggregate)
    assert data.weighted_correction is not None
    assert data.weighted_correction.shape == (9, 3)
    for i in range(9):
        (_, indices) = row_view.row(i)
        np.testing.assert_allclose(
            data.aggregate_for_row(i),
            expected_aggregate + factor_B[indices].sum(axis=0),
        )


def test_half_iteration_roles_are_symmetric(problem: Problem) -> None:
    (factor_A, factor_B, row_view, col_view) = problem
    (transposed_row_view, _) = build_sparse_views(_dense_from_view(row_view, 7).T)
    solver = ProjectedGradientSolver(
        RowSolverInputType(3, 0.1, 2.0, 2), ProjectedGradientParameters(0.01)
    )
    buffers = allocate_buffers(solver, 9, 7, 2)
    # Updating B against X is the same computation as updating A against X.T
    direct = factor_B.copy()
    transposed = factor_B.copy()
    with open_worker_pool(2) as pool:
        data = prepare_half_iteration(
            direct, factor_A, col_view, buffers, l1_reg=0.2, w_mult=2.0, pool=pool
        )
        run_half_iteration(solver, data, pool, buffers.arena)
        data = prepare_half_iteration(
            transposed,
            factor_A,
            transposed_row_view,
            buffers,
            l1_reg=0.2,
            w_mult=2.0,
            pool=pool,
        )
        run_half_iteration(solver, data, pool, buffers.arena)
    assert not np.allclose(direct, factor_B)
    np.testing.assert_allclose(direct, transposed)


def _dense_from_view(view: SparseRowView, n_cols: int) -> FloatArrayType:
    dense = np.zeros((view.n_rows, n_cols))
    for i in range(view.n_rows):
        (values, indices) = view.row(i)
        dense[i, indices] = values
    return dense


@mark.parametrize(
    "method",
    [
        SolverStrategy.PROJECTED_GRADIENT,
        SolverStrategy.CONJUGATE_GRADIENT,
        SolverStrategy.TRUNCATED_NEWTON,
    ],
)
def test_run_keeps_factors_nonnegative(
    method: SolverStrategy, problem: Problem
) -> None:
    (factor_A, factor_B, row_view, col_view) = problem
    status = run_alternating_optimization(
        factor_A,
        factor_B,
        row_view,
        col_view,
        l1_reg=0.3,
        l2_reg=0.2,
        w_mult=2.0,
        step_size=0.05,
        method=method,
        numiter=3,
        maxupd=5,
        nthreads=3,
    )
    assert status == ReturnStatus.SUCCESS
    assert np.all(factor_A >= 0.0)
    assert np.all(factor_B >= 0.0)
    assert np.all(np.isfinite(factor_A))
    assert np.all(np.isfinite(factor_B))


@mark.parametrize(
    "method", [SolverStrategy.CONJUGATE_GRADIENT, SolverStrategy.TRUNCATED_NEWTON]
)
def test_run_decreases_loss(method: SolverStrategy, problem: Problem) -> None:
    (factor_A, factor_B, row_view, col_view) = problem
    before = poisson_loss(row_view, factor_A, factor_B, l2_reg=0.1, w_mult=1.5)
    run_alternating_optimization(
        factor_A,
        factor_B,
        row_view,
        col_view,
        l2_reg=0.1,
        w_mult=1.5,
        method=method,
        numiter=2,
        maxupd=10,
    )
    after = poisson_loss(row_view, factor_A, factor_B, l2_reg=0.1, w_mult=1.5)
    assert after < before


def test_results_do_not_depend_on_thread_count(problem: Problem) -> None:
    (factor_A, factor_B, row_view, col_view) = problem
    results = []
    for nthreads in (1, 4):
        A = factor_A.copy()
        B = factor_B.copy()
        run_alternating_optimization(
            A,
            B,
            row_view,
            col_view,
            method=SolverStrategy.TRUNCATED_NEWTON,
            numiter=2,
            maxupd=10,
            nthreads=nthreads,
        )
        results.append((A, B))
    np.testing.assert_allclose(results[0][0], results[1][0])
    np.testing.assert_allclose(results[0][1], results[1][1])


def test_precancelled_run_leaves_factors_untouched(
    problem: Problem, caplog: LogCaptureFixture
) -> None:
    caplog.set_level(logging.WARNING)
    (factor_A, factor_B, row_view, col_view) = problem
    A = factor_A.copy()
    B = factor_B.copy()
    token = CancellationToken()
    token.cancel()
    status = run_alternating_optimization(
        A,
        B,
        row_view,
        col_view,
        method=SolverStrategy.TRUNCATED_NEWTON,
        numiter=5,
        cancel_token=token,
    )
    assert status == ReturnStatus.SUCCESS
    np.testing.assert_array_equal(A, factor_A)
    np.testing.assert_array_equal(B, factor_B)
    assert not token.is_cancelled
    assert "interrupted after 0 iterations" in caplog.text


class CancellingSolver(ProjectedGradientSolver):
    """Requests cancellation as soon as it has updated its first chunk."""

    def __init__(self, token: CancellationToken) -> None:
        super().__init__(
            RowSolverInputType(3, 0.0, 1.0, 1), ProjectedGradientParameters(0.01)
        )
        self.token = token

    def solve_rows(
        self, data: HalfIterationData, rows: range, scratch: FloatArrayType
    ) -> None:
        super().solve_rows(data, rows, scratch)
        self.token.cancel()


def test_cancellation_stops_at_half_iteration_boundary(problem: Problem) -> None:
    (factor_A, factor_B, row_view, col_view) = problem
    A = factor_A.copy()
    B = factor_B.copy()
    token = CancellationToken()
    driver = AlternatingOptimizationDriver(
        A, B, row_view, col_view, CancellingSolver(token), cancel_token=token
    )
    status = driver.run(4)
    assert status == ReturnStatus.SUCCESS
    assert driver.cancelled
    assert driver.elapsed_iterations == 0
    assert not np.allclose(A, factor_A)
    np.testing.assert_array_equal(B, factor_B)
    assert not token.is_cancelled


def test_cancellation_token_reset_after_normal_run(problem: Problem) -> None:
    (factor_A, factor_B, row_view, col_view) = problem
    token = CancellationToken()
    driver = AlternatingOptimizationDriver(
        factor_A,
        factor_B,
        row_view,
        col_view,
        _pg_solver(0.01, target_rank=3),
        cancel_token=token,
    )
    assert driver.run(1) == ReturnStatus.SUCCESS
    assert not driver.cancelled
    assert driver.elapsed_iterations == 1
    assert not token.is_cancelled


@patch(f"{PKG}.ScratchArena")
def test_run_reports_out_of_memory(
    mock_arena: Mock, problem: Problem, caplog: LogCaptureFixture
) -> None:
    caplog.set_level(logging.ERROR)
    mock_arena.side_effect = MemoryError()
    (factor_A, factor_B, row_view, col_view) = problem
    A = factor_A.copy()
    B = factor_B.copy()
    token = CancellationToken()
    token.cancel()
    status = run_alternating_optimization(
        A, B, row_view, col_view, numiter=3, cancel_token=token
    )
    assert status == ReturnStatus.OUT_OF_MEMORY
    np.testing.assert_array_equal(A, factor_A)
    np.testing.assert_array_equal(B, factor_B)
    assert not token.is_cancelled
    assert "Out of memory" in caplog.text


class RecordingSolver(ProjectedGradientSolver):
    """Records the step size in effect for every chunk it is asked to solve."""

    def __init__(
        self, indata: RowSolverInputType, params: ProjectedGradientParameters
    ) -> None:
        super().__init__(indata, params)
        self.seen_steps: List[float] = []

    def solve_rows(
        self, data: HalfIterationData, rows: range, scratch: FloatArrayType
    ) -> None:
        self.seen_steps.append(self.step_size)
        super().solve_rows(data, rows, scratch)


def test_projected_gradient_step_decays_per_outer_iteration(problem: Problem) -> None:
    (factor_A, factor_B, row_view, col_view) = problem
    created: List[RecordingSolver] = []

    def make_solver(
        _s: SolverStrategy,
        indata: RowSolverInputType,
        *,
        solver_params: ProjectedGradientParameters,
    ) -> RowSolverBase:
        solver = RecordingSolver(indata, solver_params)
        created.append(solver)
        return solver

    with patch(f"{PKG}.instantiate_solver", side_effect=make_solver):
        run_alternating_optimization(
            factor_A,
            factor_B,
            row_view,
            col_view,
            step_size=0.04,
            method=SolverStrategy.PROJECTED_GRADIENT,
            numiter=3,
        )
    assert len(created) == 1
    assert created[0].seen_steps == approx([0.04, 0.04, 0.02, 0.02, 0.01, 0.01])
    assert created[0].step_size == approx(0.005)


def test_driver_running_report(problem: Problem) -> None:
    (factor_A, factor_B, row_view, col_view) = problem
    driver = AlternatingOptimizationDriver(
        factor_A,
        factor_B,
        row_view,
        col_view,
        ProjectedGradientSolver(
            RowSolverInputType(3, 0.0, 1.0, 1), ProjectedGradientParameters(0.01)
        ),
    )
    driver.run(2)
    assert driver.elapsed_iterations == 2
    report = driver.running_report()
    assert report.startswith("iteration: 2")
    assert "0.0025" in report
