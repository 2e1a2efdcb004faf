from typing import Tuple
import numpy as np
from unittest.mock import Mock, patch
from pytest import fixture

from fi_poismf.solvers import TruncatedNewtonSolver
from fi_poismf.solvers.truncated_newton import max_inner_cg_iterations
from fi_poismf.types import HalfIterationData, RowSolverInputType
from fi_poismf.util.aggregate_util import column_sum, weighted_correction
from fi_poismf.util.objective_util import RowObjective
from fi_poismf.util.sparse_util import build_sparse_views

PKG = "fi_poismf.solvers.truncated_newton"
Fixture = Tuple[HalfIterationData, TruncatedNewtonSolver]
RANK = 4


@fixture
def problem() -> Fixture:
    rng = np.random.default_rng(5)
    counts = rng.poisson(1.5, size=(7, 6)).astype(float)
    counts[3, 2] = 6.0
    (row_view, _) = build_sparse_views(counts)
    free = rng.gamma(1.0, 1.0, size=(7, RANK))
    fixed = rng.gamma(1.0, 1.0, size=(6, RANK))
    aggregate = column_sum(fixed)
    correction = weighted_correction(fixed, row_view, aggregate, 2.0)
    data = HalfIterationData(free, fixed, row_view, aggregate, correction)
    solver = TruncatedNewtonSolver(RowSolverInputType(RANK, 0.05, 2.0, 15))
    return (data, solver)


def test_max_inner_cg_iterations_is_clamped() -> None:
    assert max_inner_cg_iterations(1) == 1
    assert max_inner_cg_iterations(2) == 1
    assert max_inner_cg_iterations(3) == 1
    assert max_inner_cg_iterations(10) == 5
    assert max_inner_cg_iterations(100) == 50
    assert max_inner_cg_iterations(1000) == 50


def test_truncated_newton_options(problem: Fixture) -> None:
    (_, solver) = problem
    assert solver.options["maxfun"] == 15
    assert solver.options["maxCGit"] == 2
    np.testing.assert_array_equal(solver.bounds.lb, np.zeros(RANK))
    assert np.all(np.isinf(solver.bounds.ub))
    assert solver.scratch_size() == RANK


@patch(f"{PKG}.minimize")
def test_truncated_newton_writes_clipped_solution(
    mock_minimize: Mock, problem: Fixture
) -> None:
    (data, solver) = problem
    data.free_matrix[1] = [-1.0, 2.0, 3.0, 4.0]
    mock_minimize.return_value = Mock(x=np.array([0.5, -1e-12, 2.0, 0.0]))
    solver.solve_row(data, 1, np.empty(solver.scratch_size()))

    (args, kwargs) = mock_minimize.call_args
    np.testing.assert_array_equal(args[1], [0.0, 2.0, 3.0, 4.0])
    assert kwargs["method"] == "TNC"
    assert kwargs["jac"]
    assert kwargs["options"] is solver.options
    np.testing.assert_array_equal(data.free_matrix[1], [0.5, 0.0, 2.0, 0.0])


def test_truncated_newton_decreases_row_objectives(problem: Fixture) -> None:
    (data, solver) = problem
    objectives = [
        RowObjective.for_row(data, i, solver.l2_reg, solver.w_mult)
        for i in range(data.free_matrix.shape[0])
    ]
    before = [obj.value(row) for (obj, row) in zip(objectives, data.free_matrix)]
    solver.solve_rows(
        data, range(data.free_matrix.shape[0]), np.empty(solver.scratch_size())
    )
    after = [obj.value(row) for (obj, row) in zip(objectives, data.free_matrix)]
    assert np.all(data.free_matrix >= 0.0)
    for b, a in zip(before, after):
        assert a <= b + 1e-10
