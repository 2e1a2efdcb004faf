"""Defines the truncated-Newton row solver.

Classes:
    TruncatedNewtonSolver: Bound-constrained truncated-Newton CG per row.

"""

import numpy as np
from scipy.optimize import Bounds, minimize  # type: ignore

from fi_poismf.solvers.row_solver_base import RowSolverBase
from fi_poismf.util.objective_util import RowObjective

from fi_poismf.types import (
    FloatArrayType,
    HalfIterationData,
    RowSolverInputType,
)

TNC_ETA: float = 0.25
TNC_MAX_STEP: float = 10.0
TNC_FTOL: float = 1e-4
TNC_RESCALE: float = 1.3


def max_inner_cg_iterations(target_rank: int) -> int:
    """Inner conjugate-gradient iterations per Newton step: k/2, clamped to [1, 50]."""
    return int(max(1.0, min(50.0, target_rank / 2.0)))


class TruncatedNewtonSolver(RowSolverBase):
    """Minimizes each row's objective with scipy's bound-constrained truncated
    Newton method (TNC), with every coordinate boxed to [0, inf).

    maxupd caps the number of objective evaluations per row. The minimizer keeps
    its own working memory, so the task's scratch region only holds the row's
    starting point.
    """

    scratch_width = 1

    def __init__(self, indata: RowSolverInputType) -> None:
        super().__init__(indata)
        self.bounds = Bounds(
            np.zeros(self.target_rank), np.full(self.target_rank, np.inf)
        )
        self.options = {
            "maxCGit": max_inner_cg_iterations(self.target_rank),
            "maxfun": self.maxupd,
            "eta": TNC_ETA,
            "stepmx": TNC_MAX_STEP,
            "accuracy": 0.0,
            "minfev": 0.0,
            "ftol": TNC_FTOL,
            "xtol": -1.0,
            "gtol": -1.0,
            "rescale": TNC_RESCALE,
        }

    def solve_row(
        self, data: HalfIterationData, i: int, scratch: FloatArrayType
    ) -> None:
        row = data.free_matrix[i]
        objective = RowObjective.for_row(data, i, self.l2_reg, self.w_mult)
        start = scratch[: self.target_rank]
        np.maximum(row, 0.0, out=start)
        result = minimize(
            objective.evaluate,
            start,
            method="TNC",
            jac=True,
            bounds=self.bounds,
            options=self.options,
        )
        np.maximum(result.x, 0.0, out=row)
