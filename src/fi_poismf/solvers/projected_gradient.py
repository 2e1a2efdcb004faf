"""Defines the projected gradient row solver.

Classes:
    ProjectedGradientSolver: Proximal gradient steps with a diminishing step size.

"""

import numpy as np

from fi_poismf.solvers.row_solver_base import RowSolverBase
from fi_poismf.util.objective_util import RowObjective

from fi_poismf.types import (
    FloatArrayType,
    HalfIterationData,
    ProjectedGradientParameters,
    RowSolverInputType,
)


class ProjectedGradientSolver(RowSolverBase):
    """Projected (proximal) gradient updates of each row, as described in
    Cortes (2018).

    Each of the maxupd updates of a row a takes the closed-form step

        a <- max(0, (a + step * w * g(a) - step * S) / (1 + 2 * l2 * step))

    where g(a) = sum_nz (x / (a . b_col)) * b_col is the ascent direction of
    the log-likelihood, S is the row's aggregate (which already includes any L1
    constant) and the division is the proximal operator of the L2 penalty.

    There is no line search: the step is shared by every row and halved after
    each complete outer iteration, so keeping it small enough for the update to
    make progress is up to the caller.
    """

    scratch_width = 1

    def __init__(
        self, indata: RowSolverInputType, custom_params: ProjectedGradientParameters
    ) -> None:
        super().__init__(indata)
        self.step_size: float = custom_params.step_size

    def solve_row(
        self, data: HalfIterationData, i: int, scratch: FloatArrayType
    ) -> None:
        """Apply maxupd projected gradient steps to row i of the free matrix.

        Args:
            data: Shared matrices and aggregates for this half-iteration
            i: Row to update
            scratch: At least k entries of task-owned memory
        """
        row = data.free_matrix[i]
        objective = RowObjective.for_row(data, i, self.l2_reg, self.w_mult)
        descent_term = self.step_size * data.aggregate_for_row(i)
        shrink = 1.0 / (1.0 + 2.0 * self.l2_reg * self.step_size)
        ascent = scratch[: self.target_rank]

        for _ in range(self.maxupd):
            objective.ascent_direction(row, ascent)
            ascent *= self.step_size * self.w_mult
            row += ascent
            row -= descent_term
            row *= shrink
            np.maximum(row, 0.0, out=row)

    def end_iteration(self) -> None:
        """Halve the step size once both matrices have been updated."""
        super().end_iteration()
        self.step_size *= 0.5

    def running_report(self) -> str:
        return f"{super().running_report()} next step size: {self.step_size}"
