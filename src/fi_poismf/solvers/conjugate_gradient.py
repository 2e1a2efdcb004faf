"""Defines the conjugate gradient row solver.

Classes:
    ConjugateGradientSolver: Nonnegative nonlinear conjugate gradient per row.

"""

from fi_poismf.solvers.row_solver_base import RowSolverBase
from fi_poismf.util.objective_util import RowObjective
from fi_poismf.util.nonneg_cg_util import minimize_nonneg_cg, CG_BUFFER_WIDTH

from fi_poismf.types import (
    FloatArrayType,
    HalfIterationData,
    ConjugateGradientParameters,
    RowSolverInputType,
)

CG_TOLERANCE: float = 1e-2
CG_MAX_FUNCTION_EVALUATIONS: int = 150
CG_LINE_SEARCH_DECREASE: float = 0.25
CG_LINE_SEARCH_CONSTANT: float = 0.01
CG_MAX_LINE_SEARCH_STEPS: int = 20


class ConjugateGradientSolver(RowSolverBase):
    """Minimizes each row's objective with a nonnegative nonlinear conjugate
    gradient method, running at most maxupd iterations per row.

    If limit_step is set, every step is capped so that at most one coordinate
    reaches the zero boundary, rather than overshooting past several
    non-negativity constraints in one move.
    """

    scratch_width = CG_BUFFER_WIDTH

    def __init__(
        self, indata: RowSolverInputType, custom_params: ConjugateGradientParameters
    ) -> None:
        super().__init__(indata)
        self.limit_step: bool = custom_params.limit_step

    def solve_row(
        self, data: HalfIterationData, i: int, scratch: FloatArrayType
    ) -> None:
        objective = RowObjective.for_row(data, i, self.l2_reg, self.w_mult)
        minimize_nonneg_cg(
            data.free_matrix[i],
            objective.evaluate,
            tol=CG_TOLERANCE,
            maxnfeval=CG_MAX_FUNCTION_EVALUATIONS,
            maxiter=self.maxupd,
            decr_lnsrch=CG_LINE_SEARCH_DECREASE,
            lnsrch_const=CG_LINE_SEARCH_CONSTANT,
            max_ls=CG_MAX_LINE_SEARCH_STEPS,
            limit_step=self.limit_step,
            buffer=scratch,
        )
