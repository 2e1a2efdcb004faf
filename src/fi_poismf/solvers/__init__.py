from .projected_gradient import ProjectedGradientSolver as ProjectedGradientSolver
from .conjugate_gradient import ConjugateGradientSolver as ConjugateGradientSolver
from .truncated_newton import TruncatedNewtonSolver as TruncatedNewtonSolver
from .row_solver_base import RowSolverBase as RowSolverBase
