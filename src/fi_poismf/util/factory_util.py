"""Utility functions for instantiating row solvers.

Functions:
    instantiate_solver: Factory function for row solvers.
    default_solver_params: Solver-specific parameters built from flat driver arguments.

"""

from typing import Optional

from fi_poismf.solvers import (
    RowSolverBase,
    ProjectedGradientSolver,
    ConjugateGradientSolver,
    TruncatedNewtonSolver,
)

from fi_poismf.types import (
    RowSolverInputType,
    SolverSpecificParameters,
    SolverStrategy,
    ProjectedGradientParameters,
    ConjugateGradientParameters,
)


def instantiate_solver(
    s: SolverStrategy,
    data_in: RowSolverInputType,
    *,
    solver_params: Optional[SolverSpecificParameters] = None,
) -> RowSolverBase:
    """Factory function to instantiate and configure a row solver.

    Args:
        s: The defined SolverStrategy to instantiate
        data_in: Input data for the solver
        solver_params: Optional solver-specific parameters. Solvers that take them
            fall back to their defaults if None. Defaults to None.

    Raises:
        TypeError: Raised if the solver parameters do not match the requested solver.
        ValueError: Raised if an unrecognized solver type is requested.

    Returns:
        The instantiated row solver, conforming to the standard interface.
    """
    solver: Optional[RowSolverBase] = None
    if s == SolverStrategy.PROJECTED_GRADIENT:
        if solver_params is None:
            solver_params = ProjectedGradientParameters()
        if not isinstance(solver_params, ProjectedGradientParameters):
            raise TypeError(
                "Projected gradient requires ProjectedGradientParameters as solver_params."
            )
        solver = ProjectedGradientSolver(data_in, solver_params)
    elif s == SolverStrategy.CONJUGATE_GRADIENT:
        if solver_params is None:
            solver_params = ConjugateGradientParameters()
        if not isinstance(solver_params, ConjugateGradientParameters):
            raise TypeError(
                "Conjugate gradient requires ConjugateGradientParameters as solver_params."
            )
        solver = ConjugateGradientSolver(data_in, solver_params)
    elif s == SolverStrategy.TRUNCATED_NEWTON:
        if solver_params is not None:
            raise TypeError("Truncated Newton does not accept solver_params.")
        solver = TruncatedNewtonSolver(data_in)
    else:
        raise ValueError(f"Unsupported solver strategy {s}")
    if solver is None:
        raise ValueError("Error in solver configuration: solver not initialized.")
    return solver


def default_solver_params(
    s: SolverStrategy, step_size: float, limit_step: bool
) -> Optional[SolverSpecificParameters]:
    """Build the parameter object for strategy s from the flat driver arguments.

    step_size only applies to projected gradient and limit_step only to
    conjugate gradient; the other is ignored.
    """
    if s == SolverStrategy.PROJECTED_GRADIENT:
        return ProjectedGradientParameters(step_size)
    if s == SolverStrategy.CONJUGATE_GRADIENT:
        return ConjugateGradientParameters(limit_step)
    return None
