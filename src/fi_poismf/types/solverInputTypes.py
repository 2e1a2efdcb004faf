"""Defines types for objects passed to row solvers. Solver-specific parameter
sets will also be included here.

Classes:
    RowSolverInputType: Standard data object for initializing row solvers.
    HalfIterationData: The matrices and aggregate statistics for one half-iteration.
    ProjectedGradientParameters: Additional parameters used by the projected gradient solver.
    ConjugateGradientParameters: Additional parameters used by the conjugate gradient solver.

"""

from typing import NamedTuple, Union, Optional
from .types import FloatArrayType, SparseRowView


class RowSolverInputType(NamedTuple):
    """Standard data object for initializing row solvers."""

    target_rank: int
    l2_reg: float
    w_mult: float
    maxupd: int


class HalfIterationData(NamedTuple):
    """Everything a row solver reads or writes during one half-iteration.

    Only rows of free_matrix are written; the remaining members are shared and
    read-only. weighted_correction is None unless the weight multiplier differs
    from 1, in which case it holds one aggregate row per row of free_matrix.
    """

    free_matrix: FloatArrayType
    fixed_matrix: FloatArrayType
    view: SparseRowView
    aggregate: FloatArrayType
    weighted_correction: Optional[FloatArrayType]

    def aggregate_for_row(self, i: int) -> FloatArrayType:
        """Aggregate statistics applying to row i of the free matrix."""
        if self.weighted_correction is None:
            return self.aggregate
        return self.weighted_correction[i]


class ProjectedGradientParameters(NamedTuple):
    """Additional parameters for the projected gradient solver. step_size is the
    initial step, halved after every complete outer iteration."""

    step_size: float = 1e-7


class ConjugateGradientParameters(NamedTuple):
    """Additional parameters for the conjugate gradient solver. If limit_step is
    set, each step is shortened so that at most one variable reaches zero."""

    limit_step: bool = True


SolverSpecificParameters = Union[
    ProjectedGradientParameters, ConjugateGradientParameters
]
