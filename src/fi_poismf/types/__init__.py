from .enums import (
    SolverStrategy as SolverStrategy,
    InitializationStrategy as InitializationStrategy,
    ReturnStatus as ReturnStatus,
)

from .types import (
    FloatArrayType as FloatArrayType,
    IndexArrayType as IndexArrayType,
    SparseRowView as SparseRowView,
)

from .solverInputTypes import (
    RowSolverInputType as RowSolverInputType,
    HalfIterationData as HalfIterationData,
    ProjectedGradientParameters as ProjectedGradientParameters,
    ConjugateGradientParameters as ConjugateGradientParameters,
    SolverSpecificParameters as SolverSpecificParameters,
)

from .solverReturnTypes import (
    FactorizationResult as FactorizationResult,
    FactorizationReturnType as FactorizationReturnType,
)
