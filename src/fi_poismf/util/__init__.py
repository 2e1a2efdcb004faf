from .aggregate_util import (
    column_sum as column_sum,
    add_l1_penalty as add_l1_penalty,
    weighted_correction as weighted_correction,
)
from .objective_util import RowObjective as RowObjective
from .nonneg_cg_util import minimize_nonneg_cg as minimize_nonneg_cg
from .cancellation_util import (
    CancellationToken as CancellationToken,
    interrupt_on_sigint as interrupt_on_sigint,
)
from .sparse_util import build_sparse_views as build_sparse_views
from .loss_util import (
    poisson_loss as poisson_loss,
    poisson_log_likelihood as poisson_log_likelihood,
)
