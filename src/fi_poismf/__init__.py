from .entry import factorize as factorize
from .driver import (
    AlternatingOptimizationDriver as AlternatingOptimizationDriver,
    run_alternating_optimization as run_alternating_optimization,
)
from .util.cancellation_util import CancellationToken as CancellationToken
