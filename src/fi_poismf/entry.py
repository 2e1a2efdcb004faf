"""Defines the main entry point for fitting a Poisson factorization.

Functions:
    factorize: Main library entry point. Validates input, initializes the factors
        and runs the alternating optimization driver.

"""

from typing import Any, Optional, Tuple
import time
import logging
import numpy as np
from scipy.sparse import issparse  # type: ignore

from fi_poismf.driver import AlternatingOptimizationDriver
from fi_poismf.types import (
    FactorizationResult,
    FactorizationReturnType,
    FloatArrayType,
    InitializationStrategy,
    ProjectedGradientParameters,
    ReturnStatus,
    RowSolverInputType,
    SolverSpecificParameters,
    SolverStrategy,
)
from fi_poismf.util.cancellation_util import CancellationToken, interrupt_on_sigint
from fi_poismf.util.factory_util import instantiate_solver
from fi_poismf.util.initialization_util import initialize_factors
from fi_poismf.util.loss_util import poisson_loss
from fi_poismf.util.sparse_util import build_sparse_views, to_csr

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS: int = 10
DEFAULT_MAX_UPDATES = {
    SolverStrategy.PROJECTED_GRADIENT: 10,
    SolverStrategy.CONJUGATE_GRADIENT: 5,
    SolverStrategy.TRUNCATED_NEWTON: 15,
}


def validate_sparse_matrix(sparse_matrix_X: Any) -> None:
    """Confirms that the input matrix is actually nonnegative.

    Args:
        sparse_matrix_X: Dense or scipy.sparse count matrix to verify.

    Raises:
        ValueError: Raised if the input matrix is not two-dimensional or contains
            negative elements.
    """
    if np.ndim(sparse_matrix_X) != 2:
        raise ValueError("Input matrix must be two-dimensional.")
    # lil and dok do not keep their values in a flat .data array
    values = (
        sparse_matrix_X.tocsr().data if issparse(sparse_matrix_X) else sparse_matrix_X
    )
    if np.any(np.asarray(values) < 0):
        raise ValueError("Sparse input matrix must be nonnegative.")


def validate_hyperparameters(
    target_rank: int, l1_reg: float, l2_reg: float, w_mult: float, nthreads: int
) -> None:
    """Reject hyperparameters for which the optimization is undefined.

    Raises:
        ValueError: Raised on a rank or thread count below 1, negative
            regularization, or a weight multiplier below 1.
    """
    if target_rank < 1:
        raise ValueError(f"Target rank must be at least 1, got {target_rank}.")
    if l1_reg < 0 or l2_reg < 0:
        raise ValueError("Regularization strengths must be nonnegative.")
    if w_mult < 1:
        raise ValueError(f"Weight multiplier must be at least 1, got {w_mult}.")
    if nthreads < 1:
        raise ValueError(f"Thread count must be at least 1, got {nthreads}.")


def validate_solver_params(solver_params: Optional[SolverSpecificParameters]) -> None:
    """Reject a projected gradient step that is not strictly positive."""
    if (
        isinstance(solver_params, ProjectedGradientParameters)
        and solver_params.step_size <= 0
    ):
        raise ValueError(
            f"Step size must be positive, got {solver_params.step_size}."
        )


def compute_max_iterations(manual_max_iterations: Optional[int]) -> int:
    """Helper function to compute the number of outer iterations to run,
    if not supplied by user.

    Args:
        manual_max_iterations: If supplied by the user, this value will be used

    Returns:
        The number of outer iterations.
    """
    if manual_max_iterations is not None:
        return manual_max_iterations
    return DEFAULT_MAX_ITERATIONS


def compute_max_updates(
    manual_max_updates: Optional[int], solver_strategy: SolverStrategy
) -> int:
    """Helper function to compute the per-row update budget, if not supplied by user.

    Truncated Newton counts function evaluations rather than updates, so its
    default budget is larger.

    Args:
        manual_max_updates: If supplied by the user, this value will be used
        solver_strategy: The row solver in use

    Returns:
        Per-row update budget for each half-iteration.
    """
    if manual_max_updates is not None:
        return manual_max_updates
    return DEFAULT_MAX_UPDATES.get(solver_strategy, 1)


def do_final_report(
    loop_start_time: float,
    run_start_time: float,
    driver: AlternatingOptimizationDriver,
    status: ReturnStatus,
    loss: Optional[float],
) -> FactorizationResult:
    """Logs a run summary and timings, and packages the result.

    Args:
        loop_start_time: Timestamp of main loop start
        run_start_time: Timestamp of initialization start
        driver: The driver used during the main loop
        status: Status returned by the driver
        loss: Final loss, if it was tracked

    Returns:
        The factors and run bookkeeping.
    """
    end_time = time.perf_counter()
    init_e = loop_start_time - run_start_time
    loop_e = end_time - loop_start_time
    per_loop_e = loop_e / (
        driver.elapsed_iterations if driver.elapsed_iterations > 0 else 1
    )
    floss = str(loss) if loss is not None else "Not Tracked"
    result = FactorizationReturnType(
        f"{driver.elapsed_iterations} total, status {status.name}, final loss {floss}",
        FactorizationResult(
            (driver.factor_A, driver.factor_B),
            status,
            driver.elapsed_iterations,
            cancelled=driver.cancelled,
            loss=loss,
        ),
    )
    logger.info(result.summary)
    logger.info(
        f"\tInitialization took {init_e} loop took {loop_e} overall ({per_loop_e}/ea)"
    )
    return result.data


def factorize(
    sparse_matrix_X: Any,
    target_rank: int,
    solver_strategy: SolverStrategy = SolverStrategy.TRUNCATED_NEWTON,
    *,
    initialization: InitializationStrategy = InitializationStrategy.RANDOM_GAMMA,
    initial_factors: Optional[Tuple[FloatArrayType, FloatArrayType]] = None,
    solver_params: Optional[SolverSpecificParameters] = None,
    l1_reg: float = 0.0,
    l2_reg: float = 0.0,
    w_mult: float = 1.0,
    manual_max_iterations: Optional[int] = None,
    maxupd: Optional[int] = None,
    nthreads: int = 1,
    random_state: Optional[int] = None,
    track_loss: bool = False,
    verbose: bool = False,
    cancel_token: Optional[CancellationToken] = None,
    catch_interrupt: bool = False,
) -> FactorizationResult:
    """Fit a Poisson factorization X ~ A @ B.T of a sparse count matrix.

    This is the main entry point for the library. The function validates the input,
    builds the row- and column-oriented sparse views, initializes the factors and
    runs the alternating optimization driver.

    Args:
        sparse_matrix_X: The (dimA, dimB) nonnegative count matrix, dense or any
            scipy.sparse format
        target_rank: Number of latent factors k
        solver_strategy: Choice of row solver. Defaults to truncated Newton.
        initialization: Strategy for initializing the factors. Defaults to
            InitializationStrategy.RANDOM_GAMMA.
        initial_factors: The initial (A, B), used if the KNOWN_FACTORS strategy is
            chosen (which allows the user to start from a checkpoint). Defaults to None.
        solver_params: Optional solver-specific parameters. Defaults to None.
        l1_reg: L1 regularization strength. Defaults to 0.
        l2_reg: L2 regularization strength. Defaults to 0.
        w_mult: Weight multiplier (>= 1) for the observed entries. Defaults to 1.
        manual_max_iterations: If set, the number of outer iterations to run. If
            None (default), 10 iterations are run.
        maxupd: Per-row update budget in each half-iteration. If None (default),
            10 for projected gradient, 5 for conjugate gradient and 15 (function
            evaluations) for truncated Newton.
        nthreads: Number of worker threads. Defaults to 1.
        random_state: Seed for the random initialization strategies.
        track_loss: If set, the loss is computed and logged after every outer
            iteration. Defaults to False.
        verbose: If set, will log run status updates. Defaults to False.
        cancel_token: Optional token through which the caller can stop the run
            at the next half-iteration boundary.
        catch_interrupt: If set, SIGINT cancels the run instead of raising
            KeyboardInterrupt. Defaults to False.

    Raises:
        ValueError: Raised on invalid input or hyperparameters.
        TypeError: Raised if solver_params do not match the solver strategy.

    Returns:
        An object with the fitted factors and the status of the run.
    """
    if verbose:
        logger.setLevel(logging.INFO)
    logger.info(
        f"\tInitiating run, target_rank: {target_rank}, solver: {solver_strategy.name}"
    )

    validate_sparse_matrix(sparse_matrix_X)
    validate_hyperparameters(target_rank, l1_reg, l2_reg, w_mult, nthreads)
    validate_solver_params(solver_params)
    max_iterations = compute_max_iterations(manual_max_iterations)
    max_updates = compute_max_updates(maxupd, solver_strategy)

    run_start_time = time.perf_counter()
    csr_X = to_csr(sparse_matrix_X)
    (row_view, col_view) = build_sparse_views(csr_X)
    (factor_A, factor_B) = initialize_factors(
        initialization,
        csr_X,
        target_rank,
        rng=np.random.default_rng(random_state),
        known_factors=initial_factors,
    )
    solver = instantiate_solver(
        solver_strategy,
        RowSolverInputType(target_rank, l2_reg, w_mult, max_updates),
        solver_params=solver_params,
    )
    token = cancel_token if cancel_token is not None else CancellationToken()
    driver = AlternatingOptimizationDriver(
        factor_A,
        factor_B,
        row_view,
        col_view,
        solver,
        l1_reg=l1_reg,
        nthreads=nthreads,
        cancel_token=token,
    )

    loop_start_time = time.perf_counter()
    loss: Optional[float] = None
    status = ReturnStatus.SUCCESS
    if catch_interrupt:
        with interrupt_on_sigint(token):
            status, loss = _run_loop(driver, max_iterations, track_loss, l1_reg, l2_reg)
    else:
        status, loss = _run_loop(driver, max_iterations, track_loss, l1_reg, l2_reg)

    return do_final_report(loop_start_time, run_start_time, driver, status, loss)


def _run_loop(
    driver: AlternatingOptimizationDriver,
    max_iterations: int,
    track_loss: bool,
    l1_reg: float,
    l2_reg: float,
) -> Tuple[ReturnStatus, Optional[float]]:
    """Run the driver, one outer iteration at a time if the loss is tracked."""
    if not track_loss:
        return (driver.run(max_iterations), None)

    loss: Optional[float] = None
    status = ReturnStatus.SUCCESS
    while driver.elapsed_iterations < max_iterations:
        status = driver.run(1)
        if status != ReturnStatus.SUCCESS or driver.cancelled:
            break
        loss = poisson_loss(
            driver.row_view,
            driver.factor_A,
            driver.factor_B,
            l1_reg=l1_reg,
            l2_reg=l2_reg,
            w_mult=driver.solver.w_mult,
        )
        logger.info(f"{driver.running_report()} loss: {loss}")
    return (status, loss)
