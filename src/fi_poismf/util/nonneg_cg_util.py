"""Nonlinear conjugate gradient minimization under non-negativity constraints.

Functions:
    minimize_nonneg_cg: Minimize a smooth function over the nonnegative orthant, in place.

"""

from typing import Callable, NamedTuple, Optional, Tuple
import numpy as np

from fi_poismf.types import FloatArrayType

EvaluatorType = Callable[[FloatArrayType], Tuple[float, FloatArrayType]]

# Number of length-n work vectors used by minimize_nonneg_cg.
CG_BUFFER_WIDTH: int = 5


class CGResult(NamedTuple):
    """Final objective value and counts of iterations and function evaluations."""

    fun: float
    niter: int
    nfeval: int


def _project_gradient(
    x: FloatArrayType, grad: FloatArrayType, out: FloatArrayType
) -> FloatArrayType:
    """Gradient with the coordinates that are held at the zero bound removed.

    A coordinate at zero whose gradient is positive would be pushed below zero
    by a descent step, so it does not take part in the search direction.
    """
    np.copyto(out, grad)
    out[(x <= 0.0) & (grad > 0.0)] = 0.0
    return out


def _clear_blocked_directions(x: FloatArrayType, direction: FloatArrayType) -> None:
    direction[(x <= 0.0) & (direction < 0.0)] = 0.0


def _max_step_to_boundary(
    x: FloatArrayType, direction: FloatArrayType
) -> Tuple[float, int]:
    """Largest step along direction before the first coordinate reaches zero,
    and that coordinate (-1 if no coordinate is decreasing)."""
    decreasing = np.flatnonzero(direction < 0.0)
    if decreasing.shape[0] == 0:
        return (float("inf"), -1)
    ratios = -x[decreasing] / direction[decreasing]
    pos = int(np.argmin(ratios))
    return (float(ratios[pos]), int(decreasing[pos]))


def minimize_nonneg_cg(
    x: FloatArrayType,
    evaluate: EvaluatorType,
    *,
    tol: float = 1e-4,
    maxnfeval: int = 1500,
    maxiter: int = 200,
    decr_lnsrch: float = 0.5,
    lnsrch_const: float = 0.01,
    max_ls: int = 20,
    limit_step: bool = True,
    buffer: Optional[FloatArrayType] = None,
) -> CGResult:
    """Minimize a function subject to x >= 0 with Polak-Ribiere conjugate gradients.

    Search directions are built from the projected gradient (coordinates stuck at
    zero are frozen), and each step is a backtracking line search on the projected
    point max(0, x + step * d), accepted under an Armijo condition. The direction
    is reset to steepest descent whenever it stops being a descent direction.

    Args:
        x: Starting point of length n; overwritten with the solution
        evaluate: Callable returning (value, gradient) at a point
        tol: Stop once the norm of the projected gradient falls to this value
        maxnfeval: Maximum number of calls to evaluate
        maxiter: Maximum number of accepted steps
        decr_lnsrch: Factor by which the step is shrunk on each line-search retry
        lnsrch_const: Sufficient-decrease constant of the Armijo condition
        max_ls: Maximum number of line-search trials per step
        limit_step: If set, the initial trial step is shortened so that at most
            one variable reaches zero in a single step
        buffer: Optional preallocated work array with at least 5n entries

    Raises:
        ValueError: If the supplied buffer is too small.

    Returns:
        Final value, iterations taken and function evaluations used.
    """
    n = x.shape[0]
    if buffer is None:
        buffer = np.empty(CG_BUFFER_WIDTH * n)
    if buffer.shape[0] < CG_BUFFER_WIDTH * n:
        raise ValueError(
            f"Work buffer of size {buffer.shape[0]} is too small for {n} variables."
        )
    work = buffer[: CG_BUFFER_WIDTH * n].reshape(CG_BUFFER_WIDTH, n)
    direction, proj_grad, prev_proj_grad, new_x, displacement = work

    np.maximum(x, 0.0, out=x)
    (fun, grad) = evaluate(x)
    nfeval = 1
    niter = 0
    _project_gradient(x, grad, proj_grad)
    np.negative(proj_grad, out=direction)

    while niter < maxiter and nfeval < maxnfeval:
        if np.linalg.norm(proj_grad) <= tol:
            break

        step = 1.0
        boundary = -1
        if limit_step:
            (max_step, boundary) = _max_step_to_boundary(x, direction)
            if max_step < step:
                step = max_step
            else:
                boundary = -1

        accepted = False
        new_fun = fun
        new_grad = grad
        for _ in range(max_ls):
            np.multiply(direction, step, out=new_x)
            new_x += x
            np.maximum(new_x, 0.0, out=new_x)
            if boundary >= 0:
                # the limiting coordinate lands exactly on the bound
                new_x[boundary] = 0.0
                boundary = -1
            (new_fun, new_grad) = evaluate(new_x)
            nfeval += 1
            np.subtract(new_x, x, out=displacement)
            if new_fun <= fun + lnsrch_const * float(np.dot(grad, displacement)):
                accepted = True
                break
            if nfeval >= maxnfeval:
                break
            step *= decr_lnsrch
        if not accepted:
            break

        x[:] = new_x
        fun = new_fun
        grad = new_grad
        niter += 1

        prev_proj_grad[:] = proj_grad
        _project_gradient(x, grad, proj_grad)
        prev_norm_sq = float(np.dot(prev_proj_grad, prev_proj_grad))
        beta = 0.0
        if prev_norm_sq > 0.0:
            np.subtract(proj_grad, prev_proj_grad, out=displacement)
            beta = max(0.0, float(np.dot(proj_grad, displacement)) / prev_norm_sq)
        direction *= beta
        direction -= proj_grad
        _clear_blocked_directions(x, direction)
        if float(np.dot(direction, proj_grad)) >= 0.0:
            np.negative(proj_grad, out=direction)

    return CGResult(fun, niter, nfeval)
