"""Utility functions for evaluating the fit of a factorization.

Functions:
    observed_predictions: Predicted rate A[i] . B[j] for every stored entry of X.
    poisson_loss: The regularized, weighted objective minimized by the optimizer.
    poisson_log_likelihood: Poisson log-likelihood of X under rates A @ B.T.

"""

import numpy as np
from scipy.special import gammaln  # type: ignore

from fi_poismf.types import FloatArrayType, SparseRowView


def observed_predictions(
    row_view: SparseRowView, factor_A: FloatArrayType, factor_B: FloatArrayType
) -> FloatArrayType:
    """Compute A[i] . B[j] for each stored entry (i, j) of the row-oriented view.

    Returns:
        Array aligned with row_view.values.
    """
    rows = np.repeat(np.arange(row_view.n_rows), np.diff(row_view.indptr))
    return np.einsum("ij,ij->i", factor_A[rows], factor_B[row_view.indices])


def poisson_loss(
    row_view: SparseRowView,
    factor_A: FloatArrayType,
    factor_B: FloatArrayType,
    *,
    l1_reg: float = 0.0,
    l2_reg: float = 0.0,
    w_mult: float = 1.0,
) -> float:
    """Compute the full objective that each half-iteration decreases.

    Up to terms constant in the factors, this is

        sum_ij A[i] . B[j] + (w - 1) * sum_nz A[i] . B[j]
            - w * sum_nz x_ij * log(A[i] . B[j])
            + l1 * (|A| + |B|) + l2 * (||A||^2 + ||B||^2)

    which, restricted to one row of either factor, is the per-row objective
    optimized by the row solvers. The first sum runs over every cell of X and
    is computed without materializing A @ B.T.

    Args:
        row_view: Row-oriented view of X
        factor_A: Factor matrix of shape (dimA, k)
        factor_B: Factor matrix of shape (dimB, k)
        l1_reg: L1 regularization strength
        l2_reg: L2 regularization strength
        w_mult: Weight multiplier for observed entries

    Returns:
        Scalar loss (lower is better).
    """
    predictions = observed_predictions(row_view, factor_A, factor_B)
    total_rate = float(np.dot(factor_A.sum(axis=0), factor_B.sum(axis=0)))
    loss = total_rate - w_mult * float(np.dot(row_view.values, np.log(predictions)))
    if w_mult != 1.0:
        loss += (w_mult - 1.0) * float(predictions.sum())
    if l1_reg > 0.0:
        loss += l1_reg * float(np.abs(factor_A).sum() + np.abs(factor_B).sum())
    if l2_reg > 0.0:
        loss += l2_reg * float(np.sum(factor_A**2) + np.sum(factor_B**2))
    return loss


def poisson_log_likelihood(
    row_view: SparseRowView, factor_A: FloatArrayType, factor_B: FloatArrayType
) -> float:
    """Compute the (unregularized, unweighted) Poisson log-likelihood of X.

        sum_nz [x log(rate) - log(x!)] - sum_ij rate_ij

    Args:
        row_view: Row-oriented view of X
        factor_A: Factor matrix of shape (dimA, k)
        factor_B: Factor matrix of shape (dimB, k)

    Returns:
        Scalar log-likelihood (higher is better).
    """
    predictions = observed_predictions(row_view, factor_A, factor_B)
    total_rate = float(np.dot(factor_A.sum(axis=0), factor_B.sum(axis=0)))
    observed = float(
        np.sum(row_view.values * np.log(predictions) - gammaln(row_view.values + 1.0))
    )
    return observed - total_rate
