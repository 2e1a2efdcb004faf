"""Utility functions for the aggregate statistics shared by every row of a half-iteration.

Functions:
    column_sum: Sum the rows of the fixed factor matrix.
    add_l1_penalty: Fold the L1 penalty constant into an aggregate vector.
    weighted_correction: Per-row aggregates for implicit-feedback weighting.

"""

from typing import Optional
import numpy as np
from scipy.sparse import csr_matrix  # type: ignore

from fi_poismf.types import FloatArrayType, SparseRowView


def column_sum(
    matrix: FloatArrayType, out: Optional[FloatArrayType] = None
) -> FloatArrayType:
    """Compute the sum of the rows of a factor matrix.

    Every cell of X, observed or not, contributes its prediction a . b_j to the
    Poisson likelihood; summed over j, this is a . colsum(B), so the column sum of
    the fixed matrix is the linear coefficient of the free row's objective.

    Args:
        matrix: The fixed factor matrix, shape (n, k)
        out: Optional preallocated array of shape (k,) to receive the result

    Returns:
        Vector of length k.
    """
    return np.sum(matrix, axis=0, out=out)


def add_l1_penalty(aggregate: FloatArrayType, l1_reg: float) -> FloatArrayType:
    """Add the L1 regularization constant to every entry of the aggregate, in place.

    Because factors are nonnegative, the L1 norm of a row is linear in the row and
    its penalty is absorbed into the aggregate's linear term.

    Args:
        aggregate: Aggregate vector to modify
        l1_reg: L1 regularization strength. Nothing is done unless this is positive.

    Returns:
        The aggregate (by reference, even though it is modified in place).
    """
    if l1_reg > 0.0:
        aggregate += l1_reg
    return aggregate


def weighted_correction(
    fixed_matrix: FloatArrayType,
    view: SparseRowView,
    baseline: FloatArrayType,
    w_mult: float,
    *,
    out: Optional[FloatArrayType] = None,
    row_range: Optional[range] = None,
) -> FloatArrayType:
    """Compute per-row aggregates when observed entries carry extra weight.

    With weight multiplier w, each observed cell counts w times against the
    implicit background of weight 1, so for row i:

        correction[i] = baseline + (w - 1) * sum_{j in nz(i)} fixed_matrix[j]

    Only the sparsity pattern of the view is used, not its values. With w == 1
    this just broadcasts the baseline; callers are expected not to allocate
    the correction at all in that case.

    Args:
        fixed_matrix: The fixed factor matrix, shape (n_fixed, k)
        view: Sparse view oriented toward the free matrix's rows
        baseline: Column sum of the fixed matrix (plus any L1 constant)
        w_mult: Weight multiplier for observed entries
        out: Optional preallocated array with at least view.n_rows rows
        row_range: If given, only these rows are computed (and written into
            the corresponding rows of out). Used to split the work across tasks.

    Returns:
        The correction matrix, shape (view.n_rows, k).
    """
    if out is None:
        out = np.empty((view.n_rows, fixed_matrix.shape[1]))
    if row_range is None:
        row_range = range(view.n_rows)
    start, stop = row_range.start, row_range.stop
    if stop <= start:
        return out

    first_nz = view.indptr[start]
    last_nz = view.indptr[stop]
    pattern = csr_matrix(
        (
            np.ones(last_nz - first_nz),
            view.indices[first_nz:last_nz],
            view.indptr[start : stop + 1] - first_nz,
        ),
        shape=(stop - start, fixed_matrix.shape[0]),
    )
    block = out[start:stop]
    block[:] = pattern @ fixed_matrix
    block *= w_mult - 1.0
    block += baseline
    return out
