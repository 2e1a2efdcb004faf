"""Utility functions for building the sparse views consumed by the optimizer.

Functions:
    to_csr: Convert dense or sparse input into a canonical CSR matrix.
    view_from_csr: Wrap a CSR matrix's arrays in a SparseRowView.
    build_sparse_views: Row- and column-oriented views of the same matrix.

"""

from typing import Any, Tuple
import numpy as np
from scipy.sparse import csr_matrix, issparse  # type: ignore

from fi_poismf.types import SparseRowView


def to_csr(matrix: Any) -> csr_matrix:
    """Convert a dense array or any scipy.sparse matrix to canonical float64 CSR.

    Explicit zeros are dropped and duplicate entries summed, so every stored
    entry is a genuine nonzero.

    Args:
        matrix: Dense array-like or scipy.sparse matrix

    Returns:
        A CSR matrix with sorted indices and no explicit zeros.
    """
    if issparse(matrix):
        result = csr_matrix(matrix, dtype=np.float64, copy=True)
    else:
        result = csr_matrix(np.asarray(matrix, dtype=np.float64))
    result.sum_duplicates()
    result.eliminate_zeros()
    result.sort_indices()
    return result


def view_from_csr(matrix: csr_matrix) -> SparseRowView:
    """Expose the arrays of a CSR matrix as a SparseRowView."""
    return SparseRowView(
        np.ascontiguousarray(matrix.data, dtype=np.float64),
        np.ascontiguousarray(matrix.indices),
        np.ascontiguousarray(matrix.indptr),
    )


def build_sparse_views(matrix: Any) -> Tuple[SparseRowView, SparseRowView]:
    """Build row- and column-oriented views describing the same matrix.

    Args:
        matrix: The (dimA, dimB) count matrix X, dense or sparse

    Returns:
        Tuple of (row view with dimA rows, column view with dimB rows). The
        column view is the CSR form of X transposed.
    """
    row_major = to_csr(matrix)
    col_major = row_major.transpose().tocsr()
    col_major.sort_indices()
    return (view_from_csr(row_major), view_from_csr(col_major))
