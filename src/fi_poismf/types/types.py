"""Defines most generally-visible types.

Classes:
    SparseRowView: Read-only compressed-row view of one orientation of the data matrix.

"""

from typing import NamedTuple, Tuple
import numpy as np
import numpy.typing as npt

FloatArrayType = npt.NDArray[np.float64]
IndexArrayType = npt.NDArray[np.int_]


class SparseRowView(NamedTuple):
    """Compressed-row (CSR) arrays for one orientation of the sparse count matrix X.

    The row-oriented view of X has one row per row of A, and its indices point into B;
    the column-oriented view is the same matrix transposed. Offsets are nondecreasing,
    so the nonzeros of row i live in [indptr[i], indptr[i+1]).
    """

    values: FloatArrayType
    indices: IndexArrayType
    indptr: IndexArrayType

    @property
    def n_rows(self) -> int:
        """Number of rows described by this view."""
        return len(self.indptr) - 1

    def row_nnz(self, i: int) -> int:
        """Number of stored nonzeros in row i."""
        return int(self.indptr[i + 1] - self.indptr[i])

    def row(self, i: int) -> Tuple[FloatArrayType, IndexArrayType]:
        """Values and indices of the nonzeros in row i (views, not copies)."""
        start = self.indptr[i]
        end = self.indptr[i + 1]
        return (self.values[start:end], self.indices[start:end])
