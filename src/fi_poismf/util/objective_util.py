"""Per-row Poisson objective and gradient.

Classes:
    RowObjective: Regularized negative Poisson log-likelihood of one row of the free matrix.

"""

from typing import Tuple
import numpy as np

from fi_poismf.types import (
    FloatArrayType,
    IndexArrayType,
    HalfIterationData,
)


class RowObjective:
    """Negative Poisson log-likelihood (plus regularization) as a function of one
    row `a` of the free factor matrix, with the other matrix held fixed.

        value(a) = S . a + l2 * a . a - w * sum_nz x * log(a . b_col)
        gradient(a) = S + 2 * l2 * a - w * sum_nz (x / (a . b_col)) * b_col

    S is the aggregate for this row (column sum of the fixed matrix, plus the L1
    constant and, with w != 1, the weighted correction). It carries the
    contribution of every cell, so the explicit sums only run over the row's
    nonzeros.

    The dot products a . b_col must be strictly positive. They are not guarded:
    a zero yields a non-finite value or gradient, without a floating-point
    warning, so callers are expected to start from strictly positive factors.
    Line searches may still try points on the zero bound and reject them.
    """

    def __init__(
        self,
        fixed_matrix: FloatArrayType,
        values: FloatArrayType,
        indices: IndexArrayType,
        aggregate: FloatArrayType,
        l2_reg: float,
        w_mult: float,
    ) -> None:
        self.fixed_rows: FloatArrayType = fixed_matrix[indices]
        self.values: FloatArrayType = values
        self.aggregate: FloatArrayType = aggregate
        self.l2_reg: float = l2_reg
        self.w_mult: float = w_mult

    @classmethod
    def for_row(
        cls, data: HalfIterationData, i: int, l2_reg: float, w_mult: float
    ) -> "RowObjective":
        """Bind the objective to row i of the free matrix in a half-iteration."""
        (values, indices) = data.view.row(i)
        return cls(
            data.fixed_matrix,
            values,
            indices,
            data.aggregate_for_row(i),
            l2_reg,
            w_mult,
        )

    def _regularization_term(self, a: FloatArrayType) -> float:
        return float(np.dot(self.aggregate, a)) + self.l2_reg * float(np.dot(a, a))

    def value(self, a: FloatArrayType) -> float:
        """Objective value at a."""
        reg_term = self._regularization_term(a)
        if self.values.shape[0] == 0:
            return reg_term
        with np.errstate(divide="ignore", invalid="ignore"):
            lsum = float(np.dot(self.values, np.log(self.fixed_rows @ a)))
        return reg_term - self.w_mult * lsum

    def ascent_direction(
        self, a: FloatArrayType, out: FloatArrayType
    ) -> FloatArrayType:
        """Accumulate sum_nz (x / (a . b_col)) * b_col into out.

        This is the (unweighted) gradient of the log-likelihood term, i.e. the
        direction of increase of the data fit.

        Args:
            a: The current row
            out: Array of length k receiving the result

        Returns:
            out
        """
        with np.errstate(divide="ignore", invalid="ignore"):
            ratios = self.values / (self.fixed_rows @ a)
            np.dot(ratios, self.fixed_rows, out=out)
        return out

    def gradient(self, a: FloatArrayType, out: FloatArrayType) -> FloatArrayType:
        """Objective gradient at a, written into out."""
        self.ascent_direction(a, out)
        out *= -self.w_mult
        out += self.aggregate
        out += (2.0 * self.l2_reg) * a
        return out

    def evaluate(self, a: FloatArrayType) -> Tuple[float, FloatArrayType]:
        """Objective value and gradient at a, sharing the predictions.

        This is the evaluator handed to the per-row minimizers.

        Returns:
            Tuple of (value, gradient); the gradient is a newly-allocated array.
        """
        predictions = self.fixed_rows @ a
        with np.errstate(divide="ignore", invalid="ignore"):
            grad = np.dot(self.values / predictions, self.fixed_rows)
            grad *= -self.w_mult
            grad += self.aggregate
            grad += (2.0 * self.l2_reg) * a
            lsum = float(np.dot(self.values, np.log(predictions)))
        return (self._regularization_term(a) - self.w_mult * lsum, grad)
