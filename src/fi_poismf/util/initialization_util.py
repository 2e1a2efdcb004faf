"""Utility functions for initializations.

Functions:
    initialize_factors: Apply strategy to determine the initial factor matrices.

"""

from typing import Optional, Tuple
import numpy as np
from scipy.sparse import csr_matrix  # type: ignore
from sklearn.decomposition import TruncatedSVD  # type: ignore

from fi_poismf.types import FloatArrayType, InitializationStrategy

# Factors must stay strictly positive, or the log-likelihood of an observed
# entry can hit log(0).
MIN_INITIAL_VALUE: float = 1e-6


def _truncated_svd_factors(
    sparse_matrix_X: csr_matrix, target_rank: int, seed: int
) -> Tuple[FloatArrayType, FloatArrayType]:
    """Nonnegative factors from the absolute values of a truncated SVD.

    Given X ~ U S V^T, use |U sqrt(S)| and |V sqrt(S)|. This is a cheap variant
    of the NNDSVD warm start.

    Args:
        sparse_matrix_X: The input count matrix
        target_rank: Number of latent factors (must not exceed the number of columns)
        seed: Random seed for the randomized SVD

    Returns:
        Tuple of (A, B) factors.
    """
    svd = TruncatedSVD(n_components=target_rank, random_state=seed)
    left = svd.fit_transform(sparse_matrix_X)
    root_sv = np.sqrt(np.maximum(svd.singular_values_, MIN_INITIAL_VALUE))
    factor_A = np.abs(left) / root_sv
    factor_B = np.abs(svd.components_.T) * root_sv
    return (factor_A, factor_B)


def initialize_factors(
    method: InitializationStrategy,
    sparse_matrix_X: csr_matrix,
    target_rank: int,
    *,
    rng: np.random.Generator,
    known_factors: Optional[Tuple[FloatArrayType, FloatArrayType]] = None,
) -> Tuple[FloatArrayType, FloatArrayType]:
    """Given the sparse count matrix, create starting values for both factors.

    Currently supported strategies are:
     - RANDOM_GAMMA: independent Gamma(1, 1) draws
     - RANDOM_UNIFORM: independent Uniform(0, 1) draws
     - TRUNCATED_SVD: absolute values of a truncated SVD of X
     - KNOWN_FACTORS: copies of caller-supplied factors (e.g. from a checkpoint)

    All strategies return C-contiguous float64 arrays floored at a small positive
    value.

    Args:
        method: The strategy to employ to generate the starting point
        sparse_matrix_X: The (dimA, dimB) count matrix
        target_rank: Number of latent factors k
        rng: Random generator for the random strategies
        known_factors: Initial (A, B), required by the KNOWN_FACTORS strategy

    Raises:
        ValueError: On request for an unsupported initialization strategy, or if
            known factors are missing, negative or wrongly shaped.

    Returns:
        Tuple of (A, B) with shapes (dimA, k) and (dimB, k).
    """
    (dim_A, dim_B) = sparse_matrix_X.shape
    if method == InitializationStrategy.RANDOM_GAMMA:
        factor_A = rng.gamma(1.0, 1.0, size=(dim_A, target_rank))
        factor_B = rng.gamma(1.0, 1.0, size=(dim_B, target_rank))
    elif method == InitializationStrategy.RANDOM_UNIFORM:
        factor_A = rng.uniform(size=(dim_A, target_rank))
        factor_B = rng.uniform(size=(dim_B, target_rank))
    elif method == InitializationStrategy.TRUNCATED_SVD:
        seed = int(rng.integers(0, 2**31 - 1))
        (factor_A, factor_B) = _truncated_svd_factors(
            sparse_matrix_X, target_rank, seed
        )
    elif method == InitializationStrategy.KNOWN_FACTORS:
        if known_factors is None:
            raise ValueError("KNOWN_FACTORS initialization requires initial factors.")
        (factor_A, factor_B) = known_factors
        expected_A = (dim_A, target_rank)
        expected_B = (dim_B, target_rank)
        if np.shape(factor_A) != expected_A or np.shape(factor_B) != expected_B:
            raise ValueError(
                "Initial factors were submitted, but their shapes "
                + f"{np.shape(factor_A)}, {np.shape(factor_B)} do not match the "
                + f"expected {expected_A}, {expected_B}."
            )
        if np.any(np.asarray(factor_A) < 0) or np.any(np.asarray(factor_B) < 0):
            raise ValueError("Initial factors must be nonnegative.")
    else:
        raise ValueError("Unsupported initialization strategy.")

    factor_A = np.maximum(np.array(factor_A, dtype=np.float64), MIN_INITIAL_VALUE)
    factor_B = np.maximum(np.array(factor_B, dtype=np.float64), MIN_INITIAL_VALUE)
    return (np.ascontiguousarray(factor_A), np.ascontiguousarray(factor_B))
