"""Defines enumerations for fixed-choice configuration values.

Classes:
    SolverStrategy: Choice of per-row optimization method.
    InitializationStrategy: Algorithm choice for setting the initial factor matrices.
    ReturnStatus: Status code returned by the alternating optimization driver.

"""

from enum import Enum


class SolverStrategy(Enum):
    """All currently-implemented row solvers which can be dispatched by the
    alternating optimization driver.
    """

    TEST = 0
    PROJECTED_GRADIENT = 1
    CONJUGATE_GRADIENT = 2
    TRUNCATED_NEWTON = 3


class InitializationStrategy(Enum):
    """Strategy to use for choosing the initial values of the factor matrices."""

    RANDOM_GAMMA = 1
    RANDOM_UNIFORM = 2
    TRUNCATED_SVD = 3
    KNOWN_FACTORS = 4


class ReturnStatus(Enum):
    """Status codes for a driver invocation."""

    SUCCESS = 0
    OUT_OF_MEMORY = 1
