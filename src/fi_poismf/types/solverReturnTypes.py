"""Defines the data objects returned from a factorization run.

Classes:
    FactorizationResult: Factor matrices plus run status and bookkeeping.
    FactorizationReturnType: Combination of data and summary string.

"""

from typing import Optional, Tuple
from dataclasses import dataclass
from .types import FloatArrayType
from .enums import ReturnStatus

SolutionType = Tuple[FloatArrayType, FloatArrayType]


@dataclass
class FactorizationResult:
    """Final factors (A, B) such that A @ B.T approximates X, with the driver's
    status. loss is only populated when loss tracking was requested.
    """

    factors: SolutionType
    status: ReturnStatus
    elapsed_iterations: int
    cancelled: bool = False
    loss: Optional[float] = None


@dataclass
class FactorizationReturnType:
    """Enforces that a run returns a summary string and its actual data."""

    summary: str
    data: FactorizationResult
