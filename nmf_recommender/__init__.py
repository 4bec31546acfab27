"""Convenience exports for the NMF recommender package."""

from .matrix import (
    DenseMatrix,
    DenseVector,
    SparseMatrix,
    SparseVector,
    MatrixEntry,
)
from .updates import UpdateStrategy
from .convergence import (
    LossDeltaConvergence,
    ModelDivergedError,
    never_converge,
)
from .nmf import NMF, NMFConfig, ModelNotInitializedError

__all__ = [
    "DenseMatrix",
    "DenseVector",
    "SparseMatrix",
    "SparseVector",
    "MatrixEntry",
    "UpdateStrategy",
    "LossDeltaConvergence",
    "ModelDivergedError",
    "never_converge",
    "NMF",
    "NMFConfig",
    "ModelNotInitializedError",
]
