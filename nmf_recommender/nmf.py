"""
nmf.py
Non-negative matrix factorization recommender.

Daniel D. Lee and H. Sebastian Seung, "Algorithms for Non-negative Matrix
Factorization", NIPS 2001.

V (users x items, sparse, zero = unobserved) is approximated by W * H with
W (users x factors) and H (factors x items) kept non-negative by
multiplicative updates. After training, predict(u, j) = W[u, :] . H[:, j].
"""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .convergence import ConvergencePolicy, never_converge
from .matrix import DenseMatrix, SparseMatrix
from .updates import UpdateStrategy, get_update

LOGGER = logging.getLogger(__name__)


class ModelNotInitializedError(RuntimeError):
    """Raised when training or scoring is attempted before init_model()."""
    pass


class NMFConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    num_factors: int = Field(10, gt=0)
    num_iters: int = Field(100, gt=0)
    init_value: float = Field(0.01, gt=0)
    epsilon: float = Field(1e-9, gt=0)
    strategy: UpdateStrategy = UpdateStrategy.SPARSE
    # multiplicative updates have no step size
    learning_rate: None = None

    @classmethod
    def from_settings(cls, settings) -> "NMFConfig":
        return cls(
            num_factors=settings.NMF_FACTORS,
            num_iters=settings.NMF_ITERATIONS,
            init_value=settings.NMF_INIT_VALUE,
            epsilon=settings.NMF_EPSILON,
            strategy=settings.NMF_STRATEGY,
        )


class NMF:
    """
    Factorization engine.

    Usage:
        model = NMF(train_matrix, NMFConfig(num_factors=10, num_iters=50))
        model.init_model()
        model.build_model()
        model.predict(u, j)
    """

    def __init__(
        self,
        train_matrix: SparseMatrix,
        config: Optional[NMFConfig] = None,
        convergence: Optional[ConvergencePolicy] = None,
    ):
        self.train_matrix = train_matrix
        self.config = config or NMFConfig()
        self.convergence = convergence or never_converge

        self.num_users, self.num_items = train_matrix.shape

        self.W: Optional[DenseMatrix] = None
        self.H: Optional[DenseMatrix] = None
        self.V: Optional[SparseMatrix] = None

        self.loss = 0.0
        self.errs = 0.0

    @property
    def num_factors(self) -> int:
        return self.config.num_factors

    @property
    def num_iters(self) -> int:
        return self.config.num_iters

    # ─────────────────────────────────────────
    # Training
    # ─────────────────────────────────────────

    def init_model(self):
        """(Re)allocate W and H filled with init_value and bind V."""
        self.W = DenseMatrix.zeros(self.num_users, self.num_factors)
        self.H = DenseMatrix.zeros(self.num_factors, self.num_items)

        self.W.init(self.config.init_value)
        self.H.init(self.config.init_value)

        self.V = self.train_matrix

    def build_model(self) -> int:
        """Run the update loop; returns the number of iterations performed."""
        if self.W is None:
            raise ModelNotInitializedError("call init_model() before build_model()")

        update = get_update(self.config.strategy)

        reset = getattr(self.convergence, "reset", None)
        if callable(reset):
            reset()

        LOGGER.info(
            "Training NMF: %d users x %d items, %d observed, factors=%d, iters=%d, strategy=%s",
            self.num_users, self.num_items, self.V.size(),
            self.num_factors, self.num_iters, self.config.strategy.value,
        )

        iteration = 0
        for iteration in range(1, self.num_iters + 1):
            update(self)
            self._compute_errors()

            if self.convergence(iteration, self.errs, self.loss):
                LOGGER.info("Converged at iteration %d", iteration)
                break

        LOGGER.info("NMF finished after %d iterations, loss = %.6f", iteration, self.loss)
        return iteration

    def fit(self) -> "NMF":
        self.init_model()
        self.build_model()
        return self

    def _compute_errors(self):
        loss = 0.0
        errs = 0.0
        for u, j, ruj in self.V:
            if ruj > 0:
                euj = self.predict(u, j) - ruj

                errs += euj * euj
                loss += euj * euj

        self.errs = 0.5 * errs
        self.loss = 0.5 * loss

    # ─────────────────────────────────────────
    # Scoring
    # ─────────────────────────────────────────

    def predict(self, u: int, j: int) -> float:
        if self.W is None:
            raise ModelNotInitializedError("model has no factors yet")
        return DenseMatrix.product(self.W, u, self.H, j)

    def predict_row(self, u: int, columns=None):
        """Scores of user u for `columns` (all items when None)."""
        if self.W is None:
            raise ModelNotInitializedError("model has no factors yet")
        if columns is None:
            columns = slice(None)
        return DenseMatrix.row_products(self.W, u, self.H, columns)

    def __str__(self):
        return f"{self.num_factors},{self.num_iters}"
