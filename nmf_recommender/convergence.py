"""
Convergence policies handed to the NMF engine.

A policy is any callable `policy(iteration, errs, loss) -> bool`; returning
True stops training after the iteration that was just completed.
"""

from __future__ import annotations

import logging
import math
from typing import Callable, Optional

LOGGER = logging.getLogger(__name__)

ConvergencePolicy = Callable[[int, float, float], bool]


class ModelDivergedError(RuntimeError):
    """Raised when the training loss becomes NaN or infinite."""
    pass


def never_converge(iteration: int, errs: float, loss: float) -> bool:
    return False


class LossDeltaConvergence:
    """
    Stops when the loss is (almost) zero or when it decreased by less
    than `tol` since the previous iteration.
    """

    def __init__(self, tol: float = 1e-5):
        self.tol = tol
        self.last_loss: Optional[float] = None

    def reset(self):
        self.last_loss = None

    def __call__(self, iteration: int, errs: float, loss: float) -> bool:
        if math.isnan(loss) or math.isinf(loss):
            raise ModelDivergedError(
                f"Loss = {loss} at iteration {iteration}: "
                "current settings do not fit the recommender."
            )

        delta_loss = (self.last_loss - loss) if self.last_loss is not None else math.inf

        LOGGER.debug(
            "iter %d: errs = %.6f, loss = %.6f, delta_loss = %.6g",
            iteration, errs, loss, delta_loss,
        )

        self.last_loss = loss

        return abs(loss) < self.tol or 0 < delta_loss < self.tol
