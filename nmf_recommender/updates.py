"""
Multiplicative update strategies for V ≈ W * H.

Two strategies share one signature, `update(model)`, and both update W
first (H fixed) and then H (using the freshly updated W):

  • SPARSE (default): every ratio is taken over the observed entries of V
    only, so unobserved cells never add mass to the denominators.
  • DENSE: the textbook Lee & Seung rule on full matrix products
    (V*H^T, W*H*H^T, W^T*V, W^T*W*H). Unobserved cells are fitted as real
    zero ratings, which pulls predictions for them towards 0. This is a
    different objective from SPARSE and gives different factors whenever V
    has missing entries; it is kept as-is for comparison.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable

from .matrix import DenseMatrix


class UpdateStrategy(str, Enum):
    SPARSE = "sparse"
    DENSE = "dense"


def sparse_update(model):
    W, H, V = model.W, model.H, model.V
    eps = model.config.epsilon

    # update W by fixing H
    for u in range(W.num_rows()):
        uv = V.row(u)
        if uv.get_count() == 0:
            continue

        euv = uv.with_values(DenseMatrix.row_products(W, u, H, uv.index))

        for f in range(W.num_columns()):
            fv = H.row(f, copy=False)
            real = fv.inner(uv)
            estm = fv.inner(euv) + eps

            W.set(u, f, W.get(u, f) * (real / estm))

    # update H by fixing W
    trW = W.transpose()
    for j in range(H.num_columns()):
        jv = V.column(j)
        if jv.get_count() == 0:
            continue

        ejv = jv.with_values(DenseMatrix.column_products(W, jv.index, H, j))

        for f in range(H.num_rows()):
            fv = trW.row(f, copy=False)
            real = fv.inner(jv)
            estm = fv.inner(ejv) + eps

            H.set(f, j, H.get(f, j) * (real / estm))


def dense_update(model):
    W, H, V = model.W, model.H, model.V
    eps = model.config.epsilon

    # W <- W * (V H^T) / (W H H^T)
    trH = H.transpose()
    V_trH = V.mult(trH)
    W_H_trH = W.mult(H.mult(trH))
    W.multiplicative_update(V_trH, W_H_trH, eps)

    # H <- H * (W^T V) / (W^T W H)
    trW = W.transpose()
    trW_V = trW.mult(V)
    trW_W_H = trW.mult(W).mult(H)
    H.multiplicative_update(trW_V, trW_W_H, eps)


UPDATE_STRATEGIES = {
    UpdateStrategy.SPARSE: sparse_update,
    UpdateStrategy.DENSE: dense_update,
}


def get_update(strategy) -> Callable:
    return UPDATE_STRATEGIES[UpdateStrategy(strategy)]
