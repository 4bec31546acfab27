"""
matrix.py
Dense / sparse matrix primitives used by the NMF engine.

This module handles:
  • DenseMatrix: fixed-size numpy-backed 2-D array (get/set, rows, columns,
    transpose, multiply, in-place multiplicative update)
  • DenseVector: a 1-D handle that is either a copy or a non-copying view
    into the row/column of the DenseMatrix that produced it
  • SparseMatrix: CSR + CSC storage of the non-zero entries only
  • SparseVector: index/value pairs of one sparse row or column

Only the operations the factorization loop needs are exposed.
"""

from __future__ import annotations

from typing import Iterator, NamedTuple, Union

import numpy as np
import scipy.sparse as sp


class MatrixEntry(NamedTuple):
    row: int
    column: int
    value: float


# ─────────────────────────────────────────────
# VECTORS
# ─────────────────────────────────────────────

class SparseVector:
    """Non-zero entries of a vector of length `size`."""

    def __init__(self, size: int, index, data):
        self.size = size
        self.index = np.asarray(index, dtype=np.int64)
        self.data = np.asarray(data, dtype=np.float64)

        if self.index.shape != self.data.shape:
            raise ValueError(
                f"index/data length mismatch: {self.index.shape} vs {self.data.shape}"
            )

    def get_count(self) -> int:
        return int(self.index.size)

    def with_values(self, data) -> "SparseVector":
        """Same sparsity pattern, new values."""
        return SparseVector(self.size, self.index, data)

    def __len__(self):
        return self.size

    def __iter__(self):
        return zip(self.index.tolist(), self.data.tolist())

    def __repr__(self):
        return f"SparseVector(size={self.size}, count={self.get_count()})"


class DenseVector:
    """
    Wraps a 1-D numpy array.

    When produced by DenseMatrix.row(..., copy=False) the array is a numpy
    view (base buffer + offset/stride) of the owning matrix: writes to the
    matrix are visible through it and it must not outlive the matrix.
    """

    def __init__(self, data):
        self.data = data

    @property
    def is_view(self) -> bool:
        return self.data.base is not None

    def inner(self, other: Union["DenseVector", SparseVector]) -> float:
        if isinstance(other, SparseVector):
            if other.size != self.data.size:
                raise ValueError(
                    f"vector sizes differ: {self.data.size} vs {other.size}"
                )
            return float(self.data[other.index] @ other.data)

        if other.data.size != self.data.size:
            raise ValueError(
                f"vector sizes differ: {self.data.size} vs {other.data.size}"
            )
        return float(self.data @ other.data)

    def __len__(self):
        return self.data.size

    def __getitem__(self, i):
        return float(self.data[i])

    def __iter__(self):
        return iter(self.data.tolist())


# ─────────────────────────────────────────────
# SPARSE MATRIX
# ─────────────────────────────────────────────

class SparseMatrix:
    """
    Compressed storage of a non-negative rating matrix.

    Explicit zeros are dropped on construction, so an absent entry and a
    stored zero are the same thing: unobserved.
    """

    def __init__(self, matrix):
        csr = sp.csr_matrix(matrix, dtype=np.float64, copy=True)
        csr.sum_duplicates()
        csr.eliminate_zeros()

        self.csr = csr
        self.csc = csr.tocsc()

    @classmethod
    def from_entries(cls, rows, columns, values, shape) -> "SparseMatrix":
        coo = sp.coo_matrix(
            (np.asarray(values, dtype=np.float64), (rows, columns)), shape=shape
        )
        return cls(coo)

    @property
    def shape(self):
        return self.csr.shape

    def num_rows(self) -> int:
        return self.csr.shape[0]

    def num_columns(self) -> int:
        return self.csr.shape[1]

    def size(self) -> int:
        """Number of stored (observed) entries."""
        return int(self.csr.nnz)

    def row(self, u: int) -> SparseVector:
        start, end = self.csr.indptr[u], self.csr.indptr[u + 1]
        return SparseVector(
            self.num_columns(),
            self.csr.indices[start:end],
            self.csr.data[start:end],
        )

    def column(self, j: int) -> SparseVector:
        start, end = self.csc.indptr[j], self.csc.indptr[j + 1]
        return SparseVector(
            self.num_rows(),
            self.csc.indices[start:end],
            self.csc.data[start:end],
        )

    def row_count(self, u: int) -> int:
        return int(self.csr.indptr[u + 1] - self.csr.indptr[u])

    def column_count(self, j: int) -> int:
        return int(self.csc.indptr[j + 1] - self.csc.indptr[j])

    def mult(self, other: "DenseMatrix") -> "DenseMatrix":
        """self * other, with the sparse matrix on the left."""
        return DenseMatrix(np.asarray(self.csr @ other.data))

    def to_array(self) -> np.ndarray:
        return self.csr.toarray()

    def __iter__(self) -> Iterator[MatrixEntry]:
        """Row-major walk over every stored entry."""
        csr = self.csr
        for u in range(csr.shape[0]):
            for k in range(csr.indptr[u], csr.indptr[u + 1]):
                yield MatrixEntry(u, int(csr.indices[k]), float(csr.data[k]))

    def __repr__(self):
        return f"SparseMatrix(shape={self.shape}, nnz={self.size()})"


# ─────────────────────────────────────────────
# DENSE MATRIX
# ─────────────────────────────────────────────

class DenseMatrix:
    def __init__(self, data):
        data = np.array(data, dtype=np.float64)
        if data.ndim != 2:
            raise ValueError(f"DenseMatrix needs a 2-D array, got ndim={data.ndim}")
        self.data = data

    @classmethod
    def zeros(cls, num_rows: int, num_columns: int) -> "DenseMatrix":
        return cls(np.zeros((num_rows, num_columns)))

    @property
    def shape(self):
        return self.data.shape

    def num_rows(self) -> int:
        return self.data.shape[0]

    def num_columns(self) -> int:
        return self.data.shape[1]

    def init(self, value: float):
        self.data.fill(value)

    def get(self, i: int, j: int) -> float:
        return float(self.data[i, j])

    def set(self, i: int, j: int, value: float):
        self.data[i, j] = value

    def row(self, i: int, copy: bool = True) -> DenseVector:
        r = self.data[i]
        return DenseVector(r.copy() if copy else r)

    def column(self, j: int, copy: bool = True) -> DenseVector:
        c = self.data[:, j]
        return DenseVector(c.copy() if copy else c)

    def transpose(self) -> "DenseMatrix":
        return DenseMatrix(self.data.T)

    def mult(self, other: Union["DenseMatrix", SparseMatrix]) -> "DenseMatrix":
        if isinstance(other, SparseMatrix):
            # (A * S) = (S^T * A^T)^T keeps scipy on the left
            return DenseMatrix(np.asarray(other.csr.T @ self.data.T).T)
        return DenseMatrix(self.data @ other.data)

    def multiplicative_update(self, numerator: "DenseMatrix", denominator: "DenseMatrix", epsilon: float):
        """In place: self_ij *= numerator_ij / (denominator_ij + epsilon)."""
        if numerator.shape != self.shape or denominator.shape != self.shape:
            raise ValueError(
                f"shape mismatch: {self.shape}, {numerator.shape}, {denominator.shape}"
            )
        self.data *= numerator.data / (denominator.data + epsilon)

    @staticmethod
    def product(a: "DenseMatrix", i: int, b: "DenseMatrix", j: int) -> float:
        """Inner product of row i of `a` and column j of `b`."""
        return float(a.data[i] @ b.data[:, j])

    @staticmethod
    def row_products(a: "DenseMatrix", i: int, b: "DenseMatrix", columns) -> np.ndarray:
        """product(a, i, b, j) for every j in `columns`."""
        return a.data[i] @ b.data[:, columns]

    @staticmethod
    def column_products(a: "DenseMatrix", rows, b: "DenseMatrix", j: int) -> np.ndarray:
        """product(a, i, b, j) for every i in `rows`."""
        return a.data[rows] @ b.data[:, j]

    def __repr__(self):
        return f"DenseMatrix(shape={self.shape})"
