"""Compressed sparse column matrices and assembly of the quasi-definite KKT matrix."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

__all__ = ["CscMatrix", "KktMatrix", "cumsum", "compress", "form_kkt"]


@dataclass(eq=False)
class CscMatrix:
    """An ``m`` by ``n`` matrix in compressed sparse column form.

    ``p`` holds the ``n + 1`` column pointers, ``i`` the row index of each
    stored entry and ``x`` its value.
    """

    m: int
    n: int
    p: np.ndarray
    i: np.ndarray
    x: np.ndarray

    def __post_init__(self) -> None:
        self.m = int(self.m)
        self.n = int(self.n)
        if self.m < 0 or self.n < 0:
            raise ValueError("matrix dimensions must be non-negative")
        self.p = np.asarray(self.p, dtype=np.int64).ravel()
        self.i = np.asarray(self.i, dtype=np.int64).ravel()
        self.x = np.asarray(self.x, dtype=np.float64).ravel()
        if self.p.size != self.n + 1:
            raise ValueError(
                f"column pointer array has length {self.p.size}, expected {self.n + 1}"
            )
        if self.p[0] != 0:
            raise ValueError("first column pointer must be zero")
        if np.any(np.diff(self.p) < 0):
            raise ValueError("column pointers must be non-decreasing")
        nnz = int(self.p[-1])
        if self.i.size < nnz or self.x.size < nnz:
            raise ValueError("row index and value arrays are shorter than the pointers claim")
        self.i = self.i[:nnz]
        self.x = self.x[:nnz]
        if nnz and (self.i.min() < 0 or self.i.max() >= self.m):
            raise ValueError("row index out of range")

    @classmethod
    def from_dense(cls, dense) -> "CscMatrix":
        """Build a matrix holding the non-zero entries of a 2-D array."""
        arr = np.asarray(dense, dtype=np.float64)
        if arr.ndim != 2:
            raise ValueError("a dense matrix must be two-dimensional")
        m, n = arr.shape
        cols, rows = np.nonzero(arr.T)
        pointers = cumsum(np.bincount(cols, minlength=n))
        return cls(m, n, pointers, rows, arr[rows, cols])

    def to_dense(self) -> np.ndarray:
        """Return the matrix as a dense array, summing duplicate entries."""
        out = np.zeros((self.m, self.n))
        np.add.at(out, (self.i, self._columns()), self.x)
        return out

    @property
    def nnz(self) -> int:
        """Number of stored entries."""
        return int(self.p[-1])

    def _columns(self) -> np.ndarray:
        return np.repeat(np.arange(self.n, dtype=np.int64), np.diff(self.p))

    def transpose(self) -> "CscMatrix":
        """Return the transpose as a new compressed-column matrix."""
        result, _ = compress(self.n, self.m, self._columns(), self.i, self.x)
        return result

    def matvec(self, x) -> np.ndarray:
        """Return ``A @ x``."""
        vec = self._check_vector(x, self.n)
        y = np.zeros(self.m)
        np.add.at(y, self.i, self.x * vec[self._columns()])
        return y

    def rmatvec(self, x) -> np.ndarray:
        """Return ``A.T @ x``."""
        vec = self._check_vector(x, self.m)
        return np.bincount(
            self._columns(), weights=self.x * vec[self.i], minlength=self.n
        ).astype(np.float64)

    def sym_matvec(self, x) -> np.ndarray:
        """Return ``P @ x`` for the symmetric matrix whose upper triangle this holds.

        Entries below the diagonal are ignored.
        """
        if self.m != self.n:
            raise ValueError("a symmetric matrix must be square")
        vec = self._check_vector(x, self.n)
        rows, cols, vals = self.i, self._columns(), self.x
        upper = rows <= cols
        rows, cols, vals = rows[upper], cols[upper], vals[upper]
        y = np.zeros(self.n)
        np.add.at(y, rows, vals * vec[cols])
        off = rows != cols
        np.add.at(y, cols[off], vals[off] * vec[rows[off]])
        return y

    @staticmethod
    def _check_vector(x, size: int) -> np.ndarray:
        vec = np.asarray(x, dtype=np.float64).ravel()
        if vec.size != size:
            raise ValueError(f"vector has length {vec.size}, expected {size}")
        return vec


@dataclass(eq=False)
class KktMatrix:
    """One triangle of ``[[R_x + P, A.T], [A, -R_y]]`` with bookkeeping for updates.

    ``diag_p`` is the diagonal of ``P`` and ``diag_r_idxs[k]`` the position in
    ``matrix.x`` of the ``k``-th diagonal entry, where ``R`` enters.
    """

    matrix: CscMatrix
    diag_p: np.ndarray
    diag_r_idxs: np.ndarray
    upper: bool


def cumsum(counts: Sequence[int]) -> np.ndarray:
    """Return the ``len(counts) + 1`` pointers that start each run of ``counts``."""
    arr = np.asarray(counts, dtype=np.int64).ravel()
    out = np.zeros(arr.size + 1, dtype=np.int64)
    np.cumsum(arr, out=out[1:])
    return out


def compress(m, n, rows, cols, values) -> tuple[CscMatrix, np.ndarray]:
    """Compress triplets into column form.

    Returns the matrix and, for every triplet, the position it occupies in
    the compressed arrays. Entries keep their input order within a column.
    """
    rows = np.asarray(rows, dtype=np.int64).ravel()
    cols = np.asarray(cols, dtype=np.int64).ravel()
    vals = np.asarray(values, dtype=np.float64).ravel()
    if not rows.size == cols.size == vals.size:
        raise ValueError("rows, cols and values must have the same length")
    if cols.size and (cols.min() < 0 or cols.max() >= n):
        raise ValueError("column index out of range")
    if rows.size and (rows.min() < 0 or rows.max() >= m):
        raise ValueError("row index out of range")
    order = np.argsort(cols, kind="stable")
    mapping = np.empty(cols.size, dtype=np.int64)
    mapping[order] = np.arange(cols.size, dtype=np.int64)
    pointers = cumsum(np.bincount(cols, minlength=n))
    return CscMatrix(m, n, pointers, rows[order], vals[order]), mapping


def form_kkt(a: CscMatrix, p: Optional[CscMatrix], diag_r, upper: bool) -> KktMatrix:
    """Assemble the upper or lower triangle of the KKT matrix.

    ``p`` holds the upper triangle of ``P`` (entries below the diagonal are
    ignored) or is ``None``. ``diag_r`` has ``n + m`` entries: ``R_x`` then ``R_y``.
    """
    n, m = a.n, a.m
    r = np.asarray(diag_r, dtype=np.float64).ravel()
    if r.size != n + m:
        raise ValueError(f"diag_r has length {r.size}, expected {n + m}")
    if p is not None and (p.m != n or p.n != n):
        raise ValueError(f"P must be {n} by {n}")

    rows: list[int] = []
    cols: list[int] = []
    vals: list[float] = []
    diag_p = np.zeros(n)
    diag_idx = np.zeros(n + m, dtype=np.int64)

    def add(row: int, col: int, value: float) -> int:
        rows.append(row)
        cols.append(col)
        vals.append(value)
        return len(vals) - 1

    if p is not None:
        for j in range(n):
            start, end = int(p.p[j]), int(p.p[j + 1])
            if start == end:
                diag_idx[j] = add(j, j, r[j])
            for h in range(start, end):
                i = int(p.i[h])
                if i > j:
                    break
                row, col = (i, j) if upper else (j, i)
                pos = add(row, col, float(p.x[h]))
                if i == j:
                    diag_p[j] = p.x[h]
                    vals[pos] += r[j]
                    diag_idx[j] = pos
                elif h + 1 == end or p.i[h + 1] > j:
                    diag_idx[j] = add(j, j, r[j])
    else:
        for j in range(n):
            diag_idx[j] = add(j, j, r[j])

    for j in range(n):
        for h in range(int(a.p[j]), int(a.p[j + 1])):
            row = int(a.i[h]) + n
            if upper:
                add(j, row, float(a.x[h]))
            else:
                add(row, j, float(a.x[h]))

    for j in range(m):
        diag_idx[n + j] = add(n + j, n + j, -r[n + j])

    matrix, mapping = compress(n + m, n + m, rows, cols, vals)
    return KktMatrix(matrix, diag_p, mapping[diag_idx], bool(upper))