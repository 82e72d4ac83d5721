"""Sparse direct solver for the quasi-definite KKT system.

The upper triangle of ``[[R_x + P, A.T], [A, -R_y]]`` is permuted with a
fill-reducing minimum-degree ordering and factored as ``L D L.T``. When ``R``
changes, only the numeric factorization is repeated.
"""

from __future__ import annotations

import heapq
from typing import Optional

import numpy as np

from kktsolve.csparse import CscMatrix, compress, cumsum, form_kkt

__all__ = [
    "FactorizationError",
    "DirectLinearSystem",
    "invert_permutation",
    "symmetric_permute",
]


class FactorizationError(ArithmeticError):
    """The KKT matrix could not be factored as ``L D L.T``."""


def invert_permutation(perm) -> np.ndarray:
    """Return ``pinv`` with ``pinv[perm[k]] == k``."""
    arr = np.asarray(perm, dtype=np.int64).ravel()
    size = arr.size
    if size and (arr.min() < 0 or arr.max() >= size):
        raise ValueError("permutation entry out of range")
    if np.unique(arr).size != size:
        raise ValueError("permutation has repeated entries")
    pinv = np.empty(size, dtype=np.int64)
    pinv[arr] = np.arange(size, dtype=np.int64)
    return pinv


def symmetric_permute(a: CscMatrix, pinv) -> tuple[CscMatrix, np.ndarray]:
    """Return the upper triangle of ``P A P.T`` and where each entry of ``a`` went.

    ``a`` holds the upper triangle of a symmetric matrix; entries below its
    diagonal are skipped and map to ``-1``. ``pinv`` sends an original index
    to its new position; ``None`` means the identity.
    """
    if a.m != a.n:
        raise ValueError("a symmetric matrix must be square")
    n = a.n
    if pinv is None:
        pinv_arr = np.arange(n, dtype=np.int64)
    else:
        pinv_arr = np.asarray(pinv, dtype=np.int64).ravel()
        if pinv_arr.size != n:
            raise ValueError(f"permutation has length {pinv_arr.size}, expected {n}")
    rows = a.i
    cols = np.repeat(np.arange(n, dtype=np.int64), np.diff(a.p))
    keep = rows <= cols
    new_rows = pinv_arr[rows[keep]]
    new_cols = pinv_arr[cols[keep]]
    result, kept_mapping = compress(
        n,
        n,
        np.minimum(new_rows, new_cols),
        np.maximum(new_rows, new_cols),
        a.x[keep],
    )
    mapping = np.full(a.nnz, -1, dtype=np.int64)
    mapping[keep] = kept_mapping
    return result, mapping


def _minimum_degree_order(matrix: CscMatrix) -> np.ndarray:
    """Order the pivots of a symmetric pattern by least current degree."""
    n = matrix.n
    adjacency: list[set[int]] = [set() for _ in range(n)]
    cols = np.repeat(np.arange(n, dtype=np.int64), np.diff(matrix.p))
    for row, col in zip(matrix.i.tolist(), cols.tolist()):
        if row != col:
            adjacency[row].add(col)
            adjacency[col].add(row)
    heap = [(len(neighbours), v) for v, neighbours in enumerate(adjacency)]
    heapq.heapify(heap)
    eliminated = [False] * n
    order: list[int] = []
    while heap:
        degree, v = heapq.heappop(heap)
        if eliminated[v] or degree != len(adjacency[v]):
            continue
        eliminated[v] = True
        order.append(v)
        neighbours = adjacency[v]
        for u in neighbours:
            adjacency[u].discard(v)
            adjacency[u].update(w for w in neighbours if w != u)
            heapq.heappush(heap, (len(adjacency[u]), u))
        adjacency[v] = set()
    return np.asarray(order, dtype=np.int64)


class DirectLinearSystem:
    """Solves the KKT system by a sparse ``L D L.T`` factorization."""

    method = "sparse-direct-amd-qdldl"

    def __init__(self, a: CscMatrix, p: Optional[CscMatrix], diag_r) -> None:
        self.m = a.m
        self.n = a.n
        kkt = form_kkt(a, p, diag_r, upper=True)
        self.diag_p = kkt.diag_p
        self.perm = _minimum_degree_order(kkt.matrix)
        self.kkt, mapping = symmetric_permute(kkt.matrix, invert_permutation(self.perm))
        self.diag_r_idxs = mapping[kkt.diag_r_idxs]
        self.factorizations = 0
        self._prepare()
        self._factor()

    def _prepare(self) -> None:
        """Compute the elimination tree and column counts of ``L``."""
        size = self.kkt.n
        ap = self.kkt.p.tolist()
        ai = self.kkt.i.tolist()
        work = [-1] * size
        counts = [0] * size
        parent = [-1] * size
        for j in range(size):
            if ap[j] == ap[j + 1]:
                raise FactorizationError("KKT matrix has an empty column")
            work[j] = j
            for q in range(ap[j], ap[j + 1]):
                i = ai[q]
                if i > j:
                    raise FactorizationError("matrix is not upper triangular")
                while work[i] != j:
                    if parent[i] == -1:
                        parent[i] = j
                    counts[i] += 1
                    work[i] = j
                    i = parent[i]
        self._etree = parent
        self._lp = cumsum(counts).tolist()

    def _factor(self) -> int:
        """Numerically factor the permuted KKT matrix; return the positive pivots."""
        size = self.kkt.n
        ap = self.kkt.p.tolist()
        ai = self.kkt.i.tolist()
        ax = self.kkt.x.tolist()
        lp = self._lp
        parent = self._etree
        li = [0] * lp[-1]
        lx = [0.0] * lp[-1]
        d = [0.0] * size
        y = [0.0] * size
        flag = [-1] * size
        filled = [0] * size
        positive = 0
        for k in range(size):
            flag[k] = k
            paths: list[list[int]] = []
            for q in range(ap[k], ap[k + 1]):
                i = ai[q]
                y[i] += ax[q]
                path = []
                while flag[i] != k:
                    path.append(i)
                    flag[i] = k
                    i = parent[i]
                if path:
                    paths.append(path)
            dk = y[k]
            y[k] = 0.0
            for path in reversed(paths):
                for i in path:
                    yi = y[i]
                    y[i] = 0.0
                    start = lp[i]
                    end = start + filled[i]
                    for q in range(start, end):
                        y[li[q]] -= lx[q] * yi
                    lki = yi / d[i]
                    dk -= lki * yi
                    li[end] = k
                    lx[end] = lki
                    filled[i] += 1
            if dk == 0.0:
                raise FactorizationError(
                    "zero pivot in the LDL factorization: "
                    "there are zeros in the diagonal matrix"
                )
            d[k] = dk
            if dk > 0.0:
                positive += 1
        if positive < self.n:
            raise FactorizationError(
                f"the problem seems to be non-convex: {positive} positive pivots, "
                f"{self.n} variables"
            )
        self._li = li
        self._lx = lx
        self._dinv = [1.0 / value for value in d]
        self.factorizations += 1
        return positive

    def update_diag_r(self, diag_r) -> None:
        """Replace ``R`` on the diagonal and refactor."""
        r = np.asarray(diag_r, dtype=np.float64).ravel()
        if r.size != self.n + self.m:
            raise ValueError(f"diag_r has length {r.size}, expected {self.n + self.m}")
        self.kkt.x[self.diag_r_idxs[: self.n]] = self.diag_p + r[: self.n]
        self.kkt.x[self.diag_r_idxs[self.n :]] = -r[self.n :]
        self._factor()

    def solve(self, b, warm_start=None, tol: float = 0.0) -> np.ndarray:
        """Return the solution of ``K x = b``; ``warm_start`` and ``tol`` are unused."""
        rhs = np.asarray(b, dtype=np.float64).ravel()
        size = self.n + self.m
        if rhs.size != size:
            raise ValueError(f"right-hand side has length {rhs.size}, expected {size}")
        lp, li, lx, dinv = self._lp, self._li, self._lx, self._dinv
        x = rhs[self.perm].tolist()
        for i in range(size):
            xi = x[i]
            if xi:
                for q in range(lp[i], lp[i + 1]):
                    x[li[q]] -= lx[q] * xi
        for i in range(size):
            x[i] *= dinv[i]
        for i in reversed(range(size)):
            total = x[i]
            for q in range(lp[i], lp[i + 1]):
                total -= lx[q] * x[li[q]]
            x[i] = total
        out = np.empty(size)
        out[self.perm] = x
        return out