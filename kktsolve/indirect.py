"""Matrix-free solver for the quasi-definite KKT system.

The system ``[[R_x + P, A.T], [A, -R_y]] [x; y] = [rx; ry]`` is reduced to

    x = (R_x + P + A.T R_y^{-1} A)^{-1} (rx + A.T R_y^{-1} ry)
    y = R_y^{-1} (A x - ry)

and the first equation is solved by conjugate gradients with a diagonal
(Jacobi) preconditioner.
"""

from __future__ import annotations

import warnings
from typing import Optional

import numpy as np

from kktsolve.csparse import CscMatrix

__all__ = ["IndirectLinearSystem"]


def _norm_inf(vec: np.ndarray) -> float:
    return float(np.max(np.abs(vec), initial=0.0))


class IndirectLinearSystem:
    """Solves the KKT system by preconditioned conjugate gradients."""

    method = "sparse-indirect-scs"

    def __init__(self, a: CscMatrix, p: Optional[CscMatrix], diag_r) -> None:
        if p is not None and (p.m != a.n or p.n != a.n):
            raise ValueError(f"P must be {a.n} by {a.n}")
        self.a = a
        self.p = p
        self.m = a.m
        self.n = a.n
        self.at = a.transpose()
        self.tot_cg_its = 0
        self.update_diag_r(diag_r)

    def _accum_by_a(self, x: np.ndarray) -> np.ndarray:
        return self.at.rmatvec(x)

    def update_diag_r(self, diag_r) -> None:
        """Replace ``R`` and rebuild the preconditioner."""
        r = np.array(diag_r, dtype=np.float64).ravel()
        if r.size != self.n + self.m:
            raise ValueError(f"diag_r has length {r.size}, expected {self.n + self.m}")
        self.diag_r = r
        self._set_preconditioner()

    def _set_preconditioner(self) -> None:
        """Set ``M = inv(diag(R_x + P + A.T R_y^{-1} A))``."""
        a, n = self.a, self.n
        r_x = self.diag_r[:n]
        r_y = self.diag_r[n:]
        a_cols = np.repeat(np.arange(n, dtype=np.int64), np.diff(a.p))
        diag = r_x + np.bincount(
            a_cols, weights=a.x * a.x / r_y[a.i], minlength=n
        ).astype(np.float64)
        if self.p is not None:
            p = self.p
            p_cols = np.repeat(np.arange(n, dtype=np.int64), np.diff(p.p))
            on_diag = np.nonzero(p.i == p_cols)[0]
            cols, first = np.unique(p_cols[on_diag], return_index=True)
            diag[cols] += p.x[on_diag[first]]
        self._precond = 1.0 / diag

    def matvec(self, x) -> np.ndarray:
        """Return ``(R_x + P + A.T R_y^{-1} A) @ x``."""
        vec = np.asarray(x, dtype=np.float64).ravel()
        if vec.size != self.n:
            raise ValueError(f"vector has length {vec.size}, expected {self.n}")
        y = self.diag_r[: self.n] * vec
        if self.p is not None:
            y += self.p.sym_matvec(vec)
        z = self._accum_by_a(vec) / self.diag_r[self.n :]
        y += self.a.rmatvec(z)
        return y

    def pcg(self, b, warm_start=None, max_iters=None, tol: float = 1e-9):
        """Solve the reduced system for ``b`` by preconditioned CG.

        Returns the solution and the number of iterations taken. Only the
        first ``n`` entries of ``warm_start`` are used.
        """
        rhs = np.asarray(b, dtype=np.float64).ravel()
        n = self.n
        if rhs.size != n:
            raise ValueError(f"right-hand side has length {rhs.size}, expected {n}")
        if max_iters is None:
            max_iters = 10 * n
        if warm_start is None:
            r = rhs.copy()
            x = np.zeros(n)
        else:
            start = np.asarray(warm_start, dtype=np.float64).ravel()
            if start.size < n:
                raise ValueError(f"warm start has length {start.size}, expected at least {n}")
            x = start[:n].copy()
            r = rhs - self.matvec(x)

        if _norm_inf(r) < max(tol, 1e-12):
            return x, 0

        z = self._precond * r
        ztr = float(z @ r)
        direction = z.copy()
        for iteration in range(max_iters):
            g_dir = self.matvec(direction)
            alpha = ztr / float(direction @ g_dir)
            x += alpha * direction
            r -= alpha * g_dir
            if _norm_inf(r) < tol:
                return x, iteration + 1
            z = self._precond * r
            ztr_prev = ztr
            ztr = float(z @ r)
            direction = z + (ztr / ztr_prev) * direction
        return x, max_iters

    def solve(self, b, warm_start=None, tol: float = 1e-9) -> np.ndarray:
        """Return ``[x; y]`` solving the KKT system for ``b = [rx; ry]``."""
        rhs = np.asarray(b, dtype=np.float64).ravel()
        n, m = self.n, self.m
        if rhs.size != n + m:
            raise ValueError(f"right-hand side has length {rhs.size}, expected {n + m}")
        if tol <= 0.0:
            warnings.warn(
                f"tol = {tol:f} <= 0, conjugate gradients will run to its iteration limit",
                stacklevel=2,
            )
        if _norm_inf(rhs) <= 1e-12:
            return np.zeros(n + m)

        r_y = self.diag_r[n:]
        ry = rhs[n:]
        reduced = rhs[:n] + self.a.rmatvec(ry / r_y)
        x, iterations = self.pcg(reduced, warm_start, 10 * n, tol)
        y = (self._accum_by_a(x) - ry) / r_y
        self.tot_cg_its += iterations
        return np.concatenate([x, y])