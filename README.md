# kktsolve

Solvers for the regularised, quasi-definite KKT systems that come up in every
iteration of an operator-splitting conic or quadratic program solver:

```
[ R_x + P     A^T ] [x]   [r_x]
[    A       -R_y ] [y] = [r_y]
```

Here `A` is an `m x n` sparse constraint matrix. `P` is an optional `n x n`
positive semidefinite matrix, given by its upper triangle; entries below the
diagonal are ignored. `diag_r = [R_x; R_y]` is a strictly positive diagonal of
length `n + m`.

There are two back ends with the same interface:

- `kktsolve.direct.DirectLinearSystem` assembles the upper triangle of the KKT
  matrix, orders it with a minimum-degree permutation, computes the
  elimination tree once, and factors it as `L D L^T`. After that, each solve is
  a forward and a back substitution. When `diag_r` changes, the new values are
  written into the stored diagonal entries and the numeric factorisation is
  repeated; the ordering and the symbolic structure are kept.
- `kktsolve.indirect.IndirectLinearSystem` eliminates `y` and solves the reduced
  positive definite system `(R_x + P + A^T R_y^{-1} A) x = r_x + A^T R_y^{-1} r_y`
  by conjugate gradients with a diagonal (Jacobi) preconditioner. It can be
  warm-started and takes a tolerance.

## Installation

```
pip install kktsolve
```

numpy is the only runtime dependency. Python 3.10 or later is required.

## Sparse matrices

`kktsolve.csparse.CscMatrix` holds matrices in compressed sparse column form.
It has the fields `m`, `n`, `p` (column pointers), `i` (row indices) and `x`
(values), and it checks them when it is created:

```python
import numpy as np
from kktsolve.csparse import CscMatrix

a = CscMatrix.from_dense(np.array([[-1.0, 1.0],
                                   [ 1.0, 0.0],
                                   [ 0.0, 1.0]]))
p = CscMatrix.from_dense(np.array([[3.0, -1.0],
                                   [0.0,  2.0]]))  # upper triangle only

a.nnz                       # 4 (a property)
a.matvec([1.0, 2.0])        # A @ x
a.rmatvec([1.0, 0.0, 1.0])  # A^T @ y
p.sym_matvec([1.0, 1.0])    # full symmetric product from the upper triangle
a.transpose().to_dense()
```

The same module also provides the building blocks:

- `cumsum(counts)` turns per-column counts into the `len(counts) + 1` column
  pointers.
- `compress(m, n, rows, cols, values)` turns triplets into a `CscMatrix`. Entries
  keep their input order within a column. It returns the matrix and the position
  each triplet ended up in.
- `form_kkt(a, p, diag_r, upper)` builds the upper or lower triangle of the KKT
  matrix. It returns a `KktMatrix`, which holds `matrix`, `diag_p` (the diagonal
  of `P`), `diag_r_idxs` (where each `R` entry sits in `matrix.x`) and `upper`.

## Solving

```python
import numpy as np
from kktsolve.direct import DirectLinearSystem
from kktsolve.indirect import IndirectLinearSystem

n, m = 2, 3
diag_r = np.full(n + m, 1e-3)
rhs = np.array([1.0, -1.0, 0.5, 0.0, 2.0])   # [r_x; r_y]

direct = DirectLinearSystem(a, p, diag_r)
xy = direct.solve(rhs)                       # returns [x; y]

indirect = IndirectLinearSystem(a, p, diag_r)
xy2 = indirect.solve(rhs, tol=1e-10)         # optionally warm_start=<x guess>

# When the regularisation changes:
new_r = np.full(n + m, 1e-2)
direct.update_diag_r(new_r)
indirect.update_diag_r(new_r)
```

`solve` does not change the vector you pass in. It returns a new array.
`DirectLinearSystem.solve` accepts `warm_start` and `tol` so the two classes can
be swapped, but it does not use them.

`kktsolve.direct.FactorizationError` is raised in these cases:

- the KKT matrix has an empty column, or is not upper triangular;
- `D` has a zero pivot;
- fewer than `n` pivots are positive, which means the problem seems to be
  non-convex.

The direct module also exports `invert_permutation(perm)` and
`symmetric_permute(a, pinv)`. The second returns the upper triangle of
`P A P^T` and the new position of every entry of `a`.

The indirect solver has more methods:

- `matvec(x)` applies the reduced operator `R_x + P + A^T R_y^{-1} A`.
- `pcg(b, warm_start, max_iters, tol)` returns the solution and the number of
  iterations used.
- `tot_cg_its` counts the iterations over every solve.

`IndirectLinearSystem.solve` returns zeros when the right-hand side has an
infinity norm of at most `1e-12`. It issues a warning when `tol <= 0`.

## What it does not do

This package only solves the KKT linear system. It does not contain a conic or
quadratic program solver. It has no cone projections, no settings or
convergence loop, no reading or writing of problem files, and no command-line
program.

## Running the tests

```
pip install "kktsolve[test]"
pytest
```