"""
Exact integer linear algebra for lattice computations.

Every function here works over Python integers (numpy object arrays) and never
rounds. Rank and row reduction go through sympy, Hermite Normal Forms and
lattice membership go through mutable_lattice.
"""

from typing import List, Sequence, Tuple

import numpy as np
import sympy
from loguru import logger
from mutable_lattice import Lattice, Vector

from instances.errors import InfeasibleRelaxation, NoIntegerSolution


def as_int_matrix(M) -> np.ndarray:
    """Return a 2-D object array of Python ints with the same shape as `M`."""
    arr = np.asarray(M)
    if arr.ndim != 2:
        raise ValueError(f"Expected a 2-D matrix, got shape {arr.shape}")
    out = np.empty(arr.shape, dtype=object)
    for idx, x in np.ndenumerate(arr):
        out[idx] = int(x)
    return out


def as_int_vector(v) -> np.ndarray:
    arr = np.asarray(v)
    if arr.ndim != 1:
        raise ValueError(f"Expected a vector, got shape {arr.shape}")
    out = np.empty(arr.shape, dtype=object)
    for i, x in enumerate(arr):
        out[i] = int(x)
    return out


def _to_sympy(M: np.ndarray) -> sympy.Matrix:
    rows, cols = M.shape
    return sympy.Matrix(rows, cols, [int(x) for x in M.flat])


def _rows(M: np.ndarray) -> List[List[int]]:
    return [[int(x) for x in row] for row in M]


def _from_rows(rows: List[List[int]], n_cols: int) -> np.ndarray:
    out = np.empty((len(rows), n_cols), dtype=object)
    for i, row in enumerate(rows):
        for j, x in enumerate(row):
            out[i, j] = x
    return out


def rank(M) -> int:
    M = as_int_matrix(M)
    if M.size == 0:
        return 0
    return int(_to_sympy(M).rank())


def independent_rows(A) -> List[int]:
    """Indices of a maximal linearly independent set of rows, chosen greedily in order."""
    A = as_int_matrix(A)
    if A.size == 0:
        return []
    _, pivots = _to_sympy(A).T.rref()
    return list(pivots)


def li_rows(A, b) -> Tuple[np.ndarray, np.ndarray]:
    """
    Drop linearly dependent rows of `A x = b`.

    Raises InfeasibleRelaxation if a dropped row is inconsistent with the kept ones.
    """
    A = as_int_matrix(A)
    b = as_int_vector(b)
    keep = independent_rows(A)
    if len(keep) == A.shape[0]:
        return A, b
    augmented = np.hstack([A, b.reshape(-1, 1)])
    if rank(augmented) != len(keep):
        raise InfeasibleRelaxation("Equality constraints are inconsistent")
    logger.debug("Removed {} linearly dependent rows", A.shape[0] - len(keep))
    return A[keep, :], b[keep]


def _pivot_column(row: Sequence[int]) -> int:
    for j, x in enumerate(row):
        if x != 0:
            return j
    return -1


def _lattice(M: np.ndarray) -> Lattice:
    """Row lattice of `M`, brought to Hermite Normal Form."""
    L = Lattice(M.shape[1], _rows(M))
    L.HNFify()
    return L


def hnf(M) -> np.ndarray:
    """
    Upper row Hermite Normal Form of `M`.

    Pivots are positive, entries above a pivot lie in [0, pivot) and zero rows
    are dropped, so the result has rank(M) rows. It is the unique HNF of the
    row lattice of `M`.
    """
    M = as_int_matrix(M)
    return _from_rows(_lattice(M).tolist(), M.shape[1])


def normalize_hnf(H) -> np.ndarray:
    """
    Rewrite an upper row HNF so that every entry above a pivot is non-positive
    and of strictly smaller magnitude than the pivot.
    """
    H = as_int_matrix(H)
    rows = _rows(H)
    for i in range(len(rows)):
        j = _pivot_column(rows[i])
        if j < 0:
            break
        for k in range(i):
            if rows[k][j] > 0:
                rows[k] = [a - c for a, c in zip(rows[k], rows[i])]
    return _from_rows(rows, H.shape[1])


def is_normalized_hnf(H) -> bool:
    H = as_int_matrix(H)
    for i in range(H.shape[0]):
        j = _pivot_column(H[i])
        if j < 0:
            break
        pivot = H[i, j]
        if pivot <= 0:
            return False
        for k in range(i):
            if H[k, j] > 0 or (H[k, j] < 0 and abs(H[k, j]) >= pivot):
                return False
    return True


def basis_to_uhnf(basis) -> np.ndarray:
    return normalize_hnf(hnf(basis))


def hnf_with_transform(M) -> Tuple[np.ndarray, np.ndarray]:
    """
    Upper row HNF H of `M` together with a unimodular U such that U M = H.

    H keeps the shape of `M`: rows past rank(M) are zero.
    """
    M = as_int_matrix(M)
    rows, cols = M.shape
    reduced = hnf(np.hstack([M, as_int_matrix(np.eye(rows, dtype=np.int64))]))
    return reduced[:, :cols], reduced[:, cols:]


def _transposed_hnf(A: np.ndarray) -> Tuple[np.ndarray, np.ndarray, int]:
    """HNF of [A^T | I_n], split into (H, U, r) with U A^T = H and r = rank(A)."""
    H, U = hnf_with_transform(A.T)
    r = sum(1 for i in range(H.shape[0]) if any(x != 0 for x in H[i]))
    return H, U, r


def hnf_lattice_basis(A) -> Tuple[np.ndarray, int]:
    """
    Return a row basis for the lattice ker(A) together with rank(A).

    The basis is read off the identity block of the HNF of [A^T | I_n]; its
    entries tend to be much smaller than those of a rational kernel basis.
    """
    A = as_int_matrix(A)
    _, U, r = _transposed_hnf(A)
    return U[r:, :], r


def integer_solve(A, b) -> np.ndarray:
    """
    An integer solution of A x = b.

    Raises NoIntegerSolution when the system has no integer point.
    """
    A = as_int_matrix(A)
    b = as_int_vector(b)
    m, n = A.shape
    if len(b) != m:
        raise ValueError(f"Right-hand side has length {len(b)}, expected {m}")
    H, U, r = _transposed_hnf(A)
    if r == 0:
        if any(x != 0 for x in b):
            raise NoIntegerSolution("Linear system is inconsistent")
        return as_int_vector([0] * n)
    # H[:r] is already in HNF, so it is the basis of its own row lattice
    column_lattice = _lattice(H[:r])
    try:
        y = column_lattice.coefficients_of(Vector([int(x) for x in b])).tolist()
    except ValueError as e:
        raise NoIntegerSolution("Right-hand side is not in the column lattice of A") from e
    return as_int_vector(U[:r].T.dot(np.array(y, dtype=object)))


def fiber_solution(A, b) -> np.ndarray:
    """A solution of Ax = b: an element of the fiber of `b`, not necessarily non-negative."""
    return integer_solve(A, b)


def in_kernel(v, A) -> bool:
    product = as_int_matrix(A).dot(as_int_vector(v))
    return all(x == 0 for x in product)


def lift_partial_solution(solution, rhs, constraints) -> np.ndarray:
    """Complete `solution` (values of the first variables) to an integer solution of the system."""
    solution = as_int_vector(solution)
    constraints = as_int_matrix(constraints)
    k = len(solution)
    partial_b = constraints[:, :k].dot(solution) if k else 0
    remaining_b = as_int_vector(rhs) - partial_b
    remaining = integer_solve(constraints[:, k:], remaining_b)
    return np.concatenate([solution, remaining])


def lift_vector(v, projected_basis, lattice_basis) -> np.ndarray:
    """
    Lift `v` from a projected lattice back to the full lattice, writing it in
    the coordinates of `projected_basis` and applying them to `lattice_basis`.
    """
    coefs = integer_solve(as_int_matrix(projected_basis).T, v)
    return as_int_matrix(lattice_basis).T.dot(coefs)
