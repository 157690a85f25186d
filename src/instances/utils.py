from typing import List

import numpy as np

from instances.ipinstance import IPInstance
from lattice.matrix import as_int_vector, lift_partial_solution


def has_slacks(A) -> bool:
    """True iff every row has a column that is a unit vector on that row."""
    A = np.asarray(A)
    m, n = A.shape
    for i in range(m):
        found = False
        for j in range(n):
            if A[i, j] == 1 and all(A[k, j] == 0 for k in range(m) if k != i):
                found = True
                break
        if not found:
            return False
    return True


def ends_with_slacks(A) -> bool:
    """True iff the last m columns of A form an identity matrix."""
    A = np.asarray(A)
    m, n = A.shape
    if m > n:
        return False
    for i in range(m):
        j = n - m + i
        if A[i, j] != 1 or any(A[i, k] != 0 for k in range(n - m, n) if k != j):
            return False
    return True


def instance_has_slacks(instance: IPInstance) -> bool:
    return has_slacks(instance.A)


def guess_initial_solution(instance: IPInstance) -> np.ndarray:
    """
    A feasible solution of `instance` for two easy shapes:

    - the last m columns are slacks and b >= 0: slacks take b, the rest is 0
    - n = 2 k^2, read as a k x k assignment problem followed by one binary
      slack per variable: the identity assignment completed by the slacks

    Raises ValueError for anything else.
    """
    A, b = instance.A, instance.b
    m, n = A.shape
    solution = [0] * n
    if ends_with_slacks(A):
        if any(x < 0 for x in b):
            raise ValueError("Cannot guess initial solution for this instance")
        solution[n - m :] = [int(x) for x in b]
        return as_int_vector(solution)
    if n % 2 == 0:
        half = n // 2
        k = int(round(half ** 0.5))
        if k * k == half:
            for i in range(k):
                solution[i * k + i] = 1
            for i in range(half, n):
                solution[i] = 1 - solution[i - half]
            return as_int_vector(solution)
    raise ValueError("Cannot guess initial solution for this instance")


def extend_feasible_solution(instance: IPInstance, solution) -> np.ndarray:
    """Complete values for the first variables to an integer solution of Ax = b."""
    return lift_partial_solution(solution, instance.b, instance.A)


def describe(instance: IPInstance) -> str:
    lines: List[str] = [
        f"IPInstance: {instance.m} constraints, {instance.n} variables "
        f"(originally {instance.orig_cons} x {instance.orig_vars})",
        f"  bounded: [0, {instance.bounded_end}), "
        f"nonnegative: [0, {instance.nonnegative_end}), "
        f"lattice rank: {instance.lattice_basis.shape[0]}",
        f"  permutation: {list(instance.permutation)}",
    ]
    lines.extend("  " + line for line in str(instance).splitlines())
    return "\n".join(lines)


# Term orders and comparison of test sets


def grevlex_matrix(n: int) -> np.ndarray:
    """Weight matrix of the grevlex order with x_n > x_{n-1} > ... > x_1."""
    return np.triu(np.ones((n, n), dtype=np.int64))


def lex_matrix(n: int) -> np.ndarray:
    """Weight matrix of the lex order with x_1 > x_2 > ... > x_n."""
    return np.eye(n, dtype=np.int64)


def revlex_matrix(n: int) -> np.ndarray:
    """Weight matrix of the lex order with x_1 < x_2 < ... < x_n, the 4ti2 tiebreaker."""
    return -np.eye(n, dtype=np.int64)


def _as_keys(vectors) -> List[tuple]:
    return [tuple(int(x) for x in v) for v in vectors]


def is_included(gb1, gb2) -> bool:
    """True iff every vector of `gb1` is also in `gb2`."""
    return not difference(gb1, gb2)


def difference(gb1, gb2) -> List[np.ndarray]:
    """Vectors of `gb1` missing from `gb2`, in the order of `gb1`."""
    present = set(_as_keys(gb2))
    return [as_int_vector(key) for key in _as_keys(gb1) if key not in present]
