"""
Variable classification and permutation.

A permutation is a sequence `perm` such that `perm[k] = i` means that the
variable at position i before permuting is at position k afterwards, i.e.
permuted data is `v[perm]`.
"""

from typing import List, Optional, Sequence, Tuple

import numpy as np
from loguru import logger

from instances.common import BoundednessMethod, Sense
from instances.errors import ContractViolation
from solver.oracle import LPOracle


def bounded_variables(
    A,
    b,
    nonnegative: Sequence[bool],
    oracle: LPOracle,
    method: str = BoundednessMethod.LP,
) -> List[bool]:
    """
    Boundedness of every variable of {x : Ax = b, x_i >= 0 where nonnegative}.

    With `method='lp'` variable i is bounded iff max x_i over the linear
    relaxation is finite. With `method='ip'` it is bounded iff there is no
    integer u with Au = 0, u >= 0 on the nonnegative coordinates and u_i > 0.
    The relaxation is assumed to be feasible.
    """
    n = np.asarray(A).shape[1]
    bounded = []
    for i in range(n):
        if method == BoundednessMethod.LP:
            c = np.zeros(n)
            c[i] = 1.0
            bnd = oracle.is_bounded(A, b, c, nonnegative, Sense.MAXIMIZE)
        elif method == BoundednessMethod.IP:
            bnd = oracle.unboundedness_proof(A, nonnegative, i) is None
        else:
            raise ValueError(f"Unknown boundedness method: {method}")
        bounded.append(bnd)
    logger.debug("{} of {} variables are bounded", sum(bounded), n)
    return bounded


def compute_permutation(
    bounded: Sequence[bool], nonnegative: Sequence[bool]
) -> Tuple[Tuple[int, ...], int, int]:
    """
    Stable permutation putting variables in the order
    [bounded and nonnegative | nonnegative and unbounded | unrestricted].

    Returns the permutation and the lengths `bounded_end` and `nonnegative_end`
    of the first block and of the first two blocks.
    """
    if len(bounded) != len(nonnegative):
        raise ValueError("Boundedness and nonnegativity masks differ in length")
    n = len(bounded)
    first = [i for i in range(n) if bounded[i] and nonnegative[i]]
    second = [i for i in range(n) if not bounded[i] and nonnegative[i]]
    third = [i for i in range(n) if not nonnegative[i]]
    permutation = tuple(first + second + third)
    if len(permutation) != n:
        raise ContractViolation("Variable classes do not partition the variables")
    return permutation, len(first), len(first) + len(second)


def invert_permutation(permutation: Sequence[int]) -> Tuple[int, ...]:
    n = len(permutation)
    inverse = [-1] * n
    for k, i in enumerate(permutation):
        if not 0 <= i < n or inverse[i] != -1:
            raise ContractViolation(f"Not a permutation of 0..{n - 1}: {permutation}")
        inverse[i] = k
    return tuple(inverse)


def apply_permutation(vectors, permutation: Sequence[int]) -> List[np.ndarray]:
    """Apply `permutation` to each vector in `vectors`."""
    perm = list(permutation)
    permuted = []
    for v in vectors:
        v = np.asarray(v)
        if len(v) != len(perm):
            raise ValueError(f"Vector of length {len(v)} for permutation of {len(perm)}")
        permuted.append(v[perm])
    return permuted


def permute_problem(
    A,
    C,
    u: Sequence[Optional[int]],
    nonnegative: Sequence[bool],
    permutation: Sequence[int],
) -> Tuple[np.ndarray, np.ndarray, Tuple[Optional[int], ...], Tuple[bool, ...]]:
    """Permute the columns of A and C and the entries of u and nonnegative together."""
    perm = list(permutation)
    invert_permutation(perm)
    A = np.asarray(A)
    C = np.asarray(C)
    if not (A.shape[1] == C.shape[1] == len(u) == len(nonnegative) == len(perm)):
        raise ContractViolation("Problem data and permutation differ in size")
    return (
        A[:, perm],
        C[:, perm],
        tuple(u[i] for i in perm),
        tuple(bool(nonnegative[i]) for i in perm),
    )
