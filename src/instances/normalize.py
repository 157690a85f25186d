from typing import List, Optional, Sequence, Tuple

import numpy as np
from loguru import logger

from lattice.matrix import as_int_matrix, as_int_vector, li_rows, rank


def normalize_ip(
    A,
    b,
    C,
    u: Sequence[Optional[int]],
    nonnegative: Sequence[bool],
    apply_normalization: bool = True,
    invert_objective: bool = True,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray, Tuple[Optional[int], ...], Tuple[bool, ...]]:
    """
    Transform
        max C x  s.t.  A x <= b,  0 <= x <= u
    into
        min -C x  s.t.  [A I 0; UB 0 I] x' = [b; ubs]
    by adding one slack per row and one slack per upper-bounded variable.

    Rows of `A` are inequalities here, so dependent rows stay: each gets its
    own slack and the result has full row rank. With `apply_normalization=False`
    the input is already an equality system, and the only change is dropping
    its dependent rows.
    """
    A = as_int_matrix(A)
    b = as_int_vector(b)
    C = np.asarray(C, dtype=np.float64)
    m, n = A.shape
    if not apply_normalization:
        if m > 0 and rank(A) < m:
            A, b = li_rows(A, b)
        return A, b, C, tuple(u), tuple(bool(x) for x in nonnegative)

    bounded_cols = [j for j in range(n) if u[j] is not None]
    k = len(bounded_cols)
    UB = np.zeros((k, n), dtype=np.int64)
    ubs: List[int] = []
    for i, j in enumerate(bounded_cols):
        UB[i, j] = 1
        ubs.append(int(u[j]))

    top = np.hstack(
        [A, as_int_matrix(np.eye(m, dtype=np.int64)), as_int_matrix(np.zeros((m, k), dtype=np.int64))]
    )
    if k > 0:
        bottom = np.hstack(
            [
                as_int_matrix(UB),
                as_int_matrix(np.zeros((k, m), dtype=np.int64)),
                as_int_matrix(np.eye(k, dtype=np.int64)),
            ]
        )
        new_A = np.vstack([top, bottom])
    else:
        new_A = top
    new_b = np.concatenate([b, as_int_vector(np.array(ubs, dtype=np.int64))])

    # Downstream reductions assume minimization, so the objective is negated
    sign = -1.0 if invert_objective else 1.0
    new_C = np.hstack([sign * C, np.zeros((C.shape[0], m + k))])
    new_u = tuple(u) + (None,) * (m + k)
    new_nonnegative = tuple(bool(x) for x in nonnegative) + (True,) * (m + k)
    logger.debug("Normalized {}x{} system to {}x{}", m, n, *new_A.shape)
    return new_A, new_b, new_C, new_u, new_nonnegative
