"""
Relaxations and projections of IPInstances.

Every operation returns a new, independent instance built from the parent's
already normalized data; the parent is never modified and its oracle handle is
cloned rather than shared.
"""

from dataclasses import replace
from typing import List, Optional, Sequence, Tuple

import numpy as np
from loguru import logger

from instances.common import (
    OBJECTIVE_CHECK_TOL,
    BasisSelection,
    ConstraintSense,
    Settings,
)
from instances.errors import ContractViolation, HeuristicInapplicable
from instances.ipinstance import InstanceBuilder, IPInstance
from lattice.matrix import as_int_matrix, as_int_vector, basis_to_uhnf, rank


def _derive(
    instance: IPInstance,
    A,
    b,
    C,
    u,
    nonnegative: Sequence[bool],
    settings: Optional[Settings],
) -> IPInstance:
    builder = InstanceBuilder(instance.oracle.clone(), settings)
    return builder(
        A, b, C, u, nonnegative, apply_normalization=False, invert_objective=False
    )


def nonnegativity_relaxation(
    instance: IPInstance,
    nonnegative: Sequence[bool],
    settings: Optional[Settings] = None,
) -> IPInstance:
    """
    Relaxation of `instance` keeping only the nonnegativity constraints of the
    variables marked in `nonnegative`.

    When exactly m variables are relaxed the objective becomes the reduced
    cost c_kept - c_relaxed A_relaxed^-1 A_kept (Thomas, "The Structure of
    Group Relaxations"). Otherwise this is an extended group relaxation and the
    objective of `instance` is kept.
    """
    nonnegative = [bool(x) for x in nonnegative]
    if len(nonnegative) != instance.n:
        raise ValueError(f"Mask has length {len(nonnegative)}, expected {instance.n}")
    relaxed = [j for j in range(instance.n) if not nonnegative[j]]
    kept = [j for j in range(instance.n) if nonnegative[j]]
    new_C = np.array(instance.C, dtype=np.float64)
    if len(relaxed) == instance.m:
        A = np.asarray(instance.A, dtype=np.float64)
        # y = c_relaxed A_relaxed^-1, computed as a solve with the transpose
        try:
            y = np.linalg.solve(A[:, relaxed].T, instance.C[0, relaxed])
        except np.linalg.LinAlgError as e:
            raise ContractViolation(
                f"Relaxed columns {relaxed} do not form an invertible basis"
            ) from e
        reduced = instance.C[0, kept] - y.dot(A[:, kept])
        new_C = np.zeros_like(new_C)
        new_C[0, kept] = reduced
    else:
        logger.debug(
            "Relaxing {} variables with m = {}: objective carried over",
            len(relaxed),
            instance.m,
        )
    return _derive(
        instance, instance.A, instance.b, new_C, instance.u, nonnegative, settings
    )


def group_relaxation(
    instance: IPInstance, settings: Optional[Settings] = None
) -> IPInstance:
    """
    Relaxation of the nonnegativity constraints of the basic variables of an
    optimal basis of the linear relaxation; only the non-basic variables stay
    nonnegative.
    """
    var_basis = instance.oracle.optimal_basis(
        instance.A, instance.b, instance.C, instance.u, instance.nonnegative_variables()
    )
    if sum(var_basis) != instance.m:
        raise ContractViolation(
            f"Optimal basis has {sum(var_basis)} variables, expected {instance.m}"
        )
    nonbasics = [not x for x in var_basis]
    return nonnegativity_relaxation(instance, nonbasics, settings)


def complement(s: Sequence[int], n: int) -> List[int]:
    excluded = set(s)
    return [i for i in range(n) if i not in excluded]


def projection(
    instance: IPInstance,
    away_from: Sequence[int],
    settings: Optional[Settings] = None,
) -> IPInstance:
    """Drop the columns in `away_from`, all of which must have relaxed nonnegativity."""
    if not all(s >= instance.nonnegative_end for s in away_from):
        raise ContractViolation(
            "Only variables with relaxed nonnegativity can be projected away"
        )
    onto = complement(away_from, instance.n)
    return _derive(
        instance,
        instance.A[:, onto],
        instance.b,
        instance.C[:, onto],
        [instance.u[j] for j in onto],
        [instance.is_nonnegative(j) for j in onto],
        settings,
    )


def project_vector(v, away_from: Sequence[int]) -> np.ndarray:
    v = np.asarray(v)
    return v[complement(away_from, len(v))]


def _simplex_sigma(instance: IPInstance) -> List[int]:
    A = instance.A
    var_basis = list(
        instance.oracle.optimal_basis(
            A, instance.b, instance.C, instance.u, instance.nonnegative_variables()
        )
    )

    def chosen() -> List[int]:
        return [i for i in range(instance.n) if var_basis[i]]

    # A numerically unstable basis may contain dependent columns; drop them
    current = rank(A[:, chosen()])
    while current < sum(var_basis):
        for j in chosen():
            var_basis[j] = False
            if rank(A[:, chosen()]) == current:
                break
            var_basis[j] = True
        else:
            raise ContractViolation("Could not remove a dependent basis column")

    # If the objective is dependent on the constraints the basis can be short
    for j in range(instance.n):
        if current >= instance.m:
            break
        if var_basis[j]:
            continue
        if rank(A[:, chosen() + [j]]) > current:
            var_basis[j] = True
            current += 1
    return chosen()


def lattice_basis_projection(
    instance: IPInstance, var_selection: str = BasisSelection.ANY
) -> Tuple[np.ndarray, np.ndarray, List[int]]:
    """
    Restrict the lattice basis to a maximal set of linearly independent columns.

    Returns the normalized HNF of the restricted basis, the restricted basis
    itself and sigma, the complement of the selected columns.
    """
    L = instance.lattice_basis
    if var_selection == BasisSelection.ANY:
        li_cols: List[int] = []
        sigma: List[int] = []
        for j in range(instance.n):
            if rank(L[:, li_cols + [j]]) > len(li_cols):
                li_cols.append(j)
            else:
                sigma.append(j)
    elif var_selection == BasisSelection.SIMPLEX_BASIS:
        sigma = _simplex_sigma(instance)
        li_cols = complement(sigma, instance.n)
    else:
        raise ValueError(f"Unknown variable selection method: {var_selection}")
    basis = as_int_matrix(L[:, li_cols])
    return basis_to_uhnf(basis), basis, sigma


def update_objective(instance: IPInstance, j: int, sigma: Sequence[int]) -> IPInstance:
    """
    Instance with the objective c of the bounded project-and-lift case:
    c[sigma] = 0 and c u = -u[j] for every u in the lattice basis.
    """
    c = instance.oracle.bounded_objective(instance.A, j, sigma)
    if np.any(np.abs(c[list(sigma)]) >= OBJECTIVE_CHECK_TOL):
        raise ContractViolation("Reconstructed objective does not vanish on sigma")
    for row in instance.lattice_basis:
        u = np.asarray(row, dtype=np.float64)
        if abs(c.dot(u) + u[j]) >= OBJECTIVE_CHECK_TOL:
            raise ContractViolation("Reconstructed objective fails c u = -u[j]")
    new_C = np.array(instance.C, dtype=np.float64)
    new_C[0, :] = c
    new_C.setflags(write=False)
    return replace(instance, C=new_C, oracle=instance.oracle.clone())


def truncation_weight(instance: IPInstance) -> Tuple[np.ndarray, float]:
    """
    Weight vector for Gröbner basis truncation (Malkin's thesis, p. 83).

    Returns an all-zero vector and 0.0, disabling weight truncation, when the
    LP has no optimal solution.
    """
    try:
        return instance.oracle.optimal_weight_vector(
            instance.lattice_basis, instance.fiber_solution
        )
    except HeuristicInapplicable as e:
        logger.warning("No truncation weight found, disabling truncation: {}", e)
        return np.zeros(instance.n), 0.0


def positive_row_span(instance: IPInstance) -> Optional[np.ndarray]:
    """A strictly positive vector in the row span of A, or None if the LP finds none."""
    try:
        return instance.oracle.positive_row_span(instance.A, instance.b)
    except HeuristicInapplicable as e:
        logger.warning("No positive row span vector: {}", e)
        return None


def add_constraint(
    instance: IPInstance,
    constraint: Sequence[int],
    rhs: int,
    sense: str = ConstraintSense.EQ,
    settings: Optional[Settings] = None,
) -> IPInstance:
    """Instance with one more row; inequalities get a new nonnegative slack variable."""
    row = as_int_vector(constraint).reshape(1, -1)
    if row.shape[1] != instance.n:
        raise ValueError(f"Constraint has {row.shape[1]} coefficients, expected {instance.n}")
    A = np.vstack([instance.A, row])
    b = np.concatenate([instance.b, as_int_vector([rhs])])
    C = np.array(instance.C, dtype=np.float64)
    u = list(instance.u)
    nonnegative = instance.nonnegative_variables()
    if sense in (ConstraintSense.LE, ConstraintSense.GE):
        slack = as_int_matrix(np.zeros((A.shape[0], 1), dtype=np.int64))
        slack[-1, 0] = 1 if sense == ConstraintSense.LE else -1
        A = np.hstack([A, slack])
        C = np.hstack([C, np.zeros((C.shape[0], 1))])
        u.append(None)
        nonnegative.append(True)
    elif sense != ConstraintSense.EQ:
        raise ValueError(f"Unknown constraint sense: {sense}")
    return _derive(instance, A, b, C, u, nonnegative, settings)
