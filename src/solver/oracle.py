"""
LP/IP oracle contract.

An oracle only has to implement `solve` over a `LinearProgram` and `clone`;
every structural query used by the classifier and the relaxation engine is
derived from it here, so tests can either stub `solve` or override the
higher-level queries directly.
"""

import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
from loguru import logger

from instances.common import EPSILON, Sense, SolveStatus, VariableKind, is_approx_zero
from instances.errors import ContractViolation, HeuristicInapplicable, OracleError
from lattice.matrix import as_int_vector, rank

SUPPORTED_STATUSES = (
    SolveStatus.OPTIMAL,
    SolveStatus.INFEASIBLE,
    SolveStatus.UNBOUNDED,
    SolveStatus.DUAL_INFEASIBLE,
)
UNBOUNDED_STATUSES = (SolveStatus.UNBOUNDED, SolveStatus.DUAL_INFEASIBLE)


@dataclass(frozen=True)
class LinearProgram:
    """
    min / max c x
    s.t. A_eq x == b_eq
         A_ub x <= b_ub
         lower <= x <= upper   (None means infinite)
    """

    c: np.ndarray
    A_eq: np.ndarray
    b_eq: np.ndarray
    A_ub: np.ndarray
    b_ub: np.ndarray
    lower: Tuple[Optional[float], ...]
    upper: Tuple[Optional[float], ...]
    kinds: Tuple[str, ...]
    sense: str = Sense.MINIMIZE

    @property
    def n(self) -> int:
        return len(self.c)

    def is_lp(self) -> bool:
        return all(kind == VariableKind.CONTINUOUS for kind in self.kinds)

    def key(self) -> str:
        h = hashlib.sha256()
        for arr in (self.c, self.A_eq, self.b_eq, self.A_ub, self.b_ub):
            arr = np.asarray(arr, dtype=np.float64)
            h.update(repr(arr.shape).encode())
            h.update(arr.tobytes())
        h.update(repr((self.lower, self.upper, self.kinds, self.sense)).encode())
        return h.hexdigest()


@dataclass(frozen=True)
class OracleResult:
    status: str
    x: Optional[np.ndarray] = None
    objective_value: Optional[float] = None
    # Shadow prices of the equality rows: d(objective) / d(b_eq)
    duals: Optional[np.ndarray] = None


@dataclass(frozen=True)
class RelaxationResult:
    feasible: bool
    bounded: bool
    objective_value: Optional[float]
    basis_mask: Optional[List[bool]]
    duals: Optional[np.ndarray]


@dataclass(frozen=True)
class IntegerResult:
    solution: np.ndarray
    value: int
    status: str


def _float_matrix(M, n: int) -> np.ndarray:
    arr = np.asarray(M, dtype=np.float64)
    return arr.reshape(-1, n) if arr.size else np.zeros((0, n))


def make_program(
    c,
    A_eq=None,
    b_eq=None,
    A_ub=None,
    b_ub=None,
    lower: Optional[Sequence[Optional[float]]] = None,
    upper: Optional[Sequence[Optional[float]]] = None,
    kind: str = VariableKind.CONTINUOUS,
    sense: str = Sense.MINIMIZE,
) -> LinearProgram:
    c = np.asarray(c, dtype=np.float64).reshape(-1)
    n = len(c)
    A_eq = _float_matrix(A_eq if A_eq is not None else [], n)
    A_ub = _float_matrix(A_ub if A_ub is not None else [], n)
    b_eq = np.asarray(b_eq if b_eq is not None else [], dtype=np.float64).reshape(-1)
    b_ub = np.asarray(b_ub if b_ub is not None else [], dtype=np.float64).reshape(-1)
    if A_eq.shape[0] != len(b_eq) or A_ub.shape[0] != len(b_ub):
        raise ValueError("Row counts of constraint matrices and right-hand sides differ")
    lower = tuple(lower) if lower is not None else (None,) * n
    upper = tuple(upper) if upper is not None else (None,) * n
    return LinearProgram(
        c=c,
        A_eq=A_eq,
        b_eq=b_eq,
        A_ub=A_ub,
        b_ub=b_ub,
        lower=lower,
        upper=upper,
        kinds=(kind,) * n,
        sense=sense,
    )


def vertex_basis(A, x: Sequence[float], nonnegative: Sequence[bool]) -> List[bool]:
    """
    Basis of an optimal vertex `x`: the columns in its support, completed
    greedily (exact rank) to rank(A) linearly independent columns.
    Sign-free columns are preferred over nonnegative ones when completing.
    """
    A = np.asarray(A, dtype=object)
    n = A.shape[1]
    target = rank(A)
    support = [j for j in range(n) if not is_approx_zero(x[j])]
    free = [j for j in range(n) if not nonnegative[j] and j not in support]
    rest = [j for j in range(n) if nonnegative[j] and j not in support]
    chosen: List[int] = []
    for j in support + free + rest:
        if len(chosen) == target:
            break
        if rank(A[:, chosen + [j]]) > len(chosen):
            chosen.append(j)
    return [j in chosen for j in range(n)]


class LPOracle(ABC):
    """Contract around an external LP/IP solver."""

    @abstractmethod
    def solve(self, program: LinearProgram) -> OracleResult:
        ...

    @abstractmethod
    def clone(self) -> "LPOracle":
        """A fresh handle with the same configuration and no shared solver state."""
        ...

    def _solve_checked(self, program: LinearProgram) -> OracleResult:
        result = self.solve(program)
        if result.status not in SUPPORTED_STATUSES:
            raise OracleError(f"Unsupported oracle status: {result.status}")
        return result

    @staticmethod
    def _instance_program(A, b, C, nonnegative, kind: str) -> LinearProgram:
        A = np.asarray(A)
        n = A.shape[1]
        C = np.asarray(C, dtype=np.float64)
        c = C[0, :] if C.ndim == 2 else C
        lower = tuple(0.0 if nonnegative[j] else None for j in range(n))
        return make_program(c, A_eq=A, b_eq=b, lower=lower, kind=kind)

    def solve_relaxation(self, A, b, C, u, nonnegative) -> RelaxationResult:
        """
        Linear relaxation of min C[0] x s.t. Ax = b, x_i >= 0 where nonnegative.

        Upper bounds are expected as explicit rows of A; `u` is only checked
        for consistency with the number of columns.
        """
        if len(u) != np.asarray(A).shape[1]:
            raise ValueError("Upper bound vector does not match the number of columns")
        program = self._instance_program(A, b, C, nonnegative, VariableKind.CONTINUOUS)
        result = self._solve_checked(program)
        basis_mask = None
        if result.status == SolveStatus.OPTIMAL:
            basis_mask = vertex_basis(A, result.x, nonnegative)
        return RelaxationResult(
            feasible=result.status != SolveStatus.INFEASIBLE,
            bounded=result.status not in UNBOUNDED_STATUSES,
            objective_value=result.objective_value,
            basis_mask=basis_mask,
            duals=result.duals,
        )

    def solve_integer(self, A, b, C, u, nonnegative) -> IntegerResult:
        n = np.asarray(A).shape[1]
        program = self._instance_program(A, b, C, nonnegative, VariableKind.INTEGER)
        result = self._solve_checked(program)
        if result.x is None:
            return IntegerResult(as_int_vector(np.zeros(n, dtype=np.int64)), 0, result.status)
        solution = as_int_vector(np.rint(result.x).astype(np.int64))
        return IntegerResult(solution, int(round(result.objective_value)), result.status)

    def is_feasible(self, A, b, u, nonnegative) -> bool:
        n = np.asarray(A).shape[1]
        return self.solve_relaxation(A, b, np.zeros((1, n)), u, nonnegative).feasible

    def is_bounded(self, A, b, c, nonnegative, sense: str = Sense.MINIMIZE) -> bool:
        """True iff optimizing `c` over the relaxation is bounded. Assumes feasibility."""
        A = np.asarray(A)
        n = A.shape[1]
        lower = tuple(0.0 if nonnegative[j] else None for j in range(n))
        program = make_program(c, A_eq=A, b_eq=b, lower=lower, sense=sense)
        return self._solve_checked(program).status not in UNBOUNDED_STATUSES

    def is_bounded_polyhedron(self, A) -> bool:
        """
        True iff {x : Ax = b, x >= 0} is bounded for every b, i.e. the only
        x >= 0 with Ax = 0 is x = 0.
        """
        A = np.asarray(A, dtype=np.float64)
        m, n = A.shape
        program = make_program(
            np.ones(n), A_eq=A, b_eq=np.zeros(m), lower=(0.0,) * n, sense=Sense.MAXIMIZE
        )
        return self._solve_checked(program).status not in UNBOUNDED_STATUSES

    def is_degenerate(self, A, b, C, u, nonnegative) -> bool:
        """True iff some basic variable of the optimal vertex of the relaxation is zero."""
        if len(u) != np.asarray(A).shape[1]:
            raise ValueError("Upper bound vector does not match the number of columns")
        program = self._instance_program(A, b, C, nonnegative, VariableKind.CONTINUOUS)
        result = self._solve_checked(program)
        if result.status != SolveStatus.OPTIMAL:
            raise OracleError(f"Linear relaxation ended with status {result.status}")
        basis = vertex_basis(A, result.x, nonnegative)
        return any(basis[j] and is_approx_zero(result.x[j]) for j in range(len(basis)))

    def cone_element(self, rays) -> Optional[np.ndarray]:
        """
        A point x >= 0 with sum(x) = 1 and r x >= 0 for every ray r in `rays`,
        or None when there is no such point.
        """
        rays = np.asarray(rays, dtype=np.float64)
        if rays.size == 0:
            return None
        rays = rays.reshape(len(rays), -1)
        k, n = rays.shape
        program = make_program(
            np.ones(n),
            A_eq=np.ones((1, n)),
            b_eq=[1.0],
            A_ub=-rays,
            b_ub=np.zeros(k),
            lower=(0.0,) * n,
        )
        result = self._solve_checked(program)
        if result.status != SolveStatus.OPTIMAL:
            return None
        return np.asarray(result.x, dtype=np.float64)

    def optimal_basis(self, A, b, C, u, nonnegative) -> List[bool]:
        result = self.solve_relaxation(A, b, C, u, nonnegative)
        if result.basis_mask is None:
            raise OracleError("Linear relaxation has no optimal basis")
        return result.basis_mask

    def duals(self, A, b, C, u, nonnegative) -> Optional[np.ndarray]:
        return self.solve_relaxation(A, b, C, u, nonnegative).duals

    def unboundedness_proof(self, A, nonnegative, i: int) -> Optional[np.ndarray]:
        """
        An integer u with Au = 0, u_j >= 0 where nonnegative and u_i >= 1,
        or None when no such vector exists.
        """
        A = np.asarray(A)
        m, n = A.shape
        lower = [0.0 if nonnegative[j] else None for j in range(n)]
        lower[i] = 1.0
        program = make_program(
            np.zeros(n), A_eq=A, b_eq=np.zeros(m), lower=lower, kind=VariableKind.INTEGER
        )
        result = self._solve_checked(program)
        if result.status != SolveStatus.OPTIMAL:
            return None
        return as_int_vector(np.rint(result.x).astype(np.int64))

    def bounded_objective(self, A, i: int, sigma: Sequence[int]) -> np.ndarray:
        """
        Objective for the bounded case of project-and-lift.

        By Farkas' Lemma, if y solves y A^sigma == e^sigma, y A_rest <= e_rest with
        e = -unit(i), then c = e - A^T y satisfies c[sigma] = 0 and c u = -u_i
        for every u in ker(A).
        """
        A = np.asarray(A, dtype=np.float64)
        m, n = A.shape
        e = np.zeros(n)
        e[i] = -1.0
        sigma_set = set(sigma)
        rest = [j for j in range(n) if j not in sigma_set]
        sigma = list(sigma)
        program = make_program(
            np.zeros(m),
            A_eq=A[:, sigma].T,
            b_eq=e[sigma],
            A_ub=A[:, rest].T,
            b_ub=e[rest],
            sense=Sense.MAXIMIZE,
        )
        result = self._solve_checked(program)
        if result.status != SolveStatus.OPTIMAL:
            raise ContractViolation("Farkas system for the bounded objective is infeasible")
        return e - A.T.dot(result.x)

    def optimal_weight_vector(self, L, v) -> Tuple[np.ndarray, float]:
        """
        A point x >= 0, sum(x) = 1, orthogonal to every row of `L`, minimizing v x.

        Raises HeuristicInapplicable when no such point exists.
        """
        L = np.asarray(L, dtype=np.float64)
        n = L.shape[1]
        A_eq = np.vstack([L.reshape(-1, n), np.ones((1, n))])
        b_eq = np.concatenate([np.zeros(A_eq.shape[0] - 1), [1.0]])
        program = make_program(
            np.asarray(v, dtype=np.float64), A_eq=A_eq, b_eq=b_eq, lower=(0.0,) * n
        )
        result = self._solve_checked(program)
        if result.status != SolveStatus.OPTIMAL:
            raise HeuristicInapplicable(f"Weight vector LP ended with status {result.status}")
        return np.asarray(result.x, dtype=np.float64), float(result.objective_value)

    def optimal_row_span(self, A, b, c, sense: str = Sense.MINIMIZE) -> np.ndarray:
        """
        A^T y where y is the dual optimum of opt c x s.t. Ax = b, x >= 0.

        Raises HeuristicInapplicable if the LP has no dual solution.
        """
        A = np.asarray(A, dtype=np.float64)
        n = A.shape[1]
        program = make_program(c, A_eq=A, b_eq=b, lower=(0.0,) * n, sense=sense)
        result = self._solve_checked(program)
        if result.status != SolveStatus.OPTIMAL or result.duals is None:
            raise HeuristicInapplicable(f"Row span LP ended with status {result.status}")
        return A.T.dot(np.asarray(result.duals, dtype=np.float64))

    def positive_row_span(self, A, b) -> np.ndarray:
        """A strictly positive vector in the row span of `A`."""
        n = np.asarray(A).shape[1]
        span = self.optimal_row_span(A, b, np.ones(n), Sense.MAXIMIZE)
        if np.any(span < EPSILON):
            raise HeuristicInapplicable("Row span vector is not strictly positive")
        logger.debug("Found positive row span vector with minimum entry {:.4f}", span.min())
        return span
