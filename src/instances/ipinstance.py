"""
Canonical matrix form of an integer program.

    min C[0] x
    s.t. A x = b
         x_i >= 0 for the first `nonnegative_end` variables
         x in Z^n

Instances are stored normalized, with variables permuted into the blocks
[bounded | nonnegative but unbounded | unrestricted], and carry an exact
integer basis of ker(A) together with one integer point of Ax = b.
"""

import math
from dataclasses import dataclass, field
from fractions import Fraction
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
import pyscipopt as scp
from loguru import logger

from instances.common import Sense, Settings
from instances.errors import ContractViolation, InfeasibleRelaxation
from instances.extract import extract_problem
from instances.normalize import normalize_ip
from instances.permutation import (
    apply_permutation,
    bounded_variables,
    compute_permutation,
    invert_permutation,
    permute_problem,
)
from lattice.matrix import as_int_vector, fiber_solution, hnf_lattice_basis
from solver.oracle import IntegerResult, LPOracle


def _frozen(arr: np.ndarray) -> np.ndarray:
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True)
class IPInstance:
    # Problem data
    A: np.ndarray
    b: np.ndarray
    C: np.ndarray
    u: Tuple[Optional[int], ...]

    # Permutation and variable types
    bounded_end: int  # variables [0, bounded_end) are bounded and nonnegative
    nonnegative_end: int  # variables [0, nonnegative_end) are nonnegative
    permutation: Tuple[int, ...]
    inverse_permutation: Tuple[int, ...]
    binaries: Tuple[bool, ...]

    # Metadata
    orig_cons: int  # constraints before normalization
    orig_vars: int  # variables before normalization
    m: int
    n: int
    sense: str

    # Lattice
    lattice_basis: np.ndarray  # row basis of ker(A)
    rank: int
    fiber_solution: np.ndarray  # A v = b, not necessarily nonnegative
    originally_bounded: Tuple[bool, ...]  # before permutation

    # Solve cache; never shared between instances
    oracle: LPOracle = field(compare=False, repr=False)

    def __str__(self) -> str:
        lines = [f"min {self.C[0].tolist()}"]
        for i in range(self.m):
            lines.append(f"{self.A[i].tolist()} = {self.b[i]}")
        for j, ub in enumerate(self.u):
            if ub is not None:
                lines.append(f"0 <= x{j} <= {ub}")
        return "\n".join(lines)

    # Variable classes

    def is_nonnegative(self, i: int) -> bool:
        return i < self.nonnegative_end

    def is_bounded(self, i: int) -> bool:
        return i < self.bounded_end

    def nonnegative_variables(self) -> List[bool]:
        return [self.is_nonnegative(i) for i in range(self.n)]

    def unbounded_variables(self) -> List[bool]:
        return [self.bounded_end <= i < self.nonnegative_end for i in range(self.n)]

    # Original, non-normalized data

    def original_matrix(self) -> np.ndarray:
        """Constraint rows and variables of the input, in input column order."""
        return self.A[:, list(self.inverse_permutation)][: self.orig_cons, : self.orig_vars]

    def original_rhs(self) -> np.ndarray:
        return self.b[: self.orig_cons]

    def original_upper_bounds(self) -> Tuple[Optional[int], ...]:
        u = tuple(self.u[i] for i in self.inverse_permutation)
        return u[: self.orig_vars]

    def original_objective(self) -> np.ndarray:
        return self.C[:, list(self.inverse_permutation)][:, : self.orig_vars]

    def original_variable_order(self, vectors) -> List[np.ndarray]:
        """Undo the variable permutation on each vector of `vectors`."""
        return apply_permutation(vectors, self.inverse_permutation)

    # Checks

    def in_kernel(self, v) -> bool:
        return all(x == 0 for x in self.A.dot(as_int_vector(v)))

    def is_feasible_solution(self, solution, permutation: Optional[Sequence[int]] = None) -> bool:
        solution = as_int_vector(solution)
        if len(solution) != self.n:
            raise ValueError(f"Solution has length {len(solution)}, expected {self.n}")
        perm = list(permutation) if permutation is not None else list(range(self.n))
        x = solution[perm]
        return bool(
            np.array_equal(self.A.dot(x), self.b)
            and all(x[i] >= 0 for i in range(self.nonnegative_end))
        )

    def nonnegative_data_only(self) -> bool:
        """True iff all entries of A and b are nonnegative and so are all variables."""
        return (
            self.nonnegative_end == self.n
            and all(a >= 0 for a in self.A.flat)
            and all(x >= 0 for x in self.b)
        )

    def integer_objective(self) -> np.ndarray:
        """C scaled by the lcm of the denominators of its entries."""
        fractions = [[Fraction(float(c)).limit_denominator() for c in row] for row in self.C]
        scale = 1
        for row in fractions:
            for f in row:
                scale = scale * f.denominator // math.gcd(scale, f.denominator)
        return np.array(
            [[int(f * scale) for f in row] for row in fractions], dtype=object
        ).reshape(self.C.shape)

    # Oracle queries

    def solve(self) -> IntegerResult:
        """Optimal solution of this instance computed by the IP oracle."""
        return self.oracle.solve_integer(
            self.A, self.b, self.C, self.u, self.nonnegative_variables()
        )

    def linear_relaxation(self) -> Optional[float]:
        return self.oracle.solve_relaxation(
            self.A, self.b, self.C, self.u, self.nonnegative_variables()
        ).objective_value

    def is_objective_bounded(self) -> bool:
        return self.oracle.is_bounded(self.A, self.b, self.C[0], self.nonnegative_variables())

    def unboundedness_proof(self, i: int) -> Optional[np.ndarray]:
        """A vector of ker(A) proving that variable `i` is unbounded, if one exists."""
        return self.oracle.unboundedness_proof(self.A, self.nonnegative_variables(), i)


@dataclass(frozen=True)
class RawProblem:
    A: np.ndarray
    b: np.ndarray
    C: np.ndarray
    u: Tuple[Optional[int], ...]
    nonnegative: Tuple[bool, ...]
    orig_cons: int
    orig_vars: int


class InstanceBuilder:
    """
    Two-phase construction of IPInstances.

    `prepare` validates raw data and normalizes it without touching the oracle;
    `build` classifies variables, permutes them and computes the lattice data.
    """

    def __init__(self, oracle: LPOracle, settings: Optional[Settings] = None):
        self.oracle = oracle
        self.settings = settings or Settings()

    def prepare(
        self,
        A,
        b,
        C,
        u: Sequence[Optional[int]],
        nonnegative: Optional[Sequence[bool]] = None,
        apply_normalization: bool = True,
        invert_objective: bool = True,
    ) -> RawProblem:
        A = np.asarray(A)
        if A.ndim != 2:
            raise ValueError(f"A must be a matrix, got shape {A.shape}")
        C = np.asarray(C, dtype=np.float64)
        if C.ndim == 1:
            C = C.reshape(1, -1)
        m, n = A.shape
        if len(b) != m:
            raise ValueError(f"b has length {len(b)}, expected {m}")
        if C.shape[1] != n:
            raise ValueError(f"C has {C.shape[1]} columns, expected {n}")
        if len(u) != n:
            raise ValueError(f"u has length {len(u)}, expected {n}")
        # Without explicit nonnegativity information every variable is nonnegative
        if nonnegative is None:
            nonnegative = [True] * n
        elif len(nonnegative) != n:
            raise ValueError(f"nonnegative has length {len(nonnegative)}, expected {n}")
        A, b, C, u, nonnegative = normalize_ip(
            A,
            b,
            C,
            u,
            nonnegative,
            apply_normalization=apply_normalization,
            invert_objective=invert_objective,
        )
        return RawProblem(A, b, C, u, nonnegative, m, n)

    def build(self, raw: RawProblem) -> IPInstance:
        A, b, C, u, nonnegative = raw.A, raw.b, raw.C, raw.u, raw.nonnegative
        m, n = A.shape
        if not self.oracle.is_feasible(A, b, u, nonnegative):
            raise InfeasibleRelaxation("Linear relaxation of the instance is infeasible")

        bounded = bounded_variables(
            A, b, nonnegative, self.oracle, self.settings.boundedness_method
        )
        permutation, bounded_end, nonnegative_end = compute_permutation(bounded, nonnegative)
        inverse = invert_permutation(permutation)
        A, C, u, nonnegative = permute_problem(A, C, u, nonnegative, permutation)

        basis, r = hnf_lattice_basis(A)
        if r != m:
            logger.warning("Constraint matrix has rank {} < {} rows", r, m)
        fiber = fiber_solution(A, b)
        if not np.array_equal(A.dot(fiber), b):
            raise ContractViolation("Fiber solution does not satisfy Ax = b")
        if basis.size and any(x != 0 for x in A.dot(basis.T).flat):
            raise ContractViolation("Lattice basis is not contained in ker(A)")

        logger.info(
            "Built instance: {} rows, {} vars ({} bounded, {} nonnegative), lattice dim {}",
            m,
            n,
            bounded_end,
            nonnegative_end,
            basis.shape[0],
        )
        return IPInstance(
            A=_frozen(A),
            b=_frozen(b),
            C=_frozen(np.array(C, dtype=np.float64)),
            u=tuple(u),
            bounded_end=bounded_end,
            nonnegative_end=nonnegative_end,
            permutation=permutation,
            inverse_permutation=inverse,
            binaries=tuple(ub == 1 for ub in u),
            orig_cons=raw.orig_cons,
            orig_vars=raw.orig_vars,
            m=m,
            n=n,
            sense=Sense.MINIMIZE,
            lattice_basis=_frozen(basis),
            rank=r,
            fiber_solution=_frozen(fiber),
            originally_bounded=tuple(bounded),
            oracle=self.oracle,
        )

    def __call__(self, A, b, C, u, nonnegative=None, **kwargs) -> IPInstance:
        return self.build(self.prepare(A, b, C, u, nonnegative, **kwargs))


def build_instance(
    A,
    b,
    C,
    u: Sequence[Optional[int]],
    nonnegative: Optional[Sequence[bool]] = None,
    *,
    oracle: LPOracle,
    settings: Optional[Settings] = None,
    apply_normalization: bool = True,
    invert_objective: bool = True,
) -> IPInstance:
    builder = InstanceBuilder(oracle, settings)
    return builder(
        A,
        b,
        C,
        u,
        nonnegative,
        apply_normalization=apply_normalization,
        invert_objective=invert_objective,
    )


def instance_from_model(
    model: scp.Model,
    oracle: LPOracle,
    infer_binary: bool = True,
    settings: Optional[Settings] = None,
) -> IPInstance:
    """IPInstance of a pyscipopt model; the extracted data is already in equality form."""
    problem = extract_problem(model, infer_binary=infer_binary, settings=settings)
    return build_instance(
        problem.A,
        problem.b,
        problem.C,
        problem.u,
        problem.nonnegative,
        oracle=oracle,
        settings=settings,
        apply_normalization=False,
        invert_objective=False,
    )


def instance_from_file(
    path: Union[str, Path],
    oracle: LPOracle,
    infer_binary: bool = True,
    settings: Optional[Settings] = None,
) -> IPInstance:
    model = scp.Model()
    model.hideOutput(True)
    model.readProblem(str(path))
    return instance_from_model(model, oracle, infer_binary=infer_binary, settings=settings)
