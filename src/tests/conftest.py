"""
Shared fixtures: a solver-free oracle with scripted answers.
"""

import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import numpy as np
import pytest

from instances.errors import HeuristicInapplicable
from solver.oracle import LPOracle


class StubOracle(LPOracle):
    """
    Oracle answering structural queries from fixed data.

    Boundedness and basis membership are decided by column content, so the
    answers follow a variable through permutations.
    """

    def __init__(
        self,
        feasible=True,
        unbounded_columns=(),
        basis_columns=None,
        objective=None,
        weight=None,
        row_span=None,
    ):
        self.feasible = feasible
        self.unbounded_columns = {tuple(int(x) for x in col) for col in unbounded_columns}
        self.basis_columns = basis_columns
        self.objective = objective
        self.weight = weight
        self.row_span = row_span
        self.clones = []

    def solve(self, program):
        raise AssertionError("StubOracle does not solve programs")

    def clone(self):
        copy = StubOracle(
            self.feasible,
            (),
            self.basis_columns,
            self.objective,
            self.weight,
            self.row_span,
        )
        copy.unbounded_columns = set(self.unbounded_columns)
        self.clones.append(copy)
        return copy

    def is_feasible(self, A, b, u, nonnegative):
        return self.feasible

    def is_bounded(self, A, b, c, nonnegative, sense=None):
        i = int(np.flatnonzero(np.asarray(c, dtype=float))[0])
        column = tuple(int(x) for x in np.asarray(A)[:, i])
        return column not in self.unbounded_columns

    def optimal_basis(self, A, b, C, u, nonnegative):
        A = np.asarray(A)
        wanted = {tuple(col) for col in self.basis_columns}
        return [tuple(int(x) for x in A[:, j]) in wanted for j in range(A.shape[1])]

    def duals(self, A, b, C, u, nonnegative):
        return None

    def unboundedness_proof(self, A, nonnegative, i):
        return None

    def bounded_objective(self, A, i, sigma):
        return np.asarray(self.objective, dtype=float)

    def optimal_weight_vector(self, L, v):
        if self.weight is None:
            raise HeuristicInapplicable("no weight")
        return self.weight

    def positive_row_span(self, A, b):
        if self.row_span is None:
            raise HeuristicInapplicable("no row span")
        return self.row_span


@pytest.fixture
def stub_oracle():
    return StubOracle


@pytest.fixture
def small_system():
    """A = [[1,1,0],[0,1,1]], b = [1,1]: ker(A) is spanned by [1,-1,1]."""
    A = np.array([[1, 1, 0], [0, 1, 1]])
    b = np.array([1, 1])
    C = np.array([[1.0, 2.0, 3.0]])
    return A, b, C, [None, None, None]
