"""
Unit tests for the normalizer and the permutation engine.

Run with: pytest src/tests/test_normalize.py -v
"""

import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import numpy as np
import pytest

from instances.common import BoundednessMethod
from instances.errors import ContractViolation
from instances.normalize import normalize_ip
from instances.permutation import (
    apply_permutation,
    bounded_variables,
    compute_permutation,
    invert_permutation,
    permute_problem,
)


def as_lists(M):
    return [[int(x) for x in row] for row in M]


class TestNormalizeIP:
    """Test slack and upper bound row insertion"""

    def test_shapes_with_upper_bounds(self):
        A, b, C, u, nonneg = normalize_ip(
            [[1, 2], [3, 1]], [4, 5], [[1.0, 1.0]], [None, 3], [True, True]
        )
        assert A.shape == (3, 5)
        assert as_lists(A) == [
            [1, 2, 1, 0, 0],
            [3, 1, 0, 1, 0],
            [0, 1, 0, 0, 1],
        ]
        assert [int(x) for x in b] == [4, 5, 3]
        assert C.tolist() == [[-1.0, -1.0, 0.0, 0.0, 0.0]]
        assert u == (None, 3, None, None, None)
        assert nonneg == (True,) * 5

    def test_no_bound_block_without_upper_bounds(self):
        A, b, C, u, _ = normalize_ip([[1, 2]], [4], [[1.0, 1.0]], [None, None], [True, True])
        assert A.shape == (1, 3)
        assert len(b) == 1 and len(u) == 3

    def test_objective_kept_without_inversion(self):
        _, _, C, _, _ = normalize_ip(
            [[1, 2]], [4], [[1.0, 1.0]], [None, None], [True, True], invert_objective=False
        )
        assert C.tolist() == [[1.0, 1.0, 0.0]]

    def test_free_variables_stay_free(self):
        _, _, _, _, nonneg = normalize_ip([[1, 2]], [4], [[0.0, 0.0]], [None, None], [False, True])
        assert nonneg == (False, True, True)

    def test_disabled_is_identity(self):
        A0 = np.array([[1, 1, 0], [0, 1, 1]])
        A, b, C, u, nonneg = normalize_ip(
            A0, [1, 1], [[1.0, 2.0, 3.0]], [None, 2, None], [True, True, False],
            apply_normalization=False,
        )
        assert as_lists(A) == A0.tolist()
        assert [int(x) for x in b] == [1, 1]
        assert C.tolist() == [[1.0, 2.0, 3.0]]
        assert u == (None, 2, None)
        assert nonneg == (True, True, False)

    def test_disabled_is_idempotent(self):
        once = normalize_ip([[1, 2], [3, 1]], [4, 5], [[1.0, 1.0]], [None, 3], [True, True])
        twice = normalize_ip(*once, apply_normalization=False)
        assert as_lists(twice[0]) == as_lists(once[0])
        assert list(twice[1]) == list(once[1])
        assert np.array_equal(twice[2], once[2])

    def test_dependent_rows_removed(self):
        A, b, _, _, _ = normalize_ip(
            [[1, 1], [2, 2]], [1, 2], [[0.0, 0.0]], [None, None], [True, True],
            apply_normalization=False,
        )
        assert A.shape == (1, 2)

    def test_dependent_inequalities_keep_their_slacks(self):
        # x <= 4 and 2x <= 5 are both binding candidates
        A, b, _, u, nonneg = normalize_ip([[1], [2]], [4, 5], [[1.0]], [None], [True])
        assert as_lists(A) == [[1, 1, 0], [2, 0, 1]]
        assert [int(x) for x in b] == [4, 5]
        assert len(u) == 3 and nonneg == (True,) * 3

    def test_opposite_inequalities_are_not_an_inconsistency(self):
        # x <= 4 and -x <= -4 pin x to 4
        A, b, _, _, _ = normalize_ip([[1], [-1]], [4, -4], [[1.0]], [None], [True])
        assert A.shape == (2, 3)
        assert [int(x) for x in b] == [4, -4]


class TestPermutation:
    """Test variable classification and permutations"""

    def test_blocks(self):
        perm, bounded_end, nonnegative_end = compute_permutation(
            [False, True, True, False], [True, True, False, True]
        )
        assert perm == (1, 0, 3, 2)
        assert (bounded_end, nonnegative_end) == (1, 3)

    def test_stable_within_blocks(self):
        perm, _, _ = compute_permutation([True] * 4, [True] * 4)
        assert perm == (0, 1, 2, 3)

    def test_bounded_free_variable_is_unrestricted(self):
        perm, bounded_end, nonnegative_end = compute_permutation([True, True], [False, True])
        assert perm == (1, 0)
        assert (bounded_end, nonnegative_end) == (1, 1)

    def test_inverse(self):
        perm = (2, 0, 3, 1)
        inverse = invert_permutation(perm)
        assert all(inverse[perm[i]] == i for i in range(4))

    def test_round_trip(self):
        perm = (2, 0, 3, 1)
        v = np.array([10, 11, 12, 13])
        (permuted,) = apply_permutation([v], perm)
        assert permuted.tolist() == [12, 10, 13, 11]
        (back,) = apply_permutation([permuted], invert_permutation(perm))
        assert back.tolist() == v.tolist()

    def test_not_a_permutation(self):
        with pytest.raises(ContractViolation):
            invert_permutation((0, 0, 1))
        with pytest.raises(ContractViolation):
            invert_permutation((0, 3))

    def test_permute_problem(self):
        A, C, u, nonneg = permute_problem(
            np.array([[1, 2, 3]]), np.array([[4.0, 5.0, 6.0]]), [None, 7, None],
            [True, False, True], (1, 2, 0),
        )
        assert A.tolist() == [[2, 3, 1]]
        assert C.tolist() == [[5.0, 6.0, 4.0]]
        assert u == (7, None, None)
        assert nonneg == (False, True, True)

    def test_permute_problem_size_mismatch(self):
        with pytest.raises(ContractViolation):
            permute_problem(np.array([[1, 2]]), np.array([[1.0, 2.0]]), [None], [True, True], (1, 0))


class TestBoundedVariables:
    """Test the boundedness queries against a stub oracle"""

    def test_lp_method(self, stub_oracle):
        A = np.array([[1, 1, 0], [0, 1, 1]])
        oracle = stub_oracle(unbounded_columns=[(0, 1)])
        bounded = bounded_variables(A, [1, 1], [True] * 3, oracle, BoundednessMethod.LP)
        assert bounded == [True, True, False]

    def test_ip_method(self, stub_oracle):
        bounded = bounded_variables(
            np.array([[1, 1]]), [1], [True, True], stub_oracle(), BoundednessMethod.IP
        )
        assert bounded == [True, True]

    def test_unknown_method(self, stub_oracle):
        with pytest.raises(ValueError):
            bounded_variables(np.array([[1]]), [1], [True], stub_oracle(), "simplex")
