"""
Unit tests for relaxations, projections and lattice basis projection.

Run with: pytest src/tests/test_relaxations.py -v
"""

import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import numpy as np
import pytest

from instances.common import BasisSelection, ConstraintSense
from instances.errors import ContractViolation
from instances.ipinstance import build_instance
from instances.relaxations import (
    add_constraint,
    group_relaxation,
    lattice_basis_projection,
    nonnegativity_relaxation,
    positive_row_span,
    project_vector,
    projection,
    truncation_weight,
    update_objective,
)

BASIS_01 = [(1, 0), (1, 1)]


def columns(A):
    return sorted(tuple(int(x) for x in A[:, j]) for j in range(A.shape[1]))


def original_objective(instance):
    (c,) = instance.original_variable_order([instance.C[0]])
    return c


@pytest.fixture
def instance(stub_oracle, small_system):
    A, b, C, u = small_system
    return build_instance(
        A, b, C, u, oracle=stub_oracle(basis_columns=BASIS_01),
        apply_normalization=False, invert_objective=False,
    )


class TestNonnegativityRelaxation:
    """Test relaxing nonnegativity constraints"""

    def test_objective_changes_when_m_relaxed(self, instance):
        relaxed = nonnegativity_relaxation(instance, [False, False, True])
        assert relaxed.nonnegative_end == 1
        assert relaxed.permutation == (2, 0, 1)
        assert np.allclose(original_objective(relaxed), [0.0, 0.0, 2.0])

    def test_objective_kept_otherwise(self, instance):
        relaxed = nonnegativity_relaxation(instance, [False, True, True])
        assert np.allclose(original_objective(relaxed), [1.0, 2.0, 3.0])

    def test_reimposing_preserves_data(self, instance):
        relaxed = nonnegativity_relaxation(instance, [False, True, True])
        back = nonnegativity_relaxation(relaxed, [True] * 3)
        assert columns(back.A) == columns(instance.A)
        assert list(back.b) == list(instance.b)
        assert back.nonnegative_end == 3

    def test_parent_unchanged(self, instance):
        nonnegativity_relaxation(instance, [False, False, True])
        assert instance.C.tolist() == [[1.0, 2.0, 3.0]]
        assert instance.nonnegative_end == 3

    def test_derived_instance_gets_own_oracle(self, instance):
        relaxed = nonnegativity_relaxation(instance, [False, True, True])
        assert relaxed.oracle is not instance.oracle
        assert instance.oracle.clones == [relaxed.oracle]

    def test_bad_mask(self, instance):
        with pytest.raises(ValueError):
            nonnegativity_relaxation(instance, [True, True])

    def test_singular_relaxed_columns(self, stub_oracle):
        # columns 0 and 1 are equal, so they cannot be a basis
        instance = build_instance(
            [[1, 1, 0], [0, 0, 1]], [1, 1], [[1.0, 2.0, 3.0]], [None] * 3,
            oracle=stub_oracle(), apply_normalization=False, invert_objective=False,
        )
        with pytest.raises(ContractViolation):
            nonnegativity_relaxation(instance, [False, False, True])


class TestGroupRelaxation:
    """Test the group relaxation of an optimal basis"""

    def test_basic_variables_relaxed(self, instance):
        relaxed = group_relaxation(instance)
        assert relaxed.nonnegative_end == 1
        (nonneg,) = relaxed.original_variable_order([np.array(relaxed.nonnegative_variables())])
        assert nonneg.tolist() == [False, False, True]
        assert np.allclose(original_objective(relaxed), [0.0, 0.0, 2.0])

    def test_basis_of_wrong_size(self, stub_oracle, small_system):
        A, b, C, u = small_system
        instance = build_instance(
            A, b, C, u, oracle=stub_oracle(basis_columns=[(1, 0)]), apply_normalization=False
        )
        with pytest.raises(ContractViolation):
            group_relaxation(instance)


class TestProjection:
    """Test projecting away unrestricted variables"""

    @pytest.fixture
    def relaxed(self, stub_oracle, small_system):
        A, b, C, u = small_system
        return build_instance(
            A, b, C, u, [True, False, False], oracle=stub_oracle(), apply_normalization=False
        )

    def test_scenario_projection(self, relaxed):
        assert relaxed.nonnegative_end == 1
        projected = projection(relaxed, [2])
        assert projected.n == relaxed.n - 1
        assert list(projected.b) == list(relaxed.b)
        assert columns(projected.A) == columns(relaxed.A[:, [0, 1]])

    def test_projection_keeps_free_variables_free(self, relaxed):
        projected = projection(relaxed, [2])
        assert projected.nonnegative_end == 1

    def test_only_relaxed_variables(self, relaxed):
        with pytest.raises(ContractViolation):
            projection(relaxed, [0])

    def test_project_vector(self):
        assert project_vector([5, 6, 7], [1]).tolist() == [5, 7]


class TestLatticeBasisProjection:
    """Test restricting the lattice basis to independent columns"""

    def test_any(self, instance):
        uhnf, basis, sigma = lattice_basis_projection(instance, BasisSelection.ANY)
        assert sigma == [1, 2]
        assert [[int(x) for x in row] for row in uhnf] == [[1]]
        assert abs(int(basis[0, 0])) == 1

    def test_simplex_basis(self, instance):
        uhnf, basis, sigma = lattice_basis_projection(instance, BasisSelection.SIMPLEX_BASIS)
        assert sigma == [0, 1]
        assert basis.shape == (1, 1)
        assert [[int(x) for x in row] for row in uhnf] == [[1]]

    def test_unknown_selection(self, instance):
        with pytest.raises(ValueError):
            lattice_basis_projection(instance, "random")


class TestObjectiveHeuristics:
    """Test objective reconstruction and LP-based heuristics"""

    def test_update_objective(self, stub_oracle, small_system):
        A, b, C, u = small_system
        instance = build_instance(
            A, b, C, u, oracle=stub_oracle(objective=[-1.0, 0.0, 0.0]),
            apply_normalization=False, invert_objective=False,
        )
        updated = update_objective(instance, 0, [1])
        assert updated.C.tolist() == [[-1.0, 0.0, 0.0]]
        assert instance.C.tolist() == [[1.0, 2.0, 3.0]]
        assert updated.A is instance.A
        assert updated.oracle is not instance.oracle

    def test_update_objective_rejects_bad_objective(self, stub_oracle, small_system):
        A, b, C, u = small_system
        instance = build_instance(
            A, b, C, u, oracle=stub_oracle(objective=[1.0, 0.0, 0.0]), apply_normalization=False
        )
        with pytest.raises(ContractViolation):
            update_objective(instance, 0, [1])

    def test_truncation_weight_fallback(self, instance):
        weights, value = truncation_weight(instance)
        assert weights.tolist() == [0.0, 0.0, 0.0]
        assert value == 0.0

    def test_truncation_weight(self, stub_oracle, small_system):
        A, b, C, u = small_system
        expected = (np.array([0.5, 0.0, 0.5]), 2.0)
        instance = build_instance(
            A, b, C, u, oracle=stub_oracle(weight=expected), apply_normalization=False
        )
        weights, value = truncation_weight(instance)
        assert weights.tolist() == [0.5, 0.0, 0.5]
        assert value == 2.0

    def test_positive_row_span_fallback(self, instance):
        assert positive_row_span(instance) is None


class TestAddConstraint:
    """Test adding rows to an instance"""

    def test_equality(self, instance):
        extended = add_constraint(instance, [1, 0, 0], 1)
        assert (extended.m, extended.n) == (3, 3)
        assert extended.lattice_basis.shape == (0, 3)

    @pytest.mark.parametrize("sense, coef", [(ConstraintSense.LE, 1), (ConstraintSense.GE, -1)])
    def test_inequality_adds_slack(self, instance, sense, coef):
        extended = add_constraint(instance, [1, 0, 0], 1, sense)
        assert (extended.m, extended.n) == (3, 4)
        assert [int(x) for x in extended.A[:, 3]] == [0, 0, coef]
        assert list(extended.b) == [1, 1, 1]
        assert extended.u == (None,) * 4

    def test_invalid(self, instance):
        with pytest.raises(ValueError):
            add_constraint(instance, [1, 0], 1)
        with pytest.raises(ValueError):
            add_constraint(instance, [1, 0, 0], 1, "lt")
