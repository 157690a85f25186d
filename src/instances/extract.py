"""
Extraction of matrix data from a constraint model.

The model is read through the generic pyscipopt.Model API (variables, linear
constraints with lhs / rhs, original bounds and one linear objective) and turned
into (A, b, C, u, nonnegative) with explicit slack columns for inequalities.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np
import pyscipopt as scp
from loguru import logger

from instances.common import SCIP_INF, ConstraintSense, Sense, Settings
from instances.errors import MalformedModel
from lattice.matrix import as_int_matrix, as_int_vector, li_rows


@dataclass(frozen=True)
class ExtractedProblem:
    A: np.ndarray
    b: np.ndarray
    C: np.ndarray
    u: Tuple[Optional[int], ...]
    nonnegative: Tuple[bool, ...]
    original_rows: int
    var_names: Tuple[str, ...]


def _to_int(value: float, what: str, tol: float) -> int:
    rounded = int(round(value))
    if abs(value - rounded) > tol:
        raise MalformedModel(f"{what} = {value} is not integral")
    return rounded


def _is_infinite(model: scp.Model, value: float) -> bool:
    return model.isInfinity(abs(value)) or abs(value) >= SCIP_INF


def _is_binary(var) -> bool:
    return str(var.vtype()).upper().startswith("B")


def _linear_rows(
    model: scp.Model, v_map: Dict[str, int], tol: float
) -> List[Tuple[Dict[int, int], str, int]]:
    rows = []
    for cons in model.getConss():
        if not cons.isLinear():
            raise MalformedModel(f"Constraint {cons.name} is not linear")
        coeffs: Dict[int, int] = {}
        for name, coef in model.getValsLinear(cons).items():
            name = getattr(name, "name", name)
            if name not in v_map:
                raise MalformedModel(f"Constraint {cons.name} uses unknown variable {name}")
            coeffs[v_map[name]] = _to_int(float(coef), f"{cons.name}[{name}]", tol)
        lhs = float(model.getLhs(cons))
        rhs = float(model.getRhs(cons))
        lhs_finite = not _is_infinite(model, lhs)
        rhs_finite = not _is_infinite(model, rhs)
        if lhs_finite and rhs_finite and abs(rhs - lhs) <= tol:
            rows.append((coeffs, ConstraintSense.EQ, _to_int(rhs, f"rhs of {cons.name}", tol)))
            continue
        if rhs_finite:
            rows.append((coeffs, ConstraintSense.LE, _to_int(rhs, f"rhs of {cons.name}", tol)))
        if lhs_finite:
            rows.append((coeffs, ConstraintSense.GE, _to_int(lhs, f"lhs of {cons.name}", tol)))
    return rows


def _objective(
    model: scp.Model, v_map: Dict[str, int], n: int, tol: float
) -> np.ndarray:
    c = np.zeros((1, n), dtype=np.float64)
    obj = model.getObjective()
    for term, coef in obj.terms.items():
        if len(term.vartuple) == 0:
            continue  # constant offset
        if len(term.vartuple) > 1:
            raise MalformedModel("Objective is not linear")
        name = term.vartuple[0].name
        if name not in v_map:
            raise MalformedModel(f"Objective uses unknown variable {name}")
        c[0, v_map[name]] += _to_int(float(coef), f"objective[{name}]", tol)
    if str(model.getObjectiveSense()).lower().startswith("max"):
        c = -c
    return c


def extract_problem(
    model: scp.Model, infer_binary: bool = True, settings: Optional[Settings] = None
) -> ExtractedProblem:
    """
    Build the matrix representation of `model`.

    Rows are the linear constraints, then explicit lower bound rows (non-zero
    finite lower bounds), then upper bound rows. Every inequality row gets its
    own slack column: +1 for <=, -1 for >=. The resulting system is
    min C x s.t. A x = b, with the extracted nonnegativity flags.
    """
    settings = settings or Settings()
    tol = settings.integrality_tolerance
    mvars = model.getVars()
    n = len(mvars)
    v_map: Dict[str, int] = {v.name: j for j, v in enumerate(mvars)}

    rows = _linear_rows(model, v_map, tol)
    nonnegative = [True] * n
    upper_bounds: List[Tuple[int, int]] = []
    lower_rows = []
    for j, var in enumerate(mvars):
        lb = float(var.getLbOriginal())
        ub = float(var.getUbOriginal())
        if _is_infinite(model, lb):
            nonnegative[j] = False
        elif lb != 0.0:
            value = _to_int(lb, f"lower bound of {var.name}", tol)
            nonnegative[j] = value > 0
            lower_rows.append(({j: 1}, ConstraintSense.GE, value))
        if _is_binary(var):
            if infer_binary:
                upper_bounds.append((j, 1))
            continue
        if not _is_infinite(model, ub):
            upper_bounds.append((j, _to_int(ub, f"upper bound of {var.name}", tol)))
    rows.extend(lower_rows)
    original_rows = len(rows)
    rows.extend(({j: 1}, ConstraintSense.LE, ub) for j, ub in upper_bounds)

    m = len(rows)
    n_slacks = sum(1 for _, sense, _ in rows if sense != ConstraintSense.EQ)
    A = np.zeros((m, n + n_slacks), dtype=np.int64)
    b = np.zeros(m, dtype=np.int64)
    s = n
    slack_names = []
    for i, (coeffs, sense, rhs) in enumerate(rows):
        for j, coef in coeffs.items():
            A[i, j] = coef
        b[i] = rhs
        if sense == ConstraintSense.LE:
            A[i, s] = 1
        elif sense == ConstraintSense.GE:
            A[i, s] = -1
        else:
            continue
        slack_names.append(f"slack_{i}")
        s += 1
    A = as_int_matrix(A)
    b = as_int_vector(b)

    # Filter the original (non-bound) rows to a linearly independent subset
    frr_A, frr_b = li_rows(A[:original_rows, :], b[:original_rows])
    A = np.vstack([frr_A, A[original_rows:, :]])
    b = np.concatenate([frr_b, b[original_rows:]])

    u: List[Optional[int]] = [None] * A.shape[1]
    for j, ub in upper_bounds:
        u[j] = ub
    C = np.hstack([_objective(model, v_map, n, tol), np.zeros((1, n_slacks))])
    logger.debug(
        "Extracted {} rows, {} variables and {} slacks ({} upper bounds)",
        A.shape[0],
        n,
        n_slacks,
        len(upper_bounds),
    )
    return ExtractedProblem(
        A=A,
        b=b,
        C=C,
        u=tuple(u),
        nonnegative=tuple(nonnegative) + (True,) * n_slacks,
        original_rows=frr_A.shape[0],
        var_names=tuple(v.name for v in mvars) + tuple(slack_names),
    )
