"""Random combinatorial optimization models and IPInstances."""

from typing import Callable, List, Optional, Set

import numpy as np
import pyscipopt as scp
from loguru import logger

from instances.common import Settings
from instances.errors import InfeasibleRelaxation
from instances.ipinstance import IPInstance, build_instance
from solver.oracle import LPOracle


def generate_knapsack(
    n: int,
    m: int = 1,
    binary: bool = False,
    correlation: bool = False,
    max_coef: int = 1000,
    seed: Optional[int] = None,
) -> scp.Model:
    """(Multi-dimensional) knapsack: max c x s.t. A x <= b, with b half the row sums."""
    rng = np.random.default_rng(seed)
    eps = round(max_coef / 10)
    c = rng.integers(1, max_coef, size=n, endpoint=True)
    if correlation:
        # Values correlated with weights make the problem harder on average
        A = np.array(
            [[rng.integers(c[j] - eps, c[j] + eps, endpoint=True) for j in range(n)] for _ in range(m)]
        )
    else:
        A = rng.integers(1, max_coef, size=(m, n), endpoint=True)
    b = np.rint(A.sum(axis=1) / 2).astype(int)

    model = scp.Model("knapsack")
    vtype = "B" if binary else "I"
    x = [model.addVar(name=f"x_{j}", vtype=vtype, lb=0) for j in range(n)]
    model.setObjective(scp.quicksum(int(c[j]) * x[j] for j in range(n)), "maximize")
    for i in range(m):
        model.addCons(
            scp.quicksum(int(A[i, j]) * x[j] for j in range(n)) <= int(b[i]), name=f"cap_{i}"
        )
    return model


def generate_lap(n: int, seed: Optional[int] = None) -> scp.Model:
    """Linear assignment problem on an n x n cost matrix."""
    rng = np.random.default_rng(seed)
    cost = rng.integers(1, n, size=(n, n), endpoint=True)
    model = scp.Model("lap")
    x = [[model.addVar(name=f"x_{i}_{j}", vtype="B") for j in range(n)] for i in range(n)]
    model.setObjective(
        scp.quicksum(int(cost[i, j]) * x[i][j] for i in range(n) for j in range(n)), "minimize"
    )
    for j in range(n):
        model.addCons(scp.quicksum(x[i][j] for i in range(n)) == 1, name=f"col_{j}")
    for i in range(n):
        model.addCons(scp.quicksum(x[i][j] for j in range(n)) == 1, name=f"row_{i}")
    return model


def _is_feasible_set_cover(subsets: List[Set[int]], n: int) -> bool:
    if not subsets:
        return n == 0
    return set().union(*subsets) == set(range(n))


def _is_feasible_set_packing(subsets: List[Set[int]], n: int) -> bool:
    return len(subsets) > 0


def _has_repeats(subsets: List[Set[int]]) -> bool:
    return len({frozenset(s) for s in subsets}) != len(subsets)


def generate_subsets(
    n: int,
    m: int,
    p: float,
    feasibility_check: Callable[[List[Set[int]], int], bool],
    rng: np.random.Generator,
) -> List[Set[int]]:
    """m distinct non-empty subsets of range(n), each element drawn with probability p."""
    subsets: List[Set[int]] = []
    while not feasibility_check(subsets, n) or _has_repeats(subsets):
        subsets = []
        while len(subsets) < m:
            subset = {j for j in range(n) if rng.random() < p}
            if subset:
                subsets.append(subset)
    return subsets


def generate_set_cover(n: int, m: int, p: float, seed: Optional[int] = None) -> scp.Model:
    """Choose the fewest of m random subsets of range(n) covering every element."""
    subsets = generate_subsets(n, m, p, _is_feasible_set_cover, np.random.default_rng(seed))
    model = scp.Model("set_cover")
    x = [model.addVar(name=f"x_{j}", vtype="B") for j in range(m)]
    model.setObjective(scp.quicksum(x), "minimize")
    for i in range(n):
        model.addCons(
            scp.quicksum(x[j] for j in range(m) if i in subsets[j]) >= 1, name=f"cover_{i}"
        )
    return model


def generate_set_packing(n: int, m: int, p: float, seed: Optional[int] = None) -> scp.Model:
    """Choose the most of m random subsets of range(n) that are pairwise disjoint."""
    subsets = generate_subsets(n, m, p, _is_feasible_set_packing, np.random.default_rng(seed))
    model = scp.Model("set_packing")
    x = [model.addVar(name=f"x_{j}", vtype="B") for j in range(m)]
    model.setObjective(scp.quicksum(x), "maximize")
    for i in range(n):
        members = [x[j] for j in range(m) if i in subsets[j]]
        if members:
            model.addCons(scp.quicksum(members) <= 1, name=f"pack_{i}")
    return model


def random_ipinstance(
    m: int,
    n: int,
    oracle: LPOracle,
    settings: Optional[Settings] = None,
    seed: Optional[int] = None,
    max_tries: int = 100,
) -> IPInstance:
    """A random feasible instance max C x s.t. A x <= b, x >= 0 with a bounded relaxation."""
    rng = np.random.default_rng(seed)
    for attempt in range(max_tries):
        A = rng.integers(-5, 5, size=(m, n), endpoint=True)
        b = rng.integers(5, 20, size=m, endpoint=True)
        C = rng.integers(-10, -1, size=(1, n), endpoint=True)
        try:
            instance = build_instance(
                A, b, C, [None] * n, oracle=oracle.clone(), settings=settings, invert_objective=False
            )
        except InfeasibleRelaxation:
            logger.debug("Random instance {} is infeasible, retrying", attempt)
            continue
        if instance.is_objective_bounded():
            return instance
        logger.debug("Random instance {} is unbounded, retrying", attempt)
    raise RuntimeError(f"No feasible bounded instance found in {max_tries} tries")
