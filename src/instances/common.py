from dataclasses import dataclass
from pathlib import Path
from typing import Tuple


@dataclass(frozen=True)
class Settings:
    inputs: Tuple[Path, ...] = ()
    # Extraction
    infer_binary: bool = True
    integrality_tolerance: float = 1e-6
    # Classification ('lp' or 'ip')
    boundedness_method: str = "lp"
    # SCIP
    scip_time_limit: float = 3600.0
    scip_threads: int = 1
    scip_verbose: bool = False
    # system
    show_progress: bool = True


class Sense:
    MINIMIZE = "minimize"
    MAXIMIZE = "maximize"


class VariableKind:
    INTEGER = "I"
    CONTINUOUS = "C"


class SolveStatus:
    OPTIMAL = "optimal"
    INFEASIBLE = "infeasible"
    UNBOUNDED = "unbounded"
    DUAL_INFEASIBLE = "dual_infeasible"


class ConstraintSense:
    EQ = "eq"
    LE = "le"
    GE = "ge"


class BoundednessMethod:
    LP = "lp"
    IP = "ip"


class BasisSelection:
    ANY = "any"
    SIMPLEX_BASIS = "simplex-basis"


SCIP_INF = 1e20
EPSILON = 0.0001
OBJECTIVE_CHECK_TOL = 1e-6


def approx_equal(x: float, y: float) -> bool:
    return abs(x - y) < EPSILON


def is_approx_zero(x: float) -> bool:
    return approx_equal(x, 0.0)
