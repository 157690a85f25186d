from typing import Dict, List, Optional

import numpy as np
import pyscipopt as scp
from loguru import logger

from instances.common import Sense, Settings, SolveStatus
from solver.oracle import LinearProgram, LPOracle, OracleResult

SCIP_STATUS = {
    "optimal": SolveStatus.OPTIMAL,
    "infeasible": SolveStatus.INFEASIBLE,
    "unbounded": SolveStatus.UNBOUNDED,
    "inforunbd": SolveStatus.DUAL_INFEASIBLE,
}


def _row_terms(row: np.ndarray, xs: List[scp.Variable]):
    return [(float(coef), xs[j]) for j, coef in enumerate(row) if coef != 0.0]


class ScipOracle(LPOracle):
    """
    LP/IP oracle backed by SCIP.

    Each handle owns a solve cache keyed by the program; `clone` returns an
    independent handle so derived instances never share solver state.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self._cache: Dict[str, OracleResult] = {}

    def clone(self) -> "ScipOracle":
        return ScipOracle(self.settings)

    def _build_model(self, program: LinearProgram):
        model = scp.Model()
        model.hideOutput(not self.settings.scip_verbose)
        model.setParam("limits/time", self.settings.scip_time_limit)
        model.setParam("lp/threads", self.settings.scip_threads)
        if program.is_lp():
            # Keep the original LP so that duals and vertex solutions are available
            model.setPresolve(scp.SCIP_PARAMSETTING.OFF)
            model.setHeuristics(scp.SCIP_PARAMSETTING.OFF)
            model.disablePropagation()

        xs = [
            model.addVar(
                name=f"x{j}",
                vtype=program.kinds[j],
                lb=program.lower[j],
                ub=program.upper[j],
            )
            for j in range(program.n)
        ]

        eq_conss = []
        for i, row in enumerate(program.A_eq):
            terms = _row_terms(row, xs)
            if not terms:
                if program.b_eq[i] != 0.0:
                    return None, xs, eq_conss
                eq_conss.append(None)
                continue
            expr = scp.quicksum(coef * x for coef, x in terms)
            eq_conss.append(model.addCons(expr == float(program.b_eq[i]), name=f"eq{i}"))
        for i, row in enumerate(program.A_ub):
            terms = _row_terms(row, xs)
            if not terms:
                if program.b_ub[i] < 0.0:
                    return None, xs, eq_conss
                continue
            expr = scp.quicksum(coef * x for coef, x in terms)
            model.addCons(expr <= float(program.b_ub[i]), name=f"ub{i}")

        # SCIP always sees a minimization; maximization is undone on the results
        sign = -1.0 if program.sense == Sense.MAXIMIZE else 1.0
        model.setObjective(
            scp.quicksum(sign * float(c) * x for c, x in zip(program.c, xs) if c != 0.0),
            "minimize",
        )
        return model, xs, eq_conss

    def solve(self, program: LinearProgram) -> OracleResult:
        key = program.key()
        if key in self._cache:
            return self._cache[key]

        model, xs, eq_conss = self._build_model(program)
        if model is None:
            logger.debug("Program has an empty infeasible row")
            result = OracleResult(SolveStatus.INFEASIBLE)
            self._cache[key] = result
            return result

        model.optimize()
        scip_status = model.getStatus()
        status = SCIP_STATUS.get(scip_status, scip_status)
        logger.debug(
            "SCIP solved {} program with {} vars: {}",
            "LP" if program.is_lp() else "IP",
            program.n,
            scip_status,
        )

        if status != SolveStatus.OPTIMAL:
            result = OracleResult(status)
            self._cache[key] = result
            return result

        sign = -1.0 if program.sense == Sense.MAXIMIZE else 1.0
        x = np.array([model.getVal(v) for v in xs], dtype=np.float64)
        objective_value = sign * float(model.getObjVal())
        duals = None
        if program.is_lp():
            try:
                duals = np.array(
                    [0.0 if c is None else sign * model.getDualsolLinear(c) for c in eq_conss],
                    dtype=np.float64,
                )
            except Exception as e:
                logger.debug("Dual solution unavailable: {}", e)
                duals = None

        result = OracleResult(status, x, objective_value, duals)
        self._cache[key] = result
        return result
