class MalformedModel(ValueError):
    """The constraint model contains a term that cannot be mapped to matrix data."""


class InfeasibleRelaxation(RuntimeError):
    """The normalized linear relaxation has no feasible point."""


class HeuristicInapplicable(RuntimeError):
    """An LP-based heuristic found the oracle reporting unboundedness."""


class ContractViolation(AssertionError):
    """A structural invariant of an instance or oracle result does not hold."""


class OracleError(RuntimeError):
    """The LP/IP oracle returned a status outside the supported set."""


class NoIntegerSolution(ValueError):
    """A linear system has no integer solution."""
