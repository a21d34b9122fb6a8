import logging
import os
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

MINIMIZE = "minimize"
MAXIMIZE = "maximize"


class SolveStatus(Enum):
    """Outcome of a MIP solve."""
    OPTIMAL = "optimal"
    # Truncated (time limit) with an incumbent solution available.
    FEASIBLE = "feasible"
    INFEASIBLE = "infeasible"
    # Truncated without any incumbent.
    TIMEOUT = "timeout"


@dataclass
class SolveResult:
    """Status of a solve together with the diagnostics reported by the solver."""
    status: SolveStatus
    objective: Optional[float] = None
    best_bound: Optional[float] = None
    gap: Optional[float] = None
    node_count: float = 0
    solve_time: float = 0.0

    @property
    def solved(self):
        return self.status is SolveStatus.OPTIMAL

    @property
    def has_solution(self):
        return self.status in (SolveStatus.OPTIMAL, SolveStatus.FEASIBLE)


class SolverError(RuntimeError):
    pass


class SolutionUnavailableError(RuntimeError):
    pass


def optimize_model(model, grb, time_limit=None, gap_tolerance=None):
    '''
    Run the optimization of `model` and classify its outcome.
    A model reported as infeasible-or-unbounded is solved a second time with dual reductions turned off, to tell the
    two cases apart.
    '''
    model.update()
    model.reset()
    if time_limit is not None:
        model.setParam('TimeLimit', time_limit)
    if gap_tolerance is not None:
        model.setParam('MIPGap', gap_tolerance)

    start = time.time()
    attempt = 0
    while attempt <= 1:
        model.optimize()
        if model.status == grb.GRB.INF_OR_UNBD and attempt == 0:
            logger.debug("Infeasible or unbounded model, solving again without dual reductions")
            model.setParam('DualReductions', 0)
            attempt += 1
            continue
        break
    if attempt == 1:
        model.setParam('DualReductions', 1)
    solve_time = time.time() - start

    if model.status == grb.GRB.OPTIMAL:
        status = SolveStatus.OPTIMAL
    elif model.status == grb.GRB.INFEASIBLE:
        status = SolveStatus.INFEASIBLE
    elif model.status in (grb.GRB.TIME_LIMIT, grb.GRB.INTERRUPTED, grb.GRB.NODE_LIMIT, grb.GRB.SOLUTION_LIMIT,
                          grb.GRB.SUBOPTIMAL):
        status = SolveStatus.FEASIBLE if model.SolCount > 0 else SolveStatus.TIMEOUT
    else:
        raise SolverError(f"Unexpected Status code: {model.status}")

    result = SolveResult(status=status, node_count=model.NodeCount if model.IsMIP else 0, solve_time=solve_time)
    if model.SolCount > 0:
        result.objective = model.ObjVal
        result.gap = model.MIPGap if model.IsMIP else 0.
    try:
        result.best_bound = model.ObjBound if model.IsMIP else result.objective
    except grb.GurobiError:
        # No bound is available when the root relaxation did not finish.
        result.best_bound = None
    return result


class MIPSession:
    '''
    Owns one Gurobi environment and model. Use it as a context manager, or call dispose(), so that the solver
    resources are released on every exit path.
    '''

    def __init__(self, name="mipnn", threads=None):
        import gurobipy as grb
        self.grb = grb
        self.env = grb.Env(empty=True)
        if not os.environ.get("MIPNN_SOLVER_DEBUG"):
            self.env.setParam('OutputFlag', 0)
        self.env.start()
        self.model = grb.Model(name, env=self.env)
        if threads is not None:
            self.model.setParam('Threads', threads)
        self.result = None

    def add_continuous_variable(self, lb, ub, name=""):
        return self.model.addVar(lb=lb, ub=ub, obj=0, vtype=self.grb.GRB.CONTINUOUS, name=name)

    def add_binary_variable(self, name=""):
        return self.model.addVar(vtype=self.grb.GRB.BINARY, name=name)

    def _sense(self, op):
        senses = {"<=": self.grb.GRB.LESS_EQUAL, ">=": self.grb.GRB.GREATER_EQUAL, "==": self.grb.GRB.EQUAL}
        if op not in senses:
            raise ValueError(f"Unknown constraint sense {op!r}")
        return senses[op]

    def add_linear_equality(self, expr, rhs, name=""):
        return self.model.addLConstr(expr, self.grb.GRB.EQUAL, rhs, name=name)

    def add_linear_inequality(self, expr, op, rhs, name=""):
        return self.model.addLConstr(expr, self._sense(op), rhs, name=name)

    def add_indicator(self, var, value, expr, op, rhs, name=""):
        # var == value implies (expr op rhs)
        return self.model.addGenConstrIndicator(var, bool(value), expr, self._sense(op), rhs, name=name)

    def linear_expression(self, constant=0.):
        return self.grb.LinExpr(constant)

    def set_objective(self, expr, sense=MINIMIZE):
        if sense not in (MINIMIZE, MAXIMIZE):
            raise ValueError(f"Unknown objective sense {sense!r}")
        grb_sense = self.grb.GRB.MAXIMIZE if sense == MAXIMIZE else self.grb.GRB.MINIMIZE
        self.model.setObjective(expr, grb_sense)

    def solve(self, time_limit=None, gap_tolerance=None):
        self.result = optimize_model(self.model, self.grb, time_limit, gap_tolerance)
        return self.result

    def _check_solution(self):
        if self.result is None or not self.result.has_solution:
            status = None if self.result is None else self.result.status.value
            raise SolutionUnavailableError(f"No solution available (status: {status})")

    def get_value(self, var):
        self._check_solution()
        return var.X

    def get_values(self, variables):
        self._check_solution()
        return [var.X if not isinstance(var, (int, float)) else float(var) for var in variables]

    def get_objective_value(self):
        self._check_solution()
        return self.result.objective

    def get_best_bound(self):
        return None if self.result is None else self.result.best_bound

    def get_relative_gap(self):
        return None if self.result is None else self.result.gap

    def get_node_count(self):
        return 0 if self.result is None else self.result.node_count

    def dispose(self):
        if self.model is not None:
            self.model.dispose()
            self.model = None
        if self.env is not None:
            self.env.dispose()
            self.env = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.dispose()
        return False
