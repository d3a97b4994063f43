# tracking_mpc/solver.py
from __future__ import annotations

import sys
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

import numpy as np

import casadi as ca

from tracking_mpc.config import SolverOptions


class SolveStatus(Enum):
    """Terminal outcome of one NLP solve."""
    SUCCESS = "success"
    ACCEPTABLE = "acceptable"            # converged to IPOPT's relaxed tolerances
    INFEASIBLE = "infeasible"
    TIME_EXCEEDED = "time_exceeded"
    MAX_ITER = "max_iter"
    NUMERICAL_ERROR = "numerical_error"
    UNKNOWN = "unknown"


# IPOPT return_status -> SolveStatus
_RETURN_STATUS_MAP = {
    "Solve_Succeeded": SolveStatus.SUCCESS,
    "Solved_To_Acceptable_Level": SolveStatus.ACCEPTABLE,
    "Feasible_Point_Found": SolveStatus.ACCEPTABLE,
    "Infeasible_Problem_Detected": SolveStatus.INFEASIBLE,
    "Restoration_Failed": SolveStatus.NUMERICAL_ERROR,
    "Not_Enough_Degrees_Of_Freedom": SolveStatus.INFEASIBLE,
    "Maximum_CpuTime_Exceeded": SolveStatus.TIME_EXCEEDED,
    "Maximum_WallTime_Exceeded": SolveStatus.TIME_EXCEEDED,
    "Maximum_Iterations_Exceeded": SolveStatus.MAX_ITER,
    "Invalid_Number_Detected": SolveStatus.NUMERICAL_ERROR,
    "Error_In_Step_Computation": SolveStatus.NUMERICAL_ERROR,
    "Search_Direction_Becomes_Too_Small": SolveStatus.NUMERICAL_ERROR,
    "Diverging_Iterates": SolveStatus.NUMERICAL_ERROR,
    "Insufficient_Memory": SolveStatus.NUMERICAL_ERROR,
    "Internal_Error": SolveStatus.NUMERICAL_ERROR,
}


def status_from_return(return_status: str) -> SolveStatus:
    return _RETURN_STATUS_MAP.get(return_status, SolveStatus.UNKNOWN)


@dataclass
class SolveResult:
    status: SolveStatus
    x: np.ndarray
    cost: float
    return_status: str = ""
    iterations: int = 0
    solve_time: float = 0.0
    constraint_violation: float = float("inf")
    info: Dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.status in (SolveStatus.SUCCESS, SolveStatus.ACCEPTABLE)


class IpoptSolver:
    """
    Thin adapter around ca.nlpsol + IPOPT.

    CasADi differentiates the evaluator's SX graph (sparse Jacobian and exact
    Hessian of the Lagrangian), IPOPT iterates until convergence, infeasibility
    or the CPU budget. solve() never raises for solver-side failures; it always
    returns a SolveResult with a terminal status.
    """

    def __init__(self, options: Optional[SolverOptions] = None, verbose: bool = False):
        self.options = options if options is not None else SolverOptions()
        self.verbose = verbose

    def nlpsol_options(self) -> Dict[str, Any]:
        ipopt_opts = dict(self.options.ipopt)
        ipopt_opts.update({
            "print_level": int(self.options.print_level),
            "max_cpu_time": float(self.options.max_cpu_time),
            "max_iter": int(self.options.max_iter),
            "tol": float(self.options.tol),
        })
        if self.options.print_level == 0:
            ipopt_opts.setdefault("sb", "yes")
        return {
            "ipopt": ipopt_opts,
            "print_time": 0,
            "error_on_fail": False,
        }

    def solve(self, evaluator, x0, lbx, ubx, lbg, ubg) -> SolveResult:
        """
        Solve min f(x) s.t. lbx <= x <= ubx, lbg <= g(x) <= ubg.

        Args:
            evaluator: Object exposing nlp() -> {"x", "f", "g"} (see FGEvaluator)
            x0: Initial guess
            lbx, ubx: Decision variable bounds
            lbg, ubg: Constraint bounds

        Returns:
            SolveResult with the terminal point, cost and mapped status
        """
        x0 = np.asarray(x0, dtype=float).flatten()
        lbg = np.asarray(lbg, dtype=float).flatten()
        ubg = np.asarray(ubg, dtype=float).flatten()
        t_start = time.perf_counter()

        try:
            solver = ca.nlpsol("tracking_mpc", "ipopt", evaluator.nlp(), self.nlpsol_options())
            res = solver(x0=x0, lbx=lbx, ubx=ubx, lbg=lbg, ubg=ubg)
        except RuntimeError as e:
            print(f"[MPC SOLVER] CasADi error: {e}", file=sys.stderr)
            return SolveResult(
                status=SolveStatus.NUMERICAL_ERROR,
                x=x0,
                cost=float("nan"),
                return_status="casadi_error",
                solve_time=time.perf_counter() - t_start,
                info={"error": str(e)},
            )

        solve_time = time.perf_counter() - t_start
        stats = solver.stats()
        return_status = str(stats.get("return_status", ""))
        status = status_from_return(return_status)

        x_sol = np.array(res["x"]).flatten()
        g_sol = np.array(res["g"]).flatten()
        cost = float(res["f"])
        gaps = np.concatenate([lbg - g_sol, g_sol - ubg, [0.0]])
        violation = float(np.max(gaps)) if np.all(np.isfinite(gaps)) else float("inf")

        if self.verbose:
            print(f"[MPC SOLVER] {return_status} ({status.value}) "
                  f"iter={stats.get('iter_count', 'N/A')} cost={cost:.4f} "
                  f"viol={violation:.2e} t={solve_time * 1000.0:.1f}ms", file=sys.stderr)

        return SolveResult(
            status=status,
            x=x_sol,
            cost=cost,
            return_status=return_status,
            iterations=int(stats.get("iter_count", 0) or 0),
            solve_time=solve_time,
            constraint_violation=violation,
        )
