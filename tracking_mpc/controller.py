# tracking_mpc/controller.py
from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from tracking_mpc.bounds import assemble_bounds
from tracking_mpc.config import MPCConfig, load_config
from tracking_mpc.evaluator import FGEvaluator
from tracking_mpc.kinematic_model import VehicleState
from tracking_mpc.layout import DecisionLayout
from tracking_mpc.reference import ReferencePolynomial
from tracking_mpc.solver import IpoptSolver, SolveResult, SolveStatus

# Extracted commands may sit this far outside their bounds before being rejected
BOUND_TOLERANCE = 1e-6

_SUBOPTIMAL = (SolveStatus.TIME_EXCEEDED, SolveStatus.MAX_ITER)


@dataclass
class ControlCommand:
    """What one control cycle hands to the actuators and to telemetry."""
    steering: float
    acceleration: float
    predicted_x: List[float]
    predicted_y: List[float]
    status: SolveStatus
    cost: float
    used_fallback: bool = False
    info: Dict[str, Any] = field(default_factory=dict)

    @property
    def predicted_points(self) -> List[Tuple[float, float]]:
        return list(zip(self.predicted_x, self.predicted_y))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "steering": self.steering,
            "acceleration": self.acceleration,
            "predicted_x": list(self.predicted_x),
            "predicted_y": list(self.predicted_y),
            "status": self.status.value,
            "cost": self.cost,
            "used_fallback": self.used_fallback,
            "info": dict(self.info),
        }


class MPCController:
    """
    Receding-horizon path-tracking controller.

    Each call to compute_control() builds a fresh problem (initial guess,
    bounds, evaluator), solves it and returns only the first actuation pair;
    the rest of the horizon is discarded and re-planned next cycle.

    Status policy (every status maps to a command):
        SUCCESS, ACCEPTABLE       -> first actuation of the solution
        TIME_EXCEEDED, MAX_ITER   -> best point if accept_suboptimal and its
                                     constraint violation <= feasibility_tol, else fallback
        INFEASIBLE, NUMERICAL_ERROR, UNKNOWN -> fallback
    A non-finite or out-of-bounds command always falls back. The fallback is
    zero actuation, or the last applied command with fallback="hold".
    """

    def __init__(self, config: Optional[MPCConfig] = None, solver=None):
        self.config = config if config is not None else load_config()
        self.layout = DecisionLayout(self.config.horizon_steps)
        self.solver = solver if solver is not None else IpoptSolver(self.config.solver,
                                                                     verbose=self.config.verbose)

        self._last_solution: Optional[np.ndarray] = None
        self._last_command = np.zeros(2)

        if self.config.verbose:
            w = self.config.weights
            print("\n[MPC] Path-tracking controller:", file=sys.stderr)
            print(f"  -> N={self.layout.N}, dt={self.config.dt:.3f}s, lf={self.config.lf}, ref_v={self.config.ref_v}", file=sys.stderr)
            print(f"  -> steering limit: +/-{self.config.steering_limit:.4f}", file=sys.stderr)
            print(f"  -> weights: cte={w.cte} epsi={w.epsi} v={w.v} steer={w.steer} accel={w.accel} "
                  f"d_steer={w.steer_change} d_accel={w.accel_change}", file=sys.stderr)
            print(f"  -> fallback: {self.config.fallback}, warm start: {self.config.warm_start}", file=sys.stderr)

    def reset(self) -> None:
        """Forget the warm-start solution and the held command."""
        self._last_solution = None
        self._last_command = np.zeros(2)

    def compute_control(self, state: Union[VehicleState, Sequence[float]],
                        coeffs: Union[ReferencePolynomial, Sequence[float]]) -> ControlCommand:
        """
        Run one control cycle.

        Args:
            state: Current (x, y, psi, v, cte, epsi)
            coeffs: Reference polynomial (ascending powers) in the same frame

        Returns:
            ControlCommand with the first steering/acceleration and the
            predicted (x, y) points of steps 1..N-2
        """
        if not isinstance(state, VehicleState):
            state = VehicleState.from_sequence(state)
        poly = coeffs if isinstance(coeffs, ReferencePolynomial) else ReferencePolynomial(coeffs)
        state_vec = state.as_array()

        x0 = self._initial_guess(state_vec)
        bounds = assemble_bounds(state_vec, self.layout, self.config)
        evaluator = FGEvaluator(poly, self.config, self.layout)

        result = self.solver.solve(evaluator, x0, bounds.lbx, bounds.ubx, bounds.lbg, bounds.ubg)

        usable, reason = self._check_result(result)
        if not usable:
            return self._fallback(result, reason)

        steering = float(result.x[self.layout.steer_start])
        acceleration = float(result.x[self.layout.accel_start])
        usable, reason = self._check_command(steering, acceleration)
        if not usable:
            return self._fallback(result, reason)

        steering = float(np.clip(steering, -self.config.steering_limit, self.config.steering_limit))
        acceleration = float(np.clip(acceleration, -1.0, 1.0))

        # Steps 1..N-2 for visualization
        N = self.layout.N
        xs = result.x[self.layout.x_start + 1:self.layout.x_start + N - 1]
        ys = result.x[self.layout.y_start + 1:self.layout.y_start + N - 1]

        self._last_solution = np.array(result.x, dtype=float)
        self._last_command = np.array([steering, acceleration])

        return ControlCommand(
            steering=steering,
            acceleration=acceleration,
            predicted_x=[float(v) for v in xs],
            predicted_y=[float(v) for v in ys],
            status=result.status,
            cost=float(result.cost),
            used_fallback=False,
            info={
                "return_status": result.return_status,
                "iterations": result.iterations,
                "solve_time": result.solve_time,
                "constraint_violation": result.constraint_violation,
            },
        )

    def _initial_guess(self, state_vec: np.ndarray) -> np.ndarray:
        if not self.config.warm_start or self._last_solution is None:
            return np.zeros(self.layout.n_vars)

        # Shift the previous plan one step and repeat the last entry
        states = self.layout.states(self._last_solution)
        actuations = self.layout.actuations(self._last_solution)
        states[:-1] = states[1:].copy()
        actuations[:-1] = actuations[1:].copy()
        states[0] = state_vec
        return self.layout.pack(states, actuations)

    def _check_result(self, result: SolveResult) -> Tuple[bool, str]:
        if result.success:
            return True, ""
        if result.status in _SUBOPTIMAL:
            if not self.config.accept_suboptimal:
                return False, f"{result.status.value} and suboptimal points are not accepted"
            if result.constraint_violation > self.config.feasibility_tol:
                return False, (f"{result.status.value} with constraint violation "
                               f"{result.constraint_violation:.2e} > {self.config.feasibility_tol:.2e}")
            return True, ""
        return False, f"solver status {result.status.value} ({result.return_status or 'no return status'})"

    def _check_command(self, steering: float, acceleration: float) -> Tuple[bool, str]:
        if not (np.isfinite(steering) and np.isfinite(acceleration)):
            return False, f"non-finite command (steering={steering}, acceleration={acceleration})"
        limit = self.config.steering_limit + BOUND_TOLERANCE
        if abs(steering) > limit:
            return False, f"steering {steering:.4f} outside +/-{self.config.steering_limit:.4f}"
        if abs(acceleration) > 1.0 + BOUND_TOLERANCE:
            return False, f"acceleration {acceleration:.4f} outside [-1, 1]"
        return True, ""

    def _fallback(self, result: SolveResult, reason: str) -> ControlCommand:
        if self.config.fallback == "hold":
            steering, acceleration = (float(v) for v in self._last_command)
        else:
            steering, acceleration = 0.0, 0.0
            self._last_command = np.zeros(2)
        # A failed plan is no basis for the next guess
        self._last_solution = None

        print(f"[MPC] No usable solution: {reason} -> fallback '{self.config.fallback}' "
              f"(steering={steering:.4f}, acceleration={acceleration:.4f})", file=sys.stderr)

        return ControlCommand(
            steering=steering,
            acceleration=acceleration,
            predicted_x=[],
            predicted_y=[],
            status=result.status,
            cost=float(result.cost),
            used_fallback=True,
            info={
                "reason": reason,
                "return_status": result.return_status,
                "iterations": result.iterations,
                "solve_time": result.solve_time,
                "constraint_violation": result.constraint_violation,
            },
        )
