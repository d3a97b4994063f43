# tracking_mpc/evaluator.py
from __future__ import annotations

from typing import Dict, Optional, Sequence, Tuple, Union

import numpy as np

import casadi as ca

from tracking_mpc.config import MPCConfig
from tracking_mpc.kinematic_model import step
from tracking_mpc.layout import DecisionLayout
from tracking_mpc.reference import SYMBOLIC_TYPES, ReferencePolynomial


class FGEvaluator:
    """
    Cost and constraint residuals of one tracking problem.

    Bound to a reference polynomial at construction; evaluation has no side
    effects, so the same instance can be called any number of times. Works on
    a numeric decision vector (float cost, numpy residuals) and on a CasADi
    symbol (SX expressions the solver differentiates).

    Residual layout (same offsets as the decision vector's state blocks):
        g[block + 0]  decided state at step 0, pinned to the measurement by the bounds
        g[block + t]  decided state at t minus the model step from t - 1, t = 1..N-1
    """

    def __init__(self, poly: Union[ReferencePolynomial, Sequence[float]], config: MPCConfig,
                 layout: Optional[DecisionLayout] = None):
        self.poly = poly if isinstance(poly, ReferencePolynomial) else ReferencePolynomial(poly)
        self.config = config
        self.layout = layout if layout is not None else DecisionLayout(config.horizon_steps)

    def _prepare(self, vars):
        if isinstance(vars, SYMBOLIC_TYPES):
            n = vars.numel()
        else:
            vars = np.asarray(vars, dtype=float).flatten()
            n = vars.size
        if n != self.layout.n_vars:
            raise ValueError(f"Decision vector has {n} entries, expected {self.layout.n_vars}")
        return vars

    def cost(self, vars):
        vars = self._prepare(vars)
        L, w = self.layout, self.config.weights
        N, ref_v = L.N, self.config.ref_v

        cost = 0.0
        # Tracking: cte and epsi dominate, speed is the weakest pull
        for t in range(N):
            cost += w.cte * vars[L.cte_start + t] ** 2
            cost += w.epsi * vars[L.epsi_start + t] ** 2
            cost += w.v * (vars[L.v_start + t] - ref_v) ** 2

        # Actuation magnitude
        for t in range(N - 1):
            cost += w.steer * vars[L.steer_start + t] ** 2
            cost += w.accel * vars[L.accel_start + t] ** 2

        # Actuation change between consecutive control steps
        for t in range(N - 2):
            cost += w.steer_change * (vars[L.steer_start + t + 1] - vars[L.steer_start + t]) ** 2
            cost += w.accel_change * (vars[L.accel_start + t + 1] - vars[L.accel_start + t]) ** 2

        if isinstance(cost, SYMBOLIC_TYPES):
            return cost
        return float(cost)

    def constraints(self, vars):
        vars = self._prepare(vars)
        L = self.layout
        starts = L.state_starts
        g = [None] * L.n_constraints

        for start in starts:
            g[start] = vars[start]

        for t in range(1, L.N):
            prev_state = [vars[start + t - 1] for start in starts]
            actuation = (vars[L.steer_start + t - 1], vars[L.accel_start + t - 1])
            predicted = step(prev_state, actuation, self.poly, self.config.dt, self.config.lf)
            for start, pred in zip(starts, predicted):
                g[start + t] = vars[start + t] - pred

        if isinstance(vars, SYMBOLIC_TYPES):
            return ca.vertcat(*g)
        return np.array([float(r) for r in g])

    def evaluate(self, vars) -> Tuple:
        """(cost, residuals) for one decision vector."""
        return self.cost(vars), self.constraints(vars)

    def nlp(self) -> Dict[str, ca.SX]:
        """Symbolic problem in the form ca.nlpsol expects."""
        X = ca.SX.sym("vars", self.layout.n_vars)
        return {"x": X, "f": self.cost(X), "g": self.constraints(X)}
