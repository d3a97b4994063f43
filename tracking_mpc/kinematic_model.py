# tracking_mpc/kinematic_model.py
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

import numpy as np

from tracking_mpc.reference import ReferencePolynomial, math_backend

STATE_DIM = 6
ACTUATION_DIM = 2


@dataclass
class VehicleState:
    x: float
    y: float
    psi: float
    v: float
    cte: float
    epsi: float

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.psi, self.v, self.cte, self.epsi], dtype=float)

    @classmethod
    def from_sequence(cls, values: Sequence[float]) -> "VehicleState":
        values = np.asarray(values, dtype=float).flatten()
        if values.size != STATE_DIM:
            raise ValueError(f"State needs {STATE_DIM} values (x, y, psi, v, cte, epsi), got {values.size}")
        if not np.all(np.isfinite(values)):
            raise ValueError(f"State values must be finite, got {values.tolist()}")
        return cls(*[float(v) for v in values])


def step(state: Sequence, actuation: Sequence, poly: ReferencePolynomial, dt: float, lf: float) -> List:
    """
    Propagate one step of the kinematic bicycle model.

    Args:
        state: (x, y, psi, v, cte, epsi) at step t
        actuation: (steering, acceleration) applied during step t
        poly: Reference path in the same frame as the state
        dt: Step duration (seconds)
        lf: Front axle to CoG distance

    Returns:
        [x, y, psi, v, cte, epsi] at step t + 1. Entries are CasADi expressions
        when any input is symbolic, floats otherwise.
    """
    x0, y0, psi0, v0, cte0, epsi0 = state
    delta0, a0 = actuation
    cos, sin, _ = math_backend(x0, y0, psi0, v0, epsi0, delta0, a0)

    f0 = poly.evaluate(x0)
    psi_des0 = poly.heading(x0)
    # Positive steering turns clockwise in the simulator frame
    yaw_step = v0 * delta0 / lf * dt

    return [
        x0 + v0 * cos(psi0) * dt,
        y0 + v0 * sin(psi0) * dt,
        psi0 - yaw_step,
        v0 + a0 * dt,
        (f0 - y0) + v0 * sin(epsi0) * dt,
        (psi0 - psi_des0) - yaw_step,
    ]


def rollout(initial_state: Sequence[float], actuations, poly: ReferencePolynomial,
            dt: float, lf: float) -> np.ndarray:
    """Apply a sequence of actuations; returns states with shape (len(actuations) + 1, 6)."""
    actuations = np.asarray(actuations, dtype=float).reshape(-1, ACTUATION_DIM)
    states = np.zeros((actuations.shape[0] + 1, STATE_DIM))
    states[0] = np.asarray(initial_state, dtype=float)
    for k, u in enumerate(actuations):
        states[k + 1] = [float(s) for s in step(states[k], u, poly, dt, lf)]
    return states
