"""
Variable and constraint bounds for one control cycle.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from tracking_mpc.config import MPCConfig
from tracking_mpc.layout import DecisionLayout

# IPOPT treats |bound| >= 1e19 as infinite
INFINITY = 1.0e19


@dataclass
class Bounds:
    lbx: np.ndarray
    ubx: np.ndarray
    lbg: np.ndarray
    ubg: np.ndarray


def assemble_bounds(state: Sequence[float], layout: DecisionLayout, config: MPCConfig) -> Bounds:
    """
    Build bounds for the decision vector and the residual vector.

    States are free, steering is limited to +/- config.steering_limit and
    acceleration to [-1, 1]. Residuals are forced to zero except the step-0
    slot of each state block, which is pinned to the measured state; that is
    how the current measurement enters the otherwise free problem.
    """
    state = np.asarray(state, dtype=float).flatten()
    if state.size != len(layout.state_starts):
        raise ValueError(f"State needs {len(layout.state_starts)} values, got {state.size}")

    lbx = np.full(layout.n_vars, -INFINITY)
    ubx = np.full(layout.n_vars, INFINITY)

    steer = layout.actuator_slice("steer")
    lbx[steer] = -config.steering_limit
    ubx[steer] = config.steering_limit

    accel = layout.actuator_slice("accel")
    lbx[accel] = -1.0
    ubx[accel] = 1.0

    lbg = np.zeros(layout.n_constraints)
    ubg = np.zeros(layout.n_constraints)
    for start, value in zip(layout.state_starts, state):
        lbg[start] = value
        ubg[start] = value

    return Bounds(lbx=lbx, ubx=ubx, lbg=lbg, ubg=ubg)
