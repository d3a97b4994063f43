"""
Decision vector layout shared by the evaluator, the bounds and the driver.

    [ x(N) | y(N) | psi(N) | v(N) | cte(N) | epsi(N) | steer(N-1) | accel(N-1) ]

There is one actuation fewer than states: the first state is measured, not decided.
"""

from dataclasses import dataclass
from typing import List

import numpy as np

STATE_NAMES = ("x", "y", "psi", "v", "cte", "epsi")
ACTUATOR_NAMES = ("steer", "accel")


@dataclass(frozen=True)
class DecisionLayout:
    N: int

    def __post_init__(self):
        if self.N < 2:
            raise ValueError(f"Horizon must have at least 2 steps, got N={self.N}")

    @property
    def x_start(self) -> int:
        return 0

    @property
    def y_start(self) -> int:
        return self.x_start + self.N

    @property
    def psi_start(self) -> int:
        return self.y_start + self.N

    @property
    def v_start(self) -> int:
        return self.psi_start + self.N

    @property
    def cte_start(self) -> int:
        return self.v_start + self.N

    @property
    def epsi_start(self) -> int:
        return self.cte_start + self.N

    @property
    def steer_start(self) -> int:
        return self.epsi_start + self.N

    @property
    def accel_start(self) -> int:
        return self.steer_start + self.N - 1

    @property
    def n_vars(self) -> int:
        return self.N * len(STATE_NAMES) + (self.N - 1) * len(ACTUATOR_NAMES)

    @property
    def n_constraints(self) -> int:
        return self.N * len(STATE_NAMES)

    @property
    def state_starts(self) -> List[int]:
        return [self.N * i for i in range(len(STATE_NAMES))]

    def state_slice(self, name: str) -> slice:
        start = self.N * STATE_NAMES.index(name)
        return slice(start, start + self.N)

    def actuator_slice(self, name: str) -> slice:
        start = self.steer_start + (self.N - 1) * ACTUATOR_NAMES.index(name)
        return slice(start, start + self.N - 1)

    def states(self, vars) -> np.ndarray:
        """(N, 6) array of the planned states."""
        vars = np.asarray(vars, dtype=float)
        return np.column_stack([vars[self.state_slice(name)] for name in STATE_NAMES])

    def actuations(self, vars) -> np.ndarray:
        """(N - 1, 2) array of the planned [steer, accel]."""
        vars = np.asarray(vars, dtype=float)
        return np.column_stack([vars[self.actuator_slice(name)] for name in ACTUATOR_NAMES])

    def pack(self, states, actuations) -> np.ndarray:
        """Inverse of states()/actuations()."""
        states = np.asarray(states, dtype=float).reshape(self.N, len(STATE_NAMES))
        actuations = np.asarray(actuations, dtype=float).reshape(self.N - 1, len(ACTUATOR_NAMES))
        return np.concatenate([states.T.flatten(), actuations.T.flatten()])
