"""
Tests for the decision vector layout and the bounds assembler.
"""

import numpy as np
import pytest

from tracking_mpc.bounds import INFINITY, assemble_bounds
from tracking_mpc.config import MPCConfig
from tracking_mpc.layout import DecisionLayout


def test_layout_offsets_for_default_horizon():
    """Six state blocks of N, then two actuator blocks of N - 1."""
    layout = DecisionLayout(10)
    assert layout.state_starts == [0, 10, 20, 30, 40, 50]
    assert layout.steer_start == 60
    assert layout.accel_start == 69
    assert layout.n_vars == 10 * 6 + 9 * 2
    assert layout.n_constraints == 60


def test_layout_pack_roundtrip():
    """pack() places each column in its block."""
    layout = DecisionLayout(4)
    states = np.arange(24, dtype=float).reshape(4, 6)
    acts = -np.arange(6, dtype=float).reshape(3, 2)
    vars = layout.pack(states, acts)

    assert vars.size == layout.n_vars
    np.testing.assert_array_equal(vars[layout.state_slice("v")], states[:, 3])
    np.testing.assert_array_equal(vars[layout.actuator_slice("accel")], acts[:, 1])
    np.testing.assert_array_equal(layout.states(vars), states)
    np.testing.assert_array_equal(layout.actuations(vars), acts)


def test_layout_rejects_short_horizon():
    with pytest.raises(ValueError):
        DecisionLayout(1)


@pytest.mark.parametrize("N", [2, 5, 10, 25])
def test_actuator_bounds_for_any_horizon(N):
    """Steering bounds are symmetric at the configured limit, acceleration is [-1, 1]."""
    config = MPCConfig(horizon_steps=N)
    layout = DecisionLayout(N)
    bounds = assemble_bounds([0.0] * 6, layout, config)

    steer = layout.actuator_slice("steer")
    np.testing.assert_array_equal(bounds.lbx[steer], -bounds.ubx[steer])
    np.testing.assert_allclose(bounds.ubx[steer], config.steering_limit)
    assert np.all(bounds.ubx[steer] <= config.max_steer * config.lf)

    accel = layout.actuator_slice("accel")
    assert np.all(bounds.lbx[accel] == -1.0)
    assert np.all(bounds.ubx[accel] == 1.0)

    assert np.all(bounds.lbx[:layout.steer_start] == -INFINITY)
    assert np.all(bounds.ubx[:layout.steer_start] == INFINITY)


def test_constraint_bounds_pin_initial_state():
    """Step-0 residual slots carry the state, every other slot is zero."""
    config = MPCConfig(horizon_steps=6)
    layout = DecisionLayout(6)
    state = [1.0, -2.0, 0.1, 15.0, 0.5, -0.05]
    bounds = assemble_bounds(state, layout, config)

    np.testing.assert_array_equal(bounds.lbg, bounds.ubg)
    np.testing.assert_array_equal(bounds.lbg[layout.state_starts], state)

    mask = np.ones(layout.n_constraints, dtype=bool)
    mask[layout.state_starts] = False
    assert np.all(bounds.lbg[mask] == 0.0)


def test_bounds_reject_wrong_state_size():
    with pytest.raises(ValueError):
        assemble_bounds([0.0] * 4, DecisionLayout(5), MPCConfig(horizon_steps=5))
