"""
Tests for the cost/constraint evaluator.
"""

import numpy as np
import pytest

import casadi as ca

from tracking_mpc.config import CostWeights, MPCConfig
from tracking_mpc.evaluator import FGEvaluator
from tracking_mpc.kinematic_model import rollout
from tracking_mpc.layout import DecisionLayout
from tracking_mpc.reference import ReferencePolynomial


def _exact_rollout(config, poly, seed=0):
    rng = np.random.default_rng(seed)
    layout = DecisionLayout(config.horizon_steps)
    x, y, psi = 0.0, 0.8, 0.05
    cte, epsi = poly.tracking_errors(x, y, psi)
    initial = [x, y, psi, 12.0, cte, epsi]
    acts = np.column_stack([
        rng.uniform(-0.3, 0.3, layout.N - 1),
        rng.uniform(-1.0, 1.0, layout.N - 1),
    ])
    states = rollout(initial, acts, poly, config.dt, config.lf)
    return layout, initial, layout.pack(states, acts)


def test_residuals_vanish_on_exact_rollout():
    """A noise-free model rollout satisfies every dynamics residual."""
    config = MPCConfig()
    poly = ReferencePolynomial([0.5, 0.1, -0.02, 0.001])
    layout, initial, vars = _exact_rollout(config, poly)

    g = FGEvaluator(poly, config).constraints(vars)

    assert g.shape == (layout.n_constraints,)
    np.testing.assert_allclose(g[layout.state_starts], initial, atol=1e-12)
    mask = np.ones(layout.n_constraints, dtype=bool)
    mask[layout.state_starts] = False
    np.testing.assert_allclose(g[mask], 0.0, atol=1e-12)


def test_perturbed_state_shows_in_residual():
    """Moving one planned state shows up in its own residual slot."""
    config = MPCConfig(horizon_steps=5)
    poly = ReferencePolynomial([0.0, 0.0, 0.0, 0.0])
    layout, _, vars = _exact_rollout(config, poly, seed=3)
    vars[layout.y_start + 2] += 0.25

    g = FGEvaluator(poly, config).constraints(vars)
    assert g[layout.y_start + 2] == pytest.approx(0.25, abs=1e-12)


def test_cost_is_zero_on_reference():
    """On the path at reference speed with no actuation nothing is penalized."""
    config = MPCConfig(horizon_steps=8, ref_v=10.0)
    layout = DecisionLayout(8)
    vars = np.zeros(layout.n_vars)
    vars[layout.state_slice("v")] = 10.0

    assert FGEvaluator([0.0, 0.0, 0.0, 0.0], config).cost(vars) == pytest.approx(0.0)


def test_cost_terms_by_hand():
    """N=3: three state terms, two actuation terms, one change term each."""
    weights = CostWeights(cte=2.0, epsi=3.0, v=1.0, steer=5.0, accel=7.0,
                          steer_change=11.0, accel_change=13.0)
    config = MPCConfig(horizon_steps=3, ref_v=1.0, weights=weights)
    layout = DecisionLayout(3)
    states = np.zeros((3, 6))
    states[:, 3] = [1.0, 2.0, 1.0]
    states[:, 4] = [0.5, 0.0, 0.0]
    states[:, 5] = [0.0, 0.0, 0.1]
    acts = np.array([[0.1, 0.2], [0.3, -0.2]])
    vars = layout.pack(states, acts)

    expected = (
        2.0 * 0.25 + 3.0 * 0.01 + 1.0 * 1.0
        + 5.0 * (0.01 + 0.09) + 7.0 * (0.04 + 0.04)
        + 11.0 * 0.2 ** 2 + 13.0 * 0.4 ** 2
    )
    assert FGEvaluator([0.0], config).cost(vars) == pytest.approx(expected)


def test_symbolic_nlp_matches_numeric_evaluation():
    """nlp() is the same function as the numeric evaluate(), in SX form."""
    config = MPCConfig(horizon_steps=6)
    poly = ReferencePolynomial([0.3, -0.2, 0.05, -0.002])
    evaluator = FGEvaluator(poly, config)
    nlp = evaluator.nlp()
    layout = evaluator.layout

    assert nlp["x"].numel() == layout.n_vars
    assert nlp["g"].numel() == layout.n_constraints

    fg = ca.Function("fg", [nlp["x"]], [nlp["f"], nlp["g"], ca.jacobian(nlp["g"], nlp["x"])])
    vars = np.random.default_rng(7).normal(size=layout.n_vars)
    f_sym, g_sym, jac = fg(vars)
    f_num, g_num = evaluator.evaluate(vars)

    assert float(f_sym) == pytest.approx(f_num, rel=1e-12)
    np.testing.assert_allclose(np.array(g_sym).flatten(), g_num, atol=1e-10)
    assert np.all(np.isfinite(np.array(jac)))


def test_evaluator_rejects_wrong_length():
    config = MPCConfig(horizon_steps=4)
    with pytest.raises(ValueError):
        FGEvaluator([0.0], config).evaluate(np.zeros(5))
