"""
Reference path y = f(x) in the vehicle frame.

Every operation accepts plain floats, numpy arrays or CasADi symbols, so the
same polynomial feeds both numeric checks and the symbolic NLP graph.
"""

from __future__ import annotations

from typing import Sequence, Tuple

import numpy as np

import casadi as ca

SYMBOLIC_TYPES = (ca.SX, ca.MX, ca.DM)


def math_backend(*values):
    """Return (cos, sin, atan) matching the argument types."""
    if any(isinstance(v, SYMBOLIC_TYPES) for v in values):
        return ca.cos, ca.sin, ca.atan
    return np.cos, np.sin, np.arctan


class ReferencePolynomial:
    """Polynomial with ascending-power coefficients: c0 + c1*x + c2*x^2 + ..."""

    def __init__(self, coeffs: Sequence[float]):
        coeffs = np.asarray(coeffs, dtype=float).flatten()
        if coeffs.size == 0:
            raise ValueError("Reference polynomial needs at least one coefficient")
        if not np.all(np.isfinite(coeffs)):
            raise ValueError(f"Reference polynomial coefficients must be finite, got {coeffs.tolist()}")
        self.coeffs = coeffs

    @property
    def degree(self) -> int:
        return self.coeffs.size - 1

    def evaluate(self, x):
        # Horner form keeps the symbolic graph small
        result = float(self.coeffs[-1])
        for c in self.coeffs[-2::-1]:
            result = result * x + float(c)
        return result

    def slope(self, x):
        """f'(x)."""
        if self.degree == 0:
            return 0.0
        deriv = [i * float(c) for i, c in enumerate(self.coeffs)][1:]
        result = deriv[-1]
        for c in deriv[-2::-1]:
            result = result * x + c
        return result

    def heading(self, x):
        """Desired heading psi_des(x) = atan(f'(x))."""
        slope = self.slope(x)
        _, _, atan = math_backend(x, slope)
        return atan(slope)

    def tracking_errors(self, x, y, psi) -> Tuple:
        """Cross-track and heading error of a pose relative to the path."""
        cte = self.evaluate(x) - y
        epsi = psi - self.heading(x)
        return cte, epsi

    def __repr__(self) -> str:
        return f"ReferencePolynomial({self.coeffs.tolist()})"
