# cost_polynomials.py
# Polynomial edge-cost model: marginal cost c(x), total cost x*c(x), Beckmann
# potential int_0^x c(t) dt, and marginal social cost d/dx [x*c(x)].
#
# Polynomials are numpy.polynomial.Polynomial objects in the default
# domain/window, so .coef is the plain ascending-power coefficient list.

from __future__ import annotations

from typing import List, Sequence, Tuple, Union

import numpy as np
from numpy.polynomial import Polynomial

from routing_errors import ConstructionError

CostLike = Union[Polynomial, Sequence[float], float, int]

# x, as a polynomial
IDENTITY = Polynomial([0.0, 1.0])


def as_polynomial(coefficients: CostLike) -> Polynomial:
    """Coerce a coefficient sequence (ascending powers), scalar or Polynomial.

    Raises ConstructionError for empty, non-1D or non-finite coefficients.
    """
    if isinstance(coefficients, Polynomial):
        coef = coefficients.convert().coef
    else:
        try:
            coef = np.atleast_1d(np.asarray(coefficients, dtype=np.float64))
        except (TypeError, ValueError) as e:
            raise ConstructionError(f"Cost coefficients must be numeric, got {coefficients!r}: {e}")

    if coef.ndim != 1 or coef.size == 0:
        raise ConstructionError(f"Cost coefficients must be a non-empty 1D sequence, got shape {coef.shape}.")
    if not np.all(np.isfinite(coef)):
        raise ConstructionError(f"Cost coefficients must be finite, got {coef.tolist()}.")
    return Polynomial(coef.astype(np.float64))


def total_cost_polynomial(marginal: Polynomial) -> Polynomial:
    """x * c(x): every coefficient shifts up one power, constant term 0."""
    return marginal * IDENTITY


def potential_polynomial(marginal: Polynomial) -> Polynomial:
    """Antiderivative of c with zero constant term: b*x^k -> b/(k+1) * x^(k+1)."""
    return marginal.integ(m=1, k=[0.0], lbnd=0.0)


def marginal_social_cost_polynomial(marginal: Polynomial) -> Polynomial:
    """d/dx [x*c(x)] = c(x) + x*c'(x)."""
    return total_cost_polynomial(marginal).deriv()


def polynomial_terms(poly: Polynomial) -> List[Tuple[float, int]]:
    """Explicit (coefficient, power) expansion, zero coefficients dropped."""
    return [(float(b), k) for k, b in enumerate(poly.coef) if b != 0.0]


def evaluate_edgewise(polys: Sequence[Polynomial], x: Union[np.ndarray, Sequence[float]]) -> np.ndarray:
    """Evaluate polys[e] at x[e] for every edge e."""
    x = np.asarray(x, dtype=np.float64).reshape(-1)
    if x.shape[0] != len(polys):
        raise ValueError(f"x length must be {len(polys)}, got {x.shape[0]}")
    return np.array([float(p(xe)) for p, xe in zip(polys, x)], dtype=np.float64)
