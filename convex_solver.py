# convex_solver.py
# Numerical solver adapter: minimizes a ConvexProgram with scipy's SLSQP.
#
# The adapter only sees the program's explicit pieces (objective terms,
# incidence and demand matrices); it knows nothing about routing games.

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import numpy as np
from scipy import optimize

from problem_formulation import ConvexProgram, ObjectiveKind
from routing_errors import SolverFailure


# =============================================================================
# Global algorithm settings (ONE place)
# =============================================================================

@dataclass(frozen=True)
class SolverConfig:
    """Central place for solver knobs so they aren't duplicated across functions.

    Notes:
      - max_iter caps SLSQP iterations for each of the two solves.
      - tol is SLSQP's ftol, applied to the objective divided by its value at
        the starting point, so it does not depend on the cost units.
      - flow_tol is the share of a commodity's demand below which a path
        counts as unused, and the relative demand residual a solve may leave.
      - gap_tol bounds the path-cost gap (used path vs. cheapest path of the
        same commodity) relative to the largest path cost.
    """
    max_iter: int = 500
    tol: float = 1e-10
    flow_tol: float = 1e-6
    gap_tol: float = 1e-3


DEFAULT_CONFIG = SolverConfig()


@dataclass(frozen=True, eq=False)
class SolverResult:
    """Raw solver output for one program."""
    x: np.ndarray
    objective_value: float
    success: bool
    status: Optional[int]
    message: str
    iterations: int
    objective_kind: Optional[ObjectiveKind] = None


def objective_scale(program: ConvexProgram, x0: np.ndarray) -> float:
    """Positive divisor that brings the objective to order one near `x0`."""
    f0 = abs(float(program.objective_value(x0)))
    if np.isfinite(f0) and f0 > 0:
        return f0
    coefs = [abs(t.coefficient) for t in program.objective_terms]
    top = max(coefs) if coefs else 0.0
    return top if np.isfinite(top) and top > 0 else 1.0


def solve_program(program: ConvexProgram, config: SolverConfig = DEFAULT_CONFIG) -> SolverResult:
    """Minimize the program's objective over x >= 0, demand equalities and A x >= 0.

    Raises SolverFailure (with scipy's status and message) when SLSQP does not
    report success, and also when a reported success leaves the demand
    unmet or the path costs unbalanced. Nothing is retried: the same inputs
    give the same outcome.
    """
    n = program.n_variables
    D = program.demand_matrix
    A_shared = program.shared_incidence
    x0 = program.initial_point()
    scale = objective_scale(program, x0)

    constraints = [
        {"type": "eq", "fun": program.demand_residual, "jac": lambda x: D},
    ]
    if A_shared.shape[0] > 0:
        constraints.append({"type": "ineq", "fun": program.edge_nonnegativity, "jac": lambda x: A_shared})

    res = optimize.minimize(
        lambda x: program.objective_value(x) / scale,
        x0,
        jac=lambda x: program.objective_gradient(x) / scale,
        method="SLSQP",
        bounds=[(0.0, None)] * n,
        constraints=constraints,
        options={"maxiter": int(config.max_iter), "ftol": float(config.tol)},
    )

    status = _as_int(getattr(res, "status", None))
    message = str(getattr(res, "message", ""))
    kind = program.objective_kind
    if not bool(res.success):
        raise SolverFailure(message, status=status, objective_kind=kind)

    x = np.asarray(res.x, dtype=np.float64).reshape(-1)
    if D.shape[0]:
        residual = float(np.max(np.abs(program.demand_residual(x))))
        allowed = float(config.flow_tol) * max(1.0, float(np.max(program.demands)))
        if residual > allowed:
            raise SolverFailure(
                f"reported success but demand residual is {residual:.3g} (allowed {allowed:.3g})",
                status=status,
                objective_kind=kind,
            )

    gap = relative_stationarity_gap(program, x, config)
    if gap > float(config.gap_tol):
        raise SolverFailure(
            f"reported success but relative path-cost gap is {gap:.3g} (gap_tol {config.gap_tol:g})",
            status=status,
            objective_kind=kind,
        )

    return SolverResult(
        x=x,
        objective_value=float(program.objective_value(x)),
        success=True,
        status=status,
        message=message,
        iterations=int(getattr(res, "nit", 0) or 0),
        objective_kind=kind,
    )


def relative_stationarity_gap(program: ConvexProgram, x: np.ndarray, config: SolverConfig = DEFAULT_CONFIG) -> float:
    """Largest per-commodity path-cost gap at `x`, divided by the largest path cost."""
    gaps = program.stationarity_gaps(x, used_tol=float(config.flow_tol))
    if gaps.size == 0:
        return 0.0
    cost_scale = float(np.max(np.abs(program.objective_gradient(x))))
    if cost_scale == 0.0:
        return 0.0
    return float(np.max(gaps)) / cost_scale


def _as_int(v: Any) -> Optional[int]:
    try:
        return int(v)
    except (TypeError, ValueError):
        return None
