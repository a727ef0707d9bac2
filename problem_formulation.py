# problem_formulation.py
# Turn a RoutingGame into a convex program over path-wise flows.
#
# Variables: one nonnegative flow per (commodity, path).
# Edge flows are not variables: row e of the incidence matrix sums every path
# variable whose path uses edge e, which gives flow conservation by construction.
# Constraints: per commodity, path flows sum to demand; edge flows >= 0.
# Objective: sum_e P_e(edgeflow_e), expanded term by term, where P_e is
#   - the total cost x*c_e(x)       (social optimum), or
#   - the Beckmann potential of c_e (Wardrop equilibrium).

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from functools import cached_property
from typing import List, Tuple, Union

import numpy as np

from cost_polynomials import polynomial_terms
from routing_game import RoutingGame


class ObjectiveKind(str, Enum):
    SOCIAL_OPTIMUM = "social_optimum"
    EQUILIBRIUM = "equilibrium"


def coerce_objective_kind(kind: Union[ObjectiveKind, str]) -> ObjectiveKind:
    try:
        return ObjectiveKind(kind)
    except ValueError:
        valid = [k.value for k in ObjectiveKind]
        raise ValueError(f"objective_kind must be one of {valid}, got {kind!r}.")


@dataclass(frozen=True)
class ObjectiveTerm:
    """coefficient * edgeflow[edge] ** power"""
    edge: int
    power: int
    coefficient: float


@dataclass(frozen=True)
class ConvexProgram:
    """Variables, constraints and explicit polynomial objective for one solve.

    Notes:
      - variables[v] = (commodity, path) for column v of every matrix below
      - incidence is (n_edges x n_variables); incidence @ x is the edge flow
      - demand_matrix @ x == demands is the demand-satisfaction constraint
      - incidence @ x >= 0 is kept as an explicit constraint even though it
        follows from x >= 0; only rows of edges shared by two or more
        variables are emitted (shared_incidence), the rest repeat a bound
      - the gradient with respect to x[v] is the cost of path v: user cost
        for EQUILIBRIUM, marginal social cost for SOCIAL_OPTIMUM
    """
    objective_kind: ObjectiveKind
    variables: Tuple[Tuple[int, int], ...]
    incidence: np.ndarray
    demand_matrix: np.ndarray
    demands: np.ndarray
    objective_terms: Tuple[ObjectiveTerm, ...]

    @property
    def n_variables(self) -> int:
        return len(self.variables)

    @cached_property
    def _term_arrays(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        edges = np.array([t.edge for t in self.objective_terms], dtype=np.int64)
        powers = np.array([t.power for t in self.objective_terms], dtype=np.int64)
        coefs = np.array([t.coefficient for t in self.objective_terms], dtype=np.float64)
        return edges, powers, coefs

    def edge_flows(self, x: np.ndarray) -> np.ndarray:
        return self.incidence @ np.asarray(x, dtype=np.float64)

    def objective_value(self, x: np.ndarray) -> float:
        y = self.edge_flows(x)
        edges, powers, coefs = self._term_arrays
        if edges.size == 0:
            return 0.0
        return float(np.sum(coefs * np.power(y[edges], powers)))

    def objective_gradient(self, x: np.ndarray) -> np.ndarray:
        """d/dx of the objective: incidence^T @ (d/dy sum of terms)."""
        y = self.edge_flows(x)
        edges, powers, coefs = self._term_arrays
        dy = np.zeros(self.incidence.shape[0], dtype=np.float64)
        active = powers >= 1
        if np.any(active):
            e = edges[active]
            k = powers[active]
            np.add.at(dy, e, coefs[active] * k * np.power(y[e], k - 1))
        return self.incidence.T @ dy

    def demand_residual(self, x: np.ndarray) -> np.ndarray:
        return self.demand_matrix @ np.asarray(x, dtype=np.float64) - self.demands

    @cached_property
    def shared_incidence(self) -> np.ndarray:
        """Incidence rows of edges used by more than one path variable."""
        return self.incidence[np.count_nonzero(self.incidence, axis=1) > 1]

    def edge_nonnegativity(self, x: np.ndarray) -> np.ndarray:
        return self.shared_incidence @ np.asarray(x, dtype=np.float64)

    def stationarity_gaps(self, x: np.ndarray, used_tol: float) -> np.ndarray:
        """Per commodity: max gradient over used variables minus min over all of them.

        A variable is used when it carries more than `used_tol` times its
        commodity's demand. At an optimum every gap is ~0.
        """
        x = np.asarray(x, dtype=np.float64)
        g = self.objective_gradient(x)
        gaps = np.zeros(self.demand_matrix.shape[0], dtype=np.float64)
        for c, row in enumerate(self.demand_matrix):
            members = row > 0
            if self.demands[c] <= 0 or not np.any(members):
                continue
            used = members & (x > used_tol * self.demands[c])
            if np.any(used):
                gaps[c] = float(np.max(g[used]) - np.min(g[members]))
        return gaps

    def initial_point(self) -> np.ndarray:
        """Each commodity's demand split evenly over its paths (feasible)."""
        counts = self.demand_matrix.sum(axis=1)
        x0 = np.zeros(self.n_variables, dtype=np.float64)
        for v, (c, _p) in enumerate(self.variables):
            x0[v] = self.demands[c] / counts[c]
        return x0

    def objective_expression(self) -> str:
        """The objective written out, e.g. '1*y[0] + 1*y[1]^2' (y = edge flows)."""
        parts: List[str] = []
        for t in self.objective_terms:
            if t.power == 0:
                parts.append(f"{t.coefficient:g}")
            elif t.power == 1:
                parts.append(f"{t.coefficient:g}*y[{t.edge}]")
            else:
                parts.append(f"{t.coefficient:g}*y[{t.edge}]^{t.power}")
        return " + ".join(parts) if parts else "0"


# =============================================================================
# Formulation
# =============================================================================

def edge_path_incidence(game: RoutingGame) -> Tuple[Tuple[Tuple[int, int], ...], np.ndarray]:
    """Flattened (commodity, path) variables and the edge x variable incidence matrix."""
    variables = tuple((c, p) for c, paths in enumerate(game.paths) for p in range(len(paths)))
    A = np.zeros((game.n_edges, len(variables)), dtype=np.float64)
    for v, (c, p) in enumerate(variables):
        for e in game.paths[c][p]:
            A[e, v] = 1.0
    return variables, A


def formulate(game: RoutingGame, objective_kind: Union[ObjectiveKind, str]) -> ConvexProgram:
    """Build the convex program for `objective_kind` (pure; the game is not touched)."""
    kind = coerce_objective_kind(objective_kind)
    variables, A = edge_path_incidence(game)

    D = np.zeros((game.n_commodities, len(variables)), dtype=np.float64)
    for v, (c, _p) in enumerate(variables):
        D[c, v] = 1.0

    if kind is ObjectiveKind.SOCIAL_OPTIMUM:
        polys = game.total_costs
    else:
        polys = game.potentials

    terms = tuple(
        ObjectiveTerm(edge=e, power=k, coefficient=b)
        for e, poly in enumerate(polys)
        for b, k in polynomial_terms(poly)
    )

    return ConvexProgram(
        objective_kind=kind,
        variables=variables,
        incidence=A,
        demand_matrix=D,
        demands=np.asarray(game.demands, dtype=np.float64),
        objective_terms=terms,
    )
