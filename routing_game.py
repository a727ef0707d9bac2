# routing_game.py
# Immutable data model of a nonatomic routing game, plus its validating constructor.
#
# All structural checks happen here, once. Downstream code (formulation, solving,
# reporting) reads a RoutingGame and never re-validates it.

from __future__ import annotations

import math
import warnings
from dataclasses import dataclass
from typing import Any, List, Sequence, Tuple

import numpy as np
import networkx as nx
from numpy.polynomial import Polynomial

from cost_polynomials import (
    CostLike,
    as_polynomial,
    marginal_social_cost_polynomial,
    potential_polynomial,
    total_cost_polynomial,
)
from routing_errors import ConstructionError, InfeasibleCommodityError
from routing_paths import edge_graph, enumerate_paths, path_nodes

Edge = Tuple[int, int]
ODPair = Tuple[int, int]

# Above this many paths for one commodity the program gets large; warn, don't fail.
MAX_PATHS_WARNING: int = 10_000


@dataclass(frozen=True)
class RoutingGame:
    """Static description of a transportation network and its demand.

    Fields:
      - edges: directed arcs (u, v); an edge is identified by its index
      - marginal_costs: per-edge c_e(x), the cost each unit of flow experiences
      - total_costs: per-edge x * c_e(x)
      - od_pairs: (origin, destination) per commodity
      - demands: traffic volume per commodity
      - paths: per commodity, the eligible paths as tuples of edge indices
    """
    edges: Tuple[Edge, ...]
    marginal_costs: Tuple[Polynomial, ...]
    total_costs: Tuple[Polynomial, ...]
    od_pairs: Tuple[ODPair, ...]
    demands: Tuple[float, ...]
    paths: Tuple[Tuple[Tuple[int, ...], ...], ...]

    @property
    def n_nodes(self) -> int:
        return max(max(u, v) for u, v in self.edges)

    @property
    def n_edges(self) -> int:
        return len(self.edges)

    @property
    def n_commodities(self) -> int:
        return len(self.od_pairs)

    @property
    def n_path_variables(self) -> int:
        return sum(len(p) for p in self.paths)

    @property
    def potentials(self) -> Tuple[Polynomial, ...]:
        return tuple(potential_polynomial(c) for c in self.marginal_costs)

    @property
    def marginal_social_costs(self) -> Tuple[Polynomial, ...]:
        return tuple(marginal_social_cost_polynomial(c) for c in self.marginal_costs)

    def describe_path(self, commodity: int, path: int) -> str:
        """Human-readable node sequence, e.g. '1->3->2'."""
        origin = self.od_pairs[commodity][0]
        nodes = path_nodes(self.edges, self.paths[commodity][path], origin)
        return "->".join(str(n) for n in nodes)

    def to_networkx(self) -> nx.MultiDiGraph:
        """MultiDiGraph view; edge keys are edge indices, so parallel edges survive."""
        G = edge_graph(self.edges)
        G.add_nodes_from(range(1, self.n_nodes + 1))
        for j, (u, v) in enumerate(self.edges):
            G.edges[u, v, j].update(index=j, cost=self.marginal_costs[j].coef.tolist())
        return G


# =============================================================================
# Construction
# =============================================================================

def _is_node_id(x: Any) -> bool:
    return isinstance(x, (int, np.integer)) and not isinstance(x, bool) and x >= 1


def _validate_edges(edges: Sequence[Any]) -> List[Edge]:
    if edges is None or len(edges) == 0:
        raise ConstructionError("edges must be a non-empty sequence of (u, v) pairs.")
    out: List[Edge] = []
    for j, e in enumerate(edges):
        try:
            u, v = e
        except (TypeError, ValueError):
            raise ConstructionError(f"Edge {j} must be a (u, v) pair, got {e!r}.")
        if not (_is_node_id(u) and _is_node_id(v)):
            raise ConstructionError(f"Edge {j} = {e!r}: node ids must be positive integers.")
        out.append((int(u), int(v)))
    return out


def build_routing_game(
    edges: Sequence[Edge],
    marginal_costs: Sequence[CostLike],
    od_pairs: Sequence[ODPair],
    demands: Sequence[float],
) -> RoutingGame:
    """Construct a `RoutingGame` from minimal input.

    Paths for every commodity and the total-cost polynomial of every edge are
    derived here. Raises ConstructionError on malformed input and
    InfeasibleCommodityError when some commodity has no path; no game is
    returned in either case.
    """
    edge_list = _validate_edges(edges)
    n_nodes = max(max(u, v) for u, v in edge_list)

    if len(marginal_costs) != len(edge_list):
        raise ConstructionError(
            f"Need one marginal cost per edge: {len(edge_list)} edges, {len(marginal_costs)} costs."
        )
    if len(od_pairs) != len(demands):
        raise ConstructionError(
            f"Need one demand per commodity: {len(od_pairs)} OD pairs, {len(demands)} demands."
        )
    if len(od_pairs) == 0:
        raise ConstructionError("At least one commodity (OD pair) is required.")

    od_list: List[ODPair] = []
    for i, od in enumerate(od_pairs):
        try:
            o, d = od
        except (TypeError, ValueError):
            raise ConstructionError(f"OD pair {i} must be an (origin, destination) pair, got {od!r}.")
        for node in (o, d):
            if not _is_node_id(node) or node > n_nodes:
                raise ConstructionError(
                    f"OD pair {i} = {od!r} references node {node!r}; valid node ids are 1..{n_nodes}."
                )
        od_list.append((int(o), int(d)))

    demand_list: List[float] = []
    for i, q in enumerate(demands):
        try:
            q = float(q)
        except (TypeError, ValueError):
            raise ConstructionError(f"Demand {i} must be a number, got {q!r}.")
        if not math.isfinite(q) or q < 0:
            raise ConstructionError(f"Demand {i} must be finite and nonnegative, got {q}.")
        demand_list.append(q)

    marginal = tuple(as_polynomial(c) for c in marginal_costs)

    paths = []
    for i, (o, d) in enumerate(od_list):
        found = enumerate_paths(edge_list, o, d)
        if len(found) == 0:
            raise InfeasibleCommodityError(i, o, d)
        if len(found) > MAX_PATHS_WARNING:
            warnings.warn(
                f"Commodity {i} ({o}->{d}) has {len(found)} paths; the convex program will be large."
            )
        paths.append(tuple(tuple(p) for p in found))

    return RoutingGame(
        edges=tuple(edge_list),
        marginal_costs=marginal,
        total_costs=tuple(total_cost_polynomial(c) for c in marginal),
        od_pairs=tuple(od_list),
        demands=tuple(demand_list),
        paths=tuple(paths),
    )
