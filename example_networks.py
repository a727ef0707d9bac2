# example_networks.py
# Small textbook routing games with known optimum/equilibrium, plus node
# coordinates for drawing them.

from __future__ import annotations

from typing import Dict, Tuple

from routing_game import RoutingGame, build_routing_game

Coords = Dict[int, Tuple[float, float]]


def pigou(demand: float = 1.0) -> RoutingGame:
    """Two parallel edges 1->2: constant cost 1, and cost x."""
    return build_routing_game(
        edges=[(1, 2), (1, 2)],
        marginal_costs=[[1.0], [0.0, 1.0]],
        od_pairs=[(1, 2)],
        demands=[demand],
    )


def nonlinear_pigou(p: int = 2, demand: float = 1.0) -> RoutingGame:
    """Pigou with the variable edge costing x^p."""
    if p < 1:
        raise ValueError("p must be a positive integer.")
    return build_routing_game(
        edges=[(1, 2), (1, 2)],
        marginal_costs=[[1.0], [0.0] * p + [1.0]],
        od_pairs=[(1, 2)],
        demands=[demand],
    )


def braess(with_shortcut: bool = True, demand: float = 1.0) -> RoutingGame:
    """Braess network 1->4 via 2 or 3; costs x, 1 (top) and 1, x (bottom).

    With the shortcut, edge 2->3 costs 0 and pulls the equilibrium onto 1->2->3->4.
    """
    edges = [(1, 2), (1, 3), (2, 4), (3, 4)]
    costs = [[0.0, 1.0], [1.0], [1.0], [0.0, 1.0]]
    if with_shortcut:
        edges.append((2, 3))
        costs.append([0.0])
    return build_routing_game(edges, costs, od_pairs=[(1, 4)], demands=[demand])


def two_commodity() -> RoutingGame:
    """Two commodities (1->4 and 2->4) sharing congestible edges 2->4 and 3->4."""
    return build_routing_game(
        edges=[(1, 2), (1, 4), (2, 4), (2, 3), (3, 4)],
        marginal_costs=[[0.5], [1.0, 1.0], [0.0, 1.0], [0.5], [0.0, 1.0]],
        od_pairs=[(1, 4), (2, 4)],
        demands=[1.0, 1.0],
    )


PIGOU_COORDS: Coords = {1: (0.0, 0.0), 2: (1.0, 0.0)}
BRAESS_COORDS: Coords = {1: (0.0, 0.5), 2: (0.5, 1.0), 3: (0.5, 0.0), 4: (1.0, 0.5)}
TWO_COMMODITY_COORDS: Coords = {1: (0.0, 1.0), 2: (0.5, 0.5), 3: (0.5, 0.0), 4: (1.0, 0.5)}
