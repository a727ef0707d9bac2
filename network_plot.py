# network_plot.py
# Draw a routing game, optionally with a solved flow on top.

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Tuple

import numpy as np
import networkx as nx

from cost_polynomials import evaluate_edgewise
from flow_analysis import FlowResult
from routing_game import RoutingGame

COMMODITY_COLORS = ["cornflowerblue", "crimson", "olivedrab", "gold"]


def _edge_curvatures(edges: List[Tuple[int, int]]) -> List[float]:
    """arc3 'rad' per edge so parallel (and antiparallel) edges don't overlap."""
    groups: Dict[Tuple[int, int], List[int]] = {}
    for j, (u, v) in enumerate(edges):
        groups.setdefault((min(u, v), max(u, v)), []).append(j)
    rad = [0.0] * len(edges)
    for members in groups.values():
        m = len(members)
        if m == 1:
            continue
        for rank, j in enumerate(members):
            r = 0.3 * (rank - (m - 1) / 2.0)
            # antiparallel edges run the other way, so flip to keep the bend
            u, v = edges[j]
            rad[j] = r if u < v else -r
    return rad


def _curve_midpoint(p0: np.ndarray, p1: np.ndarray, rad: float) -> np.ndarray:
    d = p1 - p0
    return 0.5 * (p0 + p1) + 0.5 * rad * np.array([d[1], -d[0]])


def show_network(
    game: RoutingGame,
    node_coords: Mapping[int, Tuple[float, float]],
    flow: Optional[FlowResult] = None,
    *,
    title: Optional[str] = None,
    width_scale: float = 10.0,
    show: bool = True,
    save_path: Optional[str] = None,
    dpi: int = 150,
) -> Tuple[Any, Any]:
    """Plot the network with demand labels, and the flow if one is given.

    With a flow, every path is overlaid in its commodity's colour with width
    proportional to its flow, and each edge is annotated with marginal cost
    (MC), total cost (SC) and flow.
    """
    import matplotlib.pyplot as plt

    missing = [n for n in range(1, game.n_nodes + 1) if n not in node_coords]
    if missing:
        raise KeyError(f"node_coords is missing nodes: {missing}")
    pos = {n: np.asarray(node_coords[n], dtype=np.float64) for n in range(1, game.n_nodes + 1)}

    edges = list(game.edges)
    rad = _edge_curvatures(edges)

    fig, ax = plt.subplots(figsize=(8, 6))

    for j, (u, v) in enumerate(edges):
        ax.annotate(
            "", xy=pos[v], xytext=pos[u],
            arrowprops=dict(arrowstyle="-|>", color="gray", lw=2, mutation_scale=18,
                            shrinkA=12, shrinkB=12, connectionstyle=f"arc3,rad={rad[j]}"),
            zorder=1,
        )

    if flow is not None:
        for c, paths in enumerate(game.paths):
            color = COMMODITY_COLORS[c % len(COMMODITY_COLORS)]
            for p, path in enumerate(paths):
                lw = width_scale * float(flow.path_flows[c][p])
                if lw <= 1e-3:
                    continue
                for e in path:
                    u, v = edges[e]
                    ax.annotate(
                        "", xy=pos[v], xytext=pos[u],
                        arrowprops=dict(arrowstyle="-", color=color, lw=lw, alpha=0.5,
                                        shrinkA=0, shrinkB=0,
                                        connectionstyle=f"arc3,rad={rad[e]}"),
                        zorder=2,
                    )

        mc = evaluate_edgewise(game.marginal_costs, flow.edge_flows)
        sc = evaluate_edgewise(game.total_costs, flow.edge_flows)
        for j, (u, v) in enumerate(edges):
            x, y = _curve_midpoint(pos[u], pos[v], rad[j])
            ax.text(x, y, f"MC: {mc[j]:.4f}\nSC: {sc[j]:.4f}\nFlow: {flow.edge_flows[j]:.4f}",
                    fontsize=7, ha="left", va="center", zorder=4)

    for c, ((o, d), q) in enumerate(zip(game.od_pairs, game.demands)):
        color = COMMODITY_COLORS[c % len(COMMODITY_COLORS)]
        ax.text(pos[o][0] - 0.05, pos[o][1] + 0.05, f"(-{q:g})", color=color, fontsize=9, ha="center")
        ax.text(pos[d][0] - 0.05, pos[d][1] + 0.05, f"({q:g})", color=color, fontsize=9, ha="center")

    G = game.to_networkx()
    nx_pos = {n: tuple(p) for n, p in pos.items()}
    nx.draw_networkx_nodes(G, nx_pos, node_color="black", node_size=400, ax=ax)
    nx.draw_networkx_labels(G, nx_pos, font_color="white", font_size=9, ax=ax)

    if title is not None:
        ax.set_title(title, fontsize=14)
    ax.axis("off")

    if save_path:
        fig.savefig(save_path, dpi=int(dpi), bbox_inches="tight")
    if show:
        plt.show()

    return fig, ax
