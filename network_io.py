# network_io.py
# Build routing games from tabular or graph input.
#
# Link table: columns [A, B, a0, a1, ..., aN], one row per directed edge, with
# marginal cost c(x) = a0 + a1 x + ... + aN x^N (the Sioux-Falls CSV layout).
# OD table: columns [O, D, Ton], one row per origin-destination demand.

from __future__ import annotations

import re
from typing import Any, Dict, List, Mapping, Optional, Tuple

import numpy as np
import pandas as pd
import networkx as nx

from routing_errors import ConstructionError
from routing_game import RoutingGame, build_routing_game

ODPair = Tuple[int, int]

_COEF_COL = re.compile(r"^a(\d+)$")


def _clean_columns(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    df.columns = [str(c).strip() for c in df.columns]
    return df


def _require(df: pd.DataFrame, cols: List[str], what: str) -> None:
    missing = [c for c in cols if c not in df.columns]
    if missing:
        raise ConstructionError(f"{what} is missing required columns: {missing}")


def coefficient_columns(df: pd.DataFrame) -> List[Tuple[int, str]]:
    """(power, column) for every 'a<k>' column, sorted by power."""
    cols = []
    for c in df.columns:
        m = _COEF_COL.match(str(c))
        if m:
            cols.append((int(m.group(1)), c))
    return sorted(cols)


def load_edges_and_costs(net_df: pd.DataFrame) -> Tuple[List[Tuple[int, int]], List[np.ndarray]]:
    """Edge list and per-edge ascending coefficient arrays from a link table."""
    net_df = _clean_columns(net_df)
    _require(net_df, ["A", "B"], "link table")
    coef_cols = coefficient_columns(net_df)
    if not coef_cols:
        raise ConstructionError("link table has no cost coefficient columns (a0, a1, ...).")

    degree = coef_cols[-1][0]
    edges: List[Tuple[int, int]] = []
    costs: List[np.ndarray] = []
    for _, r in net_df.iterrows():
        edges.append((int(r["A"]), int(r["B"])))
        coef = np.zeros(degree + 1, dtype=np.float64)
        for k, col in coef_cols:
            coef[k] = float(r[col])
        costs.append(coef)
    return edges, costs


def load_od_demands(od_df: pd.DataFrame) -> Dict[ODPair, float]:
    """{(O, D): demand}, skipping self-loops and nonpositive demands; repeated pairs add up."""
    od_df = _clean_columns(od_df)
    _require(od_df, ["O", "D", "Ton"], "OD table")
    od_demands: Dict[ODPair, float] = {}
    for _, r in od_df.iterrows():
        o = int(r["O"])
        d = int(r["D"])
        q = float(r["Ton"])
        if o == d:
            continue
        if q <= 0:
            continue
        od_demands[(o, d)] = od_demands.get((o, d), 0.0) + q
    return od_demands


def build_game_from_frames(net_df: pd.DataFrame, od_df: pd.DataFrame) -> RoutingGame:
    edges, costs = load_edges_and_costs(net_df)
    od_demands = load_od_demands(od_df)
    od_pairs = sorted(od_demands.keys())
    return build_routing_game(edges, costs, od_pairs, [od_demands[od] for od in od_pairs])


def load_game_from_csv(net_csv: str, od_csv: str) -> RoutingGame:
    """Read a link CSV and an OD CSV and build the game."""
    return build_game_from_frames(pd.read_csv(net_csv), pd.read_csv(od_csv))


def game_from_networkx(
    G: nx.DiGraph,
    od_demands: Mapping[ODPair, float],
    cost_attr: str = "cost",
) -> RoutingGame:
    """Build a game from a (Multi)DiGraph whose edges carry coefficient lists.

    Edges are indexed in G.edges iteration order. Every edge must have
    `cost_attr` (ascending coefficients).
    """
    if not isinstance(G, nx.DiGraph):
        raise TypeError("G must be a networkx.DiGraph or MultiDiGraph (directed).")

    edges: List[Tuple[int, int]] = []
    costs: List[Any] = []
    for u, v, data in G.edges(data=True):
        if cost_attr not in data:
            raise ConstructionError(f"Edge {(u, v)} is missing cost attribute '{cost_attr}'.")
        edges.append((u, v))
        costs.append(data[cost_attr])

    od_pairs = list(od_demands.keys())
    return build_routing_game(edges, costs, od_pairs, [od_demands[od] for od in od_pairs])


def game_to_frames(game: RoutingGame, degree: Optional[int] = None) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Inverse of build_game_from_frames: (link table, OD table)."""
    if degree is None:
        degree = max(len(c.coef) for c in game.marginal_costs) - 1
    rows = []
    for (u, v), c in zip(game.edges, game.marginal_costs):
        rec: Dict[str, Any] = {"A": u, "B": v}
        coef = c.coef
        for k in range(degree + 1):
            rec[f"a{k}"] = float(coef[k]) if k < len(coef) else 0.0
        rows.append(rec)
    net_df = pd.DataFrame(rows)
    od_df = pd.DataFrame({
        "O": [o for o, _ in game.od_pairs],
        "D": [d for _, d in game.od_pairs],
        "Ton": list(game.demands),
    })
    return net_df, od_df
