# flow_analysis.py
# Interpret solver output as path/edge flows, and compare the social optimum
# with the Wardrop equilibrium (price of anarchy, path-cost audit, tidy exports).

from __future__ import annotations

import gzip
import json
import os
import pickle
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np
import pandas as pd

from convex_solver import DEFAULT_CONFIG, SolverConfig, SolverResult, solve_program
from cost_polynomials import evaluate_edgewise
from problem_formulation import ObjectiveKind, coerce_objective_kind, formulate
from routing_errors import DegenerateGameError, SolverFailure
from routing_game import RoutingGame


# =============================================================================
# Numeric tolerances
# =============================================================================
# Solver round-off below zero that is clipped rather than rejected.
NEGATIVE_FLOW_TOL: float = 1e-7

MODEL_LABELS = {ObjectiveKind.SOCIAL_OPTIMUM: "SO", ObjectiveKind.EQUILIBRIUM: "UE"}


@dataclass(frozen=True, eq=False)
class FlowResult:
    """Solved flow for one program.

    path_flows[c][p] is the flow of commodity c on its p-th path; edge_flows[e]
    is the sum of path flows over every path that uses edge e.
    """
    objective_kind: ObjectiveKind
    path_flows: Tuple[np.ndarray, ...]
    edge_flows: np.ndarray
    objective_value: float


def interpret(
    game: RoutingGame,
    objective_kind: Union[ObjectiveKind, str],
    solver_result: SolverResult,
) -> FlowResult:
    """Turn raw solver output into a FlowResult.

    Edge flows are recomputed from the path flows with the same incidence matrix
    used at formulation time. A result the solver did not mark as successful,
    of the wrong length, or with materially negative entries raises SolverFailure.
    """
    kind = coerce_objective_kind(objective_kind)
    if not solver_result.success:
        raise SolverFailure(solver_result.message, status=solver_result.status, objective_kind=kind)
    if solver_result.objective_kind is not None and solver_result.objective_kind is not kind:
        raise ValueError(
            f"Solver result is for {solver_result.objective_kind.value}, not {kind.value}."
        )

    program = formulate(game, kind)
    x = np.asarray(solver_result.x, dtype=np.float64).reshape(-1)
    if x.shape[0] != program.n_variables:
        raise SolverFailure(
            f"expected {program.n_variables} path-flow values, got {x.shape[0]}",
            status=solver_result.status,
            objective_kind=kind,
        )
    if not np.all(np.isfinite(x)) or np.min(x) < -NEGATIVE_FLOW_TOL:
        raise SolverFailure(
            f"path flows are not finite and nonnegative (min={np.min(x):.3g})",
            status=solver_result.status,
            objective_kind=kind,
        )
    x = np.maximum(x, 0.0)

    path_flows: List[np.ndarray] = []
    start = 0
    for paths in game.paths:
        path_flows.append(x[start:start + len(paths)].copy())
        start += len(paths)

    return FlowResult(
        objective_kind=kind,
        path_flows=tuple(path_flows),
        edge_flows=program.edge_flows(x),
        objective_value=program.objective_value(x),
    )


# =============================================================================
# Costs and price of anarchy
# =============================================================================

def total_cost(game: RoutingGame, flow: FlowResult) -> float:
    """sum_e x_e * c_e(x_e) at the flow's edge values."""
    return float(np.sum(evaluate_edgewise(game.total_costs, flow.edge_flows)))


def potential_value(game: RoutingGame, flow: FlowResult) -> float:
    """Beckmann potential sum_e int_0^{x_e} c_e(t) dt."""
    return float(np.sum(evaluate_edgewise(game.potentials, flow.edge_flows)))


def price_of_anarchy(game: RoutingGame, equilibrium_flow: FlowResult, optimum_flow: FlowResult) -> float:
    """Equilibrium total cost / optimal total cost.

    Returns 1.0 when both are zero; raises DegenerateGameError when only the
    optimal cost is zero.
    """
    eq_cost = total_cost(game, equilibrium_flow)
    opt_cost = total_cost(game, optimum_flow)
    if opt_cost == 0.0:
        if eq_cost == 0.0:
            return 1.0
        raise DegenerateGameError(
            f"Optimal total cost is zero but equilibrium total cost is {eq_cost:.6g}; "
            "price of anarchy is undefined."
        )
    return eq_cost / opt_cost


# =============================================================================
# Path-cost audit
# =============================================================================

def path_costs(
    game: RoutingGame,
    flow: FlowResult,
    objective_kind: Union[ObjectiveKind, str] = ObjectiveKind.EQUILIBRIUM,
) -> List[List[float]]:
    """Per commodity, per path: sum of edge costs at the flow's edge values.

    EQUILIBRIUM sums marginal costs c_e (what a traveler pays). SOCIAL_OPTIMUM
    sums marginal social costs c_e + x c_e' (what an extra unit costs the
    system), which is what the optimum equalizes across used paths.
    """
    kind = coerce_objective_kind(objective_kind)
    polys = game.marginal_costs if kind is ObjectiveKind.EQUILIBRIUM else game.marginal_social_costs
    edge_costs = evaluate_edgewise(polys, flow.edge_flows)
    return [
        [float(sum(edge_costs[e] for e in path)) for path in paths]
        for paths in game.paths
    ]


def equilibrium_gaps(
    game: RoutingGame,
    flow: FlowResult,
    tol: float = DEFAULT_CONFIG.flow_tol,
    objective_kind: Union[ObjectiveKind, str] = ObjectiveKind.EQUILIBRIUM,
) -> List[float]:
    """Per commodity: max cost over used paths minus min cost over all paths.

    A path is used when its flow exceeds `tol`. A gap near zero means every used
    path is as cheap as any path of that commodity. Commodities with no used
    path have gap 0.
    """
    costs = path_costs(game, flow, objective_kind)
    gaps: List[float] = []
    for c, pc in enumerate(costs):
        pc = np.asarray(pc, dtype=np.float64)
        used = flow.path_flows[c] > float(tol)
        if not np.any(used):
            gaps.append(0.0)
            continue
        gaps.append(float(np.max(pc[used]) - np.min(pc)))
    return gaps


def is_wardrop_equilibrium(
    game: RoutingGame,
    flow: FlowResult,
    tol: float = DEFAULT_CONFIG.flow_tol,
    objective_kind: Union[ObjectiveKind, str] = ObjectiveKind.EQUILIBRIUM,
) -> bool:
    return all(g <= float(tol) for g in equilibrium_gaps(game, flow, tol=tol, objective_kind=objective_kind))


# =============================================================================
# End-to-end: optimum, equilibrium, price of anarchy
# =============================================================================

@dataclass(frozen=True, eq=False)
class RoutingAnalysis:
    game: RoutingGame
    optimum: FlowResult
    equilibrium: FlowResult
    optimum_cost: float
    equilibrium_cost: float
    price_of_anarchy: float
    equilibrium_path_costs: List[List[float]]


def solve_flow(
    game: RoutingGame,
    objective_kind: Union[ObjectiveKind, str],
    config: SolverConfig = DEFAULT_CONFIG,
) -> FlowResult:
    """formulate -> solve -> interpret for one objective."""
    kind = coerce_objective_kind(objective_kind)
    program = formulate(game, kind)
    result = solve_program(program, config=config)
    return interpret(game, kind, result)


def solve_routing_game(game: RoutingGame, config: SolverConfig = DEFAULT_CONFIG) -> RoutingAnalysis:
    """Compute the socially optimal flow and the equilibrium flow of `game`.

    The two programs share a feasible region and differ only in objective
    (total cost vs. Beckmann potential). SolverFailure from either solve
    propagates; no partial analysis is returned.
    """
    optimum = solve_flow(game, ObjectiveKind.SOCIAL_OPTIMUM, config=config)
    equilibrium = solve_flow(game, ObjectiveKind.EQUILIBRIUM, config=config)
    return RoutingAnalysis(
        game=game,
        optimum=optimum,
        equilibrium=equilibrium,
        optimum_cost=total_cost(game, optimum),
        equilibrium_cost=total_cost(game, equilibrium),
        price_of_anarchy=price_of_anarchy(game, equilibrium, optimum),
        equilibrium_path_costs=path_costs(game, equilibrium),
    )


# =============================================================================
# Tidy exports (model-tagged edge/path tables)
# =============================================================================

def flow_to_edge_df(game: RoutingGame, flow: FlowResult, model_name: Optional[str] = None) -> pd.DataFrame:
    """Flow -> per-edge tidy DataFrame."""
    x = flow.edge_flows
    df = pd.DataFrame({
        "edge": list(range(game.n_edges)),
        "u": [u for u, _ in game.edges],
        "v": [v for _, v in game.edges],
        "flow": x,
        "marginal_cost": evaluate_edgewise(game.marginal_costs, x),
        "total_cost": evaluate_edgewise(game.total_costs, x),
    })
    df["model"] = model_name if model_name is not None else MODEL_LABELS[flow.objective_kind]
    return df[["model", "edge", "u", "v", "flow", "marginal_cost", "total_cost"]]


def flow_to_path_df(game: RoutingGame, flow: FlowResult, model_name: Optional[str] = None) -> pd.DataFrame:
    """Flow -> per-(commodity, path) tidy DataFrame, with equilibrium path costs."""
    costs = path_costs(game, flow)
    rows: List[Dict[str, Any]] = []
    for c, paths in enumerate(game.paths):
        o, d = game.od_pairs[c]
        for p in range(len(paths)):
            rows.append({
                "commodity": c,
                "O": o,
                "D": d,
                "path_id": p,
                "path_nodes": game.describe_path(c, p),
                "flow": float(flow.path_flows[c][p]),
                "path_cost": costs[c][p],
            })
    df = pd.DataFrame(rows)
    df["model"] = model_name if model_name is not None else MODEL_LABELS[flow.objective_kind]
    return df[["model", "commodity", "O", "D", "path_id", "path_nodes", "flow", "path_cost"]]


def collect_flow_tables(
    game: RoutingGame,
    optimum: Optional[FlowResult] = None,
    equilibrium: Optional[FlowResult] = None,
) -> Dict[str, pd.DataFrame]:
    """Combine SO/UE into concatenated edge/path tables."""
    edge_frames = []
    path_frames = []
    for flow in (optimum, equilibrium):
        if flow is None:
            continue
        edge_frames.append(flow_to_edge_df(game, flow))
        path_frames.append(flow_to_path_df(game, flow))
    return {
        "edge_table": pd.concat(edge_frames, ignore_index=True) if edge_frames else pd.DataFrame(),
        "path_table": pd.concat(path_frames, ignore_index=True) if path_frames else pd.DataFrame(),
    }


# ----------------------------
# JSON helper
# ----------------------------
def _json_fallback(o: Any):
    """Fallback serializer for json.dump."""
    if isinstance(o, (np.integer, np.floating)):
        return o.item()
    if isinstance(o, np.ndarray):
        return o.tolist()
    if isinstance(o, (set, tuple)):
        return list(o)
    return str(o)


def analysis_summary(analysis: RoutingAnalysis) -> Dict[str, Any]:
    """Small, JSON-ready summary of an analysis."""
    game = analysis.game
    return {
        "n_nodes": game.n_nodes,
        "n_edges": game.n_edges,
        "commodities": [
            {"O": o, "D": d, "demand": q, "n_paths": len(paths)}
            for (o, d), q, paths in zip(game.od_pairs, game.demands, game.paths)
        ],
        "optimum_cost": analysis.optimum_cost,
        "equilibrium_cost": analysis.equilibrium_cost,
        "price_of_anarchy": analysis.price_of_anarchy,
        "optimum_edge_flows": analysis.optimum.edge_flows,
        "equilibrium_edge_flows": analysis.equilibrium.edge_flows,
        "equilibrium_path_costs": analysis.equilibrium_path_costs,
    }


def save_analysis_bundle(
    analysis: RoutingAnalysis,
    out_dir: str,
    base_name: str = "analysis",
    compress: bool = True,
) -> Dict[str, str]:
    """Save a full analysis plus a light JSON summary.

    Writes:
      - {base_name}.pkl or {base_name}.pkl.gz  (authoritative, everything)
      - {base_name}_summary.json              (small, human-readable)
    Returns a dict of written file paths.
    """
    os.makedirs(out_dir, exist_ok=True)
    written: Dict[str, str] = {}

    summary_path = os.path.join(out_dir, f"{base_name}_summary.json")
    with open(summary_path, "w", encoding="utf-8") as f:
        json.dump(analysis_summary(analysis), f, indent=2, default=_json_fallback)
    written["summary_json"] = summary_path

    pkl_path = os.path.join(out_dir, f"{base_name}.pkl" + (".gz" if compress else ""))
    if compress:
        with gzip.open(pkl_path, "wb") as f:
            pickle.dump(analysis, f, protocol=pickle.HIGHEST_PROTOCOL)
    else:
        with open(pkl_path, "wb") as f:
            pickle.dump(analysis, f, protocol=pickle.HIGHEST_PROTOCOL)
    written["analysis_pickle"] = pkl_path
    return written
