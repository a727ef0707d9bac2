"""
Solve routing games for their social optimum and Wardrop equilibrium and report
the price of anarchy:
  - Pigou (linear and nonlinear)
  - Braess, without and with the zero-cost shortcut
  - a two-commodity network
  - optionally, a network loaded from link/OD CSV files

You can safely edit the SETTINGS section only.
"""

from __future__ import annotations

import os
from datetime import datetime
from typing import Dict, Optional, Tuple

import convex_solver as cs
import example_networks as ex
from flow_analysis import (
    RoutingAnalysis,
    collect_flow_tables,
    flow_to_path_df,
    is_wardrop_equilibrium,
    save_analysis_bundle,
    solve_routing_game,
)
from network_io import load_game_from_csv
from routing_game import RoutingGame


# ==========================
# SETTINGS (edit here only)
# ==========================
# Set both to run a CSV network too (columns A, B, a0..aN and O, D, Ton).
NET_CSV: Optional[str] = None
OD_CSV: Optional[str] = None

# Where tables and result bundles go; None disables writing.
OUT_BASE_DIR: Optional[str] = None

SHOW_PLOTS = False

CONFIG = cs.SolverConfig(
    max_iter=500,     # SLSQP iterations per solve
    tol=1e-10,        # SLSQP ftol on the normalized objective
    flow_tol=1e-6,    # "used path" share of demand; allowed relative demand residual
    gap_tol=1e-3,     # allowed path-cost gap relative to the largest path cost
)


def report(name: str, analysis: RoutingAnalysis) -> None:
    game = analysis.game
    print(f"=== {name} ===")
    print(f"  Social optimum total cost : {analysis.optimum_cost:.6f}")
    print(f"  Equilibrium total cost    : {analysis.equilibrium_cost:.6f}")
    print(f"  Price of anarchy          : {analysis.price_of_anarchy:.6f}")
    print(f"  Equilibrium check         : {is_wardrop_equilibrium(game, analysis.equilibrium, tol=1e-4)}")
    df = flow_to_path_df(game, analysis.equilibrium)
    df["flow"] = df["flow"].where(df["flow"] > CONFIG.flow_tol, 0.0)
    print(df[["commodity", "path_nodes", "flow", "path_cost"]].to_string(index=False))
    print()


def main() -> None:
    games: Dict[str, Tuple[RoutingGame, Optional[dict]]] = {
        "Pigou": (ex.pigou(), ex.PIGOU_COORDS),
        "Pigou_x^4": (ex.nonlinear_pigou(p=4), ex.PIGOU_COORDS),
        "Braess_no_shortcut": (ex.braess(with_shortcut=False), ex.BRAESS_COORDS),
        "Braess": (ex.braess(with_shortcut=True), ex.BRAESS_COORDS),
        "Two_commodity": (ex.two_commodity(), ex.TWO_COMMODITY_COORDS),
    }
    if NET_CSV and OD_CSV:
        games["CSV_network"] = (load_game_from_csv(NET_CSV, OD_CSV), None)

    out_root = None
    if OUT_BASE_DIR:
        ts = datetime.now().strftime("%Y%m%d_%H%M%S")
        out_root = os.path.join(OUT_BASE_DIR, f"routing_games_{ts}")
        os.makedirs(out_root, exist_ok=True)

    for name, (game, coords) in games.items():
        analysis = solve_routing_game(game, config=CONFIG)
        report(name, analysis)

        if out_root is not None:
            model_dir = os.path.join(out_root, name)
            save_analysis_bundle(analysis, out_dir=model_dir, base_name="analysis", compress=True)
            tables = collect_flow_tables(game, optimum=analysis.optimum, equilibrium=analysis.equilibrium)
            tables["edge_table"].to_csv(os.path.join(model_dir, "edge_table.csv"), index=False)
            tables["path_table"].to_csv(os.path.join(model_dir, "path_table.csv"), index=False)

        if SHOW_PLOTS and coords is not None:
            from network_plot import show_network
            show_network(game, coords, analysis.optimum, title=f"{name}: social optimum")
            show_network(game, coords, analysis.equilibrium, title=f"{name}: equilibrium")

    if out_root is not None:
        print(f"Done. Results written to: {out_root}")


if __name__ == "__main__":
    main()
