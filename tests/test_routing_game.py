"""Tests for RoutingGame construction and validation."""

from __future__ import annotations

import dataclasses

import networkx as nx
import numpy as np
import pytest

import routing_game
from routing_errors import ConstructionError, InfeasibleCommodityError, RoutingGameError
from routing_game import RoutingGame, build_routing_game


class TestBuild:
    def test_pigou(self, pigou_game: RoutingGame) -> None:
        assert pigou_game.edges == ((1, 2), (1, 2))
        assert pigou_game.od_pairs == ((1, 2),)
        assert pigou_game.demands == (1.0,)
        assert pigou_game.paths == (((0,), (1,)),)
        np.testing.assert_allclose(pigou_game.total_costs[0].coef, [0.0, 1.0])
        np.testing.assert_allclose(pigou_game.total_costs[1].coef, [0.0, 0.0, 1.0])

    def test_counts(self, braess_game: RoutingGame) -> None:
        assert braess_game.n_nodes == 4
        assert braess_game.n_edges == 5
        assert braess_game.n_commodities == 1
        assert braess_game.n_path_variables == 3

    def test_two_commodity_paths(self, two_commodity_game: RoutingGame) -> None:
        assert two_commodity_game.paths == (
            ((0, 2), (0, 3, 4), (1,)),
            ((2,), (3, 4)),
        )

    def test_paths_start_and_end_at_od(self, two_commodity_game: RoutingGame) -> None:
        g = two_commodity_game
        for (o, d), paths in zip(g.od_pairs, g.paths):
            for path in paths:
                assert g.edges[path[0]][0] == o
                assert g.edges[path[-1]][1] == d

    def test_potentials_and_social_costs(self, pigou_game: RoutingGame) -> None:
        np.testing.assert_allclose(pigou_game.potentials[1].coef, [0.0, 0.0, 0.5])
        np.testing.assert_allclose(pigou_game.marginal_social_costs[1].coef, [0.0, 2.0])

    def test_origin_equals_destination(self) -> None:
        g = build_routing_game([(1, 2)], [[1.0]], [(1, 1)], [2.0])
        assert g.paths == (((),),)

    def test_numpy_node_ids_accepted(self) -> None:
        g = build_routing_game([(np.int64(1), np.int64(2))], [[1.0]], [(1, 2)], [1])
        assert g.edges == ((1, 2),)
        assert isinstance(g.demands[0], float)

    def test_frozen(self, pigou_game: RoutingGame) -> None:
        with pytest.raises(dataclasses.FrozenInstanceError):
            pigou_game.demands = (2.0,)  # type: ignore[misc]

    def test_describe_path(self, braess_game: RoutingGame) -> None:
        assert [braess_game.describe_path(0, p) for p in range(3)] == ["1->2->4", "1->2->3->4", "1->3->4"]

    def test_to_networkx_keeps_parallel_edges(self, pigou_game: RoutingGame) -> None:
        G = pigou_game.to_networkx()
        assert isinstance(G, nx.MultiDiGraph)
        assert G.number_of_edges() == 2
        assert G.edges[1, 2, 1]["cost"] == [0.0, 1.0]

    def test_large_path_set_warns(self, monkeypatch) -> None:
        monkeypatch.setattr(routing_game, "MAX_PATHS_WARNING", 1)
        with pytest.warns(UserWarning, match="has 2 paths"):
            build_routing_game([(1, 2), (1, 2)], [[1.0], [1.0]], [(1, 2)], [1.0])


class TestValidation:
    def test_cost_length_mismatch(self) -> None:
        with pytest.raises(ConstructionError, match="one marginal cost per edge"):
            build_routing_game([(1, 2), (1, 2)], [[1.0]], [(1, 2)], [1.0])

    def test_demand_length_mismatch(self) -> None:
        with pytest.raises(ConstructionError, match="one demand per commodity"):
            build_routing_game([(1, 2)], [[1.0]], [(1, 2)], [1.0, 2.0])

    def test_no_commodities(self) -> None:
        with pytest.raises(ConstructionError, match="At least one commodity"):
            build_routing_game([(1, 2)], [[1.0]], [], [])

    def test_no_edges(self) -> None:
        with pytest.raises(ConstructionError, match="non-empty"):
            build_routing_game([], [], [(1, 2)], [1.0])

    @pytest.mark.parametrize("edge", [(0, 1), (1, -2), ("a", 2), (1.5, 2), (True, 2), (1,), 7])
    def test_bad_edge(self, edge) -> None:
        with pytest.raises(ConstructionError, match="Edge 0"):
            build_routing_game([edge], [[1.0]], [(1, 2)], [1.0])

    @pytest.mark.parametrize("od", [(1, 3), (0, 2), (1, "2"), (1,)])
    def test_bad_od_pair(self, od) -> None:
        with pytest.raises(ConstructionError, match="OD pair 0"):
            build_routing_game([(1, 2)], [[1.0]], [od], [1.0])

    @pytest.mark.parametrize("q", [-1.0, float("nan"), float("inf"), "lots"])
    def test_bad_demand(self, q) -> None:
        with pytest.raises(ConstructionError, match="Demand 0"):
            build_routing_game([(1, 2)], [[1.0]], [(1, 2)], [q])

    def test_bad_cost(self) -> None:
        with pytest.raises(ConstructionError):
            build_routing_game([(1, 2)], [[float("nan")]], [(1, 2)], [1.0])

    def test_errors_are_value_errors(self) -> None:
        with pytest.raises(ValueError):
            build_routing_game([(1, 2)], [], [(1, 2)], [1.0])


class TestInfeasibleCommodity:
    def test_disconnected_raises_at_construction(self) -> None:
        with pytest.raises(InfeasibleCommodityError) as info:
            build_routing_game(
                edges=[(1, 2), (3, 4)],
                marginal_costs=[[1.0], [1.0]],
                od_pairs=[(1, 2), (1, 4)],
                demands=[1.0, 1.0],
            )
        err = info.value
        assert (err.commodity, err.origin, err.destination) == (1, 1, 4)
        assert isinstance(err, ConstructionError)
        assert isinstance(err, RoutingGameError)

    def test_wrong_direction(self) -> None:
        with pytest.raises(InfeasibleCommodityError, match="from node 2 to node 1"):
            build_routing_game([(1, 2)], [[1.0]], [(2, 1)], [1.0])

    def test_zero_demand_still_needs_a_path(self) -> None:
        with pytest.raises(InfeasibleCommodityError):
            build_routing_game([(1, 2)], [[1.0]], [(2, 1)], [0.0])
