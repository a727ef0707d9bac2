"""Tests for the convex-program formulation."""

from __future__ import annotations

import numpy as np
import pytest

from problem_formulation import (
    ObjectiveKind,
    ObjectiveTerm,
    coerce_objective_kind,
    edge_path_incidence,
    formulate,
)
from routing_game import RoutingGame, build_routing_game


class TestObjectiveKind:
    def test_accepts_strings(self) -> None:
        assert coerce_objective_kind("equilibrium") is ObjectiveKind.EQUILIBRIUM
        assert coerce_objective_kind(ObjectiveKind.SOCIAL_OPTIMUM) is ObjectiveKind.SOCIAL_OPTIMUM

    def test_rejects_unknown(self) -> None:
        with pytest.raises(ValueError, match="objective_kind must be one of"):
            coerce_objective_kind("nash")


class TestIncidence:
    def test_braess(self, braess_game: RoutingGame) -> None:
        variables, A = edge_path_incidence(braess_game)
        assert variables == ((0, 0), (0, 1), (0, 2))
        expected = np.array([
            [1, 1, 0],  # 1->2
            [0, 0, 1],  # 1->3
            [1, 0, 0],  # 2->4
            [0, 1, 1],  # 3->4
            [0, 1, 0],  # 2->3
        ], dtype=float)
        np.testing.assert_array_equal(A, expected)

    def test_two_commodity_demand_rows(self, two_commodity_game: RoutingGame) -> None:
        program = formulate(two_commodity_game, ObjectiveKind.SOCIAL_OPTIMUM)
        assert program.n_variables == 5
        np.testing.assert_array_equal(program.demand_matrix.sum(axis=1), [3, 2])
        np.testing.assert_array_equal(program.demands, [1.0, 1.0])
        np.testing.assert_array_equal(program.incidence.sum(axis=0), [2, 3, 1, 1, 2])


class TestObjective:
    def test_social_optimum_terms(self, pigou_game: RoutingGame) -> None:
        program = formulate(pigou_game, ObjectiveKind.SOCIAL_OPTIMUM)
        assert program.objective_terms == (
            ObjectiveTerm(edge=0, power=1, coefficient=1.0),
            ObjectiveTerm(edge=1, power=2, coefficient=1.0),
        )
        assert program.objective_expression() == "1*y[0] + 1*y[1]^2"

    def test_equilibrium_terms(self, pigou_game: RoutingGame) -> None:
        program = formulate(pigou_game, "equilibrium")
        assert program.objective_kind is ObjectiveKind.EQUILIBRIUM
        assert program.objective_expression() == "1*y[0] + 0.5*y[1]^2"

    def test_values(self, pigou_game: RoutingGame) -> None:
        so = formulate(pigou_game, ObjectiveKind.SOCIAL_OPTIMUM)
        ue = formulate(pigou_game, ObjectiveKind.EQUILIBRIUM)
        assert so.objective_value(np.array([0.5, 0.5])) == pytest.approx(0.75)
        assert ue.objective_value(np.array([0.0, 1.0])) == pytest.approx(0.5)

    @pytest.mark.parametrize("kind", list(ObjectiveKind))
    def test_gradient_matches_finite_differences(self, two_commodity_game: RoutingGame, kind) -> None:
        program = formulate(two_commodity_game, kind)
        x = np.array([0.2, 0.5, 0.3, 0.6, 0.4])
        h = 1e-6
        numeric = np.array([
            (program.objective_value(x + h * e) - program.objective_value(x - h * e)) / (2 * h)
            for e in np.eye(program.n_variables)
        ])
        np.testing.assert_allclose(program.objective_gradient(x), numeric, rtol=1e-6, atol=1e-8)

    def test_gradient_at_zero_flow(self, pigou_game: RoutingGame) -> None:
        program = formulate(pigou_game, ObjectiveKind.SOCIAL_OPTIMUM)
        np.testing.assert_allclose(program.objective_gradient(np.zeros(2)), [1.0, 0.0])

    def test_zero_cost_edge_contributes_no_terms(self, braess_game: RoutingGame) -> None:
        program = formulate(braess_game, ObjectiveKind.EQUILIBRIUM)
        assert all(t.edge != 4 for t in program.objective_terms)


class TestConstraints:
    def test_initial_point_is_feasible(self, two_commodity_game: RoutingGame) -> None:
        program = formulate(two_commodity_game, ObjectiveKind.EQUILIBRIUM)
        x0 = program.initial_point()
        np.testing.assert_allclose(program.demand_residual(x0), 0.0, atol=1e-12)
        assert np.all(program.edge_nonnegativity(x0) >= 0)
        np.testing.assert_allclose(x0[:3], 1.0 / 3)

    def test_edge_flows_are_path_sums(self, braess_game: RoutingGame) -> None:
        program = formulate(braess_game, ObjectiveKind.SOCIAL_OPTIMUM)
        np.testing.assert_allclose(program.edge_flows([0.5, 0.25, 0.25]), [0.75, 0.25, 0.5, 0.5, 0.25])

    def test_both_programs_share_feasible_region(self, braess_game: RoutingGame) -> None:
        so = formulate(braess_game, ObjectiveKind.SOCIAL_OPTIMUM)
        ue = formulate(braess_game, ObjectiveKind.EQUILIBRIUM)
        np.testing.assert_array_equal(so.incidence, ue.incidence)
        np.testing.assert_array_equal(so.demand_matrix, ue.demand_matrix)
        assert so.variables == ue.variables

    def test_formulate_is_pure(self, braess_game: RoutingGame) -> None:
        before = (braess_game.edges, braess_game.paths, braess_game.demands)
        first = formulate(braess_game, ObjectiveKind.EQUILIBRIUM)
        second = formulate(braess_game, ObjectiveKind.EQUILIBRIUM)
        assert first is not second
        assert first.objective_terms == second.objective_terms
        assert (braess_game.edges, braess_game.paths, braess_game.demands) == before

    def test_shared_incidence_keeps_shared_edges_only(self, braess_game: RoutingGame) -> None:
        program = formulate(braess_game, ObjectiveKind.EQUILIBRIUM)
        # edges 0 (1->2) and 3 (3->4) each carry two of the three paths
        np.testing.assert_array_equal(program.shared_incidence, program.incidence[[0, 3]])
        np.testing.assert_allclose(program.edge_nonnegativity([0.5, 0.25, 0.25]), [0.75, 0.5])

    def test_parallel_edges_share_nothing(self, pigou_game: RoutingGame) -> None:
        program = formulate(pigou_game, ObjectiveKind.EQUILIBRIUM)
        assert program.shared_incidence.shape == (0, 2)
        assert program.edge_nonnegativity([0.5, 0.5]).shape == (0,)


class TestStationarity:
    def test_gradient_is_path_cost(self, braess_game: RoutingGame) -> None:
        program = formulate(braess_game, ObjectiveKind.EQUILIBRIUM)
        np.testing.assert_allclose(program.objective_gradient([0.0, 1.0, 0.0]), [2.0, 2.0, 2.0])

    def test_equilibrium_gaps(self, pigou_game: RoutingGame) -> None:
        program = formulate(pigou_game, ObjectiveKind.EQUILIBRIUM)
        np.testing.assert_allclose(program.stationarity_gaps([0.5, 0.5], used_tol=1e-6), [0.5])
        np.testing.assert_allclose(program.stationarity_gaps([0.0, 1.0], used_tol=1e-6), [0.0])

    def test_optimum_gaps_use_marginal_social_cost(self, pigou_game: RoutingGame) -> None:
        program = formulate(pigou_game, ObjectiveKind.SOCIAL_OPTIMUM)
        np.testing.assert_allclose(program.stationarity_gaps([0.5, 0.5], used_tol=1e-6), [0.0], atol=1e-12)
        np.testing.assert_allclose(program.stationarity_gaps([0.0, 1.0], used_tol=1e-6), [1.0])

    def test_used_threshold_is_relative_to_demand(self) -> None:
        game = build_routing_game([(1, 2), (1, 2)], [[2000.0], [0.0, 1.0]], [(1, 2)], [1000.0])
        program = formulate(game, ObjectiveKind.EQUILIBRIUM)
        # 1e-4 units on the 2000-cost path is below 1e-6 of the demand, so unused
        x = np.array([1e-4, 1000.0 - 1e-4])
        assert program.stationarity_gaps(x, used_tol=1e-6)[0] == pytest.approx(0.0)
