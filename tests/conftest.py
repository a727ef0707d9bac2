"""Shared fixtures for routing-game tests."""

from __future__ import annotations

import pytest

import example_networks as ex
from flow_analysis import RoutingAnalysis, solve_routing_game
from routing_game import RoutingGame


@pytest.fixture
def pigou_game() -> RoutingGame:
    return ex.pigou()


@pytest.fixture
def braess_game() -> RoutingGame:
    return ex.braess(with_shortcut=True)


@pytest.fixture
def two_commodity_game() -> RoutingGame:
    return ex.two_commodity()


@pytest.fixture(scope="session")
def pigou_analysis() -> RoutingAnalysis:
    return solve_routing_game(ex.pigou())


@pytest.fixture(scope="session")
def braess_analysis() -> RoutingAnalysis:
    return solve_routing_game(ex.braess(with_shortcut=True))


@pytest.fixture(scope="session")
def two_commodity_analysis() -> RoutingAnalysis:
    return solve_routing_game(ex.two_commodity())
