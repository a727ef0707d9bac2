# routing_errors.py
# Exception taxonomy for routing-game construction, solving and reporting.

from __future__ import annotations

from typing import Any, Optional


class RoutingGameError(Exception):
    """Base class for every error raised by the routing-game modules."""


class ConstructionError(RoutingGameError, ValueError):
    """Malformed game input (length mismatch, bad node reference, bad cost)."""


class InfeasibleCommodityError(ConstructionError):
    """A commodity has no path between its origin and destination."""

    def __init__(self, commodity: int, origin: Any, destination: Any):
        self.commodity = commodity
        self.origin = origin
        self.destination = destination
        super().__init__(
            f"Commodity {commodity} has no path from node {origin} to node {destination}."
        )


class SolverFailure(RoutingGameError, RuntimeError):
    """The numerical solver did not return an optimal point.

    Carries the solver's own status code and message so the caller can decide
    what to change before solving again.
    """

    def __init__(self, message: str, status: Optional[int] = None, objective_kind: Any = None):
        self.status = status
        self.message = message
        self.objective_kind = objective_kind
        kind = f" [{getattr(objective_kind, 'value', objective_kind)}]" if objective_kind is not None else ""
        code = f" (status={status})" if status is not None else ""
        super().__init__(f"Solver failed{kind}{code}: {message}")


class DegenerateGameError(RoutingGameError, ArithmeticError):
    """Price of anarchy is undefined: zero optimal cost with nonzero equilibrium cost."""
