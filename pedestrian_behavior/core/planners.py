"""Waypoint-planning strategies attached by the state machine.

A planner turns the agent's current destination into a concrete target point
and decides when that destination counts as done.
"""

from typing import Optional, TYPE_CHECKING

import numpy as np

from ..utils import calculate_distance, from_polar
from .waypoints import Waypoint

if TYPE_CHECKING:
    from .agent import Agent


class WaypointPlanner:
    """Interface for destination strategies."""

    def __init__(self, agent: 'Agent'):
        self.agent = agent
        self.destination: Optional[Waypoint] = None

    def set_destination(self, waypoint: Optional[Waypoint]) -> None:
        self.destination = waypoint

    def has_completed_destination(self) -> bool:
        raise NotImplementedError

    def current_waypoint(self) -> Optional[np.ndarray]:
        raise NotImplementedError


class IndividualWaypointPlanner(WaypointPlanner):
    """Head straight for the destination; done once inside its radius."""

    def has_completed_destination(self) -> bool:
        if self.destination is None:
            # nothing assigned yet, ask for one
            return True
        return self.destination.contains(self.agent.position)

    def current_waypoint(self) -> Optional[np.ndarray]:
        if self.destination is None:
            return None
        return self.destination.position


class ShoppingPlanner(WaypointPlanner):
    """Stroll between random spots inside an attraction area.

    Shopping never completes on its own; the state machine ends it when the
    attraction is lost.
    """

    def __init__(self, agent: 'Agent'):
        super().__init__(agent)
        self._spot: Optional[np.ndarray] = None

    def set_destination(self, waypoint: Optional[Waypoint]) -> None:
        super().set_destination(waypoint)
        self._spot = None

    def has_completed_destination(self) -> bool:
        return False

    def current_waypoint(self) -> Optional[np.ndarray]:
        if self.destination is None:
            return None
        if self._spot is None or calculate_distance(self._spot, self.agent.position) < 0.3:
            self._spot = self._random_spot()
        return self._spot

    def _random_spot(self) -> np.ndarray:
        rng = self.agent.rng
        angle = rng.uniform_range(0.0, 2.0 * np.pi)
        # sqrt keeps the samples uniform over the disc
        radius = self.destination.interaction_radius * np.sqrt(rng.uniform())
        return self.destination.position + from_polar(angle, radius)
