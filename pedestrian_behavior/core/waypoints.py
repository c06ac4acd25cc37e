"""Waypoints and the per-agent destination cycler."""

import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from itertools import count
from typing import List, Optional, TYPE_CHECKING

import numpy as np

from ..utils import as_vector, calculate_distance

if TYPE_CHECKING:
    from .planners import WaypointPlanner
    from ..utils.clock import RandomSource

logger = logging.getLogger(__name__)

_waypoint_ids = count()


class WaypointType(Enum):
    """What an agent does with a waypoint once it gets there."""
    DEFAULT = auto()      # Plain destination
    QUEUE = auto()        # Join a queue, then wait
    WORK = auto()         # Stand and work for a while
    SHELF = auto()        # Vehicles load material here
    ATTRACTION = auto()   # Pulls groups in to go shopping
    SERVICE = auto()      # Created on the fly for service requests


class WaypointMode(Enum):
    """How the next destination index is chosen."""
    SEQUENTIAL = auto()
    RANDOM = auto()


@dataclass(eq=False)
class Waypoint:
    """A named target region registered with the scene.

    Waypoints compare by identity so that two regions at the same spot stay
    distinct in destination lists.

    Attributes:
        name: Human readable name.
        position: Centre of the region (x, y).
        interaction_radius: Agents closer than this have reached / can use it.
        waypoint_type: Behaviour tag used by proximity lookups.
        static_obstacle_angle: Heading an agent takes while handling material here.
        probability: Chance per roll that an attraction pulls a passer-by in.
        requester_id: Agent a service waypoint was created for, -1 otherwise.
    """
    name: str
    position: np.ndarray
    interaction_radius: float = 1.0
    waypoint_type: WaypointType = WaypointType.DEFAULT
    static_obstacle_angle: float = 0.0
    probability: float = 0.0
    requester_id: int = -1
    waypoint_id: int = field(default_factory=lambda: next(_waypoint_ids))

    def __post_init__(self):
        self.position = as_vector(self.position)

    def contains(self, point: np.ndarray) -> bool:
        """True when ``point`` lies inside the interaction radius."""
        return calculate_distance(self.position, point) < self.interaction_radius


class WaypointCycler:
    """Ordered destination list with sequential or random advancement.

    Completion of the current destination is decided by whichever planner the
    active state attached; without a planner a non-empty list always asks for
    the next destination.
    """

    def __init__(self, rng: 'RandomSource', mode: WaypointMode = WaypointMode.SEQUENTIAL,
                 destinations: Optional[List[Waypoint]] = None):
        self.rng = rng
        self.mode = mode
        self.destinations: List[Waypoint] = list(destinations or [])
        self.destination_index = 0
        self.previous_destination_index = 0
        self.next_destination_index = 0
        self.current_destination: Optional[Waypoint] = None
        self.planner: Optional['WaypointPlanner'] = None

    def update_destination(self) -> Optional[Waypoint]:
        """Advance to the next destination and pick the one after it.

        Returns:
            The new current destination (unchanged when the list is empty)
        """
        if not self.destinations:
            return self.current_destination

        n = len(self.destinations)
        self.previous_destination_index = self.destination_index
        # the list may have shrunk since the index was chosen
        self.destination_index = self.next_destination_index % n
        self.current_destination = self.destinations[self.destination_index]

        if self.mode == WaypointMode.RANDOM:
            self.next_destination_index %= n
            while self.next_destination_index == self.destination_index and n > 1:
                self.next_destination_index = self.rng.index(n)
        else:
            self.next_destination_index = (self.destination_index + 1) % n

        logger.debug(
            f"Destination {self.destination_index} ({self.current_destination.name}), "
            f"next {self.next_destination_index}"
        )
        return self.current_destination

    def need_new_destination(self) -> bool:
        if self.planner is None:
            return bool(self.destinations)
        return self.planner.has_completed_destination()

    def has_completed_destination(self) -> bool:
        if self.planner is None:
            return False
        return self.planner.has_completed_destination()

    def current_waypoint(self) -> Optional[np.ndarray]:
        """Concrete target point from the active planner, if any."""
        if self.planner is None:
            return None
        return self.planner.current_waypoint()

    @property
    def previous_destination(self) -> Optional[Waypoint]:
        if not self.destinations:
            return None
        return self.destinations[self.previous_destination_index % len(self.destinations)]

    def add_destination(self, waypoint: Waypoint) -> bool:
        self.destinations.append(waypoint)
        return True

    def remove_destination(self, waypoint: Waypoint) -> bool:
        """Remove every occurrence of ``waypoint``.

        Returns:
            True if anything was removed
        """
        before = len(self.destinations)
        self.destinations = [w for w in self.destinations if w is not waypoint]
        return len(self.destinations) < before

    def set_destinations(self, waypoints: List[Waypoint]) -> None:
        self.destinations = list(waypoints)
        self.reset()

    def reset(self) -> None:
        self.destination_index = 0
        self.previous_destination_index = 0
        self.next_destination_index = 0
        self.current_destination = None
