"""
Scene registry and tick loop.

The scene owns every agent, waypoint, wall segment and group of one
simulation, the simulated clock and the shared random source. At the start of
each tick it freezes an :class:`AgentSnapshot` of every agent; all reads one
agent makes about another go through these snapshots, so the order agents are
updated in within a tick does not matter.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, TYPE_CHECKING

import numpy as np
from scipy.spatial import KDTree

from ..utils import as_vector, closest_point_on_segment, calculate_distance
from ..utils.clock import RandomSource, SimulationClock
from ..utils.config import SimulationConfig, get_simulation_config
from .states import AgentKind, AgentState
from .waypoints import Waypoint, WaypointType

if TYPE_CHECKING:
    from .agent import Agent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AgentSnapshot:
    """Read-only copy of the fields other agents may look at."""
    agent_id: int
    kind: AgentKind
    state: AgentState
    position: np.ndarray
    velocity: np.ndarray
    talking_to_id: int = -1
    listening_to_id: int = -1
    keep_distance_to: Optional[np.ndarray] = None
    group_id: Optional[int] = None
    servicing_agent_id: int = -1


@dataclass
class AgentGroup:
    """Agents walking together.

    Attributes:
        group_id: Unique identifier of the group
        member_ids: Ids of the members in joining order
        attraction: Attraction the whole group is currently shopping at
    """
    group_id: int
    member_ids: List[int] = field(default_factory=list)
    attraction: Optional[Waypoint] = None

    def add_member(self, agent: 'Agent') -> None:
        if agent.agent_id not in self.member_ids:
            self.member_ids.append(agent.agent_id)
        agent.group_id = self.group_id

    def remove_member(self, agent_id: int) -> bool:
        if agent_id in self.member_ids:
            self.member_ids.remove(agent_id)
            return True
        return False


@dataclass
class Scene:
    """Registry of everything in one simulation plus the per-tick loop."""

    config: SimulationConfig = field(default_factory=get_simulation_config)
    seed: Optional[int] = None

    clock: SimulationClock = field(default_factory=SimulationClock)
    rng: RandomSource = field(init=False)
    waypoints: List[Waypoint] = field(default_factory=list)
    obstacles: List[Tuple[np.ndarray, np.ndarray]] = field(default_factory=list)
    groups: Dict[int, AgentGroup] = field(default_factory=dict)
    tick: int = 0

    def __post_init__(self):
        self.rng = RandomSource(self.seed)
        self._agents: Dict[int, 'Agent'] = {}
        self._snapshots: Dict[int, AgentSnapshot] = {}
        self._snapshot_ids: List[int] = []
        self._tree: Optional[KDTree] = None
        self._dirty = True

    # Agents

    def add_agent(self, agent: 'Agent') -> 'Agent':
        """Register an agent and bind it to this scene.

        Raises:
            ValueError: If an agent with the same id is already registered
        """
        if agent.agent_id in self._agents:
            raise ValueError(f"Duplicate agent id: {agent.agent_id}")
        self._agents[agent.agent_id] = agent
        agent.attach(self)
        self._dirty = True
        logger.debug(f"Added agent {agent.agent_id} ({agent.kind.value})")
        return agent

    def remove_agent(self, agent_id: int) -> bool:
        """Remove an agent and clear every reference other agents hold to it."""
        agent = self._agents.pop(agent_id, None)
        if agent is None:
            return False

        if agent.servicing_waypoint is not None:
            self.remove_waypoint(agent.servicing_waypoint)
        if agent.group_id is not None and agent.group_id in self.groups:
            self.groups[agent.group_id].remove_member(agent_id)

        for other in self._agents.values():
            if other.talking_to_id == agent_id:
                other.talking_to_id = -1
            if other.listening_to_id == agent_id:
                other.listening_to_id = -1
            if other.servicing_agent_id == agent_id:
                other.servicing_agent_id = -1
            if other.current_service_robot_id == agent_id:
                other.current_service_robot_id = -1

        agent.scene = None
        self._dirty = True
        return True

    def agents(self) -> List['Agent']:
        return list(self._agents.values())

    def agent_by_id(self, agent_id: int) -> Optional['Agent']:
        return self._agents.get(agent_id)

    # Waypoints, obstacles and groups

    def add_waypoint(self, waypoint: Waypoint) -> Waypoint:
        self.waypoints.append(waypoint)
        return waypoint

    def remove_waypoint(self, waypoint: Waypoint) -> bool:
        for i, existing in enumerate(self.waypoints):
            if existing is waypoint:
                del self.waypoints[i]
                return True
        return False

    def waypoints_by_type(self, waypoint_type: WaypointType) -> List[Waypoint]:
        return [w for w in self.waypoints if w.waypoint_type == waypoint_type]

    def add_obstacle(self, p1, p2) -> None:
        """Add a wall segment from ``p1`` to ``p2``."""
        self.obstacles.append((as_vector(p1), as_vector(p2)))

    def closest_obstacle_point(self, position: np.ndarray) -> Optional[np.ndarray]:
        """Closest point on any wall segment, or None without walls."""
        closest = None
        best = float('inf')
        for start, end in self.obstacles:
            candidate = closest_point_on_segment(position, start, end)
            distance = calculate_distance(position, candidate)
            if distance < best:
                best = distance
                closest = candidate
        return closest

    def add_group(self, group: AgentGroup) -> AgentGroup:
        if group.group_id in self.groups:
            raise ValueError(f"Duplicate group id: {group.group_id}")
        self.groups[group.group_id] = group
        return group

    def group_by_id(self, group_id: Optional[int]) -> Optional[AgentGroup]:
        if group_id is None:
            return None
        return self.groups.get(group_id)

    # Time and snapshots

    def current_sim_time(self) -> float:
        return self.clock.now()

    def refresh_snapshot(self) -> None:
        """Freeze the shared view of every agent for the coming tick."""
        self._snapshots = {agent_id: agent.snapshot() for agent_id, agent in self._agents.items()}
        self._snapshot_ids = list(self._snapshots)
        if self._snapshot_ids:
            positions = np.array([self._snapshots[i].position for i in self._snapshot_ids])
            self._tree = KDTree(positions)
        else:
            self._tree = None
        self._dirty = False

    def _ensure_snapshot(self) -> None:
        if self._dirty:
            self.refresh_snapshot()

    def snapshots(self) -> List[AgentSnapshot]:
        self._ensure_snapshot()
        return [self._snapshots[i] for i in self._snapshot_ids]

    def snapshot_of(self, agent_id: int) -> Optional[AgentSnapshot]:
        if agent_id is None or agent_id < 0:
            return None
        self._ensure_snapshot()
        return self._snapshots.get(agent_id)

    def neighbors(self, position: np.ndarray, radius: float,
                  exclude_id: Optional[int] = None) -> List[AgentSnapshot]:
        """Snapshots of agents strictly closer than ``radius`` to ``position``.

        Results come in registration order.
        """
        self._ensure_snapshot()
        if self._tree is None or radius <= 0:
            return []
        indices = sorted(self._tree.query_ball_point(np.asarray(position, dtype=float), radius))
        found = []
        for index in indices:
            snapshot = self._snapshots[self._snapshot_ids[index]]
            if snapshot.agent_id == exclude_id:
                continue
            # query_ball_point includes the boundary
            if calculate_distance(snapshot.position, position) < radius:
                found.append(snapshot)
        return found

    # Loop

    def step(self, dt: float) -> None:
        """Advance every agent by one tick of ``dt`` seconds.

        Raises:
            ValueError: If ``dt`` is not positive
        """
        if dt <= 0:
            raise ValueError(f"Time step must be positive, got {dt}")

        self.refresh_snapshot()
        for agent in list(self._agents.values()):
            agent.compute_forces()
            agent.update_state()
            agent.move(dt)

        self.clock.advance(dt)
        self.tick += 1

    def reset(self) -> None:
        """Rewind time and randomness and put every agent back to its start."""
        self.clock.reset()
        self.rng.reseed(self.seed)
        self.tick = 0
        for group in self.groups.values():
            group.attraction = None
        for agent in self._agents.values():
            agent.reset()
        self.waypoints = [w for w in self.waypoints if w.waypoint_type != WaypointType.SERVICE]
        self._dirty = True
        logger.info(f"Scene reset ({len(self._agents)} agents)")
