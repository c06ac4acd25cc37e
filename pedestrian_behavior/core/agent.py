"""
Pedestrian-like agent.

An agent owns its force model, destination cycler, interaction evaluator and
state machine. The scene calls, once per tick and in this order,
:meth:`Agent.compute_forces`, :meth:`Agent.update_state` and :meth:`Agent.move`.
"""

import logging
import math
from dataclasses import InitVar, dataclass, field
from typing import List, Optional, TYPE_CHECKING

import numpy as np

from ..utils import (
    as_vector, normalize_angle, normalize_vector, polar_angle, rotate_vector
)
from ..utils.clock import RandomSource
from ..utils.config import SimulationConfig, get_agent_config, get_simulation_config
from .environment import AgentGroup, AgentSnapshot
from .forces import BUILTIN_FORCES, KEEP_DISTANCE, Force, ForceBreakdown, ForceModel
from .interactions import SocialInteractionEvaluator
from .planners import WaypointPlanner
from .state_machine import AgentStateMachine
from .states import (
    AgentKind, AgentState, MANEUVERS, MATERIAL_HANDLING, RobotMode, state_to_name
)
from .trajectory import (
    ManeuverParams, MoveList, build_back_up_moves, build_reached_shelf_moves
)
from .waypoints import Waypoint, WaypointCycler, WaypointMode

if TYPE_CHECKING:
    from .environment import Scene

logger = logging.getLogger(__name__)

# Below this speed the heading is left alone
MIN_HEADING_SPEED = 1e-3


@dataclass(eq=False)
class Agent:
    """A simulated pedestrian, robot or vehicle.

    Attributes:
        agent_id: Unique identifier within the scene
        position: Current position (x, y) in metres
        velocity: Current velocity in m/s
        acceleration: Acceleration applied during the last move
        kind: Adult, elder, robot, service robot or vehicle
        config: Shared simulation configuration
        waypoint_mode: How the next destination is chosen
        name: Optional display name
        group_id: Id of the group the agent walks with, if any
        facing_direction: Heading in radians, [0, 2*pi)
    """

    agent_id: int
    position: np.ndarray
    velocity: np.ndarray = field(default_factory=lambda: np.zeros(2))
    acceleration: np.ndarray = field(default_factory=lambda: np.zeros(2))
    kind: AgentKind = AgentKind.ADULT
    config: SimulationConfig = field(default_factory=get_simulation_config)
    waypoint_mode: WaypointMode = WaypointMode.SEQUENTIAL
    destinations: InitVar[Optional[List[Waypoint]]] = None
    name: str = ""
    group_id: Optional[int] = None
    facing_direction: float = 0.0

    def __post_init__(self, destinations: Optional[List[Waypoint]]):
        self.position = as_vector(self.position)
        self.velocity = as_vector(self.velocity)
        self.acceleration = as_vector(self.acceleration)
        self.facing_direction = normalize_angle(self.facing_direction)
        if not self.name:
            self.name = f"{self.kind.value}_{self.agent_id}"
        self._initial_position = self.position.copy()
        self._initial_facing = self.facing_direction

        self.scene: Optional['Scene'] = None
        self._detached_rng = RandomSource()
        self.robot_mode = RobotMode(self.config.robot_mode)
        self._apply_kind_parameters()

        # forces
        self.disabled_forces: List[str] = []
        self.forces: List[Force] = []
        self.total_force = np.zeros(2)

        # interaction fields, partners are ids resolved through the scene
        self.talking_to_id = -1
        self.listening_to_id = -1
        self.keep_distance_to: Optional[np.ndarray] = None
        self.keep_distance_force_distance = self.config.keep_distance_default
        self.servicing_agent_id = -1
        self.servicing_waypoint: Optional[Waypoint] = None
        self.current_service_robot_id = -1

        # material handling
        self.last_interacted_with_waypoint: Optional[Waypoint] = None
        self.angle_target = 0.0
        self.move_list: Optional[MoveList] = None

        self.cycler = WaypointCycler(self.rng, self.waypoint_mode, destinations)
        self.force_model = ForceModel(self)
        self.interactions = SocialInteractionEvaluator(self)
        self.state_machine = AgentStateMachine(self)

        self.disable_force(KEEP_DISTANCE)

    def _apply_kind_parameters(self) -> None:
        params = get_agent_config(self.config, self.kind.value)
        self.base_vmax = params['vmax']
        self.vmax = params['vmax']
        self.radius = params['radius']
        self.force_factor_desired = params['force_desired']
        self.force_factor_social = params['force_social']
        self.force_factor_obstacle = params['force_obstacle']
        self.force_factor_keep_distance = params['force_keep_distance']
        self.relaxation_time = self.config.relaxation_time
        if self.kind == AgentKind.ROBOT and self.robot_mode == RobotMode.SOCIAL_DRIVE:
            self._apply_social_drive()

    def _apply_social_drive(self) -> None:
        config = self.config
        self.force_factor_social = config.force_social * config.social_drive_social_factor
        self.force_factor_obstacle = config.social_drive_obstacle
        self.force_factor_desired = config.social_drive_desired
        self.vmax = config.social_drive_vmax
        self.base_vmax = config.social_drive_vmax
        self.radius = config.social_drive_radius

    # Scene binding

    def attach(self, scene: 'Scene') -> None:
        """Bind the agent to ``scene``; called by :meth:`Scene.add_agent`."""
        self.scene = scene
        self.cycler.rng = scene.rng
        self.interactions.reset_cooldowns(self.now())
        self.state_machine.start_timestamp = self.now()

    @property
    def rng(self) -> RandomSource:
        if self.scene is not None:
            return self.scene.rng
        return self._detached_rng

    def now(self) -> float:
        if self.scene is None:
            return 0.0
        return self.scene.current_sim_time()

    def neighbors(self, radius: float) -> List[AgentSnapshot]:
        """Start-of-tick snapshots of the other agents within ``radius``."""
        if self.scene is None:
            return []
        return self.scene.neighbors(self.position, radius, exclude_id=self.agent_id)

    def snapshot(self) -> AgentSnapshot:
        return AgentSnapshot(
            agent_id=self.agent_id,
            kind=self.kind,
            state=self.state,
            position=self.position.copy(),
            velocity=self.velocity.copy(),
            talking_to_id=self.talking_to_id,
            listening_to_id=self.listening_to_id,
            keep_distance_to=None if self.keep_distance_to is None else self.keep_distance_to.copy(),
            group_id=self.group_id,
            servicing_agent_id=self.servicing_agent_id,
        )

    @property
    def state(self) -> AgentState:
        return self.state_machine.state

    @property
    def is_pedestrian(self) -> bool:
        return self.kind in (AgentKind.ADULT, AgentKind.ELDER)

    @property
    def group(self) -> Optional[AgentGroup]:
        if self.scene is None:
            return None
        return self.scene.group_by_id(self.group_id)

    def is_in_group(self) -> bool:
        return self.group is not None

    # Destinations

    @property
    def current_destination(self) -> Optional[Waypoint]:
        return self.cycler.current_destination

    def add_destination(self, waypoint: Waypoint) -> bool:
        return self.cycler.add_destination(waypoint)

    def remove_destination(self, waypoint: Waypoint) -> bool:
        return self.cycler.remove_destination(waypoint)

    def update_destination(self) -> Optional[Waypoint]:
        return self.cycler.update_destination()

    def need_new_destination(self) -> bool:
        return self.cycler.need_new_destination()

    def has_completed_destination(self) -> bool:
        return self.cycler.has_completed_destination()

    def current_waypoint(self) -> Optional[np.ndarray]:
        return self.cycler.current_waypoint()

    def set_planner(self, planner: Optional[WaypointPlanner]) -> None:
        self.cycler.planner = planner

    # Forces

    def add_force(self, force: Force) -> None:
        if force.agent is None:
            force.agent = self
        self.forces.append(force)

    def remove_force(self, force: Force) -> bool:
        if force in self.forces:
            self.forces.remove(force)
            return True
        return False

    def disable_force(self, name: str) -> None:
        if name not in self.disabled_forces:
            self.disabled_forces.append(name)

    def enable_force(self, name: str) -> None:
        if name in self.disabled_forces:
            self.disabled_forces.remove(name)

    def disable_all_forces(self) -> None:
        for name in list(BUILTIN_FORCES) + [force.name for force in self.forces]:
            self.disable_force(name)

    def enable_all_forces(self) -> None:
        self.disabled_forces.clear()

    def brake(self) -> None:
        # the force computed earlier this tick must not be integrated either
        self.velocity = np.zeros(2)
        self.acceleration = np.zeros(2)
        self.total_force = np.zeros(2)

    def stop_movement(self) -> None:
        """Stand still: every force off, velocity zeroed."""
        self.disable_all_forces()
        self.brake()

    def resume_movement(self) -> None:
        self.enable_all_forces()
        self.disable_force(KEEP_DISTANCE)

    # Partner resolution

    def _snapshot_of(self, agent_id: int) -> Optional[AgentSnapshot]:
        if self.scene is None or agent_id < 0:
            return None
        return self.scene.snapshot_of(agent_id)

    def talking_to_snapshot(self) -> Optional[AgentSnapshot]:
        return self._snapshot_of(self.talking_to_id)

    def listening_to_snapshot(self) -> Optional[AgentSnapshot]:
        return self._snapshot_of(self.listening_to_id)

    def servicing_agent_snapshot(self) -> Optional[AgentSnapshot]:
        return self._snapshot_of(self.servicing_agent_id)

    def current_service_robot_snapshot(self) -> Optional[AgentSnapshot]:
        return self._snapshot_of(self.current_service_robot_id)

    # Per-tick work

    def compute_forces(self) -> ForceBreakdown:
        breakdown = self.force_model.compute()
        self.total_force = breakdown.total.copy()
        return breakdown

    def update_state(self) -> None:
        self.state_machine.do_state_transition()

    def move(self, dt: float) -> None:
        """Advance position, velocity and heading by ``dt`` seconds."""
        if self.kind == AgentKind.ROBOT:
            self._move_robot(dt)
            self.update_direction()
            return

        state = self.state
        if state == AgentState.LISTENING_AND_WALKING:
            self._follow_listening_target()
        elif state in MANEUVERS:
            self.move_by_move_list()
        else:
            self._integrate(dt)
        self.update_direction()

        if self.kind == AgentKind.ELDER:
            self.vmax = self.config.elder_vmax
            self.force_factor_desired = self.config.elder_force_desired

    def _move_robot(self, dt: float) -> None:
        if self.robot_mode == RobotMode.TELEOPERATION:
            # position comes from outside, velocity stays visible to the others
            velocity = self.velocity.copy()
            self.velocity = np.zeros(2)
            self._integrate(dt)
            self.velocity = velocity
        elif self.robot_mode == RobotMode.CONTROLLED:
            if self.now() >= self.config.robot_wait_time:
                self._integrate(dt)
        else:
            self._apply_social_drive()
            self._integrate(dt)

    def _integrate(self, dt: float) -> None:
        self.position = self.position + self.velocity * dt
        self.acceleration = self.total_force
        self.velocity = self.velocity + self.acceleration * dt

        speed = np.linalg.norm(self.velocity)
        if speed > self.vmax:
            self.velocity = self.velocity / speed * self.vmax

    def _follow_listening_target(self) -> None:
        target = self.listening_to_snapshot()
        if target is None:
            return
        direction = normalize_vector(target.velocity)
        offset = rotate_vector(direction, math.pi / 2) * self.config.keep_distance_default
        self.position = target.position + offset
        self.velocity = target.velocity.copy()

    def _face(self, point: Optional[np.ndarray]) -> None:
        if point is None:
            logger.warning(f"Agent {self.agent_id} in {state_to_name(self.state)} has nothing to face")
            return
        offset = np.asarray(point, dtype=float) - self.position
        if np.linalg.norm(offset) > 0:
            self.facing_direction = polar_angle(offset)

    def update_direction(self) -> None:
        """Derive the heading from the current state."""
        state = self.state
        if state in MANEUVERS:
            return
        if state in MATERIAL_HANDLING:
            if self.last_interacted_with_waypoint is None:
                logger.warning(f"Agent {self.agent_id} handles material without a shelf")
                return
            self.facing_direction = normalize_angle(self.last_interacted_with_waypoint.static_obstacle_angle)
        elif state == AgentState.LISTENING and self.interactions.is_listening_to_individual():
            # a direct talker may have drifted from where the conversation started
            self._face(self.listening_to_snapshot().position)
        elif state in (AgentState.LISTENING, AgentState.GROUP_TALKING):
            if self.keep_distance_to is not None:
                self._face(self.keep_distance_to)
        elif state == AgentState.TALKING:
            partner = self.talking_to_snapshot()
            self._face(partner.position if partner is not None else None)
        elif state == AgentState.RECEIVING_SERVICE:
            robot = self.current_service_robot_snapshot()
            self._face(robot.position if robot is not None else None)
        elif state == AgentState.PROVIDING_SERVICE:
            requester = self.servicing_agent_snapshot()
            self._face(requester.position if requester is not None else None)
        elif np.linalg.norm(self.velocity) > MIN_HEADING_SPEED:
            self.facing_direction = polar_angle(self.velocity)

    # Micro-trajectories

    def create_move_list(self, state: AgentState) -> MoveList:
        """Rehearse the maneuver of ``state`` starting from the current pose.

        Raises:
            ValueError: If ``state`` has no maneuver
        """
        params = ManeuverParams.from_config(self.config)
        if state == AgentState.REACHED_SHELF:
            poses = build_reached_shelf_moves(
                self.position, self.facing_direction, self.angle_target, self.now(), params
            )
        elif state == AgentState.BACK_UP:
            destination = self.current_destination
            poses = build_back_up_moves(
                self.position, self.facing_direction,
                destination.position if destination is not None else None,
                self.now(), params,
            )
        else:
            raise ValueError(f"No maneuver for state {state_to_name(state)}")
        self.move_list = MoveList(poses)
        return self.move_list

    def move_by_move_list(self) -> None:
        """Jump to the rehearsed pose closest to the current time."""
        if self.move_list is None:
            return
        pose = self.move_list.pose_at(self.now())
        if pose is None:
            return
        self.position = np.array(pose.position, dtype=float)
        self.facing_direction = pose.heading
        self.velocity = np.zeros(2)

    def completed_move_list(self) -> bool:
        if self.move_list is None:
            return True
        return self.move_list.completed(self.now())

    # Misc

    def reset(self) -> None:
        """Return to the start pose in state None with fresh interaction fields."""
        self.state_machine.reset()
        if self.servicing_waypoint is not None and self.scene is not None:
            self.scene.remove_waypoint(self.servicing_waypoint)

        self.position = self._initial_position.copy()
        self.velocity = np.zeros(2)
        self.acceleration = np.zeros(2)
        self.total_force = np.zeros(2)
        self.facing_direction = self._initial_facing

        self.talking_to_id = -1
        self.listening_to_id = -1
        self.keep_distance_to = None
        self.keep_distance_force_distance = self.config.keep_distance_default
        self.servicing_agent_id = -1
        self.servicing_waypoint = None
        self.current_service_robot_id = -1
        self.last_interacted_with_waypoint = None
        self.angle_target = 0.0
        self.move_list = None

        self.cycler.reset()
        self.set_planner(None)
        self._apply_kind_parameters()
        self.resume_movement()
        self.interactions.reset_cooldowns(self.now())

    def to_string(self) -> str:
        return (
            f"Agent {self.agent_id} ({self.kind.value}) {state_to_name(self.state)} "
            f"at ({self.position[0]:.2f}, {self.position[1]:.2f}) "
            f"v=({self.velocity[0]:.2f}, {self.velocity[1]:.2f})"
        )

    def __str__(self) -> str:
        return self.to_string()
