"""
Force model for a single agent.

Four built-in forces drive the agent, each switched off by adding its name to
the agent's disabled set:
- Desired: relax toward vmax in the direction of the current target
- Social: pedestrian-pedestrian repulsion (Moussaid et al. 2009)
- Obstacle: exponential repulsion from the closest wall segment
- KeepDistance: spring holding the agent on a circle around a focal point

Extra pluggable forces are summed on top. Nothing here integrates motion.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, TYPE_CHECKING

import numpy as np

from ..utils import is_finite_vector, left_normal, normalize_vector

if TYPE_CHECKING:
    from .agent import Agent

logger = logging.getLogger(__name__)

DESIRED = "Desired"
SOCIAL = "Social"
OBSTACLE = "Obstacle"
KEEP_DISTANCE = "KeepDistance"
BUILTIN_FORCES = (OBSTACLE, DESIRED, SOCIAL, KEEP_DISTANCE)

# Social force constants
LAMBDA_IMPORTANCE = 2.0
GAMMA = 0.35
N = 2.0
N_PRIME = 3.0


class Force:
    """Base class for pluggable forces.

    Subclasses set ``name`` and implement :meth:`get_force`.
    """

    name: str = "Force"

    def __init__(self, agent: 'Agent' = None):
        self.agent = agent

    def get_force(self, desired_direction: np.ndarray) -> np.ndarray:
        raise NotImplementedError


@dataclass
class ForceBreakdown:
    """Every force of one evaluation, kept for observers.

    Attributes:
        desired, social, obstacle, keep_distance: Unweighted built-in forces.
        extra: Sum of the pluggable forces.
        total: Weighted sum used to integrate the agent.
        extra_by_name: Contribution of each pluggable force.
    """
    desired: np.ndarray = field(default_factory=lambda: np.zeros(2))
    social: np.ndarray = field(default_factory=lambda: np.zeros(2))
    obstacle: np.ndarray = field(default_factory=lambda: np.zeros(2))
    keep_distance: np.ndarray = field(default_factory=lambda: np.zeros(2))
    extra: np.ndarray = field(default_factory=lambda: np.zeros(2))
    total: np.ndarray = field(default_factory=lambda: np.zeros(2))
    extra_by_name: Dict[str, np.ndarray] = field(default_factory=dict)


class ForceModel:
    """Computes the forces acting on one agent from the current scene snapshot."""

    def __init__(self, agent: 'Agent'):
        self.agent = agent
        self.desired_direction = np.zeros(2)
        self.last = ForceBreakdown()

    def _is_disabled(self, name: str) -> bool:
        return name in self.agent.disabled_forces

    def desired_force(self) -> np.ndarray:
        agent = self.agent
        if self._is_disabled(DESIRED):
            self.last.desired = np.zeros(2)
            return self.last.desired

        target = agent.current_waypoint()
        if target is None:
            # nowhere to go: brake
            self.desired_direction = np.zeros(2)
            force = -agent.velocity / agent.relaxation_time
        else:
            self.desired_direction = normalize_vector(np.asarray(target, dtype=float) - agent.position)
            force = (self.desired_direction * agent.vmax - agent.velocity) / agent.relaxation_time

        self.last.desired = force
        return force

    def social_force(self) -> np.ndarray:
        agent = self.agent
        force = np.zeros(2)
        if self._is_disabled(SOCIAL):
            self.last.social = force
            return force

        for other in agent.neighbors(agent.config.neighborhood_range):
            diff = other.position - agent.position
            distance = np.linalg.norm(diff)
            if distance == 0:
                continue
            diff_direction = diff / distance
            vel_diff = agent.velocity - other.velocity
            interaction_vector = LAMBDA_IMPORTANCE * vel_diff + diff_direction
            interaction_length = np.linalg.norm(interaction_vector)
            if interaction_length == 0:
                continue
            interaction_direction = interaction_vector / interaction_length

            # signed angle from the interaction direction to the neighbour
            theta = math.atan2(
                interaction_direction[0] * diff_direction[1] - interaction_direction[1] * diff_direction[0],
                float(np.dot(interaction_direction, diff_direction)),
            )
            B = GAMMA * interaction_length

            force_velocity_amount = -math.exp(-distance / B - (N_PRIME * B * theta) ** 2)
            force_angle_amount = -np.sign(theta) * math.exp(-distance / B - (N * B * theta) ** 2)

            force += force_velocity_amount * interaction_direction
            force += force_angle_amount * left_normal(interaction_direction)

        self.last.social = force
        return force

    def obstacle_force(self) -> np.ndarray:
        agent = self.agent
        if self._is_disabled(OBSTACLE):
            self.last.obstacle = np.zeros(2)
            return self.last.obstacle

        closest = agent.scene.closest_obstacle_point(agent.position) if agent.scene else None
        if closest is None:
            force = np.zeros(2)
        else:
            diff = agent.position - closest
            distance = np.linalg.norm(diff) - agent.radius
            force = math.exp(-distance / agent.config.sigma_obstacle) * normalize_vector(diff)

        self.last.obstacle = force
        return force

    def keep_distance_force(self) -> np.ndarray:
        agent = self.agent
        if self._is_disabled(KEEP_DISTANCE) or agent.keep_distance_to is None:
            self.last.keep_distance = np.zeros(2)
            return self.last.keep_distance

        diff = agent.keep_distance_to - agent.position
        distance = np.linalg.norm(diff)
        # pulls in when outside the circle, pushes out when inside
        force = normalize_vector(diff) * (distance - agent.keep_distance_force_distance)

        self.last.keep_distance = force
        return force

    def sum_of_extra_forces(self, desired_direction: np.ndarray) -> np.ndarray:
        total = np.zeros(2)
        self.last.extra_by_name = {}
        for extra in self.agent.forces:
            if self._is_disabled(extra.name):
                self.last.extra_by_name[extra.name] = np.zeros(2)
                continue

            value = np.asarray(extra.get_force(desired_direction), dtype=float)
            if value.shape != (2,) or not is_finite_vector(value):
                logger.debug(f"Invalid force: {extra.name}")
                value = np.zeros(2)
            total += value
            self.last.extra_by_name[extra.name] = value

        self.last.extra = total
        return total

    def compute(self) -> ForceBreakdown:
        """Evaluate every force and the weighted total."""
        agent = self.agent
        desired = self.desired_force()
        social = self.social_force()
        obstacle = self.obstacle_force()
        keep_distance = self.keep_distance_force()
        extra = self.sum_of_extra_forces(self.desired_direction)

        self.last.total = (
            agent.force_factor_desired * desired
            + agent.force_factor_social * social
            + agent.force_factor_obstacle * obstacle
            + agent.force_factor_keep_distance * keep_distance
            + extra
        )
        return self.last
