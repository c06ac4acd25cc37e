"""
Social interaction evaluator.

Proximity queries over the start-of-tick snapshot of neighbouring agents, and
the probabilistic triggers that ask the state machine for a transition. Every
trigger is rate limited: it rolls at most once per ``check_interval`` seconds.
"""

import logging
import math
from enum import Enum, auto
from typing import Dict, List, Optional, TYPE_CHECKING

from ..utils import calculate_distance
from .states import AgentKind, AgentState, FREE_TO_LISTEN
from .waypoints import Waypoint, WaypointType

if TYPE_CHECKING:
    from .agent import Agent
    from .environment import AgentSnapshot

logger = logging.getLogger(__name__)


class Trigger(Enum):
    """Probabilistic behaviours, each with its own cooldown."""
    TELL_STORY = auto()
    GROUP_TALKING = auto()
    START_TALKING = auto()
    TALKING_AND_WALKING = auto()
    REQUESTING_SERVICE = auto()
    SWITCH_RUNNING_WALKING = auto()
    ATTRACTION = auto()


def listening_circle_radius(count: int, spacing: float = 1.5, minimum: float = 0.3) -> float:
    """Radius of a circle holding ``count`` listeners ``spacing`` metres apart."""
    return max(minimum, count * spacing / (2 * math.pi))


class SocialInteractionEvaluator:
    """Decides when an agent starts or joins a social interaction.

    Attributes:
        agent: The agent this evaluator works for.
        last_checks: Simulated time of the last roll, per trigger.
    """

    def __init__(self, agent: 'Agent'):
        self.agent = agent
        self.last_checks: Dict[Trigger, float] = {}
        self.reset_cooldowns(agent.now())

    def reset_cooldowns(self, now: float) -> None:
        self.last_checks = {trigger: now for trigger in Trigger}

    def _cooldown_elapsed(self, trigger: Trigger) -> bool:
        now = self.agent.now()
        if now - self.last_checks[trigger] > self.agent.config.check_interval:
            self.last_checks[trigger] = now
            return True
        return False

    def _roll(self, probability: float) -> bool:
        return self.agent.rng.uniform() < probability

    # Proximity queries

    def agents_in_range(self, distance: float) -> List['AgentSnapshot']:
        return self.agent.neighbors(distance)

    def potential_listeners(self, distance: float) -> List['AgentSnapshot']:
        """Neighbours in range that are free to be talked to."""
        return [other for other in self.agents_in_range(distance) if other.state in FREE_TO_LISTEN]

    def interactive_waypoint_in_range(self, waypoint_type: WaypointType) -> Optional[Waypoint]:
        """Nearest waypoint of ``waypoint_type`` whose interaction radius covers the agent."""
        scene = self.agent.scene
        if scene is None:
            return None
        position = self.agent.position
        covering = [w for w in scene.waypoints_by_type(waypoint_type) if w.contains(position)]
        if not covering:
            return None
        return min(covering, key=lambda w: calculate_distance(w.position, position))

    # Listening

    def someone_talking_to_me(self) -> bool:
        """Look for a neighbour addressing this agent and adopt it as listening target.

        Story tellers and direct talkers win over group talks, which win over
        someone talking while walking. First match wins.
        """
        agent = self.agent
        config = agent.config
        for neighbor in self.agents_in_range(config.max_talking_distance):
            if neighbor.state == AgentState.TELL_STORY or (
                neighbor.state == AgentState.TALKING and neighbor.talking_to_id == agent.agent_id
            ):
                agent.listening_to_id = neighbor.agent_id
                agent.keep_distance_to = neighbor.position.copy()
                agent.keep_distance_force_distance = config.keep_distance_default
                return True
            elif neighbor.state == AgentState.GROUP_TALKING:
                agent.listening_to_id = neighbor.agent_id
                # gather around the talker's centre, not the talker
                focal = neighbor.keep_distance_to if neighbor.keep_distance_to is not None else neighbor.position
                agent.keep_distance_to = focal.copy()
                agent.keep_distance_force_distance = config.keep_distance_default
                return True
            elif (neighbor.state == AgentState.TALKING_AND_WALKING
                  and neighbor.talking_to_id == agent.agent_id):
                agent.listening_to_id = neighbor.agent_id
                return True
        return False

    def is_listening_to_individual(self) -> bool:
        target = self.agent.listening_to_snapshot()
        return target is not None and target.state == AgentState.TALKING

    def listening_target_still_talking(self) -> bool:
        """True while the listening target is still addressing this agent."""
        agent = self.agent
        target = agent.listening_to_snapshot()
        if target is None:
            return False
        if agent.state == AgentState.LISTENING_AND_WALKING:
            return (target.state == AgentState.TALKING_AND_WALKING
                    and target.talking_to_id == agent.agent_id)
        if target.state in (AgentState.TELL_STORY, AgentState.GROUP_TALKING):
            return True
        return target.state == AgentState.TALKING and target.talking_to_id == agent.agent_id

    def adjust_keep_distance_force_distance(self) -> float:
        """Widen the listening circle as more agents gather around the same talker.

        Returns:
            The new keep-distance radius
        """
        agent = self.agent
        if agent.state == AgentState.GROUP_TALKING:
            check_for_id = agent.agent_id
        else:
            check_for_id = agent.listening_to_id
        if check_for_id < 0 or agent.scene is None:
            return agent.keep_distance_force_distance

        count = sum(1 for other in agent.scene.snapshots() if other.listening_to_id == check_for_id)
        agent.keep_distance_force_distance = listening_circle_radius(
            count, agent.config.listener_spacing, agent.config.min_keep_distance
        )
        return agent.keep_distance_force_distance

    # Probabilistic triggers

    def tell_story(self) -> bool:
        if not self._cooldown_elapsed(Trigger.TELL_STORY):
            return False

        chatters = self.agents_in_range(self.agent.config.max_talking_distance)
        # only worth telling a story to an audience
        if len(chatters) <= 2:
            return False
        if any(chatter.state == AgentState.TELL_STORY for chatter in chatters):
            return False
        return self._roll(self.agent.config.tell_story_probability)

    def start_group_talking(self) -> bool:
        if not self._cooldown_elapsed(Trigger.GROUP_TALKING):
            return False

        chatters = self.potential_listeners(self.agent.config.max_talking_distance)
        if len(chatters) <= 2:
            return False
        if any(chatter.state == AgentState.GROUP_TALKING for chatter in chatters):
            return False
        if self._roll(self.agent.config.group_talking_probability):
            # everyone gathers around where I stand now
            self.agent.keep_distance_to = self.agent.position.copy()
            return True
        return False

    def _pick_partner(self, trigger: Trigger, probability: float) -> bool:
        if not self._cooldown_elapsed(trigger):
            return False

        chatters = self.potential_listeners(self.agent.config.max_talking_distance)
        if not chatters:
            return False
        if self._roll(probability):
            partner = chatters[self.agent.rng.index(len(chatters))]
            self.agent.talking_to_id = partner.agent_id
            return True
        return False

    def start_talking(self) -> bool:
        return self._pick_partner(Trigger.START_TALKING, self.agent.config.chatting_probability)

    def start_talking_and_walking(self) -> bool:
        return self._pick_partner(
            Trigger.TALKING_AND_WALKING, self.agent.config.talking_and_walking_probability
        )

    def start_requesting_service(self) -> bool:
        if not self._cooldown_elapsed(Trigger.REQUESTING_SERVICE):
            return False
        return self._roll(self.agent.config.requesting_service_probability)

    def switch_running_walking(self) -> bool:
        if not self._cooldown_elapsed(Trigger.SWITCH_RUNNING_WALKING):
            return False
        return self._roll(self.agent.config.switch_running_walking_probability)

    def check_attraction(self) -> Optional[Waypoint]:
        """Roll against the pull of an attraction area the agent is standing in."""
        if not self._cooldown_elapsed(Trigger.ATTRACTION):
            return None
        attraction = self.interactive_waypoint_in_range(WaypointType.ATTRACTION)
        if attraction is None:
            return None
        if self._roll(attraction.probability):
            return attraction
        return None

    # Service

    def service_robot_is_near(self) -> bool:
        for other in self.agents_in_range(self.agent.config.service_robot_radius):
            if other.kind == AgentKind.SERVICE_ROBOT:
                self.agent.current_service_robot_id = other.agent_id
                return True
        return False

    def someone_is_requesting_service(self) -> bool:
        """Pick up the first unattended service request within the servicing radius.

        Creates a service waypoint at the requester, registers it with the
        scene and makes it the current destination.
        """
        agent = self.agent
        scene = agent.scene
        if scene is None:
            return False

        # claims made earlier this tick are only visible through the service waypoints
        taken = {w.requester_id for w in scene.waypoints_by_type(WaypointType.SERVICE)}
        taken.update(
            other.servicing_agent_id for other in scene.snapshots()
            if other.agent_id != agent.agent_id and other.servicing_agent_id >= 0
        )
        for other in self.agents_in_range(agent.config.max_servicing_radius):
            if other.state != AgentState.REQUESTING_SERVICE or other.agent_id in taken:
                continue
            agent.servicing_agent_id = other.agent_id
            waypoint = Waypoint(
                "service_destination",
                other.position.copy(),
                interaction_radius=agent.config.service_waypoint_radius,
                waypoint_type=WaypointType.SERVICE,
                requester_id=other.agent_id,
            )
            scene.add_waypoint(waypoint)
            agent.servicing_waypoint = waypoint
            agent.cycler.current_destination = waypoint
            if agent.cycler.planner is not None:
                agent.cycler.planner.set_destination(waypoint)
            logger.debug(f"Agent {agent.agent_id} answers service request of agent {other.agent_id}")
            return True
        return False
