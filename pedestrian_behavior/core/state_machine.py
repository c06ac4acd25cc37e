"""
Agent state machine.

Each agent owns one machine. Once per tick :meth:`AgentStateMachine.do_state_transition`
runs the tick handler of the current state, a priority-ordered chain of guards;
the first guard that holds switches state through :meth:`activate_state`.

Per-state behaviour lives in ``STATE_HANDLERS``, a table mapping every
:class:`AgentState` to its enter/exit/tick functions.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, TYPE_CHECKING

from .forces import DESIRED, KEEP_DISTANCE
from .planners import IndividualWaypointPlanner, ShoppingPlanner
from .states import AgentKind, AgentState, RobotMode, state_to_name
from .waypoints import Waypoint, WaypointType

if TYPE_CHECKING:
    from .agent import Agent

logger = logging.getLogger(__name__)

StateListener = Callable[[AgentState], None]


class AgentStateMachine:
    """Tracks the behavioural mode of one agent.

    Attributes:
        agent: The owning agent.
        state: Current state.
        normal_state: Baseline state to go back to after a short interaction.
        start_timestamp: Simulated time the current timed state started.
        state_max_duration: Sampled duration of the current timed state.
        group_attraction: Attraction the agent is shopping at, if any.
    """

    def __init__(self, agent: 'Agent'):
        self.agent = agent
        self.state = AgentState.NONE
        self.normal_state = AgentState.WALKING
        self.individual_planner = IndividualWaypointPlanner(agent)
        self.shopping_planner = ShoppingPlanner(agent)
        self.group_attraction: Optional[Waypoint] = None
        self.shall_lose_attraction = False
        self.start_timestamp = agent.now()
        self.state_max_duration = 0.0
        self._listeners: List[StateListener] = []

    def get_current_state(self) -> AgentState:
        return self.state

    def add_listener(self, listener: StateListener) -> None:
        """Call ``listener(new_state)`` after every state change."""
        self._listeners.append(listener)

    def remove_listener(self, listener: StateListener) -> bool:
        if listener in self._listeners:
            self._listeners.remove(listener)
            return True
        return False

    def do_state_transition(self) -> None:
        STATE_HANDLERS[self.state].on_tick(self)

    def activate_state(self, new_state: AgentState) -> None:
        """Leave the current state and enter ``new_state``.

        Re-entering the current state runs its exit and enter hooks again;
        both only toggle forces and movement, so this is safe. The partner of
        an interaction is released only when the state actually changes.
        """
        old_state = self.state
        self.deactivate_state(old_state)
        if new_state != old_state:
            STATE_HANDLERS[old_state].on_release(self)
        self.state = new_state
        STATE_HANDLERS[new_state].on_enter(self)

        logger.debug(
            f"Agent {self.agent.agent_id}: {state_to_name(old_state)} -> {state_to_name(new_state)}"
        )
        for listener in list(self._listeners):
            listener(new_state)

    def deactivate_state(self, state: AgentState) -> None:
        STATE_HANDLERS[state].on_exit(self)

    def get_random_duration(self, base_time: float) -> float:
        """Duration spread uniformly over [0.5, 1.5) times ``base_time``."""
        base_time = max(0.0, base_time)
        return base_time * (0.5 + self.agent.rng.uniform())

    def start_timer(self, base_time: float) -> None:
        self.start_timestamp = self.agent.now()
        self.state_max_duration = self.get_random_duration(base_time)

    def state_expired(self) -> bool:
        return self.agent.now() - self.start_timestamp > self.state_max_duration

    def check_group_for_attractions(self) -> Optional[Waypoint]:
        """Attraction the agent's group is currently heading for.

        Read from the group's shared state so that every member follows the
        same decision.
        """
        group = self.agent.group
        if group is None:
            return None
        return group.attraction

    def lose_attraction(self) -> None:
        self.shall_lose_attraction = True
        group = self.agent.group
        if group is not None:
            group.attraction = None

    def resume_normal_state(self) -> None:
        self.activate_state(self.normal_state)

    def reset(self) -> None:
        self.activate_state(AgentState.NONE)
        self.group_attraction = None
        self.shall_lose_attraction = False


# Helpers shared by the handlers

def _noop(machine: AgentStateMachine) -> None:
    pass


def _use_individual_planner(machine: AgentStateMachine) -> None:
    agent = machine.agent
    agent.set_planner(machine.individual_planner)
    machine.individual_planner.set_destination(agent.current_destination)


def _advance_destination(machine: AgentStateMachine, allow_queueing: bool = True) -> Optional[Waypoint]:
    agent = machine.agent
    destination = agent.update_destination()
    machine.individual_planner.set_destination(destination)
    if (allow_queueing and agent.is_pedestrian and destination is not None
            and destination.waypoint_type == WaypointType.QUEUE
            and machine.state != AgentState.QUEUEING):
        machine.activate_state(AgentState.QUEUEING)
    return destination


def _handle_destination(machine: AgentStateMachine) -> bool:
    agent = machine.agent
    if not agent.need_new_destination():
        return False
    reached = agent.current_destination
    if (agent.is_pedestrian and reached is not None
            and reached.waypoint_type == WaypointType.WORK
            and agent.has_completed_destination()):
        machine.activate_state(AgentState.WORKING)
        return True
    _advance_destination(machine)
    return True


def _check_listening(machine: AgentStateMachine) -> bool:
    agent = machine.agent
    if not agent.interactions.someone_talking_to_me():
        return False
    target = agent.listening_to_snapshot()
    if target is not None and target.state == AgentState.TALKING_AND_WALKING:
        machine.activate_state(AgentState.LISTENING_AND_WALKING)
    else:
        machine.activate_state(AgentState.LISTENING)
    return True


def _check_attractions(machine: AgentStateMachine) -> bool:
    agent = machine.agent
    attraction = machine.check_group_for_attractions()
    if attraction is None:
        attraction = agent.interactions.check_attraction()
        if attraction is None:
            return False
        group = agent.group
        if group is not None:
            # the whole group follows
            group.attraction = attraction
    machine.group_attraction = attraction
    machine.activate_state(AgentState.SHOPPING)
    return True


def _release_service(machine: AgentStateMachine) -> None:
    agent = machine.agent
    if agent.servicing_waypoint is not None and agent.scene is not None:
        agent.scene.remove_waypoint(agent.servicing_waypoint)
    agent.servicing_waypoint = None
    agent.servicing_agent_id = -1
    agent.cycler.current_destination = None
    if agent.cycler.destinations:
        agent.cycler.current_destination = agent.cycler.destinations[
            agent.cycler.destination_index % len(agent.cycler.destinations)
        ]


def _timed(key: str) -> Callable[[AgentStateMachine], None]:
    def enter(machine: AgentStateMachine) -> None:
        machine.agent.stop_movement()
        machine.start_timer(machine.agent.config.base_time(key))
    return enter


def _resume(machine: AgentStateMachine) -> None:
    machine.agent.resume_movement()


def _expire_to(next_state: AgentState) -> Callable[[AgentStateMachine], None]:
    def tick(machine: AgentStateMachine) -> None:
        if machine.state_expired():
            machine.activate_state(next_state)
    return tick


def _expire_to_normal(machine: AgentStateMachine) -> None:
    if machine.state_expired():
        machine.resume_normal_state()


# None

def _tick_none(machine: AgentStateMachine) -> None:
    agent = machine.agent
    if agent.kind == AgentKind.ROBOT and agent.robot_mode == RobotMode.TELEOPERATION:
        # driven from outside, never leaves None
        return
    if agent.kind in (AgentKind.VEHICLE, AgentKind.SERVICE_ROBOT):
        machine.normal_state = AgentState.DRIVING
        agent.update_destination()
        machine.activate_state(AgentState.DRIVING)
        return

    if agent.is_in_group() and agent.is_pedestrian:
        machine.normal_state = AgentState.GROUP_WALKING
    else:
        machine.normal_state = AgentState.WALKING
    destination = agent.update_destination()
    machine.activate_state(machine.normal_state)
    if (agent.is_pedestrian and destination is not None
            and destination.waypoint_type == WaypointType.QUEUE):
        machine.activate_state(AgentState.QUEUEING)


# Locomotion

def _enter_walking(machine: AgentStateMachine) -> None:
    machine.normal_state = AgentState.WALKING
    _use_individual_planner(machine)
    machine.agent.resume_movement()


def _tick_walking(machine: AgentStateMachine) -> None:
    agent = machine.agent
    if agent.is_pedestrian:
        if _check_listening(machine):
            return
        interactions = agent.interactions
        if interactions.tell_story():
            machine.activate_state(AgentState.TELL_STORY)
            return
        if interactions.start_group_talking():
            machine.activate_state(AgentState.GROUP_TALKING)
            return
        if interactions.start_talking():
            machine.activate_state(AgentState.TALKING)
            return
        if interactions.start_talking_and_walking():
            machine.activate_state(AgentState.TALKING_AND_WALKING)
            return
        if interactions.start_requesting_service():
            machine.activate_state(AgentState.REQUESTING_SERVICE)
            return
        if interactions.switch_running_walking():
            machine.activate_state(AgentState.RUNNING)
            return
        if _check_attractions(machine):
            return
    _handle_destination(machine)


def _enter_running(machine: AgentStateMachine) -> None:
    agent = machine.agent
    _use_individual_planner(machine)
    agent.resume_movement()
    agent.vmax = agent.base_vmax * agent.config.running_speed_factor


def _exit_running(machine: AgentStateMachine) -> None:
    machine.agent.vmax = machine.agent.base_vmax


def _tick_running(machine: AgentStateMachine) -> None:
    agent = machine.agent
    if _check_listening(machine):
        return
    if agent.interactions.switch_running_walking():
        machine.activate_state(AgentState.WALKING)
        return
    _handle_destination(machine)


def _enter_group_walking(machine: AgentStateMachine) -> None:
    machine.normal_state = AgentState.GROUP_WALKING
    _use_individual_planner(machine)
    machine.agent.resume_movement()


def _tick_group_walking(machine: AgentStateMachine) -> None:
    if _check_attractions(machine):
        return
    _handle_destination(machine)


def _enter_queueing(machine: AgentStateMachine) -> None:
    _use_individual_planner(machine)
    machine.agent.resume_movement()


def _tick_queueing(machine: AgentStateMachine) -> None:
    if machine.agent.has_completed_destination():
        machine.activate_state(AgentState.WAITING)


def _leave_when_expired(machine: AgentStateMachine) -> None:
    # Waiting and Working: move on to the next destination afterwards
    if machine.state_expired():
        machine.resume_normal_state()
        _advance_destination(machine)


def _enter_shopping(machine: AgentStateMachine) -> None:
    agent = machine.agent
    machine.shall_lose_attraction = False
    agent.set_planner(machine.shopping_planner)
    machine.shopping_planner.set_destination(machine.group_attraction)
    agent.resume_movement()
    machine.start_timer(agent.config.base_time('shopping'))


def _release_shopping(machine: AgentStateMachine) -> None:
    machine.group_attraction = None
    machine.shall_lose_attraction = False


def _tick_shopping(machine: AgentStateMachine) -> None:
    agent = machine.agent
    if machine.state_expired():
        machine.lose_attraction()
    group_lost = agent.group is not None and agent.group.attraction is None
    if machine.shall_lose_attraction or group_lost:
        machine.resume_normal_state()


# Vehicles and service robots

def _enter_driving(machine: AgentStateMachine) -> None:
    if machine.agent.servicing_waypoint is not None:
        _release_service(machine)
    machine.normal_state = AgentState.DRIVING
    _use_individual_planner(machine)
    machine.agent.resume_movement()


def _tick_driving(machine: AgentStateMachine) -> None:
    agent = machine.agent
    if agent.kind == AgentKind.SERVICE_ROBOT and agent.interactions.someone_is_requesting_service():
        machine.activate_state(AgentState.DRIVING_TO_INTERACTION)
        return
    if agent.kind == AgentKind.VEHICLE and agent.has_completed_destination():
        destination = agent.current_destination
        if destination is not None and destination.waypoint_type == WaypointType.SHELF:
            agent.last_interacted_with_waypoint = destination
            agent.angle_target = destination.static_obstacle_angle
            machine.activate_state(AgentState.REACHED_SHELF)
            return
    if agent.need_new_destination():
        _advance_destination(machine)


def _enter_reached_shelf(machine: AgentStateMachine) -> None:
    agent = machine.agent
    agent.stop_movement()
    agent.create_move_list(AgentState.REACHED_SHELF)


def _tick_reached_shelf(machine: AgentStateMachine) -> None:
    if machine.agent.completed_move_list():
        machine.activate_state(AgentState.LIFTING_FORKS)


def _enter_back_up(machine: AgentStateMachine) -> None:
    agent = machine.agent
    agent.stop_movement()
    # turn toward where we go next
    _advance_destination(machine, allow_queueing=False)
    agent.create_move_list(AgentState.BACK_UP)


def _tick_back_up(machine: AgentStateMachine) -> None:
    if machine.agent.completed_move_list():
        machine.activate_state(AgentState.DRIVING)


def _exit_maneuver(machine: AgentStateMachine) -> None:
    machine.agent.move_list = None


def _requester_waiting(machine: AgentStateMachine) -> bool:
    requester = machine.agent.servicing_agent_snapshot()
    return requester is not None and requester.state in (
        AgentState.REQUESTING_SERVICE, AgentState.RECEIVING_SERVICE
    )


def _enter_driving_to_interaction(machine: AgentStateMachine) -> None:
    agent = machine.agent
    agent.set_planner(machine.individual_planner)
    machine.individual_planner.set_destination(agent.servicing_waypoint)
    agent.resume_movement()


def _tick_driving_to_interaction(machine: AgentStateMachine) -> None:
    if not _requester_waiting(machine):
        machine.activate_state(AgentState.DRIVING)
        return
    if machine.agent.has_completed_destination():
        machine.activate_state(AgentState.PROVIDING_SERVICE)


def _tick_providing_service(machine: AgentStateMachine) -> None:
    if machine.state_expired() or not _requester_waiting(machine):
        machine.activate_state(AgentState.DRIVING)




# Social

def _reset_keep_distance(agent) -> None:
    agent.keep_distance_to = None
    agent.keep_distance_force_distance = agent.config.keep_distance_default


def _enter_group_talking(machine: AgentStateMachine) -> None:
    agent = machine.agent
    agent.disable_force(DESIRED)
    agent.enable_force(KEEP_DISTANCE)
    agent.brake()
    machine.start_timer(agent.config.base_time('group_talking'))


def _tick_group_talking(machine: AgentStateMachine) -> None:
    if machine.state_expired():
        machine.resume_normal_state()
        return
    machine.agent.interactions.adjust_keep_distance_force_distance()


def _release_group_talking(machine: AgentStateMachine) -> None:
    _reset_keep_distance(machine.agent)


def _enter_talking(machine: AgentStateMachine) -> None:
    agent = machine.agent
    agent.disable_force(DESIRED)
    agent.brake()
    machine.start_timer(agent.config.base_time('talking'))


def _tick_talking(machine: AgentStateMachine) -> None:
    if machine.agent.talking_to_snapshot() is None or machine.state_expired():
        machine.resume_normal_state()


def _release_talking(machine: AgentStateMachine) -> None:
    machine.agent.talking_to_id = -1


def _enter_talking_and_walking(machine: AgentStateMachine) -> None:
    _use_individual_planner(machine)
    machine.agent.resume_movement()
    machine.start_timer(machine.agent.config.base_time('talking_and_walking'))


def _tick_talking_and_walking(machine: AgentStateMachine) -> None:
    agent = machine.agent
    if agent.talking_to_snapshot() is None or machine.state_expired():
        machine.resume_normal_state()
        return
    if agent.need_new_destination():
        _advance_destination(machine, allow_queueing=False)


def _enter_listening(machine: AgentStateMachine) -> None:
    agent = machine.agent
    agent.disable_force(DESIRED)
    agent.enable_force(KEEP_DISTANCE)
    agent.brake()


def _tick_listening(machine: AgentStateMachine) -> None:
    agent = machine.agent
    if not agent.interactions.listening_target_still_talking():
        machine.resume_normal_state()
        return
    agent.interactions.adjust_keep_distance_force_distance()


def _release_listening(machine: AgentStateMachine) -> None:
    machine.agent.listening_to_id = -1
    _reset_keep_distance(machine.agent)


def _tick_listening_and_walking(machine: AgentStateMachine) -> None:
    if not machine.agent.interactions.listening_target_still_talking():
        machine.resume_normal_state()


# Service requests

def _tick_requesting_service(machine: AgentStateMachine) -> None:
    if machine.agent.interactions.service_robot_is_near():
        machine.activate_state(AgentState.RECEIVING_SERVICE)
        return
    if machine.state_expired():
        machine.resume_normal_state()


def _release_receiving_service(machine: AgentStateMachine) -> None:
    machine.agent.current_service_robot_id = -1


@dataclass(frozen=True)
class StateHandler:
    """Hooks of one state.

    ``on_exit`` runs on every activation, re-entry included. ``on_release``
    runs only when the machine moves to a different state and drops whatever
    interaction the state held on to.
    """
    on_enter: Callable[[AgentStateMachine], None] = _noop
    on_exit: Callable[[AgentStateMachine], None] = _noop
    on_tick: Callable[[AgentStateMachine], None] = _noop
    on_release: Callable[[AgentStateMachine], None] = _noop


STATE_HANDLERS: Dict[AgentState, StateHandler] = {
    AgentState.NONE: StateHandler(on_tick=_tick_none),
    AgentState.WAITING: StateHandler(_timed('waiting'), _resume, _leave_when_expired),
    AgentState.QUEUEING: StateHandler(_enter_queueing, _noop, _tick_queueing),
    AgentState.WALKING: StateHandler(_enter_walking, _noop, _tick_walking),
    AgentState.RUNNING: StateHandler(_enter_running, _exit_running, _tick_running),
    AgentState.GROUP_WALKING: StateHandler(_enter_group_walking, _noop, _tick_group_walking),
    AgentState.SHOPPING: StateHandler(
        _enter_shopping, _noop, _tick_shopping, _release_shopping
    ),
    AgentState.WORKING: StateHandler(_timed('working'), _resume, _leave_when_expired),
    AgentState.DRIVING: StateHandler(_enter_driving, _noop, _tick_driving),
    AgentState.DRIVING_TO_INTERACTION: StateHandler(
        _enter_driving_to_interaction, _noop, _tick_driving_to_interaction
    ),
    AgentState.BACK_UP: StateHandler(_enter_back_up, _exit_maneuver, _tick_back_up),
    AgentState.REACHED_SHELF: StateHandler(_enter_reached_shelf, _exit_maneuver, _tick_reached_shelf),
    AgentState.LIFTING_FORKS: StateHandler(
        _timed('lifting_forks'), _noop, _expire_to(AgentState.LOADING)
    ),
    AgentState.LOADING: StateHandler(
        _timed('loading'), _noop, _expire_to(AgentState.LOWERING_FORKS)
    ),
    AgentState.LOWERING_FORKS: StateHandler(
        _timed('lowering_forks'), _noop, _expire_to(AgentState.BACK_UP)
    ),
    AgentState.TELL_STORY: StateHandler(_timed('tell_story'), _resume, _expire_to_normal),
    AgentState.GROUP_TALKING: StateHandler(
        _enter_group_talking, _resume, _tick_group_talking, _release_group_talking
    ),
    AgentState.TALKING: StateHandler(_enter_talking, _resume, _tick_talking, _release_talking),
    AgentState.LISTENING: StateHandler(
        _enter_listening, _resume, _tick_listening, _release_listening
    ),
    AgentState.TALKING_AND_WALKING: StateHandler(
        _enter_talking_and_walking, _noop, _tick_talking_and_walking, _release_talking
    ),
    AgentState.LISTENING_AND_WALKING: StateHandler(
        _noop, _resume, _tick_listening_and_walking, _release_listening
    ),
    AgentState.REQUESTING_SERVICE: StateHandler(
        _timed('requesting_service'), _resume, _tick_requesting_service
    ),
    AgentState.RECEIVING_SERVICE: StateHandler(
        _timed('receiving_service'), _resume, _expire_to_normal, _release_receiving_service
    ),
    AgentState.PROVIDING_SERVICE: StateHandler(
        _timed('receiving_service'), _resume, _tick_providing_service
    ),
}

_missing = set(AgentState) - set(STATE_HANDLERS)
if _missing:
    raise RuntimeError(f"States without handlers: {sorted(s.value for s in _missing)}")
