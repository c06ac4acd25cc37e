"""Core functionality for the behaviour simulation."""

from .agent import Agent
from .environment import AgentGroup, AgentSnapshot, Scene
from .forces import Force, ForceModel
from .state_machine import AgentStateMachine, STATE_HANDLERS
from .states import AgentKind, AgentState, RobotMode
from .waypoints import Waypoint, WaypointCycler, WaypointMode, WaypointType

__all__ = [
    'Agent',
    'AgentGroup',
    'AgentSnapshot',
    'Scene',
    'Force',
    'ForceModel',
    'AgentStateMachine',
    'STATE_HANDLERS',
    'AgentKind',
    'AgentState',
    'RobotMode',
    'Waypoint',
    'WaypointCycler',
    'WaypointMode',
    'WaypointType',
]
