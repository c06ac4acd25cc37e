"""Behaviour engine for pedestrian-like agents in a shared 2D scene."""

__version__ = "0.1.0"

from .core.agent import Agent
from .core.environment import AgentGroup, Scene
from .core.states import AgentKind, AgentState
from .core.waypoints import Waypoint, WaypointMode, WaypointType
