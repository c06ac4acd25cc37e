"""Enumerations shared across the behaviour engine."""

from enum import Enum


class AgentState(Enum):
    """Discrete behavioural modes. Values are the display names."""
    NONE = "None"
    WAITING = "Waiting"
    QUEUEING = "Queueing"
    WALKING = "Walking"
    GROUP_WALKING = "GroupWalking"
    SHOPPING = "Shopping"
    TALKING = "Talking"
    WORKING = "Working"
    LIFTING_FORKS = "LiftingForks"
    LOADING = "Loading"
    LOWERING_FORKS = "LoweringForks"
    DRIVING = "Driving"
    TELL_STORY = "TellStory"
    GROUP_TALKING = "GroupTalking"
    LISTENING = "Listening"
    TALKING_AND_WALKING = "TalkingAndWalking"
    LISTENING_AND_WALKING = "ListeningAndWalking"
    REACHED_SHELF = "ReachedShelf"
    RUNNING = "Running"
    BACK_UP = "BackUp"
    REQUESTING_SERVICE = "RequestingService"
    RECEIVING_SERVICE = "ReceivingService"
    DRIVING_TO_INTERACTION = "DrivingToInteraction"
    PROVIDING_SERVICE = "ProvidingService"


class AgentKind(Enum):
    ADULT = "adult"
    ELDER = "elder"
    ROBOT = "robot"
    SERVICE_ROBOT = "service_robot"
    VEHICLE = "vehicle"


class RobotMode(Enum):
    """How the controllable robot is driven."""
    TELEOPERATION = "teleoperation"   # position set from outside
    CONTROLLED = "controlled"         # scripted, waits for a start time
    SOCIAL_DRIVE = "social_drive"     # autonomous with tuned forces


# Pedestrians in these states can be drawn into a conversation
FREE_TO_LISTEN = (AgentState.WALKING, AgentState.RUNNING)

MATERIAL_HANDLING = (AgentState.LIFTING_FORKS, AgentState.LOADING, AgentState.LOWERING_FORKS)

MANEUVERS = (AgentState.REACHED_SHELF, AgentState.BACK_UP)


def state_to_name(state: AgentState) -> str:
    return state.value
