"""Configuration settings for the pedestrian behaviour engine."""

from dataclasses import dataclass, field, fields
from typing import Dict, Any

# Force model configuration
FORCE_CONFIG = {
    'force_desired': 1.0,            # Weight of the desired (goal) force
    'force_social': 5.0,             # Weight of the social force between agents
    'force_obstacle': 10.0,          # Weight of the obstacle repulsion force
    'force_keep_distance': 1.0,      # Weight of the keep-distance spring
    'sigma_obstacle': 0.2,           # Range of the obstacle repulsion (m)
    'relaxation_time': 0.5,          # Time to reach desired velocity (s)
    'neighborhood_range': 20.0,      # Radius of agents considered by the social force (m)
}

# Agent configuration
AGENT_CONFIG = {
    'radius': 0.35,                  # Agent radius (m)
    'vmax': 1.4,                     # Maximum speed (m/s) - normal walking speed
    'running_speed_factor': 2.0,     # vmax multiplier while running
    'keep_distance_default': 1.0,    # Default listening distance (m)
}

# Agent type configurations
AGENT_TYPES = {
    'adult': {},
    'elder': {
        'vmax': 0.9,                 # Elders walk slower
        'force_desired': 0.5,        # and push less toward their goal
    },
    'robot': {},
    'service_robot': {},
    'vehicle': {
        'vmax': 1.0,
        'radius': 0.6,
    },
}

# Social interaction configuration
INTERACTION_CONFIG = {
    'check_interval': 0.5,                      # Seconds between probability rolls per trigger
    'max_talking_distance': 1.5,                # Radius for talking and listening (m)
    'max_servicing_radius': 10.0,               # Radius a service robot answers requests in (m)
    'service_robot_radius': 1.0,                # Service robot counts as "near" inside this (m)
    'service_waypoint_radius': 1.0,             # Interaction radius of created service waypoints (m)
    'listener_spacing': 1.5,                    # Arc length between listeners on the circle (m)
    'min_keep_distance': 0.3,                   # Smallest listening circle radius (m)
    'tell_story_probability': 0.01,
    'group_talking_probability': 0.01,
    'chatting_probability': 0.01,
    'talking_and_walking_probability': 0.01,
    'switch_running_walking_probability': 0.1,
    'requesting_service_probability': 0.1,
}

# Base durations of timed states (seconds)
STATE_DURATIONS = {
    'waiting_base_time': 5.0,
    'working_base_time': 15.0,
    'shopping_base_time': 20.0,
    'lifting_forks_base_time': 3.0,
    'loading_base_time': 3.0,
    'lowering_forks_base_time': 3.0,
    'talking_base_time': 6.0,
    'tell_story_base_time': 8.0,
    'group_talking_base_time': 10.0,
    'talking_and_walking_base_time': 6.0,
    'requesting_service_base_time': 15.0,
    'receiving_service_base_time': 6.0,
}

# Micro-trajectory configuration
TRAJECTORY_CONFIG = {
    'trajectory_time_step': 0.02,    # Time between two samples (s)
    'trajectory_linear_v': 0.5,      # Translation rate (m/s)
    'trajectory_angular_v': 0.5,     # Rotation rate (rad/s)
    'angle_tolerance': 0.1,          # Rotation is done inside this (rad)
    'distance_tolerance': 0.1,       # Translation is done inside this (m)
    'maneuver_distance': 1.0,        # Distance driven forward/backward (m)
    'overshoot_margin': 1.0,         # Abort once this far past the start distance (m)
    'lead_in': 1.0,                  # Delay before the first sample (s)
}

# Controllable robot configuration
ROBOT_CONFIG = {
    'robot_mode': 'social_drive',    # teleoperation, controlled or social_drive
    'robot_wait_time': 0.0,          # Controlled robots start moving after this (s)
    'social_drive_social_factor': 0.7,
    'social_drive_obstacle': 35.0,
    'social_drive_desired': 4.2,
    'social_drive_vmax': 1.6,
    'social_drive_radius': 0.4,
}


@dataclass(frozen=True)
class SimulationConfig:
    """Immutable configuration handed to every agent at construction time."""

    # forces
    force_desired: float = FORCE_CONFIG['force_desired']
    force_social: float = FORCE_CONFIG['force_social']
    force_obstacle: float = FORCE_CONFIG['force_obstacle']
    force_keep_distance: float = FORCE_CONFIG['force_keep_distance']
    sigma_obstacle: float = FORCE_CONFIG['sigma_obstacle']
    relaxation_time: float = FORCE_CONFIG['relaxation_time']
    neighborhood_range: float = FORCE_CONFIG['neighborhood_range']

    # agents
    radius: float = AGENT_CONFIG['radius']
    vmax: float = AGENT_CONFIG['vmax']
    running_speed_factor: float = AGENT_CONFIG['running_speed_factor']
    keep_distance_default: float = AGENT_CONFIG['keep_distance_default']
    elder_vmax: float = AGENT_TYPES['elder']['vmax']
    elder_force_desired: float = AGENT_TYPES['elder']['force_desired']

    # interactions
    check_interval: float = INTERACTION_CONFIG['check_interval']
    max_talking_distance: float = INTERACTION_CONFIG['max_talking_distance']
    max_servicing_radius: float = INTERACTION_CONFIG['max_servicing_radius']
    service_robot_radius: float = INTERACTION_CONFIG['service_robot_radius']
    service_waypoint_radius: float = INTERACTION_CONFIG['service_waypoint_radius']
    listener_spacing: float = INTERACTION_CONFIG['listener_spacing']
    min_keep_distance: float = INTERACTION_CONFIG['min_keep_distance']
    tell_story_probability: float = INTERACTION_CONFIG['tell_story_probability']
    group_talking_probability: float = INTERACTION_CONFIG['group_talking_probability']
    chatting_probability: float = INTERACTION_CONFIG['chatting_probability']
    talking_and_walking_probability: float = INTERACTION_CONFIG['talking_and_walking_probability']
    switch_running_walking_probability: float = INTERACTION_CONFIG['switch_running_walking_probability']
    requesting_service_probability: float = INTERACTION_CONFIG['requesting_service_probability']

    # state durations
    waiting_base_time: float = STATE_DURATIONS['waiting_base_time']
    working_base_time: float = STATE_DURATIONS['working_base_time']
    shopping_base_time: float = STATE_DURATIONS['shopping_base_time']
    lifting_forks_base_time: float = STATE_DURATIONS['lifting_forks_base_time']
    loading_base_time: float = STATE_DURATIONS['loading_base_time']
    lowering_forks_base_time: float = STATE_DURATIONS['lowering_forks_base_time']
    talking_base_time: float = STATE_DURATIONS['talking_base_time']
    tell_story_base_time: float = STATE_DURATIONS['tell_story_base_time']
    group_talking_base_time: float = STATE_DURATIONS['group_talking_base_time']
    talking_and_walking_base_time: float = STATE_DURATIONS['talking_and_walking_base_time']
    requesting_service_base_time: float = STATE_DURATIONS['requesting_service_base_time']
    receiving_service_base_time: float = STATE_DURATIONS['receiving_service_base_time']

    # micro-trajectories
    trajectory_time_step: float = TRAJECTORY_CONFIG['trajectory_time_step']
    trajectory_linear_v: float = TRAJECTORY_CONFIG['trajectory_linear_v']
    trajectory_angular_v: float = TRAJECTORY_CONFIG['trajectory_angular_v']
    angle_tolerance: float = TRAJECTORY_CONFIG['angle_tolerance']
    distance_tolerance: float = TRAJECTORY_CONFIG['distance_tolerance']
    maneuver_distance: float = TRAJECTORY_CONFIG['maneuver_distance']
    overshoot_margin: float = TRAJECTORY_CONFIG['overshoot_margin']
    lead_in: float = TRAJECTORY_CONFIG['lead_in']

    # robot
    robot_mode: str = ROBOT_CONFIG['robot_mode']
    robot_wait_time: float = ROBOT_CONFIG['robot_wait_time']
    social_drive_social_factor: float = ROBOT_CONFIG['social_drive_social_factor']
    social_drive_obstacle: float = ROBOT_CONFIG['social_drive_obstacle']
    social_drive_desired: float = ROBOT_CONFIG['social_drive_desired']
    social_drive_vmax: float = ROBOT_CONFIG['social_drive_vmax']
    social_drive_radius: float = ROBOT_CONFIG['social_drive_radius']

    # per-kind overrides, e.g. {'vehicle': {'vmax': 1.0}}
    agent_types: Dict[str, Dict[str, float]] = field(
        default_factory=lambda: {kind: dict(values) for kind, values in AGENT_TYPES.items()}
    )

    def __post_init__(self):
        for name in ('relaxation_time', 'trajectory_time_step', 'trajectory_linear_v',
                     'trajectory_angular_v', 'check_interval'):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if self.robot_mode not in ('teleoperation', 'controlled', 'social_drive'):
            raise ValueError(f"Unknown robot mode: {self.robot_mode}")

    def base_time(self, key: str) -> float:
        """Base duration of a timed state, e.g. ``base_time('talking')``."""
        return getattr(self, f"{key}_base_time")


def get_simulation_config(**overrides: Any) -> SimulationConfig:
    """Build a configuration from the defaults above plus keyword overrides.

    Args:
        **overrides: Field values to replace, e.g. ``chatting_probability=1.0``

    Returns:
        Frozen configuration object

    Raises:
        ValueError: If an override names an unknown setting
    """
    known = {f.name for f in fields(SimulationConfig)}
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")
    return SimulationConfig(**overrides)


def get_agent_config(config: SimulationConfig, agent_kind: str) -> Dict[str, float]:
    """Get movement parameters for a specific agent kind with defaults.

    Args:
        config: The simulation configuration
        agent_kind: Kind of agent ('adult', 'elder', ...)

    Returns:
        Dictionary with 'vmax', 'radius' and the four force factors
    """
    values = {
        'vmax': config.vmax,
        'radius': config.radius,
        'force_desired': config.force_desired,
        'force_social': config.force_social,
        'force_obstacle': config.force_obstacle,
        'force_keep_distance': config.force_keep_distance,
    }
    # Unknown kinds fall back to the adult defaults
    values.update(config.agent_types.get(agent_kind, {}))
    if agent_kind == 'elder':
        values['vmax'] = config.elder_vmax
        values['force_desired'] = config.elder_force_desired
    return values
