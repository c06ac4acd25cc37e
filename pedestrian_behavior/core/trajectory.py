"""
Micro-trajectories for maneuvers the force model handles badly.

Two canned maneuvers are rehearsed up front as lists of timestamped poses:
- Reached shelf: turn in place toward the shelf, then creep 1 m forward
- Back up: reverse 1 m, then turn toward the next destination

The agent then replays the list by picking the sample closest in time to the
current simulated time, so missed ticks simply land on the nearest pose.
"""

import logging
import math
from bisect import bisect_left
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from ..utils import (
    TWO_PI, angle_difference, as_vector, calculate_distance, from_polar, normalize_angle
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimestampedPose:
    """One sample of a micro-trajectory."""
    timestamp: float
    position: Tuple[float, float]
    heading: float


@dataclass(frozen=True)
class ManeuverParams:
    """Rates and tolerances shared by both maneuvers."""
    time_step: float = 0.02
    linear_v: float = 0.5
    angular_v: float = 0.5
    angle_tolerance: float = 0.1
    distance_tolerance: float = 0.1
    distance: float = 1.0
    overshoot_margin: float = 1.0
    lead_in: float = 1.0

    def __post_init__(self):
        for name in ('time_step', 'linear_v', 'angular_v'):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")

    @classmethod
    def from_config(cls, config) -> 'ManeuverParams':
        return cls(
            time_step=config.trajectory_time_step,
            linear_v=config.trajectory_linear_v,
            angular_v=config.trajectory_angular_v,
            angle_tolerance=config.angle_tolerance,
            distance_tolerance=config.distance_tolerance,
            distance=config.maneuver_distance,
            overshoot_margin=config.overshoot_margin,
            lead_in=config.lead_in,
        )

    @property
    def max_rotation_steps(self) -> int:
        return int(math.ceil(math.pi / (self.time_step * self.angular_v))) + 1

    @property
    def max_translation_steps(self) -> int:
        return int(math.ceil((self.distance + self.overshoot_margin) / (self.time_step * self.linear_v))) + 1


def rotate(current_angle: float, target_angle: float, time_step: float, angular_v: float) -> float:
    """Turn ``current_angle`` one step toward ``target_angle`` along the shorter arc.

    Both angles are normalised to [0, 2*pi). The step is ``angular_v * time_step``
    but never passes the target, so an aligned heading stays put.

    Returns:
        The new angle in [0, 2*pi)
    """
    current = normalize_angle(current_angle)
    target = normalize_angle(target_angle)
    step = time_step * angular_v
    diff = normalize_angle(target - current)

    if diff > math.pi:
        # going clockwise is shorter
        remaining = TWO_PI - diff
        return normalize_angle(current - min(step, remaining))
    return normalize_angle(current + min(step, diff))


def _rotate_in_place(poses: List[TimestampedPose], t: float, position: np.ndarray,
                     heading: float, target: float, params: ManeuverParams) -> Tuple[float, float]:
    steps = 0
    while angle_difference(heading, target) > params.angle_tolerance:
        if steps >= params.max_rotation_steps:
            logger.error(f"Rotation toward {target:.2f} rad did not converge")
            break
        poses.append(TimestampedPose(t, (float(position[0]), float(position[1])), heading))
        heading = rotate(heading, target, params.time_step, params.angular_v)
        t += params.time_step
        steps += 1
    return t, heading


def _translate(poses: List[TimestampedPose], t: float, position: np.ndarray, heading: float,
               direction: float, params: ManeuverParams) -> Tuple[float, np.ndarray]:
    target = position + from_polar(direction, params.distance)
    original_diff = calculate_distance(position, target)
    step = from_polar(direction, params.linear_v * params.time_step)

    steps = 0
    while calculate_distance(position, target) > params.distance_tolerance:
        if steps >= params.max_translation_steps:
            logger.error(f"Translation toward {target} did not converge")
            break
        if calculate_distance(position, target) > original_diff + params.overshoot_margin:
            logger.error("Micro-trajectory overshot its target, truncating")
            break
        poses.append(TimestampedPose(t, (float(position[0]), float(position[1])), heading))
        position = position + step
        t += params.time_step
        steps += 1
    return t, position


def build_reached_shelf_moves(position, heading: float, angle_target: float, now: float,
                              params: Optional[ManeuverParams] = None) -> List[TimestampedPose]:
    """Rotate toward ``angle_target`` then move forward along the new heading.

    Args:
        position: Start position (x, y)
        heading: Start heading in radians
        angle_target: Heading to face the shelf with
        now: Current simulated time; samples start ``lead_in`` seconds later
        params: Rates and tolerances

    Returns:
        Ordered list of poses
    """
    params = params or ManeuverParams()
    poses: List[TimestampedPose] = []
    t = now + params.lead_in
    pos = as_vector(position)

    t, heading = _rotate_in_place(poses, t, pos, heading, angle_target, params)
    _translate(poses, t, pos, heading, heading, params)
    return poses


def build_back_up_moves(position, heading: float, destination: Optional[np.ndarray], now: float,
                        params: Optional[ManeuverParams] = None) -> List[TimestampedPose]:
    """Reverse along the current heading, then face ``destination``.

    The turn is skipped when there is no destination to face.
    """
    params = params or ManeuverParams()
    poses: List[TimestampedPose] = []
    t = now + params.lead_in
    pos = as_vector(position)

    t, pos = _translate(poses, t, pos, heading, heading + math.pi, params)

    if destination is not None:
        offset = as_vector(destination) - pos
        if np.linalg.norm(offset) > 0:
            angle_target = normalize_angle(math.atan2(offset[1], offset[0]))
            _rotate_in_place(poses, t, pos, heading, angle_target, params)
    return poses


class MoveList:
    """A rehearsed pose list replayed by nearest timestamp."""

    def __init__(self, poses: List[TimestampedPose]):
        self.poses = list(poses)
        self._timestamps = [pose.timestamp for pose in self.poses]

    def __len__(self) -> int:
        return len(self.poses)

    def pose_at(self, now: float) -> Optional[TimestampedPose]:
        """Sample whose timestamp is closest to ``now``."""
        if not self.poses:
            return None
        i = bisect_left(self._timestamps, now)
        if i == len(self.poses):
            return self.poses[-1]
        # ties go to the earlier sample
        if i > 0 and now - self._timestamps[i - 1] <= self._timestamps[i] - now:
            return self.poses[i - 1]
        return self.poses[i]

    def completed(self, now: float) -> bool:
        end_time = self.end_time
        return end_time is None or now > end_time

    @property
    def end_time(self) -> Optional[float]:
        return self.poses[-1].timestamp if self.poses else None
