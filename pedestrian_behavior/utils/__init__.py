"""Vector and angle helpers shared by the behaviour engine."""

import math
import numpy as np

__all__ = [
    'as_vector',
    'calculate_distance',
    'normalize_vector',
    'normalize_angle',
    'angle_difference',
    'polar_angle',
    'from_polar',
    'rotate_vector',
    'left_normal',
    'is_finite_vector',
    'closest_point_on_segment',
]

TWO_PI = 2.0 * math.pi


def as_vector(value) -> np.ndarray:
    """Convert a pair-like value into a float 2-vector."""
    return np.array(value, dtype=float).reshape(2)


def calculate_distance(p1: np.ndarray, p2: np.ndarray) -> float:
    """Calculate Euclidean distance between two points.

    Args:
        p1: First point as [x, y]
        p2: Second point as [x, y]

    Returns:
        Distance between the points
    """
    return float(np.linalg.norm(np.asarray(p2, dtype=float) - np.asarray(p1, dtype=float)))


def normalize_vector(v: np.ndarray) -> np.ndarray:
    """Normalize a vector to unit length.

    Args:
        v: Input vector

    Returns:
        Normalized vector (the zero vector stays zero)
    """
    v = np.asarray(v, dtype=float)
    norm = np.linalg.norm(v)
    if norm == 0:
        return np.zeros_like(v)
    return v / norm


def normalize_angle(angle: float) -> float:
    """Map an angle in radians onto [0, 2*pi)."""
    angle = math.fmod(angle, TWO_PI)
    if angle < 0:
        angle += TWO_PI
    # fmod of a tiny negative value can land exactly on 2*pi
    if angle >= TWO_PI:
        angle -= TWO_PI
    return angle


def angle_difference(a: float, b: float) -> float:
    """Absolute shortest angular distance between two angles, in [0, pi]."""
    diff = normalize_angle(a - b)
    return min(diff, TWO_PI - diff)


def polar_angle(v: np.ndarray) -> float:
    """Direction of a vector as an angle in [0, 2*pi)."""
    return normalize_angle(math.atan2(v[1], v[0]))


def from_polar(angle: float, length: float = 1.0) -> np.ndarray:
    """Vector with the given direction and length."""
    return np.array([math.cos(angle) * length, math.sin(angle) * length])


def rotate_vector(v: np.ndarray, angle: float) -> np.ndarray:
    """Rotate a 2D vector counter-clockwise by ``angle`` radians."""
    c, s = math.cos(angle), math.sin(angle)
    return np.array([c * v[0] - s * v[1], s * v[0] + c * v[1]])


def left_normal(v: np.ndarray) -> np.ndarray:
    """Left-hand normal of a 2D vector."""
    return np.array([-v[1], v[0]])


def is_finite_vector(v: np.ndarray) -> bool:
    """True when every component of ``v`` is a finite number."""
    return bool(np.all(np.isfinite(v)))


def closest_point_on_segment(
    point: np.ndarray,
    seg_start: np.ndarray,
    seg_end: np.ndarray
) -> np.ndarray:
    """Closest point to ``point`` on the segment [seg_start, seg_end].

    Args:
        point: Query point [x, y]
        seg_start: Start of the segment [x, y]
        seg_end: End of the segment [x, y]

    Returns:
        The closest point on the segment
    """
    d = seg_end - seg_start
    length_sq = float(np.dot(d, d))
    if length_sq == 0:
        return np.array(seg_start, dtype=float)
    t = float(np.dot(point - seg_start, d)) / length_sq
    t = max(0.0, min(1.0, t))
    return seg_start + t * d
