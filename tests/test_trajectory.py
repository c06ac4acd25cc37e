"""
Tests for the micro-trajectory generator.
"""

import logging
import math

import numpy as np
import pytest
from pedestrian_behavior.core.trajectory import (
    ManeuverParams, MoveList, TimestampedPose, build_back_up_moves,
    build_reached_shelf_moves, rotate
)
from pedestrian_behavior.utils import angle_difference, normalize_angle


@pytest.fixture
def params():
    return ManeuverParams()


@pytest.mark.parametrize("angle", [0.0, 1.0, math.pi, -1.0, 7.0, -12.5])
def test_rotate_identity(angle):
    """Test that an aligned heading does not drift."""
    assert rotate(angle, angle, 0.02, 0.5) == pytest.approx(normalize_angle(angle))


def test_rotate_takes_shorter_arc():
    """Test the direction of a single step."""
    assert rotate(0.0, 1.0, 0.02, 0.5) == pytest.approx(0.01)
    # 0.1 -> 6.0 is shorter clockwise through zero
    assert rotate(0.1, 6.0, 0.02, 0.5) == pytest.approx(0.09)


def test_rotate_never_passes_target():
    assert rotate(0.0, 0.005, 0.02, 0.5) == pytest.approx(0.005)
    assert rotate(0.0, -0.005, 0.02, 0.5) == pytest.approx(normalize_angle(-0.005))


@pytest.mark.parametrize("start,target", [(0.0, math.pi - 0.05), (1.0, 5.0), (6.0, 0.5)])
def test_rotate_converges(start, target, params):
    """Test convergence within ceil(pi / (dt * w)) steps."""
    bound = math.ceil(math.pi / (params.time_step * params.angular_v))
    angle = start
    steps = 0
    while angle_difference(angle, target) > 1e-9:
        angle = rotate(angle, target, params.time_step, params.angular_v)
        steps += 1
        assert steps <= bound


def test_max_rotation_steps(params):
    assert params.max_rotation_steps == 316


def test_reached_shelf_moves(params):
    """Test rotate-then-forward maneuver."""
    poses = build_reached_shelf_moves((0.0, 0.0), 0.0, math.pi / 2, now=0.0, params=params)

    assert poses[0].timestamp == pytest.approx(1.0)
    stamps = np.array([pose.timestamp for pose in poses])
    assert np.allclose(np.diff(stamps), params.time_step)

    last = poses[-1]
    assert angle_difference(last.heading, math.pi / 2) <= params.angle_tolerance + 1e-9
    travelled = np.linalg.norm(np.array(last.position))
    assert 0.8 < travelled <= 1.0
    # forward phase moves mostly along +y
    assert last.position[1] > 0.8


def test_reached_shelf_already_aligned(params):
    """Test that no rotation samples are produced when aligned."""
    poses = build_reached_shelf_moves((0.0, 0.0), 0.0, 0.0, now=0.0, params=params)
    assert all(pose.heading == 0.0 for pose in poses)
    assert poses[-1].position[0] > 0.8


def test_zero_distance_maneuver_terminates():
    """Test that a zero-length, aligned maneuver yields an empty list."""
    params = ManeuverParams(distance=0.0)
    poses = build_reached_shelf_moves((3.0, 4.0), 1.0, 1.0, now=0.0, params=params)
    assert poses == []
    assert MoveList(poses).completed(0.0)


def test_overshoot_truncates(caplog):
    """Test that a translation running away from its target stops with an error."""
    params = ManeuverParams(linear_v=500.0)
    with caplog.at_level(logging.ERROR):
        poses = build_reached_shelf_moves((0.0, 0.0), 0.0, 0.0, now=0.0, params=params)
    assert len(poses) == 1
    assert any("overshot" in record.message for record in caplog.records)


def test_back_up_moves(params):
    """Test reverse-then-turn maneuver."""
    destination = np.array([0.0, 5.0])
    poses = build_back_up_moves((0.0, 0.0), 0.0, destination, now=10.0, params=params)

    assert poses[0].timestamp == pytest.approx(11.0)
    reversing = [pose for pose in poses if pose.heading == 0.0]
    assert reversing[-1].position[0] < -0.8

    end = np.array(poses[-1].position)
    bearing = math.atan2(destination[1] - end[1], destination[0] - end[0])
    assert angle_difference(poses[-1].heading, bearing) <= params.angle_tolerance + 0.02


def test_back_up_without_destination(params):
    poses = build_back_up_moves((0.0, 0.0), 0.0, None, now=0.0, params=params)
    assert poses
    assert all(pose.heading == 0.0 for pose in poses)


def test_move_list_replay():
    """Test nearest-timestamp lookup and completion."""
    poses = [TimestampedPose(1.0 + 0.02 * i, (0.01 * i, 0.0), 0.0) for i in range(10)]
    move_list = MoveList(poses)

    assert move_list.pose_at(0.0) is poses[0]
    assert move_list.pose_at(1.051) is poses[3]
    assert move_list.pose_at(100.0) is poses[-1]
    assert not move_list.completed(move_list.end_time)
    assert move_list.completed(move_list.end_time + 0.01)
    assert MoveList([]).pose_at(1.0) is None


def test_move_list_nearest_sample():
    """Test exact hits, nearer neighbours and ties between two samples."""
    poses = [TimestampedPose(0.5 * i, (float(i), 0.0), 0.0) for i in range(4)]
    move_list = MoveList(poses)

    assert move_list.pose_at(1.0) is poses[2]
    assert move_list.pose_at(0.9) is poses[2]
    assert move_list.pose_at(0.6) is poses[1]
    # halfway between two samples the earlier one wins
    assert move_list.pose_at(0.25) is poses[0]
    assert move_list.pose_at(1.25) is poses[2]
    assert move_list.completed(0.0) is False
    assert MoveList([]).completed(0.0) is True


@pytest.mark.parametrize("key", ['time_step', 'linear_v', 'angular_v'])
def test_zero_rates_rejected(key):
    """Test that rates the maneuvers divide or step by must be positive."""
    with pytest.raises(ValueError):
        ManeuverParams(**{key: 0.0})


def test_translation_is_bounded(caplog):
    """Test that a translation stepping past its tolerance band still stops."""
    # 0.3 m steps never land within 1 cm of the target
    params = ManeuverParams(linear_v=15.0, distance_tolerance=0.01)
    with caplog.at_level(logging.ERROR):
        poses = build_reached_shelf_moves((0.0, 0.0), 0.0, 0.0, now=0.0, params=params)
    assert len(poses) == params.max_translation_steps
    assert "did not converge" in caplog.text
