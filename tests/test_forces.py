"""
Tests for the force model.
"""

import math

import numpy as np
import pytest
from pedestrian_behavior.core.agent import Agent
from pedestrian_behavior.core.environment import Scene
from pedestrian_behavior.core.forces import (
    DESIRED, KEEP_DISTANCE, OBSTACLE, SOCIAL, Force, GAMMA
)
from pedestrian_behavior.core.waypoints import Waypoint


class ConstantForce(Force):
    name = "Constant"

    def __init__(self, value, agent=None):
        super().__init__(agent)
        self.value = np.array(value, dtype=float)

    def get_force(self, desired_direction):
        return self.value


class BrokenForce(Force):
    name = "Broken"

    def get_force(self, desired_direction):
        return np.array([np.nan, 1.0])


@pytest.fixture
def scene():
    return Scene(seed=0)


@pytest.fixture
def walker(scene):
    """An adult at the origin heading for a waypoint 10 m east."""
    agent = Agent(0, (0.0, 0.0), destinations=[Waypoint("east", (10.0, 0.0))])
    scene.add_agent(agent)
    agent.update_destination()
    agent.set_planner(agent.state_machine.individual_planner)
    agent.state_machine.individual_planner.set_destination(agent.current_destination)
    return agent


def test_desired_force(walker):
    """Test relaxation toward vmax along the target direction."""
    force = walker.force_model.desired_force()
    expected = np.array([walker.vmax, 0.0]) / walker.relaxation_time
    assert np.allclose(force, expected)
    assert np.allclose(walker.force_model.desired_direction, [1.0, 0.0])


def test_desired_force_without_target():
    """Test that an agent with nowhere to go brakes."""
    agent = Agent(0, (0.0, 0.0), velocity=(1.0, 0.0))
    force = agent.force_model.desired_force()
    assert np.allclose(force, [-1.0 / agent.relaxation_time, 0.0])


def test_disabled_desired_force(walker):
    walker.disable_force(DESIRED)
    assert np.allclose(walker.force_model.desired_force(), 0.0)


def test_social_force_repels(scene):
    """Test head-on repulsion between two standing agents."""
    a = scene.add_agent(Agent(0, (0.0, 0.0)))
    scene.add_agent(Agent(1, (1.0, 0.0)))

    force = a.force_model.social_force()
    expected = -math.exp(-1.0 / GAMMA)
    assert force[0] == pytest.approx(expected)
    assert force[1] == pytest.approx(0.0)

    a.disable_force(SOCIAL)
    assert np.allclose(a.force_model.social_force(), 0.0)


def test_social_force_ignores_coincident_agents(scene):
    a = scene.add_agent(Agent(0, (2.0, 2.0)))
    scene.add_agent(Agent(1, (2.0, 2.0)))
    assert np.all(np.isfinite(a.force_model.social_force()))


def test_obstacle_force(scene):
    """Test exponential repulsion from the closest wall."""
    scene.add_obstacle((-5.0, 1.0), (5.0, 1.0))
    agent = scene.add_agent(Agent(0, (0.0, 0.0)))

    force = agent.force_model.obstacle_force()
    distance = 1.0 - agent.radius
    assert force[0] == pytest.approx(0.0)
    assert force[1] == pytest.approx(-math.exp(-distance / agent.config.sigma_obstacle))

    agent.disable_force(OBSTACLE)
    assert np.allclose(agent.force_model.obstacle_force(), 0.0)


def test_obstacle_force_without_walls(scene):
    agent = scene.add_agent(Agent(0, (0.0, 0.0)))
    assert np.allclose(agent.force_model.obstacle_force(), 0.0)


def test_keep_distance_force():
    """Test the spring around the focal point."""
    agent = Agent(0, (0.0, 0.0))
    agent.keep_distance_to = np.array([3.0, 0.0])
    # disabled by default
    assert np.allclose(agent.force_model.keep_distance_force(), 0.0)

    agent.enable_force(KEEP_DISTANCE)
    assert np.allclose(agent.force_model.keep_distance_force(), [2.0, 0.0])

    # inside the circle it pushes outwards
    agent.keep_distance_to = np.array([0.5, 0.0])
    assert np.allclose(agent.force_model.keep_distance_force(), [-0.5, 0.0])

    agent.keep_distance_to = None
    assert np.allclose(agent.force_model.keep_distance_force(), 0.0)


def test_extra_forces():
    """Test pluggable forces, including an invalid one."""
    agent = Agent(0, (0.0, 0.0))
    agent.add_force(ConstantForce([1.0, 2.0]))
    agent.add_force(BrokenForce())

    total = agent.force_model.sum_of_extra_forces(np.zeros(2))
    assert np.allclose(total, [1.0, 2.0])
    assert np.allclose(agent.force_model.last.extra_by_name["Broken"], 0.0)

    agent.disable_force("Constant")
    assert np.allclose(agent.force_model.sum_of_extra_forces(np.zeros(2)), 0.0)


def test_compute_weighted_total():
    """Test that the total is the weighted sum of every force."""
    agent = Agent(0, (0.0, 0.0))
    agent.add_force(ConstantForce([1.0, 2.0]))
    breakdown = agent.compute_forces()
    assert np.allclose(breakdown.total, [1.0, 2.0])
    assert np.allclose(agent.total_force, [1.0, 2.0])


def test_add_remove_force():
    agent = Agent(0, (0.0, 0.0))
    force = ConstantForce([1.0, 0.0])
    agent.add_force(force)
    assert force.agent is agent
    assert agent.remove_force(force) is True
    assert agent.remove_force(force) is False


def test_disable_is_idempotent_and_ordered():
    """Test that toggling forces by name is idempotent."""
    agent = Agent(0, (0.0, 0.0))
    assert agent.disabled_forces == [KEEP_DISTANCE]
    agent.disable_force(DESIRED)
    agent.disable_force(DESIRED)
    agent.disable_force(SOCIAL)
    assert agent.disabled_forces == [KEEP_DISTANCE, DESIRED, SOCIAL]
    agent.enable_force(DESIRED)
    agent.enable_force(DESIRED)
    assert agent.disabled_forces == [KEEP_DISTANCE, SOCIAL]
