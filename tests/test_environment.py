"""
Tests for the scene registry and the tick loop.
"""

import numpy as np
import pytest
from pedestrian_behavior.core.agent import Agent
from pedestrian_behavior.core.environment import AgentGroup, Scene
from pedestrian_behavior.core.states import AgentKind, AgentState
from pedestrian_behavior.core.waypoints import Waypoint, WaypointType
from pedestrian_behavior.run_simulation import build_demo_scene
from pedestrian_behavior.utils.config import get_simulation_config


@pytest.fixture
def scene():
    config = get_simulation_config(
        tell_story_probability=0.0,
        group_talking_probability=0.0,
        chatting_probability=0.0,
        talking_and_walking_probability=0.0,
        switch_running_walking_probability=0.0,
        requesting_service_probability=0.0,
    )
    return Scene(config=config, seed=21)


def add(scene, agent_id, position, **kwargs):
    return scene.add_agent(Agent(agent_id, position, config=scene.config, **kwargs))


def test_duplicate_agent_id(scene):
    add(scene, 1, (0.0, 0.0))
    with pytest.raises(ValueError):
        add(scene, 1, (1.0, 1.0))


@pytest.mark.parametrize("dt", [0.0, -0.1])
def test_step_rejects_non_positive_dt(scene, dt):
    with pytest.raises(ValueError):
        scene.step(dt)


def test_clock_and_tick_advance(scene):
    for _ in range(3):
        scene.step(0.1)
    assert scene.tick == 3
    assert scene.current_sim_time() == pytest.approx(0.3)


def test_neighbors_strict_radius(scene):
    """Test that an agent exactly on the radius is not a neighbour."""
    add(scene, 0, (0.0, 0.0))
    add(scene, 1, (1.0, 0.0))
    add(scene, 2, (2.0, 0.0))

    assert [s.agent_id for s in scene.neighbors(np.zeros(2), 1.0)] == [0]
    assert scene.neighbors(np.zeros(2), 1.0, exclude_id=0) == []
    assert [s.agent_id for s in scene.neighbors(np.zeros(2), 1.5, exclude_id=0)] == [1]
    assert scene.neighbors(np.zeros(2), 0.0) == []


def test_neighbors_in_registration_order(scene):
    for agent_id, x in ((5, 0.6), (2, -0.4), (9, 0.1)):
        add(scene, agent_id, (x, 0.0))
    assert [s.agent_id for s in scene.neighbors(np.zeros(2), 1.0)] == [5, 2, 9]


def test_snapshot_stable_within_tick(scene):
    """Test that others see start-of-tick values until the next refresh."""
    agent = add(scene, 0, (0.0, 0.0))
    scene.refresh_snapshot()
    agent.position = np.array([3.0, 3.0])
    assert np.allclose(scene.snapshot_of(0).position, [0.0, 0.0])

    scene.refresh_snapshot()
    assert np.allclose(scene.snapshot_of(0).position, [3.0, 3.0])
    assert scene.snapshot_of(-1) is None
    assert scene.snapshot_of(42) is None


def test_remove_agent_clears_references(scene):
    gone = add(scene, 0, (0.0, 0.0))
    other = add(scene, 1, (1.0, 0.0))
    other.talking_to_id = 0
    other.listening_to_id = 0
    other.current_service_robot_id = 0
    gone.servicing_waypoint = scene.add_waypoint(
        Waypoint("service_destination", (1.0, 0.0), waypoint_type=WaypointType.SERVICE)
    )

    assert scene.remove_agent(0) is True
    assert other.talking_to_id == -1
    assert other.listening_to_id == -1
    assert other.current_service_robot_id == -1
    assert scene.waypoints_by_type(WaypointType.SERVICE) == []
    assert gone.scene is None
    assert scene.agent_by_id(0) is None
    assert scene.remove_agent(0) is False


def test_closest_obstacle_point(scene):
    assert scene.closest_obstacle_point(np.zeros(2)) is None
    scene.add_obstacle((0.0, -5.0), (0.0, 5.0))
    scene.add_obstacle((10.0, -5.0), (10.0, 5.0))
    assert np.allclose(scene.closest_obstacle_point(np.array([2.0, 1.0])), [0.0, 1.0])
    assert np.allclose(scene.closest_obstacle_point(np.array([2.0, 9.0])), [0.0, 5.0])


def test_remove_waypoint_by_identity(scene):
    first = scene.add_waypoint(Waypoint("a", (1.0, 1.0)))
    second = scene.add_waypoint(Waypoint("a", (1.0, 1.0)))
    assert scene.remove_waypoint(first) is True
    assert scene.waypoints == [second]
    assert scene.remove_waypoint(first) is False


def test_waypoints_by_type(scene):
    queue = scene.add_waypoint(Waypoint("q", (0.0, 0.0), waypoint_type=WaypointType.QUEUE))
    scene.add_waypoint(Waypoint("d", (0.0, 0.0)))
    assert scene.waypoints_by_type(WaypointType.QUEUE) == [queue]
    assert scene.waypoints_by_type(WaypointType.SHELF) == []


def test_groups(scene):
    group = scene.add_group(AgentGroup(4))
    member = add(scene, 0, (0.0, 0.0))
    group.add_member(member)
    group.add_member(member)
    assert group.member_ids == [0]
    assert member.group is group
    assert scene.group_by_id(None) is None
    with pytest.raises(ValueError):
        scene.add_group(AgentGroup(4))


def test_walker_reaches_single_destination(scene):
    target = scene.add_waypoint(Waypoint("a", (5.0, 0.0), 0.5))
    agent = add(scene, 0, (0.0, 0.0), destinations=[target])
    reached = False
    for _ in range(100):
        scene.step(0.1)
        reached = reached or target.contains(agent.position)
    assert reached
    assert agent.current_destination is target


def test_walker_cycles_destinations(scene):
    """Test a sequential walker going back and forth."""
    a = scene.add_waypoint(Waypoint("a", (5.0, 0.0), 0.5))
    b = scene.add_waypoint(Waypoint("b", (-5.0, 0.0), 0.5))
    agent = add(scene, 0, (0.0, 0.0), destinations=[a, b])
    visited = []
    for _ in range(400):
        scene.step(0.1)
        name = agent.current_destination.name
        if not visited or visited[-1] != name:
            visited.append(name)
    assert visited[:3] == ["a", "b", "a"]


def test_reset():
    scene = build_demo_scene(num_agents=6, seed=3, requesting_service_probability=0.5)
    for _ in range(50):
        scene.step(0.1)
    scene.reset()

    assert scene.tick == 0
    assert scene.current_sim_time() == 0.0
    assert all(agent.state == AgentState.NONE for agent in scene.agents())
    assert scene.waypoints_by_type(WaypointType.SERVICE) == []
    assert all(group.attraction is None for group in scene.groups.values())


def test_seeded_runs_are_reproducible():
    """Test that the same seed gives the same trajectories."""
    runs = []
    for _ in range(2):
        scene = build_demo_scene(num_agents=8, seed=5)
        for _ in range(60):
            scene.step(0.1)
        runs.append((
            np.array([agent.position for agent in scene.agents()]),
            [agent.state for agent in scene.agents()],
        ))
    assert np.allclose(runs[0][0], runs[1][0])
    assert runs[0][1] == runs[1][1]


def test_demo_scene_contents():
    scene = build_demo_scene(num_agents=7, seed=1, group_size=3)
    kinds = [agent.kind for agent in scene.agents()]
    assert kinds.count(AgentKind.VEHICLE) == 1
    assert kinds.count(AgentKind.SERVICE_ROBOT) == 1
    assert kinds.count(AgentKind.ELDER) == 1
    assert len(scene.groups) == 3
    assert len(scene.obstacles) == 4
