"""
Tests for metrics collection.
"""

import pytest
from pedestrian_behavior.core.states import AgentState
from pedestrian_behavior.run_simulation import build_demo_scene, run
from pedestrian_behavior.utils.metrics import SimulationMetrics


@pytest.fixture
def metrics():
    scene = build_demo_scene(num_agents=6, width=20.0, height=12.0, seed=9)
    return run(scene, steps=40, dt=0.1, progress=False)


def test_empty_metrics():
    collector = SimulationMetrics()
    assert collector.get_summary_statistics() == {}
    assert collector.get_metrics_dataframe().empty
    assert collector.get_agent_metrics_dataframe().empty
    assert list(collector.get_state_occupancy_dataframe().columns) == ['tick', 'state', 'count']


def test_metrics_dataframe(metrics):
    """Test that state occupancy adds up to the agent count on every tick."""
    df = metrics.get_metrics_dataframe()
    assert len(df) == 40
    assert list(df['tick']) == list(range(1, 41))

    state_columns = [state.value for state in AgentState]
    assert (df[state_columns].sum(axis=1) == df['agents_total']).all()
    assert (df['agents_total'] == 8).all()
    # nobody stays in None after the first tick
    assert (df[AgentState.NONE.value] == 0).all()


def test_state_occupancy(metrics):
    occupancy = metrics.get_state_occupancy_dataframe()
    assert (occupancy['count'] > 0).all()
    assert occupancy.groupby('tick')['count'].sum().eq(8).all()
    assert 'Driving' in set(occupancy['state'])


def test_agent_metrics(metrics):
    agents = metrics.get_agent_metrics_dataframe()
    assert len(agents) == 8
    assert (agents['ticks_recorded'] == 40).all()
    assert (agents['total_distance'] >= 0).all()
    assert (agents['max_speed'] >= agents['average_speed']).all()
    assert set(agents['kind']) == {'adult', 'vehicle', 'service_robot'}


def test_summary_statistics(metrics):
    summary = metrics.get_summary_statistics()
    assert summary['ticks'] == 40
    assert summary['simulated_time'] == pytest.approx(4.0)
    assert summary['total_agents'] == 8
    assert sum(summary['state_share'].values()) == pytest.approx(1.0, abs=1e-3)
    assert summary['total_state_changes'] >= 0
