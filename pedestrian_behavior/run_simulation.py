#!/usr/bin/env python3
"""
Demo runner for the pedestrian behaviour engine.

Builds a small walled hall with plain, queue, work and attraction waypoints,
a few shelves for a vehicle and a service robot, then steps the scene and
prints per-state occupancy and per-agent statistics.
"""

import argparse
import logging
from typing import Dict, Any

import numpy as np
import pandas as pd
from tqdm import tqdm

from .core.agent import Agent
from .core.environment import AgentGroup, Scene
from .core.states import AgentKind
from .core.waypoints import Waypoint, WaypointMode, WaypointType
from .utils.config import get_simulation_config
from .utils.metrics import SimulationMetrics

logger = logging.getLogger(__name__)


def build_demo_scene(num_agents: int = 20, width: float = 30.0, height: float = 20.0,
                     seed: int = 42, group_size: int = 3, **overrides: Any) -> Scene:
    """Create the demo hall.

    Args:
        num_agents: Number of pedestrians
        width: Hall width in metres
        height: Hall height in metres
        seed: Seed of the shared random source
        group_size: Pedestrians per walking group, 0 for none
        **overrides: Configuration overrides

    Returns:
        A populated scene
    """
    config = get_simulation_config(**overrides)
    scene = Scene(config=config, seed=seed)

    corners = [(0.0, 0.0), (width, 0.0), (width, height), (0.0, height)]
    for start, end in zip(corners, corners[1:] + corners[:1]):
        scene.add_obstacle(start, end)

    entrance = scene.add_waypoint(Waypoint("entrance", (2.0, height / 2), 1.5))
    exit_ = scene.add_waypoint(Waypoint("exit", (width - 2.0, height / 2), 1.5))
    counter = scene.add_waypoint(
        Waypoint("counter", (width / 2, height - 3.0), 1.0, WaypointType.QUEUE)
    )
    desk = scene.add_waypoint(Waypoint("desk", (width / 2, 3.0), 1.0, WaypointType.WORK))
    scene.add_waypoint(
        Waypoint("showcase", (width / 3, height / 2), 3.0, WaypointType.ATTRACTION, probability=0.2)
    )
    shelves = [
        scene.add_waypoint(
            Waypoint(f"shelf_{i}", (width - 4.0, 3.0 + 4.0 * i), 0.8, WaypointType.SHELF,
                     static_obstacle_angle=0.0)
        )
        for i in range(3)
    ]

    rng = np.random.default_rng(seed)
    routes = [[entrance, exit_], [entrance, counter, exit_], [desk, exit_, entrance]]
    group = None
    for agent_id in range(num_agents):
        position = rng.uniform([1.0, 1.0], [width - 1.0, height - 1.0])
        kind = AgentKind.ELDER if agent_id % 7 == 6 else AgentKind.ADULT
        agent = Agent(
            agent_id, position, kind=kind, config=config,
            waypoint_mode=WaypointMode.RANDOM if agent_id % 2 else WaypointMode.SEQUENTIAL,
            destinations=routes[agent_id % len(routes)],
        )
        scene.add_agent(agent)
        if group_size > 1:
            if group is None or len(group.member_ids) >= group_size:
                group = scene.add_group(AgentGroup(len(scene.groups)))
            group.add_member(agent)

    scene.add_agent(Agent(
        num_agents, (width - 6.0, 2.0), kind=AgentKind.VEHICLE, config=config, destinations=shelves
    ))
    scene.add_agent(Agent(
        num_agents + 1, (width / 2, height / 2), kind=AgentKind.SERVICE_ROBOT, config=config,
        destinations=[entrance, exit_],
    ))
    return scene


def run(scene: Scene, steps: int, dt: float, progress: bool = True) -> SimulationMetrics:
    """Step ``scene`` and collect metrics after every tick."""
    metrics = SimulationMetrics()
    for _ in tqdm(range(steps), desc="Simulating", disable=not progress):
        scene.step(dt)
        metrics.record_step(scene)
    return metrics


def main():
    parser = argparse.ArgumentParser(description="Run the pedestrian behaviour demo")
    parser.add_argument("--num-agents", type=int, default=20,
                       help="Number of pedestrians")
    parser.add_argument("--steps", type=int, default=1000,
                       help="Number of simulation ticks")
    parser.add_argument("--dt", type=float, default=0.1,
                       help="Tick length in seconds")
    parser.add_argument("--size", type=float, nargs=2, default=[30.0, 20.0],
                       help="Hall dimensions (width height)")
    parser.add_argument("--group-size", type=int, default=3,
                       help="Pedestrians per group, 0 for none")
    parser.add_argument("--seed", type=int, default=42,
                       help="Random seed")
    parser.add_argument("--log-level", type=str, default="INFO",
                       choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                       help="Logging level")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    width, height = args.size
    scene = build_demo_scene(args.num_agents, width, height, args.seed, args.group_size)
    logger.info(f"Running {args.steps} ticks with {len(scene.agents())} agents")
    metrics = run(scene, args.steps, args.dt, progress=args.log_level != "DEBUG")

    summary: Dict[str, Any] = metrics.get_summary_statistics()
    with pd.option_context('display.max_rows', 50, 'display.width', 120):
        print("\nState share:")
        print(pd.Series(summary.get('state_share', {})).sort_values(ascending=False).to_string())
        print("\nAgents:")
        print(metrics.get_agent_metrics_dataframe().round(2).to_string(index=False))
    logger.info(
        f"Simulated {summary.get('simulated_time', 0.0):.1f} s, "
        f"{summary.get('total_state_changes', 0)} state changes"
    )


if __name__ == "__main__":
    main()
