"""Metrics collection and analysis for the behaviour simulation."""

from typing import Any, Dict, List
import numpy as np
import pandas as pd

from ..core.states import AgentState, state_to_name


class SimulationMetrics:
    """Collects per-tick state occupancy and per-agent movement statistics.

    Everything is kept in memory; call :meth:`record_step` after each
    ``Scene.step``.
    """

    def __init__(self):
        """Initialize the metrics collector."""
        self.metrics: Dict[str, List[Any]] = {
            'tick': [],
            'sim_time': [],
            'agents_total': [],
            'agents_moving': [],
            'average_speed': [],
        }
        self.state_counts: Dict[str, List[int]] = {state_to_name(state): [] for state in AgentState}
        self.agent_metrics: Dict[int, Dict[str, Any]] = {}

    def record_step(self, scene):
        """Record metrics for the current simulation step.

        Args:
            scene: The simulation scene
        """
        agents = scene.agents()
        speeds = [float(np.linalg.norm(agent.velocity)) for agent in agents]

        self.metrics['tick'].append(scene.tick)
        self.metrics['sim_time'].append(scene.current_sim_time())
        self.metrics['agents_total'].append(len(agents))
        self.metrics['agents_moving'].append(sum(1 for speed in speeds if speed > 0.05))
        self.metrics['average_speed'].append(float(np.mean(speeds)) if speeds else 0.0)

        counts = {name: 0 for name in self.state_counts}
        for agent in agents:
            counts[state_to_name(agent.state)] += 1
        for name, count in counts.items():
            self.state_counts[name].append(count)

        self._update_agent_metrics(agents, scene.tick)

    def _update_agent_metrics(self, agents, tick: int):
        """Update metrics for individual agents."""
        for agent in agents:
            if agent.agent_id not in self.agent_metrics:
                self.agent_metrics[agent.agent_id] = {
                    'ticks': [],
                    'positions': [],
                    'speeds': [],
                    'states': [],
                    'kind': agent.kind.value,
                }
            record = self.agent_metrics[agent.agent_id]
            record['ticks'].append(tick)
            record['positions'].append(agent.position.copy())
            record['speeds'].append(float(np.linalg.norm(agent.velocity)))
            record['states'].append(state_to_name(agent.state))

    def get_metrics_dataframe(self) -> pd.DataFrame:
        """Per-tick metrics, one column per state holding its occupancy."""
        df = pd.DataFrame(self.metrics)
        states = pd.DataFrame(self.state_counts)
        return pd.concat([df, states], axis=1)

    def get_state_occupancy_dataframe(self) -> pd.DataFrame:
        """Long format occupancy: one row per (tick, state) with a non-zero count."""
        df = self.get_metrics_dataframe()
        if df.empty:
            return pd.DataFrame(columns=['tick', 'state', 'count'])
        long = df.melt(
            id_vars=['tick'], value_vars=list(self.state_counts),
            var_name='state', value_name='count'
        )
        return long[long['count'] > 0].sort_values(['tick', 'state']).reset_index(drop=True)

    def get_agent_metrics_dataframe(self) -> pd.DataFrame:
        """Get agent-specific metrics as a pandas DataFrame."""
        rows = []
        for agent_id, metrics in self.agent_metrics.items():
            if not metrics['ticks']:
                continue

            states = pd.Series(metrics['states'])
            row = {
                'agent_id': agent_id,
                'kind': metrics['kind'],
                'ticks_recorded': len(metrics['ticks']),
                'average_speed': np.mean(metrics['speeds']),
                'max_speed': max(metrics['speeds']),
                'total_distance': self._calculate_total_distance(metrics['positions']),
                'state_changes': int((states != states.shift()).sum() - 1),
                'most_common_state': states.mode().iloc[0],
                'final_state': metrics['states'][-1],
            }
            rows.append(row)

        return pd.DataFrame(rows)

    def _calculate_total_distance(self, positions: List[np.ndarray]) -> float:
        """Calculate total distance traveled from a list of positions."""
        if len(positions) < 2:
            return 0.0
        steps = np.diff(np.array(positions), axis=0)
        return float(np.linalg.norm(steps, axis=1).sum())

    def get_summary_statistics(self) -> Dict[str, Any]:
        """Get summary statistics of the simulation."""
        if not self.metrics['tick']:
            return {}

        df = self.get_metrics_dataframe()
        agent_df = self.get_agent_metrics_dataframe()

        occupancy = df[list(self.state_counts)].sum()
        visited = occupancy[occupancy > 0]
        return {
            'ticks': len(df),
            'simulated_time': self.metrics['sim_time'][-1],
            'total_agents': len(agent_df),
            'average_speed': float(df['average_speed'].mean()),
            'avg_distance_traveled': float(agent_df['total_distance'].mean()) if not agent_df.empty else 0.0,
            'total_state_changes': int(agent_df['state_changes'].sum()) if not agent_df.empty else 0,
            'state_share': (visited / visited.sum()).round(4).to_dict(),
        }
