"""
Visualization Module for grid experiments.
"""

import logging
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from matplotlib.lines import Line2D

from .config import SINK_ID, PhyStandard
from .engine import PHY_PROFILES

logger = logging.getLogger(__name__)


def plot_grid_topology(topology, flows=None, phy: PhyStandard = PhyStandard.WIFI_80211A,
                       save_path: str = 'grid_topology.png'):
    """
    Plot mesh points, radio links within range, the sink and flow sources.
    """
    fig, ax = plt.subplots(figsize=(10, 8))

    graph = topology.connectivity_graph(PHY_PROFILES[phy].radio_range)
    for a, b in graph.edges():
        na, nb = topology.nodes[a], topology.nodes[b]
        ax.plot([na.x, nb.x], [na.y, nb.y], color='gray', alpha=0.3,
                linewidth=0.8, zorder=1)

    sources = set(flows.sources) if flows is not None else set()
    for node in topology.nodes:
        if node.node_id == SINK_ID:
            continue
        color = '#e74c3c' if node.node_id in sources else '#3498db'
        ax.scatter(node.x, node.y, c=color, s=120, marker='o',
                   edgecolors='black', linewidths=0.5, zorder=3)
        ax.annotate(str(node.node_id), (node.x, node.y), textcoords="offset points",
                    xytext=(0, 8), ha='center', fontsize=8)

    sink = topology.sink
    ax.scatter(sink.x, sink.y, c='gold', s=400, marker='*',
               edgecolors='black', linewidths=2, zorder=10)
    ax.annotate('SINK', (sink.x, sink.y), textcoords="offset points",
                xytext=(0, 15), ha='center', fontsize=10, fontweight='bold')

    margin = topology.step * 0.5
    ax.set_xlim(-margin, topology.width + margin)
    ax.set_ylim(-margin, topology.height + margin)
    ax.set_xlabel('X Position (m)', fontsize=12)
    ax.set_ylabel('Y Position (m)', fontsize=12)
    ax.set_title(f'Mesh Grid {topology.x_size}x{topology.y_size}, step {topology.step:g} m\n'
                 f'{PHY_PROFILES[phy].name}, {len(sources)} flow(s), seed {topology.seed}',
                 fontsize=13, fontweight='bold')
    ax.grid(True, alpha=0.3)
    ax.set_aspect('equal')

    legend_elements = [
        Line2D([0], [0], marker='*', color='w', markerfacecolor='gold',
               markersize=15, label='Sink'),
        Line2D([0], [0], marker='o', color='w', markerfacecolor='#e74c3c',
               markersize=10, label='Flow source'),
        Line2D([0], [0], marker='o', color='w', markerfacecolor='#3498db',
               markersize=10, label='Mesh point'),
    ]
    ax.legend(handles=legend_elements, loc='upper right', fontsize=10)

    plt.tight_layout()
    plt.savefig(save_path, dpi=150, bbox_inches='tight')
    plt.close(fig)
    logger.info("Grid topology saved to: %s", save_path)
    return save_path


def plot_metric_variance(df: pd.DataFrame, metric: str = 'DeliveryRate',
                         save_path: str = 'metric_variance.png'):
    """Metric value of every flow per seed, with the mean across seeds."""
    if metric not in df.columns:
        raise ValueError(f"Unknown metric column: {metric}")

    data = df[['Seed', metric]].dropna()
    fig, ax = plt.subplots(figsize=(10, 5))

    if not data.empty:
        ax.scatter(data['Seed'], data[metric], c='#3498db', s=30, alpha=0.7,
                   label='Flow', zorder=3)
        per_seed = data.groupby('Seed')[metric].mean()
        ax.plot(per_seed.index, per_seed.values, 'b-', linewidth=1.5,
                label='Seed mean', zorder=2)
        overall = float(np.mean(data[metric]))
        ax.axhline(overall, color='red', linestyle='--', linewidth=1,
                   label=f'Mean = {overall:.4g}')

    ax.set_xlabel('Seed', fontsize=12)
    ax.set_ylabel(metric, fontsize=12)
    ax.set_title(f'{metric} across seeds', fontsize=13, fontweight='bold')
    ax.grid(True, alpha=0.3)
    ax.legend(loc='best', fontsize=10)

    plt.tight_layout()
    plt.savefig(save_path, dpi=150, bbox_inches='tight')
    plt.close(fig)
    logger.info("%s variance plot saved to: %s", metric, save_path)
    return save_path
