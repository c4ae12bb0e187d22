"""
Network Topology Module.
Places the mesh points on a static grid (row-major, uniform spacing).
"""

import logging
import numpy as np
import networkx as nx
from typing import List, Dict, Tuple
from dataclasses import dataclass
from .config import X_SIZE, Y_SIZE, STEP, SEED, SINK_ID

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Node:
    """A single mesh point in the grid."""
    node_id: int
    x: float
    y: float
    is_sink: bool = False

    @property
    def position(self) -> Tuple[float, float]:
        return (self.x, self.y)


class GridTopology:
    """
    Static grid of x_size * y_size mesh points.

    - Node i sits at column i % x_size, row i // x_size
    - Position is (col * step, row * step), so node 0 is at (0, 0)
    - Node 0 is the sink
    - `rng` is the mobility random source, seeded from the experiment seed
    """

    def __init__(self, x_size: int = X_SIZE, y_size: int = Y_SIZE,
                 step: float = STEP, seed: int = SEED):
        self.x_size = x_size
        self.y_size = y_size
        self.step = step
        self.seed = seed

        self.rng = np.random.RandomState(seed)

        self.nodes: Tuple[Node, ...] = tuple(self._create_nodes())

        logger.debug("Grid %dx%d, step %.1f m, seed %d",
                     x_size, y_size, step, seed)

    def _create_nodes(self) -> List[Node]:
        """Row-first grid placement."""
        nodes = []
        for node_id in range(self.x_size * self.y_size):
            row, col = divmod(node_id, self.x_size)
            nodes.append(Node(
                node_id=node_id,
                x=col * self.step,
                y=row * self.step,
                is_sink=(node_id == SINK_ID)
            ))
        return nodes

    @property
    def n_nodes(self) -> int:
        return len(self.nodes)

    @property
    def sink(self) -> Node:
        return self.nodes[SINK_ID]

    @property
    def width(self) -> float:
        return (self.x_size - 1) * self.step

    @property
    def height(self) -> float:
        return (self.y_size - 1) * self.step

    def positions(self) -> List[Tuple[float, float]]:
        return [node.position for node in self.nodes]

    def get_distance(self, node1_id: int, node2_id: int) -> float:
        """Euclidean distance between two nodes."""
        n1 = self.nodes[node1_id]
        n2 = self.nodes[node2_id]
        return float(np.hypot(n1.x - n2.x, n1.y - n2.y))

    def get_distance_to_sink(self, node_id: int) -> float:
        return self.get_distance(node_id, SINK_ID)

    def connectivity_graph(self, radio_range: float) -> nx.Graph:
        """
        Graph with one edge per node pair closer than `radio_range`.
        Edge weight is the link length in meters.
        """
        graph = nx.Graph()
        for node in self.nodes:
            graph.add_node(node.node_id, pos=node.position)

        coords = np.array(self.positions())
        for i in range(self.n_nodes):
            dists = np.hypot(coords[i + 1:, 0] - coords[i, 0],
                             coords[i + 1:, 1] - coords[i, 1])
            for offset in np.nonzero(dists <= radio_range)[0]:
                j = i + 1 + int(offset)
                graph.add_edge(i, j, length=float(dists[offset]))
        return graph

    def hop_counts_to_sink(self, radio_range: float) -> Dict[int, int]:
        """Shortest hop count from every reachable node to the sink."""
        graph = self.connectivity_graph(radio_range)
        return dict(nx.single_source_shortest_path_length(graph, SINK_ID))

    def print_summary(self):
        """Print grid summary."""
        print("=" * 60)
        print("GRID TOPOLOGY SUMMARY")
        print("=" * 60)
        print(f"Total Nodes: {self.n_nodes}")
        print(f"Grid: {self.x_size}x{self.y_size}, step {self.step:g} m")
        print(f"Area: {self.width:g}x{self.height:g}m")
        print(f"Sink Node: {SINK_ID} at ({self.sink.x:.1f}, {self.sink.y:.1f})")
        print("=" * 60)


def create_grid_topology(x_size: int, y_size: int, step: float, seed: int) -> GridTopology:
    """Build the grid for one experiment run."""
    return GridTopology(x_size=x_size, y_size=y_size, step=step, seed=seed)
