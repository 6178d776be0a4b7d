"""Topological scheduling of validated graphs."""

import heapq
from typing import Dict, List, Tuple

from ..models.core import Graph
from .exceptions import CyclicGraphError
from .logging import get_logger

logger = get_logger(__name__)


class TopologicalScheduler:
    """Computes a deterministic execution order with Kahn's algorithm.

    Among the nodes whose dependencies are satisfied, the one declared earliest
    in ``graph.nodes`` is always released first, so identical graphs produce
    identical schedules.
    """

    def execution_order(self, graph: Graph) -> List[str]:
        """
        Compute a linear order in which every edge source precedes its target.

        Args:
            graph: Graph with valid edge references

        Returns:
            Node ids in execution order

        Raises:
            CyclicGraphError: If fewer nodes were scheduled than exist
        """
        node_ids, in_degree, adjacency = self._build(graph)
        position = {node_id: index for index, node_id in enumerate(node_ids)}

        ready = [index for index, node_id in enumerate(node_ids) if in_degree[node_id] == 0]
        heapq.heapify(ready)
        order = []

        while ready:
            node_id = node_ids[heapq.heappop(ready)]
            order.append(node_id)
            for neighbor in adjacency[node_id]:
                in_degree[neighbor] -= 1
                if in_degree[neighbor] == 0:
                    heapq.heappush(ready, position[neighbor])

        self._check_complete(node_ids, in_degree, len(order))
        logger.debug(f"Execution order: {order}")
        return order

    def execution_layers(self, graph: Graph) -> List[List[str]]:
        """
        Group the schedule into dependency layers.

        Every node in a layer depends only on nodes in earlier layers. Layers are
        informational; the engine still runs nodes one at a time.

        Raises:
            CyclicGraphError: If fewer nodes were scheduled than exist
        """
        node_ids, in_degree, adjacency = self._build(graph)
        position = {node_id: index for index, node_id in enumerate(node_ids)}

        layer = [node_id for node_id in node_ids if in_degree[node_id] == 0]
        layers = []
        scheduled = 0

        while layer:
            layers.append(layer)
            scheduled += len(layer)
            released = []
            for node_id in layer:
                for neighbor in adjacency[node_id]:
                    in_degree[neighbor] -= 1
                    if in_degree[neighbor] == 0:
                        released.append(neighbor)
            layer = sorted(released, key=position.__getitem__)

        self._check_complete(node_ids, in_degree, scheduled)
        return layers

    def _build(self, graph: Graph) -> Tuple[List[str], Dict[str, int], Dict[str, List[str]]]:
        """Build in-degree counts and adjacency lists keyed by node id."""
        node_ids = graph.node_ids()
        in_degree: Dict[str, int] = {node_id: 0 for node_id in node_ids}
        adjacency: Dict[str, List[str]] = {node_id: [] for node_id in node_ids}

        for edge in graph.edges:
            if edge.source in adjacency and edge.target in in_degree:
                adjacency[edge.source].append(edge.target)
                in_degree[edge.target] += 1

        return node_ids, in_degree, adjacency

    def _check_complete(self, node_ids: List[str], in_degree: Dict[str, int], scheduled: int) -> None:
        if scheduled == len(node_ids):
            return
        remaining = [node_id for node_id in node_ids if in_degree[node_id] > 0]
        raise CyclicGraphError(
            f"Cycle detected: {len(node_ids) - scheduled} nodes could not be scheduled",
            cycle=remaining
        )
