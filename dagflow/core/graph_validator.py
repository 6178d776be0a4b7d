"""Graph Validator for structural and acyclicity checks before a run."""

from typing import Dict, List, Optional

from ..models.core import Graph, ValidationResult
from .exceptions import CyclicGraphError, MalformedGraphError
from .logging import get_logger

logger = get_logger(__name__)

# Three-colour DFS marks
_UNVISITED = 0
_IN_PROGRESS = 1
_DONE = 2


class GraphValidator:
    """Validates workflow graphs for dangling references, duplicate ids and cycles."""

    def check(self, graph: Graph) -> None:
        """
        Validate a graph, raising on the first structural problem.

        Args:
            graph: The graph to validate

        Raises:
            MalformedGraphError: If node ids repeat or an edge references a missing node
            CyclicGraphError: If the edges contain a cycle
        """
        logger.debug(f"Validating graph with {len(graph.nodes)} nodes and {len(graph.edges)} edges")

        errors = self._find_reference_errors(graph)
        if errors:
            error_msg = f"Graph validation failed: {'; '.join(errors)}"
            logger.error(error_msg)
            raise MalformedGraphError(error_msg, validation_errors=errors)

        cycle = self.find_cycle(graph)
        if cycle is not None:
            error_msg = f"Cycle detected between nodes: {' -> '.join(cycle)}"
            logger.error(error_msg)
            raise CyclicGraphError(error_msg, cycle=cycle)

    def validate(self, graph: Graph) -> ValidationResult:
        """
        Validate a graph without raising.

        Args:
            graph: The graph to validate

        Returns:
            ValidationResult: Validation results with errors and warnings
        """
        errors = self._find_reference_errors(graph)
        warnings = []

        if not errors:
            cycle = self.find_cycle(graph)
            if cycle is not None:
                errors.append(f"Cycle detected between nodes: {' -> '.join(cycle)}")

        isolated_nodes = self._find_isolated_nodes(graph)
        if isolated_nodes:
            warnings.append(f"Isolated nodes detected: {', '.join(isolated_nodes)}")

        result = ValidationResult(
            is_valid=len(errors) == 0,
            errors=errors,
            warnings=warnings
        )

        logger.debug(f"Graph validation completed. Valid: {result.is_valid}, "
                     f"Errors: {len(result.errors)}, Warnings: {len(result.warnings)}")
        return result

    def find_cycle(self, graph: Graph) -> Optional[List[str]]:
        """
        Find a cycle using depth-first search with three-colour marking.

        Args:
            graph: Graph whose edge references are already known to be valid

        Returns:
            The node ids on the cycle in traversal order (first node repeated at
            the end), or None if the graph is acyclic
        """
        adjacency: Dict[str, List[str]] = {node_id: [] for node_id in graph.node_ids()}
        for edge in graph.edges:
            if edge.source in adjacency:
                adjacency[edge.source].append(edge.target)

        colour = {node_id: _UNVISITED for node_id in adjacency}

        # Iterative DFS so deep chains cannot hit the recursion limit
        for root in graph.node_ids():
            if colour[root] != _UNVISITED:
                continue

            path = [root]
            iterators = [iter(adjacency[root])]
            colour[root] = _IN_PROGRESS

            while iterators:
                neighbor = next(iterators[-1], None)
                if neighbor is None:
                    colour[path.pop()] = _DONE
                    iterators.pop()
                    continue

                if colour[neighbor] == _IN_PROGRESS:
                    start = path.index(neighbor)
                    return path[start:] + [neighbor]

                if colour[neighbor] == _UNVISITED:
                    colour[neighbor] = _IN_PROGRESS
                    path.append(neighbor)
                    iterators.append(iter(adjacency[neighbor]))

        return None

    def _find_reference_errors(self, graph: Graph) -> List[str]:
        """Collect duplicate node ids and dangling edge references."""
        errors = []

        seen = set()
        duplicates = []
        for node_id in graph.node_ids():
            if node_id in seen and node_id not in duplicates:
                duplicates.append(node_id)
            seen.add(node_id)
        if duplicates:
            errors.append(f"Duplicate node ids: {', '.join(duplicates)}")

        for edge in graph.edges:
            if edge.source not in seen:
                errors.append(f"Edge '{edge.id}' references non-existent source node: '{edge.source}'")
            if edge.target not in seen:
                errors.append(f"Edge '{edge.id}' references non-existent target node: '{edge.target}'")

        return errors

    def _find_isolated_nodes(self, graph: Graph) -> List[str]:
        """Find nodes with no incoming or outgoing edges in a multi-node graph."""
        if len(graph.nodes) < 2:
            return []

        connected = set()
        for edge in graph.edges:
            connected.add(edge.source)
            connected.add(edge.target)

        return [node_id for node_id in graph.node_ids() if node_id not in connected]
