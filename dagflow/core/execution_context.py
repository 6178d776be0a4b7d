"""Run-scoped execution state."""

import threading
import time
from typing import Any, Dict, List, Optional

from ..models.core import Edge, Graph, NodeStatus, ProviderConfig


class AbortHandle:
    """Thread-safe cancellation flag a caller can set while a run is in flight.

    Setting it more than once has no further effect.
    """

    def __init__(self):
        self._event = threading.Event()

    def abort(self) -> None:
        self._event.set()

    @property
    def aborted(self) -> bool:
        return self._event.is_set()


class ConditionDecision:
    """Outcome of a ``condition`` node and the outgoing edges it leaves active."""

    def __init__(self, passed: bool, rule: str, reason: str):
        self.passed = passed
        self.rule = rule
        self.reason = reason

    def edge_active(self, edge: Edge) -> bool:
        """Edges on a ``false`` handle fire when the check fails; every other edge when it passes."""
        if edge.source_handle == "false":
            return not self.passed
        return self.passed

    def to_output(self) -> Dict[str, Any]:
        return {"passed": self.passed, "rule": self.rule, "reason": self.reason}


class ExecutionContext:
    """Mutable state for a single run: outputs, statuses, decisions and the abort flag.

    Created fresh at run start and discarded when the run ends.
    """

    def __init__(
        self,
        run_id: str,
        graph: Graph,
        abort_handle: Optional[AbortHandle] = None,
        provider_config: Optional[ProviderConfig] = None
    ):
        self.run_id = run_id
        self.graph = graph
        self.provider_config = provider_config or ProviderConfig()
        self.abort_handle = abort_handle or AbortHandle()
        self.outputs: Dict[str, Any] = {}
        self.node_status: Dict[str, NodeStatus] = {node_id: NodeStatus.PENDING for node_id in graph.node_ids()}
        self.decisions: Dict[str, ConditionDecision] = {}
        self.errors: Dict[str, str] = {}
        self.node_started: Dict[str, float] = {}
        self.node_finished: Dict[str, float] = {}
        self.start_time = time.perf_counter()
        self._abort_observed = False

    @property
    def aborted(self) -> bool:
        return self.abort_handle.aborted

    def observe_abort(self) -> bool:
        """Check the abort flag at a dispatch checkpoint and remember that it was seen."""
        if self.aborted:
            self._abort_observed = True
        return self._abort_observed

    @property
    def abort_observed(self) -> bool:
        return self._abort_observed

    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.start_time) * 1000.0

    def mark_running(self, node_id: str) -> None:
        self._transition(node_id, NodeStatus.RUNNING)
        self.node_started[node_id] = time.perf_counter()

    def mark_completed(self, node_id: str, output: Any) -> float:
        self._transition(node_id, NodeStatus.COMPLETED)
        self.outputs[node_id] = output
        return self._finish(node_id)

    def mark_failed(self, node_id: str, message: str) -> float:
        self._transition(node_id, NodeStatus.FAILED)
        self.errors[node_id] = message
        return self._finish(node_id)

    def mark_skipped(self, node_id: str) -> None:
        self._transition(node_id, NodeStatus.SKIPPED)

    def record_decision(self, node_id: str, decision: ConditionDecision) -> None:
        self.decisions[node_id] = decision

    def blocked_edges(self, node_id: str) -> List[Edge]:
        """Incoming edges that cannot deliver a value to ``node_id``.

        An edge is blocked when its source failed or was skipped, or when the
        source is a condition that deactivated this edge.
        """
        blocked = []
        for edge in self.graph.incoming_edges(node_id):
            source_status = self.node_status.get(edge.source)
            if source_status in (NodeStatus.FAILED, NodeStatus.SKIPPED):
                blocked.append(edge)
                continue
            decision = self.decisions.get(edge.source)
            if decision is not None and not decision.edge_active(edge):
                blocked.append(edge)
        return blocked

    def gather_inputs(self, node_id: str) -> Dict[str, Any]:
        """Collect upstream outputs for ``node_id`` over its deliverable incoming edges.

        Keys are upstream node ids in incoming-edge order; a source connected by
        several edges appears once.
        """
        blocked = self.blocked_edges(node_id)
        inputs: Dict[str, Any] = {}
        for edge in self.graph.incoming_edges(node_id):
            if edge in blocked or edge.source in inputs:
                continue
            if edge.source in self.outputs:
                inputs[edge.source] = self.outputs[edge.source]
        return inputs

    def _transition(self, node_id: str, status: NodeStatus) -> None:
        current = self.node_status.get(node_id, NodeStatus.PENDING)
        if current.is_terminal:
            raise ValueError(f"Node {node_id} is already {current.value} and cannot become {status.value}")
        self.node_status[node_id] = status

    def _finish(self, node_id: str) -> float:
        finished = time.perf_counter()
        self.node_finished[node_id] = finished
        started = self.node_started.get(node_id, finished)
        return (finished - started) * 1000.0
