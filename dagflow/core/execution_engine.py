"""Execution Engine driving a validated graph node by node."""

import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from typing import List, Optional

from ..config import EngineConfig, get_config
from ..models.core import (
    ExecutionResult, Graph, Node, NodeKind, NodeStatus, ProviderConfig,
    RunStatus, SYSTEM_NODE_ID, ValidationResult
)
from .exceptions import (
    AbortedError, ExecutionEngineError, ExecutionFault, ExecutorRegistryError, NodeExecutionError
)
from .execution_context import AbortHandle, ExecutionContext
from .executor_registry import ExecutorRegistry, build_default_registry
from .graph_validator import GraphValidator
from .logging import get_logger, log_with_context, reset_logging_context, set_logging_context
from .reporter import ProgressCallback, RunReporter
from .scheduler import TopologicalScheduler

logger = get_logger(__name__)


class DAGExecutionEngine:
    """Runs workflow graphs sequentially in topological order.

    One run is active at a time. Nodes are dispatched one after another; a
    failed node skips its downstream nodes while unrelated branches keep
    running. Abort is cooperative and checked before each dispatch.
    """

    def __init__(
        self,
        provider=None,
        provider_config: Optional[ProviderConfig] = None,
        registry: Optional[ExecutorRegistry] = None,
        config: Optional[EngineConfig] = None,
        on_progress: Optional[ProgressCallback] = None
    ):
        """Initialize the execution engine.

        Args:
            provider: LLM completion callable ``(messages, provider_config) -> str``;
                the HTTP client in ``dagflow.providers.llm`` is used when omitted
            provider_config: Default provider settings for ``llm`` nodes
            registry: Executor registry; built-in executors are used when omitted
            config: Engine configuration; the global configuration is used when omitted
            on_progress: Optional callback receiving every log entry as it is emitted
        """
        self.config = config or get_config()
        self.provider_config = provider_config or self.config.provider_config()
        self.registry = registry or build_default_registry(provider)
        self.validator = GraphValidator()
        self.scheduler = TopologicalScheduler()

        self._listeners: List[ProgressCallback] = [on_progress] if on_progress else []
        self._lock = threading.Lock()
        self._active_handle: Optional[AbortHandle] = None
        self._background: Optional[ThreadPoolExecutor] = None

        logger.info(f"DAGExecutionEngine initialized with kinds: {', '.join(self.registry.list_kinds())}")

    def add_listener(self, callback: ProgressCallback) -> None:
        """Subscribe to log entries of subsequent runs as they occur."""
        self._listeners.append(callback)

    def remove_listener(self, callback: ProgressCallback) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._active_handle is not None

    def validate(self, graph: Graph) -> ValidationResult:
        """Validate a graph without running it."""
        return self.validator.validate(graph)

    def execute(
        self,
        graph: Graph,
        provider_config: Optional[ProviderConfig] = None,
        abort_handle: Optional[AbortHandle] = None
    ) -> ExecutionResult:
        """
        Run a graph to completion and return its result.

        Args:
            graph: Graph snapshot to execute; it is never modified
            provider_config: Provider settings for this run, defaults to the engine's
            abort_handle: Optional caller-owned handle for cancelling the run

        Returns:
            The final execution result

        Raises:
            MalformedGraphError: If the graph has dangling edges or duplicate ids
            CyclicGraphError: If the graph contains a cycle
            ExecutionEngineError: If another run is already active on this engine
        """
        handle = self._reserve(abort_handle)
        return self._run(graph, provider_config, handle)

    def start_execution(
        self,
        graph: Graph,
        provider_config: Optional[ProviderConfig] = None,
        abort_handle: Optional[AbortHandle] = None
    ) -> "Future[ExecutionResult]":
        """
        Run a graph on a background thread.

        Returns:
            A future resolving to the execution result, or raising the
            pre-run validation error

        Raises:
            ExecutionEngineError: If another run is already active on this engine
        """
        handle = self._reserve(abort_handle)
        try:
            if self._background is None:
                self._background = ThreadPoolExecutor(max_workers=1, thread_name_prefix="dagflow-run")
            return self._background.submit(self._run, graph, provider_config, handle)
        except Exception:
            self._release()
            raise

    def abort_execution(self) -> None:
        """Request cancellation of the active run. No effect when nothing is running."""
        with self._lock:
            handle = self._active_handle
        if handle is None:
            logger.debug("Abort requested with no active run")
            return
        if not handle.aborted:
            logger.info("Abort requested for active run")
        handle.abort()

    def shutdown(self) -> None:
        """Abort any active run and stop the background worker."""
        self.abort_execution()
        if self._background is not None:
            self._background.shutdown(wait=True)
            self._background = None
        logger.info("DAGExecutionEngine shutdown completed")

    def _reserve(self, abort_handle: Optional[AbortHandle]) -> AbortHandle:
        with self._lock:
            if self._active_handle is not None:
                raise ExecutionEngineError("A run is already in progress on this engine")
            self._active_handle = abort_handle or AbortHandle()
            return self._active_handle

    def _release(self) -> None:
        with self._lock:
            self._active_handle = None

    def _run(self, graph: Graph, provider_config: Optional[ProviderConfig], handle: AbortHandle) -> ExecutionResult:
        context_token = None
        try:
            self.validator.check(graph)
            order = self.scheduler.execution_order(graph)

            run_id = str(uuid.uuid4())
            context = ExecutionContext(run_id, graph, handle, provider_config or self.provider_config)
            reporter = RunReporter(run_id, self._listeners, self.config.log_output_max_chars)

            context_token = set_logging_context(run_id=run_id)
            logger.info(f"Starting run {run_id} with {len(order)} nodes")
            return self._drive(order, context, reporter)
        finally:
            if context_token is not None:
                reset_logging_context(context_token)
            self._release()

    def _drive(self, order: List[str], context: ExecutionContext, reporter: RunReporter) -> ExecutionResult:
        graph = context.graph

        if not order:
            reporter.emit(SYSTEM_NODE_ID, NodeStatus.COMPLETED, "No nodes to execute")
            return reporter.build_result(context, RunStatus.COMPLETED)

        reporter.emit(SYSTEM_NODE_ID, NodeStatus.RUNNING, f"Starting execution of {len(order)} nodes")

        for node_id in order:
            node = graph.get_node(node_id)

            if context.observe_abort():
                context.mark_skipped(node_id)
                reporter.emit(node_id, NodeStatus.SKIPPED, "Execution aborted")
                continue

            reason = self._skip_reason(node, context)
            if reason:
                context.mark_skipped(node_id)
                reporter.emit(node_id, NodeStatus.SKIPPED, reason)
                logger.debug(f"Skipped node {node_id}: {reason}")
                continue

            self._execute_node(node, context, reporter)

        # An abort that arrived while the last node was in flight still counts
        context.observe_abort()
        status = self._final_status(context)

        if status == RunStatus.ABORTED:
            reporter.emit(SYSTEM_NODE_ID, NodeStatus.SKIPPED, "Execution aborted")
        elif status == RunStatus.FAILED:
            reporter.emit(SYSTEM_NODE_ID, NodeStatus.FAILED,
                          f"Workflow execution failed: {len(context.errors)} node(s) failed")
        else:
            reporter.emit(SYSTEM_NODE_ID, NodeStatus.COMPLETED, "Workflow execution completed")

        result = reporter.build_result(context, status)
        logger.info(f"Run {context.run_id} finished with status {status.value} in {result.total_duration_ms:.1f}ms")
        return result

    def _skip_reason(self, node: Node, context: ExecutionContext) -> Optional[str]:
        """Explain why a node must be skipped, or return None if it may run."""
        incoming = context.graph.incoming_edges(node.id)
        blocked = context.blocked_edges(node.id)
        if not blocked:
            return None

        if node.config.get("continue_on_error"):
            if len(blocked) < len(incoming):
                return None
            try:
                executor = self.registry.get(node.kind)
            except ExecutorRegistryError:
                return None
            if not getattr(executor, "requires_input", True):
                return None
            return "No upstream node delivered a value"

        edge = blocked[0]
        source_status = context.node_status.get(edge.source)
        if source_status == NodeStatus.FAILED:
            return f"Upstream node '{edge.source}' failed"
        if source_status == NodeStatus.SKIPPED:
            return f"Upstream node '{edge.source}' was skipped"
        return f"Skipped by condition branch '{edge.source}'"

    def _execute_node(self, node: Node, context: ExecutionContext, reporter: RunReporter) -> None:
        """Dispatch one node to its executor and record the outcome."""
        context.mark_running(node.id)
        reporter.emit(node.id, NodeStatus.RUNNING, f"Executing: {node.display_name}")

        try:
            executor = self.registry.get(node.kind)
            inputs = context.gather_inputs(node.id)
            output = executor.execute(node, inputs, context)
        except ExecutionFault as e:
            message = e.message
        except Exception as e:
            logger.exception(f"Unexpected error in node {node.id}")
            message = str(e) or e.__class__.__name__
        else:
            duration_ms = context.mark_completed(node.id, output)
            reporter.emit(node.id, NodeStatus.COMPLETED, output=output, duration_ms=duration_ms)
            logger.debug(f"Node {node.id} completed in {duration_ms:.1f}ms")
            return

        duration_ms = context.mark_failed(node.id, message)
        reporter.emit(node.id, NodeStatus.FAILED, message, duration_ms=duration_ms)
        log_with_context(
            logger, logging.WARNING,
            f"Node {node.id} failed: {message}",
            node_id=node.id,
            node_kind=node.kind.value,
            run_id=context.run_id
        )

    def _final_status(self, context: ExecutionContext) -> RunStatus:
        """Aborted if abort was observed; failed only if something failed and no output node completed."""
        if context.abort_observed:
            return RunStatus.ABORTED
        if not context.errors:
            return RunStatus.COMPLETED

        for node in context.graph.nodes:
            if node.kind == NodeKind.OUTPUT and context.node_status.get(node.id) == NodeStatus.COMPLETED:
                return RunStatus.COMPLETED
        return RunStatus.FAILED


def raise_for_status(result: ExecutionResult) -> ExecutionResult:
    """Raise if a run did not complete, otherwise return the result unchanged.

    Raises:
        AbortedError: If the run was aborted
        NodeExecutionError: If the run failed
    """
    if result.status == RunStatus.ABORTED:
        raise AbortedError(run_id=result.run_id)
    if result.status == RunStatus.FAILED:
        failed = ", ".join(f"{node_id}: {message}" for node_id, message in result.errors.items())
        raise NodeExecutionError(f"Run failed ({failed})", run_id=result.run_id)
    return result
