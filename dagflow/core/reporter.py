"""Execution log accumulation and result assembly."""

import time
from typing import Any, Callable, List, Optional

from ..models.core import ExecutionResult, LogEntry, NodeStatus, RunStatus
from .execution_context import ExecutionContext
from .logging import get_logger

logger = get_logger(__name__)

ProgressCallback = Callable[[LogEntry], None]


class RunReporter:
    """Sole writer of a run's execution log.

    Entries are appended in the order they are emitted and pushed to progress
    listeners as they occur. Timestamps never go backwards within a run.
    """

    def __init__(self, run_id: str, listeners: Optional[List[ProgressCallback]] = None, max_output_chars: int = 500):
        self.run_id = run_id
        self.logs: List[LogEntry] = []
        self._listeners = list(listeners or [])
        self._max_output_chars = max_output_chars
        self._last_timestamp = 0.0

    def emit(
        self,
        node_id: str,
        status: NodeStatus,
        message: Optional[str] = None,
        output: Any = None,
        duration_ms: Optional[float] = None
    ) -> LogEntry:
        """Append one entry and notify listeners."""
        entry = LogEntry(
            node_id=node_id,
            status=status,
            message=message,
            output=self._display_output(output),
            duration_ms=round(duration_ms, 3) if duration_ms is not None else None,
            timestamp=self._next_timestamp()
        )
        self.logs.append(entry)

        for listener in self._listeners:
            try:
                listener(entry)
            except Exception as e:
                # A broken listener must not break the run
                logger.error(f"Progress listener failed for run {self.run_id}: {str(e)}")

        return entry

    def build_result(self, context: ExecutionContext, status: RunStatus) -> ExecutionResult:
        """Assemble the final result from the run context and the accumulated log."""
        return ExecutionResult(
            run_id=self.run_id,
            status=status,
            outputs=dict(context.outputs),
            logs=list(self.logs),
            node_status=dict(context.node_status),
            errors=dict(context.errors),
            total_duration_ms=round(context.elapsed_ms(), 3)
        )

    def _display_output(self, output: Any) -> Any:
        if isinstance(output, str) and len(output) > self._max_output_chars:
            return output[:self._max_output_chars] + "..."
        return output

    def _next_timestamp(self) -> float:
        now = time.time() * 1000.0
        if now < self._last_timestamp:
            now = self._last_timestamp
        self._last_timestamp = now
        return now
