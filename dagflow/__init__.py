"""DAG execution engine for node-based LLM workflows."""

from .core import (
    DAGExecutionEngine,
    AbortHandle,
    raise_for_status,
    MalformedGraphError,
    CyclicGraphError,
    ExecutionFault,
    AbortedError,
)
from .models import Node, Edge, Graph, NodeKind, NodeStatus, RunStatus, ExecutionResult, LogEntry, ProviderConfig

__version__ = "1.0.0"

__all__ = [
    "DAGExecutionEngine",
    "AbortHandle",
    "raise_for_status",
    "MalformedGraphError",
    "CyclicGraphError",
    "ExecutionFault",
    "AbortedError",
    "Node",
    "Edge",
    "Graph",
    "NodeKind",
    "NodeStatus",
    "RunStatus",
    "ExecutionResult",
    "LogEntry",
    "ProviderConfig",
]
