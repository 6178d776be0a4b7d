"""Data models for the DAG engine."""

from .core import (
    NodeKind,
    NodeStatus,
    RunStatus,
    SYSTEM_NODE_ID,
    ValidationResult,
    Node,
    Edge,
    Graph,
    LogEntry,
    ExecutionResult,
    ProviderConfig,
    ChatMessage,
)

__all__ = [
    "NodeKind",
    "NodeStatus",
    "RunStatus",
    "SYSTEM_NODE_ID",
    "ValidationResult",
    "Node",
    "Edge",
    "Graph",
    "LogEntry",
    "ExecutionResult",
    "ProviderConfig",
    "ChatMessage",
]
