"""Core DAG engine components."""

from .exceptions import (
    WorkflowEngineError,
    GraphValidationError,
    MalformedGraphError,
    CyclicGraphError,
    NodeExecutionError,
    ExecutionFault,
    AbortedError,
    ExecutionEngineError,
    ExecutorRegistryError,
    ProviderError,
    ConfigurationError,
)
from .logging import setup_logging, get_logger
from .graph_validator import GraphValidator
from .scheduler import TopologicalScheduler
from .execution_context import AbortHandle, ExecutionContext
from .executor_registry import ExecutorRegistry, build_default_registry
from .reporter import RunReporter
from .execution_engine import DAGExecutionEngine, raise_for_status

__all__ = [
    "WorkflowEngineError",
    "GraphValidationError",
    "MalformedGraphError",
    "CyclicGraphError",
    "NodeExecutionError",
    "ExecutionFault",
    "AbortedError",
    "ExecutionEngineError",
    "ExecutorRegistryError",
    "ProviderError",
    "ConfigurationError",
    "setup_logging",
    "get_logger",
    "GraphValidator",
    "TopologicalScheduler",
    "AbortHandle",
    "ExecutionContext",
    "ExecutorRegistry",
    "build_default_registry",
    "RunReporter",
    "DAGExecutionEngine",
    "raise_for_status",
]
