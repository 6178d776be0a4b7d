"""Executor Registry mapping node kinds to their executors."""

from typing import Dict, Optional

from ..models.core import NodeKind
from .exceptions import ExecutorRegistryError
from .logging import get_logger

logger = get_logger(__name__)


class ExecutorRegistry:
    """Registry holding exactly one executor per node kind."""

    def __init__(self):
        self._executors: Dict[NodeKind, object] = {}

    def register(self, executor, replace: bool = False) -> None:
        """Register an executor under its ``kind``.

        Args:
            executor: A NodeExecutor instance with a ``kind`` attribute
            replace: Allow overriding an already registered kind

        Raises:
            ExecutorRegistryError: If the executor is invalid or the kind is taken
        """
        kind = getattr(executor, "kind", None)
        if kind is None:
            raise ExecutorRegistryError(f"Executor {executor!r} does not declare a node kind", operation="register")

        try:
            kind = NodeKind(kind)
        except ValueError:
            raise ExecutorRegistryError(f"Unknown node kind '{kind}'", kind=str(kind), operation="register")

        if not callable(getattr(executor, "execute", None)):
            raise ExecutorRegistryError(f"Executor for '{kind.value}' must define execute()", kind=kind.value, operation="register")

        if kind in self._executors and not replace:
            raise ExecutorRegistryError(f"An executor for '{kind.value}' is already registered", kind=kind.value, operation="register")

        self._executors[kind] = executor
        logger.debug(f"Registered executor {executor.__class__.__name__} for kind '{kind.value}'")

    def get(self, kind: NodeKind):
        """Retrieve the executor for a node kind.

        Raises:
            ExecutorRegistryError: If no executor is registered for the kind
        """
        executor = self._executors.get(NodeKind(kind))
        if executor is None:
            raise ExecutorRegistryError(f"No executor registered for node kind '{NodeKind(kind).value}'", kind=NodeKind(kind).value, operation="get")
        return executor

    def unregister(self, kind: NodeKind) -> bool:
        """Remove the executor for a kind. Returns False if none was registered."""
        removed = self._executors.pop(NodeKind(kind), None)
        if removed is not None:
            logger.info(f"Unregistered executor for kind '{NodeKind(kind).value}'")
        return removed is not None

    def has(self, kind: NodeKind) -> bool:
        return NodeKind(kind) in self._executors

    def list_kinds(self) -> Dict[str, str]:
        """Registered kinds mapped to their executor class names."""
        return {kind.value: executor.__class__.__name__ for kind, executor in self._executors.items()}


def build_default_registry(provider: Optional[object] = None) -> ExecutorRegistry:
    """Create a registry holding the built-in executor for every node kind.

    Args:
        provider: LLM completion callable for ``llm`` nodes; the HTTP client is used when omitted
    """
    from ..executors import builtin_executors

    registry = ExecutorRegistry()
    for executor in builtin_executors(provider):
        registry.register(executor)
    return registry
