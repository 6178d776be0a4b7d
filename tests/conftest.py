"""Pytest configuration and fixtures."""

import pytest
from typing import Any, Dict, List, Optional

from dagflow.config import get_testing_config
from dagflow.core.execution_context import ExecutionContext
from dagflow.core.execution_engine import DAGExecutionEngine
from dagflow.models.core import ChatMessage, Edge, Graph, Node, NodeKind, ProviderConfig


def make_node(node_id: str, kind: str, **config) -> Node:
    """Build a node with the given kind and config keyword arguments."""
    return Node(id=node_id, kind=NodeKind(kind), config=config)


def make_edge(source: str, target: str, source_handle: Optional[str] = None) -> Edge:
    """Build an edge with a predictable id."""
    return Edge(id=f"e_{source}_{target}", source=source, target=target, source_handle=source_handle)


def make_graph(nodes: List[Node], edges: List[Edge] = None) -> Graph:
    return Graph(nodes=nodes, edges=edges or [])


class RecordingProvider:
    """Fake completion provider recording every call."""

    def __init__(self, reply: str = "Mock LLM response"):
        self.reply = reply
        self.calls: List[Dict[str, Any]] = []

    def __call__(self, messages: List[ChatMessage], config: ProviderConfig) -> str:
        self.calls.append({"messages": messages, "config": config})
        return self.reply


class FailingProvider:
    """Fake completion provider that always raises."""

    def __init__(self, message: str = "API Error: 503 - upstream unavailable"):
        self.message = message

    def __call__(self, messages, config):
        raise ConnectionError(self.message)


@pytest.fixture
def engine_config():
    """Engine configuration for tests."""
    return get_testing_config()


@pytest.fixture
def provider():
    """A recording fake LLM provider."""
    return RecordingProvider()


@pytest.fixture
def engine(provider, engine_config):
    """An engine wired to the recording provider."""
    engine = DAGExecutionEngine(provider=provider, config=engine_config)
    yield engine
    engine.shutdown()


@pytest.fixture
def context_for():
    """Factory building a fresh execution context around a single node."""
    def build(node: Node, provider_config: Optional[ProviderConfig] = None) -> ExecutionContext:
        return ExecutionContext("test-run", Graph(nodes=[node]), provider_config=provider_config)
    return build
