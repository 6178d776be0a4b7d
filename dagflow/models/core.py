"""Core Pydantic models for the DAG engine."""

from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class NodeKind(str, Enum):
    """Tag selecting which executor runs a node."""
    SOURCE_TEXT = "source_text"
    LLM = "llm"
    IMAGE_STUB = "image_stub"
    AUDIO_STUB = "audio_stub"
    OUTPUT = "output"
    CONDITION = "condition"
    TRANSFORM = "transform"


class NodeStatus(str, Enum):
    """Per-node execution status."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (NodeStatus.COMPLETED, NodeStatus.FAILED, NodeStatus.SKIPPED)


class RunStatus(str, Enum):
    """Overall status of a finished run."""
    COMPLETED = "completed"
    FAILED = "failed"
    ABORTED = "aborted"


SYSTEM_NODE_ID = "system"


class ValidationResult(BaseModel):
    """Result of graph validation."""
    is_valid: bool = Field(..., description="Whether the graph is valid")
    errors: List[str] = Field(default_factory=list, description="List of validation errors")
    warnings: List[str] = Field(default_factory=list, description="List of validation warnings")


class Node(BaseModel):
    """A node in a workflow graph. Frozen: kind and config never change after creation."""
    model_config = ConfigDict(frozen=True, use_enum_values=False)

    id: str = Field(..., description="Unique identifier for the node")
    kind: NodeKind = Field(..., description="Node kind selecting the executor")
    label: Optional[str] = Field(None, description="Human readable label")
    config: Dict[str, Any] = Field(default_factory=dict, description="Kind-specific settings")
    position: Optional[Dict[str, Any]] = Field(None, description="Opaque UI metadata, ignored by the engine")

    @field_validator('id')
    @classmethod
    def validate_id(cls, id_value):
        """Ensure node ID is not blank."""
        if not id_value or not id_value.strip():
            raise ValueError("Node ID cannot be empty")
        if id_value.strip() == SYSTEM_NODE_ID:
            raise ValueError(f"Node ID '{SYSTEM_NODE_ID}' is reserved")
        return id_value.strip()

    @property
    def display_name(self) -> str:
        return self.label or self.id


class Edge(BaseModel):
    """A directed edge between two nodes."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(..., description="Edge identifier")
    source: str = Field(..., alias="sourceNodeId", description="Source node ID")
    target: str = Field(..., alias="targetNodeId", description="Target node ID")
    source_handle: Optional[str] = Field(None, alias="sourceHandle", description="Source port on the UI node")
    target_handle: Optional[str] = Field(None, alias="targetHandle", description="Target port on the UI node")

    @field_validator('source', 'target')
    @classmethod
    def validate_node_ids(cls, node_id):
        """Ensure node IDs are not blank."""
        if not node_id or not node_id.strip():
            raise ValueError("Node ID cannot be empty")
        return node_id.strip()


class Graph(BaseModel):
    """A workflow definition: nodes plus edges. Structural checks live in the validator."""
    model_config = ConfigDict(frozen=True)

    nodes: List[Node] = Field(default_factory=list, description="Nodes in the graph")
    edges: List[Edge] = Field(default_factory=list, description="Edges connecting nodes")

    def node_ids(self) -> List[str]:
        """Node ids in declaration order."""
        return [node.id for node in self.nodes]

    def get_node(self, node_id: str) -> Optional[Node]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def incoming_edges(self, node_id: str) -> List[Edge]:
        return [edge for edge in self.edges if edge.target == node_id]

    def outgoing_edges(self, node_id: str) -> List[Edge]:
        return [edge for edge in self.edges if edge.source == node_id]


class LogEntry(BaseModel):
    """One execution event. Produced in execution order and never reordered."""
    node_id: str = Field(..., description="Node ID or 'system'")
    status: NodeStatus = Field(..., description="Status reached by the node")
    message: Optional[str] = Field(None, description="Human readable message or error")
    output: Optional[Any] = Field(None, description="Node output, possibly truncated for display")
    duration_ms: Optional[float] = Field(None, description="Execution duration in milliseconds")
    timestamp: float = Field(..., description="Epoch milliseconds")


class ExecutionResult(BaseModel):
    """Final result of one run."""
    run_id: str = Field(..., description="Unique identifier for the run")
    status: RunStatus = Field(..., description="Overall run status")
    outputs: Dict[str, Any] = Field(default_factory=dict, description="Outputs of completed nodes")
    logs: List[LogEntry] = Field(default_factory=list, description="Ordered execution log")
    node_status: Dict[str, NodeStatus] = Field(default_factory=dict, description="Final status per node")
    errors: Dict[str, str] = Field(default_factory=dict, description="Failure message per failed node")
    total_duration_ms: float = Field(0.0, description="Wall time of the run in milliseconds")

    @property
    def success(self) -> bool:
        return self.status == RunStatus.COMPLETED

    @property
    def execution_order(self) -> List[str]:
        """Node ids in the order they were dispatched."""
        return [
            entry.node_id for entry in self.logs
            if entry.node_id != SYSTEM_NODE_ID and entry.status == NodeStatus.RUNNING
        ]

    def nodes_with_status(self, status: NodeStatus) -> List[str]:
        return [node_id for node_id, node_status in self.node_status.items() if node_status == status]


class ProviderConfig(BaseModel):
    """Settings for the LLM completion provider."""
    provider: str = Field("ollama", description="'ollama' or any OpenAI-compatible provider name")
    base_url: str = Field("http://localhost:11434", description="Provider base URL")
    api_key: str = Field("", description="API key, required for non-ollama providers")
    model: str = Field("llama3", description="Model name")
    system_prompt: Optional[str] = Field(None, description="Default system prompt")
    temperature: Optional[float] = Field(None, description="Sampling temperature (0-2)")
    top_p: Optional[float] = Field(None, description="Nucleus sampling parameter")
    max_tokens: Optional[int] = Field(None, description="Maximum tokens to generate")
    timeout: float = Field(60.0, description="Request timeout in seconds")

    @property
    def is_ollama(self) -> bool:
        return self.provider == "ollama"


class ChatMessage(BaseModel):
    """A role-tagged message sent to the completion provider."""
    role: str = Field(..., description="system, user or assistant")
    content: str = Field(..., description="Message text")
