"""Core Pydantic models for workflow graphs, execution logs and runs."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import Field, ValidationError, field_validator, model_validator

from .nodes import CONFIG_MODELS, NodeKind, new_id
from .rules import CamelModel


class Position(CamelModel):
    """Canvas position of a node. Carried through untouched."""
    x: float = 0
    y: float = 0


class NodeInstance(CamelModel):
    """A step of a workflow graph."""
    id: str = Field(default_factory=new_id, description="Unique identifier for the node")
    kind: NodeKind = Field(..., description="Node kind tag")
    name: str = Field(..., description="Display name used in execution logs")
    input_schema: Dict[str, Any] = Field(default_factory=dict, description="Schema received from upstream")
    output_schema: Dict[str, Any] = Field(default_factory=dict, description="Schema published downstream")
    config: Dict[str, Any] = Field(default_factory=dict, description="Kind-specific configuration")
    position: Position = Field(default_factory=Position)

    @field_validator('id')
    @classmethod
    def validate_id(cls, id_value):
        """Ensure node ID is not blank."""
        if not id_value or not id_value.strip():
            raise ValueError("Node ID cannot be empty")
        return id_value.strip()

    @model_validator(mode='after')
    def validate_config(self):
        """Ensure the config parses as the kind's configuration model."""
        try:
            self.parsed_config()
        except ValidationError as e:
            raise ValueError(f"Invalid {self.kind.value} config for node '{self.id}': {e}")
        return self

    def parsed_config(self):
        """Return the config as its kind-specific model."""
        return CONFIG_MODELS[self.kind].model_validate(self.config)

    def with_config(self, config) -> "NodeInstance":
        """Return a copy of this node holding ``config``."""
        return self.model_copy(update={
            "config": config.model_dump(by_alias=True, mode="json", exclude_none=True)
        })


class Edge(CamelModel):
    """A connection between two nodes, optionally bound to named handles."""
    id: str = Field(default_factory=new_id)
    source_node_id: str
    target_node_id: str
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None


class WorkflowGraph(CamelModel):
    """A persisted workflow: nodes plus the edges connecting them."""
    id: str = Field(default_factory=new_id)
    name: str = Field(default="Untitled sequence")
    nodes: List[NodeInstance] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator('nodes')
    @classmethod
    def validate_unique_node_ids(cls, nodes):
        """Ensure all node IDs are unique."""
        node_ids = [node.id for node in nodes]
        if len(node_ids) != len(set(node_ids)):
            raise ValueError("All node IDs must be unique")
        return nodes

    @model_validator(mode='after')
    def validate_edge_references(self):
        """Ensure every edge points at nodes of this graph."""
        node_ids = {node.id for node in self.nodes}
        for edge in self.edges:
            if edge.source_node_id not in node_ids:
                raise ValueError(f"Edge references non-existent source node: {edge.source_node_id}")
            if edge.target_node_id not in node_ids:
                raise ValueError(f"Edge references non-existent target node: {edge.target_node_id}")
        return self

    def get_node(self, node_id: str) -> Optional[NodeInstance]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def outgoing(self, node_id: str) -> List[Edge]:
        return [edge for edge in self.edges if edge.source_node_id == node_id]

    def incoming(self, node_id: str) -> List[Edge]:
        return [edge for edge in self.edges if edge.target_node_id == node_id]

    def replace_node(self, node: NodeInstance) -> "WorkflowGraph":
        """Return a copy of the graph with ``node`` swapped in by id."""
        nodes = [node if n.id == node.id else n for n in self.nodes]
        return self.model_copy(update={"nodes": nodes})


class WorkflowSummary(CamelModel):
    """Summary information about a stored workflow."""
    id: str
    name: str
    node_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ValidationResult(CamelModel):
    """Result of authoring checks on a workflow graph."""
    is_valid: bool = Field(..., description="Whether the graph may be saved and run")
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class ExecutionLogKind(str, Enum):
    """Kinds of log entries produced by node execution."""
    INPUT = "input"
    DECISION = "decision"
    NOTIFICATION = "notification"
    API = "api"
    API_ERROR = "api-error"
    DELAY = "delay"


class ExecutionLog(CamelModel):
    """One log entry emitted by a node while the graph is interpreted."""
    id: str = Field(default_factory=new_id)
    kind: ExecutionLogKind
    node_id: str
    name: str
    message: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class RunStatus(str, Enum):
    """Lifecycle status of a run."""
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.SUCCEEDED, RunStatus.FAILED)


class TaskStatus(str, Enum):
    """Status of one node's execution inside a run."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class TaskRecord(CamelModel):
    node_id: str
    node_type: NodeKind
    status: TaskStatus = TaskStatus.PENDING
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None


class RunLogType(str, Enum):
    """Types of entries in a run's log stream."""
    INFO = "info"
    ERROR = "error"
    NODE_OUTPUT = "node-output"
    SYSTEM = "system"


class RunLog(CamelModel):
    """An entry of a run's log stream.

    Node output entries carry the originating ``ExecutionLog`` kind and node
    name in ``data``.
    """
    id: str = Field(default_factory=new_id)
    sequence: int = 0
    type: RunLogType
    message: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    node_id: Optional[str] = None
    data: Optional[Dict[str, Any]] = None

    @classmethod
    def from_execution_log(cls, log: ExecutionLog) -> "RunLog":
        return cls(
            id=log.id,
            type=RunLogType.NODE_OUTPUT,
            message=log.message,
            timestamp=log.timestamp,
            node_id=log.node_id,
            data={"kind": log.kind.value, "name": log.name},
        )


class RunRecord(CamelModel):
    """Authoritative snapshot of one run."""
    id: str
    workflow_id: str
    status: RunStatus
    started_at: datetime
    finished_at: Optional[datetime] = None
    tasks: List[TaskRecord] = Field(default_factory=list)
    logs: List[RunLog] = Field(default_factory=list)
    error_message: Optional[str] = None
