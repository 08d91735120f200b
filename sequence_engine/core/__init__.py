"""Core sequence engine components."""

from .exceptions import (
    SequenceEngineError,
    GraphValidationError,
    RuleConfigError,
    NodeExecutionError,
    RunStateError,
    RunNotFoundError,
    WorkflowNotFoundError,
    StorageError,
    RemoteExecutionError,
    ConfigurationError,
)
from .logging import setup_logging, get_logger
from .rules import compile_rules
from .logic import evaluate
from .interpreter import execute_graph
from .graph_validator import validate_workflow
from .run_lifecycle import RunPoller
from .run_store import RunStore
from .repository import SqlWorkflowRepository, HttpWorkflowRepository
from .runner import WorkflowRunner
from .remote_client import RemoteExecutionClient, LocalExecutionClient

__all__ = [
    "SequenceEngineError",
    "GraphValidationError",
    "RuleConfigError",
    "NodeExecutionError",
    "RunStateError",
    "RunNotFoundError",
    "WorkflowNotFoundError",
    "StorageError",
    "RemoteExecutionError",
    "ConfigurationError",
    "setup_logging",
    "get_logger",
    "compile_rules",
    "evaluate",
    "execute_graph",
    "validate_workflow",
    "RunPoller",
    "RunStore",
    "SqlWorkflowRepository",
    "HttpWorkflowRepository",
    "WorkflowRunner",
    "RemoteExecutionClient",
    "LocalExecutionClient",
]
