"""In-process graph interpreter.

Walks a workflow graph depth-first from its entry nodes, executing each node
once and following only the outgoing edges the node allows. Synchronous and
single-threaded; suitable for previews and offline runs. Real suspension for
delays and real network calls happen in the runner via hooks and transports.
"""

from typing import Any, Dict, List, Optional

from ..models.core import ExecutionLog, NodeInstance, WorkflowGraph
from ..models.nodes import NodeKind
from .exceptions import NodeExecutionError
from .logging import get_logger
from .node_registry import NodeExecution, execute_node
from .transport import ApiTransport

logger = get_logger(__name__)


class ExecutionHooks:
    """Callbacks invoked around every node execution. Override as needed."""

    def on_node_start(self, node: NodeInstance, payload: Dict[str, Any]) -> None:
        pass

    def on_node_complete(self, node: NodeInstance, execution: NodeExecution) -> None:
        pass

    def on_node_error(self, node: NodeInstance, error: Exception) -> None:
        pass


def find_entry_nodes(graph: WorkflowGraph) -> List[NodeInstance]:
    """Input nodes with no inbound edges."""
    targets = {edge.target_node_id for edge in graph.edges}
    return [
        node for node in graph.nodes
        if node.kind == NodeKind.INPUT_TEXT and node.id not in targets
    ]


def held_values(node: NodeInstance) -> Dict[str, Any]:
    """Field values an input node currently holds, falling back to field defaults."""
    config = node.parsed_config()
    values = {
        field.key: field.default_value
        for field in config.fields
        if field.default_value is not None
    }
    values.update(config.values)
    return values


class GraphInterpreter:
    """Executes a workflow graph against a payload."""

    def __init__(self, transport: Optional[ApiTransport] = None, hooks: Optional[ExecutionHooks] = None):
        self.transport = transport
        self.hooks = hooks or ExecutionHooks()

    def run(self, graph: WorkflowGraph, initial_payload: Optional[Dict[str, Any]] = None) -> List[ExecutionLog]:
        """
        Execute ``graph`` and return the logs in execution order.

        Args:
            graph: Graph to execute; not modified
            initial_payload: Payload handed to the entry nodes. Defaults to the
                values held by the entry nodes.

        Returns:
            Execution logs of every visited node

        Raises:
            NodeExecutionError: If a node fails to execute
        """
        entries = find_entry_nodes(graph)
        if not entries:
            logger.warning(f"Workflow {graph.id} has no entry node; nothing to execute")
            return []

        if initial_payload is None:
            payload: Dict[str, Any] = {}
            for entry in entries:
                payload.update(held_values(entry))
        else:
            payload = dict(initial_payload)

        logs: List[ExecutionLog] = []
        visited = set()
        stack = [entry.id for entry in reversed(entries)]

        while stack:
            node_id = stack.pop()
            if node_id in visited:
                continue
            visited.add(node_id)

            node = graph.get_node(node_id)
            if node is None:
                continue

            execution = self._execute(node, payload)
            logs.extend(execution.logs)
            if execution.payload is not None:
                # one payload is shared by every branch from here on
                payload = execution.payload

            followed = [
                edge for edge in graph.outgoing(node_id)
                if self._may_follow(edge.source_handle, execution)
            ]
            for edge in reversed(followed):
                if edge.target_node_id not in visited:
                    stack.append(edge.target_node_id)

        logger.debug(f"Workflow {graph.id} visited {len(visited)} node(s), produced {len(logs)} log(s)")
        return logs

    @staticmethod
    def _may_follow(source_handle: Optional[str], execution: NodeExecution) -> bool:
        if not source_handle or execution.allowed_out_handles is None:
            return True
        return source_handle in execution.allowed_out_handles

    def _execute(self, node: NodeInstance, payload: Dict[str, Any]) -> NodeExecution:
        self.hooks.on_node_start(node, payload)
        try:
            execution = execute_node(node, payload, self.transport)
        except Exception as e:
            self.hooks.on_node_error(node, e)
            if isinstance(e, NodeExecutionError):
                raise
            raise NodeExecutionError(f"Node {node.id} execution failed: {str(e)}", node_id=node.id)
        self.hooks.on_node_complete(node, execution)
        return execution


def execute_graph(
    graph: WorkflowGraph,
    initial_payload: Optional[Dict[str, Any]] = None,
    transport: Optional[ApiTransport] = None,
    hooks: Optional[ExecutionHooks] = None,
) -> List[ExecutionLog]:
    """Execute ``graph`` in-process and return its execution logs."""
    return GraphInterpreter(transport=transport, hooks=hooks).run(graph, initial_payload)
