"""Authoring checks run before a workflow is saved or run."""

from typing import Dict, List, Set

from ..models.core import ValidationResult, WorkflowGraph
from ..models.nodes import NodeKind
from .exceptions import GraphValidationError
from .interpreter import find_entry_nodes
from .logging import get_logger
from .node_registry import outgoing_handles

logger = get_logger(__name__)

# Kinds that are meaningless unless data reaches them from an input node.
_DATA_DEPENDENT_KINDS = {NodeKind.DECISION, NodeKind.IF_ELSE, NodeKind.NOTIFICATION}


def _reachable_from(graph: WorkflowGraph, start_ids: List[str]) -> Set[str]:
    adjacency: Dict[str, List[str]] = {}
    for edge in graph.edges:
        adjacency.setdefault(edge.source_node_id, []).append(edge.target_node_id)

    reachable = set(start_ids)
    stack = list(start_ids)
    while stack:
        current = stack.pop()
        for neighbor in adjacency.get(current, []):
            if neighbor not in reachable:
                reachable.add(neighbor)
                stack.append(neighbor)
    return reachable


def _has_cycles(graph: WorkflowGraph) -> bool:
    """Check if the graph contains cycles using DFS."""
    adjacency: Dict[str, List[str]] = {}
    for edge in graph.edges:
        adjacency.setdefault(edge.source_node_id, []).append(edge.target_node_id)

    visited: Set[str] = set()
    rec_stack: Set[str] = set()

    def has_cycle_util(node_id: str) -> bool:
        visited.add(node_id)
        rec_stack.add(node_id)
        for neighbor in adjacency.get(node_id, []):
            if neighbor not in visited:
                if has_cycle_util(neighbor):
                    return True
            elif neighbor in rec_stack:
                return True
        rec_stack.remove(node_id)
        return False

    return any(node.id not in visited and has_cycle_util(node.id) for node in graph.nodes)


def validate_workflow(graph: WorkflowGraph) -> ValidationResult:
    """
    Check a graph for authoring errors.

    Errors block save and run; warnings are informational.

    Args:
        graph: The graph to validate

    Returns:
        ValidationResult with the enumerated messages
    """
    errors: List[str] = []
    warnings: List[str] = []

    input_ids = [node.id for node in graph.nodes if node.kind == NodeKind.INPUT_TEXT]
    has_dependent = any(node.kind in _DATA_DEPENDENT_KINDS for node in graph.nodes)

    if not input_ids:
        errors.append("Workflow must contain at least one input node.")
        if has_dependent:
            errors.append("Decision/Notification nodes cannot exist without an input node.")
    else:
        entry_ids = [node.id for node in find_entry_nodes(graph)]
        if not entry_ids:
            errors.append("Workflow has no entry node: every input node has an incoming connection.")
        reachable = _reachable_from(graph, entry_ids)
        for node in graph.nodes:
            if node.kind in _DATA_DEPENDENT_KINDS and node.id not in reachable:
                errors.append(f"Node {node.name} is not connected to any input node.")

    if _has_cycles(graph):
        warnings.append("Workflow contains a cycle; nodes on it run at most once.")

    for edge in graph.edges:
        if not edge.source_handle:
            continue
        source = graph.get_node(edge.source_node_id)
        handles = outgoing_handles(source)
        if handles is not None and edge.source_handle not in handles:
            warnings.append(
                f"Edge {edge.id} leaves {source.name} through unknown handle '{edge.source_handle}'."
            )

    result = ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)
    logger.debug(f"Validated workflow {graph.id}: valid={result.is_valid}, "
                 f"errors={len(errors)}, warnings={len(warnings)}")
    return result


def ensure_runnable(graph: WorkflowGraph) -> ValidationResult:
    """Validate ``graph`` and raise if it may not run.

    Raises:
        GraphValidationError: Carrying the list of authoring errors
    """
    result = validate_workflow(graph)
    if not result.is_valid:
        raise GraphValidationError(
            f"Workflow validation failed: {'; '.join(result.errors)}",
            validation_errors=result.errors,
            workflow_id=graph.id,
        )
    return result
