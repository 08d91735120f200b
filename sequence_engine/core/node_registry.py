"""Node type registry.

Every node kind is described by one ``NodeKindDefinition``: how to build a
fresh node, which schema it publishes to and accepts from its neighbours,
and how it executes against a payload. The interpreter only ever talks to
``execute_node`` and never inspects the kind itself.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set

from ..models.core import ExecutionLog, ExecutionLogKind, NodeInstance, Position, WorkflowGraph
from ..models.nodes import (
    ApiCallNodeConfig,
    DecisionNodeConfig,
    DecisionOutcome,
    DelayNodeConfig,
    IfElseNodeConfig,
    InputNodeConfig,
    NodeKind,
    NotificationNodeConfig,
)
from ..models.rules import Combiner
from .exceptions import NodeExecutionError
from .logging import get_logger
from .logic import evaluate
from .rules import compile_rules
from .schema import JSONSchema, derive_schema
from .template import get_by_path, interpolate, to_display_string
from .transport import RESPONSE_ENVELOPE_SCHEMA, ApiRequest, ApiTransport, SimulatedTransport

logger = get_logger(__name__)

Payload = Dict[str, Any]

TRUE_HANDLE = "out-true"
FALSE_HANDLE = "out-false"


def outcome_handle(outcome_id: str) -> str:
    """Source handle of a decision outcome."""
    return f"out-{outcome_id}"


@dataclass
class NodeExecution:
    """What a node produced when executed.

    ``allowed_out_handles`` of None means every outgoing edge may be
    followed; ``payload`` of None means the incoming payload flows on.
    """
    logs: List[ExecutionLog] = field(default_factory=list)
    allowed_out_handles: Optional[Set[str]] = None
    payload: Optional[Payload] = None
    delay_seconds: Optional[float] = None


@dataclass
class NodeKindDefinition:
    kind: NodeKind
    label: str
    description: str
    config_model: type
    execute: Callable[[NodeInstance, Any, Payload, ApiTransport], NodeExecution]
    publish: Callable[[NodeInstance, Any], JSONSchema]
    accept: Callable[[NodeInstance, JSONSchema], NodeInstance]
    default_output_schema: Callable[[], JSONSchema] = dict
    handles: Callable[[Any], Optional[Set[str]]] = lambda config: None

    def palette_item(self) -> Dict[str, str]:
        return {"kind": self.kind.value, "label": self.label, "description": self.description}


def _log(node: NodeInstance, kind: ExecutionLogKind, message: str) -> ExecutionLog:
    return ExecutionLog(kind=kind, node_id=node.id, name=node.name, message=message)


def _subject(payload: Payload, target_field: Optional[str]) -> Any:
    """The value a predicate is evaluated against."""
    return get_by_path(payload, target_field) if target_field else payload


def outcome_matches(outcome: DecisionOutcome, payload: Payload) -> bool:
    """Whether an outcome's predicates hold for ``payload``."""
    if outcome.predicates:
        checks = [
            evaluate(compile_rules(p.validation_config), _subject(payload, p.target_field)).is_valid
            for p in outcome.predicates
        ]
        return all(checks) if outcome.combiner == Combiner.ALL else any(checks)
    subject = _subject(payload, outcome.target_field)
    return evaluate(compile_rules(outcome.validation_config), subject).is_valid


# Schema publishing / accepting

def _publish_input_schema(node: NodeInstance, config: InputNodeConfig) -> JSONSchema:
    return derive_schema(config.fields)


def _publish_forwarded_schema(node: NodeInstance, config: Any) -> JSONSchema:
    return node.output_schema or node.input_schema


def _publish_nothing(node: NodeInstance, config: Any) -> JSONSchema:
    return {}


def _accept_nothing(node: NodeInstance, schema: JSONSchema) -> NodeInstance:
    return node


def _accept_as_input(node: NodeInstance, schema: JSONSchema) -> NodeInstance:
    return node.model_copy(update={"input_schema": dict(schema)})


def _accept_pass_through(node: NodeInstance, schema: JSONSchema) -> NodeInstance:
    return node.model_copy(update={"input_schema": dict(schema), "output_schema": dict(schema)})


# Execution

def _execute_input(node: NodeInstance, config: InputNodeConfig, payload: Payload,
                   transport: ApiTransport) -> NodeExecution:
    message = f"Input: {json.dumps(payload, default=str)}"
    return NodeExecution(logs=[_log(node, ExecutionLogKind.INPUT, message)])


def _execute_decision(node: NodeInstance, config: DecisionNodeConfig, payload: Payload,
                      transport: ApiTransport) -> NodeExecution:
    matched = [outcome for outcome in config.decisions if outcome_matches(outcome, payload)]
    names = ", ".join(outcome.name for outcome in matched) or "none"
    message = f"Matched {len(matched)} outcome(s): {names}"
    return NodeExecution(
        logs=[_log(node, ExecutionLogKind.DECISION, message)],
        allowed_out_handles={outcome_handle(outcome.id) for outcome in matched},
    )


def _execute_if_else(node: NodeInstance, config: IfElseNodeConfig, payload: Payload,
                     transport: ApiTransport) -> NodeExecution:
    condition = config.condition
    has_checks = bool(condition.predicates) or condition.validation_config is not None
    condition_met = has_checks and outcome_matches(condition, payload)
    label = (config.true_label or "True") if condition_met else (config.false_label or "False")
    return NodeExecution(
        logs=[_log(node, ExecutionLogKind.DECISION, f"Condition evaluated to: {label}")],
        allowed_out_handles={TRUE_HANDLE if condition_met else FALSE_HANDLE},
    )


def _execute_notification(node: NodeInstance, config: NotificationNodeConfig, payload: Payload,
                          transport: ApiTransport) -> NodeExecution:
    content = interpolate(config.template, payload)
    return NodeExecution(logs=[_log(node, ExecutionLogKind.NOTIFICATION, content)])


def render_api_request(config: ApiCallNodeConfig, payload: Payload) -> ApiRequest:
    """Render URL, headers and body templates of an API-call node."""
    headers = {
        header.key: interpolate(header.value, payload)
        for header in config.headers
        if header.enabled and header.key
    }
    body = interpolate(config.body_template, payload) if config.body_template else None
    return ApiRequest(
        method=config.method,
        url=interpolate(config.url, payload),
        headers=headers,
        body=body,
        timeout_ms=config.timeout_ms,
        retry_count=config.retry_count,
        expected_status_codes=config.expected_status_codes,
    )


def _execute_api_call(node: NodeInstance, config: ApiCallNodeConfig, payload: Payload,
                      transport: ApiTransport) -> NodeExecution:
    request = render_api_request(config, payload)
    response = transport.send(request, payload)
    if response.success:
        suffix = "(simulated)" if transport.simulated else f"-> {response.status} {response.status_text}"
        log = _log(node, ExecutionLogKind.API, f"API Call: {request.method.value} {request.url} {suffix}")
    else:
        detail = response.error or f"{response.status} {response.status_text}"
        log = _log(node, ExecutionLogKind.API_ERROR,
                   f"API Call failed: {request.method.value} {request.url}: {detail}")
    return NodeExecution(logs=[log], payload=response.to_payload())


def format_delay(config: DelayNodeConfig) -> str:
    """Human readable duration, e.g. ``1 minute`` or ``5 seconds``."""
    unit = config.delay_type.value
    if config.delay_value == 1:
        return f"1 {unit[:-1]}"
    return f"{to_display_string(config.delay_value)} {unit}"


def _execute_delay(node: NodeInstance, config: DelayNodeConfig, payload: Payload,
                   transport: ApiTransport) -> NodeExecution:
    return NodeExecution(
        logs=[_log(node, ExecutionLogKind.DELAY, f"Delay scheduled: {format_delay(config)}")],
        payload=payload,
        delay_seconds=config.total_seconds,
    )


_REGISTRY: Dict[NodeKind, NodeKindDefinition] = {
    definition.kind: definition
    for definition in [
        NodeKindDefinition(
            kind=NodeKind.INPUT_TEXT,
            label="Input Node",
            description="Multiple fields",
            config_model=InputNodeConfig,
            execute=_execute_input,
            publish=_publish_input_schema,
            accept=_accept_nothing,
        ),
        NodeKindDefinition(
            kind=NodeKind.DECISION,
            label="Decision",
            description="Binary or N-way outcomes",
            config_model=DecisionNodeConfig,
            execute=_execute_decision,
            publish=_publish_forwarded_schema,
            accept=_accept_as_input,
            handles=lambda config: {outcome_handle(outcome.id) for outcome in config.decisions},
        ),
        NodeKindDefinition(
            kind=NodeKind.IF_ELSE,
            label="If-Else",
            description="Binary condition with true/false outcomes",
            config_model=IfElseNodeConfig,
            execute=_execute_if_else,
            publish=_publish_forwarded_schema,
            accept=_accept_as_input,
            handles=lambda config: {TRUE_HANDLE, FALSE_HANDLE},
        ),
        NodeKindDefinition(
            kind=NodeKind.NOTIFICATION,
            label="Notification",
            description="Compose message template",
            config_model=NotificationNodeConfig,
            execute=_execute_notification,
            publish=_publish_nothing,
            accept=_accept_as_input,
        ),
        NodeKindDefinition(
            kind=NodeKind.API_CALL,
            label="API Call",
            description="HTTP request to external service",
            config_model=ApiCallNodeConfig,
            execute=_execute_api_call,
            publish=_publish_forwarded_schema,
            accept=_accept_as_input,
            default_output_schema=lambda: json.loads(json.dumps(RESPONSE_ENVELOPE_SCHEMA)),
        ),
        NodeKindDefinition(
            kind=NodeKind.DELAY,
            label="Delay",
            description="Wait for a specified duration",
            config_model=DelayNodeConfig,
            execute=_execute_delay,
            publish=_publish_forwarded_schema,
            accept=_accept_pass_through,
        ),
    ]
}


def get_definition(kind) -> NodeKindDefinition:
    """Look up the definition of a node kind."""
    return _REGISTRY[NodeKind(kind)]


def list_node_kinds() -> List[Dict[str, str]]:
    """Palette entries for every node kind."""
    return [definition.palette_item() for definition in _REGISTRY.values()]


def create_default(kind, position: Optional[Position] = None, name: Optional[str] = None) -> NodeInstance:
    """Create a fresh node of ``kind`` with its default configuration."""
    definition = get_definition(kind)
    config = definition.config_model()
    return NodeInstance(
        kind=definition.kind,
        name=name or definition.label,
        input_schema={},
        output_schema=definition.default_output_schema(),
        config=config.model_dump(by_alias=True, mode="json", exclude_none=True),
        position=position or Position(),
    )


def published_schema(node: NodeInstance) -> JSONSchema:
    """Schema a node hands to the nodes it connects to."""
    definition = get_definition(node.kind)
    return definition.publish(node, node.parsed_config())


def propagate_schema(source: NodeInstance, target: NodeInstance) -> NodeInstance:
    """Return ``target`` updated with the schema ``source`` publishes.

    Pure: neither node is modified.
    """
    return get_definition(target.kind).accept(target, published_schema(source))


def _topological_order(graph: WorkflowGraph) -> List[str]:
    in_degree = {node.id: 0 for node in graph.nodes}
    for edge in graph.edges:
        in_degree[edge.target_node_id] += 1
    ready = [node.id for node in graph.nodes if in_degree[node.id] == 0]
    order: List[str] = []
    while ready:
        current = ready.pop(0)
        order.append(current)
        for edge in graph.outgoing(current):
            in_degree[edge.target_node_id] -= 1
            if in_degree[edge.target_node_id] == 0:
                ready.append(edge.target_node_id)
    # nodes on a cycle keep their authored order
    order.extend(node.id for node in graph.nodes if node.id not in order)
    return order


def propagate_graph_schemas(graph: WorkflowGraph) -> WorkflowGraph:
    """Recompute every connected node's schemas from the current graph state."""
    nodes = {node.id: node for node in graph.nodes}
    for node_id in _topological_order(graph):
        for edge in graph.incoming(node_id):
            nodes[node_id] = propagate_schema(nodes[edge.source_node_id], nodes[node_id])
    return graph.model_copy(update={"nodes": [nodes[node.id] for node in graph.nodes]})


def connect(graph: WorkflowGraph, edge) -> WorkflowGraph:
    """Add ``edge`` to the graph and refresh the downstream schemas."""
    connected = WorkflowGraph.model_validate({
        **graph.model_dump(by_alias=True),
        "edges": [e.model_dump(by_alias=True) for e in graph.edges] + [edge.model_dump(by_alias=True)],
    })
    return propagate_graph_schemas(connected)


def outgoing_handles(node: NodeInstance) -> Optional[Set[str]]:
    """Named source handles a node exposes, or None when it has a single unnamed port."""
    return get_definition(node.kind).handles(node.parsed_config())


def execute_node(node: NodeInstance, payload: Payload, transport: Optional[ApiTransport] = None) -> NodeExecution:
    """
    Execute a node against ``payload``.

    Args:
        node: Node to execute
        payload: Current payload
        transport: Transport used by API-call nodes (simulated when omitted)

    Returns:
        Logs, allowed outgoing handles and the payload to propagate

    Raises:
        NodeExecutionError: If the node's configuration cannot be used
    """
    definition = get_definition(node.kind)
    try:
        config = node.parsed_config()
    except ValueError as e:
        raise NodeExecutionError(f"Node {node.id} has an invalid configuration: {str(e)}", node_id=node.id)
    logger.debug(f"Executing {node.kind.value} node {node.id}")
    return definition.execute(node, config, payload, transport or SimulatedTransport())
