"""Data models for the sequence engine."""

from .rules import (
    Combiner,
    ValueKind,
    RuleConfig,
    TextRuleConfig,
    NumberRuleConfig,
    DateRuleConfig,
    RuleOutcome,
)
from .nodes import (
    NodeKind,
    InputField,
    InputNodeConfig,
    Predicate,
    DecisionOutcome,
    DecisionNodeConfig,
    IfElseNodeConfig,
    NotificationNodeConfig,
    ApiCallNodeConfig,
    DelayNodeConfig,
    DelayUnit,
    HttpMethod,
    HttpHeader,
)
from .core import (
    Position,
    NodeInstance,
    Edge,
    WorkflowGraph,
    WorkflowSummary,
    ValidationResult,
    ExecutionLog,
    ExecutionLogKind,
    RunStatus,
    TaskStatus,
    TaskRecord,
    RunLog,
    RunLogType,
    RunRecord,
)

__all__ = [
    "Combiner",
    "ValueKind",
    "RuleConfig",
    "TextRuleConfig",
    "NumberRuleConfig",
    "DateRuleConfig",
    "RuleOutcome",
    "NodeKind",
    "InputField",
    "InputNodeConfig",
    "Predicate",
    "DecisionOutcome",
    "DecisionNodeConfig",
    "IfElseNodeConfig",
    "NotificationNodeConfig",
    "ApiCallNodeConfig",
    "DelayNodeConfig",
    "DelayUnit",
    "HttpMethod",
    "HttpHeader",
    "Position",
    "NodeInstance",
    "Edge",
    "WorkflowGraph",
    "WorkflowSummary",
    "ValidationResult",
    "ExecutionLog",
    "ExecutionLogKind",
    "RunStatus",
    "TaskStatus",
    "TaskRecord",
    "RunLog",
    "RunLogType",
    "RunRecord",
]
