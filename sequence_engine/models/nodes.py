"""Kind-specific node configuration models."""

import uuid
from enum import Enum
from typing import Any, Dict, List, Optional, Type, Union
from pydantic import Field, field_validator

from .rules import CamelModel, Combiner, RuleConfig, ValueKind


def new_id() -> str:
    """Generate a fresh identifier for nodes, outcomes, predicates and headers."""
    return str(uuid.uuid4())


class NodeKind(str, Enum):
    """Closed set of node kinds a workflow graph may contain."""
    INPUT_TEXT = "inputText"
    DECISION = "decision"
    IF_ELSE = "ifElse"
    NOTIFICATION = "notification"
    API_CALL = "apiCall"
    DELAY = "delay"


class InputField(CamelModel):
    """One captured field of an input node."""
    id: str = Field(default_factory=new_id)
    key: str
    label: str = ""
    kind: ValueKind = ValueKind.TEXT
    placeholder: Optional[str] = None
    default_value: Optional[Union[int, float, str]] = None
    validation_config: Optional[RuleConfig] = None

    @field_validator('key')
    @classmethod
    def validate_key(cls, key):
        """Ensure the field key is usable as a payload key."""
        if not key or not key.strip():
            raise ValueError("Input field key cannot be empty")
        return key.strip()


class InputNodeConfig(CamelModel):
    fields: List[InputField] = Field(default_factory=list)
    values: Dict[str, Any] = Field(default_factory=dict, description="Currently held field values")

    @field_validator('fields')
    @classmethod
    def validate_unique_keys(cls, fields):
        keys = [f.key for f in fields]
        if len(keys) != len(set(keys)):
            raise ValueError("Input field keys must be unique")
        return fields


class Predicate(CamelModel):
    """A rule set bound to one field of the payload (or the whole payload)."""
    id: str = Field(default_factory=new_id)
    target_field: Optional[str] = None
    validation_config: Optional[RuleConfig] = None


class DecisionOutcome(CamelModel):
    """A named outcome of a decision node.

    The outcome matches when its predicates, combined with ``combiner``,
    evaluate true. Outcomes saved before predicates existed carry a single
    ``target_field``/``validation_config`` pair instead.
    """
    id: str = Field(default_factory=new_id)
    name: str = "Outcome"
    predicates: List[Predicate] = Field(default_factory=list)
    combiner: Combiner = Combiner.ALL
    target_field: Optional[str] = None
    validation_config: Optional[RuleConfig] = None


class DecisionNodeConfig(CamelModel):
    decisions: List[DecisionOutcome] = Field(default_factory=list)

    @field_validator('decisions')
    @classmethod
    def validate_unique_outcomes(cls, decisions):
        ids = [d.id for d in decisions]
        if len(ids) != len(set(ids)):
            raise ValueError("Decision outcome ids must be unique")
        return decisions


class IfElseNodeConfig(CamelModel):
    condition: DecisionOutcome = Field(default_factory=lambda: DecisionOutcome(name="Condition"))
    true_label: str = "True"
    false_label: str = "False"


class NotificationNodeConfig(CamelModel):
    template: str = ""


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"


class HttpHeader(CamelModel):
    id: str = Field(default_factory=new_id)
    key: str
    value: str = ""
    enabled: bool = True


DEFAULT_EXPECTED_STATUS_CODES = [200, 201, 202, 204]


class ApiCallNodeConfig(CamelModel):
    method: HttpMethod = HttpMethod.GET
    url: str = "https://api.example.com/endpoint"
    headers: List[HttpHeader] = Field(default_factory=list)
    body_template: Optional[str] = None
    timeout_ms: int = 10000
    retry_count: int = 0
    expected_status_codes: List[int] = Field(default_factory=lambda: list(DEFAULT_EXPECTED_STATUS_CODES))

    @field_validator('timeout_ms')
    @classmethod
    def validate_timeout(cls, timeout_ms):
        if timeout_ms <= 0:
            raise ValueError("Timeout must be a positive number of milliseconds")
        return timeout_ms

    @field_validator('retry_count')
    @classmethod
    def validate_retry_count(cls, retry_count):
        if retry_count < 0:
            raise ValueError("Retry count cannot be negative")
        return retry_count


class DelayUnit(str, Enum):
    SECONDS = "seconds"
    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"


DELAY_UNIT_SECONDS = {
    DelayUnit.SECONDS: 1,
    DelayUnit.MINUTES: 60,
    DelayUnit.HOURS: 60 * 60,
    DelayUnit.DAYS: 24 * 60 * 60,
}


class DelayNodeConfig(CamelModel):
    delay_type: DelayUnit = DelayUnit.SECONDS
    delay_value: Union[int, float] = 5

    @field_validator('delay_value')
    @classmethod
    def validate_delay_value(cls, delay_value):
        if delay_value < 0:
            raise ValueError("Delay value cannot be negative")
        return delay_value

    @property
    def total_seconds(self) -> float:
        """Requested duration in seconds."""
        return self.delay_value * DELAY_UNIT_SECONDS[self.delay_type]


CONFIG_MODELS: Dict[NodeKind, Type[CamelModel]] = {
    NodeKind.INPUT_TEXT: InputNodeConfig,
    NodeKind.DECISION: DecisionNodeConfig,
    NodeKind.IF_ELSE: IfElseNodeConfig,
    NodeKind.NOTIFICATION: NotificationNodeConfig,
    NodeKind.API_CALL: ApiCallNodeConfig,
    NodeKind.DELAY: DelayNodeConfig,
}
