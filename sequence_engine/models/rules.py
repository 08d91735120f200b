"""Pydantic models for declarative validation rules."""

from enum import Enum
from typing import Annotated, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model accepting and emitting camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ValueKind(str, Enum):
    """Kinds of values a rule set or an input field can describe."""
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"


class Combiner(str, Enum):
    """How a list of compiled rules or predicates is combined."""
    ALL = "all"
    ANY = "any"


Number = Union[int, float]


# Text rules

class TextMatchRule(CamelModel):
    """Value must contain ``pattern``."""
    type: Literal["match"] = "match"
    pattern: str
    flags: Optional[str] = None
    message: Optional[str] = None


class TextInRule(CamelModel):
    type: Literal["in"] = "in"
    options: List[str] = Field(default_factory=list)
    message: Optional[str] = None


class TextNotEqualsRule(CamelModel):
    type: Literal["notEquals"] = "notEquals"
    value: str
    message: Optional[str] = None


TextRule = Annotated[
    Union[TextMatchRule, TextInRule, TextNotEqualsRule],
    Field(discriminator="type"),
]


# Number rules

class NumberCompareRule(CamelModel):
    """Direct comparison of the value against ``value``."""
    type: Literal["equals", "notEquals", "lt", "lte", "gt", "gte"]
    value: Number
    message: Optional[str] = None


class NumberInRule(CamelModel):
    type: Literal["in"] = "in"
    options: List[Number] = Field(default_factory=list)
    message: Optional[str] = None


class NumberBetweenRule(CamelModel):
    type: Literal["between"] = "between"
    min: Number
    max: Number
    inclusive: bool = False
    message: Optional[str] = None


NumberRule = Annotated[
    Union[NumberCompareRule, NumberInRule, NumberBetweenRule],
    Field(discriminator="type"),
]


# Date rules (ISO-8601 strings)

class DateBeforeRule(CamelModel):
    type: Literal["before"] = "before"
    date: str
    inclusive: bool = False
    message: Optional[str] = None


class DateAfterRule(CamelModel):
    type: Literal["after"] = "after"
    date: str
    inclusive: bool = False
    message: Optional[str] = None


class DateBetweenRule(CamelModel):
    type: Literal["between"] = "between"
    start: str
    end: str
    inclusive: bool = False
    message: Optional[str] = None


DateRule = Annotated[
    Union[DateBeforeRule, DateAfterRule, DateBetweenRule],
    Field(discriminator="type"),
]


# Rule configurations

class TextRuleConfig(CamelModel):
    kind: Literal["text"] = "text"
    combiner: Combiner = Combiner.ALL
    rules: List[TextRule] = Field(default_factory=list)


class NumberRuleConfig(CamelModel):
    kind: Literal["number"] = "number"
    combiner: Combiner = Combiner.ALL
    rules: List[NumberRule] = Field(default_factory=list)


class DateRuleConfig(CamelModel):
    kind: Literal["date"] = "date"
    combiner: Combiner = Combiner.ALL
    rules: List[DateRule] = Field(default_factory=list)


RuleConfig = Annotated[
    Union[TextRuleConfig, NumberRuleConfig, DateRuleConfig],
    Field(discriminator="kind"),
]


class RuleOutcome(CamelModel):
    """Result of evaluating compiled logic against a value."""
    is_valid: bool
    message: Optional[str] = None
