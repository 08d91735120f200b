"""Compile declarative rule configurations into JSON-Logic expressions.

Compilation is pure: the same configuration always yields the same tree,
and an empty rule list yields ``None`` (always valid). Every expression
binds the single variable ``value``.
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import TypeAdapter, ValidationError

from ..models.rules import (
    Combiner,
    DateAfterRule,
    DateBeforeRule,
    DateBetweenRule,
    DateRuleConfig,
    NumberBetweenRule,
    NumberCompareRule,
    NumberInRule,
    NumberRuleConfig,
    RuleConfig,
    TextInRule,
    TextMatchRule,
    TextNotEqualsRule,
    TextRuleConfig,
)
from .exceptions import RuleConfigError

CompiledLogic = Dict[str, Any]

VALUE = {"var": "value"}

_NUMBER_OPERATORS = {
    "equals": "==",
    "notEquals": "!=",
    "lt": "<",
    "lte": "<=",
    "gt": ">",
    "gte": ">=",
}

_rule_config_adapter = TypeAdapter(RuleConfig)


def parse_rule_config(config: Union[RuleConfig, Dict[str, Any]]) -> RuleConfig:
    """Validate a serialized rule configuration."""
    if isinstance(config, (TextRuleConfig, NumberRuleConfig, DateRuleConfig)):
        return config
    try:
        return _rule_config_adapter.validate_python(config)
    except ValidationError as e:
        raise RuleConfigError(f"Invalid rule configuration: {e}")


def _lower_bound(bound: Any, inclusive: bool) -> CompiledLogic:
    return {">=" if inclusive else ">": [VALUE, bound]}


def _upper_bound(bound: Any, inclusive: bool) -> CompiledLogic:
    return {"<=" if inclusive else "<": [VALUE, bound]}


def _compile_text_rule(rule) -> CompiledLogic:
    if isinstance(rule, TextMatchRule):
        # containment, not a regular expression
        return {"in": [rule.pattern, VALUE]}
    if isinstance(rule, TextInRule):
        return {"in": [VALUE, list(rule.options)]}
    if isinstance(rule, TextNotEqualsRule):
        return {"!=": [VALUE, rule.value]}
    raise RuleConfigError(f"Unsupported text rule: {rule!r}")


def _compile_number_rule(rule) -> CompiledLogic:
    if isinstance(rule, NumberCompareRule):
        return {_NUMBER_OPERATORS[rule.type]: [VALUE, rule.value]}
    if isinstance(rule, NumberInRule):
        return {"in": [VALUE, list(rule.options)]}
    if isinstance(rule, NumberBetweenRule):
        return {"and": [_lower_bound(rule.min, rule.inclusive), _upper_bound(rule.max, rule.inclusive)]}
    raise RuleConfigError(f"Unsupported number rule: {rule!r}")


def _compile_date_rule(rule) -> CompiledLogic:
    # ISO-8601 strings sort chronologically when zero-padded
    if isinstance(rule, DateBeforeRule):
        return _upper_bound(rule.date, rule.inclusive)
    if isinstance(rule, DateAfterRule):
        return _lower_bound(rule.date, rule.inclusive)
    if isinstance(rule, DateBetweenRule):
        return {"and": [_lower_bound(rule.start, rule.inclusive), _upper_bound(rule.end, rule.inclusive)]}
    raise RuleConfigError(f"Unsupported date rule: {rule!r}")


_COMPILERS = {
    "text": _compile_text_rule,
    "number": _compile_number_rule,
    "date": _compile_date_rule,
}


def compile_rules(config: Optional[Union[RuleConfig, Dict[str, Any]]]) -> Optional[CompiledLogic]:
    """
    Compile a rule configuration.

    Args:
        config: A text, number or date rule configuration (model or dict)

    Returns:
        The JSON-Logic tree, or None when there is nothing to check

    Raises:
        RuleConfigError: If the configuration does not parse
    """
    if config is None:
        return None
    config = parse_rule_config(config)
    if not config.rules:
        return None

    compile_rule = _COMPILERS[config.kind]
    compiled: List[CompiledLogic] = [compile_rule(rule) for rule in config.rules]
    return {"and": compiled} if config.combiner == Combiner.ALL else {"or": compiled}
