"""Evaluate compiled JSON-Logic against a single bound value."""

from typing import Any, Dict, Optional, Union

from json_logic import jsonLogic

from ..models.rules import RuleConfig, RuleOutcome
from .logging import get_logger
from .rules import CompiledLogic, compile_rules

logger = get_logger(__name__)

INVALID_VALUE_MESSAGE = "Invalid value"
EVALUATION_ERROR_MESSAGE = "Validation error"


def evaluate(logic: Optional[CompiledLogic], value: Any) -> RuleOutcome:
    """
    Evaluate ``logic`` with ``value`` bound to the variable ``value``.

    Missing logic is always valid. A string result is treated as a failure
    carrying that string as its message. Errors raised while evaluating are
    never propagated; they produce an invalid outcome instead.
    """
    if not logic:
        return RuleOutcome(is_valid=True, message=None)

    try:
        result = jsonLogic(logic, {"value": value})
    except Exception as e:
        logger.debug(f"Logic evaluation failed for {logic!r}: {str(e)}")
        return RuleOutcome(is_valid=False, message=EVALUATION_ERROR_MESSAGE)

    if isinstance(result, str):
        return RuleOutcome(is_valid=False, message=result)
    if result:
        return RuleOutcome(is_valid=True, message=None)
    return RuleOutcome(is_valid=False, message=INVALID_VALUE_MESSAGE)


def evaluate_config(config: Optional[Union[RuleConfig, Dict[str, Any]]], value: Any) -> RuleOutcome:
    """Compile ``config`` and evaluate it against ``value``."""
    return evaluate(compile_rules(config), value)
