"""Tests for rule compilation and logic evaluation."""

import pytest

from sequence_engine.core.exceptions import RuleConfigError
from sequence_engine.core.logic import EVALUATION_ERROR_MESSAGE, INVALID_VALUE_MESSAGE, evaluate, evaluate_config
from sequence_engine.core.rules import VALUE, compile_rules, parse_rule_config
from sequence_engine.models.rules import NumberRuleConfig, TextRuleConfig

from factories import number_rules, text_rules


def date_rules(*rules, combiner="all"):
    return {"kind": "date", "combiner": combiner, "rules": list(rules)}


class TestCompileRules:

    @pytest.mark.parametrize("kind", ["text", "number", "date"])
    def test_empty_rules_compile_to_none(self, kind):
        config = {"kind": kind, "combiner": "all", "rules": []}

        assert compile_rules(config) is None
        for value in ("anything", 0, None, {"a": 1}):
            assert evaluate(compile_rules(config), value).is_valid is True

    def test_none_config(self):
        assert compile_rules(None) is None

    def test_match_compiles_to_containment(self):
        logic = compile_rules(text_rules({"type": "match", "pattern": "ell"}))
        assert logic == {"and": [{"in": ["ell", VALUE]}]}

    def test_any_combiner_uses_disjunction(self):
        logic = compile_rules(number_rules(
            {"type": "lt", "value": 0},
            {"type": "gt", "value": 100},
            combiner="any",
        ))
        assert logic == {"or": [{"<": [VALUE, 0]}, {">": [VALUE, 100]}]}

    def test_between_operator_depends_on_inclusive(self):
        inclusive = compile_rules(number_rules({"type": "between", "min": 1, "max": 10, "inclusive": True}))
        exclusive = compile_rules(number_rules({"type": "between", "min": 1, "max": 10}))

        assert inclusive == {"and": [{"and": [{">=": [VALUE, 1]}, {"<=": [VALUE, 10]}]}]}
        assert exclusive == {"and": [{"and": [{">": [VALUE, 1]}, {"<": [VALUE, 10]}]}]}

    def test_date_rules_compare_iso_strings(self):
        logic = compile_rules(date_rules(
            {"type": "after", "date": "2024-01-01", "inclusive": True},
            {"type": "before", "date": "2025-01-01"},
        ))
        assert logic == {"and": [{">=": [VALUE, "2024-01-01"]}, {"<": [VALUE, "2025-01-01"]}]}

    def test_compilation_is_deterministic(self):
        config = text_rules({"type": "in", "options": ["a", "b"]}, {"type": "notEquals", "value": "c"})
        assert compile_rules(config) == compile_rules(config)

    def test_accepts_models(self):
        config = NumberRuleConfig.model_validate(number_rules({"type": "equals", "value": 5}))
        assert compile_rules(config) == {"and": [{"==": [VALUE, 5]}]}

    def test_unknown_kind_is_rejected(self):
        with pytest.raises(RuleConfigError):
            compile_rules({"kind": "color", "rules": []})

    def test_inverted_between_compiles(self):
        logic = compile_rules(number_rules({"type": "between", "min": 10, "max": 1}))
        assert logic == {"and": [{"and": [{">": [VALUE, 10]}, {"<": [VALUE, 1]}]}]}

    def test_parse_returns_models_unchanged(self):
        config = TextRuleConfig()
        assert parse_rule_config(config) is config


class TestEvaluate:

    def test_between_inclusive_accepts_both_endpoints(self):
        logic = compile_rules(number_rules({"type": "between", "min": 1, "max": 10, "inclusive": True}))

        assert evaluate(logic, 1).is_valid
        assert evaluate(logic, 10).is_valid
        assert evaluate(logic, 5).is_valid
        assert not evaluate(logic, 11).is_valid

    def test_inverted_between_never_matches(self):
        logic = compile_rules(number_rules({"type": "between", "min": 10, "max": 1, "inclusive": True}))

        for value in (0, 1, 5, 10, 11):
            assert not evaluate(logic, value).is_valid

    def test_between_exclusive_rejects_both_endpoints(self):
        logic = compile_rules(number_rules({"type": "between", "min": 1, "max": 10, "inclusive": False}))

        assert not evaluate(logic, 1).is_valid
        assert not evaluate(logic, 10).is_valid
        assert evaluate(logic, 5).is_valid

    def test_failure_message(self):
        outcome = evaluate(compile_rules(number_rules({"type": "gte", "value": 18})), 12)

        assert outcome.is_valid is False
        assert outcome.message == INVALID_VALUE_MESSAGE

    def test_text_rules(self):
        assert evaluate_config(text_rules({"type": "match", "pattern": "ell"}), "hello").is_valid
        assert not evaluate_config(text_rules({"type": "match", "pattern": "xyz"}), "hello").is_valid
        assert evaluate_config(text_rules({"type": "in", "options": ["NYC", "LA"]}), "LA").is_valid
        assert not evaluate_config(text_rules({"type": "notEquals", "value": "LA"}), "LA").is_valid

    def test_match_on_missing_value_is_invalid(self):
        assert not evaluate_config(text_rules({"type": "match", "pattern": "a"}), None).is_valid

    def test_dates_compare_chronologically(self):
        before = date_rules({"type": "before", "date": "2025-01-01"})
        before_inclusive = date_rules({"type": "before", "date": "2025-01-01", "inclusive": True})

        assert evaluate_config(before, "2024-12-31").is_valid
        assert not evaluate_config(before, "2025-01-01").is_valid
        assert evaluate_config(before_inclusive, "2025-01-01").is_valid
        assert evaluate_config(
            date_rules({"type": "between", "start": "2024-01-01", "end": "2024-12-31"}), "2024-06-15"
        ).is_valid

    def test_string_result_is_the_failure_message(self):
        outcome = evaluate({"var": "value"}, "Custom failure")

        assert outcome.is_valid is False
        assert outcome.message == "Custom failure"

    def test_errors_never_propagate(self):
        outcome = evaluate({"no-such-operator": [1, 2]}, 3)

        assert outcome.is_valid is False
        assert outcome.message == EVALUATION_ERROR_MESSAGE
