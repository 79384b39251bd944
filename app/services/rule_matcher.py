# app/services/rule_matcher.py
import logging
from typing import Any, Iterable, List, NamedTuple, Optional
from uuid import UUID

from app.core.exceptions import RuleEvaluationError

logger = logging.getLogger(__name__)

# "source" is the name used on the rules screen
FIELD_ALIASES = {"source": "source_type"}
RULE_FIELDS = (
    "campaign", "source_type", "budget", "location",
    "property_type", "language_preference", "status",
)


class RuleAction(NamedTuple):
    action_type: str
    target_id: UUID
    rule_id: Optional[UUID]
    rule_name: str


def _norm(value: Any) -> Any:
    return value.casefold() if isinstance(value, str) else value


def _number(value: Any, rule_name: str) -> float:
    if isinstance(value, bool):
        raise RuleEvaluationError(rule_name, f"expected a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise RuleEvaluationError(rule_name, f"expected a number, got {value!r}")


def evaluate_condition(lead: Any, condition: dict, rule_name: str = "<pool>") -> bool:
    """Evaluate one ``{field, operator, value}`` comparison against a lead."""
    if not isinstance(condition, dict):
        raise RuleEvaluationError(rule_name, f"condition must be an object, got {condition!r}")

    field = FIELD_ALIASES.get(condition.get("field"), condition.get("field"))
    operator = condition.get("operator")
    expected = condition.get("value")

    if field not in RULE_FIELDS:
        raise RuleEvaluationError(rule_name, f"unknown field {condition.get('field')!r}")

    actual = getattr(lead, field, None)
    if actual is None:
        return operator == "not_equals"

    if operator == "equals":
        return _norm(actual) == _norm(expected)
    if operator == "not_equals":
        return _norm(actual) != _norm(expected)
    if operator == "contains":
        if not isinstance(expected, str):
            raise RuleEvaluationError(rule_name, "'contains' needs a string value")
        return _norm(expected) in _norm(str(actual))
    if operator == "greater_than":
        return _number(actual, rule_name) > _number(expected, rule_name)
    if operator == "less_than":
        return _number(actual, rule_name) < _number(expected, rule_name)
    if operator == "between":
        if not isinstance(expected, (list, tuple)) or len(expected) != 2:
            raise RuleEvaluationError(rule_name, "'between' needs a [low, high] pair")
        low, high = (_number(v, rule_name) for v in expected)
        return low <= _number(actual, rule_name) <= high
    if operator == "in":
        if not isinstance(expected, (list, tuple)):
            raise RuleEvaluationError(rule_name, "'in' needs a list value")
        return _norm(actual) in {_norm(v) for v in expected}

    raise RuleEvaluationError(rule_name, f"unknown operator {operator!r}")


def predicate_matches(lead: Any, conditions: Optional[Iterable[dict]], rule_name: str = "<pool>") -> bool:
    """AND of all conditions; an empty predicate matches every lead."""
    if conditions is None:
        return True
    if not isinstance(conditions, (list, tuple)):
        raise RuleEvaluationError(rule_name, "conditions must be a list")
    return all(evaluate_condition(lead, c, rule_name) for c in conditions)


def match(lead: Any, rules: List[Any]) -> Optional[RuleAction]:
    """
    Return the action of the first enabled rule, by ascending priority,
    whose predicate holds for ``lead``. Malformed rules are skipped.
    """
    for rule in sorted(rules, key=lambda r: r.priority):
        if not rule.enabled:
            continue
        try:
            matched = predicate_matches(lead, rule.conditions, rule.name)
        except RuleEvaluationError as e:
            logger.warning("Skipping rule %s (priority %s): %s", rule.name, rule.priority, e)
            continue
        if matched:
            logger.debug("Lead %s matched rule %s", getattr(lead, "lead_id", None), rule.name)
            return RuleAction(rule.action_type, rule.action_target_id, rule.rule_id, rule.name)
    return None
