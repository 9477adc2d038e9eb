"""
Triage Engine

Evaluates a decision table against a case's field values and determines the
touch level the case is routed to:
- STP: Straight-through processing, no human touch
- LOW: Light review
- MODERATE: Processor review
- HIGH: Manual intervention

Evaluation is first-match-wins over the non-default rules in order, then the
default rule, then a hardcoded MODERATE fallback. Every path returns a full
evaluation log.
"""
import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

from app.services.triage.models import (
    ConditionOperator,
    DecisionCondition,
    DecisionRule,
    DecisionTable,
    TouchLevel,
)


FALLBACK_RULE_ID = "FALLBACK"
FALLBACK_RULE_ORDER = 99
FALLBACK_DESCRIPTION = "Evaluation fallback"
FALLBACK_TOUCH_LEVEL = TouchLevel.MODERATE
DEFAULT_KEY_FACTOR = "No specific rule matched — routed to default"

ANY_VALUE = "ANY"
EMPTY_VALUE = "(empty)"
BLANK_VALUES = ("", "None", "N/A")

OPERATOR_SYMBOLS: Dict[ConditionOperator, str] = {
    ConditionOperator.EQ: "=",
    ConditionOperator.NEQ: "≠",
    ConditionOperator.GT: ">",
    ConditionOperator.GTE: "≥",
    ConditionOperator.LT: "<",
    ConditionOperator.LTE: "≤",
    ConditionOperator.BETWEEN: "between",
    ConditionOperator.CONTAINS: "contains",
    ConditionOperator.BLANK: "is blank",
    ConditionOperator.NOTBLANK: "is not blank",
    ConditionOperator.ANY: ANY_VALUE,
}

PROCESSING_QUEUES: Dict[TouchLevel, str] = {
    TouchLevel.STP: "low",
    TouchLevel.LOW: "low",
    TouchLevel.MODERATE: "moderate",
    TouchLevel.HIGH: "high",
}

_NON_NUMERIC = re.compile(r"[^0-9.\-]")
_LEADING_NUMBER = re.compile(r"-?(?:\d+(?:\.\d*)?|\.\d+)")


@dataclass(frozen=True)
class ConditionLog:
    """Audit entry for one evaluated condition."""
    condition_id: str
    field_name: str
    display_name: str
    operator: ConditionOperator
    expected_value: str
    actual_value: str
    passed: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "condition_id": self.condition_id,
            "field_name": self.field_name,
            "display_name": self.display_name,
            "operator": self.operator.value,
            "expected_value": self.expected_value,
            "actual_value": self.actual_value,
            "passed": self.passed,
        }


@dataclass(frozen=True)
class RuleEvaluationLog:
    """Audit entry for one evaluated rule."""
    rule_id: str
    rule_order: int
    description: Optional[str]
    passed: bool
    is_default: bool
    conditions: Tuple[ConditionLog, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "rule_order": self.rule_order,
            "description": self.description,
            "passed": self.passed,
            "is_default": self.is_default,
            "conditions": [c.to_dict() for c in self.conditions],
        }


@dataclass(frozen=True)
class TriageResult:
    """Outcome of evaluating a decision table."""
    touch_level: TouchLevel
    matched_rule_id: str
    matched_rule_order: int
    matched_rule_description: str
    key_factors: Tuple[str, ...] = ()
    evaluation_log: Tuple[RuleEvaluationLog, ...] = ()
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def is_fallback(self) -> bool:
        return self.matched_rule_id == FALLBACK_RULE_ID

    @property
    def processing_queue(self) -> str:
        return processing_queue_for(self.touch_level)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "touch_level": self.touch_level.value,
            "matched_rule_id": self.matched_rule_id,
            "matched_rule_order": self.matched_rule_order,
            "matched_rule_description": self.matched_rule_description,
            "key_factors": list(self.key_factors),
            "evaluation_log": [r.to_dict() for r in self.evaluation_log],
            "timestamp": self.timestamp,
        }


def parse_number(raw: str) -> Optional[float]:
    """
    Extract a number from a free-form string such as "$1,250.00" or "68%".

    Everything but digits, "." and "-" is stripped, then the leading number is
    parsed. Returns None when nothing numeric remains.
    """
    match = _LEADING_NUMBER.match(_NON_NUMERIC.sub("", raw))
    if match is None:
        return None
    number = float(match.group(0))
    return number if math.isfinite(number) else None


def _is_blank(value: str) -> bool:
    return value in BLANK_VALUES


def _lookup(values: Mapping[str, Any], field_name: str) -> str:
    raw = values.get(field_name)
    if raw is None:
        return ""
    return raw if isinstance(raw, str) else str(raw)


def evaluate_condition(
    condition: DecisionCondition,
    values: Mapping[str, Any],
) -> Tuple[bool, str]:
    """
    Evaluate one condition against the case values.

    Returns:
        (passed, actual_value) where actual_value is the trimmed value used
        for the audit log, "(empty)" if blank, or "ANY" for wildcards
    """
    operator = condition.operator
    if operator == ConditionOperator.ANY:
        return True, ANY_VALUE

    actual = _lookup(values, condition.field_name).strip()
    expected = (condition.value or "").strip()
    actual_display = actual or EMPTY_VALUE

    if operator == ConditionOperator.EQ:
        return actual.lower() == expected.lower(), actual_display
    if operator == ConditionOperator.NEQ:
        return actual.lower() != expected.lower(), actual_display
    if operator == ConditionOperator.CONTAINS:
        return expected.lower() in actual.lower(), actual_display
    if operator == ConditionOperator.BLANK:
        return _is_blank(actual), actual_display
    if operator == ConditionOperator.NOTBLANK:
        return not _is_blank(actual), actual_display

    actual_num = parse_number(actual)
    expected_num = parse_number(expected)
    if actual_num is None or expected_num is None:
        return False, actual_display

    if operator == ConditionOperator.GT:
        return actual_num > expected_num, actual_display
    if operator == ConditionOperator.GTE:
        return actual_num >= expected_num, actual_display
    if operator == ConditionOperator.LT:
        return actual_num < expected_num, actual_display
    if operator == ConditionOperator.LTE:
        return actual_num <= expected_num, actual_display
    if operator == ConditionOperator.BETWEEN:
        upper = parse_number((condition.value2 or "").strip())
        if upper is None:
            return False, actual_display
        return expected_num <= actual_num <= upper, actual_display

    return False, actual_display


def expected_display(condition: DecisionCondition) -> str:
    """Human-readable rendering of what a condition expects."""
    if condition.operator == ConditionOperator.ANY:
        return ANY_VALUE
    if condition.operator == ConditionOperator.BETWEEN:
        return f"{condition.value} – {condition.value2 or ''}"
    symbol = OPERATOR_SYMBOLS[condition.operator]
    return f"{symbol} {condition.value}" if condition.value else symbol


def evaluate_rule(
    rule: DecisionRule,
    values: Mapping[str, Any],
    display_names: Optional[Mapping[str, str]] = None,
) -> RuleEvaluationLog:
    """
    Evaluate every condition of a rule (AND semantics).

    All conditions are evaluated and logged even after one fails so the log
    always holds one entry per condition.
    """
    display_names = display_names or {}
    condition_logs: List[ConditionLog] = []
    rule_passed = True

    for condition in rule.conditions:
        passed, actual_value = evaluate_condition(condition, values)
        if not passed:
            rule_passed = False
        condition_logs.append(ConditionLog(
            condition_id=condition.id,
            field_name=condition.field_name,
            display_name=display_names.get(condition.field_name, condition.field_name),
            operator=condition.operator,
            expected_value=expected_display(condition),
            actual_value=actual_value,
            passed=passed,
        ))

    return RuleEvaluationLog(
        rule_id=rule.id,
        rule_order=rule.order,
        description=rule.description,
        passed=rule_passed,
        is_default=False,
        conditions=tuple(condition_logs),
    )


def evaluate_decision_table(
    table: DecisionTable,
    values: Mapping[str, Any],
) -> TriageResult:
    """
    Evaluate a decision table and determine the touch level.

    Never raises for malformed tables or values: a table with no matching rule
    and no default still yields the MODERATE fallback result.

    Args:
        table: The decision table to evaluate (not modified)
        values: Case field values keyed by field name

    Returns:
        TriageResult with the matched rule, key factors and evaluation log
    """
    display_names = table.display_names()
    evaluation_log: List[RuleEvaluationLog] = []

    for rule in table.ordered_rules:
        rule_log = evaluate_rule(rule, values, display_names)
        evaluation_log.append(rule_log)

        if rule_log.passed:
            key_factors = tuple(
                f"{c.display_name}: {c.actual_value}"
                for c in rule_log.conditions
                if c.operator != ConditionOperator.ANY
            )
            return TriageResult(
                touch_level=rule.output_touch_level,
                matched_rule_id=rule.id,
                matched_rule_order=rule.order,
                matched_rule_description=rule.description or f"Rule {rule.order}",
                key_factors=key_factors,
                evaluation_log=tuple(evaluation_log),
            )

    default_rule = table.default_rule
    if default_rule is not None:
        evaluation_log.append(RuleEvaluationLog(
            rule_id=default_rule.id,
            rule_order=default_rule.order,
            description=default_rule.description or "Default catch-all",
            passed=True,
            is_default=True,
        ))
        return TriageResult(
            touch_level=default_rule.output_touch_level,
            matched_rule_id=default_rule.id,
            matched_rule_order=default_rule.order,
            matched_rule_description=default_rule.description or "Default",
            key_factors=(DEFAULT_KEY_FACTOR,),
            evaluation_log=tuple(evaluation_log),
        )

    return TriageResult(
        touch_level=FALLBACK_TOUCH_LEVEL,
        matched_rule_id=FALLBACK_RULE_ID,
        matched_rule_order=FALLBACK_RULE_ORDER,
        matched_rule_description=FALLBACK_DESCRIPTION,
        key_factors=(),
        evaluation_log=tuple(evaluation_log),
    )


def processing_queue_for(touch_level: TouchLevel) -> str:
    """Processing queue a touch level is routed to."""
    return PROCESSING_QUEUES[touch_level]
