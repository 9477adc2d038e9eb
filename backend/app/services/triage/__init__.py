"""
Triage Engine Module

Decision-table evaluation that routes insurance transactions to a touch level.
"""
from app.services.triage.engine import (
    TriageResult,
    RuleEvaluationLog,
    ConditionLog,
    evaluate_condition,
    evaluate_rule,
    evaluate_decision_table,
    processing_queue_for,
)
from app.services.triage.models import (
    TouchLevel,
    ConditionOperator,
    DecisionColumn,
    DecisionCondition,
    DecisionRule,
    DecisionTable,
    DecisionTableError,
    DecisionTableElementNotFound,
)

__all__ = [
    "TriageResult",
    "RuleEvaluationLog",
    "ConditionLog",
    "evaluate_condition",
    "evaluate_rule",
    "evaluate_decision_table",
    "processing_queue_for",
    "TouchLevel",
    "ConditionOperator",
    "DecisionColumn",
    "DecisionCondition",
    "DecisionRule",
    "DecisionTable",
    "DecisionTableError",
    "DecisionTableElementNotFound",
]
