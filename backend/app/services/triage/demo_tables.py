"""
Demo decision tables and test value sets for the loan and withdrawal scenarios.
"""
from typing import Dict, List, Optional, Tuple

from app.services.triage.models import (
    ColumnDataType,
    ConditionOperator,
    DecisionColumn,
    DecisionCondition,
    DecisionRule,
    DecisionTable,
    DEFAULT_RULE_ORDER,
    EntitySource,
    TableStatus,
    TouchLevel,
)


# (field_name, display_name, source, data_type, unit)
LOAN_COLUMNS = [
    ("policy_status", "Policy Status", EntitySource.POLICY, ColumnDataType.STRING, None),
    ("mec_indicator", "MEC Indicator", EntitySource.POLICY, ColumnDataType.BOOLEAN, None),
    ("irrev_beneficiary", "Irrevocable Beneficiary", EntitySource.POLICY, ColumnDataType.STRING, None),
    ("collateral_assignment", "Collateral Assignment", EntitySource.POLICY, ColumnDataType.STRING, None),
    ("address_change_days", "Days Since Address Change", EntitySource.WORKFLOW, ColumnDataType.NUMBER, "days"),
    ("loan_amount_pct_of_max", "Loan % of Max Available", EntitySource.WORKFLOW, ColumnDataType.PERCENT, "%"),
    ("idp_confidence_avg", "IDP Confidence (avg)", EntitySource.WORKFLOW, ColumnDataType.PERCENT, "%"),
]

WITHDRAWAL_COLUMNS = [
    ("policy_status", "Contract Status", EntitySource.POLICY, ColumnDataType.STRING, None),
    ("mec_indicator", "MEC Indicator", EntitySource.POLICY, ColumnDataType.BOOLEAN, None),
    ("irrev_beneficiary", "Irrevocable Beneficiary", EntitySource.POLICY, ColumnDataType.STRING, None),
    ("within_free_corridor", "Within Free Withdrawal Corridor", EntitySource.WORKFLOW, ColumnDataType.BOOLEAN, None),
    ("idp_confidence_avg", "IDP Confidence (avg)", EntitySource.WORKFLOW, ColumnDataType.PERCENT, "%"),
]

# Rule rows: (rule_id, description, touch_level, {field: (operator, value, value2)})
Cell = Tuple[ConditionOperator, str, Optional[str]]

LOAN_RULES: List[Tuple[str, str, TouchLevel, Dict[str, Cell]]] = [
    ("RULE-001", "Policy not in force", TouchLevel.HIGH, {
        "policy_status": (ConditionOperator.NEQ, "Active", None),
    }),
    ("RULE-002", "Modified Endowment Contract", TouchLevel.HIGH, {
        "mec_indicator": (ConditionOperator.EQ, "Yes", None),
    }),
    ("RULE-003", "Irrevocable beneficiary on file", TouchLevel.HIGH, {
        "irrev_beneficiary": (ConditionOperator.NOTBLANK, "", None),
    }),
    ("RULE-004", "Collateral assignment on file", TouchLevel.MODERATE, {
        "collateral_assignment": (ConditionOperator.NOTBLANK, "", None),
    }),
    ("RULE-005", "Address Change <30d", TouchLevel.MODERATE, {
        "address_change_days": (ConditionOperator.LTE, "30", None),
    }),
    ("RULE-006", "Low extraction confidence", TouchLevel.MODERATE, {
        "idp_confidence_avg": (ConditionOperator.LT, "85", None),
    }),
    ("RULE-007", "Loan near maximum available", TouchLevel.LOW, {
        "loan_amount_pct_of_max": (ConditionOperator.GT, "90", None),
    }),
    ("RULE-008", "Clean loan request", TouchLevel.STP, {
        "policy_status": (ConditionOperator.EQ, "Active", None),
        "loan_amount_pct_of_max": (ConditionOperator.BETWEEN, "0", "90"),
        "idp_confidence_avg": (ConditionOperator.GTE, "90", None),
    }),
]

WITHDRAWAL_RULES: List[Tuple[str, str, TouchLevel, Dict[str, Cell]]] = [
    ("RULE-001", "Contract not in force", TouchLevel.HIGH, {
        "policy_status": (ConditionOperator.NEQ, "Active", None),
    }),
    ("RULE-002", "Irrevocable beneficiary on file", TouchLevel.HIGH, {
        "irrev_beneficiary": (ConditionOperator.NOTBLANK, "", None),
    }),
    ("RULE-003", "Withdrawal exceeds free corridor", TouchLevel.MODERATE, {
        "within_free_corridor": (ConditionOperator.EQ, "No", None),
    }),
    ("RULE-004", "Free corridor, high confidence", TouchLevel.STP, {
        "mec_indicator": (ConditionOperator.EQ, "No", None),
        "within_free_corridor": (ConditionOperator.EQ, "Yes", None),
        "idp_confidence_avg": (ConditionOperator.GTE, "95", None),
    }),
]

LOAN_TEST_VALUES: Dict[str, str] = {
    "mec_indicator": "No",
    "irrev_beneficiary": "None",
    "collateral_assignment": "None",
    "address_change_days": "15",
    "loan_amount_pct_of_max": "68",
    "policy_status": "Active",
    "idp_confidence_avg": "92",
}

WITHDRAWAL_TEST_VALUES: Dict[str, str] = {
    "mec_indicator": "No",
    "irrev_beneficiary": "None",
    "within_free_corridor": "Yes",
    "policy_status": "Active",
    "idp_confidence_avg": "97",
}


def _build_table(
    table_id: str,
    name: str,
    transaction_type_key: str,
    columns: list,
    rules: list,
    default_touch_level: TouchLevel,
) -> DecisionTable:
    table_columns = [
        DecisionColumn(
            id=f"col_{field_name}",
            field_name=field_name,
            display_name=display_name,
            entity_source=source,
            data_type=data_type,
            unit=unit,
        )
        for field_name, display_name, source, data_type, unit in columns
    ]

    table_rules = []
    for order, (rule_id, description, touch_level, cells) in enumerate(rules, start=1):
        conditions = []
        for column in table_columns:
            operator, value, value2 = cells.get(column.field_name, (ConditionOperator.ANY, "", None))
            conditions.append(DecisionCondition(
                id=f"c_{rule_id.lower()}_{column.field_name}",
                column_id=column.id,
                field_name=column.field_name,
                operator=operator,
                value=value,
                value2=value2,
            ))
        table_rules.append(DecisionRule(
            id=rule_id,
            order=order,
            description=description,
            conditions=conditions,
            output_touch_level=touch_level,
        ))

    table_rules.append(DecisionRule(
        id="RULE-DEFAULT",
        order=DEFAULT_RULE_ORDER,
        description="Default catch-all",
        output_touch_level=default_touch_level,
        is_default=True,
    ))

    return DecisionTable(
        id=table_id,
        name=name,
        transaction_type_key=transaction_type_key,
        version="1.0",
        status=TableStatus.ACTIVE,
        columns=table_columns,
        rules=table_rules,
    )


def loan_decision_table() -> DecisionTable:
    """A fresh copy of the policy loan demo table."""
    return _build_table(
        "DT-LOAN-001",
        "Policy Loan Triage",
        "policy_loan",
        LOAN_COLUMNS,
        LOAN_RULES,
        TouchLevel.LOW,
    )


def withdrawal_decision_table() -> DecisionTable:
    """A fresh copy of the annuity withdrawal demo table."""
    return _build_table(
        "DT-WDL-001",
        "Annuity Withdrawal Triage",
        "annuity_withdrawal",
        WITHDRAWAL_COLUMNS,
        WITHDRAWAL_RULES,
        TouchLevel.LOW,
    )


DEMO_SCENARIOS = {
    "loan": (loan_decision_table, LOAN_TEST_VALUES),
    "withdrawal": (withdrawal_decision_table, WITHDRAWAL_TEST_VALUES),
}
