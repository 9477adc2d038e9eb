"""
Transaction type registry.

Maps each transaction type key to its display name and the configuration
artifacts (IDP template, decision table, form layout, good-order checklist)
used to process it.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass(frozen=True)
class ConfidenceThresholds:
    default: int
    signature: int
    amounts: int


@dataclass(frozen=True)
class TransactionTypeConfig:
    key: str
    display_name: str
    line_of_business: str
    idp_template_ref: str
    decision_table_ref: str
    form_layout_ref: str
    good_order_checklist_ref: str
    confidence_thresholds: ConfidenceThresholds = field(
        default_factory=lambda: ConfidenceThresholds(default=90, signature=95, amounts=95)
    )

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "display_name": self.display_name,
            "line_of_business": self.line_of_business,
            "idp_template_ref": self.idp_template_ref,
            "decision_table_ref": self.decision_table_ref,
            "form_layout_ref": self.form_layout_ref,
            "good_order_checklist_ref": self.good_order_checklist_ref,
            "confidence_thresholds": {
                "default": self.confidence_thresholds.default,
                "signature": self.confidence_thresholds.signature,
                "amounts": self.confidence_thresholds.amounts,
            },
        }


TRANSACTION_TYPES: Dict[str, TransactionTypeConfig] = {
    "policy_loan": TransactionTypeConfig(
        key="policy_loan",
        display_name="Policy Loan",
        line_of_business="Life",
        idp_template_ref="IDP-LOAN-REQ-v2",
        decision_table_ref="DT-LOAN-001",
        form_layout_ref="FORM-LOAN-001",
        good_order_checklist_ref="GOC-LOAN-001",
        confidence_thresholds=ConfidenceThresholds(default=90, signature=95, amounts=95),
    ),
    "annuity_withdrawal": TransactionTypeConfig(
        key="annuity_withdrawal",
        display_name="Annuity Withdrawal",
        line_of_business="Annuity",
        idp_template_ref="IDP-WDL-REQ-v1",
        decision_table_ref="DT-WDL-001",
        form_layout_ref="FORM-WDL-001",
        good_order_checklist_ref="GOC-WDL-001",
        confidence_thresholds=ConfidenceThresholds(default=95, signature=95, amounts=98),
    ),
}


def get_transaction_type(key: str) -> Optional[TransactionTypeConfig]:
    return TRANSACTION_TYPES.get(key)


def list_transaction_types() -> List[TransactionTypeConfig]:
    return list(TRANSACTION_TYPES.values())
