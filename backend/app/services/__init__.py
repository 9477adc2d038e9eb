"""
Services package
"""
from app.services.case_data import build_case_values
from app.services.transaction_types import get_transaction_type, list_transaction_types
from app.services.triage import evaluate_decision_table

__all__ = [
    "build_case_values",
    "get_transaction_type",
    "list_transaction_types",
    "evaluate_decision_table",
]
