"""
Database models package
"""
from app.db.models.decision_table import DecisionTableRecord
from app.db.models.case import TransactionCase, TriageRun, CaseStatus
from app.db.models.audit import AuditLog

__all__ = [
    # Decision tables
    "DecisionTableRecord",
    # Cases
    "TransactionCase",
    "TriageRun",
    "CaseStatus",
    # Audit
    "AuditLog",
]
