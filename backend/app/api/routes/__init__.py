"""
API routes package
"""
from app.api.routes import decision_tables, triage, cases, servicenow

__all__ = [
    "decision_tables",
    "triage",
    "cases",
    "servicenow",
]
