"""
Audit database model for system-wide audit logging
"""
import uuid
from datetime import datetime

from sqlalchemy import Column, String, DateTime, JSON

from app.db.base import Base


class AuditLog(Base):
    """System-wide audit log for table edits and triage runs."""

    __tablename__ = "audit_logs"

    log_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_type = Column(String(100), nullable=False, index=True)

    # Resource being accessed/modified
    resource_type = Column(String(50), nullable=True)  # e.g., "decision_table", "case"
    resource_id = Column(String(100), nullable=True)

    # Actor
    actor_id = Column(String(100), nullable=True)
    actor_type = Column(String(50), nullable=False)  # e.g., "operator", "system"

    # Details
    details = Column(JSON, default=dict)
    ip_address = Column(String(50), nullable=True)

    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<AuditLog {self.event_type} at {self.timestamp}>"
