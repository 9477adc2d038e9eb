"""
Audit service for Triage Desk.
Persists decision table edits and triage runs to the audit log.
"""

import logging
from datetime import datetime
from typing import Any, Optional
from sqlalchemy.orm import Session

from app.db.models import AuditLog
from app.core.logging import log_audit_event


class AuditService:
    """Service for creating and querying audit logs."""

    # Event type categories
    TABLE_EVENTS = [
        "table.created", "table.updated", "table.deleted",
        "table.activated", "table.archived",
    ]
    CASE_EVENTS = ["case.created", "case.triaged"]
    ANOMALY_EVENTS = ["triage.fallback", "servicenow.sync_failed"]

    def __init__(self, db: Session):
        self.db = db

    def log(
        self,
        event_type: str,
        actor_type: str,
        actor_id: Optional[str],
        resource_type: str,
        resource_id: str,
        details: Optional[dict[str, Any]] = None,
        ip_address: Optional[str] = None,
    ) -> AuditLog:
        """
        Create an audit log entry.

        Args:
            event_type: Type of event (e.g., "table.updated", "case.triaged")
            actor_type: Who performed the action ("operator", "system")
            actor_id: ID of the actor
            resource_type: Type of resource affected
            resource_id: ID of the resource
            details: Additional event details
            ip_address: Client IP address
        """
        details = dict(details or {})
        details["_metadata"] = {
            "timestamp": datetime.utcnow().isoformat(),
            "ip_address": ip_address,
        }

        audit_log = AuditLog(
            event_type=event_type,
            actor_type=actor_type,
            actor_id=actor_id,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details,
            ip_address=ip_address,
        )

        self.db.add(audit_log)
        self.db.commit()
        self.db.refresh(audit_log)

        # Log to application logs as well for real-time monitoring
        log_audit_event(
            event_type,
            actor_id,
            actor_type,
            {"resource": f"{resource_type}:{resource_id}"},
            level=logging.WARNING if event_type in self.ANOMALY_EVENTS else logging.INFO,
        )

        return audit_log

    def log_table_event(
        self,
        event_type: str,
        table_id: str,
        actor_id: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> AuditLog:
        """Log a decision table authoring event."""
        return self.log(
            event_type=event_type,
            actor_type="operator" if actor_id else "system",
            actor_id=actor_id,
            resource_type="decision_table",
            resource_id=table_id,
            details=details,
        )

    def log_case_event(
        self,
        event_type: str,
        case_id: str,
        actor_id: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> AuditLog:
        """Log a case workflow event."""
        return self.log(
            event_type=event_type,
            actor_type="operator" if actor_id else "system",
            actor_id=actor_id,
            resource_type="case",
            resource_id=case_id,
            details=details,
        )

    def get_resource_history(
        self,
        resource_type: str,
        resource_id: str,
        limit: int = 50,
    ) -> list[AuditLog]:
        """Get audit history for a specific resource."""
        return (
            self.db.query(AuditLog)
            .filter(
                AuditLog.resource_type == resource_type,
                AuditLog.resource_id == resource_id,
            )
            .order_by(AuditLog.timestamp.desc())
            .limit(limit)
            .all()
        )
