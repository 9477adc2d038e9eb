"""
Transaction case and triage run database models
"""
import uuid
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import Column, String, DateTime, Enum, ForeignKey, Integer, JSON
from sqlalchemy.orm import relationship

from app.db.base import Base
from app.services.triage.models import TouchLevel


class CaseStatus(str, PyEnum):
    INTAKE = "INTAKE"
    IDP_PROCESSING = "IDP_PROCESSING"
    PENDING_VALIDATION = "PENDING_VALIDATION"
    VALIDATION_COMPLETE = "VALIDATION_COMPLETE"
    TRIAGED = "TRIAGED"
    IN_REVIEW = "IN_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    NIGO = "NIGO"


class TransactionCase(Base):
    """An insurance transaction request moving through intake and triage."""

    __tablename__ = "transaction_cases"

    case_id = Column(String(64), primary_key=True)
    policy_number = Column(String(50), nullable=False, index=True)
    owner_name = Column(String(200), nullable=False)
    transaction_type_key = Column(String(100), nullable=False, index=True)
    channel_source = Column(String(50), nullable=False, default="Portal")
    status = Column(Enum(CaseStatus), default=CaseStatus.INTAKE, nullable=False)

    # Latest triage outcome
    touch_level = Column(Enum(TouchLevel), nullable=True)
    triage_rule_matched = Column(String(200), nullable=True)
    triage_timestamp = Column(DateTime, nullable=True)
    processing_queue = Column(String(50), nullable=True)
    assigned_processor = Column(String(100), nullable=True)

    # Case facts by source
    idp_fields = Column(JSON, default=list)  # [{"field_name", "extracted_value", "confidence_score", ...}]
    policy_fields = Column(JSON, default=dict)
    workflow_fields = Column(JSON, default=dict)

    # Linked ServiceNow record, if any
    sn_sys_id = Column(String(64), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    triage_runs = relationship(
        "TriageRun",
        back_populates="case",
        cascade="all, delete-orphan",
        order_by="TriageRun.created_at",
    )

    def __repr__(self) -> str:
        return f"<TransactionCase {self.case_id} ({self.status.value})>"


class TriageRun(Base):
    """One evaluation of a case against a decision table."""

    __tablename__ = "triage_runs"

    run_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    case_id = Column(String(64), ForeignKey("transaction_cases.case_id"), nullable=False, index=True)
    table_id = Column(String(64), nullable=False)
    table_version = Column(String(50), nullable=False)
    touch_level = Column(Enum(TouchLevel), nullable=False)
    matched_rule_id = Column(String(64), nullable=False)
    matched_rule_order = Column(Integer, nullable=False)
    values = Column(JSON, default=dict)
    result = Column(JSON, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    case = relationship("TransactionCase", back_populates="triage_runs")

    def __repr__(self) -> str:
        return f"<TriageRun {self.run_id} {self.touch_level.value}>"
