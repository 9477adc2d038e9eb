"""
Decision table database model
"""
from datetime import datetime

from sqlalchemy import Column, String, DateTime, Enum, JSON

from app.db.base import Base
from app.services.triage.models import DecisionTable, TableStatus


class DecisionTableRecord(Base):
    """A persisted decision table. Columns and rules are stored as JSON."""

    __tablename__ = "decision_tables"

    table_id = Column(String(64), primary_key=True)
    name = Column(String(200), nullable=False)
    transaction_type_key = Column(String(100), nullable=False, index=True)
    version = Column(String(50), nullable=False, default="1.0")
    status = Column(Enum(TableStatus), nullable=False, default=TableStatus.DRAFT, index=True)

    # {"columns": [...], "rules": [...]}
    definition = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    updated_by = Column(String(100), nullable=True)

    def __repr__(self) -> str:
        return f"<DecisionTableRecord {self.table_id} v{self.version} ({self.status.value})>"

    def to_domain(self) -> DecisionTable:
        """Build a fresh, independent DecisionTable from this row."""
        definition = self.definition or {}
        return DecisionTable.from_dict({
            "id": self.table_id,
            "name": self.name,
            "transaction_type_key": self.transaction_type_key,
            "version": self.version,
            "status": self.status.value,
            "columns": definition.get("columns", []),
            "rules": definition.get("rules", []),
        })

    def apply_domain(self, table: DecisionTable) -> None:
        """Copy a DecisionTable's contents onto this row."""
        data = table.to_dict()
        self.name = data["name"]
        self.transaction_type_key = data["transaction_type_key"]
        self.version = data["version"]
        self.status = table.status
        self.definition = {"columns": data["columns"], "rules": data["rules"]}
