"""
Decision Table Store - persist decision tables and apply authoring edits.
"""
from typing import Callable, List, Optional, TypeVar

from sqlalchemy.orm import Session

from app.db.models import DecisionTableRecord
from app.core.logging import logger
from app.services.triage.models import (
    DecisionTable,
    DecisionTableError,
    IssueSeverity,
    TableStatus,
)


T = TypeVar("T")


class DecisionTableNotFound(LookupError):
    """Raised when no stored table has the requested id."""


class DecisionTableConflict(DecisionTableError):
    """Raised when a table cannot move to the requested state."""


def get_table_record(db: Session, table_id: str) -> DecisionTableRecord:
    record = db.query(DecisionTableRecord).filter(
        DecisionTableRecord.table_id == table_id
    ).first()
    if record is None:
        raise DecisionTableNotFound(f"Decision table {table_id} not found")
    return record


def get_decision_table(db: Session, table_id: str) -> DecisionTable:
    """Load a stored table as a domain object."""
    return get_table_record(db, table_id).to_domain()


def list_decision_tables(
    db: Session,
    transaction_type_key: Optional[str] = None,
    status: Optional[TableStatus] = None,
) -> List[DecisionTable]:
    """List stored tables, optionally filtered by transaction type and status."""
    query = db.query(DecisionTableRecord)
    if transaction_type_key:
        query = query.filter(DecisionTableRecord.transaction_type_key == transaction_type_key)
    if status:
        query = query.filter(DecisionTableRecord.status == status)
    return [r.to_domain() for r in query.order_by(DecisionTableRecord.table_id).all()]


def get_active_table(db: Session, transaction_type_key: str) -> Optional[DecisionTable]:
    """
    Get the active table for a transaction type.

    Args:
        db: Database session
        transaction_type_key: Transaction type (policy_loan, annuity_withdrawal, ...)

    Returns:
        The active DecisionTable, or None if the type has no active table
    """
    record = db.query(DecisionTableRecord).filter(
        DecisionTableRecord.transaction_type_key == transaction_type_key,
        DecisionTableRecord.status == TableStatus.ACTIVE,
    ).order_by(DecisionTableRecord.updated_at.desc()).first()
    return record.to_domain() if record else None


def create_decision_table(
    db: Session,
    table: DecisionTable,
    updated_by: Optional[str] = None,
) -> DecisionTable:
    """
    Store a new table.

    Tables are always created as drafts; use activate_decision_table() to
    put one into service.

    Raises:
        DecisionTableConflict: If a table with the same id already exists
    """
    existing = db.query(DecisionTableRecord).filter(
        DecisionTableRecord.table_id == table.id
    ).first()
    if existing is not None:
        raise DecisionTableConflict(f"Decision table {table.id} already exists")

    table.status = TableStatus.DRAFT
    record = DecisionTableRecord(table_id=table.id, updated_by=updated_by)
    record.apply_domain(table)
    db.add(record)
    db.commit()
    db.refresh(record)
    logger.info(f"Decision table created: {table.id} ({table.transaction_type_key})")
    return record.to_domain()


def replace_decision_table(
    db: Session,
    table_id: str,
    table: DecisionTable,
    updated_by: Optional[str] = None,
) -> DecisionTable:
    """Overwrite a stored table's definition. Status is managed separately."""
    record = get_table_record(db, table_id)
    table.id = table_id
    table.status = record.status
    _check_active_table_is_sound(table)
    record.apply_domain(table)
    record.updated_by = updated_by
    db.commit()
    db.refresh(record)
    return record.to_domain()


def edit_decision_table(
    db: Session,
    table_id: str,
    edit: Callable[[DecisionTable], T],
    updated_by: Optional[str] = None,
) -> tuple[DecisionTable, T]:
    """
    Load a table, apply an authoring operation to it and save it.

    Nothing is saved if the operation raises.

    Args:
        db: Database session
        table_id: Stored table id
        edit: Callable receiving the DecisionTable (e.g. lambda t: t.add_rule())
        updated_by: Operator making the change

    Returns:
        Tuple of (saved table, value returned by edit)
    """
    record = get_table_record(db, table_id)
    table = record.to_domain()
    outcome = edit(table)
    _check_active_table_is_sound(table)
    record.apply_domain(table)
    record.updated_by = updated_by
    db.commit()
    db.refresh(record)
    return record.to_domain(), outcome


def activate_decision_table(
    db: Session,
    table_id: str,
    updated_by: Optional[str] = None,
) -> DecisionTable:
    """
    Make a table the active one for its transaction type.

    Any other active table for the same transaction type is archived.

    Raises:
        DecisionTableConflict: If the table has error-level validation issues
    """
    record = get_table_record(db, table_id)
    table = record.to_domain()
    errors = [i.message for i in table.validate() if i.severity == IssueSeverity.ERROR]
    if errors:
        raise DecisionTableConflict(
            f"Decision table {table_id} cannot be activated: {'; '.join(errors)}"
        )

    others = db.query(DecisionTableRecord).filter(
        DecisionTableRecord.transaction_type_key == record.transaction_type_key,
        DecisionTableRecord.status == TableStatus.ACTIVE,
        DecisionTableRecord.table_id != table_id,
    ).all()
    for other in others:
        other.status = TableStatus.ARCHIVED
        logger.info(f"Decision table archived: {other.table_id} (superseded by {table_id})")

    record.status = TableStatus.ACTIVE
    record.updated_by = updated_by
    db.commit()
    db.refresh(record)
    logger.info(f"Decision table activated: {table_id} ({record.transaction_type_key})")
    return record.to_domain()


def archive_decision_table(
    db: Session,
    table_id: str,
    updated_by: Optional[str] = None,
) -> DecisionTable:
    record = get_table_record(db, table_id)
    record.status = TableStatus.ARCHIVED
    record.updated_by = updated_by
    db.commit()
    db.refresh(record)
    return record.to_domain()


def delete_decision_table(db: Session, table_id: str) -> None:
    """Delete a table. Active tables must be archived first."""
    record = get_table_record(db, table_id)
    if record.status == TableStatus.ACTIVE:
        raise DecisionTableConflict(
            f"Decision table {table_id} is active; archive it before deleting"
        )
    db.delete(record)
    db.commit()


def seed_demo_tables(db: Session, tables: List[DecisionTable]) -> List[str]:
    """
    Store and activate demo tables that are not already present.

    Returns:
        Ids of the tables that were created
    """
    created = []
    for table in tables:
        exists = db.query(DecisionTableRecord).filter(
            DecisionTableRecord.table_id == table.id
        ).first()
        if exists:
            logger.debug(f"Skipping demo table {table.id} (already exists)")
            continue
        create_decision_table(db, table)
        activate_decision_table(db, table.id)
        created.append(table.id)
    return created


def _check_active_table_is_sound(table: DecisionTable) -> None:
    """Edits may not leave an active table structurally broken."""
    if table.status == TableStatus.ACTIVE and table.has_errors():
        raise DecisionTableError(
            f"Edit would leave active table {table.id} with validation errors"
        )
