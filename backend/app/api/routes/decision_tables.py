"""
Decision table API routes
"""
from typing import Any, Callable, Dict, List, Optional, TypeVar

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.api.deps import get_db, get_operator_id
from app.core import logger
from app.services.audit import AuditService
from app.services import decision_tables as store
from app.services.case_data import to_field_string
from app.services.triage import evaluate_decision_table
from app.services.triage.models import (
    ColumnDataType,
    ConditionOperator,
    DecisionTable,
    DecisionTableElementNotFound,
    DecisionTableError,
    EntitySource,
    TableStatus,
    TouchLevel,
)

router = APIRouter()

T = TypeVar("T")


# Request/Response schemas
class ColumnSchema(BaseModel):
    id: str
    field_name: str
    display_name: str
    entity_source: EntitySource = EntitySource.IDP
    data_type: ColumnDataType = ColumnDataType.STRING
    unit: Optional[str] = None


class ConditionSchema(BaseModel):
    id: str
    column_id: str
    field_name: str
    operator: ConditionOperator = ConditionOperator.ANY
    value: str = ""
    value2: Optional[str] = None


class RuleSchema(BaseModel):
    id: str
    order: int
    description: Optional[str] = None
    conditions: List[ConditionSchema] = []
    output_touch_level: TouchLevel
    is_default: bool = False


class DecisionTableSchema(BaseModel):
    id: str
    name: str
    transaction_type_key: str
    version: str = "1.0"
    status: TableStatus = TableStatus.DRAFT
    columns: List[ColumnSchema] = []
    rules: List[RuleSchema] = []

    def to_domain(self) -> DecisionTable:
        return DecisionTable.from_dict(self.model_dump(mode="json"))


class TableIssueSchema(BaseModel):
    severity: str
    message: str
    rule_id: Optional[str] = None
    column_id: Optional[str] = None


class ValidationResponse(BaseModel):
    table_id: str
    valid: bool
    issues: List[TableIssueSchema]


class AddColumnRequest(BaseModel):
    field_name: str = Field(..., min_length=1)
    display_name: Optional[str] = None
    entity_source: EntitySource = EntitySource.IDP
    data_type: ColumnDataType = ColumnDataType.STRING
    unit: Optional[str] = None


class AddRuleRequest(BaseModel):
    description: str = "New rule"
    output_touch_level: TouchLevel = TouchLevel.MODERATE


class UpdateRuleRequest(BaseModel):
    description: Optional[str] = None
    output_touch_level: Optional[TouchLevel] = None


class UpdateConditionRequest(BaseModel):
    operator: Optional[ConditionOperator] = None
    value: Optional[str] = None
    value2: Optional[str] = None


class ReorderRulesRequest(BaseModel):
    rule_ids: List[str]


class DefaultRuleRequest(BaseModel):
    output_touch_level: TouchLevel
    description: str = "Default catch-all"


class EvaluateRequest(BaseModel):
    values: Dict[str, Any] = {}


class AuditEntryResponse(BaseModel):
    log_id: str
    event_type: str
    actor_type: str
    actor_id: Optional[str]
    details: Dict[str, Any]
    timestamp: str


def table_error_to_http(e: Exception) -> HTTPException:
    """Map store and authoring errors onto HTTP errors."""
    if isinstance(e, (store.DecisionTableNotFound, DecisionTableElementNotFound)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, store.DecisionTableConflict):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


def evaluation_payload(table: DecisionTable, values: Dict[str, Any]) -> Dict[str, Any]:
    """Evaluate a table and shape the result for the API."""
    result = evaluate_decision_table(
        table, {k: to_field_string(v) for k, v in values.items()}
    )
    if result.is_fallback:
        logger.warning(f"Decision table {table.id} has no default rule; fallback used")
    payload = result.to_dict()
    payload["processing_queue"] = result.processing_queue
    return payload


def _edit(
    db: Session,
    table_id: str,
    operator_id: Optional[str],
    event_details: Dict[str, Any],
    edit: Callable[[DecisionTable], T],
) -> tuple[DecisionTable, T]:
    try:
        table, outcome = store.edit_decision_table(db, table_id, edit, updated_by=operator_id)
    except (store.DecisionTableNotFound, DecisionTableError) as e:
        db.rollback()
        raise table_error_to_http(e)
    AuditService(db).log_table_event("table.updated", table_id, operator_id, event_details)
    return table, outcome


@router.get("", response_model=List[DecisionTableSchema])
async def list_tables(
    transaction_type_key: Optional[str] = None,
    table_status: Optional[TableStatus] = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
):
    """List decision tables, optionally filtered."""
    tables = store.list_decision_tables(db, transaction_type_key, table_status)
    return [t.to_dict() for t in tables]


@router.post("", response_model=DecisionTableSchema, status_code=status.HTTP_201_CREATED)
async def create_table(
    request: DecisionTableSchema,
    operator_id: Optional[str] = Depends(get_operator_id),
    db: Session = Depends(get_db),
):
    """Create a draft decision table."""
    try:
        table = store.create_decision_table(db, request.to_domain(), updated_by=operator_id)
    except DecisionTableError as e:
        raise table_error_to_http(e)
    AuditService(db).log_table_event("table.created", table.id, operator_id)
    return table.to_dict()


@router.get("/{table_id}", response_model=DecisionTableSchema)
async def get_table(table_id: str, db: Session = Depends(get_db)):
    """Get a decision table."""
    try:
        return store.get_decision_table(db, table_id).to_dict()
    except store.DecisionTableNotFound as e:
        raise table_error_to_http(e)


@router.put("/{table_id}", response_model=DecisionTableSchema)
async def replace_table(
    table_id: str,
    request: DecisionTableSchema,
    operator_id: Optional[str] = Depends(get_operator_id),
    db: Session = Depends(get_db),
):
    """Replace a table's definition. The id in the path wins."""
    try:
        table = store.replace_decision_table(db, table_id, request.to_domain(), updated_by=operator_id)
    except (store.DecisionTableNotFound, DecisionTableError) as e:
        db.rollback()
        raise table_error_to_http(e)
    AuditService(db).log_table_event("table.updated", table_id, operator_id, {"action": "replace"})
    return table.to_dict()


@router.delete("/{table_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_table(
    table_id: str,
    operator_id: Optional[str] = Depends(get_operator_id),
    db: Session = Depends(get_db),
):
    try:
        store.delete_decision_table(db, table_id)
    except (store.DecisionTableNotFound, DecisionTableError) as e:
        raise table_error_to_http(e)
    AuditService(db).log_table_event("table.deleted", table_id, operator_id)


@router.post("/{table_id}/activate", response_model=DecisionTableSchema)
async def activate_table(
    table_id: str,
    operator_id: Optional[str] = Depends(get_operator_id),
    db: Session = Depends(get_db),
):
    """Put a table into service, archiving the previous active table for its type."""
    try:
        table = store.activate_decision_table(db, table_id, updated_by=operator_id)
    except (store.DecisionTableNotFound, DecisionTableError) as e:
        db.rollback()
        raise table_error_to_http(e)
    AuditService(db).log_table_event("table.activated", table_id, operator_id)
    return table.to_dict()


@router.post("/{table_id}/archive", response_model=DecisionTableSchema)
async def archive_table(
    table_id: str,
    operator_id: Optional[str] = Depends(get_operator_id),
    db: Session = Depends(get_db),
):
    try:
        table = store.archive_decision_table(db, table_id, updated_by=operator_id)
    except store.DecisionTableNotFound as e:
        raise table_error_to_http(e)
    AuditService(db).log_table_event("table.archived", table_id, operator_id)
    return table.to_dict()


@router.get("/{table_id}/validate", response_model=ValidationResponse)
async def validate_table(table_id: str, db: Session = Depends(get_db)):
    """Report structural issues with a table."""
    try:
        table = store.get_decision_table(db, table_id)
    except store.DecisionTableNotFound as e:
        raise table_error_to_http(e)
    issues = table.validate()
    return ValidationResponse(
        table_id=table_id,
        valid=not table.has_errors(),
        issues=[TableIssueSchema(**i.to_dict()) for i in issues],
    )


@router.post("/{table_id}/columns", response_model=DecisionTableSchema, status_code=status.HTTP_201_CREATED)
async def add_column(
    table_id: str,
    request: AddColumnRequest,
    operator_id: Optional[str] = Depends(get_operator_id),
    db: Session = Depends(get_db),
):
    """Add a column; every non-default rule gets an ANY condition for it."""
    table, _ = _edit(
        db, table_id, operator_id,
        {"action": "add_column", "field_name": request.field_name},
        lambda t: t.add_column(
            request.field_name,
            request.display_name,
            request.entity_source,
            request.data_type,
            request.unit,
        ),
    )
    return table.to_dict()


@router.delete("/{table_id}/columns/{column_id}", response_model=DecisionTableSchema)
async def remove_column(
    table_id: str,
    column_id: str,
    operator_id: Optional[str] = Depends(get_operator_id),
    db: Session = Depends(get_db),
):
    table, _ = _edit(
        db, table_id, operator_id,
        {"action": "remove_column", "column_id": column_id},
        lambda t: t.remove_column(column_id),
    )
    return table.to_dict()


@router.post("/{table_id}/rules", response_model=DecisionTableSchema, status_code=status.HTTP_201_CREATED)
async def add_rule(
    table_id: str,
    request: AddRuleRequest,
    operator_id: Optional[str] = Depends(get_operator_id),
    db: Session = Depends(get_db),
):
    table, _ = _edit(
        db, table_id, operator_id,
        {"action": "add_rule"},
        lambda t: t.add_rule(request.description, request.output_touch_level),
    )
    return table.to_dict()


@router.post("/{table_id}/rules/reorder", response_model=DecisionTableSchema)
async def reorder_rules(
    table_id: str,
    request: ReorderRulesRequest,
    operator_id: Optional[str] = Depends(get_operator_id),
    db: Session = Depends(get_db),
):
    """Set rule evaluation order. The default rule is always evaluated last."""
    table, _ = _edit(
        db, table_id, operator_id,
        {"action": "reorder_rules", "rule_ids": request.rule_ids},
        lambda t: t.reorder_rules(request.rule_ids),
    )
    return table.to_dict()


@router.delete("/{table_id}/rules/{rule_id}", response_model=DecisionTableSchema)
async def remove_rule(
    table_id: str,
    rule_id: str,
    operator_id: Optional[str] = Depends(get_operator_id),
    db: Session = Depends(get_db),
):
    table, _ = _edit(
        db, table_id, operator_id,
        {"action": "remove_rule", "rule_id": rule_id},
        lambda t: t.remove_rule(rule_id),
    )
    return table.to_dict()


@router.patch("/{table_id}/rules/{rule_id}", response_model=DecisionTableSchema)
async def update_rule(
    table_id: str,
    rule_id: str,
    request: UpdateRuleRequest,
    operator_id: Optional[str] = Depends(get_operator_id),
    db: Session = Depends(get_db),
):
    table, _ = _edit(
        db, table_id, operator_id,
        {"action": "update_rule", "rule_id": rule_id},
        lambda t: t.update_rule(rule_id, request.description, request.output_touch_level),
    )
    return table.to_dict()


@router.patch(
    "/{table_id}/rules/{rule_id}/conditions/{condition_id}",
    response_model=DecisionTableSchema,
)
async def update_condition(
    table_id: str,
    rule_id: str,
    condition_id: str,
    request: UpdateConditionRequest,
    operator_id: Optional[str] = Depends(get_operator_id),
    db: Session = Depends(get_db),
):
    """Change the operator and/or operands of one condition."""
    table, _ = _edit(
        db, table_id, operator_id,
        {"action": "update_condition", "rule_id": rule_id, "condition_id": condition_id},
        lambda t: t.update_condition(
            rule_id, condition_id, request.operator, request.value, request.value2
        ),
    )
    return table.to_dict()


@router.put("/{table_id}/default-rule", response_model=DecisionTableSchema)
async def set_default_rule(
    table_id: str,
    request: DefaultRuleRequest,
    operator_id: Optional[str] = Depends(get_operator_id),
    db: Session = Depends(get_db),
):
    table, _ = _edit(
        db, table_id, operator_id,
        {"action": "set_default_rule", "output_touch_level": request.output_touch_level.value},
        lambda t: t.set_default_rule(request.output_touch_level, request.description),
    )
    return table.to_dict()


@router.post("/{table_id}/evaluate")
async def evaluate_table(
    table_id: str,
    request: EvaluateRequest,
    db: Session = Depends(get_db),
):
    """What-if evaluation of a stored table. Nothing is persisted."""
    try:
        table = store.get_decision_table(db, table_id)
    except store.DecisionTableNotFound as e:
        raise table_error_to_http(e)
    return evaluation_payload(table, request.values)


@router.get("/{table_id}/history", response_model=List[AuditEntryResponse])
async def get_table_history(
    table_id: str,
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """Audit trail of edits to a table, newest first."""
    entries = AuditService(db).get_resource_history("decision_table", table_id, limit=limit)
    return [
        AuditEntryResponse(
            log_id=e.log_id,
            event_type=e.event_type,
            actor_type=e.actor_type,
            actor_id=e.actor_id,
            details={k: v for k, v in (e.details or {}).items() if k != "_metadata"},
            timestamp=e.timestamp.isoformat(),
        )
        for e in entries
    ]
