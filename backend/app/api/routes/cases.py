"""
Transaction case API routes
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
import uuid as uuid_lib

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.api.deps import get_db, get_operator_id, get_servicenow_client
from app.core import logger, settings
from app.db.models import CaseStatus, TransactionCase, TriageRun
from app.services.audit import AuditService
from app.services.case_data import build_case_values
from app.services.decision_tables import get_active_table
from app.services.servicenow import ServiceNowClient, ServiceNowError
from app.services.transaction_types import TRANSACTION_TYPES, get_transaction_type
from app.services.triage import TouchLevel, evaluate_decision_table

router = APIRouter()


# Request/Response schemas
class IdpFieldSchema(BaseModel):
    field_name: str
    extracted_value: Optional[str] = None
    corrected_value: Optional[str] = None
    confidence_score: Optional[float] = None


class CreateCaseRequest(BaseModel):
    policy_number: str
    owner_name: str
    transaction_type_key: str
    channel_source: str = "Portal"
    idp_fields: List[IdpFieldSchema] = []
    policy_fields: Dict[str, Any] = {}
    workflow_fields: Dict[str, Any] = {}
    sn_sys_id: Optional[str] = None

    @field_validator("transaction_type_key")
    @classmethod
    def validate_transaction_type(cls, v: str) -> str:
        if v not in TRANSACTION_TYPES:
            raise ValueError(f"transaction_type_key must be one of: {', '.join(TRANSACTION_TYPES)}")
        return v


class CaseResponse(BaseModel):
    case_id: str
    policy_number: str
    owner_name: str
    transaction_type_key: str
    channel_source: str
    status: str
    touch_level: Optional[str]
    triage_rule_matched: Optional[str]
    triage_timestamp: Optional[str]
    processing_queue: Optional[str]
    assigned_processor: Optional[str]
    sn_sys_id: Optional[str]
    created_at: str


class TriageRunResponse(BaseModel):
    run_id: str
    case_id: str
    table_id: str
    table_version: str
    touch_level: str
    matched_rule_id: str
    matched_rule_order: int
    values: Dict[str, str]
    result: Dict[str, Any]
    created_at: str


class CaseTriageResponse(BaseModel):
    case: CaseResponse
    run_id: str
    result: Dict[str, Any]
    servicenow_synced: Optional[bool] = None


class PipelineResponse(BaseModel):
    total: int
    by_touch_level: Dict[str, int]
    nigo: int
    untriaged: int


def generate_case_id() -> str:
    """Generate a unique case id."""
    return f"TXN-{str(uuid_lib.uuid4())[:8].upper()}"


def _case_response(case: TransactionCase) -> CaseResponse:
    return CaseResponse(
        case_id=case.case_id,
        policy_number=case.policy_number,
        owner_name=case.owner_name,
        transaction_type_key=case.transaction_type_key,
        channel_source=case.channel_source,
        status=case.status.value,
        touch_level=case.touch_level.value if case.touch_level else None,
        triage_rule_matched=case.triage_rule_matched,
        triage_timestamp=case.triage_timestamp.isoformat() if case.triage_timestamp else None,
        processing_queue=case.processing_queue,
        assigned_processor=case.assigned_processor,
        sn_sys_id=case.sn_sys_id,
        created_at=case.created_at.isoformat(),
    )


def _run_response(run: TriageRun) -> TriageRunResponse:
    return TriageRunResponse(
        run_id=run.run_id,
        case_id=run.case_id,
        table_id=run.table_id,
        table_version=run.table_version,
        touch_level=run.touch_level.value,
        matched_rule_id=run.matched_rule_id,
        matched_rule_order=run.matched_rule_order,
        values=run.values or {},
        result=run.result or {},
        created_at=run.created_at.isoformat(),
    )


def _get_case(db: Session, case_id: str) -> TransactionCase:
    case = db.query(TransactionCase).filter(TransactionCase.case_id == case_id).first()
    if not case:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Case not found",
        )
    return case


def case_values(case: TransactionCase) -> Dict[str, str]:
    """Value map for a case, using its transaction type's confidence threshold."""
    config = get_transaction_type(case.transaction_type_key)
    threshold = config.confidence_thresholds.default if config else None
    return build_case_values(
        case.idp_fields or [],
        case.policy_fields or {},
        case.workflow_fields or {},
        confidence_threshold=threshold,
    )


@router.post("", response_model=CaseResponse, status_code=status.HTTP_201_CREATED)
async def create_case(
    request: CreateCaseRequest,
    operator_id: Optional[str] = Depends(get_operator_id),
    db: Session = Depends(get_db),
):
    """Register a new transaction request at intake."""
    case = TransactionCase(
        case_id=generate_case_id(),
        policy_number=request.policy_number,
        owner_name=request.owner_name,
        transaction_type_key=request.transaction_type_key,
        channel_source=request.channel_source,
        status=CaseStatus.INTAKE,
        idp_fields=[f.model_dump() for f in request.idp_fields],
        policy_fields=request.policy_fields,
        workflow_fields=request.workflow_fields,
        sn_sys_id=request.sn_sys_id,
    )
    db.add(case)
    db.commit()
    db.refresh(case)

    AuditService(db).log_case_event(
        "case.created",
        case.case_id,
        operator_id,
        {"transaction_type_key": case.transaction_type_key, "channel_source": case.channel_source},
    )
    return _case_response(case)


@router.get("", response_model=List[CaseResponse])
async def list_cases(
    transaction_type_key: Optional[str] = None,
    touch_level: Optional[TouchLevel] = None,
    case_status: Optional[CaseStatus] = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
):
    """List cases, newest first."""
    query = db.query(TransactionCase)
    if transaction_type_key:
        query = query.filter(TransactionCase.transaction_type_key == transaction_type_key)
    if touch_level:
        query = query.filter(TransactionCase.touch_level == touch_level)
    if case_status:
        query = query.filter(TransactionCase.status == case_status)
    cases = query.order_by(TransactionCase.created_at.desc()).all()
    return [_case_response(c) for c in cases]


@router.get("/pipeline", response_model=PipelineResponse)
async def get_pipeline(db: Session = Depends(get_db)):
    """Case counts per touch level plus NIGO and untriaged."""
    total = db.query(func.count(TransactionCase.case_id)).scalar()

    by_touch_level = {}
    for level in TouchLevel:
        by_touch_level[level.value] = db.query(func.count(TransactionCase.case_id)).filter(
            TransactionCase.touch_level == level
        ).scalar()

    nigo = db.query(func.count(TransactionCase.case_id)).filter(
        TransactionCase.status == CaseStatus.NIGO
    ).scalar()

    untriaged = db.query(func.count(TransactionCase.case_id)).filter(
        TransactionCase.touch_level.is_(None),
        TransactionCase.status != CaseStatus.NIGO,
    ).scalar()

    return PipelineResponse(
        total=total,
        by_touch_level=by_touch_level,
        nigo=nigo,
        untriaged=untriaged,
    )


@router.get("/{case_id}", response_model=CaseResponse)
async def get_case(case_id: str, db: Session = Depends(get_db)):
    return _case_response(_get_case(db, case_id))


@router.get("/{case_id}/values", response_model=Dict[str, str])
async def get_case_values(case_id: str, db: Session = Depends(get_db)):
    """The field values triage would see for this case."""
    return case_values(_get_case(db, case_id))


@router.post("/{case_id}/triage", response_model=CaseTriageResponse)
async def triage_case(
    case_id: str,
    authorization: Optional[str] = Header(default=None),
    operator_id: Optional[str] = Depends(get_operator_id),
    db: Session = Depends(get_db),
    servicenow: ServiceNowClient = Depends(get_servicenow_client),
):
    """
    Evaluate a case against the active table for its transaction type.

    The run is stored, the case moves to TRIAGED and, when write-back is
    enabled and the case is linked, the touch level is pushed to ServiceNow.
    """
    case = _get_case(db, case_id)
    table = get_active_table(db, case.transaction_type_key)
    if table is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"No active decision table for transaction type {case.transaction_type_key}",
        )

    values = case_values(case)
    result = evaluate_decision_table(table, values)
    audit = AuditService(db)

    if result.is_fallback:
        logger.warning(
            f"Triage fallback for case {case_id}: table {table.id} has no default rule"
        )
        audit.log_case_event(
            "triage.fallback",
            case_id,
            operator_id,
            {"table_id": table.id, "table_version": table.version},
        )

    run = TriageRun(
        case_id=case.case_id,
        table_id=table.id,
        table_version=table.version,
        touch_level=result.touch_level,
        matched_rule_id=result.matched_rule_id,
        matched_rule_order=result.matched_rule_order,
        values=values,
        result=result.to_dict(),
    )
    db.add(run)

    case.touch_level = result.touch_level
    case.triage_rule_matched = f"{result.matched_rule_id}: {result.matched_rule_description}"
    case.triage_timestamp = datetime.utcnow()
    case.processing_queue = result.processing_queue
    case.status = CaseStatus.TRIAGED
    db.commit()
    db.refresh(case)
    db.refresh(run)

    audit.log_case_event(
        "case.triaged",
        case_id,
        operator_id,
        {
            "table_id": table.id,
            "touch_level": result.touch_level.value,
            "matched_rule_id": result.matched_rule_id,
            "run_id": run.run_id,
        },
    )

    synced = None
    if settings.SERVICENOW_WRITEBACK_ENABLED and case.sn_sys_id:
        try:
            await servicenow.update_touch_level(
                case.sn_sys_id, result.touch_level.value, token=authorization
            )
            synced = True
        except ServiceNowError as e:
            logger.warning(f"ServiceNow write-back failed for case {case_id}: {e}")
            audit.log_case_event(
                "servicenow.sync_failed",
                case_id,
                operator_id,
                {"sn_sys_id": case.sn_sys_id, "error": str(e), "status_code": e.status_code},
            )
            synced = False

    return CaseTriageResponse(
        case=_case_response(case),
        run_id=run.run_id,
        result=result.to_dict() | {"processing_queue": result.processing_queue},
        servicenow_synced=synced,
    )


@router.get("/{case_id}/triage-runs", response_model=List[TriageRunResponse])
async def get_triage_runs(case_id: str, db: Session = Depends(get_db)):
    """Triage history for a case, oldest first."""
    case = _get_case(db, case_id)
    return [_run_response(r) for r in case.triage_runs]
