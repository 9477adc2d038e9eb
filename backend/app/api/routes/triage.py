"""
Triage API routes - what-if evaluation, demo scenarios and transaction types
"""
from typing import Any, Dict, List

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from app.api.routes.decision_tables import DecisionTableSchema, evaluation_payload
from app.services.transaction_types import list_transaction_types
from app.services.triage.demo_tables import DEMO_SCENARIOS

router = APIRouter()


class InlineEvaluateRequest(BaseModel):
    table: DecisionTableSchema
    values: Dict[str, Any] = {}


class DemoScenarioResponse(BaseModel):
    scenario: str
    table: DecisionTableSchema
    values: Dict[str, str]


@router.post("/evaluate")
async def evaluate_inline(request: InlineEvaluateRequest):
    """Evaluate an unsaved table against a set of values."""
    return evaluation_payload(request.table.to_domain(), request.values)


@router.get("/demo/{scenario}", response_model=DemoScenarioResponse)
async def get_demo_scenario(scenario: str):
    """Demo table plus a matching set of test values."""
    if scenario not in DEMO_SCENARIOS:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown demo scenario '{scenario}'. Use one of: {', '.join(DEMO_SCENARIOS)}",
        )
    build_table, values = DEMO_SCENARIOS[scenario]
    return DemoScenarioResponse(
        scenario=scenario,
        table=DecisionTableSchema(**build_table().to_dict()),
        values=dict(values),
    )


@router.get("/transaction-types", response_model=List[Dict[str, Any]])
async def get_transaction_types():
    return [t.to_dict() for t in list_transaction_types()]
