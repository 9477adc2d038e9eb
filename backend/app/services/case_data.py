"""
Case Data Provider

Flattens the facts known about a case into the string-keyed value map the
triage engine consumes. Facts come from three sources:
- IDP: entities extracted from the intake documents
- Policy: values retrieved from the policy administration system
- Workflow: values derived while the case moves through the workflow

Later sources win when the same field name appears more than once
(IDP < Policy < Workflow).
"""
from typing import Any, Dict, Iterable, List, Mapping, Optional

from app.core.config import settings


def to_field_string(value: Any) -> str:
    """Render a fact as the string form the triage engine compares."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def idp_field_value(entity: Mapping[str, Any]) -> str:
    """Current value of an IDP entity: the correction if one was made."""
    corrected = entity.get("corrected_value")
    if corrected is not None and str(corrected).strip():
        return to_field_string(corrected)
    return to_field_string(entity.get("extracted_value"))


def idp_confidence_summary(
    idp_fields: Iterable[Mapping[str, Any]],
    threshold: float,
) -> Dict[str, str]:
    """Workflow facts derived from IDP confidence scores."""
    scores: List[float] = []
    for entity in idp_fields:
        score = entity.get("confidence_score")
        if score is None:
            continue
        try:
            scores.append(float(score))
        except (TypeError, ValueError):
            continue

    if not scores:
        return {}

    return {
        "idp_confidence_avg": str(round(sum(scores) / len(scores))),
        "idp_low_confidence_count": str(sum(1 for s in scores if s < threshold)),
    }


def build_case_values(
    idp_fields: Optional[List[Mapping[str, Any]]] = None,
    policy_fields: Optional[Mapping[str, Any]] = None,
    workflow_fields: Optional[Mapping[str, Any]] = None,
    confidence_threshold: Optional[float] = None,
) -> Dict[str, str]:
    """
    Build the triage value map for a case.

    Args:
        idp_fields: Extracted entities, each with field_name, extracted_value,
            optional corrected_value and confidence_score (0-100)
        policy_fields: Policy system values keyed by field name
        workflow_fields: Workflow values keyed by field name
        confidence_threshold: Score below which an IDP entity counts as low
            confidence (defaults to IDP_CONFIDENCE_THRESHOLD)

    Returns:
        Dict of field name to string value
    """
    idp_fields = idp_fields or []
    threshold = (
        confidence_threshold
        if confidence_threshold is not None
        else settings.IDP_CONFIDENCE_THRESHOLD
    )
    values: Dict[str, str] = {}

    for entity in idp_fields:
        field_name = entity.get("field_name")
        if field_name:
            values[field_name] = idp_field_value(entity)

    for field_name, value in (policy_fields or {}).items():
        values[field_name] = to_field_string(value)

    # Derived facts only fill gaps; explicit workflow values still override
    for field_name, value in idp_confidence_summary(idp_fields, threshold).items():
        values.setdefault(field_name, value)

    for field_name, value in (workflow_fields or {}).items():
        values[field_name] = to_field_string(value)

    return values
