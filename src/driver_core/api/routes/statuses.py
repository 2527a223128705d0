"""Delivery status endpoints."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException, status

from ...services.status.normalizer import (
    Diagnostic,
    action_label,
    allowed_next_states,
    normalize,
    stage_for,
    to_wire_value,
    validate_transition,
)
from ...schemas.statuses import (
    DiagnosticModel,
    NextStatesResponse,
    NormalizeRequest,
    NormalizeResponse,
    ValidateTransitionRequest,
    ValidateTransitionResponse,
)

router = APIRouter(prefix="/statuses", tags=["statuses"])


def _diagnostic_model(diagnostic: Optional[Diagnostic]) -> Optional[DiagnosticModel]:
    if diagnostic is None:
        return None
    return DiagnosticModel(kind=diagnostic.kind.value, raw=diagnostic.raw)


@router.post("/normalize", response_model=NormalizeResponse)
def normalize_status(payload: NormalizeRequest) -> NormalizeResponse:
    canonical, diagnostic = normalize(payload.raw)
    return NormalizeResponse(
        status=canonical.value,
        wire_value=to_wire_value(canonical),
        action_label=action_label(canonical),
        stage=stage_for(canonical).value,
        terminal=canonical.is_terminal,
        diagnostic=_diagnostic_model(diagnostic),
    )


@router.get("/{raw_status}/next", response_model=NextStatesResponse)
def next_statuses(raw_status: str) -> NextStatesResponse:
    canonical, diagnostic = normalize(raw_status)
    return NextStatesResponse(
        status=canonical.value,
        next=sorted(to_wire_value(candidate) for candidate in allowed_next_states(canonical)),
        diagnostic=_diagnostic_model(diagnostic),
    )


@router.post("/validate", response_model=ValidateTransitionResponse)
def validate_status_transition(payload: ValidateTransitionRequest) -> ValidateTransitionResponse:
    """Check a transition; an illegal one is answered with 409 by the app error handler."""
    requested, diagnostic = normalize(payload.requested)
    if diagnostic is not None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Unknown target status '{payload.requested}'",
        )
    current, _ = normalize(payload.current)
    validate_transition(current, requested)
    return ValidateTransitionResponse(valid=True, current=current.value, requested=requested.value)
