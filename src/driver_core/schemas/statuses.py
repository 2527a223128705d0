"""Status request/response schemas."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class DiagnosticModel(BaseModel):
    kind: str
    raw: str


class NormalizeRequest(BaseModel):
    raw: Optional[str] = Field(default=None, description="Status token as stored; null means not yet set.")


class NormalizeResponse(BaseModel):
    status: str
    wire_value: str
    action_label: str
    stage: str
    terminal: bool
    diagnostic: Optional[DiagnosticModel] = None


class NextStatesResponse(BaseModel):
    status: str
    next: List[str]
    diagnostic: Optional[DiagnosticModel] = None


class ValidateTransitionRequest(BaseModel):
    current: Optional[str] = None
    requested: str


class ValidateTransitionResponse(BaseModel):
    valid: bool
    current: str
    requested: str
