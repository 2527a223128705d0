"""Remittance ledger request/response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class LedgerRequest(BaseModel):
    balance: Optional[Dict[str, Any]] = Field(default=None, description="driver_cash_balances row.")
    remittances: List[Dict[str, Any]] = Field(default_factory=list, description="cash_remittances rows.")
    now: Optional[datetime] = Field(default=None, description="Evaluation time; defaults to the server clock.")


class BalanceStateModel(BaseModel):
    is_overdue: bool
    has_overdue_balance: bool
    hours_until_due: int
    minutes_until_due: int
    pending_remittance: float
    next_remittance_due: datetime


class RemittanceViewModel(BaseModel):
    remittance_id: str
    amount: float
    stored_status: str
    effective_status: str
    hours_since_created: int


class StatusTotalsModel(BaseModel):
    count: int
    amount: float


class LedgerResponse(BaseModel):
    evaluated_at: datetime
    balance: Optional[BalanceStateModel] = None
    remittances: List[RemittanceViewModel]
    by_status: Dict[str, StatusTotalsModel]
    total_outstanding: float
    overdue_count: int
    oldest_outstanding_id: Optional[str] = None
