"""Remittance ledger endpoints."""

from __future__ import annotations

from datetime import timezone

from fastapi import APIRouter

from ...models.domain import CashBalance, CashRemittance
from ...schemas.remittance import (
    BalanceStateModel,
    LedgerRequest,
    LedgerResponse,
    RemittanceViewModel,
    StatusTotalsModel,
)
from ...services.clock import system_clock
from ...services.remittance.ledger import (
    has_overdue_balance,
    hours_until_due,
    is_overdue,
    minutes_until_due,
    summarize_remittances,
)

router = APIRouter(prefix="/remittance", tags=["remittance"])


@router.post("/ledger", response_model=LedgerResponse)
def evaluate_ledger(payload: LedgerRequest) -> LedgerResponse:
    now = payload.now or system_clock.now()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    balance_state = None
    if payload.balance is not None:
        balance = CashBalance.from_record(payload.balance)
        balance_state = BalanceStateModel(
            is_overdue=is_overdue(balance, now),
            has_overdue_balance=has_overdue_balance(balance, now),
            hours_until_due=hours_until_due(balance, now),
            minutes_until_due=minutes_until_due(balance, now),
            pending_remittance=balance.pending_remittance,
            next_remittance_due=balance.next_remittance_due,
        )

    summary = summarize_remittances((CashRemittance.from_record(row) for row in payload.remittances), now)

    return LedgerResponse(
        evaluated_at=now,
        balance=balance_state,
        remittances=[
            RemittanceViewModel(
                remittance_id=view.remittance_id,
                amount=view.amount,
                stored_status=view.stored_status.value,
                effective_status=view.effective_status.value,
                hours_since_created=view.hours_since_created,
            )
            for view in summary.views
        ],
        by_status={
            status.value: StatusTotalsModel(count=totals.count, amount=totals.amount)
            for status, totals in summary.by_status.items()
        },
        total_outstanding=summary.total_outstanding,
        overdue_count=summary.overdue_count,
        oldest_outstanding_id=summary.oldest_outstanding.remittance_id if summary.oldest_outstanding else None,
    )
