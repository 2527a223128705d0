"""Time-derived state for the driver's cash balance and remittance batches.

Everything here is a pure function of ``(record, now)``. Derived values such
as an effective ``overdue`` status live on ``RemittanceView`` and are never
written back to the store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, Optional

from ...config import settings
from ...models.domain import CashBalance, CashRemittance, RemittanceStatus

_OUTSTANDING = frozenset({RemittanceStatus.PENDING, RemittanceStatus.PROCESSING, RemittanceStatus.OVERDUE})


@dataclass(slots=True, frozen=True)
class RemittanceView:
    """Display-only projection of a remittance at a point in time."""

    remittance_id: str
    amount: float
    stored_status: RemittanceStatus
    effective_status: RemittanceStatus
    hours_since_created: int

    @property
    def is_overdue(self) -> bool:
        return self.effective_status is RemittanceStatus.OVERDUE


@dataclass(slots=True)
class StatusTotals:
    count: int = 0
    amount: float = 0.0


@dataclass(slots=True)
class RemittanceSummary:
    by_status: Dict[RemittanceStatus, StatusTotals] = field(default_factory=dict)
    total_outstanding: float = 0.0
    overdue_count: int = 0
    oldest_outstanding: Optional[RemittanceView] = None
    views: list[RemittanceView] = field(default_factory=list)


def is_overdue(balance: CashBalance, now: datetime) -> bool:
    return now > balance.next_remittance_due


def has_overdue_balance(balance: CashBalance, now: datetime) -> bool:
    return is_overdue(balance, now) and balance.pending_remittance > 0


def hours_until_due(balance: CashBalance, now: datetime) -> int:
    return int(_remaining(balance, now).total_seconds() // 3600)


def minutes_until_due(balance: CashBalance, now: datetime) -> int:
    return int(_remaining(balance, now).total_seconds() // 60)


def next_due_after(remitted_at: datetime, cycle_hours: int | None = None) -> datetime:
    hours = cycle_hours if cycle_hours is not None else settings.remittance_cycle_hours
    if hours <= 0:
        raise ValueError("cycle_hours must be positive")
    return remitted_at + timedelta(hours=hours)


def hours_since_created(remittance: CashRemittance, now: datetime) -> int:
    """Whole hours since the batch was created; 0 if the clock is behind the store."""

    elapsed = (now - remittance.created_at).total_seconds()
    return max(0, int(elapsed // 3600))


def effective_remittance_status(
    remittance: CashRemittance,
    now: datetime,
    overdue_after_hours: int | None = None,
) -> RemittanceStatus:
    """Stored status, except a pending batch older than the cut-off displays as overdue."""

    limit = timedelta(hours=overdue_after_hours if overdue_after_hours is not None else settings.remittance_overdue_hours)
    if remittance.status is RemittanceStatus.PENDING and now - remittance.created_at > limit:
        return RemittanceStatus.OVERDUE
    return remittance.status


def view_remittance(remittance: CashRemittance, now: datetime) -> RemittanceView:
    return RemittanceView(
        remittance_id=remittance.id,
        amount=remittance.amount,
        stored_status=remittance.status,
        effective_status=effective_remittance_status(remittance, now),
        hours_since_created=hours_since_created(remittance, now),
    )


def summarize_remittances(remittances: Iterable[CashRemittance], now: datetime) -> RemittanceSummary:
    summary = RemittanceSummary()
    oldest_created: Optional[datetime] = None

    for remittance in remittances:
        view = view_remittance(remittance, now)
        summary.views.append(view)

        totals = summary.by_status.setdefault(view.effective_status, StatusTotals())
        totals.count += 1
        totals.amount += view.amount

        if view.is_overdue:
            summary.overdue_count += 1
        if view.effective_status in _OUTSTANDING:
            summary.total_outstanding += view.amount
            if oldest_created is None or remittance.created_at < oldest_created:
                oldest_created = remittance.created_at
                summary.oldest_outstanding = view

    return summary


def driver_earnings(total_price: float, commission_rate: float) -> float:
    return total_price * (1 - commission_rate)


def _remaining(balance: CashBalance, now: datetime) -> timedelta:
    if now > balance.next_remittance_due:
        return timedelta(0)
    return balance.next_remittance_due - now
