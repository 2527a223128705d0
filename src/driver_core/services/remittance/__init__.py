"""Cash remittance services."""

from .commission import CommissionContext, CommissionQuote, CommissionService, RateSource
from .ledger import (
    RemittanceSummary,
    RemittanceView,
    driver_earnings,
    effective_remittance_status,
    has_overdue_balance,
    hours_until_due,
    is_overdue,
    minutes_until_due,
    summarize_remittances,
)

__all__ = [
    "CommissionContext",
    "CommissionQuote",
    "CommissionService",
    "RateSource",
    "RemittanceSummary",
    "RemittanceView",
    "driver_earnings",
    "effective_remittance_status",
    "has_overdue_balance",
    "hours_until_due",
    "is_overdue",
    "minutes_until_due",
    "summarize_remittances",
]
