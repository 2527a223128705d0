"""Cash balance and remittance reads and writes, plus the commission-rate lookup, against Supabase."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from ..config import settings
from ..errors import RemittanceStateError, TransientSyncError
from ..models.domain import CashBalance, CashRemittance, RemittanceStatus, parse_optional_timestamp
from ..services.clock import Clock, system_clock
from ..services.remittance.commission import CommissionContext
from .base import SupabaseRepository

logger = logging.getLogger(__name__)


class SupabaseRemittanceStore(SupabaseRepository):
    """``driver_cash_balances`` and ``cash_remittances``: balance reads plus the remittance batch lifecycle."""

    def __init__(self, client: Any = None, clock: Clock | None = None) -> None:
        super().__init__(client)
        self.clock = clock or system_clock

    def get_cash_balance(self, driver_id: str) -> Optional[CashBalance]:
        response = self._execute(
            "fetch cash balance",
            lambda: self.client.table("driver_cash_balances")
            .select("*")
            .eq("driver_id", driver_id)
            .maybe_single()
            .execute(),
        )
        if response is None or not response.data:
            return None
        return CashBalance.from_record(response.data)

    def get_remittance(self, remittance_id: str) -> Optional[CashRemittance]:
        response = self._execute(
            "fetch remittance",
            lambda: self.client.table("cash_remittances").select("*").eq("id", remittance_id).maybe_single().execute(),
        )
        if response is None or not response.data:
            return None
        return CashRemittance.from_record(response.data)

    def get_pending_remittances(self, driver_id: str) -> list[CashRemittance]:
        response = self._execute(
            "fetch pending remittances",
            lambda: self.client.table("cash_remittances")
            .select("*")
            .eq("driver_id", driver_id)
            .in_("status", ["pending", "processing"])
            .order("created_at", desc=True)
            .execute(),
        )
        return [CashRemittance.from_record(row) for row in response.data or []]

    def get_remittance_history(self, driver_id: str, limit: int = 50) -> list[CashRemittance]:
        response = self._execute(
            "fetch remittance history",
            lambda: self.client.table("cash_remittances")
            .select("*")
            .eq("driver_id", driver_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute(),
        )
        return [CashRemittance.from_record(row) for row in response.data or []]

    def request_remittance(self, driver_id: str, amount: float) -> CashRemittance:
        """Open a ``pending`` remittance batch and link the driver's unremitted cash earnings to it.

        The batch may not exceed the pending remittance on the driver's cash
        balance. The balance is reduced by ``amount`` and the next due time
        restarts one remittance cycle from now.
        """
        if amount <= 0:
            raise RemittanceStateError("Remittance amount must be positive.", driver_id=driver_id)
        balance = self.get_cash_balance(driver_id)
        if balance is None or balance.pending_remittance < amount:
            available = balance.pending_remittance if balance is not None else 0.0
            raise RemittanceStateError(
                f"Pending remittance of {available:.2f} does not cover {amount:.2f}.", driver_id=driver_id
            )

        earnings = self._execute(
            "fetch unremitted earnings",
            lambda: self.client.table("driver_earnings")
            .select("id")
            .eq("driver_id", driver_id)
            .eq("is_remittance_required", True)
            .is_("remittance_id", "null")
            .execute(),
        )
        earnings_ids = [row["id"] for row in earnings.data or []]

        now = self.clock.now()
        created = self._execute(
            "create remittance",
            lambda: self.client.table("cash_remittances")
            .insert(
                {
                    "driver_id": driver_id,
                    "amount": amount,
                    "status": RemittanceStatus.PENDING.value,
                    "earnings_ids": earnings_ids,
                    "created_at": now.isoformat(),
                }
            )
            .execute(),
        )
        if not created.data:
            raise TransientSyncError("create remittance", reason="store returned no remittance row")
        remittance = CashRemittance.from_record(created.data[0])

        if earnings_ids:
            self._execute(
                "link earnings to remittance",
                lambda: self.client.table("driver_earnings")
                .update({"remittance_id": remittance.id})
                .in_("id", earnings_ids)
                .execute(),
            )
        self._execute(
            "update cash balance",
            lambda: self.client.table("driver_cash_balances")
            .update(
                {
                    "pending_remittance": balance.pending_remittance - amount,
                    "last_remittance_date": now.isoformat(),
                    "next_remittance_due": (now + timedelta(hours=settings.remittance_cycle_hours)).isoformat(),
                    "updated_at": now.isoformat(),
                }
            )
            .eq("driver_id", driver_id)
            .execute(),
        )
        logger.info(f"Remittance {remittance.id} requested: {amount:.2f} for driver {driver_id}")
        return remittance

    def process_remittance_payment(
        self, remittance_id: str, settle: Callable[[CashRemittance], str]
    ) -> CashRemittance:
        """Settle a pending remittance: ``pending -> processing -> completed | failed``.

        ``settle`` performs the payment and returns the provider's transaction
        reference. If it raises, the remittance is stored as ``failed`` with the
        reason and returned in that state.
        """
        remittance = self.get_remittance(remittance_id)
        if remittance is None:
            raise RemittanceStateError(f"Remittance {remittance_id} does not exist.", remittance_id=remittance_id)
        if remittance.status is not RemittanceStatus.PENDING:
            raise RemittanceStateError(
                f"Remittance {remittance_id} is {remittance.status.value}, only pending remittances can be processed.",
                driver_id=remittance.driver_id,
                remittance_id=remittance_id,
            )

        processed_at = self.clock.now()
        self._execute(
            "mark remittance processing",
            lambda: self.client.table("cash_remittances")
            .update({"status": RemittanceStatus.PROCESSING.value, "processed_at": processed_at.isoformat()})
            .eq("id", remittance_id)
            .execute(),
        )
        processing = replace(remittance, status=RemittanceStatus.PROCESSING, processed_at=processed_at)

        try:
            reference = settle(processing)
        except Exception as exc:
            reason = f"Payment processing failed: {exc}"
            logger.warning(f"Remittance {remittance_id}: {reason}")
            self._execute(
                "mark remittance failed",
                lambda: self.client.table("cash_remittances")
                .update({"status": RemittanceStatus.FAILED.value, "failure_reason": reason})
                .eq("id", remittance_id)
                .execute(),
            )
            return replace(processing, status=RemittanceStatus.FAILED, failure_reason=reason)

        completed_at = self.clock.now()
        self._execute(
            "mark remittance completed",
            lambda: self.client.table("cash_remittances")
            .update(
                {
                    "status": RemittanceStatus.COMPLETED.value,
                    "completed_at": completed_at.isoformat(),
                    "paymaya_transaction_id": reference,
                }
            )
            .eq("id", remittance_id)
            .execute(),
        )
        logger.info(f"Remittance {remittance_id} settled with reference {reference}")
        return replace(
            processing,
            status=RemittanceStatus.COMPLETED,
            completed_at=completed_at,
            transaction_reference=reference,
        )


class SupabaseCommissionRateLookup(SupabaseRepository):
    """Live commission policy: a driver-specific rate if one is in effect, else the platform default."""

    def __init__(self, client: Any = None, clock: Clock | None = None) -> None:
        super().__init__(client)
        self.clock = clock or system_clock

    def rate_for(self, context: CommissionContext) -> float:
        at = context.at or self.clock.now()
        response = self._execute(
            "fetch driver commission rate",
            lambda: self.client.table("driver_commission_rates")
            .select("commission_rate, rate_type, effective_from, effective_until")
            .eq("driver_id", context.driver_id)
            .eq("is_active", True)
            .maybe_single()
            .execute(),
        )
        row = response.data if response is not None else None
        if row and _is_effective(row, at):
            return float(row["commission_rate"])
        if row:
            logger.warning(f"Custom commission rate for driver {context.driver_id} is not in effect at {at.isoformat()}")

        setting = self._execute(
            "fetch default commission rate",
            lambda: self.client.table("platform_settings")
            .select("setting_value")
            .eq("setting_key", "default_commission_rate")
            .maybe_single()
            .execute(),
        )
        if setting is None or not setting.data:
            raise LookupError("No default commission rate configured in platform_settings")
        return float(setting.data["setting_value"]["rate"])


def _is_effective(row: dict, at: datetime) -> bool:
    start = parse_optional_timestamp(row.get("effective_from"), "driver_commission_rate", "effective_from")
    end = parse_optional_timestamp(row.get("effective_until"), "driver_commission_rate", "effective_until")
    return (start is None or at >= start) and (end is None or at < end)
