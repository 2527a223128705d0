"""Delivery reads and status/proof writes against Supabase."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from ..models.domain import Delivery, DeliveryStatus, DeliveryStop, ProofOfDelivery, TransitionRequest
from ..services.status.normalizer import STATUS_ALIASES, to_wire_value
from .base import SupabaseRepository

# Statuses in which a delivery is still the driver's current job, in every
# spelling either app may have written.
ACTIVE_STATUS_TOKENS = sorted(
    token
    for token, status in STATUS_ALIASES.items()
    if status
    not in (DeliveryStatus.PENDING, DeliveryStatus.DRIVER_OFFERED, DeliveryStatus.DELIVERED,
            DeliveryStatus.CANCELLED, DeliveryStatus.FAILED)
)


class SupabaseDeliveryStore(SupabaseRepository):
    """The driver client's view of the ``deliveries`` and ``delivery_stops`` tables."""

    def fetch_delivery(self, delivery_id: str) -> Optional[Delivery]:
        response = self._execute(
            "fetch delivery",
            lambda: self.client.table("deliveries").select("*").eq("id", delivery_id).maybe_single().execute(),
        )
        if response is None or not response.data:
            return None
        return self._with_stops(Delivery.from_record(response.data))

    def fetch_active_delivery(self, driver_id: str) -> Optional[Delivery]:
        response = self._execute(
            "fetch active delivery",
            lambda: self.client.table("deliveries")
            .select("*")
            .eq("driver_id", driver_id)
            .in_("status", ACTIVE_STATUS_TOKENS)
            .order("updated_at", desc=True)
            .limit(1)
            .execute(),
        )
        rows = response.data or []
        if not rows:
            return None
        return self._with_stops(Delivery.from_record(rows[0]))

    def fetch_stops(self, delivery_id: str) -> list[DeliveryStop]:
        response = self._execute(
            "fetch delivery stops",
            lambda: self.client.table("delivery_stops")
            .select("*")
            .eq("delivery_id", delivery_id)
            .order("stop_number")
            .execute(),
        )
        return [DeliveryStop.from_record(row) for row in response.data or []]

    def update_stop(self, stop: DeliveryStop) -> None:
        update: dict[str, Any] = {
            "status": stop.status.value,
            "updated_at": stop.updated_at.isoformat(),
        }
        if stop.arrived_at is not None:
            update["arrived_at"] = stop.arrived_at.isoformat()
        if stop.completed_at is not None:
            update["completed_at"] = stop.completed_at.isoformat()
        for key in ("proof_photo_url", "signature_url", "completion_notes"):
            value = getattr(stop, key)
            if value is not None:
                update[key] = value
        self._execute(
            "update delivery stop",
            lambda: self.client.table("delivery_stops").update(update).eq("id", stop.id).execute(),
        )

    def update_current_stop_index(self, delivery_id: str, index: int, at: datetime) -> None:
        self._execute(
            "advance current stop",
            lambda: self.client.table("deliveries")
            .update({"current_stop_index": index, "updated_at": at.isoformat()})
            .eq("id", delivery_id)
            .execute(),
        )

    def push_transition(self, request: TransitionRequest) -> None:
        now = datetime.now(timezone.utc).isoformat()
        update: dict[str, Any] = {
            "status": to_wire_value(request.target_status),
            "updated_at": now,
        }
        if request.target_status is DeliveryStatus.DELIVERED:
            update["completed_at"] = now
        self._execute(
            "push transition",
            lambda: self.client.table("deliveries").update(update).eq("id", request.delivery_id).execute(),
        )

    def submit_proof(self, proof: ProofOfDelivery) -> None:
        payload = proof.to_payload()
        delivery_id = payload.pop("delivery_id")
        payload["updated_at"] = datetime.now(timezone.utc).isoformat()
        self._execute(
            "submit proof of delivery",
            lambda: self.client.table("deliveries").update(payload).eq("id", delivery_id).execute(),
        )

    def _with_stops(self, delivery: Delivery) -> Delivery:
        if delivery.is_multi_stop:
            delivery.stops = self.fetch_stops(delivery.id)
        return delivery
