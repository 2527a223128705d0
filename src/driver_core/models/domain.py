"""Domain models for deliveries, stops, positions and the driver's cash ledger."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional, Sequence

from ..errors import RecordParseError


class DeliveryStatus(str, Enum):
    """Canonical lifecycle states of a delivery."""

    PENDING = "pending"
    DRIVER_OFFERED = "driverOffered"
    DRIVER_ASSIGNED = "driverAssigned"
    GOING_TO_PICKUP = "goingToPickup"
    PICKUP_ARRIVED = "pickupArrived"
    PACKAGE_COLLECTED = "packageCollected"
    GOING_TO_DESTINATION = "goingToDestination"
    AT_DESTINATION = "atDestination"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {DeliveryStatus.DELIVERED, DeliveryStatus.CANCELLED, DeliveryStatus.FAILED}
)


class DeliveryStopStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "DeliveryStopStatus":
        if raw is None:
            return cls.PENDING
        token = raw.strip()
        if token == "inProgress":
            return cls.IN_PROGRESS
        try:
            return cls(token.lower())
        except ValueError:
            return cls.PENDING

    def can_advance_to(self, target: "DeliveryStopStatus") -> bool:
        """Stop statuses only move forward: pending -> in_progress -> completed|failed."""
        order = {
            DeliveryStopStatus.PENDING: 0,
            DeliveryStopStatus.IN_PROGRESS: 1,
            DeliveryStopStatus.COMPLETED: 2,
            DeliveryStopStatus.FAILED: 2,
        }
        if self in (DeliveryStopStatus.COMPLETED, DeliveryStopStatus.FAILED):
            return False
        return order[target] > order[self]


class StopRole(str, Enum):
    PICKUP = "pickup"
    DROPOFF = "dropoff"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"

    @classmethod
    def from_raw(cls, raw: Optional[str]) -> "PaymentMethod":
        """Map the store's payment method values onto cash/card; unknown values count as cash."""
        if raw in ("credit_card", "maya_wallet", "qr_ph"):
            return cls.CARD
        return cls.CASH

    @property
    def requires_remittance(self) -> bool:
        return self is PaymentMethod.CASH


class RemittanceStatus(str, Enum):
    """Stored remittance states. OVERDUE is only ever produced as a derived display state."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    OVERDUE = "overdue"


@dataclass(slots=True, frozen=True)
class GeoPoint:
    latitude: float
    longitude: float

    @classmethod
    def from_lon_lat(cls, vertex: Sequence[float]) -> "GeoPoint":
        return cls(latitude=float(vertex[1]), longitude=float(vertex[0]))


@dataclass(slots=True, frozen=True)
class PositionFix:
    """A single GPS reading from the position collaborator."""

    latitude: float
    longitude: float
    timestamp: datetime

    @property
    def point(self) -> GeoPoint:
        return GeoPoint(self.latitude, self.longitude)


@dataclass(slots=True)
class ContactInfo:
    name: str = ""
    phone: str = ""
    address: str = ""
    instructions: Optional[str] = None


@dataclass(slots=True)
class PackageInfo:
    description: str = ""
    weight: Optional[float] = None
    value: Optional[float] = None


@dataclass(slots=True)
class Pricing:
    total_price: float
    delivery_fee: Optional[float] = None
    tip_amount: Optional[float] = None


@dataclass(slots=True)
class DeliveryStop:
    """One stop of a multi-stop delivery (index 0 is the pickup)."""

    id: str
    delivery_id: str
    stop_index: int
    role: StopRole
    status: DeliveryStopStatus
    location: GeoPoint
    contact: ContactInfo
    created_at: datetime
    updated_at: datetime
    proof_photo_url: Optional[str] = None
    signature_url: Optional[str] = None
    completion_notes: Optional[str] = None
    arrived_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def advance(self, target: DeliveryStopStatus, at: datetime) -> "DeliveryStop":
        if not self.status.can_advance_to(target):
            raise ValueError(f"Stop {self.stop_index} cannot move from {self.status.value} to {target.value}")
        changes: dict[str, Any] = {"status": target, "updated_at": at}
        if target is DeliveryStopStatus.IN_PROGRESS:
            changes["arrived_at"] = at
        elif target in (DeliveryStopStatus.COMPLETED, DeliveryStopStatus.FAILED):
            changes["completed_at"] = at
        return replace(self, **changes)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "DeliveryStop":
        role_raw = record.get("stop_type") or StopRole.DROPOFF.value
        try:
            role = StopRole(role_raw)
        except ValueError as exc:
            raise RecordParseError("delivery_stop", "stop_type", f"unknown role '{role_raw}'") from exc
        return cls(
            id=_required(record, "id", "delivery_stop"),
            delivery_id=_required(record, "delivery_id", "delivery_stop"),
            stop_index=int(record.get("stop_number") or 0),
            role=role,
            status=DeliveryStopStatus.parse(record.get("status")),
            location=GeoPoint(
                latitude=_coerce_float(record.get("latitude")) or 0.0,
                longitude=_coerce_float(record.get("longitude")) or 0.0,
            ),
            contact=ContactInfo(
                name=record.get("contact_name") or "",
                phone=record.get("contact_phone") or "",
                address=record.get("address") or "",
                instructions=record.get("instructions"),
            ),
            created_at=parse_timestamp(record.get("created_at"), "delivery_stop", "created_at"),
            updated_at=parse_timestamp(record.get("updated_at"), "delivery_stop", "updated_at"),
            proof_photo_url=record.get("proof_photo_url"),
            signature_url=record.get("signature_url"),
            completion_notes=record.get("completion_notes"),
            arrived_at=parse_optional_timestamp(record.get("arrived_at"), "delivery_stop", "arrived_at"),
            completed_at=parse_optional_timestamp(record.get("completed_at"), "delivery_stop", "completed_at"),
        )


@dataclass(slots=True)
class Delivery:
    """Read-mostly client copy of a delivery; the backing store is authoritative."""

    id: str
    driver_id: Optional[str]
    status: DeliveryStatus
    created_at: datetime
    updated_at: datetime
    pickup: GeoPoint
    dropoff: GeoPoint
    pricing: Pricing
    pickup_contact: ContactInfo = field(default_factory=ContactInfo)
    dropoff_contact: ContactInfo = field(default_factory=ContactInfo)
    package: PackageInfo = field(default_factory=PackageInfo)
    completed_at: Optional[datetime] = None
    payment_method: PaymentMethod = PaymentMethod.CASH
    is_multi_stop: bool = False
    total_stops: int = 0
    current_stop_index: int = 0
    stops: Optional[list[DeliveryStop]] = None
    status_diagnostic: Any = None

    def __post_init__(self) -> None:
        if self.is_multi_stop and not 0 <= self.current_stop_index < self.total_stops:
            raise RecordParseError(
                "delivery",
                "current_stop_index",
                f"{self.current_stop_index} outside [0, {self.total_stops})",
            )

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def requires_cash_remittance(self) -> bool:
        return self.payment_method.requires_remittance

    @property
    def current_stop(self) -> Optional[DeliveryStop]:
        if not self.is_multi_stop or not self.stops:
            return None
        for stop in self.stops:
            if stop.stop_index == self.current_stop_index:
                return stop
        return None

    def with_status(self, status: DeliveryStatus, at: datetime) -> "Delivery":
        completed_at = at if status is DeliveryStatus.DELIVERED else self.completed_at
        return replace(self, status=status, updated_at=at, completed_at=completed_at, status_diagnostic=None)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Delivery":
        from ..services.status.normalizer import normalize

        status, diagnostic = normalize(record.get("status"))
        updated_at = parse_timestamp(record.get("updated_at"), "delivery", "updated_at")
        created_raw = record.get("created_at")
        created_at = parse_timestamp(created_raw, "delivery", "created_at") if created_raw else updated_at

        # Store rows carry total_amount; older rows only have total_price
        total = record.get("total_amount")
        if total is None:
            total = record.get("total_price")

        return cls(
            id=_required(record, "id", "delivery"),
            driver_id=record.get("driver_id"),
            status=status,
            status_diagnostic=diagnostic,
            created_at=created_at,
            updated_at=updated_at,
            completed_at=parse_optional_timestamp(record.get("completed_at"), "delivery", "completed_at"),
            pickup=GeoPoint(
                latitude=_coerce_float(record.get("pickup_latitude")) or 0.0,
                longitude=_coerce_float(record.get("pickup_longitude")) or 0.0,
            ),
            dropoff=GeoPoint(
                latitude=_coerce_float(record.get("delivery_latitude")) or 0.0,
                longitude=_coerce_float(record.get("delivery_longitude")) or 0.0,
            ),
            pickup_contact=ContactInfo(
                name=record.get("pickup_contact_name") or "",
                phone=record.get("pickup_contact_phone") or "",
                address=record.get("pickup_address") or "",
                instructions=record.get("pickup_instructions"),
            ),
            dropoff_contact=ContactInfo(
                name=record.get("delivery_contact_name") or "",
                phone=record.get("delivery_contact_phone") or "",
                address=record.get("delivery_address") or "",
                instructions=record.get("delivery_instructions"),
            ),
            package=PackageInfo(
                description=record.get("package_description") or "",
                weight=_coerce_float(record.get("package_weight")),
                value=_coerce_float(record.get("package_value")),
            ),
            pricing=Pricing(
                total_price=_coerce_float(total) or 0.0,
                delivery_fee=_coerce_float(record.get("delivery_fee")),
                tip_amount=_coerce_float(record.get("tip_amount")),
            ),
            payment_method=PaymentMethod.from_raw(record.get("payment_method")),
            is_multi_stop=bool(record.get("is_multi_stop") or False),
            total_stops=int(record.get("total_stops") or 0),
            current_stop_index=int(record.get("current_stop_index") or 0),
        )


@dataclass(slots=True, frozen=True)
class CashBalance:
    """Per-driver cash-on-hand singleton."""

    driver_id: str
    current_balance: float
    pending_remittance: float
    last_remittance_date: datetime
    next_remittance_due: datetime
    updated_at: datetime
    id: Optional[str] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "CashBalance":
        last = parse_timestamp(record.get("last_remittance_date"), "cash_balance", "last_remittance_date")
        due = parse_timestamp(record.get("next_remittance_due"), "cash_balance", "next_remittance_due")
        if due <= last:
            raise RecordParseError("cash_balance", "next_remittance_due", "must be after last_remittance_date")
        return cls(
            id=record.get("id"),
            driver_id=_required(record, "driver_id", "cash_balance"),
            current_balance=_coerce_float(record.get("current_balance")) or 0.0,
            pending_remittance=_coerce_float(record.get("pending_remittance")) or 0.0,
            last_remittance_date=last,
            next_remittance_due=due,
            updated_at=parse_timestamp(record.get("updated_at"), "cash_balance", "updated_at"),
        )


@dataclass(slots=True, frozen=True)
class CashRemittance:
    """A stored batch of collected cash awaiting settlement."""

    id: str
    driver_id: str
    amount: float
    status: RemittanceStatus
    created_at: datetime
    processed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    transaction_reference: Optional[str] = None
    failure_reason: Optional[str] = None
    earnings_ids: frozenset[str] = frozenset()

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "CashRemittance":
        raw_status = record.get("status")
        try:
            status = RemittanceStatus(raw_status)
        except ValueError as exc:
            raise RecordParseError("cash_remittance", "status", f"unknown status '{raw_status}'") from exc
        return cls(
            id=_required(record, "id", "cash_remittance"),
            driver_id=_required(record, "driver_id", "cash_remittance"),
            amount=_coerce_float(record.get("amount")) or 0.0,
            status=status,
            created_at=parse_timestamp(record.get("created_at"), "cash_remittance", "created_at"),
            processed_at=parse_optional_timestamp(record.get("processed_at"), "cash_remittance", "processed_at"),
            completed_at=parse_optional_timestamp(record.get("completed_at"), "cash_remittance", "completed_at"),
            transaction_reference=record.get("paymaya_transaction_id") or record.get("transaction_reference"),
            failure_reason=record.get("failure_reason"),
            earnings_ids=frozenset(record.get("earnings_ids") or ()),
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "driver_id": self.driver_id,
            "amount": self.amount,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "paymaya_transaction_id": self.transaction_reference,
            "failure_reason": self.failure_reason,
            "earnings_ids": sorted(self.earnings_ids),
        }


@dataclass(slots=True, frozen=True)
class TransitionRequest:
    delivery_id: str
    target_status: DeliveryStatus

    def to_payload(self) -> dict[str, str]:
        from ..services.status.normalizer import to_wire_value

        return {"delivery_id": self.delivery_id, "target_status": to_wire_value(self.target_status)}


@dataclass(slots=True, frozen=True)
class ProofOfDelivery:
    delivery_id: str
    completed_at: datetime
    proof_photo_url: Optional[str] = None
    recipient_name: Optional[str] = None
    delivery_notes: Optional[str] = None
    signature_data: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "delivery_id": self.delivery_id,
            "completed_at": self.completed_at.isoformat(),
            "proof_photo_url": self.proof_photo_url,
            "recipient_name": self.recipient_name,
            "delivery_notes": self.delivery_notes,
        }
        if self.signature_data is not None:
            payload["signature_data"] = self.signature_data
        return payload


def parse_timestamp(value: Any, record_type: str, field_name: str) -> datetime:
    """Parse an ISO-8601 value into an aware datetime; naive values are taken as UTC."""

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise RecordParseError(record_type, field_name, f"not ISO-8601: '{value}'") from exc
    else:
        raise RecordParseError(record_type, field_name, "missing timestamp")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_optional_timestamp(value: Any, record_type: str, field_name: str) -> Optional[datetime]:
    if value is None or value == "":
        return None
    return parse_timestamp(value, record_type, field_name)


def _coerce_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _required(record: Mapping[str, Any], key: str, record_type: str) -> str:
    value = record.get(key)
    if value is None or value == "":
        raise RecordParseError(record_type, key, "missing")
    return str(value)
