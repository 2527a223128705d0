"""
Typed errors raised by the delivery core.

Pure computations (status normalization, route geometry) never raise these;
they fall back to defined values. Only caller mistakes and store round-trips
surface as exceptions.
"""

from __future__ import annotations

from typing import Any, Dict


class DriverCoreError(Exception):
    """Base error with a stable error code for API responses."""

    def __init__(self, message: str, error_code: str, details: Dict[str, Any] | None = None):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(message)


class InvalidTransitionError(DriverCoreError):
    """Raised when the requested status is not reachable from the current one."""

    def __init__(self, current: Any, requested: Any):
        self.current = current
        self.requested = requested
        super().__init__(
            message=f"Cannot move delivery from '{_label(current)}' to '{_label(requested)}'",
            error_code="ERR_TRANSITION_INVALID",
            details={"current": _label(current), "requested": _label(requested)},
        )


class TransitionInFlightError(DriverCoreError):
    """Raised when a delivery already has an unresolved transition request."""

    def __init__(self, delivery_id: str):
        self.delivery_id = delivery_id
        super().__init__(
            message=f"A status change for delivery {delivery_id} is still in progress",
            error_code="ERR_TRANSITION_IN_FLIGHT",
            details={"delivery_id": delivery_id},
        )


class TransitionCancelledError(DriverCoreError):
    """Raised when pending retries are aborted (logout or terminal delivery)."""

    def __init__(self, delivery_id: str):
        self.delivery_id = delivery_id
        super().__init__(
            message=f"Status change for delivery {delivery_id} was cancelled",
            error_code="ERR_TRANSITION_CANCELLED",
            details={"delivery_id": delivery_id},
        )


class TransientSyncError(DriverCoreError):
    """Raised when a store or network round-trip fails after all retries."""

    def __init__(self, operation: str, attempts: int = 1, reason: str | None = None):
        self.operation = operation
        self.attempts = attempts
        message = f"{operation} failed after {attempts} attempt(s)"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message=message,
            error_code="ERR_SYNC_TRANSIENT",
            details={"operation": operation, "attempts": attempts},
        )


class StoreNotConfiguredError(DriverCoreError):
    """Raised when a store operation is attempted without Supabase credentials."""

    def __init__(self) -> None:
        super().__init__(
            message="Backing store is not configured. Set DRIVER_SUPABASE_URL and DRIVER_SUPABASE_KEY.",
            error_code="ERR_STORE_NOT_CONFIGURED",
        )


class RecordParseError(DriverCoreError):
    """Raised when a store record is missing a required field or has a malformed value."""

    def __init__(self, record_type: str, field: str, reason: str | None = None):
        self.record_type = record_type
        self.field = field
        message = f"Invalid {record_type} record: field '{field}'"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(
            message=message,
            error_code="ERR_RECORD_INVALID",
            details={"record_type": record_type, "field": field},
        )


class RoutingRequestError(DriverCoreError):
    """Raised when the routing service rejects a request; retrying would not help."""

    def __init__(self, reason: str, status_code: int | None = None):
        self.reason = reason
        self.status_code = status_code
        super().__init__(
            message=f"Routing request rejected: {reason}",
            error_code="ERR_ROUTING_REQUEST",
            details={"status_code": status_code} if status_code is not None else {},
        )


class StopProgressError(DriverCoreError):
    """Raised when a stop of a multi-stop delivery cannot take the requested step."""

    def __init__(self, delivery_id: str, stop_index: int, reason: str):
        self.delivery_id = delivery_id
        self.stop_index = stop_index
        super().__init__(
            message=f"Stop {stop_index} of delivery {delivery_id}: {reason}",
            error_code="ERR_STOP_INVALID",
            details={"delivery_id": delivery_id, "stop_index": stop_index},
        )


class RemittanceStateError(DriverCoreError):
    """Raised when a remittance request or payment does not fit the ledger's current state."""

    def __init__(self, reason: str, driver_id: str | None = None, remittance_id: str | None = None):
        self.driver_id = driver_id
        self.remittance_id = remittance_id
        details: Dict[str, Any] = {}
        if driver_id is not None:
            details["driver_id"] = driver_id
        if remittance_id is not None:
            details["remittance_id"] = remittance_id
        super().__init__(
            message=reason,
            error_code="ERR_REMITTANCE_STATE",
            details=details,
        )


def _label(value: Any) -> str:
    return getattr(value, "value", str(value))
