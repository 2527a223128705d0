"""Serialized, retried status transitions against the backing store."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Optional, Protocol

from ...config import settings
from ...errors import TransientSyncError, TransitionCancelledError, TransitionInFlightError
from ...models.domain import Delivery, DeliveryStatus, TransitionRequest
from ..clock import Clock, system_clock
from .normalizer import to_wire_value, validate_transition

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (TransientSyncError, ConnectionError, TimeoutError)


class DeliveryStatusStore(Protocol):
    def push_transition(self, request: TransitionRequest) -> None: ...


@dataclass(slots=True)
class _DeliveryState:
    confirmed: DeliveryStatus
    optimistic: Optional[DeliveryStatus] = None
    lock: threading.Lock = field(default_factory=threading.Lock)
    cancelled: threading.Event = field(default_factory=threading.Event)


class TransitionCoordinator:
    """Single writer per delivery id.

    Each delivery gets its own lock, so a slow round-trip for one delivery
    never blocks another. While a request is in flight the requested status is
    exposed as the optimistic status; it is rolled back to the last confirmed
    status if the store never accepts it.
    """

    def __init__(
        self,
        store: DeliveryStatusStore,
        *,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        max_backoff_seconds: float | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.store = store
        self.max_retries = max_retries if max_retries is not None else settings.transition_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.transition_backoff_seconds
        self.max_backoff_seconds = (
            max_backoff_seconds if max_backoff_seconds is not None else settings.transition_max_backoff_seconds
        )
        self.clock = clock or system_clock
        self._registry_lock = threading.Lock()
        self._states: dict[str, _DeliveryState] = {}

    def request_transition(self, delivery: Delivery, target: DeliveryStatus) -> Delivery:
        """Push ``target`` to the store and return the delivery with the confirmed status.

        Raises ``InvalidTransitionError`` (never retried), ``TransitionInFlightError``,
        ``TransitionCancelledError`` or ``TransientSyncError`` once retries run out.
        A push the store accepted after the delivery was cancelled still raises
        ``TransitionCancelledError``.
        """

        validate_transition(delivery.status, target)

        state = self._acquire(delivery)
        confirmed = False
        try:
            state.confirmed = delivery.status
            state.optimistic = target
            logger.info(
                f"Transition {delivery.id}: {to_wire_value(delivery.status)} -> {to_wire_value(target)} started"
            )
            self._push_with_retry(TransitionRequest(delivery_id=delivery.id, target_status=target), state)
            if state.cancelled.is_set():
                raise TransitionCancelledError(delivery.id)
            state.confirmed = target
            state.optimistic = None
            confirmed = True
        except Exception:
            state.optimistic = None
            logger.info(f"Transition {delivery.id} rolled back to {to_wire_value(state.confirmed)}")
            raise
        finally:
            self._release(delivery.id, state, drop=state.cancelled.is_set() or (confirmed and target.is_terminal))

        logger.info(f"Transition {delivery.id} confirmed as {to_wire_value(target)}")
        return delivery.with_status(target, self.clock.now())

    def sync(self, delivery: Delivery) -> None:
        """Record a status pushed by the server (e.g. a dispatcher correction)."""

        with self._registry_lock:
            state = self._states.get(delivery.id)
        if state is not None and not state.lock.locked():
            state.confirmed = delivery.status
        if delivery.is_terminal:
            self.cancel(delivery.id)

    def optimistic_status(self, delivery_id: str) -> Optional[DeliveryStatus]:
        """Status to display: the in-flight target if any, else the last confirmed one."""

        with self._registry_lock:
            state = self._states.get(delivery_id)
        if state is None:
            return None
        return state.optimistic or state.confirmed

    def confirmed_status(self, delivery_id: str) -> Optional[DeliveryStatus]:
        with self._registry_lock:
            state = self._states.get(delivery_id)
        return state.confirmed if state is not None else None

    def is_in_flight(self, delivery_id: str) -> bool:
        with self._registry_lock:
            state = self._states.get(delivery_id)
        return state is not None and state.lock.locked()

    def cancel(self, delivery_id: str) -> None:
        """Abort pending retries for a delivery and drop everything held for it.

        A request still in flight keeps its state registered until it resolves,
        so no second push for the same id can start in the meantime.
        """

        with self._registry_lock:
            state = self._states.get(delivery_id)
            if state is None:
                return
            state.cancelled.set()
            if not state.lock.locked():
                del self._states[delivery_id]
        logger.info(f"Cancelled pending work for delivery {delivery_id}")

    def cancel_all(self) -> None:
        with self._registry_lock:
            count = len(self._states)
            for delivery_id, state in list(self._states.items()):
                state.cancelled.set()
                if not state.lock.locked():
                    del self._states[delivery_id]
        if count:
            logger.info(f"Cancelled pending work for {count} deliveries")

    def tracked_deliveries(self) -> list[str]:
        with self._registry_lock:
            return list(self._states)

    def _acquire(self, delivery: Delivery) -> _DeliveryState:
        with self._registry_lock:
            state = self._states.get(delivery.id)
            if state is not None and state.cancelled.is_set() and not state.lock.locked():
                state = None
            if state is None:
                state = _DeliveryState(confirmed=delivery.status)
                self._states[delivery.id] = state
            # A cancelled request that has not resolved yet still holds this lock.
            if not state.lock.acquire(blocking=False):
                raise TransitionInFlightError(delivery.id)
            return state

    def _release(self, delivery_id: str, state: _DeliveryState, drop: bool) -> None:
        with self._registry_lock:
            state.lock.release()
            if drop and self._states.get(delivery_id) is state:
                del self._states[delivery_id]

    def _push_with_retry(self, request: TransitionRequest, state: _DeliveryState) -> None:
        attempt = 0
        while True:
            if state.cancelled.is_set():
                raise TransitionCancelledError(request.delivery_id)
            attempt += 1
            try:
                self.store.push_transition(request)
                return
            except RETRYABLE_ERRORS as exc:
                if attempt > self.max_retries:
                    logger.warning(
                        f"Transition {request.delivery_id} to {to_wire_value(request.target_status)} "
                        f"failed after {attempt} attempts: {exc}"
                    )
                    raise TransientSyncError("status transition", attempts=attempt, reason=str(exc)) from exc
                wait_time = min(self.backoff_seconds * (2 ** (attempt - 1)), self.max_backoff_seconds)
                logger.debug(
                    f"Transition push failed, retrying in {wait_time:.1f}s "
                    f"(attempt {attempt}/{self.max_retries}): {exc}"
                )
                if state.cancelled.wait(wait_time):
                    raise TransitionCancelledError(request.delivery_id) from exc
