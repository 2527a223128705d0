import threading

import pytest

from src.driver_core.errors import (
    InvalidTransitionError,
    TransientSyncError,
    TransitionCancelledError,
    TransitionInFlightError,
)
from src.driver_core.models.domain import DeliveryStatus, TransitionRequest
from src.driver_core.services.status.transitions import TransitionCoordinator


class RecordingStore:
    def __init__(self, failures: int = 0, error: Exception | None = None) -> None:
        self.failures = failures
        self.error = error or ConnectionError("network down")
        self.requests: list[TransitionRequest] = []

    def push_transition(self, request: TransitionRequest) -> None:
        self.requests.append(request)
        if self.failures > 0:
            self.failures -= 1
            raise self.error


class BlockingStore:
    """Holds pushes open until released (optionally only for one delivery)."""

    def __init__(self, blocked_id: str | None = None) -> None:
        self.blocked_id = blocked_id
        self.entered = threading.Event()
        self.release = threading.Event()

    def push_transition(self, request: TransitionRequest) -> None:
        if self.blocked_id is not None and request.delivery_id != self.blocked_id:
            return
        self.entered.set()
        self.release.wait(5)


def test_successful_transition_returns_updated_delivery(make_delivery, clock):
    store = RecordingStore()
    coordinator = TransitionCoordinator(store, backoff_seconds=0, clock=clock)
    delivery = make_delivery(DeliveryStatus.DRIVER_ASSIGNED)

    updated = coordinator.request_transition(delivery, DeliveryStatus.GOING_TO_PICKUP)

    assert updated.status is DeliveryStatus.GOING_TO_PICKUP
    assert updated.updated_at == clock.now()
    assert store.requests[0].to_payload() == {"delivery_id": "D1", "target_status": "going_to_pickup"}
    assert coordinator.confirmed_status("D1") is DeliveryStatus.GOING_TO_PICKUP
    assert coordinator.optimistic_status("D1") is DeliveryStatus.GOING_TO_PICKUP
    assert not coordinator.is_in_flight("D1")


def test_transient_failures_are_retried(make_delivery):
    store = RecordingStore(failures=2)
    coordinator = TransitionCoordinator(store, max_retries=3, backoff_seconds=0)

    updated = coordinator.request_transition(make_delivery(), DeliveryStatus.GOING_TO_PICKUP)

    assert updated.status is DeliveryStatus.GOING_TO_PICKUP
    assert len(store.requests) == 3


def test_exhausted_retries_roll_back(make_delivery):
    store = RecordingStore(failures=10)
    coordinator = TransitionCoordinator(store, max_retries=2, backoff_seconds=0)

    with pytest.raises(TransientSyncError) as exc_info:
        coordinator.request_transition(make_delivery(), DeliveryStatus.GOING_TO_PICKUP)

    assert exc_info.value.attempts == 3
    assert len(store.requests) == 3
    assert coordinator.optimistic_status("D1") is DeliveryStatus.DRIVER_ASSIGNED
    assert coordinator.confirmed_status("D1") is DeliveryStatus.DRIVER_ASSIGNED


def test_invalid_transition_is_never_sent(make_delivery):
    store = RecordingStore()
    coordinator = TransitionCoordinator(store, backoff_seconds=0)

    with pytest.raises(InvalidTransitionError):
        coordinator.request_transition(make_delivery(), DeliveryStatus.DELIVERED)

    assert store.requests == []


def test_non_retryable_errors_propagate_immediately(make_delivery):
    store = RecordingStore(failures=1, error=RuntimeError("bad payload"))
    coordinator = TransitionCoordinator(store, max_retries=3, backoff_seconds=0)

    with pytest.raises(RuntimeError):
        coordinator.request_transition(make_delivery(), DeliveryStatus.GOING_TO_PICKUP)

    assert len(store.requests) == 1
    assert coordinator.optimistic_status("D1") is DeliveryStatus.DRIVER_ASSIGNED


def test_second_request_while_in_flight_is_rejected(make_delivery):
    store = BlockingStore()
    coordinator = TransitionCoordinator(store, backoff_seconds=0)
    delivery = make_delivery()
    results = {}

    def run():
        results["delivery"] = coordinator.request_transition(delivery, DeliveryStatus.GOING_TO_PICKUP)

    worker = threading.Thread(target=run)
    worker.start()
    assert store.entered.wait(5)

    assert coordinator.is_in_flight("D1")
    assert coordinator.optimistic_status("D1") is DeliveryStatus.GOING_TO_PICKUP
    with pytest.raises(TransitionInFlightError):
        coordinator.request_transition(delivery, DeliveryStatus.CANCELLED)

    store.release.set()
    worker.join(5)
    assert results["delivery"].status is DeliveryStatus.GOING_TO_PICKUP


def test_different_deliveries_do_not_block_each_other(make_delivery):
    store = BlockingStore(blocked_id="D1")
    coordinator = TransitionCoordinator(store, backoff_seconds=0)
    worker = threading.Thread(
        target=coordinator.request_transition,
        args=(make_delivery(delivery_id="D1"), DeliveryStatus.GOING_TO_PICKUP),
    )
    worker.start()
    assert store.entered.wait(5)

    updated = coordinator.request_transition(make_delivery(delivery_id="D2"), DeliveryStatus.GOING_TO_PICKUP)

    assert updated.status is DeliveryStatus.GOING_TO_PICKUP
    assert coordinator.is_in_flight("D1")
    store.release.set()
    worker.join(5)


def test_cancel_aborts_pending_retries(make_delivery):
    store = RecordingStore(failures=10)
    coordinator = TransitionCoordinator(store, max_retries=5, backoff_seconds=30, max_backoff_seconds=30)
    errors = []

    def run():
        try:
            coordinator.request_transition(make_delivery(), DeliveryStatus.GOING_TO_PICKUP)
        except Exception as exc:
            errors.append(exc)

    worker = threading.Thread(target=run)
    worker.start()
    for _ in range(500):
        if store.requests:
            break
        threading.Event().wait(0.01)

    coordinator.cancel("D1")
    worker.join(5)

    assert not worker.is_alive()
    assert isinstance(errors[0], TransitionCancelledError)
    assert len(store.requests) == 1
    assert coordinator.tracked_deliveries() == []


def test_terminal_transition_drops_state(make_delivery):
    coordinator = TransitionCoordinator(RecordingStore(), backoff_seconds=0)

    updated = coordinator.request_transition(
        make_delivery(DeliveryStatus.AT_DESTINATION), DeliveryStatus.DELIVERED
    )

    assert updated.completed_at is not None
    assert coordinator.tracked_deliveries() == []
    assert coordinator.optimistic_status("D1") is None


def test_server_sync_records_confirmed_status(make_delivery):
    coordinator = TransitionCoordinator(RecordingStore(), backoff_seconds=0)
    coordinator.request_transition(make_delivery(), DeliveryStatus.GOING_TO_PICKUP)

    coordinator.sync(make_delivery(DeliveryStatus.PICKUP_ARRIVED))
    assert coordinator.confirmed_status("D1") is DeliveryStatus.PICKUP_ARRIVED

    coordinator.sync(make_delivery(DeliveryStatus.CANCELLED))
    assert coordinator.tracked_deliveries() == []


class CountingBlockingStore(BlockingStore):
    """BlockingStore that also counts pushes running at the same time."""

    def __init__(self, blocked_id: str | None = None) -> None:
        super().__init__(blocked_id)
        self.active = 0
        self.peak = 0
        self.calls = 0
        self._lock = threading.Lock()

    def push_transition(self, request: TransitionRequest) -> None:
        with self._lock:
            self.calls += 1
            self.active += 1
            self.peak = max(self.peak, self.active)
        try:
            super().push_transition(request)
        finally:
            with self._lock:
                self.active -= 1


def _run_in_thread(coordinator, delivery, target):
    outcome = {}

    def run():
        try:
            outcome["delivery"] = coordinator.request_transition(delivery, target)
        except Exception as exc:
            outcome["error"] = exc

    worker = threading.Thread(target=run)
    worker.start()
    return worker, outcome


def test_cancel_during_push_blocks_a_second_push_until_the_first_resolves(make_delivery):
    store = CountingBlockingStore()
    coordinator = TransitionCoordinator(store, backoff_seconds=0)
    delivery = make_delivery()
    worker, outcome = _run_in_thread(coordinator, delivery, DeliveryStatus.GOING_TO_PICKUP)
    assert store.entered.wait(5)

    coordinator.cancel("D1")

    assert coordinator.tracked_deliveries() == ["D1"]
    with pytest.raises(TransitionInFlightError):
        coordinator.request_transition(delivery, DeliveryStatus.CANCELLED)
    assert store.calls == 1

    store.release.set()
    worker.join(5)

    assert store.peak == 1
    assert coordinator.tracked_deliveries() == []
    assert isinstance(outcome["error"], TransitionCancelledError)


def test_cancel_all_keeps_in_flight_state_until_it_resolves(make_delivery):
    store = CountingBlockingStore()
    coordinator = TransitionCoordinator(store, backoff_seconds=0)
    worker, outcome = _run_in_thread(coordinator, make_delivery(), DeliveryStatus.GOING_TO_PICKUP)
    assert store.entered.wait(5)

    coordinator.cancel_all()
    with pytest.raises(TransitionInFlightError):
        coordinator.request_transition(make_delivery(), DeliveryStatus.GOING_TO_PICKUP)

    store.release.set()
    worker.join(5)
    assert store.peak == 1

    # Once resolved, the delivery id starts over with fresh state.
    updated = coordinator.request_transition(make_delivery(), DeliveryStatus.GOING_TO_PICKUP)
    assert updated.status is DeliveryStatus.GOING_TO_PICKUP
    assert coordinator.confirmed_status("D1") is DeliveryStatus.GOING_TO_PICKUP


def test_push_accepted_after_cancel_is_reported_as_cancelled(make_delivery):
    store = BlockingStore()
    coordinator = TransitionCoordinator(store, backoff_seconds=0)
    worker, outcome = _run_in_thread(coordinator, make_delivery(), DeliveryStatus.GOING_TO_PICKUP)
    assert store.entered.wait(5)

    coordinator.cancel("D1")
    store.release.set()
    worker.join(5)

    assert "delivery" not in outcome
    assert isinstance(outcome["error"], TransitionCancelledError)
    assert coordinator.confirmed_status("D1") is None


class ObservingLock:
    """Lock wrapper that records the delivery state at the moment of release."""

    def __init__(self, state) -> None:
        self._lock = threading.Lock()
        self._state = state
        self.seen_on_release = []

    def acquire(self, blocking=True, timeout=-1):
        return self._lock.acquire(blocking, timeout)

    def release(self):
        self.seen_on_release.append((self._state.confirmed, self._state.optimistic))
        self._lock.release()

    def locked(self):
        return self._lock.locked()


def test_confirmed_status_is_written_before_the_lock_is_released(make_delivery):
    coordinator = TransitionCoordinator(RecordingStore(), backoff_seconds=0)
    coordinator.request_transition(make_delivery(), DeliveryStatus.GOING_TO_PICKUP)
    state = coordinator._states["D1"]
    lock = ObservingLock(state)
    state.lock = lock

    coordinator.request_transition(
        make_delivery(DeliveryStatus.GOING_TO_PICKUP), DeliveryStatus.PICKUP_ARRIVED
    )

    assert lock.seen_on_release == [(DeliveryStatus.PICKUP_ARRIVED, None)]
    assert coordinator.optimistic_status("D1") is DeliveryStatus.PICKUP_ARRIVED
