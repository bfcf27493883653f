"""
Tests for PollerWorker -- at most one tick in flight, drops instead of
queueing, and graceful shutdown.
"""

import threading

import pytest

from winroom_batch.domain.types import PollerState, TickResult, TickStatus
from winroom_batch.jobs.base import JobRegistry
from winroom_batch.services.poller import ReconciliationPoller
from winroom_batch.services.worker import PollerWorker


class FakePoller:
    """Stands in for ReconciliationPoller; each tick waits for ``release``."""

    def __init__(self, blocking: bool = True, fail_first: bool = False):
        self.started = threading.Event()
        self.release = threading.Event()
        self.second_tick = threading.Event()
        self.dropped: list[str] = []
        self.ticks = 0
        self.completed = 0
        self.max_active = 0
        self._active = 0
        self._fail_first = fail_first
        self._lock = threading.Lock()
        if not blocking:
            self.release.set()

    @property
    def state(self) -> PollerState:
        return PollerState(tick_count=self.completed, dropped_ticks=len(self.dropped))

    def record_dropped(self, reason: str) -> None:
        self.dropped.append(reason)

    def tick(self) -> TickResult:
        with self._lock:
            self._active += 1
            self.max_active = max(self.max_active, self._active)
            self.ticks += 1
            number = self.ticks
        if number >= 2:
            self.second_tick.set()
        self.started.set()
        try:
            if self._fail_first and number == 1:
                raise RuntimeError("first tick fails")
            self.release.wait(timeout=10)
            self.completed += 1
            return TickResult(status=TickStatus.COMPLETED, tick_number=number)
        finally:
            with self._lock:
                self._active -= 1


@pytest.fixture
def worker_factory():
    workers = []

    def _create(poller, interval_ms: int = 10) -> PollerWorker:
        worker = PollerWorker(poller, interval_ms=interval_ms)
        workers.append(worker)
        return worker

    yield _create

    for worker in workers:
        if worker.is_running:
            worker.stop(timeout=5)


class TestOfferTick:
    def test_second_offer_is_dropped_while_first_pending(self, session_factory, clock, worker_factory):
        poller = ReconciliationPoller(session_factory, clock=clock, jobs=JobRegistry())
        worker = worker_factory(poller)

        assert worker.offer_tick() is True
        assert worker.offer_tick() is False

        assert poller.state.dropped_ticks == 1
        assert poller.state.tick_count == 0

    def test_drop_is_logged(self, session_factory, clock, worker_factory, captured_logs):
        poller = ReconciliationPoller(session_factory, clock=clock, jobs=JobRegistry())
        worker = worker_factory(poller)

        worker.offer_tick()
        worker.offer_tick()

        drops = [r for r in captured_logs() if r["message"] == "poll_tick_dropped"]
        assert [r["reason"] for r in drops] == ["tick_pending"]


class TestRunningWorker:
    def test_ticks_never_overlap(self, worker_factory):
        poller = FakePoller()
        worker = worker_factory(poller, interval_ms=5)
        worker.start()

        assert poller.started.wait(timeout=10)
        assert worker.offer_tick() is False
        poller.release.set()
        assert poller.second_tick.wait(timeout=10)
        worker.stop(timeout=10)

        assert poller.max_active == 1
        assert "tick_pending" in poller.dropped
        assert worker.is_running is False

    def test_tick_exception_does_not_stop_worker(self, worker_factory, captured_logs):
        poller = FakePoller(blocking=False, fail_first=True)
        worker = worker_factory(poller, interval_ms=5)
        worker.start()

        assert poller.second_tick.wait(timeout=10)
        worker.stop(timeout=10)

        assert poller.completed >= 1
        assert any(r["message"] == "poll_tick_exception" for r in captured_logs())

    def test_stop_lets_running_tick_finish(self, worker_factory):
        poller = FakePoller()
        worker = worker_factory(poller, interval_ms=5)
        worker.start()
        assert poller.started.wait(timeout=10)

        stopper = threading.Thread(target=worker.stop, kwargs={"timeout": 10})
        stopper.start()
        stopper.join(timeout=0.2)
        assert stopper.is_alive()
        assert poller.completed == 0

        poller.release.set()
        stopper.join(timeout=10)

        assert not stopper.is_alive()
        assert poller.completed == 1
        assert worker.is_running is False

    def test_start_is_idempotent(self, worker_factory):
        poller = FakePoller(blocking=False)
        worker = worker_factory(poller, interval_ms=5)

        worker.start()
        first_thread = worker._worker_thread
        worker.start()

        assert worker._worker_thread is first_thread
        worker.stop(timeout=10)
