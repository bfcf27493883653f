"""
PollerWorker -- timer thread plus one dedicated worker thread.

Contract:
    The timer thread offers a tick every ``interval_ms`` through a channel
    of capacity one.  The worker thread takes ticks off the channel and
    runs ``poller.tick()``.  If a tick is still pending or running when the
    timer fires, the new tick is dropped and logged (``poll_tick_dropped``),
    never queued behind it.

Invariants enforced:
    - At most one tick in flight.
    - Graceful shutdown: ``stop()`` stops the timer, lets the running tick
      finish, and joins both threads.
"""

from __future__ import annotations

import queue
import threading

from winroom_kernel.logging_config import get_logger

from winroom_batch.services.poller import ReconciliationPoller

logger = get_logger("batch.worker")

_STOP = object()


class PollerWorker:
    def __init__(self, poller: ReconciliationPoller, interval_ms: int = 2000):
        self._poller = poller
        self._interval = interval_ms / 1000.0
        self._channel: queue.Queue = queue.Queue(maxsize=1)
        self._in_flight = threading.Event()
        self._offer_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._timer_thread: threading.Thread | None = None
        self._worker_thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._worker_thread is not None and self._worker_thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return

        self._stop_event.clear()
        self._worker_thread = threading.Thread(
            target=self._work_loop, name="winroom-poller-worker", daemon=True,
        )
        self._timer_thread = threading.Thread(
            target=self._timer_loop, name="winroom-poller-timer", daemon=True,
        )
        self._worker_thread.start()
        self._timer_thread.start()
        logger.info("poller_worker_started", extra={"interval_ms": int(self._interval * 1000)})

    def stop(self, timeout: float = 30.0) -> None:
        self._stop_event.set()
        if self._timer_thread is not None:
            self._timer_thread.join(timeout=timeout)

        if self._worker_thread is not None and self._worker_thread.is_alive():
            try:
                self._channel.put(_STOP, timeout=timeout)
            except queue.Full:
                logger.warning("poller_worker_stop_signal_blocked")
            self._worker_thread.join(timeout=timeout)

        logger.info("poller_worker_stopped", extra={"state": _state_summary(self._poller)})

    def offer_tick(self) -> bool:
        """Hand one tick to the worker.  Returns False when it was dropped."""
        with self._offer_lock:
            if self._in_flight.is_set():
                self._poller.record_dropped("tick_pending")
                return False
            # Set before the put so the worker can never clear it first
            self._in_flight.set()
            try:
                self._channel.put_nowait(True)
            except queue.Full:
                self._poller.record_dropped("channel_full")
                return False
            return True

    # -------------------------------------------------------------------------
    # Threads
    # -------------------------------------------------------------------------

    def _timer_loop(self) -> None:
        while not self._stop_event.is_set():
            self.offer_tick()
            self._stop_event.wait(timeout=self._interval)

    def _work_loop(self) -> None:
        while True:
            item = self._channel.get()
            if item is _STOP:
                break
            try:
                self._poller.tick()
            except Exception:
                logger.exception("poll_tick_exception")
            finally:
                self._in_flight.clear()


def _state_summary(poller: ReconciliationPoller) -> dict[str, int]:
    state = poller.state
    return {
        "tick_count": state.tick_count,
        "dropped_ticks": state.dropped_ticks,
        "failed_ticks": state.failed_ticks,
    }
