from __future__ import annotations

import heapq
import itertools
import queue
import threading
import time
from datetime import timedelta
from typing import Any, Callable, Optional


_STOP = object()


class EventLoop:
    """
    Single-sequence dispatcher for driver events.

    ``post`` may be called from any thread. Posted events and timers that fall
    due are handed to the handler one at a time, on the thread running
    ``run``, in arrival (respectively due) order.
    """

    def __init__(self, log, clock: Callable[[], float] = time.monotonic):
        self.log = log
        self.clock = clock
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._timers: list[tuple[float, int, Any]] = []
        self._timer_lock = threading.Lock()
        self._seq = itertools.count()
        self._handler: Optional[Callable[[Any], None]] = None
        self._running = False

    # ------------------------------------------------------------------
    def set_handler(self, handler: Callable[[Any], None]) -> None:
        self._handler = handler

    def post(self, event: Any) -> None:
        self._queue.put(event)

    def call_later(self, delay: timedelta, event: Any) -> None:
        due = self.clock() + max(0.0, delay.total_seconds())
        with self._timer_lock:
            heapq.heappush(self._timers, (due, next(self._seq), event))
        # wake the loop so it recomputes its wait
        self._queue.put(None)

    def stop(self) -> None:
        self._running = False
        self._queue.put(_STOP)

    @property
    def pending_timers(self) -> int:
        with self._timer_lock:
            return len(self._timers)

    # ------------------------------------------------------------------
    def _pop_due_timer(self) -> tuple[Any, Optional[float]]:
        """Return (event, None) for a due timer or (None, seconds_to_wait)."""
        with self._timer_lock:
            if not self._timers:
                return None, None
            due, _, event = self._timers[0]
            wait = due - self.clock()
            if wait > 0:
                return None, wait
            heapq.heappop(self._timers)
            return event, None

    def _dispatch(self, event: Any) -> None:
        if self._handler is None:
            self.log.warning("No handler registered; dropping event %r", event)
            return
        try:
            self._handler(event)
        except Exception as exc:
            self.log.exception("Unhandled error while processing %r: %s", event, exc)

    def run(self) -> None:
        """Process events until ``stop`` is called."""
        self._running = True
        while self._running:
            timer_event, wait = self._pop_due_timer()
            if timer_event is not None:
                self._dispatch(timer_event)
                continue

            try:
                event = self._queue.get(timeout=wait)
            except queue.Empty:
                continue

            if event is _STOP:
                break
            if event is None:
                continue
            self._dispatch(event)
