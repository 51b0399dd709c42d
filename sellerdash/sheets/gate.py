"""
Request gate: caps how many spreadsheet API calls are in flight at once.

Callers over the cap wait in FIFO order; a finishing call hands its slot
straight to the oldest waiter so late arrivals cannot jump the queue.
"""
import threading
from collections import deque
from contextlib import contextmanager
from typing import Iterator

DEFAULT_MAX_IN_FLIGHT = 5


class RequestGate:
    def __init__(self, max_in_flight: int = DEFAULT_MAX_IN_FLIGHT):
        if max_in_flight < 1:
            raise ValueError("max_in_flight must be >= 1")
        self.max_in_flight = max_in_flight
        self._in_flight = 0
        self._waiters: deque[threading.Event] = deque()
        self._lock = threading.Lock()

    @property
    def in_flight(self) -> int:
        with self._lock:
            return self._in_flight

    @property
    def waiting(self) -> int:
        with self._lock:
            return len(self._waiters)

    def acquire(self) -> None:
        with self._lock:
            if self._in_flight < self.max_in_flight and not self._waiters:
                self._in_flight += 1
                return
            ticket = threading.Event()
            self._waiters.append(ticket)
        # Slot is transferred by release(); in_flight already counts us.
        ticket.wait()

    def release(self) -> None:
        with self._lock:
            if self._waiters:
                self._waiters.popleft().set()
            elif self._in_flight > 0:
                self._in_flight -= 1

    @contextmanager
    def slot(self) -> Iterator[None]:
        self.acquire()
        try:
            yield
        finally:
            self.release()
