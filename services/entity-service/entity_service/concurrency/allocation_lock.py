"""In-process single-writer lock guarding id allocation."""

from __future__ import annotations

from contextlib import contextmanager
from threading import Lock
from typing import Iterator

from ..errors import AllocationLockTimeout


class InProcessAllocationLock:
    """Serialise allocate-then-insert between threads of one worker process."""

    def __init__(self, wait_seconds: float = 5.0) -> None:
        """Initialise the underlying mutex and the acquisition time box."""
        self._lock = Lock()
        self._wait_seconds = wait_seconds

    @contextmanager
    def hold(self) -> Iterator[None]:
        """Hold the lock for the duration of the ``with`` block."""
        if not self._lock.acquire(timeout=self._wait_seconds):
            raise AllocationLockTimeout("allocation lock busy")
        try:
            yield
        finally:
            self._lock.release()
