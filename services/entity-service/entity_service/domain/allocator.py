"""Allocation of fresh business entity identifiers."""

from __future__ import annotations

import logging
import random
import time
from typing import Callable

from .identifiers import ENTITY_ID_PREFIX
from ..errors import AllocationExhausted, StoreError
from ..metrics import ENTITY_ID_ALLOCATIONS, ENTITY_ID_COLLISIONS

logger = logging.getLogger(__name__)


class BusinessEntityIdAllocator:
    """Produce candidate ids under the fixed prefix and check them against the store.

    Only ten ids exist under the prefix, so the allocator probes the store for
    each candidate and retries on collision. It never persists anything itself;
    callers insert the returned id, ideally while holding the allocation lock.
    """

    def __init__(
        self,
        exists: Callable[[str], bool],
        *,
        max_attempts: int = 100,
        retry_delay_seconds: float = 0.001,
        timeout_seconds: float | None = None,
        allow_fallback: bool = False,
        clock_ns: Callable[[], int] = time.time_ns,
        rng: random.Random | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Store the existence probe and the retry policy.

        Parameters
        ----------
        exists:
            Callable returning ``True`` when a business entity with the given id
            is already stored. It may raise :class:`StoreError`.
        max_attempts:
            Upper bound on the number of candidates probed per allocation.
        retry_delay_seconds:
            Pause between attempts so the timestamp-derived digit moves on.
        timeout_seconds:
            Optional time box for a whole allocation.
        allow_fallback:
            When ``True``, exhaustion returns a wall-clock derived id without a
            uniqueness check instead of raising :class:`AllocationExhausted`.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._exists = exists
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay_seconds
        self._timeout = timeout_seconds
        self._allow_fallback = allow_fallback
        self._clock_ns = clock_ns
        self._rng = rng or random.Random()
        self._sleep = sleep

    def allocate(self, *, timeout_seconds: float | None = None) -> str:
        """Return an id that was not present in the store when it was probed."""
        timeout = self._timeout if timeout_seconds is None else timeout_seconds
        deadline = time.monotonic() + timeout if timeout is not None else None

        for attempt in range(1, self._max_attempts + 1):
            candidate = ENTITY_ID_PREFIX + str(self._candidate_digit())
            try:
                taken = self._exists(candidate)
            except StoreError as exc:
                logger.warning(
                    "existence check failed for %s on attempt %s, assuming free: %s",
                    candidate,
                    attempt,
                    exc,
                )
                taken = False

            if not taken:
                ENTITY_ID_ALLOCATIONS.labels(outcome="allocated").inc()
                return candidate

            ENTITY_ID_COLLISIONS.labels(stage="probe").inc()
            if deadline is not None and time.monotonic() >= deadline:
                logger.warning("entity id allocation timed out after %s attempts", attempt)
                break
            if attempt < self._max_attempts:
                self._sleep(self._retry_delay)

        return self._exhausted()

    def _candidate_digit(self) -> int:
        millis = self._clock_ns() // 1_000_000
        return (millis + self._rng.randrange(10)) % 10

    def _exhausted(self) -> str:
        if not self._allow_fallback:
            ENTITY_ID_ALLOCATIONS.labels(outcome="exhausted").inc()
            raise AllocationExhausted(
                f"no free business entity id under prefix {ENTITY_ID_PREFIX}"
            )
        seconds = self._clock_ns() // 1_000_000_000
        fallback = ENTITY_ID_PREFIX + str(seconds % 10)
        # not re-checked; the insert's primary key is the only guard left
        logger.warning("allocation exhausted, using unchecked fallback id %s", fallback)
        ENTITY_ID_ALLOCATIONS.labels(outcome="fallback").inc()
        return fallback
