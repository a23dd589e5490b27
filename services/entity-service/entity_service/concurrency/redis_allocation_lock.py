"""Redis-backed single-writer lock guarding id allocation across processes."""

from __future__ import annotations

import secrets
import time
from contextlib import contextmanager
from typing import Final, Iterator

from redis import Redis
from redis.exceptions import ResponseError

from ..errors import AllocationLockTimeout


class RedisAllocationLock:
    """Distributed mutex implemented with ``SET NX PX`` and a compare-and-delete release."""

    _RELEASE_SCRIPT: Final[str] = """
    if redis.call('GET', KEYS[1]) == ARGV[1] then
        return redis.call('DEL', KEYS[1])
    end
    return 0
    """

    def __init__(
        self,
        client: Redis,
        *,
        name: str,
        ttl_ms: int = 10_000,
        wait_seconds: float = 5.0,
        poll_interval_seconds: float = 0.01,
        key_prefix: str = "lock"
    ) -> None:
        """Initialise the Redis client, lock key, expiry and the release script."""
        self._client = client
        self._key = f"{key_prefix}:{name}"
        self._ttl_ms = ttl_ms
        self._wait_seconds = wait_seconds
        self._poll_interval = poll_interval_seconds
        self._release = client.register_script(self._RELEASE_SCRIPT)

    @property
    def key(self) -> str:
        return self._key

    @contextmanager
    def hold(self) -> Iterator[None]:
        """Hold the distributed lock for the duration of the ``with`` block.

        The key expires after ``ttl_ms`` so a crashed holder cannot wedge
        allocation forever.
        """
        token = secrets.token_hex(16)
        deadline = time.monotonic() + self._wait_seconds
        while not self._client.set(self._key, token, nx=True, px=self._ttl_ms):
            if time.monotonic() >= deadline:
                raise AllocationLockTimeout(f"allocation lock {self._key} busy")
            time.sleep(self._poll_interval)
        try:
            yield
        finally:
            self._release_owned(token)

    def _release_owned(self, token: str) -> None:
        try:
            self._release(keys=[self._key], args=[token])
        except ResponseError as exc:
            message = str(exc).lower()
            if "unknown command" in message:
                self._release_fallback(token)
                return
            raise

    def _release_fallback(self, token: str) -> None:
        """Non-atomic release used when Lua scripting is unavailable."""
        current = self._client.get(self._key)
        if isinstance(current, bytes):
            current = current.decode("utf-8")
        if current == token:
            self._client.delete(self._key)
