from __future__ import annotations

import random
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from entity_service.domain.allocator import BusinessEntityIdAllocator
from entity_service.domain.entity import BusinessEntity
from entity_service.domain.service import BusinessEntityService
from entity_service.errors import DuplicateEntityId, StoreError


class FakeRepository:
    """In-memory repository mimicking Postgres-backed behaviors."""

    def __init__(self) -> None:
        self.entities: dict[str, BusinessEntity] = {}
        self.mailbox_links: dict[int, str] = {}
        self.enforce_foreign_keys = False
        self.fail_existence_checks = False
        self.forced_insert_collisions = 0
        self.exists_calls: list[str] = []
        self.insert_calls: list[str] = []
        self.update_calls: list[str] = []

    def seed(self, entity: BusinessEntity) -> None:
        self.entities[entity.entity_id] = replace(entity)

    def entity_id_exists(self, entity_id: str) -> bool:
        self.exists_calls.append(entity_id)
        if self.fail_existence_checks:
            raise StoreError("entity id existence check failed: connection refused")
        return entity_id in self.entities

    def insert_entity(self, entity: BusinessEntity) -> BusinessEntity:
        self.insert_calls.append(entity.entity_id)
        if self.forced_insert_collisions > 0:
            # simulates a concurrent writer grabbing the id after the probe
            self.forced_insert_collisions -= 1
            raise DuplicateEntityId(entity.entity_id)
        if entity.entity_id in self.entities:
            raise DuplicateEntityId(entity.entity_id)
        self.entities[entity.entity_id] = replace(entity)
        return replace(entity)

    def get_entity(self, entity_id: str) -> BusinessEntity | None:
        entity = self.entities.get(entity_id)
        return replace(entity) if entity else None

    def list_entities(self, user_id: str) -> list[BusinessEntity]:
        owned = [replace(e) for e in self.entities.values() if e.user_id == user_id]
        return sorted(owned, key=lambda e: (e.created_at, e.entity_id))

    def update_entity(self, entity_id: str, changes: dict, updated_at: datetime):
        self.update_calls.append(entity_id)
        entity = self.entities.get(entity_id)
        if entity is None:
            return None
        for field, value in changes.items():
            setattr(entity, field, value)
        entity.updated_at = updated_at
        return replace(entity)

    def link_mailbox(self, subscription_id: int, business_entity_id: str) -> None:
        if self.enforce_foreign_keys and business_entity_id not in self.entities:
            raise StoreError("mailbox subscription link failed: foreign key violation")
        self.mailbox_links[subscription_id] = business_entity_id


class TickingClock:
    """Nanosecond clock that advances one millisecond per reading."""

    def __init__(self, start_ms: int = 0) -> None:
        self._ms = start_ms

    def __call__(self) -> int:
        value = self._ms * 1_000_000
        self._ms += 1
        return value


class ZeroRandom(random.Random):
    """Random source whose digit contribution is always zero."""

    def randrange(self, *args, **kwargs) -> int:
        return 0


class SteppingUtcClock:
    """UTC datetime clock that moves forward one second per reading."""

    def __init__(self, start: datetime | None = None) -> None:
        self._current = start or datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        value = self._current
        self._current += timedelta(seconds=1)
        return value


class RecordingLock:
    """Allocation lock stand-in that records when it is held."""

    def __init__(self) -> None:
        self.held = False
        self.acquisitions = 0

    @contextmanager
    def hold(self):
        self.held = True
        self.acquisitions += 1
        try:
            yield
        finally:
            self.held = False


def make_entity(entity_id: str, user_id: str, **overrides) -> BusinessEntity:
    stamp = datetime(2025, 6, 1, tzinfo=timezone.utc)
    values = dict(
        entity_id=entity_id,
        user_id=user_id,
        name="Seeded Co",
        entity_type="LLC",
        state="DE",
        status="draft",
        created_at=stamp,
        updated_at=stamp,
    )
    values.update(overrides)
    return BusinessEntity(**values)


@pytest.fixture
def repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def allocator(repository, sleeps) -> BusinessEntityIdAllocator:
    """Deterministic allocator: candidates walk digits 0, 1, 2, ... one per attempt."""
    return BusinessEntityIdAllocator(
        repository.entity_id_exists,
        max_attempts=100,
        clock_ns=TickingClock(),
        rng=ZeroRandom(),
        sleep=sleeps.append,
    )


@pytest.fixture
def lock() -> RecordingLock:
    return RecordingLock()


@pytest.fixture
def service(repository, allocator, lock) -> BusinessEntityService:
    return BusinessEntityService(repository, allocator, lock, clock=SteppingUtcClock())
