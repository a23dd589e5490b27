"""Business entity service bridging legacy numeric ids and 12-digit string ids."""

from __future__ import annotations

import logging
from contextlib import AbstractContextManager
from datetime import datetime, timezone
from typing import Callable, Protocol

from .allocator import BusinessEntityIdAllocator
from .contracts import BusinessEntityUpdate, CreateBusinessEntityInput
from .entity import BusinessEntity
from .identifiers import EntityIdentifier, normalize_entity_id
from ..errors import DuplicateEntityId
from ..metrics import ENTITY_ID_COLLISIONS
from ..repository import BusinessEntityRepository

logger = logging.getLogger(__name__)


class AllocationLock(Protocol):
    def hold(self) -> AbstractContextManager[None]: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BusinessEntityService:
    """Entity workflows that accept either id format and enforce ownership.

    The store only ever holds string ids. Reads and updates hide entities
    owned by someone else behind the same ``None`` used for missing rows, so
    non-owners cannot probe which ids exist.
    """

    def __init__(
        self,
        repository: BusinessEntityRepository,
        allocator: BusinessEntityIdAllocator,
        lock: AllocationLock,
        *,
        create_attempts: int = 3,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Store dependencies used to orchestrate allocation and persistence."""
        if create_attempts < 1:
            raise ValueError("create_attempts must be at least 1")
        self._repository = repository
        self._allocator = allocator
        self._lock = lock
        self._create_attempts = create_attempts
        self._clock = clock

    def allocate(self) -> str:
        """Return a currently unused business entity id without reserving it."""
        return self._allocator.allocate()

    def create(self, entity_data: CreateBusinessEntityInput, user_id: str) -> BusinessEntity:
        """Allocate an id for ``user_id`` and insert the entity under it.

        Allocation and insert run under the allocation lock. The primary key
        still has the final say: a duplicate-key failure triggers a fresh
        allocation, and the last failure propagates once attempts run out.
        """
        attempt = 1
        while True:
            with self._lock.hold():
                entity_id = self._allocator.allocate()
                now = self._clock()
                entity = BusinessEntity(
                    entity_id=entity_id,
                    user_id=user_id,
                    name=entity_data.name,
                    entity_type=entity_data.entity_type,
                    state=entity_data.state,
                    status=entity_data.status,
                    created_at=now,
                    updated_at=now,
                )
                try:
                    created = self._repository.insert_entity(entity)
                except DuplicateEntityId:
                    ENTITY_ID_COLLISIONS.labels(stage="insert").inc()
                    if attempt >= self._create_attempts:
                        raise
                    logger.warning(
                        "business entity id %s collided on insert, retrying (%s/%s)",
                        entity_id,
                        attempt,
                        self._create_attempts,
                    )
                    attempt += 1
                    continue
            logger.info("business entity %s created for user %s", created.entity_id, user_id)
            return created

    def read(self, entity_id: EntityIdentifier | str | int, user_id: str) -> BusinessEntity | None:
        """Return the entity when it exists and belongs to ``user_id``."""
        entity = self._repository.get_entity(normalize_entity_id(entity_id))
        if entity is None or entity.user_id != user_id:
            return None
        return entity

    def update(
        self,
        entity_id: EntityIdentifier | str | int,
        user_id: str,
        updates: BusinessEntityUpdate,
    ) -> BusinessEntity | None:
        """Apply ``updates`` to an entity owned by ``user_id`` and re-stamp ``updated_at``."""
        existing = self.read(entity_id, user_id)
        if existing is None:
            return None
        return self._repository.update_entity(
            existing.entity_id,
            updates.changes(),
            self._clock(),
        )

    def list_entities(self, user_id: str) -> list[BusinessEntity]:
        """Return the entities owned by ``user_id`` in creation order."""
        return self._repository.list_entities(user_id)

    def link_mailbox(self, business_entity_id: str, subscription_id: int) -> None:
        """Attach a mailbox subscription to a business entity.

        Neither ownership nor the entity's existence is checked here; the
        caller owns that decision and store errors propagate unchanged.
        """
        self._repository.link_mailbox(subscription_id, business_entity_id)
