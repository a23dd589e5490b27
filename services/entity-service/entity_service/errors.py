"""Exceptions raised by the entity service core."""


class EntityServiceError(Exception):
    """Base exception for entity service failures"""

    pass


class StoreError(EntityServiceError):
    """Raised when the underlying Postgres store rejects or fails an operation"""

    pass


class DuplicateEntityId(StoreError):
    """Raised when an insert collides with an existing business entity id"""

    def __init__(self, entity_id: str) -> None:
        super().__init__(f"business entity id {entity_id} already exists")
        self.entity_id = entity_id


class AllocationExhausted(EntityServiceError):
    """Raised when no free business entity id could be allocated"""

    pass


class AllocationLockTimeout(AllocationExhausted):
    """Raised when the allocation lock could not be acquired in time"""

    pass
