"""Domain-level request contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any

NULLABLE_ATTRIBUTES = frozenset({"name", "entity_type", "state"})


@dataclass(slots=True)
class CreateBusinessEntityInput:
    """Caller-supplied attributes for a new business entity."""

    name: str | None = None
    entity_type: str | None = None
    state: str | None = None
    status: str = "draft"


@dataclass(slots=True)
class BusinessEntityUpdate:
    """Partial update.

    ``None`` fields are left unchanged unless named in ``cleared``, in which
    case the column is set to NULL.
    """

    name: str | None = None
    entity_type: str | None = None
    state: str | None = None
    status: str | None = None
    cleared: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        not_nullable = set(self.cleared) - NULLABLE_ATTRIBUTES
        if not_nullable:
            raise ValueError(f"cannot clear business entity fields: {sorted(not_nullable)}")

    def changes(self) -> dict[str, Any]:
        """Return the attributes that were supplied, including explicit clears."""
        return {
            attribute.name: getattr(self, attribute.name)
            for attribute in fields(self)
            if attribute.name != "cleared"
            and (getattr(self, attribute.name) is not None or attribute.name in self.cleared)
        }
