from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(slots=True)
class BusinessEntity:
    """Aggregate root for a user-owned business formation record."""

    entity_id: str
    user_id: str
    name: str | None
    entity_type: str | None
    state: str | None
    status: str
    created_at: datetime
    updated_at: datetime
