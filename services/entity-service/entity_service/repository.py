"""Database repository for business entity data."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator

import psycopg
from psycopg import errors, sql
from psycopg.rows import tuple_row
from psycopg_pool import ConnectionPool

from .domain.entity import BusinessEntity
from .errors import DuplicateEntityId, StoreError

_ENTITY_COLUMNS = "id, user_id, name, entity_type, state, status, created_at, updated_at"

# domain attribute -> column; anything not listed here is never written by updates
_UPDATABLE_COLUMNS = {
    "name": "name",
    "entity_type": "entity_type",
    "state": "state",
    "status": "status",
}


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    """Re-raise driver failures as :class:`StoreError` with the failing operation named."""
    try:
        yield
    except psycopg.Error as exc:
        raise StoreError(f"{operation} failed: {exc}") from exc


def build_update_statement(attributes: list[str]) -> sql.Composed:
    """Compose the UPDATE for the given attributes; ``updated_at`` is always re-stamped.

    Parameters are the attribute values in order, then ``updated_at``, then the id.
    """
    unknown = set(attributes) - set(_UPDATABLE_COLUMNS)
    if unknown:
        raise ValueError(f"unsupported business entity fields: {sorted(unknown)}")

    assignments = [
        sql.SQL("{} = %s").format(sql.Identifier(_UPDATABLE_COLUMNS[attribute]))
        for attribute in attributes
    ]
    assignments.append(sql.SQL("updated_at = %s"))
    return sql.SQL(
        "UPDATE business_entities SET {} WHERE id = %s RETURNING " + _ENTITY_COLUMNS
    ).format(sql.SQL(", ").join(assignments))


class BusinessEntityRepository:
    """Postgres-backed business entity persistence keyed by string ids."""

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    def entity_id_exists(self, entity_id: str) -> bool:
        """Return ``True`` when a business entity row already uses ``entity_id``."""
        with _store_errors("entity id existence check"):
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(
                        "SELECT 1 FROM business_entities WHERE id = %s LIMIT 1",
                        (entity_id,),
                    )
                    return cur.fetchone() is not None

    def insert_entity(self, entity: BusinessEntity) -> BusinessEntity:
        """Persist a fully-stamped entity and return the stored row."""
        with _store_errors("business entity insert"):
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    try:
                        cur.execute(
                            f"""
                            INSERT INTO business_entities ({_ENTITY_COLUMNS})
                            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                            RETURNING {_ENTITY_COLUMNS}
                            """,
                            (
                                entity.entity_id,
                                entity.user_id,
                                entity.name,
                                entity.entity_type,
                                entity.state,
                                entity.status,
                                entity.created_at,
                                entity.updated_at,
                            ),
                        )
                    except errors.UniqueViolation as exc:
                        raise DuplicateEntityId(entity.entity_id) from exc
                    row = cur.fetchone()
                    conn.commit()
        return self._map_record(row)

    def get_entity(self, entity_id: str) -> BusinessEntity | None:
        """Fetch an entity by exact id regardless of owner, or return ``None``."""
        with _store_errors("business entity lookup"):
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(
                        f"SELECT {_ENTITY_COLUMNS} FROM business_entities WHERE id = %s LIMIT 1",
                        (entity_id,),
                    )
                    row = cur.fetchone()
        if not row:
            return None
        return self._map_record(row)

    def list_entities(self, user_id: str) -> list[BusinessEntity]:
        """Return every entity owned by ``user_id`` ordered by creation time."""
        with _store_errors("business entity listing"):
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(
                        f"""
                        SELECT {_ENTITY_COLUMNS}
                        FROM business_entities
                        WHERE user_id = %s
                        ORDER BY created_at, id
                        """,
                        (user_id,),
                    )
                    rows = cur.fetchall()
        return [self._map_record(row) for row in rows]

    def update_entity(
        self,
        entity_id: str,
        changes: dict[str, Any],
        updated_at: datetime,
    ) -> BusinessEntity | None:
        """Apply ``changes`` plus ``updated_at`` to the row and return it, or ``None`` if gone."""
        query = build_update_statement(list(changes))
        params = [*changes.values(), updated_at, entity_id]

        with _store_errors("business entity update"):
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(query, params)
                    row = cur.fetchone()
                    conn.commit()
        if not row:
            return None
        return self._map_record(row)

    def link_mailbox(self, subscription_id: int, business_entity_id: str) -> None:
        """Point a mailbox subscription at a business entity."""
        with _store_errors("mailbox subscription link"):
            with self._pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        UPDATE user_mailbox_subscriptions
                        SET business_entity_id = %s, updated_at = NOW()
                        WHERE id = %s
                        """,
                        (business_entity_id, subscription_id),
                    )
                    conn.commit()

    def _map_record(self, row: tuple) -> BusinessEntity:
        """Convert a raw database tuple into the domain ``BusinessEntity`` dataclass."""
        return BusinessEntity(
            entity_id=row[0],
            user_id=row[1],
            name=row[2],
            entity_type=row[3],
            state=row[4],
            status=row[5],
            created_at=row[6],
            updated_at=row[7],
        )
