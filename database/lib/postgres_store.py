"""PostgreSQL/CockroachDB backed record collections.

Each collection wraps one table. Writes are single statements, so a filter that
includes the expected current status is evaluated atomically by the database
and a concurrent writer can never clobber a transition it did not observe.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from asyncpg.exceptions import PostgresError, UniqueViolationError
from asyncpg.pool import Pool

from ..exceptions import DatabaseError, DuplicateRecordError
from .filters import build_where, build_order_by, check_identifier, get_set_fields

logger = logging.getLogger(__name__)

def _encode(value: Any) -> Any:
    # Token amounts live in NUMERIC(78, 0) columns
    if isinstance(value, int) and not isinstance(value, bool):
        return Decimal(value)
    return value

def _decode(record) -> Dict[str, Any]:
    result = {}
    for key, value in record.items():
        if isinstance(value, Decimal) and value == value.to_integral_value():
            value = int(value)
        result[key] = value
    return result

def _affected(status: str) -> int:
    # asyncpg returns the command tag, e.g. 'UPDATE 3'
    return int(status.split()[-1])

class PostgresCollection:
    """Record collection stored in a single table."""

    def __init__(self, pool: Pool, table: str, key: str = 'id') -> None:
        self.pool = pool
        self.table = check_identifier(table)
        self.key = check_identifier(key)

    async def insert_one(self, document: Dict[str, Any]) -> Dict[str, Any]:
        columns = [check_identifier(name) for name in document]
        placeholders = [f"${i}" for i in range(1, len(columns) + 1)]
        query = (
            f"INSERT INTO {self.table} ({', '.join(columns)}) "
            f"VALUES ({', '.join(placeholders)}) RETURNING *"
        )
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(query, *[_encode(v) for v in document.values()])
            return _decode(row)
        except UniqueViolationError as e:
            raise DuplicateRecordError(f"Duplicate record in {self.table}: {e}")
        except PostgresError as e:
            logger.error(f"Database error inserting into {self.table}: {e}")
            raise DatabaseError(f"Failed to insert into {self.table}: {e}")

    async def find_one(self, filter: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        results = await self.find(filter, limit=1)
        return results[0] if results else None

    async def find(
        self,
        filter: Dict[str, Any],
        sort: Iterable[Tuple[str, int]] = (),
        skip: int = 0,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        params: List[Any] = []
        query = f"SELECT * FROM {self.table} WHERE {build_where(filter, params, _encode)}"
        query += build_order_by(sort)
        if limit is not None:
            params.append(limit)
            query += f" LIMIT ${len(params)}"
        if skip:
            params.append(skip)
            query += f" OFFSET ${len(params)}"

        logger.debug("Executing query: %s with params: %r", query, params)
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(query, *params)
            return [_decode(row) for row in rows]
        except PostgresError as e:
            logger.error(f"Database error querying {self.table}: {e}")
            raise DatabaseError(f"Failed to query {self.table}: {e}")

    async def count(self, filter: Dict[str, Any]) -> int:
        params: List[Any] = []
        query = f"SELECT count(*) FROM {self.table} WHERE {build_where(filter, params, _encode)}"
        try:
            async with self.pool.acquire() as conn:
                return await conn.fetchval(query, *params)
        except PostgresError as e:
            logger.error(f"Database error counting {self.table}: {e}")
            raise DatabaseError(f"Failed to count {self.table}: {e}")

    async def distinct(self, field: str, filter: Dict[str, Any]) -> List[Any]:
        column = check_identifier(field)
        params: List[Any] = []
        query = (
            f"SELECT DISTINCT {column} FROM {self.table} "
            f"WHERE {build_where(filter, params, _encode)}"
        )
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(query, *params)
            return [_decode(row)[column] for row in rows]
        except PostgresError as e:
            logger.error(f"Database error querying {self.table}: {e}")
            raise DatabaseError(f"Failed to query {self.table}: {e}")

    async def _update(self, filter: Dict[str, Any], update: Dict[str, Any], single: bool) -> int:
        fields = get_set_fields(update)
        params: List[Any] = []
        assignments = []
        for field, value in fields.items():
            params.append(_encode(value))
            assignments.append(f"{field} = ${len(params)}")
        where = build_where(filter, params, _encode)
        if single:
            # The filter is repeated on the outer statement so it is
            # re-evaluated against the row version the update actually locks
            where = (
                f"{self.key} IN (SELECT {self.key} FROM {self.table} WHERE {where} LIMIT 1) "
                f"AND {where}"
            )
        query = f"UPDATE {self.table} SET {', '.join(assignments)} WHERE {where}"
        try:
            async with self.pool.acquire() as conn:
                return _affected(await conn.execute(query, *params))
        except UniqueViolationError as e:
            raise DuplicateRecordError(f"Duplicate record in {self.table}: {e}")
        except PostgresError as e:
            logger.error(f"Database error updating {self.table}: {e}")
            raise DatabaseError(f"Failed to update {self.table}: {e}")

    async def update_one(self, filter: Dict[str, Any], update: Dict[str, Any]) -> int:
        """Apply ``$set`` to the first record matching ``filter``; returns 0 or 1."""
        return await self._update(filter, update, single=True)

    async def update_many(self, filter: Dict[str, Any], update: Dict[str, Any]) -> int:
        """Apply ``$set`` to every record matching ``filter``; returns the count."""
        return await self._update(filter, update, single=False)
