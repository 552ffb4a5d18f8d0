"""Generic record store over the storefront tables.

Collections are addressed by table name and rows travel as plain dicts, so the
cart, address and pricing code never touch ORM sessions directly.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterable, Mapping, Optional, Protocol

from libs.common.logging import get_logger
from libs.db.base import Base, new_id
from sqlalchemy import MetaData, Table, delete, insert, select, update
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

logger = get_logger(__name__)

Row = dict[str, Any]


class RecordStore(Protocol):
    async def select(
        self,
        collection: str,
        *,
        where: Optional[Mapping[str, Any]] = None,
        where_in: Optional[Mapping[str, Iterable[Any]]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[Row]: ...

    async def insert(self, collection: str, values: Mapping[str, Any]) -> Row: ...

    async def update(
        self, collection: str, values: Mapping[str, Any], *, where: Mapping[str, Any]
    ) -> int: ...

    async def delete(
        self,
        collection: str,
        *,
        where: Optional[Mapping[str, Any]] = None,
        where_in: Optional[Mapping[str, Iterable[Any]]] = None,
    ) -> int: ...

    def transaction(self) -> Any: ...


class SqlRecordStore:
    """RecordStore backed by an async SQLAlchemy engine.

    Each call runs in its own transaction unless the store was obtained from
    ``transaction()``, in which case every call shares that connection and
    commits (or rolls back) together.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        metadata: MetaData = Base.metadata,
        *,
        connection: Optional[AsyncConnection] = None,
    ):
        self._engine = engine
        self._metadata = metadata
        self._connection = connection

    def _table(self, collection: str) -> Table:
        try:
            return self._metadata.tables[collection]
        except KeyError:
            raise ValueError(f"Unknown collection: {collection}") from None

    @staticmethod
    def _conditions(
        table: Table,
        where: Optional[Mapping[str, Any]],
        where_in: Optional[Mapping[str, Iterable[Any]]],
    ) -> list:
        conditions = []
        for column, value in (where or {}).items():
            col = table.c[column]
            conditions.append(col.is_(None) if value is None else col == value)
        for column, values in (where_in or {}).items():
            conditions.append(table.c[column].in_(list(values)))
        return conditions

    async def _fetch(self, stmt) -> list[Row]:
        if self._connection is not None:
            result = await self._connection.execute(stmt)
            return [dict(row) for row in result.mappings().all()]
        async with self._engine.begin() as conn:
            result = await conn.execute(stmt)
            return [dict(row) for row in result.mappings().all()]

    async def _run(self, stmt) -> int:
        if self._connection is not None:
            result = await self._connection.execute(stmt)
            return result.rowcount
        async with self._engine.begin() as conn:
            result = await conn.execute(stmt)
            return result.rowcount

    async def select(
        self,
        collection: str,
        *,
        where: Optional[Mapping[str, Any]] = None,
        where_in: Optional[Mapping[str, Iterable[Any]]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[Row]:
        table = self._table(collection)
        stmt = select(table).where(*self._conditions(table, where, where_in))
        if order_by:
            column = table.c[order_by]
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        return await self._fetch(stmt)

    async def insert(self, collection: str, values: Mapping[str, Any]) -> Row:
        table = self._table(collection)
        values = dict(values)
        pk = list(table.primary_key.columns)[0]
        if values.get(pk.name) is None:
            values[pk.name] = new_id()

        await self._run(insert(table).values(**values))
        rows = await self._fetch(select(table).where(pk == values[pk.name]))
        return rows[0]

    async def update(
        self, collection: str, values: Mapping[str, Any], *, where: Mapping[str, Any]
    ) -> int:
        if not where:
            raise ValueError("update() requires a filter")
        table = self._table(collection)
        stmt = (
            update(table)
            .where(*self._conditions(table, where, None))
            .values(**dict(values))
        )
        return await self._run(stmt)

    async def delete(
        self,
        collection: str,
        *,
        where: Optional[Mapping[str, Any]] = None,
        where_in: Optional[Mapping[str, Iterable[Any]]] = None,
    ) -> int:
        if not where and not where_in:
            raise ValueError("delete() requires a filter")
        table = self._table(collection)
        stmt = delete(table).where(*self._conditions(table, where, where_in))
        return await self._run(stmt)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["SqlRecordStore"]:
        """Yield a store whose calls share one transaction."""
        if self._connection is not None:
            yield self
            return
        async with self._engine.begin() as conn:
            yield SqlRecordStore(self._engine, self._metadata, connection=conn)
